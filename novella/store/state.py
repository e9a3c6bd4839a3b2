from __future__ import annotations

from typing import Any, Callable

import orjson
from loguru import logger
from pydantic import ValidationError

from novella.domain.models import CharacterProfile, Chapter, Language, Story, WorldItem, now_ms
from novella.storage.backends import StorageBackend


UNTITLED_STORY = {"en": "Untitled Story", "id": "Cerita Tanpa Judul"}
CHAPTER_WORD = {"en": "Chapter", "id": "Bab"}

_IMMUTABLE_FIELDS = {"id", "last_updated"}
STORY_FIELDS = frozenset(name for name in Story.model_fields if name not in _IMMUTABLE_FIELDS)


def migrate_story_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Bring a stored story up to the current shape.

    Stories saved before the world wiki existed have no ``worldItems``.
    """
    migrated = dict(payload)
    if not migrated.get("worldItems"):
        migrated["worldItems"] = []
    return migrated


def encode_stories(stories: list[Story]) -> bytes:
    return orjson.dumps([story.model_dump(mode="json", by_alias=True) for story in stories])


def decode_stories(payload: bytes) -> list[Story]:
    raw = orjson.loads(payload)
    if not isinstance(raw, list):
        raise ValueError("Expected a JSON array of stories")

    stories: list[Story] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            logger.warning("Skipping stored story #{}: not an object", index)
            continue
        try:
            stories.append(Story.model_validate(migrate_story_payload(item)))
        except ValidationError as exc:
            logger.warning("Skipping stored story #{} id={}: {}", index, item.get("id", "-"), exc)
    return stories


class StoryStore:
    """In-memory story collection with one active selection.

    Every mutation replaces whole fields on a story, stamps ``last_updated`` and
    writes the full collection through the backend.
    """

    def __init__(self, backend: StorageBackend, *, clock: Callable[[], int] = now_ms):
        self.backend = backend
        self.active_story_id: str | None = None
        self.last_save_ok = True
        self._stories: list[Story] = []
        self._clock = clock

    @property
    def stories(self) -> list[Story]:
        return list(self._stories)

    @property
    def active(self) -> Story | None:
        if self.active_story_id is None:
            return None
        return self._find(self.active_story_id)

    def load(self) -> list[Story]:
        payload = self.backend.load()
        if payload is None:
            self._stories = []
            return self.stories
        try:
            self._stories = decode_stories(payload)
        except (orjson.JSONDecodeError, ValueError) as exc:
            logger.error("Failed to load stories: {}", exc)
            self._stories = []
        logger.debug("Loaded {} stories", len(self._stories))
        return self.stories

    def persist(self) -> bool:
        self.last_save_ok = self.backend.save(encode_stories(self._stories))
        if not self.last_save_ok:
            logger.error("Failed to persist {} stories; changes are kept in memory", len(self._stories))
        return self.last_save_ok

    def _find(self, story_id: str) -> Story | None:
        for story in self._stories:
            if story.id == story_id:
                return story
        return None

    def get(self, story_id: str) -> Story:
        story = self._find(story_id)
        if story is None:
            raise KeyError(f"Story not found: {story_id}")
        return story

    def select(self, story_id: str | None) -> Story | None:
        if story_id is None:
            self.active_story_id = None
            return None
        story = self.get(story_id)
        self.active_story_id = story.id
        return story

    def create_story(self, language: Language = "en") -> Story:
        story = Story(title=UNTITLED_STORY[language], language=language, last_updated=self._clock())
        return self.add_story(story)

    def add_story(self, story: Story, *, activate: bool = True) -> Story:
        if self._find(story.id) is not None:
            raise ValueError(f"Story id already exists: {story.id}")
        self._stories.insert(0, story)
        if activate:
            self.active_story_id = story.id
        self.persist()
        return story

    def delete_story(self, story_id: str) -> None:
        story = self.get(story_id)
        self._stories = [item for item in self._stories if item.id != story.id]
        if self.active_story_id == story_id:
            self.active_story_id = None
        self.persist()

    def update_fields(self, story_id: str, **values: Any) -> Story:
        unknown = set(values) - STORY_FIELDS
        if unknown:
            raise ValueError(f"Unknown story field(s): {', '.join(sorted(unknown))}")

        current = self.get(story_id)
        payload = current.model_dump()
        payload.update(values)
        payload["last_updated"] = self._clock()
        updated = Story.model_validate(payload)

        self._stories = [updated if item.id == story_id else item for item in self._stories]
        self.persist()
        return updated

    def update_field(self, story_id: str, field: str, value: Any) -> Story:
        return self.update_fields(story_id, **{field: value})

    def toggle_genre(self, story_id: str, genre_id: str) -> Story:
        genres = self.get(story_id).genres
        if genre_id in genres:
            updated = [genre for genre in genres if genre != genre_id]
        else:
            updated = [*genres, genre_id]
        return self.update_field(story_id, "genres", updated)

    def save_character(self, story_id: str, character: CharacterProfile) -> Story:
        characters = self.get(story_id).characters
        if any(item.id == character.id for item in characters):
            updated = [character if item.id == character.id else item for item in characters]
        else:
            updated = [*characters, character]
        return self.update_field(story_id, "characters", updated)

    def delete_character(self, story_id: str, character_id: str) -> Story:
        characters = self.get(story_id).characters
        return self.update_field(story_id, "characters", [item for item in characters if item.id != character_id])

    def save_world_item(self, story_id: str, item: WorldItem) -> Story:
        items = self.get(story_id).world_items
        if any(existing.id == item.id for existing in items):
            updated = [item if existing.id == item.id else existing for existing in items]
        else:
            updated = [*items, item]
        return self.update_field(story_id, "world_items", updated)

    def delete_world_item(self, story_id: str, item_id: str) -> Story:
        items = self.get(story_id).world_items
        return self.update_field(story_id, "world_items", [item for item in items if item.id != item_id])

    def create_chapter(self, story_id: str, language: Language | None = None) -> Chapter:
        story = self.get(story_id)
        word = CHAPTER_WORD[language or story.language]
        chapter = Chapter(title=f"{word} {len(story.chapters) + 1}", content="")
        self.update_field(story_id, "chapters", [*story.chapters, chapter])
        return chapter

    def _replace_chapter(self, story_id: str, chapter_id: str, **changes: str) -> Story:
        story = self.get(story_id)
        if story.find_chapter(chapter_id) is None:
            raise KeyError(f"Chapter not found: {chapter_id}")
        chapters = [
            chapter.model_copy(update=changes) if chapter.id == chapter_id else chapter for chapter in story.chapters
        ]
        return self.update_field(story_id, "chapters", chapters)

    def update_chapter_content(self, story_id: str, chapter_id: str, content: str) -> Story:
        return self._replace_chapter(story_id, chapter_id, content=content)

    def update_chapter_title(self, story_id: str, chapter_id: str, title: str) -> Story:
        return self._replace_chapter(story_id, chapter_id, title=title)

    def insert_at_cursor(self, story_id: str, chapter_id: str, offset: int, text: str) -> Story:
        chapter = self.get(story_id).find_chapter(chapter_id)
        if chapter is None:
            raise KeyError(f"Chapter not found: {chapter_id}")
        cursor = max(0, min(offset, len(chapter.content)))
        content = chapter.content[:cursor] + text + chapter.content[cursor:]
        return self.update_chapter_content(story_id, chapter_id, content)
