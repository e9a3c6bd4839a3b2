from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from loguru import logger

from novella.domain.models import DEFAULT_PORTRAIT_STYLE, CharacterProfile, ChatMessage, Story, WorldItem
from novella.gateway.service import AIGateway
from novella.store.state import StoryStore


WriteLength = Literal["short", "medium", "long", "panic"]

LOCATION_IMAGE_STYLE = "Concept Art (Environment)"
ITEM_IMAGE_STYLE = "Concept Art (Item/Prop)"
PANIC_PASSAGE_LENGTH = "medium"


class GenesisNotReadyError(ValueError):
    """Genesis needs a premise and at least one selected genre."""


@dataclass
class GenesisResult:
    world_items: list[WorldItem]
    characters: list[CharacterProfile]
    plot: str
    log: list[str] = field(default_factory=list)


def default_world_image_style(item: WorldItem) -> str:
    return LOCATION_IMAGE_STYLE if item.category == "Location" else ITEM_IMAGE_STYLE


class Workbench:
    """Story-level actions that combine the store with model calls.

    Each action reads the story fresh from the store, calls the gateway and
    writes the result back through the store's field updates. Gateway fallbacks
    (empty text, ``None``, empty lists) leave the story untouched.
    """

    def __init__(self, store: StoryStore, gateway: AIGateway):
        self.store = store
        self.gateway = gateway
        self.chat_history: list[ChatMessage] = []

    def auto_setup(self, story_id: str) -> Story | None:
        setup = self.gateway.auto_setup(self.store.get(story_id))
        if setup is None:
            return None
        return self.store.update_fields(
            story_id,
            title=setup.title,
            premise=setup.premise,
            tone=setup.tone,
            writing_style=setup.writing_style,
        )

    def analyze_style(self, story_id: str) -> Story | None:
        story = self.store.get(story_id)
        if not story.style_reference:
            return None
        description = self.gateway.analyze_writing_style(story.style_reference, story.language)
        if not description:
            return None
        return self.store.update_field(story_id, "writing_style", description)

    def generate_full_cast(self, story_id: str) -> list[CharacterProfile]:
        story = self.store.get(story_id)
        cast = self.gateway.generate_structured_cast(story)
        if cast:
            self.store.update_field(story_id, "characters", [*story.characters, *cast])
        return cast

    def generate_portrait(self, story_id: str, character_id: str) -> CharacterProfile | None:
        story = self.store.get(story_id)
        character = next((item for item in story.characters if item.id == character_id), None)
        if character is None:
            raise KeyError(f"Character not found: {character_id}")

        image = self.gateway.generate_character_image(character, character.image_style or DEFAULT_PORTRAIT_STYLE)
        if not image:
            return None
        updated = character.model_copy(update={"avatar_base64": image})
        self.store.save_character(story_id, updated)
        return updated

    def refine_character(self, story_id: str, character: CharacterProfile) -> CharacterProfile | None:
        """Return a deepened draft of ``character``; saving it is left to the caller."""
        return self.gateway.refine_character(self.store.get(story_id), character)

    def refine_world_item(self, story_id: str, item: WorldItem) -> WorldItem | None:
        return self.gateway.refine_world_item(self.store.get(story_id), item)

    def generate_world_image(self, story_id: str, item_id: str) -> WorldItem | None:
        story = self.store.get(story_id)
        item = next((entry for entry in story.world_items if entry.id == item_id), None)
        if item is None:
            raise KeyError(f"World item not found: {item_id}")

        image = self.gateway.generate_world_item_image(item, item.image_style or default_world_image_style(item))
        if not image:
            return None
        updated = item.model_copy(update={"image_url": image})
        self.store.save_world_item(story_id, updated)
        return updated

    def ignite_genesis(self, story_id: str) -> GenesisResult:
        story = self.store.get(story_id)
        if not story.premise or not story.genres:
            raise GenesisNotReadyError("Genesis needs a premise and at least one genre")

        log = logger.bind(story_id=story_id, feature="genesis")
        world_items = self.gateway.genesis_world(story)
        log.info("Genesis created {} world elements", len(world_items))
        characters = self.gateway.genesis_characters(story, world_items)
        log.info("Genesis created {} characters", len(characters))
        plot = self.gateway.genesis_plot(story, world_items, characters)
        log.info("Genesis wrote plot chars={}", len(plot))

        current = self.store.get(story_id)
        outline = f"{current.plot_outline}\n\n{plot}" if current.plot_outline else plot
        self.store.update_fields(
            story_id,
            world_items=[*current.world_items, *world_items],
            characters=[*current.characters, *characters],
            plot_outline=outline,
        )
        return GenesisResult(
            world_items=world_items,
            characters=characters,
            plot=plot,
            log=[
                f"{len(world_items)} world elements created",
                f"{len(characters)} characters created",
                "plot outline written",
            ],
        )

    def ai_write(
        self,
        story_id: str,
        chapter_id: str,
        cursor: int,
        *,
        length: WriteLength = "medium",
        instruction: str = "",
    ) -> str:
        """Generate prose into a chapter and return the chapter's new content."""
        story = self.store.get(story_id)
        chapter = story.find_chapter(chapter_id)
        if chapter is None:
            raise KeyError(f"Chapter not found: {chapter_id}")

        cursor = max(0, min(cursor, len(chapter.content)))
        if length == "panic":
            return self._write_panic(story, chapter_id, chapter.content, cursor, instruction)

        generated = self.gateway.generate_prose(story, chapter_id, cursor, length=length, instruction=instruction)
        if not generated:
            return chapter.content
        return self.store.insert_at_cursor(story_id, chapter_id, cursor, generated).find_chapter(chapter_id).content

    def _write_panic(self, story: Story, chapter_id: str, content: str, cursor: int, instruction: str) -> str:
        beats = self.gateway.generate_chapter_beats(story, content[:cursor])
        log = logger.bind(story_id=story.id, chapter_id=chapter_id, feature="panic")

        for index, beat in enumerate(beats, start=1):
            log.info("Writing scene {}/{}: {}", index, len(beats), beat[:20])
            chapters = [
                chapter.model_copy(update={"content": content}) if chapter.id == chapter_id else chapter
                for chapter in story.chapters
            ]
            snapshot = story.model_copy(update={"chapters": chapters})
            passage = self.gateway.generate_prose(
                snapshot,
                chapter_id,
                len(content),
                length=PANIC_PASSAGE_LENGTH,
                instruction=f"Write this specific scene: {beat}. {instruction}",
            )
            if passage:
                content = f"{content}\n\n{passage}"
                self.store.update_chapter_content(story.id, chapter_id, content)
        return content

    def send_chat(self, story_id: str, text: str) -> ChatMessage | None:
        if not text.strip():
            return None
        story = self.store.get(story_id)
        self.chat_history.append(ChatMessage(role="user", text=text))
        reply = ChatMessage(role="model", text=self.gateway.chat(self.chat_history, story))
        self.chat_history.append(reply)
        return reply
