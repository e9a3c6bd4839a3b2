"""Feature-level calls to the hosted models.

Every feature assembles its prompt from the story, calls one chat route and
turns provider or parsing failures into a logged warning plus a fixed fallback
value. Callers never see provider exceptions from this layer.
"""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

from loguru import logger

from novella.config.schema import AppConfigRoot, ChatRoute
from novella.domain.models import CharacterProfile, ChatMessage, Story, WorldItem
from novella.gateway import prompts
from novella.gateway.schemas import (
    StoryDNA,
    StorySetup,
    parse_character_drafts,
    parse_world_item_drafts,
)
from novella.llm.cache import ResponseCache
from novella.llm.factory import ChatClient, make_cache_key
from novella.llm.images import ImageClient
from novella.llm.json_utils import safe_load_json_dict, safe_load_json_list, safe_load_string_list


BRAINSTORM_FALLBACK = "Error generating content."
CHAT_FALLBACK = "I'm having trouble connecting to the Muse right now."
EMPTY_BEATS = ("Continue the scene", "Build tension", "Climax of the chapter", "Conclusion/Cliffhanger")
FAILED_BEATS = ("Continue the scene", "Next event", "Next event", "Conclusion")


class AIGateway:
    def __init__(
        self,
        config: AppConfigRoot,
        cache: ResponseCache,
        *,
        image_client: ImageClient | None = None,
    ):
        self.config = config
        self.cache = cache
        self._clients: dict[str, ChatClient] = {}
        self._image_client = image_client

    def client(self, route: ChatRoute) -> ChatClient:
        # Built lazily so a missing key only matters for routes that are used.
        if route not in self._clients:
            self._clients[route] = ChatClient(self.config, self.cache, route)
        return self._clients[route]

    @property
    def image_client(self) -> ImageClient:
        if self._image_client is None:
            self._image_client = ImageClient.from_config(self.config)
        return self._image_client

    def _text(
        self,
        route: ChatRoute,
        feature: str,
        system: str,
        user: str,
        *,
        cache_key: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> str:
        response = self.client(route).complete(
            system, user, cache_key, context={"feature": feature, **(context or {})}
        )
        return response.text

    def _json(
        self,
        route: ChatRoute,
        feature: str,
        system: str,
        user: str,
        parser: Any,
        *,
        cache_key: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> Any:
        _, parsed = self.client(route).complete_json(
            system, user, cache_key, parser, context={"feature": feature, **(context or {})}
        )
        return parsed

    # Writing

    def generate_prose(
        self,
        story: Story,
        chapter_id: str,
        cursor: int,
        *,
        length: str = "medium",
        instruction: str | None = None,
    ) -> str:
        chapter = story.find_chapter(chapter_id)
        if chapter is None:
            return ""

        writer = self.config.writer
        preceding = chapter.content[: max(0, cursor)][-writer.context_chars :]
        length_instruction = writer.length_presets.get(length, "")
        system, user = prompts.prose_prompts(
            story,
            preceding_text=preceding,
            length_instruction=length_instruction,
            instruction=instruction,
            style_sample_chars=writer.style_sample_chars,
        )
        try:
            return self._text(
                "writer", "prose", system, user, context={"story_id": story.id, "chapter_id": chapter_id}
            )
        except Exception as exc:  # noqa: BLE001
            logger.bind(story_id=story.id, chapter_id=chapter_id).warning("Prose generation failed: {}", exc)
            return ""

    def generate_chapter_beats(self, story: Story, preceding_text: str) -> list[str]:
        writer = self.config.writer
        system, user = prompts.beats_prompts(
            story,
            preceding_text=preceding_text[-writer.beats_context_chars :],
            style_sample_chars=writer.style_sample_chars,
        )
        try:
            beats = self._json(
                "planner", "beats", system, user, safe_load_string_list, context={"story_id": story.id}
            )
        except Exception as exc:  # noqa: BLE001
            logger.bind(story_id=story.id).warning("Beat generation failed: {}", exc)
            return list(FAILED_BEATS)
        return beats or list(EMPTY_BEATS)

    # Planning

    def brainstorm(self, element_type: str, story: Story, user_input: str) -> str:
        system, user = prompts.brainstorm_prompts(
            story,
            element_type=element_type,
            user_input=user_input,
            style_sample_chars=self.config.writer.style_sample_chars,
        )
        try:
            return self._text("planner", "brainstorm", system, user, context={"story_id": story.id})
        except Exception as exc:  # noqa: BLE001
            logger.bind(story_id=story.id).warning("Brainstorm failed element={} error={}", element_type, exc)
            return BRAINSTORM_FALLBACK

    def generate_character_profile(self, story: Story, name: str, archetype: str) -> str:
        return self.brainstorm(
            "Character Profile",
            story,
            f'Create a detailed character profile for "{name}" (Archetype: {archetype}). '
            "Include appearance, personality, strengths, weaknesses, and backstory.",
        )

    def generate_world_element(self, story: Story, category: str, topic: str) -> str:
        return self.brainstorm(
            "World Building Element",
            story,
            f"Create a detailed world building entry. Category: {category}, Topic: {topic}. "
            "Include sensory details and significance to the plot.",
        )

    def generate_plot_structure(self, story: Story, structure: str) -> str:
        return self.brainstorm(
            f"Plot Outline using {structure} structure",
            story,
            "Create a detailed plot outline using this specific story structure. "
            "Break it down into the standard beats of that structure.",
        )

    def generate_comprehensive_list(self, story: Story, kind: str) -> str:
        return self.brainstorm("List", story, f"Create a list of {kind}.")

    def auto_setup(self, story: Story) -> StorySetup | None:
        system, user = prompts.auto_setup_prompts(story)
        cache_key = make_cache_key(
            "setup", prompts.SETUP_PROMPT_VERSION, self.client("planner").model_identifier, story.language, user
        )
        try:
            payload = self._json(
                "planner", "auto_setup", system, user, safe_load_json_dict, cache_key=cache_key,
                context={"story_id": story.id},
            )
            return StorySetup.model_validate(payload)
        except Exception as exc:  # noqa: BLE001
            logger.bind(story_id=story.id).warning("Auto setup failed: {}", exc)
            return None

    def analyze_writing_style(self, sample_text: str, language: str) -> str:
        sample = sample_text[: self.config.writer.style_analysis_chars]
        system, user = prompts.style_analysis_prompts(sample, language=language)
        try:
            cache_key = make_cache_key(
                "style", prompts.STYLE_PROMPT_VERSION, self.client("planner").model_identifier, language, sample
            )
            return self._text("planner", "style_analysis", system, user, cache_key=cache_key).strip()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Style analysis failed: {}", exc)
            return ""

    # Cast and world

    def generate_structured_cast(self, story: Story) -> list[CharacterProfile]:
        system, user = prompts.cast_prompts(story)
        try:
            items = self._json("planner", "cast", system, user, safe_load_json_list, context={"story_id": story.id})
            return [draft.to_profile() for draft in parse_character_drafts(items)]
        except Exception as exc:  # noqa: BLE001
            logger.bind(story_id=story.id).warning("Cast generation failed: {}", exc)
            return []

    def refine_character(self, story: Story, character: CharacterProfile) -> CharacterProfile | None:
        system, user = prompts.refine_character_prompts(story, character)
        try:
            payload = self._json(
                "planner", "refine_character", system, user, safe_load_json_dict, context={"story_id": story.id}
            )
        except Exception as exc:  # noqa: BLE001
            logger.bind(story_id=story.id).warning("Character refinement failed id={} error={}", character.id, exc)
            return None

        merged = character.model_dump()
        refined = parse_character_drafts([payload])[0].model_dump(exclude_unset=True)
        merged.update(refined)
        merged.update(id=character.id, avatar_base64=character.avatar_base64, image_style=character.image_style)
        return CharacterProfile.model_validate(merged)

    def refine_world_item(self, story: Story, item: WorldItem) -> WorldItem | None:
        system, user = prompts.refine_world_item_prompts(story, item)
        try:
            payload = self._json(
                "planner", "refine_world_item", system, user, safe_load_json_dict, context={"story_id": story.id}
            )
        except Exception as exc:  # noqa: BLE001
            logger.bind(story_id=story.id).warning("World item refinement failed id={} error={}", item.id, exc)
            return None

        merged = item.model_dump()
        refined = parse_world_item_drafts([payload])[0].model_dump(exclude_unset=True)
        merged.update(refined)
        merged.update(id=item.id, image_url=item.image_url, image_style=item.image_style)
        return WorldItem.model_validate(merged)

    def generate_character_image(self, character: CharacterProfile, style: str) -> str | None:
        try:
            return self.image_client.generate(prompts.character_image_prompt(character, style))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Portrait generation failed id={} error={}", character.id, exc)
            return None

    def generate_world_item_image(self, item: WorldItem, style: str) -> str | None:
        try:
            return self.image_client.generate(prompts.world_item_image_prompt(item, style))
        except Exception as exc:  # noqa: BLE001
            logger.warning("World image generation failed id={} error={}", item.id, exc)
            return None

    # Genesis chain

    def genesis_world(self, story: Story) -> list[WorldItem]:
        system, user = prompts.genesis_world_prompts(story)
        try:
            items = self._json(
                "planner", "genesis_world", system, user, safe_load_json_list, context={"story_id": story.id}
            )
            return [draft.to_item() for draft in parse_world_item_drafts(items)]
        except Exception as exc:  # noqa: BLE001
            logger.bind(story_id=story.id).warning("Genesis world failed: {}", exc)
            return []

    def genesis_characters(self, story: Story, world_items: Sequence[WorldItem]) -> list[CharacterProfile]:
        system, user = prompts.genesis_characters_prompts(story, world_items)
        try:
            items = self._json(
                "planner", "genesis_characters", system, user, safe_load_json_list, context={"story_id": story.id}
            )
            return [draft.to_profile() for draft in parse_character_drafts(items)]
        except Exception as exc:  # noqa: BLE001
            logger.bind(story_id=story.id).warning("Genesis characters failed: {}", exc)
            return []

    def genesis_plot(
        self, story: Story, world_items: Sequence[WorldItem], characters: Sequence[CharacterProfile]
    ) -> str:
        system, user = prompts.genesis_plot_prompts(story, world_items, characters)
        try:
            return self._text("planner", "genesis_plot", system, user, context={"story_id": story.id})
        except Exception as exc:  # noqa: BLE001
            logger.bind(story_id=story.id).warning("Genesis plot failed: {}", exc)
            return ""

    # Assistant

    def chat(self, history: Sequence[ChatMessage], story: Story) -> str:
        query = history[-1].text if history else ""
        system, user = prompts.chat_prompts(
            story, query=query, style_sample_chars=self.config.writer.style_sample_chars
        )
        try:
            return self._text("assistant", "chat", system, user, context={"story_id": story.id})
        except Exception as exc:  # noqa: BLE001
            logger.bind(story_id=story.id).warning("Assistant chat failed: {}", exc)
            return CHAT_FALLBACK

    # Import

    async def extract_story_dna_async(self, full_text: str, language: str) -> StoryDNA | None:
        sample = full_text[: self.config.import_.extract_max_chars]
        system, user = prompts.story_dna_prompts(sample, language=language)
        try:
            client = self.client("extract")
            cache_key = make_cache_key(
                "dna", prompts.DNA_PROMPT_VERSION, client.model_identifier, language, sample
            )
            _, payload = await client.complete_json_async(
                system, user, cache_key, safe_load_json_dict, context={"feature": "extract_dna"}
            )
            return StoryDNA.model_validate(payload)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Story DNA extraction failed chars={} error={}", len(sample), exc)
            return None

    def extract_story_dna(self, full_text: str, language: str) -> StoryDNA | None:
        return asyncio.run(self.extract_story_dna_async(full_text, language))
