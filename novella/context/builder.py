from __future__ import annotations

from novella.domain.models import CharacterProfile, Story, WorldItem


NO_CHARACTERS = "No detailed characters yet."
NO_WORLD_ITEMS = "No structured world data yet."


def language_instruction(language: str) -> str:
    if language == "id":
        return "Output strictly in Indonesian Language (Bahasa Indonesia)."
    return "Output strictly in English."


def _character_block(character: CharacterProfile) -> str:
    return (
        f"- Name: {character.name} ({character.role})\n"
        f"  Age: {character.age}\n"
        f"  Appearance: {character.appearance}\n"
        f"  Personality: {character.personality}\n"
        f"  Voice/Style: {character.voice}\n"
        f"  Strengths: {character.strengths}\n"
        f"  Weaknesses: {character.weaknesses}"
    )


def _world_item_block(item: WorldItem) -> str:
    return (
        f"- [{item.category}] {item.name}:\n"
        f"  {item.description}\n"
        f"  Sensory: {item.sensory_details}\n"
        f"  Secrets: {item.secret}"
    )


def build_story_context(story: Story, style_sample_chars: int = 1500) -> str:
    """Render the story bible the writer model sees in every request."""
    characters = "\n".join(_character_block(c) for c in story.characters) or NO_CHARACTERS
    world_items = "\n".join(_world_item_block(w) for w in story.world_items) or NO_WORLD_ITEMS

    lines = [
        f"Title: {story.title}",
        f"Premise: {story.premise}",
        f"Genres: {story.genre_line()}",
        f"Tone: {story.tone}",
        f"Style Description: {story.writing_style}",
    ]
    if story.style_reference:
        sample = story.style_reference[:style_sample_chars]
        lines.append(f'USER WRITING SAMPLE (MIMIC THIS STYLE):\n"{sample}..."')

    lines.extend(
        [
            "",
            "CHARACTERS:",
            characters,
            "",
            "WORLD WIKI (LOCATIONS, FACTIONS, ITEMS, ETC):",
            world_items,
            "",
            "WORLD NOTES (UNSTRUCTURED):",
            story.world_text,
            "",
            "PLOT OUTLINE:",
            story.plot_outline,
        ]
    )
    return "\n".join(lines)
