from __future__ import annotations

from novella.context.builder import NO_CHARACTERS, NO_WORLD_ITEMS, build_story_context, language_instruction
from novella.domain.models import CharacterProfile, Story, WorldItem


def test_empty_story_uses_placeholders() -> None:
    context = build_story_context(Story(title="Blank"))

    assert "Title: Blank" in context
    assert NO_CHARACTERS in context
    assert NO_WORLD_ITEMS in context
    assert "USER WRITING SAMPLE" not in context


def test_context_lists_characters_world_and_genres() -> None:
    story = Story(
        title="Salt",
        genres=["Fantasy", "Mystery"],
        custom_genres="Nautical",
        characters=[CharacterProfile(name="Ana", role="Protagonist", voice="Clipped")],
        world_items=[WorldItem(name="Harbor", category="Location", secret="Sunken bell")],
        plot_outline="Act one.",
    )

    context = build_story_context(story)

    assert "Genres: Fantasy, Mystery, Nautical" in context
    assert "- Name: Ana (Protagonist)" in context
    assert "Voice/Style: Clipped" in context
    assert "- [Location] Harbor:" in context
    assert "Secrets: Sunken bell" in context
    assert context.rstrip().endswith("Act one.")


def test_style_sample_is_truncated() -> None:
    story = Story(style_reference="a" * 2000 + "TAIL")

    context = build_story_context(story, style_sample_chars=1500)

    assert f'"{"a" * 1500}..."' in context
    assert "TAIL" not in context


def test_language_instruction() -> None:
    assert "Indonesian" in language_instruction("id")
    assert language_instruction("en") == "Output strictly in English."
