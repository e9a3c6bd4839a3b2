from __future__ import annotations

from typing import Sequence

import orjson

from novella.context.builder import build_story_context, language_instruction
from novella.domain.models import WORLD_CATEGORIES, CharacterProfile, Story, WorldItem

SETUP_PROMPT_VERSION = "v1"
STYLE_PROMPT_VERSION = "v1"
DNA_PROMPT_VERSION = "v1"

JSON_ONLY = "Output only strictly valid JSON. Do not wrap it in markdown and add no commentary."


def prose_prompts(
    story: Story,
    *,
    preceding_text: str,
    length_instruction: str,
    instruction: str | None,
    style_sample_chars: int,
) -> tuple[str, str]:
    system = "Role: You are an expert novelist co-author."
    constraints = [
        f"- {language_instruction(story.language)}",
        f"- Match the Tone: {story.tone}",
        f"- Match the Writing Style: {story.writing_style}",
    ]
    if story.style_reference:
        constraints.append(
            '- CRITICAL: Analyze the "USER WRITING SAMPLE" in the Story Bible and mimic its sentence '
            "structure, vocabulary, and rhythm."
        )
    constraints.extend(
        [
            "- Use the World Wiki and Character profiles details to add depth (sensory details, callbacks).",
            "- Do not repeat the preceding text.",
            "- Write only the new content.",
        ]
    )
    user = (
        "Task: Continue the story based on the context provided.\n\n"
        "STORY BIBLE:\n"
        f"{build_story_context(story, style_sample_chars)}\n\n"
        "CURRENT CHAPTER CONTENT (Preceding cursor):\n"
        f"...{preceding_text}\n\n"
        f"USER INSTRUCTION: {instruction or 'Continue the story naturally.'}\n"
        f"LENGTH TARGET: {length_instruction}\n\n"
        "Constraints:\n" + "\n".join(constraints)
    )
    return system, user


def beats_prompts(story: Story, *, preceding_text: str, style_sample_chars: int) -> tuple[str, str]:
    system = f"Role: Novel Plotter. {JSON_ONLY}"
    user = (
        "Task: The user wants to write the rest of this chapter (about 2000 words).\n"
        'Break down the immediate next events into 4 distinct sequential "Beats" (Scenes).\n\n'
        "STORY CONTEXT:\n"
        f"{build_story_context(story, style_sample_chars)}\n\n"
        "TEXT SO FAR:\n"
        f"...{preceding_text}\n\n"
        "Output strictly as a JSON list of strings.\n"
        'Example: ["Protagonist enters the bar and orders a drink", "A fight breaks out", '
        '"Protagonist escapes via the roof", "Protagonist reflects on the fight at home"]\n\n'
        f"{language_instruction(story.language)}"
    )
    return system, user


def brainstorm_prompts(
    story: Story, *, element_type: str, user_input: str, style_sample_chars: int
) -> tuple[str, str]:
    specific = "Provide a creative, detailed list or description."
    if element_type == "Premise":
        specific = (
            "CRITICAL INSTRUCTION: Do NOT provide a list of options.\n"
            f"Synthesize the genres ({', '.join(story.genres)}) and the user's input into ONE single, "
            "cohesive, compelling story premise (logline/summary paragraph).\n"
            "Make it catchy and professional."
        )

    system = "Role: Creative Writing Assistant."
    user = (
        f"Task: Brainstorm/Generate content for: {element_type}.\n\n"
        "STORY CONTEXT:\n"
        f"{build_story_context(story, style_sample_chars)}\n\n"
        f"USER INPUT/IDEA: {user_input}\n\n"
        "INSTRUCTION:\n"
        f"{specific}\n"
        f"- {language_instruction(story.language)}"
    )
    return system, user


def auto_setup_prompts(story: Story) -> tuple[str, str]:
    system = f"Role: Expert Book Editor. {JSON_ONLY}"
    user = (
        "Task: Create a cohesive story setup based on the selected genres.\n"
        f"Genres: {story.genre_line()}\n\n"
        "Return a JSON object with these string fields:\n"
        "- title: a catchy, best-seller quality title\n"
        "- premise: a compelling 1-paragraph logline/summary\n"
        "- tone: atmosphere keywords (e.g. Dark, Whimsical)\n"
        "- writingStyle: writing style keywords (e.g. Fast-paced, Descriptive)\n\n"
        f"Constraint:\n- {language_instruction(story.language)}"
    )
    return system, user


def style_analysis_prompts(sample: str, *, language: str) -> tuple[str, str]:
    system = "Role: Literary Analyst."
    output_language = "In Indonesian." if language == "id" else "In English."
    user = (
        "Task: Analyze the following writing sample and describe its style in 5-10 keywords or a short phrase.\n"
        "Focus on: Sentence structure, vocabulary complexity, pacing, and tone.\n\n"
        "SAMPLE:\n"
        f'"{sample}"\n\n'
        f"OUTPUT:\nReturn ONLY the description string. {output_language}"
    )
    return system, user


_CHARACTER_FIELDS = (
    "name, role (e.g. Protagonist, Villain, Mentor), age, appearance (physical traits, height, build, "
    "clothing), personality, voice (speaking style, dialect), strengths, weaknesses, backstory"
)


def cast_prompts(story: Story) -> tuple[str, str]:
    system = f"Role: Character Designer. {JSON_ONLY}"
    user = (
        "Create a full cast of characters for this story.\n"
        "Include a Protagonist, Antagonist, and supporting characters.\n"
        "Ensure they fit the genre and tone.\n"
        f"STORY PREMISE: {story.premise}\n"
        f"GENRES: {', '.join(story.genres)}\n\n"
        f"Return a JSON array of objects with string fields: {_CHARACTER_FIELDS}.\n\n"
        f"{language_instruction(story.language)}"
    )
    return system, user


def refine_character_prompts(story: Story, character: CharacterProfile) -> tuple[str, str]:
    system = f"You are an expert Character Designer and Psychologist. {JSON_ONLY}"
    payload = character.model_dump(mode="json", by_alias=True, exclude={"avatar_base64"})
    user = (
        "Your task is to REFINE, DEEPEN, and COMPLETE the character profile below.\n\n"
        "INPUT DATA:\n"
        f"{orjson.dumps(payload).decode('utf-8')}\n\n"
        "STORY CONTEXT:\n"
        f"Premise: {story.premise}\n"
        f"Tone: {story.tone}\n\n"
        "INSTRUCTIONS:\n"
        "1. Fill in any missing fields.\n"
        "2. ENHANCE existing fields to be more specific and creative.\n"
        "3. BACKSTORY: Must be deep and emotional. Explain WHY they move, WHY they hate/love things. "
        'Include a "Ghost" or a "Lie" they believe. Ensure it fits the Story Premise perfectly.\n'
        "4. APPEARANCE: Must be detailed. Include height, body build, distinctive features, hair texture, "
        "and clothing style.\n"
        "5. PERSONALITY: Ensure it is consistent with the Backstory.\n\n"
        f"Return one JSON object with string fields: {_CHARACTER_FIELDS}.\n\n"
        f"{language_instruction(story.language)}"
    )
    return system, user


def refine_world_item_prompts(story: Story, item: WorldItem) -> tuple[str, str]:
    system = f"You are an expert World Builder for novels. {JSON_ONLY}"
    user = (
        "Your task is to REFINE, DEEPEN, and VISUALIZE the world building element below.\n\n"
        "INPUT DATA:\n"
        f"Name: {item.name}\n"
        f"Category: {item.category}\n"
        f"Description (Partial): {item.description}\n\n"
        "STORY CONTEXT:\n"
        f"Premise: {story.premise}\n"
        f"Tone: {story.tone}\n\n"
        "INSTRUCTIONS:\n"
        "1. Description: Make it evocative.\n"
        "2. Sensory Details: CRITICAL. Describe how it smells, sounds, feels, and the specific atmosphere.\n"
        '3. Secrets: Add a "Ghost" or a "Rumor" about this element that can be used as a plot hook.\n\n'
        "Return one JSON object with string fields: name, category, description, sensoryDetails, secret.\n\n"
        f"{language_instruction(story.language)}"
    )
    return system, user


def character_image_prompt(character: CharacterProfile, style: str) -> str:
    return (
        "Character Portrait.\n"
        f"Subject: {character.name}, {character.age} years old.\n"
        f"Appearance: {character.appearance}.\n"
        f"Role: {character.role}.\n"
        f"Personality hint: {character.personality}.\n"
        f"Art Style: {style}.\n"
        "High quality, detailed, white background."
    )


def world_item_image_prompt(item: WorldItem, style: str) -> str:
    if item.category == "Location":
        framing = "Wide shot, detailed environment, atmospheric."
    else:
        framing = "Focus on the object/subject, detailed."
    return (
        "World Building Concept Art.\n"
        f"Subject: {item.name} ({item.category}).\n"
        f"Description: {item.description}.\n"
        f"Atmosphere/Vibe: {item.sensory_details}.\n"
        f"Art Style: {style}.\n"
        f"{framing}\n"
        "High quality."
    )


def chat_prompts(story: Story, *, query: str, style_sample_chars: int) -> tuple[str, str]:
    system = (
        "You are an AI writing assistant for a novel.\n"
        "Answer the user's questions based on the provided Story Context.\n"
        "Be helpful, encouraging, and creative.\n"
        f"{language_instruction(story.language)}"
    )
    user = f"STORY CONTEXT:\n{build_story_context(story, style_sample_chars)}\n\nUSER QUERY: {query}"
    return system, user


def genesis_world_prompts(story: Story) -> tuple[str, str]:
    system = f"Role: Master World Builder. {JSON_ONLY}"
    user = (
        "Task: Create the foundation of a world based on this premise.\n"
        f"Premise: {story.premise}\n"
        f"Genres: {', '.join(story.genres)}\n\n"
        "Output Requirement:\n"
        "Create 3 distinct Locations, 2 Factions/Groups, and 1 Magic System or Technology System.\n"
        "For each, provide vivid descriptions, sensory details, and a secret.\n"
        "Return a JSON array of objects with string fields: name, category "
        f"(one of: {', '.join(WORLD_CATEGORIES)}), description, sensoryDetails, secret.\n\n"
        f"{language_instruction(story.language)}"
    )
    return system, user


def genesis_characters_prompts(story: Story, world_items: Sequence[WorldItem]) -> tuple[str, str]:
    world_context = "\n".join(f"- {item.name} ({item.category}): {item.description}" for item in world_items)
    system = f"Role: Master Character Architect. {JSON_ONLY}"
    user = (
        "Task: Create a cast of characters that are deeply rooted in the world provided below.\n"
        f"Premise: {story.premise}\n\n"
        "WORLD CONTEXT (Use this!):\n"
        f"{world_context}\n\n"
        "Output Requirement:\n"
        "Create 1 Protagonist, 1 Antagonist, and 1 Support Character.\n"
        "They MUST have relationships with the Factions or come from the Locations mentioned in the World Context.\n"
        f"Return a JSON array of objects with string fields: {_CHARACTER_FIELDS}.\n\n"
        f"{language_instruction(story.language)}"
    )
    return system, user


def genesis_plot_prompts(
    story: Story, world_items: Sequence[WorldItem], characters: Sequence[CharacterProfile]
) -> tuple[str, str]:
    world_context = "\n".join(f"- {item.name} ({item.category})" for item in world_items)
    character_context = "\n".join(f"- {c.name} ({c.role}): {c.backstory}" for c in characters)
    system = "Role: Master Storyteller."
    user = (
        "Task: Create a structured plot outline (Save the Cat style) based on the generated world and characters.\n\n"
        f"STORY PREMISE: {story.premise}\n\n"
        f"WORLD ELEMENTS:\n{world_context}\n\n"
        f"CHARACTERS:\n{character_context}\n\n"
        "INSTRUCTION:\n"
        "Write a compelling outline. The conflict must stem from the Factions and the Character's goals.\n"
        "Use the locations for specific scenes.\n\n"
        f"{language_instruction(story.language)}"
    )
    return system, user


def story_dna_prompts(text_sample: str, *, language: str) -> tuple[str, str]:
    categories = ", ".join(WORLD_CATEGORIES)
    if language == "id":
        language_line = "Input Text is likely Indonesian. OUTPUT ALL JSON VALUES IN INDONESIAN."
    else:
        language_line = "Input Text is likely English. OUTPUT ALL JSON VALUES IN ENGLISH."

    system = f"Role: Senior Editor & Analyst. {JSON_ONLY}"
    user = (
        "Task: Deeply analyze the provided novel text (which may contain multiple chapters).\n"
        'Extract the core "DNA" of the story into a structured JSON format.\n\n'
        "INSTRUCTION:\n"
        "READ THE ENTIRE TEXT PROVIDED. Do not just read the beginning.\n"
        f"{language_line}\n\n"
        "NOVEL TEXT SAMPLE:\n"
        f"{text_sample}\n\n"
        "OUTPUT REQUIREMENTS (one JSON object):\n"
        "1. title: If the text has a title, use it. If not, create a catchy one.\n"
        "2. premise: Summarize the entire plot so far into a 1-paragraph logline.\n"
        "3. tone and writingStyle: short descriptions of the atmosphere and the author's voice.\n"
        "4. characters: array of main characters with name, role, age, appearance, personality, backstory.\n"
        "5. worldItems: array of key locations, items or factions with name, category, description, "
        "sensoryDetails, secret.\n"
        f"   CRITICAL: World Item Category MUST be one of: [{categories}].\n"
        "   If a world item does not fit these exact categories, put it in 'Other'.\n"
        "6. plotOutline: Summarize what happened in these chapters sequentially."
    )
    return system, user
