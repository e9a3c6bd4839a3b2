from __future__ import annotations

from dataclasses import dataclass
import math
import re
import time
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from novella.domain.hashing import generate_id


Language = Literal["en", "id"]

WORLD_CATEGORIES: tuple[str, ...] = (
    "Location",
    "Faction",
    "Item",
    "Magic",
    "History",
    "Creature",
    "Cosmology",
    "Other",
)


@dataclass(frozen=True)
class GenreDefinition:
    id: str
    label: str
    description: str


GENRE_OPTIONS: tuple[GenreDefinition, ...] = (
    GenreDefinition("Fantasy", "Fantasy", "Magic, supernatural elements, and imaginary worlds."),
    GenreDefinition("Sci-Fi", "Sci-Fi", "Futuristic science, space exploration, and advanced technology."),
    GenreDefinition(
        "System", "System", "Game-like interfaces, status screens, and leveling up in real life or fantasy."
    ),
    GenreDefinition("LitRPG", "LitRPG", "Narratives explicitly governed by RPG mechanics and stats."),
    GenreDefinition(
        "Urban Fantasy", "Urban Fantasy", "Magic and supernatural elements existing in a modern city setting."
    ),
    GenreDefinition("Xianxia", "Xianxia", "Chinese martial arts fantasy focused on cultivation and immortality."),
    GenreDefinition("Romance", "Romance", "Focus on romantic love and emotional relationships."),
    GenreDefinition("Mystery", "Mystery", "Solving a crime or unraveling secrets."),
    GenreDefinition("Thriller", "Thriller", "High suspense, excitement, and anticipation."),
    GenreDefinition("Horror", "Horror", "Intended to frighten, scare, or disgust."),
    GenreDefinition("Slice of Life", "Slice of Life", "Mundane realism depicting everyday experiences."),
    GenreDefinition("Cyberpunk", "Cyberpunk", "High-tech low-life, dystopia, cybernetics."),
    GenreDefinition("Historical", "Historical", "Set in a specific period in the past."),
    GenreDefinition("Comedy", "Comedy", "Humorous tone, intended to make readers laugh."),
    GenreDefinition("Drama", "Drama", "Serious, plot-driven, portraying realistic characters and emotions."),
)

TONE_OPTIONS: tuple[str, ...] = (
    "Dark & Gritty",
    "Lighthearted & Fun",
    "Serious & Emotional",
    "Cynical & Sarcastic",
    "Optimistic & Hopeful",
    "Suspenseful & Tense",
    "Whimsical & Magical",
    "Melancholic",
)

STYLE_OPTIONS: tuple[str, ...] = (
    "Descriptive & Flowery",
    "Minimalist & Direct",
    "Fast-Paced & Action-Oriented",
    "Dialogue-Heavy",
    "Introspective & Psychological",
    "Journalistic / Objective",
)

IMAGE_STYLES: tuple[str, ...] = (
    "Anime / Manga Style",
    "Semi-Realistic Digital Art",
    "Photorealistic",
    "Oil Painting",
    "Watercolor",
    "Cyberpunk / Neon",
    "Dark Fantasy / Gothic",
    "Sketch / Pencil",
    "3D Render (Pixar Style)",
    "Retro / Pixel Art",
    "Fantasy Map / Cartography",
    "Concept Art (Environment)",
    "Concept Art (Item/Prop)",
)

PLOT_STRUCTURES: tuple[str, ...] = (
    "Hero's Journey",
    "Save the Cat",
    "Three-Act Structure",
    "Fichtean Curve",
    "Seven Point Story Structure",
    "Dan Harmon's Story Circle",
    "Kishōtenketsu",
)

DEFAULT_PORTRAIT_STYLE = "Semi-Realistic Digital Art"


def now_ms() -> int:
    return int(time.time() * 1000)


def coerce_world_category(value: object) -> str:
    text = str(value or "").strip()
    for category in WORLD_CATEGORIES:
        if category.lower() == text.lower():
            return category
    return "Other"


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Chapter(_Record):
    id: str = Field(default_factory=generate_id)
    title: str = ""
    content: str = ""


class CharacterProfile(_Record):
    id: str = Field(default_factory=generate_id)
    name: str = ""
    role: str = ""
    age: str = ""
    appearance: str = ""
    personality: str = ""
    voice: str = ""
    strengths: str = ""
    weaknesses: str = ""
    backstory: str = ""
    avatar_base64: str | None = None
    image_style: str | None = None

    @field_validator("age", mode="before")
    @classmethod
    def _age_as_text(cls, value: object) -> object:
        # Models occasionally answer with a bare number.
        if isinstance(value, (int, float)):
            return str(value)
        return value


class WorldItem(_Record):
    id: str = Field(default_factory=generate_id)
    name: str = ""
    category: str = "Other"
    description: str = ""
    sensory_details: str = ""
    secret: str = ""
    image_url: str | None = None
    image_style: str | None = None

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, value: object) -> str:
        return coerce_world_category(value)


class Story(_Record):
    id: str = Field(default_factory=generate_id)
    title: str = ""
    language: Language = "en"
    genres: list[str] = Field(default_factory=list)
    custom_genres: str = ""
    premise: str = ""
    characters: list[CharacterProfile] = Field(default_factory=list)
    world_items: list[WorldItem] = Field(default_factory=list)
    world_text: str = ""
    plot_outline: str = ""
    characters_text: str = ""
    tone: str = ""
    writing_style: str = ""
    style_reference: str = ""
    chapters: list[Chapter] = Field(default_factory=list)
    last_updated: int = Field(default_factory=now_ms)

    def find_chapter(self, chapter_id: str) -> Chapter | None:
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        return None

    def genre_line(self) -> str:
        return ", ".join(value for value in [*self.genres, self.custom_genres] if value)


class ChatMessage(BaseModel):
    role: Literal["user", "model"]
    text: str
    timestamp: int = Field(default_factory=now_ms)


_WHITESPACE = re.compile(r"\s+")


def word_count(text: str) -> int:
    return len([token for token in _WHITESPACE.split(text.strip()) if token])


def char_count(text: str) -> int:
    return len(text)


def read_time_minutes(text: str, words_per_minute: int = 250) -> int:
    return math.ceil(word_count(text) / words_per_minute)


def manuscript_text(story: Story) -> str:
    return "\n\n".join(chapter.content for chapter in story.chapters)
