from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from novella.domain.models import CharacterProfile, WorldItem, coerce_world_category


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CharacterDraft(_Payload):
    name: str = ""
    role: str = ""
    age: str = ""
    appearance: str = ""
    personality: str = ""
    voice: str = ""
    strengths: str = ""
    weaknesses: str = ""
    backstory: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)):
            return str(value)
        return value

    def to_profile(self) -> CharacterProfile:
        return CharacterProfile(**self.model_dump())


class WorldItemDraft(_Payload):
    name: str = ""
    category: str = "Other"
    description: str = ""
    sensory_details: str = ""
    secret: str = ""

    @field_validator("category", mode="before")
    @classmethod
    def _known_category(cls, value: Any) -> str:
        return coerce_world_category(value)

    @field_validator("name", "description", "sensory_details", "secret", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Any:
        return "" if value is None else value

    def to_item(self) -> WorldItem:
        return WorldItem(**self.model_dump())


class StorySetup(_Payload):
    title: str
    premise: str
    tone: str
    writing_style: str


class StoryDNA(_Payload):
    title: str = ""
    premise: str = ""
    tone: str = ""
    writing_style: str = ""
    plot_outline: str = ""
    characters: list[CharacterDraft] = Field(default_factory=list)
    world_items: list[WorldItemDraft] = Field(default_factory=list)


def parse_character_drafts(items: list[Any]) -> list[CharacterDraft]:
    return [CharacterDraft.model_validate(item) for item in items if isinstance(item, dict)]


def parse_world_item_drafts(items: list[Any]) -> list[WorldItemDraft]:
    return [WorldItemDraft.model_validate(item) for item in items if isinstance(item, dict)]
