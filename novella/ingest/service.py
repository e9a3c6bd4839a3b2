from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from novella.config.schema import AppConfigRoot
from novella.domain.hashing import manuscript_hash
from novella.domain.models import Chapter, Language, Story
from novella.gateway.service import AIGateway
from novella.ingest.segmenter import segment
from novella.store.state import StoryStore


IMPORTED_STORY_TITLE = "Imported Story"


class ImportAbortedError(RuntimeError):
    """Raised when an import cannot produce a story; nothing was committed."""


@dataclass
class ImportStats:
    story_id: str
    manuscript_hash: str
    chars_total: int
    chapters_total: int
    characters_total: int
    world_items_total: int


def load_manuscript(path: Path, encoding: str) -> str:
    return path.read_text(encoding=encoding, errors="replace")


async def import_manuscript(
    raw_text: str,
    config: AppConfigRoot,
    store: StoryStore,
    gateway: AIGateway,
    language: Language | None = None,
) -> ImportStats:
    """Turn a pasted manuscript into a new active story.

    The chapter split and the story DNA extraction run independently; the
    story is only added to the store when extraction produced a result.
    """
    if not raw_text.strip():
        raise ImportAbortedError("Manuscript is empty")

    language = language or config.import_.language
    text_hash = manuscript_hash(raw_text)
    log = logger.bind(feature="import", cache_key=text_hash[:12])
    log.info("Importing manuscript chars={} language={}", len(raw_text), language)

    records, dna = await asyncio.gather(
        asyncio.to_thread(segment, raw_text, config.import_.segmenter),
        gateway.extract_story_dna_async(raw_text, language),
    )
    log.info("Segmented manuscript into {} chapters", len(records))

    if dna is None:
        log.error("Story DNA extraction returned nothing; import aborted")
        raise ImportAbortedError("Failed to analyze the manuscript")

    story = Story(
        title=dna.title or IMPORTED_STORY_TITLE,
        language=language,
        genres=[],
        premise=dna.premise,
        tone=dna.tone,
        writing_style=dna.writing_style,
        plot_outline=dna.plot_outline,
        characters=[draft.to_profile() for draft in dna.characters],
        world_items=[draft.to_item() for draft in dna.world_items],
        style_reference=raw_text[: config.import_.style_reference_chars],
        chapters=[Chapter(title=record.title, content=record.content) for record in records],
    )
    store.add_story(story)
    log.bind(story_id=story.id).info(
        "Imported story title={} chapters={} characters={} world_items={}",
        story.title,
        len(story.chapters),
        len(story.characters),
        len(story.world_items),
    )

    return ImportStats(
        story_id=story.id,
        manuscript_hash=text_hash,
        chars_total=len(raw_text),
        chapters_total=len(story.chapters),
        characters_total=len(story.characters),
        world_items_total=len(story.world_items),
    )
