from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.pretty import Pretty
from rich.table import Table
from loguru import logger

from novella.config import load_config
from novella.config.loader import masked_env_snapshot
from novella.config.schema import AppConfigRoot
from novella.domain.models import char_count, manuscript_text, read_time_minutes, word_count
from novella.export.markdown import export_story
from novella.gateway.service import AIGateway
from novella.ingest.segmenter import segment
from novella.ingest.service import ImportAbortedError, import_manuscript, load_manuscript
from novella.llm.cache import ResponseCache
from novella.storage.backends import build_backend
from novella.store.state import StoryStore
from novella.utils.logging import setup_logging
from novella.workbench.service import Workbench

console = Console()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="novella")
    parser.add_argument("--config", type=Path, default=None, help="Path to custom config YAML")
    parser.add_argument("--profile", type=str, default=None, help="Config profile name")
    parser.add_argument("--output-dir", type=Path, default=None, help="Override output directory")
    parser.add_argument("--data-dir", type=Path, default=None, help="Override data directory")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("config", help="Validate and print effective config")

    split_parser = subparsers.add_parser("split", help="Preview the chapter split of a text file (no model calls)")
    split_parser.add_argument("--input", type=Path, required=True, help="Path to manuscript text file")

    import_parser = subparsers.add_parser("import", help="Import a manuscript as a new story")
    import_parser.add_argument("--input", type=Path, required=True, help="Path to manuscript text file")
    import_parser.add_argument("--language", choices=["en", "id"], default=None, help="Manuscript language")

    subparsers.add_parser("list", help="List stored stories")

    show_parser = subparsers.add_parser("show", help="Show one story")
    show_parser.add_argument("--story", type=str, required=True, help="Story id")

    new_parser = subparsers.add_parser("new", help="Create an empty story")
    new_parser.add_argument("--language", choices=["en", "id"], default="en", help="Story language")

    export_parser = subparsers.add_parser("export", help="Export a story to markdown")
    export_parser.add_argument("--story", type=str, required=True, help="Story id")

    delete_parser = subparsers.add_parser("delete", help="Delete a story")
    delete_parser.add_argument("--story", type=str, required=True, help="Story id")

    chapter_parser = subparsers.add_parser("chapter", help="Append an empty chapter")
    chapter_parser.add_argument("--story", type=str, required=True, help="Story id")
    chapter_parser.add_argument("--title", type=str, default=None, help="Chapter title")

    write_parser = subparsers.add_parser("write", help="Continue a chapter with the writer model")
    write_parser.add_argument("--story", type=str, required=True, help="Story id")
    write_parser.add_argument("--chapter", type=str, default=None, help="Chapter id (default: last chapter)")
    write_parser.add_argument(
        "--length",
        choices=["short", "medium", "long", "panic"],
        default="medium",
        help="Length preset; panic writes four scenes from generated beats",
    )
    write_parser.add_argument("--instruction", type=str, default="", help="Extra direction for the writer")

    return parser


def _build_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    app_overrides: dict[str, Any] = {}
    if args.output_dir:
        app_overrides["output_dir"] = str(args.output_dir)
    if args.data_dir:
        app_overrides["data_dir"] = str(args.data_dir)
    if app_overrides:
        overrides["app"] = app_overrides
    return overrides


def _print_config(config: AppConfigRoot) -> None:
    env_snapshot = masked_env_snapshot(config)
    console.print(Panel(Pretty(config.model_dump(mode="json", by_alias=True)), title="Effective Config"))
    console.print(Panel(Pretty(env_snapshot), title="Env Snapshot"))


def _build_gateway(config: AppConfigRoot) -> AIGateway:
    cache = ResponseCache(
        enabled=config.cache.enabled,
        backend=config.cache.backend,
        base_dir=config.app.data_dir,
        ttl_seconds=config.cache.ttl_seconds,
    )
    return AIGateway(config, cache)


def _print_split(path: Path, config: AppConfigRoot) -> None:
    records = segment(load_manuscript(path, config.import_.encoding), config.import_.segmenter)
    table = Table(title=f"Chapter Split: {path.name}", show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("Chars", justify="right")
    table.add_column("Words", justify="right")
    for idx, record in enumerate(records, start=1):
        table.add_row(str(idx), record.title, str(len(record.content)), str(word_count(record.content)))
    console.print(table)


def _print_stories(store: StoryStore) -> None:
    table = Table(title="Stories", show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Lang")
    table.add_column("Chapters", justify="right")
    table.add_column("Words", justify="right")
    for story in store.stories:
        table.add_row(
            story.id,
            story.title,
            story.language,
            str(len(story.chapters)),
            str(word_count(manuscript_text(story))),
        )
    console.print(table)


def _print_story(store: StoryStore, story_id: str) -> None:
    story = store.get(story_id)
    text = manuscript_text(story)
    table = Table(title=story.title, show_header=True, header_style="bold")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("ID", story.id)
    table.add_row("Language", story.language)
    table.add_row("Genres", story.genre_line() or "-")
    table.add_row("Tone", story.tone or "-")
    table.add_row("Style", story.writing_style or "-")
    table.add_row("Characters", str(len(story.characters)))
    table.add_row("World items", str(len(story.world_items)))
    table.add_row("Words / chars", f"{word_count(text)}/{char_count(text)}")
    table.add_row("Read time (min)", str(read_time_minutes(text)))
    console.print(table)

    chapters = Table(title="Chapters", show_header=True, header_style="bold")
    chapters.add_column("ID")
    chapters.add_column("Title")
    chapters.add_column("Words", justify="right")
    for chapter in story.chapters:
        chapters.add_row(chapter.id, chapter.title, str(word_count(chapter.content)))
    console.print(chapters)


async def _main_async() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    overrides = _build_overrides(args)
    config = load_config(
        config_path=args.config,
        profile=args.profile,
        overrides=overrides,
    )

    setup_logging(config.app.log_level)
    logger.info("Loaded configuration")

    if args.command == "config":
        _print_config(config)
        return

    if args.command == "split":
        _print_split(args.input, config)
        return

    backend = build_backend(config.storage)
    store = StoryStore(backend)
    store.load()

    try:
        if args.command == "list":
            _print_stories(store)
            return

        if args.command == "show":
            _print_story(store, args.story)
            return

        if args.command == "new":
            story = store.create_story(args.language)
            console.print(Panel(f"Created story {story.id} ({story.title})", title="New Story"))
            return

        if args.command == "delete":
            store.delete_story(args.story)
            console.print(Panel(f"Deleted story {args.story}", title="Delete"))
            return

        if args.command == "chapter":
            chapter = store.create_chapter(args.story)
            if args.title:
                store.update_chapter_title(args.story, chapter.id, args.title)
            console.print(Panel(f"Added chapter {chapter.id}", title="Chapter"))
            return

        if args.command == "export":
            result = export_story(store.get(args.story), config.app.output_dir)
            console.print(Panel(f"Exported to {result.output_dir}", title="Export"))
            return

        if args.command == "import":
            raw_text = load_manuscript(args.input, config.import_.encoding)
            gateway = _build_gateway(config)
            try:
                stats = await import_manuscript(raw_text, config, store, gateway, language=args.language)
            except ImportAbortedError as exc:
                console.print(Panel(str(exc), title="Import Failed", style="red"))
                return
            finally:
                gateway.cache.close()

            table = Table(title="Import Summary", show_header=True, header_style="bold")
            table.add_column("Metric")
            table.add_column("Value")
            table.add_row("Story ID", stats.story_id)
            table.add_row("Manuscript hash", stats.manuscript_hash[:12])
            table.add_row("Characters read", str(stats.chars_total))
            table.add_row("Chapters", str(stats.chapters_total))
            table.add_row("Cast", str(stats.characters_total))
            table.add_row("World items", str(stats.world_items_total))
            table.add_row("Saved", str(store.last_save_ok))
            console.print(table)
            return

        if args.command == "write":
            story = store.get(args.story)
            chapter = story.find_chapter(args.chapter) if args.chapter else (story.chapters[-1] if story.chapters else None)
            if chapter is None:
                raise ValueError("No chapter to write into; add one with `novella chapter`")

            gateway = _build_gateway(config)
            try:
                workbench = Workbench(store, gateway)
                content = workbench.ai_write(
                    story.id,
                    chapter.id,
                    len(chapter.content),
                    length=args.length,
                    instruction=args.instruction,
                )
            finally:
                gateway.cache.close()

            added = len(content) - len(chapter.content)
            console.print(Panel(content[-2000:] or "(empty)", title=f"{chapter.title} (+{added} chars)"))
            return
    finally:
        close = getattr(backend, "close", None)
        if callable(close):
            close()


def main() -> None:
    asyncio.run(_main_async())


if __name__ == "__main__":
    main()
