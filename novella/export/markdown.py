from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import re

from novella.domain.models import Story, read_time_minutes, word_count, manuscript_text


@dataclass
class ExportResult:
    output_dir: Path
    bible_path: Path
    manuscript_path: Path
    chapters_total: int


def _safe_filename(text: str) -> str:
    sanitized = re.sub(r"[\\/:*?\"<>|]+", "_", text).strip()
    sanitized = re.sub(r"\s+", "_", sanitized)
    return sanitized or "untitled"


def _section(title: str, body: str, empty: str) -> list[str]:
    return [f"## {title}", "", body.strip() or empty, ""]


def render_bible(story: Story) -> str:
    lines = [f"# {story.title or 'Untitled Story'}", ""]
    lines += _section("Premise", story.premise, "_No premise yet._")
    lines += [
        "## Setup",
        "",
        f"- Language: {story.language}",
        f"- Genres: {story.genre_line() or '-'}",
        f"- Tone: {story.tone or '-'}",
        f"- Writing style: {story.writing_style or '-'}",
        "",
        "## Characters",
        "",
    ]
    if not story.characters:
        lines += ["_No characters yet._", ""]
    for character in story.characters:
        lines += [f"### {character.name or 'Unnamed'} ({character.role or '-'})", ""]
        for label, value in (
            ("Age", character.age),
            ("Appearance", character.appearance),
            ("Personality", character.personality),
            ("Voice", character.voice),
            ("Strengths", character.strengths),
            ("Weaknesses", character.weaknesses),
            ("Backstory", character.backstory),
        ):
            if value:
                lines.append(f"- **{label}:** {value}")
        lines.append("")

    lines += ["## World", ""]
    if not story.world_items:
        lines += ["_No world entries yet._", ""]
    for item in story.world_items:
        lines += [f"### [{item.category}] {item.name or 'Unnamed'}", ""]
        if item.description:
            lines += [item.description, ""]
        if item.sensory_details:
            lines.append(f"- **Sensory:** {item.sensory_details}")
        if item.secret:
            lines.append(f"- **Secret:** {item.secret}")
        lines.append("")

    if story.world_text.strip():
        lines += _section("World Notes", story.world_text, "")
    lines += _section("Plot Outline", story.plot_outline, "_No outline yet._")
    return "\n".join(lines)


def render_manuscript(story: Story) -> str:
    text = manuscript_text(story)
    lines = [
        f"# {story.title or 'Untitled Story'}",
        "",
        f"_{word_count(text)} words, about {read_time_minutes(text)} min read_",
        "",
    ]
    for chapter in story.chapters:
        lines += [f"## {chapter.title}", "", chapter.content.strip(), ""]
    return "\n".join(lines)


def export_story(story: Story, output_root: Path) -> ExportResult:
    output_dir = output_root / _safe_filename(story.title or story.id)
    output_dir.mkdir(parents=True, exist_ok=True)

    bible_path = output_dir / "bible.md"
    manuscript_path = output_dir / "manuscript.md"
    bible_path.write_text(render_bible(story), encoding="utf-8")
    manuscript_path.write_text(render_manuscript(story), encoding="utf-8")

    return ExportResult(
        output_dir=output_dir,
        bible_path=bible_path,
        manuscript_path=manuscript_path,
        chapters_total=len(story.chapters),
    )
