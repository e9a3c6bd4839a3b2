from __future__ import annotations

import pytest

from novella.config.schema import SegmenterConfig
from novella.ingest.segmenter import (
    FALLBACK_CHUNK_CHARS,
    FALLBACK_TRIGGER_CHARS,
    FRONT_MATTER_THRESHOLD,
    FRONT_MATTER_TITLE,
    HEADING_MAX_CHARS,
    IMPORTED_TEXT_TITLE,
    HeadingTokenizer,
    segment,
)


def _titles(records) -> list[str]:
    return [record.title for record in records]


def test_two_chapters_split_on_headings() -> None:
    records = segment("Chapter 1\nHello.\nChapter 2\nWorld.")

    assert _titles(records) == ["Chapter 1", "Chapter 2"]
    assert [record.content for record in records] == ["Hello.", "World."]


def test_short_text_without_headings_is_single_record() -> None:
    text = "x" * 500

    records = segment(text)

    assert len(records) == 1
    assert records[0].title == IMPORTED_TEXT_TITLE
    assert records[0].content == text


def test_long_text_without_headings_is_cut_into_parts() -> None:
    text = "x" * 45_000

    records = segment(text)

    assert _titles(records) == ["Part 1", "Part 2", "Part 3"]
    assert all(len(record.content) <= FALLBACK_CHUNK_CHARS for record in records)
    assert "".join(record.content for record in records) == text


def test_fallback_parts_are_not_trimmed() -> None:
    text = ("  word  \n" * 2500) + "tail"

    records = segment(text)

    assert len(records) == 2
    assert records[0].content.startswith("  word")
    assert "".join(record.content for record in records) == text


def test_fallback_trigger_is_strictly_greater_than_limit() -> None:
    assert _titles(segment("x" * FALLBACK_TRIGGER_CHARS)) == [IMPORTED_TEXT_TITLE]
    assert _titles(segment("x" * (FALLBACK_TRIGGER_CHARS + 1))) == ["Part 1", "Part 2"]


def test_leading_prose_becomes_front_matter() -> None:
    prose = "x" * 300

    records = segment(f"{prose}\nChapter 1\nBody.")

    assert _titles(records) == [FRONT_MATTER_TITLE, "Chapter 1"]
    assert records[0].content == prose
    assert records[1].content == "Body."


def test_heading_near_start_is_not_front_matter() -> None:
    records = segment(f"{'x' * (FRONT_MATTER_THRESHOLD - 1)}\nChapter 1\nBody.")

    assert _titles(records) == ["Chapter 1"]


def test_front_matter_threshold_boundary() -> None:
    # The heading line starts right after the newline: index 100, then 101.
    at_threshold = segment(f"{'x' * (FRONT_MATTER_THRESHOLD - 1)}\nChapter 1\nBody.")
    past_threshold = segment(f"{'x' * FRONT_MATTER_THRESHOLD}\nChapter 1\nBody.")

    assert _titles(at_threshold) == ["Chapter 1"]
    assert _titles(past_threshold) == [FRONT_MATTER_TITLE, "Chapter 1"]
    assert past_threshold[0].content == "x" * FRONT_MATTER_THRESHOLD


def test_blank_lines_before_first_heading_count_toward_threshold() -> None:
    records = segment("x" * 95 + "\n" * 10 + "Chapter 1\nBody.")

    assert _titles(records) == [FRONT_MATTER_TITLE, "Chapter 1"]
    assert records[0].content == "x" * 95


def test_multi_megabyte_manuscript() -> None:
    paragraph = "The tide went out and the village listened for it. " * 10
    body = "\n".join([paragraph.strip()] * 4000)
    text = "\n".join(f"Chapter {n}\n{body}" for n in (1, 2, 3))

    records = segment(text)

    assert len(text) > 6_000_000
    assert _titles(records) == ["Chapter 1", "Chapter 2", "Chapter 3"]
    assert all(record.content == body for record in records)


def test_whitespace_only_intro_is_not_emitted() -> None:
    records = segment(" " * 200 + "\nChapter 1\nBody.")

    assert _titles(records) == ["Chapter 1"]


def test_adjacent_headings_drop_empty_chapter() -> None:
    records = segment("Chapter 1\nChapter 2\nText.")

    assert len(records) == 1
    assert records[0].title == "Chapter 2"
    assert records[0].content == "Text."


def test_only_headings_falls_back_to_whole_text() -> None:
    text = "Chapter 1\nChapter 2\n"

    records = segment(text)

    assert _titles(records) == [IMPORTED_TEXT_TITLE]
    assert records[0].content == text


def test_empty_input_gives_one_empty_record() -> None:
    records = segment("")

    assert len(records) == 1
    assert records[0].title == IMPORTED_TEXT_TITLE
    assert records[0].content == ""


def test_markdown_hashes_are_stripped_from_titles() -> None:
    records = segment("## Bab 1: Awal\nIsi pertama.\n### Bab 2\nIsi kedua.")

    assert _titles(records) == ["Bab 1: Awal", "Bab 2"]


def test_mixed_families_and_languages() -> None:
    text = (
        "Prologue\nThe night before.\n"
        "Part II - The Road\nWalking.\n"
        "Bagian Tiga\nBerjalan.\n"
        "Epilog\nSelesai."
    )

    records = segment(text)

    assert _titles(records) == ["Prologue", "Part II - The Road", "Bagian Tiga", "Epilog"]
    assert records[-1].content == "Selesai."


def test_non_heading_text_is_preserved() -> None:
    text = "Chapter 1\n  First paragraph.\n\nSecond paragraph.\nChapter 2\nLast one.\n"

    records = segment(text)
    joined = "\n".join(record.content for record in records)

    for fragment in ("First paragraph.", "Second paragraph.", "Last one."):
        assert fragment in joined
    assert "Chapter" not in joined


def test_crlf_line_endings() -> None:
    records = segment("Chapter 1\r\nHello.\r\nChapter 2\r\nWorld.")

    assert _titles(records) == ["Chapter 1", "Chapter 2"]
    assert [record.content for record in records] == ["Hello.", "World."]


@pytest.mark.parametrize(
    "text",
    ["", " ", "\n\n\n", "1", "Chapter", "x" * 30_000, "Chapter 1\n", "#\n##\n###"],
)
def test_segment_never_returns_empty(text: str) -> None:
    assert segment(text)


def test_rules_override_front_matter_threshold() -> None:
    rules = SegmenterConfig(front_matter_threshold=500)

    records = segment(f"{'x' * 300}\nChapter 1\nBody.", rules)

    assert _titles(records) == ["Chapter 1"]


def test_rules_can_disable_bare_numerals() -> None:
    text = "1. Intro\nText.\n2. Next\nMore."

    assert _titles(segment(text)) == ["1. Intro", "2. Next"]
    assert _titles(segment(text, SegmenterConfig(detect_bare_numerals=False))) == [IMPORTED_TEXT_TITLE]


def test_rules_change_fallback_chunk_size() -> None:
    rules = SegmenterConfig(fallback_trigger_chars=10, fallback_chunk_chars=4)

    records = segment("abcdefghijk", rules)

    assert [record.content for record in records] == ["abcd", "efgh", "ijk"]


class TestHeadingTokenizer:
    tokenizer = HeadingTokenizer.from_rules(SegmenterConfig())

    @pytest.mark.parametrize(
        ("line", "family", "numeral"),
        [
            ("Chapter 12", "chapter", "12"),
            ("CHAPTER 5", "chapter", "5"),
            ("Chapter1", "chapter", "1"),
            ("Chapter One", "chapter", "One"),
            ("## Bab 3: Awal", "chapter", "3"),
            ("Episode IV", "chapter", "IV"),
            ("Part IV - The Fall", "part", "IV"),
            ("Book 2", "part", "2"),
            ("Vol. 3", "part", None),
            ("Prologue", "frame", None),
            ("Akhiran", "frame", None),
            ("Satu", "spelled", None),
            ("12. The Return", "numeric", "12"),
        ],
    )
    def test_recognizes_heading(self, line: str, family: str, numeral: str | None) -> None:
        token = self.tokenizer.recognize(line)

        assert token is not None
        assert token.family == family
        assert token.numeral == numeral

    @pytest.mark.parametrize(
        "line",
        [
            "Parting words were said at dawn.",
            "Booking the room took an hour.",
            "She read the chapter again.",
            "1.",
            "",
            "Chapter 1 " + "x" * HEADING_MAX_CHARS,
            "12 " + "long sentence " * 10,
        ],
    )
    def test_rejects_non_heading(self, line: str) -> None:
        assert self.tokenizer.recognize(line) is None

    def test_tokenize_reports_line_offsets(self) -> None:
        text = "intro\nChapter 1\nbody\nChapter 2"

        tokens = self.tokenizer.tokenize(text)

        assert [token.start for token in tokens] == [6, 21]
        assert [token.end for token in tokens] == [15, 30]
        assert [token.title for token in tokens] == ["Chapter 1", "Chapter 2"]

    def test_first_family_wins(self) -> None:
        token = self.tokenizer.recognize("Chapter Satu")

        assert token is not None
        assert token.family == "chapter"
        assert token.numeral == "Satu"
