"""Split a pasted manuscript into titled chapters without calling the model.

Headings are found line by line by an ordered list of recognizers, one per
keyword family (``Chapter``/``Bab``, ``Part``/``Bagian``/``Book``,
``Prologue``/``Epilog``, Indonesian spelled numbers) plus bare numerals. The
first recognizer that accepts a line wins. Lines whose trimmed text is too long
or too short are not headings; that length check is the only guard against
prose that happens to start with a keyword or a number.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import re

from novella.config.schema import HeadingFamilyConfig, SegmenterConfig


FRONT_MATTER_TITLE = "Front Matter / Intro"
IMPORTED_TEXT_TITLE = "Imported Text"
FALLBACK_PART_TITLE = "Part {n}"

DEFAULT_RULES = SegmenterConfig()

# Exposed for callers that want the documented defaults without building a config.
FRONT_MATTER_THRESHOLD = DEFAULT_RULES.front_matter_threshold
HEADING_MAX_CHARS = DEFAULT_RULES.heading_max_chars
FALLBACK_TRIGGER_CHARS = DEFAULT_RULES.fallback_trigger_chars
FALLBACK_CHUNK_CHARS = DEFAULT_RULES.fallback_chunk_chars

_HEADER_PREFIX = r"^[ \t]*(?:#{1,3}[ \t]+)?"
_NOT_A_LETTER = r"(?![^\W\d_])"
_TRAILER = r"(?:[ \t]*[:.\-])?.*$"
_TITLE_PREFIX = re.compile(r"^[#\s]+")


@dataclass(frozen=True)
class ChapterRecord:
    title: str
    content: str


@dataclass(frozen=True)
class HeadingToken:
    family: str
    keyword: str
    numeral: str | None
    text: str
    start: int
    end: int

    @property
    def title(self) -> str:
        return _TITLE_PREFIX.sub("", self.text).strip()


def _alternation(words: tuple[str, ...]) -> str:
    # Longest first so "Volume" is tried before "Vol".
    ordered = sorted({word for word in words if word}, key=len, reverse=True)
    return "|".join(re.escape(word) for word in ordered)


def _numeral_pattern(numeral_words: tuple[str, ...]) -> str:
    parts = [r"\d+", rf"[IVXLCDM]+{_NOT_A_LETTER}"]
    if numeral_words:
        parts.append(rf"(?:{_alternation(numeral_words)}){_NOT_A_LETTER}")
    return "|".join(parts)


class HeadingRecognizer:
    """Recognises one heading shape on a single line of text."""

    def __init__(self, family: str, pattern: re.Pattern[str]):
        self.family = family
        self.pattern = pattern

    @classmethod
    def for_keywords(cls, family: HeadingFamilyConfig, numeral_words: tuple[str, ...]) -> "HeadingRecognizer":
        pattern = re.compile(
            _HEADER_PREFIX
            + rf"(?P<keyword>{_alternation(family.keywords)}){_NOT_A_LETTER}"
            + rf"[ \t]*(?P<numeral>{_numeral_pattern(numeral_words)})?"
            + _TRAILER,
            re.IGNORECASE,
        )
        return cls(family.name, pattern)

    @classmethod
    def for_bare_numerals(cls) -> "HeadingRecognizer":
        pattern = re.compile(_HEADER_PREFIX + r"(?P<keyword>)(?P<numeral>\d+)" + _TRAILER)
        return cls("numeric", pattern)

    def match(self, line: str, start: int) -> HeadingToken | None:
        found = self.pattern.match(line)
        if found is None:
            return None
        return HeadingToken(
            family=self.family,
            keyword=found.group("keyword"),
            numeral=found.group("numeral"),
            text=line.strip(),
            start=start,
            end=start + len(line),
        )


class HeadingTokenizer:
    def __init__(self, recognizers: list[HeadingRecognizer], min_chars: int, max_chars: int):
        self.recognizers = recognizers
        self.min_chars = min_chars
        self.max_chars = max_chars

    @classmethod
    def from_rules(cls, rules: SegmenterConfig) -> "HeadingTokenizer":
        recognizers = [HeadingRecognizer.for_keywords(family, rules.numeral_words) for family in rules.families]
        if rules.detect_bare_numerals:
            recognizers.append(HeadingRecognizer.for_bare_numerals())
        return cls(recognizers, rules.heading_min_chars, rules.heading_max_chars)

    def recognize(self, line: str, start: int = 0) -> HeadingToken | None:
        for recognizer in self.recognizers:
            token = recognizer.match(line, start)
            if token is None:
                continue
            if not self.min_chars < len(token.text) < self.max_chars:
                return None
            return token
        return None

    def tokenize(self, text: str) -> list[HeadingToken]:
        tokens: list[HeadingToken] = []
        length = len(text)
        pos = 0
        while pos <= length:
            newline = text.find("\n", pos)
            end = length if newline == -1 else newline
            token = self.recognize(text[pos:end], pos)
            if token is not None:
                tokens.append(token)
            if newline == -1:
                break
            pos = newline + 1
        return tokens


@lru_cache(maxsize=8)
def _tokenizer_for(rules: SegmenterConfig) -> HeadingTokenizer:
    return HeadingTokenizer.from_rules(rules)


def _fallback_records(text: str, rules: SegmenterConfig) -> list[ChapterRecord]:
    if len(text) <= rules.fallback_trigger_chars:
        return [ChapterRecord(title=IMPORTED_TEXT_TITLE, content=text)]

    size = rules.fallback_chunk_chars
    return [
        ChapterRecord(title=FALLBACK_PART_TITLE.format(n=idx), content=text[start : start + size])
        for idx, start in enumerate(range(0, len(text), size), start=1)
    ]


def segment(raw_text: str, rules: SegmenterConfig | None = None) -> list[ChapterRecord]:
    """Split ``raw_text`` into chapters; always returns at least one record."""
    rules = rules or DEFAULT_RULES
    headings = _tokenizer_for(rules).tokenize(raw_text)
    if not headings:
        return _fallback_records(raw_text, rules)

    records: list[ChapterRecord] = []
    first = headings[0]
    if first.start > rules.front_matter_threshold:
        intro = raw_text[: first.start].strip()
        if intro:
            records.append(ChapterRecord(title=FRONT_MATTER_TITLE, content=intro))

    for idx, heading in enumerate(headings):
        stop = headings[idx + 1].start if idx + 1 < len(headings) else len(raw_text)
        content = raw_text[heading.end : stop].strip()
        if not content:
            continue
        records.append(ChapterRecord(title=heading.title, content=content))

    if not records:
        return [ChapterRecord(title=IMPORTED_TEXT_TITLE, content=raw_text)]
    return records
