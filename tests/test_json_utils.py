from __future__ import annotations

import pytest

from novella.llm.json_utils import safe_load_json_dict, safe_load_json_list, safe_load_string_list


def test_dict_from_fenced_block() -> None:
    text = '```json\n{"title": "Salt", "tone": "Grim",}\n```'

    assert safe_load_json_dict(text) == {"title": "Salt", "tone": "Grim"}


def test_dict_embedded_in_prose() -> None:
    assert safe_load_json_dict('Here you go: {"a": 1} hope it helps') == {"a": 1}


def test_list_embedded_in_prose() -> None:
    assert safe_load_json_list('Beats:\n["one", "two"]\nDone.') == ["one", "two"]


def test_string_list_drops_blanks() -> None:
    assert safe_load_string_list('["Open", "  ", "Close "]') == ["Open", "Close"]


def test_wrong_shape_raises() -> None:
    with pytest.raises(ValueError):
        safe_load_json_dict("[1, 2]")
    with pytest.raises(ValueError):
        safe_load_json_list('{"a": 1}')
    with pytest.raises(ValueError):
        safe_load_json_dict("   ")
