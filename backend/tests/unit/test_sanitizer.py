"""Unit tests for oracle output sanitizing."""

from __future__ import annotations

import pytest

from proxyvote.modules.review.agents.sanitizer import (
    normalize_ordinal,
    sanitize_rows,
    strip_code_fences,
    to_snake_case,
)


def test_strip_code_fences() -> None:
    assert strip_code_fences('```json\n[{"id": "1"}]\n```') == '[{"id": "1"}]'
    assert strip_code_fences('  [1, 2]  ') == "[1, 2]"


def test_camel_case_keys_become_snake_case() -> None:
    rows = sanitize_rows([{"indicatorId": "ind-1", "factualValue": "ROE 8.5%", "pageNumber": "12"}])
    assert rows == [{"indicator_id": "ind-1", "factual_value": "ROE 8.5%", "page_number": "12"}]
    assert to_snake_case("detailedLogic") == "detailed_logic"
    assert to_snake_case("agenda_id") == "agenda_id"


def test_wrapped_array_is_unwrapped() -> None:
    assert sanitize_rows({"indicators": [{"id": "a"}]}) == [{"id": "a"}]


def test_single_object_becomes_one_row() -> None:
    assert sanitize_rows({"agendaId": "1", "isApproved": True}) == [{"agenda_id": "1", "is_approved": True}]


def test_null_and_missing_text_fields_become_empty() -> None:
    rows = sanitize_rows([{"id": "x", "description": None}], text_fields=("description", "threshold"))
    assert rows == [{"id": "x", "description": "", "threshold": ""}]


def test_non_list_reply_passes_through_for_validation() -> None:
    assert sanitize_rows("nonsense") == "nonsense"
    assert sanitize_rows([1, {"a": 1}]) == [1, {"a": 1}]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("1", "1"),
        ("第3号議案", "3"),
        ("第１２号議案", "12"),
        ("Proposal 02", "2"),
        ("議案", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_ordinal(raw, expected) -> None:
    assert normalize_ordinal(raw) == expected
