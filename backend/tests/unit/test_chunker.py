"""Unit tests for page-range chunking."""

from __future__ import annotations

import pytest

from proxyvote.modules.review.chunker import (
    chunk_documents,
    find_page_markers,
    split_into_page_chunks,
)


def test_120_pages_at_50_per_chunk(make_paged_text) -> None:
    text = make_paged_text(120)

    chunks = split_into_page_chunks(text, 50, document_name="yuho.pdf")

    assert [(c.start_page, c.end_page) for c in chunks] == [(1, 50), (51, 100), (101, 120)]
    assert all(c.document_name == "yuho.pdf" for c in chunks)


def test_chunks_cover_text_without_overlap(make_paged_text) -> None:
    text = make_paged_text(120)

    chunks = split_into_page_chunks(text, 50)

    assert "".join(c.text for c in chunks) == text[text.index("[PAGE: 1]"):]
    assert chunks[0].text.startswith("[PAGE: 1]")
    assert chunks[1].text.startswith("[PAGE: 51]")
    assert "[PAGE: 51]" not in chunks[0].text
    assert chunks[2].text.rstrip().endswith("text 120")


def test_exact_multiple_has_no_empty_tail(make_paged_text) -> None:
    chunks = split_into_page_chunks(make_paged_text(100), 50)
    assert [(c.start_page, c.end_page) for c in chunks] == [(1, 50), (51, 100)]


def test_no_markers_yields_single_page_one_chunk() -> None:
    text = "plain text without any page markers"

    chunks = split_into_page_chunks(text, 50, document_name="memo")

    assert len(chunks) == 1
    assert (chunks[0].start_page, chunks[0].end_page) == (1, 1)
    assert chunks[0].text == text


def test_empty_text_still_yields_one_chunk() -> None:
    chunks = split_into_page_chunks("", 50)
    assert len(chunks) == 1
    assert chunks[0].label == " p.1-1"


def test_invalid_budget_rejected(make_paged_text) -> None:
    with pytest.raises(ValueError):
        split_into_page_chunks(make_paged_text(3), 0)


def test_marker_with_extra_whitespace_is_recognized() -> None:
    assert find_page_markers("[PAGE:7]\nx\n[PAGE:   8]\ny") == [(7, 0), (8, 11)]


def test_chunk_documents_keeps_document_order(make_paged_text) -> None:
    chunks = chunk_documents(
        [("notice.pdf", make_paged_text(3)), ("yuho.pdf", make_paged_text(60))],
        50,
    )

    assert [c.label for c in chunks] == [
        "notice.pdf p.1-3",
        "yuho.pdf p.1-50",
        "yuho.pdf p.51-60",
    ]
