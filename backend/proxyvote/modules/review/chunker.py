"""Page-range chunking of page-tagged text for the fact stage."""

from __future__ import annotations

from collections.abc import Iterable

from proxyvote.modules.review.agent_schemas import PageChunk
from proxyvote.modules.review.pdf_service import PAGE_MARKER_RE


def find_page_markers(text: str) -> list[tuple[int, int]]:
    """Return ``(page_number, offset)`` for every page marker, in text order."""
    return [(int(m.group(1)), m.start()) for m in PAGE_MARKER_RE.finditer(text)]


def split_into_page_chunks(
    text: str,
    pages_per_chunk: int,
    document_name: str = "",
) -> list[PageChunk]:
    """Cut page-tagged text into chunks of ``pages_per_chunk`` markers.

    A chunk runs from its first marker up to the first marker of the next
    chunk (or the end of the text), so the last chunk may hold fewer pages.
    Text without markers becomes a single chunk covering page 1.
    """
    if pages_per_chunk < 1:
        raise ValueError(f"pages_per_chunk must be >= 1, got {pages_per_chunk}")

    markers = find_page_markers(text)
    if not markers:
        return [PageChunk(document_name=document_name, start_page=1, end_page=1, text=text)]

    chunks: list[PageChunk] = []
    for i in range(0, len(markers), pages_per_chunk):
        last = min(i + pages_per_chunk, len(markers)) - 1
        start_page, start_pos = markers[i]
        end_page = markers[last][0]
        end_pos = markers[last + 1][1] if last + 1 < len(markers) else len(text)
        chunks.append(PageChunk(
            document_name=document_name,
            start_page=start_page,
            end_page=end_page,
            text=text[start_pos:end_pos],
        ))
    return chunks


def chunk_documents(
    documents: Iterable[tuple[str, str]],
    pages_per_chunk: int,
) -> list[PageChunk]:
    """Chunk every ``(document_name, page_tagged_text)`` pair, in order."""
    chunks: list[PageChunk] = []
    for name, text in documents:
        chunks.extend(split_into_page_chunks(text, pages_per_chunk, document_name=name))
    return chunks
