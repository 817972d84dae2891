"""Review PDF Service — PyMuPDF text extraction to page-tagged text.

Every page is introduced by a ``[PAGE: n]`` marker so the oracle can cite
page numbers and the fact stage can cut documents into page ranges.
"""

from __future__ import annotations

import hashlib
import re

import fitz  # PyMuPDF
import structlog
from pydantic import BaseModel

from proxyvote.modules.review.errors import DocumentUnreadable

logger = structlog.get_logger()

PAGE_MARKER_TEMPLATE = "[PAGE: {page}]"
PAGE_MARKER_RE = re.compile(r"\[PAGE:\s*(\d+)\]")

_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Data models for parsed output
# ---------------------------------------------------------------------------


class PageContent(BaseModel):
    """Extracted text for a single PDF page."""

    page_number: int
    text: str


class ParsedDocument(BaseModel):
    """Complete parsed PDF output."""

    document_name: str = ""
    page_tagged_text: str
    pages: list[PageContent]
    page_count: int


# ---------------------------------------------------------------------------
# Core parser
# ---------------------------------------------------------------------------


def format_page(page_number: int, text: str) -> str:
    """Render one page as marker line + text."""
    marker = PAGE_MARKER_TEMPLATE.format(page=page_number)
    return f"\n{marker}\n{text}\n"


def parse_pdf(pdf_bytes: bytes, document_name: str = "") -> ParsedDocument:
    """Extract the text layer of every page and tag page boundaries.

    Pages without a text layer keep their marker with empty content so page
    numbering stays contiguous. Raises DocumentUnreadable when the bytes are
    not a readable PDF; nothing partial is returned.
    """
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        logger.error("PDF open failed", document=document_name, error=str(e))
        raise DocumentUnreadable(document_name, str(e)) from e

    pages: list[PageContent] = []
    try:
        if doc.page_count == 0:
            raise DocumentUnreadable(document_name, "document has no pages")

        for page_idx in range(doc.page_count):
            page = doc[page_idx]
            raw = page.get_text("text") or ""
            text = _WHITESPACE_RE.sub(" ", raw).strip()
            pages.append(PageContent(page_number=page_idx + 1, text=text))
    except DocumentUnreadable:
        raise
    except Exception as e:
        logger.error(
            "PDF page extraction failed",
            document=document_name,
            page=len(pages) + 1,
            error=str(e),
        )
        raise DocumentUnreadable(document_name, str(e)) from e
    finally:
        doc.close()

    page_tagged_text = "".join(format_page(p.page_number, p.text) for p in pages)
    empty_pages = sum(1 for p in pages if not p.text)

    logger.info(
        "PDF parsed",
        document=document_name,
        pages=len(pages),
        empty_pages=empty_pages,
        chars=len(page_tagged_text),
    )

    return ParsedDocument(
        document_name=document_name,
        page_tagged_text=page_tagged_text,
        pages=pages,
        page_count=len(pages),
    )


def extract_page_tagged_text(pdf_bytes: bytes, document_name: str = "") -> str:
    """Shortcut for parse_pdf(...).page_tagged_text."""
    return parse_pdf(pdf_bytes, document_name).page_tagged_text


# ---------------------------------------------------------------------------
# Per-run text cache
# ---------------------------------------------------------------------------


class DocumentTextCache:
    """Page-tagged text keyed by document identity (name + content hash).

    Owned by a single pipeline run: the notice is parsed once even though it
    feeds both the agenda and the fact stage.
    """

    def __init__(self) -> None:
        self._texts: dict[tuple[str, str], str] = {}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(document_name: str, pdf_bytes: bytes) -> tuple[str, str]:
        return document_name, hashlib.sha256(pdf_bytes).hexdigest()

    def get_text(self, document_name: str, pdf_bytes: bytes) -> str:
        key = self.key(document_name, pdf_bytes)
        if key in self._texts:
            self.hits += 1
            logger.debug("Text cache hit", document=document_name)
            return self._texts[key]

        self.misses += 1
        text = extract_page_tagged_text(pdf_bytes, document_name)
        self._texts[key] = text
        return text

    def __len__(self) -> int:
        return len(self._texts)
