"""Error taxonomy for the review pipeline.

  ReviewError
    DocumentUnreadable      PDF cannot be opened or paginated
    ExtractionError         oracle call did not yield usable rows
      ExtractionParseError  reply is not JSON of the declared shape
      ExtractionCallFailure provider transport / API failure
    StageFailed             a whole stage aborted (full-run wrapper)
"""

from __future__ import annotations


class ReviewError(Exception):
    """Base class for all review pipeline errors."""


class DocumentUnreadable(ReviewError):
    """A source document could not be opened or split into pages."""

    def __init__(self, document_name: str, reason: str) -> None:
        self.document_name = document_name
        self.reason = reason
        super().__init__(f"Document unreadable: {document_name or '<unnamed>'} ({reason})")


class ExtractionError(ReviewError):
    """An oracle call failed. ``label`` names the unit of work (stage/chunk)."""

    def __init__(self, message: str, *, label: str = "") -> None:
        self.label = label
        super().__init__(f"[{label}] {message}" if label else message)


class ExtractionParseError(ExtractionError):
    """The oracle reply could not be decoded into the declared shape."""


class ExtractionCallFailure(ExtractionError):
    """The oracle transport or provider failed before a reply was produced."""


class StageFailed(ReviewError):
    """A pipeline stage aborted; ``message`` is the reviewer-facing text."""

    def __init__(self, stage: str, message: str, cause: Exception) -> None:
        self.stage = stage
        self.message = message
        self.cause = cause
        super().__init__(f"{stage}: {message} ({cause})")
