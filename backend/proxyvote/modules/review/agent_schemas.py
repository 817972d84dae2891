"""Review Agent Contracts — shapes of oracle replies and inter-agent values.

Oracle replies are untrusted: every row is validated through these models
before a stage turns it into a pipeline entity.

  AgendaAgent    <- list[AgendaRow]
  IndicatorAgent <- list[IndicatorRow]
  FactAgent      <- list[FactHit]      (one reply per PageChunk)
  DecisionAgent  <- list[DecisionRow]
"""

from __future__ import annotations

from collections.abc import Callable

from pydantic import BaseModel, Field, field_validator


def _to_str(value: object) -> object:
    # Models echo ids and page numbers as integers about as often as strings.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


# ---------------------------------------------------------------------------
# Oracle reply rows
# ---------------------------------------------------------------------------


class AgendaRow(BaseModel):
    id: str = Field(..., description="Digits of the agenda number only, e.g. '1'")
    number: str = Field(..., description="Agenda label as printed, e.g. '第1号議案'")
    title: str
    description: str

    coerce_ids = field_validator("id", "number", mode="before")(_to_str)


class IndicatorRow(BaseModel):
    id: str = Field(..., description="Short unique indicator id")
    agenda_id: str = Field(..., description="Agenda id the indicator belongs to")
    metric_name: str
    threshold: str = Field(..., description="Pass/fail criterion from the guideline")
    description: str

    coerce_ids = field_validator("id", "agenda_id", mode="before")(_to_str)


class FactHit(BaseModel):
    indicator_id: str = Field(..., description="Indicator id exactly as listed")
    factual_value: str = Field(..., description="Concrete fact or figure found")
    page_number: str = Field(..., description="Page from the [PAGE: n] marker")

    coerce_ids = field_validator("indicator_id", "page_number", mode="before")(_to_str)


class DecisionRow(BaseModel):
    agenda_id: str
    is_approved: bool
    reason: str
    detailed_logic: str

    coerce_ids = field_validator("agenda_id", mode="before")(_to_str)


# ---------------------------------------------------------------------------
# Fact reconciliation inputs
# ---------------------------------------------------------------------------


class PageChunk(BaseModel):
    """A contiguous page range of one document, sent as one oracle call."""

    document_name: str = ""
    start_page: int
    end_page: int
    text: str

    @property
    def label(self) -> str:
        return f"{self.document_name} p.{self.start_page}-{self.end_page}"


# (current, total, message), fired once per chunk before its oracle call.
ProgressCallback = Callable[[int, int, str | None], None]
