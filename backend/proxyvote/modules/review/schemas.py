"""Proxy vote review entities and API schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# Reserved values written into FactEvidence records.
NOT_FOUND_VALUE = "記載なし"
PLACEHOLDER = "-"
# Fact text handed to the decision stage when an indicator has no fact record.
UNKNOWN_FACT = "不明"


# ---------------------------------------------------------------------------
# Pipeline entities
# ---------------------------------------------------------------------------


class AgendaItem(BaseModel):
    """One agenda item of the meeting notice.

    ``id`` is the agenda ordinal as plain digits and is the join key used by
    every later stage.
    """

    id: str = Field(..., pattern=r"^[0-9]+$", description="Agenda ordinal, e.g. '3'")
    number: str = Field(..., description="Agenda label as printed, e.g. '第3号議案'")
    title: str
    description: str = ""

    @property
    def display_name(self) -> str:
        return f"{self.number} {self.title}".strip()


class Indicator(BaseModel):
    """A guideline criterion used to judge one agenda item."""

    id: str = Field(..., min_length=1)
    agenda_id: str
    metric_name: str
    threshold: str = ""
    description: str = ""


class FactEvidence(BaseModel):
    """Reconciled evidence for one indicator.

    ``factual_value`` is NOT_FOUND_VALUE when no document mentioned the
    indicator; source and page are then PLACEHOLDER.
    """

    id: str
    agenda_id: str
    indicator_id: str
    factual_value: str
    evidence_source: str
    page_number: str

    @property
    def is_found(self) -> bool:
        return self.factual_value != NOT_FOUND_VALUE


class Decision(BaseModel):
    """Vote recommendation for one agenda item."""

    agenda_id: str
    is_approved: bool
    reason: str
    detailed_logic: str = ""


# ---------------------------------------------------------------------------
# API: per-stage responses
# ---------------------------------------------------------------------------


class StageResponse(BaseModel):
    success: bool
    error: str | None = None
    processing_time_ms: int = 0


class AgendaResponse(StageResponse):
    agenda_items: list[AgendaItem] = []


class IndicatorResponse(StageResponse):
    indicators: list[Indicator] = []


class ProgressEntry(BaseModel):
    current: int
    total: int
    message: str | None = None


class FactResponse(StageResponse):
    facts: list[FactEvidence] = []
    progress: list[ProgressEntry] = []


class DecisionRequest(BaseModel):
    agenda_items: list[AgendaItem] = Field(..., min_length=1)
    indicators: list[Indicator] = []
    facts: list[FactEvidence] = []


class DecisionResponse(StageResponse):
    decisions: list[Decision] = []


class ReviewResponse(StageResponse):
    """Full pipeline result. ``failed_stage`` names the stage that aborted the run."""

    failed_stage: str | None = None
    agenda_items: list[AgendaItem] = []
    indicators: list[Indicator] = []
    facts: list[FactEvidence] = []
    decisions: list[Decision] = []
    stage_timings_ms: dict[str, int] = {}
    cost_summary: dict[str, Any] = {}
