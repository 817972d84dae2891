"""Proxy Vote Review API — /review/ endpoints.

Stages (each takes explicit inputs, nothing is kept between requests):
  - /agenda     : notice PDF -> agenda items
  - /indicators : guideline PDF + agenda items -> indicators
  - /facts      : notice + evidence PDFs + agenda + indicators -> facts
  - /decisions  : agenda + indicators + facts -> decisions
  - /run        : all four stages in one request

Stage failures return success=False with one generic message per stage;
the details are logged.
"""

from __future__ import annotations

import time
from typing import Any

import structlog
from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import TypeAdapter, ValidationError

from proxyvote.core.config import settings
from proxyvote.modules.review.agents.orchestrator import (
    STAGE_ERROR_MESSAGES,
    ReviewOrchestrator,
    SourceDocument,
)
from proxyvote.modules.review.errors import ReviewError, StageFailed
from proxyvote.modules.review.schemas import (
    AgendaItem,
    AgendaResponse,
    DecisionRequest,
    DecisionResponse,
    FactResponse,
    Indicator,
    IndicatorResponse,
    ProgressEntry,
    ReviewResponse,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/review", tags=["review"])

_AGENDA_LIST = TypeAdapter(list[AgendaItem])
_INDICATOR_LIST = TypeAdapter(list[Indicator])


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


async def _read_pdf(upload: UploadFile) -> SourceDocument:
    """Validate an upload and return it as a SourceDocument."""
    if not upload.filename or not upload.filename.lower().endswith(".pdf"):
        raise HTTPException(
            status_code=400,
            detail=f"Only PDF files are accepted. Got: {upload.filename}",
        )

    pdf_bytes = await upload.read()
    size_mb = len(pdf_bytes) / (1024 * 1024)
    if size_mb > settings.extraction_max_file_size_mb:
        raise HTTPException(
            status_code=413,
            detail=(
                f"File too large: {upload.filename} "
                f"({size_mb:.1f} MB, max {settings.extraction_max_file_size_mb} MB)."
            ),
        )
    return SourceDocument(name=upload.filename, data=pdf_bytes)


async def _read_evidence(uploads: list[UploadFile] | None) -> list[SourceDocument]:
    uploads = uploads or []
    if len(uploads) > settings.max_evidence_files:
        raise HTTPException(
            status_code=400,
            detail=f"Too many evidence files: {len(uploads)} (max {settings.max_evidence_files}).",
        )
    return [await _read_pdf(upload) for upload in uploads]


def _parse_json_field(raw: str, adapter: TypeAdapter, field_name: str) -> Any:
    try:
        return adapter.validate_json(raw)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid {field_name}: {e.error_count()} validation errors",
        ) from e


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _stage_failure(stage: str, exc: Exception, start: float) -> dict[str, Any]:
    logger.error(
        "Review stage failed",
        stage=stage,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return {
        "success": False,
        "error": STAGE_ERROR_MESSAGES[stage],
        "processing_time_ms": _elapsed_ms(start),
    }


# ---------------------------------------------------------------------------
# Stage endpoints
# ---------------------------------------------------------------------------


@router.post("/agenda", response_model=AgendaResponse)
async def analyze_notice(
    notice: UploadFile = File(..., description="Convocation notice PDF"),
) -> AgendaResponse:
    """Extract the agenda items of a shareholder-meeting notice."""
    start = time.monotonic()
    document = await _read_pdf(notice)
    logger.info("Agenda request", filename=document.name, size_bytes=len(document.data))

    orchestrator = ReviewOrchestrator()
    try:
        items = await run_in_threadpool(orchestrator.analyze_notice, document)
    except ReviewError as exc:
        return AgendaResponse(**_stage_failure("agenda", exc, start))

    return AgendaResponse(success=True, agenda_items=items, processing_time_ms=_elapsed_ms(start))


@router.post("/indicators", response_model=IndicatorResponse)
async def extract_indicators(
    guideline: UploadFile = File(..., description="Voting guideline PDF"),
    agenda_json: str = Form(..., description="JSON array of agenda items"),
) -> IndicatorResponse:
    """Extract judging indicators for every agenda item from a voting guideline."""
    start = time.monotonic()
    agenda_items = _parse_json_field(agenda_json, _AGENDA_LIST, "agenda_json")
    document = await _read_pdf(guideline)
    logger.info("Indicator request", filename=document.name, agenda_items=len(agenda_items))

    orchestrator = ReviewOrchestrator()
    try:
        indicators = await run_in_threadpool(
            orchestrator.extract_indicators, document, agenda_items
        )
    except ReviewError as exc:
        return IndicatorResponse(**_stage_failure("indicators", exc, start))

    return IndicatorResponse(
        success=True, indicators=indicators, processing_time_ms=_elapsed_ms(start)
    )


@router.post("/facts", response_model=FactResponse)
async def reconcile_facts(
    notice: UploadFile = File(..., description="Convocation notice PDF"),
    agenda_json: str = Form(..., description="JSON array of agenda items"),
    indicators_json: str = Form(..., description="JSON array of indicators"),
    evidence: list[UploadFile] | None = File(None, description="Evidence PDFs"),
) -> FactResponse:
    """Scan the notice and evidence filings for one fact per indicator."""
    start = time.monotonic()
    agenda_items = _parse_json_field(agenda_json, _AGENDA_LIST, "agenda_json")
    indicators = _parse_json_field(indicators_json, _INDICATOR_LIST, "indicators_json")
    documents = [await _read_pdf(notice), *await _read_evidence(evidence)]
    logger.info(
        "Fact request",
        documents=[doc.name for doc in documents],
        indicators=len(indicators),
    )

    progress: list[ProgressEntry] = []

    def on_progress(current: int, total: int, message: str | None) -> None:
        progress.append(ProgressEntry(current=current, total=total, message=message))

    orchestrator = ReviewOrchestrator()
    try:
        facts = await run_in_threadpool(
            orchestrator.reconcile_facts, documents, agenda_items, indicators, on_progress
        )
    except ReviewError as exc:
        return FactResponse(**_stage_failure("facts", exc, start), progress=progress)

    return FactResponse(
        success=True, facts=facts, progress=progress, processing_time_ms=_elapsed_ms(start)
    )


@router.post("/decisions", response_model=DecisionResponse)
async def generate_decisions(request: DecisionRequest) -> DecisionResponse:
    """Decide how to vote on every agenda item from indicators and facts."""
    start = time.monotonic()
    logger.info(
        "Decision request",
        agenda_items=len(request.agenda_items),
        indicators=len(request.indicators),
        facts=len(request.facts),
    )

    orchestrator = ReviewOrchestrator()
    try:
        decisions = await run_in_threadpool(
            orchestrator.decide, request.agenda_items, request.indicators, request.facts
        )
    except ReviewError as exc:
        return DecisionResponse(**_stage_failure("decisions", exc, start))

    return DecisionResponse(
        success=True, decisions=decisions, processing_time_ms=_elapsed_ms(start)
    )


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------


@router.post("/run", response_model=ReviewResponse)
async def run_review(
    notice: UploadFile = File(..., description="Convocation notice PDF"),
    guideline: UploadFile = File(..., description="Voting guideline PDF"),
    evidence: list[UploadFile] | None = File(None, description="Evidence PDFs"),
) -> ReviewResponse:
    """Run agenda, indicator, fact and decision stages in one request."""
    start = time.monotonic()
    notice_doc = await _read_pdf(notice)
    guideline_doc = await _read_pdf(guideline)
    evidence_docs = await _read_evidence(evidence)
    logger.info(
        "Review run request",
        notice=notice_doc.name,
        guideline=guideline_doc.name,
        evidence=[doc.name for doc in evidence_docs],
    )

    orchestrator = ReviewOrchestrator()
    try:
        run = await run_in_threadpool(orchestrator.run, notice_doc, guideline_doc, evidence_docs)
    except StageFailed as exc:
        return ReviewResponse(
            success=False,
            error=exc.message,
            failed_stage=exc.stage,
            processing_time_ms=_elapsed_ms(start),
            cost_summary=orchestrator.cost_tracker.summary(),
        )

    return ReviewResponse(
        success=True,
        agenda_items=run.agenda_items,
        indicators=run.indicators,
        facts=run.facts,
        decisions=run.decisions,
        stage_timings_ms=run.stage_timings_ms,
        cost_summary=run.cost_summary,
        processing_time_ms=_elapsed_ms(start),
    )
