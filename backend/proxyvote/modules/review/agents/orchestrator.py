"""Review Orchestrator: Pipeline Controller.

Pure Python controller with no LLM calls of its own. Chains the stages in
strict dependency order, one call at a time:

    notice PDF     -> text -> AgendaAgent     -> AgendaItems
    guideline PDF  -> text -> IndicatorAgent  -> Indicators
    notice + evidence PDFs -> FactAgent       -> FactEvidence (1 per indicator)
    agenda + indicators + facts -> DecisionAgent -> Decisions

Each orchestrator owns one run's state: the document-text cache and the
cost tracker. Nothing is shared across runs.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog

from proxyvote.modules.review.agent_schemas import ProgressCallback
from proxyvote.modules.review.agents.agenda import AgendaAgent
from proxyvote.modules.review.agents.base import LLMClient
from proxyvote.modules.review.agents.decision import DecisionAgent
from proxyvote.modules.review.agents.facts import FactAgent
from proxyvote.modules.review.agents.indicators import IndicatorAgent
from proxyvote.modules.review.cost_tracker import CostTracker
from proxyvote.modules.review.errors import ReviewError, StageFailed
from proxyvote.modules.review.pdf_service import DocumentTextCache
from proxyvote.modules.review.schemas import AgendaItem, Decision, FactEvidence, Indicator

logger = structlog.get_logger()

T = TypeVar("T")

# One reviewer-facing message per stage; details go to the log.
STAGE_ERROR_MESSAGES: dict[str, str] = {
    "agenda": "Failed to analyse the meeting notice. The document may be unreadable or too large.",
    "indicators": "Failed to extract indicators from the voting guideline.",
    "facts": "Failed to extract facts from the evidence documents. A file may be too large or not a valid PDF.",
    "decisions": "Failed to generate the final vote decisions.",
}


@dataclass
class SourceDocument:
    """An uploaded document: display name plus raw PDF bytes."""

    name: str
    data: bytes


@dataclass
class ReviewRun:
    """Result of a full pipeline run."""

    agenda_items: list[AgendaItem] = field(default_factory=list)
    indicators: list[Indicator] = field(default_factory=list)
    facts: list[FactEvidence] = field(default_factory=list)
    decisions: list[Decision] = field(default_factory=list)
    stage_timings_ms: dict[str, int] = field(default_factory=dict)
    cost_summary: dict[str, Any] = field(default_factory=dict)


class ReviewOrchestrator:
    """Pipeline controller for one review run."""

    agent_name = "Orchestrator"

    def __init__(
        self,
        client: LLMClient | None = None,
        *,
        provider: str | None = None,
        extraction_model: str | None = None,
        reasoning_model: str | None = None,
        pages_per_chunk: int | None = None,
        cost_tracker: CostTracker | None = None,
    ) -> None:
        self.client = client or LLMClient(provider)
        self.extraction_model = extraction_model
        self.reasoning_model = reasoning_model
        self.pages_per_chunk = pages_per_chunk
        self.cost_tracker = cost_tracker or CostTracker()
        self.text_cache = DocumentTextCache()

        # Agents (lazy-initialized)
        self._agenda_agent: AgendaAgent | None = None
        self._indicator_agent: IndicatorAgent | None = None
        self._fact_agent: FactAgent | None = None
        self._decision_agent: DecisionAgent | None = None

    # ------------------------------------------------------------------
    # Lazy agent initialization
    # ------------------------------------------------------------------

    def _get_agenda_agent(self) -> AgendaAgent:
        if self._agenda_agent is None:
            self._agenda_agent = AgendaAgent(
                self.client, model=self.extraction_model, cost_tracker=self.cost_tracker,
            )
        return self._agenda_agent

    def _get_indicator_agent(self) -> IndicatorAgent:
        if self._indicator_agent is None:
            self._indicator_agent = IndicatorAgent(
                self.client, model=self.extraction_model, cost_tracker=self.cost_tracker,
            )
        return self._indicator_agent

    def _get_fact_agent(self) -> FactAgent:
        if self._fact_agent is None:
            self._fact_agent = FactAgent(
                self.client,
                model=self.reasoning_model,
                cost_tracker=self.cost_tracker,
                pages_per_chunk=self.pages_per_chunk,
            )
        return self._fact_agent

    def _get_decision_agent(self) -> DecisionAgent:
        if self._decision_agent is None:
            self._decision_agent = DecisionAgent(
                self.client, model=self.reasoning_model, cost_tracker=self.cost_tracker,
            )
        return self._decision_agent

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def read_document(self, document: SourceDocument) -> str:
        """Page-tagged text of a document, parsed at most once per run."""
        return self.text_cache.get_text(document.name, document.data)

    def analyze_notice(self, notice: SourceDocument) -> list[AgendaItem]:
        text = self.read_document(notice)
        return self._get_agenda_agent().extract(text, document_name=notice.name)

    def extract_indicators(
        self,
        guideline: SourceDocument,
        agenda_items: list[AgendaItem],
    ) -> list[Indicator]:
        text = self.read_document(guideline)
        return self._get_indicator_agent().extract(text, agenda_items, document_name=guideline.name)

    def reconcile_facts(
        self,
        documents: Sequence[SourceDocument],
        agenda_items: list[AgendaItem],
        indicators: list[Indicator],
        on_progress: ProgressCallback | None = None,
        previous_facts: Sequence[FactEvidence] = (),
    ) -> list[FactEvidence]:
        """Scan documents for facts. An unreadable document fails the stage."""
        texts = [(doc.name, self.read_document(doc)) for doc in documents]
        return self._get_fact_agent().reconcile(
            texts, agenda_items, indicators,
            on_progress=on_progress, previous_facts=previous_facts,
        )

    def decide(
        self,
        agenda_items: list[AgendaItem],
        indicators: list[Indicator],
        facts: list[FactEvidence],
    ) -> list[Decision]:
        return self._get_decision_agent().decide(agenda_items, indicators, facts)

    # ------------------------------------------------------------------
    # Full pipeline
    # ------------------------------------------------------------------

    def _run_stage(self, run: ReviewRun, stage: str, fn: Callable[[], T]) -> T:
        start = time.time()
        logger.info(f"{self.agent_name}: stage started", stage=stage)
        try:
            result = fn()
        except ReviewError as e:
            logger.error(
                f"{self.agent_name}: stage failed",
                stage=stage,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise StageFailed(stage, STAGE_ERROR_MESSAGES[stage], e) from e
        finally:
            run.stage_timings_ms[stage] = int((time.time() - start) * 1000)
        logger.info(
            f"{self.agent_name}: stage complete",
            stage=stage,
            duration_ms=run.stage_timings_ms[stage],
        )
        return result

    def run(
        self,
        notice: SourceDocument,
        guideline: SourceDocument,
        evidence: Sequence[SourceDocument] = (),
        on_progress: ProgressCallback | None = None,
    ) -> ReviewRun:
        """Run all four stages. Raises StageFailed naming the aborted stage."""
        run = ReviewRun()
        logger.info(
            f"{self.agent_name}: review started",
            notice=notice.name,
            guideline=guideline.name,
            evidence=[doc.name for doc in evidence],
        )

        run.agenda_items = self._run_stage(
            run, "agenda", lambda: self.analyze_notice(notice)
        )
        run.indicators = self._run_stage(
            run, "indicators", lambda: self.extract_indicators(guideline, run.agenda_items)
        )
        run.facts = self._run_stage(
            run, "facts",
            lambda: self.reconcile_facts(
                [notice, *evidence], run.agenda_items, run.indicators, on_progress=on_progress,
            ),
        )
        run.decisions = self._run_stage(
            run, "decisions", lambda: self.decide(run.agenda_items, run.indicators, run.facts)
        )
        run.cost_summary = self.cost_tracker.summary()

        logger.info(
            f"{self.agent_name}: review complete",
            agenda_items=len(run.agenda_items),
            indicators=len(run.indicators),
            facts=len(run.facts),
            facts_found=sum(1 for f in run.facts if f.is_found),
            decisions=len(run.decisions),
            cost_usd=run.cost_summary.get("total_cost_usd"),
            text_cache_hits=self.text_cache.hits,
        )
        return run
