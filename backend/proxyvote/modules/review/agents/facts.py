"""Review Agent 3: Fact Reconciler.

Scans every evidentiary document in page-range chunks and merges the
per-chunk findings into exactly one FactEvidence per indicator:

    documents -> chunks (N pages each) -> one oracle call per chunk
              -> FactMerger.merge_hits() -> FactMerger.finalize()

The oracle only lists indicators it found something for in a chunk;
coverage of every indicator is guaranteed by the merger's closing pass,
not by the oracle. A chunk whose call fails is logged and skipped.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from proxyvote.core.config import settings
from proxyvote.modules.review.agent_schemas import FactHit, PageChunk, ProgressCallback
from proxyvote.modules.review.agents.base import BaseAgent, LLMClient
from proxyvote.modules.review.agents.merger import FactMerger
from proxyvote.modules.review.chunker import chunk_documents
from proxyvote.modules.review.cost_tracker import CostTracker
from proxyvote.modules.review.errors import ExtractionError
from proxyvote.modules.review.schemas import AgendaItem, FactEvidence, Indicator

logger = structlog.get_logger()


def build_indicator_search_list(
    indicators: Sequence[Indicator],
    agenda_items: Sequence[AgendaItem],
) -> str:
    """One line per indicator, labelled with the id the oracle must echo."""
    numbers = {agenda.id: agenda.number for agenda in agenda_items}
    return "\n".join(
        f"[Indicator ID: {ind.id}] {ind.metric_name} "
        f"(threshold: {ind.threshold}, agenda: {numbers.get(ind.agenda_id, '')})"
        for ind in indicators
    )


class FactAgent(BaseAgent):
    """Agent 3: documents + indicators -> one FactEvidence per indicator."""

    agent_name = "FactReconciler"
    stage = "facts"
    model_tier = "reasoning"
    prompt_file = "facts.txt"
    text_fields = ("indicator_id", "factual_value", "page_number")

    def __init__(
        self,
        client: LLMClient | None = None,
        model: str | None = None,
        cost_tracker: CostTracker | None = None,
        pages_per_chunk: int | None = None,
    ) -> None:
        super().__init__(client=client, model=model, cost_tracker=cost_tracker)
        self.pages_per_chunk = (
            settings.facts_pages_per_chunk if pages_per_chunk is None else pages_per_chunk
        )
        if self.pages_per_chunk < 1:
            raise ValueError(f"pages_per_chunk must be >= 1, got {self.pages_per_chunk}")

    def reconcile(
        self,
        documents: Sequence[tuple[str, str]],
        agenda_items: Sequence[AgendaItem],
        indicators: Sequence[Indicator],
        on_progress: ProgressCallback | None = None,
        previous_facts: Sequence[FactEvidence] = (),
    ) -> list[FactEvidence]:
        """Scan ``(document_name, page_tagged_text)`` pairs for indicator facts.

        ``on_progress(current, total, message)`` fires once per chunk before
        its oracle call. ``previous_facts`` seeds the merge, e.g. from an
        earlier run over a subset of the filings.
        """
        merger = FactMerger(indicators, previous_facts)
        if not indicators:
            logger.info(f"{self.agent_name}: no indicators, nothing to scan")
            return merger.finalize()

        search_list = build_indicator_search_list(indicators, agenda_items)

        # Chunk everything up front: the total is the progress denominator.
        plan = chunk_documents(documents, self.pages_per_chunk)
        total = len(plan)

        logger.info(
            f"{self.agent_name}: scan planned",
            documents=len(documents),
            chunks=total,
            indicators=len(indicators),
            pages_per_chunk=self.pages_per_chunk,
        )

        failed_chunks: list[str] = []
        for current, chunk in enumerate(plan, 1):
            message = (
                f"{chunk.document_name} (pages {chunk.start_page}-{chunk.end_page}): "
                "scanning for indicator facts"
            )
            if on_progress is not None:
                on_progress(current, total, message)

            try:
                hits = self.scan_chunk(chunk, search_list)
            except ExtractionError as e:
                logger.warning(
                    f"{self.agent_name}: chunk skipped",
                    chunk=chunk.label,
                    error=str(e),
                )
                failed_chunks.append(chunk.label)
                continue

            changed = merger.merge_hits(chunk.document_name, hits)
            logger.info(
                f"{self.agent_name}: chunk merged",
                chunk=chunk.label,
                progress=f"{current}/{total}",
                hits=len(hits),
                changed=changed,
            )

        facts = merger.finalize()
        if failed_chunks:
            logger.warning(
                f"{self.agent_name}: completed with skipped chunks",
                failed_chunks=failed_chunks,
            )
        return facts

    def scan_chunk(self, chunk: PageChunk, search_list: str) -> list[FactHit]:
        user_content = (
            f"Document: {chunk.document_name}\n"
            f"Pages: {chunk.start_page} to {chunk.end_page}\n\n"
            f"--- Indicators to search for ---\n{search_list}\n\n"
            f"--- Page text ---\n{chunk.text}"
        )
        return self.call_llm_rows(user_content, FactHit, label=f"facts:{chunk.label}")
