"""Review Agent 4: Fact Merger.

Folds per-chunk fact hits into one authoritative FactEvidence per
indicator. This agent is purely programmatic and makes no LLM calls.

Merge rules, applied in call order:
  - hits for unknown indicator ids, blank values and the NOT_FOUND_VALUE
    sentinel are discarded
  - the value is prefixed with document name and page: "<doc> (p.<page>): <value>"
  - no entry yet            -> create it
  - entry holds sentinel    -> replace value, source and page wholesale
  - entry holds real value  -> append (value "\n"-joined, source and page
                               ", "-joined) unless the raw value already
                               occurs in the accumulated value

finalize() fills every indicator still without an entry with the sentinel,
so the output always holds exactly one fact per indicator.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from proxyvote.modules.review.agent_schemas import FactHit
from proxyvote.modules.review.schemas import (
    NOT_FOUND_VALUE,
    PLACEHOLDER,
    FactEvidence,
    Indicator,
)

logger = structlog.get_logger()


def fact_id_for(indicator_id: str) -> str:
    return f"fact-{indicator_id}"


def format_fact_value(document_name: str, page_number: str, value: str) -> str:
    return f"{document_name} (p.{page_number}): {value}"


class FactMerger:
    """Incremental indicator-id -> FactEvidence map for one reconciliation."""

    agent_name = "FactMerger"

    def __init__(
        self,
        indicators: Iterable[Indicator],
        previous_facts: Iterable[FactEvidence] = (),
    ) -> None:
        self._indicators: dict[str, Indicator] = {ind.id: ind for ind in indicators}
        self._facts: dict[str, FactEvidence] = {}
        self.stats = {"created": 0, "replaced": 0, "appended": 0, "duplicates": 0, "discarded": 0}

        for fact in previous_facts:
            if fact.indicator_id not in self._indicators:
                logger.debug("Seed fact for unknown indicator dropped", indicator_id=fact.indicator_id)
                continue
            agenda_id = self._indicators[fact.indicator_id].agenda_id
            self._facts[fact.indicator_id] = fact.model_copy(update={"agenda_id": agenda_id})

    def __contains__(self, indicator_id: str) -> bool:
        return indicator_id in self._facts

    def get(self, indicator_id: str) -> FactEvidence | None:
        return self._facts.get(indicator_id)

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def merge_hits(self, document_name: str, hits: Iterable[FactHit]) -> int:
        """Merge all hits of one chunk; returns how many changed the map."""
        return sum(1 for hit in hits if self.merge_hit(document_name, hit))

    def merge_hit(self, document_name: str, hit: FactHit) -> bool:
        """Merge one hit. Returns True when the map changed."""
        indicator_id = hit.indicator_id.strip()
        value = hit.factual_value.strip()
        page = hit.page_number.strip() or PLACEHOLDER

        indicator = self._indicators.get(indicator_id)
        if indicator is None or not value or value == NOT_FOUND_VALUE:
            self.stats["discarded"] += 1
            return False

        formatted = format_fact_value(document_name, page, value)
        existing = self._facts.get(indicator_id)

        if existing is None:
            self._facts[indicator_id] = FactEvidence(
                id=fact_id_for(indicator_id),
                agenda_id=indicator.agenda_id,
                indicator_id=indicator_id,
                factual_value=formatted,
                evidence_source=document_name,
                page_number=page,
            )
            self.stats["created"] += 1
            return True

        if existing.factual_value == NOT_FOUND_VALUE:
            existing.factual_value = formatted
            existing.evidence_source = document_name
            existing.page_number = page
            self.stats["replaced"] += 1
            return True

        if value in existing.factual_value:
            self.stats["duplicates"] += 1
            return False

        existing.factual_value += f"\n{formatted}"
        existing.evidence_source += f", {document_name}"
        existing.page_number += f", {page}"
        self.stats["appended"] += 1
        return True

    # ------------------------------------------------------------------
    # Closing pass
    # ------------------------------------------------------------------

    def finalize(self) -> list[FactEvidence]:
        """One fact per indicator, in indicator order; gaps get the sentinel."""
        missing = 0
        for indicator_id, indicator in self._indicators.items():
            if indicator_id in self._facts:
                continue
            self._facts[indicator_id] = FactEvidence(
                id=fact_id_for(indicator_id),
                agenda_id=indicator.agenda_id,
                indicator_id=indicator_id,
                factual_value=NOT_FOUND_VALUE,
                evidence_source=PLACEHOLDER,
                page_number=PLACEHOLDER,
            )
            missing += 1

        logger.info(
            f"{self.agent_name}: facts finalized",
            indicators=len(self._indicators),
            not_found=missing,
            **self.stats,
        )
        return [self._facts[indicator_id] for indicator_id in self._indicators]
