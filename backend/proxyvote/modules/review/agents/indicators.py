"""Review Agent 2: Indicator Extractor.

One oracle call per agenda item. Every call receives the full guideline
text but only the target item as addressing context, which keeps the
oracle from attributing one item's criteria to another when the guideline
is unsegmented prose.

The oracle's ``agenda_id`` is never trusted: it is overwritten with the id
of the agenda item the call was made for. Indicator ids become fact join
keys, so blank or colliding ids are re-keyed to ``<agenda_id>-<n>``.
"""

from __future__ import annotations

import structlog

from proxyvote.modules.review.agent_schemas import IndicatorRow
from proxyvote.modules.review.agents.base import BaseAgent
from proxyvote.modules.review.errors import ExtractionError
from proxyvote.modules.review.schemas import AgendaItem, Indicator

logger = structlog.get_logger()


class IndicatorAgent(BaseAgent):
    """Agent 2: guideline text + agenda -> Indicators (per-agenda isolation)."""

    agent_name = "IndicatorExtractor"
    stage = "indicators"
    model_tier = "extraction"
    prompt_file = "indicators.txt"
    text_fields = ("id", "agenda_id", "threshold", "description")

    def extract(
        self,
        guideline_text: str,
        agenda_items: list[AgendaItem],
        document_name: str = "guideline",
    ) -> list[Indicator]:
        """Extract indicators for every agenda item.

        A failed call for one agenda item is logged and skipped; the other
        items still get their indicators.
        """
        indicators: list[Indicator] = []
        used_ids: set[str] = set()
        failed: list[str] = []

        for agenda in agenda_items:
            try:
                rows = self.extract_for_agenda(guideline_text, agenda, document_name)
            except ExtractionError as e:
                logger.warning(
                    f"{self.agent_name} agenda skipped",
                    agenda_id=agenda.id,
                    error=str(e),
                )
                failed.append(agenda.id)
                continue

            for row in rows:
                indicator = self._build_indicator(row, agenda, used_ids)
                used_ids.add(indicator.id)
                indicators.append(indicator)

        logger.info(
            f"{self.agent_name} extraction complete",
            agenda_items=len(agenda_items),
            indicators=len(indicators),
            failed_agendas=failed,
        )
        return indicators

    def extract_for_agenda(
        self,
        guideline_text: str,
        agenda: AgendaItem,
        document_name: str = "guideline",
    ) -> list[IndicatorRow]:
        user_content = (
            f"Target agenda item: [ID: {agenda.id}] {agenda.number}: {agenda.title}\n"
            f"Agenda description: {agenda.description}\n"
            f"Copy agenda_id exactly as \"{agenda.id}\".\n\n"
            f"--- Guideline: {document_name} ---\n{guideline_text}"
        )
        return self.call_llm_rows(
            user_content, IndicatorRow, label=f"indicators:agenda-{agenda.id}"
        )

    @staticmethod
    def _build_indicator(
        row: IndicatorRow,
        agenda: AgendaItem,
        used_ids: set[str],
    ) -> Indicator:
        indicator_id = row.id.strip()
        if not indicator_id or indicator_id in used_ids:
            n = 1
            while f"{agenda.id}-{n}" in used_ids:
                n += 1
            new_id = f"{agenda.id}-{n}"
            logger.debug("Indicator id re-keyed", raw_id=row.id, indicator_id=new_id)
            indicator_id = new_id

        if row.agenda_id and row.agenda_id != agenda.id:
            logger.debug(
                "Oracle agenda_id overwritten",
                returned=row.agenda_id,
                agenda_id=agenda.id,
            )

        return Indicator(
            id=indicator_id,
            agenda_id=agenda.id,
            metric_name=row.metric_name.strip(),
            threshold=row.threshold.strip(),
            description=row.description.strip(),
        )
