"""Review Agent 5: Decision Synthesizer.

One holistic oracle call over the structured agenda/indicator/fact graph
(never raw documents), returning one vote decision per agenda item.
A cross-agenda judgment cannot be partially trusted, so any failure,
including a reply that skips an agenda item, fails the whole stage.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

import structlog

from proxyvote.modules.review.agent_schemas import DecisionRow
from proxyvote.modules.review.agents.base import BaseAgent
from proxyvote.modules.review.errors import ExtractionParseError
from proxyvote.modules.review.schemas import (
    UNKNOWN_FACT,
    AgendaItem,
    Decision,
    FactEvidence,
    Indicator,
)

logger = structlog.get_logger()


def build_decision_context(
    agenda_items: Sequence[AgendaItem],
    indicators: Sequence[Indicator],
    facts: Sequence[FactEvidence],
) -> dict[str, Any]:
    """Group indicators and their resolved facts under each agenda item."""
    fact_by_indicator: dict[str, str] = {}
    for fact in facts:
        fact_by_indicator.setdefault(fact.indicator_id, fact.factual_value)

    return {
        "agendas": [
            {
                "id": agenda.id,
                "name": agenda.display_name,
                "description": agenda.description,
                "judging_criteria": [
                    {
                        "id": ind.id,
                        "metric": ind.metric_name,
                        "threshold": ind.threshold,
                        "fact": fact_by_indicator.get(ind.id, UNKNOWN_FACT),
                    }
                    for ind in indicators
                    if ind.agenda_id == agenda.id
                ],
            }
            for agenda in agenda_items
        ]
    }


class DecisionAgent(BaseAgent):
    """Agent 5: agenda/indicator/fact graph -> one Decision per agenda item."""

    agent_name = "DecisionSynthesizer"
    stage = "decisions"
    model_tier = "reasoning"
    prompt_file = "decision.txt"
    text_fields = ("detailed_logic",)

    def decide(
        self,
        agenda_items: Sequence[AgendaItem],
        indicators: Sequence[Indicator],
        facts: Sequence[FactEvidence],
    ) -> list[Decision]:
        context = build_decision_context(agenda_items, indicators, facts)
        user_content = (
            "Decide how to vote on each agenda item of this shareholder meeting.\n\n"
            f"Data:\n{json.dumps(context, ensure_ascii=False, indent=2)}"
        )
        rows: list[DecisionRow] = self.call_llm(user_content, list[DecisionRow], label="decisions")
        decisions = self.match_decisions(rows, agenda_items)

        logger.info(
            f"{self.agent_name} complete",
            agenda_items=len(agenda_items),
            approved=sum(1 for d in decisions if d.is_approved),
            rejected=sum(1 for d in decisions if not d.is_approved),
        )
        return decisions

    @staticmethod
    def match_decisions(
        rows: Sequence[DecisionRow],
        agenda_items: Sequence[AgendaItem],
    ) -> list[Decision]:
        """Validate returned agenda ids and order decisions like the agenda."""
        known = {agenda.id for agenda in agenda_items}
        by_agenda: dict[str, DecisionRow] = {}

        for row in rows:
            agenda_id = row.agenda_id.strip()
            if agenda_id not in known:
                logger.warning("Decision for unknown agenda dropped", agenda_id=agenda_id)
                continue
            if agenda_id in by_agenda:
                logger.warning("Duplicate decision ignored", agenda_id=agenda_id)
                continue
            by_agenda[agenda_id] = row

        missing = [agenda.id for agenda in agenda_items if agenda.id not in by_agenda]
        if missing:
            raise ExtractionParseError(
                f"no decision returned for agenda items {missing}", label="decisions"
            )

        return [
            Decision(
                agenda_id=agenda.id,
                is_approved=by_agenda[agenda.id].is_approved,
                reason=by_agenda[agenda.id].reason.strip(),
                detailed_logic=by_agenda[agenda.id].detailed_logic.strip(),
            )
            for agenda in agenda_items
        ]
