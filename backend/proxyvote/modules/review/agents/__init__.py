"""Proxy Vote Review Multi-Agent Pipeline.

Stage agents, consumed in strict dependency order:
  Agent 1 — AgendaAgent:     notice text -> AgendaItems
  Agent 2 — IndicatorAgent:  guideline text + agenda -> Indicators (one call per item)
  Agent 3 — FactAgent:       evidence chunks + indicators -> FactEvidence
  Agent 4 — FactMerger:      per-chunk fact reconciliation (programmatic)
  Agent 5 — DecisionAgent:   agenda/indicator/fact graph -> Decisions
  Orchestrator:              pipeline controller (no LLM)
"""
