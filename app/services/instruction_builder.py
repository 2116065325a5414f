# path: route-enrichment-api/app/services/instruction_builder.py

from __future__ import annotations

from typing import Any, Dict, Set

from app.models.route_models import EnrichedInstruction, InstructionIn


# Keys written by enrichment. Any of these on the input (from a previous
# run) are discarded so a re-run overwrites rather than accumulates.
ENRICHMENT_FIELDS = frozenset(EnrichedInstruction.model_fields) - frozenset(InstructionIn.model_fields)


class InstructionBuilder:
    """
    Accumulates enrichment for one instruction, then freezes it.

    Tag collections are sets and the hazard score only ever rises, so
    applying a classifier twice has the same effect as applying it once.
    """

    def __init__(self, source: InstructionIn) -> None:
        self.source = source
        self.hazard_tags: Set[str] = set()
        self.common_fault_risk: Set[str] = set()
        self.hazard_score = 0
        self.decision_point = False
        self.fields: Dict[str, Any] = {}

    @property
    def text(self) -> str:
        return " ".join(
            s for s in (self.source.direction, self.source.action_type or "") if s
        ).lower()

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def set(self, **values: Any) -> "InstructionBuilder":
        self.fields.update(values)
        return self

    def set_default(self, name: str, value: Any) -> "InstructionBuilder":
        if self.fields.get(name) is None:
            self.fields[name] = value
        return self

    def tag(self, *tags: str) -> "InstructionBuilder":
        self.hazard_tags.update(tags)
        return self

    def add_fault_risk(self, *risks: str) -> "InstructionBuilder":
        self.common_fault_risk.update(risks)
        return self

    def floor_hazard(self, score: int) -> "InstructionBuilder":
        self.hazard_score = max(self.hazard_score, score)
        return self

    def mark_decision_point(self) -> "InstructionBuilder":
        self.decision_point = True
        return self

    def build(self) -> EnrichedInstruction:
        base = {
            k: v
            for k, v in self.source.model_dump().items()
            if k not in ENRICHMENT_FIELDS
        }
        base.update(self.fields)
        base.update(
            hazard_tags=sorted(self.hazard_tags),
            common_fault_risk=sorted(self.common_fault_risk),
            hazard_score=self.hazard_score,
            decision_point=self.decision_point,
        )
        return EnrichedInstruction(**base)
