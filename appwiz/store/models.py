import copy
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional


@dataclass
class ApplicationDraft:
    # Wizard this draft belongs to ("deposit" / "loan")
    wizard: str = ""

    # step id -> that step's field values, as last accepted by the controller
    # (post-derivation, so forced/read-only fields are snapshotted)
    steps: Dict[str, dict] = field(default_factory=dict)

    # Steps whose saved data was entered against upstream values that have
    # since changed; they must be re-submitted before review.
    stale: List[str] = field(default_factory=list)

    lastUpdatedAtEpoch: Optional[int] = None

    def is_empty(self) -> bool:
        return not self.steps

    def step_values(self, step_id: str) -> dict:
        return copy.deepcopy(self.steps.get(step_id) or {})

    def merged(self, step_id: str, values: dict) -> "ApplicationDraft":
        """
        Return a new draft with `step_id` replaced by `values`.
        Every other step is carried over untouched; re-submitting a step
        clears its own stale mark.
        """
        steps = copy.deepcopy(self.steps)
        steps[step_id] = copy.deepcopy(values)
        return ApplicationDraft(
            wizard=self.wizard,
            steps=steps,
            stale=[s for s in self.stale if s != step_id],
            lastUpdatedAtEpoch=self.lastUpdatedAtEpoch,
        )

    def with_stale(self, step_ids: Iterable[str]) -> "ApplicationDraft":
        stale = list(self.stale)
        for s in step_ids:
            if s not in stale:
                stale.append(s)
        return ApplicationDraft(
            wizard=self.wizard,
            steps=copy.deepcopy(self.steps),
            stale=stale,
            lastUpdatedAtEpoch=self.lastUpdatedAtEpoch,
        )

    def to_dict(self) -> dict:
        return {
            "wizard": self.wizard,
            "steps": copy.deepcopy(self.steps),
            "stale": list(self.stale),
            "lastUpdatedAtEpoch": self.lastUpdatedAtEpoch,
        }
