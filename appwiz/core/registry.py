"""
Step Schema Registry.

A WizardDefinition is the single source of truth for one wizard: which steps
exist, how each validates and derives, and which step follows which. The
successor table is checked once at construction, so a mistyped step id fails
at import time instead of breaking navigation at runtime.
"""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from appwiz.settings import settings
from appwiz.core.errors import UnknownStepError
from appwiz.core.validation import ValidationResult
from appwiz.remote.contract import InterestRate, LoanProduct


class Terminal(Enum):
    REVIEW = "review"


REVIEW = Terminal.REVIEW

Successor = Union[str, Terminal]


@dataclass(frozen=True)
class StepContext:
    """Read-only view of the rest of the draft plus reference data. No I/O."""
    steps: Mapping[str, dict] = field(default_factory=lambda: MappingProxyType({}))
    interest_rates: Tuple[InterestRate, ...] = ()
    loan_products: Tuple[LoanProduct, ...] = ()

    def values(self, step_id: str) -> Mapping[str, Any]:
        return MappingProxyType(dict(self.steps.get(step_id) or {}))


EMPTY_CONTEXT = StepContext()


@dataclass(frozen=True)
class Derivation:
    # None removes the field (e.g. an installment that no longer applies)
    updates: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    read_only: Tuple[str, ...] = ()

    def apply(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        out = dict(values)
        for k, v in self.updates.items():
            if v is None:
                out.pop(k, None)
            else:
                out[k] = v
        return out


NO_DERIVATION = Derivation()

Validator = Callable[[Mapping[str, Any], StepContext], ValidationResult]
Deriver = Callable[[Mapping[str, Any], StepContext], Derivation]


@dataclass(frozen=True)
class StepDefinition:
    id: str
    title: str
    payload_key: str
    validator: Validator
    deriver: Optional[Deriver] = None
    # Upstream steps whose values this step's validation/derivation reads
    depends_on: Tuple[str, ...] = ()


class WizardDefinition:
    def __init__(
        self,
        name: str,
        draft_key_setting: str,
        steps: Sequence[StepDefinition],
        transitions: Mapping[str, Successor],
        assemble: Optional[Callable[[Mapping[str, dict]], Dict[str, Any]]] = None,
        reference_data: Sequence[str] = (),
    ):
        self.name = name
        self._draft_key_setting = draft_key_setting
        self._steps: Dict[str, StepDefinition] = {s.id: s for s in steps}
        self._order: List[str] = [s.id for s in steps]
        self._transitions: Dict[str, Successor] = dict(transitions)
        self._assemble = assemble
        # remote lookups the derivations read: "interest_rates", "loan_products"
        self.reference_data = tuple(reference_data)
        self._check_table()
        self._predecessors: Dict[str, str] = {
            nxt: cur for cur, nxt in self._transitions.items() if isinstance(nxt, str)
        }

    def _check_table(self) -> None:
        if not self._order:
            raise ValueError(f"{self.name}: wizard has no steps")
        if len(self._steps) != len(self._order):
            raise ValueError(f"{self.name}: duplicate step ids")
        unknown = [k for k in self._transitions if k not in self._steps]
        unknown += [v for v in self._transitions.values() if isinstance(v, str) and v not in self._steps]
        if unknown:
            raise ValueError(f"{self.name}: transition table names unknown steps {unknown}")
        for s in self._steps.values():
            missing = [d for d in s.depends_on if d not in self._steps]
            if missing:
                raise ValueError(f"{self.name}: step {s.id} depends on unknown steps {missing}")

        # Walk from the first step; must visit every step exactly once and end at REVIEW.
        seen: List[str] = []
        cur: Successor = self._order[0]
        while isinstance(cur, str):
            if cur in seen:
                raise ValueError(f"{self.name}: transition cycle at {cur}")
            if cur not in self._transitions:
                raise ValueError(f"{self.name}: step {cur} has no successor")
            seen.append(cur)
            cur = self._transitions[cur]
        if cur is not REVIEW:
            raise ValueError(f"{self.name}: last step must lead to REVIEW")
        if seen != self._order:
            raise ValueError(f"{self.name}: transition order {seen} does not match step order {self._order}")

    # --- lookups ---

    @property
    def draft_key(self) -> str:
        return getattr(settings, self._draft_key_setting)

    @property
    def step_ids(self) -> List[str]:
        return list(self._order)

    @property
    def first_step(self) -> str:
        return self._order[0]

    @property
    def last_step(self) -> str:
        return self._order[-1]

    def step(self, step_id: str) -> StepDefinition:
        try:
            return self._steps[step_id]
        except KeyError:
            raise UnknownStepError(step_id) from None

    def has_step(self, step_id: str) -> bool:
        return step_id in self._steps

    def successor(self, step_id: str) -> Successor:
        self.step(step_id)
        return self._transitions[step_id]

    def predecessor(self, step_id: str) -> Optional[str]:
        self.step(step_id)
        return self._predecessors.get(step_id)

    def dependents(self, step_id: str) -> List[str]:
        """Steps that read `step_id`, directly or through another dependent, in wizard order."""
        self.step(step_id)
        found = {step_id}
        changed = True
        while changed:
            changed = False
            for s in self._steps.values():
                if s.id not in found and any(d in found for d in s.depends_on):
                    found.add(s.id)
                    changed = True
        return [sid for sid in self._order if sid in found and sid != step_id]

    # --- contracts ---

    def validate(self, step_id: str, values, context: Optional[StepContext] = None) -> ValidationResult:
        step = self.step(step_id)
        if not isinstance(values, Mapping):
            return ValidationResult.failed({"_form": "Invalid form data"})
        return step.validator(values, context or EMPTY_CONTEXT)

    def derive(self, step_id: str, values: Mapping[str, Any], context: Optional[StepContext] = None) -> Derivation:
        step = self.step(step_id)
        if step.deriver is None:
            return NO_DERIVATION
        return step.deriver(values, context or EMPTY_CONTEXT)

    def assemble(self, steps: Mapping[str, dict]) -> Dict[str, Any]:
        """Concatenate the per-step drafts into one submission body keyed by payload_key."""
        body: Dict[str, Any] = {"wizard": self.name}
        for sid in self._order:
            body[self._steps[sid].payload_key] = dict(steps.get(sid) or {})
        if self._assemble is not None:
            body.update(self._assemble(steps))
        return body
