from dataclasses import dataclass
from typing import Optional

# Wizard controller states

# Interaction Surface: one data-entry step is open (step_id set)
EDITING = "EDITING"

# Interaction Surface: full draft shown for confirmation
REVIEWING = "REVIEWING"

# Interaction Surface: submit call in flight; further submit triggers are ignored
SUBMITTING = "SUBMITTING"

# Interaction Surface: terminal, reference_id set, draft cleared
SUBMITTED = "SUBMITTED"

# Interaction Surface: review refused (step_id = offending step) or
# submission failed (step_id = SUBMIT_STEP); draft preserved
FAILED = "FAILED"

SUBMIT_STEP = "submit"


@dataclass(frozen=True)
class WizardState:
    kind: str
    step_id: Optional[str] = None
    reference_id: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "stepId": self.step_id,
            "referenceId": self.reference_id,
            "reason": self.reason,
        }


def editing(step_id: str) -> WizardState:
    return WizardState(EDITING, step_id=step_id)


def failed(step_id: str, reason: str) -> WizardState:
    return WizardState(FAILED, step_id=step_id, reason=reason)
