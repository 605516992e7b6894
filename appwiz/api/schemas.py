from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

StateKind = Literal["EDITING", "REVIEWING", "SUBMITTING", "SUBMITTED", "FAILED"]


class StepValues(BaseModel):
    # Raw, pre-validation field values; shape is checked by the step validator
    values: Dict[str, Any] = Field(default_factory=dict)


class WizardStateOut(BaseModel):
    kind: StateKind
    stepId: Optional[str] = None
    referenceId: Optional[str] = None
    reason: Optional[str] = None


class StepStatus(BaseModel):
    id: str
    title: str
    completed: bool
    stale: bool


class WizardSnapshot(BaseModel):
    wizard: str
    state: WizardStateOut
    hasDraft: bool
    awaitingChoice: bool
    persistPending: bool
    steps: List[StepStatus]
    fieldErrors: Dict[str, str] = Field(default_factory=dict)
    referenceError: Optional[str] = None


class ValidationOut(BaseModel):
    valid: bool
    fieldErrors: Dict[str, str] = Field(default_factory=dict)


class StepForm(BaseModel):
    stepId: str
    title: str
    values: Dict[str, Any] = Field(default_factory=dict)
    readOnly: List[str] = Field(default_factory=list)


class StepSubmitOut(BaseModel):
    validation: ValidationOut
    snapshot: WizardSnapshot


class ReviewOut(BaseModel):
    payload: Dict[str, Any]
    snapshot: WizardSnapshot


class InterestRateOut(BaseModel):
    termMonths: int
    ratePercent: float


class LoanProductOut(BaseModel):
    id: str
    name: str
    tenorMin: int
    tenorMax: int
    indicativeRate: float
    description: str = ""
