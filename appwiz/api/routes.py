from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from appwiz.api.auth import client_id, require_api_key
from appwiz.api.schemas import (
    InterestRateOut,
    LoanProductOut,
    ReviewOut,
    StepForm,
    StepSubmitOut,
    StepValues,
    ValidationOut,
    WizardSnapshot,
)
from appwiz.api.sessions import controller_for, discard, get_definition
from appwiz.remote.client import get_remote_service
from appwiz.remote.contract import RemoteServiceError
import appwiz.observability.metrics as metrics

router = APIRouter(prefix="/api", dependencies=[Depends(require_api_key)])


# ---------------------------------------------------------------------------
# Wizard lifecycle
# ---------------------------------------------------------------------------
@router.get("/wizards/{wizard}", response_model=WizardSnapshot)
def get_wizard(wizard: str, cid: str = Depends(client_id)):
    with controller_for(wizard, cid) as ctl:
        return ctl.to_dict()


@router.delete("/wizards/{wizard}")
def exit_wizard(wizard: str, cid: str = Depends(client_id)):
    """Leave mid-edit: unsaved step edits are dropped, the persisted draft is kept."""
    return {"wizard": get_definition(wizard).name, "discarded": discard(wizard, cid)}


@router.post("/wizards/{wizard}/resume", response_model=WizardSnapshot)
def resume(wizard: str, cid: str = Depends(client_id)):
    with controller_for(wizard, cid) as ctl:
        ctl.resume()
        return ctl.to_dict()


@router.post("/wizards/{wizard}/start-fresh", response_model=WizardSnapshot)
def start_fresh(wizard: str, cid: str = Depends(client_id)):
    with controller_for(wizard, cid) as ctl:
        ctl.start_fresh()
        return ctl.to_dict()


@router.post("/wizards/{wizard}/previous", response_model=WizardSnapshot)
def previous(wizard: str, cid: str = Depends(client_id)):
    with controller_for(wizard, cid) as ctl:
        ctl.go_to_previous()
        return ctl.to_dict()


@router.post("/wizards/{wizard}/reference-data", response_model=WizardSnapshot)
def refresh_reference_data(wizard: str, cid: str = Depends(client_id)):
    with controller_for(wizard, cid) as ctl:
        ctl.refresh_reference_data()
        return ctl.to_dict()


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------
@router.get("/wizards/{wizard}/steps/{step_id}", response_model=StepForm)
def get_step(wizard: str, step_id: str, cid: str = Depends(client_id)):
    with controller_for(wizard, cid) as ctl:
        step = ctl.definition.step(step_id)
        return {
            "stepId": step.id,
            "title": step.title,
            "values": ctl.form_values(step_id),
            "readOnly": ctl.read_only_fields(step_id),
        }


@router.post("/wizards/{wizard}/steps/{step_id}/validate", response_model=ValidationOut)
def validate_step(wizard: str, step_id: str, body: StepValues, cid: str = Depends(client_id)):
    """Keystroke validation: no state change, no persistence."""
    with controller_for(wizard, cid) as ctl:
        return ctl.validate(step_id, body.values).to_dict()


@router.post("/wizards/{wizard}/steps/{step_id}", response_model=StepSubmitOut)
def submit_step(wizard: str, step_id: str, body: StepValues, cid: str = Depends(client_id)):
    """Next: 200 with validation.valid=false when the step is rejected."""
    with controller_for(wizard, cid) as ctl:
        result = ctl.submit_step(step_id, body.values)
        return {"validation": result.to_dict(), "snapshot": ctl.to_dict()}


@router.post("/wizards/{wizard}/steps/{step_id}/edit", response_model=WizardSnapshot)
def edit_step(wizard: str, step_id: str, cid: str = Depends(client_id)):
    with controller_for(wizard, cid) as ctl:
        ctl.edit_step(step_id)
        return ctl.to_dict()


# ---------------------------------------------------------------------------
# Review / submit
# ---------------------------------------------------------------------------
@router.post("/wizards/{wizard}/review", response_model=WizardSnapshot)
def enter_review(wizard: str, cid: str = Depends(client_id)):
    with controller_for(wizard, cid) as ctl:
        ctl.enter_review()
        return ctl.to_dict()


@router.get("/wizards/{wizard}/review", response_model=ReviewOut)
def get_review(wizard: str, cid: str = Depends(client_id)):
    with controller_for(wizard, cid) as ctl:
        return {"payload": ctl.review_payload(), "snapshot": ctl.to_dict()}


@router.post("/wizards/{wizard}/submit", response_model=WizardSnapshot)
def submit(
    wizard: str,
    cid: str = Depends(client_id),
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
):
    """A rejected submission is reported in state (FAILED / submit), not as an HTTP error."""
    with controller_for(wizard, cid) as ctl:
        ctl.submit(idempotency_key=idempotency_key)
        return ctl.to_dict()


# ---------------------------------------------------------------------------
# Reference data pass-through and metrics
# ---------------------------------------------------------------------------
@router.get("/interest-rates", response_model=List[InterestRateOut])
def interest_rates():
    try:
        return [asdict(r) for r in get_remote_service().get_interest_rates()]
    except RemoteServiceError as e:
        raise HTTPException(status_code=502, detail=e.reason)


@router.get("/loan-products", response_model=List[LoanProductOut])
def loan_products():
    try:
        return [asdict(p) for p in get_remote_service().get_loan_products()]
    except RemoteServiceError as e:
        raise HTTPException(status_code=502, detail=e.reason)


@router.get("/metrics")
def get_metrics():
    """Dashboard snapshot of submit and draft-write counters."""
    return metrics.get_snapshot()
