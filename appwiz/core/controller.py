"""
Wizard Controller
-----------------
Owns the current step, the in-memory draft and the review/submit transition
for one wizard instance.

State machine:
  Editing(step) --submit_step ok--> Editing(successor) | Reviewing
  Reviewing --submit--> Submitting --> Submitted(refId) | Failed("submit")
  Failed("submit") --submit--> Submitting (same frozen payload)
  Reviewing / Failed --edit_step--> Editing(step)

The in-memory draft is authoritative. A failed draft write is logged and
counted, and the full draft is written again on the next mutation.
"""
import copy
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

import appwiz.observability.metrics as metrics
from appwiz.observability.logging import log
from appwiz.core import states
from appwiz.core.errors import StepNotActiveError
from appwiz.core.registry import REVIEW, StepContext, WizardDefinition
from appwiz.core.states import SUBMIT_STEP, WizardState, editing, failed
from appwiz.core.submission import SubmissionPayload, SubmitTransaction, build_payload
from appwiz.core.validation import ValidationResult
from appwiz.remote.contract import RemoteService, RemoteServiceError
from appwiz.store.draft_repo import DraftStore
from appwiz.store.models import ApplicationDraft

REASON_INCOMPLETE = "Step has not been completed"
REASON_STALE = "Step must be reviewed again after an earlier change"
REASON_INVALID = "Step has invalid data"


class WizardController:
    def __init__(self, definition: WizardDefinition, store: DraftStore, remote: RemoteService,
                 draft_key: Optional[str] = None):
        self.definition = definition
        self.store = store
        self.remote = remote
        self.draft_key = draft_key or definition.draft_key

        self.state: WizardState = editing(definition.first_step)
        self.draft = ApplicationDraft(wizard=definition.name)
        self.has_draft = False
        self.field_errors: Dict[str, str] = {}
        self.reference_error: Optional[str] = None

        self._choice_pending = False
        self._dirty = False
        self._payload: Optional[SubmissionPayload] = None
        self._interest_rates: tuple = ()
        self._loan_products: tuple = ()
        self._submitter = SubmitTransaction(definition, store, remote, self.draft_key)

        self.load_draft()

    # --- draft lifecycle ---

    def load_draft(self) -> bool:
        """Read the store once; never moves past the first step."""
        try:
            stored = self.store.get(self.draft_key)
        except Exception as e:
            log(event="draft_load_failed", draftKey=self.draft_key, errorType=type(e).__name__, error=str(e)[:200])
            stored = None

        if stored is None or stored.is_empty():
            self.has_draft = False
            self._choice_pending = False
            return False

        known = {sid: v for sid, v in stored.steps.items() if self.definition.has_step(sid) and isinstance(v, dict)}
        dropped = sorted(set(stored.steps) - set(known))
        if dropped:
            log(event="draft_unknown_steps_dropped", draftKey=self.draft_key, stepIds=dropped)

        self.draft = ApplicationDraft(
            wizard=self.definition.name,
            steps=known,
            stale=[s for s in stored.stale if s in known],
            lastUpdatedAtEpoch=stored.lastUpdatedAtEpoch,
        )
        self.has_draft = not self.draft.is_empty()
        self._choice_pending = self.has_draft
        self.state = editing(self.definition.first_step)
        log(event="draft_loaded", draftKey=self.draft_key, stepIds=list(known), stale=list(self.draft.stale))
        return self.has_draft

    @property
    def awaiting_choice(self) -> bool:
        """A saved draft was found and the user has not picked Resume or Start Fresh yet."""
        return self._choice_pending

    def resume(self) -> WizardState:
        self._require_not_finished("resume")
        self._choice_pending = False
        self.field_errors = {}
        self.state = editing(self.definition.first_step)
        log(event="draft_resumed", draftKey=self.draft_key, stepIds=list(self.draft.steps))
        return self.state

    def start_fresh(self) -> WizardState:
        if self.state.kind == states.SUBMITTING:
            raise StepNotActiveError("Submission in progress")
        try:
            self.store.clear(self.draft_key)
        except Exception as e:
            metrics.increment_draft_write_failure()
            log(event="draft_clear_failed", draftKey=self.draft_key, errorType=type(e).__name__, error=str(e)[:200])
        self.draft = ApplicationDraft(wizard=self.definition.name)
        self.has_draft = False
        self._choice_pending = False
        self._dirty = False
        self._payload = None
        self.field_errors = {}
        self.state = editing(self.definition.first_step)
        log(event="draft_started_fresh", draftKey=self.draft_key)
        return self.state

    def _persist(self) -> bool:
        try:
            self.store.set(self.draft_key, self.draft)
        except Exception as e:
            self._dirty = True
            metrics.increment_draft_write_failure()
            log(
                event="draft_persist_failed",
                draftKey=self.draft_key,
                errorType=type(e).__name__,
                error=str(e)[:200],
            )
            return False
        if self._dirty:
            log(event="draft_persist_recovered", draftKey=self.draft_key)
        self._dirty = False
        return True

    def _flush_if_dirty(self) -> None:
        if self._dirty:
            self._persist()

    @property
    def persist_pending(self) -> bool:
        return self._dirty

    # --- reference data ---

    def refresh_reference_data(self) -> bool:
        """Fetch the remote lookups derivations read. Failure is recorded, not raised."""
        self.reference_error = None
        try:
            if "interest_rates" in self.definition.reference_data:
                self._interest_rates = tuple(self.remote.get_interest_rates())
            if "loan_products" in self.definition.reference_data:
                self._loan_products = tuple(self.remote.get_loan_products())
        except Exception as e:
            self.reference_error = e.reason if isinstance(e, RemoteServiceError) else str(e)
            log(
                event="reference_data_failed",
                wizard=self.definition.name,
                errorType=type(e).__name__,
                error=str(e)[:200],
            )
            return False
        return True

    def _context(self) -> StepContext:
        return StepContext(
            steps=MappingProxyType(self.draft.steps),
            interest_rates=self._interest_rates,
            loan_products=self._loan_products,
        )

    # --- per-step contract ---

    def validate(self, step_id: str, values: Mapping[str, Any]) -> ValidationResult:
        """Pure; safe to call on every keystroke."""
        return self.definition.validate(step_id, values, self._context())

    def form_values(self, step_id: str) -> Dict[str, Any]:
        """Saved values with forced/derived fields applied, for pre-filling the step."""
        values = self.draft.step_values(step_id)
        return self.definition.derive(step_id, values, self._context()).apply(values)

    def read_only_fields(self, step_id: str) -> List[str]:
        values = self.draft.step_values(step_id)
        return list(self.definition.derive(step_id, values, self._context()).read_only)

    def submit_step(self, step_id: str, raw_values: Mapping[str, Any]) -> ValidationResult:
        """
        "Next": validate, derive, merge the derived values, persist, advance.
        On validation failure nothing changes except field_errors.
        """
        self.definition.step(step_id)
        if self.state.kind not in (states.EDITING, states.FAILED) or self.state.step_id != step_id:
            raise StepNotActiveError(f"Step {step_id} is not the active step")
        if self._choice_pending:
            # Submitting the first step over a saved draft keeps the draft
            self._choice_pending = False

        result = self.validate(step_id, raw_values)
        if not result.valid:
            self.field_errors = dict(result.field_errors)
            log(
                event="step_validation_failed",
                wizard=self.definition.name,
                stepId=step_id,
                fields=sorted(result.field_errors),
            )
            return result

        raw = copy.deepcopy(dict(raw_values))
        values = self.definition.derive(step_id, raw, self._context()).apply(raw)

        previous = self.draft.steps.get(step_id)
        changed = previous != values
        draft = self.draft.merged(step_id, values)
        if changed:
            self._payload = None
            # Downstream data entered against the old values is kept but must be re-submitted
            affected = [sid for sid in self.definition.dependents(step_id) if sid in draft.steps]
            if affected:
                draft = draft.with_stale(affected)
                log(event="downstream_marked_stale", wizard=self.definition.name, stepId=step_id, staleSteps=affected)

        self.draft = draft
        self.field_errors = {}
        self._persist()
        log(event="step_completed", wizard=self.definition.name, stepId=step_id, changed=changed)

        nxt = self.definition.successor(step_id)
        if nxt is REVIEW:
            self.enter_review()
        else:
            self.state = editing(nxt)
        return result

    # --- navigation ---

    def go_to_previous(self) -> WizardState:
        """Back one step; no validation and no draft mutation."""
        self._require_not_finished("go back")
        self.field_errors = {}
        self._flush_if_dirty()
        cur = self.state.step_id
        if self.state.kind == states.REVIEWING or cur == SUBMIT_STEP:
            self.state = editing(self.definition.last_step)
            return self.state
        prev = self.definition.predecessor(cur)
        if prev is not None:
            self.state = editing(prev)
        else:
            self.state = editing(cur)
        return self.state

    def edit_step(self, step_id: str) -> WizardState:
        """Jump from review (or a failure) back to any step."""
        self.definition.step(step_id)
        if self.state.kind not in (states.REVIEWING, states.FAILED):
            raise StepNotActiveError("Steps can only be edited from review")
        self.field_errors = {}
        self._flush_if_dirty()
        self.state = editing(step_id)
        return self.state

    def enter_review(self) -> WizardState:
        """Refuses (Failed(step, reason)) unless every step holds current, valid data."""
        self._require_not_finished("review")
        self._flush_if_dirty()
        ctx = self._context()
        for sid in self.definition.step_ids:
            if sid not in self.draft.steps:
                return self._refuse_review(sid, REASON_INCOMPLETE)
            if sid in self.draft.stale:
                return self._refuse_review(sid, REASON_STALE)
            result = self.definition.validate(sid, self.draft.steps[sid], ctx)
            if not result.valid:
                return self._refuse_review(sid, REASON_INVALID, result.field_errors)

        self._choice_pending = False
        self.field_errors = {}
        self.state = WizardState(states.REVIEWING)
        log(event="review_entered", wizard=self.definition.name, draftKey=self.draft_key)
        return self.state

    def _refuse_review(self, step_id: str, reason: str, field_errors: Optional[Mapping[str, str]] = None) -> WizardState:
        self.field_errors = dict(field_errors or {})
        self.state = failed(step_id, reason)
        log(event="review_refused", wizard=self.definition.name, stepId=step_id, reason=reason)
        return self.state

    def _require_not_finished(self, action: str) -> None:
        if self.state.kind in (states.SUBMITTING, states.SUBMITTED):
            raise StepNotActiveError(f"Cannot {action} once the application is {self.state.kind.lower()}")

    # --- review / submit ---

    def _frozen_payload(self) -> SubmissionPayload:
        if self._payload is None:
            self._payload = build_payload(self.definition, self.draft.steps)
        return self._payload

    def review_payload(self) -> Dict[str, Any]:
        if not (self.state.kind == states.REVIEWING
                or (self.state.kind == states.FAILED and self.state.step_id == SUBMIT_STEP)):
            raise StepNotActiveError("Review is not open")
        return self._frozen_payload().body()

    def submit(self, idempotency_key: Optional[str] = None) -> WizardState:
        if self.state.kind in (states.SUBMITTING, states.SUBMITTED):
            log(event="submit_ignored", wizard=self.definition.name, state=self.state.kind)
            return self.state
        retry = self.state.kind == states.FAILED and self.state.step_id == SUBMIT_STEP
        if self.state.kind != states.REVIEWING and not retry:
            raise StepNotActiveError("Submit is only possible from review")

        payload = self._frozen_payload()
        self.state = WizardState(states.SUBMITTING)
        try:
            result = self._submitter.run(payload, idempotency_key=idempotency_key)
        except RemoteServiceError as e:
            # Draft (in memory and persisted) stays as it was; the same payload is resent on retry
            self.state = failed(SUBMIT_STEP, e.reason)
            self._flush_if_dirty()
            return self.state

        self.draft = ApplicationDraft(wizard=self.definition.name)
        self.has_draft = False
        self._choice_pending = False
        self._dirty = False
        self._payload = None
        self.state = WizardState(states.SUBMITTED, reference_id=result.referenceId)
        return self.state

    # --- snapshot ---

    def to_dict(self) -> dict:
        stale = set(self.draft.stale)
        return {
            "wizard": self.definition.name,
            "state": self.state.to_dict(),
            "hasDraft": self.has_draft,
            "awaitingChoice": self._choice_pending,
            "persistPending": self._dirty,
            "steps": [
                {
                    "id": sid,
                    "title": self.definition.step(sid).title,
                    "completed": sid in self.draft.steps,
                    "stale": sid in stale,
                }
                for sid in self.definition.step_ids
            ],
            "fieldErrors": dict(self.field_errors),
            "referenceError": self.reference_error,
        }
