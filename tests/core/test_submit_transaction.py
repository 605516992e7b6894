import json

import pytest
from unittest.mock import MagicMock

from appwiz.core import states
from appwiz.core.controller import WizardController
from appwiz.core.deposit_steps import DEPOSIT_WIZARD
from appwiz.core.errors import StepNotActiveError
from appwiz.core.loan_steps import LOAN_WIZARD
from appwiz.core.states import SUBMIT_STEP
from appwiz.core.submission import SubmissionPayload, build_payload
from appwiz.remote.contract import RemoteServiceError, SubmitResult
from appwiz.remote.mock import MockRemoteService
from appwiz.store.draft_repo import MemoryDraftStore

KEY = "draft:test:odraft"


def _reviewing(steps, store=None, remote=None, definition=DEPOSIT_WIZARD):
    ctl = WizardController(
        definition,
        store=store if store is not None else MemoryDraftStore(),
        remote=remote if remote is not None else MockRemoteService(),
        draft_key=KEY,
    )
    ctl.refresh_reference_data()
    for sid in definition.step_ids:
        assert ctl.submit_step(sid, steps[sid]).valid, sid
    assert ctl.state.kind == states.REVIEWING
    return ctl


def test_end_to_end_monthly_scheme(deposit_steps):
    store = MemoryDraftStore()
    remote = MockRemoteService()
    ctl = _reviewing(deposit_steps, store=store, remote=remote)
    assert store.get(KEY) is not None

    state = ctl.submit()

    assert state.kind == states.SUBMITTED
    assert state.reference_id
    assert state.reference_id.startswith("DEP-")
    assert store.get(KEY) is None
    assert store.keys() == []
    assert ctl.draft.is_empty()

    sent = remote.submissions[0]["payload"]
    assert sent["depositType"]["depositType"] == "monthly-scheme"
    assert sent["depositDetails"]["depositAmount"] == 5000
    assert [n["percentage"] for n in sent["nomineeDetails"]["nominees"]] == [60, 40]
    assert sent["bankDetails"] == dict(deposit_steps["bank_details"])
    assert sent["submittedAt"]


def test_submit_failure_preserves_draft_then_success_clears(deposit_steps):
    store = MemoryDraftStore()
    remote = MockRemoteService(fail_submits=1, fail_reason="Gateway timeout")
    ctl = _reviewing(deposit_steps, store=store, remote=remote)

    state = ctl.submit()
    assert state == states.failed(SUBMIT_STEP, "Gateway timeout")
    saved = store.get(KEY)
    assert set(saved.steps) == set(DEPOSIT_WIZARD.step_ids)
    assert saved.steps["nominee_details"] == deposit_steps["nominee_details"]

    state = ctl.submit()
    assert state.kind == states.SUBMITTED
    assert store.get(KEY) is None


def test_retry_resends_the_same_frozen_payload(deposit_steps):
    remote = MagicMock()
    remote.submit_application.side_effect = [
        RemoteServiceError("connection reset"),
        SubmitResult(ok=True, referenceId="REF-0001"),
    ]
    ctl = _reviewing(deposit_steps, remote=remote)
    review = ctl.review_payload()

    assert ctl.submit().kind == states.FAILED
    assert ctl.submit() == states.WizardState(states.SUBMITTED, reference_id="REF-0001")

    first, second = remote.submit_application.call_args_list
    assert first == second
    assert first.args[1] == review


def test_editing_a_step_refreezes_the_payload(deposit_steps):
    remote = MagicMock()
    remote.get_interest_rates.return_value = []
    remote.submit_application.side_effect = [
        RemoteServiceError("rejected"),
        SubmitResult(ok=True, referenceId="REF-0002"),
    ]
    ctl = _reviewing(deposit_steps, remote=remote)
    ctl.submit()

    ctl.edit_step("bank_details")
    ctl.submit_step("bank_details", dict(deposit_steps["bank_details"], autoPayment=True, autoPaymentDay=15))
    ctl.submit_step("payment_terms", deposit_steps["payment_terms"])
    assert ctl.state.kind == states.REVIEWING
    ctl.submit()

    first, second = remote.submit_application.call_args_list
    assert first.args[1]["bankDetails"]["autoPayment"] is False
    assert second.args[1]["bankDetails"] == dict(deposit_steps["bank_details"], autoPayment=True, autoPaymentDay=15)


def test_idempotency_key_is_passed_through_unchanged(deposit_steps):
    remote = MagicMock()
    remote.get_interest_rates.return_value = []
    remote.submit_application.return_value = SubmitResult(ok=True, referenceId="opaque/ref:42")
    ctl = _reviewing(deposit_steps, remote=remote)

    state = ctl.submit(idempotency_key="client-key-123")

    args, kwargs = remote.submit_application.call_args
    assert args[0] == "deposit"
    assert kwargs == {"idempotency_key": "client-key-123"}
    assert state.reference_id == "opaque/ref:42"


def test_not_ok_result_is_a_failure(deposit_steps):
    store = MemoryDraftStore()
    remote = MagicMock()
    remote.get_interest_rates.return_value = []
    remote.submit_application.return_value = SubmitResult(ok=False, referenceId="")
    ctl = _reviewing(deposit_steps, store=store, remote=remote)
    assert ctl.submit() == states.failed(SUBMIT_STEP, "Application was not accepted")
    assert store.get(KEY) is not None


def test_unexpected_remote_exception_is_a_failure(deposit_steps):
    remote = MagicMock()
    remote.get_interest_rates.return_value = []
    remote.submit_application.side_effect = TimeoutError("read timed out")
    ctl = _reviewing(deposit_steps, remote=remote)
    state = ctl.submit()
    assert state.kind == states.FAILED
    assert state.step_id == SUBMIT_STEP
    assert "read timed out" in state.reason


def test_submit_after_success_is_ignored(deposit_steps):
    remote = MagicMock()
    remote.get_interest_rates.return_value = []
    remote.submit_application.return_value = SubmitResult(ok=True, referenceId="REF-1")
    ctl = _reviewing(deposit_steps, remote=remote)
    first = ctl.submit()
    assert ctl.submit() == first
    assert remote.submit_application.call_count == 1


def test_submit_while_in_flight_is_ignored(deposit_steps):
    remote = MagicMock()
    remote.get_interest_rates.return_value = []
    seen = []

    def _submit(wizard, payload, idempotency_key=None):
        seen.append(ctl.submit())
        return SubmitResult(ok=True, referenceId="REF-2")

    remote.submit_application.side_effect = _submit
    ctl = _reviewing(deposit_steps, remote=remote)
    assert ctl.submit().kind == states.SUBMITTED
    assert seen == [states.WizardState(states.SUBMITTING)]
    assert remote.submit_application.call_count == 1


def test_submit_requires_review(deposit_steps):
    ctl = WizardController(DEPOSIT_WIZARD, MemoryDraftStore(), MockRemoteService(), draft_key=KEY)
    with pytest.raises(StepNotActiveError):
        ctl.submit()


def test_clear_failure_after_success_still_reports_submitted(deposit_steps):
    store = MemoryDraftStore()
    ctl = _reviewing(deposit_steps, store=store)
    store.clear = MagicMock(side_effect=ConnectionError("redis down"))
    assert ctl.submit().kind == states.SUBMITTED


def test_reference_ids_are_not_reused_across_cleared_drafts(deposit_steps):
    store = MemoryDraftStore()
    remote = MockRemoteService()
    refs = set()
    for _ in range(3):
        ctl = _reviewing(deposit_steps, store=store, remote=remote)
        refs.add(ctl.submit().reference_id)
    assert len(refs) == 3


def test_loan_end_to_end(loan_steps):
    store = MemoryDraftStore()
    remote = MockRemoteService()
    ctl = _reviewing(loan_steps, store=store, remote=remote, definition=LOAN_WIZARD)
    payload = ctl.review_payload()
    assert payload["loanType"] == "Personal"
    assert payload["loanDetails"]["indicativeRate"] == 12.5
    assert payload["loanDetails"]["emiPreview"] > 0

    state = ctl.submit()
    assert state.reference_id.startswith("LN-")
    assert store.get(KEY) is None


def test_frozen_payload_is_immutable_text(deposit_steps):
    payload = build_payload(DEPOSIT_WIZARD, deposit_steps, submitted_at="2025-01-01T00:00:00Z")
    body = payload.body()
    body["depositDetails"]["depositAmount"] = 1
    assert payload.body()["depositDetails"]["depositAmount"] == 5000
    assert json.loads(payload.body_json)["submittedAt"] == "2025-01-01T00:00:00Z"
    assert payload == SubmissionPayload.freeze("deposit", json.loads(payload.body_json))


def test_failed_submit_flushes_pending_draft_write(deposit_steps):
    store = MagicMock()
    store.get.return_value = None
    remote = MockRemoteService(fail_submits=1)
    ctl = _reviewing(deposit_steps, store=store, remote=remote)

    store.set.side_effect = ConnectionError("redis down")
    ctl.edit_step("payment_terms")
    ctl.submit_step("payment_terms", deposit_steps["payment_terms"])
    assert ctl.persist_pending is True

    store.set.side_effect = None
    store.set.reset_mock()
    state = ctl.submit()

    assert state.kind == states.FAILED
    assert ctl.persist_pending is False
    written = store.set.call_args.args[1]
    assert set(written.steps) == set(DEPOSIT_WIZARD.step_ids)
