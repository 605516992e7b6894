"""
Review/Submit Transaction
-------------------------
Assembles the accumulated step data into one payload, sends it once through
the Remote Service and, on success, clears the persisted draft.

The payload is serialized when it is frozen; what the backend receives on a
retry is byte-for-byte what it received the first time.
"""
import hashlib
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import appwiz.observability.metrics as metrics
from appwiz.observability.logging import log
from appwiz.core.registry import WizardDefinition
from appwiz.remote.contract import RemoteService, RemoteServiceError, SubmitResult
from appwiz.store.draft_repo import DraftStore


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


@dataclass(frozen=True)
class SubmissionPayload:
    wizard: str
    body_json: str
    fingerprint: str

    @classmethod
    def freeze(cls, wizard: str, body: Dict[str, Any]) -> "SubmissionPayload":
        body_json = json.dumps(body, sort_keys=True, ensure_ascii=False, default=str)
        fp = hashlib.sha256(body_json.encode("utf-8")).hexdigest()[:16]
        return cls(wizard=wizard, body_json=body_json, fingerprint=fp)

    def body(self) -> Dict[str, Any]:
        # fresh copy every time; the frozen text never changes
        return json.loads(self.body_json)


def build_payload(definition: WizardDefinition, steps: Mapping[str, dict],
                  submitted_at: Optional[str] = None) -> SubmissionPayload:
    body = definition.assemble(steps)
    body["submittedAt"] = submitted_at or _now_iso()
    return SubmissionPayload.freeze(definition.name, body)


class SubmitTransaction:
    def __init__(self, definition: WizardDefinition, store: DraftStore, remote: RemoteService, draft_key: str):
        self.definition = definition
        self.store = store
        self.remote = remote
        self.draft_key = draft_key

    def run(self, payload: SubmissionPayload, idempotency_key: Optional[str] = None) -> SubmitResult:
        """
        One submission attempt. Raises RemoteServiceError on any rejection;
        the persisted draft is only cleared after an accepted submission.
        """
        metrics.increment_submit_attempt()
        log(
            event="submit_attempt",
            wizard=payload.wizard,
            draftKey=self.draft_key,
            payloadFingerprint=payload.fingerprint,
            idempotencyKey=idempotency_key,
        )
        start = time.time()
        try:
            result = self.remote.submit_application(payload.wizard, payload.body(), idempotency_key=idempotency_key)
            if not result.ok or not result.referenceId:
                raise RemoteServiceError("Application was not accepted")
        except Exception as e:
            elapsed_ms = int((time.time() - start) * 1000)
            err = e if isinstance(e, RemoteServiceError) else RemoteServiceError(f"{type(e).__name__}: {e}")
            metrics.record_submit_failure(self.draft_key)
            log(
                event="submit_failed",
                wizard=payload.wizard,
                draftKey=self.draft_key,
                payloadFingerprint=payload.fingerprint,
                elapsedMs=elapsed_ms,
                statusCode=err.status_code,
                errorType=type(e).__name__,
                error=str(err.reason)[:500],
            )
            if err is e:
                raise
            raise err from e

        elapsed_ms = int((time.time() - start) * 1000)
        metrics.increment_submit_succeeded()
        metrics.record_submit_latency(elapsed_ms)
        log(
            event="submit_succeeded",
            wizard=payload.wizard,
            draftKey=self.draft_key,
            payloadFingerprint=payload.fingerprint,
            referenceId=result.referenceId,
            elapsedMs=elapsed_ms,
        )

        try:
            self.store.clear(self.draft_key)
        except Exception as e:
            # Submission already accepted; a leftover draft is only offered for resume.
            metrics.increment_draft_write_failure()
            log(event="draft_clear_failed", draftKey=self.draft_key, errorType=type(e).__name__, error=str(e)[:200])
        return result
