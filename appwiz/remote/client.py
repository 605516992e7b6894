"""
HTTP Remote Service
-------------------
Talks to the banking backend over httpx. Every failure mode (transport error,
timeout, non-2xx, malformed body, {ok: false}) is raised as RemoteServiceError.

Read-only lookups retry on transport errors within REMOTE_MAX_RETRIES.
Submissions and payment initiation are sent once: the controller retries
them explicitly, passing the caller's Idempotency-Key through unchanged.
"""
import random
import time
from typing import Any, Dict, List, Optional

import httpx

from appwiz.settings import settings
from appwiz.observability.logging import log
from appwiz.remote.contract import (
    InterestRate,
    LoanProduct,
    PaymentInitiation,
    PaymentVerification,
    RemoteService,
    RemoteServiceError,
    SubmitResult,
)
from appwiz.remote.mock import MockRemoteService


class HttpRemoteService:
    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 timeout_sec: Optional[float] = None, max_retries: Optional[int] = None,
                 client: Optional[httpx.Client] = None):
        self.base_url = (base_url if base_url is not None else settings.REMOTE_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.REMOTE_API_KEY
        self.max_retries = settings.REMOTE_MAX_RETRIES if max_retries is None else max_retries
        timeout = settings.REMOTE_TIMEOUT_SEC if timeout_sec is None else timeout_sec
        self._client = client or httpx.Client(timeout=timeout)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> dict:
        h = {"Content-Type": "application/json"}
        if self.api_key:
            h["Authorization"] = f"Bearer {self.api_key}"
        if extra:
            h.update(extra)
        return h

    def _request(self, method: str, path: str, *, json: Any = None,
                 headers: Optional[Dict[str, str]] = None, retries: int = 0) -> Any:
        if not self.base_url:
            raise RemoteServiceError("REMOTE_BASE_URL is not set")
        url = f"{self.base_url}{path}"
        attempt = 0
        while True:
            attempt += 1
            try:
                resp = self._client.request(method, url, json=json, headers=self._headers(headers))
            except httpx.TransportError as e:
                if attempt <= retries:
                    log(event="remote_retry", method=method, path=path, attempt=attempt, errorType=type(e).__name__)
                    time.sleep(0.2 + random.uniform(0.0, 0.1))
                    continue
                raise RemoteServiceError(f"{type(e).__name__}: {e}") from e
            break

        if not (200 <= resp.status_code < 300):
            raise RemoteServiceError(
                f"{method} {path} failed: {resp.status_code} {(resp.text or '')[:200]}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteServiceError(f"{method} {path} returned invalid JSON", status_code=resp.status_code) from e

    def get_interest_rates(self) -> List[InterestRate]:
        data = self._request("GET", "/interest-rates", retries=self.max_retries)
        try:
            return [InterestRate.from_raw(x) for x in data]
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteServiceError(f"malformed interest rates: {e}") from e

    def get_loan_products(self) -> List[LoanProduct]:
        data = self._request("GET", "/loan-products", retries=self.max_retries)
        try:
            return [LoanProduct.from_raw(x) for x in data]
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteServiceError(f"malformed loan products: {e}") from e

    def submit_application(
        self, wizard: str, payload: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> SubmitResult:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        data = self._request("POST", f"/applications/{wizard}", json=payload, headers=headers)
        if not isinstance(data, dict):
            raise RemoteServiceError("malformed submit response")
        # Older backends answer with {ok, ref}
        ref = data.get("referenceId", data.get("ref"))
        if not data.get("ok"):
            raise RemoteServiceError(str(data.get("error") or data.get("message") or "Application rejected"))
        if not ref:
            raise RemoteServiceError("submit response has no reference id")
        return SubmitResult(ok=True, referenceId=str(ref))

    def initiate_payment(self, deposit_id: str, amount: float, user_id: str) -> PaymentInitiation:
        data = self._request(
            "POST", "/payments",
            json={"depositId": deposit_id, "amount": amount, "userId": user_id},
        )
        try:
            return PaymentInitiation(gatewayUrl=str(data["gatewayUrl"]), txnId=str(data["txnId"]))
        except (KeyError, TypeError) as e:
            raise RemoteServiceError(f"malformed payment initiation: {e}") from e

    def verify_payment(self, txn_id: str) -> PaymentVerification:
        data = self._request("GET", f"/payments/{txn_id}", retries=self.max_retries)
        if not isinstance(data, dict) or "status" not in data:
            raise RemoteServiceError("malformed payment verification")
        return PaymentVerification(
            status=str(data["status"]),
            amount=data.get("amount"),
            transactionId=data.get("transactionId"),
            paymentMethod=data.get("paymentMethod"),
            timestamp=data.get("timestamp"),
        )


_mock_service: Optional[MockRemoteService] = None


def get_remote_service() -> RemoteService:
    global _mock_service
    if settings.REMOTE_MODE == "http":
        return HttpRemoteService()
    if _mock_service is None:
        _mock_service = MockRemoteService()
    return _mock_service
