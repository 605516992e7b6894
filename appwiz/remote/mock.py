"""
In-process stand-in for the banking backend.

Mirrors the mobile app's mock API: fixed rate table and loan catalogue, the
same server-side sanity checks on deposit submissions, and a sandbox payment
gateway. Reference ids are unique per call, so a cleared draft that is
submitted again never gets the same reference.
"""
import threading
import time
import uuid
from collections import OrderedDict, deque
from decimal import Decimal
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from appwiz.settings import settings
from appwiz.remote.contract import (
    InterestRate,
    LoanProduct,
    PaymentInitiation,
    PaymentVerification,
    RemoteServiceError,
    SubmitResult,
)

MOCK_INTEREST_RATES = (
    (3, 8.5),
    (6, 9.0),
    (12, 9.5),
    (24, 10.0),
    (36, 10.5),
    (60, 11.0),
)

MOCK_LOAN_PRODUCTS = (
    {"id": "personal", "name": "Personal Loan", "tenorMin": 6, "tenorMax": 60, "indicativeRate": 12.5,
     "description": "Flexible personal loans for your immediate needs"},
    {"id": "auto", "name": "Auto Loan", "tenorMin": 12, "tenorMax": 84, "indicativeRate": 10.5,
     "description": "Finance your dream car with competitive rates"},
    {"id": "home", "name": "Home Loan", "tenorMin": 60, "tenorMax": 300, "indicativeRate": 9.5,
     "description": "Make your dream home a reality"},
    {"id": "others", "name": "Other Loans", "tenorMin": 6, "tenorMax": 36, "indicativeRate": 13.5,
     "description": "Other loan products for various needs"},
)

SANDBOX_GATEWAY = "https://sandbox.sslcommerz.com/gwprocess/v4/api.php"
RETURN_BASE = "exp://localhost:8081/open-deposit/payment"

_REF_PREFIX = {"deposit": "DEP", "loan": "LN"}

# Per-instance memory: recent submissions, idempotency replays and initiated payments
MAX_REMEMBERED = 1000


def _reference_id(wizard: str) -> str:
    prefix = _REF_PREFIX.get(wizard, "APP")
    return f"{prefix}-{time.gmtime().tm_year}-{uuid.uuid4().hex[:8].upper()}"


def _check_deposit(payload: Dict[str, Any]) -> None:
    applicant = payload.get("applicantInfo") or {}
    details = payload.get("depositDetails") or {}
    nominees = (payload.get("nomineeDetails") or {}).get("nominees") or []
    if not applicant.get("accountName") or not details.get("depositAmount") or not nominees:
        raise RemoteServiceError("Missing required fields", status_code=422)
    total = sum((Decimal(str(n.get("percentage") or 0)) for n in nominees), Decimal(0))
    tolerance = Decimal(str(settings.NOMINEE_PERCENT_TOLERANCE))
    if not total.is_finite() or abs(total - Decimal(100)) >= tolerance:
        raise RemoteServiceError("Nominee percentages must sum to 100%", status_code=422)


def _remember(store: OrderedDict, key: str, value) -> None:
    store[key] = value
    while len(store) > MAX_REMEMBERED:
        store.popitem(last=False)


class MockRemoteService:
    def __init__(self, fail_submits: int = 0, fail_reason: str = "Service unavailable"):
        # The next `fail_submits` submissions are rejected, to exercise retry paths
        self._fail_submits = fail_submits
        self._fail_reason = fail_reason
        self._lock = threading.Lock()
        self._initiated: "OrderedDict[str, float]" = OrderedDict()
        self._by_idempotency_key: "OrderedDict[str, SubmitResult]" = OrderedDict()
        self.submissions: "deque[Dict[str, Any]]" = deque(maxlen=MAX_REMEMBERED)

    def get_interest_rates(self) -> List[InterestRate]:
        return [InterestRate(termMonths=t, ratePercent=r) for t, r in MOCK_INTEREST_RATES]

    def get_loan_products(self) -> List[LoanProduct]:
        return [LoanProduct.from_raw(p) for p in MOCK_LOAN_PRODUCTS]

    def submit_application(
        self, wizard: str, payload: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> SubmitResult:
        with self._lock:
            if idempotency_key and idempotency_key in self._by_idempotency_key:
                return self._by_idempotency_key[idempotency_key]
            if self._fail_submits > 0:
                self._fail_submits -= 1
                raise RemoteServiceError(self._fail_reason, status_code=503)
            if wizard == "deposit":
                _check_deposit(payload)
            result = SubmitResult(ok=True, referenceId=_reference_id(wizard))
            self.submissions.append({"wizard": wizard, "payload": payload, "referenceId": result.referenceId})
            if idempotency_key:
                _remember(self._by_idempotency_key, idempotency_key, result)
            return result

    def initiate_payment(self, deposit_id: str, amount: float, user_id: str) -> PaymentInitiation:
        now_ms = int(time.time() * 1000)
        query = "&".join([
            "store_id=nfl_test",
            f"amount={amount}",
            "currency=BDT",
            f"tran_id={deposit_id}_{now_ms}",
            f"success_url={quote(RETURN_BASE + '/success', safe='')}",
            f"fail_url={quote(RETURN_BASE + '/failed', safe='')}",
            f"cancel_url={quote(RETURN_BASE + '/cancel', safe='')}",
        ])
        txn_id = f"TXN_{now_ms}_{uuid.uuid4().hex[:9]}"
        with self._lock:
            _remember(self._initiated, txn_id, float(amount))
        return PaymentInitiation(gatewayUrl=f"{SANDBOX_GATEWAY}?{query}", txnId=txn_id)

    def verify_payment(self, txn_id: str) -> PaymentVerification:
        with self._lock:
            amount = self._initiated.get(txn_id)
        if amount is None:
            return PaymentVerification(status="failed")
        return PaymentVerification(
            status="success",
            amount=amount,
            transactionId=txn_id,
            paymentMethod="Visa Card ending in 1234",
            timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        )
