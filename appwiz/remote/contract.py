"""
Remote Service contract.

The wizard only ever sees these shapes; transport details live in
`appwiz.remote.client` (HTTP) and `appwiz.remote.mock` (in-process mock API).
Every failure mode (network, timeout, non-2xx, {ok: false}) surfaces as
RemoteServiceError.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol


class RemoteServiceError(Exception):
    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


@dataclass(frozen=True)
class InterestRate:
    termMonths: int
    ratePercent: float

    @classmethod
    def from_raw(cls, raw: dict) -> "InterestRate":
        # The mobile backend historically called the percentage "rate".
        rate = raw.get("ratePercent", raw.get("rate"))
        return cls(termMonths=int(raw["termMonths"]), ratePercent=float(rate))


@dataclass(frozen=True)
class LoanProduct:
    id: str
    name: str
    tenorMin: int
    tenorMax: int
    indicativeRate: float
    description: str = ""

    @classmethod
    def from_raw(cls, raw: dict) -> "LoanProduct":
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name") or raw["id"]),
            tenorMin=int(raw["tenorMin"]),
            tenorMax=int(raw["tenorMax"]),
            indicativeRate=float(raw["indicativeRate"]),
            description=str(raw.get("description") or ""),
        )


@dataclass(frozen=True)
class SubmitResult:
    ok: bool
    referenceId: str


@dataclass(frozen=True)
class PaymentInitiation:
    gatewayUrl: str
    txnId: str


@dataclass(frozen=True)
class PaymentVerification:
    status: str  # success / failed / pending
    amount: Optional[float] = None
    transactionId: Optional[str] = None
    paymentMethod: Optional[str] = None
    timestamp: Optional[str] = None


class RemoteService(Protocol):
    def get_interest_rates(self) -> List[InterestRate]: ...

    def get_loan_products(self) -> List[LoanProduct]: ...

    def submit_application(
        self, wizard: str, payload: Dict[str, Any], idempotency_key: Optional[str] = None
    ) -> SubmitResult: ...

    def initiate_payment(self, deposit_id: str, amount: float, user_id: str) -> PaymentInitiation: ...

    def verify_payment(self, txn_id: str) -> PaymentVerification: ...
