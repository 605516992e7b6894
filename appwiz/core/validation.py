"""
Validation result type and the small field checks the step validators are
built from.

Every check writes at most one message per field path into an `errors` dict
and never raises; a step validator returns ValidationResult.from_errors(errors).
"""
import math
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# Ceiling for money amounts; keeps derived previews within Decimal precision
MAX_AMOUNT = 10 ** 12


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    field_errors: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def failed(cls, errors: Dict[str, str]) -> "ValidationResult":
        return cls(valid=False, field_errors=MappingProxyType(dict(errors)))

    @classmethod
    def from_errors(cls, errors: Dict[str, str]) -> "ValidationResult":
        return cls.failed(errors) if errors else cls.ok()

    def to_dict(self) -> dict:
        return {"valid": self.valid, "fieldErrors": dict(self.field_errors)}


def add_error(errors: Dict[str, str], path: str, message: str) -> None:
    # First failure wins per path; aggregate rules use their own group key.
    errors.setdefault(path, message)


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def as_number(value: Any) -> Optional[float]:
    """Finite numbers only; bools, numeric strings, NaN and infinities are not accepted."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        n = float(value)
    except OverflowError:
        return None
    if not math.isfinite(n):
        return None
    return n


def as_int(value: Any) -> Optional[int]:
    n = as_number(value)
    if n is None or not n.is_integer():
        return None
    return int(n)


def check_text(errors, values: Mapping, key: str, label: str, min_len: int = 1,
               max_len: Optional[int] = None, optional: bool = False, path: Optional[str] = None) -> None:
    path = path or key
    v = values.get(key)
    if is_blank(v):
        if not optional:
            add_error(errors, path, f"{label} is required")
        return
    if not isinstance(v, str):
        add_error(errors, path, f"{label} must be text")
        return
    n = len(v.strip())
    if n < min_len:
        add_error(errors, path, f"{label} must be at least {min_len} characters")
    elif max_len is not None and n > max_len:
        add_error(errors, path, f"{label} must be less than {max_len} characters")


def check_email(errors, values: Mapping, key: str = "email") -> None:
    v = values.get(key)
    if is_blank(v):
        return
    if not isinstance(v, str) or not EMAIL_RE.match(v.strip()):
        add_error(errors, key, "Invalid email format")


def check_positive(errors, values: Mapping, key: str, label: str, hi: float = MAX_AMOUNT) -> Optional[float]:
    raw = values.get(key)
    if raw is None:
        add_error(errors, key, f"{label} is required")
        return None
    n = as_number(raw)
    if n is None:
        add_error(errors, key, f"{label} must be a number")
        return None
    if n <= 0:
        add_error(errors, key, f"{label} must be greater than 0")
        return None
    if n > hi:
        add_error(errors, key, f"{label} must be at most {hi:,}")
        return None
    return n


def check_int_range(errors, values: Mapping, key: str, label: str, lo: Optional[int] = None,
                    hi: Optional[int] = None, optional: bool = False, path: Optional[str] = None) -> Optional[int]:
    path = path or key
    raw = values.get(key)
    if raw is None:
        if not optional:
            add_error(errors, path, f"{label} is required")
        return None
    n = as_int(raw)
    if n is None:
        add_error(errors, path, f"{label} must be a whole number")
        return None
    if lo is not None and n < lo:
        add_error(errors, path, f"{label} must be at least {lo}")
        return None
    if hi is not None and n > hi:
        add_error(errors, path, f"{label} must be at most {hi}")
        return None
    return n


def check_choice(errors, values: Mapping, key: str, choices: Iterable, message: str) -> Any:
    v = values.get(key)
    if is_blank(v) or v not in tuple(choices):
        add_error(errors, key, message)
        return None
    return v


def check_accepted(errors, values: Mapping, key: str, message: str) -> None:
    if values.get(key) is not True:
        add_error(errors, key, message)
