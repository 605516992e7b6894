import copy
import json
import time
from dataclasses import fields as dc_fields
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

from appwiz.settings import settings
from appwiz.store.redis_conn import get_redis
from appwiz.store.models import ApplicationDraft
from appwiz.observability.logging import log


class DraftStore(Protocol):
    """Durable key-value persistence of one partially-filled application per key."""

    def get(self, key: str) -> Optional[ApplicationDraft]: ...

    def set(self, key: str, draft: ApplicationDraft) -> None: ...

    def clear(self, key: str) -> None: ...


def draft_key(client_id: str, wizard_key: str) -> str:
    return f"{settings.DRAFT_KEY_PREFIX}{client_id}:{wizard_key}"


def _iso_to_epoch(value) -> Optional[int]:
    if not isinstance(value, str) or not value.strip():
        return None
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


# Legacy clients keyed step data by screen ordinal.
LEGACY_STEP_IDS = {
    "deposit": {
        "0": "deposit_type",
        "1": "applicant_info",
        "2": "deposit_details",
        "3": "nominee_details",
        "4": "bank_details",
        "5": "payment_terms",
    },
    "loan": {
        "1": "choose_product",
        "3": "loan_details",
        "4": "employment_income",
        "5": "upload_documents",
        "6": "declarations",
    },
}

# Legacy field name -> current, per step
LEGACY_FIELDS = {
    "bank_details": {"autoPaymentSOD": "autoPayment"},
}


def wizard_for_key(key: str) -> str:
    suffix = key.rsplit(":", 1)[-1]
    if suffix == settings.DEPOSIT_DRAFT_KEY:
        return "deposit"
    if suffix == settings.LOAN_DRAFT_KEY:
        return "loan"
    return ""


def _rename_legacy_fields(step_id: str, values: dict) -> int:
    renamed = 0
    for old, new in LEGACY_FIELDS.get(step_id, {}).items():
        if old in values:
            value = values.pop(old)
            values.setdefault(new, value)
            renamed += 1
    return renamed


def _migrate_draft_data(data: dict, wizard: str = "") -> dict:
    """
    Backward-compat migration for stored drafts.

    Older clients wrote the bare step map ({"0": values, "1": values, ...,
    "lastUpdated": iso}) keyed by screen ordinal, instead of the
    {wizard, steps, stale, lastUpdatedAtEpoch} envelope keyed by step id.
    """
    wrapped_legacy = False
    removed_top_fields = 0
    renamed_fields = 0

    if "steps" not in data:
        legacy = dict(data)
        wizard = legacy.pop("wizard", "") or wizard
        ordinals = LEGACY_STEP_IDS.get(wizard, {})
        steps = {}
        for k, v in legacy.items():
            if isinstance(v, dict):
                steps[ordinals.get(k, k)] = copy.deepcopy(v)
        data = {
            "wizard": wizard,
            "steps": steps,
            "stale": [],
            "lastUpdatedAtEpoch": _iso_to_epoch(legacy.get("lastUpdated")),
        }
        wrapped_legacy = True

    allowed_top = {f.name for f in dc_fields(ApplicationDraft)}
    for k in list(data.keys()):
        if k not in allowed_top:
            del data[k]
            removed_top_fields += 1

    if not isinstance(data.get("steps"), dict):
        data["steps"] = {}
    if not isinstance(data.get("stale"), list):
        data["stale"] = []

    for step_id, values in data["steps"].items():
        if isinstance(values, dict):
            renamed_fields += _rename_legacy_fields(step_id, values)

    if wrapped_legacy or removed_top_fields or renamed_fields:
        log(
            event="draft_migrated",
            wizard=data.get("wizard") or "",
            wrappedLegacy=wrapped_legacy,
            removedTopFields=removed_top_fields,
            renamedFields=renamed_fields,
            stepCount=len(data["steps"]),
        )
    return data


def _decode_draft(raw: str, wizard: str = "") -> ApplicationDraft:
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("stored draft is not a JSON object")
    data = _migrate_draft_data(data, wizard=wizard)
    return ApplicationDraft(**data)


class RedisDraftStore:
    """Drafts as JSON strings under their draft key."""

    def __init__(self, redis=None, ttl_sec: Optional[int] = None):
        self._redis = redis
        self._ttl = settings.DRAFT_TTL_SEC if ttl_sec is None else ttl_sec

    def _r(self):
        return self._redis if self._redis is not None else get_redis()

    def get(self, key: str) -> Optional[ApplicationDraft]:
        raw = self._r().get(key)
        if not raw:
            return None
        return _decode_draft(raw, wizard=wizard_for_key(key))

    def set(self, key: str, draft: ApplicationDraft) -> None:
        draft.lastUpdatedAtEpoch = int(time.time())
        body = json.dumps(draft.to_dict())
        if self._ttl and self._ttl > 0:
            self._r().set(key, body, ex=int(self._ttl))
        else:
            self._r().set(key, body)

    def clear(self, key: str) -> None:
        self._r().delete(key)


class MemoryDraftStore:
    """Process-local store with the same contract; copies on the way in and out."""

    def __init__(self):
        self._items: Dict[str, dict] = {}

    def get(self, key: str) -> Optional[ApplicationDraft]:
        data = self._items.get(key)
        if data is None:
            return None
        return ApplicationDraft(**copy.deepcopy(data))

    def set(self, key: str, draft: ApplicationDraft) -> None:
        draft.lastUpdatedAtEpoch = int(time.time())
        self._items[key] = draft.to_dict()

    def clear(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self):
        return list(self._items.keys())


_memory_store = MemoryDraftStore()


def get_draft_store() -> DraftStore:
    if settings.DRAFT_STORE == "memory":
        return _memory_store
    return RedisDraftStore()
