"""Process-local registry of live wizard controllers.

One controller per (wizard, client). Each has its own lock; route handlers
hold it for the whole action, so a second submit on the same wizard waits
and then sees SUBMITTED instead of sending twice.

The registry is a cache over the Draft Store: idle controllers and the least
recently used ones beyond MAX_LIVE_SESSIONS are dropped and rebuilt from the
persisted draft on the next request. Controllers handed out to a request are
never dropped.
"""

import threading
import time
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple

from appwiz.core.controller import WizardController
from appwiz.core.deposit_steps import DEPOSIT_WIZARD
from appwiz.core.errors import UnknownWizardError
from appwiz.core.loan_steps import LOAN_WIZARD
from appwiz.core.registry import WizardDefinition
from appwiz.observability.logging import log
from appwiz.remote.client import get_remote_service
from appwiz.settings import settings
from appwiz.store.draft_repo import draft_key, get_draft_store

WIZARDS: Dict[str, WizardDefinition] = {
    DEPOSIT_WIZARD.name: DEPOSIT_WIZARD,
    LOAN_WIZARD.name: LOAN_WIZARD,
}


@dataclass
class _Entry:
    controller: WizardController
    lock: threading.Lock = field(default_factory=threading.Lock)
    in_use: int = 0
    last_used: float = 0.0


_lock = threading.Lock()
# Least recently used first
_controllers: "OrderedDict[Tuple[str, str], _Entry]" = OrderedDict()


def _now() -> float:
    return time.monotonic()


def get_definition(wizard: str) -> WizardDefinition:
    try:
        return WIZARDS[wizard]
    except KeyError:
        raise UnknownWizardError(f"Unknown wizard: {wizard}") from None


def _create(definition: WizardDefinition, client_id: str) -> WizardController:
    ctl = WizardController(
        definition,
        store=get_draft_store(),
        remote=get_remote_service(),
        draft_key=draft_key(client_id, definition.draft_key),
    )
    ctl.refresh_reference_data()
    return ctl


def _checkout_locked(key: Tuple[str, str], entry: _Entry) -> _Entry:
    entry.in_use += 1
    entry.last_used = _now()
    _controllers.move_to_end(key)
    return entry


def _evict_locked(now: float) -> None:
    idle_limit = settings.SESSION_IDLE_SEC
    evicted = []
    for key, entry in list(_controllers.items()):
        over_capacity = len(_controllers) > settings.MAX_LIVE_SESSIONS
        idle = idle_limit > 0 and now - entry.last_used >= idle_limit
        if not (over_capacity or idle):
            break
        if entry.in_use:
            continue
        del _controllers[key]
        evicted.append(key)
    if evicted:
        log(event="controllers_evicted", count=len(evicted), live=len(_controllers))


@contextmanager
def controller_for(wizard: str, client_id: str) -> Iterator[WizardController]:
    """Yield the client's controller (creating it from the persisted draft) under its lock."""
    definition = get_definition(wizard)
    key = (definition.name, client_id)

    entry: Optional[_Entry]
    with _lock:
        entry = _controllers.get(key)
        if entry is not None:
            _checkout_locked(key, entry)

    if entry is None:
        # Draft read and reference-data lookups run without the registry lock
        fresh = _Entry(_create(definition, client_id))
        with _lock:
            entry = _checkout_locked(key, _controllers.setdefault(key, fresh))

    try:
        with entry.lock:
            yield entry.controller
    finally:
        with _lock:
            entry.in_use -= 1
            entry.last_used = _now()
            _evict_locked(entry.last_used)


def discard(wizard: str, client_id: str) -> bool:
    """Drop in-memory state; the last persisted draft stays in the store."""
    definition = get_definition(wizard)
    with _lock:
        return _controllers.pop((definition.name, client_id), None) is not None


def reset() -> None:
    """Clear all live controllers. Used for testing."""
    with _lock:
        _controllers.clear()
