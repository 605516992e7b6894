"""
Wizard Metrics Snapshot
-----------------------
Lightweight Redis counters for the submit transaction and draft persistence,
plus a single snapshot function consumed by GET /api/metrics.

Counters are best-effort: a Redis outage is logged and otherwise ignored, it
never changes the outcome of a wizard action.
"""
from __future__ import annotations
import time
from typing import List, Tuple
from redis.exceptions import RedisError
from appwiz.store.redis_conn import get_redis
from appwiz.settings import settings
from appwiz.observability.logging import log

# Keys (stable across restarts)
K_SUB_ATT  = "metrics:submit:attempts"           # INCR
K_SUB_OK   = "metrics:submit:succeeded"          # INCR
K_SUB_FAIL = "metrics:submit:failed"             # INCR
K_SUB_LAT  = "metrics:submit:latencies"          # LPUSH ms
K_SUB_FAIL_RECENT = "metrics:submit:failed_recent"  # LPUSH draft key (trim window)
K_DRAFT_WRITE_FAIL = "metrics:draft:write_failures"  # INCR

_MAX_SAMPLES = 500  # cap to bound percentile computation cost

def _percentile(data: List[float], p: float) -> float:
    """Deterministic percentile (nearest-rank on sorted data)."""
    if not data:
        return 0.0
    d = sorted(data)
    k = max(1, int(round(p * len(d))))
    return float(d[k - 1])

def _now_s() -> int:
    return int(time.time())

def _best_effort(op: str, fn) -> None:
    if not settings.METRICS_ENABLED:
        return
    try:
        fn(get_redis())
    except RedisError as e:
        log(event="metrics_write_failed", op=op, error=str(e)[:200])

def increment_submit_attempt() -> None:
    _best_effort("submit_attempt", lambda r: r.incr(K_SUB_ATT, 1))

def increment_submit_succeeded() -> None:
    _best_effort("submit_succeeded", lambda r: r.incr(K_SUB_OK, 1))

def record_submit_failure(draft_key: str) -> None:
    def _write(r):
        r.incr(K_SUB_FAIL, 1)
        if draft_key:
            r.lpush(K_SUB_FAIL_RECENT, draft_key)
            r.ltrim(K_SUB_FAIL_RECENT, 0, 49)  # keep last 50
    _best_effort("submit_failed", _write)

def record_submit_latency(ms: int) -> None:
    try:
        ms = int(ms)
    except (TypeError, ValueError):
        return
    def _write(r):
        r.lpush(K_SUB_LAT, ms)
        r.ltrim(K_SUB_LAT, 0, _MAX_SAMPLES - 1)
    _best_effort("submit_latency", _write)

def increment_draft_write_failure() -> None:
    _best_effort("draft_write_failure", lambda r: r.incr(K_DRAFT_WRITE_FAIL, 1))

def _decode(x) -> str:
    return x.decode("utf-8") if isinstance(x, (bytes, bytearray)) else str(x)

def _read_latency_list(r, key: str) -> List[float]:
    raw = r.lrange(key, 0, _MAX_SAMPLES - 1) or []
    out: List[float] = []
    for x in raw:
        try:
            out.append(float(_decode(x)) / 1000.0)  # seconds
        except ValueError:
            continue
    return out

def _p50_p95(latencies_s: List[float]) -> Tuple[float, float]:
    if not latencies_s:
        return 0.0, 0.0
    return _percentile(latencies_s, 0.50), _percentile(latencies_s, 0.95)

def get_snapshot() -> dict:
    """
    Return a dict shaped for dashboards.
    Fields:
      - submit_attempts, submit_succeeded, submit_failed, submit_success_rate
      - p50_submit_latency, p95_submit_latency (seconds, most recent samples)
      - draft_write_failures
      - recent_failed_submits (draft keys)
    Disabled metrics or a Redis outage yield {"available": False, ...} instead of an error.
    """
    if not settings.METRICS_ENABLED:
        return {"available": False, "reason": "metrics disabled", "snapshot_at": _now_s()}
    try:
        return _read_snapshot(get_redis())
    except RedisError as e:
        log(event="metrics_read_failed", error=str(e)[:200])
        return {"available": False, "reason": "metrics store unavailable", "snapshot_at": _now_s()}

def _read_snapshot(r) -> dict:
    att = int(r.get(K_SUB_ATT) or 0)
    ok = int(r.get(K_SUB_OK) or 0)
    failed = int(r.get(K_SUB_FAIL) or 0)
    rate = (ok / att) * 100.0 if att > 0 else 0.0

    p50, p95 = _p50_p95(_read_latency_list(r, K_SUB_LAT))

    recent_failed = [_decode(x) for x in (r.lrange(K_SUB_FAIL_RECENT, 0, 19) or [])]

    return {
        "available": True,
        "submit_attempts": att,
        "submit_succeeded": ok,
        "submit_failed": failed,
        "submit_success_rate": round(rate, 3),
        "p50_submit_latency": round(p50, 3),
        "p95_submit_latency": round(p95, 3),
        "draft_write_failures": int(r.get(K_DRAFT_WRITE_FAIL) or 0),
        "recent_failed_submits": recent_failed,
        "snapshot_at": _now_s(),
    }
