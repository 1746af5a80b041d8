import threading
from collections import defaultdict
from typing import Any

_LOCK = threading.Lock()
_COUNTERS: dict[str, int] = defaultdict(int)
_LATENCIES: dict[str, dict[str, float]] = {}


def _key(name: str, labels: dict[str, Any]) -> str:
    if not labels:
        return name
    parts = ",".join(f"{k}={labels[k]}" for k in sorted(labels))
    return f"{name}{{{parts}}}"


def incr(name: str, value: int = 1, **labels: Any) -> None:
    with _LOCK:
        _COUNTERS[_key(name, labels)] += value


def observe_ms(name: str, duration_ms: float, **labels: Any) -> None:
    key = _key(name, labels)
    with _LOCK:
        bucket = _LATENCIES.setdefault(key, {"count": 0, "sum_ms": 0.0, "max_ms": 0.0})
        bucket["count"] += 1
        bucket["sum_ms"] += float(duration_ms)
        bucket["max_ms"] = max(bucket["max_ms"], float(duration_ms))


def snapshot() -> dict:
    with _LOCK:
        return {
            "counters": dict(_COUNTERS),
            "latencies": {k: dict(v) for k, v in _LATENCIES.items()},
        }


def reset() -> None:
    with _LOCK:
        _COUNTERS.clear()
        _LATENCIES.clear()
