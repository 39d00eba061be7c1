"""
Thread-safe in-memory metrics for the worker.

Counters cover job and item outcomes, gauges the current load, and a
short error log keeps the last failures for debugging. Everything resets
on restart.
"""

import time
import threading
from collections import defaultdict
from typing import Dict, List

_lock = threading.Lock()

_counters: Dict[str, int] = defaultdict(int)
_gauges: Dict[str, float] = defaultdict(float)

# ── Error log (last 50 errors) ────────────────────────────────────────────────
_recent_errors: List[dict] = []
MAX_ERRORS = 50


def inc_counter(name: str, amount: int = 1):
    """Increment a counter (e.g. 'jobs.submitted', 'videos.failed')."""
    with _lock:
        _counters[name] += amount


def set_gauge(name: str, value: float):
    with _lock:
        _gauges[name] = value


def add_gauge(name: str, delta: float):
    with _lock:
        _gauges[name] += delta


def record_error(source: str, error_type: str, message: str, job_id: str = ""):
    """Record an error for later inspection via /metrics."""
    with _lock:
        _recent_errors.append({
            "timestamp": time.time(),
            "source": source,
            "error_type": error_type,
            "message": message[:300],
            "job_id": job_id,
        })
        if len(_recent_errors) > MAX_ERRORS:
            _recent_errors.pop(0)


def get_snapshot() -> dict:
    now = time.time()
    with _lock:
        return {
            "timestamp": now,
            "counters": dict(_counters),
            "gauges": dict(_gauges),
            "recent_errors": list(_recent_errors[-10:]),
            "uptime_seconds": now - _gauges.get("start_time", now),
        }


def reset():
    """Clear all metrics (used by tests)."""
    with _lock:
        _counters.clear()
        _gauges.clear()
        _recent_errors.clear()
