"""
Metrics Tracker - call and execution outcome monitoring

Tracks:
- External calls (supabase, bundler, clawnch) with response times
- Trade dispatch outcomes per execution mode (intent / session-key)

Lets operators compare intent-mode and session-key-mode failure rates.
"""

import logging
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

SLOW_CALL_MS = 2000
RECENT_LIMIT = 200


@dataclass
class OutcomeStats:
    """Aggregated outcome counts for one service or execution mode"""
    total: int = 0
    success_count: int = 0
    error_count: int = 0
    avg_duration_ms: float = 0
    last_error: Optional[str] = None
    last_error_time: Optional[str] = None
    last_success_time: Optional[str] = None

    _recent_durations: list = field(default_factory=list)

    def record(self, success: bool, duration_ms: float, error: Optional[str], at: str):
        self.total += 1
        if success:
            self.success_count += 1
            self.last_success_time = at
        else:
            self.error_count += 1
            self.last_error = error
            self.last_error_time = at

        self._recent_durations.append(duration_ms)
        if len(self._recent_durations) > 100:
            self._recent_durations.pop(0)
        self.avg_duration_ms = sum(self._recent_durations) / len(self._recent_durations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "success_rate": round(self.success_count / self.total * 100, 1) if self.total else 0,
            "avg_duration_ms": round(self.avg_duration_ms, 1),
            "last_error": self.last_error,
            "last_error_time": self.last_error_time,
            "last_success_time": self.last_success_time,
        }


class MetricsTracker:
    """
    Usage:
        start = time.time()
        resp = await client.post(url, json=payload)
        metrics.record_call('bundler', 'eth_sendUserOperation', True, time.time() - start)

        metrics.record_execution('intent', result.success, elapsed, result.error)
    """

    def __init__(self):
        self._calls: Dict[str, OutcomeStats] = defaultdict(OutcomeStats)
        self._executions: Dict[str, OutcomeStats] = defaultdict(OutcomeStats)
        self._recent_errors: List[Dict[str, Any]] = []
        self._started_at = time.time()

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    def _remember_error(self, kind: str, name: str, detail: str, error: Optional[str]):
        self._recent_errors.append({
            "kind": kind,
            "name": name,
            "detail": detail,
            "error": error,
            "timestamp": self._now(),
        })
        if len(self._recent_errors) > RECENT_LIMIT:
            self._recent_errors.pop(0)

    def record_call(
        self,
        service: str,
        endpoint: str,
        success: bool,
        duration_s: float,
        error: str = None
    ):
        """Record an external API call"""
        duration_ms = duration_s * 1000
        self._calls[service.lower()].record(success, duration_ms, error, self._now())
        if not success:
            self._remember_error("call", service, endpoint, error)
        if duration_ms > SLOW_CALL_MS:
            logger.warning(f"[Metrics] Slow call: {service} {endpoint} took {duration_ms:.0f}ms")

    def record_execution(
        self,
        execution_mode: str,
        success: bool,
        duration_s: float,
        error: str = None
    ):
        """Record a trade dispatch outcome keyed by execution mode"""
        self._executions[execution_mode].record(success, duration_s * 1000, error, self._now())
        if not success:
            self._remember_error("execution", execution_mode, "dispatch", error)

    def get_execution_stats(self, execution_mode: str) -> Dict[str, Any]:
        stats = self._executions.get(execution_mode)
        if stats is None:
            return {"execution_mode": execution_mode, "status": "no_data"}
        return {"execution_mode": execution_mode, **stats.to_dict()}

    def get_all_stats(self) -> Dict[str, Any]:
        return {
            "uptime_seconds": round(time.time() - self._started_at),
            "services": {name: s.to_dict() for name, s in self._calls.items()},
            "executions": {mode: s.to_dict() for mode, s in self._executions.items()},
            "recent_errors": list(reversed(self._recent_errors[-20:])),
        }

    def reset(self):
        self._calls.clear()
        self._executions.clear()
        self._recent_errors.clear()


# Global instance
metrics = MetricsTracker()
