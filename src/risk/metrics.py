"""Runtime counters for the risk engine.

Thread-safe counters that accumulate during runtime and can be read by
the stats line logged after every pattern sweep.
"""

import time
from collections import Counter
from threading import Lock


class MonitorMetrics:
    """Metrics accumulator for one engine instance.

    Guarded by a simple lock: updates come from the event loop but the
    summary may be read from another thread (health checks, REPL).
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._start_time: float = time.monotonic()
        self._cycles: int = 0
        self._cycle_latency_ms: float = 0.0
        self._max_cycle_latency_ms: float = 0.0
        self._skipped_ticks: int = 0
        self._reschedules: int = 0
        self._rugs: int = 0
        self._analyses: int = 0
        self._alerts_sent: int = 0
        self._alerts_failed: int = 0
        self._persistence_failures: int = 0
        self._source_errors: Counter[str] = Counter()
        self._patterns: Counter[str] = Counter()

    def record_cycle(self, latency_ms: float) -> None:
        with self._lock:
            self._cycles += 1
            self._cycle_latency_ms += latency_ms
            if latency_ms > self._max_cycle_latency_ms:
                self._max_cycle_latency_ms = latency_ms

    def record_skipped_tick(self) -> None:
        with self._lock:
            self._skipped_ticks += 1

    def record_reschedule(self) -> None:
        with self._lock:
            self._reschedules += 1

    def record_source_error(self, source: str) -> None:
        with self._lock:
            self._source_errors[source] += 1

    def record_rug(self) -> None:
        with self._lock:
            self._rugs += 1

    def record_analysis(self, pattern_types: list[str]) -> None:
        with self._lock:
            self._analyses += 1
            self._patterns.update(pattern_types)

    def record_alert(self, *, ok: bool) -> None:
        with self._lock:
            if ok:
                self._alerts_sent += 1
            else:
                self._alerts_failed += 1

    def record_persistence_failure(self) -> None:
        with self._lock:
            self._persistence_failures += 1

    def get_summary(self) -> dict:
        """Return a snapshot of all counters."""
        with self._lock:
            uptime = time.monotonic() - self._start_time
            avg_latency = self._cycle_latency_ms / self._cycles if self._cycles else 0.0
            return {
                "uptime_sec": round(uptime),
                "cycles": self._cycles,
                "cycles_per_min": round(self._cycles / max(uptime / 60, 1), 1),
                "avg_cycle_latency_ms": round(avg_latency),
                "max_cycle_latency_ms": round(self._max_cycle_latency_ms),
                "skipped_ticks": self._skipped_ticks,
                "reschedules": self._reschedules,
                "rugs_detected": self._rugs,
                "analyses": self._analyses,
                "patterns": dict(self._patterns),
                "alerts_sent": self._alerts_sent,
                "alerts_failed": self._alerts_failed,
                "persistence_failures": self._persistence_failures,
                "source_errors": dict(self._source_errors),
            }

    def format_stats_line(self) -> str:
        """One-line summary for the periodic stats log."""
        with self._lock:
            uptime = time.monotonic() - self._start_time
            rate = self._cycles / max(uptime / 60, 1)
            errors = sum(self._source_errors.values())
            return (
                f"cycles={self._cycles} rate={rate:.1f}/min "
                f"skipped={self._skipped_ticks} resched={self._reschedules} "
                f"rugs={self._rugs} analyses={self._analyses} "
                f"alerts={self._alerts_sent}/{self._alerts_sent + self._alerts_failed} "
                f"errors={errors}"
            )
