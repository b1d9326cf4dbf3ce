"""
Drawer Observability Metrics
Recompute counts, mutation outcomes and phase timings for the drawer engine
"""
from typing import Dict, List, Any, Optional
import logging
import time
from collections import defaultdict, deque
from dataclasses import dataclass
import statistics
import threading
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


@dataclass
class PhaseMetric:
    """Metrics for a single engine phase"""
    phase_name: str
    start_time: float
    end_time: float = 0.0
    duration_ms: float = 0.0
    success: bool = False
    error_message: Optional[str] = None


class DrawerMetrics:
    """Collects and aggregates drawer engine metrics"""

    def __init__(self, history_size: int = 500):
        self.phase_timings = defaultdict(lambda: deque(maxlen=history_size))  # phase_name -> [duration_ms]
        self.mutation_statuses = defaultdict(int)  # status -> count
        self.counters = {
            "recomputations": 0,
            "master_list_builds": 0,
            "cart_fetches": 0,
            "cart_fetch_failures": 0,
            "telemetry_sent": 0,
            "telemetry_failed": 0,
        }
        self.last_recompute_revision: Optional[int] = None

        self._lock = threading.Lock()

        # Phases slower than this are logged
        self.max_phase_duration_ms = {
            "cart_fetch": 3000,
            "master_list": 4000,
            "recompute": 200,
        }

    def increment(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            self.counters[counter] = self.counters.get(counter, 0) + amount

    def record_recompute(self, revision: int) -> None:
        with self._lock:
            self.counters["recomputations"] += 1
            self.last_recompute_revision = revision

    def record_mutation(self, status: str) -> None:
        with self._lock:
            self.mutation_statuses[status] += 1

    @property
    def recomputations(self) -> int:
        return self.counters["recomputations"]

    @asynccontextmanager
    async def phase_timer(self, phase_name: str):
        """Context manager for timing engine phases"""
        phase_metric = PhaseMetric(phase_name=phase_name, start_time=time.perf_counter())
        try:
            yield phase_metric
            phase_metric.success = True
        except Exception as e:
            phase_metric.error_message = str(e)
            logger.error(f"Phase {phase_name} failed: {e}")
            raise
        finally:
            phase_metric.end_time = time.perf_counter()
            phase_metric.duration_ms = (phase_metric.end_time - phase_metric.start_time) * 1000
            with self._lock:
                self.phase_timings[phase_name].append(phase_metric.duration_ms)
            self._check_phase_performance(phase_name, phase_metric.duration_ms)

    def get_phase_diagnostics(self, phase_name: Optional[str] = None) -> Dict[str, Any]:
        diagnostics = {}
        with self._lock:
            phases = [phase_name] if phase_name else list(self.phase_timings.keys())
            for phase in phases:
                timings = list(self.phase_timings.get(phase, ()))
                if timings:
                    diagnostics[phase] = self._calculate_phase_stats(timings)
        return diagnostics

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            counters = dict(self.counters)
            mutations = dict(self.mutation_statuses)
        return {
            "counters": counters,
            "mutations": mutations,
            "phases": self.get_phase_diagnostics(),
        }

    # Private helper methods

    def _calculate_phase_stats(self, timings: List[float]) -> Dict[str, Any]:
        return {
            "count": len(timings),
            "avg_ms": round(statistics.mean(timings), 2),
            "median_ms": round(statistics.median(timings), 2),
            "p95_ms": round(self._percentile(timings, 95), 2),
            "max_ms": round(max(timings), 2),
        }

    def _percentile(self, data: List[float], percentile: float) -> float:
        """Calculate percentile of data"""
        if not data:
            return 0
        sorted_data = sorted(data)
        index = (percentile / 100) * (len(sorted_data) - 1)
        if index.is_integer():
            return sorted_data[int(index)]
        lower = sorted_data[int(index)]
        upper = sorted_data[int(index) + 1]
        return lower + (upper - lower) * (index - int(index))

    def _check_phase_performance(self, phase_name: str, duration_ms: float):
        threshold = self.max_phase_duration_ms.get(phase_name, 5000)
        if duration_ms > threshold:
            logger.warning(f"Phase {phase_name} exceeded threshold: {duration_ms:.2f}ms > {threshold}ms")
