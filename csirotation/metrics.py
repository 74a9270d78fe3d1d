"""Metrics backend selection and the rotation reconciler's stats reporter."""

from __future__ import annotations

import logging
import sys
import threading
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Mapping, Optional, Union

logger = logging.getLogger(__name__)

PROMETHEUS_BACKEND = "prometheus"

DEFAULT_HISTOGRAM_BOUNDARIES = (
    0.1, 0.2, 0.3, 0.4, 0.5, 1.0, 1.5, 2.0, 2.5, 3.0, 5.0, 10.0, 15.0, 30.0,
)

ROTATION_RECONCILE_TOTAL = "total_rotation_reconcile"
ROTATION_RECONCILE_ERROR_TOTAL = "total_rotation_reconcile_error"
ROTATION_RECONCILE_DURATION = "rotation_reconcile_duration_sec"

PROVIDER_KEY = "provider"
ERROR_KEY = "error_type"
OS_TYPE_KEY = "os_type"
ROTATED_KEY = "rotated"

LabelValue = Union[str, bool]


class UnsupportedBackendError(ValueError):
    """Raised when a metrics backend other than Prometheus is requested."""


@dataclass(frozen=True)
class ExporterConfig:
    """The metrics backend in use and its histogram bucket boundaries."""

    backend: str
    histogram_boundaries: tuple[float, ...]


def init_metrics_exporter(backend: str = "Prometheus") -> ExporterConfig:
    """Select the metrics backend; Prometheus is the only one supported."""
    name = backend.lower()
    logger.info("initializing metrics backend (backend=%s)", name)
    if name == PROMETHEUS_BACKEND:
        return ExporterConfig(name, DEFAULT_HISTOGRAM_BOUNDARIES)
    raise UnsupportedBackendError(f"unsupported metrics backend {backend}")


def _runtime_os() -> str:
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform.startswith("linux"):
        return "linux"
    return sys.platform


def _label_key(labels: Mapping[str, LabelValue]) -> frozenset[tuple[str, str]]:
    def text(value: LabelValue) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    return frozenset((key, text(value)) for key, value in labels.items())


class StatsReporter:
    """Counts rotation reconciles, their errors and their durations."""

    def __init__(self, os_type: Optional[str] = None):
        self.os_type = os_type or _runtime_os()
        self._lock = threading.Lock()
        self._counts: Counter[tuple[str, frozenset[tuple[str, str]]]] = Counter()
        self._durations: defaultdict[frozenset[tuple[str, str]], list[float]] = defaultdict(list)

    def _add(self, name: str, labels: Mapping[str, LabelValue]) -> None:
        with self._lock:
            self._counts[(name, _label_key(labels))] += 1

    def report_rotation_count(self, provider: str, was_rotated: bool) -> None:
        """Count one completed rotation reconcile."""
        self._add(
            ROTATION_RECONCILE_TOTAL,
            {PROVIDER_KEY: provider, OS_TYPE_KEY: self.os_type, ROTATED_KEY: was_rotated},
        )

    def report_rotation_error_count(
        self, provider: str, error_type: str, was_rotated: bool
    ) -> None:
        """Count one rotation reconcile that ended in an error."""
        self._add(
            ROTATION_RECONCILE_ERROR_TOTAL,
            {
                PROVIDER_KEY: provider,
                ERROR_KEY: error_type,
                OS_TYPE_KEY: self.os_type,
                ROTATED_KEY: was_rotated,
            },
        )

    def report_rotation_duration(self, duration: float) -> None:
        """Record how long one rotation took, in seconds."""
        key = _label_key({OS_TYPE_KEY: self.os_type})
        with self._lock:
            self._counts[(ROTATION_RECONCILE_DURATION, key)] += 1
            self._durations[key].append(float(duration))

    def count(self, name: str, labels: Mapping[str, LabelValue]) -> int:
        """How often the metric was reported with exactly these labels."""
        with self._lock:
            return self._counts[(name, _label_key(labels))]

    @property
    def durations(self) -> list[float]:
        """All recorded rotation durations for this reporter's OS, in order."""
        with self._lock:
            return list(self._durations[_label_key({OS_TYPE_KEY: self.os_type})])