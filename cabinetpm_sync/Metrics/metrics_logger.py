# metrics_logger.py
# Description: Sync metrics emitted as structured loguru records on a dedicated METRIC level
#
# Imports
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Union
#
# Third-party Imports
import psutil
from loguru import logger
#
# Local Imports
#
############################################################################################################
#
# Functions:

LabelValue = Union[str, int, float, bool]
LabelDict = Dict[str, LabelValue]

METRIC_LEVEL = "METRIC"

# Sinks select metrics by level name; Logging_Config routes them to their own file
try:
    logger.level(METRIC_LEVEL)
except ValueError:
    logger.level(METRIC_LEVEL, no=25, color="<blue>")


def _emit(name: str, kind: str, value: Any, labels: LabelDict):
    logger.bind(
        event=name,
        type=kind,
        value=value,
        labels=labels,
        timestamp=datetime.now(timezone.utc).isoformat(),
    ).log(METRIC_LEVEL, f"{kind} {name}={value} {labels}")


class MetricsLogger:
    """
    Emits counters, gauges and histograms carrying a fixed set of base labels.

    The coordinator keeps one instance labelled with its component and derives
    per-table children with `with_labels`, so every table phase is timed and
    counted under the same label scheme.
    """

    def __init__(self, base_labels: Optional[LabelDict] = None):
        self.base_labels: LabelDict = dict(base_labels or {})
        self._process: Optional[psutil.Process] = None

    def _labels(self, extra: Optional[LabelDict]) -> LabelDict:
        return {**self.base_labels, **(extra or {})}

    def with_labels(self, labels: LabelDict) -> "MetricsLogger":
        return MetricsLogger(self._labels(labels))

    def log_counter(self, name: str, value: int = 1, labels: Optional[LabelDict] = None):
        _emit(name, "counter", value, self._labels(labels))

    def log_gauge(self, name: str, value: float, labels: Optional[LabelDict] = None):
        _emit(name, "gauge", value, self._labels(labels))

    def log_histogram(self, name: str, value: float, labels: Optional[LabelDict] = None):
        _emit(name, "histogram", value, self._labels(labels))

    @contextmanager
    def timer(self, name: str, labels: Optional[LabelDict] = None) -> Iterator[None]:
        """
        Records the duration of the block as a histogram labelled with
        status "success" or "failure". Exceptions propagate unchanged.
        """
        started = time.perf_counter()
        status = "success"
        try:
            yield
        except Exception:
            status = "failure"
            raise
        finally:
            self.log_histogram(name, time.perf_counter() - started, {**(labels or {}), "status": status})

    def log_resource_usage(self, labels: Optional[LabelDict] = None):
        """Process memory (MB) and CPU (% since the previous call on this instance)."""
        if self._process is None:
            self._process = psutil.Process()
        self.log_gauge("process_memory_mb", self._process.memory_info().rss / (1024 ** 2), labels)
        self.log_gauge("process_cpu_percent", self._process.cpu_percent(interval=None), labels)

#
# End of metrics_logger.py
############################################################################################################
