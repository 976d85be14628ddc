"""In-process metrics and structured logging for jdmatch.

Counters and timings live in memory for the lifetime of the process: the CLI
prints them after an ingestion run and tests assert on them. Nothing is
exported to an external backend.

Metric names used across the package:
    ingestion.document_success / ingestion.document_failure (tag: stage)
    ingestion.download_failure / ingestion.move_failure / ingestion.embedding_failure
    llm.retry.throttled
    llm.output.repaired (tag: repair) / llm.output.unparseable
    extraction.success / extraction.malformed_output / extraction.invalid_tags (tag: mode)
    scoring.hallucinated_filename / scoring.malformed_output
    matching.queries / matching.jd_tags_unavailable
Timers record ``<name>.duration_ms`` samples.
"""
from __future__ import annotations
import json
import logging
import threading
import time
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

TagKey = Tuple[Tuple[str, str], ...]


def _tag_key(tags: Optional[Dict[str, str]]) -> TagKey:
    return tuple(sorted((tags or {}).items()))


class MetricsCollector:
    """Thread-safe counters and duration samples, keyed by name and tags."""

    def __init__(self):
        self._counters: Dict[str, Dict[TagKey, float]] = defaultdict(lambda: defaultdict(float))
        self._samples: Dict[str, List[float]] = defaultdict(list)
        self._lock = threading.Lock()

    def counter(self, name: str, value: float = 1.0, tags: Optional[Dict[str, str]] = None) -> None:
        with self._lock:
            self._counters[name][_tag_key(tags)] += value

    def histogram(self, name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
        # Tags are accepted for call-site symmetry; samples are pooled per name
        with self._lock:
            self._samples[name].append(value)

    def timer(self, name: str, tags: Optional[Dict[str, str]] = None):
        """Context manager that records ``<name>.duration_ms``."""
        return TimerContext(self, name, tags or {})

    def total(self, name: str) -> float:
        """Sum of a counter over every tag combination."""
        with self._lock:
            return sum(self._counters.get(name, {}).values())

    def by_tag(self, name: str, tag: str) -> Dict[str, float]:
        """Counter totals grouped by the value of one tag."""
        grouped: Dict[str, float] = defaultdict(float)
        with self._lock:
            for key, value in self._counters.get(name, {}).items():
                grouped[dict(key).get(tag, "")] += value
        return dict(grouped)

    def get_stats(self) -> Dict[str, Any]:
        """Counter totals and sample summaries, by metric name"""
        with self._lock:
            stats: Dict[str, Any] = {
                name: {'type': 'counter', 'total': sum(per_tag.values())}
                for name, per_tag in self._counters.items()
            }
            for name, values in self._samples.items():
                if values:
                    stats[name] = {
                        'type': 'histogram',
                        'count': len(values),
                        'avg': sum(values) / len(values),
                        'max': max(values),
                    }
            return stats

    def clear(self) -> None:
        with self._lock:
            self._counters.clear()
            self._samples.clear()


class TimerContext:
    """Context manager for measuring operation duration"""

    def __init__(self, collector: MetricsCollector, name: str, tags: Dict[str, str]):
        self.collector = collector
        self.name = name
        self.tags = tags
        self.start_time: Optional[float] = None

    def __enter__(self):
        self.start_time = time.monotonic()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            elapsed_ms = (time.monotonic() - self.start_time) * 1000
            self.collector.histogram(f"{self.name}.duration_ms", elapsed_ms, self.tags)


_global_metrics = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance"""
    return _global_metrics


def counter(name: str, value: float = 1.0, tags: Optional[Dict[str, str]] = None) -> None:
    _global_metrics.counter(name, value, tags)


def histogram(name: str, value: float, tags: Optional[Dict[str, str]] = None) -> None:
    _global_metrics.histogram(name, value, tags)


def timer(name: str, tags: Optional[Dict[str, str]] = None):
    return _global_metrics.timer(name, tags)


class StructuredLogger:
    """``logging.Logger`` facade taking keyword context.

    ``logger.info("Done", key=key, processed=3)`` logs
    ``Done | {"key": ..., "processed": 3}`` through the standard logging
    machinery, so level and handler configuration still apply.
    """

    def __init__(self, name: str = "jdmatch"):
        self.name = name
        self._logger = logging.getLogger(name)

    def debug(self, msg: str, **context) -> None:
        self._emit(logging.DEBUG, msg, context)

    def info(self, msg: str, **context) -> None:
        self._emit(logging.INFO, msg, context)

    def warning(self, msg: str, **context) -> None:
        self._emit(logging.WARNING, msg, context)

    def error(self, msg: str, **context) -> None:
        self._emit(logging.ERROR, msg, context)

    def _emit(self, level: int, msg: str, context: Dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        if not context:
            self._logger.log(level, msg)
            return
        self._logger.log(level, "%s | %s", msg, json.dumps(context, default=str))


def get_logger(name: str = "jdmatch") -> StructuredLogger:
    return StructuredLogger(name)
