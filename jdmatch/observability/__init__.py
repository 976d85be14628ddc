"""Observability module for jdmatch"""
from .metrics import (
    MetricsCollector,
    get_metrics_collector,
    counter,
    histogram,
    timer,
    get_logger
)

__all__ = [
    'MetricsCollector',
    'get_metrics_collector',
    'counter',
    'histogram',
    'timer',
    'get_logger'
]
