"""
Collector Agent - Telemetry Package

Samples host metrics for delivery to the collector server.
"""

from .collector import MetricSampler

__all__ = ["MetricSampler"]
