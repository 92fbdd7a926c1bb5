"""Derived telemetry values shared by anomaly detection and scoring."""

from typing import Optional

from .models import DeviceMetricsSample


def _percent(part: Optional[float], total: Optional[float]) -> Optional[float]:
    # A zero or missing total means the platform could not report it.
    if part is None or not total:
        return None
    return part / total * 100


def storage_percent_used(sample: DeviceMetricsSample) -> Optional[float]:
    """Percentage of storage in use, or None when it cannot be derived."""
    return _percent(sample.storage_used_gb, sample.storage_total_gb)


def ram_percent_used(sample: DeviceMetricsSample) -> Optional[float]:
    """Percentage of RAM in use, or None when it cannot be derived."""
    if sample.ram_available_mb is None or not sample.ram_total_mb:
        return None
    return _percent(sample.ram_total_mb - sample.ram_available_mb, sample.ram_total_mb)
