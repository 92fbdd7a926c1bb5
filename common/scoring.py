"""Health score computation for device telemetry."""

import math
from typing import Dict, List, Tuple

from .models import DeviceMetricsSample
from .telemetry import ram_percent_used, storage_percent_used

BATTERY_WEIGHT = 0.4
STORAGE_WEIGHT = 0.3
RAM_WEIGHT = 0.3

BATTERY_HEALTH_PENALTY: Dict[str, float] = {
    "dead": 40,
    "overheat": 30,
    "over_voltage": 25,
    "unspecified_failure": 20,
    "cold": 15,
}


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def battery_subscore(sample: DeviceMetricsSample) -> float:
    penalty = BATTERY_HEALTH_PENALTY.get(sample.battery_health or "", 0)
    return _clamp(sample.battery_level - penalty)


def calculate_health_score(sample: DeviceMetricsSample) -> int:
    """Compute a 0-100 health score from whatever metric families are present.

    Battery, storage and RAM sub-scores are blended 40/30/30. When a family
    is missing the remaining weights are renormalized, so partial data is
    not penalized. A sample with no usable family scores 0.

    Args:
        sample: Raw telemetry submission.

    Returns:
        Integer score in [0, 100].
    """
    parts: List[Tuple[float, float]] = []

    if sample.battery_level is not None:
        parts.append((battery_subscore(sample), BATTERY_WEIGHT))

    storage_percent = storage_percent_used(sample)
    if storage_percent is not None:
        parts.append((_clamp(100 - storage_percent), STORAGE_WEIGHT))

    ram_percent = ram_percent_used(sample)
    if ram_percent is not None:
        parts.append((_clamp(100 - ram_percent), RAM_WEIGHT))

    total_weight = sum(weight for _, weight in parts)
    if total_weight == 0:
        return 0

    weighted = sum(subscore * weight for subscore, weight in parts) / total_weight
    return int(math.floor(_clamp(weighted) + 0.5))
