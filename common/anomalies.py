"""Threshold-based anomaly detection for device telemetry."""

from typing import Dict, List

from .models import Anomaly, DeviceHealthSettings, DeviceMetricsSample, Severity
from .telemetry import ram_percent_used, storage_percent_used

# Not configurable per centro.
RAM_CRITICAL_PERCENT = 90

HEALTHY_BATTERY_STATES = {"good", "unknown"}

BATTERY_HEALTH_SEVERITY: Dict[str, Severity] = {
    "overheat": Severity.HIGH,
    "dead": Severity.CRITICAL,
    "over_voltage": Severity.HIGH,
    "cold": Severity.MEDIUM,
    "unspecified_failure": Severity.HIGH,
}


def detect_anomalies(
    sample: DeviceMetricsSample, settings: DeviceHealthSettings
) -> List[Anomaly]:
    """Detect anomalies in a telemetry sample.

    Checks run in a fixed order (battery level, battery health, storage,
    RAM) and are independent of each other, so several may fire at once.

    Args:
        sample: Raw telemetry submission.
        settings: Thresholds for the centro.

    Returns:
        List of detected anomalies, possibly empty.
    """
    anomalies: List[Anomaly] = []

    level = sample.battery_level
    if level is not None:
        if level <= settings.battery_critical_threshold:
            anomalies.append(
                Anomaly(
                    type="battery_critical",
                    severity=Severity.CRITICAL,
                    message=f"Critical battery level: {level:g}%",
                )
            )
        elif level <= settings.battery_warning_threshold:
            anomalies.append(
                Anomaly(
                    type="battery_low",
                    severity=Severity.MEDIUM,
                    message=f"Low battery level: {level:g}%",
                )
            )

    health = sample.battery_health
    if health and health not in HEALTHY_BATTERY_STATES:
        anomalies.append(
            Anomaly(
                type="battery_health",
                severity=BATTERY_HEALTH_SEVERITY.get(health, Severity.MEDIUM),
                message=f"Battery problem detected: {health}",
            )
        )

    storage_percent = storage_percent_used(sample)
    if storage_percent is not None:
        if storage_percent >= settings.storage_critical_threshold:
            anomalies.append(
                Anomaly(
                    type="storage_critical",
                    severity=Severity.CRITICAL,
                    message=f"Storage almost full: {storage_percent:.1f}% used",
                )
            )
        elif storage_percent >= settings.storage_warning_threshold:
            anomalies.append(
                Anomaly(
                    type="storage_warning",
                    severity=Severity.MEDIUM,
                    message=f"Storage running low: {storage_percent:.1f}% used",
                )
            )

    ram_percent = ram_percent_used(sample)
    if ram_percent is not None and ram_percent >= RAM_CRITICAL_PERCENT:
        anomalies.append(
            Anomaly(
                type="ram_critical",
                severity=Severity.HIGH,
                message=f"RAM almost exhausted: {ram_percent:.1f}% used",
            )
        )

    return anomalies
