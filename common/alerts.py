"""Alert and loyalty decisions derived from health evaluations."""

from typing import List, Optional, Sequence

from .anomalies import RAM_CRITICAL_PERCENT
from .models import (
    Anomaly,
    DeviceHealthSettings,
    HealthAlert,
    HealthBadge,
    HealthLogRecord,
    Severity,
)

DEFAULT_RECOMMENDED_ACTION = "Book a free diagnosis"

FIRST_CHECKUP_COUNT = 1
DEVICE_GUARDIAN_COUNT = 6

BADGE_DEFINITIONS = {
    "first_checkup": {
        "badge_name": "First Check-up",
        "badge_description": "You completed your first device check-up!",
        "badge_icon": "\U0001f3af",
    },
    "device_guardian": {
        "badge_name": "Device Guardian",
        "badge_description": (
            "You completed 6+ check-ups! You are a true guardian of your device."
        ),
        "badge_icon": "\U0001f6e1\ufe0f",
    },
}

DEGRADED_BATTERY_STATES = {"poor", "critical", "replace"}


def discount_code(percent: int) -> Optional[str]:
    return f"HEALTH{percent}" if percent > 0 else None


def build_health_alert(
    score: int,
    anomalies: Sequence[Anomaly],
    settings: DeviceHealthSettings,
    customer_id: str,
    centro_id: str,
    device_id: Optional[str] = None,
    log_id: Optional[str] = None,
    quiz_id: Optional[str] = None,
) -> Optional[HealthAlert]:
    """Decide whether an evaluation warrants a customer alert.

    The score-based template applies first (critical, then warning). A
    critical-severity anomaly then overrides type, title and message while
    keeping the discount chosen by the score. Nothing is produced when no
    template applies.

    Args:
        score: Health score of the evaluation.
        anomalies: Anomalies detected for the evaluation.
        settings: Thresholds and discount policy for the centro.
        customer_id: Customer the alert is addressed to.
        centro_id: Centro issuing the alert.
        device_id: Device the evaluation refers to, if known.
        log_id: Originating health log, if any.
        quiz_id: Originating diagnostic quiz, if any.

    Returns:
        A pending HealthAlert, or None.
    """
    if score >= settings.health_score_warning_threshold and not anomalies:
        return None

    alert_type = "general_warning"
    severity = Severity.LOW
    title = ""
    message = ""
    discount = 0

    if score < settings.health_score_critical_threshold:
        alert_type = "performance_low"
        severity = Severity.CRITICAL
        title = "Urgent attention required"
        message = (
            f"Your device scored {score}/100 on its health check. "
            "We recommend an in-depth diagnosis."
        )
        if settings.auto_discount_on_critical:
            discount = settings.critical_discount_percent
    elif score < settings.health_score_warning_threshold:
        severity = Severity.MEDIUM
        title = "Check-up recommended"
        message = f"Your device shows some warning signs (score: {score}/100)."
        if settings.auto_discount_on_critical:
            discount = settings.warning_discount_percent

    critical = next((a for a in anomalies if a.severity == Severity.CRITICAL), None)
    if critical is not None:
        alert_type = critical.type
        severity = Severity.CRITICAL
        title = "Critical problem detected"
        message = critical.message

    if not title:
        return None

    return HealthAlert(
        customer_id=customer_id,
        centro_id=centro_id,
        device_id=device_id,
        device_health_log_id=log_id,
        diagnostic_quiz_id=quiz_id,
        alert_type=alert_type,
        severity=severity,
        title=title,
        message=message,
        recommended_action=DEFAULT_RECOMMENDED_ACTION,
        discount_offered=discount,
        discount_code=discount_code(discount),
    )


def make_badge(customer_id: str, centro_id: str, badge_type: str) -> HealthBadge:
    return HealthBadge(
        customer_id=customer_id,
        centro_id=centro_id,
        badge_type=badge_type,
        **BADGE_DEFINITIONS[badge_type],
    )


def badges_for_checkup_count(
    total_checkups: int, customer_id: str, centro_id: str
) -> List[HealthBadge]:
    """Badges earned at a given total of logs plus quizzes.

    Each milestone is checked on its own; awarding is idempotent at the
    store, so returning an already-held badge is harmless.
    """
    badges = []
    if total_checkups == FIRST_CHECKUP_COUNT:
        badges.append(make_badge(customer_id, centro_id, "first_checkup"))
    if total_checkups >= DEVICE_GUARDIAN_COUNT:
        badges.append(make_badge(customer_id, centro_id, "device_guardian"))
    return badges


def evaluate_stored_log(
    log: HealthLogRecord, settings: DeviceHealthSettings
) -> List[HealthAlert]:
    """Re-analyze a stored health log and propose one alert per condition.

    Used by the periodic alert scanner. Unlike ``build_health_alert`` every
    matching condition yields its own alert, each with a recommended action
    and the discount matching its severity.
    """
    device_name = log.device_model_info or log.device_manufacturer or "device"
    critical_discount = settings.critical_discount_percent
    warning_discount = settings.warning_discount_percent
    proposals = []

    def propose(alert_type, severity, title, message, action, discount=0):
        proposals.append(
            HealthAlert(
                customer_id=log.customer_id,
                centro_id=log.centro_id,
                device_id=log.device_id,
                device_health_log_id=log.id,
                alert_type=alert_type,
                severity=severity,
                title=title,
                message=message,
                recommended_action=action,
                discount_offered=discount,
                discount_code=discount_code(discount),
            )
        )

    level = log.battery_level
    if level is not None:
        if level <= settings.battery_critical_threshold:
            propose(
                "battery_critical",
                Severity.CRITICAL,
                "Critical battery detected",
                f"Your {device_name} has only {level:g}% battery. Running the "
                "battery flat often can damage it permanently.",
                "Have the battery checked at the centro",
                critical_discount,
            )
        elif level <= settings.battery_warning_threshold:
            propose(
                "battery_warning",
                Severity.MEDIUM,
                "Low battery",
                f"Your {device_name} has {level:g}% battery. Consider charging "
                "soon to preserve battery health.",
                "Battery check-up recommended",
                warning_discount,
            )

    if log.battery_health and log.battery_health.lower() in DEGRADED_BATTERY_STATES:
        propose(
            "battery_degraded",
            Severity.CRITICAL,
            "Degraded battery",
            f"The battery of your {device_name} shows signs of wear "
            f"({log.battery_health}). It may need replacing.",
            "Battery replacement recommended",
            critical_discount,
        )

    storage = log.storage_percent_used
    if storage is not None:
        if storage >= settings.storage_critical_threshold:
            propose(
                "storage_critical",
                Severity.CRITICAL,
                "Storage almost full",
                f"Your {device_name} has {storage:.0f}% of its storage in use. "
                f"Space left: {(log.storage_available_gb or 0):.1f} GB. The device "
                "may slow down significantly.",
                "Storage cleanup and optimization",
                critical_discount,
            )
        elif storage >= settings.storage_warning_threshold:
            propose(
                "storage_warning",
                Severity.MEDIUM,
                "Storage running out",
                f"Your {device_name} is running out of space ({storage:.0f}% used). "
                "Consider freeing some up.",
                "Cleanup and optimization",
                warning_discount,
            )

    score = log.health_score
    if score <= settings.health_score_critical_threshold:
        propose(
            "health_critical",
            Severity.CRITICAL,
            "Critical device health",
            f"The health score of your {device_name} is {score}/100. We recommend "
            "a full check-up to identify the problems.",
            "Urgent full diagnostics",
            critical_discount,
        )
    elif score <= settings.health_score_warning_threshold:
        propose(
            "health_warning",
            Severity.MEDIUM,
            "Device health needs monitoring",
            f"The health score of your {device_name} is {score}/100. A preventive "
            "check-up could avoid future problems.",
            "Preventive check-up recommended",
            warning_discount,
        )

    ram = log.ram_percent_used
    if ram is not None and ram >= RAM_CRITICAL_PERCENT:
        propose(
            "ram_critical",
            Severity.MEDIUM,
            "RAM under pressure",
            f"Your {device_name} is using {ram:.0f}% of its RAM. Too many open apps "
            "can slow the device down.",
            "Background app optimization",
        )

    return proposals
