"""Lambda handler for scanning stored health logs and raising alerts."""

import json
from datetime import timedelta
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from common.alerts import evaluate_stored_log
from common.config import settings
from common.logging_utils import setup_logger
from common.models import DeviceHealthSettings, HealthAlert, HealthLogRecord, utcnow
from common.notifications import NotificationDispatcher, StoreNotificationDispatcher
from common.store import HealthStore

logger = setup_logger(__name__)

store = HealthStore()
dispatcher: NotificationDispatcher = StoreNotificationDispatcher(store)


def clean_nan_values(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert numpy scalars to Python types and NaN to None for JSON.

    Args:
        data: Dictionary that may contain numpy values or NaN.

    Returns:
        Dictionary safe to pass to json.dumps.
    """
    cleaned = {}
    for key, value in data.items():
        if isinstance(value, dict):
            cleaned[key] = clean_nan_values(value)
        elif isinstance(value, (list, np.ndarray, pd.Series)):
            items = value.tolist() if hasattr(value, "tolist") else value
            cleaned[key] = [clean_nan_values({"item": v})["item"] for v in items]
        elif isinstance(value, (bool, np.bool_)):
            cleaned[key] = bool(value)
        elif isinstance(value, np.integer):
            cleaned[key] = int(value)
        elif isinstance(value, (float, np.floating)):
            cleaned[key] = None if np.isnan(value) else float(value)
        else:
            cleaned[key] = value
    return cleaned


def latest_log_per_customer(logs: List[HealthLogRecord]) -> List[HealthLogRecord]:
    """Keep only the most recent log of each customer, newest first."""
    if not logs:
        return []

    frame = pd.DataFrame(
        {
            "customer_id": [log.customer_id for log in logs],
            "created_at": [log.created_at for log in logs],
            "position": range(len(logs)),
        }
    )
    latest = frame.sort_values("created_at", ascending=False).drop_duplicates(
        subset="customer_id", keep="first"
    )
    return [logs[position] for position in latest["position"]]


def select_logs(
    centro_id: Optional[str], customer_id: Optional[str], health_log_id: Optional[str]
) -> List[HealthLogRecord]:
    """Pick the health logs a scan request refers to.

    A request naming neither a log nor a centro selects nothing.
    """
    if health_log_id:
        log = store.get_health_log(health_log_id)
        return [log] if log else []

    if customer_id and centro_id:
        return store.list_health_logs(customer_id, centro_id, limit=1)

    if centro_id:
        since = utcnow() - timedelta(hours=settings.ALERT_SCAN_WINDOW_HOURS)
        return latest_log_per_customer(store.list_centro_health_logs(centro_id, since))

    return []


def deduplicate(alerts: List[HealthAlert]) -> List[HealthAlert]:
    """Drop alerts whose type already has an active alert for the customer."""
    since = utcnow() - timedelta(days=settings.ALERT_DEDUP_WINDOW_DAYS)
    unique = []
    seen = set()
    for alert in alerts:
        marker = (alert.customer_id, alert.centro_id, alert.alert_type)
        if marker in seen:
            continue
        seen.add(marker)
        existing = store.find_active_alert(
            alert.customer_id, alert.centro_id, alert.alert_type, since
        )
        if existing is None:
            unique.append(alert)
    return unique


def notify(alerts: List[HealthAlert]) -> int:
    """Dispatch notifications, continuing past individual failures."""
    sent = 0
    for alert in alerts:
        try:
            customer = store.get_customer(alert.customer_id)
            if customer is None:
                logger.warning(f"No customer record for alert {alert.id}")
                continue
            if dispatcher.dispatch(alert, customer):
                sent += 1
        except Exception as e:
            logger.error(f"Error sending notification for alert {alert.id}: {e}", exc_info=True)
    return sent


def severity_summary(alerts: List[HealthAlert]) -> Dict[str, Any]:
    if not alerts:
        return {}
    counts = pd.Series([alert.severity for alert in alerts]).value_counts()
    return clean_nan_values(counts.to_dict())


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {"statusCode": status_code, "body": json.dumps(body, default=str)}


def _empty(message: str) -> Dict[str, Any]:
    logger.info(f"[AnalyzeHealth] {message}")
    return _response(200, {"success": True, "alerts": [], "message": message})


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Lambda handler for the device health alert scan.

    Expected event structure:
    {
        "centro_id": "centro123",
        "customer_id": "customer123",   # Optional
        "health_log_id": "log123",      # Optional
        "send_notifications": true      # Optional, defaults to true
    }

    Args:
        event: Lambda event dictionary (EventBridge schedule or direct invoke).
        context: Lambda context object.

    Returns:
        Dictionary with status and the alerts that were created.
    """
    try:
        if isinstance(event.get("body"), str):
            event = json.loads(event["body"])

        centro_id = event.get("centro_id")
        customer_id = event.get("customer_id")
        health_log_id = event.get("health_log_id")
        send_notifications = event.get("send_notifications", True)

        logger.info(
            f"[AnalyzeHealth] Starting analysis - centro: {centro_id}, "
            f"customer: {customer_id}, log: {health_log_id}"
        )

        stored_settings = store.get_settings(centro_id) if centro_id else None
        if stored_settings is not None and not stored_settings.is_enabled:
            return _empty("Monitoring disabled")

        logs = select_logs(centro_id, customer_id, health_log_id)
        if not logs:
            return _empty("No health logs found")

        logger.info(f"[AnalyzeHealth] Analyzing {len(logs)} health log(s)")

        proposals: List[HealthAlert] = []
        settings_by_centro: Dict[str, DeviceHealthSettings] = {}
        if stored_settings is not None:
            settings_by_centro[centro_id] = stored_settings
        for log in logs:
            if log.centro_id not in settings_by_centro:
                settings_by_centro[log.centro_id] = store.get_settings_or_default(log.centro_id)
            proposals.extend(evaluate_stored_log(log, settings_by_centro[log.centro_id]))

        if not proposals:
            return _empty("No issues detected")

        unique = deduplicate(proposals)
        logger.info(f"[AnalyzeHealth] {len(unique)} new unique alert(s) after deduplication")
        if not unique:
            return _empty("All alerts already exist")

        inserted = [store.insert_alert(alert) for alert in unique]

        notifications_sent = notify(inserted) if send_notifications else 0

        return _response(
            200,
            {
                "success": True,
                "alerts": [alert.model_dump(mode="json") for alert in inserted],
                "alerts_count": len(inserted),
                "notifications_sent": notifications_sent,
                "by_severity": severity_summary(inserted),
            },
        )

    except ValueError as e:
        logger.error(f"Validation error: {e}")
        return _response(400, {"status": "error", "error": str(e)})
    except Exception as e:
        logger.error(f"[AnalyzeHealth] Unexpected error: {e}", exc_info=True)
        return _response(500, {"status": "error", "error": str(e)})
