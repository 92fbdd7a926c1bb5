"""Lambda handler for the centro review of scanner-raised health alerts."""

import json
from typing import Any, Dict

from common.logging_utils import setup_logger
from common.models import AlertStatus, CentroReviewAction, utcnow
from common.notifications import ConfirmedAlertDispatcher, NotificationDispatcher
from common.store import HealthStore

logger = setup_logger(__name__)

store = HealthStore()
dispatcher: NotificationDispatcher = ConfirmedAlertDispatcher(store)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Content-Type": "application/json",
}

REVIEW_STATUS = {
    CentroReviewAction.CONFIRM: AlertStatus.CONFIRMED,
    CentroReviewAction.DISMISS: AlertStatus.DISMISSED,
}


class AlertNotFound(Exception):
    pass


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": CORS_HEADERS,
        "body": json.dumps(body, default=str),
    }


def review_alert(alert_id: str, action: CentroReviewAction, notes: Any = None) -> Dict[str, Any]:
    """Record the centro's decision and notify the customer on confirm.

    The notification is best effort: the review is already stored when it runs.
    """
    alert = store.get_alert(alert_id)
    if alert is None:
        raise AlertNotFound(f"Alert not found: {alert_id}")

    update = {
        "centro_reviewed": True,
        "centro_reviewed_at": utcnow(),
        "centro_action": action.value,
        "status": REVIEW_STATUS[action].value,
    }
    if notes:
        update["centro_notes"] = str(notes)
    alert = store.save_alert(alert.model_copy(update=update))
    logger.info(f"[ConfirmHealthAlert] Alert {alert_id} marked {alert.status}")

    customer_notified = False
    if action is CentroReviewAction.CONFIRM:
        try:
            customer = store.get_customer(alert.customer_id)
            if customer is None:
                logger.warning(f"No customer record for alert {alert_id}")
            else:
                customer_notified = dispatcher.dispatch(alert, customer)
        except Exception as e:
            logger.error(f"Error notifying customer for alert {alert_id}: {e}", exc_info=True)

    return {
        "success": True,
        "action": action.value,
        "alert_id": alert_id,
        "customer_notified": customer_notified,
    }


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Lambda handler for confirming or dismissing a health alert.

    Expected event structure:
    {
        "alert_id": "alert123",
        "action": "confirm",        # or "dismiss"
        "notes": "Called the customer"  # Optional
    }

    Args:
        event: Lambda event dictionary (direct invoke or API Gateway).
        context: Lambda context object.

    Returns:
        API Gateway style response with a JSON body.
    """
    if event.get("httpMethod") == "OPTIONS":
        return {"statusCode": 200, "headers": CORS_HEADERS, "body": ""}

    try:
        if isinstance(event.get("body"), str):
            try:
                event = json.loads(event["body"])
            except json.JSONDecodeError as e:
                raise ValueError(f"Request body is not valid JSON: {e}") from e
        if not isinstance(event, dict):
            raise ValueError("Request body must be a JSON object")

        alert_id = event.get("alert_id")
        action = event.get("action")
        if not alert_id or not action:
            raise ValueError("alert_id and action are required")
        try:
            action = CentroReviewAction(action)
        except ValueError:
            raise ValueError("action must be 'confirm' or 'dismiss'") from None

        logger.info(f"[ConfirmHealthAlert] Processing alert {alert_id} with action: {action.value}")
        return _response(200, review_alert(alert_id, action, event.get("notes")))

    except AlertNotFound as e:
        logger.warning(f"[ConfirmHealthAlert] {e}")
        return _response(404, {"error": str(e)})
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        return _response(400, {"error": str(e)})
    except Exception as e:
        logger.error(f"[ConfirmHealthAlert] Unexpected error: {e}", exc_info=True)
        return _response(500, {"error": str(e)})
