"""Lambda handler for device health evaluation requests."""

import json
from typing import Any, Dict, List, Optional, Tuple

from common.alerts import badges_for_checkup_count, build_health_alert
from common.anomalies import detect_anomalies
from common.logging_utils import setup_logger
from common.models import (
    Anomaly,
    Customer,
    DeviceHealthSettings,
    DeviceMetricsSample,
    DiagnosticQuizRecord,
    HealthLogRecord,
    LoyaltyCard,
    QuizStatus,
    Severity,
    utcnow,
)
from common.quiz import analyze_quiz, default_quiz_delegate
from common.scoring import calculate_health_score
from common.store import HealthStore
from common.telemetry import ram_percent_used, storage_percent_used

logger = setup_logger(__name__)

store = HealthStore()
quiz_delegate = default_quiz_delegate()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Content-Type": "application/json",
}

DEFAULT_HISTORY_LIMIT = 30
QUIZ_WARNING_SCORE = 60


class RequestRejected(Exception):
    """A request that fails a lookup or access gate."""

    def __init__(self, status_code: int, reason: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": CORS_HEADERS,
        "body": json.dumps(body, default=str),
    }


def _require(payload: Dict[str, Any], *fields: str) -> None:
    missing = [field for field in fields if not payload.get(field)]
    if missing:
        raise ValueError(f"Missing required fields: {missing}")


def resolve_customer(email: str) -> Customer:
    customer = store.get_customer_by_email(email)
    if customer is None:
        raise RequestRejected(404, "customer_not_found", "Customer not found")
    return customer


def resolve_member(email: str, centro_id: str) -> Tuple[Customer, LoyaltyCard]:
    """Resolve the customer and the active loyalty card that grants access."""
    customer = resolve_customer(email)
    card = store.get_active_loyalty_card(customer.id, centro_id)
    if card is None:
        raise RequestRejected(403, "no_active_loyalty_card", "Loyalty card is not active")
    return customer, card


def apply_side_effects(
    customer_id: str,
    centro_id: str,
    device_id: Optional[str],
    health_score: int,
    anomalies: List[Anomaly],
    health_settings: DeviceHealthSettings,
    log_id: Optional[str] = None,
    quiz_id: Optional[str] = None,
) -> None:
    """Create the alert and award badges for a stored evaluation.

    Both steps are best effort: failures are logged and the evaluation
    result is still returned to the caller.
    """
    try:
        alert = build_health_alert(
            health_score,
            anomalies,
            health_settings,
            customer_id=customer_id,
            centro_id=centro_id,
            device_id=device_id,
            log_id=log_id,
            quiz_id=quiz_id,
        )
        if alert is not None:
            store.insert_alert(alert)
    except Exception as e:
        logger.error(f"Failed to create health alert for {customer_id}: {e}", exc_info=True)

    try:
        total = store.count_evaluations(customer_id, centro_id)
        for badge in badges_for_checkup_count(total, customer_id, centro_id):
            store.upsert_badge(badge)
    except Exception as e:
        logger.error(f"Failed to award health badges for {customer_id}: {e}", exc_info=True)


def log_health(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Evaluate and store one telemetry submission."""
    _require(payload, "customer_email", "centro_id")
    centro_id = payload["centro_id"]
    device_id = payload.get("device_id")
    sample = DeviceMetricsSample.model_validate(payload)

    customer, card = resolve_member(payload["customer_email"], centro_id)
    health_settings = store.get_settings_or_default(centro_id)

    anomalies = detect_anomalies(sample, health_settings)
    health_score = calculate_health_score(sample)

    log = HealthLogRecord(
        **sample.model_dump(),
        customer_id=customer.id,
        centro_id=centro_id,
        device_id=device_id,
        loyalty_card_id=card.id,
        storage_percent_used=storage_percent_used(sample),
        ram_percent_used=ram_percent_used(sample),
        health_score=health_score,
        anomalies=anomalies,
    )
    store.insert_health_log(log)

    apply_side_effects(
        customer.id,
        centro_id,
        device_id,
        health_score,
        anomalies,
        health_settings,
        log_id=log.id,
    )

    return {
        "success": True,
        "health_score": health_score,
        "anomalies": [anomaly.model_dump(mode="json") for anomaly in anomalies],
        "log_id": log.id,
    }


def submit_quiz(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Analyze and store one diagnostic questionnaire."""
    _require(payload, "customer_email", "centro_id")
    responses = payload.get("responses") or {}
    if not isinstance(responses, dict):
        raise ValueError("responses must be an object")
    centro_id = payload["centro_id"]
    device_id = payload.get("device_id")

    customer, card = resolve_member(payload["customer_email"], centro_id)

    analysis = analyze_quiz(responses, quiz_delegate)
    health_settings = store.get_settings_or_default(centro_id)

    quiz = DiagnosticQuizRecord(
        customer_id=customer.id,
        centro_id=centro_id,
        device_id=device_id,
        loyalty_card_id=card.id,
        responses=responses,
        ai_analysis=analysis.analysis,
        health_score=analysis.score,
        recommendations=analysis.recommendations,
        status=QuizStatus.ANALYZED,
        analyzed_at=utcnow(),
    )
    store.insert_quiz(quiz)

    anomalies = []
    if analysis.score < QUIZ_WARNING_SCORE:
        anomalies.append(
            Anomaly(type="general_warning", severity=Severity.MEDIUM, message=analysis.analysis)
        )

    apply_side_effects(
        customer.id,
        centro_id,
        device_id,
        analysis.score,
        anomalies,
        health_settings,
        quiz_id=quiz.id,
    )

    return {
        "success": True,
        "health_score": analysis.score,
        "analysis": analysis.analysis,
        "recommendations": analysis.recommendations,
        "quiz_id": quiz.id,
    }


def get_health_history(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Return the customer's stored evaluations, badges and active alerts."""
    _require(payload, "customer_email", "centro_id")
    centro_id = payload["centro_id"]
    limit = payload.get("limit", DEFAULT_HISTORY_LIMIT)
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValueError("limit must be a positive integer")

    customer = resolve_customer(payload["customer_email"])

    def dump(records):
        return [record.model_dump(mode="json") for record in records]

    return {
        "logs": dump(store.list_health_logs(customer.id, centro_id, limit=limit)),
        "quizzes": dump(store.list_quizzes(customer.id, centro_id, limit=limit)),
        "badges": dump(store.list_badges(customer.id, centro_id)),
        "alerts": dump(store.list_active_alerts(customer.id, centro_id)),
    }


def verify_access(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Report whether the customer may use device health monitoring."""
    _require(payload, "customer_email", "centro_id")
    centro_id = payload["centro_id"]

    customer = store.get_customer_by_email(payload["customer_email"])
    if customer is None:
        return {"hasAccess": False, "reason": "customer_not_found"}

    card = store.get_active_loyalty_card(customer.id, centro_id)
    if card is None:
        return {"hasAccess": False, "reason": "no_active_loyalty_card"}

    health_settings = store.get_settings(centro_id)
    if health_settings is not None and not health_settings.is_enabled:
        return {"hasAccess": False, "reason": "service_disabled"}
    health_settings = health_settings or DeviceHealthSettings()

    return {
        "hasAccess": True,
        "customer": {"id": customer.id, "name": customer.name},
        "loyaltyCard": {
            "id": card.id,
            "cardNumber": card.card_number,
            "expiresAt": card.expires_at.isoformat() if card.expires_at else None,
        },
        "settings": {
            "is_enabled": health_settings.is_enabled,
            "android_monitoring_enabled": health_settings.android_monitoring_enabled,
            "ios_webapp_enabled": health_settings.ios_webapp_enabled,
        },
    }


ACTIONS = {
    "log_health": log_health,
    "submit_quiz": submit_quiz,
    "get_health_history": get_health_history,
    "verify_access": verify_access,
}


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Lambda handler for device health actions.

    Expected event structure:
    {
        "action": "log_health",
        "customer_email": "customer@example.com",
        "centro_id": "centro123",
        ...action-specific fields
    }

    Also supports API Gateway events where body is a JSON string.

    Args:
        event: Lambda event dictionary.
        context: Lambda context object.

    Returns:
        API Gateway style response with a JSON body.
    """
    if event.get("httpMethod") == "OPTIONS":
        return {"statusCode": 200, "headers": CORS_HEADERS, "body": ""}

    try:
        # Handle API Gateway events (body is a JSON string)
        if isinstance(event.get("body"), str):
            try:
                event = json.loads(event["body"])
            except json.JSONDecodeError as e:
                raise ValueError(f"Request body is not valid JSON: {e}") from e
        if not isinstance(event, dict):
            raise ValueError("Request body must be a JSON object")

        payload = dict(event)
        action = payload.pop("action", None)
        logger.info(f"Device health action: {action}")

        action_handler = ACTIONS.get(action)
        if action_handler is None:
            return _response(400, {"error": "Invalid action", "reason": "invalid_action"})

        return _response(200, action_handler(payload))

    except RequestRejected as e:
        logger.warning(f"Request rejected ({e.reason}): {e}")
        return _response(e.status_code, {"error": str(e), "reason": e.reason})
    except ValueError as e:
        logger.error(f"Validation error: {e}")
        return _response(400, {"error": str(e)})
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return _response(500, {"error": str(e)})
