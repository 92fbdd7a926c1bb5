"""
Tests for the centro alert review Lambda handler.
"""

import json

from common.models import HealthAlert, Severity
from common.notifications import NotificationDispatcher
from lambda_confirm_alert import handler as confirm_alert


def review(**event):
    response = confirm_alert.handler(event, None)
    return response["statusCode"], json.loads(response["body"])


def pending_alert(store, customer_id="cust-1"):
    return store.insert_alert(
        HealthAlert(
            customer_id=customer_id,
            centro_id="centro-1",
            alert_type="battery_critical",
            severity=Severity.CRITICAL,
            title="Critical battery detected",
            message="Your device has only 8% battery.",
            recommended_action="Have the battery checked at the centro",
            discount_offered=10,
        )
    )


def notifications(s3, email):
    return [
        json.loads(body)
        for (_, key), body in s3.objects.items()
        if key.startswith(f"notifications/{email}/")
    ]


class TestConfirm:
    def test_confirm_notifies_customer(self, store, s3, member):
        alert = pending_alert(store)

        status, body = review(alert_id=alert.id, action="confirm", notes="Called the customer")

        assert status == 200
        assert body == {
            "success": True,
            "action": "confirm",
            "alert_id": alert.id,
            "customer_notified": True,
        }

        reviewed = store.get_alert(alert.id)
        assert reviewed.status == "confirmed"
        assert reviewed.centro_reviewed is True
        assert reviewed.centro_reviewed_at is not None
        assert reviewed.centro_action == "confirm"
        assert reviewed.centro_notes == "Called the customer"
        assert reviewed.push_sent_at is not None

        [notification] = notifications(s3, member.email)
        assert notification["type"] == "health_alert_critical"
        assert notification["data"]["confirmed_by_centro"] is True
        assert notification["data"]["alert_id"] == alert.id

    def test_confirmed_alert_is_no_longer_active(self, store, member):
        alert = pending_alert(store)

        review(alert_id=alert.id, action="confirm")

        assert store.list_active_alerts(member.id, "centro-1") == []

    def test_notification_failure_keeps_review(self, store, member, monkeypatch):
        class BrokenDispatcher(NotificationDispatcher):
            def dispatch(self, alert, customer):
                raise RuntimeError("notification store down")

        monkeypatch.setattr(confirm_alert, "dispatcher", BrokenDispatcher())
        alert = pending_alert(store)

        status, body = review(alert_id=alert.id, action="confirm")

        assert status == 200
        assert body["customer_notified"] is False
        assert store.get_alert(alert.id).status == "confirmed"

    def test_unknown_customer_is_not_notified(self, store, s3):
        alert = pending_alert(store, customer_id="ghost")

        status, body = review(alert_id=alert.id, action="confirm")

        assert status == 200
        assert body["customer_notified"] is False
        assert s3.keys("notifications/") == []


class TestDismiss:
    def test_dismiss_does_not_notify(self, store, s3, member):
        alert = pending_alert(store)

        status, body = review(alert_id=alert.id, action="dismiss")

        assert status == 200
        assert body["customer_notified"] is False

        reviewed = store.get_alert(alert.id)
        assert reviewed.status == "dismissed"
        assert reviewed.centro_action == "dismiss"
        assert reviewed.centro_notes is None
        assert reviewed.push_sent_at is None
        assert s3.keys("notifications/") == []


class TestValidation:
    def test_unknown_alert(self, store):
        status, body = review(alert_id="missing", action="confirm")
        assert status == 404
        assert "missing" in body["error"]

    def test_missing_fields(self, store):
        status, body = review(action="confirm")
        assert status == 400
        assert body["error"] == "alert_id and action are required"

    def test_invalid_action(self, store, member):
        alert = pending_alert(store)

        status, _ = review(alert_id=alert.id, action="escalate")

        assert status == 400
        assert store.get_alert(alert.id).status == "pending"

    def test_api_gateway_body(self, store, member):
        alert = pending_alert(store)

        response = confirm_alert.handler(
            {"body": json.dumps({"alert_id": alert.id, "action": "dismiss"})}, None
        )

        assert response["statusCode"] == 200
        assert store.get_alert(alert.id).status == "dismissed"
