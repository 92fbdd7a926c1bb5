"""
Tests for the alert scanner Lambda handler.
"""

import json
from datetime import timedelta

import numpy as np

from common.models import DeviceHealthSettings, HealthLogRecord, utcnow
from common.notifications import NotificationDispatcher
from lambda_analyze_alerts import handler as analyze_alerts


def scan(**event):
    response = analyze_alerts.handler(event, None)
    return response["statusCode"], json.loads(response["body"])


def stored_log(store, customer_id="cust-1", minutes_ago=5, **fields):
    values = {"health_score": 90, "battery_level": 90}
    values.update(fields)
    return store.insert_health_log(
        HealthLogRecord(
            customer_id=customer_id,
            centro_id="centro-1",
            created_at=utcnow() - timedelta(minutes=minutes_ago),
            **values,
        )
    )


class TestScan:
    def test_specific_log(self, store, member):
        log = stored_log(store, battery_level=10, health_score=20)

        status, body = scan(health_log_id=log.id, send_notifications=False)

        assert status == 200
        assert body["alerts_count"] == 2
        assert {a["alert_type"] for a in body["alerts"]} == {"battery_critical", "health_critical"}
        assert body["by_severity"] == {"critical": 2}
        assert len(store.list_active_alerts(member.id, "centro-1")) == 2

    def test_latest_log_for_customer(self, store, member):
        stored_log(store, minutes_ago=30, battery_level=10, health_score=20)
        stored_log(store, minutes_ago=1, storage_percent_used=85.0)

        _, body = scan(centro_id="centro-1", customer_id=member.id, send_notifications=False)

        assert [a["alert_type"] for a in body["alerts"]] == ["storage_warning"]

    def test_centro_scan_uses_latest_log_per_customer(self, store, member):
        stored_log(store, minutes_ago=120, battery_level=10)
        stored_log(store, minutes_ago=10, battery_level=90)
        stored_log(store, customer_id="cust-2", minutes_ago=20, battery_level=35)
        stored_log(store, customer_id="cust-3", minutes_ago=60 * 48, battery_level=5)

        _, body = scan(centro_id="centro-1", send_notifications=False)

        assert [(a["customer_id"], a["alert_type"]) for a in body["alerts"]] == [
            ("cust-2", "battery_warning")
        ]

    def test_active_alerts_are_not_duplicated(self, store, member):
        log = stored_log(store, battery_level=10)

        _, first = scan(health_log_id=log.id, send_notifications=False)
        _, second = scan(health_log_id=log.id, send_notifications=False)

        assert first["alerts_count"] == 1
        assert second == {"success": True, "alerts": [], "message": "All alerts already exist"}

    def test_monitoring_disabled(self, store, member):
        store.put_settings("centro-1", DeviceHealthSettings(is_enabled=False))
        stored_log(store, battery_level=10)

        _, body = scan(centro_id="centro-1")

        assert body["message"] == "Monitoring disabled"

    def test_nothing_to_report(self, store, member):
        log = stored_log(store)
        _, body = scan(health_log_id=log.id)
        assert body["message"] == "No issues detected"

    def test_no_logs(self, store):
        _, body = scan(centro_id="centro-1")
        assert body["message"] == "No health logs found"

    def test_missing_scope(self, store):
        status, body = scan()
        assert status == 200
        assert body["message"] == "No health logs found"

    def test_customer_without_centro_selects_nothing(self, store, member):
        stored_log(store, battery_level=10)

        status, body = scan(customer_id=member.id)

        assert status == 200
        assert body == {"success": True, "alerts": [], "message": "No health logs found"}
        assert store.list_alerts(member.id, "centro-1") == []


class TestNotifications:
    def test_notification_marks_alert_sent(self, store, s3, member):
        log = stored_log(store, battery_level=10)

        _, body = scan(health_log_id=log.id)

        assert body["notifications_sent"] == 1
        [alert] = store.list_alerts(member.id, "centro-1")
        assert alert.status == "sent"
        assert alert.push_sent_at is not None

        [key] = s3.keys(f"notifications/{member.email}/")
        notification = json.loads(next(body for (_, k), body in s3.objects.items() if k == key))
        assert notification["type"] == "maintenance_critical"
        assert notification["data"]["alert_id"] == alert.id

    def test_dispatch_failure_does_not_abort_scan(self, store, member, monkeypatch):
        class BrokenDispatcher(NotificationDispatcher):
            def dispatch(self, alert, customer):
                raise RuntimeError("push service down")

        monkeypatch.setattr(analyze_alerts, "dispatcher", BrokenDispatcher())
        log = stored_log(store, battery_level=10, health_score=20)

        status, body = scan(health_log_id=log.id)

        assert status == 200
        assert body["alerts_count"] == 2
        assert body["notifications_sent"] == 0


class TestHelpers:
    def test_clean_nan_values(self):
        cleaned = analyze_alerts.clean_nan_values(
            {"a": np.int64(3), "b": np.float64("nan"), "c": [np.bool_(True)], "d": {"e": 1.5}}
        )
        assert cleaned == {"a": 3, "b": None, "c": [True], "d": {"e": 1.5}}

    def test_latest_log_per_customer_empty(self):
        assert analyze_alerts.latest_log_per_customer([]) == []
