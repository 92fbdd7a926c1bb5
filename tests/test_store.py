"""
Tests for the S3-backed health store.
"""

from datetime import timedelta

import pytest
from botocore.exceptions import ClientError

from common.alerts import make_badge
from common.s3_utils import upload_json_to_s3
from common.models import (
    AlertStatus,
    DeviceHealthSettings,
    DiagnosticQuizRecord,
    HealthAlert,
    HealthLogRecord,
    LoyaltyCard,
    Severity,
    utcnow,
)


def log_at(minutes_ago, customer_id="cust-1", score=80):
    return HealthLogRecord(
        customer_id=customer_id,
        centro_id="centro-1",
        health_score=score,
        battery_level=score,
        created_at=utcnow() - timedelta(minutes=minutes_ago),
    )


def alert(alert_type="battery_critical", status=AlertStatus.PENDING, days_ago=0):
    return HealthAlert(
        customer_id="cust-1",
        centro_id="centro-1",
        alert_type=alert_type,
        severity=Severity.CRITICAL,
        title="t",
        message="m",
        status=status,
        created_at=utcnow() - timedelta(days=days_ago),
    )


class TestLookups:
    def test_customer_by_email_and_id(self, store, member):
        assert store.get_customer_by_email(member.email).id == member.id
        assert store.get_customer(member.id).email == member.email

    def test_unknown_customer(self, store):
        assert store.get_customer_by_email("nobody@example.com") is None
        assert store.get_customer("nobody") is None

    def test_inactive_loyalty_card(self, store, member):
        store.put_loyalty_card(
            LoyaltyCard(id="card-1", customer_id=member.id, centro_id="centro-1", status="expired")
        )
        assert store.get_active_loyalty_card(member.id, "centro-1") is None

    def test_settings_default_when_absent(self, store):
        assert store.get_settings("centro-9") is None
        assert store.get_settings_or_default("centro-9") == DeviceHealthSettings()

    def test_stored_settings(self, store):
        store.put_settings("centro-1", DeviceHealthSettings(battery_critical_threshold=15))
        assert store.get_settings_or_default("centro-1").battery_critical_threshold == 15

    def test_null_settings_fields_fall_back_to_defaults(self, store):
        upload_json_to_s3(
            {"storage_warning_threshold": None, "warning_discount_percent": None, "is_enabled": None},
            "settings/centro-1.json",
        )

        loaded = store.get_settings_or_default("centro-1")

        assert loaded == DeviceHealthSettings()


class TestEvaluations:
    def test_logs_are_listed_newest_first(self, store):
        for minutes_ago in (30, 10, 20):
            store.insert_health_log(log_at(minutes_ago, score=minutes_ago))

        logs = store.list_health_logs("cust-1", "centro-1")

        assert [log.health_score for log in logs] == [10, 20, 30]
        assert [log.health_score for log in store.list_health_logs("cust-1", "centro-1", limit=2)] == [
            10,
            20,
        ]

    def test_log_round_trip_by_id(self, store):
        log = store.insert_health_log(log_at(5))
        assert store.get_health_log(log.id) == log
        assert store.get_health_log("missing") is None

    def test_count_evaluations(self, store):
        store.insert_health_log(log_at(5))
        store.insert_health_log(log_at(4))
        store.insert_quiz(
            DiagnosticQuizRecord(
                customer_id="cust-1", centro_id="centro-1", ai_analysis="ok", health_score=90
            )
        )
        store.insert_health_log(log_at(3, customer_id="cust-2"))

        assert store.count_evaluations("cust-1", "centro-1") == 3
        assert store.count_evaluations("cust-2", "centro-1") == 1

    def test_listing_follows_continuation_tokens(self, store, s3):
        s3.page_size = 2
        for minutes_ago in range(5):
            store.insert_health_log(log_at(minutes_ago))

        assert store.count_evaluations("cust-1", "centro-1") == 5

    def test_centro_logs_since(self, store):
        store.insert_health_log(log_at(60 * 30))
        recent = store.insert_health_log(log_at(5, customer_id="cust-2"))

        logs = store.list_centro_health_logs("centro-1", utcnow() - timedelta(hours=24))

        assert [log.id for log in logs] == [recent.id]

    def test_write_failure_propagates(self, store, s3):
        s3.failing_prefixes.add("health-logs/")
        with pytest.raises(ClientError):
            store.insert_health_log(log_at(1))


class TestAlerts:
    def test_active_alerts(self, store):
        store.insert_alert(alert("battery_critical"))
        store.insert_alert(alert("storage_critical", status=AlertStatus.SENT))
        store.insert_alert(alert("ram_critical", status=AlertStatus.EXPIRED))

        types = {a.alert_type for a in store.list_active_alerts("cust-1", "centro-1")}

        assert types == {"battery_critical", "storage_critical"}

    def test_find_active_alert_respects_window(self, store):
        store.insert_alert(alert("battery_critical", days_ago=10))
        since = utcnow() - timedelta(days=7)

        assert store.find_active_alert("cust-1", "centro-1", "battery_critical", since) is None

        store.insert_alert(alert("battery_critical", days_ago=1))
        assert store.find_active_alert("cust-1", "centro-1", "battery_critical", since) is not None

    def test_update_alert_status_overwrites(self, store):
        stored = store.insert_alert(alert())

        store.update_alert_status(stored, AlertStatus.SENT, push_sent_at=utcnow())

        [reloaded] = store.list_alerts("cust-1", "centro-1")
        assert reloaded.status == "sent"
        assert reloaded.push_sent_at is not None

    def test_get_alert_by_id(self, store):
        stored = store.insert_alert(alert())
        assert store.get_alert(stored.id) == stored
        assert store.get_alert("missing") is None

    def test_alert_pointer_failure_stores_nothing(self, store, s3):
        s3.failing_prefixes.add("alert-ids/")
        with pytest.raises(ClientError):
            store.insert_alert(alert())
        assert store.list_alerts("cust-1", "centro-1") == []


class TestBadges:
    def test_upsert_is_idempotent(self, store, s3):
        badge = make_badge("cust-1", "centro-1", "first_checkup")

        assert store.upsert_badge(badge) is True
        assert store.upsert_badge(badge) is False

        assert len(s3.keys("badges/")) == 1
        assert [b.badge_type for b in store.list_badges("cust-1", "centro-1")] == ["first_checkup"]

    def test_upsert_failure_propagates(self, store, s3):
        s3.failing_prefixes.add("badges/")
        with pytest.raises(ClientError):
            store.upsert_badge(make_badge("cust-1", "centro-1", "first_checkup"))
