"""S3-backed document store for device health records.

Layout inside the health bucket::

    customers/{email}.json
    customer-ids/{customer_id}.json               -> {"email": ...}
    loyalty-cards/{centro_id}/{customer_id}.json
    settings/{centro_id}.json
    health-logs/{centro_id}/{customer_id}/{stamp}_{id}.json
    health-log-ids/{id}.json                      -> {"key": ...}
    alert-ids/{id}.json                           -> {"key": ...}
    quizzes/{centro_id}/{customer_id}/{stamp}_{id}.json
    alerts/{centro_id}/{customer_id}/{stamp}_{id}.json
    badges/{centro_id}/{customer_id}/{badge_type}.json
    notifications/{customer_email}/{stamp}_{id}.json

``stamp`` is the UTC creation time formatted so that key order is creation
order, which lets listings stand in for ``ORDER BY created_at``. Id pointers
are written before the record they point at, so a failed record write leaves
only a dangling pointer, which reads back as a missing record.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from .logging_utils import setup_logger
from .models import (
    ACTIVE_ALERT_STATUSES,
    AlertStatus,
    Customer,
    DeviceHealthSettings,
    DiagnosticQuizRecord,
    HealthAlert,
    HealthBadge,
    HealthLogRecord,
    LoyaltyCard,
    new_id,
    utcnow,
)
from .s3_utils import (
    create_json_in_s3,
    download_json_from_s3,
    list_s3_objects,
    upload_json_to_s3,
)

logger = setup_logger(__name__)

STAMP_FORMAT = "%Y%m%dT%H%M%S%fZ"


def _stamp(moment: datetime) -> str:
    return moment.strftime(STAMP_FORMAT)


def _key_stamp(key: str) -> str:
    return key.rsplit("/", 1)[-1].split("_", 1)[0]


def _dump(record) -> Dict[str, Any]:
    return record.model_dump(mode="json")


class HealthStore:
    """Reads and writes device health documents in S3."""

    def __init__(self, bucket: Optional[str] = None):
        self.bucket = bucket

    # Customers, loyalty cards and settings

    def put_customer(self, customer: Customer) -> None:
        upload_json_to_s3(_dump(customer), f"customers/{customer.email}.json", self.bucket)
        upload_json_to_s3(
            {"email": customer.email}, f"customer-ids/{customer.id}.json", self.bucket
        )

    def get_customer_by_email(self, email: str) -> Optional[Customer]:
        data = download_json_from_s3(f"customers/{email}.json", self.bucket)
        return Customer.model_validate(data) if data else None

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        pointer = download_json_from_s3(f"customer-ids/{customer_id}.json", self.bucket)
        if not pointer:
            return None
        return self.get_customer_by_email(pointer["email"])

    def put_loyalty_card(self, card: LoyaltyCard) -> None:
        upload_json_to_s3(
            _dump(card),
            f"loyalty-cards/{card.centro_id}/{card.customer_id}.json",
            self.bucket,
        )

    def get_active_loyalty_card(self, customer_id: str, centro_id: str) -> Optional[LoyaltyCard]:
        data = download_json_from_s3(
            f"loyalty-cards/{centro_id}/{customer_id}.json", self.bucket
        )
        if not data or data.get("status") != "active":
            return None
        return LoyaltyCard.model_validate(data)

    def put_settings(self, centro_id: str, health_settings: DeviceHealthSettings) -> None:
        upload_json_to_s3(_dump(health_settings), f"settings/{centro_id}.json", self.bucket)

    def get_settings(self, centro_id: str) -> Optional[DeviceHealthSettings]:
        """Return the centro's stored settings, or None when it has none."""
        data = download_json_from_s3(f"settings/{centro_id}.json", self.bucket)
        return DeviceHealthSettings.model_validate(data) if data else None

    def get_settings_or_default(self, centro_id: str) -> DeviceHealthSettings:
        return self.get_settings(centro_id) or DeviceHealthSettings()

    # Evaluations

    @staticmethod
    def _record_key(kind: str, record) -> str:
        return (
            f"{kind}/{record.centro_id}/{record.customer_id}/"
            f"{_stamp(record.created_at)}_{record.id}.json"
        )

    def insert_health_log(self, log: HealthLogRecord) -> HealthLogRecord:
        key = self._record_key("health-logs", log)
        upload_json_to_s3({"key": key}, f"health-log-ids/{log.id}.json", self.bucket)
        upload_json_to_s3(_dump(log), key, self.bucket)
        logger.info(f"Stored health log {log.id} for customer {log.customer_id}")
        return log

    def get_health_log(self, log_id: str) -> Optional[HealthLogRecord]:
        pointer = download_json_from_s3(f"health-log-ids/{log_id}.json", self.bucket)
        if not pointer:
            return None
        data = download_json_from_s3(pointer["key"], self.bucket)
        return HealthLogRecord.model_validate(data) if data else None

    def insert_quiz(self, quiz: DiagnosticQuizRecord) -> DiagnosticQuizRecord:
        upload_json_to_s3(_dump(quiz), self._record_key("quizzes", quiz), self.bucket)
        logger.info(f"Stored diagnostic quiz {quiz.id} for customer {quiz.customer_id}")
        return quiz

    def _recent(self, prefix: str, limit: Optional[int]) -> List[Dict[str, Any]]:
        keys = sorted(list_s3_objects(prefix, self.bucket), reverse=True)
        if limit is not None:
            keys = keys[:limit]
        documents = (download_json_from_s3(key, self.bucket) for key in keys)
        return [doc for doc in documents if doc is not None]

    def list_health_logs(
        self, customer_id: str, centro_id: str, limit: Optional[int] = None
    ) -> List[HealthLogRecord]:
        """Health logs for a customer at a centro, newest first."""
        docs = self._recent(f"health-logs/{centro_id}/{customer_id}/", limit)
        return [HealthLogRecord.model_validate(doc) for doc in docs]

    def list_quizzes(
        self, customer_id: str, centro_id: str, limit: Optional[int] = None
    ) -> List[DiagnosticQuizRecord]:
        """Diagnostic quizzes for a customer at a centro, newest first."""
        docs = self._recent(f"quizzes/{centro_id}/{customer_id}/", limit)
        return [DiagnosticQuizRecord.model_validate(doc) for doc in docs]

    def list_centro_health_logs(self, centro_id: str, since: datetime) -> List[HealthLogRecord]:
        """Health logs of every customer at a centro created at or after ``since``."""
        cutoff = _stamp(since)
        keys = [
            key
            for key in list_s3_objects(f"health-logs/{centro_id}/", self.bucket)
            if _key_stamp(key) >= cutoff
        ]
        logs = []
        for key in keys:
            data = download_json_from_s3(key, self.bucket)
            if data:
                logs.append(HealthLogRecord.model_validate(data))
        return logs

    def count_evaluations(self, customer_id: str, centro_id: str) -> int:
        """Total health logs plus quizzes for a customer at a centro."""
        logs = list_s3_objects(f"health-logs/{centro_id}/{customer_id}/", self.bucket)
        quizzes = list_s3_objects(f"quizzes/{centro_id}/{customer_id}/", self.bucket)
        return len(logs) + len(quizzes)

    # Alerts

    def insert_alert(self, alert: HealthAlert) -> HealthAlert:
        key = self._record_key("alerts", alert)
        upload_json_to_s3({"key": key}, f"alert-ids/{alert.id}.json", self.bucket)
        upload_json_to_s3(_dump(alert), key, self.bucket)
        logger.info(
            f"Stored {alert.severity} alert {alert.alert_type} for customer {alert.customer_id}"
        )
        return alert

    def get_alert(self, alert_id: str) -> Optional[HealthAlert]:
        pointer = download_json_from_s3(f"alert-ids/{alert_id}.json", self.bucket)
        if not pointer:
            return None
        data = download_json_from_s3(pointer["key"], self.bucket)
        return HealthAlert.model_validate(data) if data else None

    def save_alert(self, alert: HealthAlert) -> HealthAlert:
        """Overwrite a stored alert in place (its key depends only on id and creation time)."""
        upload_json_to_s3(_dump(alert), self._record_key("alerts", alert), self.bucket)
        return alert

    def update_alert_status(
        self, alert: HealthAlert, status: AlertStatus, push_sent_at: Optional[datetime] = None
    ) -> HealthAlert:
        updated = alert.model_copy(update={"status": status.value})
        if push_sent_at is not None:
            updated.push_sent_at = push_sent_at
        return self.save_alert(updated)

    def list_alerts(
        self, customer_id: str, centro_id: str, since: Optional[datetime] = None
    ) -> List[HealthAlert]:
        """Alerts for a customer at a centro, newest first."""
        docs = self._recent(f"alerts/{centro_id}/{customer_id}/", None)
        alerts = [HealthAlert.model_validate(doc) for doc in docs]
        if since is not None:
            alerts = [alert for alert in alerts if alert.created_at >= since]
        return alerts

    def list_active_alerts(self, customer_id: str, centro_id: str) -> List[HealthAlert]:
        """Pending or sent alerts, newest first."""
        active = {status.value for status in ACTIVE_ALERT_STATUSES}
        return [
            alert
            for alert in self.list_alerts(customer_id, centro_id)
            if alert.status in active
        ]

    def find_active_alert(
        self, customer_id: str, centro_id: str, alert_type: str, since: datetime
    ) -> Optional[HealthAlert]:
        active = {status.value for status in ACTIVE_ALERT_STATUSES}
        for alert in self.list_alerts(customer_id, centro_id, since=since):
            if alert.alert_type == alert_type and alert.status in active:
                return alert
        return None

    # Badges

    def upsert_badge(self, badge: HealthBadge) -> bool:
        """Award a badge once per (customer, centro, badge type).

        Returns:
            True if the badge was newly awarded, False if already held.
        """
        key = f"badges/{badge.centro_id}/{badge.customer_id}/{badge.badge_type}.json"
        created = create_json_in_s3(_dump(badge), key, self.bucket)
        if created:
            logger.info(f"Awarded badge {badge.badge_type} to customer {badge.customer_id}")
        return created

    def list_badges(self, customer_id: str, centro_id: str) -> List[HealthBadge]:
        docs = self._recent(f"badges/{centro_id}/{customer_id}/", None)
        badges = [HealthBadge.model_validate(doc) for doc in docs]
        return sorted(badges, key=lambda badge: badge.earned_at, reverse=True)

    # Notifications

    def insert_customer_notification(
        self,
        customer_email: str,
        title: str,
        message: str,
        notification_type: str,
        data: Dict[str, Any],
    ) -> str:
        notification_id = new_id()
        created_at = utcnow()
        upload_json_to_s3(
            {
                "id": notification_id,
                "customer_email": customer_email,
                "title": title,
                "message": message,
                "type": notification_type,
                "data": data,
                "read": False,
                "created_at": created_at.isoformat(),
            },
            f"notifications/{customer_email}/{_stamp(created_at)}_{notification_id}.json",
            self.bucket,
        )
        return notification_id
