"""Customer notification dispatch for health alerts."""

from typing import Any, Dict

from .logging_utils import setup_logger
from .models import AlertStatus, Customer, HealthAlert, utcnow
from .store import HealthStore

logger = setup_logger(__name__)


class NotificationDispatcher:
    """Delivers a stored alert to its customer."""

    def dispatch(self, alert: HealthAlert, customer: Customer) -> bool:
        raise NotImplementedError


class StoreNotificationDispatcher(NotificationDispatcher):
    """Writes an in-app notification, which the push pipeline picks up.

    The alert is marked ``sent`` once the notification is recorded.
    """

    type_prefix = "maintenance"

    def __init__(self, store: HealthStore):
        self.store = store

    def notification_data(self, alert: HealthAlert) -> Dict[str, Any]:
        return {
            "alert_id": alert.id,
            "alert_type": alert.alert_type,
            "recommended_action": alert.recommended_action,
            "discount_offered": alert.discount_offered,
        }

    def mark_delivered(self, alert: HealthAlert) -> HealthAlert:
        return self.store.update_alert_status(alert, AlertStatus.SENT, push_sent_at=utcnow())

    def dispatch(self, alert: HealthAlert, customer: Customer) -> bool:
        if not customer.email:
            logger.warning(f"Customer {customer.id} has no email, skipping alert {alert.id}")
            return False

        self.store.insert_customer_notification(
            customer_email=customer.email,
            title=alert.title,
            message=alert.message,
            notification_type=f"{self.type_prefix}_{alert.severity}",
            data=self.notification_data(alert),
        )
        self.mark_delivered(alert)
        logger.info(f"Notification created for customer {customer.email}")
        return True


class ConfirmedAlertDispatcher(StoreNotificationDispatcher):
    """Notifies the customer of an alert the centro has confirmed.

    The alert keeps its ``confirmed`` status; only ``push_sent_at`` is set.
    """

    type_prefix = "health_alert"

    def notification_data(self, alert: HealthAlert) -> Dict[str, Any]:
        data = super().notification_data(alert)
        data["confirmed_by_centro"] = True
        return data

    def mark_delivered(self, alert: HealthAlert) -> HealthAlert:
        return self.store.save_alert(alert.model_copy(update={"push_sent_at": utcnow()}))
