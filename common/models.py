"""Data models for the device health evaluator."""

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

ALERT_TTL = timedelta(days=7)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class MetricsSource(str, Enum):
    """Where a telemetry sample came from."""

    ANDROID_NATIVE = "android_native"
    IOS_WEBAPP = "ios_webapp"
    MANUAL_QUIZ = "manual_quiz"


class Severity(str, Enum):
    """Anomaly and alert severity, ordered low < medium < high < critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class AlertStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"


class CentroReviewAction(str, Enum):
    CONFIRM = "confirm"
    DISMISS = "dismiss"


ACTIVE_ALERT_STATUSES = (AlertStatus.PENDING, AlertStatus.SENT)


class QuizStatus(str, Enum):
    SUBMITTED = "submitted"
    ANALYZED = "analyzed"


class DeviceMetricsSample(BaseModel):
    """One telemetry submission. Every metric is optional."""

    model_config = ConfigDict(extra="ignore", use_enum_values=True, validate_default=True)

    source: MetricsSource = MetricsSource.ANDROID_NATIVE

    # Battery metrics
    battery_level: Optional[float] = Field(default=None, ge=0, le=100)
    battery_health: Optional[str] = None
    battery_cycles: Optional[int] = None
    battery_temperature: Optional[float] = None
    is_charging: Optional[bool] = None

    # Storage metrics (GB)
    storage_total_gb: Optional[float] = Field(default=None, ge=0)
    storage_used_gb: Optional[float] = Field(default=None, ge=0)
    storage_available_gb: Optional[float] = Field(default=None, ge=0)

    # RAM metrics (MB)
    ram_total_mb: Optional[float] = Field(default=None, ge=0)
    ram_available_mb: Optional[float] = Field(default=None, ge=0)

    # System info
    os_version: Optional[str] = None
    device_manufacturer: Optional[str] = None
    device_model_info: Optional[str] = None
    app_version: Optional[str] = None


class Anomaly(BaseModel):
    """A typed, severity-ranked condition detected from raw metrics."""

    type: str
    severity: Severity
    message: str


class DeviceHealthSettings(BaseModel):
    """Per-centro thresholds. Defaults apply when the centro has no row."""

    model_config = ConfigDict(extra="ignore")

    is_enabled: bool = True
    android_monitoring_enabled: bool = True
    ios_webapp_enabled: bool = True

    battery_warning_threshold: float = 40
    battery_critical_threshold: float = 20
    storage_warning_threshold: float = 80
    storage_critical_threshold: float = 90
    health_score_warning_threshold: float = 60
    health_score_critical_threshold: float = 40

    auto_discount_on_critical: bool = False
    warning_discount_percent: int = 5
    critical_discount_percent: int = 10

    @field_validator("*", mode="before")
    @classmethod
    def _default_when_null(cls, value: Any, info: ValidationInfo) -> Any:
        # A null column in a stored row falls back to that field's default
        if value is None:
            return cls.model_fields[info.field_name].default
        return value


class Customer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    email: str
    name: Optional[str] = None
    centro_id: Optional[str] = None


class LoyaltyCard(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    customer_id: str
    centro_id: str
    status: str = "active"
    card_number: Optional[str] = None
    expires_at: Optional[datetime] = None


class HealthLogRecord(DeviceMetricsSample):
    """Persisted result of a telemetry evaluation. Append-only."""

    id: str = Field(default_factory=new_id)
    customer_id: str
    centro_id: str
    device_id: Optional[str] = None
    loyalty_card_id: Optional[str] = None

    storage_percent_used: Optional[float] = None
    ram_percent_used: Optional[float] = None
    health_score: int = Field(ge=0, le=100)
    anomalies: List[Anomaly] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)


class QuizAnalysis(BaseModel):
    """Output shape shared by the delegated and rule-based quiz analyzers."""

    score: int = Field(ge=0, le=100)
    analysis: str
    recommendations: List[str] = Field(default_factory=list)


class DiagnosticQuizRecord(BaseModel):
    """Persisted result of a questionnaire evaluation. Append-only."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=new_id)
    customer_id: str
    centro_id: str
    device_id: Optional[str] = None
    loyalty_card_id: Optional[str] = None

    responses: Dict[str, Any] = Field(default_factory=dict)
    ai_analysis: str
    health_score: int = Field(ge=0, le=100)
    recommendations: List[str] = Field(default_factory=list)
    status: QuizStatus = QuizStatus.SUBMITTED
    analyzed_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)


class HealthAlert(BaseModel):
    """Customer-facing notification derived from a health evaluation."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str = Field(default_factory=new_id)
    customer_id: str
    centro_id: str
    device_id: Optional[str] = None
    device_health_log_id: Optional[str] = None
    diagnostic_quiz_id: Optional[str] = None

    alert_type: str
    severity: Severity
    title: str
    message: str
    recommended_action: Optional[str] = None
    discount_offered: int = 0
    discount_code: Optional[str] = None

    status: AlertStatus = AlertStatus.PENDING
    push_sent_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    # Centro review of scanner-raised alerts
    centro_reviewed: bool = False
    centro_reviewed_at: Optional[datetime] = None
    centro_action: Optional[CentroReviewAction] = None
    centro_notes: Optional[str] = None

    def model_post_init(self, __context: Any) -> None:
        if self.expires_at is None:
            self.expires_at = self.created_at + ALERT_TTL


class HealthBadge(BaseModel):
    """Milestone achievement, unique per (customer, centro, badge type)."""

    customer_id: str
    centro_id: str
    badge_type: str
    badge_name: str
    badge_description: str
    badge_icon: str
    earned_at: datetime = Field(default_factory=utcnow)
