"""Audit domain schemas - issue tracker types and category audit inputs"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditCategory(str, Enum):
    SECURITY = "security"
    PERFORMANCE = "performance"
    UX = "ux"
    SCALABILITY = "scalability"
    COMPLIANCE = "compliance"
    FINANCIAL = "financial"
    BOOKING = "booking"


class AuditSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class IssueStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    WONT_FIX = "wont_fix"


# ============================================================================
# ISSUE TRACKER
# ============================================================================


class AuditIssue(BaseModel):
    """A tracked audit finding"""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    category: AuditCategory
    severity: AuditSeverity
    title: str
    description: str
    component: str = "General"
    status: IssueStatus = IssueStatus.OPEN
    datestamp: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)
    remediation: Optional[str] = None
    updated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class AuditSummary(BaseModel):
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    info: int = 0
    total: int = 0
    open: int = 0
    in_progress: int = 0
    resolved: int = 0


class AuditReport(BaseModel):
    """Snapshot of one category's issues"""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    category: AuditCategory
    generated_at: datetime = Field(default_factory=utc_now)
    issues: list[AuditIssue] = Field(default_factory=list)
    summary: AuditSummary = Field(default_factory=AuditSummary)


class IssueCreate(BaseModel):
    category: AuditCategory
    severity: AuditSeverity
    title: str = Field(..., min_length=1, max_length=300)
    description: str = Field(..., min_length=1)
    component: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    remediation: Optional[str] = None


class IssueUpdate(BaseModel):
    status: IssueStatus
    remediation: Optional[str] = None


class RunAuditRequest(BaseModel):
    category: Optional[AuditCategory] = None


# ============================================================================
# SECURITY AUDIT INPUTS
# ============================================================================

ControlStatus = Literal["pass", "fail", "warning", "not_applicable"]
ComplianceStatus = Literal["compliant", "non_compliant", "partially_compliant"]
RequirementStatus = Literal["compliant", "non_compliant", "partially_compliant", "not_applicable"]


class VulnerabilityScanResult(BaseModel):
    id: str
    title: str
    description: str
    cvss_score: float = Field(..., ge=0, le=10)
    severity: AuditSeverity
    component: str
    vulnerable_versions: Optional[str] = None
    patched_versions: Optional[str] = None
    recommendation: Optional[str] = None


class SecurityControlStatus(BaseModel):
    name: str
    status: ControlStatus
    details: Optional[str] = None
    last_checked: datetime = Field(default_factory=utc_now)


class PCIRequirement(BaseModel):
    requirement: str
    description: str
    status: ComplianceStatus
    controls: list[SecurityControlStatus] = Field(default_factory=list)


class PCIComplianceStatus(BaseModel):
    overall_status: ComplianceStatus
    requirements: list[PCIRequirement] = Field(default_factory=list)
    last_checked: datetime = Field(default_factory=utc_now)


class DataProtectionStatus(BaseModel):
    encryption_at_rest: SecurityControlStatus
    encryption_in_transit: SecurityControlStatus
    data_minimization: SecurityControlStatus
    access_controls: SecurityControlStatus
    data_retention: SecurityControlStatus
    data_backups: SecurityControlStatus
    right_to_be_forgotten: SecurityControlStatus
    data_portability: SecurityControlStatus
    last_checked: datetime = Field(default_factory=utc_now)

    def controls(self) -> list[SecurityControlStatus]:
        return [
            self.encryption_at_rest,
            self.encryption_in_transit,
            self.data_minimization,
            self.access_controls,
            self.data_retention,
            self.data_backups,
            self.right_to_be_forgotten,
            self.data_portability,
        ]


class SocialMediaSecurityStatus(BaseModel):
    content_moderation: SecurityControlStatus
    fake_account_detection: SecurityControlStatus
    privacy_controls: SecurityControlStatus
    data_leakage_prevention: SecurityControlStatus
    last_checked: datetime = Field(default_factory=utc_now)

    def controls(self) -> list[SecurityControlStatus]:
        return [
            self.content_moderation,
            self.fake_account_detection,
            self.privacy_controls,
            self.data_leakage_prevention,
        ]


# ============================================================================
# PERFORMANCE AUDIT INPUTS
# ============================================================================


class PerformanceMetric(BaseModel):
    value: float
    unit: str = "ms"
    threshold: Optional[float] = None


class LoadTestMetrics(BaseModel):
    throughput: PerformanceMetric
    response_time: PerformanceMetric
    error_rate: PerformanceMetric
    p95_response_time: Optional[PerformanceMetric] = None
    cpu_utilization: Optional[PerformanceMetric] = None
    memory_usage: Optional[PerformanceMetric] = None


class LoadTestResult(BaseModel):
    id: str
    user_count: int = Field(..., ge=0)
    duration: float = Field(..., ge=0)
    metrics: LoadTestMetrics
    started_at: Optional[datetime] = None
    ended_at: datetime = Field(default_factory=utc_now)


class MobilePerformanceMetrics(BaseModel):
    device_type: str
    app_version: str
    startup_time: PerformanceMetric
    memory_usage: PerformanceMetric
    battery_impact: PerformanceMetric
    frame_rate: PerformanceMetric
    network_usage: Optional[PerformanceMetric] = None
    timestamp: datetime = Field(default_factory=utc_now)


class DatabasePerformanceMetrics(BaseModel):
    query_type: Literal["read", "write", "transaction"]
    operation_type: str
    execution_time: PerformanceMetric
    row_count: Optional[int] = None
    index_usage: Optional[bool] = None
    cache_hit: Optional[bool] = None
    timestamp: datetime = Field(default_factory=utc_now)


class FrontendPerformanceMetrics(BaseModel):
    device_type: str
    page_url: str
    lcp: PerformanceMetric
    fid: PerformanceMetric
    cls: PerformanceMetric
    ttfb: PerformanceMetric
    fcp: Optional[PerformanceMetric] = None
    user_agent: Optional[str] = None
    timestamp: datetime = Field(default_factory=utc_now)


# ============================================================================
# UX AUDIT INPUTS
# ============================================================================


class FlowStep(BaseModel):
    step_name: str
    success: bool
    time_spent: float = 0
    error_message: Optional[str] = None


class DropOffPoint(BaseModel):
    step_name: str
    drop_off_count: int = 0
    drop_off_percentage: float = 0


class UserFlowResult(BaseModel):
    id: str
    flow_name: str
    steps: list[FlowStep] = Field(default_factory=list)
    completion_rate: float = Field(..., ge=0, le=100)
    average_time: float = 0
    drop_off_points: list[DropOffPoint] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)


class AccessibilityViolation(BaseModel):
    id: str
    impact: Literal["critical", "serious", "moderate", "minor"]
    description: str
    tags: list[str] = Field(default_factory=list)
    elements: list[str] = Field(default_factory=list)
    help_url: Optional[str] = None


class AccessibilityResult(BaseModel):
    url: str
    standard: Literal["WCAG2A", "WCAG2AA", "WCAG2AAA"] = "WCAG2AA"
    violations: list[AccessibilityViolation] = Field(default_factory=list)
    passes: int = 0
    incomplete: int = 0
    timestamp: datetime = Field(default_factory=utc_now)


class CountedIssue(BaseModel):
    issue: str
    count: int = 1


class BookingUXResult(BaseModel):
    booking_flow: str
    conversion_rate: float = Field(..., ge=0, le=100)
    average_completion_time: float = 0
    user_satisfaction: float = Field(..., ge=0, le=5)
    abandonment: list[dict[str, Any]] = Field(default_factory=list)
    common_issues: list[CountedIssue] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)


class ResponsivenessIssue(BaseModel):
    type: Literal["layout", "overflow", "readability", "touch-target", "other"]
    description: str
    element: Optional[str] = None


class DeviceResponsiveness(BaseModel):
    device_type: str
    width: int
    height: int
    issues: list[ResponsivenessIssue] = Field(default_factory=list)


class ResponsivenessResult(BaseModel):
    url: str
    device_types: list[DeviceResponsiveness] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)


# ============================================================================
# COMPLIANCE AUDIT INPUTS
# ============================================================================


class RegulationRequirement(BaseModel):
    id: str
    description: str
    status: RequirementStatus
    evidence: Optional[str] = None


class RegulationStatus(BaseModel):
    """GDPR or CCPA compliance snapshot"""

    overall_status: ComplianceStatus
    requirements: list[RegulationRequirement] = Field(default_factory=list)
    last_checked: datetime = Field(default_factory=utc_now)


class TransactionIssue(BaseModel):
    type: Literal["security", "integrity", "reconciliation", "fraud"]
    description: str
    severity: Literal["critical", "high", "medium", "low"]


class FinancialTransactionAudit(BaseModel):
    id: str
    transaction_type: Literal["payment", "refund", "deposit", "cancellation"]
    amount: float
    currency: str
    status: Literal["success", "failure", "pending"]
    payment_method: str = "card"
    issues: list[TransactionIssue] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)


class RetentionRecord(BaseModel):
    record_type: str
    count: int
    oldest_record: Optional[datetime] = None
    newest_record: Optional[datetime] = None


class DataRetentionAudit(BaseModel):
    data_type: str
    retention_period: int
    current_retention: int
    status: Literal["compliant", "non_compliant"]
    records: list[RetentionRecord] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)


class ConsentVersion(BaseModel):
    version: str
    date: datetime
    user_count: int


class UserConsentAudit(BaseModel):
    consent_type: str
    required_by_regulations: list[str] = Field(default_factory=list)
    implementation_status: Literal["implemented", "partial", "missing"]
    user_coverage: float = Field(..., ge=0, le=100)
    consent_versions: list[ConsentVersion] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)


# ============================================================================
# BOOKING AUDIT INPUTS
# ============================================================================

IntegrityIssueType = Literal[
    "double_booking", "availability_sync", "conflicting_status", "orphaned_booking"
]


class IntegrityIssue(BaseModel):
    type: IntegrityIssueType
    description: str
    booking_ids: list[str] = Field(default_factory=list)
    resource_id: Optional[str] = None


class BookingIntegrityResult(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    test_name: str
    success: bool
    issues: list[IntegrityIssue] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)


class DeliveryIssue(BaseModel):
    reason: str
    count: int = 1
    examples: list[str] = Field(default_factory=list)


class NotificationDeliveryResult(BaseModel):
    notification_type: Literal["booking_confirmation", "reminder", "update", "cancellation"]
    total_sent: int = Field(..., ge=0)
    delivered: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    delivery_rate: float = Field(..., ge=0, le=100)
    avg_delivery_time: float = 0
    issues: list[DeliveryIssue] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utc_now)


class ConcurrentBookings(BaseModel):
    max: int
    timestamp: datetime = Field(default_factory=utc_now)


class BookingPerformanceMetrics(BaseModel):
    average_booking_time: float
    conversion_rate: float
    checkout_abandonment_rate: float = 0
    concurrent_bookings: ConcurrentBookings
    peak_booking_periods: list[dict[str, Any]] = Field(default_factory=list)
    error_rate: float = 0
    timestamp: datetime = Field(default_factory=utc_now)
