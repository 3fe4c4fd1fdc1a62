"""Audit domain - Issue tracking, category audits and comprehensive reporting"""

from .booking import BookingAuditService
from .compliance import ComplianceAuditService
from .controller import AuditController
from .performance import PerformanceAuditService
from .security import SecurityAuditService
from .service import AuditError, AuditService
from .ux import UXAuditService

# Process-wide instances shared by routers, the worker and other domains
audit_service = AuditService()
security_audit = SecurityAuditService(audit_service)
performance_audit = PerformanceAuditService(audit_service)
ux_audit = UXAuditService(audit_service)
compliance_audit = ComplianceAuditService(audit_service)
booking_audit = BookingAuditService(audit_service)
audit_controller = AuditController(
    audit_service,
    security_audit,
    performance_audit,
    ux_audit,
    compliance_audit,
    booking_audit,
)

__all__ = [
    "AuditController",
    "AuditError",
    "AuditService",
    "audit_controller",
    "audit_service",
    "booking_audit",
    "compliance_audit",
    "performance_audit",
    "security_audit",
    "ux_audit",
]
