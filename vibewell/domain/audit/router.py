"""Audit router - Admin endpoints for issues, reports, schedules and result ingestion"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from ...models import User
from . import (
    audit_controller,
    audit_service,
    booking_audit,
    compliance_audit,
    performance_audit,
    security_audit,
    ux_audit,
)
from .schemas import (
    AccessibilityResult,
    AuditCategory,
    AuditIssue,
    AuditReport,
    BookingIntegrityResult,
    BookingPerformanceMetrics,
    BookingUXResult,
    DatabasePerformanceMetrics,
    DataProtectionStatus,
    DataRetentionAudit,
    FinancialTransactionAudit,
    FrontendPerformanceMetrics,
    IssueCreate,
    IssueStatus,
    IssueUpdate,
    LoadTestResult,
    MobilePerformanceMetrics,
    NotificationDeliveryResult,
    PCIComplianceStatus,
    RegulationStatus,
    ResponsivenessResult,
    RunAuditRequest,
    SocialMediaSecurityStatus,
    UserConsentAudit,
    UserFlowResult,
    VulnerabilityScanResult,
)
from .service import AuditError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audit", tags=["Audit"], dependencies=[Depends(require_admin)])


# ============================================================================
# ISSUES
# ============================================================================


@router.get("/issues", response_model=list[AuditIssue])
async def list_issues(
    category: Optional[AuditCategory] = None,
    status: Optional[IssueStatus] = None,
):
    """List tracked issues, optionally filtered by category and status"""
    return audit_service.get_issues(category, status)


@router.post("/issues", response_model=AuditIssue, status_code=201)
async def report_issue(data: IssueCreate, current_user: User = Depends(require_admin)):
    """Manually report an issue"""
    logger.info(f"📝 Admin {current_user.id} reporting audit issue: {data.title}")
    return audit_service.report_issue(
        data.category,
        data.severity,
        data.title,
        data.description,
        component=data.component,
        metadata=data.metadata,
        remediation=data.remediation,
    )


@router.get("/issues/{issue_id}", response_model=AuditIssue)
async def get_issue(issue_id: str):
    issue = audit_service.get_issue(issue_id)
    if not issue:
        raise HTTPException(status_code=404, detail="Audit issue not found")
    return issue


@router.patch("/issues/{issue_id}", response_model=AuditIssue)
async def update_issue(issue_id: str, data: IssueUpdate):
    """Move an issue through its lifecycle"""
    if not audit_service.update_issue_status(issue_id, data.status, data.remediation):
        raise HTTPException(status_code=404, detail="Audit issue not found")
    return audit_service.get_issue(issue_id)


# ============================================================================
# REPORTS AND RUNS
# ============================================================================


@router.get("/reports", response_model=list[AuditReport])
async def list_reports():
    return audit_controller.get_all_reports()


@router.get("/reports/{report_id}", response_model=AuditReport)
async def get_report(report_id: str):
    report = audit_controller.get_report(report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    return report


@router.post("/run")
async def run_audit(data: RunAuditRequest):
    """Run one category audit, or the comprehensive audit when no category is given"""
    try:
        if data.category:
            return audit_controller.run_category_audit(data.category).model_dump(mode="json")
        return audit_controller.run_comprehensive_audit()
    except AuditError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/comprehensive")
async def comprehensive_report():
    """Build (and persist) the comprehensive report from current data"""
    return audit_controller.generate_comprehensive_report()


@router.get("/schedule")
async def get_schedule():
    return {
        "schedule": audit_controller.schedule_config,
        "last_run": {
            k: v.isoformat() for k, v in audit_controller.last_run_timestamps.items()
        },
    }


@router.patch("/schedule")
async def update_schedule(changes: dict[str, dict[str, str]]):
    try:
        return {"schedule": audit_controller.update_schedule_config(changes)}
    except AuditError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/saved")
async def list_saved_reports():
    return {"reports": audit_controller.list_saved_reports()}


@router.get("/saved/{name}")
async def get_saved_report(name: str):
    try:
        return audit_controller.load_saved_report(name)
    except AuditError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.delete("/data", status_code=204)
async def clear_audit_data(current_user: User = Depends(require_admin)):
    logger.warning(f"⚠️ Admin {current_user.id} cleared all audit data")
    audit_controller.clear_all_audit_data()


# ============================================================================
# SECURITY INGESTION
# ============================================================================


@router.post("/security/vulnerabilities")
async def ingest_vulnerabilities(results: list[VulnerabilityScanResult]):
    reported = security_audit.process_vulnerability_results(results)
    return {"received": len(results), "reported": reported}


@router.post("/security/pci", status_code=202)
async def ingest_pci_status(status: PCIComplianceStatus):
    security_audit.update_pci_compliance_status(status)
    return {"accepted": True}


@router.post("/security/data-protection", status_code=202)
async def ingest_data_protection_status(status: DataProtectionStatus):
    security_audit.update_data_protection_status(status)
    return {"accepted": True}


@router.post("/security/social", status_code=202)
async def ingest_social_status(status: SocialMediaSecurityStatus):
    security_audit.update_social_media_security_status(status)
    return {"accepted": True}


@router.get("/security/report")
async def security_report():
    return security_audit.generate_security_report()


# ============================================================================
# PERFORMANCE INGESTION
# ============================================================================


@router.post("/performance/load-tests")
async def ingest_load_test(result: LoadTestResult):
    breaches = performance_audit.record_load_test_result(result)
    return {"test_id": result.id, "breaches": breaches}


@router.post("/performance/mobile")
async def ingest_mobile_metrics(metrics: MobilePerformanceMetrics):
    return {"breaches": performance_audit.record_mobile_metrics(metrics)}


@router.post("/performance/database")
async def ingest_database_metrics(metrics: DatabasePerformanceMetrics):
    severity = performance_audit.record_database_metrics(metrics)
    return {"severity": severity.value if severity else None}


@router.post("/performance/frontend")
async def ingest_frontend_metrics(metrics: FrontendPerformanceMetrics):
    return {"breaches": performance_audit.record_frontend_metrics(metrics)}


@router.get("/performance/report")
async def performance_report():
    return performance_audit.generate_performance_report()


# ============================================================================
# UX INGESTION
# ============================================================================


@router.post("/ux/user-flows", status_code=202)
async def ingest_user_flow(result: UserFlowResult):
    ux_audit.record_user_flow_result(result)
    return {"accepted": True}


@router.post("/ux/accessibility", status_code=202)
async def ingest_accessibility(result: AccessibilityResult):
    ux_audit.record_accessibility_result(result)
    return {"accepted": True}


@router.post("/ux/booking", status_code=202)
async def ingest_booking_ux(result: BookingUXResult):
    ux_audit.record_booking_ux_result(result)
    return {"accepted": True}


@router.post("/ux/responsiveness", status_code=202)
async def ingest_responsiveness(result: ResponsivenessResult):
    ux_audit.record_responsiveness_result(result)
    return {"accepted": True}


@router.get("/ux/report")
async def ux_report():
    return ux_audit.generate_ux_report()


# ============================================================================
# COMPLIANCE INGESTION
# ============================================================================


@router.post("/compliance/gdpr", status_code=202)
async def ingest_gdpr_status(status: RegulationStatus):
    compliance_audit.update_gdpr_status(status)
    return {"accepted": True}


@router.post("/compliance/ccpa", status_code=202)
async def ingest_ccpa_status(status: RegulationStatus):
    compliance_audit.update_ccpa_status(status)
    return {"accepted": True}


@router.post("/compliance/financial", status_code=202)
async def ingest_financial_audit(audit: FinancialTransactionAudit):
    compliance_audit.audit_financial_transaction(audit)
    return {"accepted": True}


@router.post("/compliance/retention", status_code=202)
async def ingest_retention_audit(audit: DataRetentionAudit):
    compliance_audit.audit_data_retention(audit)
    return {"accepted": True}


@router.post("/compliance/consent", status_code=202)
async def ingest_consent_audit(audit: UserConsentAudit):
    compliance_audit.audit_user_consent(audit)
    return {"accepted": True}


@router.get("/compliance/report")
async def compliance_report():
    return compliance_audit.generate_compliance_report()


# ============================================================================
# BOOKING INGESTION
# ============================================================================


@router.post("/booking/integrity", status_code=202)
async def ingest_integrity_result(result: BookingIntegrityResult):
    booking_audit.record_integrity_result(result)
    return {"accepted": True, "test_id": result.id}


@router.post("/booking/integrity-check", response_model=BookingIntegrityResult)
async def run_integrity_check(db: Session = Depends(get_db)):
    """Scan live bookings for double bookings and orphaned rows"""
    return audit_controller.run_booking_integrity_check(db)


@router.post("/booking/notifications", status_code=202)
async def ingest_notification_result(result: NotificationDeliveryResult):
    booking_audit.record_notification_result(result)
    return {"accepted": True}


@router.post("/booking/performance", status_code=202)
async def ingest_booking_performance(metrics: BookingPerformanceMetrics):
    booking_audit.update_performance_metrics(metrics)
    return {"accepted": True}


@router.get("/booking/report")
async def booking_report():
    return booking_audit.generate_booking_audit_report()
