"""Compliance audit - GDPR/CCPA, financial transactions, retention and consent"""

import logging
from typing import Any, Optional

from .performance import average
from .schemas import (
    AuditCategory,
    AuditSeverity,
    DataRetentionAudit,
    FinancialTransactionAudit,
    RegulationStatus,
    UserConsentAudit,
)
from .service import AuditService

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_PERIODS = {
    "personal_data": 365,  # days
    "payment_data": 730,
    "activity_logs": 90,
    "marketing_preferences": 730,
}

DEFAULT_COMPLIANCE_CONFIG = {
    "gdpr_enabled": True,
    "ccpa_enabled": True,
    "pci_enabled": True,
    "data_retention_periods": DEFAULT_RETENTION_PERIODS,
}


class ComplianceAuditService:
    def __init__(self, audit_service: AuditService):
        self.audit_service = audit_service
        self.config: dict[str, Any] = {
            **DEFAULT_COMPLIANCE_CONFIG,
            "data_retention_periods": dict(DEFAULT_RETENTION_PERIODS),
        }
        self.gdpr_status: Optional[RegulationStatus] = None
        self.ccpa_status: Optional[RegulationStatus] = None
        self.financial_audits: dict[str, FinancialTransactionAudit] = {}
        self.retention_audits: dict[str, DataRetentionAudit] = {}
        self.consent_audits: dict[str, UserConsentAudit] = {}

    def update_config(self, **changes) -> dict[str, Any]:
        periods = changes.pop("data_retention_periods", None)
        self.config.update(changes)
        if periods:
            self.config["data_retention_periods"].update(periods)
        return self.config

    def _process_regulation(self, regulation: str, status: RegulationStatus) -> None:
        component = f"{regulation} Compliance"

        for requirement in status.requirements:
            if requirement.status == "non_compliant":
                severity, label = AuditSeverity.HIGH, "Non-Compliant"
            elif requirement.status == "partially_compliant":
                severity, label = AuditSeverity.MEDIUM, "Partially Compliant"
            else:
                continue

            self.audit_service.report_issue(
                AuditCategory.COMPLIANCE,
                severity,
                f"{regulation} Requirement {label}: {requirement.id}",
                requirement.description,
                component=component,
                metadata={
                    "regulation": regulation,
                    "requirement_id": requirement.id,
                    "evidence": requirement.evidence,
                },
            )

        if status.overall_status == "non_compliant":
            self.audit_service.report_issue(
                AuditCategory.COMPLIANCE,
                AuditSeverity.CRITICAL,
                f"{regulation} Overall Non-Compliance",
                f"The platform is not compliant with {regulation} requirements",
                component=component,
                metadata={"regulation": regulation},
            )
        elif status.overall_status == "partially_compliant":
            self.audit_service.report_issue(
                AuditCategory.COMPLIANCE,
                AuditSeverity.HIGH,
                f"{regulation} Partial Compliance",
                f"The platform is only partially compliant with {regulation} requirements",
                component=component,
                metadata={"regulation": regulation},
            )

        logger.info(f"📜 {regulation} status updated: {status.overall_status}")

    def update_gdpr_status(self, status: RegulationStatus) -> None:
        self.gdpr_status = status
        self._process_regulation("GDPR", status)

    def update_ccpa_status(self, status: RegulationStatus) -> None:
        self.ccpa_status = status
        self._process_regulation("CCPA", status)

    def audit_financial_transaction(self, audit: FinancialTransactionAudit) -> None:
        self.financial_audits[audit.id] = audit

        critical = [i for i in audit.issues if i.severity == "critical"]
        high = [i for i in audit.issues if i.severity == "high"]
        metadata = {
            "transaction_id": audit.id,
            "transaction_type": audit.transaction_type,
            "amount": audit.amount,
            "currency": audit.currency,
            "status": audit.status,
        }

        if critical:
            self.audit_service.report_issue(
                AuditCategory.FINANCIAL,
                AuditSeverity.CRITICAL,
                f"Critical Financial Transaction Issues: {audit.id}",
                "; ".join(i.description for i in critical),
                component="Financial Transactions",
                metadata={**metadata, "issues": [i.model_dump() for i in critical]},
            )
        if high:
            self.audit_service.report_issue(
                AuditCategory.FINANCIAL,
                AuditSeverity.HIGH,
                f"High Severity Financial Transaction Issues: {audit.id}",
                "; ".join(i.description for i in high),
                component="Financial Transactions",
                metadata={**metadata, "issues": [i.model_dump() for i in high]},
            )

        logger.info(
            f"💰 Financial transaction {audit.id} audited: {audit.transaction_type} "
            f"{audit.amount} {audit.currency} ({len(audit.issues)} issues)"
        )

    def audit_data_retention(self, audit: DataRetentionAudit) -> None:
        self.retention_audits[audit.data_type] = audit
        if audit.status != "non_compliant":
            return

        severity = (
            AuditSeverity.HIGH
            if audit.current_retention > audit.retention_period * 2
            else AuditSeverity.MEDIUM
        )
        self.audit_service.report_issue(
            AuditCategory.COMPLIANCE,
            severity,
            f"Data Retention Non-Compliance: {audit.data_type}",
            f"{audit.data_type} is retained for {audit.current_retention} days, "
            f"exceeding the required period of {audit.retention_period} days",
            component="Data Retention",
            metadata={
                "data_type": audit.data_type,
                "retention_period": audit.retention_period,
                "current_retention": audit.current_retention,
                "record_count": sum(r.count for r in audit.records),
            },
        )

    def audit_user_consent(self, audit: UserConsentAudit) -> None:
        self.consent_audits[audit.consent_type] = audit
        metadata = {
            "consent_type": audit.consent_type,
            "required_by": audit.required_by_regulations,
            "user_coverage": audit.user_coverage,
        }
        regulations = ", ".join(audit.required_by_regulations) or "applicable regulations"

        if audit.implementation_status == "missing":
            self.audit_service.report_issue(
                AuditCategory.COMPLIANCE,
                AuditSeverity.CRITICAL,
                f"Missing User Consent Implementation: {audit.consent_type}",
                f"Consent collection for {audit.consent_type} is required by {regulations} "
                "but is not implemented",
                component="User Consent",
                metadata=metadata,
            )
        elif audit.implementation_status == "partial":
            self.audit_service.report_issue(
                AuditCategory.COMPLIANCE,
                AuditSeverity.HIGH,
                f"Partial User Consent Implementation: {audit.consent_type}",
                f"Consent collection for {audit.consent_type} is only partially implemented",
                component="User Consent",
                metadata=metadata,
            )
        elif audit.user_coverage < 100:
            self.audit_service.report_issue(
                AuditCategory.COMPLIANCE,
                AuditSeverity.MEDIUM,
                f"Incomplete User Consent Coverage: {audit.consent_type}",
                f"Only {audit.user_coverage}% of users have provided {audit.consent_type} consent",
                component="User Consent",
                metadata=metadata,
            )

    def generate_compliance_report(self) -> dict[str, Any]:
        retention = list(self.retention_audits.values())
        non_compliant_retention = [r for r in retention if r.status == "non_compliant"]
        consents = list(self.consent_audits.values())

        issues_by_type: dict[str, int] = {}
        issues_by_severity: dict[str, int] = {}
        for audit in self.financial_audits.values():
            for issue in audit.issues:
                issues_by_type[issue.type] = issues_by_type.get(issue.type, 0) + 1
                issues_by_severity[issue.severity] = issues_by_severity.get(issue.severity, 0) + 1

        return {
            "regulations": {
                "gdpr": self.gdpr_status.model_dump(mode="json") if self.gdpr_status else None,
                "ccpa": self.ccpa_status.model_dump(mode="json") if self.ccpa_status else None,
            },
            "data_retention": {
                "compliant_types": [r.data_type for r in retention if r.status == "compliant"],
                "non_compliant_types": [r.data_type for r in non_compliant_retention],
                "average_retention_excess": average(
                    r.current_retention - r.retention_period for r in non_compliant_retention
                ),
            },
            "user_consent": {
                "implemented_types": [
                    c.consent_type for c in consents if c.implementation_status == "implemented"
                ],
                "partial_types": [c.consent_type for c in consents if c.implementation_status == "partial"],
                "missing_types": [c.consent_type for c in consents if c.implementation_status == "missing"],
                "average_coverage": average(c.user_coverage for c in consents),
            },
            "financial_transactions": {
                "total_audited": len(self.financial_audits),
                "issues_by_type": issues_by_type,
                "issues_by_severity": issues_by_severity,
            },
        }

    def clear(self) -> None:
        self.gdpr_status = None
        self.ccpa_status = None
        self.financial_audits.clear()
        self.retention_audits.clear()
        self.consent_audits.clear()
