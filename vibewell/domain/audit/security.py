"""Security audit - vulnerability scans, PCI DSS, data protection and social feature controls"""

import logging
from typing import Any, Optional

from .schemas import (
    AuditCategory,
    AuditSeverity,
    DataProtectionStatus,
    PCIComplianceStatus,
    SocialMediaSecurityStatus,
    VulnerabilityScanResult,
)
from .service import AuditService

logger = logging.getLogger(__name__)

DEFAULT_SECURITY_CONFIG = {
    "scan_schedule": "daily",
    "enable_penetration_testing": True,
    "max_cvss_threshold": 7.0,
    "notify_on_critical": True,
    "notify_on_high": True,
}


class SecurityAuditService:
    def __init__(self, audit_service: AuditService):
        self.audit_service = audit_service
        self.config: dict[str, Any] = dict(DEFAULT_SECURITY_CONFIG)
        self.vulnerabilities: dict[str, VulnerabilityScanResult] = {}
        self.pci_status: Optional[PCIComplianceStatus] = None
        self.data_protection_status: Optional[DataProtectionStatus] = None
        self.social_media_status: Optional[SocialMediaSecurityStatus] = None

    def update_config(self, **changes) -> dict[str, Any]:
        self.config.update(changes)
        return self.config

    def process_vulnerability_results(self, results: list[VulnerabilityScanResult]) -> int:
        """Store scan results and report those at or above the CVSS threshold.

        Returns the number of issues reported.
        """
        threshold = self.config["max_cvss_threshold"]
        reported = 0

        for result in results:
            self.vulnerabilities[result.id] = result

            if result.cvss_score < threshold:
                logger.debug(f"🔍 Vulnerability {result.id} below CVSS threshold ({result.cvss_score})")
                continue

            self.audit_service.report_issue(
                AuditCategory.SECURITY,
                result.severity,
                result.title,
                result.description,
                component=result.component,
                remediation=result.recommendation,
                metadata={
                    "vulnerability_id": result.id,
                    "cvss_score": result.cvss_score,
                    "vulnerable_versions": result.vulnerable_versions,
                    "patched_versions": result.patched_versions,
                },
            )
            reported += 1

        logger.info(
            f"🛡️ Processed {len(results)} vulnerability results, {reported} at or above CVSS {threshold}"
        )
        return reported

    def update_pci_compliance_status(self, status: PCIComplianceStatus) -> None:
        self.pci_status = status

        for requirement in status.requirements:
            if requirement.status == "non_compliant":
                self.audit_service.report_issue(
                    AuditCategory.COMPLIANCE,
                    AuditSeverity.CRITICAL,
                    f"PCI DSS Requirement {requirement.requirement} Non-Compliant",
                    f"The system is non-compliant with PCI DSS requirement: {requirement.description}",
                    component="Payment Processing",
                    metadata={
                        "requirement_id": requirement.requirement,
                        "failed_controls": [
                            c.name for c in requirement.controls if c.status == "fail"
                        ],
                    },
                )
            elif requirement.status == "partially_compliant":
                self.audit_service.report_issue(
                    AuditCategory.COMPLIANCE,
                    AuditSeverity.HIGH,
                    f"PCI DSS Requirement {requirement.requirement} Partially Compliant",
                    "The system is only partially compliant with PCI DSS requirement: "
                    f"{requirement.description}",
                    component="Payment Processing",
                    metadata={
                        "requirement_id": requirement.requirement,
                        "warning_controls": [
                            c.name for c in requirement.controls if c.status == "warning"
                        ],
                    },
                )

        non_compliant = sum(1 for r in status.requirements if r.status == "non_compliant")
        logger.info(
            f"💳 PCI compliance updated: {status.overall_status} "
            f"({non_compliant}/{len(status.requirements)} requirements non-compliant)"
        )

    def update_data_protection_status(self, status: DataProtectionStatus) -> None:
        self.data_protection_status = status
        failing = [c for c in status.controls() if c.status == "fail"]

        for control in failing:
            self.audit_service.report_issue(
                AuditCategory.COMPLIANCE,
                AuditSeverity.HIGH,
                f"Data Protection Control Failing: {control.name}",
                control.details or f'The data protection control "{control.name}" is failing.',
                component="Data Protection",
                metadata={
                    "control_name": control.name,
                    "last_checked": control.last_checked.isoformat(),
                },
            )

        logger.info(f"🔐 Data protection status updated: {len(failing)} failing controls")

    def update_social_media_security_status(self, status: SocialMediaSecurityStatus) -> None:
        self.social_media_status = status
        failing = [c for c in status.controls() if c.status == "fail"]

        for control in failing:
            self.audit_service.report_issue(
                AuditCategory.SECURITY,
                AuditSeverity.HIGH,
                f"Social Media Security Control Failing: {control.name}",
                control.details
                or f'The social media security control "{control.name}" is failing.',
                component="Social Features",
                metadata={
                    "control_name": control.name,
                    "last_checked": control.last_checked.isoformat(),
                },
            )

        logger.info(f"👥 Social feature security updated: {len(failing)} failing controls")

    def generate_security_report(self) -> dict[str, Any]:
        return {
            "vulnerabilities": [v.model_dump(mode="json") for v in self.vulnerabilities.values()],
            "pci_status": self.pci_status.model_dump(mode="json") if self.pci_status else None,
            "data_protection_status": (
                self.data_protection_status.model_dump(mode="json")
                if self.data_protection_status
                else None
            ),
            "social_media_status": (
                self.social_media_status.model_dump(mode="json")
                if self.social_media_status
                else None
            ),
        }

    def clear(self) -> None:
        self.vulnerabilities.clear()
        self.pci_status = None
        self.data_protection_status = None
        self.social_media_status = None
