"""
Audit controller - runs category audits on schedule and builds the comprehensive report.

The comprehensive report aggregates every tracked issue into per-category
summaries, scores the platform (severity-weighted penalty, target 95) and is
persisted as JSON under AUDIT_REPORTS_DIR.
"""

import copy
import json
import logging
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...config import AUDIT_REPORTS_DIR
from ...models import BeautyService, Booking
from .booking import BookingAuditService
from .compliance import ComplianceAuditService
from .performance import PerformanceAuditService, average
from .schemas import (
    AuditCategory,
    AuditIssue,
    AuditReport,
    AuditSeverity,
    BookingIntegrityResult,
    IntegrityIssue,
    utc_now,
)
from .security import SecurityAuditService
from .service import AuditError, AuditService
from .ux import UXAuditService

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE_CONFIG = {
    "security": {
        "vulnerability_scan": "daily",
        "penetration_testing": "monthly",
        "data_protection_scan": "weekly",
    },
    "performance": {
        "load_testing": "weekly",
        "database_performance": "daily",
        "frontend_performance": "daily",
    },
    "ux": {
        "accessibility_testing": "weekly",
        "user_flow_testing": "weekly",
    },
    "compliance": {
        "gdpr_audit": "monthly",
        "data_retention_audit": "weekly",
    },
    "booking": {
        "integrity_testing": "daily",
        "notification_testing": "daily",
    },
}

SCHEDULE_INTERVALS = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(weeks=1),
    "monthly": timedelta(days=30),
    "quarterly": timedelta(days=90),
}

RUNNABLE_CATEGORIES = (
    AuditCategory.SECURITY,
    AuditCategory.PERFORMANCE,
    AuditCategory.UX,
    AuditCategory.COMPLIANCE,
    AuditCategory.BOOKING,
)

SEVERITY_WEIGHTS = {
    AuditSeverity.CRITICAL: 10,
    AuditSeverity.HIGH: 5,
    AuditSeverity.MEDIUM: 2,
    AuditSeverity.LOW: 1,
    AuditSeverity.INFO: 0,
}

INTEGRITY_PENALTIES = {
    AuditSeverity.CRITICAL: 20,
    AuditSeverity.HIGH: 10,
    AuditSeverity.MEDIUM: 5,
    AuditSeverity.LOW: 1,
}

MAX_SCORE = 100
TARGET_SCORE = 95
RECOMMENDATION_THRESHOLD = 90

DEFAULT_NOTIFICATION_ISSUES = ["Invalid email address", "Mailbox full", "Temporary server failure"]

SAVED_REPORT_PATTERN = re.compile(r"^audit-report-[0-9T\-.+Z]+\.json$")


def _penalty(issues: list[AuditIssue]) -> int:
    return sum(SEVERITY_WEIGHTS[i.severity] for i in issues)


def _latest(issues: list[AuditIssue]) -> Optional[AuditIssue]:
    return max(issues, key=lambda i: i.datestamp) if issues else None


def _by_component(issues: list[AuditIssue], fragment: str) -> list[AuditIssue]:
    return [i for i in issues if fragment in i.component]


class AuditController:
    def __init__(
        self,
        audit_service: AuditService,
        security: SecurityAuditService,
        performance: PerformanceAuditService,
        ux: UXAuditService,
        compliance: ComplianceAuditService,
        booking: BookingAuditService,
        reports_dir: str = AUDIT_REPORTS_DIR,
    ):
        self.audit_service = audit_service
        self.security = security
        self.performance = performance
        self.ux = ux
        self.compliance = compliance
        self.booking = booking
        self.reports_dir = Path(reports_dir)
        self.schedule_config: dict[str, dict[str, str]] = copy.deepcopy(DEFAULT_SCHEDULE_CONFIG)
        self.last_run_timestamps: dict[str, datetime] = {}

    # ========================================================================
    # SCHEDULING
    # ========================================================================

    def update_schedule_config(self, changes: dict[str, dict[str, str]]) -> dict[str, dict[str, str]]:
        """Merge a partial schedule into the current one, section by section"""
        for section, values in changes.items():
            if section not in self.schedule_config:
                raise AuditError(f"Unknown audit schedule section: {section}")
            for key, frequency in values.items():
                if frequency not in SCHEDULE_INTERVALS:
                    raise AuditError(f"Unknown audit frequency: {frequency}")
            self.schedule_config[section].update(values)

        logger.info(f"🗓️ Audit schedule updated: {changes}")
        return self.schedule_config

    def is_audit_due(self, audit_type: str, now: Optional[datetime] = None) -> bool:
        """True when the most frequent check of a category has elapsed since its last run"""
        section = self.schedule_config.get(audit_type)
        if section is None:
            raise AuditError(f"Unknown audit type: {audit_type}")

        last_run = self.last_run_timestamps.get(audit_type)
        if last_run is None:
            return True

        interval = min(SCHEDULE_INTERVALS[f] for f in section.values())
        return (now or utc_now()) - last_run >= interval

    def get_last_run_timestamp(self, audit_type: str) -> Optional[datetime]:
        return self.last_run_timestamps.get(audit_type)

    # ========================================================================
    # RUNNING AUDITS
    # ========================================================================

    def run_category_audit(self, category: AuditCategory) -> AuditReport:
        try:
            category = AuditCategory(category)
        except ValueError:
            raise AuditError(f"Unknown audit category: {category}") from None
        if category not in RUNNABLE_CATEGORIES:
            raise AuditError(f"No audit runner for category: {category.value}")

        started = utc_now()
        self.last_run_timestamps[category.value] = started

        try:
            report = self.audit_service.generate_report(category)
        except Exception as e:
            logger.error(f"❌ {category.value} audit failed: {e}")
            raise

        duration_ms = (utc_now() - started).total_seconds() * 1000
        logger.info(
            f"✅ {category.value} audit completed in {duration_ms:.0f}ms "
            f"({report.summary.total} issues)"
        )
        return report

    def run_comprehensive_audit(self) -> dict[str, Any]:
        started = utc_now()
        logger.info("🚀 Comprehensive audit started")

        try:
            for category in RUNNABLE_CATEGORIES:
                self.run_category_audit(category)
            report = self.generate_comprehensive_report()
        except Exception as e:
            logger.error(f"❌ Comprehensive audit failed: {e}")
            raise

        duration_ms = (utc_now() - started).total_seconds() * 1000
        logger.info(
            f"✅ Comprehensive audit completed in {duration_ms:.0f}ms "
            f"({report['summary']['total_issues']} issues, score {report['score']['overall_score']})"
        )
        return report

    def run_due_audits(self, now: Optional[datetime] = None) -> list[str]:
        """Run every category whose schedule has elapsed; returns the categories run"""
        ran = []
        for category in RUNNABLE_CATEGORIES:
            if self.is_audit_due(category.value, now):
                self.run_category_audit(category)
                ran.append(category.value)
        return ran

    def run_booking_integrity_check(self, db: Session) -> BookingIntegrityResult:
        """Scan active bookings for provider overlaps and bookings whose service is gone"""
        bookings = (
            db.query(Booking)
            .filter(Booking.status.in_(["PENDING", "CONFIRMED"]))
            .order_by(Booking.provider_id, Booking.start_time)
            .all()
        )
        service_ids = {
            row.id for row in db.query(BeautyService.id).filter(
                BeautyService.id.in_([b.service_id for b in bookings if b.service_id is not None])
            )
        }

        issues: list[IntegrityIssue] = []
        by_provider: dict[int, list[Booking]] = {}
        for booking in bookings:
            by_provider.setdefault(booking.provider_id, []).append(booking)

            if booking.service_id is None or booking.service_id not in service_ids:
                issues.append(
                    IntegrityIssue(
                        type="orphaned_booking",
                        description=f"Booking {booking.public_id} references a missing service",
                        booking_ids=[booking.public_id],
                        resource_id=str(booking.provider_id),
                    )
                )

        for provider_id, provider_bookings in by_provider.items():
            for i, current in enumerate(provider_bookings):
                for other in provider_bookings[i + 1:]:
                    # Sorted by start, so nothing later can overlap once this one starts after current ends
                    if other.start_time >= current.end_time:
                        break
                    issues.append(
                        IntegrityIssue(
                            type="double_booking",
                            description=(
                                f"Bookings {current.public_id} and {other.public_id} overlap "
                                f"for provider {provider_id}"
                            ),
                            booking_ids=[current.public_id, other.public_id],
                            resource_id=str(provider_id),
                        )
                    )

        result = BookingIntegrityResult(
            test_name="Active booking integrity scan",
            success=not issues,
            issues=issues,
        )
        self.booking.record_integrity_result(result)
        logger.info(
            f"🔍 Booking integrity check scanned {len(bookings)} bookings, found {len(issues)} issues"
        )
        return result

    # ========================================================================
    # COMPREHENSIVE REPORT
    # ========================================================================

    def generate_comprehensive_report(self) -> dict[str, Any]:
        generated_at = utc_now()
        all_issues = self.audit_service.get_issues()

        issues_by_category = {
            category.value: sum(1 for i in all_issues if i.category == category)
            for category in AuditCategory
        }
        issues_by_severity = {
            severity.value: sum(1 for i in all_issues if i.severity == severity)
            for severity in AuditSeverity
        }

        def category_issues(category: AuditCategory) -> list[AuditIssue]:
            return [i for i in all_issues if i.category == category]

        report = {
            "timestamp": generated_at.isoformat(),
            "summary": {
                "issues_by_category": issues_by_category,
                "issues_by_severity": issues_by_severity,
                "total_issues": len(all_issues),
            },
            "security": self._security_summary(all_issues),
            "performance": self._performance_summary(category_issues(AuditCategory.PERFORMANCE)),
            "ux": self._ux_summary(category_issues(AuditCategory.UX)),
            "compliance": self._compliance_summary(category_issues(AuditCategory.COMPLIANCE)),
            "booking": self._booking_summary(category_issues(AuditCategory.BOOKING)),
            "score": self.calculate_audit_score(all_issues),
        }

        report["saved_as"] = self._save_report(report, generated_at)
        return report

    def calculate_audit_score(self, issues: list[AuditIssue]) -> dict[str, Any]:
        overall = MAX_SCORE - min(_penalty(issues), MAX_SCORE - 1)

        category_scores = {}
        for category in AuditCategory:
            penalty = _penalty([i for i in issues if i.category == category])
            category_scores[category.value] = MAX_SCORE - min(penalty, MAX_SCORE - 1)

        recommendations = []
        for category, score in sorted(category_scores.items(), key=lambda kv: kv[1]):
            if len(recommendations) >= 3:
                break
            if score >= RECOMMENDATION_THRESHOLD:
                continue

            severe = [
                i
                for i in issues
                if i.category.value == category
                and i.severity in (AuditSeverity.CRITICAL, AuditSeverity.HIGH)
            ]
            if severe:
                focus = severe[0]
                recommendations.append(
                    f"Improve {category} by addressing {focus.title}: "
                    f"{focus.remediation or 'No remediation suggestion provided'}"
                )
            else:
                recommendations.append(f"Improve {category} performance to reach target score.")

        return {
            "overall_score": overall,
            "category_scores": category_scores,
            "target_met": overall >= TARGET_SCORE,
            "recommendations": recommendations,
        }

    def _security_summary(self, issues: list[AuditIssue]) -> dict[str, Any]:
        security_issues = [i for i in issues if i.category == AuditCategory.SECURITY]
        vulnerabilities = {
            severity: sum(1 for i in security_issues if i.severity.value == severity)
            for severity in ("critical", "high", "medium", "low")
        }

        if self.security.pci_status is not None:
            pci_status = self.security.pci_status.overall_status
        else:
            pci_issues = [
                i for i in issues if i.component == "Payment Processing" and "requirement_id" in i.metadata
            ]
            pci_status = "partially_compliant" if pci_issues else "compliant"

        data_protection = [i for i in issues if i.component == "Data Protection"]
        social = [i for i in issues if i.component == "Social Features"]

        return {
            "vulnerabilities": vulnerabilities,
            "pci_status": pci_status,
            "data_protection_status": "partially_compliant" if data_protection else "compliant",
            "social_media_status": "vulnerable" if social else "secure",
        }

    def _performance_summary(self, issues: list[AuditIssue]) -> dict[str, Any]:
        load_tests = list(self.performance.load_test_results.values())
        latest_load_issue = _latest(_by_component(issues, "Load Test"))

        max_user_count, p95_response_time, error_rate = 10000, 250, 0.5
        if load_tests:
            latest = max(load_tests, key=lambda r: r.ended_at)
            max_user_count = max(r.user_count for r in load_tests)
            if latest.metrics.p95_response_time:
                p95_response_time = latest.metrics.p95_response_time.value
            error_rate = latest.metrics.error_rate.value
        elif latest_load_issue:
            max_user_count = latest_load_issue.metadata.get("user_count") or max_user_count
            p95_response_time = latest_load_issue.metadata.get("p95_response_time") or p95_response_time
            error_rate = latest_load_issue.metadata.get("error_rate") or error_rate

        mobile = self.performance.mobile_metrics
        database = self.performance.database_metrics
        frontend = self.performance.frontend_metrics
        db_report = self.performance.generate_performance_report()["database_metrics_summary"]

        return {
            "load_test_results": {
                "max_user_count": max_user_count,
                "p95_response_time": p95_response_time,
                "error_rate": error_rate,
            },
            "mobile_performance": {
                "average_startup_time": (
                    average(m.startup_time.value for m in mobile) if mobile else 1500
                ),
                "average_memory_usage": average(m.memory_usage.value for m in mobile) if mobile else 75,
                "average_frame_rate": average(m.frame_rate.value for m in mobile) if mobile else 58,
            },
            "database_performance": {
                "average_query_time": db_report["average_query_time"] if database else 50,
                "slow_query_count": db_report["slow_query_count"] if database else 0,
            },
            "frontend_performance": {
                "average_lcp": average(m.lcp.value for m in frontend) if frontend else 2000,
                "average_fid": average(m.fid.value for m in frontend) if frontend else 90,
                "average_cls": average(m.cls.value for m in frontend) if frontend else 0.08,
            },
        }

    def _ux_summary(self, issues: list[AuditIssue]) -> dict[str, Any]:
        ux_report = self.ux.generate_ux_report()
        flow_issues = [i for i in issues if i.component == "User Flow"]
        accessibility_issues = [i for i in issues if i.component == "Accessibility"]

        completion_rates = [
            i.metadata["completion_rate"] for i in flow_issues if "completion_rate" in i.metadata
        ]
        if self.ux.user_flow_results:
            average_completion = ux_report["user_flows"]["average_completion_rate"]
        else:
            average_completion = average(completion_rates) if completion_rates else 95

        booking_results = list(self.ux.booking_ux_results.values())
        responsiveness = ux_report["responsiveness"]["issues_by_device"]

        return {
            "user_flows": {
                "average_completion_rate": average_completion,
                "problematic_flow_count": sum(
                    1 for i in flow_issues if i.severity in (AuditSeverity.CRITICAL, AuditSeverity.HIGH)
                ),
            },
            "accessibility": {
                "critical_violation_count": ux_report["accessibility"]["violations_by_impact"]["critical"],
                "serious_violation_count": ux_report["accessibility"]["violations_by_impact"]["serious"],
                "total_violation_count": sum(ux_report["accessibility"]["violations_by_impact"].values())
                or len(accessibility_issues),
            },
            "booking_ux": {
                "average_conversion_rate": (
                    ux_report["booking_ux"]["average_conversion_rate"] if booking_results else 85
                ),
                "average_user_satisfaction": (
                    ux_report["booking_ux"]["average_user_satisfaction"] if booking_results else 4.2
                ),
            },
            "responsiveness": {
                "total_issue_count": sum(responsiveness.values()),
                "issues_by_device": responsiveness,
            },
        }

    def _regulation_status(self, regulation: str, issues: list[AuditIssue]) -> str:
        status = self.compliance.gdpr_status if regulation == "GDPR" else self.compliance.ccpa_status
        if status is not None:
            return status.overall_status
        tracked = [i for i in issues if i.metadata.get("regulation") == regulation]
        return "partially_compliant" if tracked else "compliant"

    def _compliance_summary(self, issues: list[AuditIssue]) -> dict[str, Any]:
        report = self.compliance.generate_compliance_report()

        retention = report["data_retention"]
        if self.compliance.retention_audits:
            compliant_count = len(retention["compliant_types"])
            non_compliant_count = len(retention["non_compliant_types"])
        else:
            compliant_count, non_compliant_count = 5, 1

        consent = report["user_consent"]
        if self.compliance.consent_audits:
            average_coverage = consent["average_coverage"]
            missing_count = len(consent["missing_types"])
        else:
            average_coverage, missing_count = 95, 0

        return {
            "gdpr_status": self._regulation_status("GDPR", issues),
            "ccpa_status": self._regulation_status("CCPA", issues),
            "data_retention": {
                "compliant_types_count": compliant_count,
                "non_compliant_types_count": non_compliant_count,
            },
            "user_consent": {
                "average_coverage": average_coverage,
                "missing_types_count": missing_count,
            },
        }

    def _booking_summary(self, issues: list[AuditIssue]) -> dict[str, Any]:
        report = self.booking.generate_booking_audit_report()
        integrity_issues = [
            i for i in issues if i.component == "Booking System" and "test_id" in i.metadata
        ]

        success_rate = MAX_SCORE
        for issue in integrity_issues:
            success_rate -= INTEGRITY_PENALTIES.get(issue.severity, 0)
        success_rate = max(0, success_rate)

        notifications = report["notifications"]
        if self.booking.notification_results:
            average_delivery_rate = average(notifications["delivery_rates"].values())
            common_issues = [c["reason"] for c in notifications["common_issues"]]
        else:
            average_delivery_rate = 99.5
            common_issues = []

        metrics = self.booking.performance_metrics
        return {
            "integrity": {
                "success_rate": success_rate,
                "double_booking_count": report["integrity"]["double_booking_count"],
            },
            "notifications": {
                "average_delivery_rate": average_delivery_rate,
                "common_issues": common_issues or list(DEFAULT_NOTIFICATION_ISSUES),
            },
            "performance": {
                "conversion_rate": metrics.conversion_rate if metrics else 85,
                "error_rate": metrics.error_rate if metrics else 1.5,
            },
        }

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def _save_report(self, report: dict[str, Any], generated_at: datetime) -> Optional[str]:
        filename = f"audit-report-{generated_at.isoformat().replace(':', '-')}.json"
        try:
            self.reports_dir.mkdir(parents=True, exist_ok=True)
            (self.reports_dir / filename).write_text(json.dumps(report, indent=2, default=str))
        except OSError as e:
            logger.error(f"❌ Failed to save audit report {filename}: {e}")
            return None

        logger.info(f"💾 Audit report saved to: {filename}")
        return filename

    def list_saved_reports(self) -> list[str]:
        if not self.reports_dir.exists():
            return []
        return sorted(
            (p.name for p in self.reports_dir.glob("audit-report-*.json")),
            reverse=True,
        )

    def load_saved_report(self, name: str) -> dict[str, Any]:
        if not SAVED_REPORT_PATTERN.match(name):
            raise AuditError(f"Invalid audit report name: {name}")

        path = self.reports_dir / name
        if not path.is_file():
            raise AuditError(f"Audit report not found: {name}")
        return json.loads(path.read_text())

    def get_all_reports(self) -> list[AuditReport]:
        return self.audit_service.get_all_reports()

    def get_report(self, report_id: str) -> Optional[AuditReport]:
        return self.audit_service.get_report(report_id)

    def clear_all_audit_data(self) -> None:
        self.audit_service.clear()
        self.security.clear()
        self.performance.clear()
        self.ux.clear()
        self.compliance.clear()
        self.booking.clear()
        self.last_run_timestamps.clear()
        logger.info("🧹 All audit data cleared")
