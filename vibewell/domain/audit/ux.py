"""UX audit - user flows, accessibility, booking UX and responsiveness"""

import logging
from typing import Any

from .performance import average
from .schemas import (
    AccessibilityResult,
    AuditCategory,
    AuditSeverity,
    BookingUXResult,
    ResponsivenessResult,
    UserFlowResult,
)
from .service import AuditService

logger = logging.getLogger(__name__)

DEFAULT_UX_CONFIG = {
    "accessibility_standard": "WCAG2AA",
    "min_booking_conversion_rate": 95,
    "min_task_completion_rate": 90,
    "max_booking_steps": 3,
    "min_user_satisfaction": 4,
    "device_types": ["desktop", "tablet", "mobile"],
}

ACCESSIBILITY_SEVERITY = {
    "critical": AuditSeverity.HIGH,
    "serious": AuditSeverity.MEDIUM,
    "moderate": AuditSeverity.LOW,
    "minor": AuditSeverity.LOW,
}


def _gap_severity(gap: float) -> AuditSeverity:
    if gap > 20:
        return AuditSeverity.CRITICAL
    if gap > 10:
        return AuditSeverity.HIGH
    if gap > 5:
        return AuditSeverity.MEDIUM
    return AuditSeverity.LOW


class UXAuditService:
    def __init__(self, audit_service: AuditService):
        self.audit_service = audit_service
        self.config: dict[str, Any] = dict(DEFAULT_UX_CONFIG)
        self.user_flow_results: dict[str, UserFlowResult] = {}
        self.accessibility_results: dict[str, AccessibilityResult] = {}
        self.booking_ux_results: dict[str, BookingUXResult] = {}
        self.responsiveness_results: dict[str, ResponsivenessResult] = {}

    def update_config(self, **changes) -> dict[str, Any]:
        self.config.update(changes)
        return self.config

    def record_user_flow_result(self, result: UserFlowResult) -> None:
        self.user_flow_results[result.id] = result
        minimum = self.config["min_task_completion_rate"]

        if result.completion_rate < minimum:
            drop_offs = sorted(result.drop_off_points, key=lambda p: p.drop_off_count, reverse=True)
            self.audit_service.report_issue(
                AuditCategory.UX,
                _gap_severity(minimum - result.completion_rate),
                f"Low Task Completion Rate: {result.flow_name}",
                f'The user flow "{result.flow_name}" has a completion rate of '
                f"{result.completion_rate}%, below the minimum of {minimum}%",
                component="User Flow",
                metadata={
                    "flow_name": result.flow_name,
                    "completion_rate": result.completion_rate,
                    "threshold": minimum,
                    "main_drop_off_points": [p.step_name for p in drop_offs[:3]],
                },
            )

        failed_steps = [step for step in result.steps if not step.success]
        if failed_steps:
            self.audit_service.report_issue(
                AuditCategory.UX,
                AuditSeverity.MEDIUM,
                f"Failed Steps in User Flow: {result.flow_name}",
                f'{len(failed_steps)} steps failed in user flow "{result.flow_name}"',
                component="User Flow",
                metadata={
                    "flow_name": result.flow_name,
                    "completion_rate": result.completion_rate,
                    "failed_steps": [
                        {"step_name": s.step_name, "error_message": s.error_message}
                        for s in failed_steps
                    ],
                },
            )

        logger.info(
            f"🧭 User flow {result.flow_name} recorded: completion={result.completion_rate}%, "
            f"failed_steps={len(failed_steps)}"
        )

    def record_accessibility_result(self, result: AccessibilityResult) -> None:
        self.accessibility_results[result.url] = result

        for impact, severity in ACCESSIBILITY_SEVERITY.items():
            violations = [v for v in result.violations if v.impact == impact]
            if not violations:
                continue

            self.audit_service.report_issue(
                AuditCategory.UX,
                severity,
                f"{impact.capitalize()} Accessibility Violations on {result.url}",
                f"Found {len(violations)} {impact} {result.standard} violations on {result.url}",
                component="Accessibility",
                metadata={
                    "url": result.url,
                    "standard": result.standard,
                    "violations": [{"id": v.id, "description": v.description} for v in violations],
                },
                remediation="\n".join(v.help_url for v in violations if v.help_url) or None,
            )

    def record_booking_ux_result(self, result: BookingUXResult) -> None:
        self.booking_ux_results[result.booking_flow] = result
        min_conversion = self.config["min_booking_conversion_rate"]
        min_satisfaction = self.config["min_user_satisfaction"]
        remediation = "\n".join(result.recommendations) or None

        if result.conversion_rate < min_conversion:
            self.audit_service.report_issue(
                AuditCategory.UX,
                _gap_severity(min_conversion - result.conversion_rate),
                f"Low Booking Conversion Rate: {result.booking_flow}",
                f'The booking flow "{result.booking_flow}" has a conversion rate of '
                f"{result.conversion_rate}%, which is below the minimum threshold of {min_conversion}%",
                component="Booking UX",
                metadata={
                    "booking_flow": result.booking_flow,
                    "conversion_rate": result.conversion_rate,
                    "threshold": min_conversion,
                    "abandonment": result.abandonment,
                    "common_issues": [i.model_dump() for i in result.common_issues],
                },
                remediation=remediation,
            )

        if result.user_satisfaction < min_satisfaction:
            self.audit_service.report_issue(
                AuditCategory.UX,
                AuditSeverity.HIGH,
                f"Low User Satisfaction for Booking: {result.booking_flow}",
                f'The booking flow "{result.booking_flow}" has a user satisfaction rating of '
                f"{result.user_satisfaction}/5, which is below the minimum threshold of {min_satisfaction}/5",
                component="Booking UX",
                metadata={
                    "booking_flow": result.booking_flow,
                    "user_satisfaction": result.user_satisfaction,
                    "threshold": min_satisfaction,
                },
                remediation=remediation,
            )

    def record_responsiveness_result(self, result: ResponsivenessResult) -> None:
        self.responsiveness_results[result.url] = result

        for device in result.device_types:
            total = len(device.issues)
            if total == 0:
                continue

            by_type: dict[str, int] = {}
            for issue in device.issues:
                by_type[issue.type] = by_type.get(issue.type, 0) + 1
            layout = by_type.get("layout", 0)
            overflow = by_type.get("overflow", 0)

            if total > 10 or layout > 5:
                severity = AuditSeverity.HIGH
            elif total > 5 or (layout > 0 and overflow > 0):
                severity = AuditSeverity.MEDIUM
            else:
                severity = AuditSeverity.LOW

            self.audit_service.report_issue(
                AuditCategory.UX,
                severity,
                f"Responsiveness Issues on {device.device_type} for {result.url}",
                f"Found {total} responsiveness issues on {device.device_type} view of {result.url}",
                component="Responsiveness",
                metadata={
                    "url": result.url,
                    "device_type": device.device_type,
                    "dimensions": f"{device.width}x{device.height}",
                    "issues_by_type": by_type,
                },
            )

    def generate_ux_report(self) -> dict[str, Any]:
        minimum = self.config["min_task_completion_rate"]
        flows = list(self.user_flow_results.values())
        problematic = sorted(
            (
                {
                    "flow_name": f.flow_name,
                    "completion_rate": f.completion_rate,
                    "main_drop_off_point": (
                        max(f.drop_off_points, key=lambda p: p.drop_off_count).step_name
                        if f.drop_off_points
                        else "Unknown"
                    ),
                }
                for f in flows
                if f.completion_rate < minimum
            ),
            key=lambda f: f["completion_rate"],
        )

        violations_by_impact = {"critical": 0, "serious": 0, "moderate": 0, "minor": 0}
        violation_counts: dict[str, dict[str, Any]] = {}
        for result in self.accessibility_results.values():
            for violation in result.violations:
                violations_by_impact[violation.impact] += 1
                entry = violation_counts.setdefault(
                    violation.id, {"id": violation.id, "description": violation.description, "count": 0}
                )
                entry["count"] += 1

        booking_results = list(self.booking_ux_results.values())
        issue_counts: dict[str, int] = {}
        for result in booking_results:
            for issue in result.common_issues:
                issue_counts[issue.issue] = issue_counts.get(issue.issue, 0) + issue.count

        issues_by_device: dict[str, int] = {}
        issues_by_type = {"layout": 0, "overflow": 0, "readability": 0, "touch-target": 0, "other": 0}
        for result in self.responsiveness_results.values():
            for device in result.device_types:
                issues_by_device[device.device_type] = (
                    issues_by_device.get(device.device_type, 0) + len(device.issues)
                )
                for issue in device.issues:
                    issues_by_type[issue.type] += 1

        return {
            "user_flows": {
                "total_flows": len(flows),
                "average_completion_rate": average(f.completion_rate for f in flows),
                "problematic_flows": problematic,
            },
            "accessibility": {
                "total_urls": len(self.accessibility_results),
                "violations_by_impact": violations_by_impact,
                "most_common_violations": sorted(
                    violation_counts.values(), key=lambda v: v["count"], reverse=True
                )[:5],
            },
            "booking_ux": {
                "average_conversion_rate": average(r.conversion_rate for r in booking_results),
                "average_user_satisfaction": average(r.user_satisfaction for r in booking_results),
                "common_issues": [
                    {"issue": issue, "count": count}
                    for issue, count in sorted(issue_counts.items(), key=lambda kv: kv[1], reverse=True)[:5]
                ],
            },
            "responsiveness": {
                "total_urls": len(self.responsiveness_results),
                "issues_by_device": issues_by_device,
                "most_common_issue_types": issues_by_type,
            },
        }

    def clear(self) -> None:
        self.user_flow_results.clear()
        self.accessibility_results.clear()
        self.booking_ux_results.clear()
        self.responsiveness_results.clear()
