"""Booking audit - integrity checks, notification delivery and booking funnel metrics"""

import logging
from typing import Any, Optional

from .performance import average
from .schemas import (
    AuditCategory,
    AuditSeverity,
    BookingIntegrityResult,
    BookingPerformanceMetrics,
    IntegrityIssue,
    NotificationDeliveryResult,
)
from .service import AuditService

logger = logging.getLogger(__name__)

DEFAULT_BOOKING_AUDIT_CONFIG = {
    "min_notification_delivery_rate": 99.9,  # percentage
    "max_double_bookings": 0,
    "target_conversion_rate": 95,  # percentage
    "max_booking_time": 5000,  # ms
    "min_concurrent_bookings": 1000,
}

CRITICAL_NOTIFICATION_TYPES = {"booking_confirmation", "cancellation"}


def _band_severity(gap: float) -> AuditSeverity:
    if gap > 10:
        return AuditSeverity.CRITICAL
    if gap > 5:
        return AuditSeverity.HIGH
    if gap > 2:
        return AuditSeverity.MEDIUM
    return AuditSeverity.LOW


def _conversion_severity(gap: float) -> AuditSeverity:
    if gap > 20:
        return AuditSeverity.CRITICAL
    if gap > 10:
        return AuditSeverity.HIGH
    if gap > 5:
        return AuditSeverity.MEDIUM
    return AuditSeverity.LOW


class BookingAuditService:
    def __init__(self, audit_service: AuditService):
        self.audit_service = audit_service
        self.config: dict[str, Any] = dict(DEFAULT_BOOKING_AUDIT_CONFIG)
        self.integrity_results: dict[str, BookingIntegrityResult] = {}
        self.notification_results: dict[str, NotificationDeliveryResult] = {}
        self.performance_metrics: Optional[BookingPerformanceMetrics] = None

    def update_config(self, **changes) -> dict[str, Any]:
        self.config.update(changes)
        return self.config

    def record_integrity_result(self, result: BookingIntegrityResult) -> None:
        self.integrity_results[result.id] = result
        if result.success and not result.issues:
            logger.info(f"✅ Booking integrity test passed: {result.test_name}")
            return

        double_bookings = [i for i in result.issues if i.type == "double_booking"]
        sync_issues = [i for i in result.issues if i.type == "availability_sync"]
        other_issues = [
            i for i in result.issues if i.type not in ("double_booking", "availability_sync")
        ]

        if len(double_bookings) > self.config["max_double_bookings"]:
            self.audit_service.report_issue(
                AuditCategory.BOOKING,
                AuditSeverity.CRITICAL,
                f"Double Booking Detected: {result.test_name}",
                f"Found {len(double_bookings)} instances of double booking",
                component="Booking System",
                metadata={
                    "test_id": result.id,
                    "count": len(double_bookings),
                    "issues": [i.model_dump() for i in double_bookings],
                },
                remediation="Review the slot locking in booking creation and reschedule flows",
            )

        if sync_issues:
            self.audit_service.report_issue(
                AuditCategory.BOOKING,
                AuditSeverity.HIGH,
                f"Availability Sync Issues: {result.test_name}",
                f"Found {len(sync_issues)} availability synchronization issues",
                component="Booking System",
                metadata={
                    "test_id": result.id,
                    "count": len(sync_issues),
                    "issues": [i.model_dump() for i in sync_issues],
                },
            )

        if other_issues:
            self.audit_service.report_issue(
                AuditCategory.BOOKING,
                AuditSeverity.MEDIUM,
                f"Booking Integrity Issues: {result.test_name}",
                f"Found {len(other_issues)} booking integrity issues",
                component="Booking System",
                metadata={
                    "test_id": result.id,
                    "count": len(other_issues),
                    "issues": [i.model_dump() for i in other_issues],
                },
            )

        logger.warning(
            f"⚠️ Booking integrity test {result.test_name} found {len(result.issues)} issues "
            f"({len(double_bookings)} double bookings)"
        )

    def record_notification_result(self, result: NotificationDeliveryResult) -> None:
        self.notification_results[result.notification_type] = result
        minimum = self.config["min_notification_delivery_rate"]

        if result.delivery_rate >= minimum:
            return

        gap = minimum - result.delivery_rate
        severity = (
            AuditSeverity.HIGH
            if result.notification_type in CRITICAL_NOTIFICATION_TYPES and gap > 0.1
            else AuditSeverity.MEDIUM
        )
        self.audit_service.report_issue(
            AuditCategory.BOOKING,
            severity,
            f"Low Notification Delivery Rate: {result.notification_type}",
            f"{result.notification_type} notifications were delivered at {result.delivery_rate}%, "
            f"below the minimum of {minimum}%",
            component="Notification System",
            metadata={
                "notification_type": result.notification_type,
                "delivery_rate": result.delivery_rate,
                "total_sent": result.total_sent,
                "failed": result.failed,
                "issues": [i.model_dump() for i in result.issues],
            },
        )

    def update_performance_metrics(self, metrics: BookingPerformanceMetrics) -> None:
        self.performance_metrics = metrics
        target = self.config["target_conversion_rate"]

        if metrics.conversion_rate < target:
            gap = target - metrics.conversion_rate
            self.audit_service.report_issue(
                AuditCategory.BOOKING,
                _conversion_severity(gap),
                "Low Booking Conversion Rate",
                f"Booking conversion rate is {metrics.conversion_rate}%, below the target of {target}%",
                component="Booking System",
                metadata={
                    "conversion_rate": metrics.conversion_rate,
                    "target": target,
                    "checkout_abandonment_rate": metrics.checkout_abandonment_rate,
                },
            )

        max_time = self.config["max_booking_time"]
        if metrics.average_booking_time > max_time:
            self.audit_service.report_issue(
                AuditCategory.BOOKING,
                AuditSeverity.MEDIUM,
                "Slow Booking Process",
                f"Average booking time is {metrics.average_booking_time}ms, above the maximum of {max_time}ms",
                component="Booking System",
                metadata={"average_booking_time": metrics.average_booking_time, "threshold": max_time},
            )

        min_concurrent = self.config["min_concurrent_bookings"]
        if metrics.concurrent_bookings.max < min_concurrent:
            self.audit_service.report_issue(
                AuditCategory.BOOKING,
                AuditSeverity.HIGH,
                "Insufficient Booking Capacity",
                f"The system handled at most {metrics.concurrent_bookings.max} concurrent bookings, "
                f"below the required {min_concurrent}",
                component="Booking System",
                metadata={
                    "max_concurrent_bookings": metrics.concurrent_bookings.max,
                    "required": min_concurrent,
                },
            )

        if metrics.error_rate > 1:
            self.audit_service.report_issue(
                AuditCategory.BOOKING,
                _band_severity(metrics.error_rate),
                "High Booking Error Rate",
                f"Booking error rate is {metrics.error_rate}%",
                component="Booking System",
                metadata={"error_rate": metrics.error_rate},
            )

    def get_all_integrity_issues(self) -> list[IntegrityIssue]:
        return [issue for result in self.integrity_results.values() for issue in result.issues]

    def generate_booking_audit_report(self) -> dict[str, Any]:
        results = list(self.integrity_results.values())
        issues = self.get_all_integrity_issues()
        successful = sum(1 for r in results if r.success)

        notifications = list(self.notification_results.values())
        issue_counts: dict[str, int] = {}
        for result in notifications:
            for issue in result.issues:
                issue_counts[issue.reason] = issue_counts.get(issue.reason, 0) + issue.count

        return {
            "integrity": {
                "total_tests": len(results),
                "success_rate": (successful / len(results) * 100) if results else 100,
                "double_booking_count": sum(1 for i in issues if i.type == "double_booking"),
                "availability_sync_issue_count": sum(1 for i in issues if i.type == "availability_sync"),
                "other_issue_count": sum(
                    1 for i in issues if i.type not in ("double_booking", "availability_sync")
                ),
            },
            "notifications": {
                "delivery_rates": {r.notification_type: r.delivery_rate for r in notifications},
                "average_delivery_time": average(r.avg_delivery_time for r in notifications),
                "common_issues": [
                    {"reason": reason, "count": count}
                    for reason, count in sorted(issue_counts.items(), key=lambda kv: kv[1], reverse=True)[:5]
                ],
            },
            "performance": (
                self.performance_metrics.model_dump(mode="json") if self.performance_metrics else None
            ),
        }

    def clear(self) -> None:
        self.integrity_results.clear()
        self.notification_results.clear()
        self.performance_metrics = None
