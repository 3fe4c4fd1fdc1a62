from datetime import timedelta

import pytest
from conftest import future_at

from vibewell.domain.audit import (
    audit_controller,
    audit_service,
    booking_audit,
    compliance_audit,
    performance_audit,
    security_audit,
    ux_audit,
)
from vibewell.domain.audit.schemas import (
    AccessibilityResult,
    AuditCategory,
    AuditSeverity,
    BookingPerformanceMetrics,
    DatabasePerformanceMetrics,
    FinancialTransactionAudit,
    IssueStatus,
    LoadTestResult,
    NotificationDeliveryResult,
    RegulationStatus,
    UserFlowResult,
    VulnerabilityScanResult,
    utc_now,
)
from vibewell.domain.audit.service import AuditError, AuditService


def vulnerability(vuln_id="CVE-1", cvss=9.1, severity="critical"):
    return VulnerabilityScanResult(
        id=vuln_id,
        title=f"Vulnerable dependency {vuln_id}",
        description="Remote code execution",
        cvss_score=cvss,
        severity=severity,
        component="api",
        recommendation="Upgrade",
    )


class TestAuditService:
    def test_issues_are_filtered_and_ordered(self):
        service = AuditService()
        first = service.report_issue(AuditCategory.UX, AuditSeverity.LOW, "Small font", "Hard to read")
        second = service.report_issue(AuditCategory.SECURITY, AuditSeverity.HIGH, "Weak TLS", "TLS 1.0 enabled")
        third = service.report_issue(AuditCategory.UX, AuditSeverity.MEDIUM, "Contrast", "Low contrast")

        assert [i.id for i in service.get_issues()] == [first.id, second.id, third.id]
        assert [i.id for i in service.get_issues(AuditCategory.UX)] == [first.id, third.id]
        assert first.component == "General"

        service.update_issue_status(third.id, IssueStatus.RESOLVED)
        assert [i.id for i in service.get_issues(status=IssueStatus.OPEN)] == [first.id, second.id]

    def test_status_update(self):
        service = AuditService()
        issue = service.report_issue(AuditCategory.SECURITY, AuditSeverity.HIGH, "Weak TLS", "TLS 1.0")

        assert service.update_issue_status(issue.id, IssueStatus.RESOLVED, "Disabled TLS 1.0") is True
        assert issue.resolved_at is not None
        assert issue.remediation == "Disabled TLS 1.0"

        service.update_issue_status(issue.id, IssueStatus.IN_PROGRESS)
        assert issue.resolved_at is None
        assert service.update_issue_status("missing", IssueStatus.RESOLVED) is False

    def test_listeners_only_hear_critical_issues(self):
        service = AuditService()
        heard = []
        service.add_listener(heard.append)

        service.report_issue(AuditCategory.UX, AuditSeverity.HIGH, "Slow", "Slow page")
        critical = service.report_issue(AuditCategory.SECURITY, AuditSeverity.CRITICAL, "Leak", "Keys leaked")

        assert heard == [critical]

    def test_failing_listener_does_not_block_reporting(self):
        service = AuditService()
        heard = []

        def broken(issue):
            raise RuntimeError("boom")

        service.add_listener(broken)
        service.add_listener(heard.append)

        issue = service.report_issue(AuditCategory.SECURITY, AuditSeverity.CRITICAL, "Leak", "Keys leaked")

        assert heard == [issue]
        assert service.get_issue(issue.id) is issue

    def test_report_summary(self):
        service = AuditService()
        service.report_issue(AuditCategory.SECURITY, AuditSeverity.CRITICAL, "A", "a")
        high = service.report_issue(AuditCategory.SECURITY, AuditSeverity.HIGH, "B", "b")
        service.report_issue(AuditCategory.UX, AuditSeverity.LOW, "C", "c")
        service.update_issue_status(high.id, IssueStatus.RESOLVED)

        report = service.generate_report(AuditCategory.SECURITY)

        assert report.summary.total == 2
        assert report.summary.critical == 1
        assert report.summary.high == 1
        assert report.summary.open == 1
        assert report.summary.resolved == 1
        assert service.get_report(report.id) is report

    def test_clear_keeps_listeners(self):
        service = AuditService()
        heard = []
        service.add_listener(heard.append)
        service.report_issue(AuditCategory.SECURITY, AuditSeverity.CRITICAL, "A", "a")

        service.clear()
        service.report_issue(AuditCategory.SECURITY, AuditSeverity.CRITICAL, "B", "b")

        assert len(service.get_issues()) == 1
        assert len(heard) == 2


class TestCategoryAudits:
    def test_vulnerabilities_below_threshold_are_stored_not_reported(self):
        reported = security_audit.process_vulnerability_results(
            [vulnerability("CVE-1", 9.1), vulnerability("CVE-2", 4.0, "medium")]
        )

        assert reported == 1
        assert set(security_audit.vulnerabilities) == {"CVE-1", "CVE-2"}
        [issue] = audit_service.get_issues()
        assert issue.metadata["cvss_score"] == 9.1
        assert issue.remediation == "Upgrade"

    def test_load_test_breaches(self):
        result = LoadTestResult(
            id="lt-1",
            user_count=5000,
            duration=600,
            metrics={
                "throughput": {"value": 900, "unit": "rps"},
                "response_time": {"value": 450},
                "error_rate": {"value": 3, "unit": "%"},
                "cpu_utilization": {"value": 95, "unit": "%"},
            },
        )

        breaches = performance_audit.record_load_test_result(result)

        assert [b["metric"] for b in breaches] == ["Response Time", "Error Rate", "CPU Utilization"]
        [issue] = audit_service.get_issues(AuditCategory.PERFORMANCE)
        assert issue.severity == AuditSeverity.HIGH
        assert issue.component == "Load Testing"

    @pytest.mark.parametrize(
        "execution_time,expected",
        [(90, None), (150, AuditSeverity.LOW), (250, AuditSeverity.MEDIUM), (700, AuditSeverity.HIGH), (1500, AuditSeverity.CRITICAL)],
    )
    def test_slow_query_severity(self, execution_time, expected):
        metrics = DatabasePerformanceMetrics(
            query_type="read", operation_type="list_bookings", execution_time={"value": execution_time}
        )
        assert performance_audit.record_database_metrics(metrics) == expected

    def test_low_completion_rate(self):
        ux_audit.record_user_flow_result(
            UserFlowResult(
                id="flow-1",
                flow_name="checkout",
                completion_rate=65,
                steps=[{"step_name": "pay", "success": False, "error_message": "Card form froze"}],
                drop_off_points=[
                    {"step_name": "details", "drop_off_count": 4},
                    {"step_name": "pay", "drop_off_count": 12},
                ],
            )
        )

        low_rate, failed = audit_service.get_issues(AuditCategory.UX)
        assert low_rate.severity == AuditSeverity.CRITICAL
        assert low_rate.metadata["main_drop_off_points"] == ["pay", "details"]
        assert failed.severity == AuditSeverity.MEDIUM

    def test_accessibility_grouped_by_impact(self):
        ux_audit.record_accessibility_result(
            AccessibilityResult(
                url="/book",
                violations=[
                    {"id": "color-contrast", "impact": "serious", "description": "Low contrast"},
                    {"id": "label", "impact": "critical", "description": "Missing label"},
                    {"id": "region", "impact": "serious", "description": "No landmark"},
                ],
            )
        )

        severities = sorted(i.severity.value for i in audit_service.get_issues())
        assert severities == ["high", "medium"]
        assert ux_audit.generate_ux_report()["accessibility"]["violations_by_impact"]["serious"] == 2

    def test_regulation_status(self):
        compliance_audit.update_gdpr_status(
            RegulationStatus(
                overall_status="partially_compliant",
                requirements=[
                    {"id": "art-17", "description": "Right to erasure", "status": "non_compliant"},
                    {"id": "art-20", "description": "Portability", "status": "compliant"},
                ],
            )
        )

        titles = [i.title for i in audit_service.get_issues(AuditCategory.COMPLIANCE)]
        assert titles == ["GDPR Requirement Non-Compliant: art-17", "GDPR Partial Compliance"]

    def test_critical_financial_issue(self):
        compliance_audit.audit_financial_transaction(
            FinancialTransactionAudit(
                id="payment-1-payment",
                transaction_type="payment",
                amount=50,
                currency="usd",
                status="success",
                issues=[{"type": "integrity", "description": "Amount mismatch", "severity": "critical"}],
            )
        )

        [issue] = audit_service.get_issues(AuditCategory.FINANCIAL)
        assert issue.severity == AuditSeverity.CRITICAL
        assert issue.component == "Financial Transactions"
        assert "payment-1-payment" in compliance_audit.financial_audits

    def test_notification_delivery(self):
        booking_audit.record_notification_result(
            NotificationDeliveryResult(
                notification_type="booking_confirmation", total_sent=1000, delivered=990, failed=10, delivery_rate=99.0
            )
        )
        booking_audit.record_notification_result(
            NotificationDeliveryResult(
                notification_type="reminder", total_sent=1000, delivered=999, failed=1, delivery_rate=99.95
            )
        )

        [issue] = audit_service.get_issues(AuditCategory.BOOKING)
        assert issue.severity == AuditSeverity.HIGH
        assert issue.component == "Notification System"

    def test_booking_performance(self):
        booking_audit.update_performance_metrics(
            BookingPerformanceMetrics(
                average_booking_time=2000,
                conversion_rate=96,
                concurrent_bookings={"max": 200},
                error_rate=7,
            )
        )

        titles = {i.title: i.severity for i in audit_service.get_issues()}
        assert titles == {
            "Insufficient Booking Capacity": AuditSeverity.HIGH,
            "High Booking Error Rate": AuditSeverity.HIGH,
        }


class TestController:
    def test_unknown_and_unrunnable_categories(self):
        with pytest.raises(AuditError):
            audit_controller.run_category_audit("weather")
        with pytest.raises(AuditError):
            audit_controller.run_category_audit(AuditCategory.FINANCIAL)

    def test_schedule_and_due_audits(self):
        now = utc_now()
        assert audit_controller.run_due_audits(now) == ["security", "performance", "ux", "compliance", "booking"]
        assert audit_controller.run_due_audits(now + timedelta(hours=1)) == []

        # booking runs daily; ux's most frequent check is weekly
        later = now + timedelta(days=1, minutes=1)
        assert audit_controller.is_audit_due("booking", later)
        assert not audit_controller.is_audit_due("ux", later)

        audit_controller.update_schedule_config({"ux": {"accessibility_testing": "hourly"}})
        assert audit_controller.is_audit_due("ux", now + timedelta(hours=2))

    def test_schedule_validation(self):
        with pytest.raises(AuditError):
            audit_controller.update_schedule_config({"weather": {"scan": "daily"}})
        with pytest.raises(AuditError):
            audit_controller.update_schedule_config({"ux": {"accessibility_testing": "fortnightly"}})
        with pytest.raises(AuditError):
            audit_controller.is_audit_due("weather")

    def test_score(self):
        audit_service.report_issue(AuditCategory.SECURITY, AuditSeverity.CRITICAL, "Leak", "Keys leaked", remediation="Rotate keys")
        audit_service.report_issue(AuditCategory.UX, AuditSeverity.MEDIUM, "Contrast", "Low contrast")

        score = audit_controller.calculate_audit_score(audit_service.get_issues())

        assert score["overall_score"] == 88
        assert score["category_scores"]["security"] == 90
        assert score["category_scores"]["ux"] == 98
        assert score["target_met"] is False
        assert score["recommendations"] == []

    def test_score_recommendations_and_floor(self):
        for n in range(12):
            audit_service.report_issue(AuditCategory.SECURITY, AuditSeverity.CRITICAL, f"Leak {n}", "Keys leaked")
        audit_service.report_issue(AuditCategory.UX, AuditSeverity.MEDIUM, "Contrast", "Low contrast")

        score = audit_controller.calculate_audit_score(audit_service.get_issues())

        assert score["overall_score"] == 1
        assert score["category_scores"]["security"] == 1
        assert score["recommendations"] == [
            "Improve security by addressing Leak 0: No remediation suggestion provided"
        ]

    def test_clean_platform_scores_full_marks(self):
        score = audit_controller.calculate_audit_score([])
        assert score["overall_score"] == 100
        assert score["target_met"] is True

    def test_comprehensive_report_is_saved(self):
        security_audit.process_vulnerability_results([vulnerability()])

        report = audit_controller.run_comprehensive_audit()

        assert report["summary"]["total_issues"] == 1
        assert report["summary"]["issues_by_category"]["security"] == 1
        assert report["security"]["vulnerabilities"]["critical"] == 1
        assert report["score"]["overall_score"] == 90
        assert audit_controller.list_saved_reports() == [report["saved_as"]]
        assert audit_controller.load_saved_report(report["saved_as"])["score"] == report["score"]
        assert len(audit_controller.get_all_reports()) == 5

    def test_saved_report_names_are_validated(self):
        with pytest.raises(AuditError):
            audit_controller.load_saved_report("../../etc/passwd")
        with pytest.raises(AuditError):
            audit_controller.load_saved_report("audit-report-2030-01-01T00-00-00.json")

    def test_integrity_check_finds_double_bookings(self, db, make_booking, make_user, facial):
        make_booking(make_user(), facial, future_at(hour=10))
        make_booking(make_user(), facial, future_at(hour=10, minute=30))
        make_booking(make_user(), facial, future_at(hour=11))
        make_booking(make_user(), facial, future_at(hour=11, minute=30), status="CANCELLED")

        result = audit_controller.run_booking_integrity_check(db)

        assert not result.success
        assert [i.type for i in result.issues] == ["double_booking", "double_booking"]
        [issue] = audit_service.get_issues(AuditCategory.BOOKING)
        assert issue.severity == AuditSeverity.CRITICAL

    def test_integrity_check_finds_orphans(self, db, make_booking, customer, facial):
        booking = make_booking(customer, facial, future_at())
        booking.service_id = None
        db.commit()

        result = audit_controller.run_booking_integrity_check(db)

        assert [i.type for i in result.issues] == ["orphaned_booking"]
        assert result.issues[0].booking_ids == [booking.public_id]

    def test_clean_integrity_check(self, db, make_booking, customer, facial):
        make_booking(customer, facial, future_at())
        assert audit_controller.run_booking_integrity_check(db).success
        assert audit_service.get_issues() == []


class TestAuditApi:
    def test_admin_only(self, client, login, customer):
        login(customer)
        assert client.get("/audit/issues").status_code == 403

    def test_issue_lifecycle(self, client, login, admin):
        login(admin)

        created = client.post(
            "/audit/issues",
            json={"category": "ux", "severity": "medium", "title": "Tiny buttons", "description": "Touch targets"},
        )

        assert created.status_code == 201
        issue_id = created.json()["id"]
        assert client.get("/audit/issues", params={"category": "ux"}).json()[0]["id"] == issue_id

        updated = client.patch(f"/audit/issues/{issue_id}", json={"status": "resolved"})

        assert updated.json()["status"] == "resolved"
        assert updated.json()["resolved_at"] is not None
        assert client.get("/audit/issues/missing").status_code == 404
        assert client.patch("/audit/issues/missing", json={"status": "resolved"}).status_code == 404

    def test_run_category(self, client, login, admin):
        login(admin)

        report = client.post("/audit/run", json={"category": "security"}).json()

        assert report["category"] == "security"
        assert client.get(f"/audit/reports/{report['id']}").json()["id"] == report["id"]
        assert client.post("/audit/run", json={"category": "financial"}).status_code == 400
        assert client.post("/audit/run", json={"category": "weather"}).status_code == 422

    def test_run_comprehensive(self, client, login, admin):
        login(admin)

        report = client.post("/audit/run", json={}).json()

        assert report["score"]["overall_score"] == 100
        saved = client.get("/audit/saved").json()["reports"]
        assert saved == [report["saved_as"]]
        assert client.get(f"/audit/saved/{saved[0]}").json()["timestamp"] == report["timestamp"]
        assert client.get("/audit/saved/not-a-report.json").status_code == 404

    def test_schedule(self, client, login, admin):
        login(admin)

        response = client.patch("/audit/schedule", json={"booking": {"integrity_testing": "hourly"}})

        assert response.json()["schedule"]["booking"]["integrity_testing"] == "hourly"
        assert client.patch("/audit/schedule", json={"booking": {"integrity_testing": "sometimes"}}).status_code == 400
        assert client.get("/audit/schedule").json()["schedule"]["booking"]["integrity_testing"] == "hourly"

    def test_ingestion_and_clear(self, client, login, admin):
        login(admin)

        response = client.post(
            "/audit/security/vulnerabilities",
            json=[vulnerability().model_dump(mode="json"), vulnerability("CVE-2", 2.0, "low").model_dump(mode="json")],
        )

        assert response.json() == {"received": 2, "reported": 1}
        assert len(client.get("/audit/security/report").json()["vulnerabilities"]) == 2
        assert client.delete("/audit/data").status_code == 204
        assert client.get("/audit/issues").json() == []

    def test_integrity_check_endpoint(self, client, login, admin, make_booking, make_user, facial):
        make_booking(make_user(), facial, future_at(hour=10))
        make_booking(make_user(), facial, future_at(hour=10, minute=15))
        login(admin)

        body = client.post("/audit/booking/integrity-check").json()

        assert body["success"] is False
        assert client.get("/audit/booking/report").json()["integrity"]["double_booking_count"] == 1
