"""Audit service - In-memory issue tracker and category report generation"""

import logging
from threading import Lock
from typing import Any, Callable, Optional

from .schemas import (
    AuditCategory,
    AuditIssue,
    AuditReport,
    AuditSeverity,
    AuditSummary,
    IssueStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

IssueListener = Callable[[AuditIssue], None]


class AuditError(Exception):
    """Raised for invalid audit operations (unknown categories, bad report ids)"""


def summarize(issues: list[AuditIssue]) -> AuditSummary:
    summary = AuditSummary(total=len(issues))
    for issue in issues:
        setattr(summary, issue.severity.value, getattr(summary, issue.severity.value) + 1)
        if issue.status == IssueStatus.OPEN:
            summary.open += 1
        elif issue.status == IssueStatus.IN_PROGRESS:
            summary.in_progress += 1
        elif issue.status == IssueStatus.RESOLVED:
            summary.resolved += 1
    return summary


class AuditService:
    """Thread-safe issue tracker shared by every category audit"""

    def __init__(self):
        self._issues: dict[str, AuditIssue] = {}
        self._reports: dict[str, AuditReport] = {}
        self._listeners: list[IssueListener] = []
        self._lock = Lock()

    def add_listener(self, listener: IssueListener) -> None:
        """Register a callback invoked for every critical issue"""
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: IssueListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def report_issue(
        self,
        category: AuditCategory,
        severity: AuditSeverity,
        title: str,
        description: str,
        component: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        remediation: Optional[str] = None,
    ) -> AuditIssue:
        issue = AuditIssue(
            category=AuditCategory(category),
            severity=AuditSeverity(severity),
            title=title,
            description=description,
            component=component or "General",
            metadata=metadata or {},
            remediation=remediation,
        )

        with self._lock:
            self._issues[issue.id] = issue
            listeners = list(self._listeners)

        log = logger.warning if issue.severity in (AuditSeverity.CRITICAL, AuditSeverity.HIGH) else logger.info
        log(
            f"🔎 Audit issue reported: [{issue.category.value}/{issue.severity.value}] "
            f"{issue.title} (component={issue.component}, id={issue.id})"
        )

        if issue.severity == AuditSeverity.CRITICAL:
            for listener in listeners:
                try:
                    listener(issue)
                except Exception as e:
                    logger.error(f"❌ Critical issue listener failed for {issue.id}: {e}")

        return issue

    def get_issue(self, issue_id: str) -> Optional[AuditIssue]:
        with self._lock:
            return self._issues.get(issue_id)

    def get_issues(
        self,
        category: Optional[AuditCategory] = None,
        status: Optional[IssueStatus] = None,
    ) -> list[AuditIssue]:
        with self._lock:
            issues = list(self._issues.values())

        if category is not None:
            issues = [i for i in issues if i.category == AuditCategory(category)]
        if status is not None:
            issues = [i for i in issues if i.status == IssueStatus(status)]
        return sorted(issues, key=lambda i: i.datestamp)

    def update_issue_status(
        self, issue_id: str, status: IssueStatus, remediation: Optional[str] = None
    ) -> bool:
        with self._lock:
            issue = self._issues.get(issue_id)
            if issue is None:
                logger.warning(f"⚠️ Cannot update unknown audit issue {issue_id}")
                return False

            now = utc_now()
            issue.status = IssueStatus(status)
            issue.updated_at = now
            if remediation is not None:
                issue.remediation = remediation
            issue.resolved_at = now if issue.status == IssueStatus.RESOLVED else None

        logger.info(f"✅ Audit issue {issue_id} moved to {issue.status.value}")
        return True

    def generate_report(self, category: AuditCategory) -> AuditReport:
        issues = [issue.model_copy(deep=True) for issue in self.get_issues(category)]
        report = AuditReport(category=AuditCategory(category), issues=issues, summary=summarize(issues))

        with self._lock:
            self._reports[report.id] = report

        logger.info(
            f"📊 Generated {report.category.value} audit report {report.id} "
            f"({report.summary.total} issues)"
        )
        return report

    def get_all_reports(self) -> list[AuditReport]:
        with self._lock:
            reports = list(self._reports.values())
        return sorted(reports, key=lambda r: r.generated_at, reverse=True)

    def get_report(self, report_id: str) -> Optional[AuditReport]:
        with self._lock:
            return self._reports.get(report_id)

    def clear(self) -> None:
        """Drop every issue and report; listeners stay registered"""
        with self._lock:
            self._issues.clear()
            self._reports.clear()
