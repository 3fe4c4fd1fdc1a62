"""Performance audit - load tests, mobile, database and Core Web Vitals metrics"""

import logging
import math
from collections import deque
from typing import Any, Callable, Iterable, Optional

from .schemas import (
    AuditCategory,
    AuditSeverity,
    DatabasePerformanceMetrics,
    FrontendPerformanceMetrics,
    LoadTestResult,
    MobilePerformanceMetrics,
    PerformanceMetric,
)
from .service import AuditService

logger = logging.getLogger(__name__)

MAX_METRICS_PER_TYPE = 10000

DEFAULT_ALERT_THRESHOLDS = {
    "api_response_time": 200,  # ms
    "render_time": 100,  # ms
    "database_query_time": 100,  # ms
    "error_rate": 1,  # percentage
    "cpu_utilization": 80,  # percentage
    "memory_usage": 80,  # percentage
}

# Defaults applied when a metric carries no threshold of its own
MOBILE_DEFAULTS = {"startup_time": 2000, "memory_usage": 150, "battery_impact": 5, "frame_rate": 30}
WEB_VITALS_DEFAULTS = {"lcp": 2500, "fid": 100, "cls": 0.1, "ttfb": 600}


def average(values: Iterable[float]) -> float:
    values = list(values)
    if not values:
        return 0
    return sum(values) / len(values)


def nearest_rank(sorted_values: list[float], percentile: float) -> float:
    """Nearest-rank percentile of an ascending list"""
    if not sorted_values:
        return 0
    index = math.ceil((percentile / 100) * len(sorted_values)) - 1
    index = min(max(index, 0), len(sorted_values) - 1)
    return sorted_values[index]


def percentiles(values: Iterable[float]) -> dict[str, float]:
    ordered = sorted(values)
    return {
        "p50": nearest_rank(ordered, 50),
        "p95": nearest_rank(ordered, 95),
        "p99": nearest_rank(ordered, 99),
    }


def _breach(
    label: str,
    metric: Optional[PerformanceMetric],
    default_threshold: float,
    lower_is_worse: bool = False,
) -> Optional[dict[str, Any]]:
    if metric is None:
        return None

    threshold = metric.threshold or default_threshold
    exceeded = metric.value < threshold if lower_is_worse else metric.value > threshold
    if not exceeded:
        return None
    return {"metric": label, "value": metric.value, "threshold": threshold, "unit": metric.unit}


class PerformanceAuditService:
    def __init__(self, audit_service: AuditService):
        self.audit_service = audit_service
        self.alert_thresholds: dict[str, float] = dict(DEFAULT_ALERT_THRESHOLDS)
        self.sample_rate = 10
        self.load_test_results: dict[str, LoadTestResult] = {}
        self.mobile_metrics: deque[MobilePerformanceMetrics] = deque(maxlen=MAX_METRICS_PER_TYPE)
        self.database_metrics: deque[DatabasePerformanceMetrics] = deque(maxlen=MAX_METRICS_PER_TYPE)
        self.frontend_metrics: deque[FrontendPerformanceMetrics] = deque(maxlen=MAX_METRICS_PER_TYPE)

    def update_config(self, sample_rate: Optional[int] = None, **thresholds) -> dict[str, Any]:
        if sample_rate is not None:
            self.sample_rate = sample_rate
        self.alert_thresholds.update(thresholds)
        return {"sample_rate": self.sample_rate, "alert_thresholds": self.alert_thresholds}

    def _report_breaches(
        self, breaches: list[dict], title: str, description: str, component: str, metadata: dict
    ) -> None:
        severity = AuditSeverity.HIGH if len(breaches) > 2 else AuditSeverity.MEDIUM
        metrics = ", ".join(b["metric"] for b in breaches)
        self.audit_service.report_issue(
            AuditCategory.PERFORMANCE,
            severity,
            title,
            f"{description}: {metrics}",
            component=component,
            metadata={"issues": breaches, **metadata},
        )

    def record_load_test_result(self, result: LoadTestResult) -> list[dict]:
        self.load_test_results[result.id] = result
        metrics = result.metrics

        breaches = [
            b
            for b in (
                _breach("Response Time", metrics.response_time, self.alert_thresholds["api_response_time"]),
                _breach("Error Rate", metrics.error_rate, self.alert_thresholds["error_rate"]),
                _breach("CPU Utilization", metrics.cpu_utilization, self.alert_thresholds["cpu_utilization"]),
                _breach("Memory Usage", metrics.memory_usage, self.alert_thresholds["memory_usage"]),
            )
            if b
        ]

        if breaches:
            self._report_breaches(
                breaches,
                f"Load Test Performance Issues ({result.user_count} users)",
                f"The load test with {result.user_count} concurrent users exceeded performance thresholds for",
                "Load Testing",
                {
                    "test_id": result.id,
                    "user_count": result.user_count,
                    "duration": result.duration,
                    "p95_response_time": (
                        metrics.p95_response_time.value if metrics.p95_response_time else None
                    ),
                    "error_rate": metrics.error_rate.value,
                },
            )

        logger.info(
            f"🏋️ Load test {result.id} recorded: {result.user_count} users, "
            f"throughput={metrics.throughput.value}, {len(breaches)} threshold breaches"
        )
        return breaches

    def record_mobile_metrics(self, metrics: MobilePerformanceMetrics) -> list[dict]:
        self.mobile_metrics.append(metrics)

        breaches = [
            b
            for b in (
                _breach("Startup Time", metrics.startup_time, MOBILE_DEFAULTS["startup_time"]),
                _breach("Memory Usage", metrics.memory_usage, MOBILE_DEFAULTS["memory_usage"]),
                _breach("Battery Impact", metrics.battery_impact, MOBILE_DEFAULTS["battery_impact"]),
                _breach("Frame Rate", metrics.frame_rate, MOBILE_DEFAULTS["frame_rate"], lower_is_worse=True),
            )
            if b
        ]

        if breaches:
            self._report_breaches(
                breaches,
                f"Mobile Performance Issues ({metrics.device_type})",
                "Mobile performance thresholds exceeded for",
                "Mobile App",
                {
                    "device_type": metrics.device_type,
                    "app_version": metrics.app_version,
                    "startup_time": metrics.startup_time.value,
                    "memory_usage": metrics.memory_usage.value,
                    "frame_rate": metrics.frame_rate.value,
                },
            )
        return breaches

    def record_database_metrics(self, metrics: DatabasePerformanceMetrics) -> Optional[AuditSeverity]:
        self.database_metrics.append(metrics)

        threshold = metrics.execution_time.threshold or self.alert_thresholds["database_query_time"]
        if metrics.execution_time.value <= threshold:
            return None

        ratio = metrics.execution_time.value / threshold
        if ratio > 10:
            severity = AuditSeverity.CRITICAL
        elif ratio > 5:
            severity = AuditSeverity.HIGH
        elif ratio > 2:
            severity = AuditSeverity.MEDIUM
        else:
            severity = AuditSeverity.LOW

        self.audit_service.report_issue(
            AuditCategory.PERFORMANCE,
            severity,
            f"Slow Database {metrics.query_type.upper()} Operation: {metrics.operation_type}",
            f"Database operation took {metrics.execution_time.value}ms, "
            f"which exceeds the threshold of {threshold}ms",
            component="Database",
            metadata={
                "query_type": metrics.query_type,
                "operation_type": metrics.operation_type,
                "execution_time": metrics.execution_time.value,
                "threshold": threshold,
                "row_count": metrics.row_count,
                "index_usage": metrics.index_usage,
                "cache_hit": metrics.cache_hit,
            },
        )
        return severity

    def record_frontend_metrics(self, metrics: FrontendPerformanceMetrics) -> list[dict]:
        self.frontend_metrics.append(metrics)

        breaches = [
            b
            for b in (
                _breach("Largest Contentful Paint", metrics.lcp, WEB_VITALS_DEFAULTS["lcp"]),
                _breach("First Input Delay", metrics.fid, WEB_VITALS_DEFAULTS["fid"]),
                _breach("Cumulative Layout Shift", metrics.cls, WEB_VITALS_DEFAULTS["cls"]),
                _breach("Time to First Byte", metrics.ttfb, WEB_VITALS_DEFAULTS["ttfb"]),
            )
            if b
        ]

        if breaches:
            self._report_breaches(
                breaches,
                f"Frontend Performance Issues ({metrics.device_type})",
                "Web Vitals thresholds exceeded for",
                "Frontend",
                {
                    "device_type": metrics.device_type,
                    "page_url": metrics.page_url,
                    "lcp": metrics.lcp.value,
                    "fid": metrics.fid.value,
                    "cls": metrics.cls.value,
                },
            )
        return breaches

    def _summarize(self, items, accessors: dict[str, Callable]) -> tuple[dict, dict]:
        averages = {name: average(fn(m) for m in items) for name, fn in accessors.items()}
        pcts = {name: percentiles(fn(m) for m in items) for name, fn in accessors.items()}
        return averages, pcts

    def generate_performance_report(self) -> dict[str, Any]:
        mobile_averages, mobile_percentiles = self._summarize(
            self.mobile_metrics,
            {
                "startup_time": lambda m: m.startup_time.value,
                "memory_usage": lambda m: m.memory_usage.value,
                "battery_impact": lambda m: m.battery_impact.value,
                "frame_rate": lambda m: m.frame_rate.value,
            },
        )

        query_types: dict[str, int] = {}
        operations: dict[str, dict[str, float]] = {}
        for m in self.database_metrics:
            key = f"{m.query_type}-{m.operation_type}"
            query_types[key] = query_types.get(key, 0) + 1

            stats = operations.setdefault(m.operation_type, {"total": 0.0, "max": 0.0, "count": 0})
            stats["total"] += m.execution_time.value
            stats["max"] = max(stats["max"], m.execution_time.value)
            stats["count"] += 1

        slowest = sorted(
            (
                {
                    "operation_type": op,
                    "avg_execution_time": s["total"] / s["count"],
                    "max_execution_time": s["max"],
                    "count": s["count"],
                }
                for op, s in operations.items()
            ),
            key=lambda o: o["avg_execution_time"],
            reverse=True,
        )[:10]

        frontend_averages, frontend_percentiles = self._summarize(
            self.frontend_metrics,
            {
                "lcp": lambda m: m.lcp.value,
                "fid": lambda m: m.fid.value,
                "cls": lambda m: m.cls.value,
                "ttfb": lambda m: m.ttfb.value,
            },
        )

        device_breakdown: dict[str, int] = {}
        for m in self.frontend_metrics:
            device_breakdown[m.device_type] = device_breakdown.get(m.device_type, 0) + 1

        return {
            "load_tests": [r.model_dump(mode="json") for r in self.load_test_results.values()],
            "mobile_metrics_summary": {
                "device_types": sorted({m.device_type for m in self.mobile_metrics}),
                "averages": mobile_averages,
                "percentiles": mobile_percentiles,
            },
            "database_metrics_summary": {
                "query_types": query_types,
                "slowest_operations": slowest,
                "average_query_time": average(m.execution_time.value for m in self.database_metrics),
                "slow_query_count": sum(
                    1
                    for m in self.database_metrics
                    if m.execution_time.value
                    > (m.execution_time.threshold or self.alert_thresholds["database_query_time"])
                ),
            },
            "frontend_metrics_summary": {
                "averages": frontend_averages,
                "percentiles": frontend_percentiles,
                "device_breakdown": device_breakdown,
            },
        }

    def clear(self) -> None:
        self.load_test_results.clear()
        self.mobile_metrics.clear()
        self.database_metrics.clear()
        self.frontend_metrics.clear()
