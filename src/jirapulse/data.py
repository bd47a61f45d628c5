from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any

from jirapulse.aggregator import aggregate_issues, merge_results
from jirapulse.config import AppConfig
from jirapulse.enrichment import distinct_epic_keys, enrich_epic_progress
from jirapulse.jira import JiraClient, TransportError
from jirapulse.models import (
    AggregationResult,
    CategorizedBatch,
    EnrichmentResult,
    Issue,
    PeriodPoint,
    VelocitySummary,
    WorkBreakdown,
)
from jirapulse.query import build_jql
from jirapulse.services.metrics import MetricsService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportSnapshot:
    issues: list[Issue]
    categorized: CategorizedBatch
    velocity: VelocitySummary
    breakdown: WorkBreakdown
    aggregation: AggregationResult
    enrichment: EnrichmentResult
    period_points: list[PeriodPoint]
    generated_at: datetime

    def as_dict(self) -> dict[str, Any]:
        return {
            "exportDate": self.generated_at.isoformat(),
            "issues": [issue.as_dict() for issue in self.issues],
            "velocityData": [
                {
                    "periodLabel": point.period_label,
                    "completedCount": point.completed_count,
                    "storyPoints": point.story_points,
                }
                for point in self.period_points
            ],
            "summary": {
                "totalIssues": len(self.issues),
                "averageVelocity": self.velocity.average,
                "velocityUnit": self.velocity.unit,
                "velocityTrend": self.velocity.trend,
                "source": self.aggregation.outcome.value,
            },
        }


class ReportDataManager:
    def __init__(self, config: AppConfig | None = None, client: JiraClient | None = None):
        self.config = config or AppConfig.from_env()
        self.jira = client or JiraClient(
            page_size=self.config.page_size,
            timeout=self.config.http_timeout,
            epic_link_field=self.config.epic_link_field,
            story_points_field=self.config.story_points_field,
        )
        self.metrics = MetricsService(self.config)
        self.diagnostics: dict[str, str] = {}
        self.last_result: str = "idle"
        self.last_error: str | None = None
        self._upstream_steps = 0

    def issues_jql(self, today: date | None = None) -> str:
        return build_jql(
            self.config.project_keys,
            weeks_back=self.config.weeks_back,
            order_by="updated DESC",
            today=today,
        )

    def completed_jql(self, today: date | None = None) -> str:
        return build_jql(
            self.config.project_keys,
            weeks_back=self.config.weeks_back,
            statuses=self.config.completed_statuses,
            order_by="resolutiondate DESC",
            today=today,
        )

    def in_progress_jql(self) -> str:
        # No time window: long-running work must still show up as stale.
        return build_jql(
            self.config.project_keys,
            statuses=self.config.in_progress_statuses,
            order_by="priority DESC, updated DESC",
        )

    def report_queries(self, today: date | None = None) -> list[str]:
        """Updated-in-window, completed-in-window, then all in-progress work."""
        return [self.issues_jql(today), self.completed_jql(today), self.in_progress_jql()]

    def component_jql(
        self,
        component: str,
        days: int | None = None,
        project_key: str | None = None,
        today: date | None = None,
    ) -> str:
        today = today or datetime.now(timezone.utc).date()
        days = days or self.config.component_days
        project_keys = (project_key.upper(),) if project_key else self.config.project_keys
        return build_jql(
            project_keys,
            statuses=self.config.component_statuses,
            order_by="updated DESC",
            updated_since=today - timedelta(days=days),
            components=[component],
            issue_types=self.config.component_issue_types,
            unresolved=True,
            today=today,
        )

    async def _pace(self) -> None:
        """Sleeps the request delay before every upstream step but the first."""
        if self._upstream_steps and self.config.request_delay_seconds > 0:
            await asyncio.sleep(self.config.request_delay_seconds)
        self._upstream_steps += 1

    async def fetch_issues(self, jql: str) -> AggregationResult:
        await self._pace()
        return await aggregate_issues(
            self.jira,
            jql,
            self.config.boards,
            delay_seconds=self.config.request_delay_seconds,
        )

    async def fetch_report_issues(self, today: date | None = None) -> AggregationResult:
        results = [await self.fetch_issues(jql) for jql in self.report_queries(today)]
        return merge_results(results)

    async def component_issues(
        self,
        component: str,
        days: int | None = None,
        project_key: str | None = None,
        today: date | None = None,
    ) -> AggregationResult:
        self._upstream_steps = 0
        jql = self.component_jql(component, days=days, project_key=project_key, today=today)
        logger.info("Component query: %s", jql)
        return await self.fetch_issues(jql)

    async def enrich(self, issues: list[Issue]) -> EnrichmentResult:
        if distinct_epic_keys(issues):
            await self._pace()
        return await enrich_epic_progress(
            self.jira,
            issues,
            closed_statuses=self.config.epic_closed_statuses,
            delay_seconds=self.config.request_delay_seconds,
        )

    async def throughput_series(self, period_count: int | None = None, today: date | None = None) -> list[PeriodPoint]:
        """Completed issues per trailing week, oldest week first."""
        period_count = period_count or self.config.velocity_period_count
        today = today or datetime.now(timezone.utc).date()
        points: list[PeriodPoint] = []
        for week in range(period_count):
            week_end = today - timedelta(days=week * 7)
            week_start = week_end - timedelta(days=7)
            jql = build_jql(
                self.config.project_keys,
                statuses=self.config.epic_closed_statuses,
                resolved_between=(week_start, week_end),
                today=today,
            )
            result = await self.fetch_issues(jql)
            points.append(
                PeriodPoint(
                    period_label=week_end.isoformat(),
                    completed_count=len(result.issues),
                    story_points=sum(issue.story_points for issue in result.issues),
                )
            )
        points.reverse()
        return points

    async def build_report(self, now: datetime | None = None) -> ReportSnapshot:
        now = now or datetime.now(timezone.utc)
        self.diagnostics = {}
        self.last_error = None
        self.last_result = "running"
        self._upstream_steps = 0

        try:
            aggregation = await self.fetch_report_issues(today=now.date())
        except TransportError as e:
            self.last_error = f"issues fetch failed: {e}"
            self.last_result = "failed"
            self.diagnostics["issues"] = f"failed: {e}"
            raise
        issue_status = f"ok: {len(aggregation.issues)} ({aggregation.outcome.value})"
        if aggregation.failed_boards:
            issue_status += f", skipped boards: {', '.join(aggregation.failed_boards)}"
        self.diagnostics["issues"] = issue_status

        enrichment = await self.enrich(aggregation.issues)
        if enrichment.degraded:
            self.diagnostics["epics"] = (
                f"degraded: {len(enrichment.degraded)}/{len(enrichment.progress)} epics without progress"
            )
        else:
            self.diagnostics["epics"] = f"ok: {len(enrichment.progress)}"

        try:
            period_points = await self.throughput_series(today=now.date())
        except TransportError as e:
            logger.warning("Could not retrieve throughput data: %s", e)
            self.diagnostics["velocity"] = f"failed: {e}"
            period_points = []
        else:
            self.diagnostics["velocity"] = f"ok: {len(period_points)} periods"

        categorized = self.metrics.categorize(enrichment.issues, now=now)
        snapshot = ReportSnapshot(
            issues=enrichment.issues,
            categorized=categorized,
            velocity=self.metrics.velocity(period_points),
            breakdown=self.metrics.work_breakdown(categorized),
            aggregation=aggregation,
            enrichment=enrichment,
            period_points=period_points,
            generated_at=now,
        )
        self.last_result = "success"
        return snapshot

    def diagnostic_lines(self) -> list[str]:
        return [f"{step}: {status}" for step, status in self.diagnostics.items()]

    def status_summary(self) -> str:
        if self.last_error:
            return f"failed: {self.last_error}"
        return self.last_result
