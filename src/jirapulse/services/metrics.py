from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Sequence

from jirapulse.config import AppConfig
from jirapulse.models import (
    AttentionItem,
    CategorizedBatch,
    Issue,
    PeriodPoint,
    VelocityDataPoint,
    VelocitySummary,
    WorkBreakdown,
    round_half_up,
)

STALE_REASON = "Stale (no updates for over a week)"
IDLE_REASON = "No recent updates"

TREND_NO_DATA = "No data available"
TREND_STABLE = "Stable"
TREND_INCREASING = "Increasing"
TREND_DECREASING = "Decreasing"

_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_timestamp(value: str | None) -> datetime | None:
    """Parses Jira timestamps such as `2024-01-15T10:30:00.000+0000`.

    Naive values are taken as UTC. Returns None for anything unparseable.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _COMPACT_OFFSET.sub(r"\1:\2", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _contains_any(text: str, markers: Sequence[str]) -> bool:
    return any(marker in text for marker in markers)


class MetricsService:
    def __init__(self, config: AppConfig):
        self.config = config

    def categorize(self, issues: Sequence[Issue], now: datetime | None = None) -> CategorizedBatch:
        """Sorts issues into report buckets.

        Each rule is checked on its own, so one issue can show up in several
        buckets (an unresolved "In Progress" issue that has not been touched in
        two weeks is both in progress and needs attention). Resolved issues
        never need attention.
        """
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        new_since = now - timedelta(days=self.config.new_issue_window_days)

        completed: list[Issue] = []
        in_progress: list[Issue] = []
        new_issues: list[Issue] = []
        needs_attention: list[AttentionItem] = []

        for issue in issues:
            status = (issue.status or "").lower()
            created = parse_timestamp(issue.created)
            updated = parse_timestamp(issue.updated)

            if created is not None and created > new_since:
                new_issues.append(issue)

            if issue.resolution and _contains_any(status, self.config.completed_status_markers):
                completed.append(issue)

            if _contains_any(status, self.config.in_progress_status_markers):
                in_progress.append(issue)

            if not issue.resolution and updated is not None:
                days_since_update = (now - updated).days
                if days_since_update > self.config.stale_after_days:
                    needs_attention.append(
                        AttentionItem(
                            issue=issue,
                            reason=(
                                STALE_REASON
                                if days_since_update > self.config.stale_warning_days
                                else IDLE_REASON
                            ),
                            last_updated=updated.date().isoformat(),
                        )
                    )

        return CategorizedBatch(
            completed=completed,
            in_progress=in_progress,
            new_issues=new_issues,
            needs_attention=needs_attention,
        )

    def velocity(self, points: Sequence[PeriodPoint]) -> VelocitySummary:
        """Summarizes an oldest-first series of period totals."""
        if not points:
            return VelocitySummary(average=0, unit="items", trend=TREND_NO_DATA, data=[])

        has_story_points = any((point.story_points or 0) > 0 for point in points)
        unit = "story points" if has_story_points else "items"
        values = [
            float(point.story_points or 0) if has_story_points else float(point.completed_count or 0)
            for point in points
        ]
        average = round_half_up(sum(values) / len(values), 1)

        return VelocitySummary(
            average=average,
            unit=unit,
            trend=self._trend(values),
            data=[
                VelocityDataPoint(period=point.period_label or "Period", value=value)
                for point, value in zip(points, values)
            ],
        )

    def work_breakdown(self, batch: CategorizedBatch) -> WorkBreakdown:
        total = len(batch.completed_issues) + len(batch.in_progress_issues) + len(batch.issues_needing_attention)
        if total == 0:
            return WorkBreakdown()
        return WorkBreakdown(
            completed_percentage=int(round_half_up(len(batch.completed_issues) / total * 100)),
            in_progress_percentage=int(round_half_up(len(batch.in_progress_issues) / total * 100)),
            attention_percentage=int(round_half_up(len(batch.issues_needing_attention) / total * 100)),
        )

    def _trend(self, values: list[float]) -> str:
        recent = values[-2:]
        older = values[:-2]
        if len(recent) < 2 or not older:
            return TREND_STABLE
        recent_avg = sum(recent) / len(recent)
        older_avg = sum(older) / len(older)
        if recent_avg > older_avg * 1.1:
            return TREND_INCREASING
        if recent_avg < older_avg * 0.9:
            return TREND_DECREASING
        return TREND_STABLE

    def group_by_status(self, issues: Sequence[Issue]) -> dict[str, list[Issue]]:
        """Groups issues by status name, statuses in first-seen order."""
        groups: dict[str, list[Issue]] = {}
        for issue in issues:
            groups.setdefault(issue.status, []).append(issue)
        return groups
