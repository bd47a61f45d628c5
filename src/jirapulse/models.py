from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


@dataclass(frozen=True)
class Board:
    id: str
    name: str


@dataclass(frozen=True)
class EpicProgress:
    total: int
    completed: int
    percentage: int

    @classmethod
    def from_counts(cls, total: int, completed: int) -> "EpicProgress":
        total = max(0, int(total))
        completed = min(max(0, int(completed)), total)
        if total == 0:
            return cls(total=0, completed=0, percentage=0)
        percentage = int(round_half_up(100 * completed / total))
        return cls(total=total, completed=completed, percentage=max(0, min(100, percentage)))

    @classmethod
    def empty(cls) -> "EpicProgress":
        return cls(total=0, completed=0, percentage=0)


@dataclass(frozen=True)
class IssueRef:
    key: str
    summary: str
    url: str
    progress: Optional[EpicProgress] = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"key": self.key, "summary": self.summary, "url": self.url}
        if self.progress is not None:
            data["progress"] = {
                "total": self.progress.total,
                "completed": self.progress.completed,
                "percentage": self.progress.percentage,
            }
        return data


@dataclass(frozen=True)
class Issue:
    key: str
    summary: str
    status: str
    priority: str = "None"
    issue_type: str = ""
    assignee: Optional[str] = None
    created: Optional[str] = None
    updated: Optional[str] = None
    resolution: Optional[str] = None
    resolution_date: Optional[str] = None
    url: Optional[str] = None
    story_points: float = 0.0
    epic: Optional[IssueRef] = None
    parent: Optional[IssueRef] = None
    board_source: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        """Camel-cased record for exporters and report renderers."""
        data: dict[str, Any] = {
            "key": self.key,
            "summary": self.summary,
            "status": self.status,
            "priority": self.priority,
            "issueType": self.issue_type,
            "assignee": self.assignee,
            "created": self.created,
            "updated": self.updated,
            "resolution": self.resolution,
            "resolutionDate": self.resolution_date,
            "url": self.url,
            "storyPoints": self.story_points,
            "epic": self.epic.as_dict() if self.epic else None,
            "parent": self.parent.as_dict() if self.parent else None,
        }
        if self.board_source is not None:
            data["boardSource"] = self.board_source
        return data


@dataclass(frozen=True)
class AttentionItem:
    issue: Issue
    reason: str
    last_updated: str


@dataclass(frozen=True)
class CategorizedBatch:
    completed: list[Issue] = field(default_factory=list)
    in_progress: list[Issue] = field(default_factory=list)
    new_issues: list[Issue] = field(default_factory=list)
    needs_attention: list[AttentionItem] = field(default_factory=list)

    # Aliases kept for report templates that use the longer names.
    @property
    def completed_issues(self) -> list[Issue]:
        return self.completed

    @property
    def in_progress_issues(self) -> list[Issue]:
        return self.in_progress

    @property
    def issues_needing_attention(self) -> list[AttentionItem]:
        return self.needs_attention


@dataclass(frozen=True)
class PeriodPoint:
    period_label: str
    completed_count: int = 0
    story_points: float = 0.0


@dataclass(frozen=True)
class VelocityDataPoint:
    period: str
    value: float


@dataclass(frozen=True)
class VelocitySummary:
    average: float
    unit: str
    trend: str
    data: list[VelocityDataPoint] = field(default_factory=list)


@dataclass(frozen=True)
class WorkBreakdown:
    completed_percentage: int = 0
    in_progress_percentage: int = 0
    attention_percentage: int = 0


class FetchOutcome(str, Enum):
    BOARDS = "boards"
    PROJECT = "project"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class AggregationResult:
    issues: list[Issue]
    outcome: FetchOutcome
    failed_boards: tuple[str, ...] = ()

    @property
    def used_fallback(self) -> bool:
        return self.outcome is FetchOutcome.FALLBACK


@dataclass(frozen=True)
class EpicDegradation:
    epic_key: str
    reason: str


@dataclass(frozen=True)
class EnrichmentResult:
    issues: list[Issue]
    progress: dict[str, EpicProgress]
    degraded: tuple[EpicDegradation, ...] = ()
