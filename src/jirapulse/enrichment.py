from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Iterable, Protocol, Sequence

from jirapulse.jira import TransportError
from jirapulse.models import EnrichmentResult, EpicDegradation, EpicProgress, Issue

logger = logging.getLogger(__name__)

CLOSED_STATUSES = ("Done", "Resolved", "Closed")


class EpicCountSource(Protocol):
    async def fetch_epic_linked_counts(
        self, epic_key: str, closed_statuses: Iterable[str] = CLOSED_STATUSES
    ) -> tuple[int, int]: ...


def distinct_epic_keys(issues: Iterable[Issue]) -> list[str]:
    keys: list[str] = []
    seen: set[str] = set()
    for issue in issues:
        if issue.epic is None or not issue.epic.key or issue.epic.key in seen:
            continue
        seen.add(issue.epic.key)
        keys.append(issue.epic.key)
    return keys


async def enrich_epic_progress(
    source: EpicCountSource,
    issues: Sequence[Issue],
    *,
    closed_statuses: Iterable[str] = CLOSED_STATUSES,
    delay_seconds: float = 0.0,
) -> EnrichmentResult:
    """Attaches epic completion progress to every issue that has an epic.

    Each distinct epic is looked up once. A failed lookup zeroes that epic's
    progress and is reported in `degraded`; it never raises.
    """
    closed = tuple(closed_statuses)
    epic_keys = distinct_epic_keys(issues)
    logger.info("Fetching progress for %d unique epics", len(epic_keys))

    progress_by_epic: dict[str, EpicProgress] = {}
    degraded: list[EpicDegradation] = []
    for index, epic_key in enumerate(epic_keys):
        if index > 0 and delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        try:
            total, completed = await source.fetch_epic_linked_counts(epic_key, closed)
        except TransportError as e:
            logger.warning("Could not fetch epic progress for %s: %s", epic_key, e)
            progress_by_epic[epic_key] = EpicProgress.empty()
            degraded.append(EpicDegradation(epic_key=epic_key, reason=str(e)))
            continue
        progress_by_epic[epic_key] = EpicProgress.from_counts(total, completed)

    enriched: list[Issue] = []
    for issue in issues:
        progress = progress_by_epic.get(issue.epic.key) if issue.epic else None
        if issue.epic is None or progress is None:
            enriched.append(issue)
            continue
        enriched.append(replace(issue, epic=replace(issue.epic, progress=progress)))

    return EnrichmentResult(issues=enriched, progress=progress_by_epic, degraded=tuple(degraded))
