from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Protocol, Sequence

from jirapulse.jira import TransportError
from jirapulse.models import AggregationResult, Board, FetchOutcome, Issue

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 0.25


class IssueSource(Protocol):
    async def search_issues(self, jql: str, board: Board | None = None) -> list[Issue]: ...


async def aggregate_issues(
    source: IssueSource,
    jql: str,
    boards: Sequence[Board],
    *,
    delay_seconds: float = DEFAULT_DELAY_SECONDS,
) -> AggregationResult:
    """Fetches `jql` from each board in order and merges the results.

    Boards are queried one at a time with `delay_seconds` between calls. A
    board that fails is skipped. Duplicate keys keep the record from the
    first board that returned them. When no board returns anything the
    query is re-run project-wide; only a failure of that fallback fetch
    propagates.
    """
    if not boards:
        issues = await source.search_issues(jql)
        return AggregationResult(issues=issues, outcome=FetchOutcome.PROJECT)

    logger.info("Fetching issues from %d boards", len(boards))
    merged: list[Issue] = []
    seen_keys: set[str] = set()
    failed_boards: list[str] = []

    for index, board in enumerate(boards):
        if index > 0 and delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        try:
            board_issues = await source.search_issues(jql, board)
        except TransportError as e:
            logger.warning("Could not get issues from board %s, skipping: %s", board.name, e)
            failed_boards.append(board.name)
            continue

        for issue in board_issues:
            if issue.key in seen_keys:
                continue
            seen_keys.add(issue.key)
            merged.append(replace(issue, board_source=board.name))
        logger.info(
            "Board %s returned %d issues (%d total unique)", board.name, len(board_issues), len(merged)
        )

    if not merged:
        logger.warning("No issues found from any board, falling back to project-wide search")
        issues = await source.search_issues(jql)
        return AggregationResult(
            issues=issues,
            outcome=FetchOutcome.FALLBACK,
            failed_boards=tuple(failed_boards),
        )

    return AggregationResult(
        issues=merged,
        outcome=FetchOutcome.BOARDS,
        failed_boards=tuple(failed_boards),
    )


def merge_results(results: Sequence[AggregationResult]) -> AggregationResult:
    """Merges several aggregations of overlapping queries into one.

    Keys stay unique: an issue seen in an earlier result wins over later
    copies. The outcome is FALLBACK when any query had to fall back, otherwise
    the outcome of the first result.
    """
    if not results:
        return AggregationResult(issues=[], outcome=FetchOutcome.PROJECT)

    merged: list[Issue] = []
    seen_keys: set[str] = set()
    failed_boards: list[str] = []
    for result in results:
        for issue in result.issues:
            if issue.key in seen_keys:
                continue
            seen_keys.add(issue.key)
            merged.append(issue)
        for board_name in result.failed_boards:
            if board_name not in failed_boards:
                failed_boards.append(board_name)

    outcome = results[0].outcome
    if any(result.used_fallback for result in results):
        outcome = FetchOutcome.FALLBACK
    return AggregationResult(issues=merged, outcome=outcome, failed_boards=tuple(failed_boards))
