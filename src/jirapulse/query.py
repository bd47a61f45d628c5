from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional


def quote_status(status: str) -> str:
    status = status.strip()
    if status.startswith('"') and status.endswith('"') and len(status) > 1:
        return status
    if any(ch.isspace() for ch in status):
        return f'"{status}"'
    return status


def quote_literal(value: str) -> str:
    """Always quotes; component names routinely carry hyphens JQL would misread."""
    value = value.strip()
    if value.startswith('"') and value.endswith('"') and len(value) > 1:
        return value
    return '"' + value.replace('"', '\\"') + '"'


def _names(values: Iterable[str] | None, quote) -> list[str]:
    return [quote(v) for v in (values or []) if v and v.strip()]


def build_jql(
    project_keys: Iterable[str] | None,
    weeks_back: Optional[int] = None,
    statuses: Iterable[str] | None = None,
    order_by: Optional[str] = None,
    *,
    resolved_between: tuple[date, date] | None = None,
    updated_since: date | None = None,
    components: Iterable[str] | None = None,
    issue_types: Iterable[str] | None = None,
    unresolved: bool = False,
    today: date | None = None,
) -> str:
    """Builds a JQL filter expression.

    Clauses are joined with AND in a fixed order (project, updated window,
    component, issue type, status, unresolved, resolution window) and any
    clause whose parameter is empty is left out. The ordering clause, when
    given, always comes last.

    ``weeks_back`` and ``updated_since`` both bound ``updated``; when both are
    given the explicit date wins.
    """
    today = today or datetime.now(timezone.utc).date()
    clauses: list[str] = []

    projects = [key.strip() for key in (project_keys or []) if key and key.strip()]
    if projects:
        clauses.append(f"project in ({','.join(projects)})")

    since = updated_since
    if since is None and weeks_back:
        since = today - timedelta(days=weeks_back * 7)
    if since is not None:
        clauses.append(f'updated >= "{since.isoformat()}"')

    component_names = _names(components, quote_literal)
    if component_names:
        clauses.append(f"component in ({','.join(component_names)})")

    type_names = _names(issue_types, quote_status)
    if type_names:
        clauses.append(f"issuetype in ({','.join(type_names)})")

    status_names = _names(statuses, quote_status)
    if status_names:
        clauses.append(f"status in ({','.join(status_names)})")

    if unresolved:
        clauses.append("resolution = Unresolved")

    if resolved_between:
        start, end = resolved_between
        clauses.append(f'resolutiondate >= "{start.isoformat()}"')
        clauses.append(f'resolutiondate <= "{end.isoformat()}"')

    jql = " AND ".join(clauses)
    if order_by and order_by.strip():
        jql = f"{jql} ORDER BY {order_by.strip()}" if jql else f"ORDER BY {order_by.strip()}"
    return jql


def epic_children_jql(epic_key: str) -> str:
    return f'"Epic Link" = {epic_key} OR parent = {epic_key}'
