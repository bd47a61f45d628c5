from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import httpx

from jirapulse.models import Board, Issue, IssueRef
from jirapulse.query import epic_children_jql

logger = logging.getLogger(__name__)

SEARCH_PATH = "/rest/api/2/search"
BOARD_ISSUES_PATH = "/rest/agile/1.0/board/{board_id}/issue"
BOARDS_PATH = "/rest/agile/1.0/board"

EPIC_LINK_TYPE = "Epic-Story Link"
EPIC_INWARD_LABEL = "is epic of"


@dataclass(frozen=True)
class TransportError(Exception):
    message: str
    status_code: int | None = None
    url: str | None = None

    def __str__(self) -> str:
        parts = [self.message]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.url:
            parts.append(f"url={self.url}")
        return " | ".join(parts)


def _name_of(value: Any, default: Optional[str] = None) -> Optional[str]:
    if isinstance(value, dict):
        name = value.get("name")
        return str(name) if name is not None else default
    return default


def _to_points(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def extract_epic(fields: dict[str, Any], base_url: str, epic_link_field: str) -> IssueRef | None:
    """Finds the epic an issue belongs to.

    The epic-link custom field wins; otherwise the first "is epic of" issue
    link pointing at an Epic is used.
    """
    epic_link = fields.get(epic_link_field)
    if isinstance(epic_link, dict):
        key = epic_link.get("key")
        if key:
            return IssueRef(
                key=str(key),
                summary=str(epic_link.get("summary") or "Epic"),
                url=f"{base_url}/browse/{key}",
            )
    elif epic_link:
        return IssueRef(key=str(epic_link), summary="Epic", url=f"{base_url}/browse/{epic_link}")

    for link in fields.get("issuelinks") or []:
        if not isinstance(link, dict):
            continue
        link_type = link.get("type") or {}
        if link_type.get("name") != EPIC_LINK_TYPE and link_type.get("inward") != EPIC_INWARD_LABEL:
            continue
        linked = link.get("inwardIssue") or link.get("outwardIssue")
        if not isinstance(linked, dict) or not linked.get("key"):
            continue
        linked_fields = linked.get("fields") or {}
        if _name_of(linked_fields.get("issuetype")) != "Epic":
            continue
        return IssueRef(
            key=str(linked["key"]),
            summary=str(linked_fields.get("summary") or "Epic"),
            url=f"{base_url}/browse/{linked['key']}",
        )
    return None


def parse_issue(
    raw: dict[str, Any],
    base_url: str,
    *,
    epic_link_field: str = "customfield_12311140",
    story_points_field: str = "customfield_10016",
) -> Issue:
    key = raw.get("key") if isinstance(raw, dict) else None
    if not key:
        raise ValueError("issue record has no key")
    fields = raw.get("fields") or {}
    if not isinstance(fields, dict):
        raise ValueError(f"issue {key} has malformed fields")

    assignee = fields.get("assignee")
    raw_parent = fields.get("parent")
    parent = None
    if isinstance(raw_parent, dict) and raw_parent.get("key"):
        parent_fields = raw_parent.get("fields") or {}
        parent = IssueRef(
            key=str(raw_parent["key"]),
            summary=str(parent_fields.get("summary") or "Unknown"),
            url=f"{base_url}/browse/{raw_parent['key']}",
        )

    return Issue(
        key=str(key),
        summary=str(fields.get("summary") or ""),
        status=_name_of(fields.get("status"), "") or "",
        priority=_name_of(fields.get("priority"), "None") or "None",
        issue_type=_name_of(fields.get("issuetype"), "") or "",
        assignee=assignee.get("displayName") if isinstance(assignee, dict) else None,
        created=fields.get("created"),
        updated=fields.get("updated"),
        resolution=_name_of(fields.get("resolution")),
        resolution_date=fields.get("resolutiondate"),
        url=f"{base_url}/browse/{key}",
        story_points=_to_points(fields.get(story_points_field)),
        epic=extract_epic(fields, base_url, epic_link_field),
        parent=parent,
    )


class JiraClient:
    PAGE_SIZE = 100
    BASE_FIELDS = (
        "key",
        "summary",
        "status",
        "assignee",
        "updated",
        "created",
        "priority",
        "resolution",
        "resolutiondate",
        "issuetype",
        "issuelinks",
        "parent",
    )

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        email: Optional[str] = None,
        *,
        page_size: int = PAGE_SIZE,
        timeout: float = 30.0,
        epic_link_field: str = "customfield_12311140",
        story_points_field: str = "customfield_10016",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or os.getenv("JIRA_BASE_URL") or "").rstrip("/")
        self.api_token = api_token or os.getenv("JIRA_API_TOKEN")
        self.email = email or os.getenv("JIRA_EMAIL")
        self.page_size = page_size
        self.timeout = timeout
        self.epic_link_field = epic_link_field
        self.story_points_field = story_points_field
        self.transport = transport
        self.headers = {"Accept": "application/json"}
        # Cloud sites use email + token basic auth, Data Center uses a bearer PAT.
        if self.api_token and not self.email:
            self.headers["Authorization"] = f"Bearer {self.api_token}"

    @property
    def auth(self) -> tuple[str, str] | None:
        if self.email and self.api_token:
            return (self.email, self.api_token)
        return None

    @property
    def search_fields(self) -> str:
        return ",".join([*self.BASE_FIELDS, self.epic_link_field, self.story_points_field])

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self.base_url:
            raise ValueError("JIRA_BASE_URL is not set.")
        if not self.api_token:
            raise ValueError("JIRA_API_TOKEN is not set.")

        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport, auth=self.auth
            ) as client:
                response = await client.get(url, params=params, headers=self.headers)
        except httpx.HTTPError as e:
            raise TransportError(message=f"request failed: {e}", url=url) from e

        if response.is_error:
            raise TransportError(
                message=self._error_message(response),
                status_code=response.status_code,
                url=url,
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise TransportError(
                message="malformed payload: response is not JSON",
                status_code=response.status_code,
                url=url,
            ) from e
        if not isinstance(payload, dict):
            raise TransportError(
                message="malformed payload: expected a JSON object",
                status_code=response.status_code,
                url=url,
            )
        return payload

    def _error_message(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            messages = [str(m) for m in body.get("errorMessages") or []]
            errors = body.get("errors")
            if isinstance(errors, dict):
                messages.extend(f"{field}: {message}" for field, message in errors.items())
            if messages:
                return "; ".join(messages)
        return f"HTTP {response.status_code}: {response.reason_phrase}"

    async def _paginate(self, path: str, params: dict[str, Any], items_key: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        start_at = 0
        while True:
            page = await self._get(path, {**params, "startAt": start_at, "maxResults": self.page_size})
            batch = page.get(items_key)
            if not isinstance(batch, list):
                raise TransportError(
                    message=f"malformed payload: missing '{items_key}'",
                    url=f"{self.base_url}{path}",
                )
            items.extend(batch)
            start_at += len(batch)
            total = page.get("total")
            if not batch or page.get("isLast") is True:
                break
            if isinstance(total, int):
                if start_at >= total:
                    break
            elif len(batch) < self.page_size:
                break
        return items

    async def search_issues(self, jql: str, board: Board | None = None) -> list[Issue]:
        if board is None:
            path = SEARCH_PATH
            logger.debug("Executing JQL project-wide: %s", jql)
        else:
            path = BOARD_ISSUES_PATH.format(board_id=board.id)
            logger.debug("Executing JQL on board %s: %s", board.name, jql)

        raw_issues = await self._paginate(path, {"jql": jql, "fields": self.search_fields}, "issues")
        issues: list[Issue] = []
        for raw in raw_issues:
            try:
                issues.append(
                    parse_issue(
                        raw,
                        self.base_url,
                        epic_link_field=self.epic_link_field,
                        story_points_field=self.story_points_field,
                    )
                )
            except ValueError as e:
                raise TransportError(message=f"malformed payload: {e}", url=f"{self.base_url}{path}") from e
        return issues

    async def fetch_epic_linked_counts(
        self, epic_key: str, closed_statuses: Iterable[str] = ("Done", "Resolved", "Closed")
    ) -> tuple[int, int]:
        """Returns (total, completed) for the issues linked to an epic."""
        closed = frozenset(closed_statuses)
        raw_issues = await self._paginate(
            SEARCH_PATH,
            {"jql": epic_children_jql(epic_key), "fields": "key,status,issuetype"},
            "issues",
        )
        completed = 0
        for raw in raw_issues:
            fields = raw.get("fields") if isinstance(raw, dict) else None
            status = _name_of((fields or {}).get("status"))
            if status in closed:
                completed += 1
        return len(raw_issues), completed

    async def get_boards(self, project_key: str | None = None) -> list[Board]:
        params: dict[str, Any] = {}
        if project_key:
            params["projectKeyOrId"] = project_key
        raw_boards = await self._paginate(BOARDS_PATH, params, "values")
        return [
            Board(id=str(board["id"]), name=str(board.get("name") or f"Board {board['id']}"))
            for board in raw_boards
            if isinstance(board, dict) and board.get("id") is not None
        ]
