from __future__ import annotations

import csv
import json
import re
from datetime import date
from pathlib import Path
from typing import Sequence

from jirapulse.data import ReportSnapshot
from jirapulse.models import Issue

CSV_HEADERS = ["Key", "Summary", "Status", "Assignee", "Priority", "Type", "Created", "Updated", "Resolution"]
COMPONENT_CSV_HEADERS = ["Key", "Summary", "Status", "Assignee", "Priority", "Updated", "Component", "Epic", "URL"]


def _target(directory: Path, stem: str, suffix: str, stamp: str, extension: str) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    name = f"{stem}-{suffix}-{stamp}" if suffix else f"{stem}-{stamp}"
    return directory / f"{name}.{extension}"


def export_json(snapshot: ReportSnapshot, directory: Path, suffix: str = "") -> Path:
    path = _target(directory, "jira-export", suffix, snapshot.generated_at.date().isoformat(), "json")
    path.write_text(json.dumps(snapshot.as_dict(), indent=2), encoding="utf-8")
    return path


def export_csv(issues: Sequence[Issue], directory: Path, suffix: str = "", stamp: str | None = None) -> Path:
    path = _target(directory, "jira-issues", suffix, stamp or date.today().isoformat(), "csv")
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, quoting=csv.QUOTE_ALL)
        writer.writerow(CSV_HEADERS)
        for issue in issues:
            writer.writerow(
                [
                    issue.key,
                    issue.summary,
                    issue.status,
                    issue.assignee or "",
                    issue.priority,
                    issue.issue_type,
                    issue.created or "",
                    issue.updated or "",
                    issue.resolution or "",
                ]
            )
    return path


def export_component_csv(
    issues: Sequence[Issue], component: str, directory: Path, stamp: str | None = None
) -> Path:
    slug = re.sub(r"\s+", "-", component.strip())
    path = _target(directory, "component-issues", slug, stamp or date.today().isoformat(), "csv")
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, quoting=csv.QUOTE_ALL)
        writer.writerow(COMPONENT_CSV_HEADERS)
        for issue in issues:
            writer.writerow(
                [
                    issue.key,
                    issue.summary,
                    issue.status,
                    issue.assignee or "Unassigned",
                    issue.priority,
                    (issue.updated or "").split("T")[0],
                    component,
                    issue.epic.key if issue.epic else "",
                    issue.url or "",
                ]
            )
    return path
