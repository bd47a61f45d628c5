from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from jirapulse.models import Board


def _get_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _to_int(value: Any, default: int, minimum: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        parsed = default
    return max(minimum, parsed)


def _to_float(value: Any, default: float, minimum: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        parsed = default
    return max(minimum, parsed)


def _split_csv(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def _to_str_tuple(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if isinstance(value, str):
        return _split_csv(value)
    if isinstance(value, (list, tuple)):
        return tuple(str(v).strip() for v in value if str(v).strip())
    return default


def _parse_boards(value: Any) -> tuple[Board, ...]:
    """Accepts `"12:Core,34:UI"` from the env or a list of {id, name} from a file."""
    boards: list[Board] = []
    if isinstance(value, str):
        for entry in _split_csv(value):
            board_id, _, name = entry.partition(":")
            board_id = board_id.strip()
            if board_id:
                boards.append(Board(id=board_id, name=name.strip() or f"Board {board_id}"))
        return tuple(boards)
    if isinstance(value, (list, tuple)):
        for entry in value:
            if isinstance(entry, Board):
                boards.append(entry)
            elif isinstance(entry, dict) and entry.get("id") is not None:
                board_id = str(entry["id"]).strip()
                name = str(entry.get("name") or "").strip() or f"Board {board_id}"
                boards.append(Board(id=board_id, name=name))
    return tuple(boards)


@dataclass(frozen=True)
class AppConfig:
    project_keys: tuple[str, ...] = ()
    boards: tuple[Board, ...] = ()
    weeks_back: int = 1
    velocity_period_count: int = 6
    request_delay_ms: int = 250
    page_size: int = 100
    http_timeout: float = 30.0
    new_issue_window_days: int = 7
    stale_after_days: int = 3
    stale_warning_days: int = 7
    completed_status_markers: tuple[str, ...] = ("done", "resolved", "closed", "fixed")
    in_progress_status_markers: tuple[str, ...] = ("in progress", "in review", "testing", "code review")
    completed_statuses: tuple[str, ...] = ("Done", "Resolved", "Closed")
    in_progress_statuses: tuple[str, ...] = ("In Progress", "In Review", "Testing", "Code Review")
    epic_closed_statuses: tuple[str, ...] = ("Done", "Resolved", "Closed")
    component_statuses: tuple[str, ...] = ("In Progress", "Code Review", "Review", "Closed")
    component_issue_types: tuple[str, ...] = ("Epic", "Story")
    component_days: int = 7
    epic_link_field: str = "customfield_12311140"
    story_points_field: str = "customfield_10016"
    export_dir: str = "data"
    config_source: str = "defaults/env"

    @property
    def request_delay_seconds(self) -> float:
        return self.request_delay_ms / 1000

    @classmethod
    def from_env(cls) -> "AppConfig":
        config = cls(
            project_keys=tuple(key.upper() for key in _split_csv(os.getenv("JIRA_PROJECT_KEYS"))),
            boards=_parse_boards(os.getenv("JP_BOARDS", "")),
            weeks_back=max(1, _get_int_env("JP_WEEKS_BACK", 1)),
            velocity_period_count=max(1, _get_int_env("JP_VELOCITY_PERIODS", 6)),
            request_delay_ms=max(0, _get_int_env("JP_REQUEST_DELAY_MS", 250)),
            export_dir=os.getenv("JP_EXPORT_DIR", "data").strip() or "data",
        )
        config_path = os.getenv("JP_CONFIG_PATH", "jirapulse.config.json")
        return config.merge_file(Path(config_path))

    def merge_file(self, path: Path) -> "AppConfig":
        if not path.exists():
            return self
        loaded = self._load_config_file(path)
        if not loaded:
            return self
        merged = dict(self.__dict__)
        for key in merged:
            if key in loaded:
                merged[key] = loaded[key]
        merged["project_keys"] = tuple(
            key.upper() for key in _to_str_tuple(merged["project_keys"], self.project_keys)
        )
        merged["boards"] = _parse_boards(merged["boards"])
        merged["weeks_back"] = _to_int(merged["weeks_back"], self.weeks_back, 1)
        merged["velocity_period_count"] = _to_int(
            merged["velocity_period_count"], self.velocity_period_count, 1
        )
        merged["request_delay_ms"] = _to_int(merged["request_delay_ms"], self.request_delay_ms, 0)
        merged["page_size"] = _to_int(merged["page_size"], self.page_size, 1)
        merged["http_timeout"] = _to_float(merged["http_timeout"], self.http_timeout, 1.0)
        merged["new_issue_window_days"] = _to_int(
            merged["new_issue_window_days"], self.new_issue_window_days, 1
        )
        merged["stale_after_days"] = _to_int(merged["stale_after_days"], self.stale_after_days, 0)
        merged["stale_warning_days"] = _to_int(
            merged["stale_warning_days"], self.stale_warning_days, merged["stale_after_days"]
        )
        # Marker matching is done against lower-cased status names.
        merged["completed_status_markers"] = tuple(
            marker.casefold()
            for marker in _to_str_tuple(merged["completed_status_markers"], self.completed_status_markers)
        )
        merged["in_progress_status_markers"] = tuple(
            marker.casefold()
            for marker in _to_str_tuple(merged["in_progress_status_markers"], self.in_progress_status_markers)
        )
        merged["completed_statuses"] = _to_str_tuple(merged["completed_statuses"], self.completed_statuses)
        merged["in_progress_statuses"] = _to_str_tuple(merged["in_progress_statuses"], self.in_progress_statuses)
        merged["epic_closed_statuses"] = _to_str_tuple(
            merged["epic_closed_statuses"], self.epic_closed_statuses
        )
        merged["component_statuses"] = _to_str_tuple(merged["component_statuses"], self.component_statuses)
        merged["component_issue_types"] = _to_str_tuple(
            merged["component_issue_types"], self.component_issue_types
        )
        merged["component_days"] = _to_int(merged["component_days"], self.component_days, 1)
        merged["epic_link_field"] = str(merged["epic_link_field"]).strip() or self.epic_link_field
        merged["story_points_field"] = str(merged["story_points_field"]).strip() or self.story_points_field
        merged["export_dir"] = str(merged["export_dir"]).strip() or self.export_dir
        merged["config_source"] = str(path)
        return AppConfig(**merged)

    def _load_config_file(self, path: Path) -> dict[str, Any]:
        suffix = path.suffix.lower()
        text = path.read_text(encoding="utf-8")
        if suffix == ".json":
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                return {}
            return parsed if isinstance(parsed, dict) else {}
        if suffix in {".yml", ".yaml"}:
            try:
                parsed = yaml.safe_load(text)
            except yaml.YAMLError:
                return {}
            return parsed if isinstance(parsed, dict) else {}
        return {}
