from pathlib import Path

from jirapulse.config import AppConfig
from jirapulse.models import Board


def test_config_merge_file_json(tmp_path: Path) -> None:
    config_file = tmp_path / "jirapulse.config.json"
    config_file.write_text(
        """
{
  "project_keys": ["ocm", "rosa"],
  "boards": [{"id": 12, "name": "Core"}, {"id": "34"}],
  "weeks_back": 2,
  "request_delay_ms": 0,
  "completed_status_markers": ["Done", "Shipped"],
  "stale_warning_days": 10
}
""".strip(),
        encoding="utf-8",
    )

    merged = AppConfig().merge_file(config_file)
    assert merged.project_keys == ("OCM", "ROSA")
    assert merged.boards == (Board("12", "Core"), Board("34", "Board 34"))
    assert merged.weeks_back == 2
    assert merged.request_delay_ms == 0
    assert merged.request_delay_seconds == 0
    assert merged.completed_status_markers == ("done", "shipped")
    assert merged.stale_warning_days == 10
    assert merged.stale_after_days == 3
    assert merged.config_source == str(config_file)


def test_config_merge_file_yaml(tmp_path: Path) -> None:
    config_file = tmp_path / "jirapulse.yaml"
    config_file.write_text(
        "project_keys: OCM\nvelocity_period_count: 4\nepic_closed_statuses: [Done, Verified]\n",
        encoding="utf-8",
    )

    merged = AppConfig().merge_file(config_file)
    assert merged.project_keys == ("OCM",)
    assert merged.velocity_period_count == 4
    assert merged.epic_closed_statuses == ("Done", "Verified")


def test_config_merge_file_query_status_sets(tmp_path: Path) -> None:
    config_file = tmp_path / "jirapulse.yaml"
    config_file.write_text(
        "in_progress_statuses: [In Progress, Blocked]\n"
        "component_issue_types: Epic\n"
        "component_days: 0\n",
        encoding="utf-8",
    )

    merged = AppConfig().merge_file(config_file)
    assert merged.in_progress_statuses == ("In Progress", "Blocked")
    assert merged.completed_statuses == ("Done", "Resolved", "Closed")
    assert merged.component_issue_types == ("Epic",)
    assert merged.component_days == 1


def test_config_merge_file_invalid_json_falls_back(tmp_path: Path) -> None:
    config_file = tmp_path / "jirapulse.config.json"
    config_file.write_text("{ this-is: bad json", encoding="utf-8")

    defaults = AppConfig()
    merged = defaults.merge_file(config_file)
    assert merged == defaults


def test_config_merge_file_clamps_invalid_numbers(tmp_path: Path) -> None:
    config_file = tmp_path / "jirapulse.config.json"
    config_file.write_text('{"request_delay_ms": "soon", "weeks_back": -3}', encoding="utf-8")

    merged = AppConfig().merge_file(config_file)
    assert merged.request_delay_ms == 250
    assert merged.weeks_back == 1


def test_config_from_env_parses_keys_and_boards(monkeypatch) -> None:
    monkeypatch.setenv("JIRA_PROJECT_KEYS", "ocm, rosa")
    monkeypatch.setenv("JP_BOARDS", "101:Core Team,102")
    monkeypatch.setenv("JP_REQUEST_DELAY_MS", "100")
    monkeypatch.setenv("JP_CONFIG_PATH", "non-existent-config-file.json")
    config = AppConfig.from_env()
    assert config.project_keys == ("OCM", "ROSA")
    assert config.boards == (Board("101", "Core Team"), Board("102", "Board 102"))
    assert config.request_delay_seconds == 0.1
    assert config.config_source == "defaults/env"
