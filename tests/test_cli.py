from __future__ import annotations

from datetime import datetime, timezone

import pytest

from jirapulse import cli
from jirapulse.config import AppConfig
from jirapulse.data import ReportSnapshot
from jirapulse.export import COMPONENT_CSV_HEADERS
from jirapulse.jira import TransportError
from jirapulse.models import (
    AggregationResult,
    AttentionItem,
    Board,
    CategorizedBatch,
    EnrichmentResult,
    EpicProgress,
    FetchOutcome,
    Issue,
    IssueRef,
    VelocitySummary,
    WorkBreakdown,
)
from jirapulse.services.metrics import MetricsService


def _snapshot() -> ReportSnapshot:
    epic = IssueRef("OCM-E1", "Platform", "https://jira/browse/OCM-E1", EpicProgress(4, 3, 75))
    issue = Issue(key="OCM-1", summary="Stale thing", status="To Do", epic=epic)
    return ReportSnapshot(
        issues=[issue],
        categorized=CategorizedBatch(
            needs_attention=[AttentionItem(issue, "No recent updates", "2026-03-10")],
        ),
        velocity=VelocitySummary(average=4.5, unit="items", trend="Stable"),
        breakdown=WorkBreakdown(),
        aggregation=AggregationResult(issues=[issue], outcome=FetchOutcome.PROJECT),
        enrichment=EnrichmentResult(issues=[issue], progress={"OCM-E1": epic.progress}),
        period_points=[],
        generated_at=datetime(2026, 3, 15, tzinfo=timezone.utc),
    )


def test_doctor_dispatch(monkeypatch, capsys) -> None:
    monkeypatch.setattr("sys.argv", ["jirapulse", "doctor"])
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    monkeypatch.setattr(cli, "configure_logging", lambda verbose=False: None)
    monkeypatch.setenv("JP_CONFIG_PATH", "non-existent-config-file.json")
    monkeypatch.delenv("JP_BOARDS", raising=False)

    cli.main()
    out = capsys.readouterr().out

    assert "Doctor check complete." in out
    assert "boards: none (project-wide search)" in out


@pytest.mark.asyncio
async def test_report_prints_summary_and_diagnostics(monkeypatch, capsys) -> None:
    class FakeDataManager:
        def __init__(self, config=None):
            self.config = AppConfig(project_keys=("OCM",))

        async def build_report(self):
            return _snapshot()

        def diagnostic_lines(self) -> list[str]:
            return ["issues: ok: 1 (project)", "epics: ok: 1"]

    monkeypatch.setattr(cli, "ReportDataManager", FakeDataManager)

    code = await cli.report(export=False)
    out = capsys.readouterr().out

    assert code == 0
    assert "✅ Report ready. 1 issues" in out
    assert "   - issues: ok: 1 (project)" in out
    assert "Velocity: 4.5 items per week (Stable)" in out
    assert "OCM-E1" in out


@pytest.mark.asyncio
async def test_report_exports_files(monkeypatch, tmp_path, capsys) -> None:
    class FakeDataManager:
        def __init__(self, config=None):
            self.config = AppConfig(project_keys=("OCM",), export_dir=str(tmp_path))

        async def build_report(self):
            return _snapshot()

        def diagnostic_lines(self) -> list[str]:
            return []

    monkeypatch.setattr(cli, "ReportDataManager", FakeDataManager)

    assert await cli.report(export=True) == 0
    assert (tmp_path / "jira-export-OCM-2026-03-15.json").exists()
    assert (tmp_path / "jira-issues-OCM-2026-03-15.csv").exists()


@pytest.mark.asyncio
async def test_report_failure_prints_single_error(monkeypatch, capsys) -> None:
    class FakeDataManager:
        def __init__(self, config=None):
            self.config = AppConfig()

        async def build_report(self):
            raise TransportError("Unauthorized", status_code=401)

        def diagnostic_lines(self) -> list[str]:
            return ["issues: failed: Unauthorized | status=401"]

    monkeypatch.setattr(cli, "ReportDataManager", FakeDataManager)

    code = await cli.report()
    out = capsys.readouterr().out

    assert code == 1
    assert "❌ Report failed. Unauthorized | status=401" in out
    assert "   - issues: failed: Unauthorized | status=401" in out


@pytest.mark.asyncio
async def test_list_boards_prints_boards(monkeypatch, capsys) -> None:
    class FakeClient:
        def __init__(self, **kwargs):
            pass

        async def get_boards(self, project_key=None):
            assert project_key == "OCM"
            return [Board("1", "Core"), Board("2", "UI")]

    monkeypatch.setattr(cli, "JiraClient", FakeClient)

    assert await cli.list_boards("OCM") == 0
    out = capsys.readouterr().out
    assert "- 1: Core" in out
    assert "- 2: UI" in out


def test_export_suffix_reflects_board_selection() -> None:
    assert cli.export_suffix(AppConfig(project_keys=("OCM",))) == "OCM"
    assert cli.export_suffix(AppConfig(project_keys=("OCM",), boards=(Board("7", "Core"),))) == "OCM-7"
    assert (
        cli.export_suffix(AppConfig(project_keys=("OCM",), boards=(Board("7", "Core"), Board("8", "UI"))))
        == "OCM-multi-2boards"
    )
    assert cli.export_suffix(AppConfig()) == "all"


@pytest.mark.asyncio
async def test_report_project_argument_overrides_configuration(monkeypatch, capsys) -> None:
    seen: list[AppConfig] = []

    class FakeDataManager:
        def __init__(self, config=None):
            seen.append(config)
            self.config = config

        async def build_report(self):
            return _snapshot()

        def diagnostic_lines(self) -> list[str]:
            return []

    monkeypatch.setattr(cli, "ReportDataManager", FakeDataManager)
    monkeypatch.setenv("JP_CONFIG_PATH", "non-existent-config-file.json")
    monkeypatch.setenv("JIRA_PROJECT_KEYS", "OCM")
    monkeypatch.setenv("JP_BOARDS", "7:Core")

    assert await cli.report(export=False, project="rosa") == 0
    assert seen[0].project_keys == ("ROSA",)
    assert seen[0].boards == ()


def test_report_dispatch_passes_project(monkeypatch) -> None:
    calls: list[tuple[bool, str | None]] = []

    async def fake_report(export=True, project=None):
        calls.append((export, project))
        return 0

    monkeypatch.setattr("sys.argv", ["jirapulse", "report", "ROSA", "--no-export"])
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    monkeypatch.setattr(cli, "configure_logging", lambda verbose=False: None)
    monkeypatch.setattr(cli, "report", fake_report)

    with pytest.raises(SystemExit) as exited:
        cli.main()

    assert exited.value.code == 0
    assert calls == [(False, "ROSA")]


def test_component_dispatch_parses_options(monkeypatch) -> None:
    calls: list[tuple] = []

    async def fake_component_report(component, days=None, project=None, export=True):
        calls.append((component, days, project, export))
        return 0

    monkeypatch.setattr(
        "sys.argv",
        ["jirapulse", "component", "--component", "clusters-service-core-team", "--days", "14", "--project", "OCM"],
    )
    monkeypatch.setattr(cli, "load_dotenv", lambda: None)
    monkeypatch.setattr(cli, "configure_logging", lambda verbose=False: None)
    monkeypatch.setattr(cli, "component_report", fake_component_report)

    with pytest.raises(SystemExit):
        cli.main()

    assert calls == [("clusters-service-core-team", 14, "OCM", True)]


@pytest.mark.asyncio
async def test_component_report_groups_by_status_and_exports(monkeypatch, tmp_path, capsys) -> None:
    epic = IssueRef("OCM-E1", "Platform", "https://jira/browse/OCM-E1")
    issues = [
        Issue(key="OCM-1", summary="Api", status="In Progress", updated="2026-03-14T10:00:00.000+0000", epic=epic),
        Issue(key="OCM-2", summary="Docs", status="Code Review", assignee="Ana", updated="2026-03-13T09:00:00.000+0000"),
        Issue(key="OCM-3", summary="Infra", status="In Progress", updated="2026-03-12T09:00:00.000+0000"),
    ]
    requests: list[tuple] = []

    class FakeDataManager:
        def __init__(self, config=None):
            self.config = AppConfig(project_keys=("OCM",), export_dir=str(tmp_path))
            self.metrics = MetricsService(self.config)

        async def component_issues(self, component, days=None, project_key=None):
            requests.append((component, days, project_key))
            return AggregationResult(issues=issues, outcome=FetchOutcome.PROJECT)

    monkeypatch.setattr(cli, "ReportDataManager", FakeDataManager)

    code = await cli.component_report("core team", days=14, project="OCM")
    out = capsys.readouterr().out

    assert code == 0
    assert requests == [("core team", 14, "OCM")]
    assert "📊 Found 3 issues" in out
    assert "   - In Progress: 2 issues" in out
    assert "   - Code Review: 1 issues" in out
    exported = list(tmp_path.glob("component-issues-core-team-*.csv"))
    assert len(exported) == 1
    assert exported[0].read_text(encoding="utf-8").splitlines()[0] == ",".join(
        f'"{header}"' for header in COMPONENT_CSV_HEADERS
    )


@pytest.mark.asyncio
async def test_component_report_without_matches(monkeypatch, capsys) -> None:
    class FakeDataManager:
        def __init__(self, config=None):
            self.config = AppConfig()
            self.metrics = MetricsService(self.config)

        async def component_issues(self, component, days=None, project_key=None):
            return AggregationResult(issues=[], outcome=FetchOutcome.PROJECT)

    monkeypatch.setattr(cli, "ReportDataManager", FakeDataManager)

    assert await cli.component_report("core") == 0
    assert "No issues found matching the criteria." in capsys.readouterr().out
