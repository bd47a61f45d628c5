import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from jirapulse.config import AppConfig
from jirapulse.data import ReportDataManager, ReportSnapshot
from jirapulse.export import export_component_csv, export_csv, export_json
from jirapulse.jira import JiraClient, TransportError

console = Console()


def main():
    load_dotenv()
    parser = argparse.ArgumentParser(description="jirapulse status report CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    report_parser = subparsers.add_parser("report", help="Fetch, enrich and summarize issues")
    report_parser.add_argument("project", nargs="?", help="Project key overriding JIRA_PROJECT_KEYS")
    report_parser.add_argument("--no-export", action="store_true", help="Skip JSON/CSV export")
    boards_parser = subparsers.add_parser("boards", help="List boards for a project")
    boards_parser.add_argument("project", nargs="?", help="Project key (defaults to the first configured key)")
    component_parser = subparsers.add_parser("component", help="List open epics and stories for a component")
    component_parser.add_argument("--component", required=True, help="Component name, e.g. clusters-service-core-team")
    component_parser.add_argument("--days", type=int, default=None, help="Only issues updated in the last N days")
    component_parser.add_argument("--project", help="Project key (defaults to the configured keys)")
    component_parser.add_argument("--no-export", action="store_true", help="Skip CSV export")
    subparsers.add_parser("doctor", help="Check setup and environment")

    args = parser.parse_args()
    configure_logging(args.verbose)

    if args.command == "boards":
        sys.exit(asyncio.run(list_boards(args.project)))
    elif args.command == "component":
        sys.exit(
            asyncio.run(
                component_report(args.component, days=args.days, project=args.project, export=not args.no_export)
            )
        )
    elif args.command == "doctor":
        doctor()
    else:
        export = not getattr(args, "no_export", False)
        sys.exit(asyncio.run(report(export=export, project=getattr(args, "project", None))))


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def report(export: bool = True, project: str | None = None) -> int:
    """Run the pipeline once and print the summary.

    A `project` key replaces the configured keys and drops configured boards,
    which belong to the configured project.
    """
    print("🚀 Building status report...")
    config = AppConfig.from_env()
    if project:
        config = replace(config, project_keys=(project.strip().upper(),), boards=())
    dm = ReportDataManager(config)
    try:
        snapshot = await dm.build_report()
    except (TransportError, ValueError) as e:
        print(f"❌ Report failed. {e}")
        for line in dm.diagnostic_lines():
            print(f"   - {line}")
        return 1

    print(f"✅ Report ready. {len(snapshot.issues)} issues")
    for line in dm.diagnostic_lines():
        print(f"   - {line}")
    render_summary(snapshot)

    if export:
        export_dir = Path(dm.config.export_dir)
        suffix = export_suffix(dm.config)
        json_path = export_json(snapshot, export_dir, suffix)
        csv_path = export_csv(snapshot.issues, export_dir, suffix, snapshot.generated_at.date().isoformat())
        print(f"💾 Exported {json_path} and {csv_path}")
    return 0


async def component_report(
    component: str, days: int | None = None, project: str | None = None, export: bool = True
) -> int:
    """Open epics and stories of one component, grouped by status."""
    print(f"🔍 Querying component {component}...")
    dm = ReportDataManager()
    try:
        result = await dm.component_issues(component, days=days, project_key=project)
    except (TransportError, ValueError) as e:
        print(f"❌ Component query failed. {e}")
        return 1

    print(f"📊 Found {len(result.issues)} issues")
    if not result.issues:
        print("No issues found matching the criteria.")
        return 0

    groups = dm.metrics.group_by_status(result.issues)
    for status, issues in groups.items():
        table = Table(title=f"{status.upper()} ({len(issues)} issues)")
        table.add_column("Key")
        table.add_column("Summary")
        table.add_column("Assignee")
        table.add_column("Priority")
        table.add_column("Updated")
        table.add_column("Epic")
        for issue in issues:
            table.add_row(
                issue.key,
                issue.summary,
                issue.assignee or "Unassigned",
                issue.priority,
                (issue.updated or "").split("T")[0],
                issue.epic.key if issue.epic else "",
            )
        console.print(table)
    for status, issues in groups.items():
        print(f"   - {status}: {len(issues)} issues")

    if export:
        path = export_component_csv(result.issues, component, Path(dm.config.export_dir))
        print(f"💾 Exported {path}")
    return 0


def export_suffix(config: AppConfig) -> str:
    project = "-".join(config.project_keys) or "all"
    if len(config.boards) == 1:
        return f"{project}-{config.boards[0].id}"
    if len(config.boards) > 1:
        return f"{project}-multi-{len(config.boards)}boards"
    return project


def render_summary(snapshot: ReportSnapshot) -> None:
    categorized = snapshot.categorized
    buckets = Table(title="Work breakdown")
    buckets.add_column("Bucket")
    buckets.add_column("Issues", justify="right")
    buckets.add_row("Completed", str(len(categorized.completed)))
    buckets.add_row("In progress", str(len(categorized.in_progress)))
    buckets.add_row("New", str(len(categorized.new_issues)))
    buckets.add_row("Needs attention", str(len(categorized.needs_attention)))
    console.print(buckets)

    velocity = snapshot.velocity
    console.print(f"Velocity: {velocity.average} {velocity.unit} per week ({velocity.trend})")

    epics = {issue.epic.key: issue.epic for issue in snapshot.issues if issue.epic and issue.epic.progress}
    if epics:
        epic_table = Table(title="Epic progress")
        epic_table.add_column("Epic")
        epic_table.add_column("Done", justify="right")
        epic_table.add_column("%", justify="right")
        for key, epic in epics.items():
            progress = epic.progress
            epic_table.add_row(key, f"{progress.completed}/{progress.total}", str(progress.percentage))
        console.print(epic_table)

    if categorized.needs_attention:
        attention = Table(title="Needs attention")
        attention.add_column("Key")
        attention.add_column("Summary")
        attention.add_column("Last updated")
        attention.add_column("Reason")
        for item in categorized.needs_attention:
            attention.add_row(item.issue.key, item.issue.summary, item.last_updated, item.reason)
        console.print(attention)


async def list_boards(project: str | None = None) -> int:
    config = AppConfig.from_env()
    project = project or (config.project_keys[0] if config.project_keys else None)
    client = JiraClient(page_size=config.page_size, timeout=config.http_timeout)
    try:
        boards = await client.get_boards(project)
    except (TransportError, ValueError) as e:
        print(f"❌ Could not list boards. {e}")
        return 1
    if not boards:
        print("No boards found.")
        return 0
    print(f"📋 Boards{f' for {project}' if project else ''}")
    for board in boards:
        print(f"- {board.id}: {board.name}")
    return 0


def doctor():
    """Check for necessary environment variables and files."""
    print("🩺 Running jirapulse doctor...")

    env_exists = Path(".env").exists()
    print(f"[{'✓' if env_exists else '✕'}] .env file")

    for name in ("JIRA_BASE_URL", "JIRA_API_TOKEN", "JIRA_PROJECT_KEYS"):
        print(f"[{'✓' if os.getenv(name) else '✕'}] {name}")

    config = AppConfig.from_env()
    print(f"   - config source: {config.config_source}")
    if config.boards:
        print(f"   - boards: {', '.join(board.name for board in config.boards)}")
    else:
        print("   - boards: none (project-wide search)")

    print("\nDoctor check complete.")


if __name__ == "__main__":
    main()
