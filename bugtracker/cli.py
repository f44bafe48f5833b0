"""
Bugtracker - CLI Interface

Command-line interface for reporting and triaging issues.
"""

import logging
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import LOG_FORMAT, load_settings
from .issues import (
    Issue,
    IssueError,
    IssueManager,
    IssueNumber,
    IssueStatus,
    ParticipantID,
    ProductVersion,
)


console = Console()

STATUS_STYLES = {
    IssueStatus.OPEN: "yellow",
    IssueStatus.ASSIGNED: "cyan",
    IssueStatus.RESOLVED: "green",
    IssueStatus.CLOSED: "dim",
}


def _fail(error: Exception):
    console.print(f"[red]Error: {error}[/red]")
    raise SystemExit(1)


def _status_text(issue: Issue) -> str:
    style = STATUS_STYLES[issue.status]
    return f"[{style}]{issue.status.name}[/{style}]"


def _print_issue(issue: Issue):
    lines = [
        f"[bold]{escape(issue.title or '')}[/bold]",
        f"Status: {_status_text(issue)}",
        f"Occurred in: {issue.occurred_in}",
        f"Created: {issue.created_at:%Y-%m-%d %H:%M} UTC",
    ]
    if issue.assignee:
        lines.append(f"Assignee: [cyan]{issue.assignee}[/cyan]")
    if issue.resolution:
        lines.append(f"Resolution: {issue.resolution.name}")
    if issue.fix_version:
        lines.append(f"Fixed in: {issue.fix_version}")
    if issue.wont_fix_reason:
        lines.append(f"Won't fix: {escape(issue.wont_fix_reason)}")
    if issue.description:
        lines.append("")
        lines.append(escape(issue.description))

    links = sorted(issue.related_issues, key=lambda r: (str(r.target), r.relationship_type.value))
    if links:
        lines.append("")
        lines.append("[bold]Related issues[/bold]")
        for link in links:
            lines.append(f"  {link.relationship_type.name} {link.target}")

    console.print(Panel("\n".join(lines), title=str(issue.number)))


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", type=click.Path(), help="YAML settings file")
@click.option("--db", "db_path", help="SQLite database path")
@click.pass_context
def cli(ctx, config_path: Optional[str], db_path: Optional[str]):
    """Bugtracker - track reported defects from report to close."""
    settings = load_settings(config_path)
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    if db_path:
        settings.db_path = db_path
    ctx.obj = IssueManager.from_settings(settings)


@cli.command()
@click.argument("number")
@click.argument("title")
@click.option("--version", "-v", "occurred_in", required=True, help="Version the bug occurred in")
@click.option("--description", "-d", help="Detailed description")
@click.pass_obj
def report(manager: IssueManager, number: str, title: str, occurred_in: str, description: Optional[str]):
    """Report a new issue."""
    try:
        issue = manager.report_issue(
            IssueNumber(number), title, ProductVersion(occurred_in), description=description
        )
    except IssueError as e:
        _fail(e)

    console.print(f"[green]Reported {issue.number}[/green]")


@cli.command()
@click.argument("number")
@click.pass_obj
def show(manager: IssueManager, number: str):
    """Show a single issue."""
    try:
        issue = manager.get_issue(IssueNumber(number))
    except IssueError as e:
        _fail(e)

    _print_issue(issue)


@cli.command(name="list")
@click.option("--status", "-s", type=click.Choice([s.value for s in IssueStatus]), help="Filter by status")
@click.option("--assignee", "-a", help="Filter by assignee")
@click.pass_obj
def list_issues(manager: IssueManager, status: Optional[str], assignee: Optional[str]):
    """List issues, most recent first."""
    try:
        issues = manager.list_issues(
            status=IssueStatus(status) if status else None,
            assignee=ParticipantID(assignee) if assignee else None,
        )
    except IssueError as e:
        _fail(e)

    if not issues:
        console.print("[dim]No issues found.[/dim]")
        return

    table = Table(title="Issues")
    table.add_column("Number", style="bold", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Title")
    table.add_column("Assignee")
    table.add_column("Resolution")

    for issue in issues:
        table.add_row(
            str(issue.number),
            _status_text(issue),
            escape(issue.title or ""),
            str(issue.assignee) if issue.assignee else "-",
            issue.resolution.name if issue.resolution else "-",
        )

    console.print(table)


@cli.command()
@click.argument("number")
@click.argument("assignee")
@click.pass_obj
def assign(manager: IssueManager, number: str, assignee: str):
    """Assign an issue to a participant."""
    try:
        issue = manager.assign(IssueNumber(number), ParticipantID(assignee))
    except IssueError as e:
        _fail(e)

    _print_issue(issue)


@cli.command()
@click.argument("number")
@click.argument("version")
@click.pass_obj
def fix(manager: IssueManager, number: str, version: str):
    """Resolve an issue as fixed in VERSION."""
    try:
        issue = manager.mark_fixed(IssueNumber(number), ProductVersion(version))
    except IssueError as e:
        _fail(e)

    _print_issue(issue)


@cli.command()
@click.argument("number")
@click.argument("original")
@click.pass_obj
def duplicate(manager: IssueManager, number: str, original: str):
    """Resolve an issue as duplicate of ORIGINAL."""
    try:
        issue = manager.mark_duplicate(IssueNumber(number), IssueNumber(original))
    except IssueError as e:
        _fail(e)

    _print_issue(issue)


@cli.command()
@click.argument("number")
@click.argument("reason")
@click.pass_obj
def wontfix(manager: IssueManager, number: str, reason: str):
    """Resolve an issue as won't fix."""
    try:
        issue = manager.mark_wont_fix(IssueNumber(number), reason)
    except IssueError as e:
        _fail(e)

    _print_issue(issue)


@cli.command(name="cannot-reproduce")
@click.argument("number")
@click.pass_obj
def cannot_reproduce(manager: IssueManager, number: str):
    """Resolve an issue as not reproducible."""
    try:
        issue = manager.mark_cannot_reproduce(IssueNumber(number))
    except IssueError as e:
        _fail(e)

    _print_issue(issue)


@cli.command()
@click.argument("number")
@click.pass_obj
def close(manager: IssueManager, number: str):
    """Close a resolved issue."""
    try:
        issue = manager.close(IssueNumber(number))
    except IssueError as e:
        _fail(e)

    _print_issue(issue)


@cli.command()
@click.argument("number")
@click.argument("version")
@click.pass_obj
def reopen(manager: IssueManager, number: str, version: str):
    """Reopen an issue that occurred again in VERSION."""
    try:
        issue = manager.reopen(IssueNumber(number), ProductVersion(version))
    except IssueError as e:
        _fail(e)

    _print_issue(issue)


@cli.command()
@click.argument("number")
@click.argument("title")
@click.pass_obj
def rename(manager: IssueManager, number: str, title: str):
    """Change the title of an issue."""
    try:
        issue = manager.rename(IssueNumber(number), title)
    except IssueError as e:
        _fail(e)

    _print_issue(issue)


@cli.command()
@click.argument("number")
@click.argument("text")
@click.pass_obj
def describe(manager: IssueManager, number: str, text: str):
    """Replace the description of an issue."""
    try:
        issue = manager.describe(IssueNumber(number), text)
    except IssueError as e:
        _fail(e)

    _print_issue(issue)


@cli.command()
@click.argument("source")
@click.argument("target")
@click.option("--type", "-t", "link_type", type=click.Choice(["blocks", "refers"]), default="refers",
              help="Relationship from SOURCE to TARGET")
@click.pass_obj
def link(manager: IssueManager, source: str, target: str, link_type: str):
    """Link SOURCE to TARGET and record the reverse link on TARGET."""
    try:
        if link_type == "blocks":
            issue = manager.mark_blocks(IssueNumber(source), IssueNumber(target))
        else:
            issue = manager.mark_refers(IssueNumber(source), IssueNumber(target))
    except IssueError as e:
        _fail(e)

    _print_issue(issue)


@cli.command()
@click.pass_obj
def stats(manager: IssueManager):
    """Show issue counts by status and resolution."""
    data = manager.get_dashboard_data()["stats"]

    table = Table(title=f"Issues ({data['total']} total)")
    table.add_column("Group")
    table.add_column("Value")
    table.add_column("Count", justify="right")

    for status, count in sorted(data["by_status"].items()):
        table.add_row("status", status, str(count))
    for resolution, count in sorted(data["by_resolution"].items()):
        table.add_row("resolution", resolution, str(count))

    console.print(table)


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
