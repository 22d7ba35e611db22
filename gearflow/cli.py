"""Typer CLI application for GearFlow.

Provides commands for usage reports, request administration,
notifications, change watching, the HTTP API, the dashboard and
scheduled report exports.
"""

import asyncio
import logging
import subprocess
import time
from contextlib import contextmanager
from datetime import date, timedelta
from typing import Optional

import httpx
import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from gearflow.exceptions import GearFlowError

console = Console()
app = typer.Typer(
    name="gearflow",
    help="GearFlow -- equipment checkout tracking and usage reporting.",
    add_completion=False,
    no_args_is_help=True,
)

_SEVERITY_STYLE = {
    "critical": "bold red",
    "warning": "yellow",
    "info": "cyan",
    "success": "green",
}


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging level and format."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _run_async(coro):
    """Run an async coroutine from synchronous CLI context."""
    return asyncio.run(coro)


def _load_app(with_scheduler: bool = False):
    from gearflow.app import GearFlowApp
    gf = GearFlowApp()
    gf.initialize(with_scheduler=with_scheduler)
    return gf


@contextmanager
def _cli_errors():
    """Print domain and transport errors and exit with status 1."""
    try:
        yield
    except GearFlowError as exc:
        console.print("[red]✘ " + type(exc).__name__ + ":[/red] " + str(exc))
        raise typer.Exit(code=1)
    except httpx.HTTPError as exc:
        console.print("[red]✘ Backend unreachable:[/red] " + str(exc))
        raise typer.Exit(code=1)


def _spinner(text: str) -> Progress:
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    )
    progress.add_task(description=text, total=None)
    return progress


async def _with_client(fn):
    from gearflow.integrations.backend_client import BackendClient
    async with BackendClient.from_env() as client:
        return await fn(client)


def _print_bundle(bundle) -> None:
    report = bundle.report
    table = Table(title="Usage " + report.start_date + " to " + report.end_date,
                  show_header=True, header_style="bold magenta")
    table.add_column("Metric", style="cyan", min_width=28)
    table.add_column("Value", min_width=12)
    rows = [
        ("Total requests", report.total_requests),
        ("Checkouts", report.total_checkouts),
        ("Check-ins", report.total_checkins),
        ("Damage reports", report.total_damages),
        ("Utilization", "{0:.1f}%".format(report.utilization_rate)),
        ("Avg request duration (days)", report.avg_request_duration),
        ("Overdue returns", report.overdue_returns),
        ("Active users", str(report.unique_users) + " / " + str(report.total_users)),
        ("Most active user", report.most_active_user or "-"),
        ("Most active equipment", report.most_active_gear or "-"),
    ]
    if bundle.performance is not None:
        rows.append(("Activity change", "{0:+.1f}% ({1})".format(
            bundle.performance.activity_change, bundle.performance.trend,
        )))
    for label, value in rows:
        table.add_row(label, str(value))
    console.print(table)

    for name, error in report.source_errors.items():
        console.print("[yellow]⚠[/yellow] " + name + " unavailable: " + error)

    for insight in bundle.insights:
        style = _SEVERITY_STYLE.get(insight.severity, "white")
        console.print("[" + style + "]● " + insight.title + "[/" + style + "]: "
                      + insight.description)
    if bundle.recommendations:
        console.print("\n[bold]Recommendations[/bold]")
        for idx, text in enumerate(bundle.recommendations, 1):
            console.print("  " + str(idx) + ". " + text)


# ------------------------------------------------------------------
# report
# ------------------------------------------------------------------
@app.command()
def report(
    start: Optional[str] = typer.Option(None, "--start", "-s", help="First day (YYYY-MM-DD)."),
    end: Optional[str] = typer.Option(None, "--end", "-e", help="Last day (YYYY-MM-DD)."),
    fmt: list[str] = typer.Option([], "--format", "-f", help="Export format: csv, pdf, json, html."),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", "-o", help="Export directory."),
    compare: bool = typer.Option(True, "--compare/--no-compare", help="Compare with previous period."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Generate a usage report and optionally export it."""
    _setup_logging(verbose)
    try:
        end = end or date.today().isoformat()
        start = start or (date.fromisoformat(end) - timedelta(days=6)).isoformat()
        date.fromisoformat(start)
    except ValueError:
        raise typer.BadParameter("dates must be YYYY-MM-DD")
    console.print(Panel("[bold cyan]Gear Activity Report: " + start + " to " + end + "[/bold cyan]"))

    with _cli_errors():
        gf = _load_app()
        with _spinner("Fetching and aggregating activity..."):
            result = gf.run_pipeline(
                "report", start=start, end=end, formats=fmt,
                output_dir=output_dir, compare=compare,
            )

    _print_bundle(result["bundle"])
    for path in result["files"]:
        console.print("Exported: [bold]" + path + "[/bold]")
    console.print("[green]✔[/green] Report complete (id=" + str(result["bundle"].report_id) + ").")


# ------------------------------------------------------------------
# weekly
# ------------------------------------------------------------------
@app.command()
def weekly(
    days: int = typer.Option(7, "--days", "-d", min=1, help="Window length in days."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Show per-equipment activity counters from the backend summary."""
    _setup_logging(verbose)
    with _cli_errors():
        data = _load_app().run_pipeline("weekly", days=days)

    table = Table(title="Activity, last " + str(days) + " days",
                  show_header=True, header_style="bold magenta")
    table.add_column("Equipment", style="cyan", min_width=24)
    for col in ("Requests", "Checkouts", "Check-ins", "Bookings", "Damages", "Total"):
        table.add_column(col, justify="right")
    for item in data["gear_activity"]:
        table.add_row(
            str(item["gear_name"]),
            str(item["request_count"]),
            str(item["checkout_count"]),
            str(item["checkin_count"]),
            str(item["booking_count"]),
            str(item["damage_count"]),
            str(item["total_activity"]),
        )
    console.print(table)
    summary = data["summary"]
    console.print(
        "Requests: [bold]" + str(summary["requests"]) + "[/bold]  "
        "Checkouts: [bold]" + str(summary["checkouts"]) + "[/bold]  "
        "Check-ins: [bold]" + str(summary["checkins"]) + "[/bold]"
    )


# ------------------------------------------------------------------
# requests
# ------------------------------------------------------------------
@app.command()
def requests(
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Only this user's requests."),
    status_filter: Optional[str] = typer.Option(None, "--status", help="Filter by status."),
    limit: int = typer.Option(50, "--limit", "-l", help="Max rows."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """List gear requests."""
    _setup_logging(verbose)
    from gearflow.modules.requests.service import RequestService

    async def _run(client):
        service = RequestService(client)
        if user:
            return await service.list_user_requests(user)
        return await service.list_requests(status=status_filter, limit=limit)

    with _cli_errors():
        rows = _run_async(_with_client(_run))

    table = Table(title="Gear Requests", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Status", min_width=12)
    table.add_column("Items", justify="right")
    table.add_column("Created")
    table.add_column("Due")
    for row in rows[:limit]:
        table.add_row(
            str(row.get("id")),
            str(row.get("status") or ""),
            str(len(row.get("gear_request_gears") or [])),
            str(row.get("created_at") or "")[:19],
            str(row.get("due_date") or "-")[:19],
        )
    console.print(table)


# ------------------------------------------------------------------
# gears
# ------------------------------------------------------------------
@app.command()
def gears(
    status_filter: Optional[str] = typer.Option(None, "--status", help="Filter by status."),
    category: Optional[str] = typer.Option(None, "--category", "-c", help="Filter by category."),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Name contains."),
    page: int = typer.Option(1, "--page", help="Page number."),
    page_size: int = typer.Option(25, "--page-size", help="Rows per page."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Browse the gear catalogue."""
    _setup_logging(verbose)
    from gearflow.modules.gears.service import GearService

    async def _run(client):
        return await GearService(client).list_gears(
            status=status_filter, category=category, search=search,
            page=page, page_size=page_size,
        )

    with _cli_errors():
        result = _run_async(_with_client(_run))

    table = Table(title="Gear", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan", min_width=20)
    table.add_column("Category")
    table.add_column("Status", min_width=12)
    table.add_column("Free", justify="right")
    for row in result["items"]:
        free = row.get("available_quantity")
        table.add_row(
            str(row.get("id")),
            str(row.get("name") or ""),
            str(row.get("category") or ""),
            str(row.get("status") or ""),
            "" if free is None else str(free),
        )
    console.print(table)
    console.print("[dim]Page " + str(result["page"]) + ", " + str(result["total"]) + " total[/dim]")


@app.command()
def cancel(
    request_id: str = typer.Argument(..., help="Request to cancel."),
    user: str = typer.Option(..., "--user", "-u", help="Requesting user id."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Cancel a pending request on behalf of its owner."""
    _setup_logging(verbose)
    from gearflow.modules.requests.service import RequestService

    with _cli_errors():
        _run_async(_with_client(lambda c: RequestService(c).cancel_request(request_id, user)))
    console.print("[green]✔[/green] Request " + request_id + " cancelled.")


@app.command()
def approve(
    request_id: str = typer.Argument(..., help="Request to approve."),
    admin: str = typer.Option(..., "--admin", "-a", help="Approving admin id."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Approve a pending request and check out its equipment."""
    _setup_logging(verbose)
    from gearflow.modules.requests.service import RequestService

    with _cli_errors():
        row = _run_async(_with_client(lambda c: RequestService(c).approve_request(request_id, admin)))
    console.print("[green]✔[/green] Request " + request_id + " approved; due "
                  + str(row.get("due_date", "-")) + ".")


@app.command()
def reject(
    request_id: str = typer.Argument(..., help="Request to reject."),
    admin: str = typer.Option(..., "--admin", "-a", help="Rejecting admin id."),
    reason: str = typer.Option("", "--reason", "-r", help="Reason shown to the requester."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Reject a pending request."""
    _setup_logging(verbose)
    from gearflow.modules.requests.service import RequestService

    with _cli_errors():
        _run_async(_with_client(
            lambda c: RequestService(c).reject_request(request_id, admin, reason)
        ))
    console.print("[green]✔[/green] Request " + request_id + " rejected.")


# ------------------------------------------------------------------
# notifications
# ------------------------------------------------------------------
@app.command()
def notifications(
    user: str = typer.Option(..., "--user", "-u", help="Recipient user id."),
    unread: bool = typer.Option(False, "--unread", help="Only unread notifications."),
    mark_read: bool = typer.Option(False, "--mark-read", help="Mark all as read afterwards."),
    limit: int = typer.Option(20, "--limit", "-l", help="Max rows."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """List a user's notifications."""
    _setup_logging(verbose)
    from gearflow.modules.notifications.service import NotificationService

    async def _run(client):
        service = NotificationService(client)
        rows = await service.list_notifications(user, unread_only=unread, limit=limit)
        updated = await service.mark_all_read(user) if mark_read else 0
        return rows, updated

    with _cli_errors():
        rows, updated = _run_async(_with_client(_run))

    table = Table(title="Notifications", show_header=True, header_style="bold magenta")
    table.add_column("", width=2)
    table.add_column("Title", style="cyan", min_width=20)
    table.add_column("Message", max_width=60)
    table.add_column("Created")
    for row in rows:
        table.add_row(
            "" if row.get("is_read") else "●",
            str(row.get("title") or ""),
            str(row.get("message") or ""),
            str(row.get("created_at") or "")[:19],
        )
    console.print(table)
    if mark_read:
        console.print("Marked [bold]" + str(updated) + "[/bold] notifications read.")


@app.command()
def reminders(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Notify holders of overdue equipment."""
    _setup_logging(verbose)
    with _cli_errors():
        result = _load_app().run_pipeline("reminders")
    console.print("[green]✔[/green] Sent " + str(result["sent"]) + " overdue reminders.")


# ------------------------------------------------------------------
# watch
# ------------------------------------------------------------------
@app.command()
def watch(
    interval: float = typer.Option(5.0, "--interval", "-i", help="Seconds between polls."),
    delay: float = typer.Option(1.0, "--delay", help="Debounce delay in seconds."),
    polls: Optional[int] = typer.Option(None, "--polls", help="Stop after N polls."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Watch backend tables and print refreshed counters on change."""
    _setup_logging(verbose)
    from gearflow.modules.reporting.report_engine import ReportEngine
    from gearflow.realtime import ChangeFeed, RefreshDebouncer

    async def _run(client):
        engine = ReportEngine(client)

        async def _refresh():
            data = await engine.fetch_weekly_activity(days=7)
            s = data["summary"]
            console.print(
                "[cyan]↻[/cyan] requests=" + str(s["requests"])
                + " checkouts=" + str(s["checkouts"])
                + " checkins=" + str(s["checkins"])
            )

        debouncer = RefreshDebouncer(_refresh, delay=delay)
        debouncer.start()
        feed = ChangeFeed(client, debouncer, interval=interval)
        try:
            await feed.run(max_polls=polls)
        finally:
            await debouncer.aclose()

    console.print(Panel("[bold cyan]Watching for changes (Ctrl+C to stop)[/bold cyan]"))
    with _cli_errors():
        try:
            _run_async(_with_client(_run))
        except KeyboardInterrupt:
            console.print("Stopped.")


# ------------------------------------------------------------------
# serve / dashboard
# ------------------------------------------------------------------
@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address."),
    port: int = typer.Option(8000, "--port", "-p", help="HTTP port."),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Run the HTTP API with uvicorn."""
    _setup_logging(verbose)
    import uvicorn

    console.print("[bold cyan]Serving API on http://" + host + ":" + str(port) + "[/bold cyan]")
    uvicorn.run(
        "gearflow.api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="debug" if verbose else "info",
    )


@app.command()
def dashboard(
    port: int = typer.Option(8501, "--port", "-p", help="Streamlit server port."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Launch the Streamlit dashboard."""
    _setup_logging(verbose)
    console.print("[bold cyan]Launching dashboard on port " + str(port) + "...[/bold cyan]")
    subprocess.run(
        ["streamlit", "run", "dashboard/app.py", "--server.port", str(port)],
        check=False,
    )


# ------------------------------------------------------------------
# schedule / jobs
# ------------------------------------------------------------------
@app.command()
def schedule(
    frequency: str = typer.Argument(..., help="daily, weekly, biweekly or monthly."),
    fmt: list[str] = typer.Option(["csv", "pdf"], "--format", "-f", help="Export formats."),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", "-o", help="Export directory."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Register a recurring report export."""
    _setup_logging(verbose)
    from gearflow.modules.reporting.report_engine import FREQUENCY_DAYS, ReportEngine

    gf = _load_app(with_scheduler=True)
    out_dir = output_dir or gf.export_dir
    try:
        config = ReportEngine.schedule_report(frequency, formats=fmt, output_dir=out_dir)
    except ValueError as exc:
        console.print("[red]✘[/red] " + str(exc))
        raise typer.Exit(code=1)

    job_id = "report_" + str(config["schedule_id"]) + "_" + frequency
    gf.scheduler.start(paused=True)
    try:
        gf.scheduler.schedule_report(job_id, config["cron"], formats=fmt, output_dir=out_dir,
                                     days=FREQUENCY_DAYS[frequency])
    finally:
        gf.scheduler.stop(wait=False)
    console.print("[green]✔[/green] Scheduled " + frequency + " report as [bold]"
                  + job_id + "[/bold] (" + config["cron"] + ").")
    console.print("Next run: " + config["next_run"])


@app.command()
def jobs(
    run: bool = typer.Option(False, "--run", help="Start the scheduler and block."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """List scheduled jobs, or run the scheduler in the foreground."""
    _setup_logging(verbose)
    gf = _load_app(with_scheduler=True)
    sched = gf.scheduler
    sched.start(paused=not run)
    try:
        table = Table(title="Scheduled Jobs", show_header=True, header_style="bold magenta")
        table.add_column("Job", style="cyan")
        table.add_column("Trigger")
        table.add_column("Next run")
        for job in sched.list_jobs():
            table.add_row(job["id"], job["trigger"], job["next_run_time"] or "-")
        console.print(table)
        if run:
            console.print("[bold cyan]Scheduler running (Ctrl+C to stop)[/bold cyan]")
            try:
                while True:
                    time.sleep(1)
            except KeyboardInterrupt:
                console.print("Stopping scheduler.")
    finally:
        sched.stop(wait=False)


# ------------------------------------------------------------------
# status
# ------------------------------------------------------------------
@app.command()
def status(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Show project status: database, scheduler, backend, configuration."""
    _setup_logging(verbose)
    console.print(Panel("[bold cyan]System Status[/bold cyan]"))
    gf = _load_app(with_scheduler=True)

    table = Table(title="Component Status", show_header=True, header_style="bold magenta")
    table.add_column("Component", style="cyan", min_width=15)
    table.add_column("Status", min_width=10)
    table.add_column("Details", max_width=60)
    badges = {
        "ok": "[green]✔ OK[/green]",
        "warning": "[yellow]⚠ Warning[/yellow]",
        "error": "[red]✘ Error[/red]",
    }
    for name, info in gf.get_status().items():
        table.add_row(name.title(), badges.get(info["status"], info["status"]), info["details"])
    console.print(table)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
