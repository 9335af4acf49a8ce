"""Command-line interface using Typer."""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from content_autopilot import __version__
from content_autopilot.logging import setup_logging

# Setup logging
setup_logging()

app = typer.Typer(
    name="content-autopilot",
    help="Content Autopilot - queue, publish and learn from short-form videos",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Content Autopilot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Content Autopilot - run the publishing control loop."""
    pass


@app.command()
def run(
    autopilot: Optional[bool] = typer.Option(
        None,
        "--autopilot/--windows",
        help="Force interval (autopilot) or post-window scheduling; defaults to the stored rules.",
    ),
) -> None:
    """Run the scheduler in the foreground until interrupted."""
    from content_autopilot.scheduler import Scheduler, schedule_from_rules
    from content_autopilot.db.session import get_session_context
    from content_autopilot.services.cycle import build_cycle_runner
    from content_autopilot.services.rules import get_rules

    with get_session_context() as session:
        rules = get_rules(session)
    if autopilot is not None:
        rules.optimiser_policy.autopilot_enabled = autopilot
    schedule = schedule_from_rules(rules)

    async def _run_forever() -> None:
        runner = build_cycle_runner()
        scheduler = Scheduler(runner)
        result = await scheduler.start(schedule)
        if not result.success:
            console.print(f"[bold red]Scheduler failed to start: {result.error}[/bold red]")
            raise typer.Exit(code=1)

        console.print(f"[bold green]Scheduler running ({result.mode})[/bold green]")
        console.print("[dim]Press Ctrl+C to stop[/dim]")
        try:
            await asyncio.Event().wait()
        finally:
            await scheduler.shutdown()
            await runner.publisher.close()

    try:
        asyncio.run(_run_forever())
    except KeyboardInterrupt:
        console.print("[yellow]Scheduler stopped[/yellow]")


@app.command()
def cycle(
    autopilot: bool = typer.Option(
        False, "--autopilot", "-a", help="Run a full autopilot cycle instead of a window cycle"
    ),
    queue: bool = typer.Option(False, "--queue", "-q", help="Enqueue on the Celery worker"),
) -> None:
    """Run one cycle now."""
    if queue:
        from content_autopilot.jobs.autopilot_tasks import run_cycle_task, run_scheduled_cycle_task

        task = run_cycle_task if autopilot else run_scheduled_cycle_task
        result = task.delay()
        console.print(f"[green]Task enqueued: {result.id}[/green]")
        return

    from content_autopilot.services.cycle import build_cycle_runner
    from content_autopilot.utils import run_async

    runner = build_cycle_runner()
    try:
        report = run_async(runner.run_cycle(autopilot=autopilot))
    except Exception as e:
        console.print(f"[bold red]Cycle failed: {e}[/bold red]")
        raise typer.Exit(code=1)
    finally:
        run_async(runner.publisher.close())

    if report.blocked:
        console.print(f"[bold yellow]Blocked by guardrails: {report.blocked_reason}[/bold yellow]")
        return

    table = Table(title=f"Cycle Report ({report.cycle_type})")
    table.add_column("Step", style="cyan")
    table.add_column("Result")

    table.add_row("Effective cadence", str(report.effective_cadence))
    table.add_row("Recovery mode", "Yes" if report.recovery_active else "No")
    if report.metrics is not None:
        table.add_row("Metrics matched", str(report.metrics.matched))
    if report.promotion is not None:
        table.add_row(
            "Promoted / retired",
            f"{len(report.promotion.promoted)} / {len(report.promotion.retired)}",
        )
    if report.mutation is not None:
        table.add_row("Mutation step", str(report.mutation.step))
    table.add_row("Planned", str(len(report.created_plan_ids)))
    table.add_row("Rendered", f"{len(report.rendered)} ({len(report.render_failed)} failed)")
    table.add_row("Uploaded", f"{len(report.uploaded)} ({len(report.upload_failed)} failed)")
    if report.spam_risk:
        table.add_row("Spam risk", "[bold red]cooldown set[/bold red]")

    console.print(table)


@app.command()
def arms(
    arm_type: Optional[str] = typer.Option(
        None, "--type", "-t", help="Filter by arm type (RECIPE, VARIANT, CTA, CLIP, SNIPPET)"
    ),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of arms to show"),
) -> None:
    """Show bandit arm statistics."""
    from content_autopilot.db.session import get_session_context
    from content_autopilot.services.learning.optimizer import list_arms
    from content_autopilot.services.rules import get_rules

    with get_session_context() as session:
        policy = get_rules(session).optimiser_policy
        summaries = list_arms(session, policy, arm_type.upper() if arm_type else None)

    if not summaries:
        console.print("[dim]No arm statistics yet. Metrics are recorded after uploads.[/dim]")
        return

    table = Table(title="Bandit Arms")
    table.add_column("Type", style="dim")
    table.add_column("Arm", style="cyan")
    table.add_column("Pulls", justify="right")
    table.add_column("Impressions", justify="right")
    table.add_column("Mean", justify="right", style="green")
    table.add_column("Confidence", justify="right")

    for summary in summaries[:limit]:
        table.add_row(
            summary.arm_type,
            summary.name or summary.arm_id,
            str(summary.pulls),
            str(summary.impressions),
            f"{summary.mean_reward:.3f}",
            f"{summary.confidence:.2f}",
        )

    console.print(table)


@app.command()
def status(
    logs: int = typer.Option(10, "--logs", "-l", help="Number of recent run logs to show"),
) -> None:
    """Show guardrail counters and recent run logs."""
    from content_autopilot.db.session import get_session_context
    from content_autopilot.services import guardrails
    from content_autopilot.services.recovery import get_recovery_status
    from content_autopilot.services.rules import get_rules
    from content_autopilot.services.run_log import recent_logs

    with get_session_context() as session:
        rules = get_rules(session)
        snap = guardrails.snapshot(session)
        decision = guardrails.check(snap, rules)
        recovery = get_recovery_status(session, rules)
        entries = [
            (entry.started_at, entry.run_type, entry.status, entry.error or entry.payload_excerpt)
            for entry in recent_logs(session, limit=logs)
        ]

    cooldown = snap.cooldown_until.strftime("%Y-%m-%d %H:%M UTC") if snap.cooldown_active else "-"
    console.print(
        Panel.fit(
            f"[cyan]Pending shares:[/cyan] {snap.pending_count}\n"
            f"[cyan]Drafts:[/cyan] {snap.draft_count}\n"
            f"[cyan]Uploads today:[/cyan] {snap.daily_uploads}\n"
            f"[cyan]Cooldown until:[/cyan] {cooldown}\n"
            f"[cyan]Recovery mode:[/cyan] {'Yes' if recovery.active else 'No'}\n"
            f"[cyan]Gate:[/cyan] "
            + ("[green]open[/green]" if decision.allowed else f"[red]{decision.reason}[/red]"),
            title="Guardrails",
            border_style="blue",
        )
    )

    if not entries:
        return

    table = Table(title="Recent Runs")
    table.add_column("Started", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")
    for started_at, run_type, run_status, detail in entries:
        style = {"OK": "green", "WARN": "yellow", "FAILED": "red"}.get(run_status, "white")
        table.add_row(
            started_at.strftime("%Y-%m-%d %H:%M") if started_at else "-",
            run_type,
            f"[{style}]{run_status}[/{style}]",
            (detail or "")[:80],
        )
    console.print(table)


@app.command()
def cooldown(
    hours: Optional[float] = typer.Option(None, "--hours", "-h", help="Set a cooldown of N hours"),
    clear: bool = typer.Option(False, "--clear", help="Clear the active cooldown"),
) -> None:
    """Show, set or clear the upload cooldown."""
    from content_autopilot.db.session import get_session_context
    from content_autopilot.services import guardrails

    if hours is not None and clear:
        console.print("[bold red]Use either --hours or --clear, not both[/bold red]")
        raise typer.Exit(code=1)

    with get_session_context() as session:
        if clear:
            guardrails.clear_cooldown(session)
            console.print("[green]Cooldown cleared[/green]")
            return
        if hours is not None:
            until = guardrails.set_cooldown(session, hours)
            console.print(f"[yellow]Cooldown set until {until.isoformat()}[/yellow]")
            return

        until = guardrails.get_cooldown(session)
        active = guardrails.is_cooldown_active(session)

    if active and until is not None:
        console.print(f"[yellow]Cooldown active until {until.isoformat()}[/yellow]")
    else:
        console.print("[green]No active cooldown[/green]")


@app.command("mark-posted")
def mark_posted_command(
    plan_id: str = typer.Argument(..., help="Post plan ID"),
) -> None:
    """Mark a draft as posted after publishing it from the platform app."""
    from uuid import UUID

    from content_autopilot.db.session import get_session_context
    from content_autopilot.services.publish_status import (
        PlanNotFoundError,
        PlanStateError,
        mark_posted,
    )

    try:
        plan_uuid = UUID(plan_id)
    except ValueError:
        console.print(f"[bold red]Invalid plan ID: {plan_id}[/bold red]")
        raise typer.Exit(code=1)

    try:
        with get_session_context() as session:
            mark_posted(session, plan_uuid)
    except (PlanNotFoundError, PlanStateError) as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(code=1)

    console.print(f"[green]Plan {plan_id} marked POSTED[/green]")


@app.command("publish-status")
def publish_status(
    plan_id: Optional[str] = typer.Argument(None, help="Post plan ID; all drafts when omitted"),
) -> None:
    """Check publish status with the platform and apply POSTED/FAILED."""
    from uuid import UUID

    from content_autopilot.adapters.publisher.errors import PublisherError
    from content_autopilot.services.cycle import get_publisher
    from content_autopilot.services.publish_status import (
        PlanNotFoundError,
        PlanStateError,
        PublishStatusChecker,
    )
    from content_autopilot.utils import run_async

    publisher = get_publisher()
    checker = PublishStatusChecker(publisher)
    try:
        if plan_id:
            checks = [run_async(checker.check(UUID(plan_id)))]
        else:
            checks = run_async(checker.sync_drafts())
    except (PlanNotFoundError, PlanStateError, PublisherError, ValueError) as e:
        console.print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(code=1)
    finally:
        run_async(publisher.close())

    if not checks:
        console.print("[dim]No uploaded drafts to check.[/dim]")
        return

    table = Table(title="Publish Status")
    table.add_column("Plan", style="cyan")
    table.add_column("Publish ID", style="dim")
    table.add_column("Platform")
    table.add_column("Plan status")
    for check in checks:
        table.add_row(
            check.plan_id,
            check.publish_id or "-",
            check.publish_status or check.error or "-",
            check.plan_status,
        )
    console.print(table)


@app.command()
def worker() -> None:
    """Start a Celery worker (for development)."""
    console.print("[bold blue]Starting Celery worker...[/bold blue]")

    import subprocess
    import sys

    subprocess.run(
        [
            sys.executable,
            "-m",
            "celery",
            "-A",
            "content_autopilot.worker",
            "worker",
            "--loglevel=info",
            "-Q",
            "autopilot",
        ],
        check=True,
    )


if __name__ == "__main__":
    app()
