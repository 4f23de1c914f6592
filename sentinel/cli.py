"""Sentinel CLI — trend scans, early warnings, escalation rules and response lanes."""

import json
import time
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from sentinel import __version__

console = Console()

SEVERITY_STYLE = {"critical": "bold red", "high": "red", "medium": "yellow", "low": "green"}


def _services(ctx: click.Context):
    from sentinel.config import Settings, configure_logging
    from sentinel.services import build_services

    if "services" not in ctx.obj:
        settings = Settings.from_env()
        if ctx.obj.get("data_dir"):
            settings.data_dir = Path(ctx.obj["data_dir"]).expanduser()
        configure_logging(settings.log_level)
        ctx.obj["services"] = build_services(settings)
    return ctx.obj["services"]


def _severity(value: str) -> str:
    return f"[{SEVERITY_STYLE.get(value, 'white')}]{value}[/]"


@click.group()
@click.version_option(version=__version__)
@click.option("--data-dir", default=None, help="Data directory (default: $SENTINEL_DATA_DIR or ~/.sentinel)")
@click.pass_context
def main(ctx: click.Context, data_dir: str | None):
    """Sentinel — harmful-trend detection and automated moderation response.

    Scans collected content for emerging harmful trends, raises early
    warnings, and routes flagged content through escalation rules into
    automated actions and human-review lanes.
    """
    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = data_dir


# ── Content ──────────────────────────────────────────────────────────


@main.group()
def content():
    """Load collected content into the store."""


@content.command(name="import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_content(ctx: click.Context, file: str):
    """Import a JSON list of content records.

    Records may use snake_case or camelCase keys. A record without a
    platform and platform id is skipped; one matching an already stored
    (platform, platform id) pair refreshes that item.
    """
    from sentinel.models.content import Content

    services = _services(ctx)
    records = json.loads(Path(file).read_text(encoding="utf-8"))
    if isinstance(records, dict):
        records = [records]

    before = services.store.count()
    saved, skipped = 0, 0
    for index, record in enumerate(records):
        try:
            services.store.save(Content.from_record(record))
        except (ValueError, TypeError) as e:
            console.print(f"  [yellow]Skipped record {index}:[/] {e}")
            skipped += 1
            continue
        saved += 1
    added = services.store.count() - before

    console.print(f"  Imported {saved} content records ({added} new, {saved - added} updated)")
    if skipped:
        console.print(f"  [yellow]{skipped} records skipped[/]")
        if not saved:
            raise SystemExit(1)


# ── Trends ───────────────────────────────────────────────────────────


@main.group()
def trends():
    """Detect and inspect emerging trends."""


@trends.command()
@click.option("--lookback", default=None, type=float, help="Lookback window in hours")
@click.pass_context
def scan(ctx: click.Context, lookback: float | None):
    """Run one trend analysis cycle now."""
    services = _services(ctx)
    console.print("\n[bold blue]Sentinel[/] — Scanning for emerging trends\n")

    report = services.cycle.run(lookback_hours=lookback)
    if report.skipped:
        console.print("[yellow]A scan is already running; skipped.[/]")
        return
    if not report.trends:
        console.print("[yellow]No emerging trends detected.[/]")
        return

    _print_trends(report.trends)
    if report.warnings:
        console.print(f"\n[red]{report.warning_count} early warnings raised[/]")
    if report.failed:
        console.print(f"[yellow]Could not record {len(report.failed)} trends; see the log for details.[/]")


@trends.command(name="list")
@click.option("--limit", default=20, help="Maximum trends to show")
@click.pass_context
def list_trends(ctx: click.Context, limit: int):
    """List active trends, highest ranked first."""
    services = _services(ctx)
    active = services.ledger.active_trends(limit=limit)
    if not active:
        console.print("[yellow]No active trends.[/]")
        return
    _print_trends(active)


@trends.command()
@click.pass_context
def schedule(ctx: click.Context):
    """Run trend analysis periodically and work the response lanes until interrupted."""
    services = _services(ctx)
    scheduler = services.scheduler()
    scheduler.start()
    services.orchestrator.start()
    console.print(
        f"[bold blue]Sentinel[/] — analysing every {services.settings.aggregation_interval_minutes} "
        "minutes (Ctrl+C to stop)"
    )
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\nStopping...")
    finally:
        scheduler.shutdown()
        services.orchestrator.stop()


def _print_trends(items) -> None:
    table = Table(title=f"Trends ({len(items)})")
    table.add_column("ID", style="dim")
    table.add_column("Signals", style="cyan")
    table.add_column("Risk")
    table.add_column("Harm", justify="right")
    table.add_column("Virality", justify="right")
    table.add_column("Growth/h", justify="right")
    table.add_column("Items", justify="right")
    table.add_column("Platforms")
    for t in items:
        signals = ", ".join([f"#{h}" for h in t.hashtags] + t.keywords)
        table.add_row(
            t.id,
            signals[:40],
            _severity(t.risk_level.value),
            f"{t.harmfulness_score:.2f}",
            f"{t.virality_score:.2f}",
            f"{t.growth_rate:.1f}",
            str(t.content_count),
            ", ".join(t.platforms),
        )
    console.print(table)


# ── Warnings ─────────────────────────────────────────────────────────


@main.group()
def warnings():
    """Inspect and acknowledge early warnings."""


@warnings.command(name="list")
@click.option("--severity", type=click.Choice(["low", "medium", "high", "critical"]), default=None)
@click.option("--limit", default=20)
@click.pass_context
def list_warnings(ctx: click.Context, severity: str | None, limit: int):
    """List early warnings, newest first."""
    services = _services(ctx)
    items = services.ledger.list_warnings(severity, limit=limit)
    if not items:
        console.print("[yellow]No early warnings.[/]")
        return

    table = Table(title=f"Early Warnings ({len(items)})")
    table.add_column("ID", style="dim")
    table.add_column("Severity")
    table.add_column("Title", style="cyan")
    table.add_column("Created")
    for w in items:
        table.add_row(w.id, _severity(w.severity.value), w.title[:60], w.created_at[:19])
    console.print(table)


@warnings.command(name="ack")
@click.argument("warning_id")
@click.option("--by", "actor", required=True, help="Who is acknowledging")
@click.option("--comment", default="", help="Optional comment")
@click.pass_context
def ack_warning(ctx: click.Context, warning_id: str, actor: str, comment: str):
    """Acknowledge an early warning."""
    services = _services(ctx)
    ack = services.ledger.acknowledge(warning_id, actor, comment)
    if ack is None:
        console.print(f"[red]Warning not found:[/] {warning_id}")
        raise SystemExit(1)
    console.print(f"  [green]v[/] {warning_id} acknowledged by {actor}")


# ── Rules ────────────────────────────────────────────────────────────


@main.group()
def rules():
    """Manage escalation rules."""


@rules.command(name="list")
@click.pass_context
def list_rules(ctx: click.Context):
    """List escalation rules, highest priority first."""
    services = _services(ctx)
    items = sorted(services.rule_store.rules(), key=lambda r: r.priority, reverse=True)
    if not items:
        console.print("[yellow]No escalation rules.[/]")
        return

    table = Table(title=f"Escalation Rules ({len(items)})")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Priority", justify="right")
    table.add_column("Enabled", justify="center")
    table.add_column("Actions")
    for r in items:
        enabled = "[green]Y[/]" if r.enabled else "[red]N[/]"
        actions = ", ".join(f"{a.type.value}:{a.severity.value}" for a in r.actions)
        table.add_row(r.id, r.name, str(r.priority), enabled, actions)
    console.print(table)


@rules.command(name="import")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_rules(ctx: click.Context, file: str):
    """Replace all escalation rules with those in a YAML FILE."""
    from sentinel.errors import RuleValidationError

    services = _services(ctx)
    try:
        stored = services.rule_store.import_file(file)
    except (RuleValidationError, ValueError) as e:
        console.print(f"  [red]Invalid rule file:[/] {e}")
        raise SystemExit(1)
    console.print(f"  [green]v[/] Imported {len(stored)} escalation rules")


@rules.command(name="toggle")
@click.argument("rule_id")
@click.option("--enable/--disable", default=True)
@click.pass_context
def toggle_rule(ctx: click.Context, rule_id: str, enable: bool):
    """Enable or disable an escalation rule."""
    services = _services(ctx)
    if services.rule_store.toggle_rule(rule_id, enable) is None:
        console.print(f"[red]Rule not found:[/] {rule_id}")
        raise SystemExit(1)
    state = "enabled" if enable else "disabled"
    console.print(f"  {rule_id} {state}")


@rules.command(name="delete")
@click.argument("rule_id")
@click.pass_context
def delete_rule(ctx: click.Context, rule_id: str):
    """Delete an escalation rule."""
    services = _services(ctx)
    if not services.rule_store.delete_rule(rule_id):
        console.print(f"[red]Rule not found:[/] {rule_id}")
        raise SystemExit(1)
    console.print(f"  [green]v[/] Deleted {rule_id}")


# ── Response ─────────────────────────────────────────────────────────


@main.command()
@click.argument("content_id")
@click.option("--score", type=float, required=True, help="Harmfulness score (0-1)")
@click.option("--category", "-c", multiple=True, required=True, help="Detected category")
@click.option("--confidence", type=float, default=1.0)
@click.option("--wait/--no-wait", default=True, help="Run the response lanes until the job finishes")
@click.pass_context
def respond(ctx: click.Context, content_id: str, score: float, category: tuple, confidence: float, wait: bool):
    """Attach a detection to CONTENT_ID and queue its automated response."""
    from sentinel.errors import ContentNotFoundError
    from sentinel.jobs.queue import JobState
    from sentinel.models.content import DetectionResult

    services = _services(ctx)
    orchestrator = services.orchestrator
    try:
        detection = DetectionResult(score, list(category), confidence, flagged=True)
        services.store.attach_detection(content_id, detection)
    except (ValueError, ContentNotFoundError) as e:
        console.print(f"[red]{e}[/]")
        raise SystemExit(1)

    job = orchestrator.process_content(content_id, detection)
    console.print(f"  Queued response job {job.id} ({job.data['urgency']} urgency)")
    if not wait:
        return

    deadline = time.monotonic() + services.settings.response_batch_delay_seconds + 10
    while job.state not in (JobState.COMPLETED, JobState.FAILED) and time.monotonic() < deadline:
        if not orchestrator.drain():
            time.sleep(0.1)
    orchestrator.drain()

    if job.state == JobState.FAILED:
        console.print(f"[red]Response failed:[/] {job.failed_reason}")
        raise SystemExit(1)
    entries = services.response_log.entries(content_id=content_id, limit=1)
    if entries:
        for action in entries[0].actions:
            console.print(f"  {_severity(action['severity'])} {action['type']}: {action['reason']}")
    else:
        console.print("[yellow]Response still pending.[/]")


# ── Queues ───────────────────────────────────────────────────────────


@main.group()
def queues():
    """Inspect the job lanes."""


@queues.command(name="stats")
@click.pass_context
def queue_stats(ctx: click.Context):
    """Show job counts per lane and state."""
    services = _services(ctx)
    stats = services.orchestrator.queue_stats()

    table = Table(title="Job Lanes")
    table.add_column("Lane", style="cyan")
    for state in ("waiting", "delayed", "active", "completed", "failed"):
        table.add_column(state.capitalize(), justify="right")
    for lane, counts in stats.items():
        table.add_row(lane, *(str(counts[s]) for s in ("waiting", "delayed", "active", "completed", "failed")))
    console.print(table)


def _lane(services, lane: str):
    try:
        return services.orchestrator.lane(lane)
    except KeyError:
        console.print(f"[red]Unknown job lane:[/] {lane}")
        raise SystemExit(1)


@queues.command(name="failed")
@click.argument("lane")
@click.pass_context
def failed_jobs(ctx: click.Context, lane: str):
    """List jobs in LANE that ran out of attempts."""
    services = _services(ctx)
    jobs = _lane(services, lane).failed_jobs()
    if not jobs:
        console.print(f"[green]No failed jobs in {lane}.[/]")
        return

    table = Table(title=f"Failed {lane} jobs ({len(jobs)})")
    table.add_column("Job", style="cyan")
    table.add_column("Attempts", justify="right")
    table.add_column("Reason")
    for job in jobs:
        table.add_row(job.id, f"{job.attempts_made}/{job.max_attempts}", job.failed_reason[:60])
    console.print(table)


@queues.command(name="retry")
@click.argument("lane")
@click.argument("job_id")
@click.pass_context
def retry_job(ctx: click.Context, lane: str, job_id: str):
    """Put failed JOB_ID in LANE back in line."""
    services = _services(ctx)
    if _lane(services, lane).retry_failed(job_id) is None:
        console.print(f"[red]No failed job {job_id} in {lane}[/]")
        raise SystemExit(1)
    console.print(f"  [green]v[/] {job_id} re-queued")


# ── Review ───────────────────────────────────────────────────────────


@main.group()
def review():
    """Human-review lanes."""


@review.command(name="list")
@click.argument("severity", type=click.Choice(["critical", "high", "medium", "low"]))
@click.option("--limit", default=50)
@click.pass_context
def list_review(ctx: click.Context, severity: str, limit: int):
    """List content waiting for review in a SEVERITY lane."""
    services = _services(ctx)
    entries = services.review_lanes.list(severity, limit=limit)
    if not entries:
        console.print(f"[yellow]The {severity} review lane is empty.[/]")
        return

    table = Table(title=f"{severity.capitalize()} review ({len(entries)})")
    table.add_column("Content", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Categories")
    table.add_column("Reason")
    for e in entries:
        table.add_row(e.content_id, f"{e.harmfulness_score:.2f}", ", ".join(e.categories), e.reason[:60])
    console.print(table)


@review.command(name="claim")
@click.argument("severity", type=click.Choice(["critical", "high", "medium", "low"]))
@click.pass_context
def claim_review(ctx: click.Context, severity: str):
    """Take the oldest entry off a SEVERITY lane."""
    services = _services(ctx)
    entry = services.review_lanes.claim(severity)
    if entry is None:
        console.print(f"[yellow]The {severity} review lane is empty.[/]")
        raise SystemExit(1)
    console.print(f"  Claimed {entry.content_id} ({_severity(entry.severity)})")
    console.print(f"  Score {entry.harmfulness_score:.2f}, categories: {', '.join(entry.categories) or '-'}")
    if entry.reason:
        console.print(f"  Reason: {entry.reason}")


# ── Overview ─────────────────────────────────────────────────────────


@main.command()
@click.pass_context
def overview(ctx: click.Context):
    """Show content volume, trends, warnings and lane depths."""
    services = _services(ctx)
    stats = services.overview()

    table = Table(title="Sentinel Overview", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Content stored", str(stats["content_total"]))
    table.add_row("Collected (24h)", str(stats["content_last_24h"]))
    table.add_row("Flagged (24h)", str(stats["flagged_last_24h"]))
    table.add_row("Active trends", str(stats["active_trends"]))
    table.add_row("Live warnings", str(stats["warnings"]["total"]))
    table.add_row("Rules version", str(stats["rules_version"]))
    for platform, count in sorted(stats["platforms"].items()):
        table.add_row(f"  {platform}", str(count))
    for severity, size in stats["review"].items():
        table.add_row(f"Review: {severity}", str(size))
    console.print(table)


if __name__ == "__main__":
    main()
