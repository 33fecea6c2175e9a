"""Main CLI entry point for Watchpost."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from watchpost.errors import TelephonyError, WatchpostError
from watchpost.lifecycle import EmergencyDialer
from watchpost.models import (
    Evidence,
    Incident,
    IncidentDraft,
    IncidentType,
    Provenance,
    ReporterContact,
    Result,
    Role,
    Severity,
    VerificationStatus,
)

app = typer.Typer(
    name="watchpost",
    help="Watchpost - incident and evidence lifecycle client",
    add_completion=False,
)
console = Console()

T = TypeVar("T")

STATUS_STYLES = {
    VerificationStatus.VERIFIED: "green",
    VerificationStatus.TAMPERED: "bold red",
    VerificationStatus.FILE_MISSING: "yellow",
    VerificationStatus.NOT_REGISTERED: "dim",
    VerificationStatus.PENDING: "cyan",
}

SEVERITY_STYLES = {
    Severity.LOW: "green",
    Severity.MEDIUM: "yellow",
    Severity.HIGH: "red",
    Severity.CRITICAL: "bold red",
}


class ConsoleDialer(EmergencyDialer):
    """Hands a ``tel:`` link to the system's default handler."""

    async def dial(self, number: str) -> None:
        code = await asyncio.to_thread(typer.launch, f"tel:{number}")
        if code != 0:
            raise TelephonyError(f"No handler could open tel:{number}")


def _manager():
    from watchpost.manager import LifecycleManager

    return LifecycleManager()


def _run(coro: Awaitable[T]) -> T:
    try:
        return asyncio.run(coro)
    except WatchpostError as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise typer.Exit(1)


def _settled(result: Result, success_style: str = "green") -> Result:
    """Print a result's message and exit non-zero on failure."""
    if not result.success:
        console.print(f"[red]{result.message or 'Operation failed'}[/red]")
        if result.auth_expired:
            console.print("[yellow]Session expired. Run `watchpost login` again.[/yellow]")
        raise typer.Exit(1)
    if result.message:
        console.print(f"[{success_style}]{result.message}[/{success_style}]")
    return result


async def _in_dashboard(action: Callable):
    manager = _manager()
    if manager.sessions.active is None:
        console.print("[red]Not logged in. Run `watchpost login` first.[/red]")
        raise typer.Exit(1)
    async with manager.open_dashboard() as dashboard:
        return await action(dashboard)


# ----- Identity -----


@app.command()
def login(
    username: str = typer.Argument(..., help="Account username"),
    role: Role = typer.Option(Role.VIEWER, "--role", "-r", help="Role to sign in as"),
    password: str = typer.Option(..., prompt=True, hide_input=True),
):
    """Sign in and make the session for ROLE active."""
    manager = _manager()
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Signing in to {manager.base_url}...", total=None)
        result = _run(manager.login(username, password, role))

    _settled(result)
    resolved = _run(manager.whoami())
    if resolved.success:
        _print_profile(resolved.data)


@app.command()
def logout(
    role: Optional[Role] = typer.Option(None, "--role", "-r", help="Session to end (default: active)"),
):
    """End a session."""
    if _manager().logout(role):
        console.print("[green]Logged out[/green]")
    else:
        console.print("[yellow]No session to end[/yellow]")


@app.command()
def whoami():
    """Show the profile behind the active session."""
    result = _settled(_run(_manager().whoami()))
    _print_profile(result.data)


@app.command()
def register(
    username: str = typer.Argument(...),
    email: str = typer.Argument(...),
    role: Role = typer.Option(Role.VIEWER, "--role", "-r"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
):
    """Create an account."""
    _settled(_run(_manager().register(username, email, password, role)))


@app.command()
def profile(
    username: Optional[str] = typer.Option(None, "--username"),
    phone: Optional[str] = typer.Option(None, "--phone"),
):
    """Update your username or phone number."""
    fields = {"username": username, "phone": phone}
    result = _settled(_run(_manager().update_profile(fields)))
    _print_profile(result.data)


# ----- Incidents -----


@app.command()
def incidents(
    bucket: Optional[str] = typer.Option(
        None,
        "--bucket", "-b",
        help="Security only: reports, sos or assigned",
    ),
    summary: bool = typer.Option(False, "--summary", "-s", help="Show counters only"),
):
    """List the incidents visible to you."""

    async def action(dashboard):
        if summary:
            counts = dashboard.summary()
            table = Table(show_header=False, box=None)
            table.add_column("Metric", style="cyan")
            table.add_column("Value")
            table.add_row("Total", str(counts.total))
            table.add_row("Pending", str(counts.pending))
            table.add_row("Acknowledged", str(counts.acknowledged))
            console.print(table)
            return

        if bucket:
            buckets = dashboard.security_buckets()
            selected = {
                "reports": buckets.viewer_reports,
                "sos": buckets.sos_alerts,
                "assigned": buckets.assigned,
            }.get(bucket)
            if selected is None:
                console.print(f"[red]Unknown bucket: {bucket}[/red]")
                raise typer.Exit(1)
            _print_incidents(selected, title=bucket.capitalize())
        else:
            _print_incidents(dashboard.incidents())

    _run(_in_dashboard(action))


@app.command()
def acknowledge(incident_id: int = typer.Argument(..., help="Incident to acknowledge")):
    """Mark an incident as handled."""

    async def action(dashboard):
        return await dashboard.acknowledge(incident_id)

    _settled(_run(_in_dashboard(action)))


@app.command()
def report(
    description: str = typer.Argument(..., help="What happened"),
    incident_type: IncidentType = typer.Option(IncidentType.THEFT, "--type", "-t"),
    severity: Severity = typer.Option(Severity.MEDIUM, "--severity", "-s"),
    location: Optional[str] = typer.Option(None, "--location", "-l"),
    notes: Optional[str] = typer.Option(None, "--notes", "-n"),
    phone: Optional[str] = typer.Option(None, "--phone"),
    camera: Optional[int] = typer.Option(None, "--camera", "-c"),
    attachment: Optional[Path] = typer.Option(
        None,
        "--attach", "-a",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
):
    """Report an incident to security."""

    async def action(dashboard):
        draft = IncidentDraft(
            camera_id=camera,
            type=incident_type,
            severity=severity,
            description=description,
            provenance=Provenance.VIEWER_REPORT,
            reporter=ReporterContact.from_user(
                dashboard.actor,
                phone=phone,
                location=location,
                notes=notes,
            ),
        )
        return await dashboard.report(draft, attachment)

    result = _settled(_run(_in_dashboard(action)))
    console.print(f"Incident #{result.data.id} created")


@app.command()
def sos(
    message: str = typer.Argument("", help="Optional message for security"),
    phone: Optional[str] = typer.Option(None, "--phone"),
    location: Optional[str] = typer.Option(None, "--location", "-l"),
):
    """Send an emergency SOS alert."""

    async def action(dashboard):
        return await dashboard.trigger_sos(message, phone=phone, location=location)

    console.print(Panel.fit("[bold red]Sending SOS alert[/bold red]", border_style="red"))
    _settled(_run(_in_dashboard(action)), success_style="bold green")


@app.command()
def unseen(
    incident_id: int = typer.Argument(..., help="Incident you have not seen"),
    call: bool = typer.Option(True, "--call/--no-call", help="Dial the emergency contact"),
):
    """Escalate an incident you have NOT seen as an emergency."""

    async def action(dashboard):
        dialer = ConsoleDialer() if call else None
        return await dashboard.report_unseen(incident_id, dialer)

    _settled(_run(_in_dashboard(action)))


@app.command()
def assign(
    incident_ids: List[int] = typer.Argument(..., help="Incidents to assign"),
    to: Optional[int] = typer.Option(None, "--to", help="Security user id"),
):
    """Assign incidents to a security officer and notify them."""

    async def action(dashboard):
        if to is None:
            candidates = await dashboard.assignment_candidates()
            _settled(candidates)
            table = Table(title="Security Personnel")
            table.add_column("ID", style="cyan")
            table.add_column("Username")
            table.add_column("Phone")
            for user in candidates.data:
                table.add_row(str(user.id), user.username, user.phone or "-")
            console.print(table)
            console.print("[yellow]Pass --to <id> to assign[/yellow]")
            return None
        return await dashboard.assign(incident_ids, to)

    result = _run(_in_dashboard(action))
    if result is None:
        return
    if result.data and result.data.failed:
        for failure in result.data.failed:
            console.print(f"  [red]#{failure.incident_id}: {failure.reason}[/red]")
    _settled(result)


# ----- Evidence -----


@app.command()
def evidence():
    """List your evidence and its tamper-check status."""

    async def action(dashboard):
        return dashboard.evidence_items(), dashboard.manager.base_url

    items, base_url = _run(_in_dashboard(action))
    _print_evidence(items, base_url)


@app.command()
def verify(evidence_id: int = typer.Argument(..., help="Evidence to verify")):
    """Check an evidence file against its blockchain anchor."""

    async def action(dashboard):
        return await dashboard.verify(evidence_id)

    result = _run(_in_dashboard(action))
    if not result.success:
        _settled(result)

    outcome = result.data
    style = STATUS_STYLES.get(outcome.status, "white")
    lines = [f"[{style}]{outcome.status.value}[/{style}]"]
    if outcome.blockchain_hash:
        lines.append(f"Anchored: {outcome.blockchain_hash}")
    if outcome.current_hash:
        lines.append(f"Current:  {outcome.current_hash}")
    if outcome.message:
        lines.append(outcome.message)
    console.print(Panel("\n".join(lines), title=f"Evidence #{evidence_id}"))


# ----- Settings -----


@app.command("set-base-url")
def set_base_url(
    url: Optional[str] = typer.Argument(None, help="Backend URL; omit to clear the override"),
):
    """Point the client at another backend host."""
    manager = _manager()
    manager.set_base_url(url)
    console.print(f"[green]Using {manager.base_url}[/green]")


@app.command("set-emergency-contact")
def set_emergency_contact(
    number: Optional[str] = typer.Argument(None, help="Phone number; omit to clear"),
):
    """Number to call when escalating an unseen incident."""
    _manager().set_emergency_contact(number)
    console.print(f"[green]Emergency contact {'set' if number else 'cleared'}[/green]")


# ----- Live view -----


@app.command()
def watch():
    """Follow incidents as they arrive (Ctrl-C to stop)."""

    async def action(dashboard):
        _print_incidents(dashboard.incidents())
        interval = dashboard.manager.config.poll_interval_seconds
        shown = set(dashboard.new_incident_ids)
        while dashboard.identity.actor is not None:
            await asyncio.sleep(interval)
            visible = {i.id: i for i in dashboard.incidents()}
            fresh = [visible[i] for i in dashboard.new_incident_ids if i in visible and i not in shown]
            shown.update(dashboard.new_incident_ids)
            if fresh:
                _print_incidents(fresh, title="New incidents")
            for notice in dashboard.drain_notices():
                console.print(f"[green]{notice.message}[/green]")
        console.print("[yellow]Session ended[/yellow]")

    try:
        _run(_in_dashboard(action))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped[/dim]")


@app.command()
def version():
    """Show version information."""
    from watchpost import __version__

    console.print(f"Watchpost v{__version__}")


# ----- Rendering -----


def _print_profile(user):
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("ID", str(user.id))
    table.add_row("Username", user.username)
    table.add_row("Email", user.email or "-")
    table.add_row("Phone", user.phone or "-")
    table.add_row("Role", user.role.value)
    console.print(table)


def _newest_first(incident: Incident) -> datetime:
    # Backend timestamps may carry an offset; local defaults are naive UTC
    ts = incident.timestamp
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _print_incidents(items: list[Incident], title: str = "Incidents"):
    if not items:
        console.print("[dim]No incidents[/dim]")
        return

    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Type")
    table.add_column("Severity")
    table.add_column("Score", justify="right")
    table.add_column("Camera", justify="right")
    table.add_column("Source")
    table.add_column("Status")
    table.add_column("Time")

    for incident in sorted(items, key=_newest_first, reverse=True):
        style = SEVERITY_STYLES.get(incident.severity, "white")
        status = "[green]handled[/green]" if incident.acknowledged else "[yellow]pending[/yellow]"
        table.add_row(
            str(incident.id),
            incident.type_label,
            f"[{style}]{incident.severity.value}[/{style}]",
            str(incident.severity_score),
            str(incident.camera_id) if incident.camera_id is not None else "-",
            incident.provenance.value.replace("_", " "),
            status,
            incident.timestamp.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


def _print_evidence(items: list[Evidence], base_url: str):
    if not items:
        console.print("[dim]No evidence[/dim]")
        return

    table = Table(title="Evidence")
    table.add_column("ID", style="cyan")
    table.add_column("Incident", justify="right")
    table.add_column("Status")
    table.add_column("File")

    for item in items:
        status = item.display_status
        style = STATUS_STYLES.get(status, "white")
        table.add_row(
            str(item.id),
            str(item.incident_id),
            f"[{style}]{status.value}[/{style}]",
            item.file_url(base_url) or "-",
        )
    console.print(table)


if __name__ == "__main__":
    app()
