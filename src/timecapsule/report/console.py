"""
Console output for Time Capsule.

Renders capsule status tables and opened payloads with Rich.
"""

from datetime import datetime

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from timecapsule.schema import DecryptedPayload
from timecapsule.service import CapsuleStatus

# Status icons
ICON_UNLOCKED = "[green]🔓[/green]"
ICON_LOCKED = "[yellow]🔒[/yellow]"
ICON_FOREIGN = "[dim]⊘[/dim]"


def format_address(address: str, prefix: int = 6, suffix: int = 4) -> str:
    """Shorten an address for display (0x1234...abcd)."""
    if len(address) <= prefix + suffix + 3:
        return address
    return f"{address[:prefix]}...{address[-suffix:]}"


def format_duration(seconds: int) -> str:
    """Human-friendly duration such as 1d 2h 3m or 45s."""
    if seconds <= 0:
        return "now"
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


def _status_icon(status: CapsuleStatus) -> str:
    if not status.is_authorized:
        return ICON_FOREIGN
    return ICON_UNLOCKED if status.is_unlocked else ICON_LOCKED


def print_status(console: Console, status: CapsuleStatus) -> None:
    """Print one capsule's status panel."""
    meta = status.meta
    unlock_at = datetime.fromtimestamp(meta.unlock_time).strftime("%Y-%m-%d %H:%M:%S")
    if status.is_unlocked:
        state = "[green]unlocked[/green]"
    else:
        state = f"[yellow]locked[/yellow] ({format_duration(status.seconds_remaining)} left)"
    access = "[green]yes[/green]" if status.is_authorized else "[red]no[/red]"

    lines = [
        f"[bold]Sender:[/bold]       {meta.sender}",
        f"[bold]Receiver:[/bold]     {meta.receiver}",
        f"[bold]Content:[/bold]      {meta.content_type}",
        f"[bold]Unlocks at:[/bold]   {unlock_at}",
        f"[bold]Status:[/bold]       {state}",
        f"[bold]You can open:[/bold] {access if status.is_unlocked else '[dim]after unlock[/dim]'}",
    ]
    console.print(
        Panel(
            "\n".join(lines),
            title=f"{_status_icon(status)} Capsule #{meta.id}",
            expand=False,
        )
    )


def print_status_table(console: Console, statuses: list[CapsuleStatus]) -> None:
    """Print a table of capsules."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("#", style="dim", width=5)
    table.add_column("", width=2)
    table.add_column("Sender", style="cyan")
    table.add_column("Receiver", style="cyan")
    table.add_column("Content")
    table.add_column("Unlocks")

    for status in statuses:
        meta = status.meta
        unlocks = "unlocked" if status.is_unlocked else f"in {format_duration(status.seconds_remaining)}"
        table.add_row(
            str(meta.id),
            _status_icon(status),
            format_address(meta.sender),
            format_address(meta.receiver),
            meta.content_type,
            unlocks,
        )
    console.print(table)


def print_payload(console: Console, capsule_id: int, payload: DecryptedPayload) -> None:
    """Print an opened capsule."""
    console.print(f"[green]✓[/green] Capsule [bold]#{capsule_id}[/bold] opened")
    console.print()
    if payload.text:
        console.print(Panel(payload.text, title="Message", expand=False))
    if payload.files:
        table = Table(show_header=True, header_style="bold", title=f"Files ({len(payload.files)})")
        table.add_column("Name", style="cyan")
        table.add_column("Type")
        table.add_column("Size", justify="right")
        table.add_column("Locator", style="dim")
        for ref in payload.files:
            table.add_row(ref.name, ref.type, f"{ref.size:,}", format_address(ref.locator, 10, 6))
        console.print(table)
    if payload.timestamp:
        created = datetime.fromtimestamp(payload.timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
        console.print(f"[dim]Created: {created}[/dim]")
