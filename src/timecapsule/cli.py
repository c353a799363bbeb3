"""
CLI entry point for Time Capsule.

This module provides the Typer-based command-line interface. All user
interactions flow through these commands.

Commands:
    init        Initialize the capsule store (ledger owner only)
    create      Encrypt a message and/or files into a new capsule
    count       Show how many capsules exist
    show        Show the public metadata and lock state of a capsule
    list        List capsules, optionally only those involving an address
    reveal      Print the raw ciphertext hex (empty unless unlocked and yours)
    open        Reveal and decrypt a capsule
    verify      Check the store's ledger invariants
    passphrase  Generate or check passphrases
    version     Show the installed version

Identity:
    --as names the local signing account. The CLI runs the ledger in-process,
    so whoever runs it vouches for that account, as a wallet would.

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to
    CapsuleService and CapsuleLedger.
"""

import json
import logging
import sys
import traceback
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from timecapsule import __version__
from timecapsule.blobstore import BlobStore, FileBlobStore, HttpBlobStore, IpfsGatewayStore
from timecapsule.codec import check_passphrase_strength, generate_passphrase
from timecapsule.errors import TimeCapsuleError
from timecapsule.ledger import CapsuleLedger, CapsuleStore, Clock, LocalLedgerClient, SystemClock
from timecapsule.report import (
    payload_dict,
    print_payload,
    print_status,
    print_status_table,
    status_dict,
    to_json,
)
from timecapsule.schema import Settings, load_settings
from timecapsule.service import Attachment, CapsuleService

DEFAULT_CONFIG = Path("timecapsule.yaml")

# Initialize Typer app with metadata
app = typer.Typer(
    name="timecapsule",
    help="Time-locked encrypted capsules on an append-only ledger.",
    add_completion=False,
    no_args_is_help=True,
)
passphrase_app = typer.Typer(help="Generate or check passphrases.", no_args_is_help=True)
app.add_typer(passphrase_app, name="passphrase")

# Rich console for formatted output
console = Console()

AsOption = Annotated[
    str,
    typer.Option("--as", help="Address of the local signing account."),
]
DbOption = Annotated[
    Optional[Path],
    typer.Option("--db", help="SQLite database path. Defaults to db_path from settings."),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output results in JSON format."),
]


def _make_clock() -> Clock:
    return SystemClock()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]timecapsule[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Settings YAML. Defaults to ./timecapsule.yaml when present.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    Time Capsule - seal a message today, open it later.

    Capsules are encrypted client-side with a passphrase and stored on an
    append-only ledger that reveals them only after their unlock time.
    """
    _configure_logging(verbose)
    try:
        if config is not None:
            settings = load_settings(config)
        elif DEFAULT_CONFIG.exists():
            settings = load_settings(DEFAULT_CONFIG)
        else:
            settings = Settings()
    except TimeCapsuleError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    ctx.obj = {"settings": settings, "debug": verbose}


# =============================================================================
# Helpers
# =============================================================================


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj["settings"]


def _open_ledger(ctx: typer.Context, db: Path | None) -> CapsuleLedger:
    settings = _settings(ctx)
    store = CapsuleStore(db or settings.db_path)
    return CapsuleLedger(store, owner=settings.owner, clock=_make_clock())


def _open_blobs(settings: Settings) -> BlobStore:
    if settings.blob_gateways:
        return HttpBlobStore(settings.blob_gateways, timeout_seconds=settings.http_timeout_seconds)
    return FileBlobStore(settings.blob_dir)


def _open_ipfs(settings: Settings) -> BlobStore | None:
    if not settings.ipfs_gateways:
        return None
    return IpfsGatewayStore(settings.ipfs_gateways, timeout_seconds=settings.http_timeout_seconds)


def _service(ctx: typer.Context, ledger: CapsuleLedger, account: str) -> CapsuleService:
    settings = _settings(ctx)
    return CapsuleService(
        LocalLedgerClient(ledger, account),
        blobs=_open_blobs(settings),
        clock=ledger.clock,
        kdf_iterations=settings.kdf_iterations,
        ipfs=_open_ipfs(settings),
    )


def _fail(ctx: typer.Context, error: Exception, json_output: bool) -> None:
    """Report an error and exit 1."""
    debug = ctx.obj.get("debug", False) if ctx.obj else False
    if json_output:
        if isinstance(error, TimeCapsuleError):
            output = {"error": True, **error.to_dict()}
        else:
            output = {"error": True, "error_type": type(error).__name__, "message": str(error)}
        if debug:
            output["traceback"] = traceback.format_exc()
        print(json.dumps(output, indent=2, default=str))
    else:
        console.print(f"[red]{error}[/red]")
        if debug:
            console.print(f"[dim]{traceback.format_exc()}[/dim]")
    raise typer.Exit(code=1)


# =============================================================================
# Ledger Commands
# =============================================================================


@app.command()
def init(
    ctx: typer.Context,
    account: AsOption,
    db: DbOption = None,
) -> None:
    """
    Initialize the capsule store. Only the configured owner may do this.

    Example:
        $ timecapsule init --as 0x1
    """
    try:
        ledger = _open_ledger(ctx, db)
        with ledger.store:
            LocalLedgerClient(ledger, account).init_storage()
    except (TimeCapsuleError, ValueError) as e:
        _fail(ctx, e, json_output=False)
    console.print(f"[green]✓[/green] Capsule store initialized for [bold]{account}[/bold]")


@app.command()
def create(
    ctx: typer.Context,
    receiver: Annotated[str, typer.Argument(help="Address allowed to open the capsule.")],
    account: AsOption,
    passphrase: Annotated[
        str,
        typer.Option(
            "--passphrase",
            "-p",
            prompt=True,
            hide_input=True,
            confirmation_prompt=True,
            help="Passphrase to share with the receiver out of band.",
        ),
    ],
    message: Annotated[
        str,
        typer.Option("--message", "-m", help="Message text."),
    ] = "",
    files: Annotated[
        Optional[list[Path]],
        typer.Option(
            "--file",
            "-f",
            help="File to attach (repeatable).",
            exists=True,
            dir_okay=False,
            readable=True,
            resolve_path=True,
        ),
    ] = None,
    unlock_in: Annotated[
        Optional[int],
        typer.Option("--unlock-in", help="Minutes from now until the capsule unlocks.", min=1),
    ] = None,
    unlock_at: Annotated[
        Optional[int],
        typer.Option("--unlock-at", help="Unlock time in epoch seconds."),
    ] = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Encrypt a message and/or files into a new capsule.

    Pass at most one of --unlock-in and --unlock-at; the default is one hour.

    Example:
        $ timecapsule create 0xb0b --as 0xa11ce -m "see you in a year" --unlock-in 525600
    """
    if unlock_in is not None and unlock_at is not None:
        _fail(ctx, ValueError("Pass only one of --unlock-in or --unlock-at"), json_output)
    if unlock_in is None and unlock_at is None:
        unlock_in = 60

    strength = check_passphrase_strength(passphrase)
    if not strength.is_valid and not json_output:
        console.print(f"[yellow]Warning: passphrase is {strength.label}[/yellow]")

    try:
        ledger = _open_ledger(ctx, db)
        with ledger.store, _service(ctx, ledger, account) as service:
            created = service.create(
                receiver,
                passphrase,
                text=message,
                attachments=[Attachment.from_path(f) for f in files or []],
                unlock_in=unlock_in * 60 if unlock_in is not None else None,
                unlock_time=unlock_at,
            )
    except (TimeCapsuleError, ValueError, OSError) as e:
        _fail(ctx, e, json_output)

    if json_output:
        print(to_json({
            "id": created.capsule_id,
            "sender": account,
            "receiver": receiver,
            "unlock_time": created.unlock_time,
            "content_type": created.content_type.value,
            "files": [f.model_dump() for f in created.files],
        }))
        return

    console.print(f"[green]✓[/green] Capsule [bold]#{created.capsule_id}[/bold] created")
    console.print(f"[dim]Content type: {created.content_type.value} | Files: {len(created.files)}[/dim]")
    console.print(f"[dim]Unlock time: {created.unlock_time}[/dim]")
    console.print("[dim]Share the passphrase with the receiver; it cannot be recovered.[/dim]")


@app.command()
def count(
    ctx: typer.Context,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show how many capsules exist."""
    try:
        ledger = _open_ledger(ctx, db)
        with ledger.store:
            total = ledger.get_capsules_len()
    except TimeCapsuleError as e:
        _fail(ctx, e, json_output)

    if json_output:
        print(to_json({"count": total}))
    else:
        console.print(f"Total capsules: [bold]{total}[/bold]")


@app.command()
def show(
    ctx: typer.Context,
    capsule_id: Annotated[int, typer.Argument(help="Capsule id.")],
    account: Annotated[
        str,
        typer.Option("--as", help="Account to evaluate access for."),
    ] = "0x0",
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show a capsule's public metadata and lock state."""
    try:
        ledger = _open_ledger(ctx, db)
        with ledger.store, _service(ctx, ledger, account) as service:
            status = service.status(capsule_id)
    except TimeCapsuleError as e:
        _fail(ctx, e, json_output)

    if json_output:
        print(to_json(status_dict(status)))
    else:
        print_status(console, status)


@app.command("list")
def list_capsules(
    ctx: typer.Context,
    address: Annotated[
        Optional[str],
        typer.Option("--address", help="Only capsules sent by or to this address."),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of capsules to show.", min=1),
    ] = 50,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """List capsules (metadata only)."""
    try:
        ledger = _open_ledger(ctx, db)
        with ledger.store, _service(ctx, ledger, address or "0x0") as service:
            if address:
                metas = ledger.capsules_for(address)[:limit]
            else:
                metas = ledger.list_capsules(limit=limit)
            statuses = [service.status(meta.id) for meta in metas]
    except TimeCapsuleError as e:
        _fail(ctx, e, json_output)

    if json_output:
        print(to_json([status_dict(s) for s in statuses]))
    elif not statuses:
        console.print("[dim]No capsules found.[/dim]")
    else:
        print_status_table(console, statuses)


@app.command()
def reveal(
    ctx: typer.Context,
    capsule_id: Annotated[int, typer.Argument(help="Capsule id.")],
    account: AsOption,
    db: DbOption = None,
) -> None:
    """
    Print the ciphertext hex. Prints an empty line unless the capsule is
    unlocked and the account is its sender or receiver.
    """
    try:
        ledger = _open_ledger(ctx, db)
        with ledger.store:
            hex_value = LocalLedgerClient(ledger, account).reveal_encrypted(capsule_id)
    except TimeCapsuleError as e:
        _fail(ctx, e, json_output=False)
    print(hex_value)


@app.command("open")
def open_capsule(
    ctx: typer.Context,
    capsule_id: Annotated[int, typer.Argument(help="Capsule id.")],
    account: AsOption,
    passphrase: Annotated[
        str,
        typer.Option("--passphrase", "-p", prompt=True, hide_input=True, help="Capsule passphrase."),
    ],
    save_dir: Annotated[
        Optional[Path],
        typer.Option(
            "--save-files",
            help="Directory to download attached files into.",
            file_okay=False,
            resolve_path=True,
        ),
    ] = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Reveal and decrypt a capsule."""
    try:
        ledger = _open_ledger(ctx, db)
        with ledger.store, _service(ctx, ledger, account) as service:
            payload = service.open(capsule_id, passphrase)
            saved = []
            if save_dir is not None:
                save_dir.mkdir(parents=True, exist_ok=True)
                for ref in payload.files:
                    target = save_dir / Path(ref.name).name
                    target.write_bytes(service.fetch_file(ref))
                    saved.append(str(target))
    except (TimeCapsuleError, OSError) as e:
        _fail(ctx, e, json_output)

    if json_output:
        print(to_json({**payload_dict(capsule_id, payload), "saved": saved}))
        return
    print_payload(console, capsule_id, payload)
    for path in saved:
        console.print(f"[dim]Saved {path}[/dim]")


@app.command()
def verify(
    ctx: typer.Context,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Check that ids are gapless, the counter matches and all ciphertext is hex."""
    try:
        ledger = _open_ledger(ctx, db)
        with ledger.store:
            result = ledger.store.ensure_integrity(ledger.owner)
    except TimeCapsuleError as e:
        _fail(ctx, e, json_output)

    if json_output:
        print(to_json(result))
    else:
        console.print(f"[green]✓ Integrity verified[/green] ({result['count']} capsules)")


@app.command("version")
def show_version() -> None:
    """Show the installed version."""
    console.print(f"[bold]timecapsule[/bold] version {__version__}")


# =============================================================================
# Passphrase Commands
# =============================================================================


@passphrase_app.command("generate")
def passphrase_generate(
    length: Annotated[int, typer.Option("--length", "-l", help="Passphrase length.", min=8)] = 16,
) -> None:
    """Generate a random passphrase."""
    print(generate_passphrase(length))


@passphrase_app.command("check")
def passphrase_check(
    passphrase: Annotated[
        str,
        typer.Option("--passphrase", "-p", prompt=True, hide_input=True, help="Passphrase to score."),
    ],
    json_output: JsonOption = False,
) -> None:
    """Score a passphrase."""
    strength = check_passphrase_strength(passphrase)
    if json_output:
        print(to_json({
            "score": strength.score,
            "is_valid": strength.is_valid,
            "label": strength.label,
            "suggestions": strength.suggestions,
        }))
    else:
        style = "green" if strength.is_valid else "yellow"
        console.print(f"Strength: [{style}]{strength.label}[/{style}] (score {strength.score})")
        for suggestion in strength.suggestions:
            console.print(f"  [dim]• {suggestion}[/dim]")
    if not strength.is_valid:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    sys.exit(app())
