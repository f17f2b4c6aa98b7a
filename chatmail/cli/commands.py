"""CLI command implementations — each command builds a session and drives the pipeline."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import click
from rich import box
from rich.console import Console
from rich.table import Table

from chatmail.agent.ingestion import IngestionCoordinator, hydrate_session
from chatmail.agent.sender import DEFAULT_SUBJECT, OptimisticSender
from chatmail.agent.session import SESSION_EXPIRED_MESSAGE, MailSession
from chatmail.agent.watcher import run_watcher
from chatmail.mail.gmail_client import AuthExpiredError, GmailAPIError, GmailClient, gmail_client
from chatmail.processing.analyzer import MessageClassifier
from chatmail.processing.batch import BatchClassifier
from chatmail.processing.types import OTHERS_FOLDER, REPLY_NEEDED_FOLDER
from chatmail.storage.db import StorageError

if TYPE_CHECKING:
    from chatmail.cli.main import AppContext

logger = logging.getLogger(__name__)
console = Console(width=200)


# ── Shared helpers ──────────────────────────────────────────────────────────────


async def _open_session(
    gmail: GmailClient, app: AppContext
) -> tuple[MailSession, IngestionCoordinator]:
    """Fetch the profile, start a session, and hydrate it from the local cache."""
    profile = await gmail.get_profile()
    try:
        app.db.set_profile(profile)
    except StorageError as exc:
        logger.warning("Could not persist profile: %s", exc)

    session = MailSession.start(profile, auto_refresh=app.config.auto_refresh)
    classifier = BatchClassifier(
        MessageClassifier(), app.db.classifications, batch_size=app.config.batch_size
    )
    coordinator = IngestionCoordinator(gmail, session, app.db, classifier, app.config)
    coordinator.hydrate()
    return session, coordinator


def _print_conversations(session: MailSession, limit: int | None = None) -> None:
    convs = sorted(
        session.conversations.values(),
        key=lambda c: c.last_message.internal_date if c.last_message else 0,
        reverse=True,
    )
    if limit is not None:
        convs = convs[:limit]

    if not convs:
        console.print("[yellow]No conversations yet.[/yellow]")
    else:
        table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
        table.add_column("#", style="dim", width=3)
        table.add_column("Person", max_width=24)
        table.add_column("Email", max_width=32)
        table.add_column("Last message", max_width=48)
        table.add_column("Unread", width=6)
        table.add_column("Action", max_width=32)
        table.add_column("Status", max_width=16)

        for i, conv in enumerate(convs, start=1):
            person = conv.person
            unread = f"[bold]{person.unread_count}[/bold]" if person.unread_count else "0"
            table.add_row(
                str(i),
                person.name or "",
                person.email,
                person.last_message_snippet,
                unread,
                f"[magenta]{person.action}[/magenta]" if person.action else "",
                person.status or "",
            )
        console.print(table)

    for folder_id in (REPLY_NEEDED_FOLDER, OTHERS_FOLDER):
        folder = session.special_folders[folder_id]
        console.print(
            f"  [bold]{folder.name}[/bold] ({folder.count}) "
            f"[dim]{folder.last_message_snippet}[/dim]"
        )


# ── chatmail refresh ────────────────────────────────────────────────────────────


@click.command()
@click.option(
    "--pages",
    default=1,
    show_default=True,
    type=click.IntRange(min=1),
    help="Number of listing pages to ingest.",
)
@click.pass_obj
def refresh(app: AppContext, pages: int) -> None:
    """Fetch new mail, classify it, and show the conversation list."""
    asyncio.run(_refresh_async(app, pages))


async def _refresh_async(app: AppContext, pages: int) -> None:
    try:
        async with gmail_client() as gmail:
            session, coordinator = await _open_session(gmail, app)
            with console.status("Refreshing messages..."):
                ok = await coordinator.refresh()
                loaded = 1
                while ok and loaded < pages and await coordinator.load_more():
                    loaded += 1
    except AuthExpiredError as exc:
        console.print(f"[red]{SESSION_EXPIRED_MESSAGE}[/red] [dim]({exc})[/dim]")
        return
    except GmailAPIError as exc:
        console.print(f"[red]Gmail request failed: {exc}[/red]")
        return

    if not ok:
        console.print(f"[red]{session.last_error or 'Refresh failed'}[/red]")
        return
    _print_conversations(session)


# ── chatmail conversations ──────────────────────────────────────────────────────


@click.command()
@click.option("--limit", default=20, show_default=True, help="Conversations to show.")
@click.pass_obj
def conversations(app: AppContext, limit: int) -> None:
    """Show conversations from the local cache without contacting Gmail."""
    try:
        profile = app.db.get_profile()
    except StorageError as exc:
        console.print(f"[red]Could not read local cache: {exc}[/red]")
        return
    if profile is None:
        console.print(
            "[yellow]No mailbox cached yet. "
            "Run `chatmail refresh` to get started.[/yellow]"
        )
        return

    session = MailSession.start(profile)
    loaded = hydrate_session(session, app.db, app.config)
    console.print(f"[dim]{profile.email} — {loaded} cached message(s)[/dim]")
    _print_conversations(session, limit)


# ── chatmail send ───────────────────────────────────────────────────────────────


@click.command()
@click.argument("to")
@click.argument("body")
@click.option("--subject", default=DEFAULT_SUBJECT, show_default=True, help="Subject line.")
@click.pass_obj
def send(app: AppContext, to: str, body: str, subject: str) -> None:
    """Send BODY to TO, then refresh to confirm delivery."""
    asyncio.run(_send_async(app, to, body, subject))


async def _send_async(app: AppContext, to: str, body: str, subject: str) -> None:
    try:
        async with gmail_client() as gmail:
            session, coordinator = await _open_session(gmail, app)
            sender = OptimisticSender(
                gmail, session, coordinator, reconcile_delay=app.config.reconcile_delay_seconds
            )
            result = await sender.send_message(to, body, subject=subject)
            if not result.ok:
                console.print(f"[red]Send failed: {result.error}[/red]")
                return
            console.print(f"[green]Sent to {to}.[/green]")
            with console.status("Waiting for Gmail to confirm..."):
                await sender.wait_for_reconciliation()
    except AuthExpiredError as exc:
        console.print(f"[red]{SESSION_EXPIRED_MESSAGE}[/red] [dim]({exc})[/dim]")
        return
    except GmailAPIError as exc:
        console.print(f"[red]Gmail request failed: {exc}[/red]")
        return

    pending = any(
        result.message_id in conv.message_ids() for conv in session.conversations.values()
    )
    if pending:
        console.print(
            "[dim]Gmail has not listed the sent copy yet; "
            "it will appear on the next refresh.[/dim]"
        )
    else:
        console.print("[dim]Confirmed by Gmail.[/dim]")


# ── chatmail watch ──────────────────────────────────────────────────────────────


@click.command()
@click.pass_obj
def watch(app: AppContext) -> None:
    """Keep refreshing in the foreground until interrupted.

    Auto-refresh is always on here, whatever CHATMAIL_AUTO_REFRESH says;
    the interval comes from CHATMAIL_REFRESH_INTERVAL_SECONDS.
    """
    logging.getLogger().setLevel(logging.INFO)
    try:
        asyncio.run(run_watcher(app.config, app.db))
    except KeyboardInterrupt:
        console.print("Interrupted — goodbye")


# ── chatmail clear-cache ────────────────────────────────────────────────────────


@click.command("clear-cache")
@click.confirmation_option(prompt="Delete all cached messages and classifications?")
@click.pass_obj
def clear_cache(app: AppContext) -> None:
    """Delete every cached message, classification, and sync marker."""
    try:
        app.db.clear_all()
    except StorageError as exc:
        console.print(f"[red]Could not clear cache: {exc}[/red]")
        return
    console.print("[green]Local cache cleared.[/green]")
