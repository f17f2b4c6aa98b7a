"""CLI entry point for the chatmail pipeline."""

import logging
from dataclasses import dataclass

import click
from dotenv import load_dotenv

from chatmail.config import PipelineConfig
from chatmail.storage.db import MailDatabase

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Objects shared by every command invocation."""

    config: PipelineConfig
    db: MailDatabase

    def close(self) -> None:
        self.db.close()


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Chat-style Gmail — refresh, browse conversations, send, and watch."""
    load_dotenv()
    logging.basicConfig(
        level=logging.WARNING,  # keep CLI output clean; errors still surface
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    config = PipelineConfig.from_env()
    ctx.obj = AppContext(config=config, db=MailDatabase(db_path=config.db_path))
    ctx.call_on_close(ctx.obj.close)


# Import and register commands after cli is defined to avoid circular imports.
from chatmail.cli.commands import clear_cache, conversations, refresh, send, watch  # noqa: E402

cli.add_command(refresh)
cli.add_command(conversations)
cli.add_command(send)
cli.add_command(watch)
cli.add_command(clear_cache)
