"""
atomic CLI — `atomic` command.

Commands:
  atomic run                Start the bot and keep it connected
  atomic session inspect    Summarize a session blob
  atomic session check      Exit 0 if a session blob is registered, 1 otherwise
  atomic session export     Print the blob stored by the file sink
"""

import asyncio
import logging

try:
    import click
    from rich.console import Console
except ImportError:
    raise SystemExit("CLI requires extras: pip install atomic-bot[cli]")

from pydantic import ValidationError

from atomic_bot.errors import ConfigurationError
from atomic_bot.settings import Settings

console = Console(stderr=True)
logger = logging.getLogger("atomic_bot.cli")

EXIT_CONFIG_ERROR = 1


def _load_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as e:
        console.print(f"[red]Invalid settings:[/red] {e}")
        raise SystemExit(EXIT_CONFIG_ERROR)


@click.group()
@click.version_option("0.1.0")
def main():
    """atomic — persistent multi-device messaging session."""


@main.command("run")
@click.option("--handler", "handlers", multiple=True, metavar="MODULE:CALLABLE",
              help="Collaborator factory, called once with the bot. Repeatable.")
@click.option("--log-level", default=None, help="Overrides LOG_LEVEL")
@click.option("--log-format", type=click.Choice(["rich", "json"]), default=None, help="Overrides LOG_FORMAT")
def run_cmd(handlers: tuple[str, ...], log_level: str, log_format: str):
    """Connect, pair if needed, and stay connected until logged out."""
    from atomic_bot.client import AtomicBot, load_object
    from atomic_bot.logging_setup import setup_logging

    settings = _load_settings()
    setup_logging(log_level or settings.log_level, log_format or settings.log_format)

    async def _run() -> int:
        try:
            bot = AtomicBot(settings)
            for path in handlers:
                load_object(path)(bot)
        except ConfigurationError as e:
            logger.error(f"ERROR: {e}")
            return EXIT_CONFIG_ERROR
        return await bot.run()

    raise SystemExit(asyncio.run(_run()))


# Register subcommands from separate modules
from atomic_bot.cli.session import session

main.add_command(session)


if __name__ == "__main__":
    main()
