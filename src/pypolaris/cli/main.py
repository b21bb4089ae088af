"""pypolaris command line entrypoint."""

from __future__ import annotations

import click

from pypolaris.cli.cdm.commands import cdm_group
from pypolaris.log.logger import DEFAULT_LOG_LEVEL_ENV, set_log_level_from_env, setup_logger


@click.group()
@click.option(
    "--log-level",
    "log_level",
    type=str,
    default=None,
    help=f"trace, debug, info, warn, error or fatal; defaults to ${DEFAULT_LOG_LEVEL_ENV} or warn",
)
def main(log_level: str | None) -> None:
    """Rubrik CDM bootstrap and registration tools."""
    try:
        if log_level:
            setup_logger(log_level)
        else:
            set_log_level_from_env()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc


main.add_command(cdm_group)
