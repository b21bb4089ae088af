"""CDM CLI commands."""

from __future__ import annotations

from contextlib import contextmanager
import json
from typing import Any, Callable, Dict, Iterator

import click

from pypolaris.cdm.cdm import CDM, CDMOptions
from pypolaris.cdm.config import cluster_config_from_dict, settings_from_dict
from pypolaris.core.context import Context
from pypolaris.core.errors import PolarisError
from pypolaris.utils.load_config import load_config_by_file


def _load_config(config_path: str | None, jsonfile: str | None) -> Dict[str, Any]:
    """Load the config file, or return an empty config when no path is given.

    Args:
        config_path: Config file path.
        jsonfile: JSON side file for ``jsonfile,`` placeholders.

    Returns:
        dict[str, Any]: Loaded config.
    """
    if not config_path:
        return {}
    try:
        return load_config_by_file(config_path, jsonfile=jsonfile)
    except (OSError, ValueError) as exc:
        raise click.ClickException(f"failed to load config {config_path}: {exc}") from exc


def _build_cdm(config: Dict[str, Any]) -> CDM:
    """Build the CDM facade from the ``[cdm]`` table or the environment.

    Args:
        config: Loaded config.

    Returns:
        CDM: Connected facade.
    """
    try:
        if "cdm" in config:
            settings = settings_from_dict(config)
            return CDM(
                settings.node_ip,
                username=settings.username,
                password=settings.password,
                token=settings.token,
                options=CDMOptions(
                    timeout_s=settings.timeout_s,
                    allow_insecure_tls=settings.allow_insecure_tls,
                ),
            )
        return CDM.from_env()
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc


@contextmanager
def _command_context() -> Iterator[Context]:
    """Yield a cancelable context, mapping SDK errors to click errors.

    Ctrl-C cancels the context before aborting.
    """
    ctx = Context.background().with_cancel()
    try:
        yield ctx
    except KeyboardInterrupt:
        ctx.cancel()
        raise click.Abort() from None
    except PolarisError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        ctx.cancel()


def _poll_kwargs(timeout: float | None, wait_time: float | None) -> Dict[str, float]:
    kwargs: Dict[str, float] = {}
    if timeout is not None:
        kwargs["timeout"] = timeout
    if wait_time is not None:
        kwargs["wait_time"] = wait_time
    return kwargs


def _connection_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    fn = click.option(
        "--jsonfile",
        "jsonfile",
        type=click.Path(dir_okay=False),
        default=None,
        help="JSON file used to resolve jsonfile, placeholders",
    )(fn)
    fn = click.option(
        "--config",
        "config_path",
        type=click.Path(exists=True, dir_okay=False),
        default=None,
        help="Config file path (toml/json); falls back to RUBRIK_CDM_* env vars",
    )(fn)
    return fn


def _poll_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    fn = click.option(
        "--wait-time",
        "wait_time",
        type=click.FloatRange(min=0, min_open=True),
        default=None,
        help="Seconds between status requests",
    )(fn)
    fn = click.option(
        "--timeout",
        "timeout",
        type=click.FloatRange(min=0, min_open=True),
        default=None,
        help="Seconds an unresponsive cluster is tolerated",
    )(fn)
    return fn


@click.group("cdm")
def cdm_group() -> None:
    """CDM cluster commands."""


@cdm_group.command("status")
@_connection_options
@_poll_options
def status_command(
    config_path: str | None,
    jsonfile: str | None,
    timeout: float | None,
    wait_time: float | None,
) -> None:
    """Print whether the cluster is bootstrapped."""
    config = _load_config(config_path, jsonfile)
    with _command_context() as ctx:
        cdm = _build_cdm(config)
        bootstrapped = cdm.bootstrap.is_bootstrapped(ctx, **_poll_kwargs(timeout, wait_time))
    click.echo(f"bootstrapped: {'true' if bootstrapped else 'false'}")


@cdm_group.command("bootstrap")
@_connection_options
@_poll_options
@click.option("--wait/--no-wait", "wait", default=False, help="Block until the bootstrap finishes")
def bootstrap_command(
    config_path: str | None,
    jsonfile: str | None,
    timeout: float | None,
    wait_time: float | None,
    wait: bool,
) -> None:
    """Bootstrap a cluster from the [cluster] table of the config file."""
    if not config_path:
        raise click.UsageError("--config is required for bootstrap")
    config = _load_config(config_path, jsonfile)
    poll_kwargs = _poll_kwargs(timeout, wait_time)

    with _command_context() as ctx:
        cluster_config = cluster_config_from_dict(config)
        cdm = _build_cdm(config)
        request_id = cdm.bootstrap.bootstrap_cluster(ctx, cluster_config, **poll_kwargs)
        click.echo(f"request_id: {request_id}")
        if wait:
            cdm.bootstrap.wait_for_bootstrap(ctx, request_id, **poll_kwargs)
            click.echo("bootstrap finished")


@cdm_group.command("wait")
@click.option("--request-id", "request_id", type=int, required=True, help="Bootstrap request id")
@_connection_options
@_poll_options
def wait_command(
    request_id: int,
    config_path: str | None,
    jsonfile: str | None,
    timeout: float | None,
    wait_time: float | None,
) -> None:
    """Wait for a bootstrap request to finish."""
    config = _load_config(config_path, jsonfile)
    with _command_context() as ctx:
        cdm = _build_cdm(config)
        cdm.bootstrap.wait_for_bootstrap(ctx, request_id, **_poll_kwargs(timeout, wait_time))
    click.echo("bootstrap finished")


@cdm_group.command("entitle")
@_connection_options
def entitle_command(config_path: str | None, jsonfile: str | None) -> None:
    """Print the node details used for offline entitlement as JSON."""
    config = _load_config(config_path, jsonfile)
    with _command_context() as ctx:
        cdm = _build_cdm(config)
        nodes = cdm.registration.offline_entitle(ctx)
    click.echo(json.dumps([node.model_dump(by_alias=True, mode="json") for node in nodes], indent=2))


@cdm_group.command("register")
@click.option("--auth-token", "auth_token", type=str, required=True, help="RSC registration auth token")
@_connection_options
def register_command(config_path: str | None, jsonfile: str | None, auth_token: str) -> None:
    """Set the registered mode of the cluster."""
    config = _load_config(config_path, jsonfile)
    with _command_context() as ctx:
        cdm = _build_cdm(config)
        mode = cdm.registration.set_registered_mode(ctx, auth_token)
    click.echo(f"registered_mode: {mode}")
