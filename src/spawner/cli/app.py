"""
Root Typer application for the spawner CLI.

Usage::

    spawner spawn < task.json          # TaskDefinition on stdin, [World] on stdout
    spawner kill < world.json          # World on stdin
    spawner ps --cluster c1            # [World, ...] on stdout
    spawner example                    # print a demo TaskDefinition
    spawner version

Errors print a single line on stderr and exit with status 1. Ctrl-C cancels
the in-flight call; a spawn interrupted after submission still stops the
task it started.
"""

from __future__ import annotations

import asyncio
import json
import signal
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import NoReturn, TypeVar

import typer
from botocore.exceptions import BotoCoreError
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.markup import escape

from spawner.context import CallContext
from spawner.errors import ConfigurationError, SpawnerError
from spawner.logging import configure_logging
from spawner.runtimes._types import ContainerOverride, Spawner, TaskDefinition
from spawner.settings import SpawnerSettings, get_settings
from spawner.world import decode_world, encode_worlds

T = TypeVar("T")

app = typer.Typer(
    name="spawner",
    help="spawner: manage worlds on ECS Fargate.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
err_console = Console(stderr=True, soft_wrap=True)


# ── Wiring ───────────────────────────────────────────────────────────────


def build_spawner(settings: SpawnerSettings) -> Spawner:
    """Default spawner: Fargate over boto3. Tests replace this."""
    from spawner.runtimes.ecs import EcsBackend
    from spawner.runtimes.fargate import FargateSpawner

    return FargateSpawner.from_settings(EcsBackend.from_settings(settings), settings)


def _run(call: Callable[[CallContext], Awaitable[T]], timeout: float | None = None) -> T:
    """Run *call* on a fresh event loop with SIGINT wired to ctx.cancel()."""

    async def main() -> T:
        ctx = CallContext(timeout=timeout)
        loop = asyncio.get_running_loop()
        handled = False
        try:
            loop.add_signal_handler(signal.SIGINT, ctx.cancel)
            handled = True
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows, or not running in the main thread
            pass
        try:
            return await call(ctx)
        finally:
            if handled:
                loop.remove_signal_handler(signal.SIGINT)

    return asyncio.run(main())


def _fail(exc: SpawnerError) -> NoReturn:
    err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {escape(exc.message)}")
    raise typer.Exit(code=1)


@contextmanager
def _reported_errors() -> Iterator[None]:
    """Report spawner, settings and AWS SDK setup failures as one stderr line."""
    try:
        yield
    except SpawnerError as exc:
        _fail(exc)
    except PydanticValidationError as exc:
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ())) or "settings"
        _fail(ConfigurationError(f"invalid settings: {field}: {first.get('msg', 'invalid')}", cause=exc))
    except BotoCoreError as exc:
        _fail(ConfigurationError(f"aws setup: {exc}", cause=exc))


def _read_stdin() -> bytes:
    return typer.get_binary_stream("stdin").read()


# ── Version callback ─────────────────────────────────────────────────────


def _version() -> str:
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as pkg_version

    try:
        return pkg_version("world-spawner")
    except PackageNotFoundError:
        from spawner import __version__

        return __version__


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(_version())
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override SPAWNER_LOG_LEVEL."),
) -> None:
    """spawner CLI: manage worlds on a cluster backend."""
    with _reported_errors():
        configure_logging(level=log_level.upper() if log_level else None)


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def spawn(
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Give up (and stop the task) after this many seconds.",
    ),
) -> None:
    """Spawn a world from the TaskDefinition JSON on stdin."""
    payload = _read_stdin()
    with _reported_errors():
        spawner = build_spawner(get_settings())
        world = _run(lambda ctx: spawner.spawn(payload, ctx), timeout)
    typer.echo(encode_worlds(world), nl=False)


@app.command()
def kill(
    timeout: float | None = typer.Option(None, "--timeout", "-t", help="Deadline in seconds."),
) -> None:
    """Kill & purge the previously spawned world read from stdin."""
    with _reported_errors():
        world = decode_world(_read_stdin())
        spawner = build_spawner(get_settings())
        _run(lambda ctx: spawner.kill(world, ctx), timeout)


@app.command()
def ps(
    cluster: str = typer.Option(..., "--cluster", "-c", help="Galaxy (cluster) to list."),
    timeout: float | None = typer.Option(None, "--timeout", "-t", help="Deadline in seconds."),
) -> None:
    """List the running worlds in a cluster."""
    with _reported_errors():
        spawner = build_spawner(get_settings())
        worlds = _run(lambda ctx: spawner.ps(cluster, ctx), timeout)
    typer.echo(encode_worlds(*worlds), nl=False)


@app.command()
def example() -> None:
    """Print a demo TaskDefinition, handy as a template for spawn."""
    definition = TaskDefinition(
        name="video-encoder",
        cluster="keepinmind",
        subnets=["subnet-1234", "subnet-5678"],
        security_groups=["sg-1234", "sg-5678"],
        overrides=[
            ContainerOverride(
                name="worker",
                command=["ffmpeg", "-i", "this", "-o", "that"],
            ),
        ],
    )
    typer.echo(json.dumps(definition.model_dump(exclude_none=True), indent="\t"))


@app.command()
def version() -> None:
    """Print the software version."""
    typer.echo(_version())
