from __future__ import annotations

import logging
import signal
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_reading, render_readings, render_sensors
from logging_config import configure_logging
from services.drivers import DriverError, build_driver
from services.errors import StorageInitError
from services.sampling import FailurePolicy, SamplingLoop
from services.sensor_store import open_store
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Sample a sensor into the time-bucketed store and query stored readings.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _fail(message: str) -> typer.Exit:
    typer.secho(message, fg=typer.colors.RED, err=True)
    return typer.Exit(code=1)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise _fail("CLI state is uninitialized.")
    return state


def _install_signal_handlers(loop: SamplingLoop) -> None:
    def _handle(signum: int, _frame: object) -> None:
        logger.info(
            "Received signal, shutting down",
            extra={"signal": signal.Signals(signum).name},
        )
        loop.stop()

    for signum in (signal.SIGINT, signal.SIGTERM):
        signal.signal(signum, _handle)


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Query service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each query response.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("run")
def run_command(
    database: Optional[Path] = typer.Option(
        None, "--database", "-d", dir_okay=False, help="Store file (defaults to SENSORSTORE_DB_PATH)."
    ),
    sensor_id: Optional[str] = typer.Option(
        None, "--sensor-id", "-s", help="Sensor identity to record under."
    ),
    resolution: Optional[int] = typer.Option(
        None, "--resolution", min=1, help="Bucket width in seconds."
    ),
    interval: Optional[float] = typer.Option(
        None, "--interval", min=0.001, help="Seconds between samples."
    ),
    fail_fast: Optional[bool] = typer.Option(
        None,
        "--fail-fast/--keep-going",
        help="Stop on the first driver failure, or log it and keep sampling.",
    ),
) -> None:
    """Sample the sensor on a fixed tick until SIGINT or SIGTERM."""
    configure_logging()
    settings = get_settings()
    db_path = database or Path(settings.database_path)
    sensor = sensor_id or settings.sensor_id
    bucket_width = timedelta(seconds=resolution or settings.resolution_seconds)
    tick = interval if interval is not None else settings.sampling_interval
    stop_on_failure = settings.fail_fast if fail_fast is None else fail_fast
    policy = FailurePolicy.fail_fast if stop_on_failure else FailurePolicy.keep_going

    try:
        driver = build_driver(settings.driver)
    except ValueError as exc:
        raise _fail(str(exc)) from exc

    try:
        store = open_store(db_path, bucket_width, root_bucket=settings.root_bucket)
    except StorageInitError as exc:
        raise _fail(f"Cannot open sensor store: {exc}") from exc

    try:
        handle = store.open_ingestion(sensor, capacity=settings.queue_size)
    except StorageInitError as exc:
        store.engine.close()
        raise _fail(f"Cannot open ingestion for {sensor!r}: {exc}") from exc

    loop = SamplingLoop(driver, handle, interval=tick, policy=policy)
    _install_signal_handlers(loop)
    typer.echo(f"Sampling {sensor!r} into {db_path} every {tick}s ...")
    try:
        sent = loop.run()
    except DriverError as exc:
        raise _fail(f"Failed to read sensor values: {exc}") from exc
    finally:
        handle.close()
        store.engine.close()
    typer.secho(f"Stopped after {sent} samples.", fg=typer.colors.GREEN)


@app.command("last")
def last_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identity to query."),
) -> None:
    """Show the most recent reading of a sensor."""
    state = _get_state(ctx)
    payload = state.client.get_last(sensor_id)
    render_reading(sensor_id, payload)


@app.command("values")
def values_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Sensor identity to query."),
    duration: float = typer.Option(
        3600.0, "--duration", "-t", help="Window length in seconds, counted back from now."
    ),
) -> None:
    """Show every reading of a sensor within the last duration."""
    state = _get_state(ctx)
    payload = state.client.get_values(sensor_id, duration)
    render_readings(payload)


@app.command("sensors")
def sensors_command(ctx: typer.Context) -> None:
    """List provisioned sensors."""
    state = _get_state(ctx)
    render_sensors(state.client.list_sensors())
