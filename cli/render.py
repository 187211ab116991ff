from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_values(values: Dict[str, Any]) -> str:
    return (
        f"temperature={values.get('Temperature')} "
        f"humidity={values.get('Humidity')}"
    )


def render_reading(sensor_id: str, payload: Dict[str, Any]) -> None:
    echo_heading("Last Reading")
    values = payload.get("values") or {}
    echo_key_values(
        [
            ("sensor_id", sensor_id),
            ("timestamp", payload.get("timestamp")),
            ("temperature", values.get("Temperature")),
            ("humidity", values.get("Humidity")),
        ]
    )


def render_readings(payload: Dict[str, Any]) -> None:
    echo_heading("Readings")
    echo_key_values(
        [
            ("sensor_id", payload.get("sensor_id")),
            ("start", payload.get("start")),
            ("end", payload.get("end")),
            ("count", payload.get("count")),
        ]
    )
    readings = payload.get("readings") or []
    typer.echo()
    if not readings:
        typer.echo("No readings in window.")
        return
    for reading in readings:
        typer.echo(f"  - {reading.get('timestamp')}: {_format_values(reading.get('values') or {})}")


def render_sensors(sensors: List[str]) -> None:
    echo_heading("Sensors")
    if not sensors:
        typer.echo("No sensors provisioned.")
        return
    for sensor_id in sensors:
        typer.echo(f"  - {sensor_id}")
