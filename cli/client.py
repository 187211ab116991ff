from __future__ import annotations

from typing import Any, Dict, List

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the sensor query service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.request_timeout)

    def close(self) -> None:
        self._client.close()

    def list_sensors(self) -> List[str]:
        payload = self._get("/sensors")
        sensors = payload.get("sensors")
        if not isinstance(sensors, list):
            raise typer.BadParameter("Unexpected response payload when listing sensors.")
        return sensors

    def get_last(self, sensor_id: str) -> Dict[str, Any]:
        return self._get(f"/sensors/{sensor_id}/last")

    def get_values(self, sensor_id: str, duration_seconds: float) -> Dict[str, Any]:
        return self._get(
            f"/sensors/{sensor_id}/values",
            params={"duration": str(duration_seconds)},
        )

    def _get(self, path: str, params: Dict[str, str] | None = None) -> Dict[str, Any]:
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Cannot reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except ValueError:
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
