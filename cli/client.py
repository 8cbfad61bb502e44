from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the biogas monitor service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=30.0)

    def close(self) -> None:
        self._client.close()

    def push_reading(self, ph: float, temp: float, laju: float) -> str:
        payload = self._request(
            "POST", "/readings", json={"ph": ph, "temp": temp, "laju": laju}
        )
        reading_id = payload.get("id")
        if not isinstance(reading_id, str):
            raise typer.BadParameter("Unexpected response payload when storing reading.")
        return reading_id

    def get_readings(self, limit: int) -> List[Dict[str, Any]]:
        return self._request("GET", "/readings", params={"limit": limit})

    def get_dashboard(self) -> Dict[str, Any]:
        return self._request("GET", "/dashboard")

    def get_alerts(self, limit: int) -> List[Dict[str, Any]]:
        return self._request("GET", "/alerts", params={"limit": limit})

    def trigger_test_alert(self) -> List[Dict[str, Any]]:
        return self._request("POST", "/alerts/test")

    def watch_dashboard(
        self,
        on_update: Callable[[Dict[str, Any]], None],
        interval: float,
        timeout: float,
    ) -> int:
        """Poll the dashboard until ``timeout``, calling ``on_update`` on each change."""
        deadline = time.monotonic() + timeout
        last_seen: Optional[str] = None
        updates = 0
        while time.monotonic() <= deadline:
            payload = self.get_dashboard()
            latest_id = payload.get("latest_id")
            if latest_id is not None and latest_id != last_seen:
                last_seen = latest_id
                updates += 1
                on_update(payload)
            time.sleep(interval)
        return updates

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
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
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
