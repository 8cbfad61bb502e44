from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import typer

UNKNOWN = "n/a"


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def format_ph(value: Optional[float]) -> str:
    return UNKNOWN if value is None else f"{value:.2f}"


def format_temp(value: Optional[float]) -> str:
    return UNKNOWN if value is None else f"{value:.1f}°C"


def format_rate(value: Optional[float]) -> str:
    return UNKNOWN if value is None else f"{value:.2f} L/m"


def render_top_values(top: Dict[str, Any]) -> None:
    echo_heading("Latest")
    echo_key_values(
        [
            ("pH", format_ph(top.get("ph"))),
            ("temperature", format_temp(top.get("temp"))),
            ("flow rate", format_rate(top.get("laju"))),
        ]
    )


def render_daily_volume(buckets: List[Dict[str, Any]]) -> None:
    echo_heading("Daily volume")
    if not buckets:
        typer.echo("No volume data available.")
        return
    for bucket in buckets:
        typer.echo(f"  - {bucket.get('day')}: {bucket.get('total_liters'):.3f} L")


def render_dashboard(payload: Dict[str, Any]) -> None:
    render_top_values(payload.get("top") or {})
    typer.echo()
    render_daily_volume(payload.get("daily_volume") or [])
    labels = payload.get("labels") or []
    typer.echo()
    if labels:
        typer.echo(f"window: {len(labels)} readings, {labels[0]} .. {labels[-1]}")
    else:
        typer.echo("window: empty")


def render_readings(readings: List[Dict[str, Any]]) -> None:
    echo_heading("Readings")
    if not readings:
        typer.echo("No readings recorded.")
        return
    for reading in readings:
        typer.echo(
            f"  - {reading.get('timestamp') or UNKNOWN}  "
            f"pH={format_ph(reading.get('ph'))}  "
            f"temp={format_temp(reading.get('temp'))}  "
            f"laju={format_rate(reading.get('laju'))}"
        )


def render_alerts(alerts: List[Dict[str, Any]]) -> None:
    echo_heading("Alerts")
    if not alerts:
        typer.echo("No alerts recorded.")
        return
    for alert in alerts:
        typer.secho(
            f"  - [{alert.get('fired_at')}] {alert.get('title')}: {alert.get('message')}",
            fg=typer.colors.RED if alert.get("level") == "danger" else None,
        )
