from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_alerts, render_dashboard, render_readings


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the biogas monitor service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Monitor API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between dashboard checks when watching.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to keep watching.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        poll_timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("push")
def push_command(
    ctx: typer.Context,
    ph: float = typer.Option(..., "--ph", help="Digester pH."),
    temp: float = typer.Option(..., "--temp", help="Temperature in °C."),
    laju: float = typer.Option(..., "--laju", help="Flow rate in litres per minute."),
) -> None:
    """Append a reading; the server assigns its timestamp."""
    state = _get_state(ctx)
    reading_id = state.client.push_reading(ph=ph, temp=temp, laju=laju)
    typer.secho(f"Reading stored. id={reading_id}", fg=typer.colors.GREEN)


@app.command("readings")
def readings_command(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of readings to fetch."),
) -> None:
    """Fetch the most recent readings once."""
    state = _get_state(ctx)
    render_readings(state.client.get_readings(limit))


@app.command("dashboard")
def dashboard_command(ctx: typer.Context) -> None:
    """Show the latest values and the daily volume series."""
    state = _get_state(ctx)
    render_dashboard(state.client.get_dashboard())


@app.command("alerts")
def alerts_command(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of alerts to show."),
) -> None:
    """List recently fired alerts."""
    state = _get_state(ctx)
    render_alerts(state.client.get_alerts(limit))


@app.command("test-alert")
def test_alert_command(ctx: typer.Context) -> None:
    """Fire a simulated out-of-range alert."""
    state = _get_state(ctx)
    render_alerts(state.client.trigger_test_alert())


@app.command("watch")
def watch_command(
    ctx: typer.Context,
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Override poll interval while watching.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Override how long to watch.",
    ),
) -> None:
    """Re-render the dashboard whenever a new reading arrives."""
    state = _get_state(ctx)
    interval = poll_interval if poll_interval is not None else state.config.poll_interval
    watch_timeout = timeout if timeout is not None else state.config.poll_timeout
    typer.echo(f"Watching {state.config.base_url} (interval={interval}s, timeout={watch_timeout}s)...")

    def on_update(payload: dict) -> None:
        typer.echo()
        render_dashboard(payload)

    updates = state.client.watch_dashboard(on_update, interval=interval, timeout=watch_timeout)
    typer.echo(f"Stopped after {updates} update(s).")
