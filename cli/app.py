from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_command_result, render_state, render_telemetry, render_twin


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for driving the simulated device through its hub API.",
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
        help="Hub API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each request, including command handlers.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("state")
def state_command(ctx: typer.Context) -> None:
    """Show the device's reading, cadence and publish flag."""
    state = _get_state(ctx)
    render_state(state.client.get_state())


@app.command("invoke")
def invoke_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Command name, e.g. start, stop, set-reading, upload."),
    payload: Optional[str] = typer.Argument(None, help="Optional command argument."),
) -> None:
    """Invoke a command on the device."""
    state = _get_state(ctx)
    result = state.client.invoke(name, payload)
    render_command_result(result)
    status = result.get("status")
    if not isinstance(status, int) or not 200 <= status < 300:
        raise typer.Exit(code=1)


@app.command("set-cadence")
def set_cadence_command(
    ctx: typer.Context,
    millis: int = typer.Argument(..., help="Milliseconds between telemetry messages."),
) -> None:
    """Push a new telemetry cadence as a desired property."""
    state = _get_state(ctx)
    typer.echo(f"Requesting cadence {millis}ms ...")
    twin = state.client.set_desired({"cadenceMillis": millis})
    render_twin(twin)


@app.command("twin")
def twin_command(ctx: typer.Context) -> None:
    """Show the desired and reported property documents."""
    state = _get_state(ctx)
    render_twin(state.client.get_twin())


@app.command("send-message")
def send_message_command(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Message body delivered to the device."),
) -> None:
    """Queue an inbound message for the device."""
    state = _get_state(ctx)
    message_id = state.client.send_message(text)
    typer.secho(f"Message queued. message_id={message_id}", fg=typer.colors.GREEN)


@app.command("telemetry")
def telemetry_command(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", min=1, help="Number of records to show."),
) -> None:
    """List the most recent telemetry records."""
    state = _get_state(ctx)
    render_telemetry(state.client.list_telemetry(limit))
