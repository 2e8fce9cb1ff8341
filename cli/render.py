from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_state(payload: Dict[str, Any]) -> None:
    echo_heading("Device State")
    echo_key_values(
        [
            ("device_id", payload.get("device_id")),
            ("reading", payload.get("reading")),
            ("cadence_millis", payload.get("cadence_millis")),
            ("publish_enabled", payload.get("publish_enabled")),
            ("message_sequence", payload.get("message_sequence")),
        ]
    )


def render_command_result(payload: Dict[str, Any]) -> None:
    status = payload.get("status")
    succeeded = isinstance(status, int) and 200 <= status < 300
    typer.secho(
        f"{payload.get('name')}: {status} {payload.get('message')}",
        fg=typer.colors.GREEN if succeeded else typer.colors.RED,
    )
    for key, value in (payload.get("payload") or {}).items():
        typer.echo(f"  {key}: {value}")


def render_twin(payload: Dict[str, Any]) -> None:
    for section in ("desired", "reported"):
        echo_heading(section.capitalize())
        properties = payload.get(section) or {}
        if properties:
            echo_key_values(sorted(properties.items()))
        else:
            typer.echo("No properties.")
        typer.echo()


def render_telemetry(records: List[Dict[str, Any]]) -> None:
    echo_heading("Telemetry")
    if not records:
        typer.echo("No telemetry published yet.")
        return
    for record in records:
        flag = " ALERT" if record.get("alert") else ""
        typer.echo(
            f"  #{record.get('sequence')} {record.get('created_at')} "
            f"reading={record.get('reading')}{flag}"
        )
