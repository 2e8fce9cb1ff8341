from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the hub API."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.http_timeout)

    def close(self) -> None:
        self._client.close()

    def get_state(self) -> Dict[str, Any]:
        return self._request("GET", "/device/state")

    def invoke(self, name: str, payload: Optional[Union[str, float]] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"timeout": self._config.timeout}
        if payload is not None:
            body["payload"] = payload
        return self._request("POST", f"/device/commands/{name}", json=body)

    def set_desired(self, properties: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PATCH", "/device/twin/desired", json={"properties": properties})

    def get_twin(self) -> Dict[str, Any]:
        return self._request("GET", "/device/twin")

    def send_message(self, body: str) -> str:
        payload = self._request("POST", "/device/messages", json={"body": body})
        message_id = payload.get("message_id")
        if not isinstance(message_id, str):
            raise typer.BadParameter("Unexpected response payload when sending message.")
        return message_id

    def list_telemetry(self, limit: int) -> List[Dict[str, Any]]:
        return self._request("GET", "/device/telemetry", params={"limit": limit})

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1)
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
