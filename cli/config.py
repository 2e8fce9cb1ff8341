from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

import httpx
import typer

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT = 30.0
# Extra read time on top of the command timeout the hub waits out.
RESPONSE_GRACE_SECONDS = 5.0

_BASE_URL_ENV = "API_BASE_URL"
_TIMEOUT_ENV = "CLI_REQUEST_TIMEOUT"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT

    @property
    def http_timeout(self) -> httpx.Timeout:
        """Client-side limits; reads outlast the command timeout sent to the hub."""
        return httpx.Timeout(self.timeout, read=self.timeout + RESPONSE_GRACE_SECONDS)


def _normalize_base_url(raw: str) -> str:
    try:
        url = httpx.URL(raw.strip())
    except httpx.InvalidURL as exc:
        raise typer.BadParameter(f"Invalid hub URL {raw!r}: {exc}") from exc
    if url.scheme not in ("http", "https") or not url.host:
        raise typer.BadParameter(f"Hub URL must be http(s)://host[:port], got {raw!r}.")
    return str(url).rstrip("/")


def _timeout_from_env(default: float) -> float:
    raw = (os.getenv(_TIMEOUT_ENV) or "").strip()
    try:
        parsed = float(raw) if raw else default
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def load_config(
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CLIConfig:
    """Resolve hub connection settings: explicit options, then env, then defaults."""
    url = _normalize_base_url(base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL)
    if timeout is None:
        timeout = _timeout_from_env(DEFAULT_TIMEOUT)
    elif timeout <= 0:
        raise typer.BadParameter("--timeout must be positive.")
    return CLIConfig(base_url=url, timeout=timeout)
