"""
External search/fetch service configuration.

Service credentials live in the agent's own configuration file (TOML, or
JSON when the file ends in .json) under `services.<name>`:

    [services.moonshot_search]
    base_url = "https://..."
    api_key = "..."
    custom_headers = { "X-Foo" = "bar" }
"""

from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from relayagent.core.errors import RelayError

logger = logging.getLogger(__name__)

SEARCH_SERVICE = "moonshot_search"
FETCH_SERVICE = "moonshot_fetch"
DEFAULT_TIMEOUT = 30.0
DEFAULT_CONFIG_PATH = Path.home() / ".kimi" / "config.toml"


class ServiceConfigError(RelayError):
    """The agent configuration file could not be read or parsed."""


@dataclass
class ServiceConfig:
    """Connection details for one external service."""

    base_url: str
    api_key: str
    custom_headers: dict[str, str] = field(default_factory=dict)

    def headers(
        self, tool_call_id: str = "", extra: dict[str, str] | None = None
    ) -> dict[str, str]:
        """Request headers: bearer auth, tool-call id, caller headers, then custom headers."""
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if tool_call_id:
            headers["X-Msh-Tool-Call-Id"] = tool_call_id
        headers.update(extra or {})
        headers.update(self.custom_headers)
        return headers


def load_agent_config(path: Path | None = None) -> dict[str, Any]:
    """
    Parse the agent configuration file.

    Raises:
        ServiceConfigError: If the file is missing or malformed
    """
    path = path or DEFAULT_CONFIG_PATH
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ServiceConfigError(f"Failed to read config {path}: {e}") from e

    if path.suffix == ".json":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ServiceConfigError(f"Invalid JSON in {path}: {e}") from e
    else:
        try:
            data = tomllib.loads(raw)
        except tomllib.TOMLDecodeError as e:
            raise ServiceConfigError(f"Invalid TOML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ServiceConfigError(f"Config {path} must be a table at the top level")
    return data


def parse_service_config(config: dict[str, Any], name: str) -> ServiceConfig | None:
    """Pick `services.<name>` out of a parsed config; None unless complete."""
    services = config.get("services")
    if not isinstance(services, dict):
        return None
    service = services.get(name)
    if not isinstance(service, dict):
        return None

    base_url = service.get("base_url")
    api_key = service.get("api_key")
    if not isinstance(base_url, str) or not isinstance(api_key, str):
        return None

    raw_headers = service.get("custom_headers")
    custom_headers = {}
    if isinstance(raw_headers, dict):
        custom_headers = {k: v for k, v in raw_headers.items() if isinstance(v, str)}
    return ServiceConfig(base_url=base_url, api_key=api_key, custom_headers=custom_headers)


def make_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(timeout), follow_redirects=True)
