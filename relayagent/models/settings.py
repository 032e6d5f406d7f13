"""
Bridge settings.

Settings come from an optional YAML file; RELAYAGENT_<FIELD> environment
variables take precedence over values from the file.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "RELAYAGENT_"
DEFAULT_SETTINGS_PATH = Path.home() / ".relayagent" / "settings.yaml"


class BridgeSettings(BaseModel):
    """Inputs the core needs from the surrounding application."""

    share_dir: Path = Field(
        default_factory=lambda: Path.home() / ".kimi",
        description="Agent share directory (transcripts, metadata, config)",
    )
    gui_sessions_dir: Path | None = Field(
        default=None, description="GUI session store root (default: <share_dir>/gui_sessions)"
    )
    metadata_file: Path | None = Field(
        default=None, description="Agent work-dir metadata (default: <share_dir>/kimi.json)"
    )
    agent_config_path: Path | None = Field(
        default=None, description="Agent config with service tables (default: <share_dir>/config.toml)"
    )
    cli_path: str | None = Field(default=None, description="Explicit agent executable")
    model: str | None = None
    thinking: bool = False
    auto_approve: bool = Field(default=False, description="Skip approval for mutating tools")
    shell_timeout: int = Field(default=60, ge=1, description="Default shell tool timeout (seconds)")
    host: str = "127.0.0.1"
    port: int = Field(default=8765, gt=0, lt=65536)

    model_config = {"extra": "forbid"}

    @property
    def sessions_root(self) -> Path:
        return self.gui_sessions_dir or self.share_dir / "gui_sessions"

    @property
    def metadata_path(self) -> Path:
        return self.metadata_file or self.share_dir / "kimi.json"

    @property
    def config_path(self) -> Path:
        return self.agent_config_path or self.share_dir / "config.toml"


class SettingsError(Exception):
    """Raised when the settings file is invalid, with a user-friendly message."""

    def __init__(self, source: str, issues: list[str]):
        self.source = source
        self.issues = issues
        msg = f"Invalid settings in {source}:\n" + "\n".join(f"  - {issue}" for issue in issues)
        super().__init__(msg)


def _friendly_validation_errors(source: str, exc: ValidationError) -> SettingsError:
    issues: list[str] = []
    for error in exc.errors():
        loc = ".".join(str(x) for x in error["loc"])
        if error["type"] == "extra_forbidden":
            issues.append(f"{loc}: unknown setting")
        else:
            issues.append(f"{loc}: {error['msg']}")
    return SettingsError(source, issues)


def _env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for name in BridgeSettings.model_fields:
        value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
        if value is not None and value != "":
            overrides[name] = value
    return overrides


def load_settings(path: Path | None = None) -> BridgeSettings:
    """
    Load bridge settings.

    Args:
        path: YAML settings file. Defaults to ~/.relayagent/settings.yaml;
              a missing file means "all defaults".

    Raises:
        SettingsError: If the YAML or any field value is invalid
    """
    if path is None:
        path = DEFAULT_SETTINGS_PATH

    data: dict = {}
    if path.exists():
        try:
            with open(path) as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SettingsError(str(path), [f"not valid YAML: {e}"]) from e
        if loaded is not None and not isinstance(loaded, dict):
            raise SettingsError(str(path), ["top level must be a mapping"])
        data = loaded or {}
    else:
        logger.debug("No settings file at %s, using defaults", path)

    data.update(_env_overrides())

    try:
        return BridgeSettings(**data)
    except ValidationError as e:
        raise _friendly_validation_errors(str(path), e) from e
