"""Configuration for the toolbox command.

Built-in defaults, optionally overridden by a YAML file in the user's
home directory (``~/.toolboxrc`` or ``$TOOLBOXRC``).
"""

from __future__ import annotations

import getpass
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TOOLBOXRC"
DEFAULT_CONFIG_PATH = Path("~/.toolboxrc")

_CONTAINER_NAME_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")


class ConfigError(Exception):
    """Raised when the override file cannot be loaded."""
    pass


def _default_toolbox_name() -> str:
    user = os.environ.get("USER") or getpass.getuser()
    return f"toolbox-{user}"


class ToolboxConfig(BaseModel):
    """Toolbox settings."""
    model_config = ConfigDict(extra="forbid")

    registry: str = "registry.fedoraproject.org"
    image: str = "fedora-toolbox:latest"
    toolbox_name: str = Field(default_factory=_default_toolbox_name)
    toolbox_shell: str = "/bin/bash"

    engine: str = "podman"
    authfile: Optional[Path] = None

    hostname: str = "toolbox"
    network: str = "host"
    privileged: bool = True
    volumes: List[str] = Field(default_factory=lambda: ["/:/media/root:rslave"])
    create_options: List[str] = Field(default_factory=list)
    entrypoint: Optional[str] = None

    sudo_group: str = "wheel"
    forward_env: List[str] = Field(
        default_factory=lambda: ["LANG", "TERM", "DISPLAY", "SSH_AUTH_SOCK"]
    )

    @field_validator('registry')
    @classmethod
    def strip_registry(cls, v: str) -> str:
        """Drop trailing slashes so the image reference joins cleanly."""
        v = v.strip().rstrip('/')
        if not v:
            raise ValueError("registry must not be empty")
        return v

    @field_validator('image', 'toolbox_shell', 'engine')
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("value must not be empty")
        return v

    @field_validator('toolbox_name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Ensure the name is usable as a container name."""
        if not _CONTAINER_NAME_RE.match(v):
            raise ValueError(f"Invalid container name: '{v}'")
        return v

    @field_validator('authfile', mode='before')
    @classmethod
    def expand_authfile(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        return Path(str(v)).expanduser()

    @property
    def image_reference(self) -> str:
        """Full image reference, e.g. registry.fedoraproject.org/fedora-toolbox:latest."""
        return f"{self.registry}/{self.image}"

    def container_name(self, tag: Optional[str] = None) -> str:
        """Container name, with ``-tag`` appended when a tag is given.

        Raises:
            ValueError: If the resulting name is not a valid container name
        """
        if not tag:
            return self.toolbox_name
        name = f"{self.toolbox_name}-{tag}"
        if not _CONTAINER_NAME_RE.match(name):
            raise ValueError(f"Invalid container name: '{name}'")
        return name


def find_config_file(config_path: Optional[Union[str, Path]] = None) -> Path:
    """Locate the override file.

    Args:
        config_path: Explicit path; takes precedence over $TOOLBOXRC

    Returns:
        Path to the override file (which may not exist)
    """
    if config_path:
        return Path(config_path).expanduser()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH.expanduser()


def load_config(config_path: Optional[Union[str, Path]] = None) -> ToolboxConfig:
    """Load settings, merging the override file over the defaults.

    Args:
        config_path: Optional explicit override file

    Returns:
        Validated configuration

    Raises:
        ConfigError: If the override file exists but is unreadable or invalid

    Example:
        >>> config = load_config()
        >>> config.image_reference
        'registry.fedoraproject.org/fedora-toolbox:latest'
    """
    path = find_config_file(config_path)
    if not path.is_file():
        logger.debug(f"No override file at {path}, using defaults")
        return ToolboxConfig()

    logger.info(f"{path} file detected, overriding defaults...")
    try:
        with open(path) as f:
            raw: Any = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read {path}: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping, got {type(raw).__name__}")

    overrides: Dict[str, Any] = raw
    try:
        return ToolboxConfig(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e
