"""Client configuration.

``CloudRift`` is an immutable configuration dataclass. Fields left unset are
resolved from the environment (``CLOUDRIFT_TOKEN``, ``CLOUDRIFT_BASE_URL``,
``CLOUDRIFT_PROTO_VERSION``) and then from built-in defaults; explicit values
always win.

Named profiles can also be loaded from ~/.cloudrift/defaults.toml (global)
and cloudrift.toml (project), merged with the project file taking precedence.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from cloudrift.core.exceptions import ConfigurationError

type RawConfig = dict[str, Any]

# =============================================================================
# Constants
# =============================================================================

DEFAULT_ENDPOINT = "https://api.cloudrift.ai"

PROTO_UPCOMING = "~upcoming"
PROTO_2025_06_10 = "2025-06-10"
PROTO_2025_05_29 = "2025-05-29"
PROTO_2025_03_21 = "2025-03-21"
PROTO_2025_02_10 = "2025-02-10"
PROTO_2024_09_22 = "2024-09-22"

DEFAULT_PROTO_VERSION = PROTO_2025_06_10

TOKEN_ENV = "CLOUDRIFT_TOKEN"
BASE_URL_ENV = "CLOUDRIFT_BASE_URL"
PROTO_VERSION_ENV = "CLOUDRIFT_PROTO_VERSION"

GLOBAL_CONFIG_PATH = Path.home() / ".cloudrift" / "defaults.toml"
PROJECT_CONFIG_NAME = "cloudrift.toml"


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True, slots=True)
class CloudRift:
    """CloudRift API client configuration.

    Example:
        >>> from cloudrift.config import CloudRift
        >>> config = CloudRift(token="...", retries=2).resolve()

    Args:
        token: API token. Falls back to CLOUDRIFT_TOKEN env var.
        base_url: API base URL. Falls back to CLOUDRIFT_BASE_URL, then
            https://api.cloudrift.ai.
        proto_version: Protocol version sent in every request body. Falls back
            to CLOUDRIFT_PROTO_VERSION, then the latest known version.
        retries: Extra attempts for requests failing at the network level.
            Default: 4.
        request_timeout: Per-request timeout in seconds. Default: 10.
        poll_interval: Seconds between status polls while creating or
            deleting an instance. Default: 5.
        provision_timeout: Ceiling in seconds for an instance to become
            ready. Default: 28 minutes. None waits forever.
        delete_timeout: Ceiling in seconds for a terminated instance to
            disappear. Default: None (wait until gone or canceled).
    """

    token: str | None = None
    base_url: str | None = None
    proto_version: str | None = None
    retries: int = 4
    request_timeout: float = 10.0
    poll_interval: float = 5.0
    provision_timeout: float | None = 28 * 60.0
    delete_timeout: float | None = None

    def resolve(self, environ: Mapping[str, str] | None = None) -> CloudRift:
        """Fill unset connection fields from the environment, then defaults.

        Raises:
            ConfigurationError: If no token is available or a numeric
                setting is out of range.
        """
        env = os.environ if environ is None else environ

        token = self.token or env.get(TOKEN_ENV, "")
        base_url = self.base_url or env.get(BASE_URL_ENV, "") or DEFAULT_ENDPOINT
        proto_version = (
            self.proto_version or env.get(PROTO_VERSION_ENV, "") or DEFAULT_PROTO_VERSION
        )

        if not token:
            raise ConfigurationError(
                "Missing CloudRift API token. Set the token value in the configuration "
                f"or use the {TOKEN_ENV} environment variable."
            )
        if self.retries < 0:
            raise ConfigurationError(f"retries must be >= 0, got {self.retries}")
        if self.request_timeout <= 0 or self.poll_interval <= 0:
            raise ConfigurationError("request_timeout and poll_interval must be positive")

        return replace(self, token=token, base_url=base_url, proto_version=proto_version)

    def __repr__(self) -> str:
        shown = {f.name: getattr(self, f.name) for f in fields(self)}
        if shown["token"]:
            shown["token"] = "***"
        args = ", ".join(f"{k}={v!r}" for k, v in shown.items())
        return f"CloudRift({args})"


# =============================================================================
# TOML profiles
# =============================================================================


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        return tomllib.load(f)


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("profiles", {})
    return merged


def load_profile(
    name: str = "default",
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> CloudRift:
    """Build a CloudRift configuration from a ``[profiles.<name>]`` table.

    The result is not resolved; call ``resolve()`` to apply environment
    fallbacks.
    """
    config = load_config(project_dir=project_dir, global_path=global_path)

    profiles = config["profiles"]
    if name not in profiles:
        available = ", ".join(profiles) or "none"
        raise ConfigurationError(f"Profile '{name}' not found. Available: {available}")

    raw = dict(profiles[name])
    known = {f.name for f in fields(CloudRift)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigurationError(
            f"Profile '{name}' has unknown keys: {', '.join(unknown)}. "
            f"Valid: {', '.join(sorted(known))}"
        )
    return CloudRift(**raw)
