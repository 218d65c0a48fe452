"""Routing configuration loader.

The configuration lives entirely in environment variables and is read again
for every request, so an edge instance picks up changes without a restart and
never keeps state between requests.
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from edge_proxy.errors import ConfigurationError

# Environment variable names
ENV_CREDENTIAL = "GH_TOKEN"
ENV_ORIGIN_OWNER = "GH_NAME"
ENV_ORIGIN_REPO = "GH_REPO"
ENV_ORIGIN_BRANCH = "GH_BRANCH"
ENV_ERROR_MESSAGE = "ERROR"
ENV_REDIRECT_TARGETS = "URL302"
ENV_PROXY_TARGETS = "URL"
ENV_CONNECT_TIMEOUT = "EDGE_PROXY_CONNECT_TIMEOUT"
ENV_READ_TIMEOUT = "EDGE_PROXY_READ_TIMEOUT"

MODE_REDIRECT = "redirect"
MODE_PROXY = "proxy"


def _env_str(environ: Mapping[str, str], name: str) -> Optional[str]:
    """Return the variable's value, treating empty strings as unset."""
    value = environ.get(name)
    return value or None


def _env_timeout(environ: Mapping[str, str], name: str) -> Optional[float]:
    raw = _env_str(environ, name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}")


@dataclass(frozen=True)
class RoutingConfig:
    """Per-request routing configuration."""

    credential: Optional[str] = None
    origin_owner: Optional[str] = None
    origin_repo: Optional[str] = None
    origin_branch: Optional[str] = None
    error_message_override: Optional[str] = None
    redirect_targets: Optional[str] = None
    proxy_targets: Optional[str] = None
    connect_timeout: Optional[float] = None
    read_timeout: Optional[float] = None

    def __post_init__(self):
        """Validate timeout values."""
        for name in ("connect_timeout", "read_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

    def __repr__(self) -> str:
        fields = ", ".join(f"{key}={value!r}" for key, value in self.describe().items())
        return f"RoutingConfig({fields})"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RoutingConfig":
        """Build the configuration from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            A new RoutingConfig.

        Raises:
            ConfigurationError: If a timeout variable is not a positive number.
        """
        if environ is None:
            environ = os.environ
        return cls(
            credential=_env_str(environ, ENV_CREDENTIAL),
            origin_owner=_env_str(environ, ENV_ORIGIN_OWNER),
            origin_repo=_env_str(environ, ENV_ORIGIN_REPO),
            origin_branch=_env_str(environ, ENV_ORIGIN_BRANCH),
            error_message_override=_env_str(environ, ENV_ERROR_MESSAGE),
            redirect_targets=_env_str(environ, ENV_REDIRECT_TARGETS),
            proxy_targets=_env_str(environ, ENV_PROXY_TARGETS),
            connect_timeout=_env_timeout(environ, ENV_CONNECT_TIMEOUT),
            read_timeout=_env_timeout(environ, ENV_READ_TIMEOUT),
        )

    @property
    def origin_path(self) -> str:
        """Owner, repo and branch joined with ``/``, skipping unset parts."""
        parts = (self.origin_owner, self.origin_repo, self.origin_branch)
        return "/".join(part for part in parts if part)

    @property
    def timeout(self) -> Optional[Tuple[Optional[float], Optional[float]]]:
        """Timeout argument for ``requests``; None when neither is set."""
        if self.connect_timeout is None and self.read_timeout is None:
            return None
        return (self.connect_timeout, self.read_timeout)

    def root_mode(self) -> Optional[Tuple[str, str]]:
        """Pick the root-path mode and its raw target string.

        The redirect list wins when both lists are configured.

        Returns:
            ``(MODE_REDIRECT, targets)``, ``(MODE_PROXY, targets)`` or None.
        """
        if self.redirect_targets:
            return MODE_REDIRECT, self.redirect_targets
        if self.proxy_targets:
            return MODE_PROXY, self.proxy_targets
        return None

    def describe(self) -> Dict[str, Any]:
        """Return the configuration as a dict with the credential masked."""
        return {
            "credential": "***" if self.credential else None,
            "origin_owner": self.origin_owner,
            "origin_repo": self.origin_repo,
            "origin_branch": self.origin_branch,
            "error_message_override": self.error_message_override,
            "redirect_targets": self.redirect_targets,
            "proxy_targets": self.proxy_targets,
            "connect_timeout": self.connect_timeout,
            "read_timeout": self.read_timeout,
        }
