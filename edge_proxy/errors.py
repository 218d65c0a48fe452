"""Exception hierarchy for edge-raw-proxy.

Every failure the router can hit maps onto one of these classes, and the
router turns each of them into a concrete HTTP response. None of them is
expected to reach the WSGI server.

This module is a base-layer module: it must NOT import from any
other ``edge_proxy`` submodule.
"""

from __future__ import annotations


class EdgeProxyError(Exception):
    """Base exception for all edge-raw-proxy errors."""


class ConfigurationError(EdgeProxyError):
    """Missing or malformed configuration (credential, origin, timeouts)."""


class MissingCredentialError(ConfigurationError):
    """GH_TOKEN is not set."""


class MissingOriginError(ConfigurationError):
    """None of GH_NAME, GH_REPO or GH_BRANCH is set."""


class UpstreamHTTPError(EdgeProxyError):
    """The origin answered with a non-success status."""

    def __init__(self, status: int, reason: str, url: str):
        super().__init__(f"{status} {reason} for {url}")
        self.status = status
        self.reason = reason
        self.url = url


class TransportError(EdgeProxyError):
    """The outbound request itself failed (connection, DNS, timeout...)."""


class RouteSelectionError(EdgeProxyError):
    """Root-path target list handling failed unexpectedly."""
