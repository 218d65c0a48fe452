"""
Pytest configuration for unit tests.

Keeps the routing environment variables out of the tests' way and provides
mock outbound sessions so no test touches the network.
"""

from unittest import mock

import pytest
from requests.structures import CaseInsensitiveDict

from edge_proxy import config as config_module

ROUTING_ENV_VARS = (
    config_module.ENV_CREDENTIAL,
    config_module.ENV_ORIGIN_OWNER,
    config_module.ENV_ORIGIN_REPO,
    config_module.ENV_ORIGIN_BRANCH,
    config_module.ENV_ERROR_MESSAGE,
    config_module.ENV_REDIRECT_TARGETS,
    config_module.ENV_PROXY_TARGETS,
    config_module.ENV_CONNECT_TIMEOUT,
    config_module.ENV_READ_TIMEOUT,
)


class MockUpstreamResponse:
    """Build mock requests.Response objects opened with stream=True."""

    @staticmethod
    def make(status_code=200, body=b"", headers=None, reason="OK", url="https://example.invalid/"):
        resp = mock.MagicMock()
        resp.status_code = status_code
        resp.reason = reason
        resp.url = url
        resp.headers = CaseInsensitiveDict(headers or {})
        resp.raw.headers = dict(headers or {})
        chunks = [body[i:i + 4] for i in range(0, len(body), 4)] or [b""]
        resp.iter_content.side_effect = lambda chunk_size=1: iter(chunks)
        resp.raw.stream.side_effect = lambda chunk_size, decode_content=True: iter(chunks)
        return resp


@pytest.fixture(autouse=True)
def clean_routing_env(monkeypatch):
    """Remove every routing variable from the environment."""
    for name in ROUTING_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def routing_env(monkeypatch):
    """Configure a complete non-root route: token T, origin o/r/b."""
    monkeypatch.setenv(config_module.ENV_CREDENTIAL, "T")
    monkeypatch.setenv(config_module.ENV_ORIGIN_OWNER, "o")
    monkeypatch.setenv(config_module.ENV_ORIGIN_REPO, "r")
    monkeypatch.setenv(config_module.ENV_ORIGIN_BRANCH, "b")


@pytest.fixture
def upstream():
    """Factory for mock upstream responses."""
    return MockUpstreamResponse.make


@pytest.fixture
def session():
    """Mock requests.Session; configure get/request return values per test."""
    return mock.MagicMock()
