"""Request routing for the edge proxy.

Non-root paths are proxied to raw.githubusercontent.com with the server-held
token injected, and only a few headers of the upstream response are relayed.
The root path either redirects or proxies to a randomly chosen configured
URL, and shows the decoy page when nothing usable is configured.

Every failure is resolved here into a concrete response; nothing is retried.
"""

import logging
import random
from dataclasses import dataclass
from urllib.parse import quote
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

import requests
from flask import Response

from edge_proxy.config import MODE_REDIRECT, RoutingConfig
from edge_proxy.decoy import DECOY_CONTENT_TYPE, DECOY_HTML
from edge_proxy.errors import (
    MissingCredentialError,
    MissingOriginError,
    RouteSelectionError,
    TransportError,
    UpstreamHTTPError,
)
from edge_proxy.logging_config import set_context
from edge_proxy.url_list import RandomSource, choose_url, parse_urls

logger = logging.getLogger(__name__)

# Upstream configuration
UPSTREAM_PROTOCOL = "https"
UPSTREAM_HOST = "raw.githubusercontent.com"
USER_AGENT = "edge-raw-proxy"

# Relayed response headers for non-root paths
FORWARDED_RESPONSE_HEADERS = ("Content-Type", "Content-Length")
PROXY_MARKER_HEADER = "X-Proxied-By"
PROXY_MARKER = "edge-raw-proxy"

STREAM_CHUNK_SIZE = 8192

# Characters left as-is when re-encoding a decoded request path (RFC 3986 pchar)
PATH_SAFE_CHARS = "/:@!$&'()*+,;="

# Connection-level headers that must not cross the proxy (RFC 7230 6.1)
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})

TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"

MSG_MISSING_CREDENTIAL = "Server configuration error: missing authorization credential"
MSG_MISSING_ORIGIN = "Server configuration error: missing repository information"
MSG_UPSTREAM_DEFAULT = (
    "Unable to fetch file from GitHub. Status code: {status}. "
    "Check that the path and token are correct."
)
MSG_UPSTREAM_STATUS = "GitHub Status: {status} {reason}"
MSG_TRANSPORT = "Internal error while proxying the request to GitHub"

# Routing outcomes, recorded in the logging context
OUTCOME_MISSING_CREDENTIAL = "non-root-error-credential"
OUTCOME_MISSING_ORIGIN = "non-root-error-origin"
OUTCOME_FILE_SUCCESS = "non-root-success"
OUTCOME_UPSTREAM_ERROR = "non-root-upstream-error"
OUTCOME_TRANSPORT_ERROR = "non-root-transport-error"
OUTCOME_ROOT_REDIRECT = "root-redirect"
OUTCOME_ROOT_PROXY = "root-proxy"
OUTCOME_ROOT_DEFAULT = "root-default-page"


class ProxyResponse(Response):
    """Response that only carries a Content-Type when one is given."""

    default_mimetype = None


@dataclass(frozen=True)
class UpstreamRequest:
    """Target URL and headers for a non-root fetch."""

    url: str
    headers: Dict[str, str]


def new_session() -> requests.Session:
    """Create a session that adds no default headers of its own."""
    session = requests.Session()
    session.headers.clear()
    return session


def build_upstream_request(config: RoutingConfig, path: str) -> UpstreamRequest:
    """Build the raw-content URL and the injected headers for ``path``.

    ``path`` is the decoded request path. It is percent-encoded again so that
    characters such as ``#``, ``?`` or spaces stay part of the file name.

    Raises:
        MissingCredentialError: If no token is configured.
        MissingOriginError: If owner, repo and branch are all unset.
    """
    if not config.credential:
        raise MissingCredentialError(MSG_MISSING_CREDENTIAL)

    origin_path = config.origin_path
    if not origin_path:
        raise MissingOriginError(MSG_MISSING_ORIGIN)

    file_path = quote(path[1:] if path.startswith("/") else path, safe=PATH_SAFE_CHARS)
    return UpstreamRequest(
        url=f"{UPSTREAM_PROTOCOL}://{UPSTREAM_HOST}/{origin_path}/{file_path}",
        headers={
            "Authorization": f"token {config.credential}",
            "User-Agent": USER_AGENT,
        },
    )


def filter_response_headers(upstream_headers) -> Dict[str, str]:
    """Keep the allow-listed upstream headers and add the proxy marker."""
    headers = {}
    for name in FORWARDED_RESPONSE_HEADERS:
        if name in upstream_headers:
            headers[name] = upstream_headers[name]
    headers[PROXY_MARKER_HEADER] = PROXY_MARKER
    return headers


def passthrough_headers(headers: Iterable[Tuple[str, str]], drop: Iterable[str] = ()) -> List[Tuple[str, str]]:
    """Copy headers, dropping hop-by-hop headers and any named in ``drop``."""
    excluded = HOP_BY_HOP_HEADERS | {name.lower() for name in drop}
    return [(name, value) for name, value in headers if name.lower() not in excluded]


def stream_response_generator(
    response: requests.Response,
    chunk_size: int = STREAM_CHUNK_SIZE,
    decode_content: bool = True,
    on_close: Optional[Callable[[], None]] = None,
) -> Iterator[bytes]:
    """Yield the upstream body chunk by chunk without buffering it.

    Args:
        response: requests.Response opened with ``stream=True``.
        chunk_size: Size of chunks to read.
        decode_content: When False, the raw bytes are relayed exactly as
            received, including any content coding.
        on_close: Called instead of ``response.close()`` once the body is
            exhausted or the stream fails.

    Yields:
        bytes: Response data chunks
    """
    try:
        if decode_content:
            chunks = response.iter_content(chunk_size=chunk_size)
        else:
            chunks = response.raw.stream(chunk_size, decode_content=False)
        for chunk in chunks:
            if chunk:  # filter out keep-alive new chunks
                yield chunk
    except Exception as e:
        # Headers are already sent; the client sees a truncated body
        logger.error(f"Error streaming response from {response.url}: {e}")
    finally:
        if on_close is None:
            response.close()
        else:
            on_close()


def release_once(*callbacks: Callable[[], None]) -> Callable[[], None]:
    """Return a callable that runs ``callbacks`` in order on its first call only."""
    pending = list(callbacks)

    def release() -> None:
        while pending:
            pending.pop(0)()

    return release


def streaming_response(
    upstream: requests.Response,
    headers,
    close_session: Callable[[], None],
    decode_content: bool = True,
) -> Response:
    """Relay an open upstream response as a streamed Flask response.

    The upstream response and its session are released when the body is
    exhausted, or when the WSGI server closes the response without reading
    it (HEAD requests, 204 and 304 answers).
    """
    release = release_once(upstream.close, close_session)
    response = ProxyResponse(
        stream_response_generator(upstream, decode_content=decode_content, on_close=release),
        status=upstream.status_code,
        headers=headers,
    )
    response.call_on_close(release)
    return response


def text_response(message: str, status: int) -> Response:
    return ProxyResponse(message, status=status, content_type=TEXT_CONTENT_TYPE)


def decoy_response() -> Response:
    return ProxyResponse(DECOY_HTML, status=200, content_type=DECOY_CONTENT_TYPE)


def redirect_response(location: str) -> Response:
    return ProxyResponse(status=302, headers={"Location": location})


class RequestRouter:
    """Route one inbound request to the origin, a root target or the decoy page.

    Args:
        config: Routing configuration for this request.
        session: HTTP session for outbound calls. A fresh header-less
            session is created per request when omitted.
        random_source: Callable returning a float in ``[0, 1)``, used to
            pick a root-path target.
    """

    def __init__(
        self,
        config: RoutingConfig,
        session: Optional[requests.Session] = None,
        random_source: RandomSource = random.random,
    ):
        self.config = config
        self._session = session
        self._random = random_source

    def route(self, request) -> Response:
        """Produce the response for ``request``.

        Only ``request.path`` decides the branch; the root proxy mode also
        uses the method, headers and body.
        """
        if request.path != "/":
            return self.route_file(request.path)
        return self.route_root(request)

    # -----------------------------------------------------------------
    # Non-root: raw file proxy
    # -----------------------------------------------------------------

    def route_file(self, path: str) -> Response:
        try:
            upstream_request = build_upstream_request(self.config, path)
        except MissingCredentialError as e:
            logger.error("GH_TOKEN is not configured")
            return self._finish(OUTCOME_MISSING_CREDENTIAL, text_response(str(e), 500))
        except MissingOriginError as e:
            logger.error("GH_NAME, GH_REPO and GH_BRANCH are not configured")
            return self._finish(OUTCOME_MISSING_ORIGIN, text_response(str(e), 500))

        logger.info(f"Proxy target: {upstream_request.url}")

        session, close_session = self._open_session()
        try:
            upstream = self.fetch_file(session, upstream_request)
        except UpstreamHTTPError as e:
            close_session()
            logger.error(f"GitHub request failed: {e}")
            return self._finish(OUTCOME_UPSTREAM_ERROR, self._upstream_error_response(e))
        except TransportError as e:
            close_session()
            logger.error(f"Fetch to GitHub failed: {e}")
            return self._finish(OUTCOME_TRANSPORT_ERROR, text_response(MSG_TRANSPORT, 500))

        response = streaming_response(upstream, filter_response_headers(upstream.headers), close_session)
        return self._finish(OUTCOME_FILE_SUCCESS, response)

    def fetch_file(self, session: requests.Session, upstream_request: UpstreamRequest) -> requests.Response:
        """GET the raw file with streaming enabled.

        Returns:
            The open upstream response (2xx only).

        Raises:
            UpstreamHTTPError: On a non-2xx status; the response is closed.
            TransportError: If the request itself fails.
        """
        try:
            upstream = session.get(
                upstream_request.url,
                headers=upstream_request.headers,
                timeout=self.config.timeout,
                stream=True,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(str(e)) from e

        if not 200 <= upstream.status_code < 300:
            upstream.close()
            raise UpstreamHTTPError(upstream.status_code, upstream.reason or "", upstream_request.url)
        return upstream

    def _upstream_error_response(self, error: UpstreamHTTPError) -> Response:
        message = self.config.error_message_override or MSG_UPSTREAM_DEFAULT.format(status=error.status)
        status_line = MSG_UPSTREAM_STATUS.format(status=error.status, reason=error.reason)
        return text_response(f"{message}\n{status_line}", error.status)

    # -----------------------------------------------------------------
    # Root: redirect / proxy / decoy
    # -----------------------------------------------------------------

    def route_root(self, request) -> Response:
        root_mode = self.config.root_mode()
        if root_mode is not None:
            mode, raw_targets = root_mode
            try:
                target = self.select_target(raw_targets)
                if target is None:
                    logger.warning(f"Root {mode} target list is empty or malformed")
                elif mode == MODE_REDIRECT:
                    logger.info(f"Root redirect -> {target}")
                    return self._finish(OUTCOME_ROOT_REDIRECT, redirect_response(target))
                else:
                    logger.info(f"Root proxy -> {target}")
                    return self._finish(OUTCOME_ROOT_PROXY, self.proxy_to(target, request))
            except (RouteSelectionError, TransportError) as e:
                logger.error(f"Root {mode} handling failed: {e}")

        logger.info("Root path: serving decoy page")
        return self._finish(OUTCOME_ROOT_DEFAULT, decoy_response())

    def select_target(self, raw_targets: str) -> Optional[str]:
        """Parse the target list and pick one entry.

        Returns:
            The chosen URL, or None when the list parses empty.

        Raises:
            RouteSelectionError: If parsing or selection fails.
        """
        try:
            urls = parse_urls(raw_targets)
            if not urls:
                return None
            return choose_url(urls, self._random)
        except Exception as e:
            raise RouteSelectionError(f"{type(e).__name__}: {e}") from e

    def proxy_to(self, target: str, request) -> Response:
        """Forward the inbound request to ``target`` and relay the answer as is.

        Raises:
            TransportError: If the outbound request fails.
        """
        # requests recomputes Content-Length from the body it sends
        headers = passthrough_headers(request.headers.items(), drop=("Host", "Content-Length"))

        session, close_session = self._open_session()
        try:
            upstream = session.request(
                request.method,
                target,
                headers=dict(headers),
                data=request.get_data() or None,
                timeout=self.config.timeout,
                allow_redirects=False,
                stream=True,
            )
        except requests.exceptions.RequestException as e:
            close_session()
            raise TransportError(str(e)) from e

        return streaming_response(
            upstream,
            passthrough_headers(upstream.raw.headers.items()),
            close_session,
            decode_content=False,
        )

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------

    def _open_session(self) -> Tuple[requests.Session, Callable[[], None]]:
        """Return the session to use and a callable that releases it."""
        if self._session is not None:
            return self._session, lambda: None
        session = new_session()
        return session, session.close

    @staticmethod
    def _finish(outcome: str, response: Response) -> Response:
        set_context(outcome=outcome)
        return response

