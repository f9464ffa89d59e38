"""Shared HTTP helpers used by remote repositories.

Encapsulates session construction, timeouts and DEBUG request tracing so
repository modules avoid duplicating that plumbing. Errors are not handled
here: ``requests`` exceptions propagate to the caller, which decides how to
classify them.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import requests

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


class HttpClientFactory:
    """Supplies configured ``requests`` sessions to remote repositories.

    The resolution core never builds transports itself; whoever wires the
    engine creates one factory and hands it to each remote repository.
    """

    def __init__(
        self,
        connect_timeout: float = Constants.CONNECT_TIMEOUT,
        read_timeout: float = Constants.READ_TIMEOUT,
        headers: Optional[Dict[str, str]] = None,
    ):
        """Initialize the factory.

        Args:
            connect_timeout: Seconds allowed to establish a connection.
            read_timeout: Seconds allowed between bytes received.
            headers: Extra default headers for every session.
        """
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout
        self._headers = {"User-Agent": Constants.USER_AGENT}
        if headers:
            self._headers.update(headers)

    @property
    def timeout(self) -> Tuple[float, float]:
        """(connect, read) timeout tuple in the form ``requests`` expects."""
        return (self._connect_timeout, self._read_timeout)

    def get(self) -> requests.Session:
        """Return a new session carrying the default headers."""
        session = requests.Session()
        session.headers.update(self._headers)
        return session


_default_factory: Optional[HttpClientFactory] = None


def default_client_factory() -> HttpClientFactory:
    """Lazily created factory with the default timeouts."""
    global _default_factory  # pylint: disable=global-statement
    if _default_factory is None:
        _default_factory = HttpClientFactory()
    return _default_factory


def open_stream(
    session: requests.Session,
    url: str,
    *,
    timeout: Tuple[float, float],
    context: str,
    **kwargs: Any,
) -> requests.Response:
    """Issue a streaming GET request with DEBUG traces.

    The caller owns the returned response and must close it.

    Args:
        session: Session obtained from an HttpClientFactory.
        url: Target URL.
        timeout: (connect, read) timeouts in seconds.
        context: Human-readable source tag for logs (e.g. a repository id).
        **kwargs: Passed through to ``session.get``.

    Returns:
        requests.Response: The response, body not yet consumed.

    Raises:
        requests.RequestException: On any transport-level failure.
    """
    safe_target = safe_url(url)
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action="GET",
                    target=safe_target,
                    context=context,
                ),
            )
        res = session.get(url, stream=True, timeout=timeout, **kwargs)
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    status_code=res.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context,
                ),
            )
        return res


def content_length(response: requests.Response) -> Optional[int]:
    """Declared Content-Length of a response, or None when absent or invalid."""
    value = response.headers.get("Content-Length")
    if value is None:
        return None
    try:
        length = int(value)
    except (TypeError, ValueError):
        return None
    return length if length >= 0 else None
