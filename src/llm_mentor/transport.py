"""Pluggable HTTP transport used by provider adapters."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import requests

from llm_mentor.exceptions import TransportError

logger = logging.getLogger(__name__)

Headers = list[tuple[str, str]]


@dataclass(frozen=True)
class TransportResponse:
    """Raw HTTP response handed back to an adapter.

    Attributes:
        status: HTTP status code
        headers: Response headers as name/value pairs
        body: Raw response body
    """

    status: int
    headers: Headers = field(default_factory=list)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(ABC):
    """Interface for HTTP clients.

    Implementations perform exactly one request per call. Connection
    pooling, TLS and proxies are their own business; the same transport may
    be shared by several sessions, so it must be safe for concurrent use.
    """

    @abstractmethod
    def request(
        self,
        url: str,
        body: dict[str, Any],
        headers: Headers,
        options: dict[str, Any] | None = None,
    ) -> TransportResponse:
        """POST a JSON body.

        Args:
            url: Endpoint URL
            body: JSON-serializable request body
            headers: Request headers as name/value pairs
            options: Transport options such as ``timeout`` (seconds)

        Returns:
            The raw response, whatever its status

        Raises:
            TransportError: If no response was received
        """
        pass


class RequestsTransport(Transport):
    """Transport built on ``requests``.

    Args:
        session: Optional ``requests.Session`` to reuse connections
    """

    def __init__(self, session: requests.Session | None = None):
        self.session = session

    def request(
        self,
        url: str,
        body: dict[str, Any],
        headers: Headers,
        options: dict[str, Any] | None = None,
    ) -> TransportResponse:
        options = options or {}
        post = self.session.post if self.session is not None else requests.post
        try:
            response = post(
                url,
                json=body,
                headers=dict(headers),
                timeout=options.get("timeout"),
            )
        except requests.RequestException as e:
            raise TransportError(
                f"Request to {url} failed: {e}", original_error=e
            ) from e

        logger.debug("POST %s -> %s", url, response.status_code)
        return TransportResponse(
            status=response.status_code,
            headers=list(response.headers.items()),
            body=response.content,
        )
