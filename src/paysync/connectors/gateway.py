"""Remote request gateway used to reach provider hosts.

The gateway executes exactly one HTTP request and reports the status and raw
body. It never retries; callers decide how a failure is counted.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

import requests

from ..errors import GatewayError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayResponse:
    """Status and raw body of one provider request."""

    status: int
    body: str
    final_url: str | None = None

    @property
    def ok(self) -> bool:
        """True for any 2xx status."""
        return 200 <= self.status < 300


class RequestGateway(Protocol):
    """Executes a single request against a third-party host."""

    def request(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: str | None = None,
    ) -> GatewayResponse:
        """Send one request and return its status and body."""
        ...


class RequestsGateway:
    """Pass-through gateway backed by a requests session."""

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            session: Optional preconfigured session (shared cookie jar)
            timeout: Optional socket timeout in seconds; None waits indefinitely
        """
        self._session = session or requests.Session()
        self._timeout = timeout

    def request(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: str | None = None,
    ) -> GatewayResponse:
        """Send one request and return its status and body.

        Raises:
            GatewayError: If the request fails before a response is received
        """
        logger.debug(f"{method} {url}")
        try:
            response = self._session.request(
                method,
                url,
                headers=headers or {},
                data=body.encode("utf-8") if body is not None else None,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise GatewayError(f"{method} {url} failed: {e}") from e

        return GatewayResponse(
            status=response.status_code,
            body=response.text,
            final_url=response.url,
        )

    def close(self) -> None:
        """Close the underlying session."""
        self._session.close()
