"""
Broker assignment client.

Asks the broker for a tunnel (a specific subdomain or a server-chosen one)
and returns the connection parameters. Every failure is raised as
AssignmentError; nothing here retries.
"""

import httpx
from pydantic import ValidationError

from quickportal.config import config
from quickportal.exceptions import AssignmentError
from quickportal.models.tunnel import TunnelAssignment, broker_hostname
from quickportal.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_ERROR_MESSAGE = "tunnel server returned an error, please try again"


def _handle_http_error(e: httpx.HTTPStatusError) -> None:
    """Turn a non-2xx broker response into an AssignmentError."""
    status = e.response.status_code
    try:
        body = e.response.json()
        detail = body.get("message") if isinstance(body, dict) else None
    except ValueError:
        detail = None

    logger.error(f"Broker returned HTTP {status}: {detail or e.response.text}")
    raise AssignmentError(
        detail or DEFAULT_ERROR_MESSAGE, status_code=status, detail=detail
    )


class AssignmentClient:
    """HTTP client for the broker's tunnel assignment endpoint."""

    def __init__(
        self,
        host: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize client.

        Args:
            host: Broker base URL (defaults to the configured host).
            timeout: Request timeout in seconds.
            transport: Custom httpx transport, mainly for tests.
        """
        self.host = host.rstrip("/") if host else config.get_host_url()
        self.timeout = timeout or config.ASSIGNMENT_TIMEOUT_SECONDS
        self._transport = transport

    def build_url(self, subdomain: str | None = None) -> str:
        """URL requesting ``subdomain``, or a server-assigned one when None."""
        if subdomain:
            return f"{self.host}/{subdomain}"
        return f"{self.host}/?new"

    async def request_assignment(
        self, subdomain: str | None = None
    ) -> TunnelAssignment:
        """
        Request a tunnel from the broker.

        Args:
            subdomain: Desired subdomain, or None to let the broker pick.

        Returns:
            The broker's TunnelAssignment.

        Raises:
            AssignmentError: Broker unreachable, rejected the request, or sent
                a payload that is not a valid assignment.
        """
        url = self.build_url(subdomain)
        logger.debug(f"Requesting tunnel from {url}")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            _handle_http_error(e)
        except httpx.HTTPError as e:
            logger.error(f"Tunnel server unreachable at {self.host}: {e}")
            raise AssignmentError(f"tunnel server unreachable: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise AssignmentError(f"invalid response from tunnel server: {e}") from e

        if not isinstance(body, dict):
            raise AssignmentError("invalid response from tunnel server")

        try:
            assignment = TunnelAssignment.model_validate(
                {**body, "remote_host": broker_hostname(self.host)}
            )
        except ValidationError as e:
            message = body.get("message") or f"invalid tunnel assignment: {e}"
            raise AssignmentError(message, detail=body.get("message")) from e

        logger.debug(
            f"Assigned tunnel id={assignment.id} url={assignment.url} "
            f"port={assignment.port} max_conn={assignment.max_conn_count}"
        )
        return assignment
