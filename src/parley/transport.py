"""HTTP capability used by the generation interpreter.

The transport sends a ``WireRequest`` and returns the status, headers and
body as data. It never retries and never interprets status codes; mapping
non-2xx responses to errors is the interpreter's job.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import httpx

from parley.providers._errors import wrap_transport_error
from parley.providers.base import WireRequest, WireResponse

if TYPE_CHECKING:
    from types import TracebackType

log = logging.getLogger(__name__)


@runtime_checkable
class HttpTransport(Protocol):
    """Anything that can exchange a ``WireRequest`` for a ``WireResponse``."""

    async def send(self, request: WireRequest) -> WireResponse:
        """Perform the exchange.

        Raises:
            RequestError: The exchange failed below HTTP (connect, timeout).
        """
        ...


class HttpxTransport:
    """``HttpTransport`` over a shared ``httpx.AsyncClient``.

    Pass ``client`` to reuse an existing client (for example one built on
    ``httpx.MockTransport`` in tests); a client created here is closed by
    ``aclose``.
    """

    def __init__(
        self,
        *,
        timeout_s: float = 60.0,
        client: httpx.AsyncClient | None = None,
        provider: str | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_s))
        self.provider = provider

    async def send(self, request: WireRequest) -> WireResponse:
        """Send ``request``; non-2xx responses are returned, not raised."""
        try:
            response = await self._client.request(
                request.method,
                request.url,
                headers=dict(request.headers),
                content=request.body,
            )
        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            log.debug("Transport failure for %s %s: %s", request.method, request.url, type(e).__name__)
            raise wrap_transport_error(e, provider=self.provider) from e

        log.debug("%s %s -> %d", request.method, request.url, response.status_code)
        return WireResponse(
            status_code=response.status_code,
            body=response.content,
            headers=dict(response.headers),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
