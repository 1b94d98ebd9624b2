"""HTTP execution over httpx.

Receives an already resolved DispatchPayload and reports status,
headers, body, elapsed time and size.
"""

import logging
import time

import httpx

from api_request_kit.parser.base import DispatchPayload, HttpResponse

logger = logging.getLogger(__name__)


class DispatchError(RuntimeError):
    """The request could not be completed (timeout, connection failure, ...)."""


class HttpClient:
    """Async HTTP client wrapper with timing capture."""

    def __init__(
        self,
        timeout: float = 30.0,
        follow_redirects: bool = True,
        verify_ssl: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.follow_redirects = follow_redirects
        self.verify_ssl = verify_ssl
        self.transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=self.follow_redirects,
                verify=self.verify_ssl,
                transport=self.transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def send(self, payload: DispatchPayload) -> HttpResponse:
        """Execute `payload` and capture the response."""
        client = await self._get_client()

        headers = dict(payload.headers)
        if payload.cookies and not any(k.lower() == "cookie" for k in headers):
            headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in payload.cookies.items())

        start_time = time.perf_counter()
        try:
            response = await client.request(
                payload.method,
                payload.url,
                headers=headers,
                content=payload.body.encode("utf-8") if payload.body is not None else None,
            )
            body_bytes = await response.aread()
        except httpx.TimeoutException as e:
            raise DispatchError(f"Timeout: {e}") from e
        except httpx.HTTPError as e:
            raise DispatchError(f"Request error: {e}") from e
        elapsed_ms = int((time.perf_counter() - start_time) * 1000)

        logger.debug("%s %s -> %s in %dms", payload.method, payload.url, response.status_code, elapsed_ms)

        return HttpResponse(
            status_code=response.status_code,
            time_ms=elapsed_ms,
            size_bytes=len(body_bytes),
            headers=dict(response.headers),
            cookies=dict(response.cookies),
            body=_decode(body_bytes),
            content_type=response.headers.get("content-type", ""),
        )


def _decode(body: bytes) -> str:
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError:
        return body.decode("latin-1")
