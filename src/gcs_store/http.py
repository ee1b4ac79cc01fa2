"""Thin async HTTP layer over httpx with fluent request building and retries."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Iterable, Mapping
from email.utils import format_datetime
from typing import TYPE_CHECKING, Any, Union

import httpx

from .retry import Backoff, RetryConfig, RetryError, is_retryable_status
from .types import Extensions, GetOptions, PutPayload

if TYPE_CHECKING:
    from datetime import datetime

    from .config import ClientOptions
    from .credential import GcpCredential

logger = logging.getLogger(__name__)

QueryParams = Union[Mapping[str, Any], Iterable[tuple[str, Any]]]

# Errors raised before any byte of the request reached the server
_CONNECT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


def _http_date(value: datetime) -> str:
    return format_datetime(value, usegmt=True)


class HttpResponse:
    """A streamed response whose body has not been consumed yet."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def status(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    async def bytes(self) -> bytes:
        """Read the whole body and release the connection."""
        try:
            return await self._response.aread()
        finally:
            await self._response.aclose()

    async def json(self) -> Any:
        return json.loads(await self.bytes())

    async def close(self) -> None:
        await self._response.aclose()


class HttpClient:
    """Owns the underlying :class:`httpx.AsyncClient`.

    Pass ``client`` to reuse an existing httpx client (for example one built
    around an :class:`httpx.MockTransport`).
    """

    def __init__(
        self,
        options: ClientOptions | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if client is None:
            kwargs: dict[str, Any] = {}
            if options is not None:
                kwargs["timeout"] = httpx.Timeout(options.timeout, connect=options.connect_timeout)
                if options.user_agent:
                    kwargs["headers"] = {"user-agent": options.user_agent}
            client = httpx.AsyncClient(**kwargs)
        self._client = client

    def request(self, method: str, url: str) -> HttpRequestBuilder:
        return HttpRequestBuilder(self, method, url)

    def post(self, url: str) -> HttpRequestBuilder:
        return self.request("POST", url)

    async def send(self, request: httpx.Request) -> httpx.Response:
        return await self._client.send(request, stream=True)

    def build_request(self, **kwargs: Any) -> httpx.Request:
        return self._client.build_request(**kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()


class HttpRequestBuilder:
    """Fluent description of one HTTP request."""

    def __init__(self, client: HttpClient, method: str, url: str) -> None:
        self.client = client
        self.method = method
        self.url = url
        self._headers: list[tuple[str, str]] = []
        self._params: list[tuple[str, str]] = []
        self._content: bytes | None = None
        self._extensions: Extensions = {}

    def header(self, key: str, value: Any) -> HttpRequestBuilder:
        self._headers.append((key.lower(), str(value)))
        return self

    def query(self, params: QueryParams) -> HttpRequestBuilder:
        items = params.items() if isinstance(params, Mapping) else params
        for key, value in items:
            self._params.append((key, "" if value is None else str(value)))
        return self

    def bearer_auth(self, token: str) -> HttpRequestBuilder:
        return self.header("authorization", f"Bearer {token}")

    def with_bearer_auth(self, credential: GcpCredential | None) -> HttpRequestBuilder:
        """Attach the bearer token, or nothing when running unauthenticated."""
        if credential is None:
            return self
        return self.bearer_auth(credential.bearer)

    def body(self, content: bytes | str) -> HttpRequestBuilder:
        self._content = content.encode("utf-8") if isinstance(content, str) else content
        return self

    def json(self, value: Any) -> HttpRequestBuilder:
        self.header("content-type", "application/json")
        return self.body(json.dumps(value))

    def extensions(self, extensions: Extensions) -> HttpRequestBuilder:
        self._extensions.update(extensions)
        return self

    def with_get_options(self, options: GetOptions) -> HttpRequestBuilder:
        """Layer range and conditional headers from ``options`` onto the request."""
        if options.range is not None:
            self.header("range", options.range.to_header())
        if options.if_match is not None:
            self.header("if-match", options.if_match)
        if options.if_none_match is not None:
            self.header("if-none-match", options.if_none_match)
        if options.if_modified_since is not None:
            self.header("if-modified-since", _http_date(options.if_modified_since))
        if options.if_unmodified_since is not None:
            self.header("if-unmodified-since", _http_date(options.if_unmodified_since))
        return self.extensions(options.extensions)

    def build(self) -> httpx.Request:
        return self.client.build_request(
            method=self.method,
            url=self.url,
            headers=self._headers,
            params=self._params or None,
            content=self._content,
            extensions=dict(self._extensions) or None,
        )

    def retryable(self, config: RetryConfig) -> RetryableRequest:
        return RetryableRequest(self, config)


class RetryableRequest:
    """A request plus the policy deciding whether it may be re-issued."""

    def __init__(self, request: HttpRequestBuilder, config: RetryConfig) -> None:
        self.request = request
        self.config = config
        self.is_idempotent = False

    def idempotent(self, idempotent: bool) -> RetryableRequest:
        self.is_idempotent = idempotent
        return self

    def payload(self, payload: PutPayload | None) -> RetryableRequest:
        if payload is not None:
            self.request.body(bytes(payload))
        return self

    def _may_retry(self, retries: int, started: float) -> bool:
        return retries < self.config.max_retries and time.monotonic() - started < self.config.retry_timeout

    async def send(self) -> HttpResponse:
        """Send, retrying transient failures as the policy allows.

        Raises
        ------
        RetryError
            On a non-success response or a transport error that is not retried.
        """
        backoff = Backoff(self.config.backoff)
        started = time.monotonic()
        retries = 0
        method, url = self.request.method, self.request.url
        while True:
            logger.debug("%s %s (idempotent=%s, attempt=%d)", method, url, self.is_idempotent, retries + 1)
            try:
                response = await self.request.client.send(self.request.build())
            except httpx.TransportError as exc:
                retry = isinstance(exc, _CONNECT_ERRORS) or self.is_idempotent
                if not retry or not self._may_retry(retries, started):
                    raise RetryError("Error after retries", retries=retries, source=exc) from exc
                delay = backoff.next()
                retries += 1
                logger.warning(
                    "%s %s failed with %s, retry %d in %.2fs", method, url, type(exc).__name__, retries, delay
                )
                await asyncio.sleep(delay)
                continue

            status = response.status_code
            if response.is_success:
                return HttpResponse(response)

            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError:
                body = None
            finally:
                await response.aclose()

            if status == 304:
                raise RetryError("Client error", status=status, retries=retries)

            if not is_retryable_status(status) or not self.is_idempotent or not self._may_retry(retries, started):
                label = "Server error" if status >= 500 else "Client error"
                raise RetryError(label, status=status, body=body, retries=retries)

            delay = backoff.next()
            retries += 1
            logger.warning("%s %s returned %d, retry %d in %.2fs", method, url, status, retries, delay)
            await asyncio.sleep(delay)
