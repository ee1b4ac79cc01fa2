"""Single-use builder for requests against one object path."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .exceptions import MetadataError
from .header import USER_DEFINED_METADATA_HEADER_PREFIX, HeaderError, get_put_result
from .http import QueryParams
from .retry import RetryError
from .types import Attribute, Attributes, Extensions, Metadata, PutPayload, PutResult

if TYPE_CHECKING:
    from .config import GoogleCloudStorageConfig
    from .header import HeaderConfig
    from .http import HttpRequestBuilder, HttpResponse

DEFAULT_CONTENT_TYPE = "application/octet-stream"
VERSION_MATCH = "x-goog-if-generation-match"


class Request:
    """Assembles one request, then sends it exactly once.

    Every configuring method returns the builder so calls can be chained.
    After :meth:`send` (or :meth:`do_put`) the builder is spent and any
    further use raises ``RuntimeError``.
    """

    def __init__(
        self,
        path: str,
        config: GoogleCloudStorageConfig,
        builder: HttpRequestBuilder,
        version_header: str,
    ) -> None:
        self.path = path
        self.config = config
        self.builder = builder
        self.version_header = version_header
        self.payload: PutPayload | None = None
        self.is_idempotent = False
        self._sent = False

    def _check(self) -> None:
        if self._sent:
            raise RuntimeError(f"Request for {self.path} has already been sent")

    def header(self, key: str, value: Any) -> Request:
        self._check()
        self.builder.header(key, value)
        return self

    def query(self, params: QueryParams) -> Request:
        self._check()
        self.builder.query(params)
        return self

    def idempotent(self, idempotent: bool) -> Request:
        self._check()
        self.is_idempotent = idempotent
        return self

    def with_attributes(self, attributes: Attributes) -> Request:
        """Translate attributes into headers, filling in a content type if none is given."""
        self._check()
        has_content_type = False
        for key, value in attributes.items():
            if isinstance(key, Metadata):
                self.builder.header(f"{USER_DEFINED_METADATA_HEADER_PREFIX}{key.key}", value)
                continue
            attribute = Attribute(key)
            if attribute is Attribute.CONTENT_TYPE:
                has_content_type = True
            self.builder.header(attribute.value, value)

        if not has_content_type:
            content_type = self.config.client_options.get_content_type(self.path)
            self.builder.header("content-type", content_type or DEFAULT_CONTENT_TYPE)
        return self

    def with_payload(self, payload: PutPayload) -> Request:
        self._check()
        self.builder.header("content-length", payload.content_length)
        self.payload = payload
        return self

    def with_extensions(self, extensions: Extensions) -> Request:
        self._check()
        self.builder.extensions(extensions)
        return self

    async def send(self) -> HttpResponse:
        """Authenticate and dispatch the request through the retry engine.

        Raises
        ------
        GcsStoreError
            The status-derived error for this path if the request failed.
        """
        self._check()
        self._sent = True
        credential = await self.config.get_credential()
        try:
            return await (
                self.builder.with_bearer_auth(credential)
                .retryable(self.config.retry_config)
                .idempotent(self.is_idempotent)
                .payload(self.payload)
                .send()
            )
        except RetryError as e:
            raise e.error(path=self.path) from e

    async def do_put(self, header_config: HeaderConfig | None = None) -> PutResult:
        """Send and read the :class:`PutResult` from the response headers.

        ``header_config`` decides whether the ETag header is mandatory; by
        default it is.
        """
        response = await self.send()
        await response.close()
        if header_config is not None and not header_config.etag_required:
            return PutResult(
                e_tag=response.headers.get("etag"),
                version=response.headers.get(self.version_header),
            )
        try:
            return get_put_result(response.headers, self.version_header)
        except HeaderError as e:
            raise MetadataError(e) from e
