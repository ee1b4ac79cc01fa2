"""GoogleCloudStorage store and MultipartUpload session classes."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote, urlsplit

import httpx

from .client import GoogleCloudStorageClient
from .config import GoogleCloudStorageConfig
from .exceptions import NotFoundError
from .http import HttpClient
from .types import (
    Attributes,
    Extensions,
    GetOptions,
    GetRange,
    GetResult,
    ListResult,
    MultipartId,
    ObjectMeta,
    PaginatedListOptions,
    PaginatedListResult,
    PartId,
    PayloadLike,
    PutMode,
    PutMultipartOptions,
    PutOptions,
    PutResult,
)
from .utils import DELIMITER, normalize_path, path_prefix

logger = logging.getLogger(__name__)

SIGNING_ALGORITHM = "GOOG4-RSA-SHA256"
MAX_SIGNED_URL_EXPIRY = 7 * 24 * 60 * 60


class MultipartUpload:
    """One multipart upload session.

    Parts are numbered in the order :meth:`put_part` is called, even when the
    uploads themselves run concurrently and finish out of order. The session
    ends with exactly one call to :meth:`complete` or :meth:`abort`.

    Used as an async context manager, the session completes on a clean exit
    and is aborted (best effort) when the block raises.
    """

    def __init__(self, client: GoogleCloudStorageClient, path: str, upload_id: MultipartId) -> None:
        """Initialize the session.

        Parameters
        ----------
        client : GoogleCloudStorageClient
            Client used for every request of the session.
        path : str
            Destination object path.
        upload_id : MultipartId
            Session id returned by the initiate call.
        """
        self.client = client
        self.path = path
        self.upload_id = upload_id
        self._parts: list[PartId | None] = []
        self._result: PutResult | None = None
        self._terminated = False

    def _check(self) -> None:
        if self._terminated:
            raise RuntimeError(f"Multipart upload {self.upload_id} is already terminated")

    @property
    def terminated(self) -> bool:
        return self._terminated

    @property
    def result(self) -> PutResult | None:
        return self._result

    async def put_part(self, data: PayloadLike) -> PartId:
        """Upload the next part.

        Parameters
        ----------
        data : PayloadLike
            Part content.

        Returns
        -------
        PartId
            Identifier of the uploaded part.
        """
        self._check()
        idx = len(self._parts)
        self._parts.append(None)
        part = await self.client.put_part(self.path, self.upload_id, idx, data)
        self._parts[idx] = part
        return part

    async def complete(self) -> PutResult:
        """Assemble all parts into the final object.

        The session stays open if the request fails, so it can still be
        aborted.

        Raises
        ------
        RuntimeError
            If the session is terminated or a part upload has not finished.
        """
        self._check()
        if any(part is None for part in self._parts):
            raise RuntimeError(f"Multipart upload {self.upload_id} has unfinished parts")
        parts = [part for part in self._parts if part is not None]
        self._result = await self.client.multipart_complete(self.path, self.upload_id, parts)
        self._terminated = True
        return self._result

    async def abort(self) -> None:
        """Discard the session and any uploaded parts.

        May be called again after a failed attempt.
        """
        self._check()
        await self.client.multipart_cleanup(self.path, self.upload_id)
        self._terminated = True

    async def __aenter__(self) -> MultipartUpload:
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> None:
        if self._terminated:
            return
        if exc is None:
            try:
                await self.complete()
            except Exception:
                await self._abort_quietly()
                raise
            return
        await self._abort_quietly()

    async def _abort_quietly(self) -> None:
        try:
            await self.abort()
        except Exception as abort_exc:
            # The original exception propagates; the session may linger server-side
            logger.warning("Failed to abort multipart upload %s for %s: %s", self.upload_id, self.path, abort_exc)


class GoogleCloudStorage:
    """Object store for one bucket of the storage XML API."""

    def __init__(self, client: GoogleCloudStorageClient) -> None:
        """Initialize the store.

        Parameters
        ----------
        client : GoogleCloudStorageClient
            Configured operation client.
        """
        self.client = client

    @classmethod
    def from_config(
        cls,
        config: GoogleCloudStorageConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        max_list_results: int | None = None,
    ) -> GoogleCloudStorage:
        """Build a store, optionally around an existing httpx client."""
        transport = HttpClient(config.client_options, client=http_client)
        return cls(GoogleCloudStorageClient(config, transport, max_list_results=max_list_results))

    @property
    def config(self) -> GoogleCloudStorageConfig:
        return self.client.config

    async def aclose(self) -> None:
        await self.client.client.aclose()

    async def __aenter__(self) -> GoogleCloudStorage:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"GoogleCloudStorage(bucket={self.config.bucket_name!r})"

    # Write APIs

    async def put(
        self,
        path: str,
        payload: PayloadLike,
        *,
        mode: PutMode = "overwrite",
        attributes: Attributes | None = None,
        extensions: Extensions | None = None,
    ) -> PutResult:
        """Write ``payload`` to ``path``.

        Parameters
        ----------
        path : str
            Object path.
        payload : PayloadLike
            Object content, possibly empty.
        mode : PutMode, optional
            "overwrite" (default), "create" or an :class:`UpdateVersion`.
        attributes : Attributes | None, optional
            Headers-backed object attributes.
        extensions : Extensions | None, optional
            Request extensions passed through to httpx.

        Returns
        -------
        PutResult
            ETag and generation of the written object.
        """
        opts = PutOptions(mode=mode, attributes=attributes or {}, extensions=extensions or {})
        return await self.put_opts(path, payload, opts)

    async def put_opts(self, path: str, payload: PayloadLike, opts: PutOptions) -> PutResult:
        return await self.client.put(normalize_path(path), payload, opts)

    async def put_multipart(
        self,
        path: str,
        *,
        attributes: Attributes | None = None,
        extensions: Extensions | None = None,
    ) -> MultipartUpload:
        """Start a multipart upload to ``path``."""
        path = normalize_path(path)
        opts = PutMultipartOptions(attributes=attributes or {}, extensions=extensions or {})
        upload_id = await self.client.multipart_initiate(path, opts)
        return MultipartUpload(self.client, path, upload_id)

    # Read APIs

    async def get(self, path: str, options: GetOptions | None = None) -> GetResult:
        """Fetch an object (or, with ``options.head``, only its metadata)."""
        return await self.client.get_opts(normalize_path(path), options)

    async def get_range(self, path: str, start: int, end: int) -> bytes:
        """Return bytes ``start`` (inclusive) to ``end`` (exclusive) of an object."""
        result = await self.get(path, GetOptions(range=GetRange.bounded(start, end)))
        return result.payload

    async def head(self, path: str) -> ObjectMeta:
        result = await self.get(path, GetOptions(head=True))
        return result.meta

    async def exists(self, path: str) -> bool:
        try:
            await self.head(path)
            return True
        except NotFoundError:
            return False

    # Delete / copy APIs

    async def delete(self, path: str) -> None:
        await self.client.delete_request(normalize_path(path))

    async def copy(self, from_path: str, to_path: str) -> None:
        """Server-side copy, overwriting ``to_path``."""
        await self.client.copy_request(normalize_path(from_path), normalize_path(to_path), False)

    async def copy_if_not_exists(self, from_path: str, to_path: str) -> None:
        """Server-side copy that fails with AlreadyExistsError if ``to_path`` exists."""
        await self.client.copy_request(normalize_path(from_path), normalize_path(to_path), True)

    async def rename(self, from_path: str, to_path: str) -> None:
        await self.copy(from_path, to_path)
        await self.delete(from_path)

    async def rename_if_not_exists(self, from_path: str, to_path: str) -> None:
        await self.copy_if_not_exists(from_path, to_path)
        await self.delete(from_path)

    # List APIs

    async def list_paginated(
        self,
        prefix: str | None = None,
        options: PaginatedListOptions | None = None,
    ) -> PaginatedListResult:
        """Fetch a single page of the listing under ``prefix``."""
        return await self.client.list_request(path_prefix(prefix), options)

    async def list(self, prefix: str | None = None, *, offset: str | None = None) -> AsyncIterator[ObjectMeta]:
        """Iterate over every object under ``prefix``, following continuation tokens.

        Parameters
        ----------
        prefix : str | None, optional
            Directory-like prefix; None lists the whole bucket.
        offset : str | None, optional
            Only yield objects whose path sorts after ``offset``.

        Yields
        ------
        ObjectMeta
            Objects in listing order.
        """
        page_token: str | None = None
        while True:
            options = PaginatedListOptions(offset=offset, page_token=page_token)
            page = await self.list_paginated(prefix, options)
            for meta in page.result.objects:
                yield meta
            if page.page_token is None:
                return
            page_token = page.page_token

    async def list_with_delimiter(self, prefix: str | None = None) -> ListResult:
        """List the objects and common prefixes directly under ``prefix``."""
        result = ListResult()
        page_token: str | None = None
        while True:
            options = PaginatedListOptions(delimiter=DELIMITER, page_token=page_token)
            page = await self.list_paginated(prefix, options)
            result.objects.extend(page.result.objects)
            result.common_prefixes.extend(page.result.common_prefixes)
            if page.page_token is None:
                return result
            page_token = page.page_token

    # Signing APIs

    async def signed_url(
        self,
        method: str,
        path: str,
        expires_in: int,
        *,
        now: datetime | None = None,
    ) -> str:
        """Create a V4 signed URL for ``method`` on ``path``.

        The signature comes from the delegated signBlob endpoint, using the
        service account of the configured signing credential provider.

        Parameters
        ----------
        method : str
            HTTP method the URL is valid for.
        path : str
            Object path.
        expires_in : int
            Validity in seconds, at most seven days.
        now : datetime | None, optional
            Signing time; defaults to the current UTC time.

        Returns
        -------
        str
            The signed URL.
        """
        if not 0 < expires_in <= MAX_SIGNED_URL_EXPIRY:
            raise ValueError(f"expires_in must be between 1 and {MAX_SIGNED_URL_EXPIRY} seconds")

        now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        date = now.strftime("%Y%m%d")
        timestamp = now.strftime("%Y%m%dT%H%M%SZ")
        signing_credential = await self.config.signing_credentials.get_credential()
        email = signing_credential.email

        base = urlsplit(self.config.base_url)
        host = base.netloc
        canonical_uri = f"{base.path.rstrip('/')}/{quote(self.config.bucket_name, safe='')}/{quote(normalize_path(path), safe='/')}"
        scope = f"{date}/auto/storage/goog4_request"

        params = {
            "X-Goog-Algorithm": SIGNING_ALGORITHM,
            "X-Goog-Credential": f"{email}/{scope}",
            "X-Goog-Date": timestamp,
            "X-Goog-Expires": str(expires_in),
            "X-Goog-SignedHeaders": "host",
        }
        canonical_query = "&".join(
            f"{quote(k, safe='')}={quote(v, safe='')}" for k, v in sorted(params.items())
        )
        canonical_request = "\n".join(
            [method.upper(), canonical_uri, canonical_query, f"host:{host}\n", "host", "UNSIGNED-PAYLOAD"]
        )
        string_to_sign = "\n".join(
            [SIGNING_ALGORITHM, timestamp, scope, hashlib.sha256(canonical_request.encode("utf-8")).hexdigest()]
        )

        signature = await self.client.sign_blob(string_to_sign, email)
        return f"{base.scheme}://{host}{canonical_uri}?{canonical_query}&X-Goog-Signature={signature}"
