"""Operation client for the storage XML API.

Translates put, multipart, copy, delete, get, list and blob-signing calls into
HTTP requests against one bucket and decodes the responses.
"""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Sequence
from typing import Any

import httpx

from .builder import VERSION_MATCH, Request
from .config import GoogleCloudStorageConfig
from .credential import GcpCredential
from .exceptions import (
    STORE,
    AlreadyExistsError,
    CompleteMultipartRequestError,
    CompleteMultipartResponseBodyError,
    GetResponseBodyError,
    InvalidListResponseError,
    InvalidMultipartResponseError,
    InvalidPutRequestError,
    InvalidPutResponseError,
    InvalidSignBlobResponseError,
    InvalidSignBlobSignatureError,
    ListRequestError,
    ListResponseBodyError,
    MetadataError,
    MissingVersionError,
    PreconditionError,
    PutResponseBodyError,
    SignBlobRequestError,
)
from .header import (
    USER_DEFINED_METADATA_HEADER_PREFIX,
    VERSION_HEADER,
    HeaderConfig,
    HeaderError,
    get_version,
    header_attributes,
    header_meta,
)
from .http import HttpClient, HttpResponse
from .retry import RetryError
from .types import (
    GetOptions,
    GetResult,
    MultipartId,
    PaginatedListOptions,
    PaginatedListResult,
    PartId,
    PayloadLike,
    PutMultipartOptions,
    PutOptions,
    PutResult,
    UpdateVersion,
    as_payload,
)
from .utils import hex_encode, percent_encode
from .xml import (
    CompleteMultipartUpload,
    CompleteMultipartUploadResult,
    DecodeError,
    EncodeError,
    InitiateMultipartUploadResult,
    ListResponse,
    unescape_quotes,
)

logger = logging.getLogger(__name__)

SIGN_BLOB_URL = "https://iamcredentials.googleapis.com/v1/projects/-/serviceAccounts/{}:signBlob"
COPY_SOURCE_HEADER = "x-goog-copy-source"


class GoogleCloudStorageClient:
    """Client for a single bucket of the storage XML API.

    The client keeps no per-request state, so one instance can serve any
    number of concurrent operations.

    Parameters
    ----------
    config : GoogleCloudStorageConfig
        Endpoint, credentials and retry policy.
    client : HttpClient
        Transport used for every request.
    max_list_results : int | None, optional
        Page size sent with every list request that does not set its own.
    put_header_config : HeaderConfig | None, optional
        Header requirements for write responses. Defaults to requiring an ETag.
    """

    # Header requirements shared by all read paths
    HEADER_CONFIG = HeaderConfig(
        etag_required=True,
        last_modified_required=True,
        version_header=VERSION_HEADER,
        user_defined_metadata_prefix=USER_DEFINED_METADATA_HEADER_PREFIX,
    )

    def __init__(
        self,
        config: GoogleCloudStorageConfig,
        client: HttpClient,
        *,
        max_list_results: int | None = None,
        put_header_config: HeaderConfig | None = None,
    ) -> None:
        self._config = config
        self.client = client
        self.bucket_name_encoded = percent_encode(config.bucket_name)
        self.max_list_results = str(max_list_results) if max_list_results is not None else None
        self.put_header_config = put_header_config or HeaderConfig(
            etag_required=True,
            last_modified_required=False,
            version_header=VERSION_HEADER,
            user_defined_metadata_prefix=USER_DEFINED_METADATA_HEADER_PREFIX,
        )

    @property
    def config(self) -> GoogleCloudStorageConfig:
        return self._config

    async def get_credential(self) -> GcpCredential | None:
        return await self._config.get_credential()

    def object_url(self, path: str) -> str:
        return self._config.object_url(path)

    def request(self, method: str, path: str) -> Request:
        """Start a single-use request builder for ``path``."""
        builder = self.client.request(method, self.object_url(path))
        return Request(path, self._config, builder, VERSION_HEADER)

    # Signing

    async def sign_blob(self, string_to_sign: str | bytes, client_email: str) -> str:
        """Sign ``string_to_sign`` with the service account ``client_email``.

        The signature is produced remotely by the IAM credentials ``signBlob``
        endpoint, so no private key is needed locally.

        Returns
        -------
        str
            Hex-encoded signature.
        """
        if isinstance(string_to_sign, str):
            string_to_sign = string_to_sign.encode("utf-8")
        credential = await self.get_credential()
        body = {"payload": base64.b64encode(string_to_sign).decode("ascii")}

        try:
            response = await (
                self.client.post(SIGN_BLOB_URL.format(client_email))
                .with_bearer_auth(credential)
                .json(body)
                .retryable(self._config.retry_config)
                .idempotent(True)
                .send()
            )
        except RetryError as e:
            raise SignBlobRequestError(e) from e

        try:
            data = await response.json()
            signed_blob = data["signedBlob"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise InvalidSignBlobResponseError(e) from e

        try:
            signature = base64.b64decode(signed_blob, validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            raise InvalidSignBlobSignatureError(e) from e

        return hex_encode(signature)

    # Writes

    async def put(
        self,
        path: str,
        payload: PayloadLike,
        opts: PutOptions | None = None,
    ) -> PutResult:
        """Upload ``payload`` to ``path`` in a single request.

        Raises
        ------
        MissingVersionError
            If ``opts.mode`` is an :class:`UpdateVersion` without a version.
        AlreadyExistsError
            If ``opts.mode`` is "create" and the object exists.
        PreconditionError
            If an update's expected version does not match.
        """
        opts = opts or PutOptions()
        mode = opts.mode

        builder = (
            self.request("PUT", path)
            .with_payload(as_payload(payload))
            .with_attributes(opts.attributes)
            .with_extensions(opts.extensions)
        )

        if mode == "overwrite":
            builder.idempotent(True)
        elif mode == "create":
            builder.header(VERSION_MATCH, "0")
        elif isinstance(mode, UpdateVersion):
            if mode.version is None:
                raise MissingVersionError()
            builder.header(VERSION_MATCH, mode.version)
        else:
            raise ValueError(f"Unknown put mode: {mode!r}")

        try:
            return await builder.do_put(self.put_header_config)
        except PreconditionError as e:
            if mode == "create":
                raise AlreadyExistsError(e.path, str(e)) from e
            raise

    async def put_part(
        self,
        path: str,
        upload_id: MultipartId,
        part_idx: int,
        data: PayloadLike,
    ) -> PartId:
        """Upload part ``part_idx`` (zero-based) of a multipart session."""
        result = await (
            self.request("PUT", path)
            .with_payload(as_payload(data))
            .query([("partNumber", part_idx + 1), ("uploadId", upload_id)])
            .idempotent(True)
            .do_put()
        )
        assert result.e_tag is not None
        return PartId(content_id=result.e_tag)

    async def multipart_initiate(
        self,
        path: str,
        opts: PutMultipartOptions | None = None,
    ) -> MultipartId:
        """Start a multipart session for ``path`` and return its upload id."""
        opts = opts or PutMultipartOptions()
        response = await (
            self.request("POST", path)
            .with_attributes(opts.attributes)
            .with_extensions(opts.extensions)
            .header("content-length", "0")
            .query([("uploads", "")])
            .send()
        )

        try:
            data = await response.bytes()
        except httpx.HTTPError as e:
            raise PutResponseBodyError(e) from e

        try:
            result = InitiateMultipartUploadResult.fromxml(data)
        except DecodeError as e:
            raise InvalidPutResponseError(e) from e

        logger.debug("Initiated multipart upload %s for %s", result.upload_id, path)
        return result.upload_id

    async def multipart_cleanup(self, path: str, multipart_id: MultipartId) -> None:
        """Abort the multipart session, discarding any uploaded parts."""
        response = await (
            self.request("DELETE", path)
            .header("content-type", "application/octet-stream")
            .header("content-length", "0")
            .query([("uploadId", multipart_id)])
            .idempotent(True)
            .send()
        )
        await response.close()
        logger.debug("Cleaned up multipart upload %s for %s", multipart_id, path)

    async def multipart_complete(
        self,
        path: str,
        multipart_id: MultipartId,
        completed_parts: Sequence[PartId],
    ) -> PutResult:
        """Assemble the uploaded parts, in the given order, into the final object."""
        if not completed_parts:
            # Zero-part completion is rejected by the backend; write an empty object instead
            logger.debug("Completing multipart upload %s with no parts as an empty put", multipart_id)
            await self.multipart_cleanup(path, multipart_id)
            return await self.put(path, b"")

        upload_info = CompleteMultipartUpload.from_part_ids(completed_parts)
        credential = await self.get_credential()

        try:
            data = unescape_quotes(upload_info.toxml())
        except EncodeError as e:
            raise InvalidPutRequestError(e) from e

        try:
            response = await (
                self.client.request("POST", self.object_url(path))
                .with_bearer_auth(credential)
                .query([("uploadId", multipart_id)])
                .body(data)
                .retryable(self._config.retry_config)
                .idempotent(True)
                .send()
            )
        except RetryError as e:
            raise CompleteMultipartRequestError(e) from e

        try:
            version = get_version(response.headers, VERSION_HEADER)
        except HeaderError as e:
            await response.close()
            raise MetadataError(e) from e

        try:
            body = await response.bytes()
        except httpx.HTTPError as e:
            raise CompleteMultipartResponseBodyError(e) from e

        try:
            result = CompleteMultipartUploadResult.fromxml(body)
        except DecodeError as e:
            raise InvalidMultipartResponseError(e) from e

        logger.debug("Completed multipart upload %s for %s with %d parts", multipart_id, path, len(completed_parts))
        return PutResult(e_tag=result.e_tag, version=version)

    async def delete_request(self, path: str) -> None:
        """Delete the object at ``path``."""
        response = await self.request("DELETE", path).send()
        await response.close()

    async def copy_request(self, from_path: str, to_path: str, if_not_exists: bool) -> None:
        """Server-side copy of ``from_path`` onto ``to_path``.

        Raises
        ------
        AlreadyExistsError
            If ``if_not_exists`` is set and ``to_path`` exists.
        """
        credential = await self.get_credential()
        source = f"{self.bucket_name_encoded}/{percent_encode(from_path)}"

        builder = self.client.request("PUT", self.object_url(to_path)).header(COPY_SOURCE_HEADER, source)
        if if_not_exists:
            builder.header(VERSION_MATCH, "0")

        try:
            response = await (
                builder.with_bearer_auth(credential)
                .header("content-length", "0")
                .retryable(self._config.retry_config)
                .idempotent(not if_not_exists)
                .send()
            )
        except RetryError as e:
            if if_not_exists and e.status == 412:
                raise AlreadyExistsError(to_path, f"Object at location {to_path} already exists: {e}") from e
            raise e.error(STORE, from_path) from e
        await response.close()

    # Reads

    async def get_request(self, path: str, options: GetOptions) -> HttpResponse:
        """Send a GET (or HEAD) for ``path`` and return the unread response."""
        credential = await self.get_credential()
        method = "HEAD" if options.head else "GET"

        request = self.client.request(method, self.object_url(path))
        if options.version is not None:
            request.query([("generation", options.version)])

        try:
            return await (
                request.with_bearer_auth(credential)
                .with_get_options(options)
                .retryable(self._config.retry_config)
                .idempotent(True)
                .send()
            )
        except RetryError as e:
            raise e.error(STORE, path) from e

    async def get_opts(self, path: str, options: GetOptions | None = None) -> GetResult:
        """Fetch ``path`` and validate its metadata headers."""
        options = options or GetOptions()
        response = await self.get_request(path, options)

        try:
            meta = header_meta(path, response.headers, self.HEADER_CONFIG)
        except HeaderError as e:
            await response.close()
            raise MetadataError(e) from e

        attributes = header_attributes(response.headers, self.HEADER_CONFIG)
        if options.range is not None:
            byte_range = options.range.as_range(meta.size)
        else:
            byte_range = (0, meta.size)

        if options.head:
            await response.close()
            return GetResult(meta=meta, range=byte_range, attributes=attributes)

        try:
            payload = await response.bytes()
        except httpx.HTTPError as e:
            raise GetResponseBodyError(e) from e
        return GetResult(meta=meta, range=byte_range, attributes=attributes, payload=payload)

    async def list_request(
        self,
        prefix: str | None,
        opts: PaginatedListOptions | None = None,
    ) -> PaginatedListResult:
        """Fetch exactly one page of the bucket listing."""
        opts = opts or PaginatedListOptions()
        credential = await self.get_credential()
        url = f"{self._config.base_url}/{self.bucket_name_encoded}"

        query: list[tuple[str, Any]] = [("list-type", "2")]
        if opts.delimiter is not None:
            query.append(("delimiter", opts.delimiter))
        if prefix is not None:
            query.append(("prefix", prefix))
        if opts.page_token is not None:
            query.append(("continuation-token", opts.page_token))
        if opts.max_keys is not None:
            query.append(("max-keys", opts.max_keys))
        elif self.max_list_results is not None:
            query.append(("max-keys", self.max_list_results))
        if opts.offset is not None:
            query.append(("start-after", opts.offset))

        try:
            response = await (
                self.client.request("GET", url)
                .extensions(opts.extensions)
                .query(query)
                .with_bearer_auth(credential)
                .retryable(self._config.retry_config)
                .idempotent(True)
                .send()
            )
        except RetryError as e:
            raise ListRequestError(e) from e

        try:
            data = await response.bytes()
        except httpx.HTTPError as e:
            raise ListResponseBodyError(e) from e

        try:
            listing = ListResponse.fromxml(data)
        except DecodeError as e:
            raise InvalidListResponseError(e) from e

        token = listing.next_continuation_token
        listing.next_continuation_token = None
        return PaginatedListResult(result=listing.to_list_result(), page_token=token)
