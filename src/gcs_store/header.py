"""Extraction of object metadata from response headers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from .exceptions import GcsStoreError
from .types import Attribute, Attributes, Metadata, ObjectMeta, PutResult

VERSION_HEADER = "x-goog-generation"
USER_DEFINED_METADATA_HEADER_PREFIX = "x-goog-meta-"

_ATTRIBUTE_HEADERS = {attribute.value: attribute for attribute in Attribute}


class HeaderError(GcsStoreError):
    """Raised when a response lacks or garbles a metadata header."""
    pass


class MissingEtag(HeaderError):
    def __init__(self) -> None:
        super().__init__("ETag Header missing from response")


class MissingLastModified(HeaderError):
    def __init__(self) -> None:
        super().__init__("Last-Modified Header missing from response")


class MissingContentLength(HeaderError):
    def __init__(self) -> None:
        super().__init__("Content-Length Header missing from response")


class BadHeader(HeaderError):
    def __init__(self, name: str, value: str, reason: str) -> None:
        self.name = name
        self.value = value
        super().__init__(f"Invalid {name} header {value!r}: {reason}")


@dataclass(frozen=True)
class HeaderConfig:
    """Which headers a response must carry.

    ``version_header`` names the header read as the object version;
    ``user_defined_metadata_prefix`` marks headers turned into
    :class:`~gcs_store.types.Metadata` attributes.
    """

    etag_required: bool = True
    last_modified_required: bool = True
    version_header: str | None = VERSION_HEADER
    user_defined_metadata_prefix: str | None = USER_DEFINED_METADATA_HEADER_PREFIX


def get_etag(headers: Mapping[str, str]) -> str:
    etag = headers.get("etag")
    if etag is None:
        raise MissingEtag()
    return etag


def get_optional_header(headers: Mapping[str, str], name: str) -> str | None:
    return headers.get(name)


def get_version(headers: Mapping[str, str], version_header: str) -> str | None:
    return get_optional_header(headers, version_header)


def get_put_result(headers: Mapping[str, str], version_header: str) -> PutResult:
    """Build a :class:`PutResult` from the headers of a write response.

    Raises
    ------
    MissingEtag
        If the response has no ETag header.
    """
    return PutResult(e_tag=get_etag(headers), version=get_version(headers, version_header))


def _parse_last_modified(value: str) -> datetime:
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError) as e:
        raise BadHeader("Last-Modified", value, str(e)) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def header_meta(location: str, headers: Mapping[str, str], config: HeaderConfig) -> ObjectMeta:
    """Build :class:`ObjectMeta` for ``location`` from a get/head response.

    Raises
    ------
    HeaderError
        If a header required by ``config`` is missing or malformed.
    """
    last_modified_raw = headers.get("last-modified")
    if last_modified_raw is not None:
        last_modified = _parse_last_modified(last_modified_raw)
    elif config.last_modified_required:
        raise MissingLastModified()
    else:
        last_modified = datetime.now(timezone.utc)

    e_tag = headers.get("etag")
    if e_tag is None and config.etag_required:
        raise MissingEtag()

    # A ranged response reports the full size after the slash of Content-Range
    content_range = headers.get("content-range")
    if content_range is not None and "/" in content_range:
        size_raw = content_range.rsplit("/", 1)[1]
        name = "Content-Range"
    else:
        size_raw = headers.get("content-length")
        name = "Content-Length"
        if size_raw is None:
            raise MissingContentLength()
    try:
        size = int(size_raw)
    except ValueError as e:
        raise BadHeader(name, size_raw, "not an integer") from e

    version = None
    if config.version_header is not None:
        version = headers.get(config.version_header)

    return ObjectMeta(
        location=location,
        last_modified=last_modified,
        size=size,
        e_tag=e_tag,
        version=version,
    )


def header_attributes(headers: Mapping[str, str], config: HeaderConfig) -> Attributes:
    """Collect standard and user-defined attributes from response headers."""
    attributes: Attributes = {}
    prefix = config.user_defined_metadata_prefix
    for name, value in headers.items():
        name = name.lower()
        if name in _ATTRIBUTE_HEADERS:
            attributes[_ATTRIBUTE_HEADERS[name]] = value
        elif prefix and name.startswith(prefix):
            attributes[Metadata(name[len(prefix):])] = value
    return attributes
