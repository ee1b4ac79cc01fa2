"""XML documents exchanged with the storage XML API.

Responses may or may not carry the S3 document namespace, so every lookup
matches tags in any namespace.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from xml.etree import ElementTree as ET

from .types import ListResult, ObjectMeta, PartId


class DecodeError(ValueError):
    """Raised when a response document does not match the expected schema."""
    pass


class EncodeError(ValueError):
    """Raised when a request document cannot be serialized."""
    pass


def _parse(data: bytes | str) -> ET.Element:
    try:
        return ET.fromstring(data)
    except ET.ParseError as e:
        raise DecodeError(f"malformed XML: {e}") from e


def _tag(element: ET.Element) -> str:
    return element.tag.rsplit("}", 1)[-1]


def _expect_root(element: ET.Element, name: str) -> None:
    if _tag(element) != name:
        raise DecodeError(f"expected root element {name}, got {_tag(element)}")


def findall(element: ET.Element, name: str) -> list[ET.Element]:
    return element.findall(f"{{*}}{name}")


def findtext(element: ET.Element, name: str, strict: bool = False) -> str | None:
    child = element.find(f"{{*}}{name}")
    if child is None:
        if strict:
            raise DecodeError(f"missing element {name} in {_tag(element)}")
        return None
    return child.text or ""


def unescape_quotes(document: str) -> str:
    """Turn escaped quotes back into literal ones; the backend reads ETag text verbatim."""
    return document.replace("&quot;", '"')


def _parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise DecodeError(f"invalid timestamp {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class InitiateMultipartUploadResult:
    upload_id: str
    bucket: str | None = None
    key: str | None = None

    @classmethod
    def fromxml(cls, data: bytes | str) -> InitiateMultipartUploadResult:
        root = _parse(data)
        _expect_root(root, "InitiateMultipartUploadResult")
        return cls(
            upload_id=findtext(root, "UploadId", strict=True) or "",
            bucket=findtext(root, "Bucket"),
            key=findtext(root, "Key"),
        )


@dataclass(frozen=True)
class MultipartPart:
    e_tag: str
    part_number: int


@dataclass
class CompleteMultipartUpload:
    """Completion document: parts in the order they make up the object."""

    parts: list[MultipartPart] = field(default_factory=list)

    @classmethod
    def from_part_ids(cls, parts: Sequence[PartId]) -> CompleteMultipartUpload:
        return cls(
            parts=[
                MultipartPart(e_tag=part.content_id, part_number=idx + 1)
                for idx, part in enumerate(parts)
            ]
        )

    def toxml(self) -> str:
        root = ET.Element("CompleteMultipartUpload")
        for part in self.parts:
            element = ET.SubElement(root, "Part")
            ET.SubElement(element, "PartNumber").text = str(part.part_number)
            ET.SubElement(element, "ETag").text = part.e_tag
        try:
            return ET.tostring(root, encoding="unicode")
        except (TypeError, ValueError) as e:
            raise EncodeError(str(e)) from e

    @classmethod
    def fromxml(cls, data: bytes | str) -> CompleteMultipartUpload:
        root = _parse(data)
        _expect_root(root, "CompleteMultipartUpload")
        parts = []
        for element in findall(root, "Part"):
            number = findtext(element, "PartNumber", strict=True) or ""
            try:
                part_number = int(number)
            except ValueError as e:
                raise DecodeError(f"invalid part number {number!r}") from e
            parts.append(MultipartPart(e_tag=findtext(element, "ETag", strict=True) or "", part_number=part_number))
        return cls(parts=parts)


@dataclass(frozen=True)
class CompleteMultipartUploadResult:
    e_tag: str

    @classmethod
    def fromxml(cls, data: bytes | str) -> CompleteMultipartUploadResult:
        root = _parse(data)
        _expect_root(root, "CompleteMultipartUploadResult")
        return cls(e_tag=findtext(root, "ETag", strict=True) or "")


@dataclass(frozen=True)
class ListContents:
    key: str
    size: int
    last_modified: datetime
    e_tag: str | None = None


@dataclass
class ListResponse:
    """A ``ListBucketResult`` document (list-type 2)."""

    contents: list[ListContents] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)
    next_continuation_token: str | None = None

    @classmethod
    def fromxml(cls, data: bytes | str) -> ListResponse:
        root = _parse(data)
        _expect_root(root, "ListBucketResult")
        contents = []
        for element in findall(root, "Contents"):
            size_raw = findtext(element, "Size", strict=True) or ""
            try:
                size = int(size_raw)
            except ValueError as e:
                raise DecodeError(f"invalid size {size_raw!r}") from e
            contents.append(
                ListContents(
                    key=findtext(element, "Key", strict=True) or "",
                    size=size,
                    last_modified=_parse_timestamp(findtext(element, "LastModified", strict=True) or ""),
                    e_tag=findtext(element, "ETag"),
                )
            )
        common_prefixes = [
            findtext(element, "Prefix", strict=True) or ""
            for element in findall(root, "CommonPrefixes")
        ]
        token = findtext(root, "NextContinuationToken")
        return cls(
            contents=contents,
            common_prefixes=common_prefixes,
            next_continuation_token=token or None,
        )

    def to_list_result(self) -> ListResult:
        return ListResult(
            objects=[
                ObjectMeta(
                    location=item.key,
                    last_modified=item.last_modified,
                    size=item.size,
                    e_tag=item.e_tag,
                )
                for item in self.contents
            ],
            common_prefixes=[prefix.rstrip("/") for prefix in self.common_prefixes],
        )
