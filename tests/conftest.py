"""
In-memory fake of the storage XML API, served through httpx.MockTransport.

The fake keeps objects with generations, multipart sessions and a request log
so tests can assert both on the wire format and on the resulting bucket state.
"""
from __future__ import annotations

import base64
import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from urllib.parse import unquote
from xml.etree import ElementTree as ET

import httpx
import pytest

from gcs_store import (
    BackoffConfig,
    GcpCredential,
    GcpSigningCredential,
    GoogleCloudStorage,
    GoogleCloudStorageConfig,
    RetryConfig,
    StaticCredentialProvider,
)

BUCKET = "test-bucket"
BASE_URL = "http://gcs.test"
TOKEN = "test-token"
SIGNER = "signer@project.iam.gserviceaccount.com"
NS = "http://doc.s3.amazonaws.com/2006-03-01"


@dataclass
class FakeObject:
    data: bytes
    generation: int
    headers: dict[str, str]
    last_modified: datetime = field(default_factory=lambda: datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))

    @property
    def etag(self) -> str:
        return f'"{hashlib.md5(self.data).hexdigest()}"'


@dataclass
class FakeUpload:
    key: str
    headers: dict[str, str]
    parts: dict[int, bytes] = field(default_factory=dict)


def _etag(data: bytes) -> str:
    return f'"{hashlib.md5(data).hexdigest()}"'


def _xml(root: ET.Element) -> bytes:
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


class FakeGcsServer:
    def __init__(self, bucket: str = BUCKET, token: str | None = TOKEN) -> None:
        self.bucket = bucket
        self.token = token
        self.objects: dict[str, FakeObject] = {}
        self.uploads: dict[str, FakeUpload] = {}
        self.requests: list[httpx.Request] = []
        # Statuses returned (once each, in order) before normal handling
        self.fail_next: list[int] = []
        self.sign_response: dict | None = None
        self._generation = 1000
        self._upload_seq = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_next:
            return httpx.Response(self.fail_next.pop(0), content=b"<Error><Code>Injected</Code></Error>")
        if self.token is not None and request.headers.get("authorization") != f"Bearer {self.token}":
            return httpx.Response(401, content=b"<Error><Code>AuthenticationRequired</Code></Error>")
        if request.url.host == "iamcredentials.googleapis.com":
            return self._sign(request)

        parts = request.url.path.lstrip("/").split("/", 1)
        if parts[0] != self.bucket:
            return httpx.Response(404, content=b"<Error><Code>NoSuchBucket</Code></Error>")
        if len(parts) == 1 or not parts[1]:
            return self._list(request)
        key = parts[1]
        params = request.url.params
        method = request.method

        if method == "POST" and "uploads" in params:
            return self._initiate(request, key)
        if method == "POST" and "uploadId" in params:
            return self._complete(request, key, params["uploadId"])
        if method == "PUT" and "uploadId" in params:
            return self._put_part(request, params["uploadId"], int(params["partNumber"]))
        if method == "DELETE" and "uploadId" in params:
            self.uploads.pop(params["uploadId"], None)
            return httpx.Response(204)
        if method == "PUT" and "x-goog-copy-source" in request.headers:
            return self._copy(request, key)
        if method == "PUT":
            return self._put(request, key)
        if method in ("GET", "HEAD"):
            return self._get(request, key)
        if method == "DELETE":
            if self.objects.pop(key, None) is None:
                return httpx.Response(404, content=b"<Error><Code>NoSuchKey</Code></Error>")
            return httpx.Response(204)
        return httpx.Response(405)

    # helpers

    def next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def write(self, key: str, data: bytes, headers: dict[str, str] | None = None) -> FakeObject:
        obj = FakeObject(data=data, generation=self.next_generation(), headers=dict(headers or {}))
        self.objects[key] = obj
        return obj

    def _precondition_failed(self, request: httpx.Request, key: str) -> bool:
        expected = request.headers.get("x-goog-if-generation-match")
        if expected is None:
            return False
        current = self.objects.get(key)
        if expected == "0":
            return current is not None
        return current is None or str(current.generation) != expected

    @staticmethod
    def _stored_headers(request: httpx.Request) -> dict[str, str]:
        keep = ("cache-control", "content-disposition", "content-encoding", "content-language", "content-type")
        return {k: v for k, v in request.headers.items() if k in keep or k.startswith("x-goog-meta-")}

    def _written(self, obj: FakeObject) -> httpx.Response:
        return httpx.Response(200, headers={"etag": obj.etag, "x-goog-generation": str(obj.generation)})

    # handlers

    def _sign(self, request: httpx.Request) -> httpx.Response:
        if self.sign_response is not None:
            return httpx.Response(200, json=self.sign_response)
        payload = base64.b64decode(json.loads(request.content)["payload"])
        signature = hashlib.sha256(payload).digest()
        return httpx.Response(200, json={"keyId": "k1", "signedBlob": base64.b64encode(signature).decode()})

    def _put(self, request: httpx.Request, key: str) -> httpx.Response:
        if self._precondition_failed(request, key):
            return httpx.Response(412, content=b"<Error><Code>PreconditionFailed</Code></Error>")
        obj = self.write(key, request.content, self._stored_headers(request))
        return self._written(obj)

    def _copy(self, request: httpx.Request, key: str) -> httpx.Response:
        source = unquote(request.headers["x-goog-copy-source"])
        bucket, _, source_key = source.partition("/")
        if bucket != self.bucket or source_key not in self.objects:
            return httpx.Response(404, content=b"<Error><Code>NoSuchKey</Code></Error>")
        if self._precondition_failed(request, key):
            return httpx.Response(412, content=b"<Error><Code>PreconditionFailed</Code></Error>")
        src = self.objects[source_key]
        obj = self.write(key, src.data, src.headers)
        return httpx.Response(200, content=b"<CopyObjectResult/>", headers={"x-goog-generation": str(obj.generation)})

    def _get(self, request: httpx.Request, key: str) -> httpx.Response:
        obj = self.objects.get(key)
        generation = request.url.params.get("generation")
        if obj is None or (generation is not None and generation != str(obj.generation)):
            return httpx.Response(404, content=b"<Error><Code>NoSuchKey</Code></Error>")
        if request.headers.get("if-none-match") == obj.etag:
            return httpx.Response(304)
        if_match = request.headers.get("if-match")
        if if_match is not None and if_match != obj.etag:
            return httpx.Response(412, content=b"<Error><Code>PreconditionFailed</Code></Error>")

        headers = {
            "etag": obj.etag,
            "last-modified": format_datetime(obj.last_modified, usegmt=True),
            "x-goog-generation": str(obj.generation),
            **obj.headers,
        }
        data = obj.data
        status = 200
        range_header = request.headers.get("range")
        if range_header:
            start_raw, _, end_raw = range_header.removeprefix("bytes=").partition("-")
            size = len(obj.data)
            if not start_raw:
                start, end = max(size - int(end_raw), 0), size
            else:
                start, end = int(start_raw), (int(end_raw) + 1 if end_raw else size)
            data = obj.data[start:end]
            headers["content-range"] = f"bytes {start}-{end - 1}/{size}"
            status = 206
        headers["content-length"] = str(len(data))
        if request.method == "HEAD":
            return httpx.Response(status, headers=headers)
        return httpx.Response(status, headers=headers, content=data)

    def _initiate(self, request: httpx.Request, key: str) -> httpx.Response:
        self._upload_seq += 1
        upload_id = f"upload-{self._upload_seq}"
        self.uploads[upload_id] = FakeUpload(key=key, headers=self._stored_headers(request))
        root = ET.Element("InitiateMultipartUploadResult", xmlns=NS)
        ET.SubElement(root, "Bucket").text = self.bucket
        ET.SubElement(root, "Key").text = key
        ET.SubElement(root, "UploadId").text = upload_id
        return httpx.Response(200, content=_xml(root))

    def _put_part(self, request: httpx.Request, upload_id: str, part_number: int) -> httpx.Response:
        upload = self.uploads.get(upload_id)
        if upload is None:
            return httpx.Response(404, content=b"<Error><Code>NoSuchUpload</Code></Error>")
        upload.parts[part_number] = request.content
        return httpx.Response(200, headers={"etag": _etag(request.content)})

    def _complete(self, request: httpx.Request, key: str, upload_id: str) -> httpx.Response:
        upload = self.uploads.get(upload_id)
        if upload is None:
            return httpx.Response(404, content=b"<Error><Code>NoSuchUpload</Code></Error>")
        root = ET.fromstring(request.content)
        chunks = []
        for part in root.findall("Part"):
            number = int(part.findtext("PartNumber"))
            etag = part.findtext("ETag")
            data = upload.parts.get(number)
            if data is None or _etag(data) != etag:
                return httpx.Response(400, content=b"<Error><Code>InvalidPart</Code></Error>")
            chunks.append(data)
        obj = self.write(key, b"".join(chunks), upload.headers)
        del self.uploads[upload_id]
        result = ET.Element("CompleteMultipartUploadResult", xmlns=NS)
        ET.SubElement(result, "Bucket").text = self.bucket
        ET.SubElement(result, "Key").text = key
        ET.SubElement(result, "ETag").text = obj.etag
        return httpx.Response(200, content=_xml(result), headers={"x-goog-generation": str(obj.generation)})

    def _list(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        assert params.get("list-type") == "2"
        prefix = params.get("prefix", "")
        delimiter = params.get("delimiter")
        start_after = params.get("start-after")
        token = params.get("continuation-token")
        max_keys = int(params.get("max-keys", "1000"))

        if token is not None:
            start_after = base64.urlsafe_b64decode(token.encode()).decode()

        entries: list[tuple[str, str]] = []  # (kind, value)
        seen_prefixes: set[str] = set()
        for key in sorted(self.objects):
            if not key.startswith(prefix):
                continue
            if start_after is not None and key <= start_after:
                continue
            if delimiter:
                rest = key[len(prefix):]
                if delimiter in rest:
                    common = prefix + rest.split(delimiter, 1)[0] + delimiter
                    if common not in seen_prefixes:
                        seen_prefixes.add(common)
                        entries.append(("prefix", common))
                    continue
            entries.append(("key", key))

        page, remaining = entries[:max_keys], entries[max_keys:]
        root = ET.Element("ListBucketResult", xmlns=NS)
        ET.SubElement(root, "Name").text = self.bucket
        ET.SubElement(root, "Prefix").text = prefix
        ET.SubElement(root, "KeyCount").text = str(len(page))
        for kind, value in page:
            if kind == "prefix":
                ET.SubElement(ET.SubElement(root, "CommonPrefixes"), "Prefix").text = value
                continue
            obj = self.objects[value]
            contents = ET.SubElement(root, "Contents")
            ET.SubElement(contents, "Key").text = value
            ET.SubElement(contents, "Generation").text = str(obj.generation)
            ET.SubElement(contents, "LastModified").text = obj.last_modified.strftime("%Y-%m-%dT%H:%M:%S.000Z")
            ET.SubElement(contents, "ETag").text = obj.etag
            ET.SubElement(contents, "Size").text = str(len(obj.data))
        if remaining:
            last = page[-1][1]
            if page[-1][0] == "prefix":
                # Skip everything under the prefix on the next page
                last = last + "\uffff"
            ET.SubElement(root, "IsTruncated").text = "true"
            ET.SubElement(root, "NextContinuationToken").text = base64.urlsafe_b64encode(last.encode()).decode()
        else:
            ET.SubElement(root, "IsTruncated").text = "false"
        return httpx.Response(200, content=_xml(root))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def server() -> FakeGcsServer:
    return FakeGcsServer()


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        backoff=BackoffConfig(init_backoff=0.001, max_backoff=0.005),
        max_retries=3,
        retry_timeout=5.0,
    )


@pytest.fixture
def config(retry_config: RetryConfig) -> GoogleCloudStorageConfig:
    return GoogleCloudStorageConfig(
        bucket_name=BUCKET,
        base_url=BASE_URL,
        credentials=StaticCredentialProvider(GcpCredential(bearer=TOKEN)),
        signing_credentials=StaticCredentialProvider(GcpSigningCredential(email=SIGNER)),
        retry_config=retry_config,
    )


@pytest.fixture
def http_client(server: FakeGcsServer) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(server))


@pytest.fixture
def store(config: GoogleCloudStorageConfig, http_client: httpx.AsyncClient) -> GoogleCloudStorage:
    return GoogleCloudStorage.from_config(config, http_client=http_client)


@pytest.fixture
def client(store: GoogleCloudStorage):
    return store.client
