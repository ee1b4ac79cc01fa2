"""GCS Store - async client for the Google Cloud Storage XML API."""

from __future__ import annotations

from .client import GoogleCloudStorageClient
from .config import ClientOptions, GoogleCloudStorageConfig
from .credential import (
    CredentialProvider,
    GcpCredential,
    GcpSigningCredential,
    StaticCredentialProvider,
)
from .exceptions import (
    AlreadyExistsError,
    CompleteMultipartRequestError,
    CompleteMultipartResponseBodyError,
    GcsStoreError,
    GenericError,
    GetResponseBodyError,
    InvalidListResponseError,
    InvalidMultipartResponseError,
    InvalidPathError,
    InvalidPutRequestError,
    InvalidPutResponseError,
    InvalidSignBlobResponseError,
    InvalidSignBlobSignatureError,
    ListRequestError,
    ListResponseBodyError,
    MetadataError,
    MissingVersionError,
    NotFoundError,
    NotModifiedError,
    PermissionDeniedError,
    PreconditionError,
    PutResponseBodyError,
    SignBlobRequestError,
    UnauthenticatedError,
)
from .header import HeaderConfig
from .http import HttpClient
from .retry import BackoffConfig, RetryConfig, RetryError
from .settings import GcsSettings
from .store import GoogleCloudStorage, MultipartUpload
from .types import (
    Attribute,
    Attributes,
    GetOptions,
    GetRange,
    GetResult,
    ListResult,
    Metadata,
    MultipartId,
    ObjectMeta,
    PaginatedListOptions,
    PaginatedListResult,
    PartId,
    PutMode,
    PutMultipartOptions,
    PutOptions,
    PutPayload,
    PutResult,
    UpdateVersion,
)

__all__ = [
    # Main classes
    "GoogleCloudStorage",
    "GoogleCloudStorageClient",
    "MultipartUpload",
    "HttpClient",
    # Configuration
    "GcsSettings",
    "GoogleCloudStorageConfig",
    "ClientOptions",
    "RetryConfig",
    "BackoffConfig",
    "HeaderConfig",
    # Credentials
    "CredentialProvider",
    "GcpCredential",
    "GcpSigningCredential",
    "StaticCredentialProvider",
    # Types
    "Attribute",
    "Attributes",
    "Metadata",
    "PutMode",
    "UpdateVersion",
    "PutPayload",
    "PutOptions",
    "PutMultipartOptions",
    "PutResult",
    "PartId",
    "MultipartId",
    "GetOptions",
    "GetRange",
    "GetResult",
    "ObjectMeta",
    "ListResult",
    "PaginatedListOptions",
    "PaginatedListResult",
    # Exceptions
    "GcsStoreError",
    "GenericError",
    "NotFoundError",
    "AlreadyExistsError",
    "PreconditionError",
    "NotModifiedError",
    "PermissionDeniedError",
    "UnauthenticatedError",
    "InvalidPathError",
    "RetryError",
    "ListRequestError",
    "ListResponseBodyError",
    "InvalidListResponseError",
    "PutResponseBodyError",
    "GetResponseBodyError",
    "InvalidPutRequestError",
    "InvalidPutResponseError",
    "MetadataError",
    "MissingVersionError",
    "CompleteMultipartRequestError",
    "CompleteMultipartResponseBodyError",
    "InvalidMultipartResponseError",
    "SignBlobRequestError",
    "InvalidSignBlobResponseError",
    "InvalidSignBlobSignatureError",
]
