"""Domain-specific exceptions for gcs-store.

Two families share the :class:`GcsStoreError` base:

- caller-visible kinds derived from the HTTP status of a failed request
  (:class:`NotFoundError`, :class:`AlreadyExistsError`, ...), and
- tagged kinds raised by individual protocol steps (list, multipart, sign...),
  all of them :class:`GenericError` subclasses.
"""

from __future__ import annotations

STORE = "GCS"


class GcsStoreError(Exception):
    """Base exception for gcs-store errors."""
    pass


class GenericError(GcsStoreError):
    """Raised for failures without a more specific caller-visible kind."""
    def __init__(self, message: str, store: str = STORE) -> None:
        self.store = store
        super().__init__(message)


class PathError(GcsStoreError):
    """Base class for errors scoped to a single object path."""
    def __init__(self, path: str, message: str | None = None) -> None:
        self.path = path
        super().__init__(message or f"{type(self).__name__} at {path}")


class NotFoundError(PathError):
    """Raised when the object does not exist."""
    def __init__(self, path: str, message: str | None = None) -> None:
        super().__init__(path, message or f"Object at location {path} not found")


class AlreadyExistsError(PathError):
    """Raised when a create-only write or copy hits an existing object."""
    def __init__(self, path: str, message: str | None = None) -> None:
        super().__init__(path, message or f"Object at location {path} already exists")


class PreconditionError(PathError):
    """Raised when a request precondition (generation, etag, date) fails."""
    def __init__(self, path: str, message: str | None = None) -> None:
        super().__init__(path, message or f"Request precondition failure for path {path}")


class NotModifiedError(PathError):
    """Raised when a conditional get reports the object as unmodified."""
    def __init__(self, path: str, message: str | None = None) -> None:
        super().__init__(path, message or f"Object at location {path} not modified")


class PermissionDeniedError(PathError):
    """Raised when the credential lacks access to the object."""
    def __init__(self, path: str, message: str | None = None) -> None:
        super().__init__(path, message or f"The operation lacked the necessary privileges to complete for path {path}")


class UnauthenticatedError(PathError):
    """Raised when the request was rejected as unauthenticated."""
    def __init__(self, path: str, message: str | None = None) -> None:
        super().__init__(path, message or f"The operation is not authenticated for path {path}")


# Tagged protocol errors


class ListRequestError(GenericError):
    """Raised when the list request itself fails."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Error performing list request: {source}")


class ListResponseBodyError(GenericError):
    """Raised when reading the list response body fails."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Error getting list response body: {source}")


class InvalidListResponseError(GenericError):
    """Raised when the list response is not a valid bucket listing."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Got invalid list response: {source}")


class PutResponseBodyError(GenericError):
    """Raised when reading a put (or multipart initiate) response body fails."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Error getting put response body: {source}")


class InvalidPutRequestError(GenericError):
    """Raised when a request document cannot be encoded locally."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Got invalid put request: {source}")


class InvalidPutResponseError(GenericError):
    """Raised when a put (or multipart initiate) response cannot be decoded."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Got invalid put response: {source}")


class MetadataError(GenericError):
    """Raised when required metadata headers are missing or malformed."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Unable to extract metadata from headers: {source}")


class MissingVersionError(GenericError):
    """Raised when a conditional update is requested without a version."""
    def __init__(self) -> None:
        super().__init__("Version required for conditional update")


class CompleteMultipartRequestError(GenericError):
    """Raised when the complete multipart request fails."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Error performing complete multipart request: {source}")


class CompleteMultipartResponseBodyError(GenericError):
    """Raised when reading the complete multipart response body fails."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Error getting complete multipart response body: {source}")


class InvalidMultipartResponseError(GenericError):
    """Raised when the complete multipart response cannot be decoded."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Got invalid multipart response: {source}")


class SignBlobRequestError(GenericError):
    """Raised when the delegated signing request fails."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Error signing blob: {source}")


class InvalidSignBlobResponseError(GenericError):
    """Raised when the signing response is not the expected JSON document."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Got invalid signing blob response: {source}")


class InvalidSignBlobSignatureError(GenericError):
    """Raised when the returned signature is not valid base64."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Got invalid signing blob signature: {source}")


class InvalidPathError(GcsStoreError):
    """Raised when an object path contains an illegal segment."""
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid path {path!r}: {reason}")


class GetResponseBodyError(GenericError):
    """Raised when reading a get response body fails."""
    def __init__(self, source: Exception) -> None:
        self.source = source
        super().__init__(f"Error getting get response body: {source}")
