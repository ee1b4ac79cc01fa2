"""Endpoint configuration shared by every request of a client."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .retry import RetryConfig
from .utils import path_extension, percent_encode

if TYPE_CHECKING:
    from .credential import (
        GcpCredential,
        GcpCredentialProvider,
        GcpSigningCredentialProvider,
    )

DEFAULT_BASE_URL = "https://storage.googleapis.com"


@dataclass(frozen=True)
class ClientOptions:
    """Client-wide transport and content-type options.

    Attributes
    ----------
    timeout : float
        Read/write/pool timeout in seconds.
    connect_timeout : float
        Connect timeout in seconds.
    user_agent : str | None
        Overrides httpx's default user agent.
    default_content_type : str | None
        Content type used when neither the attributes nor the extension decide.
    content_type_map : dict[str, str]
        Extension (without dot) to content type; checked before ``mimetypes``.
    """

    timeout: float = 30.0
    connect_timeout: float = 5.0
    user_agent: str | None = None
    default_content_type: str | None = None
    content_type_map: dict[str, str] = field(default_factory=dict)

    def get_content_type(self, path: str) -> str | None:
        """Resolve the content type for ``path``, or None if nothing matches."""
        extension = path_extension(path)
        if extension is not None:
            if extension in self.content_type_map:
                return self.content_type_map[extension]
            guessed, _ = mimetypes.guess_type(f"object.{extension}", strict=False)
            if guessed is not None:
                return guessed
        return self.default_content_type


@dataclass(frozen=True)
class GoogleCloudStorageConfig:
    """Immutable description of one bucket endpoint."""

    bucket_name: str
    credentials: GcpCredentialProvider
    signing_credentials: GcpSigningCredentialProvider
    base_url: str = DEFAULT_BASE_URL
    retry_config: RetryConfig = field(default_factory=RetryConfig)
    client_options: ClientOptions = field(default_factory=ClientOptions)
    skip_signature: bool = False

    def object_url(self, path: str) -> str:
        """URL of the object at ``path``, bucket and path percent-encoded."""
        return f"{self.base_url}/{percent_encode(self.bucket_name)}/{percent_encode(path)}"

    async def get_credential(self) -> GcpCredential | None:
        """Return the current credential, or None when requests go out unsigned."""
        if self.skip_signature:
            return None
        return await self.credentials.get_credential()
