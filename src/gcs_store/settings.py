from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .config import DEFAULT_BASE_URL, ClientOptions, GoogleCloudStorageConfig
from .credential import GcpCredential, GcpSigningCredential, StaticCredentialProvider
from .retry import BackoffConfig, RetryConfig

if TYPE_CHECKING:
    from .store import GoogleCloudStorage


class GcsSettings(BaseSettings):
    """Settings for the storage XML API client.

    You can adapt the following settings in your environment variables (or using a .env file):
    - GCS_BASE_URL: The URL of the XML API, e.g. a local emulator
    - GCS_BUCKET: The bucket the client talks to
    - GCS_BEARER_TOKEN: A static OAuth2 access token
    - GCS_SERVICE_ACCOUNT_EMAIL: The service account used for blob signing
    - GCS_SKIP_SIGNATURE: Send every request unauthenticated (public buckets)

    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="GCS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # The endpoint URL of the XML API
    base_url: str = DEFAULT_BASE_URL

    # The bucket to use for the client
    bucket: str

    # Static bearer token; required unless skip_signature is set
    bearer_token: str | None = None

    # Service account email for signBlob
    service_account_email: str | None = None

    skip_signature: bool = False

    # Retry policy
    max_retries: int = Field(default=10, ge=0)
    retry_timeout: float = Field(default=180.0, gt=0)
    backoff_init: float = Field(default=0.1, gt=0)
    backoff_max: float = Field(default=15.0, gt=0)
    backoff_base: float = Field(default=2.0, ge=1)

    # Client options
    timeout: float = 30.0
    connect_timeout: float = 5.0
    user_agent: str | None = None
    default_content_type: str | None = None
    max_list_results: int | None = Field(default=None, gt=0)

    def create_config(self) -> GoogleCloudStorageConfig:
        """Create an endpoint config with static credential providers."""
        if self.bearer_token is None and not self.skip_signature:
            raise ValueError("GCS_BEARER_TOKEN is required unless GCS_SKIP_SIGNATURE is set")

        return GoogleCloudStorageConfig(
            bucket_name=self.bucket,
            base_url=self.base_url.rstrip("/"),
            credentials=StaticCredentialProvider(GcpCredential(bearer=self.bearer_token or "")),
            signing_credentials=StaticCredentialProvider(
                GcpSigningCredential(email=self.service_account_email or "")
            ),
            retry_config=RetryConfig(
                backoff=BackoffConfig(
                    init_backoff=self.backoff_init,
                    max_backoff=self.backoff_max,
                    base=self.backoff_base,
                ),
                max_retries=self.max_retries,
                retry_timeout=self.retry_timeout,
            ),
            client_options=ClientOptions(
                timeout=self.timeout,
                connect_timeout=self.connect_timeout,
                user_agent=self.user_agent,
                default_content_type=self.default_content_type,
            ),
            skip_signature=self.skip_signature,
        )

    def create_store(self, http_client: httpx.AsyncClient | None = None) -> GoogleCloudStorage:
        """Create a store from the settings."""

        from .store import GoogleCloudStorage

        return GoogleCloudStorage.from_config(
            self.create_config(),
            http_client=http_client,
            max_list_results=self.max_list_results,
        )
