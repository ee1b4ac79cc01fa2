"""Credentials and the provider protocol used to acquire them.

Providers own the lifetime of a credential (caching, refresh). The client only
asks for the current one, once per request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar, runtime_checkable

T_co = TypeVar("T_co", covariant=True)


@dataclass(frozen=True)
class GcpCredential:
    """A bearer token for the storage XML API."""

    bearer: str

    def __repr__(self) -> str:
        return "GcpCredential(bearer=***)"


@dataclass(frozen=True)
class GcpSigningCredential:
    """Identity used for delegated blob signing.

    ``email`` is the service account that signs; ``private_key`` is unused by
    the delegated flow and only kept for providers that also sign locally.
    """

    email: str
    private_key: str | None = None

    def __repr__(self) -> str:
        return f"GcpSigningCredential(email={self.email!r})"


@runtime_checkable
class CredentialProvider(Protocol[T_co]):
    """Anything that can hand out the current credential."""

    async def get_credential(self) -> T_co: ...


GcpCredentialProvider = CredentialProvider[GcpCredential]
GcpSigningCredentialProvider = CredentialProvider[GcpSigningCredential]

T = TypeVar("T")


class StaticCredentialProvider(Generic[T]):
    """Provider that always returns the same credential."""

    def __init__(self, credential: T) -> None:
        self._credential = credential

    async def get_credential(self) -> T:
        return self._credential

    def __repr__(self) -> str:
        return f"StaticCredentialProvider({self._credential!r})"
