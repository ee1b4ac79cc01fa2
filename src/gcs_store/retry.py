"""Retry policy, backoff and the error raised once retries are exhausted."""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from .exceptions import (
    STORE,
    AlreadyExistsError,
    GcsStoreError,
    GenericError,
    NotFoundError,
    NotModifiedError,
    PermissionDeniedError,
    PreconditionError,
    UnauthenticatedError,
)

RETRYABLE_STATUSES = frozenset({408, 429})


@dataclass(frozen=True)
class BackoffConfig:
    """Exponential backoff with jitter.

    Each delay is drawn uniformly between ``init_backoff`` and ``base`` times the
    previous delay, and capped at ``max_backoff``. All values are in seconds.
    """

    init_backoff: float = 0.1
    max_backoff: float = 15.0
    base: float = 2.0


@dataclass(frozen=True)
class RetryConfig:
    """How often, and for how long, a request may be re-issued."""

    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    max_retries: int = 10
    retry_timeout: float = 180.0


class Backoff:
    """Stateful delay generator for one request."""

    def __init__(self, config: BackoffConfig, rng: random.Random | None = None) -> None:
        self._config = config
        self._next = config.init_backoff
        self._rng = rng or random.Random()

    def next(self) -> float:
        current = self._next
        upper = max(self._config.init_backoff, current * self._config.base)
        self._next = min(self._config.max_backoff, self._rng.uniform(self._config.init_backoff, upper))
        return min(current, self._config.max_backoff)


def is_retryable_status(status: int) -> bool:
    return status >= 500 or status in RETRYABLE_STATUSES


class RetryError(GcsStoreError):
    """Raised when a request failed and will not be retried any further.

    Parameters
    ----------
    message : str
        What went wrong.
    retries : int
        Number of retries performed before giving up.
    status : int | None
        HTTP status of the last response, None for transport failures.
    body : str | None
        Body of the last error response, if any.
    source : Exception | None
        Underlying transport exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        retries: int = 0,
        status: int | None = None,
        body: str | None = None,
        source: Exception | None = None,
    ) -> None:
        self.retries = retries
        self.status = status
        self.body = body
        self.source = source
        detail = message
        if status is not None:
            detail = f"{detail}, status: {status}"
        if body:
            detail = f"{detail}, body: {body}"
        if source is not None:
            detail = f"{detail}, source: {source}"
        if retries:
            detail = f"{detail} (after {retries} retries)"
        super().__init__(detail)

    def error(self, store: str = STORE, path: str = "") -> GcsStoreError:
        """Translate into the caller-visible error for ``path``."""
        status = self.status
        message = f"{store} error at {path}: {self}"
        if status == 404:
            return NotFoundError(path, message)
        if status == 412:
            return PreconditionError(path, message)
        if status == 409:
            return AlreadyExistsError(path, message)
        if status == 304:
            return NotModifiedError(path, message)
        if status == 401:
            return UnauthenticatedError(path, message)
        if status == 403:
            return PermissionDeniedError(path, message)
        return GenericError(message, store)
