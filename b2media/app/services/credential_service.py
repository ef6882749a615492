"""Account authorization for the B2 API.

The authorization is fetched lazily and shared by every service of a
:class:`~b2media.app.services.bundle.MediaStorage`. Concurrent callers that
find it missing coalesce onto a single in-flight ``b2_authorize_account``
request.
"""

from __future__ import annotations

import base64
import logging
import re
import threading
import time
from concurrent.futures import Future
from typing import Callable

from b2media.infra.storage.client import Authorization, B2Api, StorageError

from .base import ServiceError

logger = logging.getLogger("b2media.auth")

_SURROUNDING_QUOTES = re.compile(r"^['\"]|['\"]$")


class AuthorizationFailedError(ServiceError):
    """Raised when B2 authorization fails on both the first attempt and the retry."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def normalize_application_key(raw: str) -> str:
    """Strip whitespace and stray quotes copied in from ``.env`` files."""
    return _SURROUNDING_QUOTES.sub("", raw.strip())


class CredentialManager:
    """Owns the account identity and the live authorization token."""

    def __init__(
        self,
        api: B2Api,
        *,
        account_id: str,
        application_key: str,
        retry_backoff_seconds: float = 0.25,
        sleep: Callable[[float], None] = time.sleep,
        debug: bool = False,
    ) -> None:
        self._api = api
        self._account_id = account_id.strip()
        self._application_key = normalize_application_key(application_key)
        self._retry_backoff = retry_backoff_seconds
        self._sleep = sleep
        self._debug = debug

        self._lock = threading.Lock()
        self._authorization: Authorization | None = None
        self._inflight: Future[Authorization] | None = None

    @property
    def account_id(self) -> str:
        return self._account_id

    @property
    def authorization(self) -> Authorization | None:
        return self._authorization

    @property
    def download_url(self) -> str | None:
        auth = self._authorization
        return auth.download_url if auth else None

    def ensure_authorized(self) -> Authorization:
        """Return a valid authorization, authorizing at most once concurrently.

        Returns:
            The cached authorization, or a fresh one if none was held.

        Raises:
            AuthorizationFailedError: If both the attempt and its retry fail.
                Every caller waiting on that attempt receives the same error.
        """
        current = self._authorization
        if current is not None:
            return current

        with self._lock:
            if self._authorization is not None:
                return self._authorization
            future = self._inflight
            leader = future is None
            if future is None:
                future = Future()
                self._inflight = future

        if not leader:
            return future.result()

        try:
            auth = self._authorize_with_retry()
        except BaseException as exc:
            # Every waiter observes the leader's failure.
            with self._lock:
                self._inflight = None
            future.set_exception(exc)
            raise

        with self._lock:
            self._authorization = auth
            self._inflight = None
        future.set_result(auth)
        return auth

    def _authorize_with_retry(self) -> Authorization:
        if self._debug:
            basic = base64.b64encode(
                f"{self._account_id}:{self._application_key}".encode("utf-8")
            ).decode("ascii")
            logger.debug(
                "authorize_account",
                extra={"extra": {"credentials_masked": basic[:8] + "..."}},
            )

        try:
            return self._authorize_once()
        except StorageError as exc:
            logger.warning(
                "authorize_account_retry",
                extra={"extra": {"error": str(exc), "backoff": self._retry_backoff}},
            )

        self._sleep(self._retry_backoff)
        try:
            auth = self._authorize_once()
        except StorageError as exc:
            status = getattr(exc, "status_code", None)
            logger.error(
                "authorize_account_failed",
                extra={"extra": {"status": status, "error": str(exc)}},
            )
            suffix = f" (status {status})" if status else ""
            raise AuthorizationFailedError(
                f"Backblaze authorization failed{suffix}", status_code=status
            ) from exc
        return auth

    def _authorize_once(self) -> Authorization:
        auth = self._api.authorize_account(
            key_id=self._account_id, application_key=self._application_key
        )
        logger.info(
            "authorize_account_ok",
            extra={"extra": {"download_url": auth.download_url}},
        )
        return auth
