"""Upload engine for single-shot and multipart (large-file) uploads.

Payloads strictly below the large-upload threshold go through
``b2_get_upload_url`` + ``b2_upload_file``. Anything at or above it is sent as
a B2 large file: ``b2_start_large_file``, one ``b2_get_upload_part_url`` +
``b2_upload_part`` per part, then ``b2_finish_large_file`` with the part SHA-1
list in part-number order.
"""

from __future__ import annotations

import hashlib
import logging
import math
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Iterator

from b2media.infra.observability.metrics import UPLOADS
from b2media.infra.storage.client import Authorization, B2Api, StorageError

from .base import BaseStorageService, ServiceError
from .bucket_service import BucketResolver
from .credential_service import CredentialManager

DEFAULT_CONTENT_TYPE = "application/octet-stream"

logger = logging.getLogger("b2media.uploads")


class UploadFailedError(ServiceError):
    """Raised when a single-shot upload or any step of a large-file upload fails.

    ``file_id`` is set when a large-file session had been started; that
    session is not resumable.
    """

    def __init__(
        self, message: str, *, remote_path: str, file_id: str | None = None
    ) -> None:
        super().__init__(message)
        self.remote_path = remote_path
        self.file_id = file_id


@dataclass(frozen=True, slots=True)
class UploadResult:
    """Reference to an uploaded object. Callers persist this."""

    remote_path: str
    file_id: str
    bucket: str
    content_length: int
    part_count: int = 0


@dataclass(slots=True)
class UploadSession:
    """Transient state of one large-file upload."""

    file_id: str
    part_size: int
    total_parts: int
    part_sha1s: list[str] = field(default_factory=list)


def sha1_hex(data: bytes | memoryview) -> str:
    return hashlib.sha1(data).hexdigest()


def buffer_payload(payload: Any) -> bytes:
    """Read ``payload`` fully into memory.

    Accepts bytes-like objects, ``str`` (UTF-8), binary file-like objects
    and iterables of byte chunks.
    """
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, (bytearray, memoryview)):
        return bytes(payload)
    if isinstance(payload, str):
        return payload.encode("utf-8")
    read = getattr(payload, "read", None)
    if callable(read):
        data = read()
        return data.encode("utf-8") if isinstance(data, str) else bytes(data)
    try:
        chunks = iter(payload)
    except TypeError:
        raise TypeError(
            f"Unsupported payload type: {type(payload).__name__}"
        ) from None
    return b"".join(bytes(chunk) for chunk in chunks)


def part_count(size: int, part_size: int) -> int:
    return max(1, math.ceil(size / part_size))


def iter_parts(data: bytes, part_size: int) -> Iterator[tuple[int, memoryview]]:
    """Yield ``(part_number, chunk)`` with 1-based part numbers."""
    view = memoryview(data)
    for index in range(part_count(len(data), part_size)):
        offset = index * part_size
        yield index + 1, view[offset : offset + part_size]


class UploadEngine(BaseStorageService):
    def __init__(
        self,
        api: B2Api,
        *,
        credentials: CredentialManager,
        buckets: BucketResolver,
        large_upload_threshold: int,
        part_size: int,
        concurrency: int = 1,
        cancel_failed_large_files: bool = False,
    ) -> None:
        super().__init__(api, credentials=credentials, buckets=buckets)
        self._threshold = int(large_upload_threshold)
        self._part_size = int(part_size)
        self._concurrency = max(1, int(concurrency))
        self._cancel_failed = cancel_failed_large_files

    def upload(
        self,
        logical_bucket: str,
        path: str,
        payload: Any,
        content_type: str | None = None,
        *,
        cache_control: str | None = None,
    ) -> UploadResult:
        """Upload ``payload`` to ``path`` in ``logical_bucket``.

        Args:
            logical_bucket: Application-level bucket name.
            path: Object path before logical prefixing.
            payload: Bytes, text, a binary file object or an iterable of chunks.
            content_type: MIME type, ``application/octet-stream`` by default.
            cache_control: Optional ``Cache-Control`` value stored with the file.

        Returns:
            UploadResult with the prefixed remote path and the B2 file ID.

        Raises:
            AuthorizationFailedError: If the account cannot be authorized.
            BucketNotFoundError: If the physical bucket does not exist.
            UploadFailedError: If any upload call fails.
        """
        resolved = self._buckets.resolve(logical_bucket)
        remote_path = resolved.object_path(path)
        auth = self._auth()
        data = buffer_payload(payload)
        content_type = content_type or DEFAULT_CONTENT_TYPE
        bucket_id = self._buckets.bucket_id(resolved.physical_bucket)

        if len(data) < self._threshold:
            result = self._upload_simple(
                auth,
                bucket_id=bucket_id,
                bucket=resolved.physical_bucket,
                remote_path=remote_path,
                data=data,
                content_type=content_type,
                cache_control=cache_control,
            )
        else:
            result = self._upload_large(
                auth,
                bucket_id=bucket_id,
                bucket=resolved.physical_bucket,
                remote_path=remote_path,
                data=data,
                content_type=content_type,
                cache_control=cache_control,
            )
        logger.info(
            "upload_complete",
            extra={
                "extra": {
                    "bucket": result.bucket,
                    "path": result.remote_path,
                    "size": result.content_length,
                    "parts": result.part_count,
                }
            },
        )
        return result

    def _upload_simple(
        self,
        auth: Authorization,
        *,
        bucket_id: str,
        bucket: str,
        remote_path: str,
        data: bytes,
        content_type: str,
        cache_control: str | None,
    ) -> UploadResult:
        try:
            target = self._api.get_upload_url(auth=auth, bucket_id=bucket_id)
            remote = self._api.upload_file(
                target=target,
                file_name=remote_path,
                data=data,
                content_type=content_type,
                content_sha1=sha1_hex(data),
                cache_control=cache_control,
            )
        except StorageError as exc:
            UPLOADS.labels("simple", "error").inc()
            raise UploadFailedError(
                f"Upload of {remote_path} failed: {exc}", remote_path=remote_path
            ) from exc

        UPLOADS.labels("simple", "ok").inc()
        return UploadResult(
            remote_path=remote.file_name or remote_path,
            file_id=remote.file_id,
            bucket=bucket,
            content_length=len(data),
        )

    def _upload_large(
        self,
        auth: Authorization,
        *,
        bucket_id: str,
        bucket: str,
        remote_path: str,
        data: bytes,
        content_type: str,
        cache_control: str | None,
    ) -> UploadResult:
        try:
            started = self._api.start_large_file(
                auth=auth,
                bucket_id=bucket_id,
                file_name=remote_path,
                content_type=content_type,
                cache_control=cache_control,
            )
        except StorageError as exc:
            UPLOADS.labels("multipart", "error").inc()
            raise UploadFailedError(
                f"Starting large file {remote_path} failed: {exc}",
                remote_path=remote_path,
            ) from exc

        session = UploadSession(
            file_id=started.file_id,
            part_size=self._part_size,
            total_parts=part_count(len(data), self._part_size),
        )
        logger.debug(
            "large_file_started",
            extra={
                "extra": {
                    "file_id": session.file_id,
                    "path": remote_path,
                    "parts": session.total_parts,
                }
            },
        )

        try:
            session.part_sha1s = self._upload_parts(auth, session, data)
            finished = self._api.finish_large_file(
                auth=auth, file_id=session.file_id, part_sha1s=session.part_sha1s
            )
        except StorageError as exc:
            UPLOADS.labels("multipart", "error").inc()
            self._abandon(auth, session, remote_path)
            raise UploadFailedError(
                f"Large file upload of {remote_path} failed: {exc}",
                remote_path=remote_path,
                file_id=session.file_id,
            ) from exc

        UPLOADS.labels("multipart", "ok").inc()
        return UploadResult(
            remote_path=finished.file_name or remote_path,
            file_id=finished.file_id or session.file_id,
            bucket=bucket,
            content_length=len(data),
            part_count=session.total_parts,
        )

    def _upload_parts(
        self, auth: Authorization, session: UploadSession, data: bytes
    ) -> list[str]:
        """Upload every part and return their SHA-1s ordered by part number."""
        parts = iter_parts(data, session.part_size)
        if self._concurrency == 1 or session.total_parts == 1:
            return [
                self._upload_part(auth, session.file_id, number, chunk)
                for number, chunk in parts
            ]

        sha1s: list[str | None] = [None] * session.total_parts
        workers = min(self._concurrency, session.total_parts)
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures: dict[Future[str], int] = {
                executor.submit(
                    self._upload_part, auth, session.file_id, number, chunk
                ): number
                for number, chunk in parts
            }
            try:
                for future in as_completed(futures):
                    sha1s[futures[future] - 1] = future.result()
            except BaseException:
                for pending in futures:
                    pending.cancel()
                raise
        return [sha1 for sha1 in sha1s if sha1 is not None]

    def _upload_part(
        self,
        auth: Authorization,
        file_id: str,
        part_number: int,
        chunk: memoryview,
    ) -> str:
        target = self._api.get_upload_part_url(auth=auth, file_id=file_id)
        content_sha1 = sha1_hex(chunk)
        self._api.upload_part(
            target=target,
            part_number=part_number,
            data=bytes(chunk),
            content_sha1=content_sha1,
        )
        return content_sha1

    def _abandon(
        self, auth: Authorization, session: UploadSession, remote_path: str
    ) -> None:
        if not self._cancel_failed:
            logger.warning(
                "large_file_left_unfinished",
                extra={"extra": {"file_id": session.file_id, "path": remote_path}},
            )
            return
        try:
            self._api.cancel_large_file(auth=auth, file_id=session.file_id)
        except StorageError as exc:
            logger.warning(
                "cancel_large_file_failed",
                extra={"extra": {"file_id": session.file_id, "error": str(exc)}},
            )
        else:
            logger.info(
                "large_file_cancelled",
                extra={"extra": {"file_id": session.file_id, "path": remote_path}},
            )
