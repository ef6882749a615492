from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, Mapping

from b2media.infra.storage.client import RemoteFile, StorageError

from .base import BaseStorageService, ServiceError

logger = logging.getLogger("b2media.downloads")


class ObjectNotFoundError(ServiceError):
    """Raised when no remote file exists under the requested path."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Object not found: {path}")
        self.path = path


class DownloadFailedError(ServiceError):
    """Raised when both the ranged download and the full-object fallback fail."""

    def __init__(self, path: str, cause: Exception) -> None:
        super().__init__(f"Download of {path} failed: {cause}")
        self.path = path
        self.cause = cause


def _noop() -> None:
    return None


@dataclass(slots=True)
class DownloadResult:
    """An open download. Iterate ``content`` or call :meth:`read`, then close."""

    status_code: int
    headers: Mapping[str, str]
    file: RemoteFile
    content: Iterator[bytes]
    release: Callable[[], None] = field(default=_noop, repr=False)

    def read(self) -> bytes:
        try:
            return b"".join(self.content)
        finally:
            self.close()

    def close(self) -> None:
        self.release()

    def __enter__(self) -> "DownloadResult":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class RetrievalService(BaseStorageService):
    def download_stream(
        self, logical_bucket: str, path: str, range_header: str | None = None
    ) -> DownloadResult:
        """Resolve ``path`` by prefix lookup and stream its bytes.

        Args:
            logical_bucket: Application-level bucket name.
            path: Object path before logical prefixing.
            range_header: Optional HTTP ``Range`` value, e.g. ``bytes=0-1023``.

        Raises:
            ObjectNotFoundError: If the prefix lookup finds nothing. No
                download is attempted in that case.
            DownloadFailedError: If the download fails, including the
                unranged retry when a range was requested.
        """
        resolved = self._buckets.resolve(logical_bucket)
        auth = self._auth()
        remote = self._find_file(resolved, path)
        if remote is None:
            raise ObjectNotFoundError(path)

        try:
            stream = self._api.download_file_by_id(
                auth=auth, file_id=remote.file_id, range_header=range_header
            )
        except StorageError as exc:
            if not range_header:
                raise DownloadFailedError(path, exc) from exc
            logger.warning(
                "ranged_download_failed",
                extra={
                    "extra": {
                        "file_id": remote.file_id,
                        "range": range_header,
                        "error": str(exc),
                    }
                },
            )
            try:
                stream = self._api.download_file_by_id(
                    auth=auth, file_id=remote.file_id
                )
            except StorageError as retry_exc:
                raise DownloadFailedError(path, retry_exc) from retry_exc

        logger.debug(
            "download_started",
            extra={
                "extra": {
                    "file_id": remote.file_id,
                    "status": stream.status_code,
                    "content_range": stream.headers.get("Content-Range"),
                }
            },
        )
        return DownloadResult(
            status_code=stream.status_code,
            headers=stream.headers,
            file=remote,
            content=stream.chunks,
            release=stream.release,
        )
