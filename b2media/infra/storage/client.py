"""B2 API protocol and data types.

This module defines the interface the storage services use to talk to
Backblaze B2, plus the immutable records exchanged across it. Every call
except ``authorize_account`` takes the current :class:`Authorization` so the
transport itself stays stateless.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterator, Mapping, Protocol, Sequence


class StorageError(RuntimeError):
    """Raised when object storage operations fail."""


class B2ApiError(StorageError):
    """Raised when the B2 API rejects a call or cannot be reached.

    ``status_code`` is ``None`` for connection failures and timeouts.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


def _noop() -> None:
    return None


@dataclass(frozen=True, slots=True)
class Authorization:
    """Result of ``b2_authorize_account``."""

    account_id: str
    authorization_token: str
    api_url: str
    download_url: str | None


@dataclass(frozen=True, slots=True)
class RemoteBucket:
    bucket_id: str
    bucket_name: str


@dataclass(frozen=True, slots=True)
class UploadTarget:
    """One-time upload URL and the token that goes with it."""

    upload_url: str
    authorization_token: str


@dataclass(frozen=True, slots=True)
class RemoteFile:
    """A file (or unfinished large file) as reported by B2."""

    file_id: str
    file_name: str
    content_length: int | None = None
    content_type: str | None = None
    content_sha1: str | None = None


@dataclass(frozen=True, slots=True)
class UploadedPart:
    part_number: int
    content_sha1: str
    content_length: int


@dataclass(frozen=True, slots=True)
class ObjectStream:
    """Streaming body of a download response."""

    status_code: int
    headers: Mapping[str, str]
    chunks: Iterator[bytes]
    release: Callable[[], None] = field(default=_noop)


class B2Api(Protocol):
    """Protocol defining the B2 native API calls used by the services."""

    def authorize_account(
        self, *, key_id: str, application_key: str
    ) -> Authorization:
        """Exchange the application key for an account authorization.

        Raises:
            B2ApiError: If the credentials are rejected or B2 is unreachable.
        """
        ...

    def list_buckets(self, *, auth: Authorization) -> list[RemoteBucket]:
        """List every bucket visible to the account."""
        ...

    def get_upload_url(self, *, auth: Authorization, bucket_id: str) -> UploadTarget:
        """Get a one-time URL for a single-shot upload into ``bucket_id``."""
        ...

    def upload_file(
        self,
        *,
        target: UploadTarget,
        file_name: str,
        data: bytes,
        content_type: str,
        content_sha1: str,
        cache_control: str | None = None,
    ) -> RemoteFile:
        """Upload a whole object in one request."""
        ...

    def start_large_file(
        self,
        *,
        auth: Authorization,
        bucket_id: str,
        file_name: str,
        content_type: str,
        cache_control: str | None = None,
    ) -> RemoteFile:
        """Open a large-file session and return its file ID."""
        ...

    def get_upload_part_url(
        self, *, auth: Authorization, file_id: str
    ) -> UploadTarget:
        """Get a URL for uploading parts of the large file ``file_id``."""
        ...

    def upload_part(
        self,
        *,
        target: UploadTarget,
        part_number: int,
        data: bytes,
        content_sha1: str,
    ) -> UploadedPart:
        """Upload one part (1-based ``part_number``) of a large file."""
        ...

    def finish_large_file(
        self,
        *,
        auth: Authorization,
        file_id: str,
        part_sha1s: Sequence[str],
    ) -> RemoteFile:
        """Assemble the uploaded parts. ``part_sha1s`` is in part-number order."""
        ...

    def cancel_large_file(self, *, auth: Authorization, file_id: str) -> None:
        """Discard an unfinished large file and its uploaded parts."""
        ...

    def list_file_names(
        self,
        *,
        auth: Authorization,
        bucket_id: str,
        prefix: str,
        max_file_count: int = 1,
    ) -> list[RemoteFile]:
        """List files whose names start with ``prefix``."""
        ...

    def download_file_by_id(
        self,
        *,
        auth: Authorization,
        file_id: str,
        range_header: str | None = None,
    ) -> ObjectStream:
        """Stream a file's bytes, optionally restricted to an HTTP byte range."""
        ...

    def get_download_authorization(
        self,
        *,
        auth: Authorization,
        bucket_id: str,
        file_name_prefix: str,
        valid_duration_seconds: int,
    ) -> str:
        """Issue a download token for files under ``file_name_prefix``."""
        ...

    def delete_file_version(
        self, *, auth: Authorization, file_name: str, file_id: str
    ) -> None:
        """Delete one specific version of a file."""
        ...
