from __future__ import annotations

from typing import TYPE_CHECKING

from b2media.infra.storage.client import Authorization, B2Api, RemoteFile

if TYPE_CHECKING:
    from .bucket_service import BucketResolver, ResolvedBucket
    from .credential_service import CredentialManager


class ServiceError(Exception):
    """Base class for storage service level exceptions."""


class StorageNotConfiguredError(ServiceError):
    """Raised when the B2 account identity is missing from configuration."""


class BaseStorageService:
    """Shares the transport and the credential/bucket caches between services."""

    def __init__(
        self,
        api: B2Api,
        *,
        credentials: "CredentialManager",
        buckets: "BucketResolver",
    ) -> None:
        self._api = api
        self._credentials = credentials
        self._buckets = buckets

    @property
    def api(self) -> B2Api:
        return self._api

    def _auth(self) -> Authorization:
        return self._credentials.ensure_authorized()

    def _find_file(self, resolved: "ResolvedBucket", path: str) -> RemoteFile | None:
        """Look up the remote file stored exactly at the prefixed ``path``.

        B2 lists names in sorted order, so an exact match is always the first
        entry under its own prefix. A sibling such as ``track-10`` for
        ``track-1`` is not a match. An empty ``path`` never names an object.
        """
        if not path:
            return None
        object_path = resolved.object_path(path)
        bucket_id = self._buckets.bucket_id(resolved.physical_bucket)
        files = self._api.list_file_names(
            auth=self._auth(),
            bucket_id=bucket_id,
            prefix=object_path,
            max_file_count=1,
        )
        if not files or files[0].file_name != object_path:
            return None
        return files[0]
