from __future__ import annotations

import threading
import time
from functools import lru_cache
from typing import Any, Callable, Iterable

from b2media.common.config import Settings, get_settings
from b2media.infra.storage.b2_client import B2HttpClient
from b2media.infra.storage.client import B2Api

from .base import StorageNotConfiguredError
from .bucket_service import BucketResolver, ResolvedBucket
from .credential_service import CredentialManager, normalize_application_key
from .deletion_service import DeletionResult, DeletionService
from .retrieval_service import DownloadResult, RetrievalService
from .upload_service import UploadEngine, UploadResult
from .url_service import SignedUrl, URLIssuer


class BucketOperations:
    """Storage operations bound to one logical bucket."""

    def __init__(self, storage: "MediaStorage", resolved: ResolvedBucket) -> None:
        self._storage = storage
        self.resolved = resolved

    @property
    def logical_name(self) -> str:
        return self.resolved.logical_name

    @property
    def physical_bucket(self) -> str:
        return self.resolved.physical_bucket

    def object_path(self, path: str) -> str:
        return self.resolved.object_path(path)

    def upload(
        self,
        path: str,
        payload: Any,
        content_type: str | None = None,
        *,
        cache_control: str | None = None,
    ) -> UploadResult:
        return self._storage.uploads.upload(
            self.logical_name,
            path,
            payload,
            content_type,
            cache_control=cache_control,
        )

    def public_url(self, path: str) -> str:
        return self._storage.urls.public_url(self.logical_name, path)

    def signed_url(self, path: str, ttl_seconds: int = 60) -> SignedUrl:
        return self._storage.urls.signed_url(self.logical_name, path, ttl_seconds)

    def download_stream(
        self, path: str, range_header: str | None = None
    ) -> DownloadResult:
        return self._storage.retrieval.download_stream(
            self.logical_name, path, range_header
        )

    def remove(self, paths: Iterable[str]) -> list[DeletionResult]:
        return self._storage.deletion.remove(self.logical_name, paths)


class MediaStorage:
    """Wires the storage services around one shared credential and bucket cache.

    Build once per process and inject it; every service shares the same
    authorization and bucket-ID cache.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        api: B2Api | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings or get_settings()
        s = self._settings
        if not s.B2_ACCOUNT_ID.strip() or not normalize_application_key(
            s.B2_APPLICATION_KEY
        ):
            raise StorageNotConfiguredError(
                "Backblaze env vars missing "
                "(BACKBLAZE_ACCOUNT_ID, BACKBLAZE_APPLICATION_KEY)"
            )

        self._api = api or B2HttpClient(settings=s)
        self.credentials = CredentialManager(
            self._api,
            account_id=s.B2_ACCOUNT_ID,
            application_key=s.B2_APPLICATION_KEY,
            retry_backoff_seconds=s.B2_AUTH_RETRY_BACKOFF_SECONDS,
            sleep=sleep,
            debug=s.B2_DEBUG,
        )
        self.buckets = BucketResolver(
            self._api,
            credentials=self.credentials,
            global_bucket=s.B2_BUCKET_NAME,
            feature_buckets=s.B2_FEATURE_BUCKETS,
        )
        shared = {"credentials": self.credentials, "buckets": self.buckets}
        self.uploads = UploadEngine(
            self._api,
            large_upload_threshold=s.B2_LARGE_UPLOAD_THRESHOLD_BYTES,
            part_size=s.B2_PART_SIZE_BYTES,
            concurrency=s.B2_UPLOAD_CONCURRENCY,
            cancel_failed_large_files=s.B2_CANCEL_FAILED_LARGE_FILES,
            **shared,
        )
        self.urls = URLIssuer(
            self._api,
            public_base=s.B2_PUBLIC_BASE,
            default_root=s.B2_DEFAULT_DOWNLOAD_ROOT,
            **shared,
        )
        self.retrieval = RetrievalService(self._api, **shared)
        self.deletion = DeletionService(self._api, **shared)

        self._lock = threading.Lock()
        self._operations: dict[str, BucketOperations] = {}

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def api(self) -> B2Api:
        return self._api

    def bucket(self, logical_name: str) -> BucketOperations:
        """Return the (cached) operation set for ``logical_name``."""
        with self._lock:
            ops = self._operations.get(logical_name)
            if ops is None:
                ops = BucketOperations(self, self.buckets.resolve(logical_name))
                self._operations[logical_name] = ops
            return ops


@lru_cache(maxsize=1)
def get_media_storage() -> MediaStorage:
    return MediaStorage(get_settings())
