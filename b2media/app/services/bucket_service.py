from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from b2media.infra.storage.client import B2Api

from .base import ServiceError
from .credential_service import CredentialManager

logger = logging.getLogger("b2media.buckets")


class BucketNotFoundError(ServiceError):
    """Raised when no remote bucket carries the configured physical name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Backblaze bucket not found: {name}")
        self.name = name


@dataclass(frozen=True, slots=True)
class ResolvedBucket:
    """A logical bucket bound to its physical bucket and path prefix."""

    logical_name: str
    physical_bucket: str
    prefix: str = ""

    def object_path(self, path: str) -> str:
        return f"{self.prefix}{path}" if self.prefix else path


class BucketResolver:
    """Maps logical bucket names to physical buckets and caches bucket IDs.

    The bucket-ID cache lives as long as the resolver and is never evicted.
    Concurrent first lookups of the same bucket may each list buckets; the
    writes are idempotent.
    """

    def __init__(
        self,
        api: B2Api,
        *,
        credentials: CredentialManager,
        global_bucket: str | None = None,
        feature_buckets: Mapping[str, str] | None = None,
    ) -> None:
        self._api = api
        self._credentials = credentials
        self._global_bucket = global_bucket or None
        self._feature_buckets = {
            key.upper(): value for key, value in (feature_buckets or {}).items() if value
        }
        self._bucket_ids: dict[str, str] = {}

        for logical, physical in self._feature_buckets.items():
            logger.debug(
                "bucket_mapping",
                extra={"extra": {"logical": logical, "physical": physical}},
            )

    def resolve(self, logical_name: str) -> ResolvedBucket:
        logical_name = logical_name or ""
        override = self._feature_buckets.get(logical_name.upper())
        if override:
            logger.debug(
                "bucket_resolved",
                extra={"extra": {"logical": logical_name, "physical": override}},
            )
            return ResolvedBucket(logical_name, override)

        if self._global_bucket:
            prefix = ""
            if logical_name and logical_name != self._global_bucket:
                prefix = f"{logical_name}/"
            logger.debug(
                "bucket_resolved",
                extra={
                    "extra": {
                        "logical": logical_name,
                        "physical": self._global_bucket,
                        "prefix": prefix,
                    }
                },
            )
            return ResolvedBucket(logical_name, self._global_bucket, prefix)

        logger.debug("bucket_unmapped", extra={"extra": {"logical": logical_name}})
        return ResolvedBucket(logical_name, logical_name)

    def bucket_id(self, physical_bucket: str) -> str:
        """Return the remote ID of ``physical_bucket``, listing buckets on a miss.

        Raises:
            BucketNotFoundError: If a fresh listing has no bucket of that name.
        """
        cached = self._bucket_ids.get(physical_bucket)
        if cached is not None:
            return cached

        auth = self._credentials.ensure_authorized()
        for bucket in self._api.list_buckets(auth=auth):
            if bucket.bucket_name == physical_bucket:
                self._bucket_ids[physical_bucket] = bucket.bucket_id
                return bucket.bucket_id
        raise BucketNotFoundError(physical_bucket)
