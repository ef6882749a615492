from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote

from b2media.infra.observability.metrics import SIGNED_URLS
from b2media.infra.storage.client import B2Api, StorageError

from .base import BaseStorageService, ServiceError
from .bucket_service import BucketResolver
from .credential_service import CredentialManager

MIN_SIGNED_URL_SECONDS = 60

# Characters encodeURIComponent leaves alone besides the RFC 3986 unreserved set.
_SEGMENT_SAFE = "!~*'()"

logger = logging.getLogger("b2media.urls")


@dataclass(frozen=True, slots=True)
class SignedUrl:
    """A download URL and whether it actually carries an authorization token.

    ``signed`` is ``False`` when the download authorization could not be
    obtained and ``url`` is the plain public URL instead.
    """

    url: str
    signed: bool
    expires_in: int | None = None


def encode_object_path(path: str) -> str:
    """Percent-encode each ``/``-separated segment independently."""
    return "/".join(quote(segment, safe=_SEGMENT_SAFE) for segment in path.split("/"))


class URLIssuer(BaseStorageService):
    def __init__(
        self,
        api: B2Api,
        *,
        credentials: CredentialManager,
        buckets: BucketResolver,
        public_base: str | None = None,
        default_root: str = "https://f003.backblazeb2.com/file",
    ) -> None:
        super().__init__(api, credentials=credentials, buckets=buckets)
        base = (public_base or "").strip()
        self._public_base = base.rstrip("/") if base.startswith("http") else None
        self._default_root = default_root.rstrip("/")

    def _download_root(self) -> str | None:
        if self._public_base:
            return self._public_base
        download_url = self._auth().download_url
        if download_url:
            return f"{download_url.rstrip('/')}/file"
        return None

    def public_url(self, logical_bucket: str, path: str) -> str:
        resolved = self._buckets.resolve(logical_bucket)
        root = self._download_root() or self._default_root
        encoded = encode_object_path(resolved.object_path(path))
        return f"{root}/{resolved.physical_bucket}/{encoded}"

    def signed_url(
        self, logical_bucket: str, path: str, ttl_seconds: int = 60
    ) -> SignedUrl:
        """Build a time-boxed download URL scoped to exactly this object path.

        Falls back to the public URL (``signed=False``) when B2 refuses or
        fails to issue a download authorization. Authorization failures of
        the account itself still propagate.
        """
        resolved = self._buckets.resolve(logical_bucket)
        object_path = resolved.object_path(path)
        auth = self._auth()
        duration = max(MIN_SIGNED_URL_SECONDS, int(ttl_seconds or MIN_SIGNED_URL_SECONDS))

        try:
            bucket_id = self._buckets.bucket_id(resolved.physical_bucket)
            token = self._api.get_download_authorization(
                auth=auth,
                bucket_id=bucket_id,
                file_name_prefix=object_path,
                valid_duration_seconds=duration,
            )
        except (StorageError, ServiceError) as exc:
            logger.warning(
                "signed_url_degraded",
                extra={"extra": {"path": object_path, "error": str(exc)}},
            )
        else:
            root = self._download_root()
            if token and root:
                SIGNED_URLS.labels("signed").inc()
                encoded = encode_object_path(object_path)
                return SignedUrl(
                    url=(
                        f"{root}/{resolved.physical_bucket}/{encoded}"
                        f"?Authorization={quote(token, safe='')}"
                    ),
                    signed=True,
                    expires_in=duration,
                )
            logger.warning(
                "signed_url_degraded",
                extra={"extra": {"path": object_path, "error": "no download root"}},
            )

        SIGNED_URLS.labels("degraded").inc()
        return SignedUrl(url=self.public_url(logical_bucket, path), signed=False)
