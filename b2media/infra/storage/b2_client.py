"""Backblaze B2 native API client.

This module speaks the B2 v2 HTTP API directly (``/b2api/v2/b2_*``) with one
pooled ``requests.Session`` shared by all callers.

Dependencies:
    - requests
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, Sequence
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter

from b2media.infra.observability.metrics import B2_LATENCY, B2_REQUESTS, status_label
from b2media.infra.storage.client import (
    Authorization,
    B2ApiError,
    ObjectStream,
    RemoteBucket,
    RemoteFile,
    UploadedPart,
    UploadTarget,
)

if TYPE_CHECKING:
    from b2media.common.config import Settings

API_PREFIX = "/b2api/v2"
DOWNLOAD_CHUNK_SIZE = 64 * 1024
POOL_MAXSIZE = 100

logger = logging.getLogger("b2media.http")


def encode_file_name(file_name: str) -> str:
    """Percent-encode a B2 file name for the ``X-Bz-File-Name`` header."""
    return quote(file_name, safe="/")


def _remote_file(payload: dict[str, Any]) -> RemoteFile:
    file_id = payload.get("fileId")
    if not file_id:
        raise B2ApiError("B2 response missing fileId")
    length = payload.get("contentLength")
    return RemoteFile(
        file_id=str(file_id),
        file_name=str(payload.get("fileName") or ""),
        content_length=int(length) if length is not None else None,
        content_type=payload.get("contentType"),
        content_sha1=payload.get("contentSha1"),
    )


def _upload_target(payload: dict[str, Any]) -> UploadTarget:
    upload_url = payload.get("uploadUrl")
    token = payload.get("authorizationToken")
    if not upload_url or not token:
        raise B2ApiError("B2 response missing uploadUrl or authorizationToken")
    return UploadTarget(upload_url=str(upload_url), authorization_token=str(token))


class B2HttpClient:
    """B2 native API client.

    Thread-safe: holds no per-account state, only the connection pool.
    """

    def __init__(self, *, settings: "Settings") -> None:
        self._settings = settings
        self._timeout = float(settings.B2_REQUEST_TIMEOUT_SECONDS)
        self._session = self._build_session(settings)

    @staticmethod
    def _build_session(settings: "Settings") -> requests.Session:
        """Create a keep-alive session sized for concurrent range requests."""
        session = requests.Session()
        adapter = HTTPAdapter(pool_connections=10, pool_maxsize=POOL_MAXSIZE)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        return session

    def close(self) -> None:
        self._session.close()

    def _request(
        self,
        operation: str,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> requests.Response:
        started = time.perf_counter()
        try:
            response = self._session.request(
                method, url, timeout=self._timeout, **kwargs
            )
        except requests.RequestException as exc:
            B2_REQUESTS.labels(operation, status_label(None)).inc()
            raise B2ApiError(f"B2 {operation} request failed: {exc}") from exc
        finally:
            B2_LATENCY.labels(operation).observe(time.perf_counter() - started)

        B2_REQUESTS.labels(operation, status_label(response.status_code)).inc()
        logger.debug(
            "b2_request",
            extra={"extra": {"operation": operation, "status": response.status_code}},
        )
        if response.status_code >= 400:
            error = self._error_from_response(operation, response)
            response.close()
            raise error
        return response

    @staticmethod
    def _error_from_response(operation: str, response: requests.Response) -> B2ApiError:
        code: str | None = None
        message = response.reason or "error"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("message") or message
        return B2ApiError(
            f"B2 {operation} failed ({response.status_code}): {message}",
            status_code=response.status_code,
            code=code,
        )

    @staticmethod
    def _json(operation: str, response: requests.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise B2ApiError(f"B2 {operation} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise B2ApiError(f"B2 {operation} returned unexpected payload")
        return payload

    def _call(
        self, operation: str, auth: Authorization, payload: dict[str, Any]
    ) -> dict[str, Any]:
        """POST a JSON request to ``{api_url}/b2api/v2/b2_<operation>``."""
        response = self._request(
            operation,
            "POST",
            f"{auth.api_url}{API_PREFIX}/b2_{operation}",
            headers={"Authorization": auth.authorization_token},
            json=payload,
        )
        return self._json(operation, response)

    def authorize_account(
        self, *, key_id: str, application_key: str
    ) -> Authorization:
        """Exchange the key pair for an account authorization.

        Args:
            key_id: Application key ID (or account ID for the master key).
            application_key: The application key secret.

        Returns:
            The authorization carrying the token and API and download URLs.

        Raises:
            B2ApiError: If the request fails or the response lacks a token.
        """
        base = self._settings.B2_API_URL.rstrip("/")
        response = self._request(
            "authorize_account",
            "GET",
            f"{base}{API_PREFIX}/b2_authorize_account",
            auth=(key_id, application_key),
        )
        payload = self._json("authorize_account", response)

        token = payload.get("authorizationToken")
        api_url = payload.get("apiUrl")
        if not token or not api_url:
            raise B2ApiError("B2 response missing authorizationToken or apiUrl")

        return Authorization(
            account_id=str(payload.get("accountId") or key_id),
            authorization_token=str(token),
            api_url=str(api_url).rstrip("/"),
            download_url=(payload.get("downloadUrl") or None),
        )

    def list_buckets(self, *, auth: Authorization) -> list[RemoteBucket]:
        """List every bucket owned by the authorized account."""
        payload = self._call("list_buckets", auth, {"accountId": auth.account_id})
        return [
            RemoteBucket(bucket_id=str(item["bucketId"]), bucket_name=str(item["bucketName"]))
            for item in payload.get("buckets") or []
        ]

    def get_upload_url(self, *, auth: Authorization, bucket_id: str) -> UploadTarget:
        """Obtain an upload URL and its token for single-request uploads."""
        payload = self._call("get_upload_url", auth, {"bucketId": bucket_id})
        return _upload_target(payload)

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
        """Upload a whole object in a single request.

        Args:
            target: Upload URL and token from :meth:`get_upload_url`.
            file_name: Full object name inside the bucket.
            data: Object body.
            content_type: MIME type stored with the object.
            content_sha1: Hex SHA-1 of ``data``.
            cache_control: Optional ``b2-cache-control`` file info.

        Returns:
            The stored file's metadata.

        Raises:
            B2ApiError: If the upload is rejected or the connection fails.
        """
        headers = {
            "Authorization": target.authorization_token,
            "X-Bz-File-Name": encode_file_name(file_name),
            "Content-Type": content_type,
            "Content-Length": str(len(data)),
            "X-Bz-Content-Sha1": content_sha1,
        }
        if cache_control:
            headers["X-Bz-Info-b2-cache-control"] = quote(cache_control)

        response = self._request(
            "upload_file", "POST", target.upload_url, headers=headers, data=data
        )
        return _remote_file(self._json("upload_file", response))

    def start_large_file(
        self,
        *,
        auth: Authorization,
        bucket_id: str,
        file_name: str,
        content_type: str,
        cache_control: str | None = None,
    ) -> RemoteFile:
        """Open a large-file session to be filled by :meth:`upload_part`.

        Args:
            auth: Account authorization.
            bucket_id: Target bucket ID.
            file_name: Full object name inside the bucket.
            content_type: MIME type stored with the object.
            cache_control: Optional ``b2-cache-control`` file info.

        Returns:
            The session's file record; ``file_id`` identifies the session.

        Raises:
            B2ApiError: If B2 refuses to start the session.
        """
        request: dict[str, Any] = {
            "bucketId": bucket_id,
            "fileName": file_name,
            "contentType": content_type,
        }
        if cache_control:
            request["fileInfo"] = {"b2-cache-control": cache_control}
        return _remote_file(self._call("start_large_file", auth, request))

    def get_upload_part_url(
        self, *, auth: Authorization, file_id: str
    ) -> UploadTarget:
        """Obtain an upload URL and its token for one part of a large file."""
        payload = self._call("get_upload_part_url", auth, {"fileId": file_id})
        return _upload_target(payload)

    def upload_part(
        self,
        *,
        target: UploadTarget,
        part_number: int,
        data: bytes,
        content_sha1: str,
    ) -> UploadedPart:
        """Upload one part of a large file.

        Args:
            target: Part upload URL and token from :meth:`get_upload_part_url`.
            part_number: 1-based part number.
            data: Part body.
            content_sha1: Hex SHA-1 of ``data``.

        Returns:
            The part as acknowledged by B2.

        Raises:
            B2ApiError: If the part is rejected or the connection fails.
        """
        headers = {
            "Authorization": target.authorization_token,
            "X-Bz-Part-Number": str(int(part_number)),
            "Content-Length": str(len(data)),
            "X-Bz-Content-Sha1": content_sha1,
        }
        response = self._request(
            "upload_part", "POST", target.upload_url, headers=headers, data=data
        )
        payload = self._json("upload_part", response)
        return UploadedPart(
            part_number=int(payload.get("partNumber", part_number)),
            content_sha1=str(payload.get("contentSha1") or content_sha1),
            content_length=int(payload.get("contentLength", len(data))),
        )

    def finish_large_file(
        self,
        *,
        auth: Authorization,
        file_id: str,
        part_sha1s: Sequence[str],
    ) -> RemoteFile:
        """Assemble the uploaded parts into the final object.

        Args:
            auth: Account authorization.
            file_id: Large-file session ID.
            part_sha1s: Part hashes ordered by part number.

        Returns:
            The finished file's metadata.

        Raises:
            B2ApiError: If the part list does not match what was uploaded.
        """
        payload = self._call(
            "finish_large_file",
            auth,
            {"fileId": file_id, "partSha1Array": list(part_sha1s)},
        )
        return _remote_file(payload)

    def cancel_large_file(self, *, auth: Authorization, file_id: str) -> None:
        """Cancel a large-file session and discard its uploaded parts.

        Raises:
            B2ApiError: If the session cannot be cancelled.
        """
        self._call("cancel_large_file", auth, {"fileId": file_id})

    def list_file_names(
        self,
        *,
        auth: Authorization,
        bucket_id: str,
        prefix: str,
        max_file_count: int = 1,
    ) -> list[RemoteFile]:
        """List up to ``max_file_count`` file names under ``prefix``, sorted."""
        payload = self._call(
            "list_file_names",
            auth,
            {
                "bucketId": bucket_id,
                "prefix": prefix,
                "maxFileCount": int(max_file_count),
            },
        )
        return [_remote_file(item) for item in payload.get("files") or []]

    def download_file_by_id(
        self,
        *,
        auth: Authorization,
        file_id: str,
        range_header: str | None = None,
    ) -> ObjectStream:
        """Stream a file's body by ID.

        Args:
            auth: Account authorization; its ``download_url`` is required.
            file_id: ID of the file version to download.
            range_header: Optional HTTP ``Range`` value such as ``bytes=0-99``.

        Returns:
            A stream whose ``release`` closes the underlying response.

        Raises:
            B2ApiError: If there is no download URL or the download fails.
        """
        if not auth.download_url:
            raise B2ApiError("Authorization has no download URL")

        headers = {"Authorization": auth.authorization_token}
        if range_header:
            headers["Range"] = range_header

        response = self._request(
            "download_file_by_id",
            "GET",
            f"{auth.download_url.rstrip('/')}{API_PREFIX}/b2_download_file_by_id",
            params={"fileId": file_id},
            headers=headers,
            stream=True,
        )
        return ObjectStream(
            status_code=response.status_code,
            headers=response.headers,
            chunks=response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE),
            release=response.close,
        )

    def get_download_authorization(
        self,
        *,
        auth: Authorization,
        bucket_id: str,
        file_name_prefix: str,
        valid_duration_seconds: int,
    ) -> str:
        """Issue a download token for files under a name prefix.

        Args:
            auth: Account authorization.
            bucket_id: Bucket the token is scoped to.
            file_name_prefix: Names the token grants access to.
            valid_duration_seconds: Token lifetime in seconds.

        Returns:
            The download authorization token.

        Raises:
            B2ApiError: If the request fails or the response lacks a token.
        """
        payload = self._call(
            "get_download_authorization",
            auth,
            {
                "bucketId": bucket_id,
                "fileNamePrefix": file_name_prefix,
                "validDurationInSeconds": int(valid_duration_seconds),
            },
        )
        token = payload.get("authorizationToken")
        if not token:
            raise B2ApiError("B2 response missing authorizationToken")
        return str(token)

    def delete_file_version(
        self, *, auth: Authorization, file_name: str, file_id: str
    ) -> None:
        """Delete one version of a file."""
        self._call(
            "delete_file_version", auth, {"fileName": file_name, "fileId": file_id}
        )
