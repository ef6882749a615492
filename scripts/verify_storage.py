#!/usr/bin/env python3
"""Check Backblaze B2 credentials and, optionally, a round-trip upload.

Usage:
  .venv/bin/python scripts/verify_storage.py
  .venv/bin/python scripts/verify_storage.py --upload profiles

Reads BACKBLAZE_* variables from the environment or ./.env.
Exit codes: 0 ok, 1 upload failed, 2 missing credentials, 3 authorization failed.
"""

from __future__ import annotations

import argparse
import hashlib
import logging
import time

from b2media.app.services import (
    AuthorizationFailedError,
    MediaStorage,
    ServiceError,
    StorageNotConfiguredError,
)
from b2media.common.config import get_settings
from b2media.common.logging import mask_secret, setup_logging

logger = logging.getLogger("b2media.scripts")


def verify_storage(*, upload_bucket: str | None = None) -> int:
    settings = get_settings()
    key = settings.B2_APPLICATION_KEY
    logger.info("AccountId (masked): %s", mask_secret(settings.B2_ACCOUNT_ID))
    logger.info("AppKey length: raw=%d trimmed=%d", len(key), len(key.strip()))
    logger.info(
        "AppKey sha256 (masked): %s",
        mask_secret(hashlib.sha256(key.strip().encode("utf-8")).hexdigest()),
    )

    try:
        storage = MediaStorage(settings)
    except StorageNotConfiguredError as exc:
        logger.error("%s", exc)
        return 2

    try:
        auth = storage.credentials.ensure_authorized()
    except AuthorizationFailedError as exc:
        logger.error("Authorize failed: %s", exc)
        return 3
    logger.info("Authorize success: apiUrl=%s downloadUrl=%s", auth.api_url, auth.download_url)

    if not upload_bucket:
        return 0

    ops = storage.bucket(upload_bucket)
    path = f"test-upload-{int(time.time() * 1000)}.txt"
    logger.info("Uploading to bucket: %s path: %s", ops.physical_bucket, ops.object_path(path))
    try:
        result = ops.upload(path, b"hello backblaze test", "text/plain")
        logger.info("Upload result: file_id=%s path=%s", result.file_id, result.remote_path)
        logger.info("Public URL: %s", ops.public_url(path))
        signed = ops.signed_url(path, 300)
        logger.info("Signed URL (signed=%s): %s", signed.signed, signed.url)
    except ServiceError as exc:
        logger.error("Upload test failed: %s", exc)
        return 1
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Verify Backblaze B2 configuration")
    parser.add_argument(
        "--upload",
        metavar="BUCKET",
        default=None,
        help="Also upload a small text object to this logical bucket",
    )
    args = parser.parse_args()
    setup_logging(debug=get_settings().B2_DEBUG)
    raise SystemExit(verify_storage(upload_bucket=args.upload))


if __name__ == "__main__":
    main()
