"""Object storage transport layer.

This module provides a protocol-based abstraction over the Backblaze B2
native API and its HTTP implementation.
"""

from .client import (
    Authorization,
    B2Api,
    B2ApiError,
    ObjectStream,
    RemoteBucket,
    RemoteFile,
    StorageError,
    UploadedPart,
    UploadTarget,
)

__all__ = [
    "Authorization",
    "B2Api",
    "B2ApiError",
    "ObjectStream",
    "RemoteBucket",
    "RemoteFile",
    "StorageError",
    "UploadedPart",
    "UploadTarget",
]
