from .base import BaseStorageService, ServiceError, StorageNotConfiguredError
from .bucket_service import BucketNotFoundError, BucketResolver, ResolvedBucket
from .bundle import BucketOperations, MediaStorage, get_media_storage
from .credential_service import AuthorizationFailedError, CredentialManager
from .deletion_service import DeletionResult, DeletionService
from .retrieval_service import (
    DownloadFailedError,
    DownloadResult,
    ObjectNotFoundError,
    RetrievalService,
)
from .upload_service import UploadEngine, UploadFailedError, UploadResult
from .url_service import SignedUrl, URLIssuer

__all__ = [
    "BaseStorageService",
    "ServiceError",
    "StorageNotConfiguredError",
    "CredentialManager",
    "AuthorizationFailedError",
    "BucketResolver",
    "ResolvedBucket",
    "BucketNotFoundError",
    "UploadEngine",
    "UploadResult",
    "UploadFailedError",
    "URLIssuer",
    "SignedUrl",
    "RetrievalService",
    "DownloadResult",
    "ObjectNotFoundError",
    "DownloadFailedError",
    "DeletionService",
    "DeletionResult",
    "MediaStorage",
    "BucketOperations",
    "get_media_storage",
]
