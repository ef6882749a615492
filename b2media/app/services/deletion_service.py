from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from b2media.infra.storage.client import RemoteFile

from .base import BaseStorageService

NOT_FOUND = "not_found"

logger = logging.getLogger("b2media.deletes")


@dataclass(frozen=True, slots=True)
class DeletionResult:
    path: str
    success: bool
    error: str | None = None
    file: RemoteFile | None = None


class DeletionService(BaseStorageService):
    def remove(self, logical_bucket: str, paths: Iterable[str]) -> list[DeletionResult]:
        """Delete each path's file version, one result per path in input order.

        A path with no remote file yields ``DeletionResult(success=False,
        error="not_found")`` and the batch continues. Other remote errors
        propagate.
        """
        resolved = self._buckets.resolve(logical_bucket)
        auth = self._auth()
        results: list[DeletionResult] = []
        for path in paths:
            remote = self._find_file(resolved, path)
            if remote is None:
                results.append(DeletionResult(path=path, success=False, error=NOT_FOUND))
                continue
            self._api.delete_file_version(
                auth=auth, file_name=remote.file_name, file_id=remote.file_id
            )
            logger.info(
                "file_deleted",
                extra={"extra": {"file_id": remote.file_id, "path": remote.file_name}},
            )
            results.append(DeletionResult(path=path, success=True, file=remote))
        return results
