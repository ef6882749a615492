"""Tests for RetrievalService."""

from __future__ import annotations

import pytest

from b2media.app.services.retrieval_service import (
    DownloadFailedError,
    ObjectNotFoundError,
)


class TestDownloadStream:
    """Test RetrievalService.download_stream."""

    def test_downloads_full_object(self, storage, api):
        """Test an unranged download streams the whole object."""
        remote = api.add_file("media-bucket", "videos/clip.mp4", b"0123456789")

        result = storage.retrieval.download_stream("videos", "clip.mp4")

        assert result.status_code == 200
        assert result.file == remote
        assert result.read() == b"0123456789"
        assert api.calls[-2:] == ["list_file_names", "download_file_by_id"]

    def test_honours_range(self, storage, api):
        """Test a range header yields a partial response."""
        api.add_file("media-bucket", "videos/clip.mp4", b"0123456789")

        with storage.retrieval.download_stream(
            "videos", "clip.mp4", "bytes=2-5"
        ) as result:
            body = b"".join(result.content)

        assert result.status_code == 206
        assert result.headers["Content-Range"] == "bytes 2-5/10"
        assert body == b"2345"

    def test_missing_object_skips_download(self, storage, api):
        """Test a missing object raises before any download."""
        with pytest.raises(ObjectNotFoundError) as excinfo:
            storage.retrieval.download_stream("videos", "missing.mp4")

        assert excinfo.value.path == "missing.mp4"
        assert api.count("download_file_by_id") == 0

    def test_range_failure_falls_back_to_full_download(self, storage, api):
        """Test a failed ranged download retries without the range."""
        api.add_file("media-bucket", "videos/clip.mp4", b"0123456789")
        api.fail_ranged_download = True

        result = storage.retrieval.download_stream("videos", "clip.mp4", "bytes=0-3")

        assert result.status_code == 200
        assert result.read() == b"0123456789"
        assert api.count("download_file_by_id") == 2

    def test_both_attempts_failing_raises(self, storage, api):
        """Test DownloadFailedError after the fallback also fails."""
        api.add_file("media-bucket", "videos/clip.mp4", b"0123456789")
        api.fail_download = True

        with pytest.raises(DownloadFailedError) as excinfo:
            storage.retrieval.download_stream("videos", "clip.mp4", "bytes=0-3")

        assert excinfo.value.path == "clip.mp4"
        assert api.count("download_file_by_id") == 2

    def test_unranged_failure_is_not_retried(self, storage, api):
        """Test an unranged failure raises without a retry."""
        api.add_file("media-bucket", "videos/clip.mp4")
        api.fail_download = True

        with pytest.raises(DownloadFailedError):
            storage.retrieval.download_stream("videos", "clip.mp4")

        assert api.count("download_file_by_id") == 1

    def test_lookup_is_not_cached(self, storage, api):
        """Test each download lists the file again."""
        api.add_file("media-bucket", "videos/clip.mp4")

        storage.retrieval.download_stream("videos", "clip.mp4").close()
        storage.retrieval.download_stream("videos", "clip.mp4").close()

        assert api.count("list_file_names") == 2
        assert api.count("list_buckets") == 1

    def test_sibling_with_longer_name_is_not_served(self, storage, api):
        """A path that only prefixes another object's name raises not found."""
        api.add_file("media-bucket", "videos/clip.mp4.bak", b"stale")

        with pytest.raises(ObjectNotFoundError):
            storage.retrieval.download_stream("videos", "clip.mp4")

        assert api.count("list_file_names") == 1
        assert api.count("download_file_by_id") == 0

    def test_empty_path_is_not_found(self, storage, api):
        """An empty path does not download the first object under the prefix."""
        api.add_file("media-bucket", "videos/clip.mp4")

        with pytest.raises(ObjectNotFoundError) as excinfo:
            storage.retrieval.download_stream("videos", "")

        assert excinfo.value.path == ""
        assert api.count("download_file_by_id") == 0
