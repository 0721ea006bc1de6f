"""
Tests for the upload helpers.
"""

import asyncio

import pytest

from yanuka.db.errors import BucketNotFound, UploadError
from yanuka.storage import build_storage_path, sanitize_filename, upload_with_fallback


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    return asyncio.run(coro)


class FakeBlobStore:
    def __init__(self, existing=(), failing=()):
        self.existing = set(existing)
        self.failing = set(failing)
        self.attempts: list[str] = []

    async def upload(self, bucket, path, data, content_type):
        self.attempts.append(bucket)
        if bucket in self.failing:
            raise UploadError(bucket, path, "payload too large")
        if bucket not in self.existing:
            raise BucketNotFound(bucket)
        return f"https://cdn.example/{bucket}/{path}"


class TestPaths:
    def test_sanitize_filename(self):
        assert sanitize_filename("שלום 1.mp3") == "_____1.mp3"
        assert sanitize_filename("story (final).mp4") == "story__final_.mp4"
        assert sanitize_filename("clean-name.png") == "clean-name.png"

    def test_build_storage_path(self):
        assert build_storage_path("news/", "a b.png", now_ms=1760860800000) == "news/1760860800000_a_b.png"


class TestUploadWithFallback:
    def test_first_bucket_wins(self):
        blobs = FakeBlobStore(existing={"stories", "videos"})
        url = _run(upload_with_fallback(blobs, ["stories", "videos"], "p/x.mp4", b"1", "video/mp4"))
        assert url == "https://cdn.example/stories/p/x.mp4"
        assert blobs.attempts == ["stories"]

    def test_falls_back_on_missing_bucket(self):
        blobs = FakeBlobStore(existing={"videos"})
        url = _run(upload_with_fallback(blobs, ["stories", "videos"], "p/x.mp4", b"1", "video/mp4"))
        assert url == "https://cdn.example/videos/p/x.mp4"
        assert blobs.attempts == ["stories", "videos"]

    def test_other_errors_do_not_fall_back(self):
        blobs = FakeBlobStore(existing={"stories", "videos"}, failing={"stories"})
        with pytest.raises(UploadError):
            _run(upload_with_fallback(blobs, ["stories", "videos"], "p/x.mp4", b"1", "video/mp4"))
        assert blobs.attempts == ["stories"]

    def test_all_buckets_missing(self):
        blobs = FakeBlobStore()
        with pytest.raises(BucketNotFound) as exc_info:
            _run(upload_with_fallback(blobs, ["stories", "videos"], "p/x.mp4", b"1", "video/mp4"))
        assert exc_info.value.bucket == "videos"

    def test_needs_a_bucket(self):
        with pytest.raises(ValueError):
            _run(upload_with_fallback(FakeBlobStore(), [], "p", b"1", "text/plain"))
