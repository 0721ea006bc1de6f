"""
Yanuka - Upload helpers.

Admin forms upload media to a dedicated bucket and fall back to a shared one
when the dedicated bucket hasn't been created:

    url = await upload_with_fallback(
        blob_store,
        ["baal-shem-tov-stories", "videos"],
        build_storage_path("baal-shem-tov-stories", "story.mp4"),
        data,
        "video/mp4",
    )

Only BucketNotFound moves on to the next bucket; every other failure
propagates immediately.
"""

import logging
import re
import time
from typing import Sequence

from yanuka.db.adapter import BlobStore
from yanuka.db.errors import BucketNotFound

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_CHARS.sub("_", filename)


def build_storage_path(prefix: str, filename: str, now_ms: int | None = None) -> str:
    """prefix/<epoch ms>_<sanitized filename>"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{prefix.strip('/')}/{now_ms}_{sanitize_filename(filename)}"


async def upload_with_fallback(
    blob_store: BlobStore,
    buckets: Sequence[str],
    path: str,
    data: bytes,
    content_type: str,
) -> str:
    """Upload to the first bucket that exists. Returns the public URL."""
    if not buckets:
        raise ValueError("upload_with_fallback needs at least one bucket")

    missing: BucketNotFound | None = None
    for bucket in buckets:
        try:
            return await blob_store.upload(bucket, path, data, content_type)
        except BucketNotFound as exc:
            logger.warning(f"Bucket '{bucket}' not found, trying next bucket")
            missing = exc
    raise missing
