"""
Deterministic traffic bucketing.

Maps a stable identifier (user ID, session ID, tenant) to a bucket in
``[0, 100)`` using the first 32 bits of its MD5 digest. The mapping has no
per-process seed, so every replica assigns an identifier to the same bucket,
and MD5's mixing keeps the buckets close to uniform even for sequential IDs
like ``user-1``, ``user-2``.

MD5 is used for distribution only, not for security.
"""

from __future__ import annotations

import hashlib

BUCKET_COUNT = 100


def bucket(identifier: str) -> int:
    """Return the bucket of ``identifier`` in ``[0, 100)``.

    Empty strings are valid and always land in the same bucket.
    """
    digest = hashlib.md5(str(identifier).encode("utf-8"), usedforsecurity=False).hexdigest()
    return int(digest[:8], 16) % BUCKET_COUNT


def is_in_rollout(identifier: str, percentage: int) -> bool:
    """True when ``identifier`` falls inside the first ``percentage`` buckets."""
    return bucket(identifier) < percentage
