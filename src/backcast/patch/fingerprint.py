"""Content fingerprints identifying a point in a resource's history."""

from __future__ import annotations

import hashlib

FINGERPRINT_LENGTH = 40


def fingerprint_content(content: str) -> str:
    return hashlib.sha1(content.encode("utf-8")).hexdigest()  # noqa: S324
