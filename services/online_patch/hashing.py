"""Hashing helpers for binary verification."""

from __future__ import annotations

import hashlib
from pathlib import Path

from services.online_patch.models import DigestError

_READ_CHUNK_SIZE = 65536


def calculate_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    try:
        with Path(path).open("rb") as source:
            for chunk in iter(lambda: source.read(_READ_CHUNK_SIZE), b""):
                digest.update(chunk)
    except OSError as exc:
        raise DigestError(f"Failed to hash {path}: {exc}") from exc
    return digest.hexdigest()


def normalize_hash(value: str) -> str:
    return value.strip().upper()


def hashes_match(first: str | None, second: str | None) -> bool:
    """Return ``True`` when both digests are present and equal."""

    if not first or not second:
        return False
    return normalize_hash(first) == normalize_hash(second)


def file_matches(path: Path, expected: str | None) -> bool:
    if not expected:
        return False
    return hashes_match(calculate_sha256(path), expected)


__all__ = ["calculate_sha256", "file_matches", "hashes_match", "normalize_hash"]
