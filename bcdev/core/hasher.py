"""Hashing helpers for cache completion markers."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

_CHUNK = 1024 * 1024


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: sorted keys, two-space indent, ASCII."""
    return json.dumps(obj, sort_keys=True, indent=2, ensure_ascii=True).encode("utf-8")


def sha256_file(path: Path) -> str:
    """Return the SHA-256 hex digest of a file, read in 1 MiB chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()
