"""Content-address helpers for build digests."""

from __future__ import annotations

import re

DIGEST_ALGORITHM = "sha256"
_HEX_RE = re.compile(r"^[0-9a-f]{64}$")


def is_sha256_hex(value: str) -> bool:
    return bool(_HEX_RE.match(value))


def strip_algorithm(digest: str) -> str:
    """Strip the ``sha256:`` prefix from a digest, if present."""
    return digest.removeprefix(f"{DIGEST_ALGORITHM}:")
