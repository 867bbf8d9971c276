"""
Stable hashing utilities.

Provides deterministic short digests used to derive identifiers that
must not depend on execution order (e.g. evidence violation IDs).
"""

from __future__ import annotations

import hashlib


def stable_digest(*parts: str, length: int = 12) -> str:
    """
    SHA-256 over the unit-separator-joined parts, truncated to ``length``
    hex characters.
    """
    material = "\x1f".join(parts)
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:length]
