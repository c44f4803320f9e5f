# vocab/identity.py
from __future__ import annotations

import hashlib

# Unit separator; never part of valid word or definition text.
_SEP = "\x1f"


def normalize_sense(word: str, meaning: str) -> str:
    """Lowercase + trim both halves and join them with the unit separator."""
    return f"{word.lower().strip()}{_SEP}{meaning.lower().strip()}"


def derive_sense_hash(word: str, meaning: str) -> str:
    """Stable sha256 hex digest identifying a (word, meaning) pair."""
    return hashlib.sha256(normalize_sense(word, meaning).encode("utf-8")).hexdigest()


def derive_encounter_key(source_url: str, context: str) -> str:
    """sha256 hex of (source_url, context); context must already be canonical."""
    return hashlib.sha256(f"{source_url}{_SEP}{context}".encode("utf-8")).hexdigest()
