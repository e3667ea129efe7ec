"""
escrowkit/core/canonical.py

RFC 8785 (JCS) canonical JSON and the hashes built on it:

    deposit request hashes      authorization/verifier.py
    recovery request hashes     recovery/recovery.py
    submission commitments      commitment_hash()
    event chain hashes          core/events.py

Nothing else in escrowkit serializes for hashing or signing.
"""

import hashlib
from enum import Enum
from typing import Any

try:
    import jcs as _jcs
except ImportError as exc:
    raise ImportError(
        "escrowkit needs the 'jcs' package (pip install jcs) for "
        f"RFC 8785 canonical JSON: {exc}"
    ) from exc


def to_plain(value: Any) -> Any:
    """Reduce enums, tuples and nested containers to JSON primitives."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


def canonicalize(obj: dict) -> bytes:
    return _jcs.canonicalize(to_plain(obj))


def canonical_hash(obj: dict) -> str:
    """Lowercase hex SHA-256 of the canonical form."""
    return hashlib.sha256(canonicalize(obj)).hexdigest()


def commitment_hash(data: str, salt: str) -> str:
    """
    The value a contractor binds at deposit time and reveals on submit.
    submit() recomputes it from the revealed (data, salt) pair.
    """
    return canonical_hash({"data": data, "salt": salt})
