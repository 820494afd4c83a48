"""
AgentProof Hashing

All hashes use SHA-256 with lowercase hexadecimal output.
"""

import hashlib
import hmac
from typing import Any, Mapping, Union

from .canonicalization import canonicalize


def sha256_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-256 hash and return as lowercase hex string."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def canonical_hash(obj: Any) -> str:
    """
    Hash a structured record.

    canonical_hash = SHA-256(CanonicalJSON(obj))
    """
    return sha256_hex(canonicalize(obj))


def proof_hash(body: Mapping[str, Any]) -> str:
    """
    Compute the content hash of a proof body.

    The body is every hashed proof field; ``hash`` and ``signature`` must
    already be excluded by the caller (see ``proof.proof_body``).
    """
    return canonical_hash(dict(body))


def verify_hash(declared_hash: str, data: Union[bytes, str]) -> bool:
    """
    Verify that data matches a declared hex digest.

    Verifiers always recompute from source data; the comparison is constant time.
    """
    if not isinstance(declared_hash, str):
        return False
    computed = sha256_hex(data)
    return hmac.compare_digest(computed.encode('utf-8'), declared_hash.lower().encode('utf-8'))
