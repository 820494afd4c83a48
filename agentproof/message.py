"""
AgentProof Message Signing

Ephemeral agent-to-agent messages are signed with the same keypair and the
same contract as proofs: canonicalize every field except the signature,
then sign those bytes. Proofs and messages therefore share one trust root.
"""

from typing import Any, Dict, Mapping, Optional, Tuple

from .canonicalization import canonicalize
from .errors import SigningUnavailableError
from .identity import Identity
from .signing import sign, verify

SIGNATURE_FIELD = "signature"


def message_signing_bytes(message: Mapping[str, Any]) -> bytes:
    """Canonical bytes covered by a message signature (all fields but the signature)."""
    return canonicalize({k: v for k, v in message.items() if k != SIGNATURE_FIELD})


def sign_message(message: Mapping[str, Any], identity: Identity) -> Dict[str, Any]:
    """
    Sign a message and return a copy carrying the signature.

    Any existing signature is replaced.

    Raises:
        SigningUnavailableError: the identity is read-only
    """
    if not identity.can_sign:
        raise SigningUnavailableError(identity.agent_id)
    signed = {k: v for k, v in message.items() if k != SIGNATURE_FIELD}
    signed[SIGNATURE_FIELD] = sign(message_signing_bytes(signed), identity.private_key)
    return signed


def verify_message(message: Any, public_key: str) -> Tuple[bool, Optional[str]]:
    """
    Verify a message signature.

    Returns:
        (valid, error). Never raises on malformed input.
    """
    if not isinstance(message, Mapping):
        return False, "Message is not an object"
    signature = message.get(SIGNATURE_FIELD)
    if not signature:
        return False, "Message has no signature"
    try:
        payload = message_signing_bytes(message)
    except ValueError as e:
        return False, f"Message cannot be canonicalized: {e}"
    if not verify(payload, signature, public_key):
        return False, "Signature verification failed"
    return True, None
