"""
AgentProof Cryptographic Signing

Uses Ed25519 (RFC 8032) for proof and message signing.

Keys travel as base64 text. Public keys are DER SubjectPublicKeyInfo and
private keys are DER PKCS#8, the encodings most Ed25519 tooling exports, so
chain files stay portable across implementations. Raw 32-byte keys are
accepted on input as well.
"""

import base64
import binascii
from typing import Tuple, Union

from nacl.exceptions import BadSignatureError, CryptoError
from nacl.signing import SigningKey, VerifyKey

from .errors import InvalidKeyError

ALGORITHM = "Ed25519"

KEY_SIZE = 32
SIGNATURE_SIZE = 64

# DER headers for Ed25519 (OID 1.3.101.112)
_SPKI_PREFIX = bytes.fromhex("302a300506032b6570032100")
_PKCS8_PREFIX = bytes.fromhex("302e020100300506032b657004220420")


def b64e(b: bytes) -> str:
    """Base64 encode bytes to string."""
    return base64.b64encode(b).decode('ascii')


def b64d(s: Union[str, bytes]) -> bytes:
    """Strict base64 decode; raises binascii.Error on malformed input."""
    if isinstance(s, str):
        s = s.encode('ascii')
    return base64.b64decode(s, validate=True)


def encode_public_key(raw: bytes) -> str:
    """Encode a raw Ed25519 public key as base64 SPKI DER."""
    if len(raw) != KEY_SIZE:
        raise ValueError(f"Ed25519 public key must be {KEY_SIZE} bytes")
    return b64e(_SPKI_PREFIX + raw)


def decode_public_key(public_key_b64: str) -> bytes:
    """Decode a base64 SPKI DER (or raw) Ed25519 public key to its 32 raw bytes."""
    der = b64d(public_key_b64)
    if len(der) == KEY_SIZE:
        return der
    if len(der) == len(_SPKI_PREFIX) + KEY_SIZE and der.startswith(_SPKI_PREFIX):
        return der[len(_SPKI_PREFIX):]
    raise ValueError("Not an Ed25519 public key")


def encode_private_key(seed: bytes) -> str:
    """Encode a raw Ed25519 seed as base64 PKCS#8 DER."""
    if len(seed) != KEY_SIZE:
        raise ValueError(f"Ed25519 private key must be {KEY_SIZE} bytes")
    return b64e(_PKCS8_PREFIX + seed)


def decode_private_key(private_key_b64: str) -> bytes:
    """Decode a base64 PKCS#8 DER (or raw) Ed25519 private key to its 32-byte seed."""
    der = b64d(private_key_b64)
    if len(der) == KEY_SIZE:
        return der
    if len(der) == len(_PKCS8_PREFIX) + KEY_SIZE and der.startswith(_PKCS8_PREFIX):
        return der[len(_PKCS8_PREFIX):]
    raise ValueError("Not an Ed25519 private key")


def generate_keypair() -> Tuple[str, str]:
    """
    Generate an Ed25519 key pair.

    Returns:
        Tuple of (public_key_b64, private_key_b64)
    """
    signing_key = SigningKey.generate()
    return (
        encode_public_key(bytes(signing_key.verify_key)),
        encode_private_key(bytes(signing_key)),
    )


def public_key_for(private_key_b64: str) -> str:
    """Return the base64 public key matching a private key."""
    return encode_public_key(bytes(_signing_key(private_key_b64).verify_key))


def _signing_key(private_key_b64: str) -> SigningKey:
    try:
        return SigningKey(decode_private_key(private_key_b64))
    except (ValueError, TypeError, binascii.Error, CryptoError) as e:
        raise InvalidKeyError(f"Invalid Ed25519 private key: {e}") from e


def sign(data: bytes, private_key_b64: str) -> str:
    """
    Sign data with Ed25519.

    Ed25519 is deterministic: the same key and data always yield the same
    signature.

    Returns:
        Base64-encoded 64-byte signature

    Raises:
        InvalidKeyError: the private key is structurally invalid
    """
    return b64e(_signing_key(private_key_b64).sign(data).signature)


def verify(data: bytes, signature_b64: str, public_key_b64: str) -> bool:
    """
    Verify an Ed25519 signature.

    Never raises: malformed signatures, malformed keys and bad signatures
    all verify False.
    """
    if not isinstance(signature_b64, str) or not isinstance(public_key_b64, str):
        return False
    try:
        signature = b64d(signature_b64)
        if len(signature) != SIGNATURE_SIZE:
            return False
        verify_key = VerifyKey(decode_public_key(public_key_b64))
        verify_key.verify(data, signature)
        return True
    except (BadSignatureError, CryptoError, ValueError, TypeError, binascii.Error):
        return False
