"""
AgentProof Identity

An identity is an Ed25519 keypair plus a short identifier derived from the
public key. The public key is the agent's verifiable identity; the private
key never leaves the identity file.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import IdentityExistsError, IdentityFileError, InvalidKeyError
from .hashing import sha256_hex
from .logging_config import audit_log
from .signing import decode_public_key, generate_keypair, public_key_for
from .util import utc_now_iso

AGENT_ID_PREFIX = "agent-"
AGENT_ID_HEX_CHARS = 16

IDENTITY_FILE_MODE = 0o600


def derive_agent_id(public_key: str) -> str:
    """
    Derive the agent ID from a base64 public key.

    Pure function: the first 16 hex chars of SHA-256 over the key text,
    prefixed with ``agent-``.
    """
    return AGENT_ID_PREFIX + sha256_hex(public_key)[:AGENT_ID_HEX_CHARS]


@dataclass
class Identity:
    """Ed25519 identity. ``private_key`` is None for read-only identities."""
    public_key: str
    private_key: Optional[str] = field(default=None, repr=False)
    created: str = field(default_factory=utc_now_iso)

    @property
    def agent_id(self) -> str:
        return derive_agent_id(self.public_key)

    @property
    def can_sign(self) -> bool:
        return bool(self.private_key)

    @classmethod
    def from_public_key(cls, public_key: str, created: Optional[str] = None) -> 'Identity':
        """Build a read-only identity, e.g. for a chain imported from a third party."""
        return cls(public_key=public_key, private_key=None, created=created or utc_now_iso())

    def public_view(self) -> 'Identity':
        """Return a copy of this identity without the private key."""
        return Identity(public_key=self.public_key, private_key=None, created=self.created)

    def to_dict(self) -> Dict[str, Any]:
        """Identity file format. Contains the private key: never export this."""
        return {
            "publicKey": self.public_key,
            "privateKey": self.private_key,
            "created": self.created,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Identity':
        if not isinstance(data, dict) or not data.get("publicKey") or not data.get("privateKey"):
            raise IdentityFileError("Invalid keypair file: missing publicKey or privateKey")
        return cls(
            public_key=data["publicKey"],
            private_key=data["privateKey"],
            created=data.get("created") or utc_now_iso(),
        )


def generate_identity() -> Identity:
    """Generate a new Ed25519 identity."""
    public_key, private_key = generate_keypair()
    return Identity(public_key=public_key, private_key=private_key)


def save_identity(identity: Identity, path: Union[str, Path]) -> Path:
    """
    Persist an identity with owner-only permissions.

    Never overwrites: an existing file raises IdentityExistsError. The file is
    created with O_EXCL so two concurrent initializers cannot both succeed.
    """
    path = Path(path).expanduser()
    if not identity.can_sign:
        raise IdentityFileError("Refusing to save an identity without a private key")
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, IDENTITY_FILE_MODE)
    except FileExistsError:
        raise IdentityExistsError(str(path))

    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(identity.to_dict(), f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.chmod(path, IDENTITY_FILE_MODE)
    audit_log.identity_created(identity.agent_id, identity.public_key, str(path))
    return path


def load_identity(path: Union[str, Path]) -> Identity:
    """Load an identity file."""
    path = Path(path).expanduser()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise IdentityFileError(f"No keypair found at {path}")
    except (OSError, json.JSONDecodeError) as e:
        raise IdentityFileError(f"Cannot read keypair file {path}: {e}") from e

    identity = Identity.from_dict(data)
    try:
        matches = decode_public_key(public_key_for(identity.private_key)) == decode_public_key(identity.public_key)
    except (InvalidKeyError, ValueError) as e:
        raise IdentityFileError(f"Invalid key material in {path}: {e}") from e
    if not matches:
        raise IdentityFileError(f"Keypair file {path}: private key does not match public key")
    return identity
