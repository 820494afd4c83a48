"""
AgentProof Proof Creation

A proof is an immutable, signed, hash-linked record of one agent action:
version, action label, payload, agent ID, the previous proof's hash,
timestamp and metadata. The hash and the signature are both computed over
the canonical encoding of exactly those fields.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from .canonicalization import canonicalize
from .errors import SigningUnavailableError
from .hashing import sha256_hex
from .identity import Identity
from .signing import sign
from .util import format_timestamp, utc_now_iso

PROOF_VERSION = "1.0"

# Every field except hash and signature participates in the hash.
HASHED_FIELDS = (
    "version",
    "action",
    "data",
    "agentId",
    "previousHash",
    "timestamp",
    "metadata",
)


class ActionTypes:
    """Standard action labels. Any non-empty string is accepted as an action."""
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    MESSAGE_SENT = "message_sent"
    MESSAGE_RECEIVED = "message_received"
    FILE_READ = "file_read"
    FILE_WRITE = "file_write"
    FILE_DELETE = "file_delete"
    EXEC = "exec"
    WEB_REQUEST = "web_request"
    DECISION = "decision"
    ERROR = "error"
    CUSTOM = "custom"

    @classmethod
    def all(cls):
        return [v for k, v in vars(cls).items() if k.isupper()]


def proof_body(record: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Extract the hashed fields from a wire-format proof.

    Fields absent from the record stay absent, so a record produced without
    an optional field hashes the same way it was signed.
    """
    return {name: record[name] for name in HASHED_FIELDS if name in record}


@dataclass(frozen=True)
class Proof:
    """A complete signed proof. Use ``to_dict`` for the wire format."""
    version: str
    action: str
    data: Any
    agent_id: str
    previous_hash: Optional[str]
    timestamp: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    hash: str = ""
    signature: str = ""

    def body(self) -> Dict[str, Any]:
        """Hashed fields in wire format (deep copy)."""
        return {
            "version": self.version,
            "action": self.action,
            "data": copy.deepcopy(self.data),
            "agentId": self.agent_id,
            "previousHash": self.previous_hash,
            "timestamp": self.timestamp,
            "metadata": copy.deepcopy(self.metadata),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Wire format. Nested data is copied so callers cannot mutate the proof."""
        record = self.body()
        record["hash"] = self.hash
        record["signature"] = self.signature
        return record

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Proof':
        """Build a Proof from wire format. Does not verify; see verifier.verify_proof."""
        return cls(
            version=data["version"],
            action=data["action"],
            data=copy.deepcopy(data["data"]),
            agent_id=data["agentId"],
            previous_hash=data.get("previousHash"),
            timestamp=data["timestamp"],
            metadata=copy.deepcopy(data.get("metadata") or {}),
            hash=data["hash"],
            signature=data["signature"],
        )


def build_proof(
    action: str,
    data: Any,
    identity: Identity,
    previous_hash: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    timestamp: Optional[datetime] = None
) -> Proof:
    """
    Create a complete signed proof.

    Steps: stamp time, assemble the body, canonicalize once, hash and sign
    those same bytes.

    Args:
        action: Action label (e.g. "tool_call", "decision")
        data: Action payload (any JSON-compatible structure)
        identity: Signing identity; must hold a private key
        previous_hash: Hash of the preceding proof, None for the first proof
        metadata: Optional free-form metadata
        timestamp: Override for the creation time (default: now, UTC)

    Raises:
        SigningUnavailableError: the identity is read-only
        ValueError: empty action or payload that cannot be canonicalized
    """
    if not identity.can_sign:
        raise SigningUnavailableError(identity.agent_id)
    if not isinstance(action, str) or not action:
        raise ValueError("action must be a non-empty string")

    body = {
        "version": PROOF_VERSION,
        "action": action,
        "data": copy.deepcopy(data),
        "agentId": identity.agent_id,
        "previousHash": previous_hash,
        "timestamp": format_timestamp(timestamp) if timestamp else utc_now_iso(),
        "metadata": copy.deepcopy(metadata) if metadata is not None else {},
    }

    canonical = canonicalize(body)
    return Proof(
        version=body["version"],
        action=body["action"],
        data=body["data"],
        agent_id=body["agentId"],
        previous_hash=body["previousHash"],
        timestamp=body["timestamp"],
        metadata=body["metadata"],
        hash=sha256_hex(canonical),
        signature=sign(canonical, identity.private_key),
    )


def build_tool_call_proof(
    tool: str,
    params: Any,
    result: Any,
    identity: Identity,
    previous_hash: Optional[str] = None,
    duration_ms: Optional[int] = None
) -> Proof:
    """Proof of a tool invocation and its result."""
    return build_proof(
        ActionTypes.TOOL_CALL,
        {"tool": tool, "params": params, "result": result, "duration_ms": duration_ms},
        identity,
        previous_hash=previous_hash,
    )


def build_file_proof(
    operation: str,
    path: str,
    identity: Identity,
    previous_hash: Optional[str] = None,
    content_hash: Optional[str] = None,
    size: Optional[int] = None
) -> Proof:
    """Proof of a file read, write or delete."""
    action = {
        "read": ActionTypes.FILE_READ,
        "write": ActionTypes.FILE_WRITE,
        "delete": ActionTypes.FILE_DELETE,
    }.get(operation)
    if action is None:
        raise ValueError(f"Unknown file operation: {operation}")
    return build_proof(
        action,
        {"path": path, "hash": content_hash, "size": size},
        identity,
        previous_hash=previous_hash,
    )


def build_decision_proof(
    description: str,
    identity: Identity,
    previous_hash: Optional[str] = None,
    inputs: Any = None,
    outputs: Any = None,
    reasoning: Optional[str] = None
) -> Proof:
    """Proof of a decision or reasoning step."""
    return build_proof(
        ActionTypes.DECISION,
        {"description": description, "inputs": inputs, "outputs": outputs, "reasoning": reasoning},
        identity,
        previous_hash=previous_hash,
    )


def proof_reference(proof: Any) -> Dict[str, Any]:
    """
    Evidence pointer for collaborating services (registries, trust graphs).

    Accepts a Proof or its wire dict. The pointer names a proof; it proves
    nothing on its own.
    """
    record = proof.to_dict() if isinstance(proof, Proof) else proof
    return {
        "agentId": record.get("agentId"),
        "hash": record.get("hash"),
        "action": record.get("action"),
        "timestamp": record.get("timestamp"),
    }
