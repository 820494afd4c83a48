"""
AgentProof Chain Management

A chain is the append-only, hash-linked sequence of proofs signed by one
identity. Each proof references the previous proof's hash, so any
retroactive edit, deletion or reordering breaks verification.

Writes to one chain are serialized by a per-chain lock: two concurrent
appends reading the same last hash would otherwise fork the chain. The
chain file is owned by a single process; persistence replaces the file
atomically so readers never observe a half-written chain.
"""

import copy
import logging
import threading
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from .errors import ChainFileError, IdentityMismatchError, SigningUnavailableError
from .identity import Identity, derive_agent_id
from .logging_config import audit_log
from .proof import Proof, build_proof
from .records import ChainMetadataRecord, structural_problems
from .util import atomic_write_json, load_json, parse_timestamp, utc_now_iso
from .verifier import DEFAULT_CLOCK_SKEW_TOLERANCE, ChainVerifier, VerificationResult

logger = logging.getLogger(__name__)


class ProofChain:
    """
    Append-only chain of proofs for one identity.

    Proofs are held in memory in wire format together with a last-hash
    cursor, so appends never re-read the chain file.
    """

    def __init__(self, identity: Identity, store_path: Optional[Union[str, Path]] = None):
        """
        Args:
            identity: Owning identity. Without a private key the chain is read-only.
            store_path: Chain file. Loaded if it exists, written after every append.

        Raises:
            IdentityMismatchError: the chain file belongs to a different identity
            ChainFileError: the chain file exists but cannot be read
        """
        self.identity = identity
        self.agent_id = identity.agent_id
        self.store_path = Path(store_path).expanduser() if store_path else None
        self._lock = threading.RLock()
        self._proofs: List[Dict[str, Any]] = []
        self.metadata: Dict[str, Any] = {
            "created": utc_now_iso(),
            "agentId": self.agent_id,
            "publicKey": identity.public_key,
        }

        if self.store_path and self.store_path.exists():
            self.load()

    # ------------------------------------------------------------------
    # Construction from shared data (read-only)
    # ------------------------------------------------------------------

    @classmethod
    def from_export(cls, data: Dict[str, Any]) -> 'ProofChain':
        """
        Import a chain from exported data for inspection or verification.

        The chain gets a read-only identity built from ``metadata.publicKey``;
        nothing is verified here (see ``verify``).
        """
        if not isinstance(data, dict):
            raise ChainFileError("Invalid chain export: not an object")
        problems = structural_problems(ChainMetadataRecord, data.get("metadata"))
        if not isinstance(data.get("proofs"), list):
            problems.append("proofs must be a list")
        if problems:
            raise ChainFileError(f"Invalid chain export: {'; '.join(problems)}")

        metadata = data["metadata"]
        chain = cls(Identity.from_public_key(metadata["publicKey"], created=metadata.get("created")))
        chain.metadata = copy.deepcopy(metadata)
        chain._proofs = copy.deepcopy(data["proofs"])
        return chain

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'ProofChain':
        """Load someone's chain file read-only."""
        return cls.from_export(_read_chain_file(Path(path)))

    # ------------------------------------------------------------------
    # Appending
    # ------------------------------------------------------------------

    @property
    def last_hash(self) -> Optional[str]:
        """Hash of the last proof, or None for an empty chain."""
        with self._lock:
            if not self._proofs:
                return None
            return self._proofs[-1]["hash"]

    @property
    def read_only(self) -> bool:
        return not self.identity.can_sign

    def append(self, action: str, data: Any, metadata: Optional[Dict[str, Any]] = None) -> Proof:
        """
        Build a proof linked to the current last hash, append it and persist.

        Holds the chain lock across read-build-append-persist. If persisting
        fails the in-memory append is rolled back.

        Raises:
            SigningUnavailableError: the chain's identity is read-only
            ChainFileError: the chain could not be written
        """
        if self.read_only:
            raise SigningUnavailableError(self.agent_id)

        with self._lock:
            proof = build_proof(
                action,
                data,
                self.identity,
                previous_hash=self.last_hash,
                metadata=metadata,
            )
            self._proofs.append(proof.to_dict())

            if self.store_path:
                try:
                    self.save()
                except ChainFileError:
                    self._proofs.pop()
                    raise

            audit_log.proof_appended(self.agent_id, len(self._proofs) - 1, action, proof.hash)
            return proof

    def add(self, action: str, data: Any, metadata: Optional[Dict[str, Any]] = None) -> Proof:
        """Alias of ``append``."""
        return self.append(action, data, metadata)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        """
        Persist the chain with write-temp-then-replace.

        Raises:
            ChainFileError: no store path, or the write failed
        """
        if not self.store_path:
            raise ChainFileError("No store path configured")

        with self._lock:
            snapshot = {"metadata": self.metadata, "proofs": self._proofs}
            try:
                atomic_write_json(snapshot, self.store_path)
            except OSError as e:
                raise ChainFileError(f"Failed to write chain {self.store_path}: {e}") from e
            audit_log.chain_saved(self.agent_id, str(self.store_path), len(self._proofs))

    def load(self) -> None:
        """
        Replace in-memory state with the chain file's contents.

        Local storage is trusted: proofs are not re-verified here. The file
        must however belong to this chain's identity.

        Raises:
            ChainFileError: missing, unreadable or malformed file
            IdentityMismatchError: the file was written for another key
        """
        if not self.store_path:
            raise ChainFileError("No store path configured")

        data = _read_chain_file(self.store_path)
        metadata = data["metadata"]

        file_key = metadata.get("publicKey")
        if file_key != self.identity.public_key:
            audit_log.security_event(
                "chain_identity_mismatch",
                severity="high",
                path=str(self.store_path),
                expected=self.agent_id,
            )
            raise IdentityMismatchError(
                self.agent_id,
                derive_agent_id(file_key) if isinstance(file_key, str) else "<no public key>",
                str(self.store_path),
            )
        if metadata.get("agentId") not in (None, self.agent_id):
            raise IdentityMismatchError(self.agent_id, metadata["agentId"], str(self.store_path))

        with self._lock:
            self.metadata = metadata
            self._proofs = data["proofs"]
        audit_log.chain_loaded(self.agent_id, str(self.store_path), len(self._proofs))

    # ------------------------------------------------------------------
    # Export and queries
    # ------------------------------------------------------------------

    def export(self, start: Optional[int] = None) -> Dict[str, Any]:
        """
        Export the chain for sharing: metadata and proofs, never the private key.

        Args:
            start: Export only proofs from this index on. The result is marked
                partial so verifiers accept the dangling first previousHash.

        Returns:
            An independent deep copy; later appends do not affect it.
        """
        with self._lock:
            metadata = copy.deepcopy(self.metadata)
            proofs = self._proofs
            if start:
                if start < 0 or start > len(proofs):
                    raise IndexError(f"start {start} out of range for chain of {len(proofs)}")
                proofs = proofs[start:]
                metadata["partial"] = True
                metadata["startIndex"] = start
            return {
                "metadata": metadata,
                "proofs": copy.deepcopy(proofs),
            }

    def __len__(self) -> int:
        return len(self._proofs)

    def length(self) -> int:
        return len(self._proofs)

    def __iter__(self) -> Iterator[Proof]:
        return iter(self.get_all())

    def get(self, index: int) -> Optional[Proof]:
        """Proof at ``index`` or None."""
        with self._lock:
            if -len(self._proofs) <= index < len(self._proofs):
                return Proof.from_dict(self._proofs[index])
            return None

    def get_all(self) -> List[Proof]:
        with self._lock:
            return [Proof.from_dict(p) for p in self._proofs]

    def get_by_action(self, action: str) -> List[Proof]:
        return [p for p in self.get_all() if p.action == action]

    def get_by_time_range(self, start: Union[str, datetime], end: Union[str, datetime]) -> List[Proof]:
        """Proofs with start <= timestamp <= end."""
        start_time = parse_timestamp(start)
        end_time = parse_timestamp(end)
        return [
            p for p in self.get_all()
            if start_time <= parse_timestamp(p.timestamp) <= end_time
        ]

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            proofs = self._proofs
            return {
                "agentId": self.agent_id,
                "publicKey": self.identity.public_key,
                "proofCount": len(proofs),
                "firstProof": proofs[0]["timestamp"] if proofs else None,
                "lastProof": proofs[-1]["timestamp"] if proofs else None,
                "actionCounts": dict(Counter(p["action"] for p in proofs)),
            }

    def verify(self, clock_skew_tolerance=DEFAULT_CLOCK_SKEW_TOLERANCE) -> VerificationResult:
        """Verify this chain's proofs against its own public key."""
        exported = self.export()
        verifier = ChainVerifier(clock_skew_tolerance=clock_skew_tolerance)
        return verifier.verify_chain(
            exported["proofs"],
            self.identity.public_key,
            partial=bool(exported["metadata"].get("partial")),
        )


def _read_chain_file(path: Path) -> Dict[str, Any]:
    try:
        data = load_json(path)
    except FileNotFoundError:
        raise ChainFileError(f"Chain file not found: {path}")
    except (OSError, ValueError) as e:
        raise ChainFileError(f"Cannot read chain file {path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("metadata"), dict):
        raise ChainFileError(f"Invalid chain file {path}: missing metadata")
    if not isinstance(data.get("proofs", []), list):
        raise ChainFileError(f"Invalid chain file {path}: proofs must be a list")
    data.setdefault("proofs", [])
    logger.debug("Read chain file %s (%d proofs)", path, len(data["proofs"]))
    return data
