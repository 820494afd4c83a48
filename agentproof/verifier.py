"""
AgentProof Verification Algorithm

Enables any third party holding an agent's public key to confirm, after the
fact, that a sequence of proofs is authentic, untampered and correctly
linked, without access to the agent's private key.

Verification never raises on defects in the input data. Every problem found
is reported as a VerificationIssue naming the offending proof index, so a
caller can tell tampering apart from benign clock skew.
"""

import hmac
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .canonicalization import canonicalize
from .hashing import sha256_hex
from .identity import derive_agent_id
from .logging_config import audit_log
from .proof import Proof, proof_body
from .records import ChainExportRecord, ProofRecord, structural_problems
from .signing import verify
from .util import parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_CLOCK_SKEW_TOLERANCE = timedelta(seconds=60)


class IssueCode(str, Enum):
    """
    Verification issue codes.

    Errors make a result invalid; warnings never do.
    """
    STRUCTURAL = "StructuralError"
    HASH_MISMATCH = "HashMismatchError"
    SIGNATURE_INVALID = "SignatureInvalidError"
    CHAIN_BREAK = "ChainBreakError"
    IDENTITY_MISMATCH = "IdentityMismatchError"
    CLOCK_SKEW = "ClockSkewWarning"
    PARTIAL_CHAIN = "PartialChainWarning"
    EMPTY_CHAIN = "EmptyChainWarning"

    @property
    def is_warning(self) -> bool:
        return self.value.endswith("Warning")


@dataclass
class VerificationIssue:
    """One problem found during verification. ``index`` is None for chain-level issues."""
    code: IssueCode
    message: str
    index: Optional[int] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "code": self.code.value,
            "index": self.index,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        if self.index is None:
            return f"{self.code.value}: {self.message}"
        return f"Proof {self.index}: {self.code.value}: {self.message}"


@dataclass
class VerificationResult:
    """Verdict plus the complete list of errors and warnings."""
    valid: bool
    errors: List[VerificationIssue] = field(default_factory=list)
    warnings: List[VerificationIssue] = field(default_factory=list)

    def is_valid(self) -> bool:
        return self.valid

    def __bool__(self) -> bool:
        return self.valid

    def errors_at(self, index: Optional[int]) -> List[VerificationIssue]:
        """Errors attributed to one proof index (None for chain-level errors)."""
        return [e for e in self.errors if e.index == index]

    def codes(self) -> List[IssueCode]:
        """Codes of all errors, in report order."""
        return [e.code for e in self.errors]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }

    @classmethod
    def from_issues(cls, errors: List[VerificationIssue], warnings: List[VerificationIssue]) -> 'VerificationResult':
        return cls(valid=not errors, errors=_ordered(errors), warnings=_ordered(warnings))


def _ordered(issues: List[VerificationIssue]) -> List[VerificationIssue]:
    # Chain-level issues first, then by proof index; stable within an index.
    return sorted(issues, key=lambda i: -1 if i.index is None else i.index)


@dataclass
class _ProofCheck:
    errors: List[VerificationIssue] = field(default_factory=list)
    warnings: List[VerificationIssue] = field(default_factory=list)
    record: Optional[Mapping[str, Any]] = None
    well_formed: bool = False
    timestamp: Optional[datetime] = None


def _as_record(proof: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(proof, Proof):
        return proof.to_dict()
    if isinstance(proof, Mapping):
        return proof
    return None


class ChainVerifier:
    """
    Verifies single proofs and proof chains against a claimed public key.

    Per-proof checks, in order:
    1. Structure: required fields present and well typed
    2. Identity: agentId derives from the public key
    3. Hash: recomputed from the proof's own fields
    4. Signature: over the same canonical bytes

    Chain checks:
    5. Linkage: proofs[i].previousHash == proofs[i-1].hash
    6. Temporal: timestamps non-decreasing within tolerance (warnings)
    7. Homogeneity: one agentId across the chain
    """

    def __init__(
        self,
        clock_skew_tolerance: timedelta = DEFAULT_CLOCK_SKEW_TOLERANCE,
        max_workers: Optional[int] = None,
        now: Optional[Callable[[], datetime]] = None
    ):
        """
        Args:
            clock_skew_tolerance: Allowed skew before a timestamp warning
            max_workers: Run per-proof checks on a thread pool of this size
                (None or 1 runs sequentially)
            now: Clock used for the future-timestamp check (default: UTC now)
        """
        self.clock_skew_tolerance = clock_skew_tolerance
        self.max_workers = max_workers
        self._now = now or (lambda: datetime.now(timezone.utc))

    def verify_proof(self, proof: Any, public_key: str) -> VerificationResult:
        """Verify one proof in isolation (no linkage checks)."""
        check = self._check_proof(None, proof, public_key, self._now())
        return VerificationResult.from_issues(check.errors, check.warnings)

    def verify_chain(
        self,
        proofs: Sequence[Any],
        public_key: str,
        partial: bool = False
    ) -> VerificationResult:
        """
        Verify an ordered sequence of proofs.

        Args:
            proofs: Proofs in chain order (Proof objects or wire dicts)
            public_key: Claimed base64 public key of the chain owner
            partial: The sequence is a truncated suffix of a longer chain, so
                the first proof may reference a predecessor that is not included
        """
        if not isinstance(public_key, str) or not public_key:
            return VerificationResult.from_issues(
                [VerificationIssue(IssueCode.STRUCTURAL, "Missing or invalid public key")], []
            )
        if isinstance(proofs, (str, bytes)) or not isinstance(proofs, Sequence):
            return VerificationResult.from_issues(
                [VerificationIssue(IssueCode.STRUCTURAL, "Proofs must be a list")], []
            )

        if len(proofs) == 0:
            result = VerificationResult.from_issues(
                [], [VerificationIssue(IssueCode.EMPTY_CHAIN, "Empty chain")]
            )
            audit_log.chain_verified(derive_agent_id(public_key), True, 0, warning_count=1)
            return result

        now = self._now()
        checks = self._check_all(proofs, public_key, now)

        errors: List[VerificationIssue] = []
        warnings: List[VerificationIssue] = []
        for check in checks:
            errors.extend(check.errors)
            warnings.extend(check.warnings)

        link_errors, link_warnings = self._check_linkage(checks, partial)
        errors.extend(link_errors)
        warnings.extend(link_warnings)

        warnings.extend(self._check_ordering(checks))
        errors.extend(self._check_homogeneity(checks))

        result = VerificationResult.from_issues(errors, warnings)
        audit_log.chain_verified(
            derive_agent_id(public_key),
            result.valid,
            len(proofs),
            errors=[str(e) for e in result.errors],
            warning_count=len(result.warnings),
        )
        return result

    def verify_exported(self, exported: Any) -> VerificationResult:
        """
        Verify an exported chain ``{"metadata": ..., "proofs": [...]}``.

        The public key is taken from the export's metadata; a partial export
        (``metadata.partial``) may start with a non-null previousHash.
        """
        problems = structural_problems(ChainExportRecord, exported)
        if problems:
            return VerificationResult.from_issues(
                [VerificationIssue(IssueCode.STRUCTURAL, p) for p in problems], []
            )

        metadata = exported["metadata"]
        public_key = metadata["publicKey"]
        declared_id = metadata.get("agentId")

        result = self.verify_chain(exported["proofs"], public_key, partial=bool(metadata.get("partial")))
        if declared_id is not None and declared_id != derive_agent_id(public_key):
            result.errors.insert(0, VerificationIssue(
                IssueCode.IDENTITY_MISMATCH,
                "Chain metadata agentId does not match its public key",
                details={"declared": declared_id, "derived": derive_agent_id(public_key)},
            ))
            result.valid = False
        return result

    def _check_all(self, proofs: Sequence[Any], public_key: str, now: datetime) -> List[_ProofCheck]:
        jobs = list(enumerate(proofs))
        if self.max_workers and self.max_workers > 1 and len(jobs) > 1:
            logger.debug("Checking %d proofs on %d workers", len(jobs), self.max_workers)
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                return list(pool.map(lambda job: self._check_proof(job[0], job[1], public_key, now), jobs))
        return [self._check_proof(index, proof, public_key, now) for index, proof in jobs]

    def _check_proof(self, index: Optional[int], proof: Any, public_key: str, now: datetime) -> _ProofCheck:
        check = _ProofCheck(record=_as_record(proof))
        record = check.record

        # 1. Structure
        problems = structural_problems(ProofRecord, record if record is not None else proof)
        if problems:
            check.errors.extend(VerificationIssue(IssueCode.STRUCTURAL, p, index) for p in problems)
            return check

        # 2. Identity
        expected_id = derive_agent_id(public_key)
        if record["agentId"] != expected_id:
            check.errors.append(VerificationIssue(
                IssueCode.IDENTITY_MISMATCH,
                "Agent ID does not match public key",
                index,
                {"declared": record["agentId"], "expected": expected_id},
            ))

        # 3. Hash, 4. Signature; both over the same canonical bytes
        try:
            canonical = canonicalize(proof_body(record))
        except ValueError as e:
            check.errors.append(VerificationIssue(
                IssueCode.STRUCTURAL, f"Proof content cannot be canonicalized: {e}", index
            ))
            return check

        check.well_formed = True
        computed = sha256_hex(canonical)
        hash_ok = hmac.compare_digest(computed.encode("utf-8"), record["hash"].encode("utf-8"))
        signature_ok = verify(canonical, record["signature"], public_key)

        if not hash_ok:
            check.errors.append(VerificationIssue(
                IssueCode.HASH_MISMATCH,
                "Hash verification failed - proof data may be tampered",
                index,
                {"computed": computed, "declared": record["hash"], "signature_valid": signature_ok},
            ))
        elif not signature_ok:
            check.errors.append(VerificationIssue(
                IssueCode.SIGNATURE_INVALID,
                "Signature verification failed - proof is not authentic",
                index,
            ))

        check.timestamp = parse_timestamp(record["timestamp"])
        if check.timestamp - now > self.clock_skew_tolerance:
            check.warnings.append(VerificationIssue(
                IssueCode.CLOCK_SKEW,
                "Proof timestamp is in the future",
                index,
                {"timestamp": record["timestamp"]},
            ))
        return check

    def _check_linkage(
        self,
        checks: List[_ProofCheck],
        partial: bool
    ) -> Tuple[List[VerificationIssue], List[VerificationIssue]]:
        errors: List[VerificationIssue] = []
        warnings: List[VerificationIssue] = []

        first = checks[0].record
        if first is not None and first.get("previousHash") is not None:
            if partial:
                warnings.append(VerificationIssue(
                    IssueCode.PARTIAL_CHAIN,
                    "First proof has non-null previousHash (partial chain)",
                    0,
                ))
            else:
                errors.append(VerificationIssue(
                    IssueCode.CHAIN_BREAK,
                    "First proof references a predecessor but the chain is not marked partial",
                    0,
                    {"previousHash": first.get("previousHash")},
                ))

        for i in range(1, len(checks)):
            prev, curr = checks[i - 1].record, checks[i].record
            # Linkage against a malformed neighbour is already covered by its structural error
            if prev is None or curr is None or not isinstance(prev.get("hash"), str):
                continue
            if curr.get("previousHash") != prev["hash"]:
                errors.append(VerificationIssue(
                    IssueCode.CHAIN_BREAK,
                    f"Chain break at proof {i}: previousHash doesn't match previous proof's hash",
                    i,
                    {"previousHash": curr.get("previousHash"), "expected": prev["hash"]},
                ))
        return errors, warnings

    def _check_ordering(self, checks: List[_ProofCheck]) -> List[VerificationIssue]:
        warnings = []
        for i in range(1, len(checks)):
            prev, curr = checks[i - 1].timestamp, checks[i].timestamp
            if prev is None or curr is None:
                continue
            if prev - curr > self.clock_skew_tolerance:
                warnings.append(VerificationIssue(
                    IssueCode.CLOCK_SKEW,
                    f"Proof {i} has earlier timestamp than proof {i - 1}",
                    i,
                    {"skew_seconds": (prev - curr).total_seconds()},
                ))
        return warnings

    def _check_homogeneity(self, checks: List[_ProofCheck]) -> List[VerificationIssue]:
        agent_ids = []
        for check in checks:
            agent_id = check.record.get("agentId") if check.record is not None else None
            if isinstance(agent_id, str) and agent_id not in agent_ids:
                agent_ids.append(agent_id)
        if len(agent_ids) > 1:
            return [VerificationIssue(
                IssueCode.IDENTITY_MISMATCH,
                "Chain contains proofs from multiple agents",
                details={"agent_ids": agent_ids},
            )]
        return []


def verify_proof(proof: Any, public_key: str, **kwargs) -> VerificationResult:
    """Verify a single proof's structure, identity, hash and signature."""
    return ChainVerifier(**kwargs).verify_proof(proof, public_key)


def verify_chain(proofs: Sequence[Any], public_key: str, partial: bool = False, **kwargs) -> VerificationResult:
    """Verify a chain of proofs against a public key."""
    return ChainVerifier(**kwargs).verify_chain(proofs, public_key, partial=partial)


def verify_exported_chain(exported: Any, **kwargs) -> VerificationResult:
    """Verify a chain from exported data, using the public key in its metadata."""
    return ChainVerifier(**kwargs).verify_exported(exported)


def is_valid(proof: Any, public_key: str) -> bool:
    """Quick validity check (no detailed errors)."""
    return verify_proof(proof, public_key).valid


def is_chain_valid(proofs: Sequence[Any], public_key: str) -> bool:
    """Quick chain validity check."""
    return verify_chain(proofs, public_key).valid
