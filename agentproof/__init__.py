"""
AgentProof Reference Implementation

Version: 1.0.0
License: MIT

Cryptographic provenance log for autonomous agents.

An agent records each action as a signed, hash-linked proof. Anyone holding
the agent's public key can later verify that the actions happened in the
recorded order, at the recorded times, and that no earlier entry was altered:

    verify(chain, public_key) -> { valid, errors[], warnings[] }

Every problem is reported with the index of the offending proof; a
verification failure is never a bare "invalid".

Usage:
    from agentproof import (
        generate_identity,
        save_identity,
        ProofChain,
        verify_exported_chain,
    )

    # Create an identity once and keep the file safe
    identity = generate_identity()
    save_identity(identity, "~/.agentproof/keypair.json")

    # Record actions
    chain = ProofChain(identity, "chain.json")
    chain.append("tool_call", {"tool": "web_search", "query": "AI safety"})
    chain.append("decision", {"description": "Summarize top result"})

    # Share and verify
    exported = chain.export()
    result = verify_exported_chain(exported)

    if not result.valid:
        for error in result.errors:
            print(error)
"""

__version__ = "1.0.0"
__author__ = "AgentProof Contributors"
__license__ = "MIT"

# Canonicalization and hashing
from .canonicalization import canonicalize, canonicalize_str
from .hashing import (
    sha256_hex,
    canonical_hash,
    proof_hash,
    verify_hash,
)

# Signing
from .signing import (
    generate_keypair,
    sign,
    verify,
    public_key_for,
)

# Identity
from .identity import (
    Identity,
    generate_identity,
    derive_agent_id,
    save_identity,
    load_identity,
)

# Proofs
from .proof import (
    PROOF_VERSION,
    HASHED_FIELDS,
    ActionTypes,
    Proof,
    build_proof,
    build_tool_call_proof,
    build_file_proof,
    build_decision_proof,
    proof_body,
    proof_reference,
)

# Chains
from .chain import ProofChain

# Verification
from .verifier import (
    ChainVerifier,
    VerificationResult,
    VerificationIssue,
    IssueCode,
    verify_proof,
    verify_chain,
    verify_exported_chain,
    is_valid,
    is_chain_valid,
)

# Messages
from .message import sign_message, verify_message, message_signing_bytes

# Errors
from .errors import (
    AgentProofError,
    SigningUnavailableError,
    InvalidKeyError,
    IdentityExistsError,
    IdentityFileError,
    IdentityMismatchError,
    ChainFileError,
)


__all__ = [
    # Version
    "__version__",

    # Canonicalization
    "canonicalize",
    "canonicalize_str",

    # Hashing
    "sha256_hex",
    "canonical_hash",
    "proof_hash",
    "verify_hash",

    # Signing
    "generate_keypair",
    "sign",
    "verify",
    "public_key_for",

    # Identity
    "Identity",
    "generate_identity",
    "derive_agent_id",
    "save_identity",
    "load_identity",

    # Proofs
    "PROOF_VERSION",
    "HASHED_FIELDS",
    "ActionTypes",
    "Proof",
    "build_proof",
    "build_tool_call_proof",
    "build_file_proof",
    "build_decision_proof",
    "proof_body",
    "proof_reference",

    # Chains
    "ProofChain",

    # Verification
    "ChainVerifier",
    "VerificationResult",
    "VerificationIssue",
    "IssueCode",
    "verify_proof",
    "verify_chain",
    "verify_exported_chain",
    "is_valid",
    "is_chain_valid",

    # Messages
    "sign_message",
    "verify_message",
    "message_signing_bytes",

    # Errors
    "AgentProofError",
    "SigningUnavailableError",
    "InvalidKeyError",
    "IdentityExistsError",
    "IdentityFileError",
    "IdentityMismatchError",
    "ChainFileError",
]
