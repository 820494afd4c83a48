"""
AgentProof Exceptions

Raised by operations on locally controlled, trusted state (identity files,
chain files, signing). Defects in untrusted proof data are never raised;
the verifier reports them as issues in a VerificationResult instead.
"""


class AgentProofError(Exception):
    """Base class for all AgentProof errors."""


class SigningUnavailableError(AgentProofError):
    """Raised when signing is attempted with an identity that has no private key."""

    def __init__(self, agent_id: str = ""):
        self.agent_id = agent_id
        detail = f" for {agent_id}" if agent_id else ""
        super().__init__(
            f"No private key available{detail}: identity is read-only and cannot sign"
        )


class InvalidKeyError(AgentProofError):
    """Raised when a private key is structurally invalid."""


class IdentityExistsError(AgentProofError):
    """Raised when initializing an identity over an existing identity file."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Keypair already exists at {path}")


class IdentityFileError(AgentProofError):
    """Raised when an identity file cannot be read or is malformed."""


class IdentityMismatchError(AgentProofError):
    """Raised when a chain file belongs to a different identity than the active one."""

    def __init__(self, expected: str, found: str, path: str = ""):
        self.expected = expected
        self.found = found
        self.path = path
        where = f" in {path}" if path else ""
        super().__init__(
            f"Chain identity mismatch{where}: expected {expected}, found {found}"
        )


class ChainFileError(AgentProofError):
    """Raised when a chain file cannot be read, parsed, or written atomically."""
