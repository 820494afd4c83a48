"""
Configuration module for AgentProof.

Centralizes configuration with environment variable support. Library
components never read these values implicitly: the CLI (or any host
application) calls ``load_config`` and passes paths and tolerances into
ProofChain and ChainVerifier explicitly.
"""

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

# ============================================================
# Environment Configuration
# ============================================================

DEFAULT_HOME = "~/.agentproof"
DEFAULT_KEY_FILENAME = "keypair.json"
DEFAULT_CHAIN_FILENAME = "chain.json"

# Clock skew tolerated between consecutive proofs and against "now" (seconds)
DEFAULT_CLOCK_SKEW_SECONDS = 60

DEFAULT_LOG_LEVEL = "WARNING"


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ProofConfig:
    """Resolved configuration for one AgentProof process."""
    home: Path
    key_path: Path
    chain_path: Path
    clock_skew_seconds: float = DEFAULT_CLOCK_SKEW_SECONDS
    verify_workers: Optional[int] = None
    log_level: str = DEFAULT_LOG_LEVEL
    log_json: bool = True

    @property
    def clock_skew_tolerance(self) -> timedelta:
        return timedelta(seconds=self.clock_skew_seconds)


def load_config(env: Optional[Mapping[str, str]] = None) -> ProofConfig:
    """
    Build configuration from environment variables.

    Args:
        env: Mapping to read instead of os.environ (useful in tests)
    """
    env = os.environ if env is None else env

    home = Path(env.get("AGENTPROOF_HOME") or DEFAULT_HOME).expanduser()
    key_path = Path(env.get("AGENTPROOF_KEY_PATH") or home / DEFAULT_KEY_FILENAME).expanduser()
    chain_path = Path(env.get("AGENTPROOF_CHAIN_PATH") or home / DEFAULT_CHAIN_FILENAME).expanduser()

    skew = env.get("AGENTPROOF_CLOCK_SKEW_SECONDS")
    clock_skew_seconds = float(skew) if skew else DEFAULT_CLOCK_SKEW_SECONDS
    if clock_skew_seconds < 0:
        raise ValueError("AGENTPROOF_CLOCK_SKEW_SECONDS must not be negative")

    workers = env.get("AGENTPROOF_VERIFY_WORKERS")
    verify_workers = int(workers) if workers else None

    return ProofConfig(
        home=home,
        key_path=key_path,
        chain_path=chain_path,
        clock_skew_seconds=clock_skew_seconds,
        verify_workers=verify_workers,
        log_level=(env.get("AGENTPROOF_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        log_json=_env_bool(env.get("AGENTPROOF_LOG_JSON"), True),
    )


# ============================================================
# Validation
# ============================================================

def validate_config(config: ProofConfig) -> Dict[str, bool]:
    """
    Report which configured files exist.
    Returns dict of name -> exists.
    """
    return {
        "keypair": config.key_path.exists(),
        "chain": config.chain_path.exists(),
    }


def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return _env_bool(os.getenv("AGENTPROOF_DEBUG"), False)
