#!/usr/bin/env python3
"""
AgentProof Example - Recording and Auditing an Agent Session

An agent records a short research session, exports its chain and hands it
to an auditor who only knows the agent's public key. The auditor then
receives a doctored copy and sees exactly which proof was altered.

Run with: python examples/agent_session_example.py
"""

import copy
import tempfile
from pathlib import Path

from agentproof import (
    ActionTypes,
    ProofChain,
    generate_identity,
    load_identity,
    save_identity,
    sign_message,
    verify_exported_chain,
    verify_message,
)
from agentproof.logging_config import configure_logging


def run_session(chain: ProofChain) -> None:
    """Simulate an agent working through a task."""
    chain.append(ActionTypes.MESSAGE_RECEIVED, {"from": "user", "text": "Find recent work on AI safety"})
    chain.append(ActionTypes.TOOL_CALL, {
        "tool": "web_search",
        "params": {"query": "AI safety 2024"},
        "result": ["paper-a", "paper-b"],
    })
    chain.append(ActionTypes.DECISION, {
        "description": "Summarize paper-a",
        "reasoning": "Most cited result",
    })
    chain.append(ActionTypes.FILE_WRITE, {"path": "summary.md", "size": 2048})
    chain.append(ActionTypes.MESSAGE_SENT, {"to": "user", "text": "Summary written to summary.md"})


def audit(exported, label: str) -> None:
    result = verify_exported_chain(exported)
    print(f"\n{label}")
    print("-" * 60)
    if result.valid:
        print(f"✓ VALID ({len(exported['proofs'])} proofs)")
    else:
        print("✗ INVALID")
        for error in result.errors:
            print(f"  - {error}")
    for warning in result.warnings:
        print(f"  ! {warning}")


def main():
    configure_logging(level="WARNING", json_format=False)

    with tempfile.TemporaryDirectory() as workdir:
        key_path = Path(workdir) / "keypair.json"
        chain_path = Path(workdir) / "chain.json"

        print("=" * 60)
        print("AgentProof Session Example")
        print("=" * 60)

        save_identity(generate_identity(), key_path)
        identity = load_identity(key_path)
        print(f"\nAgent: {identity.agent_id}")

        chain = ProofChain(identity, chain_path)
        run_session(chain)
        print(f"Recorded {len(chain)} proofs, last hash {chain.last_hash[:16]}...")

        # The auditor only receives the export, never the keypair file
        exported = chain.export()
        audit(exported, "Auditor: original export")

        doctored = copy.deepcopy(exported)
        doctored["proofs"][2]["data"]["description"] = "Summarize paper-b"
        audit(doctored, "Auditor: doctored export (decision rewritten)")

        audit(chain.export(start=3), "Auditor: partial export (last two proofs)")

        # Messages to other agents use the same key
        message = sign_message({"to": "agent-reviewer", "body": "please review summary.md"}, identity)
        valid, error = verify_message(message, identity.public_key)
        print(f"\nSigned message verifies: {valid}")

    print("\n" + "=" * 60)
    print("Example complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()
