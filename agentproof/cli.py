#!/usr/bin/env python3
"""
AgentProof Command Line Interface

Usage:
    agentproof init
    agentproof whoami
    agentproof add <action> <json-data>
    agentproof verify <chain-file>
    agentproof show [--last N]
    agentproof export [file] [--start N]
    agentproof summary
    agentproof hash <file>

Paths default to ~/.agentproof/keypair.json and ~/.agentproof/chain.json
(see AGENTPROOF_HOME, AGENTPROOF_KEY_PATH, AGENTPROOF_CHAIN_PATH).
"""

import argparse
import json
import sys

from .config import is_debug, load_config
from .errors import AgentProofError
from .logging_config import configure_logging, set_correlation_id
from .util import load_json


def print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _open_chain(args):
    from agentproof import ProofChain, load_identity

    identity = load_identity(args.key)
    return ProofChain(identity, args.chain)


def cmd_init(args):
    """Create a new identity."""
    from agentproof import generate_identity, save_identity
    from agentproof.errors import IdentityExistsError

    identity = generate_identity()
    try:
        path = save_identity(identity, args.key)
    except IdentityExistsError as e:
        print(f"✗ {e}", file=sys.stderr)
        print("  Remove it first if you really want a new identity.", file=sys.stderr)
        return 1

    if args.json:
        print_json({"agentId": identity.agent_id, "publicKey": identity.public_key, "path": str(path)})
    else:
        print(f"✓ Identity created: {identity.agent_id}")
        print(f"  Public key: {identity.public_key}")
        print(f"  Saved to:   {path}")
    return 0


def cmd_whoami(args):
    """Show the current identity (never the private key)."""
    from agentproof import load_identity

    identity = load_identity(args.key)
    if args.json:
        print_json({
            "agentId": identity.agent_id,
            "publicKey": identity.public_key,
            "created": identity.created,
        })
    else:
        print(f"Agent ID:   {identity.agent_id}")
        print(f"Public key: {identity.public_key}")
        print(f"Created:    {identity.created}")
    return 0


def cmd_add(args):
    """Append a proof to the local chain."""
    try:
        data = json.loads(args.data)
    except json.JSONDecodeError:
        # Plain text is recorded as a string payload
        data = args.data

    metadata = None
    if args.metadata:
        metadata = json.loads(args.metadata)
        if not isinstance(metadata, dict):
            print("✗ --metadata must be a JSON object", file=sys.stderr)
            return 1

    chain = _open_chain(args)
    proof = chain.append(args.action, data, metadata)

    if args.json:
        print_json(proof.to_dict())
    else:
        print(f"✓ Proof #{len(chain) - 1} added: {proof.action}")
        print(f"  Hash: {proof.hash}")
    return 0


def cmd_verify(args):
    """Verify an exported chain file."""
    from agentproof import ChainVerifier

    exported = load_json(args.file)
    config = args.config
    verifier = ChainVerifier(
        clock_skew_tolerance=config.clock_skew_tolerance,
        max_workers=config.verify_workers,
    )
    result = verifier.verify_exported(exported)

    if args.json:
        print_json(result.to_dict())
    else:
        proofs = exported.get("proofs") if isinstance(exported, dict) else None
        count = len(proofs) if isinstance(proofs, list) else 0
        if result.valid:
            print(f"✓ VALID ({count} proofs)")
        else:
            print(f"✗ INVALID ({len(result.errors)} errors)")
            for error in result.errors:
                print(f"  - {error}")
        for warning in result.warnings:
            print(f"  ! {warning}")

    return 0 if result.valid else 1


def cmd_show(args):
    """Show proofs from the local chain."""
    chain = _open_chain(args)
    proofs = chain.export()["proofs"]
    offset = 0
    if args.last is not None:
        offset = max(len(proofs) - args.last, 0)
        proofs = proofs[offset:]

    if args.json:
        print_json(proofs)
        return 0

    if not proofs:
        print("(empty chain)")
    for i, proof in enumerate(proofs, start=offset):
        print(f"#{i} {proof['timestamp']} {proof['action']}")
        print(f"   hash: {proof['hash']}")
        print(f"   data: {json.dumps(proof['data'], ensure_ascii=False)}")
    return 0


def cmd_export(args):
    """Export the local chain for sharing."""
    chain = _open_chain(args)
    exported = chain.export(start=args.start)

    if args.file:
        with open(args.file, 'w', encoding='utf-8') as f:
            json.dump(exported, f, indent=2, ensure_ascii=False)
        print(f"Chain exported to: {args.file}", file=sys.stderr)
    else:
        print_json(exported)
    return 0


def cmd_summary(args):
    """Summarize the local chain."""
    chain = _open_chain(args)
    summary = chain.summary()

    if args.json:
        print_json(summary)
        return 0

    print(f"Agent ID:    {summary['agentId']}")
    print(f"Proofs:      {summary['proofCount']}")
    print(f"First proof: {summary['firstProof'] or '-'}")
    print(f"Last proof:  {summary['lastProof'] or '-'}")
    for action, count in sorted(summary["actionCounts"].items()):
        print(f"  {action}: {count}")
    return 0


def cmd_hash(args):
    """Compute the canonical SHA-256 of a JSON file."""
    from agentproof import canonical_hash

    h = canonical_hash(load_json(args.file))
    if args.json:
        print_json({"sha256": h})
    else:
        print(f"sha256: {h}")
    return 0


COMMANDS = {
    "init": cmd_init,
    "whoami": cmd_whoami,
    "add": cmd_add,
    "verify": cmd_verify,
    "show": cmd_show,
    "export": cmd_export,
    "summary": cmd_summary,
    "hash": cmd_hash,
}


def build_parser(config) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentproof",
        description="AgentProof: signed, hash-linked provenance log for agents",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  agentproof init
  agentproof add tool_call '{"tool": "web_search", "query": "AI safety"}'
  agentproof show --last 5
  agentproof export chain-export.json
  agentproof verify chain-export.json
        """
    )
    parser.add_argument("--key", default=str(config.key_path), help="Keypair file")
    parser.add_argument("--chain", default=str(config.chain_path), help="Chain file")
    parser.add_argument("--json", action="store_true", help="Machine-readable output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("init", help="Create a new identity")
    subparsers.add_parser("whoami", help="Show the current identity")

    add_parser = subparsers.add_parser("add", help="Append a proof")
    add_parser.add_argument("action", help="Action label, e.g. tool_call")
    add_parser.add_argument("data", help="JSON payload (plain text is stored as a string)")
    add_parser.add_argument("-m", "--metadata", help="JSON object of extra metadata")

    verify_parser = subparsers.add_parser("verify", help="Verify an exported chain")
    verify_parser.add_argument("file", help="Exported chain JSON file")

    show_parser = subparsers.add_parser("show", help="Show proofs")
    show_parser.add_argument("-n", "--last", type=int, help="Only the last N proofs")

    export_parser = subparsers.add_parser("export", help="Export the chain")
    export_parser.add_argument("file", nargs="?", help="Output file (default: stdout)")
    export_parser.add_argument("-s", "--start", type=int, help="Export from this index (partial chain)")

    subparsers.add_parser("summary", help="Summarize the chain")

    hash_parser = subparsers.add_parser("hash", help="Canonical SHA-256 of a JSON file")
    hash_parser.add_argument("file", help="JSON file to hash")

    return parser


def main(argv=None):
    config = load_config()
    configure_logging(level="DEBUG" if is_debug() else config.log_level, json_format=config.log_json)
    set_correlation_id()

    parser = build_parser(config)
    args = parser.parse_args(argv)
    args.config = config

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except (AgentProofError, IndexError, ValueError, OSError, RecursionError) as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
