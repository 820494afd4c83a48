"""
AgentProof Verification Test Suite

Each test tampers with a chain the way an attacker (or a careless
integrator) would and checks that verification pinpoints the defect:
- Content and metadata edits
- Signature forgery and key substitution
- Deletion, insertion and reordering of proofs
- Cross-identity splicing
- Malformed and hostile input
- Clock skew
"""

import copy
import unittest
from datetime import datetime, timedelta, timezone

from agentproof import (
    ChainVerifier,
    IssueCode,
    ProofChain,
    build_proof,
    canonical_hash,
    canonicalize,
    generate_identity,
    is_chain_valid,
    is_valid,
    proof_body,
    sign,
    verify_chain,
    verify_exported_chain,
    verify_proof,
)
from agentproof.canonicalization import MAX_NESTING_DEPTH
from agentproof.util import format_timestamp


def nested(depth, leaf=1):
    value = leaf
    for _ in range(depth):
        value = {"inner": value}
    return value


def make_chain(actions=("decision", "tool_call", "decision"), identity=None):
    identity = identity or generate_identity()
    chain = ProofChain(identity)
    for i, action in enumerate(actions):
        chain.append(action, {"step": i})
    return identity, chain.export()


def resign(record, identity):
    """Recompute hash and signature after an edit, as a key holder could."""
    canonical = canonicalize(proof_body(record))
    record["hash"] = canonical_hash(proof_body(record))
    record["signature"] = sign(canonical, identity.private_key)
    return record


class TestScenarios(unittest.TestCase):

    def test_honest_chain_verifies(self):
        identity, exported = make_chain()
        proofs = exported["proofs"]

        result = verify_chain(proofs, identity.public_key)
        self.assertTrue(result.valid)
        self.assertEqual(len(proofs), 3)
        self.assertIsNone(proofs[0]["previousHash"])
        self.assertEqual(result.errors, [])
        self.assertEqual(result.warnings, [])

    def test_content_tamper_reports_single_error_at_index(self):
        identity, exported = make_chain()
        proofs = exported["proofs"]
        proofs[1]["data"]["foo"] = "tampered"

        result = verify_chain(proofs, identity.public_key)
        self.assertFalse(result.valid)
        self.assertEqual(len(result.errors), 1)
        self.assertEqual(result.errors[0].index, 1)
        self.assertEqual(result.errors[0].code, IssueCode.HASH_MISMATCH)
        self.assertFalse(result.errors[0].details["signature_valid"])

    def test_nested_key_order_irrelevant(self):
        identity = generate_identity()
        ts = datetime(2024, 1, 1, tzinfo=timezone.utc)
        a = build_proof("custom", {"a": {"b": {"c": 1, "d": 2}, "e": 3}}, identity, timestamp=ts)
        b = build_proof("custom", {"a": {"e": 3, "b": {"d": 2, "c": 1}}}, identity, timestamp=ts)
        self.assertEqual(canonicalize(a.body()), canonicalize(b.body()))
        self.assertEqual(a.hash, b.hash)


class TestTampering(unittest.TestCase):

    def setUp(self):
        self.identity, self.exported = make_chain(("a", "b", "c", "d", "e"))
        self.proofs = self.exported["proofs"]

    def verify(self, proofs=None):
        return verify_chain(self.proofs if proofs is None else proofs, self.identity.public_key)

    def test_every_hashed_field_detected(self):
        edits = {
            "version": "2.0",
            "action": "other",
            "data": {"step": 99},
            "timestamp": "2020-01-01T00:00:00.000Z",
            "metadata": {"injected": True},
        }
        for field_name, value in edits.items():
            proofs = copy.deepcopy(self.proofs)
            proofs[2][field_name] = value
            result = self.verify(proofs)
            self.assertFalse(result.valid, field_name)
            self.assertIn(IssueCode.HASH_MISMATCH, [e.code for e in result.errors_at(2)], field_name)

    def test_forged_hash_detected_by_signature(self):
        """Attacker edits data and recomputes the hash but cannot re-sign."""
        self.proofs[2]["data"] = {"step": "forged"}
        self.proofs[2]["hash"] = canonical_hash(proof_body(self.proofs[2]))

        result = self.verify()
        self.assertFalse(result.valid)
        self.assertEqual(result.codes(), [IssueCode.SIGNATURE_INVALID, IssueCode.CHAIN_BREAK])
        self.assertEqual([e.index for e in result.errors], [2, 3])

    def test_replaced_signature_detected(self):
        self.proofs[1]["signature"] = self.proofs[0]["signature"]
        result = self.verify()
        self.assertEqual(result.codes(), [IssueCode.SIGNATURE_INVALID])
        self.assertEqual(result.errors[0].index, 1)

    def test_previous_hash_tamper(self):
        self.proofs[3]["previousHash"] = "0" * 64
        result = self.verify()
        self.assertEqual({e.index for e in result.errors}, {3})
        self.assertEqual(
            sorted(e.code.value for e in result.errors),
            ["ChainBreakError", "HashMismatchError"],
        )

    def test_deletion_detected(self):
        del self.proofs[2]
        result = self.verify()
        self.assertFalse(result.valid)
        self.assertEqual(result.codes(), [IssueCode.CHAIN_BREAK])
        self.assertEqual(result.errors[0].index, 2)

    def test_reorder_detected(self):
        self.proofs[1], self.proofs[2] = self.proofs[2], self.proofs[1]
        result = self.verify()
        self.assertFalse(result.valid)
        self.assertTrue(all(e.code == IssueCode.CHAIN_BREAK for e in result.errors))
        self.assertIn(1, [e.index for e in result.errors])

    def test_truncated_head_not_marked_partial(self):
        result = self.verify(self.proofs[2:])
        self.assertFalse(result.valid)
        self.assertEqual(result.codes(), [IssueCode.CHAIN_BREAK])
        self.assertEqual(result.errors[0].index, 0)

    def test_truncated_head_marked_partial(self):
        result = verify_chain(self.proofs[2:], self.identity.public_key, partial=True)
        self.assertTrue(result.valid)
        self.assertEqual([w.code for w in result.warnings], [IssueCode.PARTIAL_CHAIN])

    def test_key_holder_rewrite_breaks_following_link(self):
        """Even the key holder cannot rewrite history without breaking the next link."""
        self.proofs[1]["data"] = {"step": "rewritten"}
        resign(self.proofs[1], self.identity)

        result = self.verify()
        self.assertEqual(result.codes(), [IssueCode.CHAIN_BREAK])
        self.assertEqual(result.errors[0].index, 2)

    def test_deep_nested_edit_detected(self):
        """A leaf several levels down in the payload is covered by the hash."""
        identity = generate_identity()
        chain = ProofChain(identity)
        for i in range(3):
            chain.append("tool_call", {"request": {"inner": {"value": i, "tags": ["a", "b"]}}})
        proofs = chain.export()["proofs"]

        proofs[1]["data"]["request"]["inner"]["value"] = 99
        result = verify_chain(proofs, identity.public_key)
        self.assertFalse(result.valid)
        self.assertEqual({e.index for e in result.errors}, {1})
        self.assertEqual(result.codes(), [IssueCode.HASH_MISMATCH])

        proofs[1]["data"]["request"]["inner"]["value"] = 1
        proofs[2]["data"]["request"]["inner"]["tags"][1] = "c"
        result = verify_chain(proofs, identity.public_key)
        self.assertEqual({e.index for e in result.errors}, {2})

    def test_verdict_never_bare(self):
        self.proofs[4]["data"] = "x"
        result = self.verify()
        for error in result.errors:
            self.assertIsNotNone(error.index)
            self.assertTrue(error.message)
            self.assertIn(f"Proof {error.index}", str(error))


class TestIdentityChecks(unittest.TestCase):

    def test_wrong_public_key(self):
        _, exported = make_chain()
        other = generate_identity()
        result = verify_chain(exported["proofs"], other.public_key)
        self.assertFalse(result.valid)
        codes = set(result.codes())
        self.assertIn(IssueCode.IDENTITY_MISMATCH, codes)
        self.assertIn(IssueCode.SIGNATURE_INVALID, codes)

    def test_spliced_foreign_proof(self):
        identity, exported = make_chain()
        intruder = generate_identity()
        foreign = build_proof("custom", {}, intruder, previous_hash=exported["proofs"][-1]["hash"])
        proofs = exported["proofs"] + [foreign.to_dict()]

        result = verify_chain(proofs, identity.public_key)
        self.assertFalse(result.valid)
        chain_level = result.errors_at(None)
        self.assertEqual([e.code for e in chain_level], [IssueCode.IDENTITY_MISMATCH])
        self.assertEqual({e.code for e in result.errors_at(3)},
                         {IssueCode.IDENTITY_MISMATCH, IssueCode.SIGNATURE_INVALID})
        self.assertEqual(result.errors[0].index, None)

    def test_exported_metadata_agent_id_checked(self):
        _, exported = make_chain()
        exported["metadata"]["agentId"] = "agent-0000000000000000"
        result = verify_exported_chain(exported)
        self.assertFalse(result.valid)
        self.assertEqual(result.errors[0].code, IssueCode.IDENTITY_MISMATCH)
        self.assertIsNone(result.errors[0].index)

    def test_substituted_public_key_in_export(self):
        _, exported = make_chain()
        exported["metadata"]["publicKey"] = generate_identity().public_key
        exported["metadata"].pop("agentId")
        self.assertFalse(verify_exported_chain(exported).valid)


class TestMalformedInput(unittest.TestCase):

    def setUp(self):
        self.identity, self.exported = make_chain()
        self.proofs = self.exported["proofs"]

    def test_missing_field(self):
        del self.proofs[1]["signature"]
        result = verify_chain(self.proofs, self.identity.public_key)
        structural = result.errors_at(1)
        self.assertEqual([e.code for e in structural], [IssueCode.STRUCTURAL])
        self.assertIn("signature", structural[0].message)

    def test_wrong_types(self):
        self.proofs[0]["hash"] = 12345
        self.proofs[2]["timestamp"] = "yesterday"
        result = verify_chain(self.proofs, self.identity.public_key)
        self.assertEqual(result.errors_at(0)[0].code, IssueCode.STRUCTURAL)
        self.assertEqual(result.errors_at(2)[0].code, IssueCode.STRUCTURAL)

    def test_non_object_proof(self):
        self.proofs[1] = "not a proof"
        result = verify_chain(self.proofs, self.identity.public_key)
        self.assertFalse(result.valid)
        self.assertEqual(result.errors_at(1)[0].code, IssueCode.STRUCTURAL)

    def test_garbage_signature_and_key(self):
        self.proofs[0]["signature"] = "!!!"
        result = verify_chain(self.proofs, self.identity.public_key)
        self.assertEqual(result.codes(), [IssueCode.SIGNATURE_INVALID])

        result = verify_chain(self.proofs, "not-a-key")
        self.assertFalse(result.valid)

    def test_timestamp_outside_utc_range(self):
        """Year 1 with a positive offset has no UTC representation."""
        self.proofs[1]["timestamp"] = "0001-01-01T00:00:00+01:00"
        result = verify_chain(self.proofs, self.identity.public_key)
        self.assertFalse(result.valid)
        self.assertEqual([(e.code, e.index) for e in result.errors], [(IssueCode.STRUCTURAL, 1)])

    def test_timestamps_at_datetime_limits(self):
        self.proofs[0]["timestamp"] = "0001-01-01T00:00:00Z"
        self.proofs[2]["timestamp"] = "9999-12-31T23:59:59.999Z"
        result = verify_chain(self.proofs, self.identity.public_key)
        self.assertEqual(
            [(e.code, e.index) for e in result.errors],
            [(IssueCode.HASH_MISMATCH, 0), (IssueCode.HASH_MISMATCH, 2)],
        )
        self.assertEqual(
            [(w.code, w.index) for w in result.warnings],
            [(IssueCode.CLOCK_SKEW, 2)],
        )

    def test_deeply_nested_payload(self):
        self.proofs[1]["data"] = nested(5000)
        result = verify_chain(self.proofs, self.identity.public_key)
        self.assertFalse(result.valid)
        self.assertEqual([(e.code, e.index) for e in result.errors], [(IssueCode.STRUCTURAL, 1)])
        self.assertIn("nesting", result.errors[0].message)

    def test_nesting_limit_boundary(self):
        identity = generate_identity()
        proof = build_proof("custom", nested(MAX_NESTING_DEPTH - 2), identity).to_dict()
        self.assertTrue(verify_proof(proof, identity.public_key).valid)
        proof["data"] = nested(MAX_NESTING_DEPTH)
        self.assertEqual(verify_proof(proof, identity.public_key).codes(), [IssueCode.STRUCTURAL])

    def test_non_list_and_missing_key(self):
        self.assertFalse(verify_chain("proofs", self.identity.public_key).valid)
        self.assertFalse(verify_chain({"a": 1}, self.identity.public_key).valid)
        self.assertFalse(verify_chain(self.proofs, None).valid)
        self.assertFalse(verify_chain(self.proofs, "").valid)

    def test_malformed_exports(self):
        for exported in (None, "text", {}, {"metadata": {}}, {"metadata": {"publicKey": 1}, "proofs": []}):
            result = verify_exported_chain(exported)
            self.assertFalse(result.valid, exported)
            self.assertTrue(all(e.code == IssueCode.STRUCTURAL for e in result.errors))

    def test_empty_chain(self):
        result = verify_chain([], self.identity.public_key)
        self.assertTrue(result.valid)
        self.assertEqual([w.code for w in result.warnings], [IssueCode.EMPTY_CHAIN])


class TestClockSkew(unittest.TestCase):

    def setUp(self):
        self.identity = generate_identity()

    def build(self, timestamps):
        proofs, previous = [], None
        for ts in timestamps:
            proof = build_proof("custom", {}, self.identity, previous_hash=previous, timestamp=ts)
            proofs.append(proof.to_dict())
            previous = proof.hash
        return proofs

    def test_backwards_timestamp_is_warning(self):
        base = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        proofs = self.build([base, base - timedelta(minutes=5)])
        result = verify_chain(proofs, self.identity.public_key)
        self.assertTrue(result.valid)
        self.assertEqual([(w.code, w.index) for w in result.warnings], [(IssueCode.CLOCK_SKEW, 1)])

    def test_small_skew_tolerated(self):
        base = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        proofs = self.build([base, base - timedelta(seconds=30)])
        self.assertEqual(verify_chain(proofs, self.identity.public_key).warnings, [])

    def test_custom_tolerance(self):
        base = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        proofs = self.build([base, base - timedelta(seconds=30)])
        verifier = ChainVerifier(clock_skew_tolerance=timedelta(seconds=10))
        self.assertEqual(len(verifier.verify_chain(proofs, self.identity.public_key).warnings), 1)

    def test_future_timestamp_is_warning(self):
        now = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        proofs = self.build([now + timedelta(hours=1)])
        verifier = ChainVerifier(now=lambda: now)
        result = verifier.verify_chain(proofs, self.identity.public_key)
        self.assertTrue(result.valid)
        self.assertEqual([w.code for w in result.warnings], [IssueCode.CLOCK_SKEW])

    def test_offset_timestamp_accepted(self):
        proofs = self.build([datetime(2024, 1, 1, 12, tzinfo=timezone.utc)])
        proofs[0]["timestamp"] = "2024-01-01T14:00:00+02:00"
        resign(proofs[0], self.identity)
        result = verify_proof(proofs[0], self.identity.public_key)
        self.assertTrue(result.valid)
        self.assertEqual(result.warnings, [])

    def test_naive_datetime_formatted_as_utc(self):
        self.assertEqual(format_timestamp(datetime(2024, 1, 1)), "2024-01-01T00:00:00.000Z")


class TestVerifierApi(unittest.TestCase):

    def test_single_proof(self):
        identity = generate_identity()
        proof = build_proof("custom", {"x": 1}, identity)
        self.assertTrue(is_valid(proof, identity.public_key))
        self.assertTrue(is_valid(proof.to_dict(), identity.public_key))
        self.assertFalse(is_valid(proof, generate_identity().public_key))

    def test_result_serialization(self):
        identity, exported = make_chain()
        exported["proofs"][1]["data"] = "x"
        result = verify_chain(exported["proofs"], identity.public_key)
        data = result.to_dict()
        self.assertFalse(data["valid"])
        self.assertEqual(data["errors"][0]["code"], "HashMismatchError")
        self.assertEqual(data["errors"][0]["index"], 1)
        self.assertFalse(bool(result))

    def test_is_chain_valid(self):
        identity, exported = make_chain()
        self.assertTrue(is_chain_valid(exported["proofs"], identity.public_key))

    def test_parallel_matches_sequential(self):
        identity, exported = make_chain(tuple(f"step_{i}" for i in range(20)))
        proofs = exported["proofs"]
        proofs[7]["data"] = "tampered"
        del proofs[13]["hash"]

        sequential = ChainVerifier().verify_chain(proofs, identity.public_key)
        parallel = ChainVerifier(max_workers=4).verify_chain(proofs, identity.public_key)
        self.assertEqual(sequential.to_dict(), parallel.to_dict())
        self.assertEqual([e.index for e in parallel.errors], [7, 13])

    def test_verification_does_not_mutate_input(self):
        identity, exported = make_chain()
        snapshot = copy.deepcopy(exported)
        verify_exported_chain(exported)
        self.assertEqual(exported, snapshot)


if __name__ == "__main__":
    unittest.main(verbosity=2)
