from dataclasses import replace

import pytest

from credit_vaults.assessor import CollateralAssessor, interpolate_ratio
from credit_vaults.constants import BASE, BORROW_LIMIT_PROOF_PROTOCOL, DEFAULT_PROOF_PROTOCOL, EMPTY_ROOT
from credit_vaults.errors import EmptyRoot, InvalidCaller, InvalidProof, Paused, StaleRootUpdate, Unauthorized
from credit_vaults.merkle import (
    MerkleTree,
    PassportScoreTree,
    combined_hash,
    parse_score_tree_dump,
    protocol_to_bytes32,
    score_leaf,
    verify_score_proof,
)
from credit_vaults.models import PassportScore, RootState
from credit_vaults.score_registry import ScoreRegistry, rotate_root

OWNER = "0x" + "0a" * 20
UPDATER = "0x" + "0b" * 20
PAUSER = "0x" + "0c" * 20
ALICE = "0x" + "11" * 20
BOB = "0x" + "22" * 20
CAROL = "0x" + "33" * 20
DELAY = 86_400

SCORES = [
    PassportScore(ALICE, DEFAULT_PROOF_PROTOCOL, 500),
    PassportScore(BOB, DEFAULT_PROOF_PROTOCOL, 1000),
    PassportScore(CAROL, DEFAULT_PROOF_PROTOCOL, 0),
]


def make_registry(root: str, **kwargs) -> ScoreRegistry:
    return ScoreRegistry(
        owner=OWNER,
        root_updater=UPDATER,
        pause_operator=PAUSER,
        initial_root=root,
        root_delay_duration=DELAY,
        **kwargs,
    )


def test_protocol_to_bytes32():
    encoded = protocol_to_bytes32("arcx.credit")
    assert len(encoded) == 32
    assert encoded.startswith(b"arcx.credit\0")
    raw = "0x" + "ab" * 32
    assert protocol_to_bytes32(raw) == bytes.fromhex("ab" * 32)
    with pytest.raises(ValueError):
        protocol_to_bytes32("x" * 32)


def test_combined_hash_is_order_independent():
    a = "0x" + "01" * 32
    b = "0x" + "02" * 32
    assert combined_hash(a, b) == combined_hash(b, a)
    assert combined_hash(a, None) == a
    assert combined_hash(None, b) == b


def test_every_leaf_proves_against_root():
    tree = PassportScoreTree(SCORES)
    root = tree.get_hex_root()
    for s in SCORES:
        assert verify_score_proof(s, tree.get_proof(s), root)


def test_single_leaf_tree_root_is_the_leaf():
    tree = PassportScoreTree(SCORES[:1])
    assert tree.get_hex_root() == score_leaf(SCORES[0])
    assert tree.get_proof(SCORES[0]) == []


def test_tampered_score_fails_verification():
    tree = PassportScoreTree(SCORES)
    proof = tree.get_proof(SCORES[0])
    assert not verify_score_proof(replace(SCORES[0], score=1000), proof, tree.get_hex_root())
    assert not verify_score_proof(replace(SCORES[0], account=CAROL), proof, tree.get_hex_root())


def test_duplicate_account_protocol_is_rejected():
    dup = PassportScore(ALICE, DEFAULT_PROOF_PROTOCOL, 10)
    with pytest.raises(ValueError, match="more than 1 score"):
        PassportScoreTree([*SCORES, dup])
    # Same account in another namespace is fine
    PassportScoreTree([*SCORES, PassportScore(ALICE, BORROW_LIMIT_PROOF_PROTOCOL, 10)])


def test_merkle_tree_rejects_unknown_and_empty():
    with pytest.raises(ValueError):
        MerkleTree([])
    tree = MerkleTree(["0x" + "01" * 32, "0x" + "02" * 32])
    with pytest.raises(KeyError):
        tree.get_proof("0x" + "03" * 32)


def test_dump_roundtrip_through_parser():
    tree = PassportScoreTree(SCORES)
    root, proofs = parse_score_tree_dump(tree.to_dump())
    assert root == tree.get_hex_root()
    assert [p.score for p in proofs] == [500, 1000, 0]
    assert all(verify_score_proof(p.passport_score, p.merkle_proof, root) for p in proofs)


def test_rotate_root_exact_delay_boundary():
    state = RootState(current_root="0x01", upcoming_root="0x02", last_root_update_at=100, delay_duration=DELAY)
    with pytest.raises(StaleRootUpdate):
        rotate_root(state, "0x03", 100 + DELAY - 1)
    new = rotate_root(state, "0x03", 100 + DELAY)
    assert new.current_root == "0x02"
    assert new.upcoming_root == "0x03"
    assert new.last_root_update_at == 100 + DELAY
    assert new.current_epoch == 1


def test_initial_root_is_current_and_upcoming():
    root = PassportScoreTree(SCORES).get_hex_root()
    registry = make_registry(root)
    assert registry.current_root == registry.upcoming_root == root
    assert registry.current_epoch == 0
    assert not registry.paused


def test_update_root_rejects_empty_and_unauthorized():
    registry = make_registry("0x" + "01" * 32)
    with pytest.raises(EmptyRoot):
        registry.update_root(EMPTY_ROOT, UPDATER, DELAY)
    with pytest.raises(Unauthorized):
        registry.update_root("0x" + "02" * 32, ALICE, DELAY)


def test_updater_blocked_while_paused_and_owner_only_while_paused():
    registry = make_registry("0x" + "01" * 32)
    with pytest.raises(Paused):
        registry.update_root("0x" + "02" * 32, OWNER, 0)
    with pytest.raises(Unauthorized):
        registry.set_pause(True, OWNER)
    registry.set_pause(True, PAUSER)
    with pytest.raises(Paused):
        registry.update_root("0x" + "02" * 32, UPDATER, DELAY)


def test_malicious_root_is_replaced_before_it_becomes_current():
    good = PassportScoreTree(SCORES)
    evil = PassportScoreTree([PassportScore(ALICE, DEFAULT_PROOF_PROTOCOL, 1000)])
    registry = make_registry(good.get_hex_root())

    registry.update_root(evil.get_hex_root(), UPDATER, DELAY)
    assert registry.upcoming_root == evil.get_hex_root()
    assert registry.current_root == good.get_hex_root()
    assert registry.current_epoch == 1

    registry.set_pause(True, PAUSER)
    registry.update_root(good.get_hex_root(), OWNER, DELAY + 1)
    assert registry.upcoming_root == good.get_hex_root()
    assert registry.last_root_update_at == DELAY
    assert registry.current_epoch == 1
    registry.set_pause(False, PAUSER)

    registry.update_root("0x" + "05" * 32, UPDATER, 2 * DELAY)
    assert registry.current_root == good.get_hex_root()
    evil_proof = evil.get_score_proof(evil.scores[0])
    assert not registry.verify(evil_proof)


def test_owner_acting_as_root_updater():
    registry = ScoreRegistry(
        owner=OWNER,
        root_updater=OWNER,
        pause_operator=PAUSER,
        initial_root="0x" + "01" * 32,
        root_delay_duration=DELAY,
    )
    registry.update_root("0x" + "02" * 32, OWNER, DELAY)
    assert registry.current_root == "0x" + "01" * 32
    assert registry.upcoming_root == "0x" + "02" * 32
    assert registry.current_epoch == 1
    with pytest.raises(StaleRootUpdate):
        registry.update_root("0x" + "03" * 32, OWNER, DELAY + 1)

    registry.set_pause(True, PAUSER)
    registry.update_root("0x" + "04" * 32, OWNER, DELAY + 1)
    assert registry.upcoming_root == "0x" + "04" * 32
    assert registry.current_epoch == 1


def test_owner_role_setters():
    registry = make_registry("0x" + "01" * 32)
    with pytest.raises(Unauthorized):
        registry.set_root_updater(ALICE, UPDATER)
    registry.set_root_updater(ALICE, OWNER)
    registry.update_root("0x" + "02" * 32, ALICE, DELAY)
    registry.set_pause_operator(BOB, OWNER)
    registry.set_pause(True, BOB)
    registry.set_root_delay(10, OWNER)
    assert registry.root_delay_duration == 10
    with pytest.raises(ValueError):
        registry.set_root_delay(0, OWNER)


def test_verify_and_update_records_and_refreshes():
    tree = PassportScoreTree(SCORES)
    registry = make_registry(tree.get_hex_root())
    proof = tree.get_score_proof(SCORES[0])

    record = registry.verify_and_update(proof, 10)
    assert (record.score, record.max_score, record.last_verified_at) == (500, 1000, 10)
    registry.verify_and_update(proof, 20)
    assert registry.get_score(ALICE, DEFAULT_PROOF_PROTOCOL).last_verified_at == 20
    assert registry.get_score(BOB, DEFAULT_PROOF_PROTOCOL) is None

    with pytest.raises(InvalidProof):
        registry.verify_and_update(replace(proof, score=999), 30)
    registry.set_pause(True, PAUSER)
    with pytest.raises(Paused):
        registry.verify_and_update(proof, 40)


def test_score_above_max_is_rejected():
    scores = [PassportScore(ALICE, DEFAULT_PROOF_PROTOCOL, 2000)]
    tree = PassportScoreTree(scores)
    registry = make_registry(tree.get_hex_root())
    with pytest.raises(InvalidProof, match="max score"):
        registry.verify_and_update(tree.get_score_proof(scores[0]), 1)
    # Borrow limits are amounts and skip the score bound
    assert registry.verify(tree.get_score_proof(scores[0]), bounded=False)
    assert registry.verify_and_update(tree.get_score_proof(scores[0]), 1, bounded=False).score == 2000


def test_epoch_stamps():
    registry = make_registry("0x" + "01" * 32)
    assert registry.expected_epoch_with_proof(True) == 0
    assert registry.expected_epoch_with_proof(False) == 2
    assert not registry.is_stamp_fresh(None)
    for i in range(1, 4):
        registry.update_root("0x" + "02" * 32, UPDATER, i * DELAY)
    assert registry.current_epoch == 3
    assert registry.is_stamp_fresh(3)
    assert not registry.is_stamp_fresh(2)


@pytest.mark.parametrize(
    "score, expected",
    [(0, 2 * BASE), (500, 3 * BASE // 2), (1000, BASE), (1500, BASE), (333, 2 * BASE - BASE * 333 // 1000)],
)
def test_interpolate_ratio(score, expected):
    assert interpolate_ratio(BASE, 2 * BASE, score, 1000) == expected


def test_assessor_rules():
    tree = PassportScoreTree(SCORES)
    registry = make_registry(tree.get_hex_root())
    assessor = CollateralAssessor(registry, proof_protocol=DEFAULT_PROOF_PROTOCOL)
    bounds = {"low": BASE, "high": 2 * BASE, "now": 5}
    alice_proof = tree.get_score_proof(SCORES[0])

    assert assessor.required_ratio(ALICE, None, **bounds) == 2 * BASE
    assert assessor.required_ratio(ALICE, alice_proof, **bounds) == 3 * BASE // 2
    # Stored score only counts while the vault's stamp is fresh
    assert assessor.required_ratio(ALICE, None, stamp_fresh=True, **bounds) == 3 * BASE // 2
    assert assessor.required_ratio(BOB, None, stamp_fresh=True, **bounds) == 2 * BASE

    with pytest.raises(InvalidCaller):
        assessor.required_ratio(BOB, alice_proof, **bounds)
    with pytest.raises(InvalidProof):
        assessor.required_ratio(ALICE, replace(alice_proof, protocol=BORROW_LIMIT_PROOF_PROTOCOL), **bounds)

    # Unverifiable proofs earn no discount
    assert assessor.required_ratio(ALICE, replace(alice_proof, score=1000), **bounds) == 2 * BASE
    registry.set_pause(True, PAUSER)
    assert assessor.required_ratio(ALICE, alice_proof, **bounds) == 2 * BASE
    assert not assessor.proof_verifies(alice_proof)
