"""Passport score Merkle tree: building, proving and verifying score leaves.

Leaves are `keccak256(abi.encodePacked(address account, bytes32 protocol, uint256 score))`.
Internal nodes hash the two children after sorting them, so a proof is just the ordered
list of sibling hashes and carries no left/right flags. An odd node at the end of a layer is
promoted unchanged.
"""

from collections.abc import Iterable, Sequence
from typing import Any

from web3 import Web3

from credit_vaults.constants import SCORE_LEAF_TYPES, SCORE_TREE_FORMAT
from credit_vaults.formatters import as_int, normalize_hex_str
from credit_vaults.models import PassportScore, ScoreProof


def protocol_to_bytes32(protocol: str) -> bytes:
    """Encode a protocol name the way ethers' formatBytes32String does (0x-hex passes through)."""
    if protocol.startswith("0x") and len(protocol) == 66:
        return bytes.fromhex(protocol[2:])
    raw = protocol.encode("utf-8")
    if len(raw) > 31:
        raise ValueError(f"Protocol name too long for bytes32: {protocol!r}")
    return raw.ljust(32, b"\0")


def combined_hash(first: str | None, second: str | None) -> str:
    """Hash a pair of nodes in sorted order. A missing side returns the other one."""
    if not first:
        return second or ""
    if not second:
        return first
    a, b = sorted((normalize_hex_str(first), normalize_hex_str(second)))
    return normalize_hex_str(Web3.keccak(hexstr=a + b[2:]))


class MerkleTree:
    """Sorted, deduplicated keccak Merkle tree over 0x-hex leaves."""

    def __init__(self, elements: Iterable[str]) -> None:
        leaves = sorted({normalize_hex_str(el) for el in elements})
        if not leaves:
            raise ValueError("empty tree")
        self._positions = {el: idx for idx, el in enumerate(leaves)}
        self.layers: list[list[str]] = [leaves]
        while len(self.layers[-1]) > 1:
            self.layers.append(self._next_layer(self.layers[-1]))

    @staticmethod
    def _next_layer(elements: list[str]) -> list[str]:
        return [
            combined_hash(elements[idx], elements[idx + 1] if idx + 1 < len(elements) else None)
            for idx in range(0, len(elements), 2)
        ]

    def get_hex_root(self) -> str:
        return self.layers[-1][0]

    def get_proof(self, element: str) -> list[str]:
        idx = self._positions.get(normalize_hex_str(element))
        if idx is None:
            raise KeyError("Element does not exist in Merkle tree")
        proof: list[str] = []
        for layer in self.layers:
            pair_idx = idx + 1 if idx % 2 == 0 else idx - 1
            if pair_idx < len(layer):
                proof.append(layer[pair_idx])
            idx //= 2
        return proof


def score_leaf(score: PassportScore) -> str:
    """Leaf hash for a passport score."""
    return normalize_hex_str(
        Web3.solidity_keccak(
            list(SCORE_LEAF_TYPES),
            [Web3.to_checksum_address(score.account), protocol_to_bytes32(score.protocol), int(score.score)],
        )
    )


def verify_score_proof(score: PassportScore, merkle_proof: Sequence[str], root: str) -> bool:
    """Fold `merkle_proof` over the score leaf and compare with `root`."""
    node = score_leaf(score)
    for sibling in merkle_proof:
        node = combined_hash(node, sibling)
    return node == normalize_hex_str(root)


class PassportScoreTree:
    """Merkle tree of passport scores, one score per (account, protocol)."""

    def __init__(self, scores: Iterable[PassportScore]) -> None:
        self.scores = list(scores)
        self._ensure_unique_accounts(self.scores)
        self.tree = MerkleTree(score_leaf(s) for s in self.scores)

    @staticmethod
    def _ensure_unique_accounts(scores: list[PassportScore]) -> None:
        seen: set[tuple[str, str]] = set()
        for s in scores:
            key = (s.account.lower(), s.protocol)
            if key in seen:
                raise ValueError(f"There are more than 1 score for the protocol {s.protocol} for user {s.account}")
            seen.add(key)

    def get_hex_root(self) -> str:
        return self.tree.get_hex_root()

    def get_proof(self, score: PassportScore) -> list[str]:
        return self.tree.get_proof(score_leaf(score))

    def get_score_proof(self, score: PassportScore) -> ScoreProof:
        return ScoreProof(
            account=score.account,
            protocol=score.protocol,
            score=score.score,
            merkle_proof=tuple(self.get_proof(score)),
        )

    def to_dump(self) -> dict[str, Any]:
        """JSON-serializable dump (root, scores and proofs) for publishing."""
        return {
            "format": SCORE_TREE_FORMAT,
            "root": self.get_hex_root(),
            "values": [
                {
                    "account": s.account,
                    "protocol": s.protocol,
                    "score": str(s.score),
                    "proof": self.get_proof(s),
                }
                for s in self.scores
            ],
        }


def parse_scores(entries: Iterable[dict[str, Any]]) -> list[PassportScore]:
    """Parse score entries ({account, protocol, score}) from JSON."""
    out: list[PassportScore] = []
    for entry in entries:
        out.append(
            PassportScore(
                account=str(entry["account"]),
                protocol=str(entry["protocol"]),
                score=as_int(entry["score"]),
            )
        )
    return out


def parse_score_tree_dump(data: Any) -> tuple[str, list[ScoreProof]]:
    """Parse a published score tree dump (decoded JSON) into (root, proofs)."""
    if not isinstance(data, dict):
        raise ValueError("Unexpected score tree format (expected JSON object)")
    root = normalize_hex_str(data.get("root", ""))
    proofs = [
        ScoreProof(
            account=str(entry["account"]),
            protocol=str(entry["protocol"]),
            score=as_int(entry["score"]),
            merkle_proof=tuple(normalize_hex_str(p) for p in entry.get("proof", [])),
        )
        for entry in data.get("values", []) or []
    ]
    return root, proofs
