"""Credit-score gated collateral ratio and borrow limit assessment."""

from credit_vaults.errors import InvalidCaller, InvalidProof
from credit_vaults.fixed_point import checked_div, checked_mul, checked_sub
from credit_vaults.models import ScoreProof
from credit_vaults.score_registry import ScoreRegistry


def interpolate_ratio(low: int, high: int, score: int, max_score: int) -> int:
    """Linear map: score 0 -> `high`, score `max_score` -> `low`, rounded down."""
    if max_score <= 0:
        raise InvalidProof("max score must be > 0")
    score = min(score, max_score)
    return checked_sub(high, checked_div(checked_mul(checked_sub(high, low), score), max_score))


class CollateralAssessor:
    """Maps an account's verified score onto a collateral ratio between the protocol bounds."""

    def __init__(self, registry: ScoreRegistry, *, proof_protocol: str) -> None:
        self.registry = registry
        self.proof_protocol = proof_protocol

    def required_ratio(
        self,
        account: str,
        proof: ScoreProof | None,
        *,
        low: int,
        high: int,
        now: int,
        stamp_fresh: bool = False,
    ) -> int:
        """
        Ratio `account` must maintain.

        A presented proof must belong to `account` and to this assessor's protocol. A proof
        that verifies is recorded in the registry; one that does not (or cannot be checked
        because the registry is paused) earns no discount. Without a proof the last recorded
        score is used only while `stamp_fresh` is set, otherwise the `high` bound applies.
        """
        if proof is not None:
            if proof.account.lower() != account.lower():
                raise InvalidCaller("proof does not belong to the caller")
            if proof.protocol != self.proof_protocol:
                raise InvalidProof(f"proof protocol {proof.protocol!r} is not {self.proof_protocol!r}")
            if self.registry.paused or not self.registry.verify(proof):
                return high
            record = self.registry.verify_and_update(proof, now)
            return interpolate_ratio(low, high, record.score, record.max_score)

        if not stamp_fresh:
            return high
        record = self.registry.get_score(account, self.proof_protocol)
        if record is None:
            return high
        return interpolate_ratio(low, high, record.score, record.max_score)

    def proof_verifies(self, proof: ScoreProof | None) -> bool:
        """Whether `proof` would earn a score-based ratio right now."""
        return proof is not None and not self.registry.paused and self.registry.verify(proof)


class BorrowLimitAssessor:
    """Per-account borrow caps, published as scores in their own namespace."""

    def __init__(self, registry: ScoreRegistry, *, proof_protocol: str) -> None:
        self.registry = registry
        self.proof_protocol = proof_protocol

    def borrow_limit(self, account: str, proof: ScoreProof | None, *, now: int) -> int | None:
        """
        Most `account` may owe, or None when no limit is on record.

        A presented proof must belong to `account`, sit in the limit namespace and verify
        against the current root; it is recorded so later borrows without one keep the same
        cap. While the registry is paused proofs are ignored and the recorded limit applies.
        """
        if proof is not None:
            if proof.account.lower() != account.lower():
                raise InvalidCaller("borrow limit proof does not belong to the caller")
            if proof.protocol != self.proof_protocol:
                raise InvalidProof(f"proof protocol {proof.protocol!r} is not {self.proof_protocol!r}")
            if not self.registry.paused:
                return self.registry.verify_and_update(proof, now, bounded=False).score

        record = self.registry.get_score(account, self.proof_protocol)
        return None if record is None else record.score
