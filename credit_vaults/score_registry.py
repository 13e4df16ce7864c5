"""Passport score registry with a time-delayed, two-slot Merkle root.

The root updater posts roots into the *upcoming* slot; each throttled update promotes the
previous upcoming root to *current*. Proofs are only ever checked against the current root,
so every posted root sits in the upcoming slot for at least one delay period, giving
observers time to react (pause and replace it) before it becomes authoritative.
"""

from credit_vaults.constants import DEFAULT_MAX_SCORE, DEFAULT_ROOT_DELAY_DURATION, EMPTY_ROOT, PROOF_FREE_EPOCH_WINDOW
from credit_vaults.errors import EmptyRoot, InvalidProof, Paused, StaleRootUpdate, Unauthorized
from credit_vaults.formatters import normalize_hex_str
from credit_vaults.merkle import verify_score_proof
from credit_vaults.models import RootState, ScoreProof, ScoreRecord


def _check_root(new_root: str) -> str:
    root = normalize_hex_str(new_root)
    if int(root, 16) == 0:
        raise EmptyRoot("root is empty")
    return root


def rotate_root(state: RootState, new_root: str, now: int) -> RootState:
    """Throttled rotation: current <- upcoming, upcoming <- new_root, epoch + 1."""
    root = _check_root(new_root)
    if now < state.last_root_update_at + state.delay_duration:
        raise StaleRootUpdate(
            f"cannot update merkle root before delay period "
            f"(next update at {state.last_root_update_at + state.delay_duration}, now {now})"
        )
    return RootState(
        current_root=state.upcoming_root,
        upcoming_root=root,
        last_root_update_at=now,
        delay_duration=state.delay_duration,
        current_epoch=state.current_epoch + 1,
    )


def stage_root(state: RootState, new_root: str) -> RootState:
    """Emergency replacement of the upcoming root. Current root and timestamp are kept."""
    root = _check_root(new_root)
    return RootState(
        current_root=state.current_root,
        upcoming_root=root,
        last_root_update_at=state.last_root_update_at,
        delay_duration=state.delay_duration,
        current_epoch=state.current_epoch,
    )


class ScoreRegistry:
    """Stores the root pair and the last verified score per (account, protocol)."""

    def __init__(
        self,
        *,
        owner: str,
        root_updater: str,
        pause_operator: str,
        initial_root: str = EMPTY_ROOT,
        max_score: int = DEFAULT_MAX_SCORE,
        root_delay_duration: int = DEFAULT_ROOT_DELAY_DURATION,
        start_time: int = 0,
        paused: bool = False,
    ) -> None:
        if max_score <= 0:
            raise ValueError("max_score must be > 0")
        root = normalize_hex_str(initial_root)
        self.owner = owner.lower()
        self.root_updater = root_updater.lower()
        self.pause_operator = pause_operator.lower()
        self.max_score = max_score
        self.paused = paused
        # The initial root is both current and upcoming so proofs work right away.
        self.root_state = RootState(
            current_root=root,
            upcoming_root=root,
            last_root_update_at=start_time,
            delay_duration=root_delay_duration,
        )
        self._scores: dict[tuple[str, str], ScoreRecord] = {}

    @property
    def current_root(self) -> str:
        return self.root_state.current_root

    @property
    def upcoming_root(self) -> str:
        return self.root_state.upcoming_root

    @property
    def last_root_update_at(self) -> int:
        return self.root_state.last_root_update_at

    @property
    def root_delay_duration(self) -> int:
        return self.root_state.delay_duration

    @property
    def current_epoch(self) -> int:
        return self.root_state.current_epoch

    # Root management

    def update_root(self, new_root: str, caller: str, now: int) -> None:
        """Post a new root as the updater (throttled) or as the owner (paused only)."""
        who = caller.lower()
        # An owner that is also the updater rotates while unpaused and stages while paused.
        if who == self.root_updater and not self.paused:
            self.root_state = rotate_root(self.root_state, new_root, now)
            return
        if who == self.owner:
            if not self.paused:
                raise Paused("only admin can update merkle root if paused")
            self.root_state = stage_root(self.root_state, new_root)
            return
        if who != self.root_updater:
            raise Unauthorized("caller is not authorized to update merkle root")
        raise Paused("registry is paused")

    def set_pause(self, paused: bool, caller: str) -> None:
        if caller.lower() != self.pause_operator:
            raise Unauthorized("caller is not the pause operator")
        self.paused = paused

    def set_root_updater(self, root_updater: str, caller: str) -> None:
        self._only_owner(caller)
        self.root_updater = root_updater.lower()

    def set_pause_operator(self, pause_operator: str, caller: str) -> None:
        self._only_owner(caller)
        self.pause_operator = pause_operator.lower()

    def set_root_delay(self, delay_duration: int, caller: str) -> None:
        self._only_owner(caller)
        if delay_duration <= 0:
            raise ValueError("delay duration must be > 0")
        self.root_state = RootState(
            current_root=self.root_state.current_root,
            upcoming_root=self.root_state.upcoming_root,
            last_root_update_at=self.root_state.last_root_update_at,
            delay_duration=delay_duration,
            current_epoch=self.root_state.current_epoch,
        )

    def _only_owner(self, caller: str) -> None:
        if caller.lower() != self.owner:
            raise Unauthorized("caller is not admin")

    # Scores

    def verify(self, proof: ScoreProof, *, bounded: bool = True) -> bool:
        """
        Check a proof against the current root without recording anything.

        `bounded` proofs carry a credit score and must not exceed `max_score`; unbounded ones
        (borrow limits) carry an amount.
        """
        if bounded and proof.score > self.max_score:
            return False
        return verify_score_proof(proof.passport_score, proof.merkle_proof, self.current_root)

    def verify_and_update(self, proof: ScoreProof, now: int, *, bounded: bool = True) -> ScoreRecord:
        """Verify `proof` and record it, refreshing the timestamp even for an unchanged score."""
        if self.paused:
            raise Paused("registry is paused")
        if bounded and proof.score > self.max_score:
            raise InvalidProof(f"score {proof.score} exceeds max score {self.max_score}")
        if not verify_score_proof(proof.passport_score, proof.merkle_proof, self.current_root):
            raise InvalidProof("invalid proof")
        record = ScoreRecord(score=proof.score, max_score=self.max_score, last_verified_at=now)
        self._scores[(proof.account.lower(), proof.protocol)] = record
        return record

    def get_score(self, account: str, protocol: str) -> ScoreRecord | None:
        return self._scores.get((account.lower(), protocol))

    # Epoch gating

    def expected_epoch_with_proof(self, has_proof: bool) -> int:
        """Stamp for a vault acting now: current epoch with a proof, two epochs ahead without."""
        if has_proof:
            return self.current_epoch
        return self.current_epoch + PROOF_FREE_EPOCH_WINDOW

    def is_stamp_fresh(self, expected_epoch: int | None) -> bool:
        """Whether a proof-free action may still rely on a vault's stamp."""
        return expected_epoch is not None and self.current_epoch <= expected_epoch

    def scores_snapshot(self) -> dict[tuple[str, str], ScoreRecord]:
        return dict(self._scores)

    def restore_scores(self, snapshot: dict[tuple[str, str], ScoreRecord]) -> None:
        self._scores = dict(snapshot)
