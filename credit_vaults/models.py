"""Data models for the credit vault engine."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Vault:
    """A single account's collateral/debt position."""

    account: str
    # Native decimals of the collateral asset.
    collateral_amount: int = 0
    # Debt in index-1.0 units; actual debt = normalized * (BASE + borrow_index) / BASE.
    normalized_borrowed_amount: int = 0
    # Sum of principal flows to/from the pool, interest excluded.
    principal: int = 0
    # Epoch up to which a proof-free action may reuse the stored score (None = never stamped).
    expected_epoch_with_proof: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.collateral_amount == 0 and self.normalized_borrowed_amount == 0


@dataclass(frozen=True)
class PassportScore:
    """A score issued for an account within a protocol namespace."""

    account: str
    protocol: str
    score: int


@dataclass(frozen=True)
class ScoreProof:
    """A passport score plus the Merkle siblings proving it against the current root."""

    account: str
    protocol: str
    score: int
    merkle_proof: tuple[str, ...] = ()

    @property
    def passport_score(self) -> PassportScore:
        return PassportScore(account=self.account, protocol=self.protocol, score=self.score)


@dataclass(frozen=True)
class ScoreRecord:
    """Last verified score of an account for one protocol."""

    score: int
    max_score: int
    last_verified_at: int


@dataclass(frozen=True)
class RootState:
    """Two-slot Merkle root staging state."""

    current_root: str
    upcoming_root: str
    last_root_update_at: int
    delay_duration: int
    current_epoch: int = 0


@dataclass(frozen=True)
class InterestState:
    """Global borrow index state."""

    borrow_index: int = 0
    interest_rate: int = 0
    last_update_time: int = 0


@dataclass(frozen=True)
class LiquidationInfo:
    """Amounts moved by a single liquidation."""

    liquidation_price: int
    collateral_to_seize: int
    debt_to_cancel: int
    new_collateral_amount: int
    new_debt_amount: int
    # Part of the seized collateral owed to the protocol fee collector.
    collateral_to_protocol: int

    @property
    def collateral_to_liquidator(self) -> int:
        return self.collateral_to_seize - self.collateral_to_protocol


@dataclass(frozen=True)
class RepaymentSplit:
    """How a repayment is routed between the pool and the fee collector."""

    amount: int
    interest_paid: int
    principal_paid: int
    pool_interest: int
    protocol_fee: int


@dataclass(frozen=True)
class VaultAggregates:
    """Aggregated metrics across all vaults."""

    vaults_total: int
    vaults_open: int
    vaults_with_debt: int
    vaults_undercollateralized: int
    total_collateral: int
    total_normalized_borrowed: int
    total_borrowed: int
    total_principal: int
    fees_collected: int
    collateral_fees_collected: int


@dataclass
class OperationResult:
    """Outcome of one replayed scenario step."""

    index: int
    timestamp: int
    action: str
    account: str
    ok: bool
    error: str | None = None
    details: dict = field(default_factory=dict)
