"""Vault ledger: per-account positions, global aggregates and the public vault operations.

Every operation takes an explicit `now`, brings the global borrow index up to it, and runs
inside a snapshot: if anything raises (including a refused pool transfer) the ledger, the
interest state and the score records are restored. The liquidity pool is only called once
ledger state is final.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace

from credit_vaults.assessor import BorrowLimitAssessor, CollateralAssessor
from credit_vaults.collaborators import LiquidityPool, PriceOracle
from credit_vaults.config import CoreParameters
from credit_vaults.errors import (
    AssetTransferFailed,
    InsufficientCollateral,
    InvalidProof,
    LimitViolation,
    NoDebtToRepay,
    RepayExceedsDebt,
    Undercollateralized,
)
from credit_vaults.fixed_point import checked_add, checked_sub, mul
from credit_vaults.interest import InterestAccrual
from credit_vaults.liquidation import calculate_liquidation
from credit_vaults.liquidation import collateral_ratio as _collateral_ratio
from credit_vaults.liquidation import is_collateralized as _is_collateralized
from credit_vaults.models import LiquidationInfo, RepaymentSplit, ScoreProof, Vault
from credit_vaults.score_registry import ScoreRegistry
from credit_vaults.validation import validate_core_parameters


def _check_amount(amount: int) -> None:
    if amount <= 0:
        raise ValueError(f"amount must be > 0, got {amount}")


class VaultLedger:
    """Collateralized debt positions against a single collateral asset and borrow token."""

    def __init__(
        self,
        params: CoreParameters,
        *,
        oracle: PriceOracle,
        pool: LiquidityPool,
        registry: ScoreRegistry | None = None,
        start_time: int = 0,
    ) -> None:
        validate_core_parameters(params)
        self.params = params
        self.oracle = oracle
        self.pool = pool
        self.registry = registry
        self.assessor = (
            CollateralAssessor(registry, proof_protocol=params.proof_protocol) if registry is not None else None
        )
        self.limit_assessor = (
            BorrowLimitAssessor(registry, proof_protocol=params.borrow_limit_proof_protocol)
            if registry is not None
            else None
        )
        self.accrual = InterestAccrual(interest_rate=params.interest_rate, start_time=start_time)

        self.vaults: dict[str, Vault] = {}
        self.total_collateral = 0
        self.total_normalized_borrowed = 0
        # Protocol share of repaid interest, in the borrowed asset.
        self.fees_collected = 0
        # Protocol share of liquidated collateral, in the collateral asset.
        self.collateral_fees_collected = 0
        self.liquidator_rewards: dict[str, int] = {}

    # State snapshot

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        saved = (
            dict(self.vaults),
            self.total_collateral,
            self.total_normalized_borrowed,
            self.fees_collected,
            self.collateral_fees_collected,
            dict(self.liquidator_rewards),
            self.accrual.state,
            self.registry.scores_snapshot() if self.registry is not None else None,
        )
        try:
            yield
        except BaseException:
            (
                self.vaults,
                self.total_collateral,
                self.total_normalized_borrowed,
                self.fees_collected,
                self.collateral_fees_collected,
                self.liquidator_rewards,
                self.accrual.state,
                scores,
            ) = saved
            if self.registry is not None and scores is not None:
                self.registry.restore_scores(scores)
            raise

    # Read side

    def get_vault(self, account: str) -> Vault:
        return self.vaults.get(account.lower(), Vault(account=account.lower()))

    def actual_debt(self, account: str) -> int:
        """Debt at the current index (floor). Does not advance the index."""
        return self.accrual.denormalize_debt(self.get_vault(account).normalized_borrowed_amount)

    @property
    def total_borrowed(self) -> int:
        return self.accrual.denormalize_debt(self.total_normalized_borrowed)

    def collateral_ratio(self, account: str) -> int | None:
        vault = self.get_vault(account)
        return _collateral_ratio(
            vault.collateral_amount,
            self.actual_debt(account),
            self.oracle.current_price(),
            collateral_decimals=self.params.collateral_decimals,
        )

    def required_ratio(self, account: str) -> int:
        """Ratio a proof-free action by `account` would be held to right now."""
        return self._required_ratio(self.get_vault(account), None, now=self.accrual.last_update_time)

    def is_collateralized(self, account: str) -> bool:
        vault = self.get_vault(account)
        return _is_collateralized(
            vault.collateral_amount,
            self.actual_debt(account),
            self.oracle.current_price(),
            self.required_ratio(account),
            collateral_decimals=self.params.collateral_decimals,
        )

    # Configuration

    def set_parameters(self, params: CoreParameters, *, now: int) -> None:
        """Swap parameters; a changed interest rate only applies from `now` on."""
        validate_core_parameters(params)
        if params.interest_rate != self.accrual.interest_rate:
            self.accrual.set_interest_rate(params.interest_rate, now)
        self.params = params
        if self.assessor is not None:
            self.assessor.proof_protocol = params.proof_protocol
        if self.limit_assessor is not None:
            self.limit_assessor.proof_protocol = params.borrow_limit_proof_protocol

    def update_index(self, now: int) -> None:
        self.accrual.advance(now)

    # Operations

    def deposit(self, account: str, amount: int, *, now: int) -> Vault:
        _check_amount(amount)
        with self._atomic():
            self.accrual.advance(now)
            vault = self.get_vault(account)
            vault = replace(vault, collateral_amount=checked_add(vault.collateral_amount, amount))
            self.total_collateral = checked_add(self.total_collateral, amount)
            self.vaults[vault.account] = vault
        return vault

    def borrow(
        self,
        account: str,
        amount: int,
        *,
        now: int,
        proof: ScoreProof | None = None,
        borrow_limit_proof: ScoreProof | None = None,
    ) -> Vault:
        """
        Draw `amount` of the borrowed asset; the borrow fee is added to the debt.

        `borrow_limit_proof` proves the most the account may owe. Without one, a limit recorded
        by an earlier borrow still applies.
        """
        _check_amount(amount)
        p = self.params
        with self._atomic():
            self.accrual.advance(now)
            vault = self.get_vault(account)
            price = self.oracle.current_price()
            stamp = self._stamp(vault, proof)
            ratio = self._required_ratio(vault, proof, now=now)

            fee = mul(amount, p.borrow_fee)
            new_debt = self.accrual.denormalize_debt(vault.normalized_borrowed_amount) + amount + fee
            if not _is_collateralized(
                vault.collateral_amount, new_debt, price, ratio, collateral_decimals=p.collateral_decimals
            ):
                raise Undercollateralized(
                    f"vault {vault.account} would hold {vault.collateral_amount} collateral "
                    f"against {new_debt} debt at ratio {ratio}"
                )
            if new_debt < p.vault_borrow_minimum:
                raise LimitViolation(f"debt {new_debt} below vault minimum {p.vault_borrow_minimum}")
            if new_debt > p.vault_borrow_maximum:
                raise LimitViolation(f"debt {new_debt} above vault maximum {p.vault_borrow_maximum}")
            account_limit = self._borrow_limit(vault.account, borrow_limit_proof, now=now)
            if account_limit is None and p.borrow_limit_proof_required:
                raise LimitViolation(f"vault {vault.account} has no verified borrow limit")
            if account_limit is not None and new_debt > account_limit:
                raise LimitViolation(f"debt {new_debt} above borrow limit {account_limit} of {vault.account}")
            if self.total_borrowed + amount + fee > p.total_borrow_limit:
                raise LimitViolation(f"total borrowed would exceed limit {p.total_borrow_limit}")
            lent, limit = self.pool.utilization(p.borrow_token)
            if lent + amount > limit:
                raise LimitViolation(f"pool utilization limit reached ({lent} + {amount} > {limit})")

            normalized = self.accrual.normalize_debt(amount + fee)
            vault = replace(
                vault,
                principal=checked_add(vault.principal, amount),
                normalized_borrowed_amount=checked_add(vault.normalized_borrowed_amount, normalized),
                expected_epoch_with_proof=stamp,
            )
            self.total_normalized_borrowed = checked_add(self.total_normalized_borrowed, normalized)
            self.vaults[vault.account] = vault

            if not self.pool.request_asset(p.borrow_token, amount):
                raise AssetTransferFailed(f"pool refused to lend {amount} {p.borrow_token}")
        return vault

    def repay(self, account: str, amount: int, *, now: int) -> RepaymentSplit:
        """Repay `amount`: accrued interest first, then principal."""
        _check_amount(amount)
        with self._atomic():
            self.accrual.advance(now)
            split = self._apply_repay(account, amount)
            self._settle_repay(split)
        return split

    def withdraw(self, account: str, amount: int, *, now: int, proof: ScoreProof | None = None) -> Vault:
        _check_amount(amount)
        p = self.params
        with self._atomic():
            self.accrual.advance(now)
            vault = self.get_vault(account)
            if amount > vault.collateral_amount:
                raise InsufficientCollateral(
                    f"cannot withdraw {amount}, vault {vault.account} holds {vault.collateral_amount}"
                )
            remaining = vault.collateral_amount - amount
            debt = self.accrual.denormalize_debt(vault.normalized_borrowed_amount)
            stamp = vault.expected_epoch_with_proof
            if debt > 0:
                price = self.oracle.current_price()
                stamp = self._stamp(vault, proof)
                ratio = self._required_ratio(vault, proof, now=now)
                if not _is_collateralized(remaining, debt, price, ratio, collateral_decimals=p.collateral_decimals):
                    raise Undercollateralized(
                        f"withdrawing {amount} leaves vault {vault.account} below ratio {ratio}"
                    )
            vault = replace(vault, collateral_amount=remaining, expected_epoch_with_proof=stamp)
            self.total_collateral = checked_sub(self.total_collateral, amount)
            self.vaults[vault.account] = vault
        return vault

    def exit(self, account: str, *, now: int) -> tuple[RepaymentSplit | None, int]:
        """Repay the whole debt and withdraw all collateral. Returns (repayment, collateral)."""
        with self._atomic():
            self.accrual.advance(now)
            split = None
            debt = self.actual_debt(account)
            if debt > 0:
                split = self._apply_repay(account, debt)
            vault = self.get_vault(account)
            collateral = vault.collateral_amount
            self.total_collateral = checked_sub(self.total_collateral, collateral)
            self.vaults[vault.account] = replace(vault, collateral_amount=0)
            if split is not None:
                self._settle_repay(split)
        return split, collateral

    def liquidate(
        self, account: str, liquidator: str, *, now: int, proof: ScoreProof | None = None
    ) -> LiquidationInfo:
        """
        Liquidate an undercollateralized vault.

        `proof` is the vault owner's score proof, if the liquidator has one; it can only lower
        the ratio the vault is held to. The liquidator pays `debt_to_cancel` of the borrowed
        asset, which is applied to the vault like a repayment.
        """
        p = self.params
        with self._atomic():
            self.accrual.advance(now)
            vault = self.get_vault(account)
            ratio = self._required_ratio(vault, proof, now=now)
            info = calculate_liquidation(
                vault.collateral_amount,
                self.accrual.denormalize_debt(vault.normalized_borrowed_amount),
                self.oracle.current_price(),
                p.liquidator_discount,
                ratio,
                p.protocol_liquidation_fee,
                collateral_decimals=p.collateral_decimals,
            )

            split = self._apply_repay(account, info.debt_to_cancel) if info.debt_to_cancel > 0 else None
            vault = self.get_vault(account)
            self.vaults[vault.account] = replace(
                vault, collateral_amount=checked_sub(vault.collateral_amount, info.collateral_to_seize)
            )
            self.total_collateral = checked_sub(self.total_collateral, info.collateral_to_seize)
            self.collateral_fees_collected = checked_add(self.collateral_fees_collected, info.collateral_to_protocol)
            who = liquidator.lower()
            self.liquidator_rewards[who] = self.liquidator_rewards.get(who, 0) + info.collateral_to_liquidator

            if split is not None:
                self._settle_repay(split)
        return info

    # Internals

    def _required_ratio(self, vault: Vault, proof: ScoreProof | None, *, now: int) -> int:
        p = self.params
        if self.assessor is None:
            return p.high_collateral_ratio
        return self.assessor.required_ratio(
            vault.account,
            proof,
            low=p.low_collateral_ratio,
            high=p.high_collateral_ratio,
            now=now,
            stamp_fresh=self.registry.is_stamp_fresh(vault.expected_epoch_with_proof),
        )

    def _borrow_limit(self, account: str, proof: ScoreProof | None, *, now: int) -> int | None:
        if self.limit_assessor is None:
            if proof is not None:
                raise InvalidProof("no score registry to verify the borrow limit proof")
            return None
        return self.limit_assessor.borrow_limit(account, proof, now=now)

    def _stamp(self, vault: Vault, proof: ScoreProof | None) -> int | None:
        """Epoch stamp after a risk-increasing action. A proof-free stamp is set once, never extended."""
        if self.assessor is None:
            return vault.expected_epoch_with_proof
        if self.assessor.proof_verifies(proof):
            return self.registry.expected_epoch_with_proof(True)
        if vault.expected_epoch_with_proof is None:
            return self.registry.expected_epoch_with_proof(False)
        return vault.expected_epoch_with_proof

    def _apply_repay(self, account: str, amount: int) -> RepaymentSplit:
        vault = self.get_vault(account)
        debt = self.accrual.denormalize_debt(vault.normalized_borrowed_amount)
        if debt == 0:
            raise NoDebtToRepay(f"vault {vault.account} has no debt")
        if amount > debt:
            raise RepayExceedsDebt(f"repayment {amount} exceeds debt {debt}")

        interest_paid = min(amount, max(debt - vault.principal, 0))
        principal_paid = amount - interest_paid
        if amount == debt:
            normalized = 0
        else:
            normalized = max(vault.normalized_borrowed_amount - self.accrual.normalize_debt(amount), 0)
        principal = max(vault.principal - principal_paid, 0) if normalized > 0 else 0

        pool_interest = mul(interest_paid, self.params.pool_interest_share)
        split = RepaymentSplit(
            amount=amount,
            interest_paid=interest_paid,
            principal_paid=principal_paid,
            pool_interest=pool_interest,
            protocol_fee=interest_paid - pool_interest,
        )

        self.total_normalized_borrowed = checked_sub(
            self.total_normalized_borrowed, vault.normalized_borrowed_amount - normalized
        )
        self.fees_collected = checked_add(self.fees_collected, split.protocol_fee)
        self.vaults[vault.account] = replace(vault, normalized_borrowed_amount=normalized, principal=principal)
        return split

    def _settle_repay(self, split: RepaymentSplit) -> None:
        token = self.params.borrow_token
        if split.pool_interest > 0:
            self.pool.deposit_interest(token, split.pool_interest)
        if split.principal_paid > 0:
            self.pool.return_asset(token, split.principal_paid)
