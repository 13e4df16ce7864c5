"""Ledger aggregation."""

from credit_vaults.ledger import VaultLedger
from credit_vaults.models import VaultAggregates


def compute_aggregates(ledger: VaultLedger) -> VaultAggregates:
    """Compute aggregated metrics across all vaults."""
    vaults_total = len(ledger.vaults)
    vaults_open = 0
    vaults_with_debt = 0
    vaults_undercollateralized = 0
    total_collateral = 0
    total_normalized_borrowed = 0
    total_principal = 0

    for v in ledger.vaults.values():
        total_collateral += v.collateral_amount
        total_normalized_borrowed += v.normalized_borrowed_amount
        total_principal += v.principal

        if v.is_empty:
            continue
        vaults_open += 1
        if v.normalized_borrowed_amount > 0:
            vaults_with_debt += 1
            if not ledger.is_collateralized(v.account):
                vaults_undercollateralized += 1

    return VaultAggregates(
        vaults_total=vaults_total,
        vaults_open=vaults_open,
        vaults_with_debt=vaults_with_debt,
        vaults_undercollateralized=vaults_undercollateralized,
        total_collateral=total_collateral,
        total_normalized_borrowed=total_normalized_borrowed,
        total_borrowed=ledger.accrual.denormalize_debt(total_normalized_borrowed),
        total_principal=total_principal,
        fees_collected=ledger.fees_collected,
        collateral_fees_collected=ledger.collateral_fees_collected,
    )
