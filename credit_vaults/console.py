"""Console output formatting."""

from credit_vaults.formatters import format_amount, format_ratio, format_root, ratio_status
from credit_vaults.ledger import VaultLedger
from credit_vaults.models import ScoreProof, VaultAggregates
from credit_vaults.reports import compute_aggregates


def print_vaults_section(ledger: VaultLedger) -> None:
    """Print one block per vault, sorted by account."""
    p = ledger.params
    price = ledger.oracle.current_price()
    print("=" * 70)
    print("🏦 CREDIT VAULTS")
    print(f"   🕐 t={ledger.accrual.last_update_time}  •  price={format_amount(price)}  •  index={format_amount(ledger.accrual.current_borrow_index, places=8)}")
    print("=" * 70)

    if not ledger.vaults:
        print("\nℹ️ No vaults.")
        return

    for account in sorted(ledger.vaults):
        v = ledger.vaults[account]
        debt = ledger.actual_debt(account)
        ratio = ledger.collateral_ratio(account)
        required = ledger.required_ratio(account)
        emoji, status = ratio_status(ratio, required)
        if v.is_empty:
            emoji, status = "⚪", "Closed"
        elif v.collateral_amount == 0:
            emoji, status = "⚫", "Bad debt (no collateral left)"

        print(f"\n{emoji} Vault: {account}")
        print(f"   Status: {status}")
        print("   " + "─" * 50)
        print(f"   💰 Collateral: {format_amount(v.collateral_amount, decimals=p.collateral_decimals)}")
        print(f"   💸 Debt:       {format_amount(debt, symbol=p.borrow_token)}")
        print(f"      • Principal:  {format_amount(v.principal, symbol=p.borrow_token)}")
        print(f"      • Interest:   {format_amount(max(debt - v.principal, 0), symbol=p.borrow_token)}")
        print(f"   📐 Ratio: {format_ratio(ratio)} (required {format_ratio(required)})")
        if v.expected_epoch_with_proof is not None:
            print(f"   🧾 Proof-free until epoch {v.expected_epoch_with_proof}")


def print_aggregates_section(agg: VaultAggregates, *, borrow_token: str, collateral_decimals: int) -> None:
    print("\n" + "=" * 70)
    print("🧾 AGGREGATES (all vaults)")
    print("=" * 70)
    print(
        f"🏦 Vaults: {agg.vaults_total} total  •  {agg.vaults_open} open  •  {agg.vaults_with_debt} with debt"
    )
    if agg.vaults_undercollateralized:
        print(f"🔴 Liquidatable: {agg.vaults_undercollateralized}")
    print(f"💰 Total collateral: {format_amount(agg.total_collateral, decimals=collateral_decimals)}")
    print(f"💸 Total borrowed:   {format_amount(agg.total_borrowed, symbol=borrow_token)}")
    print(f"   • Principal:      {format_amount(agg.total_principal, symbol=borrow_token)}")
    print(f"🏛️ Protocol fees:    {format_amount(agg.fees_collected, symbol=borrow_token)}")
    if agg.collateral_fees_collected:
        print(f"   • From liquidations: {format_amount(agg.collateral_fees_collected, decimals=collateral_decimals)} collateral")


def print_registry_section(ledger: VaultLedger) -> None:
    registry = ledger.registry
    if registry is None:
        return
    print("\n" + "=" * 70)
    print("🌳 SCORE REGISTRY")
    print("=" * 70)
    state = "⏸️ paused" if registry.paused else "▶️ active"
    print(f"   Epoch {registry.current_epoch}  •  {state}")
    print(f"   Current root:  {format_root(registry.current_root)}")
    print(f"   Upcoming root: {format_root(registry.upcoming_root)}")
    print(f"   Next update after t={registry.last_root_update_at + registry.root_delay_duration}")


def print_ledger_report(ledger: VaultLedger) -> None:
    """Print vaults, registry state and aggregates."""
    print_vaults_section(ledger)
    print_registry_section(ledger)
    print_aggregates_section(
        compute_aggregates(ledger),
        borrow_token=ledger.params.borrow_token,
        collateral_decimals=ledger.params.collateral_decimals,
    )


def print_score_tree(root: str, proofs: list[ScoreProof]) -> None:
    """Print a score tree's root and each account's proof."""
    print(f"🌳 Root: {root}")
    print(f"   {len(proofs)} score(s)")
    for proof in proofs:
        print(f"\n🔹 {proof.account}  •  {proof.protocol}  •  score {proof.score}")
        for sibling in proof.merkle_proof:
            print(f"   {sibling}")
