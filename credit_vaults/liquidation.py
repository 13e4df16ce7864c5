"""Liquidation amounts for an undercollateralized vault.

The liquidator buys collateral at `price * (1 - discount)`. The engine seizes enough
collateral to bring the vault back to its required ratio *at that discounted price*, padded
once more by the discount, so the vault ends strictly above its ratio at the oracle price.
A vault too far gone for that surrenders all of its collateral; whatever debt the seized
collateral does not cover stays on the vault as bad debt and cannot be liquidated again.
"""

from credit_vaults.constants import BASE
from credit_vaults.errors import InvalidPrice, NothingToSeize, PositionHealthy
from credit_vaults.fixed_point import checked_sub, div, mul, scale_from_base, scale_to_base
from credit_vaults.models import LiquidationInfo


def is_collateralized(collateral: int, debt: int, price: int, ratio: int, *, collateral_decimals: int = 18) -> bool:
    """collateral * price >= debt * ratio, with collateral in native decimals."""
    return mul(scale_to_base(collateral, collateral_decimals), price) >= mul(debt, ratio)


def collateral_ratio(collateral: int, debt: int, price: int, *, collateral_decimals: int = 18) -> int | None:
    """Current collateral ratio (18 decimals), or None for a vault without debt."""
    if debt == 0:
        return None
    return div(mul(scale_to_base(collateral, collateral_decimals), price), debt)


def calculate_liquidation(
    collateral_amount: int,
    debt_amount: int,
    current_price: int,
    liquidator_discount: int,
    required_ratio: int,
    protocol_liquidation_fee: int,
    *,
    collateral_decimals: int = 18,
) -> LiquidationInfo:
    """Compute the collateral seized and debt cancelled by liquidating one vault."""
    if current_price <= 0:
        raise InvalidPrice("price must be > 0")
    if is_collateralized(
        collateral_amount, debt_amount, current_price, required_ratio, collateral_decimals=collateral_decimals
    ):
        raise PositionHealthy("vault is collateralized")
    if collateral_amount == 0:
        raise NothingToSeize("vault has no collateral left, its remaining debt is bad debt")

    collateral = scale_to_base(collateral_amount, collateral_decimals)
    liquidation_price = mul(current_price, checked_sub(BASE, liquidator_discount))
    if liquidation_price == 0:
        raise InvalidPrice("liquidation price rounds to zero")

    collateral_needed = div(mul(debt_amount, required_ratio), liquidation_price)
    deficit = max(collateral_needed - collateral, 0)
    collateral_to_seize = min(mul(deficit, BASE + liquidator_discount), collateral)

    # Seize whole native units so the cancelled debt matches what actually moves.
    seized_native = scale_from_base(collateral_to_seize, collateral_decimals)
    if seized_native == 0:
        raise NothingToSeize("seizure rounds to zero collateral units at this price")
    collateral_to_seize = scale_to_base(seized_native, collateral_decimals)

    debt_to_cancel = min(mul(collateral_to_seize, liquidation_price), debt_amount)

    # Profit = seized collateral above the fair value of the cancelled debt.
    fair_collateral = div(debt_to_cancel, current_price)
    profit = max(collateral_to_seize - fair_collateral, 0)
    collateral_to_protocol = scale_from_base(mul(profit, protocol_liquidation_fee), collateral_decimals)

    return LiquidationInfo(
        liquidation_price=liquidation_price,
        collateral_to_seize=seized_native,
        debt_to_cancel=debt_to_cancel,
        new_collateral_amount=checked_sub(collateral_amount, seized_native),
        new_debt_amount=checked_sub(debt_amount, debt_to_cancel),
        collateral_to_protocol=collateral_to_protocol,
    )
