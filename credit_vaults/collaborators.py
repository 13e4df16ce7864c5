"""External collaborators of the vault ledger and in-memory stand-ins for them."""

from typing import Protocol

from credit_vaults.errors import InvalidPrice
from credit_vaults.fixed_point import checked_add


class LiquidityPool(Protocol):
    """Supplies and absorbs the borrowed asset."""

    def request_asset(self, token: str, amount: int) -> bool: ...

    def return_asset(self, token: str, amount: int) -> None: ...

    def utilization(self, token: str) -> tuple[int, int]:
        """(amount currently lent out, lending limit) for `token`."""
        ...

    def deposit_interest(self, token: str, amount: int) -> None: ...


class PriceOracle(Protocol):
    def current_price(self) -> int:
        """Collateral price in the borrowed asset, 18 decimals."""
        ...


class InMemoryLiquidityPool:
    """Pool with a fixed amount of available liquidity and a lending limit per token."""

    def __init__(self, *, liquidity: dict[str, int] | None = None, limits: dict[str, int] | None = None) -> None:
        self.liquidity: dict[str, int] = dict(liquidity or {})
        self.limits: dict[str, int] = dict(limits or {})
        self.lent: dict[str, int] = {}
        self.interest: dict[str, int] = {}

    def request_asset(self, token: str, amount: int) -> bool:
        available = self.liquidity.get(token, 0)
        if amount > available:
            return False
        self.liquidity[token] = available - amount
        self.lent[token] = self.lent.get(token, 0) + amount
        return True

    def return_asset(self, token: str, amount: int) -> None:
        self.liquidity[token] = checked_add(self.liquidity.get(token, 0), amount)
        # Principal repaid after a liquidation can exceed the tracked loan by rounding.
        self.lent[token] = max(self.lent.get(token, 0) - amount, 0)

    def utilization(self, token: str) -> tuple[int, int]:
        limit = self.limits.get(token)
        if limit is None:
            limit = self.lent.get(token, 0) + self.liquidity.get(token, 0)
        return self.lent.get(token, 0), limit

    def deposit_interest(self, token: str, amount: int) -> None:
        self.interest[token] = checked_add(self.interest.get(token, 0), amount)
        self.liquidity[token] = checked_add(self.liquidity.get(token, 0), amount)


class StaticPriceOracle:
    """Oracle returning whatever price it was last set to."""

    def __init__(self, price: int) -> None:
        self.price = price

    def set_price(self, price: int) -> None:
        self.price = price

    def current_price(self) -> int:
        if self.price <= 0:
            raise InvalidPrice(f"oracle price must be > 0, got {self.price}")
        return self.price
