"""Global borrow index accrual.

A single index is shared by every vault. Vault debt is stored in normalized (index-1.0)
units, so advancing the index re-prices all vaults at once.

Accrual is simple per-second linear growth: over `elapsed` seconds the index grows by
`interest_rate * elapsed`. `interest_rate` is calibrated with `rate_for_annual_percentage`,
so one year at a 5% rate multiplies debt by exactly 1.05 (up to one unit of rounding in the
rate). Because growth is additive, advancing in several steps gives the same index as
advancing once.
"""

from credit_vaults.constants import BASE, MAX_INTEREST_RATE, SECONDS_PER_YEAR
from credit_vaults.errors import ConfigurationError
from credit_vaults.fixed_point import checked_add, checked_mul, div_up, mul
from credit_vaults.models import InterestState


def rate_for_annual_percentage(annual_rate: int) -> int:
    """Per-second rate for an 18-decimal annual rate (5% -> 0.05 * BASE)."""
    return annual_rate // SECONDS_PER_YEAR


def accrue(state: InterestState, now: int) -> InterestState:
    """Return `state` advanced to `now`. Pure; a non-increasing `now` returns `state` unchanged."""
    if now <= state.last_update_time:
        return state
    elapsed = now - state.last_update_time
    borrow_index = checked_add(state.borrow_index, checked_mul(state.interest_rate, elapsed))
    return InterestState(borrow_index=borrow_index, interest_rate=state.interest_rate, last_update_time=now)


class InterestAccrual:
    """Holds the global interest state and converts between normalized and actual debt."""

    def __init__(self, *, interest_rate: int = 0, start_time: int = 0) -> None:
        _check_rate(interest_rate)
        self.state = InterestState(borrow_index=0, interest_rate=interest_rate, last_update_time=start_time)

    @property
    def borrow_index(self) -> int:
        return self.state.borrow_index

    @property
    def interest_rate(self) -> int:
        return self.state.interest_rate

    @property
    def last_update_time(self) -> int:
        return self.state.last_update_time

    @property
    def current_borrow_index(self) -> int:
        """Multiplier applied to normalized debt. Reading does not advance the index."""
        return BASE + self.state.borrow_index

    def advance(self, now: int) -> None:
        """Bring the index up to `now`. Safe to call repeatedly with the same timestamp."""
        self.state = accrue(self.state, now)

    def set_interest_rate(self, interest_rate: int, now: int) -> None:
        """Accrue under the old rate up to `now`, then switch to `interest_rate`."""
        _check_rate(interest_rate)
        self.advance(now)
        self.state = InterestState(
            borrow_index=self.state.borrow_index,
            interest_rate=interest_rate,
            last_update_time=max(self.state.last_update_time, now),
        )

    def normalize_debt(self, amount: int) -> int:
        """Actual amount -> normalized units, rounded up (debt credited against the user)."""
        return div_up(amount, self.current_borrow_index)

    def denormalize_debt(self, normalized: int) -> int:
        """Normalized units -> actual amount, rounded down (amounts reported or paid out)."""
        return mul(normalized, self.current_borrow_index)


def _check_rate(interest_rate: int) -> None:
    if interest_rate < 0 or interest_rate > MAX_INTEREST_RATE:
        raise ConfigurationError(f"Interest rate {interest_rate} outside [0, {MAX_INTEREST_RATE}]")
