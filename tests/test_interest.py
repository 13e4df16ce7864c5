import pytest

from credit_vaults.constants import BASE, MAX_INTEREST_RATE, MAX_UINT256, SECONDS_PER_YEAR
from credit_vaults.errors import ArithmeticFault, ConfigurationError, VaultEngineError
from credit_vaults.fixed_point import (
    ceil_div,
    checked_add,
    checked_sub,
    div,
    div_up,
    mul,
    mul_up,
    scale_from_base,
    scale_to_base,
)
from credit_vaults.interest import InterestAccrual, accrue, rate_for_annual_percentage
from credit_vaults.models import InterestState

FIVE_PERCENT = rate_for_annual_percentage(5 * BASE // 100)


def test_fixed_point_rounding_directions():
    assert mul(2 * BASE, 3 * BASE) == 6 * BASE
    assert mul(1, 1) == 0
    assert mul_up(1, 1) == 1
    assert div(1, 3 * BASE) == 0
    assert div(BASE, 3 * BASE) == BASE // 3
    assert div_up(BASE, 3 * BASE) == BASE // 3 + 1
    assert ceil_div(7, 7) == 1
    assert ceil_div(8, 7) == 2


@pytest.mark.parametrize(
    "call",
    [
        lambda: checked_sub(1, 2),
        lambda: checked_add(MAX_UINT256, 1),
        lambda: div(1, 0),
        lambda: ceil_div(1, 0),
        lambda: mul(MAX_UINT256, 2),
    ],
)
def test_fixed_point_faults_instead_of_wrapping(call):
    with pytest.raises(ArithmeticFault):
        call()


def test_arithmetic_fault_is_not_a_business_error():
    assert not issubclass(ArithmeticFault, VaultEngineError)


def test_scale_between_decimals():
    assert scale_to_base(1_000_000, 6) == BASE
    assert scale_from_base(BASE + 1, 6) == 1_000_000
    assert scale_from_base(BASE - 1, 6) == 999_999
    assert scale_to_base(10**20, 20) == BASE
    assert scale_from_base(BASE, 20) == 10**20


def test_rate_for_annual_percentage():
    assert FIVE_PERCENT == 1585489599
    assert rate_for_annual_percentage(0) == 0


def test_accrue_is_pure_and_ignores_past_timestamps():
    state = InterestState(borrow_index=0, interest_rate=10, last_update_time=100)
    assert accrue(state, 100) is state
    assert accrue(state, 50) is state
    assert accrue(state, 110) == InterestState(borrow_index=100, interest_rate=10, last_update_time=110)
    assert state.borrow_index == 0


def test_advance_is_idempotent_and_path_independent():
    once = InterestAccrual(interest_rate=FIVE_PERCENT)
    once.advance(10_000)
    once.advance(10_000)

    stepped = InterestAccrual(interest_rate=FIVE_PERCENT)
    for t in range(1_000, 10_001, 1_000):
        stepped.advance(t)

    assert once.borrow_index == stepped.borrow_index == FIVE_PERCENT * 10_000
    assert once.last_update_time == 10_000


def test_reading_does_not_advance():
    accrual = InterestAccrual(interest_rate=FIVE_PERCENT)
    assert accrual.current_borrow_index == BASE
    assert accrual.denormalize_debt(BASE) == BASE
    assert accrual.last_update_time == 0


def test_one_year_at_five_percent():
    accrual = InterestAccrual(interest_rate=FIVE_PERCENT)
    normalized = accrual.normalize_debt(500 * BASE)
    assert normalized == 500 * BASE

    accrual.advance(SECONDS_PER_YEAR)
    debt = accrual.denormalize_debt(normalized)
    assert debt <= 525 * BASE
    assert 525 * BASE - debt < 10**10


def test_rate_change_accrues_old_rate_first():
    accrual = InterestAccrual(interest_rate=100)
    accrual.set_interest_rate(300, 50)
    assert accrual.borrow_index == 5_000
    assert accrual.interest_rate == 300

    accrual.advance(60)
    assert accrual.borrow_index == 5_000 + 3_000


def test_normalize_rounds_up_denormalize_rounds_down():
    accrual = InterestAccrual(interest_rate=1)
    accrual.advance(1)
    # index is BASE + 1
    assert accrual.normalize_debt(1) == 1
    assert accrual.denormalize_debt(1) == 1
    assert accrual.normalize_debt(BASE) == BASE
    assert accrual.denormalize_debt(BASE) == BASE + 1


@pytest.mark.parametrize("rate", [-1, MAX_INTEREST_RATE + 1])
def test_interest_rate_bounds(rate):
    with pytest.raises(ConfigurationError):
        InterestAccrual(interest_rate=rate)
    accrual = InterestAccrual()
    with pytest.raises(ConfigurationError):
        accrual.set_interest_rate(rate, 10)
    assert accrual.interest_rate == 0
