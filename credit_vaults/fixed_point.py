"""Deterministic 18-decimal fixed-point arithmetic.

Every helper works on plain Python ints scaled by `BASE`. Results are checked against the
uint256 range: a negative result, a value above `MAX_UINT256` or a division by zero raises
`ArithmeticFault` instead of wrapping.
"""

from credit_vaults.constants import BASE, MAX_UINT256
from credit_vaults.errors import ArithmeticFault


def to_uint256(value: int) -> int:
    """Return `value` if it fits in uint256, otherwise raise ArithmeticFault."""
    if value < 0:
        raise ArithmeticFault(f"Arithmetic underflow: {value} < 0")
    if value > MAX_UINT256:
        raise ArithmeticFault(f"Arithmetic overflow: {value} > 2**256 - 1")
    return value


def checked_add(a: int, b: int) -> int:
    return to_uint256(a + b)


def checked_sub(a: int, b: int) -> int:
    return to_uint256(a - b)


def checked_mul(a: int, b: int) -> int:
    return to_uint256(a * b)


def checked_div(a: int, b: int) -> int:
    if b == 0:
        raise ArithmeticFault("Division by zero")
    return to_uint256(a // b)


def ceil_div(numer: int, denom: int) -> int:
    """Ceiling division."""
    if denom == 0:
        raise ArithmeticFault("Division by zero")
    return to_uint256((numer + denom - 1) // denom)


def mul(a: int, b: int) -> int:
    """a * b / BASE, rounded down."""
    return checked_mul(a, b) // BASE


def mul_up(a: int, b: int) -> int:
    """a * b / BASE, rounded up."""
    return ceil_div(checked_mul(a, b), BASE)


def div(a: int, b: int) -> int:
    """a * BASE / b, rounded down."""
    return checked_div(checked_mul(a, BASE), b)


def div_up(a: int, b: int) -> int:
    """a * BASE / b, rounded up."""
    return ceil_div(checked_mul(a, BASE), b)


def scale_to_base(amount: int, decimals: int) -> int:
    """Convert an amount with `decimals` decimals to 18 decimals."""
    if decimals > 18:
        return checked_div(amount, 10 ** (decimals - 18))
    return checked_mul(amount, 10 ** (18 - decimals))


def scale_from_base(amount: int, decimals: int) -> int:
    """Convert an 18-decimal amount to `decimals` decimals, rounded down."""
    if decimals > 18:
        return checked_mul(amount, 10 ** (decimals - 18))
    return checked_div(amount, 10 ** (18 - decimals))
