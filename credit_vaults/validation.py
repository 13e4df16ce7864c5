"""Validation of protocol parameters, score tree dumps and ledger aggregates."""

from collections.abc import Iterable
from typing import Any

from credit_vaults.config import CoreParameters
from credit_vaults.constants import BASE, MAX_INTEREST_RATE, SCORE_TREE_FORMAT
from credit_vaults.errors import ConfigurationError
from credit_vaults.formatters import as_int, normalize_hex_str
from credit_vaults.merkle import PassportScoreTree, parse_scores
from credit_vaults.models import Vault


def _report(issues: list[str], msg: str, warn_only: bool, exc: type[Exception] = ValueError) -> None:
    issues.append(msg)
    if not warn_only:
        raise exc(msg)


def validate_core_parameters(params: CoreParameters, *, warn_only: bool = False) -> list[str]:
    """
    Validate parameter consistency.

    Returns list of issues. If warn_only=False, raises ConfigurationError on the first one.
    """
    issues: list[str] = []

    def check(ok: bool, msg: str) -> None:
        if not ok:
            _report(issues, msg, warn_only, ConfigurationError)

    p = params
    check(p.low_collateral_ratio >= BASE, f"low collateral ratio {p.low_collateral_ratio} < 1.0")
    check(
        p.high_collateral_ratio >= p.low_collateral_ratio,
        f"high collateral ratio {p.high_collateral_ratio} < low collateral ratio {p.low_collateral_ratio}",
    )
    check(
        p.liquidator_discount + p.protocol_liquidation_fee <= BASE,
        f"liquidator discount + protocol liquidation fee > 1.0 "
        f"({p.liquidator_discount} + {p.protocol_liquidation_fee})",
    )
    check(p.borrow_fee <= BASE, f"borrow fee {p.borrow_fee} > 1.0")
    check(p.pool_interest_share <= BASE, f"pool interest share {p.pool_interest_share} > 1.0")
    check(
        p.vault_borrow_minimum <= p.vault_borrow_maximum,
        f"vault borrow minimum {p.vault_borrow_minimum} > maximum {p.vault_borrow_maximum}",
    )
    check(
        p.vault_borrow_maximum <= p.total_borrow_limit,
        f"vault borrow maximum {p.vault_borrow_maximum} > total borrow limit {p.total_borrow_limit}",
    )
    check(0 <= p.collateral_decimals <= 77, f"collateral decimals {p.collateral_decimals} out of range")
    check(0 <= p.interest_rate <= MAX_INTEREST_RATE, f"interest rate {p.interest_rate} outside [0, {MAX_INTEREST_RATE}]")
    check(bool(p.proof_protocol), "proof protocol must not be empty")
    check(
        p.borrow_limit_proof_protocol != p.proof_protocol,
        f"borrow limit proof protocol must differ from the credit proof protocol ({p.proof_protocol!r})",
    )
    return issues


def validate_score_tree_dump(
    dump: dict[str, Any],
    *,
    expected_root: str | None = None,
    max_score: int | None = None,
    bounded_protocol: str | None = None,
    warn_only: bool = True,
) -> list[str]:
    """
    Validate a published score tree dump (format, root, scores).

    The root is rebuilt from the dumped scores. `max_score` applies to every score, or only to
    those in `bounded_protocol` when given (borrow limit scores are amounts, not scores).

    Returns list of warnings. By default, only warns.
    """
    issues: list[str] = []

    fmt = dump.get("format")
    if fmt and fmt != SCORE_TREE_FORMAT:
        _report(issues, f"Unexpected score tree format: {fmt} (expected {SCORE_TREE_FORMAT})", warn_only)

    values = dump.get("values") or []
    if not values:
        _report(issues, "Score tree dump has no values", warn_only)
        return issues

    try:
        scores = parse_scores(values)
        rebuilt = PassportScoreTree(scores).get_hex_root()
    except (KeyError, ValueError) as e:
        _report(issues, f"Score tree dump is malformed: {e}", warn_only)
        return issues

    dumped_root = dump.get("root")
    if dumped_root and normalize_hex_str(dumped_root) != rebuilt:
        _report(issues, f"Tree root mismatch: dump={dumped_root}, rebuilt={rebuilt}", warn_only)

    if expected_root is not None and normalize_hex_str(expected_root) != rebuilt:
        _report(issues, f"Tree root mismatch: rebuilt={rebuilt}, expected={expected_root}", warn_only)

    if max_score is not None:
        for s in scores:
            if bounded_protocol is not None and s.protocol != bounded_protocol:
                continue
            if as_int(s.score) > max_score:
                _report(issues, f"Score {s.score} for {s.account} exceeds max score {max_score}", warn_only)

    return issues


def validate_ledger_totals(
    vaults: Iterable[Vault],
    *,
    total_collateral: int,
    total_normalized_borrowed: int,
    warn_only: bool = True,
) -> list[str]:
    """
    Check that the running aggregates match the sum over vaults.

    Returns list of warnings. By default, only warns (doesn't raise).
    """
    issues: list[str] = []
    vaults = list(vaults)

    collateral_sum = sum(v.collateral_amount for v in vaults)
    if collateral_sum != total_collateral:
        _report(
            issues,
            f"total collateral drift: aggregate={total_collateral}, sum over vaults={collateral_sum}",
            warn_only,
        )

    normalized_sum = sum(v.normalized_borrowed_amount for v in vaults)
    if normalized_sum != total_normalized_borrowed:
        _report(
            issues,
            f"total normalized debt drift: aggregate={total_normalized_borrowed}, sum over vaults={normalized_sum}",
            warn_only,
        )

    for v in vaults:
        if v.normalized_borrowed_amount == 0 and v.principal != 0:
            _report(issues, f"Vault {v.account}: principal {v.principal} left without debt", warn_only)

    return issues
