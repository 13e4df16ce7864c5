"""Protocol parameters for a vault engine instance."""

from dataclasses import dataclass, fields
from typing import Any

from credit_vaults.constants import (
    BORROW_LIMIT_PROOF_PROTOCOL,
    DEFAULT_BORROW_FEE,
    DEFAULT_BORROW_TOKEN,
    DEFAULT_COLLATERAL_DECIMALS,
    DEFAULT_HIGH_C_RATIO,
    DEFAULT_LIQUIDATOR_DISCOUNT,
    DEFAULT_LOW_C_RATIO,
    DEFAULT_POOL_INTEREST_SHARE,
    DEFAULT_PROOF_PROTOCOL,
    DEFAULT_PROTOCOL_LIQUIDATION_FEE,
    DEFAULT_TOTAL_BORROW_LIMIT,
    DEFAULT_VAULT_BORROW_MAXIMUM,
    DEFAULT_VAULT_BORROW_MINIMUM,
)
from credit_vaults.errors import ConfigurationError
from credit_vaults.formatters import as_int, parse_units
from credit_vaults.interest import rate_for_annual_percentage

# Fields given as human decimals in config files ("2" -> 2 * BASE).
_DECIMAL_FIELDS = (
    "low_collateral_ratio",
    "high_collateral_ratio",
    "liquidator_discount",
    "protocol_liquidation_fee",
    "borrow_fee",
    "pool_interest_share",
    "vault_borrow_minimum",
    "vault_borrow_maximum",
    "total_borrow_limit",
)


@dataclass(frozen=True)
class CoreParameters:
    """Owner-controlled configuration, read-only to the accounting algorithms."""

    low_collateral_ratio: int = DEFAULT_LOW_C_RATIO
    high_collateral_ratio: int = DEFAULT_HIGH_C_RATIO
    liquidator_discount: int = DEFAULT_LIQUIDATOR_DISCOUNT
    protocol_liquidation_fee: int = DEFAULT_PROTOCOL_LIQUIDATION_FEE
    borrow_fee: int = DEFAULT_BORROW_FEE
    pool_interest_share: int = DEFAULT_POOL_INTEREST_SHARE
    vault_borrow_minimum: int = DEFAULT_VAULT_BORROW_MINIMUM
    vault_borrow_maximum: int = DEFAULT_VAULT_BORROW_MAXIMUM
    total_borrow_limit: int = DEFAULT_TOTAL_BORROW_LIMIT
    collateral_decimals: int = DEFAULT_COLLATERAL_DECIMALS
    interest_rate: int = 0
    proof_protocol: str = DEFAULT_PROOF_PROTOCOL
    borrow_token: str = DEFAULT_BORROW_TOKEN
    # Namespace of the scores that cap how much an account may owe.
    borrow_limit_proof_protocol: str = BORROW_LIMIT_PROOF_PROTOCOL
    borrow_limit_proof_required: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CoreParameters":
        """
        Build parameters from a JSON-style mapping.

        Ratios, fees and limits are human decimals ("1.5" means 150%, "5000" means 5000 units).
        `interest_rate` is the raw per-second rate; `annual_interest_rate` ("0.05") is converted.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known - {"annual_interest_rate"}
        if unknown:
            raise ConfigurationError(f"Unknown parameter(s): {', '.join(sorted(unknown))}")

        kwargs: dict[str, Any] = {}
        for name, value in data.items():
            if name in _DECIMAL_FIELDS:
                kwargs[name] = parse_units(value)
            elif name in ("collateral_decimals", "interest_rate"):
                kwargs[name] = as_int(value)
            elif name in ("proof_protocol", "borrow_token", "borrow_limit_proof_protocol"):
                kwargs[name] = str(value)
            elif name == "borrow_limit_proof_required":
                kwargs[name] = value.strip().lower() in ("1", "true", "yes") if isinstance(value, str) else bool(value)

        if "annual_interest_rate" in data:
            if "interest_rate" in data:
                raise ConfigurationError("Specify either interest_rate or annual_interest_rate, not both")
            kwargs["interest_rate"] = rate_for_annual_percentage(parse_units(data["annual_interest_rate"]))

        return cls(**kwargs)
