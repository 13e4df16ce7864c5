"""Error taxonomy for the vault engine.

Business-rule failures derive from `VaultEngineError`. Numeric faults derive from
`ArithmeticFault`, which is intentionally kept outside that hierarchy so callers can tell
a rejected operation apart from a broken computation.
"""


class VaultEngineError(Exception):
    """Base class for rejected operations. State is left unchanged when raised."""


class InvalidProof(VaultEngineError):
    """Merkle verification failed or the proof cannot be used for this action."""


class InvalidCaller(InvalidProof):
    """A score proof was presented on behalf of another account."""


class Undercollateralized(VaultEngineError):
    """Borrow or withdraw would leave the vault below its required ratio."""


class PositionHealthy(VaultEngineError):
    """Liquidation attempted on a vault that satisfies its required ratio."""


class NothingToSeize(VaultEngineError):
    """The vault is undercollateralized but liquidation would move no collateral.

    An emptied vault keeps its leftover debt as bad debt; only a repayment clears it.
    """


class NoDebtToRepay(VaultEngineError):
    """The vault has no debt to repay."""


class RepayExceedsDebt(NoDebtToRepay):
    """Repayment larger than the vault's actual debt."""


class LimitViolation(VaultEngineError):
    """Vault or global borrow limits would be exceeded."""


class InsufficientCollateral(VaultEngineError):
    """Withdrawal larger than the collateral held in the vault."""


class StaleRootUpdate(VaultEngineError):
    """Root update attempted before the delay period elapsed."""


class EmptyRoot(VaultEngineError):
    """The zero root was submitted."""


class Paused(VaultEngineError):
    """The score registry is paused, or an owner update was attempted while it is not."""


class Unauthorized(VaultEngineError):
    """Caller does not hold the role required for the action."""


class InvalidPrice(VaultEngineError):
    """The oracle reported an unusable price."""


class AssetTransferFailed(VaultEngineError):
    """The liquidity pool refused to release the borrowed asset."""


class ConfigurationError(VaultEngineError, ValueError):
    """Inconsistent protocol parameters."""


class ArithmeticFault(Exception):
    """Overflow, underflow or division by zero in fixed-point arithmetic."""
