"""Formatting and conversion utilities."""

from decimal import Decimal

from credit_vaults.constants import BASE


def as_int(value, *, default: int = 0) -> int:
    """Convert value to int, handling various types."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        v = value.strip()
        if v.startswith("0x"):
            return int(v, 16)
        return int(v)
    return int(value)


def parse_units(value, decimals: int = 18) -> int:
    """Parse a human decimal amount ("1.5", 2) into an integer with `decimals` decimals."""
    return int(Decimal(str(value).strip()) * (Decimal(10) ** decimals))


def normalize_hex_str(value) -> str:
    """Normalize hex string to 0x-prefixed lowercase format."""
    if isinstance(value, (bytes, bytearray)):
        # HexBytes.hex() prefixes 0x on some versions; plain bytes never does.
        return f"0x{bytes(value).hex()}"
    if hasattr(value, "hex") and not isinstance(value, str):
        hex_str = value.hex()
        return hex_str.lower() if hex_str.startswith("0x") else f"0x{hex_str}".lower()
    s = str(value).strip()
    if s.lower().startswith("0x"):
        return f"0x{s[2:]}".lower()
    return f"0x{s}".lower()


def format_amount(value: int, *, decimals: int = 18, places: int = 4, symbol: str = "") -> str:
    """Format a fixed-point amount."""
    amount = Decimal(value) / (Decimal(10) ** decimals)
    s = f"{amount:.{places}f}".rstrip("0").rstrip(".")
    return f"{s} {symbol}" if symbol else s


def format_ratio(ratio: int | None) -> str:
    """Format an 18-decimal ratio as a percentage."""
    if ratio is None:
        return "∞"
    return f"{(Decimal(ratio) * 100 / Decimal(BASE)):.2f}%"


def format_root(root: str, *, width: int = 10) -> str:
    """Shorten a bytes32 root for display."""
    if len(root) <= width + 6:
        return root
    return f"{root[:width]}...{root[-6:]}"


def ratio_status(ratio: int | None, required: int) -> tuple[str, str]:
    """Returns (emoji, status) for a vault's collateral ratio."""
    if ratio is None:
        return "💤", "No debt"
    if ratio < required:
        return "🔴", "Liquidatable"
    if ratio < required + required // 10:
        return "🟡", "Near threshold"
    return "🟢", "Healthy"
