"""Credit-score gated collateralized debt vaults."""

from typing import NoReturn

__version__ = "0.1.0"


def _entry_point() -> NoReturn:
    """Entry point for the credit-vaults script."""
    import sys

    from credit_vaults.cli import main

    raise SystemExit(main(sys.argv[1:]))


def _clear_cache_entry_point() -> NoReturn:
    """Entry point for clearing the score tree cache."""
    import sys

    from credit_vaults.cache import clear_cache

    if clear_cache():
        print("✅ Cache cleared successfully.", file=sys.stderr)
    else:
        print("ℹ️  Cache directory does not exist (nothing to clear).", file=sys.stderr)
    raise SystemExit(0)
