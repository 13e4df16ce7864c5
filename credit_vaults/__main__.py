"""Allow running the package as a module: python -m credit_vaults"""

import sys

from credit_vaults.cli import main

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
