"""Constants and configuration for the credit vault engine."""

# All ratios, prices, rates and amounts of the borrowed asset are 18-decimal fixed point.
BASE = 10**18

# Largest value representable on-chain (uint256). Anything beyond is an arithmetic fault.
MAX_UINT256 = 2**256 - 1

SECONDS_PER_DAY = 24 * 60 * 60
SECONDS_PER_YEAR = 365 * SECONDS_PER_DAY

# Upper bound for the per-second interest rate (roughly 100% per year under linear accrual).
MAX_INTEREST_RATE = BASE // SECONDS_PER_YEAR + 1

# Collateralization defaults (no score -> high ratio, max score -> low ratio).
DEFAULT_HIGH_C_RATIO = 2 * BASE
DEFAULT_LOW_C_RATIO = BASE

DEFAULT_COLLATERAL_DECIMALS = 18

DEFAULT_TOTAL_BORROW_LIMIT = 10_000 * BASE
DEFAULT_VAULT_BORROW_MINIMUM = 0
DEFAULT_VAULT_BORROW_MAXIMUM = 5_000 * BASE

DEFAULT_LIQUIDATOR_DISCOUNT = BASE // 10  # 10%
DEFAULT_PROTOCOL_LIQUIDATION_FEE = BASE // 10  # 10% of liquidator profit
DEFAULT_BORROW_FEE = 0
DEFAULT_POOL_INTEREST_SHARE = BASE // 2  # 50% of interest goes back to the pool

DEFAULT_MAX_SCORE = 1000
DEFAULT_ROOT_DELAY_DURATION = SECONDS_PER_DAY

# Score namespaces a proof can be issued for.
DEFAULT_PROOF_PROTOCOL = "arcx.credit"
BORROW_LIMIT_PROOF_PROTOCOL = "arcx.creditLimit"

# Merkle leaf layout: keccak256(abi.encodePacked(account, protocol, score)).
SCORE_LEAF_TYPES = ("address", "bytes32", "uint256")

EMPTY_ROOT = "0x" + "00" * 32

# Epoch gating: a proof-free interaction may reuse a stored score for this many epochs.
PROOF_FREE_EPOCH_WINDOW = 2

# Identifier of the stable asset requested from the liquidity pool.
DEFAULT_BORROW_TOKEN = "STABLEx"

DEFAULT_IPFS_GATEWAYS = (
    "https://ipfs.io/ipfs/",
    "https://cloudflare-ipfs.com/ipfs/",
    "https://gateway.pinata.cloud/ipfs/",
)
IPFS_GATEWAYS_ENV = "CREDIT_VAULTS_IPFS_GATEWAYS"
DEFAULT_TIMEOUT = 30

SCORE_TREE_FORMAT = "passport-scores-v1"

# Cache configuration
CACHE_DIR_NAME = ".credit_vaults_cache"
CACHE_VERSION = "1"  # Increment to invalidate all caches
