"""Fixed protocol parameters for the harvest cycle. DO NOT CHANGE."""

from decimal import Decimal

# Base currency
LAMPORTS_PER_SOL: int = 1_000_000_000

# Cycle geometry
CYCLE_MINUTES: int = 5
CYCLES_PER_EPOCH: int = (24 * 60) // CYCLE_MINUTES  # 288
EPOCH_RETENTION_DAYS: int = 30

# Tax bookkeeping
TAX_HISTORY_CAP: int = 100

# Proceeds split (percent of swap output)
HOLDER_SHARE_PERCENT: int = 75  # treasury receives the remainder (25%)

# Swap
DEFAULT_SLIPPAGE_BPS: int = 200  # 2%
BPS_DENOMINATOR: int = 10_000
POOL_FEE_NUMERATOR: int = 9_975  # 0.25% venue trading fee
MIN_SOL_OUTPUT_LAMPORTS: int = 1_000_000  # 0.001 SOL
LIQUIDITY_RESERVE_MULTIPLE: int = 2
COMPUTE_UNIT_LIMIT: int = 400_000
COMPUTE_UNIT_PRICE_MICRO_LAMPORTS: int = 5_000
SEND_ATTEMPTS: int = 3
SEND_RETRY_DELAY: float = 2.0  # seconds
CONFIRM_TIMEOUT: float = 60.0  # seconds

# Payouts
MIN_SOL_PAYOUT_LAMPORTS: int = 100_000  # 0.0001 SOL dust floor
TRANSFER_FEE_BUFFER_LAMPORTS: int = 5_000

# Caches (seconds)
PRICE_CACHE_TTL: float = 300
POOL_CACHE_TTL: float = 60
HOLDER_CACHE_TTL: float = 60
MINT_CACHE_TTL: float = 60
FETCH_COOLDOWN: float = 30
ELIGIBILITY_REFRESH_SECONDS: float = 3600

# Rate-limit handling
LOG_RATE_LIMIT_MAX: int = 3  # emissions per message per window
LOG_RATE_LIMIT_WINDOW: float = 60
BREAKER_FAILURE_THRESHOLD: int = 5
BREAKER_RESET_SECONDS: float = 300

# Reference price fallback
DEFAULT_SOL_PRICE_USD: Decimal = Decimal("100")

# Policy defaults (overridable from the environment)
REWARD_VALUE_MODE_DEFAULT: str = "TOKEN"
MIN_PAYOUT_TOKEN_DEFAULT: int = 60
MIN_PAYOUT_USD_DEFAULT: Decimal = Decimal("0.001")
MIN_TAX_THRESHOLD_TOKEN_DEFAULT: int = 5  # 20000 for production
MIN_TAX_THRESHOLD_USD_DEFAULT: Decimal = Decimal("5")
MAX_HARVEST_TOKEN_DEFAULT: int = 12_000_000
MAX_HARVEST_USD_DEFAULT: Decimal = Decimal("2000")
BATCH_COUNT_DEFAULT: int = 4
BATCH_DELAY_TOKEN_MODE_DEFAULT: float = 10.0  # seconds
BATCH_DELAY_USD_MODE_DEFAULT: float = 30.0  # seconds

# Program IDs
TOKEN_PROGRAM_ID: str = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID: str = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
MEMO_PROGRAM_ID: str = "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr"
ASSOCIATED_TOKEN_PROGRAM_ID: str = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
SYSTEM_PROGRAM_ID: str = "11111111111111111111111111111111"
WSOL_MINT: str = "So11111111111111111111111111111111111111112"
RAYDIUM_AMM_V4_PROGRAM_ID: str = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"
RAYDIUM_CPMM_PROGRAM_ID: str = "CPMMoo8L3F4NbTegBCKVNunggL7H1ZpdTHKxQB5qKP1C"
RAYDIUM_CLMM_PROGRAM_ID: str = "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"

# Endpoints
RAYDIUM_API_BASE_DEFAULT: str = "https://api-v3-devnet.raydium.io"
JUPITER_PRICE_URL: str = "https://price.jup.ag/v4/price"
HTTP_TIMEOUT: int = 30

# State & audit logging
STATE_DIR_DEFAULT: str = "state"
CYCLE_STATE_FILE: str = "cycle_state.json"
TAX_STATE_FILE: str = "tax_state.json"
LOG_DIR: str = "logs"
LOG_LEVEL_DEFAULT: str = "SUMMARY"
TREASURY_WALLET_ADDRESS_DEFAULT: str = "DwhLErVhPhzg1ep19Lracmp6iMTECh4nVBdPebsvJwjo"
