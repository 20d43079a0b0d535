"""Environment-driven configuration and wallet credentials.

Required:
    SOLANA_RPC_URL (or HELIUS_RPC_URL), TOKEN_MINT, RAYDIUM_POOL_ID
    REWARD_WALLET_PRIVATE_KEY_JSON, ADMIN_WALLET_JSON  (JSON array of 64 ints)

Optional (defaults in settings.py):
    REWARD_VALUE_MODE (TOKEN|USD), MIN_PAYOUT_TOKEN, MIN_PAYOUT_USD,
    MIN_TAX_THRESHOLD_TOKEN, MIN_TAX_THRESHOLD_USD, MAX_HARVEST_TOKEN,
    MAX_HARVEST_USD, BATCH_COUNT, BATCH_DELAY_TOKEN_MODE (ms),
    BATCH_DELAY_USD_MODE (ms), MIN_HOLDING_USD, SLIPPAGE_BPS,
    TREASURY_WALLET_ADDRESS, TREASURY_WALLET_PRIVATE_KEY_JSON,
    RAYDIUM_API_BASE, STATE_DIR, BLACKLIST_PATH
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Mapping, Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from ..core.errors import ConfigurationError
from . import settings

logger = logging.getLogger(__name__)

VALUE_MODES = ("TOKEN", "USD")


@dataclass(frozen=True)
class HarvestConfig:
    """Runtime configuration. Token amounts are whole tokens, USD amounts Decimals."""

    rpc_url: str
    token_mint: str
    pool_id: str
    reward_value_mode: str = settings.REWARD_VALUE_MODE_DEFAULT
    min_payout_token: int = settings.MIN_PAYOUT_TOKEN_DEFAULT
    min_payout_usd: Decimal = settings.MIN_PAYOUT_USD_DEFAULT
    min_tax_threshold_token: int = settings.MIN_TAX_THRESHOLD_TOKEN_DEFAULT
    min_tax_threshold_usd: Decimal = settings.MIN_TAX_THRESHOLD_USD_DEFAULT
    max_harvest_token: int = settings.MAX_HARVEST_TOKEN_DEFAULT
    max_harvest_usd: Decimal = settings.MAX_HARVEST_USD_DEFAULT
    batch_count: int = settings.BATCH_COUNT_DEFAULT
    batch_delay_token_mode: float = settings.BATCH_DELAY_TOKEN_MODE_DEFAULT
    batch_delay_usd_mode: float = settings.BATCH_DELAY_USD_MODE_DEFAULT
    min_holding_usd: Optional[Decimal] = None
    slippage_bps: int = settings.DEFAULT_SLIPPAGE_BPS
    treasury_address: str = settings.TREASURY_WALLET_ADDRESS_DEFAULT
    raydium_api_base: str = settings.RAYDIUM_API_BASE_DEFAULT
    state_dir: str = settings.STATE_DIR_DEFAULT
    blacklist_path: str = "config/blacklist.json"

    @property
    def is_usd_mode(self) -> bool:
        return self.reward_value_mode == "USD"

    @property
    def batch_delay(self) -> float:
        """Seconds between batched swaps for the active value mode."""
        return self.batch_delay_usd_mode if self.is_usd_mode else self.batch_delay_token_mode

    def summary(self) -> dict:
        """Loggable view (no secrets)."""
        return {
            "token_mint": self.token_mint,
            "pool_id": self.pool_id,
            "reward_value_mode": self.reward_value_mode,
            "min_tax_threshold": (
                str(self.min_tax_threshold_usd) if self.is_usd_mode else self.min_tax_threshold_token
            ),
            "max_harvest": str(self.max_harvest_usd) if self.is_usd_mode else self.max_harvest_token,
            "batch_count": self.batch_count,
            "slippage_bps": self.slippage_bps,
            "treasury": self.treasury_address,
        }


@dataclass(frozen=True)
class WalletCredentials:
    """Signing keypairs for the operating roles."""

    reward: Keypair  # operating wallet: receives harvests, swaps, pays holders
    admin: Keypair
    treasury: Optional[Keypair] = None


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from exc


def _decimal(env: Mapping[str, str], key: str, default: Optional[Decimal]) -> Optional[Decimal]:
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from exc


def _pubkey_str(key: str, value: str) -> str:
    try:
        return str(Pubkey.from_string(value.strip()))
    except ValueError as exc:
        raise ConfigurationError(f"{key} is not a valid address: {value!r}") from exc


def load_config(env: Mapping[str, str]) -> HarvestConfig:
    """Build a HarvestConfig from environment variables.

    Raises:
        ConfigurationError: On missing required keys or unparseable values.
    """
    rpc_url = env.get("SOLANA_RPC_URL") or env.get("HELIUS_RPC_URL")
    if not rpc_url:
        raise ConfigurationError(
            "SOLANA_RPC_URL (or HELIUS_RPC_URL) is required. "
            "Set it with: export SOLANA_RPC_URL='https://api.devnet.solana.com'"
        )
    for key in ("TOKEN_MINT", "RAYDIUM_POOL_ID"):
        if not env.get(key):
            raise ConfigurationError(f"{key} environment variable is required.")

    mode = (env.get("REWARD_VALUE_MODE") or settings.REWARD_VALUE_MODE_DEFAULT).strip().upper()
    if mode not in VALUE_MODES:
        raise ConfigurationError(f"REWARD_VALUE_MODE must be TOKEN or USD, got {mode!r}")

    batch_count = _int(env, "BATCH_COUNT", settings.BATCH_COUNT_DEFAULT)
    if batch_count < 1:
        raise ConfigurationError(f"BATCH_COUNT must be >= 1, got {batch_count}")
    slippage = _int(env, "SLIPPAGE_BPS", settings.DEFAULT_SLIPPAGE_BPS)
    if not 0 <= slippage < settings.BPS_DENOMINATOR:
        raise ConfigurationError(f"SLIPPAGE_BPS must be in [0, 10000), got {slippage}")

    return HarvestConfig(
        rpc_url=rpc_url,
        token_mint=_pubkey_str("TOKEN_MINT", env["TOKEN_MINT"]),
        pool_id=_pubkey_str("RAYDIUM_POOL_ID", env["RAYDIUM_POOL_ID"]),
        reward_value_mode=mode,
        min_payout_token=_int(env, "MIN_PAYOUT_TOKEN", settings.MIN_PAYOUT_TOKEN_DEFAULT),
        min_payout_usd=_decimal(env, "MIN_PAYOUT_USD", settings.MIN_PAYOUT_USD_DEFAULT),
        min_tax_threshold_token=_int(
            env, "MIN_TAX_THRESHOLD_TOKEN", settings.MIN_TAX_THRESHOLD_TOKEN_DEFAULT
        ),
        min_tax_threshold_usd=_decimal(
            env, "MIN_TAX_THRESHOLD_USD", settings.MIN_TAX_THRESHOLD_USD_DEFAULT
        ),
        max_harvest_token=_int(env, "MAX_HARVEST_TOKEN", settings.MAX_HARVEST_TOKEN_DEFAULT),
        max_harvest_usd=_decimal(env, "MAX_HARVEST_USD", settings.MAX_HARVEST_USD_DEFAULT),
        batch_count=batch_count,
        batch_delay_token_mode=_int(
            env, "BATCH_DELAY_TOKEN_MODE", int(settings.BATCH_DELAY_TOKEN_MODE_DEFAULT * 1000)
        ) / 1000,
        batch_delay_usd_mode=_int(
            env, "BATCH_DELAY_USD_MODE", int(settings.BATCH_DELAY_USD_MODE_DEFAULT * 1000)
        ) / 1000,
        min_holding_usd=_decimal(env, "MIN_HOLDING_USD", None),
        slippage_bps=slippage,
        treasury_address=_pubkey_str(
            "TREASURY_WALLET_ADDRESS",
            env.get("TREASURY_WALLET_ADDRESS") or settings.TREASURY_WALLET_ADDRESS_DEFAULT,
        ),
        raydium_api_base=env.get("RAYDIUM_API_BASE") or settings.RAYDIUM_API_BASE_DEFAULT,
        state_dir=env.get("STATE_DIR") or settings.STATE_DIR_DEFAULT,
        blacklist_path=env.get("BLACKLIST_PATH") or "config/blacklist.json",
    )


def load_keypair_from_env(env: Mapping[str, str], key: str, required: bool = True) -> Optional[Keypair]:
    """Load a keypair stored as a JSON array of 64 byte values.

    Raises:
        ConfigurationError: If required and missing, or if malformed.
    """
    raw = env.get(key)
    if not raw:
        if required:
            raise ConfigurationError(
                f"{key} environment variable is required (JSON array of 64 numbers)."
            )
        return None
    try:
        values = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{key} is not valid JSON: {exc}") from exc
    if (
        not isinstance(values, list)
        or len(values) != 64
        or not all(isinstance(v, int) and 0 <= v <= 255 for v in values)
    ):
        raise ConfigurationError(f"{key} must be a JSON array of 64 integers in 0..255")
    try:
        return Keypair.from_bytes(bytes(values))
    except ValueError as exc:
        raise ConfigurationError(f"{key} does not hold a valid ed25519 keypair: {exc}") from exc


def load_credentials(env: Mapping[str, str], config: Optional[HarvestConfig] = None) -> WalletCredentials:
    """Load operating, admin and (optional) treasury keypairs."""
    credentials = WalletCredentials(
        reward=load_keypair_from_env(env, "REWARD_WALLET_PRIVATE_KEY_JSON"),
        admin=load_keypair_from_env(env, "ADMIN_WALLET_JSON"),
        treasury=load_keypair_from_env(env, "TREASURY_WALLET_PRIVATE_KEY_JSON", required=False),
    )
    if config is not None and credentials.treasury is not None:
        if str(credentials.treasury.pubkey()) != config.treasury_address:
            logger.warning(
                "TREASURY_WALLET_ADDRESS %s does not match TREASURY_WALLET_PRIVATE_KEY_JSON (%s)",
                config.treasury_address, credentials.treasury.pubkey(),
            )
    return credentials
