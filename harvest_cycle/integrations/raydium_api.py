"""Raydium HTTP API client.

Two endpoints are used:
- ``/pools/key/ids?ids=`` : program id, mints, vault addresses
- ``/pools/info/ids?ids=``: pool type, price, human-readable reserves
  (``mintAmountA`` / ``mintAmountB``)

Required fields missing from a response are hard errors. The pool type
is the only field that is defaulted (to Standard) when absent.
"""

from decimal import ROUND_FLOOR, Decimal
from typing import Any, Dict, Optional

import requests

from ..config.settings import HTTP_TIMEOUT, RAYDIUM_API_BASE_DEFAULT, RAYDIUM_CPMM_PROGRAM_ID
from ..core.errors import PoolInfoError, RateLimitError, RpcError
from ..models.chain import MintDescriptor, PoolInfo

_POOL_TYPES = {
    "standard": "Standard",
    "amm": "Standard",
    "cpmm": "CPMM",
    "clmm": "CLMM",
    "concentrated": "CLMM",
}


class RaydiumApiClient:
    """Fetches pool descriptors from the Raydium v3 API."""

    def __init__(
        self,
        base_url: str = RAYDIUM_API_BASE_DEFAULT,
        timeout: int = HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def _get_pool(self, path: str, pool_id: str) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.get(
                url,
                params={"ids": pool_id},
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise RpcError(f"Raydium API {path}: {exc}") from exc
        if resp.status_code == 429:
            raise RateLimitError(f"Raydium API {path}: HTTP 429", code=429)
        try:
            resp.raise_for_status()
            body = resp.json()
        except (requests.exceptions.HTTPError, ValueError) as exc:
            raise RpcError(f"Raydium API {path}: {exc}", code=resp.status_code) from exc

        data = body.get("data") if isinstance(body, dict) else None
        if not body.get("success") or not isinstance(data, list) or not data or not data[0]:
            raise PoolInfoError(f"Raydium API {path}: pool {pool_id} not found")
        pool = data[0]
        if pool.get("id") and pool["id"] != pool_id:
            raise PoolInfoError(
                f"Raydium API {path}: returned pool {pool['id']}, expected {pool_id}"
            )
        return pool

    def fetch_pool_keys(self, pool_id: str) -> Dict[str, Any]:
        return self._get_pool("/pools/key/ids", pool_id)

    def fetch_pool_info(self, pool_id: str) -> Dict[str, Any]:
        return self._get_pool("/pools/info/ids", pool_id)

    def fetch_pool(self, pool_id: str) -> Dict[str, Any]:
        """Merged info + keys payload (keys win on conflicts)."""
        merged = dict(self.fetch_pool_info(pool_id))
        merged.update(self.fetch_pool_keys(pool_id))
        return merged


def normalize_pool_type(raw_type: Optional[str], program_id: str) -> str:
    if not raw_type:
        raw_type = "standard"
    pool_type = _POOL_TYPES.get(str(raw_type).strip().lower())
    if pool_type is None:
        raise PoolInfoError(
            f'Unsupported Raydium pool type: "{raw_type}". Supported types: Standard, CPMM, CLMM.'
        )
    # The v3 API reports CPMM pools as "Standard"; the owning program disambiguates.
    if pool_type == "Standard" and program_id == RAYDIUM_CPMM_PROGRAM_ID:
        return "CPMM"
    return pool_type


def human_to_raw(amount: Any, decimals: int) -> int:
    """Convert a human-readable reserve to base units without floats."""
    scaled = Decimal(str(amount)).scaleb(decimals)
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


def _transfer_fee_bps(mint: Dict[str, Any]) -> int:
    extensions = mint.get("extensions") or {}
    if extensions.get("transferFeeBasisPoints") is not None:
        return int(extensions["transferFeeBasisPoints"])
    fee_config = extensions.get("feeConfig") or {}
    newer = fee_config.get("newerTransferFee") or {}
    if newer.get("transferFeeBasisPoints") is not None:
        return int(newer["transferFeeBasisPoints"])
    return 0


def _mint_descriptor(pool: Dict[str, Any], side: str) -> MintDescriptor:
    mint = pool.get(f"mint{side}")
    if not isinstance(mint, dict) or not mint.get("address"):
        raise PoolInfoError(f"Raydium pool {pool.get('id')}: missing mint{side}")
    if mint.get("decimals") is None:
        raise PoolInfoError(f"Raydium pool {pool.get('id')}: missing mint{side}.decimals")
    return MintDescriptor(
        address=mint["address"],
        decimals=int(mint["decimals"]),
        program_id=mint.get("programId") or "",
        transfer_fee_bps=_transfer_fee_bps(mint),
    )


def pool_info_from_api(pool: Dict[str, Any]) -> PoolInfo:
    """Build a PoolInfo from a merged API payload.

    Reserves are taken from ``mintAmountA`` / ``mintAmountB`` when both
    are present; otherwise they are left at -1 for the caller to read
    live from the vault accounts.

    Raises:
        PoolInfoError: If any required field is missing or the type is unknown.
    """
    pool_id = pool.get("id")
    program_id = pool.get("programId")
    if not pool_id:
        raise PoolInfoError("Raydium pool payload missing id")
    if not program_id:
        raise PoolInfoError(f"Raydium pool {pool_id}: missing programId")
    pool_type = normalize_pool_type(pool.get("type"), program_id)

    mint_a = _mint_descriptor(pool, "A")
    mint_b = _mint_descriptor(pool, "B")

    vault = pool.get("vault") or {}
    if not vault.get("A") or not vault.get("B"):
        raise PoolInfoError(f"Raydium pool {pool_id}: missing vault.A / vault.B")

    reserve_a = reserve_b = -1
    if pool.get("mintAmountA") is not None and pool.get("mintAmountB") is not None:
        reserve_a = human_to_raw(pool["mintAmountA"], mint_a.decimals)
        reserve_b = human_to_raw(pool["mintAmountB"], mint_b.decimals)

    extra: Dict[str, str] = {}
    config = pool.get("config")
    if isinstance(config, dict) and config.get("id"):
        extra["config_id"] = config["id"]
    for key in ("authority", "observationId", "exBitmapAccount"):
        if pool.get(key):
            extra[key] = pool[key]

    return PoolInfo(
        pool_id=pool_id,
        program_id=program_id,
        pool_type=pool_type,
        mint_a=mint_a,
        mint_b=mint_b,
        vault_a=vault["A"],
        vault_b=vault["B"],
        reserve_a=reserve_a,
        reserve_b=reserve_b,
        extra=extra,
    )
