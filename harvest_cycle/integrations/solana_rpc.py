"""Solana JSON-RPC client for the harvest cycle.

Blocking HTTP client over ``requests``. Account data is always requested
base64-encoded and decoded to bytes before it leaves this module.

Errors:
- HTTP 429, or a JSON-RPC error mentioning rate limits -> RateLimitError
- any other transport or JSON-RPC failure -> RpcError
"""

import base64
import time
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..config.settings import CONFIRM_TIMEOUT, HTTP_TIMEOUT
from ..core.errors import RateLimitError, RpcError, is_rate_limit_error

DEFAULT_COMMITMENT = "confirmed"
CONFIRM_POLL_INTERVAL = 2.0

# (address, raw data, owner program)
RawAccount = Tuple[str, bytes, str]


class SolanaRpcClient:
    """Minimal JSON-RPC client covering the calls the pipeline needs."""

    def __init__(
        self,
        url: str,
        timeout: int = HTTP_TIMEOUT,
        commitment: str = DEFAULT_COMMITMENT,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not url:
            raise ValueError(
                "SOLANA_RPC_URL is required. "
                "Set it as an environment variable: export SOLANA_RPC_URL='https://...'"
            )
        self.url = url
        self.timeout = timeout
        self.commitment = commitment
        self._session = session or requests.Session()
        self._request_id = 0

    def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Send one JSON-RPC request and return its ``result``."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        try:
            resp = self._session.post(self.url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as exc:
            raise RpcError(f"{method}: {exc}") from exc

        if resp.status_code == 429:
            raise RateLimitError(f"{method}: HTTP 429 Too Many Requests", code=429)
        try:
            resp.raise_for_status()
            body = resp.json()
        except (requests.exceptions.HTTPError, ValueError) as exc:
            raise RpcError(f"{method}: {exc}", code=resp.status_code) from exc

        error = body.get("error")
        if error:
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            if is_rate_limit_error(RpcError(message)):
                raise RateLimitError(f"{method}: {message}", code=code)
            raise RpcError(f"{method}: {message}", code=code)
        return body.get("result")

    # -- reads -------------------------------------------------------------

    def get_account_info(self, address: str) -> Optional[RawAccount]:
        result = self.call(
            "getAccountInfo",
            [address, {"encoding": "base64", "commitment": self.commitment}],
        )
        value = (result or {}).get("value")
        if not value:
            return None
        return address, _decode_data(value["data"]), value["owner"]

    def get_multiple_accounts(self, addresses: List[str]) -> List[Optional[RawAccount]]:
        result = self.call(
            "getMultipleAccounts",
            [addresses, {"encoding": "base64", "commitment": self.commitment}],
        )
        values = (result or {}).get("value") or []
        accounts: List[Optional[RawAccount]] = []
        for address, value in zip(addresses, values):
            if value:
                accounts.append((address, _decode_data(value["data"]), value["owner"]))
            else:
                accounts.append(None)
        return accounts

    def get_program_accounts(
        self, program_id: str, filters: List[Dict[str, Any]]
    ) -> List[RawAccount]:
        result = self.call(
            "getProgramAccounts",
            [
                program_id,
                {"encoding": "base64", "commitment": self.commitment, "filters": filters},
            ],
        )
        accounts: List[RawAccount] = []
        for item in result or []:
            account = item.get("account") or {}
            accounts.append(
                (item["pubkey"], _decode_data(account["data"]), account.get("owner", program_id))
            )
        return accounts

    def get_balance(self, address: str) -> int:
        result = self.call("getBalance", [address, {"commitment": self.commitment}])
        return int((result or {}).get("value", 0))

    def get_token_account_balance(self, address: str) -> int:
        """Raw token amount held by a token account (base units)."""
        result = self.call("getTokenAccountBalance", [address, {"commitment": self.commitment}])
        return int(((result or {}).get("value") or {}).get("amount", "0"))

    def get_latest_blockhash(self) -> str:
        result = self.call("getLatestBlockhash", [{"commitment": self.commitment}])
        return result["value"]["blockhash"]

    def get_epoch(self) -> int:
        result = self.call("getEpochInfo", [{"commitment": self.commitment}])
        return int(result["epoch"])

    # -- transactions --------------------------------------------------------

    def simulate_transaction(self, tx_b64: str) -> Dict[str, Any]:
        result = self.call(
            "simulateTransaction",
            [tx_b64, {"encoding": "base64", "commitment": self.commitment, "sigVerify": False}],
        )
        return (result or {}).get("value") or {}

    def send_transaction(self, tx_b64: str, skip_preflight: bool = False) -> str:
        return self.call(
            "sendTransaction",
            [
                tx_b64,
                {
                    "encoding": "base64",
                    "skipPreflight": skip_preflight,
                    "preflightCommitment": self.commitment,
                    "maxRetries": 0,
                },
            ],
        )

    def get_signature_statuses(self, signatures: List[str]) -> List[Optional[Dict[str, Any]]]:
        result = self.call(
            "getSignatureStatuses",
            [signatures, {"searchTransactionHistory": False}],
        )
        return (result or {}).get("value") or []

    def confirm_transaction(self, signature: str, timeout_s: float = CONFIRM_TIMEOUT) -> None:
        """Poll until ``signature`` is confirmed.

        Raises:
            RpcError: If the transaction failed on-chain or was not
                confirmed within ``timeout_s``.
        """
        deadline = time.monotonic() + timeout_s
        while time.monotonic() < deadline:
            statuses = self.get_signature_statuses([signature])
            status = statuses[0] if statuses else None
            if status:
                if status.get("err"):
                    raise RpcError(f"Transaction {signature} failed: {status['err']}")
                if status.get("confirmationStatus") in ("confirmed", "finalized"):
                    return
            time.sleep(CONFIRM_POLL_INTERVAL)
        raise RpcError(f"Transaction {signature} not confirmed within {timeout_s:.0f}s")


def _decode_data(data: Any) -> bytes:
    """Decode ``[b64, "base64"]`` account data."""
    if isinstance(data, list):
        return base64.b64decode(data[0])
    return base64.b64decode(data)
