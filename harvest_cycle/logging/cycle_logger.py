"""JSONL audit logger for harvest cycles."""

import json
import time
from pathlib import Path
from typing import Any, Dict, Optional, TextIO

from ..config.settings import LOG_DIR, LOG_LEVEL_DEFAULT
from ..models.chain import PayoutRecord, SwapResult
from ..models.cycle import CycleResult


class CycleLogger:
    """Writes cycle events to a JSONL file.

    In SUMMARY mode (default), session start/end and one CYCLE_RESULT per
    cycle are logged. In FULL mode, every swap and payout is also logged.
    """

    def __init__(
        self,
        token_mint: str,
        log_level: str = LOG_LEVEL_DEFAULT,
        output_dir: str = LOG_DIR,
    ) -> None:
        self.token_mint = token_mint
        self.log_level = log_level
        self._dir = Path(output_dir)
        self._dir.mkdir(parents=True, exist_ok=True)

        ts = int(time.time())
        self._filepath = self._dir / f"harvest_cycle_{token_mint}_{ts}.jsonl"
        self._file: Optional[TextIO] = open(self._filepath, "a", encoding="utf-8")

    def _write_line(self, data: Dict[str, Any]) -> None:
        if self._file and not self._file.closed:
            self._file.write(json.dumps(data, separators=(",", ":")) + "\n")
            self._file.flush()

    def log_session_start(self, config: Dict[str, Any]) -> None:
        """Always logged."""
        self._write_line({
            "event_type": "SESSION_START",
            "timestamp": int(time.time()),
            "token_mint": self.token_mint,
            "config": config,
        })

    def log_cycle_result(self, result: CycleResult) -> None:
        """Always logged."""
        self._write_line({"event_type": "CYCLE_RESULT", **result.to_dict()})

    def log_swap(self, swap: SwapResult, epoch: str, cycle_number: int) -> None:
        if self.log_level != "FULL":
            return
        self._write_line({
            "event_type": "SWAP",
            "timestamp": int(time.time()),
            "epoch": epoch,
            "cycle_number": cycle_number,
            "amount_in": str(swap.amount_in),
            "amount_out": str(swap.amount_out),
            "estimated_out": str(swap.estimated_out),
            "observed": swap.observed,
            "signature": swap.signature,
        })

    def log_payout(self, payout: PayoutRecord, epoch: str, cycle_number: int) -> None:
        if self.log_level != "FULL":
            return
        self._write_line({
            "event_type": "PAYOUT",
            "timestamp": int(time.time()),
            "epoch": epoch,
            "cycle_number": cycle_number,
            "wallet": payout.wallet,
            "lamports": str(payout.reward),
            "status": payout.status,
            "signature": payout.signature,
            "reason": payout.reason,
        })

    def log_session_end(self, reason: str) -> None:
        """Always logged; closes the file."""
        self._write_line({
            "event_type": "SESSION_END",
            "timestamp": int(time.time()),
            "reason": reason,
        })
        self.close()

    def close(self) -> None:
        if self._file and not self._file.closed:
            self._file.close()

    @property
    def filepath(self) -> Path:
        return self._filepath
