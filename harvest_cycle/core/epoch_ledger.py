"""Epoch/cycle ledger.

Epoch id is the UTC calendar date; cycle number is derived purely from
wall-clock time: floor(minutes since UTC midnight / 5) + 1, clamped to
CYCLES_PER_EPOCH. The ledger owns the cycle state document:

    {epochs: {<date>: {epoch, cycles, createdAt, updatedAt}},
     currentEpoch, currentCycleNumber, lastCycleTimestamp}
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..config.settings import CYCLE_MINUTES, CYCLES_PER_EPOCH, EPOCH_RETENTION_DAYS
from ..models.cycle import (
    DISTRIBUTED,
    FAILED,
    ROLLED_OVER,
    CycleResult,
    EpochInfo,
    EpochRecord,
    EpochStatistics,
)
from .state_store import JsonStateStore

logger = logging.getLogger(__name__)

CYCLE_SECONDS = CYCLE_MINUTES * 60


def epoch_id_for(ts: float) -> str:
    """UTC calendar date for a Unix timestamp."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d")


def cycle_number_for(ts: float) -> int:
    """Cycle number (1-based, clamped) for a Unix timestamp."""
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    minutes = dt.hour * 60 + dt.minute
    return min(minutes // CYCLE_MINUTES + 1, CYCLES_PER_EPOCH)


def seconds_until_next_cycle(ts: float) -> int:
    """Whole seconds until the next 5-minute boundary (never 0)."""
    remaining = CYCLE_SECONDS - (int(ts) % CYCLE_SECONDS)
    return remaining if remaining > 0 else CYCLE_SECONDS


def _empty_doc() -> Dict[str, Any]:
    return {
        "epochs": {},
        "currentEpoch": None,
        "currentCycleNumber": 0,
        "lastCycleTimestamp": None,
    }


class EpochLedger:
    """Tracks the active cycle and persists every CycleResult.

    Only the cycle runner writes through this class. The read accessors
    (epoch_state, all_epoch_states, epoch_statistics) never write.
    """

    def __init__(
        self,
        store: JsonStateStore,
        clock: Callable[[], float] = time.time,
        max_cycles: int = CYCLES_PER_EPOCH,
        retention_days: int = EPOCH_RETENTION_DAYS,
    ) -> None:
        self._store = store
        self._clock = clock
        self.max_cycles = max_cycles
        self.retention_days = retention_days

    # -- writes ---------------------------------------------------------

    def current_epoch_info(self) -> EpochInfo:
        """Derive the active epoch/cycle, rolling the stored state over if needed.

        Persists only when the stored epoch or cycle number changes, so
        repeated calls within one cycle are idempotent.
        """
        now = self._clock()
        epoch = epoch_id_for(now)
        cycle = cycle_number_for(now)

        doc = self._store.load(_empty_doc)
        changed = self._roll_over(doc, epoch, now)
        if cycle > doc.get("currentCycleNumber", 0):
            doc["currentCycleNumber"] = cycle
            changed = True
        if changed:
            self._store.save(doc)

        return EpochInfo(
            epoch=epoch,
            cycle_number=cycle,
            next_cycle_in=seconds_until_next_cycle(now),
            cycles_per_epoch=self.max_cycles,
        )

    def record_result(self, result: CycleResult) -> None:
        """Append a result to its epoch, trimming and pruning as needed.

        Raises:
            LedgerWriteError: If the state document cannot be persisted.
        """
        now = self._clock()
        doc = self._store.load(_empty_doc)
        self._roll_over(doc, epoch_id_for(now), now)

        epochs = doc["epochs"]
        record = epochs.get(result.epoch)
        if record is None:
            record = self._new_epoch(result.epoch, now)
            epochs[result.epoch] = record

        cycles: List[Dict[str, Any]] = record.setdefault("cycles", [])
        cycles.append(result.to_dict())
        if len(cycles) > self.max_cycles:
            # Keep the most recent max_cycles results.
            record["cycles"] = cycles[-self.max_cycles:]
        record["updatedAt"] = int(now)

        doc["lastCycleTimestamp"] = result.timestamp
        if result.epoch == doc.get("currentEpoch"):
            doc["currentCycleNumber"] = max(doc.get("currentCycleNumber", 0), result.cycle_number)

        self._prune(doc)
        self._store.save(doc)
        logger.info(
            "Recorded cycle %s #%d: %s%s",
            result.epoch,
            result.cycle_number,
            result.state,
            f" ({result.error})" if result.error else "",
        )

    # -- read-only accessors ---------------------------------------------

    def epoch_state(self, epoch: str) -> Optional[EpochRecord]:
        data = self._store.load(_empty_doc)["epochs"].get(epoch)
        return EpochRecord.from_dict(data) if data else None

    def all_epoch_states(self) -> List[EpochRecord]:
        """All retained epochs, newest first."""
        epochs = self._store.load(_empty_doc)["epochs"]
        return [EpochRecord.from_dict(epochs[k]) for k in sorted(epochs, reverse=True)]

    def epoch_statistics(self, epoch: str) -> EpochStatistics:
        record = self.epoch_state(epoch)
        cycles = record.cycles if record else []
        return EpochStatistics(
            epoch=epoch,
            total_cycles=len(cycles),
            distributed=sum(1 for c in cycles if c.state == DISTRIBUTED),
            rolled_over=sum(1 for c in cycles if c.state == ROLLED_OVER),
            failed=sum(1 for c in cycles if c.state == FAILED),
            cycles=cycles,
        )

    # -- internals ---------------------------------------------------------

    def _new_epoch(self, epoch: str, now: float) -> Dict[str, Any]:
        return EpochRecord(epoch=epoch, created_at=int(now), updated_at=int(now)).to_dict()

    def _roll_over(self, doc: Dict[str, Any], epoch: str, now: float) -> bool:
        previous = doc.get("currentEpoch")
        if previous == epoch:
            return False
        epochs = doc.setdefault("epochs", {})
        if previous and previous in epochs:
            epochs[previous]["updatedAt"] = int(now)
        doc["currentEpoch"] = epoch
        doc["currentCycleNumber"] = 1
        if epoch not in epochs:
            epochs[epoch] = self._new_epoch(epoch, now)
        self._prune(doc)
        if previous:
            logger.info("Epoch rollover: %s -> %s", previous, epoch)
        return True

    def _prune(self, doc: Dict[str, Any]) -> None:
        epochs = doc["epochs"]
        if len(epochs) <= self.retention_days:
            return
        for key in sorted(epochs)[: len(epochs) - self.retention_days]:
            del epochs[key]
