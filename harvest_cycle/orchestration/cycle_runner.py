"""Cycle scheduler for the harvest pipeline.

Each cycle:
1. Stamp the run with its epoch/cycle identity (EpochLedger)
2. Run the tax pipeline (TaxHarvestCoordinator)
3. Classify the outcome as DISTRIBUTED, ROLLED_OVER or FAILED
4. Persist the CycleResult and write it to the JSONL audit log
"""

import logging
import threading
import time
from typing import Callable, Optional

from ..core.epoch_ledger import EpochLedger, seconds_until_next_cycle
from ..core.errors import LedgerWriteError
from ..core.tax_harvest import TaxHarvestCoordinator
from ..logging.cycle_logger import CycleLogger
from ..models.cycle import DISTRIBUTED, FAILED, ROLLED_OVER, CycleResult, TaxResultPayload
from ..models.tax import TaxDistributionResult

logger = logging.getLogger(__name__)


class CycleRunner:
    """Runs one pipeline invocation per 5-minute cycle."""

    def __init__(
        self,
        ledger: EpochLedger,
        coordinator: TaxHarvestCoordinator,
        cycle_logger: Optional[CycleLogger] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.ledger = ledger
        self.coordinator = coordinator
        self.cycle_logger = cycle_logger
        self._clock = clock
        self._sleep = sleep
        self._cycle_lock = threading.Lock()
        self._running = False
        self._session_open = False

    def already_executed(self, epoch: str, cycle_number: int) -> bool:
        record = self.ledger.epoch_state(epoch)
        return record is not None and any(c.cycle_number == cycle_number for c in record.cycles)

    def run_cycle(self) -> Optional[CycleResult]:
        """Execute one cycle and record its result.

        Returns None without doing anything if a cycle is already running.

        Raises:
            LedgerWriteError: If the cycle or tax state could not be persisted.
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Cycle already in progress; skipping")
            return None
        try:
            info = self.ledger.current_epoch_info()
            logger.info("Cycle %s #%d/%d starting", info.epoch, info.cycle_number, info.cycles_per_epoch)

            state = FAILED
            error: Optional[str] = None
            tax: Optional[TaxDistributionResult] = None
            try:
                tax = self.coordinator.process_withheld_tax(info.epoch, info.cycle_number)
                state = ROLLED_OVER if tax is None else DISTRIBUTED
            except LedgerWriteError:
                raise
            except Exception as exc:
                error = f"{type(exc).__name__}: {exc}"
                logger.exception("Cycle %s #%d failed", info.epoch, info.cycle_number)

            result = CycleResult(
                epoch=info.epoch,
                cycle_number=info.cycle_number,
                state=state,
                timestamp=int(self._clock()),
                error=error,
                tax_result=_payload(tax),
            )
            self.ledger.record_result(result)
            self._audit(result, tax)
            return result
        finally:
            self._cycle_lock.release()

    def _audit(self, result: CycleResult, tax: Optional[TaxDistributionResult]) -> None:
        if self.cycle_logger is None:
            return
        self.cycle_logger.log_cycle_result(result)
        if tax is None:
            return
        for swap in tax.swaps:
            self.cycle_logger.log_swap(swap, result.epoch, result.cycle_number)
        if tax.distribution is not None:
            for payout in tax.distribution.results:
                self.cycle_logger.log_payout(payout, result.epoch, result.cycle_number)

    def run(self, config_summary: Optional[dict] = None) -> None:
        """Run cycles on 5-minute boundaries until interrupted or shutdown()."""
        self._running = True
        if self.cycle_logger is not None:
            self.cycle_logger.log_session_start(config_summary or {})
            self._session_open = True
        try:
            while self._running:
                info = self.ledger.current_epoch_info()
                if self.already_executed(info.epoch, info.cycle_number):
                    logger.info("Cycle %s #%d already executed", info.epoch, info.cycle_number)
                else:
                    self.run_cycle()
                if not self._running:
                    break
                wait = seconds_until_next_cycle(self._clock())
                logger.debug("Next cycle in %ds", wait)
                self._sleep(max(wait, 1))
        except KeyboardInterrupt:
            pass
        finally:
            self.shutdown()

    def shutdown(self, reason: str = "user_shutdown") -> None:
        self._running = False
        if self._session_open:
            self._session_open = False
            self.cycle_logger.log_session_end(reason)


def _payload(tax: Optional[TaxDistributionResult]) -> Optional[TaxResultPayload]:
    if tax is None:
        return None
    return TaxResultPayload(
        harvested=tax.harvested,
        sol_to_holders=tax.sol_to_holders,
        sol_to_treasury=tax.sol_to_treasury,
        distributed_count=tax.distributed_count,
        swap_signature=tax.swap_signature,
    )
