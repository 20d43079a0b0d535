"""Epoch/cycle ledger tests: cycle clock, idempotence, retention."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

from harvest_cycle.core.epoch_ledger import (
    EpochLedger,
    cycle_number_for,
    epoch_id_for,
    seconds_until_next_cycle,
)
from harvest_cycle.core.state_store import JsonStateStore
from harvest_cycle.models.cycle import (
    DISTRIBUTED,
    FAILED,
    ROLLED_OVER,
    CycleResult,
    TaxResultPayload,
)

MIDNIGHT = int(datetime(2025, 6, 1, tzinfo=timezone.utc).timestamp())
DAY = 86400


class CountingStore(JsonStateStore):
    def __init__(self, path):
        super().__init__(path)
        self.saves = 0

    def save(self, doc):
        self.saves += 1
        super().save(doc)


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def _result(epoch, cycle, state=ROLLED_OVER, ts=MIDNIGHT, **kw):
    return CycleResult(epoch=epoch, cycle_number=cycle, state=state, timestamp=ts, **kw)


def test_cycle_clock():
    print("=== Cycle Clock ===")
    assert epoch_id_for(MIDNIGHT) == "2025-06-01"
    assert epoch_id_for(MIDNIGHT - 1) == "2025-05-31"
    print("  epoch id is UTC date: OK")

    assert cycle_number_for(MIDNIGHT) == 1
    assert cycle_number_for(MIDNIGHT + 4 * 60 + 59) == 1
    assert cycle_number_for(MIDNIGHT + 5 * 60) == 2
    assert cycle_number_for(MIDNIGHT + 1435 * 60) == 288
    assert cycle_number_for(MIDNIGHT + 1439 * 60) == 288
    assert cycle_number_for(MIDNIGHT + DAY - 1) == 288
    print("  cycle numbers at 0, 5, 1435, 1439 minutes: OK")

    assert seconds_until_next_cycle(MIDNIGHT) == 300
    assert seconds_until_next_cycle(MIDNIGHT + 1) == 299
    assert seconds_until_next_cycle(MIDNIGHT + 299) == 1
    print("  seconds until next boundary: OK")


def test_current_epoch_info_idempotent():
    print("=== current_epoch_info ===")
    with tempfile.TemporaryDirectory() as tmpdir:
        store = CountingStore(Path(tmpdir) / "cycle_state.json")
        clock = FakeClock(MIDNIGHT + 17 * 60)
        ledger = EpochLedger(store, clock=clock)

        first = ledger.current_epoch_info()
        assert first.epoch == "2025-06-01"
        assert first.cycle_number == 4
        assert first.cycles_per_epoch == 288
        assert first.next_cycle_in == 180
        assert store.saves == 1

        second = ledger.current_epoch_info()
        assert second == first
        assert store.saves == 1, "no write when nothing changed"
        print("  repeated calls in one cycle write once: OK")

        clock.now += 300
        assert ledger.current_epoch_info().cycle_number == 5
        assert store.saves == 2
        print("  next cycle persists new cycle number: OK")

        clock.now = MIDNIGHT + DAY + 10
        info = ledger.current_epoch_info()
        assert info.epoch == "2025-06-02"
        assert info.cycle_number == 1
        assert "2025-06-02" in [r.epoch for r in ledger.all_epoch_states()]
        print("  rollover to next UTC day: OK")


def test_record_and_statistics():
    print("=== Record / Statistics (2025-06-01) ===")
    with tempfile.TemporaryDirectory() as tmpdir:
        store = CountingStore(Path(tmpdir) / "cycle_state.json")
        ledger = EpochLedger(store, clock=FakeClock(MIDNIGHT + 20 * 60))

        payload = TaxResultPayload(
            harvested=5_000_000_000,
            sol_to_holders=750_000,
            sol_to_treasury=250_000,
            distributed_count=2,
            swap_signature="sig_swap",
        )
        ledger.record_result(_result("2025-06-01", 1, DISTRIBUTED, tax_result=payload))
        ledger.record_result(_result("2025-06-01", 2, ROLLED_OVER))
        ledger.record_result(_result("2025-06-01", 3, FAILED, error="SwapError: boom"))

        stats = ledger.epoch_statistics("2025-06-01")
        assert stats.total_cycles == 3
        assert (stats.distributed, stats.rolled_over, stats.failed) == (1, 1, 1)
        assert stats.cycles[0].tax_result == payload
        assert stats.cycles[2].error == "SwapError: boom"
        print("  counts by state: OK")

        data = stats.to_dict()
        assert data["cycles"][0]["taxResult"]["nukeHarvested"] == "5000000000"
        assert data["cycles"][0]["taxResult"]["swapSignature"] == "sig_swap"
        print("  amounts serialized as decimal strings: OK")

        saves = store.saves
        ledger.epoch_state("2025-06-01")
        ledger.all_epoch_states()
        ledger.epoch_statistics("2025-06-01")
        ledger.epoch_statistics("1999-01-01")
        assert store.saves == saves
        print("  read accessors never write: OK")

        missing = ledger.epoch_statistics("1999-01-01")
        assert missing.total_cycles == 0
        assert ledger.epoch_state("1999-01-01") is None
        print("  unknown epoch: OK")


def test_cycle_retention():
    print("=== Cycle Retention ===")
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonStateStore(Path(tmpdir) / "cycle_state.json")
        ledger = EpochLedger(store, clock=FakeClock(MIDNIGHT), max_cycles=5)
        for n in range(1, 9):
            ledger.record_result(_result("2025-06-01", n))
        cycles = ledger.epoch_state("2025-06-01").cycles
        assert len(cycles) == 5
        assert [c.cycle_number for c in cycles] == [4, 5, 6, 7, 8]
        print("  N+3 results keep the most recent N: OK")


def test_epoch_pruning():
    print("=== Epoch Pruning ===")
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonStateStore(Path(tmpdir) / "cycle_state.json")
        clock = FakeClock(MIDNIGHT)
        ledger = EpochLedger(store, clock=clock, retention_days=3)
        for day in range(5):
            clock.now = MIDNIGHT + day * DAY
            ledger.record_result(_result(epoch_id_for(clock.now), 1, ts=clock.now))
        epochs = [r.epoch for r in ledger.all_epoch_states()]
        assert epochs == ["2025-06-05", "2025-06-04", "2025-06-03"], epochs
        print("  oldest epochs dropped, newest first: OK")


if __name__ == "__main__":
    test_cycle_clock()
    test_current_epoch_info_idempotent()
    test_record_and_statistics()
    test_cycle_retention()
    test_epoch_pruning()
    print("\n*** ALL EPOCH LEDGER TESTS PASSED ***")
