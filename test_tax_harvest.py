"""Tax harvest coordinator tests: thresholds, batching, 75/25 split, failure paths."""

import os
import tempfile
from decimal import Decimal

from solders.keypair import Keypair

from harvest_cycle.config.env_config import HarvestConfig
from harvest_cycle.config.settings import SYSTEM_PROGRAM_ID, TOKEN_2022_PROGRAM_ID
from harvest_cycle.core.errors import RateLimitError, RpcError, SwapError
from harvest_cycle.core.holder_inspector import WithheldTotals
from harvest_cycle.core.state_store import JsonStateStore
from harvest_cycle.core.tax_harvest import TaxHarvestCoordinator, plan_batches, split_proceeds
from harvest_cycle.core.tax_ledger import TaxLedger
from harvest_cycle.models.chain import (
    DistributionResult,
    MintInfo,
    PayoutRecord,
    SwapResult,
    TransferFee,
    TransferFeeConfig,
)

TOKEN = 10 ** 6  # decimals = 6
MINT = str(Keypair().pubkey())
REWARD = Keypair()
ADMIN = Keypair()
TREASURY = str(Keypair().pubkey())


def _config(**kw):
    values = dict(
        rpc_url="http://localhost:8899",
        token_mint=MINT,
        pool_id=str(Keypair().pubkey()),
        min_tax_threshold_token=100,
        max_harvest_token=1_000,
        batch_count=4,
        batch_delay_token_mode=2.5,
        treasury_address=TREASURY,
    )
    values.update(kw)
    return HarvestConfig(**values)


def _mint(authority):
    fee = TransferFee(epoch=0, maximum_fee=10 ** 15, basis_points=500)
    return MintInfo(
        address=MINT,
        program_id=TOKEN_2022_PROGRAM_ID,
        supply=10 ** 15,
        decimals=6,
        transfer_fee=TransferFeeConfig(
            config_authority=None,
            withdraw_withheld_authority=authority,
            withheld_amount=0,
            older_fee=fee,
            newer_fee=fee,
        ),
    )


class FakeInspector:
    def __init__(self, authority, withheld, sources=25):
        self.mint = _mint(authority)
        self.sources = [str(Keypair().pubkey()) for _ in range(sources)]
        self.withheld = withheld
        self.invalidated = 0

    def mint_info(self):
        return self.mint

    def total_withheld(self):
        return WithheldTotals(
            source_accounts=list(self.sources),
            accounts_total=self.withheld,
            mint_total=0,
        )

    def invalidate(self):
        self.invalidated += 1


class FakeRpc:
    def __init__(self, balances):
        self.balances = list(balances)

    def get_token_account_balance(self, address):
        balance = self.balances.pop(0)
        if isinstance(balance, Exception):
            raise balance
        return balance


class FakeSender:
    def __init__(self, fail_treasury=False):
        self.fail_treasury = fail_treasury
        self.sent = []

    def send_and_confirm(self, instructions, signers=None, compute_budget=False):
        self.sent.append((list(instructions), signers))
        ix = instructions[-1]
        if self.fail_treasury and str(ix.program_id) == SYSTEM_PROGRAM_ID:
            raise RpcError("blockhash not found")
        return f"tx{len(self.sent)}"


class FakeSwapRouter:
    def __init__(self, fail=False):
        self.fail = fail
        self.amounts = []

    def swap(self, amount):
        if self.fail:
            raise SwapError("simulation failed", kind="simulation")
        self.amounts.append(amount)
        return SwapResult(
            amount_in=amount,
            amount_out=amount // 10,
            signature=f"swap{len(self.amounts)}",
            estimated_out=amount // 10,
            observed=True,
        )


class FakeDistribution:
    def __init__(self):
        self.offered = []

    def distribute(self, total):
        self.offered.append(total)
        half = total // 2
        return DistributionResult(
            total_amount=total,
            paid_count=2,
            total_paid=half * 2,
            results=[
                PayoutRecord(wallet="a", reward=half, status="paid", signature="pay1"),
                PayoutRecord(wallet="b", reward=half, status="paid", signature="pay2"),
            ],
        )


class FakePrices:
    def __init__(self, usd_per_token=None):
        self.usd_per_token = usd_per_token

    def token_value_usd(self, amount, decimals):
        if self.usd_per_token is None:
            return None
        return Decimal(amount) / Decimal(10 ** decimals) * self.usd_per_token


class Harness:
    def __init__(self, tmpdir, authority=None, withheld=2_000 * TOKEN, balances=(0, 2_000 * TOKEN + 10),
                 config=None, prices=None, swap_fail=False, fail_treasury=False):
        authority = str(ADMIN.pubkey()) if authority is None else authority
        self.inspector = FakeInspector(authority, withheld)
        self.rpc = FakeRpc(balances)
        self.sender = FakeSender(fail_treasury=fail_treasury)
        self.router = FakeSwapRouter(fail=swap_fail)
        self.distribution = FakeDistribution()
        self.ledger = TaxLedger(JsonStateStore(os.path.join(tmpdir, "tax_state.json")))
        self.sleeps = []
        self.coordinator = TaxHarvestCoordinator(
            self.rpc, self.sender, self.inspector, prices or FakePrices(), self.router,
            self.distribution, self.ledger, config or _config(),
            reward_keypair=REWARD, admin_keypair=ADMIN, treasury_address=TREASURY,
            sleep=self.sleeps.append, clock=lambda: 1_750_000_000,
        )


def test_plan_batches():
    print("=== Batch Planning ===")
    assert plan_batches(10, 4) == [2, 2, 2, 4]
    assert plan_batches(3, 4) == [3]
    assert plan_batches(1_000, 1) == [1_000]
    assert plan_batches(1_000, 4) == [250, 250, 250, 250]
    for amount, count in ((10, 4), (12_345_678_901, 7), (999, 3)):
        assert sum(plan_batches(amount, count)) == amount
    print("  equal parts, remainder on the last batch: OK")

    assert split_proceeds(1_000) == (750, 250)
    assert split_proceeds(3) == (2, 1)
    for amount in (1, 3, 7, 2_000_000_010, 123_456_789):
        holders, treasury = split_proceeds(amount)
        assert holders + treasury == amount
    print("  75/25 split, remainder to treasury, nothing unassigned: OK")


def test_full_harvest_cycle():
    print("=== Full Harvest Cycle ===")
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir)
        result = h.coordinator.process_withheld_tax(epoch="2025-06-01", cycle_number=7)
        assert result is not None

        harvest_txs = h.sender.sent[:2]
        assert [len(ixs[0].accounts) for ixs, _ in harvest_txs] == [21, 6], "20 sources + 5 sources"
        withdraw_ixs, signers = h.sender.sent[2]
        assert len(withdraw_ixs) == 2
        assert signers == [ADMIN], "withdraw signed by the matching authority"
        assert h.inspector.invalidated == 1
        print("  harvest chunks, withdraw signed by authority: OK")

        withdrawn = 2_000 * TOKEN + 10
        assert result.harvested == withdrawn
        assert h.router.amounts == [500_000_002, 500_000_002, 500_000_002, 500_000_004]
        assert h.sleeps == [2.5, 2.5, 2.5]
        print("  above ceiling: 4 batches with delay between: OK")

        assert result.sol_received == 200_000_000
        assert result.sol_to_holders == 150_000_000
        assert result.sol_to_treasury == 50_000_000
        assert h.distribution.offered == [150_000_000]
        treasury_ixs, _ = h.sender.sent[3]
        assert str(treasury_ixs[0].accounts[1].pubkey) == TREASURY
        assert result.treasury_signature == "tx4"
        assert result.treasury_error is None
        print("  75% to holders, 25% to treasury: OK")

        state = h.ledger.state()
        assert state.total_tax_collected == withdrawn
        assert state.total_reward_amount == withdrawn * 75 // 100
        assert state.total_treasury_amount == withdrawn - withdrawn * 75 // 100
        assert state.total_sol_distributed == 150_000_000
        assert state.total_sol_to_treasury == 50_000_000
        entry = state.tax_distributions[-1]
        assert entry.swap_signature == "swap1,swap2,swap3,swap4"
        assert entry.distribution_signature == "pay2"
        assert (entry.epoch, entry.cycle_number) == ("2025-06-01", 7)
        assert entry.timestamp == 1_750_000_000
        print("  ledger entry recorded: OK")


def test_single_batch_below_ceiling():
    print("=== Single Batch ===")
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir, withheld=500 * TOKEN, balances=(1_000, 1_000 + 500 * TOKEN))
        result = h.coordinator.process_withheld_tax()
        assert h.router.amounts == [500 * TOKEN], "only the newly withdrawn amount is swapped"
        assert h.sleeps == []
        assert result.swap_signature == "swap1"
        print("  one swap, no delay: OK")


def test_deferrals():
    print("=== Deferrals ===")
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir, withheld=99 * TOKEN)
        assert h.coordinator.process_withheld_tax() is None
        assert h.sender.sent == []
        assert h.ledger.state().total_tax_collected == 0
        print("  below threshold: nothing sent, counters unchanged: OK")

        h = Harness(tmpdir, authority=str(Keypair().pubkey()))
        assert h.coordinator.process_withheld_tax() is None
        assert h.sender.sent == []
        print("  withdraw authority mismatch: OK")

        h = Harness(tmpdir, authority=str(REWARD.pubkey()))
        assert h.coordinator.withdraw_authority() == REWARD
        h.inspector.mint = MintInfo(address=MINT, program_id=TOKEN_2022_PROGRAM_ID, supply=1, decimals=6)
        assert h.coordinator.withdraw_authority() is None
        print("  authority resolution (reward wallet / no fee extension): OK")

        h = Harness(tmpdir, balances=(5, 5))
        assert h.coordinator.process_withheld_tax() is None
        assert h.router.amounts == []
        assert h.ledger.state().tax_distributions == []
        print("  nothing withdrawn: no swap: OK")

        usd = _config(reward_value_mode="USD", min_tax_threshold_usd=Decimal("5"))
        h = Harness(tmpdir, config=usd, prices=FakePrices(usd_per_token=None))
        assert h.coordinator.process_withheld_tax() is None
        assert h.sender.sent == []
        print("  USD mode without a price defers: OK")


def test_usd_mode_ceiling():
    print("=== USD Mode ===")
    with tempfile.TemporaryDirectory() as tmpdir:
        usd = _config(
            reward_value_mode="USD",
            min_tax_threshold_usd=Decimal("5"),
            max_harvest_usd=Decimal("100"),
            batch_count=2,
            batch_delay_usd_mode=30.0,
        )
        h = Harness(tmpdir, config=usd, prices=FakePrices(usd_per_token=Decimal("0.1")),
                    balances=(0, 2_000 * TOKEN))
        h.coordinator.process_withheld_tax()
        assert h.router.amounts == [1_000 * TOKEN, 1_000 * TOKEN]
        assert h.sleeps == [30.0]
        print("  $200 above $100 ceiling: 2 batches, USD-mode delay: OK")


def test_failures():
    print("=== Failures ===")
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir, swap_fail=True)
        try:
            h.coordinator.process_withheld_tax()
            assert False, "Should have raised"
        except SwapError:
            pass
        assert h.distribution.offered == []
        assert h.ledger.state().total_tax_collected == 0
        print("  swap failure aborts before distribution: OK")

        h = Harness(tmpdir, fail_treasury=True)
        result = h.coordinator.process_withheld_tax()
        assert result.treasury_signature is None
        assert "blockhash" in result.treasury_error
        assert result.distributed_count == 2
        assert h.ledger.state().total_sol_to_treasury == 50_000_000
        print("  treasury failure reported, holders still paid: OK")


def test_balance_read_failures():
    print("=== Balance Read Failures ===")
    with tempfile.TemporaryDirectory() as tmpdir:
        h = Harness(tmpdir, balances=(0, RateLimitError("429 Too Many Requests")))
        try:
            h.coordinator.process_withheld_tax(epoch="2025-06-01", cycle_number=3)
            assert False, "Should have raised"
        except RateLimitError:
            pass
        assert len(h.sender.sent) == 3, "harvest x2 + withdraw landed"
        assert h.router.amounts == []
        assert h.ledger.state().tax_distributions == []
        print("  unreadable balance after withdrawal raises, not a silent deferral: OK")

        h = Harness(tmpdir, balances=(RpcError("Invalid param: could not find account", code=-32602),
                                      2_000 * TOKEN))
        result = h.coordinator.process_withheld_tax()
        assert result.harvested == 2_000 * TOKEN
        print("  missing reward token account reads as 0 before withdrawal: OK")

        h = Harness(tmpdir, balances=(RateLimitError("429"),))
        try:
            h.coordinator.process_withheld_tax()
            assert False, "Should have raised"
        except RateLimitError:
            pass
        assert h.sender.sent == [], "nothing sent when the opening balance is unknown"
        print("  rate-limited opening balance read aborts before harvesting: OK")


if __name__ == "__main__":
    test_plan_batches()
    test_full_harvest_cycle()
    test_single_batch_below_ceiling()
    test_deferrals()
    test_usd_mode_ceiling()
    test_failures()
    test_balance_read_failures()
    print("\n*** ALL TAX HARVEST TESTS PASSED ***")
