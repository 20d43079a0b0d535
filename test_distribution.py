"""Distribution engine and holder eligibility tests."""

from decimal import Decimal
from types import SimpleNamespace

from solders.keypair import Keypair

from harvest_cycle.config.settings import TOKEN_2022_PROGRAM_ID
from harvest_cycle.core.distribution import DistributionEngine, proportional_rewards
from harvest_cycle.core.eligibility import HolderEligibility, pool_vault_owners
from harvest_cycle.core.errors import HarvestError, RpcError
from harvest_cycle.models.chain import Holder
from test_token_layouts import build_token_account

SOL = 1_000_000_000
PAYER = Keypair()


def _wallet():
    return str(Keypair().pubkey())


class FakeInspector:
    def __init__(self, balances, decimals=6):
        self.balances = balances
        self.decimals = decimals
        self.calls = 0

    def holders(self):
        self.calls += 1
        return [Holder(owner=w, balance=b, decimals=self.decimals) for w, b in self.balances.items()]


class FakeRpc:
    def __init__(self, balance=100 * SOL):
        self.balance = balance

    def get_balance(self, address):
        assert address == str(PAYER.pubkey())
        return self.balance


class FakeSender:
    """Records lamports per destination; can reject chosen destinations."""

    def __init__(self, rpc=None, reject=()):
        self.rpc = rpc
        self.reject = set(reject)
        self.paid = {}

    def send_and_confirm(self, instructions, signers=None, compute_budget=False):
        (ix,) = instructions
        destination = str(ix.accounts[1].pubkey)
        if destination in self.reject:
            raise RpcError("Transaction simulation failed: account in use", code=-32002)
        lamports = int.from_bytes(bytes(ix.data)[4:12], "little")
        self.paid[destination] = lamports
        if self.rpc is not None:
            self.rpc.balance -= lamports
        return f"sig_{destination[:6]}"


class FakePrices:
    def __init__(self, min_payout=None, usd_per_token=None):
        self.min_payout = min_payout
        self.usd_per_token = usd_per_token

    def min_payout_lamports(self, mode, min_payout_token, min_payout_usd):
        return self.min_payout

    def token_value_usd(self, amount, decimals):
        if self.usd_per_token is None:
            return None
        return Decimal(amount) / Decimal(10 ** decimals) * self.usd_per_token


def make_engine(balances, rpc=None, sender=None, prices=None, blacklist=()):
    inspector = FakeInspector(balances)
    eligibility = HolderEligibility(inspector, blacklist=blacklist)
    rpc = rpc or FakeRpc()
    sender = sender or FakeSender(rpc)
    engine = DistributionEngine(rpc, sender, PAYER, inspector, eligibility, price_resolver=prices)
    return engine, sender


def test_proportional_rewards():
    print("=== Proportional Rewards ===")
    rewards = proportional_rewards(SOL, {"a": 100, "b": 100, "c": 800})
    assert rewards == {"a": 100_000_000, "b": 100_000_000, "c": 800_000_000}
    print("  100/100/800 split of 1 SOL: OK")

    rewards = proportional_rewards(10_000_000, {"a": 1, "b": 1, "c": 1})
    assert set(rewards.values()) == {3_333_333}
    assert sum(rewards.values()) <= 10_000_000
    print("  floor division never exceeds total: OK")

    assert proportional_rewards(0, {"a": 5}) == {"a": 0}
    assert proportional_rewards(SOL, {"a": 0}) == {"a": 0}
    print("  zero amount / zero weight: OK")


def test_distribute_pays_holders():
    print("=== Distribute ===")
    a, b, c = _wallet(), _wallet(), _wallet()
    engine, sender = make_engine({a: 100, b: 100, c: 800})
    result = engine.distribute(SOL)
    assert sender.paid == {a: 100_000_000, b: 100_000_000, c: 800_000_000}
    assert result.paid_count == 3
    assert result.total_paid == SOL
    assert result.results[0].wallet == c, "largest reward paid first"
    assert len(result.signatures) == 3
    print("  every eligible holder paid once: OK")

    empty, _ = make_engine({})
    assert empty.distribute(SOL).paid_count == 0
    nothing, sender = make_engine({a: 1})
    assert nothing.distribute(0).results == []
    assert sender.paid == {}
    print("  no holders / zero amount is a no-op: OK")


def test_skips():
    print("=== Skips ===")
    whale, minnow = _wallet(), _wallet()
    engine, sender = make_engine({whale: 999_999, minnow: 1})
    result = engine.distribute(SOL)
    skipped = [r for r in result.results if r.status == "skipped"]
    assert [r.wallet for r in skipped] == [minnow]
    assert skipped[0].reason == "below dust floor"
    assert minnow not in sender.paid
    print("  dust reward skipped: OK")

    engine, sender = make_engine({whale: 900, minnow: 100}, prices=FakePrices(min_payout=200_000_000))
    result = engine.distribute(SOL)
    assert list(sender.paid) == [whale]
    assert result.results[1].reason == "below minimum payout threshold"
    print("  reward below payout threshold skipped: OK")

    rpc = FakeRpc(balance=850_000_000)
    engine, sender = make_engine({whale: 800, minnow: 200}, rpc=rpc)
    result = engine.distribute(SOL)
    assert list(sender.paid) == [whale]
    reason = result.results[1].reason
    assert reason.startswith("insufficient balance"), reason
    assert result.skipped_count == 1
    print("  insufficient payer balance skipped with reason: OK")


def test_payout_errors_isolated():
    print("=== Payout Error Isolation ===")
    good, rejected = _wallet(), _wallet()
    rpc = FakeRpc()
    sender = FakeSender(rpc, reject=[rejected])
    engine, _ = make_engine({"not-a-wallet": 500, rejected: 300, good: 200}, rpc=rpc, sender=sender)
    result = engine.distribute(SOL)
    assert result.error_count == 2
    assert result.paid_count == 1
    assert sender.paid == {good: 200_000_000}
    errors = {r.wallet: r.reason for r in result.results if r.status == "error"}
    assert errors["not-a-wallet"].startswith("Invalid wallet address")
    assert errors[rejected].startswith("Transfer rejected")
    print("  invalid address and rejected transfer do not stop the run: OK")


def test_eligibility():
    print("=== Eligibility ===")
    a, b, banned, system = _wallet(), _wallet(), _wallet(), _wallet()
    inspector = FakeInspector({a: 10, b: 20, banned: 30, system: 40})
    eligibility = HolderEligibility(inspector, blacklist=[banned], excluded=[system])
    assert eligibility.eligible_wallets() == {a, b}
    assert eligibility.is_blacklisted(system)
    eligibility.eligible_wallets()
    assert inspector.calls == 1, "cached until refresh period"
    eligibility.refresh()
    assert inspector.calls == 2
    print("  blacklist and system wallets excluded, cached: OK")

    prices = FakePrices(usd_per_token=None)
    inspector = FakeInspector({a: 5_000_000, b: 50_000_000})
    eligibility = HolderEligibility(
        inspector, price_resolver=prices, min_holding_usd=Decimal("10"),
    )
    assert eligibility.eligible_wallets() == set()
    print("  unknown price leaves nobody eligible: OK")

    prices.usd_per_token = Decimal("1")
    assert eligibility.eligible_wallets() == {b}
    assert inspector.calls == 2, "failed refresh not cached"
    print("  holders below MIN_HOLDING_USD excluded once priced: OK")

    engine, sender = make_engine({a: 1, banned: 9}, blacklist=[banned])
    engine.distribute(SOL)
    assert sender.paid == {a: SOL}
    print("  blacklisted holder's share goes to the rest: OK")


class VaultRpc:
    def __init__(self, accounts):
        self.accounts = accounts

    def get_multiple_accounts(self, addresses):
        return [self.accounts.get(address) for address in addresses]


class VaultRouter:
    def __init__(self, fail=False):
        self.fail = fail

    def resolve_pool(self):
        if self.fail:
            raise RpcError("429 Too Many Requests")
        return SimpleNamespace(vault_a="vaultA", vault_b="vaultB")


def test_pool_vault_owners():
    print("=== Pool Vault Owners ===")
    mint, authority = Keypair().pubkey(), Keypair().pubkey()
    vaults = {
        "vaultA": ("vaultA", build_token_account(mint, authority, 900), TOKEN_2022_PROGRAM_ID),
        "vaultB": ("vaultB", build_token_account(mint, authority, 5), TOKEN_2022_PROGRAM_ID),
    }
    assert pool_vault_owners(VaultRpc(vaults), VaultRouter()) == {str(authority)}
    for rpc, router in ((VaultRpc(vaults), VaultRouter(fail=True)),
                        (VaultRpc({"vaultA": vaults["vaultA"]}), VaultRouter()),
                        (VaultRpc(dict(vaults, vaultB=("vaultB", b"\x00" * 10, TOKEN_2022_PROGRAM_ID))),
                         VaultRouter())):
        try:
            pool_vault_owners(rpc, router)
            assert False, "Should have raised"
        except HarvestError:
            pass
    print("  vault owners read, lookup failures raise: OK")

    a = _wallet()
    pool_authority = str(authority)
    inspector = FakeInspector({a: 10, pool_authority: 1_000})
    lookups = []

    def owners():
        lookups.append(1)
        if len(lookups) == 1:
            raise RpcError("429 Too Many Requests")
        return {pool_authority}

    eligibility = HolderEligibility(inspector, vault_owners=owners)
    assert eligibility.eligible_wallets() == set()
    assert inspector.calls == 0
    print("  unresolved vault owners: nobody eligible: OK")

    assert eligibility.eligible_wallets() == {a}
    assert eligibility.is_blacklisted(pool_authority)
    eligibility.refresh()
    assert len(lookups) == 2, "resolved once, then reused"
    print("  pool authority excluded once resolved: OK")


if __name__ == "__main__":
    test_proportional_rewards()
    test_distribute_pays_holders()
    test_skips()
    test_payout_errors_isolated()
    test_eligibility()
    test_pool_vault_owners()
    print("\n*** ALL DISTRIBUTION TESTS PASSED ***")
