"""Environment configuration and keypair loading tests."""

import json
import os
import tempfile
from decimal import Decimal

from solders.keypair import Keypair

from harvest_cycle.config.blacklist_loader import load_blacklist
from harvest_cycle.config.env_config import load_config, load_credentials, load_keypair_from_env
from harvest_cycle.config.settings import TREASURY_WALLET_ADDRESS_DEFAULT
from harvest_cycle.core.errors import ConfigurationError

MINT = str(Keypair().pubkey())
POOL = str(Keypair().pubkey())


def _env(**kw):
    env = {
        "SOLANA_RPC_URL": "https://api.devnet.solana.com",
        "TOKEN_MINT": MINT,
        "RAYDIUM_POOL_ID": POOL,
    }
    env.update(kw)
    return env


def _key_json(keypair):
    return json.dumps(list(bytes(keypair)))


def test_defaults():
    print("=== Defaults ===")
    config = load_config(_env())
    assert config.token_mint == MINT
    assert config.reward_value_mode == "TOKEN"
    assert not config.is_usd_mode
    assert config.batch_count == 4
    assert config.batch_delay == 10.0
    assert config.min_holding_usd is None
    assert config.treasury_address == TREASURY_WALLET_ADDRESS_DEFAULT
    assert "rpc_url" not in config.summary()
    print("  defaults applied: OK")

    config = load_config({"HELIUS_RPC_URL": "https://rpc.example", "TOKEN_MINT": MINT, "RAYDIUM_POOL_ID": POOL})
    assert config.rpc_url == "https://rpc.example"
    print("  HELIUS_RPC_URL accepted: OK")


def test_overrides():
    print("=== Overrides ===")
    config = load_config(_env(
        REWARD_VALUE_MODE="usd",
        MIN_TAX_THRESHOLD_USD="12.5",
        MAX_HARVEST_USD="500",
        BATCH_COUNT="2",
        BATCH_DELAY_TOKEN_MODE="1500",
        BATCH_DELAY_USD_MODE="45000",
        MIN_HOLDING_USD="1",
        SLIPPAGE_BPS="50",
    ))
    assert config.is_usd_mode
    assert config.min_tax_threshold_usd == Decimal("12.5")
    assert config.batch_delay_token_mode == 1.5
    assert config.batch_delay == 45.0
    assert config.min_holding_usd == Decimal("1")
    assert config.slippage_bps == 50
    assert config.summary()["max_harvest"] == "500"
    print("  USD mode, delays given in ms: OK")


def test_invalid_config():
    print("=== Invalid Config ===")
    cases = [
        {"TOKEN_MINT": MINT, "RAYDIUM_POOL_ID": POOL},
        _env(TOKEN_MINT=""),
        _env(RAYDIUM_POOL_ID="not a pool"),
        _env(REWARD_VALUE_MODE="EUR"),
        _env(BATCH_COUNT="0"),
        _env(BATCH_COUNT="four"),
        _env(SLIPPAGE_BPS="10000"),
        _env(MIN_PAYOUT_USD="cheap"),
    ]
    for env in cases:
        try:
            load_config(env)
            assert False, f"Should have raised for {env}"
        except ConfigurationError:
            pass
    print(f"  {len(cases)} invalid environments rejected: OK")


def test_keypairs():
    print("=== Keypairs ===")
    reward, admin = Keypair(), Keypair()
    env = _env(REWARD_WALLET_PRIVATE_KEY_JSON=_key_json(reward), ADMIN_WALLET_JSON=_key_json(admin))
    creds = load_credentials(env, load_config(env))
    assert creds.reward.pubkey() == reward.pubkey()
    assert creds.admin.pubkey() == admin.pubkey()
    assert creds.treasury is None
    print("  reward and admin keys loaded, treasury optional: OK")

    assert load_keypair_from_env({}, "X", required=False) is None
    for raw in ("", "[1, 2", json.dumps([1] * 63), json.dumps([256] * 64), json.dumps({"k": 1})):
        try:
            load_keypair_from_env({"X": raw}, "X")
            assert False, f"Should have raised for {raw!r}"
        except ConfigurationError:
            pass
    print("  missing / malformed keys rejected: OK")


def test_blacklist():
    print("=== Blacklist ===")
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "blacklist.json")
        assert load_blacklist(path) == set()
        print("  missing file is empty: OK")

        with open(path, "w", encoding="utf-8") as f:
            json.dump([" walletA ", "walletB", ""], f)
        assert load_blacklist(path) == {"walletA", "walletB"}

        with open(path, "w", encoding="utf-8") as f:
            json.dump({"walletC": "exchange hot wallet"}, f)
        assert load_blacklist(path) == {"walletC"}
        print("  list or labelled object accepted: OK")

        for broken in ('["walletA", "walletB",]', "{broken", '"walletA"', '["walletA", 7]'):
            with open(path, "w", encoding="utf-8") as f:
                f.write(broken)
            try:
                load_blacklist(path)
                assert False, f"Should have raised for {broken!r}"
            except ConfigurationError:
                pass
        print("  malformed blacklist raises instead of excluding nobody: OK")


if __name__ == "__main__":
    test_defaults()
    test_overrides()
    test_invalid_config()
    test_keypairs()
    test_blacklist()
    print("\n*** ALL ENV CONFIG TESTS PASSED ***")
