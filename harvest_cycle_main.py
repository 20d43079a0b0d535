#!/usr/bin/env python3
"""Harvest cycle - transfer-fee harvest, swap and holder distribution.

Entry point for the 5-minute cycle scheduler.

Usage:
    python harvest_cycle_main.py                 # Run cycles until Ctrl+C
    python harvest_cycle_main.py --once          # Run a single cycle
    python harvest_cycle_main.py --stats         # Print all epoch + tax stats
    python harvest_cycle_main.py --stats 2025-06-01

Environment:
    SOLANA_RPC_URL, TOKEN_MINT, RAYDIUM_POOL_ID,
    REWARD_WALLET_PRIVATE_KEY_JSON, ADMIN_WALLET_JSON  Required
    See harvest_cycle/config/env_config.py for optional settings.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from harvest_cycle.config.blacklist_loader import load_blacklist
from harvest_cycle.config.env_config import HarvestConfig, load_config, load_credentials
from harvest_cycle.config.settings import (
    CYCLE_STATE_FILE,
    LOG_DIR,
    LOG_LEVEL_DEFAULT,
    STATE_DIR_DEFAULT,
    TAX_STATE_FILE,
)
from harvest_cycle.core.distribution import DistributionEngine
from harvest_cycle.core.eligibility import HolderEligibility, pool_vault_owners
from harvest_cycle.core.epoch_ledger import EpochLedger
from harvest_cycle.core.errors import ConfigurationError, LedgerWriteError
from harvest_cycle.core.holder_inspector import HolderInspector
from harvest_cycle.core.price_resolver import PriceResolver
from harvest_cycle.core.state_store import JsonStateStore
from harvest_cycle.core.swap_router import SwapRouter
from harvest_cycle.core.tax_harvest import TaxHarvestCoordinator
from harvest_cycle.core.tax_ledger import TaxLedger
from harvest_cycle.integrations.price_feed import JupiterPriceClient
from harvest_cycle.integrations.raydium_api import RaydiumApiClient
from harvest_cycle.integrations.solana_rpc import SolanaRpcClient
from harvest_cycle.integrations.transaction_sender import TransactionSender
from harvest_cycle.logging.cycle_logger import CycleLogger
from harvest_cycle.logging.rate_limited import CircuitBreaker
from harvest_cycle.orchestration.cycle_runner import CycleRunner


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Harvest withheld transfer fees, swap to SOL and distribute to holders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Environment: Set SOLANA_RPC_URL, TOKEN_MINT, RAYDIUM_POOL_ID and wallet keys.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit",
    )
    parser.add_argument(
        "--stats",
        nargs="?",
        const="",
        default=None,
        metavar="DATE",
        help="Print epoch and tax statistics as JSON (optionally for one YYYY-MM-DD epoch)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=LOG_LEVEL_DEFAULT,
        choices=["FULL", "SUMMARY"],
        help=f"Audit log level (default: {LOG_LEVEL_DEFAULT})",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Debug-level diagnostics",
    )
    parser.add_argument(
        "--state-dir",
        type=str,
        default=None,
        help=f"Directory for cycle/tax state (default: $STATE_DIR or {STATE_DIR_DEFAULT})",
    )
    return parser.parse_args()


def print_stats(state_dir: Path, date: str) -> None:
    ledger = EpochLedger(JsonStateStore(state_dir / CYCLE_STATE_FILE))
    tax_ledger = TaxLedger(JsonStateStore(state_dir / TAX_STATE_FILE))
    if date:
        epochs = [ledger.epoch_statistics(date).to_dict()]
    else:
        epochs = [ledger.epoch_statistics(r.epoch).to_dict() for r in ledger.all_epoch_states()]
    print(json.dumps({"epochs": epochs, "tax": tax_ledger.statistics()}, indent=2))


def build_runner(config: HarvestConfig, args: argparse.Namespace, state_dir: Path) -> CycleRunner:
    credentials = load_credentials(os.environ, config)
    reward = credentials.reward

    rpc = SolanaRpcClient(config.rpc_url)
    sender = TransactionSender(rpc, reward)
    raydium = RaydiumApiClient(config.raydium_api_base)
    breaker = CircuitBreaker()

    inspector = HolderInspector(rpc, config.token_mint, breaker=breaker)
    prices = PriceResolver(raydium, JupiterPriceClient(), config.pool_id, config.token_mint, breaker=breaker)
    swap_router = SwapRouter(
        rpc, sender, raydium, reward, config.token_mint, config.pool_id,
        slippage_bps=config.slippage_bps, holder_inspector=inspector,
    )

    excluded = {str(reward.pubkey()), str(credentials.admin.pubkey()), config.treasury_address}
    blacklist = load_blacklist(config.blacklist_path)
    if blacklist:
        print(f"Loaded {len(blacklist)} blacklisted wallets.")
    eligibility = HolderEligibility(
        inspector, blacklist, excluded,
        price_resolver=prices, min_holding_usd=config.min_holding_usd,
        vault_owners=lambda: pool_vault_owners(rpc, swap_router),
    )
    distribution = DistributionEngine(
        rpc, sender, reward, inspector, eligibility,
        price_resolver=prices,
        reward_value_mode=config.reward_value_mode,
        min_payout_token=config.min_payout_token,
        min_payout_usd=config.min_payout_usd,
    )
    coordinator = TaxHarvestCoordinator(
        rpc, sender, inspector, prices, swap_router, distribution,
        TaxLedger(JsonStateStore(state_dir / TAX_STATE_FILE)),
        config, reward, credentials.admin, config.treasury_address,
    )
    cycle_logger = CycleLogger(config.token_mint, log_level=args.log_level, output_dir=LOG_DIR)
    print(f"Audit log: {cycle_logger.filepath}")
    return CycleRunner(EpochLedger(JsonStateStore(state_dir / CYCLE_STATE_FILE)), coordinator, cycle_logger)


def main() -> None:
    """Main entry point."""
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    state_dir = Path(args.state_dir or os.environ.get("STATE_DIR") or STATE_DIR_DEFAULT)

    if args.stats is not None:
        try:
            print_stats(state_dir, args.stats)
        except LedgerWriteError as exc:
            print(f"Error: {exc}")
            sys.exit(1)
        return

    try:
        config = load_config(os.environ)
        state_dir = Path(args.state_dir or config.state_dir)
        runner = build_runner(config, args, state_dir)
    except (ConfigurationError, ValueError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    print(f"Harvest cycle for {config.token_mint} via pool {config.pool_id}")
    print(f"Mode: {config.reward_value_mode}, state: {state_dir}")

    if args.once:
        runner.cycle_logger.log_session_start(config.summary())
        try:
            result = runner.run_cycle()
        finally:
            runner.cycle_logger.log_session_end("single_cycle")
        if result is not None:
            print(json.dumps(result.to_dict(), indent=2))
        return

    runner.run(config.summary())
    print("Shutdown complete.")


if __name__ == "__main__":
    main()
