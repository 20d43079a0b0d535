"""Remote clients: Solana JSON-RPC, Raydium API, SOL/USD price feed."""
from .solana_rpc import SolanaRpcClient
from .transaction_sender import TransactionSender
from .raydium_api import RaydiumApiClient
from .price_feed import JupiterPriceClient

__all__ = ["SolanaRpcClient", "TransactionSender", "RaydiumApiClient", "JupiterPriceClient"]
