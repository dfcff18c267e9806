"""
Wallet Aggregator Module.

Aggregates on-chain wallet state (native balance, token holdings, recent
transactions) for Ethereum and Solana addresses, normalized into one
WalletSnapshot model.

Providers:
- Alchemy JSON-RPC + Etherscan V2 for Ethereum
- Helius (or public mainnet RPC) + Solana token list for Solana
- CoinGecko for USD prices and logos

Every outbound call goes through a per-host RateLimitedDispatcher
(500 ms minimum spacing, exponential backoff on 429/5xx).

Usage:
    from wallet_aggregator import WalletAggregator

    async with WalletAggregator() as aggregator:
        snapshot = await aggregator.get_wallet_data("0x...")

        print(f"Balance: {snapshot.native_balance} {snapshot.chain.native_symbol}")
        print(f"USD: {snapshot.native_balance_usd:.2f}")
        for token in snapshot.tokens:
            print(f"  {token.symbol}: {token.balance}")

Address validation (offline):
    from wallet_aggregator import validate_address

    validate_address("0x...").to_dict()  # {"isValid": True, "blockchain": "ethereum"}
"""

from .adapters import ChainAdapter, EthereumAdapter, SolanaAdapter
from .aggregator import WalletAggregator, get_aggregator, get_wallet_data
from .classifier import classify, validate_address
from .config import AggregatorConfig, ProviderConfig, get_config, set_config
from .dispatcher import (
    DispatcherPool,
    DispatchState,
    HttpTransport,
    RateLimitedDispatcher,
    RateLimiter,
    RequestSpec,
    TransportResponse,
)
from .exceptions import (
    ConfigurationError,
    InvalidAddressError,
    RateLimitError,
    UpstreamError,
    UpstreamUnavailableError,
    WalletAggregatorError,
    WalletFetchFailedError,
)
from .fanout import gather_bounded
from .models import (
    AddressValidation,
    Chain,
    PriceQuote,
    TokenBalance,
    Transaction,
    TransactionStatus,
    TransactionType,
    WalletSnapshot,
)
from .prices import PriceResolver, normalize_lookup_key


__all__ = [
    # Main aggregator
    "WalletAggregator",
    "get_aggregator",
    "get_wallet_data",

    # Classification
    "classify",
    "validate_address",

    # Adapters
    "ChainAdapter",
    "EthereumAdapter",
    "SolanaAdapter",

    # Dispatch
    "DispatcherPool",
    "DispatchState",
    "HttpTransport",
    "RateLimitedDispatcher",
    "RateLimiter",
    "RequestSpec",
    "TransportResponse",
    "gather_bounded",

    # Prices
    "PriceResolver",
    "normalize_lookup_key",

    # Models
    "AddressValidation",
    "Chain",
    "PriceQuote",
    "TokenBalance",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "WalletSnapshot",

    # Config
    "AggregatorConfig",
    "ProviderConfig",
    "get_config",
    "set_config",

    # Exceptions
    "WalletAggregatorError",
    "InvalidAddressError",
    "UpstreamError",
    "RateLimitError",
    "UpstreamUnavailableError",
    "WalletFetchFailedError",
    "ConfigurationError",
]


# Version
__version__ = "1.0.0"
