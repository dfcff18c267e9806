"""
Wallet Aggregator Configuration - Provider endpoints and request limits.

API keys are loaded from environment variables (a local .env file is
honoured). Keys are optional; providers fall back to their free tiers
where one exists.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from dotenv import find_dotenv, load_dotenv

from .exceptions import ConfigurationError


logger = logging.getLogger(__name__)


SOLANA_PUBLIC_RPC_URL = "https://api.mainnet-beta.solana.com"
SOLANA_TOKEN_LIST_URL = (
    "https://raw.githubusercontent.com/solana-labs/token-list/main/"
    "src/tokens/solana.tokenlist.json"
)


@dataclass
class ProviderConfig:
    """Upstream provider endpoints and credentials."""

    # Ethereum
    alchemy_eth_url: str = "https://eth-mainnet.g.alchemy.com/v2/"
    alchemy_api_key: Optional[str] = None
    etherscan_url: str = "https://api.etherscan.io/v2/api"
    etherscan_api_key: Optional[str] = None
    etherscan_chain_id: int = 1

    # Solana
    solana_rpc_url: str = SOLANA_PUBLIC_RPC_URL
    helius_rpc_url: str = "https://mainnet.helius-rpc.com/"
    helius_api_key: Optional[str] = None
    token_list_url: str = SOLANA_TOKEN_LIST_URL

    # Market data
    coingecko_url: str = "https://api.coingecko.com/api/v3"
    coingecko_api_key: Optional[str] = None

    @property
    def eth_rpc_endpoint(self) -> str:
        return f"{self.alchemy_eth_url}{self.alchemy_api_key or ''}"

    @property
    def solana_rpc_endpoint(self) -> str:
        """Helius when a key is configured, the public RPC otherwise."""
        if self.helius_api_key:
            return f"{self.helius_rpc_url}?api-key={self.helius_api_key}"
        return self.solana_rpc_url

    def key_presence(self) -> dict[str, bool]:
        return {
            "ALCHEMY_API_KEY": bool(self.alchemy_api_key),
            "ETHERSCAN_API_KEY": bool(self.etherscan_api_key),
            "HELIUS_API_KEY": bool(self.helius_api_key),
            "COINGECKO_API_KEY": bool(self.coingecko_api_key),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "alchemy_eth_url": self.alchemy_eth_url,
            "etherscan_url": self.etherscan_url,
            "etherscan_chain_id": self.etherscan_chain_id,
            "solana_rpc_url": self.solana_rpc_url,
            "helius_rpc_url": self.helius_rpc_url,
            "token_list_url": self.token_list_url,
            "coingecko_url": self.coingecko_url,
            "keys": self.key_presence(),
        }


@dataclass
class AggregatorConfig:
    """Main configuration for the wallet aggregator."""

    providers: ProviderConfig = field(default_factory=ProviderConfig)

    # Outbound rate limiting (applied per upstream host)
    min_request_interval_seconds: float = 0.5
    max_retries: int = 3
    backoff_base_seconds: float = 2.0
    request_timeout_seconds: float = 30.0

    # Fan-out for N+1 metadata/detail lookups
    fanout_concurrency: int = 8

    # List caps
    eth_tx_limit: int = 10
    sol_signature_limit: int = 5
    sol_detail_limit: int = 5

    def validate(self) -> None:
        """Raise ConfigurationError on out-of-range values."""
        if self.min_request_interval_seconds < 0:
            raise ConfigurationError("min_request_interval_seconds must be >= 0")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be >= 0")
        if self.backoff_base_seconds < 1:
            raise ConfigurationError("backoff_base_seconds must be >= 1")
        if self.fanout_concurrency < 1:
            raise ConfigurationError("fanout_concurrency must be >= 1")
        for name in ("eth_tx_limit", "sol_signature_limit", "sol_detail_limit"):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1")

    @classmethod
    def from_env(cls) -> "AggregatorConfig":
        """Build configuration from environment variables."""
        load_dotenv(find_dotenv(usecwd=True))

        providers = ProviderConfig(
            alchemy_api_key=os.environ.get("ALCHEMY_API_KEY") or None,
            etherscan_api_key=os.environ.get("ETHERSCAN_API_KEY") or None,
            helius_api_key=os.environ.get("HELIUS_API_KEY") or None,
            coingecko_api_key=os.environ.get("COINGECKO_API_KEY") or None,
            solana_rpc_url=os.environ.get("SOLANA_RPC_URL") or SOLANA_PUBLIC_RPC_URL,
        )
        config = cls(providers=providers)

        interval = os.environ.get("WALLET_MIN_REQUEST_INTERVAL")
        if interval:
            try:
                config.min_request_interval_seconds = float(interval)
            except ValueError as e:
                raise ConfigurationError(
                    f"WALLET_MIN_REQUEST_INTERVAL must be a number, got {interval!r}"
                ) from e
        retries = os.environ.get("WALLET_MAX_RETRIES")
        if retries:
            try:
                config.max_retries = int(retries)
            except ValueError as e:
                raise ConfigurationError(
                    f"WALLET_MAX_RETRIES must be an integer, got {retries!r}"
                ) from e

        config.validate()
        logger.info(f"API keys loaded: {providers.key_presence()}")
        return config

    def to_dict(self) -> dict[str, Any]:
        return {
            "providers": self.providers.to_dict(),
            "min_request_interval_seconds": self.min_request_interval_seconds,
            "max_retries": self.max_retries,
            "backoff_base_seconds": self.backoff_base_seconds,
            "request_timeout_seconds": self.request_timeout_seconds,
            "fanout_concurrency": self.fanout_concurrency,
            "eth_tx_limit": self.eth_tx_limit,
            "sol_signature_limit": self.sol_signature_limit,
            "sol_detail_limit": self.sol_detail_limit,
        }


# Default configuration instance
_default_config: Optional[AggregatorConfig] = None


def get_config() -> AggregatorConfig:
    """Get the default configuration."""
    global _default_config
    if _default_config is None:
        _default_config = AggregatorConfig.from_env()
    return _default_config


def set_config(config: AggregatorConfig) -> None:
    """Set the default configuration."""
    global _default_config
    _default_config = config
