"""
Wallet Aggregator - Main orchestrator for the module.

Coordinates:
- Address classification
- Adapter selection (once per request)
- Native balance / tokens / transactions / native price fan-out
- Snapshot assembly

Top-level adapter failures abort the request as WalletFetchFailedError.
Per-item enrichment failures are absorbed inside the adapters.
"""

import asyncio
import logging
from typing import Any, Optional

from .adapters import ChainAdapter, EthereumAdapter, SolanaAdapter
from .classifier import classify, validate_address
from .config import AggregatorConfig, get_config
from .dispatcher import DispatcherPool
from .exceptions import InvalidAddressError, WalletFetchFailedError
from .models import AddressValidation, Chain, WalletSnapshot
from .prices import PriceResolver
from .units import usd_value


logger = logging.getLogger(__name__)


GENERIC_FETCH_ERROR = "Failed to fetch wallet data"


class WalletAggregator:
    """
    Builds a unified WalletSnapshot for an Ethereum or Solana address.

    Usage:
        async with WalletAggregator() as aggregator:
            snapshot = await aggregator.get_wallet_data("0x...")
            print(snapshot.native_balance, len(snapshot.tokens))
    """

    def __init__(
        self,
        config: Optional[AggregatorConfig] = None,
        pool: Optional[DispatcherPool] = None,
        prices: Optional[PriceResolver] = None,
        adapters: Optional[dict[Chain, ChainAdapter]] = None,
    ) -> None:
        self.config = config or get_config()
        self.pool = pool or DispatcherPool(self.config)
        self.prices = prices or PriceResolver(self.pool, self.config)
        self._adapters: dict[Chain, ChainAdapter] = adapters or {
            Chain.ETHEREUM: EthereumAdapter(self.pool, self.prices, self.config),
            Chain.SOLANA: SolanaAdapter(self.pool, self.prices, self.config),
        }

        self._stats = {
            "requests": 0,
            "invalid_addresses": 0,
            "succeeded": 0,
            "failed": 0,
        }

    @staticmethod
    def validate_address(address: str) -> AddressValidation:
        """Format-only check, no network access."""
        return validate_address(address)

    def get_adapter(self, chain: Chain) -> ChainAdapter:
        adapter = self._adapters.get(chain)
        if adapter is None:
            raise WalletFetchFailedError(chain, reason="No adapter configured")
        return adapter

    async def get_wallet_data(self, address: str) -> WalletSnapshot:
        """
        Fetch and assemble a wallet snapshot.

        Raises:
            InvalidAddressError: address matches no supported format
                (no network call is made)
            WalletFetchFailedError: a top-level balance/token/transaction
                call failed
        """
        self._stats["requests"] += 1

        chain = classify(address)
        if chain is None:
            self._stats["invalid_addresses"] += 1
            logger.info(f"Rejected unrecognized address: {address!r}")
            raise InvalidAddressError(address)

        adapter = self.get_adapter(chain)
        logger.info(f"[{chain.value}] Fetching wallet data for {address}")

        tasks = [
            asyncio.ensure_future(adapter.get_native_balance(address)),
            asyncio.ensure_future(adapter.get_token_balances(address)),
            asyncio.ensure_future(adapter.get_transactions(address)),
            asyncio.ensure_future(self.prices.resolve_native(chain)),
        ]
        try:
            native_balance, tokens, transactions, native_quote = await asyncio.gather(*tasks)
        except Exception as e:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

            self._stats["failed"] += 1
            logger.error(f"[{chain.value}] Wallet fetch failed for {address}: {e}")
            raise WalletFetchFailedError(chain, reason=str(e)) from e

        native_price = native_quote.price_usd if native_quote.price_resolved else 0.0
        snapshot = WalletSnapshot(
            address=address,
            chain=chain,
            native_balance=native_balance,
            native_balance_usd=usd_value(native_balance, native_price),
            tokens=tokens,
            transactions=transactions,
            native_price_resolved=native_quote.price_resolved,
        )

        self._stats["succeeded"] += 1
        logger.info(
            f"[{chain.value}] {address}: {len(tokens)} tokens, "
            f"{len(transactions)} transactions"
        )
        return snapshot

    async def fetch_wallet_data(self, address: str) -> dict[str, Any]:
        """
        Collaborator-facing variant: snapshot dict or {"error": message}.

        NEVER raises for invalid addresses or upstream failures.
        """
        try:
            snapshot = await self.get_wallet_data(address)
        except InvalidAddressError as e:
            return {"error": e.message}
        except WalletFetchFailedError:
            return {"error": GENERIC_FETCH_ERROR}
        return snapshot.to_dict()

    def get_stats(self) -> dict[str, Any]:
        """Get module statistics."""
        return {
            **self._stats,
            "adapters": {c.value: a.get_stats() for c, a in self._adapters.items()},
            "prices": self.prices.get_stats(),
            "dispatchers": self.pool.get_stats(),
        }

    async def close(self) -> None:
        """Cleanup resources."""
        for adapter in self._adapters.values():
            await adapter.close()
        await self.pool.close()

    async def __aenter__(self) -> "WalletAggregator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


# Singleton instance
_default_aggregator: Optional[WalletAggregator] = None


def get_aggregator() -> WalletAggregator:
    """Get the default wallet aggregator."""
    global _default_aggregator
    if _default_aggregator is None:
        _default_aggregator = WalletAggregator()
    return _default_aggregator


async def get_wallet_data(address: str) -> dict[str, Any]:
    """
    Convenience function for the HTTP/CLI layer.

    Returns the snapshot as a JSON-ready dict, or {"error": message}.
    """
    return await get_aggregator().fetch_wallet_data(address)
