"""
Base Chain Adapter - Capability set every supported chain implements.

An adapter is selected once per request from the address format and
never re-branched downstream. Top-level calls (native balance, token
list, transaction list) raise on failure; per-item enrichment inside
them is absorbed and defaulted.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..config import AggregatorConfig, get_config
from ..dispatcher import DispatcherPool, RequestSpec
from ..exceptions import UpstreamUnavailableError
from ..models import Chain, PriceQuote, TokenBalance, Transaction
from ..prices import PriceResolver, normalize_lookup_key
from ..units import usd_value


logger = logging.getLogger(__name__)


class ChainAdapter(ABC):
    """
    Abstract base class for chain adapters.

    All subclasses must implement:
    - chain - Property returning the chain
    - get_native_balance() - Native balance as a decimal string
    - get_token_balances() - Fungible token holdings
    - get_transactions() - Recent transactions, newest first
    """

    def __init__(
        self,
        pool: DispatcherPool,
        prices: PriceResolver,
        config: Optional[AggregatorConfig] = None,
    ) -> None:
        self.config = config or get_config()
        self.pool = pool
        self.prices = prices
        self._request_id = 0

        self._stats = {
            "rpc_calls": 0,
            "items_defaulted": 0,
            "items_skipped": 0,
        }

    @property
    @abstractmethod
    def chain(self) -> Chain:
        """Return the chain this adapter handles."""
        pass

    @abstractmethod
    async def get_native_balance(self, address: str) -> str:
        """Native balance in display units (ETH, SOL)."""
        pass

    @abstractmethod
    async def get_token_balances(self, address: str) -> list[TokenBalance]:
        """Token holdings with price/logo enrichment applied."""
        pass

    @abstractmethod
    async def get_transactions(self, address: str) -> list[Transaction]:
        """Recent transactions, reverse-chronological."""
        pass

    # ─────────────────────────────────────────────────────────────
    # JSON-RPC
    # ─────────────────────────────────────────────────────────────

    def _next_request_id(self) -> int:
        """Get next JSON-RPC request ID."""
        self._request_id += 1
        return self._request_id

    async def _rpc_call(
        self,
        url: str,
        method: str,
        params: list[Any],
    ) -> Any:
        """Make a JSON-RPC call and return its `result`."""
        self._stats["rpc_calls"] += 1
        spec = RequestSpec(
            method="POST",
            url=url,
            json={
                "jsonrpc": "2.0",
                "id": self._next_request_id(),
                "method": method,
                "params": params,
            },
            label=f"{self.chain.value} rpc {method}",
        )
        data = await self.pool.send(spec)

        if not isinstance(data, dict):
            raise UpstreamUnavailableError(
                f"Malformed RPC response for {method}",
                chain=self.chain,
            )
        if data.get("error"):
            error = data["error"]
            message = error.get("message", "Unknown") if isinstance(error, dict) else str(error)
            raise UpstreamUnavailableError(
                f"RPC error for {method}: {message}",
                chain=self.chain,
                details={"error": error},
            )
        if "result" not in data:
            raise UpstreamUnavailableError(
                f"RPC response for {method} has no result",
                chain=self.chain,
            )
        return data["result"]

    # ─────────────────────────────────────────────────────────────
    # Enrichment
    # ─────────────────────────────────────────────────────────────

    async def _quote_token(
        self,
        display_name: str,
        token_address: str,
        fetch_logo: bool = True,
    ) -> PriceQuote:
        """Price/logo lookup that never aborts the surrounding fetch."""
        lookup_key = normalize_lookup_key(display_name)
        try:
            return await self.prices.resolve_token(
                lookup_key,
                platform=self.chain.platform,
                contract_address=token_address,
                fetch_logo=fetch_logo,
            )
        except Exception as e:
            logger.warning(
                f"[{self.chain.value}] Price resolution failed for {token_address}: {e}"
            )
            self._stats["items_defaulted"] += 1
            return PriceQuote.unresolved()

    @staticmethod
    def _apply_quote(token: TokenBalance, quote: PriceQuote) -> TokenBalance:
        token.price_usd = quote.price_usd if quote.price_resolved else 0.0
        token.price_resolved = quote.price_resolved
        token.balance_usd = usd_value(token.balance, token.price_usd)
        if not token.logo_url:
            token.logo_url = quote.logo_url
            token.logo_resolved = quote.logo_resolved
        return token

    def get_stats(self) -> dict[str, Any]:
        return {**self._stats, "chain": self.chain.value}

    async def close(self) -> None:
        """Cleanup resources. Override if needed."""
        pass
