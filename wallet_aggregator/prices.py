"""
Price Resolver - USD prices and logos from CoinGecko.

Resolution NEVER raises: a failed lookup yields an unresolved PriceQuote
(price 0, empty logo) and a warning in the log.
"""

import logging
import re
from typing import Any, Optional

from .config import AggregatorConfig, get_config
from .dispatcher import DispatcherPool, RequestSpec
from .models import Chain, PriceQuote


logger = logging.getLogger(__name__)


def normalize_lookup_key(name: str) -> str:
    """Display name -> CoinGecko-style id ("Wrapped Ether" -> "wrapped-ether")."""
    return re.sub(r"\s+", "-", (name or "").strip().lower())


class PriceResolver:
    """
    Resolves USD price and logo per asset.

    Lookup order for tokens: coin id derived from the display name, then
    the contract/mint address on the chain's asset platform.
    """

    LOGO_QUERY = {
        "localization": "false",
        "tickers": "false",
        "market_data": "false",
        "community_data": "false",
        "developer_data": "false",
    }

    def __init__(
        self,
        pool: DispatcherPool,
        config: Optional[AggregatorConfig] = None,
    ) -> None:
        self.config = config or get_config()
        self.pool = pool
        self.base_url = self.config.providers.coingecko_url.rstrip("/")
        self._api_key = self.config.providers.coingecko_api_key

        self._stats = {
            "lookups": 0,
            "price_misses": 0,
            "logo_misses": 0,
            "errors": 0,
        }

    def _params(self, **params: str) -> dict[str, str]:
        if self._api_key:
            params["x_cg_demo_api_key"] = self._api_key
        return params

    async def _get(self, path: str, label: str, **params: str) -> Any:
        spec = RequestSpec(
            method="GET",
            url=f"{self.base_url}/{path}",
            params=self._params(**params),
            label=label,
        )
        return await self.pool.send(spec)

    # ─────────────────────────────────────────────────────────────
    # Raw lookups (these raise on upstream failure)
    # ─────────────────────────────────────────────────────────────

    async def get_price(self, coin_id: str) -> Optional[float]:
        """USD price by CoinGecko coin id; None when the id is unknown."""
        data = await self._get(
            "simple/price",
            f"coingecko price {coin_id}",
            ids=coin_id,
            vs_currencies="usd",
        )
        entry = (data or {}).get(coin_id) or {}
        price = entry.get("usd")
        return float(price) if price is not None else None

    async def get_token_price(
        self,
        platform: str,
        contract_address: str,
    ) -> Optional[float]:
        """USD price by contract/mint address on an asset platform."""
        data = await self._get(
            f"simple/token_price/{platform}",
            f"coingecko token price {contract_address[:10]}",
            contract_addresses=contract_address,
            vs_currencies="usd",
        )
        data = data or {}
        entry = data.get(contract_address.lower()) or data.get(contract_address) or {}
        price = entry.get("usd")
        return float(price) if price is not None else None

    async def get_logo(self, coin_id: str) -> Optional[str]:
        data = await self._get(
            f"coins/{coin_id}",
            f"coingecko coin {coin_id}",
            **self.LOGO_QUERY,
        )
        image = (data or {}).get("image") or {}
        return image.get("small") or image.get("thumb") or None

    # ─────────────────────────────────────────────────────────────
    # Resolution (never raises)
    # ─────────────────────────────────────────────────────────────

    async def resolve_native(self, chain: Chain) -> PriceQuote:
        """USD price of a chain's native asset."""
        self._stats["lookups"] += 1
        try:
            price = await self.get_price(chain.price_id)
        except Exception as e:
            self._stats["errors"] += 1
            logger.warning(f"[{chain.value}] Native price lookup failed: {e}")
            return PriceQuote.unresolved()

        if price is None:
            self._stats["price_misses"] += 1
            return PriceQuote.unresolved()
        return PriceQuote(price_usd=price, price_resolved=True)

    async def resolve_token(
        self,
        lookup_key: str,
        platform: Optional[str] = None,
        contract_address: Optional[str] = None,
        fetch_logo: bool = True,
    ) -> PriceQuote:
        """Price and logo for one token, defaulting whatever fails."""
        self._stats["lookups"] += 1
        quote = PriceQuote.unresolved()

        if lookup_key:
            try:
                price = await self.get_price(lookup_key)
                if price is not None:
                    quote.price_usd = price
                    quote.price_resolved = True
            except Exception as e:
                self._stats["errors"] += 1
                logger.warning(f"Price lookup failed for '{lookup_key}': {e}")

        if not quote.price_resolved and platform and contract_address:
            try:
                price = await self.get_token_price(platform, contract_address)
                if price is not None:
                    quote.price_usd = price
                    quote.price_resolved = True
            except Exception as e:
                self._stats["errors"] += 1
                logger.warning(
                    f"Token price lookup failed for {contract_address} on {platform}: {e}"
                )

        if not quote.price_resolved:
            self._stats["price_misses"] += 1

        if fetch_logo and lookup_key:
            try:
                logo = await self.get_logo(lookup_key)
                if logo:
                    quote.logo_url = logo
                    quote.logo_resolved = True
            except Exception as e:
                self._stats["errors"] += 1
                logger.warning(f"Logo lookup failed for '{lookup_key}': {e}")

        if not quote.logo_resolved:
            self._stats["logo_misses"] += 1

        return quote

    def get_stats(self) -> dict[str, Any]:
        return dict(self._stats)
