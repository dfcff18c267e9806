"""
Price Resolver Tests.

Resolution never raises; failures show up as unresolved quotes.
"""

import pytest

from wallet_aggregator.config import AggregatorConfig, ProviderConfig
from wallet_aggregator.dispatcher import DispatcherPool
from wallet_aggregator.models import Chain
from wallet_aggregator.prices import PriceResolver, normalize_lookup_key

from conftest import COINGECKO_HOST, FakeTransport, route_key


class TestNormalizeLookupKey:

    @pytest.mark.parametrize("name,expected", [
        ("USD Coin", "usd-coin"),
        ("Wrapped  Ether ", "wrapped-ether"),
        ("Chainlink", "chainlink"),
        ("", ""),
        (None, ""),
    ])
    def test_normalize(self, name, expected):
        assert normalize_lookup_key(name) == expected


class TestResolveNative:

    @pytest.mark.asyncio
    async def test_native_price(self, prices, transport):
        quote = await prices.resolve_native(Chain.ETHEREUM)

        assert quote.price_usd == 2000.0
        assert quote.price_resolved is True

        request = transport.requests[0]
        assert request.host == COINGECKO_HOST
        assert request.params["ids"] == "ethereum"
        assert request.params["vs_currencies"] == "usd"
        assert "x_cg_demo_api_key" not in request.params

    @pytest.mark.asyncio
    async def test_solana_native_price(self, prices):
        quote = await prices.resolve_native(Chain.SOLANA)

        assert quote.price_usd == 100.0

    @pytest.mark.asyncio
    async def test_unknown_id_is_unresolved(self, prices, router):
        router.routes["simple/price"] = {}

        quote = await prices.resolve_native(Chain.ETHEREUM)

        assert quote.price_usd == 0.0
        assert quote.price_resolved is False
        assert prices.get_stats()["price_misses"] == 1

    @pytest.mark.asyncio
    async def test_upstream_failure_is_absorbed(self, prices, router, transport):
        router.routes["simple/price"] = (500, "server error")

        quote = await prices.resolve_native(Chain.ETHEREUM)

        assert quote.price_resolved is False
        assert len(transport.requests) == 4
        assert prices.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_api_key_is_sent(self, clock, router):
        config = AggregatorConfig(providers=ProviderConfig(coingecko_api_key="cg-key"))
        transport = FakeTransport(handler=router)
        pool = DispatcherPool(config, transport=transport, clock=clock, sleep=clock.sleep)
        resolver = PriceResolver(pool, config)

        await resolver.resolve_native(Chain.SOLANA)

        assert transport.requests[0].params["x_cg_demo_api_key"] == "cg-key"


class TestResolveToken:

    @pytest.mark.asyncio
    async def test_resolves_by_coin_id(self, prices, transport):
        quote = await prices.resolve_token("usd-coin", platform="ethereum", contract_address="0xabc")

        assert quote.price_usd == 1.0
        assert quote.price_resolved is True
        assert quote.logo_url == "https://img.example/usd-coin.png"
        assert quote.logo_resolved is True
        # id hit, so no contract lookup
        assert [route_key(r) for r in transport.requests] == ["simple/price", "coins/usd-coin"]

    @pytest.mark.asyncio
    async def test_falls_back_to_contract_address(self, prices, router):
        router.routes["simple/token_price/*"] = {"0xabc": {"usd": 3.5}}

        quote = await prices.resolve_token(
            "some-unlisted-token",
            platform="ethereum",
            contract_address="0xABC",
        )

        assert quote.price_usd == 3.5
        assert quote.price_resolved is True
        # coins/<id> returns 404 for unknown ids
        assert quote.logo_resolved is False
        assert quote.logo_url == ""

    @pytest.mark.asyncio
    async def test_contract_only_lookup(self, prices, router, transport):
        router.routes["simple/token_price/*"] = {"Mint111": {"usd": 0.25}}

        quote = await prices.resolve_token(
            "",
            platform="solana",
            contract_address="Mint111",
            fetch_logo=False,
        )

        assert quote.price_usd == 0.25
        assert [route_key(r) for r in transport.requests] == ["simple/token_price/solana"]
        assert transport.requests[0].params["contract_addresses"] == "Mint111"

    @pytest.mark.asyncio
    async def test_nothing_resolves(self, prices):
        quote = await prices.resolve_token(
            "no-such-coin",
            platform="ethereum",
            contract_address="0xdead",
        )

        assert quote.price_usd == 0.0
        assert quote.price_resolved is False
        assert quote.logo_resolved is False

        stats = prices.get_stats()
        assert stats["price_misses"] == 1
        assert stats["logo_misses"] == 1

    @pytest.mark.asyncio
    async def test_logo_skipped_when_not_requested(self, prices, transport):
        await prices.resolve_token("chainlink", fetch_logo=False)

        assert [route_key(r) for r in transport.requests] == ["simple/price"]

    @pytest.mark.asyncio
    async def test_thumb_used_when_small_missing(self, prices, router):
        router.routes["coins/*"] = {"image": {"thumb": "https://img.example/thumb.png"}}

        quote = await prices.resolve_token("chainlink")

        assert quote.logo_url == "https://img.example/thumb.png"
