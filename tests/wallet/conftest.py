"""
Shared fixtures for wallet aggregator tests.

FakeTransport records every request and answers from a scripted list or
an UpstreamRouter; FakeClock makes spacing/backoff timing deterministic.
"""

import json
from typing import Any, Callable, Optional, Union
from urllib.parse import urlparse

import pytest

from wallet_aggregator.config import AggregatorConfig, ProviderConfig
from wallet_aggregator.dispatcher import DispatcherPool, RequestSpec, TransportResponse
from wallet_aggregator.prices import PriceResolver


ETH_ADDRESS = "0xAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAaAa"
SOL_ADDRESS = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
OTHER_ETH = "0x1111111111111111111111111111111111111111"
OTHER_SOL = "3Kz9QbnRmKD6xoHqTBVJvGzoc7jEqqFLM4AJQyVb7tYo"

USDC_CONTRACT = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
LINK_CONTRACT = "0x514910771af9ca656af840dff83e8264ecf986ca"
USDT_CONTRACT = "0xdac17f958d2ee523a2206206994597c13d831ec7"
DUST_CONTRACT = "0x2222222222222222222222222222222222222222"

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
UNLISTED_MINT = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
EMPTY_MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"

ALCHEMY_HOST = "eth-mainnet.g.alchemy.com"
ETHERSCAN_HOST = "api.etherscan.io"
HELIUS_HOST = "mainnet.helius-rpc.com"
COINGECKO_HOST = "api.coingecko.com"
TOKEN_LIST_HOST = "raw.githubusercontent.com"

PRICES = {
    "ethereum": 2000.0,
    "solana": 100.0,
    "usd-coin": 1.0,
    "chainlink": 15.0,
    "tether": 1.0,
}


# ============================================================
# FAKES
# ============================================================

class FakeClock:
    """Monotonic clock whose sleep() advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


Reply = Union[TransportResponse, Exception, tuple, dict, list, str]


class FakeTransport:
    """Records requests; answers from `responses` first, then `handler`."""

    def __init__(
        self,
        handler: Optional[Callable[[RequestSpec], Reply]] = None,
        responses: Optional[list[Reply]] = None,
    ) -> None:
        self.handler = handler
        self.responses = list(responses or [])
        self.requests: list[RequestSpec] = []
        self.closed = False

    async def request(self, spec: RequestSpec) -> TransportResponse:
        self.requests.append(spec)
        if self.responses:
            reply = self.responses.pop(0)
        elif self.handler is not None:
            reply = self.handler(spec)
        else:
            reply = (200, {})
        return to_response(reply)

    @property
    def hosts(self) -> set[str]:
        return {spec.host for spec in self.requests}

    def rpc_methods(self) -> list[str]:
        return [
            spec.json["method"] for spec in self.requests
            if isinstance(spec.json, dict) and "method" in spec.json
        ]

    async def close(self) -> None:
        self.closed = True


def to_response(reply: Reply) -> TransportResponse:
    if isinstance(reply, Exception):
        raise reply
    if isinstance(reply, TransportResponse):
        return reply
    if isinstance(reply, tuple):
        status, payload = reply
    else:
        status, payload = 200, reply
    body = payload if isinstance(payload, str) else json.dumps(payload)
    return TransportResponse(status=status, body=body)


def rpc(result: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": 1, "result": result}


def rpc_error(message: str = "boom") -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": message}}


def route_key(spec: RequestSpec) -> str:
    """rpc method, etherscan action, token list, or coingecko path."""
    if isinstance(spec.json, dict) and "method" in spec.json:
        return spec.json["method"]
    if spec.host == ETHERSCAN_HOST:
        return f"etherscan:{(spec.params or {}).get('action')}"
    if spec.url.endswith("tokenlist.json"):
        return "tokenlist"
    path = urlparse(spec.url).path
    return path.split("/api/v3/", 1)[-1]


class UpstreamRouter:
    """
    Dispatches fake requests by route key.

    Route values are static payloads or callables taking the RequestSpec.
    "coins/*" style keys match any path under that prefix.
    """

    def __init__(self, routes: Optional[dict[str, Any]] = None) -> None:
        self.routes = dict(routes or {})

    def __call__(self, spec: RequestSpec) -> Reply:
        key = route_key(spec)
        handler = self.routes.get(key)
        if handler is None:
            prefix = key.rsplit("/", 1)[0] + "/*"
            handler = self.routes.get(prefix)
        if handler is None:
            return (404, {"error": f"no route for {key}"})
        return handler(spec) if callable(handler) else handler


# ============================================================
# CANNED UPSTREAMS
# ============================================================

def coingecko_routes() -> dict[str, Any]:
    def simple_price(spec: RequestSpec) -> Reply:
        coin_id = spec.params["ids"]
        if coin_id in PRICES:
            return {coin_id: {"usd": PRICES[coin_id]}}
        return {}

    def coin(spec: RequestSpec) -> Reply:
        coin_id = urlparse(spec.url).path.rsplit("/", 1)[-1]
        if coin_id in PRICES:
            return {"id": coin_id, "image": {"small": f"https://img.example/{coin_id}.png"}}
        return (404, {"error": "coin not found"})

    return {
        "simple/price": simple_price,
        "simple/token_price/*": {},
        "coins/*": coin,
    }


TOKEN_METADATA = {
    USDC_CONTRACT: {"name": "USD Coin", "symbol": "USDC", "decimals": 6, "logo": None},
    LINK_CONTRACT: {
        "name": "Chainlink",
        "symbol": "LINK",
        "decimals": 18,
        "logo": "https://static.alchemyapi.io/images/assets/1975.png",
    },
    USDT_CONTRACT: {"name": "Tether", "symbol": "USDT", "decimals": 6, "logo": None},
}


def etherscan_rows() -> list[dict[str, str]]:
    wallet = ETH_ADDRESS.lower()
    return [
        {
            "hash": "0xsend",
            "timeStamp": "1700000300",
            "blockNumber": "18000003",
            "from": wallet,
            "to": OTHER_ETH,
            "value": str(5 * 10**17),
            "gasUsed": "21000",
            "gasPrice": "20000000000",
            "isError": "0",
            "txreceipt_status": "1",
        },
        {
            "hash": "0xreceive",
            "timeStamp": "1700000200",
            "blockNumber": "18000002",
            "from": OTHER_ETH,
            "to": wallet,
            "value": str(10**18),
            "gasUsed": "21000",
            "gasPrice": "10000000000",
            "isError": "1",
            "txreceipt_status": "0",
        },
        {
            "hash": "0xother",
            "timeStamp": "1700000100",
            "blockNumber": "18000001",
            "from": OTHER_ETH,
            "to": DUST_CONTRACT,
            "value": "0",
            "gasUsed": "50000",
            "gasPrice": "1000000000",
            "isError": "0",
            "txreceipt_status": "1",
        },
    ]


def ethereum_routes() -> dict[str, Any]:
    def metadata(spec: RequestSpec) -> Reply:
        contract = spec.json["params"][0]
        return rpc(TOKEN_METADATA.get(contract, {"name": None, "symbol": None, "decimals": None}))

    return {
        "eth_getBalance": rpc("0xde0b6b3a7640000"),
        "alchemy_getTokenBalances": rpc({
            "address": ETH_ADDRESS,
            "tokenBalances": [
                {"contractAddress": USDC_CONTRACT, "tokenBalance": hex(2_500_000)},
                {"contractAddress": LINK_CONTRACT, "tokenBalance": hex(3 * 10**18)},
                {"contractAddress": USDT_CONTRACT, "tokenBalance": hex(10**6)},
                {"contractAddress": DUST_CONTRACT, "tokenBalance": "0x" + "0" * 64},
            ],
        }),
        "alchemy_getTokenMetadata": metadata,
        "etherscan:txlist": {"status": "1", "message": "OK", "result": etherscan_rows()},
    }


def token_account(mint: str, amount: str, decimals: int) -> dict[str, Any]:
    return {
        "pubkey": f"acct-{mint[:8]}",
        "account": {
            "data": {
                "parsed": {
                    "info": {
                        "mint": mint,
                        "owner": SOL_ADDRESS,
                        "tokenAmount": {"amount": amount, "decimals": decimals},
                    },
                    "type": "account",
                },
                "program": "spl-token",
            },
        },
    }


def solana_transaction(
    keys: list[dict[str, Any]],
    pre: list[int],
    post: list[int],
    fee: int = 5000,
    err: Any = None,
    block_time: Optional[int] = 1700000000,
) -> dict[str, Any]:
    return {
        "blockTime": block_time,
        "slot": 250000000,
        "meta": {"fee": fee, "err": err, "preBalances": pre, "postBalances": post},
        "transaction": {"message": {"accountKeys": keys}},
    }


def key(pubkey: str, signer: bool = False, writable: bool = True) -> dict[str, Any]:
    return {"pubkey": pubkey, "signer": signer, "writable": writable, "source": "transaction"}


SOLANA_TRANSACTIONS = {
    # wallet pays fee and sends 1 SOL
    "sig-send": solana_transaction(
        keys=[key(SOL_ADDRESS, signer=True), key(OTHER_SOL)],
        pre=[5_000_000_000, 0],
        post=[3_999_995_000, 1_000_000_000],
    ),
    # someone else pays, wallet receives 0.25 SOL
    "sig-receive": solana_transaction(
        keys=[key(OTHER_SOL, signer=True), key(SOL_ADDRESS)],
        pre=[2_000_000_000, 100_000_000],
        post=[1_749_995_000, 350_000_000],
    ),
}


def solana_routes() -> dict[str, Any]:
    def get_transaction(spec: RequestSpec) -> Reply:
        signature = spec.json["params"][0]
        if signature in SOLANA_TRANSACTIONS:
            return rpc(SOLANA_TRANSACTIONS[signature])
        return rpc_error("Transaction not available")

    return {
        "getBalance": rpc({"context": {"slot": 1}, "value": 1_500_000_000}),
        "getTokenAccountsByOwner": rpc({
            "context": {"slot": 1},
            "value": [
                token_account(USDC_MINT, "2500000", 6),
                token_account(UNLISTED_MINT, "1234", 3),
                token_account(EMPTY_MINT, "0", 5),
            ],
        }),
        "tokenlist": {
            "name": "Solana Token List",
            "tokens": [
                {
                    "address": USDC_MINT,
                    "symbol": "USDC",
                    "name": "USD Coin",
                    "decimals": 6,
                    "logoURI": "https://raw.githubusercontent.com/usdc.png",
                },
            ],
        },
        "getSignaturesForAddress": rpc([
            {"signature": "sig-send", "blockTime": 1700000300, "confirmationStatus": "finalized", "err": None},
            {"signature": "sig-receive", "blockTime": 1700000200, "confirmationStatus": "processed", "err": None},
            {"signature": "sig-missing", "blockTime": 1700000100, "confirmationStatus": "finalized", "err": None},
        ]),
        "getTransaction": get_transaction,
    }


def all_routes() -> dict[str, Any]:
    return {**coingecko_routes(), **ethereum_routes(), **solana_routes()}


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> AggregatorConfig:
    return AggregatorConfig(
        providers=ProviderConfig(
            alchemy_api_key="alchemy-key",
            etherscan_api_key="etherscan-key",
            helius_api_key="helius-key",
        ),
    )


@pytest.fixture
def router() -> UpstreamRouter:
    return UpstreamRouter(all_routes())


@pytest.fixture
def transport(router: UpstreamRouter) -> FakeTransport:
    return FakeTransport(handler=router)


@pytest.fixture
def pool(config: AggregatorConfig, transport: FakeTransport, clock: FakeClock) -> DispatcherPool:
    return DispatcherPool(config, transport=transport, clock=clock, sleep=clock.sleep)


@pytest.fixture
def prices(pool: DispatcherPool, config: AggregatorConfig) -> PriceResolver:
    return PriceResolver(pool, config)
