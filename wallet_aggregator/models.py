"""
Wallet Aggregator Data Models - Unified wallet snapshot structures.

All entities are created fresh per request and never cached or persisted.
Balances are decimal strings; USD valuations are floats (display only).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class Chain(Enum):
    """Supported blockchain networks."""
    ETHEREUM = "ethereum"
    SOLANA = "solana"

    @property
    def native_symbol(self) -> str:
        return _NATIVE_SYMBOLS[self]

    @property
    def native_decimals(self) -> int:
        return _NATIVE_DECIMALS[self]

    @property
    def price_id(self) -> str:
        """CoinGecko coin id of the native asset."""
        return self.value

    @property
    def platform(self) -> str:
        """CoinGecko asset platform id for contract/mint price lookups."""
        return self.value


_NATIVE_SYMBOLS: dict[Chain, str] = {
    Chain.ETHEREUM: "ETH",
    Chain.SOLANA: "SOL",
}

_NATIVE_DECIMALS: dict[Chain, int] = {
    Chain.ETHEREUM: 18,  # wei
    Chain.SOLANA: 9,     # lamports
}


class TransactionStatus(Enum):
    """Outcome of a transaction."""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class TransactionType(Enum):
    """Direction of a transaction relative to the queried wallet."""
    SEND = "send"
    RECEIVE = "receive"
    SWAP = "swap"
    OTHER = "other"


@dataclass
class PriceQuote:
    """
    Result of a price/logo lookup.

    The resolved flags distinguish "price known to be zero" from
    "price could not be resolved".
    """
    price_usd: float = 0.0
    logo_url: str = ""
    price_resolved: bool = False
    logo_resolved: bool = False

    @classmethod
    def unresolved(cls) -> "PriceQuote":
        return cls()


@dataclass
class TokenBalance:
    """
    Fungible token holding of a wallet.

    `balance` is already divided by 10**decimals.
    """
    token_address: str  # ERC-20 contract or SPL mint
    symbol: str
    name: str
    decimals: int
    balance: str
    balance_usd: float = 0.0
    logo_url: Optional[str] = None

    price_usd: float = 0.0
    price_resolved: bool = False
    logo_resolved: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "tokenAddress": self.token_address,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "balance": self.balance,
            "balanceUsd": self.balance_usd,
            "logoUrl": self.logo_url,
            "priceUsd": self.price_usd,
            "priceResolved": self.price_resolved,
            "logoResolved": self.logo_resolved,
        }


@dataclass
class Transaction:
    """Single normalized transaction."""
    hash: str
    timestamp_ms: int
    from_address: str
    to_address: str
    value: str
    fee: str
    status: TransactionStatus
    type: TransactionType

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "timestamp": self.timestamp_ms,
            "from": self.from_address,
            "to": self.to_address,
            "value": self.value,
            "fee": self.fee,
            "status": self.status.value,
            "type": self.type.value,
        }


@dataclass
class WalletSnapshot:
    """
    Unified view of one wallet on one chain.

    Either complete (possibly with zeroed enrichment fields) or not
    produced at all.
    """
    address: str
    chain: Chain
    native_balance: str
    native_balance_usd: float = 0.0
    tokens: list[TokenBalance] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)

    native_price_resolved: bool = False
    fetched_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def total_token_value_usd(self) -> float:
        return sum(t.balance_usd for t in self.tokens)

    @property
    def total_value_usd(self) -> float:
        return self.native_balance_usd + self.total_token_value_usd

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "blockchain": self.chain.value,
            "nativeBalance": self.native_balance,
            "nativeBalanceUsd": self.native_balance_usd,
            "nativePriceResolved": self.native_price_resolved,
            "tokens": [t.to_dict() for t in self.tokens],
            "transactions": [tx.to_dict() for tx in self.transactions],
            "totalValueUsd": self.total_value_usd,
            "fetchedAt": self.fetched_at.isoformat(),
        }


@dataclass(frozen=True)
class AddressValidation:
    """Result of a format-only address check."""
    is_valid: bool
    chain: Optional[Chain] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "blockchain": self.chain.value if self.chain else None,
        }
