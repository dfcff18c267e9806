"""
Wallet Aggregator Exceptions - Error taxonomy for wallet fetches.

Top-level failures (balance, token list, transaction list) abort the fetch
and surface as WalletFetchFailedError. Per-item enrichment failures never
raise to the caller; adapters log them and default the item.
"""

from datetime import datetime
from typing import Any, Optional

from .models import Chain


class WalletAggregatorError(Exception):
    """Base exception for all wallet aggregator errors."""

    def __init__(
        self,
        message: str,
        chain: Optional[Chain] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.chain = chain
        self.details = details or {}
        self.timestamp = datetime.utcnow()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "chain": self.chain.value if self.chain else None,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class InvalidAddressError(WalletAggregatorError):
    """Address matches no supported chain format."""

    def __init__(self, address: str) -> None:
        super().__init__(
            "Unsupported blockchain or invalid address format",
            details={"address": address},
        )
        self.address = address


class UpstreamError(WalletAggregatorError):
    """Upstream provider returned a non-retryable failure."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Optional[str] = None,
        url: Optional[str] = None,
        chain: Optional[Chain] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, chain, details)
        self.status = status
        self.body = body[:500] if body else None
        self.url = url

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status
        data["body"] = self.body
        return data


class RateLimitError(UpstreamError):
    """Upstream kept answering 429 after the retry budget was spent."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        body: Optional[str] = None,
        url: Optional[str] = None,
        retry_after_seconds: Optional[int] = None,
    ) -> None:
        super().__init__(message, status=429, body=body, url=url)
        self.retry_after_seconds = retry_after_seconds


class UpstreamUnavailableError(UpstreamError):
    """Transport failure, or a response that cannot be used."""
    pass


class WalletFetchFailedError(WalletAggregatorError):
    """A top-level adapter call failed; the whole wallet fetch is aborted."""

    def __init__(
        self,
        chain: Chain,
        reason: str = "Unknown",
    ) -> None:
        super().__init__(
            f"Failed to fetch {chain.value} wallet data",
            chain,
            details={"reason": reason},
        )
        self.reason = reason


class ConfigurationError(WalletAggregatorError):
    """Invalid configuration."""
    pass
