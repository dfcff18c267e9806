"""Chain adapters."""

from .base import ChainAdapter
from .ethereum import EthereumAdapter
from .solana import SolanaAdapter

__all__ = [
    "ChainAdapter",
    "EthereumAdapter",
    "SolanaAdapter",
]
