"""
Ethereum Chain Adapter - Alchemy JSON-RPC + Etherscan V2.

- Native balance: eth_getBalance (hex wei)
- Tokens: alchemy_getTokenBalances, then one alchemy_getTokenMetadata
  call per contract (N+1, fanned out with bounded concurrency)
- Transactions: Etherscan account/txlist, newest first; in-body rate
  limit answers are retried with the same backoff as HTTP 429
"""

import logging
from typing import Any, Optional

from ..dispatcher import RequestSpec
from ..exceptions import RateLimitError, UpstreamUnavailableError
from ..fanout import gather_bounded
from ..models import (
    Chain,
    TokenBalance,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from ..units import parse_int, to_decimal_string
from .base import ChainAdapter


logger = logging.getLogger(__name__)


DEFAULT_TOKEN_DECIMALS = 18
UNKNOWN_SYMBOL = "UNKNOWN"
UNKNOWN_NAME = "Unknown Token"


class EthereumAdapter(ChainAdapter):
    """
    Ethereum mainnet adapter.

    Alchemy serves balances and token metadata; Etherscan V2 (unified
    endpoint with chainid) serves the transaction list.
    """

    @property
    def chain(self) -> Chain:
        return Chain.ETHEREUM

    @property
    def rpc_url(self) -> str:
        return self.config.providers.eth_rpc_endpoint

    # ─────────────────────────────────────────────────────────────
    # Native balance
    # ─────────────────────────────────────────────────────────────

    async def get_native_balance(self, address: str) -> str:
        result = await self._rpc_call(self.rpc_url, "eth_getBalance", [address, "latest"])
        try:
            return to_decimal_string(result, self.chain.native_decimals)
        except (TypeError, ValueError) as e:
            raise UpstreamUnavailableError(
                f"Unparseable eth_getBalance result: {result!r}",
                chain=self.chain,
            ) from e

    # ─────────────────────────────────────────────────────────────
    # Tokens
    # ─────────────────────────────────────────────────────────────

    async def get_token_balances(self, address: str) -> list[TokenBalance]:
        result = await self._rpc_call(self.rpc_url, "alchemy_getTokenBalances", [address])
        if not isinstance(result, dict):
            raise UpstreamUnavailableError(
                "Malformed alchemy_getTokenBalances result",
                chain=self.chain,
            )

        holdings = [
            entry for entry in (result.get("tokenBalances") or [])
            if self._is_nonzero_holding(entry)
        ]
        logger.debug(f"[ethereum] {address}: {len(holdings)} non-zero token balances")

        return await gather_bounded(
            holdings,
            self._build_token,
            limit=self.config.fanout_concurrency,
        )

    @staticmethod
    def _is_nonzero_holding(entry: Any) -> bool:
        if not isinstance(entry, dict) or entry.get("error"):
            return False
        if not entry.get("contractAddress"):
            return False
        try:
            return parse_int(entry.get("tokenBalance")) > 0
        except ValueError:
            return False

    async def _fetch_metadata(self, contract_address: str) -> dict[str, Any]:
        """Token metadata; empty dict when the lookup fails."""
        try:
            metadata = await self._rpc_call(
                self.rpc_url,
                "alchemy_getTokenMetadata",
                [contract_address],
            )
        except Exception as e:
            logger.warning(f"[ethereum] Metadata lookup failed for {contract_address}: {e}")
            self._stats["items_defaulted"] += 1
            return {}
        return metadata if isinstance(metadata, dict) else {}

    async def _build_token(self, entry: dict[str, Any]) -> TokenBalance:
        contract = entry["contractAddress"]
        metadata = await self._fetch_metadata(contract)

        decimals = metadata.get("decimals")
        if not isinstance(decimals, int) or decimals < 0:
            decimals = DEFAULT_TOKEN_DECIMALS
        name = metadata.get("name") or ""
        logo = metadata.get("logo") or None

        token = TokenBalance(
            token_address=contract,
            symbol=metadata.get("symbol") or UNKNOWN_SYMBOL,
            name=name or UNKNOWN_NAME,
            decimals=decimals,
            balance=to_decimal_string(entry["tokenBalance"], decimals),
            logo_url=logo,
            logo_resolved=logo is not None,
        )
        quote = await self._quote_token(name, contract, fetch_logo=logo is None)
        return self._apply_quote(token, quote)

    # ─────────────────────────────────────────────────────────────
    # Transactions
    # ─────────────────────────────────────────────────────────────

    async def get_transactions(self, address: str) -> list[Transaction]:
        providers = self.config.providers
        limit = self.config.eth_tx_limit

        params = {
            "chainid": str(providers.etherscan_chain_id),
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": "0",
            "endblock": "99999999",
            "page": "1",
            "offset": str(limit),
            "sort": "desc",
        }
        if providers.etherscan_api_key:
            params["apikey"] = providers.etherscan_api_key

        raw_txs = await self._fetch_txlist(params)

        transactions: list[Transaction] = []
        for raw in raw_txs[:limit]:
            tx = self._parse_transaction(raw, address)
            if tx is not None:
                transactions.append(tx)
        return transactions

    async def _fetch_txlist(self, params: dict[str, str]) -> list[dict[str, Any]]:
        """
        txlist with in-body rate limit answers (HTTP 200) retried on the
        dispatcher's backoff schedule.
        """
        dispatcher = self.pool.for_url(self.config.providers.etherscan_url)
        attempt = 0
        while True:
            data = await self._explorer_get(params)
            try:
                return self._explorer_result(data)
            except RateLimitError:
                if attempt >= dispatcher.max_retries:
                    raise
                logger.info(
                    f"[ethereum] Etherscan rate limited, retrying "
                    f"(attempt {attempt + 1}/{dispatcher.max_retries})"
                )
                await dispatcher.backoff(attempt)
                attempt += 1

    async def _explorer_get(self, params: dict[str, str]) -> Any:
        spec = RequestSpec(
            method="GET",
            url=self.config.providers.etherscan_url,
            params=params,
            label=f"etherscan {params.get('action')}",
        )
        return await self.pool.send(spec)

    def _explorer_result(self, data: Any) -> list[dict[str, Any]]:
        """Unwrap an Etherscan envelope; raise on explorer-level errors."""
        if not isinstance(data, dict):
            raise UpstreamUnavailableError("Malformed Etherscan response", chain=self.chain)

        result = data.get("result")
        if str(data.get("status")) == "0":
            message = str(data.get("message", ""))
            if "no transactions" in message.lower():
                return []
            detail = f"{message}: {result}" if result else message
            if "rate limit" in detail.lower():
                raise RateLimitError(f"Etherscan rate limit: {detail}")
            raise UpstreamUnavailableError(
                f"Etherscan error: {detail}",
                chain=self.chain,
            )

        if not isinstance(result, list):
            raise UpstreamUnavailableError(
                "Etherscan result is not a transaction list",
                chain=self.chain,
            )
        return result

    def _parse_transaction(
        self,
        raw: dict[str, Any],
        wallet_address: str,
    ) -> Optional[Transaction]:
        """Parse an Etherscan txlist row; None if it is malformed."""
        try:
            from_addr = raw.get("from") or ""
            to_addr = raw.get("to") or raw.get("contractAddress") or ""
            wallet_lower = wallet_address.lower()

            if from_addr.lower() == wallet_lower:
                tx_type = TransactionType.SEND
            elif to_addr.lower() == wallet_lower:
                tx_type = TransactionType.RECEIVE
            else:
                tx_type = TransactionType.OTHER

            fee_wei = parse_int(raw.get("gasUsed")) * parse_int(raw.get("gasPrice"))

            return Transaction(
                hash=raw["hash"],
                timestamp_ms=parse_int(raw.get("timeStamp")) * 1000,
                from_address=from_addr,
                to_address=to_addr,
                value=to_decimal_string(raw.get("value"), self.chain.native_decimals),
                fee=to_decimal_string(fee_wei, self.chain.native_decimals),
                status=self._parse_status(raw),
                type=tx_type,
            )

        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"[ethereum] Skipping malformed transaction: {e}")
            self._stats["items_skipped"] += 1
            return None

    @staticmethod
    def _parse_status(raw: dict[str, Any]) -> TransactionStatus:
        if str(raw.get("isError", "0")) == "1" or str(raw.get("txreceipt_status")) == "0":
            return TransactionStatus.FAILED
        if not raw.get("blockNumber"):
            return TransactionStatus.PENDING
        return TransactionStatus.SUCCESS
