"""
Solana Chain Adapter - Solana JSON-RPC (Helius or public mainnet RPC).

- Native balance: getBalance (lamports)
- Tokens: getTokenAccountsByOwner on the SPL token program, names from
  the Solana token list (fetched once per call, never cached)
- Transactions: getSignaturesForAddress, then one getTransaction per
  signature (N+1, fanned out with bounded concurrency)

Transaction direction is a best-effort heuristic based on the wallet's
lamport balance change. `to` is left empty: resolving the real recipient
needs full instruction parsing.
"""

import logging
import time
from typing import Any, Optional

from ..dispatcher import RequestSpec
from ..exceptions import UpstreamUnavailableError
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


SPL_TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
FALLBACK_SYMBOL = "SPL"
FALLBACK_NAME_LENGTH = 6


def account_pubkey(key: Any) -> str:
    """accountKeys entries are dicts under jsonParsed, plain strings otherwise."""
    if isinstance(key, dict):
        return key.get("pubkey") or ""
    return key if isinstance(key, str) else ""


def find_fee_payer(account_keys: list[Any]) -> str:
    """First signer+writable account, else the first account."""
    for key in account_keys:
        if isinstance(key, dict) and key.get("signer") and key.get("writable"):
            return account_pubkey(key)
    return account_pubkey(account_keys[0]) if account_keys else ""


def infer_direction(
    address: str,
    account_keys: list[str],
    pre_balances: Optional[list[int]],
    post_balances: Optional[list[int]],
    fee_payer: str,
) -> tuple[TransactionType, int]:
    """
    Guess send/receive from the wallet's lamport change.

    Returns the type and the raw lamport change (post - pre, 0 when it
    cannot be determined).
    """
    change = 0
    tx_type: Optional[TransactionType] = None

    if address in account_keys and pre_balances and post_balances:
        index = account_keys.index(address)
        if index < len(pre_balances) and index < len(post_balances):
            change = post_balances[index] - pre_balances[index]
            if change < 0:
                tx_type = TransactionType.SEND
            elif change > 0:
                tx_type = TransactionType.RECEIVE

    if tx_type is None:
        # paid the fee, so most likely the initiator
        tx_type = TransactionType.SEND if fee_payer == address else TransactionType.OTHER

    return tx_type, change


class SolanaAdapter(ChainAdapter):
    """
    Solana mainnet adapter.

    Uses Helius when HELIUS_API_KEY is configured, the public
    mainnet-beta RPC otherwise.
    """

    @property
    def chain(self) -> Chain:
        return Chain.SOLANA

    @property
    def rpc_url(self) -> str:
        return self.config.providers.solana_rpc_endpoint

    # ─────────────────────────────────────────────────────────────
    # Native balance
    # ─────────────────────────────────────────────────────────────

    async def get_native_balance(self, address: str) -> str:
        result = await self._rpc_call(self.rpc_url, "getBalance", [address])
        lamports = result.get("value") if isinstance(result, dict) else None
        if not isinstance(lamports, int):
            raise UpstreamUnavailableError(
                f"Unparseable getBalance result: {result!r}",
                chain=self.chain,
            )
        return to_decimal_string(lamports, self.chain.native_decimals)

    # ─────────────────────────────────────────────────────────────
    # Tokens
    # ─────────────────────────────────────────────────────────────

    async def get_token_balances(self, address: str) -> list[TokenBalance]:
        result = await self._rpc_call(
            self.rpc_url,
            "getTokenAccountsByOwner",
            [
                address,
                {"programId": SPL_TOKEN_PROGRAM_ID},
                {"encoding": "jsonParsed"},
            ],
        )
        accounts = result.get("value") if isinstance(result, dict) else None
        if not isinstance(accounts, list):
            raise UpstreamUnavailableError(
                "Malformed getTokenAccountsByOwner result",
                chain=self.chain,
            )

        holdings = [
            holding for holding in (self._parse_token_account(a) for a in accounts)
            if holding is not None
        ]
        if not holdings:
            return []

        token_list = await self._fetch_token_list()

        async def build(holding: dict[str, Any]) -> TokenBalance:
            return await self._build_token(holding, token_list)

        return await gather_bounded(
            holdings,
            build,
            limit=self.config.fanout_concurrency,
        )

    def _parse_token_account(self, account: Any) -> Optional[dict[str, Any]]:
        """Pull mint/amount/decimals from a jsonParsed token account."""
        try:
            info = account["account"]["data"]["parsed"]["info"]
            token_amount = info["tokenAmount"]
            holding = {
                "mint": info["mint"],
                "amount": parse_int(token_amount.get("amount")),
                "decimals": int(token_amount.get("decimals") or 0),
            }
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"[solana] Skipping unparseable token account: {e}")
            self._stats["items_skipped"] += 1
            return None

        if holding["amount"] <= 0:
            return None
        return holding

    async def _fetch_token_list(self) -> dict[str, dict[str, Any]]:
        """Token list keyed by mint; empty when unavailable."""
        spec = RequestSpec(
            method="GET",
            url=self.config.providers.token_list_url,
            label="solana token list",
        )
        try:
            data = await self.pool.send(spec)
        except Exception as e:
            logger.warning(f"[solana] Token list unavailable, using fallbacks: {e}")
            self._stats["items_defaulted"] += 1
            return {}

        tokens = data.get("tokens") if isinstance(data, dict) else None
        if not isinstance(tokens, list):
            logger.warning("[solana] Token list has no tokens array, using fallbacks")
            return {}

        return {
            t["address"]: t for t in tokens
            if isinstance(t, dict) and t.get("address")
        }

    async def _build_token(
        self,
        holding: dict[str, Any],
        token_list: dict[str, dict[str, Any]],
    ) -> TokenBalance:
        mint = holding["mint"]
        listed = token_list.get(mint)

        if listed:
            name = listed.get("name") or mint[:FALLBACK_NAME_LENGTH]
            symbol = listed.get("symbol") or FALLBACK_SYMBOL
            logo = listed.get("logoURI") or None
        else:
            name = mint[:FALLBACK_NAME_LENGTH]
            symbol = FALLBACK_SYMBOL
            logo = None

        token = TokenBalance(
            token_address=mint,
            symbol=symbol,
            name=name,
            decimals=holding["decimals"],
            balance=to_decimal_string(holding["amount"], holding["decimals"]),
            logo_url=logo,
            logo_resolved=logo is not None,
        )
        # unlisted mints have no usable display name; price them by mint only
        quote = await self._quote_token(
            name if listed else "",
            mint,
            fetch_logo=logo is None and listed is not None,
        )
        return self._apply_quote(token, quote)

    # ─────────────────────────────────────────────────────────────
    # Transactions
    # ─────────────────────────────────────────────────────────────

    async def get_transactions(self, address: str) -> list[Transaction]:
        signatures = await self._rpc_call(
            self.rpc_url,
            "getSignaturesForAddress",
            [address, {"limit": self.config.sol_signature_limit}],
        )
        if not isinstance(signatures, list):
            raise UpstreamUnavailableError(
                "Malformed getSignaturesForAddress result",
                chain=self.chain,
            )

        entries = [
            s for s in signatures
            if isinstance(s, dict) and s.get("signature")
        ][:self.config.sol_detail_limit]

        if not entries:
            logger.info(f"[solana] No transaction signatures found for {address}")
            return []

        async def fetch(sig_info: dict[str, Any]) -> Optional[Transaction]:
            return await self._fetch_transaction(sig_info, address)

        results = await gather_bounded(
            entries,
            fetch,
            limit=self.config.fanout_concurrency,
        )
        return [tx for tx in results if tx is not None]

    async def _fetch_transaction(
        self,
        sig_info: dict[str, Any],
        address: str,
    ) -> Optional[Transaction]:
        """Detail fetch for one signature; None (skipped) on failure."""
        signature = sig_info["signature"]
        try:
            raw = await self._rpc_call(
                self.rpc_url,
                "getTransaction",
                [
                    signature,
                    {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0},
                ],
            )
        except Exception as e:
            logger.warning(f"[solana] Failed to fetch transaction {signature[:20]}...: {e}")
            self._stats["items_skipped"] += 1
            return None

        if not raw:
            logger.info(f"[solana] No details found for signature {signature[:20]}...")
            self._stats["items_skipped"] += 1
            return None

        return self._parse_transaction(raw, sig_info, address)

    def _parse_transaction(
        self,
        raw: dict[str, Any],
        sig_info: dict[str, Any],
        wallet_address: str,
    ) -> Optional[Transaction]:
        """Parse a jsonParsed getTransaction result."""
        try:
            meta = raw.get("meta") or {}
            message = (raw.get("transaction") or {}).get("message") or {}
            raw_keys = message.get("accountKeys") or []
            account_keys = [account_pubkey(k) for k in raw_keys]
            fee_payer = find_fee_payer(raw_keys)
            fee = int(meta.get("fee") or 0)

            tx_type, change = infer_direction(
                wallet_address,
                account_keys,
                meta.get("preBalances"),
                meta.get("postBalances"),
                fee_payer,
            )
            # exclude the fee from the moved amount when the wallet paid it
            moved = change + fee if fee_payer == wallet_address else change

            block_time = raw.get("blockTime") or sig_info.get("blockTime") or time.time()

            return Transaction(
                hash=sig_info["signature"],
                timestamp_ms=int(block_time * 1000),
                from_address=fee_payer,
                to_address="",
                value=to_decimal_string(abs(moved), self.chain.native_decimals),
                fee=to_decimal_string(fee, self.chain.native_decimals),
                status=self._parse_status(meta, sig_info),
                type=tx_type,
            )

        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"[solana] Failed to parse Solana transaction: {e}")
            self._stats["items_skipped"] += 1
            return None

    @staticmethod
    def _parse_status(
        meta: dict[str, Any],
        sig_info: dict[str, Any],
    ) -> TransactionStatus:
        if meta.get("err") or sig_info.get("err"):
            return TransactionStatus.FAILED
        if sig_info.get("confirmationStatus") == "processed":
            return TransactionStatus.PENDING
        return TransactionStatus.SUCCESS
