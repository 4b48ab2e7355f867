"""
Multi-chain wallet balance aggregation.

Balances are read per chain, concurrently, falling back through:
batched token-balance RPC -> multicall -> individual reads. A read that
cannot be recovered counts as zero so one token never blocks the others.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from ...cache import TTLCache
from ...chains import ZERO_ADDRESS, is_native_address
from ...config import settings
from ...providers.base import ChainReader, ContractCall, is_method_unavailable_error
from .models import PaymentOption


@dataclass(frozen=True)
class BalanceQuery:
    option_id: str
    address: str
    key: str
    is_native: bool


def _queries_for(options: Sequence[PaymentOption]) -> List[BalanceQuery]:
    tokens, natives = [], []
    for option in options:
        address = option.display_token.address
        if is_native_address(address):
            natives.append(BalanceQuery(option.id, ZERO_ADDRESS, ZERO_ADDRESS, True))
        else:
            tokens.append(BalanceQuery(option.id, address, address.lower(), False))
    return tokens + natives


def _parse_balance(raw: Optional[str]) -> int:
    if not raw or raw == "0x":
        return 0
    return int(raw, 16) if raw.lower().startswith("0x") else int(raw)


class BalanceAggregator:
    """Fetches wallet balances for candidate options across chains."""

    def __init__(
        self,
        chain_readers: Mapping[int, ChainReader],
        cache: Optional[TTLCache] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.chain_readers = dict(chain_readers)
        self.cache = cache or TTLCache(default_ttl=settings.balance_cache_ttl_seconds)
        self.logger = logger or logging.getLogger(__name__)
        # chain id -> whether the batched token-balance RPC is available
        self._token_rpc_support: Dict[int, bool] = {}

    async def fetch_balances(self, candidates: Sequence[PaymentOption], wallet: Optional[str]) -> Dict[str, int]:
        """Map option id to balance (base units) for ``wallet``."""

        balances: Dict[str, int] = {}
        if not wallet:
            self.logger.debug("Skipping balance fetch, no wallet connected")
            return balances

        by_chain: Dict[int, List[PaymentOption]] = defaultdict(list)
        for candidate in candidates:
            by_chain[candidate.origin_chain_id].append(candidate)

        results = await asyncio.gather(
            *(self._fetch_chain(chain_id, options, wallet) for chain_id, options in by_chain.items())
        )
        for chain_balances in results:
            balances.update(chain_balances)

        self.logger.debug("Fetched balances for %d candidates on %d chains", len(balances), len(by_chain))
        return balances

    async def _fetch_chain(self, chain_id: int, options: List[PaymentOption], wallet: str) -> Dict[str, int]:
        queries = _queries_for(options)
        reader = self.chain_readers.get(chain_id)
        if reader is None:
            self.logger.info("No chain reader for chain %s, balances default to zero", chain_id)
            return {query.option_id: 0 for query in queries}

        cache_key = (chain_id, wallet.lower())
        cached = await self.cache.get_with_ttl(cache_key)
        if cached is not None:
            snapshot, remaining = cached
            if all(query.key in snapshot for query in queries):
                self.logger.debug("Balance cache hit on chain %s (%.1fs left)", chain_id, remaining)
                return {query.option_id: snapshot[query.key] for query in queries}

        token_queries = [query for query in queries if not query.is_native]
        native_queries = [query for query in queries if query.is_native]

        snapshot: Dict[str, int] = {}
        if token_queries and not await self._try_token_balance_rpc(chain_id, reader, wallet, token_queries, snapshot):
            await self._read_via_multicall(chain_id, reader, wallet, token_queries, snapshot)
        if native_queries:
            snapshot[ZERO_ADDRESS] = await self._read_single(reader, wallet, native_queries[0])

        await self.cache.set(cache_key, snapshot)
        return {query.option_id: snapshot.get(query.key, 0) for query in queries}

    async def _try_token_balance_rpc(
        self,
        chain_id: int,
        reader: ChainReader,
        wallet: str,
        queries: List[BalanceQuery],
        snapshot: Dict[str, int],
    ) -> bool:
        if self._token_rpc_support.get(chain_id) is False:
            return False

        try:
            entries = await reader.get_token_balances(wallet, [query.address for query in queries])
        except Exception as exc:
            if is_method_unavailable_error(exc):
                self._token_rpc_support[chain_id] = False
                self.logger.info("Token balance RPC unsupported on chain %s, using multicall", chain_id)
            else:
                self.logger.warning("Token balance RPC failed on chain %s: %s", chain_id, exc)
            return False

        self._token_rpc_support[chain_id] = True

        fallback: Dict[str, List[BalanceQuery]] = defaultdict(list)
        for index, query in enumerate(queries):
            entry = entries[index] if index < len(entries) else None
            if not entry or entry.get("error"):
                self.logger.warning(
                    "Token balance entry failed for %s on chain %s: %s",
                    query.option_id,
                    chain_id,
                    (entry or {}).get("error", "missing entry"),
                )
                fallback[query.key].append(query)
                continue
            try:
                snapshot[query.key] = _parse_balance(entry.get("tokenBalance"))
            except ValueError as exc:
                self.logger.warning("Unparseable token balance for %s: %s", query.option_id, exc)
                fallback[query.key].append(query)

        for key, grouped in fallback.items():
            snapshot[key] = await self._read_single(reader, wallet, grouped[0])

        return True

    async def _read_via_multicall(
        self,
        chain_id: int,
        reader: ChainReader,
        wallet: str,
        queries: List[BalanceQuery],
        snapshot: Dict[str, int],
    ) -> None:
        try:
            results = await reader.multicall(
                [ContractCall(query.address, "balanceOf", (wallet,)) for query in queries]
            )
            for query, result in zip(queries, results):
                if result.success and isinstance(result.value, int):
                    snapshot[query.key] = result.value
                else:
                    self.logger.warning("Multicall balance failed for %s: %s", query.option_id, result.error)
                    snapshot[query.key] = 0
        except Exception as exc:
            self.logger.warning("Multicall batch failed on chain %s: %s", chain_id, exc)
            unique: Dict[str, BalanceQuery] = {}
            for query in queries:
                unique.setdefault(query.key, query)
            for key, query in unique.items():
                snapshot[key] = await self._read_single(reader, wallet, query)

    async def _read_single(self, reader: ChainReader, wallet: str, query: BalanceQuery) -> int:
        try:
            if query.is_native:
                return int(await reader.get_balance(wallet))
            return int(await reader.read_contract(query.address, "balanceOf", (wallet,)))
        except Exception as exc:
            self.logger.warning("Balance read failed for %s on %s: %s", query.address, query.option_id, exc)
            return 0

    async def clear_cache(self, wallet: Optional[str] = None) -> None:
        if wallet is None:
            await self.cache.clear()
            return
        wallet_key = wallet.lower()
        await self.cache.delete_where(lambda key: key[1] == wallet_key)
