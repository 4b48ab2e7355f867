"""
Token metadata resolution and per-refresh price index.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from ...chains import CHAIN_METADATA, DEFAULT_WRAPPED_TOKEN_MAP, ZERO_ADDRESS, is_native_address, token_key
from ...providers.base import ChainReader
from ...providers.models import SwapToken
from .models import TokenDescriptor, WrappedTokenPair


UNKNOWN_TOKEN_SYMBOL = "UNKNOWN TOKEN"
UNKNOWN_TOKEN_DECIMALS = 18

WrappedTokenMap = Dict[int, Dict[str, WrappedTokenPair]]


def native_token(chain_id: int) -> TokenDescriptor:
    meta = CHAIN_METADATA.get(chain_id, {})
    return TokenDescriptor(
        address=ZERO_ADDRESS,
        symbol=meta.get("native_symbol", "ETH"),
        decimals=meta.get("native_decimals", 18),
        chain_id=chain_id,
    )


def _as_pair(value: Union[WrappedTokenPair, Mapping[str, Any]]) -> WrappedTokenPair:
    if isinstance(value, WrappedTokenPair):
        return value
    return WrappedTokenPair(
        wrapped=TokenDescriptor.from_dict(value["wrapped"]),
        native=TokenDescriptor.from_dict(value["native"]),
    )


def merge_wrapped_token_maps(
    default: Mapping[int, Mapping[str, Any]],
    custom: Optional[Mapping[int, Mapping[str, Any]]] = None,
) -> WrappedTokenMap:
    """Merge per chain; entries in ``custom`` replace same-symbol defaults."""

    merged: WrappedTokenMap = {}
    for source in (default, custom or {}):
        for chain_id, entries in source.items():
            chain_entries = merged.setdefault(int(chain_id), {})
            for symbol, pair in (entries or {}).items():
                chain_entries[symbol] = _as_pair(pair)
    return merged


def default_wrapped_token_map(custom: Optional[Mapping[int, Mapping[str, Any]]] = None) -> WrappedTokenMap:
    return merge_wrapped_token_maps(DEFAULT_WRAPPED_TOKEN_MAP, custom)


def _valid_price(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(numeric) or numeric <= 0:
        return None
    return numeric


@dataclass
class PriceIndex:
    """Token catalogue and USD prices, keyed by ``chain:address``."""

    tokens: Dict[str, TokenDescriptor] = field(default_factory=dict)
    prices: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        swap_tokens: Iterable[SwapToken],
        token_prices_usd: Optional[Mapping[int, Mapping[str, Any]]] = None,
        wrapped_token_map: Optional[WrappedTokenMap] = None,
    ) -> "PriceIndex":
        index = cls()
        for token in swap_tokens:
            key = token_key(token.chain_id, token.address)
            index.tokens[key] = TokenDescriptor(
                address=token.address,
                symbol=token.symbol,
                decimals=token.decimals,
                chain_id=token.chain_id,
                logo_url=token.logo_url,
            )
            index.add_price(token.chain_id, token.address, token.price_usd)

        for chain_id, entries in (token_prices_usd or {}).items():
            for address, price in (entries or {}).items():
                index.add_price(int(chain_id), address, price)

        for chain_id, pairs in (wrapped_token_map or {}).items():
            for pair in pairs.values():
                native_key = token_key(chain_id, pair.native.address)
                wrapped_key = token_key(chain_id, pair.wrapped.address)
                native_price = index.prices.get(native_key)
                wrapped_price = index.prices.get(wrapped_key)
                if native_price is None and wrapped_price is not None:
                    index.prices[native_key] = wrapped_price
                elif wrapped_price is None and native_price is not None:
                    index.prices[wrapped_key] = native_price

        return index

    def add_price(self, chain_id: int, address: str, value: Any) -> None:
        price = _valid_price(value)
        if price is not None:
            self.prices[token_key(chain_id, address)] = price

    def price_for(self, chain_id: int, address: str) -> Optional[float]:
        return self.prices.get(token_key(chain_id, address))

    def token_for(self, chain_id: int, address: str) -> Optional[TokenDescriptor]:
        return self.tokens.get(token_key(chain_id, address))


class TokenMetadataResolver:
    """Resolves symbol and decimals for a token, never failing the caller."""

    def __init__(
        self,
        chain_readers: Optional[Mapping[int, ChainReader]] = None,
        wrapped_token_map: Optional[WrappedTokenMap] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.chain_readers = dict(chain_readers or {})
        self.wrapped_token_map = wrapped_token_map if wrapped_token_map is not None else default_wrapped_token_map()
        self.logger = logger or logging.getLogger(__name__)
        self._cache: Dict[str, TokenDescriptor] = {}

    def _from_wrapped_map(self, address: str, chain_id: int) -> Optional[TokenDescriptor]:
        for pair in self.wrapped_token_map.get(chain_id, {}).values():
            if pair.wrapped.address.lower() == address.lower():
                return pair.wrapped
            if pair.native.address.lower() == address.lower():
                return pair.native
        return None

    async def resolve(
        self,
        address: str,
        chain_id: int,
        index: Optional[PriceIndex] = None,
        fallback_symbol: Optional[str] = None,
    ) -> TokenDescriptor:
        if is_native_address(address):
            return native_token(chain_id)

        key = token_key(chain_id, address)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        if index is not None:
            indexed = index.token_for(chain_id, address)
            if indexed is not None:
                self._cache[key] = indexed
                return indexed

        wrapped = self._from_wrapped_map(address, chain_id)
        if wrapped is not None:
            self._cache[key] = wrapped
            return wrapped

        placeholder = TokenDescriptor(
            address=address,
            symbol=fallback_symbol or UNKNOWN_TOKEN_SYMBOL,
            decimals=UNKNOWN_TOKEN_DECIMALS,
            chain_id=chain_id,
        )

        reader = self.chain_readers.get(chain_id)
        if reader is None:
            self.logger.warning("No chain reader to resolve token %s on chain %s", address, chain_id)
            return placeholder

        try:
            symbol, decimals = await asyncio.gather(
                reader.read_contract(address, "symbol"),
                reader.read_contract(address, "decimals"),
            )
        except Exception as exc:
            self.logger.warning("Failed to resolve token %s on chain %s: %s", address, chain_id, exc)
            return placeholder

        resolved = TokenDescriptor(address=address, symbol=str(symbol), decimals=int(decimals), chain_id=chain_id)
        self._cache[key] = resolved
        self.logger.debug("Resolved token metadata on-chain: %s", resolved)
        return resolved

    def clear_cache(self) -> None:
        self._cache.clear()
