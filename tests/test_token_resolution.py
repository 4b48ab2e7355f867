"""
Token metadata resolution and price index tests.
"""

import math

import pytest
from unittest.mock import AsyncMock, MagicMock

from payment_planner.chains import ZERO_ADDRESS
from payment_planner.core.planner.models import TokenDescriptor, WrappedTokenPair
from payment_planner.core.planner.tokens import (
    UNKNOWN_TOKEN_SYMBOL,
    PriceIndex,
    TokenMetadataResolver,
    default_wrapped_token_map,
    merge_wrapped_token_maps,
)
from payment_planner.providers.base import ProviderError
from payment_planner.providers.models import SwapToken


USDC_BASE = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
WETH_BASE = "0x4200000000000000000000000000000000000006"
DAI_MAINNET = "0x6B175474E89094C44Da98b954EedeAC495271d0F"


def swap_token(address, chain_id, symbol, decimals=18, price=None):
    return SwapToken(chain_id=chain_id, address=address, symbol=symbol, decimals=decimals, price_usd=price)


# =============================================================================
# Price Index
# =============================================================================


class TestPriceIndex:
    def test_keys_are_case_insensitive(self):
        index = PriceIndex.build([swap_token(USDC_BASE, 8453, "USDC", 6, 1.0)])

        assert index.price_for(8453, USDC_BASE.lower()) == 1.0
        assert index.token_for(8453, USDC_BASE.upper().replace("0X", "0x")).symbol == "USDC"

    def test_ignores_non_finite_and_non_positive_prices(self):
        index = PriceIndex()
        index.add_price(1, DAI_MAINNET, math.inf)
        index.add_price(1, DAI_MAINNET, float("nan"))
        index.add_price(1, DAI_MAINNET, 0)
        index.add_price(1, DAI_MAINNET, -3)
        index.add_price(1, DAI_MAINNET, "not a number")

        assert index.price_for(1, DAI_MAINNET) is None

    def test_caller_prices_override_catalogue(self):
        index = PriceIndex.build(
            [swap_token(DAI_MAINNET, 1, "DAI", price=0.99)],
            token_prices_usd={1: {DAI_MAINNET.lower(): 1.01}},
        )

        assert index.price_for(1, DAI_MAINNET) == 1.01

    def test_native_and_wrapped_share_price(self):
        wrapped_map = default_wrapped_token_map()

        index = PriceIndex.build([swap_token(WETH_BASE, 8453, "WETH", price=3000.0)], None, wrapped_map)

        assert index.price_for(8453, ZERO_ADDRESS) == 3000.0

    def test_wrapped_side_filled_from_native_price(self):
        wrapped_map = default_wrapped_token_map()

        index = PriceIndex.build([], {8453: {ZERO_ADDRESS: 2500}}, wrapped_map)

        assert index.price_for(8453, WETH_BASE) == 2500.0


class TestWrappedTokenMaps:
    def test_custom_entries_replace_defaults_per_symbol(self):
        custom_weth = {
            "wrapped": {"address": "0x1111111111111111111111111111111111111111", "symbol": "WETH", "decimals": 18, "chainId": 1},
            "native": {"address": ZERO_ADDRESS, "symbol": "ETH", "decimals": 18, "chainId": 1},
        }

        merged = merge_wrapped_token_maps(default_wrapped_token_map(), {1: {"WETH": custom_weth}})

        assert merged[1]["WETH"].wrapped.address == "0x1111111111111111111111111111111111111111"
        assert 8453 in merged

    def test_accepts_pairs_and_dicts(self):
        pair = WrappedTokenPair(
            wrapped=TokenDescriptor("0x2222222222222222222222222222222222222222", "WXYZ", 18, 999),
            native=TokenDescriptor(ZERO_ADDRESS, "XYZ", 18, 999),
        )

        merged = merge_wrapped_token_maps({}, {999: {"WXYZ": pair}})

        assert merged[999]["WXYZ"] is pair


# =============================================================================
# Token Metadata Resolver
# =============================================================================


def make_reader(symbol="DAI", decimals=18):
    reader = MagicMock()

    async def read_contract(address, function_name, args=()):
        return {"symbol": symbol, "decimals": decimals}[function_name]

    reader.read_contract = AsyncMock(side_effect=read_contract)
    return reader


class TestTokenMetadataResolver:
    @pytest.mark.asyncio
    async def test_zero_address_resolves_to_native_currency(self):
        resolver = TokenMetadataResolver({})

        token = await resolver.resolve(ZERO_ADDRESS, 137)

        assert token.symbol == "MATIC"
        assert token.decimals == 18
        assert token.chain_id == 137

    @pytest.mark.asyncio
    async def test_index_match_skips_chain_reads(self):
        reader = make_reader()
        resolver = TokenMetadataResolver({8453: reader})
        index = PriceIndex.build([swap_token(USDC_BASE, 8453, "USDC", 6, 1.0)])

        token = await resolver.resolve(USDC_BASE, 8453, index)

        assert token.symbol == "USDC"
        assert token.decimals == 6
        reader.read_contract.assert_not_called()

    @pytest.mark.asyncio
    async def test_wrapped_map_match(self):
        resolver = TokenMetadataResolver({})

        token = await resolver.resolve(WETH_BASE.lower(), 8453)

        assert token.symbol == "WETH"

    @pytest.mark.asyncio
    async def test_reads_on_chain_and_caches(self):
        reader = make_reader("DAI", 18)
        resolver = TokenMetadataResolver({1: reader})

        first = await resolver.resolve(DAI_MAINNET, 1)
        second = await resolver.resolve(DAI_MAINNET.lower(), 1)

        assert first == TokenDescriptor(DAI_MAINNET, "DAI", 18, 1)
        assert second is first
        assert reader.read_contract.await_count == 2  # symbol + decimals, once

    @pytest.mark.asyncio
    async def test_failed_read_returns_placeholder(self):
        reader = MagicMock()
        reader.read_contract = AsyncMock(side_effect=ProviderError("execution reverted"))
        resolver = TokenMetadataResolver({1: reader})

        token = await resolver.resolve(DAI_MAINNET, 1)

        assert token.symbol == UNKNOWN_TOKEN_SYMBOL
        assert token.decimals == 18

    @pytest.mark.asyncio
    async def test_missing_reader_uses_fallback_symbol(self):
        resolver = TokenMetadataResolver({})

        token = await resolver.resolve(DAI_MAINNET, 1, fallback_symbol="DAI")

        assert token.symbol == "DAI"
        assert token.decimals == 18

    @pytest.mark.asyncio
    async def test_placeholders_are_not_cached(self):
        healthy = {"value": False}

        async def read_contract(address, function_name, args=()):
            if not healthy["value"]:
                raise ProviderError("timeout")
            return {"symbol": "DAI", "decimals": 18}[function_name]

        reader = MagicMock()
        reader.read_contract = AsyncMock(side_effect=read_contract)
        resolver = TokenMetadataResolver({1: reader})

        assert (await resolver.resolve(DAI_MAINNET, 1)).symbol == UNKNOWN_TOKEN_SYMBOL
        healthy["value"] = True
        assert (await resolver.resolve(DAI_MAINNET, 1)).symbol == "DAI"
