"""
Quote Refiner Tests

The fake pricing API charges a fee on the input, so the refiner has to walk
the input until the delivered output lands in ``[target, target + 1%]``.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from payment_planner.core.planner.models import (
    MinDepositShortfall,
    PaymentMode,
    PaymentOption,
    PaymentTarget,
    QuoteSummary,
    TokenDescriptor,
)
from payment_planner.core.planner.refiner import (
    QuoteRefinementError,
    QuoteRefiner,
    compute_target_with_slippage,
)
from payment_planner.providers.models import BridgeQuote, BridgeRoute, DepositLimits


WALLET = "0x50ac5CFcc81BB0872e85255D7079F8a529345D16"
USDC_MAINNET = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
USDC_BASE = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"

TARGET = 100_000_000
WIDE_LIMITS = DepositLimits(min_deposit=1_000_000, max_deposit=10**12)


def quote_for(input_amount, output_amount):
    return BridgeQuote.model_validate({
        "inputAmount": str(input_amount),
        "outputAmount": str(output_amount),
        "timestamp": 1_700_000_000,
    })


def make_provider(pricing, limits=WIDE_LIMITS):
    provider = MagicMock()
    provider.get_limits = AsyncMock(return_value=limits)
    provider.get_quote = AsyncMock(
        side_effect=lambda route, amount, **kwargs: quote_for(amount, pricing(amount))
    )
    return provider


def make_option(balance, quote=None):
    return PaymentOption(
        id=f"bridge:1:{USDC_MAINNET.lower()}",
        mode=PaymentMode.BRIDGE,
        display_token=TokenDescriptor(USDC_MAINNET, "USDC", 6, 1),
        balance=balance,
        route=BridgeRoute(
            origin_chain_id=1,
            destination_chain_id=8453,
            input_token=USDC_MAINNET,
            output_token=USDC_BASE,
        ),
        quote=quote,
    )


def existing_quote(input_amount, output_amount, limits=WIDE_LIMITS):
    return QuoteSummary(
        input_amount=input_amount,
        output_amount=output_amount,
        fees_total=input_amount - output_amount,
        expires_at=0,
        limits=limits,
    )


@pytest.fixture
def target():
    return PaymentTarget(token_address=USDC_BASE, chain_id=8453, amount=TARGET, max_slippage_bps=100)


def one_percent_fee(amount):
    return amount * 99 // 100


# =============================================================================
# Slippage buffer
# =============================================================================


class TestTargetWithSlippage:
    def test_adds_basis_points(self):
        assert compute_target_with_slippage(100_000_000, 100) == 101_000_000

    def test_rounds_up(self):
        assert compute_target_with_slippage(1, 100) == 2
        assert compute_target_with_slippage(150, 1) == 151

    def test_zero_cases(self):
        assert compute_target_with_slippage(0, 100) == 0
        assert compute_target_with_slippage(12345, 0) == 12345

    def test_defaults_to_one_percent(self):
        assert compute_target_with_slippage(10_000) == 10_100


# =============================================================================
# Refinement
# =============================================================================


class TestQuoteRefiner:
    @pytest.mark.asyncio
    async def test_seeded_from_existing_quote_hits_window_in_one_attempt(self, target):
        provider = make_provider(one_percent_fee)
        option = make_option(500_000_000, existing_quote(100_000_000, 99_000_000))

        result = await QuoteRefiner(provider).refine(option, target, WALLET)

        assert result.hit_window is True
        assert result.attempts == 1
        assert result.target_with_buffer == 101_000_000
        assert result.quote.input_amount == 102_020_202
        assert result.quote.output_amount == 100_999_999
        provider.get_limits.assert_not_called()

    @pytest.mark.asyncio
    async def test_below_target_seed_is_replaced_by_quote_in_window(self):
        small_limits = DepositLimits(min_deposit=1, max_deposit=10**6)
        provider = make_provider(lambda amount: amount, limits=small_limits)
        option = make_option(500, existing_quote(99, 99, limits=small_limits))
        small_target = PaymentTarget(token_address=USDC_BASE, chain_id=8453, amount=100, max_slippage_bps=100)

        result = await QuoteRefiner(provider).refine(option, small_target, WALLET)

        assert result.hit_window is True
        assert result.attempts == 1
        assert provider.get_quote.call_args.args[1] == 101
        assert result.quote.output_amount == 101
        assert result.quote.output_amount >= small_target.amount

    @pytest.mark.asyncio
    async def test_below_target_seed_never_counts_as_best(self, target):
        # Output jumps over the window, so no attempt lands in it
        provider = make_provider(lambda amount: 120_000_000 if amount >= 50_000_000 else 80_000_000)
        option = make_option(10**9, existing_quote(100_000_000, 99_500_000))

        result = await QuoteRefiner(provider, max_attempts=2).refine(option, target, WALLET)

        assert result.hit_window is False
        assert result.attempts == 2
        assert result.quote.output_amount == 120_000_000

    @pytest.mark.asyncio
    async def test_without_quote_starts_from_max_allowed(self, target):
        provider = make_provider(one_percent_fee)
        option = make_option(500_000_000)

        result = await QuoteRefiner(provider).refine(option, target, WALLET)

        first_call = provider.get_quote.call_args_list[0]
        assert first_call.args[1] == 500_000_000
        assert result.attempts == 2
        assert result.hit_window is True
        assert result.quote.output_amount == 100_999_999
        provider.get_limits.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_recipient_defaults_to_wallet(self, target):
        provider = make_provider(one_percent_fee)

        await QuoteRefiner(provider).refine(make_option(500_000_000), target, WALLET)

        assert provider.get_quote.call_args.kwargs["recipient"] == WALLET

    @pytest.mark.asyncio
    async def test_shortfall_when_balance_below_min_deposit(self, target):
        provider = make_provider(one_percent_fee)
        option = make_option(500_000)

        result = await QuoteRefiner(provider).refine(option, target, WALLET)

        assert isinstance(result.shortfall, MinDepositShortfall)
        assert result.shortfall.required_amount == 1_000_000
        assert result.quote is None
        provider.get_quote.assert_not_called()

    @pytest.mark.asyncio
    async def test_stops_when_stuck_at_clamp(self, target):
        # Output never moves, so the required input clamps to the balance again
        provider = make_provider(lambda amount: 90_000_000)
        option = make_option(200_000_000)

        result = await QuoteRefiner(provider).refine(option, target, WALLET)

        assert result.attempts == 1
        assert result.hit_window is False
        assert result.quote.output_amount == 90_000_000
        assert provider.get_quote.await_count == 1

    @pytest.mark.asyncio
    async def test_attempts_are_capped_and_best_meets_target(self, target):
        # Flat 50 USDC fee: the secant step oscillates around the fixed point
        provider = make_provider(lambda amount: max(amount - 50_000_000, 0))
        option = make_option(10**12)

        result = await QuoteRefiner(provider, max_attempts=6).refine(option, target, WALLET)

        assert result.attempts == 6
        assert provider.get_quote.await_count == 6
        assert result.hit_window is False
        assert result.quote.output_amount >= TARGET
        outputs = [
            quote_for(call.args[1], max(call.args[1] - 50_000_000, 0)).output_amount
            for call in provider.get_quote.call_args_list
        ]
        eligible = [output for output in outputs if output >= TARGET]
        assert result.quote.output_amount == min(eligible)

    @pytest.mark.asyncio
    async def test_missing_route_raises(self, target):
        option = make_option(10**9).replace(route=None)

        with pytest.raises(QuoteRefinementError):
            await QuoteRefiner(make_provider(one_percent_fee)).refine(option, target, WALLET)
