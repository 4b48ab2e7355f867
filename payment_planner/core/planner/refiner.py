"""
Bridge quote refinement.

Adjusts a bridge quote's input so its output lands in
``[target, target_with_slippage]`` using a secant-style step: each new input
is the current input scaled by ``target_with_slippage / current_output``.
"""

import logging
from dataclasses import dataclass
from fractions import Fraction
from typing import Optional

from ...chains import ZERO_ADDRESS
from ...config import settings
from ...providers.base import PricingProvider
from ...providers.models import DepositLimits
from .models import MinDepositShortfall, PaymentOption, PaymentTarget, QuoteSummary
from .quotes import summarize_bridge_quote


class QuoteRefinementError(Exception):
    """Raised when refinement could not obtain any quote."""


def compute_target_with_slippage(amount: int, slippage_bps: Optional[int] = None) -> int:
    """``amount`` plus ``slippage_bps`` basis points of it, rounded up."""

    bps = 100 if slippage_bps is None else slippage_bps
    return amount + (amount * bps + 9999) // 10000


def _relative_delta(amount: int, target: int) -> Fraction:
    if target == 0:
        return Fraction(abs(amount))
    return Fraction(abs(amount - target), target)


@dataclass
class RefinementResult:
    option_id: str
    target_with_buffer: int
    quote: Optional[QuoteSummary] = None
    attempts: int = 0
    hit_window: bool = False
    shortfall: Optional[MinDepositShortfall] = None


class QuoteRefiner:
    def __init__(
        self,
        provider: PricingProvider,
        *,
        max_attempts: Optional[int] = None,
        quote_ttl_seconds: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.provider = provider
        self.max_attempts = max_attempts or settings.quote_refine_max_attempts
        self.quote_ttl_seconds = quote_ttl_seconds or settings.quote_ttl_seconds
        self.logger = logger or logging.getLogger(__name__)

    async def refine(
        self,
        option: PaymentOption,
        target: PaymentTarget,
        wallet: Optional[str] = None,
    ) -> RefinementResult:
        if option.route is None:
            raise QuoteRefinementError(f"Option {option.id} has no bridge route")

        slippage_bps = target.max_slippage_bps if target.max_slippage_bps is not None else settings.max_slippage_bps
        target_with_buffer = compute_target_with_slippage(target.amount, slippage_bps)
        result = RefinementResult(option_id=option.id, target_with_buffer=target_with_buffer)

        fallback_recipient = target.fallback_recipient or wallet or ZERO_ADDRESS
        recipient = target.recipient or fallback_recipient
        message = target.cross_chain_message(fallback_recipient)

        limits: DepositLimits = option.quote.limits if option.quote else await self.provider.get_limits(option.route)
        max_allowed = min(option.balance, limits.max_deposit)

        if max_allowed < limits.min_deposit:
            self.logger.info(
                "Balance %d below minimum deposit %d for %s, not refining",
                option.balance,
                limits.min_deposit,
                option.id,
            )
            result.shortfall = MinDepositShortfall(
                required_amount=limits.min_deposit,
                available_amount=option.balance,
                token=option.display_token,
            )
            return result

        def clamp(amount: int) -> int:
            return max(limits.min_deposit, min(amount, max_allowed))

        current = option.quote
        best = current if current is not None and current.output_amount >= target.amount else None
        if current is not None and current.output_amount > 0:
            next_input = clamp(current.input_amount * target_with_buffer // current.output_amount)
        else:
            next_input = max_allowed

        while result.attempts < self.max_attempts:
            result.attempts += 1

            if current is None or current.input_amount != next_input:
                quote = await self.provider.get_quote(
                    option.route,
                    next_input,
                    recipient=recipient,
                    cross_chain_message=message,
                )
                current = summarize_bridge_quote(quote, limits, self.quote_ttl_seconds)

            self.logger.debug(
                "Refine attempt %d for %s: input %d -> output %d",
                result.attempts,
                option.id,
                current.input_amount,
                current.output_amount,
            )

            if target.amount <= current.output_amount <= target_with_buffer:
                best = current
                result.hit_window = True
                break

            if current.output_amount >= target.amount and (
                best is None
                or _relative_delta(current.output_amount, target.amount)
                < _relative_delta(best.output_amount, target.amount)
            ):
                best = current

            if current.output_amount > 0:
                required = clamp(current.input_amount * target_with_buffer // current.output_amount)
            else:
                required = max_allowed

            if required == current.input_amount or required == next_input:
                self.logger.debug("Refinement for %s converged or stuck at %d", option.id, required)
                break

            next_input = required

        # Nothing reached the target; report the latest quote
        if best is None:
            best = current
        if best is None:
            raise QuoteRefinementError("Unable to compute refined quote")

        result.quote = best
        return result
