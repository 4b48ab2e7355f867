"""
Bridge and swap quote fetching with feasibility pre-filters.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Generic, List, Optional, Sequence, Tuple, TypeVar

from ...config import settings
from ...providers.base import PricingProvider
from ...providers.models import BridgeQuote, DepositLimits, SwapQuote
from .models import (
    MinDepositShortfall,
    OptionUnavailability,
    PaymentMode,
    PaymentOption,
    PaymentTarget,
    QuoteFetchFailed,
    QuoteSummary,
    SwapQuoteSummary,
    UsdShortfall,
)

T = TypeVar("T")

MISSING_FALLBACK_RECIPIENT = "Missing fallback recipient for cross-chain contract call execution"
WALLET_NOT_CONNECTED = "Wallet not connected to fetch swap price"


@dataclass(frozen=True)
class QuoteEligibility:
    """USD value the target needs, and the fraction a candidate must hold."""

    required_usd: Optional[float]
    buffer: float = 0.98

    @property
    def threshold(self) -> Optional[float]:
        if self.required_usd is None:
            return None
        return self.required_usd * self.buffer

    def shortfall(self, option: PaymentOption) -> Optional[UsdShortfall]:
        threshold = self.threshold
        available = option.estimated_balance_usd
        if threshold is None or available is None or available >= threshold:
            return None
        return UsdShortfall(required_usd=threshold, available_usd=available)


@dataclass
class QuoteBatch(Generic[T]):
    quotes: Dict[str, T] = field(default_factory=dict)
    unavailability: Dict[str, OptionUnavailability] = field(default_factory=dict)
    error: Optional[str] = None


def summarize_bridge_quote(quote: BridgeQuote, limits: DepositLimits, ttl_seconds: int = 300) -> QuoteSummary:
    return QuoteSummary(
        input_amount=quote.input_amount,
        output_amount=quote.output_amount,
        fees_total=quote.fees_total,
        expires_at=quote.quote_timestamp * 1000 + ttl_seconds * 1000,
        limits=limits,
        estimated_fill_time_sec=quote.estimated_fill_time_sec,
        raw=quote.model_dump(by_alias=True),
    )


def summarize_swap_quote(quote: SwapQuote, option: PaymentOption) -> SwapQuoteSummary:
    return SwapQuoteSummary(
        input_amount=quote.input_amount,
        expected_output_amount=quote.expected_output_amount,
        min_output_amount=quote.min_output_amount
        if quote.min_output_amount is not None
        else quote.expected_output_amount,
        origin_chain_id=option.swap_route.origin_chain_id,
        destination_chain_id=option.swap_route.destination_chain_id,
        approval_txns=list(quote.approval_txns),
        estimated_fill_time_sec=quote.expected_fill_time,
        raw=quote.raw,
    )


class QuoteEngine:
    """Fetches limits and quotes for candidate options, one failure never affecting siblings."""

    def __init__(
        self,
        provider: PricingProvider,
        *,
        show_unavailable: Optional[bool] = None,
        max_swap_quote_options: Optional[int] = None,
        swap_slippage: Optional[float] = None,
        integrator_id: Optional[str] = None,
        quote_ttl_seconds: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.provider = provider
        self.show_unavailable = (
            settings.show_unavailable_options if show_unavailable is None else show_unavailable
        )
        self.max_swap_quote_options = max_swap_quote_options or settings.max_swap_quote_options
        self.swap_slippage = settings.swap_slippage if swap_slippage is None else swap_slippage
        self.integrator_id = integrator_id if integrator_id is not None else settings.integrator_id
        self.quote_ttl_seconds = quote_ttl_seconds or settings.quote_ttl_seconds
        self.logger = logger or logging.getLogger(__name__)

    # -------------------------------------------------------------------------
    # Bridge
    # -------------------------------------------------------------------------

    async def fetch_bridge_quotes(
        self,
        candidates: Sequence[PaymentOption],
        target: PaymentTarget,
        eligibility: QuoteEligibility,
        wallet: Optional[str] = None,
    ) -> QuoteBatch[QuoteSummary]:
        batch: QuoteBatch[QuoteSummary] = QuoteBatch()
        eligible: List[PaymentOption] = []

        for candidate in candidates:
            if candidate.mode != PaymentMode.BRIDGE or candidate.route is None:
                continue
            if not self.show_unavailable and candidate.balance == 0:
                continue
            shortfall = eligibility.shortfall(candidate)
            if shortfall is not None:
                self.logger.debug(
                    "Skipping bridge quote for %s: $%.2f below $%.2f",
                    candidate.id,
                    shortfall.available_usd,
                    shortfall.required_usd,
                )
                batch.unavailability[candidate.id] = shortfall
                continue
            eligible.append(candidate)

        results = await asyncio.gather(
            *(self._quote_bridge_candidate(candidate, target, wallet) for candidate in eligible)
        )
        for candidate, (summary, reason) in zip(eligible, results):
            if summary is not None:
                batch.quotes[candidate.id] = summary
            elif reason is not None:
                batch.unavailability[candidate.id] = reason

        self.logger.info("Bridge quotes: %d of %d candidates quoted", len(batch.quotes), len(eligible))
        return batch

    async def _quote_bridge_candidate(
        self,
        candidate: PaymentOption,
        target: PaymentTarget,
        wallet: Optional[str],
    ) -> Tuple[Optional[QuoteSummary], Optional[OptionUnavailability]]:
        try:
            limits = await self.provider.get_limits(candidate.route)

            if candidate.balance < limits.min_deposit:
                self.logger.debug(
                    "Balance %d below min deposit %d for %s",
                    candidate.balance,
                    limits.min_deposit,
                    candidate.id,
                )
                return None, MinDepositShortfall(
                    required_amount=limits.min_deposit,
                    available_amount=candidate.balance,
                    token=candidate.display_token,
                )

            amount = min(candidate.balance, limits.max_deposit)
            recipient = target.recipient or wallet
            message = None
            if target.contract_calls:
                fallback = target.fallback_recipient or wallet
                if not fallback:
                    self.logger.error("%s (%s)", MISSING_FALLBACK_RECIPIENT, candidate.id)
                    return None, QuoteFetchFailed(message=MISSING_FALLBACK_RECIPIENT)
                message = target.cross_chain_message(fallback)

            quote = await self.provider.get_quote(
                candidate.route,
                amount,
                recipient=recipient,
                cross_chain_message=message,
            )
            return summarize_bridge_quote(quote, limits, self.quote_ttl_seconds), None
        except Exception as exc:
            self.logger.warning("Failed to fetch bridge quote for %s: %s", candidate.id, exc)
            return None, QuoteFetchFailed(message=str(exc))

    # -------------------------------------------------------------------------
    # Swap
    # -------------------------------------------------------------------------

    async def fetch_swap_quotes(
        self,
        candidates: Sequence[PaymentOption],
        target: PaymentTarget,
        eligibility: QuoteEligibility,
        depositor: Optional[str] = None,
    ) -> QuoteBatch[SwapQuoteSummary]:
        batch: QuoteBatch[SwapQuoteSummary] = QuoteBatch()
        swap_candidates: List[PaymentOption] = []

        for candidate in candidates:
            if candidate.mode != PaymentMode.SWAP or candidate.swap_route is None:
                continue
            shortfall = eligibility.shortfall(candidate)
            if shortfall is not None:
                batch.unavailability[candidate.id] = shortfall
                continue
            swap_candidates.append(candidate)

        if not swap_candidates:
            return batch

        if not depositor:
            self.logger.error("Swap quotes require a connected wallet")
            batch.error = "Connect your wallet to get swap prices"
            for candidate in swap_candidates:
                batch.unavailability.setdefault(candidate.id, QuoteFetchFailed(message=WALLET_NOT_CONNECTED))
            return batch

        funded = sorted(
            (candidate for candidate in swap_candidates if candidate.balance > 0),
            key=lambda candidate: candidate.balance,
            reverse=True,
        )
        limited = funded[: self.max_swap_quote_options]

        results = await asyncio.gather(
            *(self._quote_swap_candidate(candidate, target, depositor) for candidate in limited)
        )
        for candidate, (summary, can_meet, reason) in zip(limited, results):
            if summary is not None and can_meet:
                batch.quotes[candidate.id] = summary
            elif reason is not None:
                batch.unavailability[candidate.id] = reason

        self.logger.info(
            "Swap quotes: %d feasible of %d requested (%d skipped)",
            len(batch.quotes),
            len(limited),
            len(swap_candidates) - len(limited),
        )
        return batch

    async def _quote_swap_candidate(
        self,
        candidate: PaymentOption,
        target: PaymentTarget,
        depositor: str,
    ) -> Tuple[Optional[SwapQuoteSummary], bool, Optional[OptionUnavailability]]:
        try:
            quote = await self.provider.get_swap_quote(
                candidate.swap_route,
                target.amount,
                depositor=depositor.lower(),
                recipient=target.recipient or depositor,
                slippage=self.swap_slippage,
                trade_type="minOutput",
                integrator_id=self.integrator_id or None,
                app_fee=target.app_fee,
                app_fee_recipient=target.app_fee_recipient,
            )
        except Exception as exc:
            self.logger.warning("Failed to fetch swap quote for %s: %s", candidate.id, exc)
            return None, False, QuoteFetchFailed(message=str(exc))

        summary = summarize_swap_quote(quote, candidate)
        required_input = quote.balance_expected if quote.balance_expected else summary.input_amount
        can_meet = candidate.balance >= required_input and summary.expected_output_amount >= target.amount
        self.logger.debug(
            "Swap quote for %s: input %d, expected %d, approvals %d, feasible %s",
            candidate.id,
            summary.input_amount,
            summary.expected_output_amount,
            len(summary.approval_txns),
            can_meet,
        )
        return summary, can_meet, None
