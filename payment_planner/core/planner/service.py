"""
Route Discovery Service

Builds the ranked list of ways a wallet can pay a target amount of a token
on a chain: direct transfer, bridge from another chain, or swap.

Each refresh runs:
1. Route and swap-token discovery (concurrently)
2. Price index and target token resolution
3. Candidate construction (bridge, wrapped-native bridge, swap, direct)
4. Balance aggregation and USD estimates
5. Bridge and swap quotes (concurrently)
6. Feasibility evaluation and ranking

A newer refresh invalidates older in-flight ones; their results are
discarded rather than applied.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ...config import settings
from ...providers.base import ChainReader, PricingProvider
from ...providers.models import AvailableRoute, SwapRoute, SwapToken
from .balances import BalanceAggregator
from .models import (
    InsufficientBalance,
    PaymentMode,
    PaymentOption,
    PaymentTarget,
    PlannerStage,
    QuoteFetchFailed,
    TokenDescriptor,
)
from .quotes import QuoteEligibility, QuoteEngine
from .ranking import OptionRanker
from .refiner import QuoteRefiner, RefinementResult
from .tokens import PriceIndex, TokenMetadataResolver, WrappedTokenMap, default_wrapped_token_map

StageListener = Callable[[PlannerStage, List[PlannerStage]], None]

WALLET_REQUIRED_MESSAGE = "Connect your wallet to see available payment options"
GENERIC_FAILURE_MESSAGE = "We couldn't load payment options"
REFINE_FAILURE_MESSAGE = "Unable to refine quote"


@dataclass
class PlanningResult:
    options: List[PaymentOption] = field(default_factory=list)
    error: Optional[str] = None
    last_updated: Optional[int] = None  # epoch milliseconds
    target_token: Optional[TokenDescriptor] = None
    stage: PlannerStage = PlannerStage.INITIALIZING
    completed_stages: List[PlannerStage] = field(default_factory=list)
    stale: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "options": [option.to_dict() for option in self.options],
            "error": self.error,
            "lastUpdated": self.last_updated,
            "targetToken": self.target_token.to_dict() if self.target_token else None,
            "stage": self.stage.value,
            "completedStages": [stage.value for stage in self.completed_stages],
        }


class _StaleRefresh(Exception):
    """A newer refresh started while this one was awaiting I/O."""


def _format_units(amount: int, decimals: int) -> float:
    return amount / 10 ** decimals


class RouteDiscoveryService:
    """Orchestrates token resolution, balances, quotes and ranking."""

    def __init__(
        self,
        provider: PricingProvider,
        chain_readers: Optional[Mapping[int, ChainReader]] = None,
        *,
        wrapped_token_map: Optional[Mapping[int, Mapping[str, Any]]] = None,
        token_prices_usd: Optional[Mapping[int, Mapping[str, float]]] = None,
        supported_chain_ids: Optional[Sequence[int]] = None,
        show_unavailable: Optional[bool] = None,
        usd_buffer: Optional[float] = None,
        token_resolver: Optional[TokenMetadataResolver] = None,
        balance_aggregator: Optional[BalanceAggregator] = None,
        quote_engine: Optional[QuoteEngine] = None,
        refiner: Optional[QuoteRefiner] = None,
        stage_listener: Optional[StageListener] = None,
        logger: Optional[logging.Logger] = None,
    ):
        readers = dict(chain_readers or {})
        self.provider = provider
        self.logger = logger or logging.getLogger(__name__)
        self.wrapped_token_map: WrappedTokenMap = default_wrapped_token_map(wrapped_token_map)
        self.token_prices_usd = token_prices_usd or {}
        self.supported_chain_ids = set(supported_chain_ids or settings.supported_chain_ids)
        self.show_unavailable = (
            settings.show_unavailable_options if show_unavailable is None else show_unavailable
        )
        self.usd_buffer = usd_buffer or settings.usd_shortfall_buffer

        self.token_resolver = token_resolver or TokenMetadataResolver(readers, self.wrapped_token_map)
        self.balances = balance_aggregator or BalanceAggregator(readers)
        self.quote_engine = quote_engine or QuoteEngine(provider, show_unavailable=self.show_unavailable)
        self.refiner = refiner or QuoteRefiner(provider)
        self.ranker = OptionRanker(show_unavailable=self.show_unavailable)
        self.stage_listener = stage_listener

        self.state = PlanningResult()
        self._generation = 0

    # -------------------------------------------------------------------------
    # Stage tracking
    # -------------------------------------------------------------------------

    def _check_current(self, generation: int) -> None:
        if generation != self._generation:
            raise _StaleRefresh()

    def _begin_stage(self, generation: int, result: PlanningResult, stage: PlannerStage) -> None:
        self._check_current(generation)
        result.stage = stage
        self.logger.debug("Planner stage: %s", stage.label)
        if self.stage_listener is not None:
            try:
                self.stage_listener(stage, list(result.completed_stages))
            except Exception as exc:
                self.logger.error("Stage listener error: %s", exc)

    def _complete_stage(self, generation: int, result: PlanningResult, stage: PlannerStage) -> None:
        self._check_current(generation)
        if stage not in result.completed_stages:
            result.completed_stages.append(stage)

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def refresh(self, target: PaymentTarget, wallet: Optional[str]) -> PlanningResult:
        """Recompute ranked options. Never raises; failures land in ``error``."""

        self._generation += 1
        generation = self._generation

        if not wallet:
            self.logger.warning(WALLET_REQUIRED_MESSAGE)
            result = PlanningResult(error=WALLET_REQUIRED_MESSAGE, stage=PlannerStage.READY)
            self.state = result
            return result

        result = PlanningResult()
        try:
            await self._run(generation, result, target, wallet)
        except _StaleRefresh:
            self.logger.info("Discarding results of superseded refresh %d", generation)
            return PlanningResult(stale=True)
        except Exception as exc:
            if generation != self._generation:
                return PlanningResult(stale=True)
            self.logger.exception("Failed to refresh payment options")
            result.options = []
            result.error = str(exc) or GENERIC_FAILURE_MESSAGE
            result.stage = PlannerStage.READY

        if generation != self._generation:
            return PlanningResult(stale=True)
        self.state = result
        return result

    async def _run(self, generation: int, result: PlanningResult, target: PaymentTarget, wallet: str) -> None:
        self._begin_stage(generation, result, PlannerStage.INITIALIZING)
        self._complete_stage(generation, result, PlannerStage.INITIALIZING)

        self._begin_stage(generation, result, PlannerStage.DISCOVERING_ROUTES)
        routes, swap_tokens = await asyncio.gather(
            self.provider.get_available_routes(target.token_address, target.chain_id),
            self.provider.get_swap_tokens(),
        )
        self.logger.info("Discovered %d bridge routes and %d swap tokens", len(routes), len(swap_tokens))
        self._complete_stage(generation, result, PlannerStage.DISCOVERING_ROUTES)

        self._begin_stage(generation, result, PlannerStage.RESOLVING_TOKENS)
        index = PriceIndex.build(swap_tokens, self.token_prices_usd, self.wrapped_token_map)
        target_token = await self.token_resolver.resolve(target.token_address, target.chain_id, index)
        target_price = index.price_for(target_token.chain_id, target_token.address)
        result.target_token = target_token

        candidates = await self._bridge_candidates(routes, index)
        candidates.extend(self._swap_candidates(swap_tokens, target, index))
        candidates.append(
            PaymentOption(
                id=f"direct:{target.chain_id}:{target.token_address.lower()}",
                mode=PaymentMode.DIRECT,
                display_token=target_token,
                price_usd=target_price,
            )
        )
        self.logger.info("Assembled %d payment candidates", len(candidates))
        self._complete_stage(generation, result, PlannerStage.RESOLVING_TOKENS)

        self._begin_stage(generation, result, PlannerStage.FETCHING_BALANCES)
        balances = await self.balances.fetch_balances(candidates, wallet)
        with_balances = [self._with_balance(option, balances.get(option.id, 0), index) for option in candidates]
        self._complete_stage(generation, result, PlannerStage.FETCHING_BALANCES)

        self._begin_stage(generation, result, PlannerStage.QUOTING_ROUTES)
        required_usd = None
        if target_price is not None:
            required_usd = _format_units(target.amount, target_token.decimals) * target_price
        eligibility = QuoteEligibility(required_usd=required_usd, buffer=self.usd_buffer)
        bridge_batch, swap_batch = await asyncio.gather(
            self.quote_engine.fetch_bridge_quotes(with_balances, target, eligibility, wallet),
            self.quote_engine.fetch_swap_quotes(with_balances, target, eligibility, wallet),
        )
        self._complete_stage(generation, result, PlannerStage.QUOTING_ROUTES)

        self._begin_stage(generation, result, PlannerStage.FINALIZING)
        evaluated: List[PaymentOption] = []
        for option in with_balances:
            if option.mode == PaymentMode.DIRECT:
                can_meet = option.balance >= target.amount
                reason = None
                if not can_meet:
                    reason = InsufficientBalance(
                        required_amount=target.amount,
                        available_amount=option.balance,
                        token=option.display_token,
                    )
                evaluated.append(option.replace(can_meet_target=can_meet, unavailability_reason=reason))
                continue

            if option.mode == PaymentMode.SWAP:
                swap_quote = swap_batch.quotes.get(option.id)
                can_meet = swap_quote is not None and swap_quote.expected_output_amount >= target.amount
                evaluated.append(
                    option.replace(
                        swap_quote=swap_quote,
                        can_meet_target=can_meet,
                        estimated_fill_time_sec=swap_quote.estimated_fill_time_sec if swap_quote else None,
                        unavailability_reason=None if can_meet else swap_batch.unavailability.get(option.id),
                    )
                )
                continue

            quote = bridge_batch.quotes.get(option.id)
            can_meet = quote is not None and quote.output_amount >= target.amount
            evaluated.append(
                option.replace(
                    quote=quote,
                    can_meet_target=can_meet,
                    estimated_fill_time_sec=quote.estimated_fill_time_sec if quote else None,
                    unavailability_reason=None if can_meet else bridge_batch.unavailability.get(option.id),
                )
            )

        result.options = self.ranker.rank(evaluated)
        result.error = swap_batch.error
        result.last_updated = int(time.time() * 1000)
        self.logger.info(
            "Refresh complete: %d of %d options shown, %d can meet target",
            len(result.options),
            len(evaluated),
            sum(1 for option in evaluated if option.can_meet_target),
        )
        self._complete_stage(generation, result, PlannerStage.FINALIZING)
        self._begin_stage(generation, result, PlannerStage.READY)

    async def _bridge_candidates(self, routes: Sequence[AvailableRoute], index: PriceIndex) -> List[PaymentOption]:
        options: List[PaymentOption] = []
        for available in routes:
            if available.origin_chain_id not in self.supported_chain_ids:
                continue

            route = available.to_bridge_route()
            token = await self.token_resolver.resolve(
                route.input_token,
                route.origin_chain_id,
                index,
                fallback_symbol=available.origin_token_symbol,
            )
            base_price = index.price_for(route.origin_chain_id, token.address)
            options.append(
                PaymentOption(
                    id=f"bridge:{route.origin_chain_id}:{token.address.lower()}",
                    mode=PaymentMode.BRIDGE,
                    display_token=token,
                    price_usd=base_price,
                    route=route,
                )
            )

            pair = self.wrapped_token_map.get(route.origin_chain_id, {}).get(token.symbol)
            if pair is None:
                continue
            native_price = index.price_for(route.origin_chain_id, pair.native.address)
            if native_price is None:
                native_price = index.price_for(route.origin_chain_id, pair.wrapped.address)
            options.append(
                PaymentOption(
                    id=f"bridge-native:{route.origin_chain_id}:{pair.native.address.lower()}",
                    mode=PaymentMode.BRIDGE,
                    display_token=pair.native,
                    wrapped_token=pair.wrapped,
                    requires_wrap=True,
                    price_usd=native_price if native_price is not None else base_price,
                    route=route.model_copy(update={"input_token": pair.wrapped.address, "is_native": True}),
                )
            )
        return options

    def _swap_candidates(
        self,
        swap_tokens: Sequence[SwapToken],
        target: PaymentTarget,
        index: PriceIndex,
    ) -> List[PaymentOption]:
        options: List[PaymentOption] = []
        for token in swap_tokens:
            is_target = token.address.lower() == target.token_address.lower() and token.chain_id == target.chain_id
            if is_target or token.chain_id not in self.supported_chain_ids:
                continue
            options.append(
                PaymentOption(
                    id=f"swap:{token.chain_id}:{token.address.lower()}",
                    mode=PaymentMode.SWAP,
                    display_token=TokenDescriptor(
                        address=token.address,
                        symbol=token.symbol,
                        decimals=token.decimals,
                        chain_id=token.chain_id,
                        logo_url=token.logo_url,
                    ),
                    price_usd=index.price_for(token.chain_id, token.address),
                    swap_route=SwapRoute(
                        origin_chain_id=token.chain_id,
                        destination_chain_id=target.chain_id,
                        input_token=token.address,
                        output_token=target.token_address,
                    ),
                )
            )
        return options

    @staticmethod
    def _with_balance(option: PaymentOption, balance: int, index: PriceIndex) -> PaymentOption:
        price = option.price_usd
        if price is None:
            price = index.price_for(option.display_token.chain_id, option.display_token.address)
        estimated = None
        if price is not None:
            estimated = _format_units(balance, option.display_token.decimals) * price
        return option.replace(balance=balance, price_usd=price, estimated_balance_usd=estimated)

    # -------------------------------------------------------------------------
    # Refinement
    # -------------------------------------------------------------------------

    async def refine_option(
        self,
        option: PaymentOption,
        target: PaymentTarget,
        wallet: Optional[str] = None,
    ) -> PaymentOption:
        """Refine a bridge option's quote. Never raises; failures mark the option unusable."""

        try:
            outcome = await self.refiner.refine(option, target, wallet)
        except Exception as exc:
            self.logger.warning("Failed to refine quote for %s: %s", option.id, exc)
            updated = option.replace(
                can_meet_target=False,
                unavailability_reason=QuoteFetchFailed(str(exc) or REFINE_FAILURE_MESSAGE),
            )
        else:
            updated = self._apply_refinement(option, outcome, target)

        self.state.options = [updated if existing.id == option.id else existing for existing in self.state.options]
        return updated

    @staticmethod
    def _apply_refinement(option: PaymentOption, outcome: RefinementResult, target: PaymentTarget) -> PaymentOption:
        if outcome.shortfall is not None:
            return option.replace(can_meet_target=False, unavailability_reason=outcome.shortfall)
        can_meet = outcome.quote.output_amount >= target.amount
        return option.replace(
            quote=outcome.quote,
            can_meet_target=can_meet,
            estimated_fill_time_sec=outcome.quote.estimated_fill_time_sec,
            unavailability_reason=None if can_meet else option.unavailability_reason,
        )
