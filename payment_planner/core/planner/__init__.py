from .models import (
    InsufficientBalance,
    MinDepositShortfall,
    OptionUnavailability,
    PaymentMode,
    PaymentOption,
    PaymentTarget,
    PlannerStage,
    QuoteFetchFailed,
    QuoteSummary,
    SwapQuoteSummary,
    TokenDescriptor,
    UsdShortfall,
    WrappedTokenPair,
)
from .balances import BalanceAggregator
from .quotes import QuoteBatch, QuoteEligibility, QuoteEngine
from .ranking import OptionRanker, filter_by_priority, sort_options
from .refiner import QuoteRefinementError, QuoteRefiner, RefinementResult, compute_target_with_slippage
from .service import PlanningResult, RouteDiscoveryService
from .tokens import PriceIndex, TokenMetadataResolver

__all__ = [
    "InsufficientBalance",
    "MinDepositShortfall",
    "OptionUnavailability",
    "PaymentMode",
    "PaymentOption",
    "PaymentTarget",
    "PlannerStage",
    "QuoteFetchFailed",
    "QuoteSummary",
    "SwapQuoteSummary",
    "TokenDescriptor",
    "UsdShortfall",
    "WrappedTokenPair",
    "BalanceAggregator",
    "QuoteBatch",
    "QuoteEligibility",
    "QuoteEngine",
    "OptionRanker",
    "filter_by_priority",
    "sort_options",
    "QuoteRefinementError",
    "QuoteRefiner",
    "RefinementResult",
    "compute_target_with_slippage",
    "PlanningResult",
    "RouteDiscoveryService",
    "PriceIndex",
    "TokenMetadataResolver",
]
