"""
Payment Planner Models

Token descriptors, payment options, quote summaries and the reasons an
option cannot be used.
"""

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from ...providers.models import (
    BridgeRoute,
    ContractCallAction,
    CrossChainMessage,
    DepositLimits,
    SwapApprovalTxn,
    SwapRoute,
)


class PaymentMode(str, Enum):
    """How the payer's asset reaches the target."""

    DIRECT = "direct"     # Same token on the target chain
    BRIDGE = "bridge"     # Same asset moved across chains
    SWAP = "swap"         # Different token swapped (optionally cross-chain)

    @property
    def priority(self) -> int:
        return MODE_PRIORITY[self]


MODE_PRIORITY: Dict[PaymentMode, int] = {
    PaymentMode.DIRECT: 1,
    PaymentMode.BRIDGE: 2,
    PaymentMode.SWAP: 3,
}


@dataclass(frozen=True)
class TokenDescriptor:
    address: str
    symbol: str
    decimals: int
    chain_id: int
    logo_url: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.chain_id}:{self.address.lower()}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "chainId": self.chain_id,
            "logoUrl": self.logo_url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenDescriptor":
        return cls(
            address=data["address"],
            symbol=data["symbol"],
            decimals=int(data["decimals"]),
            chain_id=int(data.get("chainId", data.get("chain_id"))),
            logo_url=data.get("logoUrl", data.get("logo_url")),
        )


@dataclass
class PaymentTarget:
    """What the payer must deliver, and where."""

    token_address: str
    chain_id: int
    amount: int
    recipient: Optional[str] = None
    contract_calls: Optional[List[ContractCallAction]] = None
    fallback_recipient: Optional[str] = None
    max_slippage_bps: Optional[int] = None
    app_fee: Optional[float] = None
    app_fee_recipient: Optional[str] = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError("Target amount must be non-negative")

    def cross_chain_message(self, fallback_recipient: str) -> Optional[CrossChainMessage]:
        if not self.contract_calls:
            return None
        return CrossChainMessage(actions=list(self.contract_calls), fallback_recipient=fallback_recipient)


@dataclass(frozen=True)
class WrappedTokenPair:
    """A chain's native currency and its wrapped ERC-20 counterpart."""

    wrapped: TokenDescriptor
    native: TokenDescriptor


# =============================================================================
# Quotes
# =============================================================================

@dataclass
class QuoteSummary:
    """Bridge quote reduced to what the planner and executor need."""

    input_amount: int
    output_amount: int
    fees_total: int
    expires_at: int  # epoch milliseconds
    limits: DepositLimits
    estimated_fill_time_sec: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inputAmount": str(self.input_amount),
            "outputAmount": str(self.output_amount),
            "feesTotal": str(self.fees_total),
            "expiresAt": self.expires_at,
            "limits": {
                "minDeposit": str(self.limits.min_deposit),
                "maxDeposit": str(self.limits.max_deposit),
            },
            "estimatedFillTimeSec": self.estimated_fill_time_sec,
        }


@dataclass
class SwapQuoteSummary:
    input_amount: int
    expected_output_amount: int
    min_output_amount: int
    origin_chain_id: int
    destination_chain_id: int
    approval_txns: List[SwapApprovalTxn] = field(default_factory=list)
    estimated_fill_time_sec: Optional[int] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "inputAmount": str(self.input_amount),
            "expectedOutputAmount": str(self.expected_output_amount),
            "minOutputAmount": str(self.min_output_amount),
            "originChainId": self.origin_chain_id,
            "destinationChainId": self.destination_chain_id,
            "approvalTxns": [txn.model_dump(by_alias=True) for txn in self.approval_txns],
            "estimatedFillTimeSec": self.estimated_fill_time_sec,
        }


# =============================================================================
# Unavailability reasons
# =============================================================================

@dataclass(frozen=True)
class MinDepositShortfall:
    required_amount: int
    available_amount: int
    token: TokenDescriptor
    kind: Literal["min_deposit_shortfall"] = field(default="min_deposit_shortfall", init=False)


@dataclass(frozen=True)
class InsufficientBalance:
    required_amount: int
    available_amount: int
    token: TokenDescriptor
    kind: Literal["insufficient_balance"] = field(default="insufficient_balance", init=False)


@dataclass(frozen=True)
class UsdShortfall:
    required_usd: float
    available_usd: float
    kind: Literal["usd_shortfall"] = field(default="usd_shortfall", init=False)


@dataclass(frozen=True)
class QuoteFetchFailed:
    message: str
    kind: Literal["quote_fetch_failed"] = field(default="quote_fetch_failed", init=False)


OptionUnavailability = Union[MinDepositShortfall, InsufficientBalance, UsdShortfall, QuoteFetchFailed]


def describe_unavailability(reason: OptionUnavailability) -> str:
    """Short human-readable explanation of why an option is unusable."""

    if isinstance(reason, (MinDepositShortfall, InsufficientBalance)):
        label = "Minimum deposit" if isinstance(reason, MinDepositShortfall) else "Balance"
        return (
            f"{label} requires {reason.required_amount} {reason.token.symbol}, "
            f"wallet holds {reason.available_amount}"
        )
    if isinstance(reason, UsdShortfall):
        return f"Needs about ${reason.required_usd:,.2f}, wallet holds ${reason.available_usd:,.2f}"
    return reason.message


# =============================================================================
# Options
# =============================================================================

@dataclass
class PaymentOption:
    """One way of paying the target, recomputed on every planning cycle."""

    id: str
    mode: PaymentMode
    display_token: TokenDescriptor
    balance: int = 0
    wrapped_token: Optional[TokenDescriptor] = None
    requires_wrap: bool = False
    price_usd: Optional[float] = None
    estimated_balance_usd: Optional[float] = None
    route: Optional[BridgeRoute] = None
    swap_route: Optional[SwapRoute] = None
    quote: Optional[QuoteSummary] = None
    swap_quote: Optional[SwapQuoteSummary] = None
    can_meet_target: bool = False
    estimated_fill_time_sec: Optional[int] = None
    unavailability_reason: Optional[OptionUnavailability] = None

    def __post_init__(self) -> None:
        if self.balance < 0:
            raise ValueError(f"Option {self.id} has negative balance {self.balance}")

    @property
    def origin_chain_id(self) -> int:
        return self.display_token.chain_id

    @property
    def priority(self) -> int:
        return self.mode.priority

    def replace(self, **changes: Any) -> "PaymentOption":
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "mode": self.mode.value,
            "displayToken": self.display_token.to_dict(),
            "wrappedToken": self.wrapped_token.to_dict() if self.wrapped_token else None,
            "requiresWrap": self.requires_wrap,
            "balance": str(self.balance),
            "priceUsd": self.price_usd,
            "estimatedBalanceUsd": self.estimated_balance_usd,
            "quote": self.quote.to_dict() if self.quote else None,
            "swapQuote": self.swap_quote.to_dict() if self.swap_quote else None,
            "canMeetTarget": self.can_meet_target,
            "estimatedFillTimeSec": self.estimated_fill_time_sec,
            "unavailabilityReason": dataclasses.asdict(self.unavailability_reason)
            if self.unavailability_reason
            else None,
        }


class PlannerStage(str, Enum):
    """Progress of a planning refresh."""

    INITIALIZING = "initializing"
    DISCOVERING_ROUTES = "discovering_routes"
    RESOLVING_TOKENS = "resolving_tokens"
    FETCHING_BALANCES = "fetching_balances"
    QUOTING_ROUTES = "quoting_routes"
    FINALIZING = "finalizing"
    READY = "ready"

    @property
    def label(self) -> str:
        return PLANNER_STAGE_LABELS[self]


PLANNER_STAGE_LABELS: Dict[PlannerStage, str] = {
    PlannerStage.INITIALIZING: "Getting things ready",
    PlannerStage.DISCOVERING_ROUTES: "Finding ways to send your payment",
    PlannerStage.RESOLVING_TOKENS: "Loading token details",
    PlannerStage.FETCHING_BALANCES: "Checking your wallet balance",
    PlannerStage.QUOTING_ROUTES: "Working out pricing",
    PlannerStage.FINALIZING: "Wrapping up payment options",
    PlannerStage.READY: "Payment options ready",
}
