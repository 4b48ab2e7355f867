"""Typed payloads exchanged with the pricing API, chain RPCs and the deposit indexer.

Amounts are parsed into Python ``int`` straight from the decimal strings the
services return, so values above 2**53 survive untouched.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


def _hex_or_int(value: Any) -> Any:
    if isinstance(value, str) and value.lower().startswith("0x"):
        return int(value, 16)
    return value


# =============================================================================
# Routes
# =============================================================================

class BridgeRoute(ApiModel):
    origin_chain_id: int = Field(alias="originChainId")
    destination_chain_id: int = Field(alias="destinationChainId")
    input_token: str = Field(alias="inputToken")
    output_token: str = Field(alias="outputToken")
    is_native: bool = Field(default=False, alias="isNative")


class SwapRoute(ApiModel):
    origin_chain_id: int = Field(alias="originChainId")
    destination_chain_id: int = Field(alias="destinationChainId")
    input_token: str = Field(alias="inputToken")
    output_token: str = Field(alias="outputToken")


class AvailableRoute(ApiModel):
    """Entry of ``GET /available-routes``."""

    origin_chain_id: int = Field(alias="originChainId")
    destination_chain_id: int = Field(alias="destinationChainId")
    origin_token: str = Field(alias="originToken")
    destination_token: str = Field(alias="destinationToken")
    origin_token_symbol: Optional[str] = Field(default=None, alias="originTokenSymbol")
    destination_token_symbol: Optional[str] = Field(default=None, alias="destinationTokenSymbol")
    is_native: bool = Field(default=False, alias="isNative")

    def to_bridge_route(self) -> BridgeRoute:
        return BridgeRoute(
            origin_chain_id=self.origin_chain_id,
            destination_chain_id=self.destination_chain_id,
            input_token=self.origin_token,
            output_token=self.destination_token,
            is_native=self.is_native,
        )


class SwapToken(ApiModel):
    """Entry of the swap token catalogue (``GET /swap/tokens``)."""

    chain_id: int = Field(alias="chainId")
    address: str
    symbol: str
    decimals: int
    name: Optional[str] = None
    logo_url: Optional[str] = Field(default=None, alias="logoUrl")
    price_usd: Optional[float] = Field(default=None, alias="priceUsd")

    @field_validator("price_usd", mode="before")
    @classmethod
    def _blank_price(cls, value: Any) -> Any:
        if value in ("", None):
            return None
        return value


# =============================================================================
# Quotes
# =============================================================================

class DepositLimits(ApiModel):
    min_deposit: int = Field(alias="minDeposit")
    max_deposit: int = Field(alias="maxDeposit")


class FeeDetail(ApiModel):
    pct: Optional[str] = None
    total: int = 0


class ContractCallAction(ApiModel):
    target: str
    call_data: str = Field(alias="callData")
    value: int = 0


class CrossChainMessage(ApiModel):
    actions: List[ContractCallAction]
    fallback_recipient: str = Field(alias="fallbackRecipient")


class BridgeQuote(ApiModel):
    """Priced bridge deposit as returned by ``GET /suggested-fees``."""

    input_amount: int = Field(alias="inputAmount")
    output_amount: int = Field(alias="outputAmount")
    total_relay_fee: FeeDetail = Field(default_factory=FeeDetail, alias="totalRelayFee")
    lp_fee: FeeDetail = Field(default_factory=FeeDetail, alias="lpFee")
    relayer_capital_fee: FeeDetail = Field(default_factory=FeeDetail, alias="relayerCapitalFee")
    quote_timestamp: int = Field(alias="timestamp")
    estimated_fill_time_sec: Optional[int] = Field(default=None, alias="estimatedFillTimeSec")
    spoke_pool_address: Optional[str] = Field(default=None, alias="spokePoolAddress")

    @property
    def fees_total(self) -> int:
        return self.total_relay_fee.total + self.lp_fee.total + self.relayer_capital_fee.total


class SwapApprovalTxn(ApiModel):
    chain_id: int = Field(alias="chainId")
    to: str
    data: str


class SwapQuote(ApiModel):
    """Response of ``GET /swap/approval``."""

    input_amount: int = Field(default=0, alias="inputAmount")
    expected_output_amount: int = Field(default=0, alias="expectedOutputAmount")
    min_output_amount: Optional[int] = Field(default=None, alias="minOutputAmount")
    expected_fill_time: Optional[int] = Field(default=None, alias="expectedFillTime")
    approval_txns: List[SwapApprovalTxn] = Field(default_factory=list, alias="approvalTxns")
    balance_expected: Optional[int] = Field(default=None, alias="balanceExpected")
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SwapQuote":
        bridge_step = (payload.get("steps") or {}).get("bridge") or {}
        balance_check = (payload.get("checks") or {}).get("balance") or {}
        input_amount = payload.get("inputAmount") or bridge_step.get("inputAmount") or 0
        expected = payload.get("expectedOutputAmount") or bridge_step.get("outputAmount") or 0
        return cls(
            inputAmount=input_amount,
            expectedOutputAmount=expected,
            minOutputAmount=payload.get("minOutputAmount") or expected,
            expectedFillTime=payload.get("expectedFillTime"),
            approvalTxns=payload.get("approvalTxns") or [],
            balanceExpected=balance_check.get("expected"),
            raw=payload,
        )


# =============================================================================
# Deposit tracking
# =============================================================================

class DepositLookup(ApiModel):
    origin_chain_id: int = Field(alias="originChainId")
    destination_chain_id: int = Field(alias="destinationChainId")
    deposit_id: Optional[int] = Field(default=None, alias="depositId")
    deposit_tx_hash: Optional[str] = Field(default=None, alias="depositTxHash")
    destination_spoke_pool_address: Optional[str] = Field(default=None, alias="destinationSpokePoolAddress")
    origin_spoke_pool_address: Optional[str] = Field(default=None, alias="originSpokePoolAddress")
    message: Optional[str] = None


class DepositStatus(ApiModel):
    status: str
    fill_tx_hash: Optional[str] = Field(default=None, alias="fillTx")
    deposit_tx_hash: Optional[str] = Field(default=None, alias="depositTxHash")


class FillInfo(ApiModel):
    fill_tx_hash: str = Field(alias="fillTxHash")
    block_number: Optional[int] = Field(default=None, alias="blockNumber")


class IndexerDeposit(ApiModel):
    """Deposit record served by the indexer's ``/deposits`` endpoint."""

    deposit_id: int = Field(alias="depositId")
    deposit_tx_hash: Optional[str] = Field(default=None, alias="depositTxHash")
    fill_tx_hash: Optional[str] = Field(default=None, alias="fillTxHash")
    input_token: str = Field(alias="inputToken")
    output_token: str = Field(alias="outputToken")
    origin_chain_id: int = Field(alias="originChainId")
    destination_chain_id: int = Field(alias="destinationChainId")
    input_amount: int = Field(alias="inputAmount")
    output_amount: int = Field(alias="outputAmount")
    quote_timestamp: int = Field(alias="quoteTimestamp")
    status: Optional[str] = None
    recipient: Optional[str] = None
    depositor: Optional[str] = None

    @field_validator("deposit_id", "input_amount", "output_amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> Any:
        return _hex_or_int(value)


# =============================================================================
# Chain reads
# =============================================================================

class TransactionReceipt(ApiModel):
    transaction_hash: str = Field(alias="transactionHash")
    status: int
    block_number: Optional[int] = Field(default=None, alias="blockNumber")

    @field_validator("status", "block_number", mode="before")
    @classmethod
    def _parse_quantity(cls, value: Any) -> Any:
        return _hex_or_int(value)

    @property
    def succeeded(self) -> bool:
        return self.status == 1
