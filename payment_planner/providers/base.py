from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .models import (
    AvailableRoute,
    BridgeQuote,
    BridgeRoute,
    CrossChainMessage,
    DepositLimits,
    DepositLookup,
    DepositStatus,
    FillInfo,
    IndexerDeposit,
    SwapQuote,
    SwapRoute,
    SwapToken,
    TransactionReceipt,
)


METHOD_NOT_FOUND_CODE = -32601


class ProviderError(Exception):
    """Raised when an external service answers with something unusable."""


class RpcError(ProviderError):
    """JSON-RPC error object returned by a chain endpoint."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


def is_method_unavailable_error(error: BaseException) -> bool:
    """True when the endpoint does not implement the requested RPC method."""

    if getattr(error, "code", None) == METHOD_NOT_FOUND_CODE:
        return True
    message = str(error).lower()
    return "method not found" in message or "does not exist" in message


@dataclass(frozen=True)
class ContractCall:
    address: str
    function_name: str
    args: Sequence[Any] = field(default_factory=tuple)


@dataclass(frozen=True)
class MulticallResult:
    success: bool
    value: Optional[Any] = None
    error: Optional[str] = None


class PricingProvider(ABC):
    """Pricing/bridging service: routes, limits, quotes and deposit status"""

    name: str
    timeout_s: int = 20

    @abstractmethod
    async def get_available_routes(
        self, destination_token: str, destination_chain_id: int
    ) -> List[AvailableRoute]:
        """Bridge routes that end in the given token on the given chain"""
        pass

    @abstractmethod
    async def get_swap_tokens(self) -> List[SwapToken]:
        """Token catalogue usable as swap inputs, with USD prices"""
        pass

    @abstractmethod
    async def get_limits(self, route: BridgeRoute) -> DepositLimits:
        pass

    @abstractmethod
    async def get_quote(
        self,
        route: BridgeRoute,
        input_amount: int,
        recipient: Optional[str] = None,
        cross_chain_message: Optional[CrossChainMessage] = None,
    ) -> BridgeQuote:
        pass

    @abstractmethod
    async def get_swap_quote(
        self,
        route: SwapRoute,
        amount: int,
        depositor: str,
        recipient: str,
        slippage: float,
        trade_type: str = "minOutput",
        integrator_id: Optional[str] = None,
        app_fee: Optional[float] = None,
        app_fee_recipient: Optional[str] = None,
    ) -> SwapQuote:
        pass

    @abstractmethod
    def get_spoke_pool_address(self, chain_id: int) -> str:
        pass

    @abstractmethod
    async def get_deposit(self, find_by: DepositLookup) -> DepositStatus:
        """Look up a deposit by chains, spoke pools and deposit id"""
        pass

    @abstractmethod
    async def get_fill_by_deposit_tx(self, deposit: DepositLookup) -> Optional[FillInfo]:
        """Find the destination fill for a deposit transaction, if any"""
        pass


class ChainReader(ABC):
    """Read-only access to one chain"""

    chain_id: int

    @abstractmethod
    async def read_contract(self, address: str, function_name: str, args: Sequence[Any] = ()) -> Any:
        """Call an ERC-20 view function (symbol, decimals, balanceOf)"""
        pass

    @abstractmethod
    async def get_token_balances(self, wallet: str, token_addresses: Sequence[str]) -> List[Dict[str, Any]]:
        """Batched token balance RPC; entries carry contractAddress, tokenBalance and error"""
        pass

    @abstractmethod
    async def multicall(self, calls: Sequence[ContractCall]) -> List[MulticallResult]:
        pass

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Native currency balance"""
        pass

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        """Receipt for a mined transaction, None while unknown"""
        pass


class DepositIndexer(ABC):
    """Remote index of deposits and their fill status"""

    @abstractmethod
    async def list_deposits(self, depositor: str, limit: int = 50) -> List[IndexerDeposit]:
        pass

    @abstractmethod
    async def find_deposit(self, lookup: DepositLookup) -> Optional[IndexerDeposit]:
        pass
