"""Async client for the Across pricing/bridging API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from eth_abi import encode
from eth_utils import to_checksum_address

from ..chains import SPOKE_POOL_ADDRESSES
from ..config import settings
from .base import PricingProvider, ProviderError
from .models import (
    AvailableRoute,
    BridgeQuote,
    BridgeRoute,
    CrossChainMessage,
    DepositLimits,
    DepositLookup,
    DepositStatus,
    FillInfo,
    SwapQuote,
    SwapRoute,
    SwapToken,
)

logger = logging.getLogger(__name__)

# Instructions((address target, bytes callData, uint256 value)[] calls, address fallbackRecipient)
_MESSAGE_ABI = "((address,bytes,uint256)[],address)"


def encode_cross_chain_message(message: CrossChainMessage) -> str:
    """ABI-encode destination contract calls for the multicall handler."""

    calls = [
        (
            to_checksum_address(action.target),
            bytes.fromhex(action.call_data[2:] if action.call_data.startswith("0x") else action.call_data),
            int(action.value),
        )
        for action in message.actions
    ]
    encoded = encode([_MESSAGE_ABI], [(calls, to_checksum_address(message.fallback_recipient))])
    return "0x" + encoded.hex()


class AcrossProvider(PricingProvider):
    """Thin wrapper around the Across app API endpoints."""

    name = "across"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout_s: Optional[int] = None,
        spoke_pool_addresses: Optional[Dict[int, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        configured = base_url or settings.resolved_api_url
        self.base_urls: List[str] = [configured.rstrip("/")]
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._spoke_pools = {
            **SPOKE_POOL_ADDRESSES,
            **settings.spoke_pool_addresses,
            **(spoke_pool_addresses or {}),
        }
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json",
            "user-agent": "PaymentPlannerClient/1.0",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        query = {key: value for key, value in (params or {}).items() if value is not None}
        last_error: Optional[Exception] = None

        for index, base_url in enumerate(self.base_urls):
            try:
                async with httpx.AsyncClient(
                    base_url=base_url,
                    timeout=self.timeout_s,
                    transport=self._transport,
                ) as client:
                    response = await client.request(method, path, params=query, headers=self._headers(), **kwargs)
                    response.raise_for_status()
                    return response
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code in (404, 405) and index < len(self.base_urls) - 1:
                    last_error = exc
                    continue
                raise
            except httpx.RequestError as exc:
                last_error = exc
                continue

        if last_error is not None:
            raise last_error
        raise ProviderError("All Across hosts failed without providing an error response")

    async def get_available_routes(
        self, destination_token: str, destination_chain_id: int
    ) -> List[AvailableRoute]:
        resp = await self._request(
            "GET",
            "/available-routes",
            params={"destinationToken": destination_token, "destinationChainId": destination_chain_id},
        )
        return [AvailableRoute.model_validate(item) for item in resp.json() or []]

    async def get_swap_tokens(self) -> List[SwapToken]:
        resp = await self._request("GET", "/swap/tokens")
        tokens: List[SwapToken] = []
        for item in resp.json() or []:
            try:
                tokens.append(SwapToken.model_validate(item))
            except ValueError as exc:
                logger.debug("Skipping malformed swap token %s: %s", item, exc)
        return tokens

    async def get_limits(self, route: BridgeRoute) -> DepositLimits:
        resp = await self._request(
            "GET",
            "/limits",
            params={
                "inputToken": route.input_token,
                "outputToken": route.output_token,
                "originChainId": route.origin_chain_id,
                "destinationChainId": route.destination_chain_id,
            },
        )
        return DepositLimits.model_validate(resp.json())

    async def get_quote(
        self,
        route: BridgeRoute,
        input_amount: int,
        recipient: Optional[str] = None,
        cross_chain_message: Optional[CrossChainMessage] = None,
    ) -> BridgeQuote:
        params: Dict[str, Any] = {
            "inputToken": route.input_token,
            "outputToken": route.output_token,
            "originChainId": route.origin_chain_id,
            "destinationChainId": route.destination_chain_id,
            "amount": str(input_amount),
            "recipient": recipient,
        }
        if cross_chain_message is not None:
            params["message"] = encode_cross_chain_message(cross_chain_message)

        resp = await self._request("GET", "/suggested-fees", params=params)
        payload = resp.json()
        if "outputAmount" not in payload:
            relay_fee = int((payload.get("totalRelayFee") or {}).get("total") or 0)
            payload["outputAmount"] = str(input_amount - relay_fee)
        return BridgeQuote.model_validate({**payload, "inputAmount": str(input_amount)})

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
        params = {
            "tradeType": trade_type,
            "amount": str(amount),
            "inputToken": route.input_token,
            "outputToken": route.output_token,
            "originChainId": route.origin_chain_id,
            "destinationChainId": route.destination_chain_id,
            "depositor": depositor,
            "recipient": recipient,
            "slippage": slippage,
            "integratorId": integrator_id or None,
            "appFee": app_fee,
            "appFeeRecipient": app_fee_recipient if app_fee is not None else None,
        }
        resp = await self._request("GET", "/swap/approval", params=params)
        return SwapQuote.from_payload(resp.json())

    def get_spoke_pool_address(self, chain_id: int) -> str:
        address = self._spoke_pools.get(chain_id)
        if not address:
            raise ProviderError(f"No spoke pool configured for chain {chain_id}")
        return address

    async def get_deposit(self, find_by: DepositLookup) -> DepositStatus:
        if find_by.deposit_id is None:
            raise ProviderError("Deposit id required for deposit lookup")
        resp = await self._request(
            "GET",
            "/deposit/status",
            params={"originChainId": find_by.origin_chain_id, "depositId": find_by.deposit_id},
        )
        return DepositStatus.model_validate(resp.json())

    async def get_fill_by_deposit_tx(self, deposit: DepositLookup) -> Optional[FillInfo]:
        if not deposit.deposit_tx_hash:
            raise ProviderError("Deposit transaction hash required for fill lookup")
        resp = await self._request(
            "GET",
            "/deposit/status",
            params={"originChainId": deposit.origin_chain_id, "depositTxHash": deposit.deposit_tx_hash},
        )
        status = DepositStatus.model_validate(resp.json())
        if not status.fill_tx_hash:
            return None
        return FillInfo(fill_tx_hash=status.fill_tx_hash)
