"""JSON-RPC chain reader over httpx."""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from ..chains import MULTICALL3_ADDRESS
from ..config import settings
from .base import ChainReader, ContractCall, MulticallResult, ProviderError, RpcError
from .models import TransactionReceipt

logger = logging.getLogger(__name__)

# function name -> (signature, argument types, return types)
ERC20_FUNCTIONS: Dict[str, Tuple[str, List[str], List[str]]] = {
    "symbol": ("symbol()", [], ["string"]),
    "decimals": ("decimals()", [], ["uint8"]),
    "balanceOf": ("balanceOf(address)", ["address"], ["uint256"]),
}

_AGGREGATE3_SIGNATURE = "aggregate3((address,bool,bytes)[])"


def _to_bytes(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def encode_call(function_name: str, args: Sequence[Any] = ()) -> bytes:
    if function_name not in ERC20_FUNCTIONS:
        raise ProviderError(f"Unsupported contract function: {function_name}")
    signature, arg_types, _ = ERC20_FUNCTIONS[function_name]
    normalized = [to_checksum_address(arg) if kind == "address" else arg for kind, arg in zip(arg_types, args)]
    return function_signature_to_4byte_selector(signature) + encode(arg_types, normalized)


def decode_result(function_name: str, data: bytes) -> Any:
    _, _, return_types = ERC20_FUNCTIONS[function_name]
    if function_name == "symbol" and len(data) == 32:
        # Legacy tokens (MKR, SAI) return bytes32 instead of string
        return data.rstrip(b"\x00").decode("utf-8", errors="ignore")
    return decode(return_types, data)[0]


class RpcChainReader(ChainReader):
    """Reads balances, token metadata and receipts from one chain's RPC endpoint."""

    def __init__(
        self,
        chain_id: int,
        rpc_url: str,
        *,
        timeout_s: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.chain_id = chain_id
        self.rpc_url = rpc_url
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._transport = transport
        self._ids = itertools.count(1)

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}

        async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
            response = await client.post(
                self.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
            data = response.json()

        if data.get("error"):
            error = data["error"]
            raise RpcError(error.get("message", "RPC error"), code=error.get("code"), data=error.get("data"))
        return data.get("result")

    async def _eth_call(self, to: str, data: bytes) -> bytes:
        result = await self._rpc("eth_call", [{"to": to, "data": "0x" + data.hex()}, "latest"])
        return _to_bytes(result or "0x")

    async def read_contract(self, address: str, function_name: str, args: Sequence[Any] = ()) -> Any:
        raw = await self._eth_call(address, encode_call(function_name, args))
        if not raw:
            raise ProviderError(f"Empty response calling {function_name} on {address}")
        return decode_result(function_name, raw)

    async def get_token_balances(self, wallet: str, token_addresses: Sequence[str]) -> List[Dict[str, Any]]:
        result = await self._rpc("alchemy_getTokenBalances", [wallet, list(token_addresses)])
        if not isinstance(result, dict) or not isinstance(result.get("tokenBalances"), list):
            raise ProviderError("Unexpected alchemy_getTokenBalances payload")
        return result["tokenBalances"]

    async def multicall(self, calls: Sequence[ContractCall]) -> List[MulticallResult]:
        encoded_calls = [
            (to_checksum_address(call.address), True, encode_call(call.function_name, call.args))
            for call in calls
        ]
        calldata = function_signature_to_4byte_selector(_AGGREGATE3_SIGNATURE) + encode(
            ["(address,bool,bytes)[]"], [encoded_calls]
        )
        raw = await self._eth_call(MULTICALL3_ADDRESS, calldata)
        (returned,) = decode(["(bool,bytes)[]"], raw)

        results: List[MulticallResult] = []
        for call, (success, return_data) in zip(calls, returned):
            if not success or not return_data:
                results.append(MulticallResult(success=False, error="call reverted"))
                continue
            try:
                results.append(MulticallResult(success=True, value=decode_result(call.function_name, return_data)))
            except Exception as exc:
                results.append(MulticallResult(success=False, error=str(exc)))
        return results

    async def get_balance(self, address: str) -> int:
        result = await self._rpc("eth_getBalance", [address, "latest"])
        return int(result, 16)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[TransactionReceipt]:
        result = await self._rpc("eth_getTransactionReceipt", [tx_hash])
        if not result:
            return None
        return TransactionReceipt.model_validate(result)


def build_chain_readers(rpc_urls: Optional[Dict[int, str]] = None) -> Dict[int, ChainReader]:
    """One reader per configured RPC endpoint."""

    urls = settings.rpc_urls if rpc_urls is None else rpc_urls
    return {chain_id: RpcChainReader(chain_id, url) for chain_id, url in urls.items()}
