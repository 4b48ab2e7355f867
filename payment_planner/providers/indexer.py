"""HTTP client for the deposit indexer."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from ..config import settings
from .base import DepositIndexer
from .models import DepositLookup, IndexerDeposit

logger = logging.getLogger(__name__)


def parse_deposits(payload: Any) -> List[IndexerDeposit]:
    """Parse indexer records, dropping the ones that fail validation."""

    if isinstance(payload, dict):
        payload = payload.get("deposits") or payload.get("items") or []
    if not isinstance(payload, list):
        return []

    deposits: List[IndexerDeposit] = []
    for record in payload:
        try:
            deposits.append(IndexerDeposit.model_validate(record))
        except ValidationError as exc:
            logger.warning("Dropping malformed indexer deposit: %s", exc.errors()[:1])
    return deposits


class HttpDepositIndexer(DepositIndexer):
    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout_s: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.resolved_indexer_url).rstrip("/")
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._transport = transport

    async def _get(self, path: str, params: Dict[str, Any]) -> Any:
        query = {key: value for key, value in params.items() if value is not None}
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=self._transport,
        ) as client:
            response = await client.get(path, params=query, headers={"accept": "application/json"})
            response.raise_for_status()
            return response.json()

    async def list_deposits(self, depositor: str, limit: int = 50) -> List[IndexerDeposit]:
        payload = await self._get("/deposits", {"depositor": depositor, "limit": limit})
        return parse_deposits(payload)

    async def find_deposit(self, lookup: DepositLookup) -> Optional[IndexerDeposit]:
        params: Dict[str, Any] = {
            "originChainId": lookup.origin_chain_id,
            "destinationChainId": lookup.destination_chain_id,
            "limit": 1,
        }
        if lookup.deposit_id is not None:
            params["depositId"] = lookup.deposit_id
        elif lookup.deposit_tx_hash:
            params["depositTxHash"] = lookup.deposit_tx_hash
        else:
            return None

        deposits = parse_deposits(await self._get("/deposits", params))
        return deposits[0] if deposits else None
