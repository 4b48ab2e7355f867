"""
Deposit status reconciliation against the pricing API, chain and indexer.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from ...providers.base import ChainReader, DepositIndexer, PricingProvider
from ...providers.models import DepositLookup, IndexerDeposit
from ..planner.models import PaymentMode, TokenDescriptor
from .models import PaymentHistoryEntry, PaymentStatus, make_timeline_entry, now_ms
from .timeline import append_timeline_entries, map_deposit_status


@dataclass(frozen=True)
class DepositStatusResult:
    stage: PaymentStatus
    fill_tx_hash: Optional[str] = None
    raw_status: Optional[str] = None


class DepositStatusResolver:
    """Looks up a deposit's fill status; the first source that answers wins.

    Order: deposit lookup by id, fill lookup by deposit transaction (for
    deposits carrying a message), then the indexer by id or transaction hash.
    """

    def __init__(
        self,
        provider: PricingProvider,
        chain_readers: Optional[Mapping[int, ChainReader]] = None,
        indexer: Optional[DepositIndexer] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.provider = provider
        self.chain_readers = dict(chain_readers or {})
        self.indexer = indexer
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _lookup(entry: PaymentHistoryEntry) -> DepositLookup:
        return DepositLookup(
            origin_chain_id=entry.origin_chain_id,
            destination_chain_id=entry.destination_chain_id,
            deposit_id=entry.deposit_id,
            deposit_tx_hash=entry.deposit_tx_hash,
            destination_spoke_pool_address=entry.destination_spoke_pool_address,
            origin_spoke_pool_address=entry.origin_spoke_pool_address,
            message=entry.deposit_message,
        )

    async def resolve(self, entry: PaymentHistoryEntry) -> Optional[DepositStatusResult]:
        lookup = self._lookup(entry)

        if entry.deposit_id is not None and entry.destination_spoke_pool_address:
            try:
                deposit = await self.provider.get_deposit(lookup)
                stage = PaymentStatus.RELAY_FILLED if deposit.status == "filled" else PaymentStatus.RELAY_PENDING
                return DepositStatusResult(stage=stage, fill_tx_hash=deposit.fill_tx_hash, raw_status=deposit.status)
            except Exception as exc:
                self.logger.warning("Deposit lookup failed for %s, trying fill lookup: %s", entry.id, exc)

            if entry.deposit_message and entry.destination_chain_id in self.chain_readers:
                try:
                    fill = await self.provider.get_fill_by_deposit_tx(lookup)
                    if fill is not None:
                        return DepositStatusResult(
                            stage=PaymentStatus.RELAY_FILLED,
                            fill_tx_hash=fill.fill_tx_hash,
                            raw_status="filled",
                        )
                except Exception as exc:
                    self.logger.warning("Fill lookup failed for %s: %s", entry.id, exc)

        if self.indexer is None:
            return None
        if entry.deposit_id is None and not entry.deposit_tx_hash:
            return None

        try:
            deposit = await self.indexer.find_deposit(lookup)
        except Exception as exc:
            self.logger.warning("Indexer lookup failed for %s: %s", entry.id, exc)
            return None
        if deposit is None:
            return None
        return DepositStatusResult(
            stage=map_deposit_status(deposit.status),
            fill_tx_hash=deposit.fill_tx_hash,
            raw_status=deposit.status,
        )


def entry_from_indexer_deposit(
    deposit: IndexerDeposit,
    account: str,
    input_token: TokenDescriptor,
    output_token: TokenDescriptor,
    origin_spoke_pool_address: Optional[str] = None,
    destination_spoke_pool_address: Optional[str] = None,
    now: Optional[int] = None,
) -> PaymentHistoryEntry:
    """Build a bridge history entry from an indexer record."""

    now = now_ms() if now is None else now
    created_at = deposit.quote_timestamp * 1000
    stage = map_deposit_status(deposit.status)
    if stage in (PaymentStatus.RELAY_FILLED, PaymentStatus.SETTLED):
        status = PaymentStatus.SETTLED
    else:
        status = stage

    timeline = append_timeline_entries([], [
        make_timeline_entry(PaymentStatus.INITIAL, created_at),
        make_timeline_entry(PaymentStatus.DEPOSIT_PENDING, created_at),
    ])
    if deposit.deposit_tx_hash:
        timeline = append_timeline_entries(timeline, [
            make_timeline_entry(PaymentStatus.DEPOSIT_CONFIRMED, created_at, tx_hash=deposit.deposit_tx_hash),
        ])

    if stage == PaymentStatus.REQUESTED_SLOW_FILL:
        timeline = append_timeline_entries(timeline, [
            make_timeline_entry(PaymentStatus.REQUESTED_SLOW_FILL, now, notes=deposit.status),
        ])
    elif stage == PaymentStatus.RELAY_PENDING:
        timeline = append_timeline_entries(timeline, [make_timeline_entry(PaymentStatus.RELAY_PENDING, now)])

    if deposit.fill_tx_hash:
        timeline = append_timeline_entries(timeline, [
            make_timeline_entry(PaymentStatus.RELAY_FILLED, now, tx_hash=deposit.fill_tx_hash),
            make_timeline_entry(PaymentStatus.SETTLED, now),
        ])
    elif stage == PaymentStatus.SLOW_FILL_READY:
        timeline = append_timeline_entries(timeline, [make_timeline_entry(PaymentStatus.SLOW_FILL_READY, now)])
    elif stage == PaymentStatus.SETTLED:
        timeline = append_timeline_entries(timeline, [make_timeline_entry(PaymentStatus.SETTLED, now)])

    if status == PaymentStatus.FAILED:
        timeline = append_timeline_entries(timeline, [make_timeline_entry(PaymentStatus.FAILED, now)])

    return PaymentHistoryEntry(
        id=f"remote-{deposit.deposit_tx_hash or deposit.deposit_id}",
        mode=PaymentMode.BRIDGE,
        status=status,
        created_at=created_at,
        updated_at=now,
        input_token=input_token,
        output_token=output_token,
        origin_chain_id=deposit.origin_chain_id,
        destination_chain_id=deposit.destination_chain_id,
        input_amount=deposit.input_amount,
        output_amount=deposit.output_amount,
        deposit_id=deposit.deposit_id,
        deposit_tx_hash=deposit.deposit_tx_hash,
        fill_tx_hash=deposit.fill_tx_hash,
        metadata={"source": "indexer", "raw_status": deposit.status},
        depositor=account,
        recipient=deposit.recipient,
        origin_spoke_pool_address=origin_spoke_pool_address,
        destination_spoke_pool_address=destination_spoke_pool_address,
        timeline=timeline,
    )
