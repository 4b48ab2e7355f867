"""
Payment Lifecycle Store

Single-writer state for every payment attempt of the active account. Each
named transition updates the entry's status and timeline, writes the full
account list through to storage, notifies subscribers, and then decides
whether a reconciliation poller should run for that entry.

Pollers are asyncio tasks keyed by entry id. A poller ticks immediately, then
every ``poll_interval`` seconds, until the entry reaches a terminal status,
is removed, or the store is cleared or closed.
"""

import asyncio
import dataclasses
import logging
import uuid
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from ...config import settings
from ...providers.base import ChainReader, DepositIndexer, PricingProvider
from ..planner.models import PaymentMode, TokenDescriptor
from ..planner.tokens import TokenMetadataResolver
from .models import (
    HistorySnapshot,
    PaymentHistoryEntry,
    PaymentStatus,
    make_timeline_entry,
    now_ms,
)
from .storage import HistoryStorage, InMemoryStorage, StorageError, deserialize_entries, serialize_entries
from .timeline import append_timeline_entries, merge_entries
from .tracking import DepositStatusResolver, entry_from_indexer_deposit

HistoryListener = Callable[[HistorySnapshot], None]
EntryUpdater = Callable[[PaymentHistoryEntry], PaymentHistoryEntry]

DIRECT_REVERTED_MESSAGE = "Direct payment reverted on-chain"
REMOTE_TOKEN_FALLBACK_SYMBOL = "TOKEN"

_FILLED_STAGES = frozenset({
    PaymentStatus.RELAY_FILLED,
    PaymentStatus.SETTLED,
    PaymentStatus.FILLED,
    PaymentStatus.SLOW_FILL_READY,
})


def _new_entry_id(prefix: str, now: int) -> str:
    return f"{prefix}-{now}-{uuid.uuid4().hex[:12]}"


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


def _is_pollable(entry: PaymentHistoryEntry) -> bool:
    if entry.mode not in (PaymentMode.BRIDGE, PaymentMode.SWAP):
        return False
    return entry.deposit_id is not None or bool(entry.deposit_tx_hash)


class PaymentLifecycleStore:
    """Persisted, observable history of payment attempts for one account at a time."""

    def __init__(
        self,
        provider: PricingProvider,
        storage: Optional[HistoryStorage] = None,
        chain_readers: Optional[Mapping[int, ChainReader]] = None,
        indexer: Optional[DepositIndexer] = None,
        *,
        resolver: Optional[DepositStatusResolver] = None,
        token_resolver: Optional[TokenMetadataResolver] = None,
        poll_interval: Optional[float] = None,
        remote_limit: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.provider = provider
        self.storage = storage or InMemoryStorage()
        self.chain_readers = dict(chain_readers or {})
        self.indexer = indexer
        self.logger = logger or logging.getLogger(__name__)
        self.resolver = resolver or DepositStatusResolver(provider, self.chain_readers, indexer, logger=self.logger)
        self.token_resolver = token_resolver or TokenMetadataResolver(self.chain_readers)
        self.poll_interval = settings.history_poll_interval_seconds if poll_interval is None else poll_interval
        self.remote_limit = remote_limit or settings.history_remote_limit

        self.state = HistorySnapshot()
        self._listeners: List[HistoryListener] = []
        self._pollers: Dict[str, asyncio.Task] = {}
        self._initialized = False

    # -------------------------------------------------------------------------
    # Observation
    # -------------------------------------------------------------------------

    def subscribe(self, listener: HistoryListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_snapshot(self) -> HistorySnapshot:
        return self.state

    def get_entry(self, entry_id: str) -> Optional[PaymentHistoryEntry]:
        for entry in self.state.entries:
            if entry.id == entry_id:
                return entry
        return None

    @property
    def polling_ids(self) -> List[str]:
        return [entry_id for entry_id, task in self._pollers.items() if not task.done()]

    def _emit(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as exc:
                self.logger.error("History listener error: %s", exc)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _persist(self) -> None:
        account = self.state.account
        if not account:
            return
        try:
            self.storage.write(account, serialize_entries(self.state.entries))
        except StorageError as exc:
            self.logger.error("Failed to persist payment history for %s: %s", account, exc)

    def _load_persisted(self, account: str) -> List[PaymentHistoryEntry]:
        try:
            return deserialize_entries(self.storage.read(account))
        except StorageError as exc:
            self.logger.error("Discarding persisted payment history for %s: %s", account, exc)
            return []

    def _set_entries(self, entries: Sequence[PaymentHistoryEntry]) -> None:
        self.state = HistorySnapshot(account=self.state.account, entries=list(entries))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self, account: Optional[str]) -> None:
        """Switch to ``account``: load its entries, start pollers, reconcile."""

        if self._initialized and _same_account(self.state.account, account):
            return
        self._initialized = True

        self._clear_all_pollers()
        entries = self._load_persisted(account) if account else []
        self.state = HistorySnapshot(account=account or None, entries=entries)
        self.logger.info("Initialised payment history for %s with %d entries", account, len(entries))

        self._emit()
        for entry in list(self.state.entries):
            self._maybe_start_polling(entry.id)
        await self._resume_pending_direct_entries()

        if account:
            await self.sync_remote_deposits(account)

    def clear(self, account: Optional[str] = None) -> None:
        """Stop all pollers and drop the stored history of ``account`` (default: active)."""

        self._clear_all_pollers()
        target_account = account or self.state.account
        if target_account:
            try:
                self.storage.delete(target_account)
            except StorageError as exc:
                self.logger.error("Failed to clear payment history for %s: %s", target_account, exc)
        self._set_entries([])
        self._emit()
        self.logger.info("Payment history cleared for %s", target_account)

    def close(self) -> None:
        self._clear_all_pollers()
        self._listeners.clear()

    async def refresh_pending_entries(self) -> None:
        """Re-check every unresolved entry now, then reconcile with the indexer."""

        direct_checks = []
        for entry in list(self.state.entries):
            if entry.is_final:
                continue
            if entry.mode == PaymentMode.DIRECT:
                direct_checks.append(self._ensure_direct_status(entry))
            elif _is_pollable(entry):
                self._restart_polling(entry.id)

        if direct_checks:
            await asyncio.gather(*direct_checks)

        if self.state.account:
            await self.sync_remote_deposits(self.state.account)

    # -------------------------------------------------------------------------
    # Generic mutations
    # -------------------------------------------------------------------------

    def add_entry(self, entry: PaymentHistoryEntry) -> None:
        entries = [entry] + [existing for existing in self.state.entries if existing.id != entry.id]
        self._set_entries(entries)
        self._persist()
        self._emit()
        self._maybe_start_polling(entry.id)
        self.logger.debug("Added history entry %s (%s, %s)", entry.id, entry.mode.value, entry.status.value)

    def update_entry(self, entry_id: str, updater: EntryUpdater) -> None:
        if self.get_entry(entry_id) is None:
            self.logger.warning("Ignoring update for unknown history entry %s", entry_id)
            return

        entries = [updater(entry) if entry.id == entry_id else entry for entry in self.state.entries]
        self._set_entries(entries)
        self._persist()
        self._emit()
        self._maybe_start_polling(entry_id)

        updated = self.get_entry(entry_id)
        self.logger.debug("Updated history entry %s -> %s", entry_id, updated.status.value if updated else None)

    def _transition(
        self,
        entry_id: str,
        status: Optional[PaymentStatus],
        stages: Sequence[tuple],
        **changes,
    ) -> None:
        """Set ``status`` (None keeps the current one) and upsert ``(stage, tx_hash)`` timeline rows."""

        now = now_ms()

        def apply(entry: PaymentHistoryEntry) -> PaymentHistoryEntry:
            timeline = append_timeline_entries(
                entry.timeline,
                [make_timeline_entry(stage, now, tx_hash=tx_hash) for stage, tx_hash in stages],
            )
            return dataclasses.replace(
                entry,
                status=status or entry.status,
                updated_at=now,
                timeline=timeline,
                **changes,
            )

        self.update_entry(entry_id, apply)

    def mark_failed(self, entry_id: str, error_message: str) -> None:
        now = now_ms()
        self.update_entry(
            entry_id,
            lambda entry: dataclasses.replace(
                entry,
                status=PaymentStatus.FAILED,
                errors=[*entry.errors, error_message],
                updated_at=now,
                timeline=append_timeline_entries(
                    entry.timeline,
                    [make_timeline_entry(PaymentStatus.FAILED, now, notes=error_message)],
                ),
            ),
        )
        self._stop_polling(entry_id)
        self.logger.warning("Payment %s failed: %s", entry_id, error_message)

    # -------------------------------------------------------------------------
    # Direct payments
    # -------------------------------------------------------------------------

    def record_direct_init(
        self,
        *,
        depositor: str,
        input_token: TokenDescriptor,
        output_token: TokenDescriptor,
        chain_id: int,
        amount_in: int,
        amount_out: int,
    ) -> str:
        now = now_ms()
        entry_id = _new_entry_id("direct", now)
        self.add_entry(PaymentHistoryEntry(
            id=entry_id,
            mode=PaymentMode.DIRECT,
            status=PaymentStatus.DIRECT_PENDING,
            created_at=now,
            updated_at=now,
            input_token=input_token,
            output_token=output_token,
            origin_chain_id=chain_id,
            destination_chain_id=chain_id,
            input_amount=amount_in,
            output_amount=amount_out,
            depositor=depositor,
            timeline=append_timeline_entries([], [
                make_timeline_entry(PaymentStatus.INITIAL, now),
                make_timeline_entry(PaymentStatus.DIRECT_PENDING, now),
            ]),
        ))
        self.logger.info("Recorded direct payment %s on chain %d", entry_id, chain_id)
        return entry_id

    def update_direct_tx_pending(self, entry_id: str, payment_tx_hash: str) -> None:
        self._transition(
            entry_id,
            PaymentStatus.DIRECT_PENDING,
            [(PaymentStatus.DIRECT_PENDING, payment_tx_hash)],
            deposit_tx_hash=payment_tx_hash,
        )

    def complete_direct(self, entry_id: str, payment_tx_hash: str) -> None:
        self._transition(
            entry_id,
            PaymentStatus.DIRECT_CONFIRMED,
            [(PaymentStatus.DIRECT_CONFIRMED, payment_tx_hash)],
            deposit_tx_hash=payment_tx_hash,
        )
        self.logger.info("Direct payment %s confirmed", entry_id)

    def fail_direct(self, entry_id: str, error_message: str) -> None:
        self.mark_failed(entry_id, error_message)

    async def _ensure_direct_status(self, entry: PaymentHistoryEntry) -> None:
        if not entry.deposit_tx_hash:
            return
        reader = self.chain_readers.get(entry.origin_chain_id)
        if reader is None:
            return

        try:
            receipt = await reader.get_transaction_receipt(entry.deposit_tx_hash)
        except Exception as exc:
            self.logger.error("Direct payment status check failed for %s: %s", entry.id, exc)
            return
        if receipt is None:
            return

        if receipt.succeeded:
            self._transition(
                entry.id,
                PaymentStatus.DIRECT_CONFIRMED,
                [(PaymentStatus.DIRECT_CONFIRMED, entry.deposit_tx_hash)],
            )
            self.logger.info("Direct payment %s resumed as confirmed", entry.id)
        else:
            self.mark_failed(entry.id, DIRECT_REVERTED_MESSAGE)

    async def _resume_pending_direct_entries(self) -> None:
        pending = [
            entry for entry in self.state.entries
            if entry.mode == PaymentMode.DIRECT and entry.deposit_tx_hash and not entry.is_final
        ]
        if pending:
            await asyncio.gather(*(self._ensure_direct_status(entry) for entry in pending))

    # -------------------------------------------------------------------------
    # Bridge payments
    # -------------------------------------------------------------------------

    def record_bridge_init(
        self,
        *,
        depositor: str,
        recipient: str,
        input_token: TokenDescriptor,
        output_token: TokenDescriptor,
        origin_chain_id: int,
        destination_chain_id: int,
        input_amount: int,
        output_amount: int,
        requires_wrap: bool,
        origin_spoke_pool_address: Optional[str] = None,
        destination_spoke_pool_address: Optional[str] = None,
        deposit_message: Optional[str] = None,
    ) -> str:
        now = now_ms()
        entry_id = _new_entry_id("bridge", now)
        status = PaymentStatus.WRAP_PENDING if requires_wrap else PaymentStatus.DEPOSIT_PENDING
        self.add_entry(PaymentHistoryEntry(
            id=entry_id,
            mode=PaymentMode.BRIDGE,
            status=status,
            created_at=now,
            updated_at=now,
            input_token=input_token,
            output_token=output_token,
            origin_chain_id=origin_chain_id,
            destination_chain_id=destination_chain_id,
            input_amount=input_amount,
            output_amount=output_amount,
            depositor=depositor,
            recipient=recipient,
            origin_spoke_pool_address=origin_spoke_pool_address,
            destination_spoke_pool_address=destination_spoke_pool_address,
            deposit_message=deposit_message,
            timeline=append_timeline_entries([], [
                make_timeline_entry(PaymentStatus.INITIAL, now),
                make_timeline_entry(status, now),
            ]),
        ))
        self.logger.info(
            "Recorded bridge payment %s from chain %d to %d (wrap=%s)",
            entry_id, origin_chain_id, destination_chain_id, requires_wrap,
        )
        return entry_id

    def update_bridge_after_wrap(self, entry_id: str, wrap_tx_hash: str) -> None:
        self._transition(
            entry_id,
            PaymentStatus.DEPOSIT_PENDING,
            [(PaymentStatus.WRAP_CONFIRMED, wrap_tx_hash), (PaymentStatus.DEPOSIT_PENDING, None)],
            wrap_tx_hash=wrap_tx_hash,
        )

    def update_bridge_deposit_tx_hash(self, entry_id: str, deposit_tx_hash: str) -> None:
        """Record the submitted deposit transaction; leaves the wrap step if still there."""

        entry = self.get_entry(entry_id)
        status = None
        if entry is not None and entry.status == PaymentStatus.WRAP_PENDING:
            status = PaymentStatus.DEPOSIT_PENDING
        self._transition(
            entry_id,
            status,
            [(PaymentStatus.DEPOSIT_PENDING, deposit_tx_hash)],
            deposit_tx_hash=deposit_tx_hash,
        )

    def update_bridge_after_deposit(
        self,
        entry_id: str,
        deposit_id: Optional[int],
        deposit_tx_hash: str,
        output_amount: int,
    ) -> None:
        entry = self.get_entry(entry_id)
        if deposit_id is None and entry is not None:
            deposit_id = entry.deposit_id
        self._transition(
            entry_id,
            PaymentStatus.RELAY_PENDING,
            [(PaymentStatus.DEPOSIT_CONFIRMED, deposit_tx_hash), (PaymentStatus.RELAY_PENDING, None)],
            deposit_id=deposit_id,
            deposit_tx_hash=deposit_tx_hash,
            output_amount=output_amount,
        )
        self.logger.info("Bridge deposit %s recorded for %s", deposit_id, entry_id)

    def update_bridge_filled(self, entry_id: str, fill_tx_hash: Optional[str] = None) -> None:
        self._transition(
            entry_id,
            PaymentStatus.SETTLED,
            [(PaymentStatus.RELAY_FILLED, fill_tx_hash), (PaymentStatus.SETTLED, None)],
            fill_tx_hash=fill_tx_hash,
        )
        self.logger.info("Bridge payment %s filled", entry_id)

    def fail_bridge(self, entry_id: str, error_message: str) -> None:
        self.mark_failed(entry_id, error_message)

    # -------------------------------------------------------------------------
    # Swap payments
    # -------------------------------------------------------------------------

    def record_swap_init(
        self,
        *,
        depositor: str,
        recipient: str,
        input_token: TokenDescriptor,
        output_token: TokenDescriptor,
        origin_chain_id: int,
        destination_chain_id: int,
        input_amount: int,
        output_amount: int,
        approval_count: int = 0,
    ) -> str:
        now = now_ms()
        entry_id = _new_entry_id("swap", now)
        status = PaymentStatus.APPROVAL_PENDING if approval_count > 0 else PaymentStatus.SWAP_PENDING
        self.add_entry(PaymentHistoryEntry(
            id=entry_id,
            mode=PaymentMode.SWAP,
            status=status,
            created_at=now,
            updated_at=now,
            input_token=input_token,
            output_token=output_token,
            origin_chain_id=origin_chain_id,
            destination_chain_id=destination_chain_id,
            input_amount=input_amount,
            output_amount=output_amount,
            depositor=depositor,
            recipient=recipient,
            timeline=append_timeline_entries([], [
                make_timeline_entry(PaymentStatus.INITIAL, now),
                make_timeline_entry(status, now),
            ]),
        ))
        self.logger.info(
            "Recorded swap payment %s from chain %d to %d (%d approvals)",
            entry_id, origin_chain_id, destination_chain_id, approval_count,
        )
        return entry_id

    def update_swap_approval_submitted(self, entry_id: str, approval_tx_hash: str) -> None:
        entry = self.get_entry(entry_id)
        hashes = list(entry.approval_tx_hashes) if entry is not None else []
        if approval_tx_hash not in hashes:
            hashes.append(approval_tx_hash)
        self._transition(
            entry_id,
            PaymentStatus.APPROVAL_PENDING,
            [(PaymentStatus.APPROVAL_PENDING, approval_tx_hash)],
            approval_tx_hashes=hashes,
        )

    def update_swap_approval_confirmed(self, entry_id: str, approval_tx_hash: str) -> None:
        self._transition(
            entry_id,
            PaymentStatus.APPROVAL_CONFIRMED,
            [(PaymentStatus.APPROVAL_CONFIRMED, approval_tx_hash)],
        )

    def update_swap_tx_pending(self, entry_id: str, swap_tx_hash: str) -> None:
        self._transition(
            entry_id,
            PaymentStatus.SWAP_PENDING,
            [(PaymentStatus.SWAP_PENDING, swap_tx_hash)],
            swap_tx_hash=swap_tx_hash,
        )

    def update_swap_tx_confirmed(
        self,
        entry_id: str,
        swap_tx_hash: str,
        deposit_id: Optional[int],
        output_amount: int,
    ) -> None:
        # The swap transaction doubles as the deposit for fill tracking
        entry = self.get_entry(entry_id)
        if deposit_id is None and entry is not None:
            deposit_id = entry.deposit_id
        self._transition(
            entry_id,
            PaymentStatus.RELAY_PENDING,
            [(PaymentStatus.SWAP_CONFIRMED, swap_tx_hash), (PaymentStatus.RELAY_PENDING, None)],
            swap_tx_hash=swap_tx_hash,
            deposit_tx_hash=swap_tx_hash,
            deposit_id=deposit_id,
            output_amount=output_amount,
        )
        self.logger.info("Swap %s confirmed for %s", swap_tx_hash, entry_id)

    def update_swap_filled(self, entry_id: str, fill_tx_hash: Optional[str] = None) -> None:
        self._transition(
            entry_id,
            PaymentStatus.SETTLED,
            [(PaymentStatus.FILLED, fill_tx_hash), (PaymentStatus.SETTLED, None)],
            fill_tx_hash=fill_tx_hash,
        )
        self.logger.info("Swap payment %s filled", entry_id)

    def fail_swap(self, entry_id: str, error_message: str) -> None:
        self.mark_failed(entry_id, error_message)

    # -------------------------------------------------------------------------
    # Reconciliation polling
    # -------------------------------------------------------------------------

    def _maybe_start_polling(self, entry_id: str) -> None:
        entry = self.get_entry(entry_id)
        if entry is None:
            return
        if entry.is_final:
            self._stop_polling(entry_id)
            return
        if not _is_pollable(entry):
            return
        task = self._pollers.get(entry_id)
        if task is not None and not task.done():
            return
        self._start_polling(entry_id)

    def _start_polling(self, entry_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.debug("No running event loop; not polling %s", entry_id)
            return
        self._pollers[entry_id] = loop.create_task(self._poll_loop(entry_id))
        self.logger.debug("Started polling %s", entry_id)

    def _stop_polling(self, entry_id: str) -> None:
        task = self._pollers.pop(entry_id, None)
        if task is None:
            return
        if not task.done() and task is not _current_task():
            task.cancel()
        self.logger.debug("Stopped polling %s", entry_id)

    def _restart_polling(self, entry_id: str) -> None:
        self._stop_polling(entry_id)
        entry = self.get_entry(entry_id)
        if entry is not None and _is_pollable(entry):
            self._start_polling(entry_id)

    def _clear_all_pollers(self) -> None:
        for entry_id in list(self._pollers):
            self._stop_polling(entry_id)

    async def _poll_loop(self, entry_id: str) -> None:
        try:
            while True:
                if await self.poll_entry(entry_id):
                    return
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            pass
        finally:
            if self._pollers.get(entry_id) is _current_task():
                self._pollers.pop(entry_id, None)

    async def poll_entry(self, entry_id: str) -> bool:
        """Run one reconciliation tick; returns True once polling should stop."""

        entry = self.get_entry(entry_id)
        if entry is None or entry.is_final:
            return True

        try:
            status = await self.resolver.resolve(entry)
        except Exception as exc:
            self.logger.error("Polling deposit for %s failed: %s", entry_id, exc)
            return False
        if status is None:
            return False

        current = self.get_entry(entry_id)
        if current is None:
            return True

        if status.stage in _FILLED_STAGES:
            if current.mode == PaymentMode.SWAP:
                self.update_swap_filled(entry_id, status.fill_tx_hash)
            else:
                self.update_bridge_filled(entry_id, status.fill_tx_hash)
            self._stop_polling(entry_id)
            return True

        now = now_ms()
        if status.stage == PaymentStatus.REQUESTED_SLOW_FILL:
            self.update_entry(entry_id, lambda existing: dataclasses.replace(
                existing,
                status=PaymentStatus.REQUESTED_SLOW_FILL,
                updated_at=now,
                timeline=append_timeline_entries(existing.timeline, [
                    make_timeline_entry(PaymentStatus.REQUESTED_SLOW_FILL, now, notes=status.raw_status),
                ]),
            ))
        elif status.stage == PaymentStatus.RELAY_PENDING:
            already_pending = current.status == PaymentStatus.RELAY_PENDING
            has_row = any(item.stage == PaymentStatus.RELAY_PENDING for item in current.timeline)
            if not already_pending or not has_row:
                self._transition(entry_id, PaymentStatus.RELAY_PENDING, [(PaymentStatus.RELAY_PENDING, None)])
        elif status.stage == PaymentStatus.FAILED:
            self.mark_failed(entry_id, f"Deposit reported as {status.raw_status or 'failed'}")
            return True

        return False

    # -------------------------------------------------------------------------
    # Remote reconciliation
    # -------------------------------------------------------------------------

    def _spoke_pool(self, chain_id: int) -> Optional[str]:
        try:
            return self.provider.get_spoke_pool_address(chain_id)
        except Exception as exc:
            self.logger.warning("No spoke pool address for chain %d: %s", chain_id, exc)
            return None

    async def sync_remote_deposits(self, account: Optional[str] = None) -> List[PaymentHistoryEntry]:
        """Merge the account's indexer deposits into local history; returns the remote entries."""

        account = account or self.state.account
        if not account or self.indexer is None:
            return []

        try:
            deposits = await self.indexer.list_deposits(account, limit=self.remote_limit)
        except Exception as exc:
            self.logger.error("Failed to fetch remote deposits for %s: %s", account, exc)
            return []

        remote_entries = []
        for deposit in deposits:
            input_token, output_token = await asyncio.gather(
                self.token_resolver.resolve(
                    deposit.input_token, deposit.origin_chain_id, fallback_symbol=REMOTE_TOKEN_FALLBACK_SYMBOL,
                ),
                self.token_resolver.resolve(
                    deposit.output_token, deposit.destination_chain_id, fallback_symbol=REMOTE_TOKEN_FALLBACK_SYMBOL,
                ),
            )
            remote_entries.append(entry_from_indexer_deposit(
                deposit,
                account,
                input_token,
                output_token,
                origin_spoke_pool_address=self._spoke_pool(deposit.origin_chain_id),
                destination_spoke_pool_address=self._spoke_pool(deposit.destination_chain_id),
            ))

        if not _same_account(self.state.account, account):
            self.logger.info("Discarding remote deposits for %s after account switch", account)
            return []

        self._set_entries(merge_entries(self.state.entries, remote_entries))
        self._persist()
        self._emit()
        for entry in list(self.state.entries):
            self._maybe_start_polling(entry.id)
        self.logger.info("Synced %d remote deposits for %s", len(remote_entries), account)
        return remote_entries


def _same_account(left: Optional[str], right: Optional[str]) -> bool:
    if left is None or right is None:
        return left is right
    return left.lower() == right.lower()
