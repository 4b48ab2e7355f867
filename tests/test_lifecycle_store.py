"""
Payment Lifecycle Store Tests

Named transitions for direct, bridge and swap payments, write-through
persistence, subscriber notification, reconciliation polling and remote
deposit sync.

Stores built in plain (non-async) tests or fixtures have no running event
loop, so no pollers start there; async tests exercise the pollers.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from payment_planner.core.history.models import (
    PaymentHistoryEntry,
    PaymentStatus,
    make_timeline_entry,
)
from payment_planner.core.history.storage import (
    InMemoryStorage,
    StorageError,
    deserialize_entries,
    serialize_entries,
)
from payment_planner.core.history.store import DIRECT_REVERTED_MESSAGE, PaymentLifecycleStore
from payment_planner.core.history.tracking import DepositStatusResult
from payment_planner.core.planner.models import PaymentMode, TokenDescriptor
from payment_planner.providers.base import ProviderError
from payment_planner.providers.models import IndexerDeposit, TransactionReceipt


ACCOUNT = "0x50ac5CFcc81BB0872e85255D7079F8a529345D16"
OTHER_ACCOUNT = "0x1111111111111111111111111111111111111111"
USDC_MAINNET = TokenDescriptor("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "USDC", 6, 1)
USDC_BASE = TokenDescriptor("0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", "USDC", 6, 8453)
SPOKE_POOL = "0x09aea4b2242abC8bb4BB78D537A67a245A7bEC64"


def make_provider():
    provider = MagicMock()
    provider.get_spoke_pool_address = MagicMock(return_value=SPOKE_POOL)
    return provider


def make_resolver(result=None):
    resolver = MagicMock()
    resolver.resolve = AsyncMock(return_value=result)
    return resolver


def make_store(storage=None, resolver=None, **kwargs):
    kwargs.setdefault("poll_interval", 3600)
    return PaymentLifecycleStore(
        make_provider(),
        storage or InMemoryStorage(),
        resolver=resolver or make_resolver(),
        **kwargs,
    )


def record_bridge(store, requires_wrap=False):
    return store.record_bridge_init(
        depositor=ACCOUNT,
        recipient=ACCOUNT,
        input_token=USDC_MAINNET,
        output_token=USDC_BASE,
        origin_chain_id=1,
        destination_chain_id=8453,
        input_amount=101_000_000,
        output_amount=100_000_000,
        requires_wrap=requires_wrap,
        destination_spoke_pool_address=SPOKE_POOL,
    )


def record_swap(store, approval_count=0):
    return store.record_swap_init(
        depositor=ACCOUNT,
        recipient=ACCOUNT,
        input_token=TokenDescriptor("0x6B175474E89094C44Da98b954EedeAC495271d0F", "DAI", 18, 1),
        output_token=USDC_BASE,
        origin_chain_id=1,
        destination_chain_id=8453,
        input_amount=101 * 10**18,
        output_amount=100_000_000,
        approval_count=approval_count,
    )


def record_direct(store):
    return store.record_direct_init(
        depositor=ACCOUNT,
        input_token=USDC_BASE,
        output_token=USDC_BASE,
        chain_id=8453,
        amount_in=100_000_000,
        amount_out=100_000_000,
    )


def stored_entry(entry_id, mode, status, **overrides):
    fields = dict(
        id=entry_id,
        mode=mode,
        status=status,
        created_at=1_700_000_000_000,
        updated_at=1_700_000_000_000,
        input_token=USDC_MAINNET if mode != PaymentMode.DIRECT else USDC_BASE,
        output_token=USDC_BASE,
        origin_chain_id=1 if mode != PaymentMode.DIRECT else 8453,
        destination_chain_id=8453,
        input_amount=101_000_000,
        output_amount=100_000_000,
        depositor=ACCOUNT,
        timeline=[make_timeline_entry(PaymentStatus.INITIAL, 1_700_000_000_000)],
    )
    fields.update(overrides)
    return PaymentHistoryEntry(**fields)


def stages(entry):
    return [item.stage for item in entry.timeline]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def relaying_bridge():
    """Store holding one bridge payment whose deposit is confirmed and relaying."""

    store = make_store()
    entry_id = record_bridge(store)
    store.update_bridge_after_deposit(entry_id, 42, "0xdeposit", 99_500_000)
    yield store, entry_id
    store.close()


@pytest.fixture
def relaying_swap():
    store = make_store()
    entry_id = record_swap(store)
    store.update_swap_tx_confirmed(entry_id, "0xswap", 7, 100_200_000)
    yield store, entry_id
    store.close()


# =============================================================================
# Direct payments
# =============================================================================


class TestDirectPayments:
    def test_direct_flow(self):
        store = make_store()

        entry_id = record_direct(store)
        entry = store.get_entry(entry_id)
        assert entry_id.startswith("direct-")
        assert entry.status == PaymentStatus.DIRECT_PENDING
        assert stages(entry) == [PaymentStatus.INITIAL, PaymentStatus.DIRECT_PENDING]

        store.update_direct_tx_pending(entry_id, "0xpay")
        assert store.get_entry(entry_id).deposit_tx_hash == "0xpay"
        assert store.get_entry(entry_id).timeline[-1].tx_hash == "0xpay"

        store.complete_direct(entry_id, "0xpay")
        entry = store.get_entry(entry_id)
        assert entry.status == PaymentStatus.DIRECT_CONFIRMED
        assert entry.is_final is True
        assert stages(entry)[-1] == PaymentStatus.DIRECT_CONFIRMED

    def test_failed_direct_payment(self):
        store = make_store()
        entry_id = record_direct(store)

        store.fail_direct(entry_id, "User rejected the request")

        entry = store.get_entry(entry_id)
        assert entry.status == PaymentStatus.FAILED
        assert entry.errors == ["User rejected the request"]
        assert entry.timeline[-1].stage == PaymentStatus.FAILED
        assert entry.timeline[-1].notes == "User rejected the request"

    def test_direct_payments_are_never_polled(self):
        store = make_store()
        entry_id = record_direct(store)
        store.update_direct_tx_pending(entry_id, "0xpay")

        assert store.polling_ids == []


# =============================================================================
# Bridge payments
# =============================================================================


class TestBridgePayments:
    def test_wrapped_bridge_flow(self):
        store = make_store()

        entry_id = record_bridge(store, requires_wrap=True)
        assert store.get_entry(entry_id).status == PaymentStatus.WRAP_PENDING

        store.update_bridge_after_wrap(entry_id, "0xwrap")
        entry = store.get_entry(entry_id)
        assert entry.status == PaymentStatus.DEPOSIT_PENDING
        assert entry.wrap_tx_hash == "0xwrap"
        assert PaymentStatus.WRAP_CONFIRMED in stages(entry)

        store.update_bridge_deposit_tx_hash(entry_id, "0xdeposit")
        entry = store.get_entry(entry_id)
        assert entry.deposit_tx_hash == "0xdeposit"
        assert stages(entry).count(PaymentStatus.DEPOSIT_PENDING) == 1

        store.update_bridge_after_deposit(entry_id, 42, "0xdeposit", 99_500_000)
        entry = store.get_entry(entry_id)
        assert entry.status == PaymentStatus.RELAY_PENDING
        assert entry.deposit_id == 42
        assert entry.output_amount == 99_500_000

        store.update_bridge_filled(entry_id, "0xfill")
        entry = store.get_entry(entry_id)
        assert entry.status == PaymentStatus.SETTLED
        assert entry.fill_tx_hash == "0xfill"
        assert stages(entry)[-2:] == [PaymentStatus.RELAY_FILLED, PaymentStatus.SETTLED]
        assert entry.timeline[-2].tx_hash == "0xfill"

    def test_unwrapped_bridge_starts_at_deposit_pending(self):
        store = make_store()

        entry_id = record_bridge(store)

        assert store.get_entry(entry_id).status == PaymentStatus.DEPOSIT_PENDING

    def test_deposit_hash_leaves_wrap_step(self):
        store = make_store()
        entry_id = record_bridge(store, requires_wrap=True)

        store.update_bridge_deposit_tx_hash(entry_id, "0xdeposit")

        assert store.get_entry(entry_id).status == PaymentStatus.DEPOSIT_PENDING

    def test_missing_deposit_id_keeps_existing(self):
        store = make_store()
        entry_id = record_bridge(store)
        store.update_bridge_after_deposit(entry_id, 42, "0xdeposit", 99_500_000)

        store.update_bridge_after_deposit(entry_id, None, "0xdeposit", 99_600_000)

        assert store.get_entry(entry_id).deposit_id == 42
        assert store.get_entry(entry_id).output_amount == 99_600_000

    def test_failed_bridge(self):
        store = make_store()
        entry_id = record_bridge(store)

        store.fail_bridge(entry_id, "Deposit transaction reverted")

        assert store.get_entry(entry_id).status == PaymentStatus.FAILED

    def test_no_pollers_without_running_loop(self, relaying_bridge):
        store, entry_id = relaying_bridge

        assert store.get_entry(entry_id).status == PaymentStatus.RELAY_PENDING
        assert store.polling_ids == []


# =============================================================================
# Swap payments
# =============================================================================


class TestSwapPayments:
    def test_swap_flow_with_approvals(self):
        store = make_store()

        entry_id = record_swap(store, approval_count=2)
        assert store.get_entry(entry_id).status == PaymentStatus.APPROVAL_PENDING

        store.update_swap_approval_submitted(entry_id, "0xa1")
        store.update_swap_approval_submitted(entry_id, "0xa1")
        store.update_swap_approval_submitted(entry_id, "0xa2")
        assert store.get_entry(entry_id).approval_tx_hashes == ["0xa1", "0xa2"]

        store.update_swap_approval_confirmed(entry_id, "0xa2")
        assert store.get_entry(entry_id).status == PaymentStatus.APPROVAL_CONFIRMED

        store.update_swap_tx_pending(entry_id, "0xswap")
        entry = store.get_entry(entry_id)
        assert entry.status == PaymentStatus.SWAP_PENDING
        assert entry.swap_tx_hash == "0xswap"

        store.update_swap_tx_confirmed(entry_id, "0xswap", 7, 100_200_000)
        entry = store.get_entry(entry_id)
        assert entry.status == PaymentStatus.RELAY_PENDING
        assert entry.deposit_tx_hash == "0xswap"
        assert entry.deposit_id == 7
        assert entry.output_amount == 100_200_000
        assert PaymentStatus.SWAP_CONFIRMED in stages(entry)

        store.update_swap_filled(entry_id, "0xfill")
        entry = store.get_entry(entry_id)
        assert entry.status == PaymentStatus.SETTLED
        assert stages(entry)[-2:] == [PaymentStatus.FILLED, PaymentStatus.SETTLED]

    def test_swap_without_approvals_starts_pending(self):
        store = make_store()

        entry_id = record_swap(store)

        assert store.get_entry(entry_id).status == PaymentStatus.SWAP_PENDING

    def test_failed_swap(self):
        store = make_store()
        entry_id = record_swap(store)

        store.fail_swap(entry_id, "Slippage exceeded")

        assert store.get_entry(entry_id).errors == ["Slippage exceeded"]


# =============================================================================
# Generic mutations and notification
# =============================================================================


class TestMutations:
    def test_new_entries_go_first(self):
        store = make_store()
        first = record_direct(store)
        second = record_bridge(store)

        assert [entry.id for entry in store.get_snapshot().entries] == [second, first]

    def test_add_entry_replaces_same_id(self):
        store = make_store()
        entry_id = record_direct(store)
        record_bridge(store)
        replacement = stored_entry(entry_id, PaymentMode.DIRECT, PaymentStatus.DIRECT_CONFIRMED)

        store.add_entry(replacement)

        entries = store.get_snapshot().entries
        assert len(entries) == 2
        assert entries[0] is replacement

    def test_unknown_entry_is_ignored(self):
        store = make_store()
        record_direct(store)
        calls = []
        store.subscribe(calls.append)

        store.update_bridge_filled("bridge-missing", "0xfill")

        assert calls == []
        assert len(store.get_snapshot().entries) == 1

    def test_listeners_get_every_change_until_unsubscribed(self):
        store = make_store()
        snapshots = []
        unsubscribe = store.subscribe(snapshots.append)

        entry_id = record_direct(store)
        store.update_direct_tx_pending(entry_id, "0xpay")
        unsubscribe()
        store.complete_direct(entry_id, "0xpay")

        assert len(snapshots) == 2
        assert snapshots[-1].entries[0].status == PaymentStatus.DIRECT_PENDING

    def test_listener_error_does_not_block_others(self):
        store = make_store()
        received = []

        def broken(snapshot):
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        store.subscribe(received.append)

        record_direct(store)

        assert len(received) == 1


# =============================================================================
# Initialization, persistence and clearing
# =============================================================================


class TestPersistence:
    @pytest.mark.asyncio
    async def test_initialize_loads_persisted_entries(self):
        entry = stored_entry("direct-1", PaymentMode.DIRECT, PaymentStatus.DIRECT_CONFIRMED)
        storage = InMemoryStorage({ACCOUNT: serialize_entries([entry])})
        store = make_store(storage)
        snapshots = []
        store.subscribe(snapshots.append)

        await store.initialize(ACCOUNT)

        assert store.get_snapshot().account == ACCOUNT
        assert [item.id for item in store.get_snapshot().entries] == ["direct-1"]
        assert len(snapshots) == 1
        store.close()

    @pytest.mark.asyncio
    async def test_initialize_same_account_is_noop(self):
        store = make_store()
        snapshots = []
        store.subscribe(snapshots.append)

        await store.initialize(ACCOUNT)
        await store.initialize(ACCOUNT.lower())

        assert len(snapshots) == 1
        store.close()

    @pytest.mark.asyncio
    async def test_corrupt_storage_starts_empty(self):
        store = make_store(InMemoryStorage({ACCOUNT: {"not": "a list"}}))

        await store.initialize(ACCOUNT)

        assert store.get_snapshot().entries == []
        store.close()

    @pytest.mark.asyncio
    async def test_entries_are_persisted_before_listeners_run(self):
        storage = InMemoryStorage()
        store = make_store(storage)
        await store.initialize(ACCOUNT)
        persisted_at_notify = []
        store.subscribe(lambda snapshot: persisted_at_notify.append(deserialize_entries(storage.read(ACCOUNT))))

        entry_id = record_direct(store)

        assert [entry.id for entry in persisted_at_notify[0]] == [entry_id]
        store.close()

    @pytest.mark.asyncio
    async def test_write_failure_keeps_in_memory_state(self):
        storage = MagicMock()
        storage.read = MagicMock(return_value=None)
        storage.write = MagicMock(side_effect=StorageError("disk full"))
        store = make_store(storage)
        await store.initialize(ACCOUNT)
        snapshots = []
        store.subscribe(snapshots.append)

        entry_id = record_direct(store)

        assert store.get_entry(entry_id) is not None
        assert len(snapshots) == 1
        store.close()

    @pytest.mark.asyncio
    async def test_clear_removes_stored_history(self):
        storage = InMemoryStorage()
        store = make_store(storage)
        await store.initialize(ACCOUNT)
        record_direct(store)

        store.clear()

        assert store.get_snapshot().entries == []
        assert store.get_snapshot().account == ACCOUNT
        assert storage.read(ACCOUNT) is None
        store.close()

    def test_nothing_persisted_without_account(self):
        storage = MagicMock()
        store = make_store(storage)

        record_direct(store)

        storage.write.assert_not_called()


# =============================================================================
# Direct payment resume
# =============================================================================


def receipt(status):
    return TransactionReceipt.model_validate({"transactionHash": "0xpay", "status": status, "blockNumber": "0x10"})


def pending_direct_storage():
    entry = stored_entry(
        "direct-pending",
        PaymentMode.DIRECT,
        PaymentStatus.DIRECT_PENDING,
        deposit_tx_hash="0xpay",
    )
    return InMemoryStorage({ACCOUNT: serialize_entries([entry])})


def reader_with_receipt(value):
    reader = MagicMock()
    reader.get_transaction_receipt = AsyncMock(return_value=value)
    return reader


class TestDirectResume:
    @pytest.mark.asyncio
    async def test_successful_receipt_confirms(self):
        store = make_store(pending_direct_storage(), chain_readers={8453: reader_with_receipt(receipt("0x1"))})

        await store.initialize(ACCOUNT)

        assert store.get_entry("direct-pending").status == PaymentStatus.DIRECT_CONFIRMED
        store.close()

    @pytest.mark.asyncio
    async def test_reverted_receipt_fails(self):
        store = make_store(pending_direct_storage(), chain_readers={8453: reader_with_receipt(receipt("0x0"))})

        await store.initialize(ACCOUNT)

        entry = store.get_entry("direct-pending")
        assert entry.status == PaymentStatus.FAILED
        assert entry.errors == [DIRECT_REVERTED_MESSAGE]
        store.close()

    @pytest.mark.asyncio
    async def test_missing_receipt_leaves_entry_pending(self):
        store = make_store(pending_direct_storage(), chain_readers={8453: reader_with_receipt(None)})

        await store.initialize(ACCOUNT)

        assert store.get_entry("direct-pending").status == PaymentStatus.DIRECT_PENDING
        store.close()

    @pytest.mark.asyncio
    async def test_receipt_lookup_failure_is_tolerated(self):
        reader = MagicMock()
        reader.get_transaction_receipt = AsyncMock(side_effect=ProviderError("rpc down"))
        store = make_store(pending_direct_storage(), chain_readers={8453: reader})

        await store.initialize(ACCOUNT)

        assert store.get_entry("direct-pending").status == PaymentStatus.DIRECT_PENDING
        store.close()

    @pytest.mark.asyncio
    async def test_refresh_pending_entries_rechecks_direct_payments(self):
        store = make_store(chain_readers={8453: reader_with_receipt(receipt("0x1"))})
        entry_id = record_direct(store)
        store.update_direct_tx_pending(entry_id, "0xpay")

        await store.refresh_pending_entries()

        assert store.get_entry(entry_id).status == PaymentStatus.DIRECT_CONFIRMED
        store.close()


# =============================================================================
# Polling
# =============================================================================


class TestPollEntry:
    @pytest.mark.asyncio
    async def test_filled_bridge_settles(self, relaying_bridge):
        store, entry_id = relaying_bridge
        store.resolver = make_resolver(DepositStatusResult(PaymentStatus.RELAY_FILLED, "0xfill", "filled"))

        assert await store.poll_entry(entry_id) is True

        entry = store.get_entry(entry_id)
        assert entry.status == PaymentStatus.SETTLED
        assert entry.fill_tx_hash == "0xfill"
        assert PaymentStatus.RELAY_FILLED in stages(entry)

    @pytest.mark.asyncio
    async def test_filled_swap_settles(self, relaying_swap):
        store, entry_id = relaying_swap
        store.resolver = make_resolver(DepositStatusResult(PaymentStatus.RELAY_FILLED, "0xfill", "filled"))

        assert await store.poll_entry(entry_id) is True

        entry = store.get_entry(entry_id)
        assert entry.status == PaymentStatus.SETTLED
        assert stages(entry)[-2:] == [PaymentStatus.FILLED, PaymentStatus.SETTLED]

    @pytest.mark.asyncio
    async def test_slow_fill_request_is_recorded(self, relaying_bridge):
        store, entry_id = relaying_bridge
        store.resolver = make_resolver(
            DepositStatusResult(PaymentStatus.REQUESTED_SLOW_FILL, raw_status="requested_slow_fill")
        )

        assert await store.poll_entry(entry_id) is False

        entry = store.get_entry(entry_id)
        assert entry.status == PaymentStatus.REQUESTED_SLOW_FILL
        assert entry.timeline[-1].notes == "requested_slow_fill"
        store.close()

    @pytest.mark.asyncio
    async def test_relay_pending_is_not_rewritten(self, relaying_bridge):
        store, entry_id = relaying_bridge
        store.resolver = make_resolver(DepositStatusResult(PaymentStatus.RELAY_PENDING, raw_status="pending"))
        before = store.get_entry(entry_id)

        assert await store.poll_entry(entry_id) is False

        assert store.get_entry(entry_id) is before

    @pytest.mark.asyncio
    async def test_relay_pending_advances_earlier_stage(self):
        store = make_store()
        entry_id = record_bridge(store)
        store.update_bridge_deposit_tx_hash(entry_id, "0xdeposit")
        store.resolver = make_resolver(DepositStatusResult(PaymentStatus.RELAY_PENDING, raw_status="pending"))

        await store.poll_entry(entry_id)

        entry = store.get_entry(entry_id)
        assert entry.status == PaymentStatus.RELAY_PENDING
        assert stages(entry).count(PaymentStatus.RELAY_PENDING) == 1
        store.close()

    @pytest.mark.asyncio
    async def test_failed_deposit_marks_entry_failed(self, relaying_bridge):
        store, entry_id = relaying_bridge
        store.resolver = make_resolver(DepositStatusResult(PaymentStatus.FAILED, raw_status="failed"))

        assert await store.poll_entry(entry_id) is True

        entry = store.get_entry(entry_id)
        assert entry.status == PaymentStatus.FAILED
        assert entry.errors == ["Deposit reported as failed"]

    @pytest.mark.asyncio
    async def test_lookup_errors_keep_polling(self, relaying_bridge):
        store, entry_id = relaying_bridge
        store.resolver = MagicMock()
        store.resolver.resolve = AsyncMock(side_effect=ProviderError("indexer down"))

        assert await store.poll_entry(entry_id) is False
        assert store.get_entry(entry_id).status == PaymentStatus.RELAY_PENDING

    @pytest.mark.asyncio
    async def test_no_answer_keeps_polling(self, relaying_bridge):
        store, entry_id = relaying_bridge

        assert await store.poll_entry(entry_id) is False

    @pytest.mark.asyncio
    async def test_missing_or_final_entry_stops(self, relaying_bridge):
        store, entry_id = relaying_bridge
        store.update_bridge_filled(entry_id, "0xfill")

        assert await store.poll_entry("bridge-missing") is True
        assert await store.poll_entry(entry_id) is True


class TestPollers:
    @pytest.mark.asyncio
    async def test_poller_runs_until_fill(self):
        filled = DepositStatusResult(PaymentStatus.RELAY_FILLED, "0xfill", "filled")
        resolver = MagicMock()
        resolver.resolve = AsyncMock(side_effect=[None, None, filled])
        store = make_store(resolver=resolver, poll_interval=0.01)

        entry_id = record_bridge(store)
        store.update_bridge_after_deposit(entry_id, 42, "0xdeposit", 99_500_000)
        assert store.polling_ids == [entry_id]

        for _ in range(200):
            if store.get_entry(entry_id).is_final:
                break
            await asyncio.sleep(0.01)

        assert store.get_entry(entry_id).status == PaymentStatus.SETTLED
        assert resolver.resolve.await_count == 3
        await asyncio.sleep(0)
        assert store.polling_ids == []
        store.close()

    @pytest.mark.asyncio
    async def test_one_poller_per_entry(self):
        store = make_store()
        entry_id = record_bridge(store)

        store.update_bridge_deposit_tx_hash(entry_id, "0xdeposit")
        first = store._pollers[entry_id]
        store.update_bridge_after_deposit(entry_id, 42, "0xdeposit", 99_500_000)

        assert store._pollers[entry_id] is first
        store.close()

    @pytest.mark.asyncio
    async def test_close_cancels_pollers(self):
        store = make_store()
        entry_id = record_bridge(store)
        store.update_bridge_after_deposit(entry_id, 42, "0xdeposit", 99_500_000)
        task = store._pollers[entry_id]

        store.close()
        await asyncio.gather(task, return_exceptions=True)

        assert task.done()
        assert store.polling_ids == []

    @pytest.mark.asyncio
    async def test_failure_stops_polling(self):
        store = make_store()
        entry_id = record_bridge(store)
        store.update_bridge_after_deposit(entry_id, 42, "0xdeposit", 99_500_000)

        store.fail_bridge(entry_id, "Relay expired")

        assert store.polling_ids == []
        store.close()


# =============================================================================
# Remote reconciliation
# =============================================================================


def indexer_deposit(**overrides):
    record = {
        "depositId": "42",
        "depositTxHash": "0xdeposit",
        "fillTxHash": "0xfill",
        "inputToken": USDC_MAINNET.address,
        "outputToken": USDC_BASE.address,
        "originChainId": 1,
        "destinationChainId": 8453,
        "inputAmount": "101000000",
        "outputAmount": "100000000",
        "quoteTimestamp": 1_700_000_000,
        "status": "filled",
        "recipient": ACCOUNT,
    }
    record.update(overrides)
    return IndexerDeposit.model_validate(record)


def make_indexer(deposits):
    indexer = MagicMock()
    indexer.list_deposits = AsyncMock(return_value=deposits)
    return indexer


class TestRemoteSync:
    @pytest.mark.asyncio
    async def test_remote_deposit_merges_into_local_entry(self):
        local = stored_entry(
            "bridge-local",
            PaymentMode.BRIDGE,
            PaymentStatus.RELAY_PENDING,
            deposit_id=42,
            deposit_tx_hash="0xDEPOSIT",
        )
        indexer = make_indexer([indexer_deposit()])
        store = make_store(InMemoryStorage({ACCOUNT: serialize_entries([local])}), indexer=indexer, remote_limit=25)

        await store.initialize(ACCOUNT)

        entries = store.get_snapshot().entries
        assert [entry.id for entry in entries] == ["bridge-local"]
        assert entries[0].status == PaymentStatus.SETTLED
        assert entries[0].fill_tx_hash == "0xfill"
        indexer.list_deposits.assert_awaited_once_with(ACCOUNT, limit=25)
        assert store.polling_ids == []
        store.close()

    @pytest.mark.asyncio
    async def test_unknown_remote_deposit_is_added_with_placeholder_tokens(self):
        indexer = make_indexer([indexer_deposit(depositTxHash="0xremote", status="pending", fillTxHash=None)])
        store = make_store(indexer=indexer)

        await store.initialize(ACCOUNT)

        entry = store.get_snapshot().entries[0]
        assert entry.id == "remote-0xremote"
        assert entry.input_token.symbol == "TOKEN"
        assert entry.destination_spoke_pool_address == SPOKE_POOL
        assert entry.status == PaymentStatus.RELAY_PENDING
        assert store.polling_ids == [entry.id]
        store.close()

    @pytest.mark.asyncio
    async def test_indexer_failure_keeps_local_history(self):
        entry = stored_entry("direct-1", PaymentMode.DIRECT, PaymentStatus.DIRECT_CONFIRMED)
        indexer = MagicMock()
        indexer.list_deposits = AsyncMock(side_effect=ProviderError("indexer down"))
        store = make_store(InMemoryStorage({ACCOUNT: serialize_entries([entry])}), indexer=indexer)

        await store.initialize(ACCOUNT)

        assert [item.id for item in store.get_snapshot().entries] == ["direct-1"]
        store.close()

    @pytest.mark.asyncio
    async def test_sync_for_inactive_account_is_discarded(self):
        store = make_store(indexer=make_indexer([indexer_deposit()]))

        remote = await store.sync_remote_deposits(ACCOUNT)

        assert remote == []
        assert store.get_snapshot().entries == []

    @pytest.mark.asyncio
    async def test_results_for_previous_account_are_discarded(self):
        started = asyncio.Event()
        release = asyncio.Event()

        async def list_deposits(depositor, limit):
            if depositor == ACCOUNT:
                started.set()
                await release.wait()
                return [indexer_deposit()]
            return []

        indexer = MagicMock()
        indexer.list_deposits = AsyncMock(side_effect=list_deposits)
        store = make_store(indexer=indexer)

        first = asyncio.create_task(store.initialize(ACCOUNT))
        await started.wait()
        await store.initialize(OTHER_ACCOUNT)
        release.set()
        await first

        assert store.get_snapshot().account == OTHER_ACCOUNT
        assert store.get_snapshot().entries == []
        store.close()
