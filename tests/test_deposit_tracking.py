"""
Deposit status resolution and indexer record conversion.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from payment_planner.core.history.models import PaymentHistoryEntry, PaymentStatus
from payment_planner.core.history.tracking import DepositStatusResolver, entry_from_indexer_deposit
from payment_planner.core.planner.models import PaymentMode, TokenDescriptor
from payment_planner.providers.base import ProviderError
from payment_planner.providers.models import DepositStatus, FillInfo, IndexerDeposit


ACCOUNT = "0x50ac5CFcc81BB0872e85255D7079F8a529345D16"
USDC_MAINNET = TokenDescriptor("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "USDC", 6, 1)
USDC_BASE = TokenDescriptor("0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", "USDC", 6, 8453)
DESTINATION_SPOKE_POOL = "0x09aea4b2242abC8bb4BB78D537A67a245A7bEC64"


def make_entry(**overrides):
    fields = dict(
        id="bridge-1",
        mode=PaymentMode.BRIDGE,
        status=PaymentStatus.RELAY_PENDING,
        created_at=1_000,
        updated_at=1_000,
        input_token=USDC_MAINNET,
        output_token=USDC_BASE,
        origin_chain_id=1,
        destination_chain_id=8453,
        input_amount=101_000_000,
        output_amount=100_000_000,
        deposit_id=42,
        deposit_tx_hash="0xdeposit",
        destination_spoke_pool_address=DESTINATION_SPOKE_POOL,
    )
    fields.update(overrides)
    return PaymentHistoryEntry(**fields)


def indexer_deposit(**overrides):
    record = {
        "depositId": "42",
        "depositTxHash": "0xdeposit",
        "inputToken": USDC_MAINNET.address,
        "outputToken": USDC_BASE.address,
        "originChainId": 1,
        "destinationChainId": 8453,
        "inputAmount": "101000000",
        "outputAmount": "100000000",
        "quoteTimestamp": 1_700_000_000,
        "status": "pending",
        "recipient": ACCOUNT,
    }
    record.update(overrides)
    return IndexerDeposit.model_validate(record)


def make_provider():
    provider = MagicMock()
    provider.get_deposit = AsyncMock(return_value=DepositStatus.model_validate({"status": "pending"}))
    provider.get_fill_by_deposit_tx = AsyncMock(return_value=None)
    return provider


def make_indexer(deposit=None):
    indexer = MagicMock()
    indexer.find_deposit = AsyncMock(return_value=deposit)
    return indexer


# =============================================================================
# Resolver
# =============================================================================


class TestDepositStatusResolver:
    @pytest.mark.asyncio
    async def test_filled_deposit_from_pricing_api(self):
        provider = make_provider()
        provider.get_deposit.return_value = DepositStatus.model_validate({"status": "filled", "fillTx": "0xfill"})
        indexer = make_indexer()

        result = await DepositStatusResolver(provider, indexer=indexer).resolve(make_entry())

        assert result.stage == PaymentStatus.RELAY_FILLED
        assert result.fill_tx_hash == "0xfill"
        lookup = provider.get_deposit.call_args.args[0]
        assert lookup.deposit_id == 42
        assert lookup.destination_spoke_pool_address == DESTINATION_SPOKE_POOL
        indexer.find_deposit.assert_not_called()

    @pytest.mark.asyncio
    async def test_unfilled_deposit_is_relay_pending(self):
        result = await DepositStatusResolver(make_provider()).resolve(make_entry())

        assert result.stage == PaymentStatus.RELAY_PENDING
        assert result.raw_status == "pending"

    @pytest.mark.asyncio
    async def test_fill_lookup_for_deposits_with_message(self):
        provider = make_provider()
        provider.get_deposit.side_effect = ProviderError("deposit not found")
        provider.get_fill_by_deposit_tx.return_value = FillInfo.model_validate({"fillTxHash": "0xfill"})
        resolver = DepositStatusResolver(provider, chain_readers={8453: MagicMock()})

        result = await resolver.resolve(make_entry(deposit_message="0xdeadbeef"))

        assert result.stage == PaymentStatus.RELAY_FILLED
        assert result.fill_tx_hash == "0xfill"

    @pytest.mark.asyncio
    async def test_fill_lookup_needs_destination_reader(self):
        provider = make_provider()
        provider.get_deposit.side_effect = ProviderError("deposit not found")

        result = await DepositStatusResolver(provider).resolve(make_entry(deposit_message="0xdeadbeef"))

        assert result is None
        provider.get_fill_by_deposit_tx.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_back_to_indexer(self):
        provider = make_provider()
        provider.get_deposit.side_effect = ProviderError("deposit not found")
        indexer = make_indexer(indexer_deposit(status="requested_slow_fill"))

        result = await DepositStatusResolver(provider, indexer=indexer).resolve(make_entry())

        assert result.stage == PaymentStatus.REQUESTED_SLOW_FILL
        assert result.raw_status == "requested_slow_fill"

    @pytest.mark.asyncio
    async def test_swap_entry_without_deposit_id_uses_indexer_by_tx_hash(self):
        provider = make_provider()
        indexer = make_indexer(indexer_deposit(status="filled", fillTxHash="0xfill"))
        entry = make_entry(mode=PaymentMode.SWAP, deposit_id=None, destination_spoke_pool_address=None)

        result = await DepositStatusResolver(provider, indexer=indexer).resolve(entry)

        assert result.stage == PaymentStatus.RELAY_FILLED
        assert result.fill_tx_hash == "0xfill"
        provider.get_deposit.assert_not_called()
        assert indexer.find_deposit.call_args.args[0].deposit_tx_hash == "0xdeposit"

    @pytest.mark.asyncio
    async def test_indexer_failure_means_no_answer(self):
        provider = make_provider()
        provider.get_deposit.side_effect = ProviderError("down")
        indexer = make_indexer()
        indexer.find_deposit.side_effect = ProviderError("down")

        assert await DepositStatusResolver(provider, indexer=indexer).resolve(make_entry()) is None

    @pytest.mark.asyncio
    async def test_unknown_deposit_means_no_answer(self):
        provider = make_provider()
        provider.get_deposit.side_effect = ProviderError("down")

        result = await DepositStatusResolver(provider, indexer=make_indexer(None)).resolve(make_entry())

        assert result is None


# =============================================================================
# Indexer records
# =============================================================================


class TestEntryFromIndexerDeposit:
    def test_filled_deposit_becomes_settled(self):
        deposit = indexer_deposit(status="filled", fillTxHash="0xfill")

        entry = entry_from_indexer_deposit(deposit, ACCOUNT, USDC_MAINNET, USDC_BASE, now=1_700_000_100_000)

        assert entry.id == "remote-0xdeposit"
        assert entry.mode == PaymentMode.BRIDGE
        assert entry.status == PaymentStatus.SETTLED
        assert entry.created_at == 1_700_000_000_000
        assert entry.depositor == ACCOUNT
        assert entry.input_amount == 101_000_000
        assert [item.stage for item in entry.timeline] == [
            PaymentStatus.INITIAL,
            PaymentStatus.DEPOSIT_PENDING,
            PaymentStatus.DEPOSIT_CONFIRMED,
            PaymentStatus.RELAY_FILLED,
            PaymentStatus.SETTLED,
        ]
        assert entry.timeline[3].tx_hash == "0xfill"

    def test_pending_deposit_without_tx_hash(self):
        deposit = indexer_deposit(depositTxHash=None, status="pending")

        entry = entry_from_indexer_deposit(deposit, ACCOUNT, USDC_MAINNET, USDC_BASE, now=1_700_000_100_000)

        assert entry.id == "remote-42"
        assert entry.status == PaymentStatus.RELAY_PENDING
        assert [item.stage for item in entry.timeline] == [
            PaymentStatus.INITIAL,
            PaymentStatus.DEPOSIT_PENDING,
            PaymentStatus.RELAY_PENDING,
        ]

    def test_slow_fill_request_keeps_raw_status_note(self):
        deposit = indexer_deposit(status="requested_slow_fill")

        entry = entry_from_indexer_deposit(deposit, ACCOUNT, USDC_MAINNET, USDC_BASE, now=1_700_000_100_000)

        assert entry.status == PaymentStatus.REQUESTED_SLOW_FILL
        assert entry.timeline[-1].stage == PaymentStatus.REQUESTED_SLOW_FILL
        assert entry.timeline[-1].notes == "requested_slow_fill"

    def test_failed_deposit(self):
        deposit = indexer_deposit(status="failed")

        entry = entry_from_indexer_deposit(deposit, ACCOUNT, USDC_MAINNET, USDC_BASE, now=1_700_000_100_000)

        assert entry.status == PaymentStatus.FAILED
        assert entry.is_final is True
        assert entry.timeline[-1].stage == PaymentStatus.FAILED
