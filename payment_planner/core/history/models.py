"""
Payment History Models

Lifecycle stages, timeline entries and the persisted record of one payment
attempt.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..planner.models import PaymentMode, TokenDescriptor


def now_ms() -> int:
    return int(time.time() * 1000)


class PaymentStatus(str, Enum):
    """Stages a payment moves through."""

    INITIAL = "initial"
    APPROVAL_PENDING = "approval_pending"
    APPROVAL_CONFIRMED = "approval_confirmed"
    SWAP_PENDING = "swap_pending"
    SWAP_CONFIRMED = "swap_confirmed"
    WRAP_PENDING = "wrap_pending"
    WRAP_CONFIRMED = "wrap_confirmed"
    DEPOSIT_PENDING = "deposit_pending"
    DEPOSIT_CONFIRMED = "deposit_confirmed"
    RELAY_PENDING = "relay_pending"
    RELAY_FILLED = "relay_filled"
    SETTLEMENT_PENDING = "settlement_pending"
    SETTLED = "settled"
    REQUESTED_SLOW_FILL = "requested_slow_fill"
    SLOW_FILL_READY = "slow_fill_ready"
    BRIDGE_PENDING = "bridge_pending"
    FILLED = "filled"
    DIRECT_PENDING = "direct_pending"
    DIRECT_CONFIRMED = "direct_confirmed"
    FAILED = "failed"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @property
    def is_final(self) -> bool:
        return self in FINAL_STATUSES


STATUS_LABELS: Dict[PaymentStatus, str] = {
    PaymentStatus.INITIAL: "Payment started",
    PaymentStatus.APPROVAL_PENDING: "Waiting for wallet approval",
    PaymentStatus.APPROVAL_CONFIRMED: "Wallet approval confirmed",
    PaymentStatus.SWAP_PENDING: "Swap in progress",
    PaymentStatus.SWAP_CONFIRMED: "Swap finished",
    PaymentStatus.WRAP_PENDING: "Preparing token",
    PaymentStatus.WRAP_CONFIRMED: "Token ready",
    PaymentStatus.DEPOSIT_PENDING: "Sending funds",
    PaymentStatus.DEPOSIT_CONFIRMED: "Funds sent",
    PaymentStatus.RELAY_PENDING: "Waiting for delivery",
    PaymentStatus.RELAY_FILLED: "Funds delivered",
    PaymentStatus.SETTLEMENT_PENDING: "Finalizing payment",
    PaymentStatus.SETTLED: "Payment completed",
    PaymentStatus.REQUESTED_SLOW_FILL: "Slow delivery requested",
    PaymentStatus.SLOW_FILL_READY: "Slow delivery ready",
    PaymentStatus.BRIDGE_PENDING: "Moving across networks",
    PaymentStatus.FILLED: "Payment completed",
    PaymentStatus.DIRECT_PENDING: "Payment in progress",
    PaymentStatus.DIRECT_CONFIRMED: "Payment completed",
    PaymentStatus.FAILED: "Payment failed",
}

FINAL_STATUSES = frozenset({
    PaymentStatus.SETTLED,
    PaymentStatus.RELAY_FILLED,
    PaymentStatus.FILLED,
    PaymentStatus.FAILED,
    PaymentStatus.DIRECT_CONFIRMED,
    PaymentStatus.SLOW_FILL_READY,
})


@dataclass
class PaymentTimelineEntry:
    stage: PaymentStatus
    label: str
    timestamp: int  # epoch milliseconds
    tx_hash: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "stage": self.stage.value,
            "label": self.label,
            "timestamp": self.timestamp,
        }
        if self.tx_hash is not None:
            data["txHash"] = self.tx_hash
        if self.notes is not None:
            data["notes"] = self.notes
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PaymentTimelineEntry":
        stage = PaymentStatus(data["stage"])
        return cls(
            stage=stage,
            label=data.get("label") or stage.label,
            timestamp=int(data["timestamp"]),
            tx_hash=data.get("txHash"),
            notes=data.get("notes"),
        )


def make_timeline_entry(
    stage: PaymentStatus,
    timestamp: Optional[int] = None,
    tx_hash: Optional[str] = None,
    notes: Optional[str] = None,
    label: Optional[str] = None,
) -> PaymentTimelineEntry:
    return PaymentTimelineEntry(
        stage=stage,
        label=label or stage.label,
        timestamp=now_ms() if timestamp is None else timestamp,
        tx_hash=tx_hash,
        notes=notes,
    )


@dataclass
class PaymentHistoryEntry:
    """One payment attempt, keyed by ``id`` for mutation, persistence and polling."""

    id: str
    mode: PaymentMode
    status: PaymentStatus
    created_at: int
    updated_at: int
    input_token: TokenDescriptor
    output_token: TokenDescriptor
    origin_chain_id: int
    destination_chain_id: int
    input_amount: int
    output_amount: int
    deposit_id: Optional[int] = None
    deposit_tx_hash: Optional[str] = None
    fill_tx_hash: Optional[str] = None
    wrap_tx_hash: Optional[str] = None
    swap_tx_hash: Optional[str] = None
    approval_tx_hashes: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    depositor: Optional[str] = None
    recipient: Optional[str] = None
    origin_spoke_pool_address: Optional[str] = None
    destination_spoke_pool_address: Optional[str] = None
    deposit_message: Optional[str] = None
    timeline: List[PaymentTimelineEntry] = field(default_factory=list)

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        """Storage form: amounts and deposit id as decimal strings."""

        return {
            "id": self.id,
            "mode": self.mode.value,
            "status": self.status.value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "inputToken": self.input_token.to_dict(),
            "outputToken": self.output_token.to_dict(),
            "originChainId": self.origin_chain_id,
            "destinationChainId": self.destination_chain_id,
            "inputAmount": str(self.input_amount),
            "outputAmount": str(self.output_amount),
            "depositId": str(self.deposit_id) if self.deposit_id is not None else None,
            "depositTxHash": self.deposit_tx_hash,
            "fillTxHash": self.fill_tx_hash,
            "wrapTxHash": self.wrap_tx_hash,
            "swapTxHash": self.swap_tx_hash,
            "approvalTxHashes": list(self.approval_tx_hashes),
            "errors": list(self.errors),
            "metadata": dict(self.metadata),
            "depositor": self.depositor,
            "recipient": self.recipient,
            "originSpokePoolAddress": self.origin_spoke_pool_address,
            "destinationSpokePoolAddress": self.destination_spoke_pool_address,
            "depositMessage": self.deposit_message,
            "timeline": [item.to_dict() for item in self.timeline],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PaymentHistoryEntry":
        deposit_id = data.get("depositId")
        return cls(
            id=data["id"],
            mode=PaymentMode(data["mode"]),
            status=PaymentStatus(data["status"]),
            created_at=int(data["createdAt"]),
            updated_at=int(data["updatedAt"]),
            input_token=TokenDescriptor.from_dict(data["inputToken"]),
            output_token=TokenDescriptor.from_dict(data["outputToken"]),
            origin_chain_id=int(data["originChainId"]),
            destination_chain_id=int(data["destinationChainId"]),
            input_amount=int(data["inputAmount"]),
            output_amount=int(data["outputAmount"]),
            deposit_id=int(deposit_id) if deposit_id is not None else None,
            deposit_tx_hash=data.get("depositTxHash"),
            fill_tx_hash=data.get("fillTxHash"),
            wrap_tx_hash=data.get("wrapTxHash"),
            swap_tx_hash=data.get("swapTxHash"),
            approval_tx_hashes=list(data.get("approvalTxHashes") or []),
            errors=list(data.get("errors") or []),
            metadata=dict(data.get("metadata") or {}),
            depositor=data.get("depositor"),
            recipient=data.get("recipient"),
            origin_spoke_pool_address=data.get("originSpokePoolAddress"),
            destination_spoke_pool_address=data.get("destinationSpokePoolAddress"),
            deposit_message=data.get("depositMessage"),
            timeline=[PaymentTimelineEntry.from_dict(item) for item in data.get("timeline") or []],
        )


@dataclass
class HistorySnapshot:
    account: Optional[str] = None
    entries: List[PaymentHistoryEntry] = field(default_factory=list)
