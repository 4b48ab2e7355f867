"""
Timeline upserts, entry merging and remote status mapping.
"""

import dataclasses
from typing import Dict, Iterable, List, Optional, Sequence

from .models import PaymentHistoryEntry, PaymentStatus, PaymentTimelineEntry

_DEPOSIT_STATUS_MAP: Dict[str, PaymentStatus] = {
    "filled": PaymentStatus.RELAY_FILLED,
    "relay_filled": PaymentStatus.RELAY_FILLED,
    "settled": PaymentStatus.SETTLED,
    "requested_slow_fill": PaymentStatus.REQUESTED_SLOW_FILL,
    "requestedslowfill": PaymentStatus.REQUESTED_SLOW_FILL,
    "requestedsowfill": PaymentStatus.REQUESTED_SLOW_FILL,
    "slow_fill_requested": PaymentStatus.REQUESTED_SLOW_FILL,
    "slow_fill_ready": PaymentStatus.SLOW_FILL_READY,
    "slowfilled": PaymentStatus.SLOW_FILL_READY,
    "slow_fill_complete": PaymentStatus.SLOW_FILL_READY,
    "failed": PaymentStatus.FAILED,
}


def map_deposit_status(status: Optional[str]) -> PaymentStatus:
    """Map an indexer status string onto a lifecycle stage; unknown means still relaying."""

    if not status:
        return PaymentStatus.RELAY_PENDING
    return _DEPOSIT_STATUS_MAP.get(status.lower(), PaymentStatus.RELAY_PENDING)


def _overlay(base: PaymentTimelineEntry, update: PaymentTimelineEntry) -> PaymentTimelineEntry:
    return PaymentTimelineEntry(
        stage=base.stage,
        label=update.label or base.label,
        timestamp=update.timestamp if update.timestamp is not None else base.timestamp,
        tx_hash=update.tx_hash if update.tx_hash is not None else base.tx_hash,
        notes=update.notes if update.notes is not None else base.notes,
    )


def append_timeline_entries(
    timeline: Optional[Sequence[PaymentTimelineEntry]],
    entries: Iterable[PaymentTimelineEntry],
) -> List[PaymentTimelineEntry]:
    """Upsert by stage: a repeated stage overwrites fields instead of adding a row."""

    result = list(timeline or [])
    for entry in entries:
        for index, existing in enumerate(result):
            if existing.stage == entry.stage:
                result[index] = _overlay(existing, entry)
                break
        else:
            result.append(entry)
    return sorted(result, key=lambda item: item.timestamp)


def merge_timelines(
    left: Optional[Sequence[PaymentTimelineEntry]],
    right: Optional[Sequence[PaymentTimelineEntry]],
) -> List[PaymentTimelineEntry]:
    """Per stage, the entry with the greater (or equal, later-seen) timestamp wins."""

    by_stage: Dict[PaymentStatus, PaymentTimelineEntry] = {}
    for entries in (left or [], right or []):
        for entry in entries:
            current = by_stage.get(entry.stage)
            if current is None:
                by_stage[entry.stage] = entry
            elif entry.timestamp >= current.timestamp:
                by_stage[entry.stage] = _overlay(current, entry)
    return sorted(by_stage.values(), key=lambda item: item.timestamp)


def entry_key(entry: PaymentHistoryEntry) -> str:
    """Merge identity: deposit tx hash, then (origin, destination, deposit id), then local id."""

    if entry.deposit_tx_hash:
        return f"tx:{entry.deposit_tx_hash.lower()}"
    if entry.deposit_id is not None:
        return f"deposit:{entry.origin_chain_id}:{entry.destination_chain_id}:{entry.deposit_id}"
    return f"id:{entry.id}"


def _union(left: Sequence[str], right: Sequence[str]) -> List[str]:
    return list(dict.fromkeys([*left, *right]))


def merge_entry_pair(existing: PaymentHistoryEntry, incoming: PaymentHistoryEntry) -> PaymentHistoryEntry:
    """Fields set on ``incoming`` win; the existing id is kept."""

    changes = {
        item.name: getattr(incoming, item.name)
        for item in dataclasses.fields(incoming)
        if item.name != "id" and getattr(incoming, item.name) is not None
    }
    changes["approval_tx_hashes"] = _union(existing.approval_tx_hashes, incoming.approval_tx_hashes)
    changes["errors"] = _union(existing.errors, incoming.errors)
    changes["metadata"] = {**existing.metadata, **incoming.metadata}
    changes["timeline"] = merge_timelines(existing.timeline, incoming.timeline)
    return dataclasses.replace(existing, **changes)


def merge_entries(
    current: Sequence[PaymentHistoryEntry],
    remote: Sequence[PaymentHistoryEntry],
) -> List[PaymentHistoryEntry]:
    merged: Dict[str, PaymentHistoryEntry] = {}
    for entry in [*current, *remote]:
        key = entry_key(entry)
        existing = merged.get(key)
        merged[key] = entry if existing is None else merge_entry_pair(existing, entry)
    return sorted(merged.values(), key=lambda item: item.created_at, reverse=True)
