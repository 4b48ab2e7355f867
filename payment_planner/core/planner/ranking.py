"""
Option deduplication and ordering.
"""

import logging
from typing import Dict, List, Optional, Sequence

from .models import PaymentMode, PaymentOption

logger = logging.getLogger(__name__)


def group_key(option: PaymentOption) -> str:
    """Options for the same token on the same origin chain share a group."""

    if option.route is not None:
        origin = option.route.origin_chain_id
    elif option.swap_route is not None:
        origin = option.swap_route.origin_chain_id
    else:
        origin = option.display_token.chain_id
    return f"{option.display_token.address.lower()}:{origin}"


def filter_by_priority(options: Sequence[PaymentOption]) -> List[PaymentOption]:
    """Keep the lowest-priority-number mode per group, in first-seen group order."""

    selected: Dict[str, PaymentOption] = {}
    for option in options:
        key = group_key(option)
        current = selected.get(key)
        if current is None or option.priority < current.priority:
            selected[key] = option

    if len(selected) < len(options):
        logger.debug("Priority filtering removed %d options", len(options) - len(selected))
    return list(selected.values())


def deliverable_value(option: PaymentOption) -> int:
    if option.mode == PaymentMode.DIRECT:
        return option.balance
    if option.mode == PaymentMode.SWAP:
        return option.swap_quote.expected_output_amount if option.swap_quote else 0
    return option.quote.output_amount if option.quote else 0


def sort_options(options: Sequence[PaymentOption]) -> List[PaymentOption]:
    """Feasible first, direct first among equals, then larger deliverable value."""

    def sort_key(option: PaymentOption):
        return (
            not option.can_meet_target,
            option.mode != PaymentMode.DIRECT,
            -deliverable_value(option),
        )

    return sorted(options, key=sort_key)


class OptionRanker:
    def __init__(self, show_unavailable: bool = False):
        self.show_unavailable = show_unavailable

    def rank(self, options: Sequence[PaymentOption], show_unavailable: Optional[bool] = None) -> List[PaymentOption]:
        keep_unavailable = self.show_unavailable if show_unavailable is None else show_unavailable
        candidates = list(options)
        if not keep_unavailable:
            candidates = [option for option in candidates if option.can_meet_target]
        return sort_options(filter_by_priority(candidates))
