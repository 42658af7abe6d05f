from __future__ import annotations

import logging
from typing import Optional

from deluxe.services.financials import append_and_credit
from deluxe.services.ledger import commission_type, new_ledger_entry
from deluxe.services.referrals import get_creator_network_record
from deluxe.services.revenue import MAX_COMMISSION_LEVELS, commission_cents

logger = logging.getLogger(__name__)


def distribute_commissions(
    creator_id: str,
    gross_amount_cents: int,
    from_user_id: str,
    *,
    source_id: Optional[str] = None,
    source_ts: Optional[int] = None,
) -> int:
    """Pay referral commissions up the creator's upline.

    Walks at most four ``referred_by_id`` hops, stopping at the first creator
    with no referrer. Each ancestor gets a ``commission_level_N`` ledger entry
    and the same amount added to its balance. Returns the total commission
    owed for this payment, counting entries already recorded by an earlier
    delivery, so the platform profit the caller derives stays the same on retry.
    """
    record = get_creator_network_record(creator_id)
    if not record:
        return 0

    creator_username = record.get("creator_username", "")
    ancestor_id = record.get("referred_by_id")
    visited = {creator_id}
    total = 0

    for level in range(1, MAX_COMMISSION_LEVELS + 1):
        if not ancestor_id or ancestor_id in visited:
            break
        visited.add(ancestor_id)

        amount = commission_cents(gross_amount_cents, level)
        total += amount

        _, item = new_ledger_entry(
            ancestor_id,
            commission_type(level),
            amount,
            f"Comissão Nível {level} de @{creator_username}",
            from_user_id,
            source_id=source_id,
            source_ts=source_ts,
            entry_key=f"{commission_type(level)}#{creator_id}",
            meta={"related_creator_id": creator_id, "related_creator_username": creator_username},
        )
        append_and_credit(item, network=True)

        ancestor = get_creator_network_record(ancestor_id)
        ancestor_id = ancestor.get("referred_by_id") if ancestor else None

    if total:
        logger.info("Paid %s cents in commissions for creator %s", total, creator_id)
    return total
