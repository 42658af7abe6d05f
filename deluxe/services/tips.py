from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from deluxe.core.tables import T
from deluxe.core.time import now_ts
from deluxe.services.ddb import ddb_get, ddb_put, ddb_update, is_conditional_failure
from deluxe.services.revenue import tip_split

logger = logging.getLogger(__name__)

# status -> states it may be reached from; a payment intent can fail and then
# succeed with another card, but a completed tip is final
TIP_TRANSITIONS = {
    "completed": ("pending", "failed"),
    "failed": ("pending",),
}


def tip_pk(payment_intent_id: str) -> str:
    return f"TIP#{payment_intent_id}"


def create_tip(
    *,
    payment_intent_id: str,
    sender_id: str,
    sender_username: str,
    creator_id: str,
    creator_username: str,
    amount_cents: int,
    post_id: str = "",
    message: str = "",
) -> Dict[str, Any]:
    split = tip_split(amount_cents)
    item = {
        "pk": tip_pk(payment_intent_id),
        "sk": "TIP",
        "payment_intent_id": payment_intent_id,
        "post_id": post_id,
        "sender_id": sender_id,
        "sender_username": sender_username,
        "creator_id": creator_id,
        "creator_username": creator_username,
        "amount_cents": int(amount_cents),
        "platform_fee_cents": split.platform_cents,
        "creator_amount_cents": split.creator_cents,
        "message": message,
        "status": "pending",
        "created_at": now_ts(),
    }
    ddb_put(T.finance, item)
    return item


def get_tip_by_payment_intent(payment_intent_id: str) -> Optional[Dict[str, Any]]:
    return ddb_get(T.finance, tip_pk(payment_intent_id), "TIP")


def update_tip_status(payment_intent_id: str, status: str) -> bool:
    """Move a tip to ``status``. Returns False when its current state does not allow it."""
    if status not in TIP_TRANSITIONS:
        raise ValueError(f"unknown tip status: {status}")
    sources = TIP_TRANSITIONS[status]
    values: Dict[str, Any] = {":s": status, ":t": now_ts()}
    placeholders = []
    for i, source in enumerate(sources, start=1):
        values[f":from{i}"] = source
        placeholders.append(f":from{i}")
    try:
        ddb_update(
            T.finance,
            tip_pk(payment_intent_id),
            "TIP",
            "SET #s = :s, updated_at = :t",
            values,
            names={"#s": "status"},
            condition_expression=f"#s IN ({', '.join(placeholders)})",
        )
    except ClientError as exc:
        if not is_conditional_failure(exc):
            raise
        logger.info("Tip %s not moved to %s from its current state", payment_intent_id, status)
        return False
    return True
