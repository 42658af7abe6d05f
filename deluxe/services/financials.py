from __future__ import annotations

import logging
from typing import Any, Dict

from deluxe.core.tables import T
from deluxe.core.time import now_ts
from deluxe.services.ddb import ddb_get, ddb_increment, ddb_put_new, increment_update
from deluxe.services.ledger import append_entry, creator_pk

logger = logging.getLogger(__name__)

FINANCIAL_FIELDS = [
    "available_balance",
    "total_earnings",
    "monthly_revenue",
    "direct_earnings",
    "network_earnings",
    "total_withdrawals",
]


def _default_financials(creator_id: str) -> Dict[str, Any]:
    return {
        "pk": creator_pk(creator_id),
        "sk": "FINANCIALS",
        "creator_id": creator_id,
        **{k: 0 for k in FINANCIAL_FIELDS},
        "updated_at": now_ts(),
    }


def get_creator_financials(creator_id: str) -> Dict[str, Any]:
    item = ddb_get(T.finance, creator_pk(creator_id), "FINANCIALS")
    if item:
        # rows first created by an increment only carry the fields touched so far
        return {**{k: 0 for k in FINANCIAL_FIELDS}, **item}
    defaults = _default_financials(creator_id)
    # a concurrent first write wins; re-read whatever landed
    if not ddb_put_new(T.finance, defaults):
        return ddb_get(T.finance, creator_pk(creator_id), "FINANCIALS") or defaults
    return defaults


def apply_financials_delta(creator_id: str, delta: Dict[str, int]) -> None:
    unknown = set(delta) - set(FINANCIAL_FIELDS)
    if unknown:
        raise ValueError(f"unknown financial fields: {sorted(unknown)}")
    ddb_increment(T.finance, creator_pk(creator_id), "FINANCIALS", delta)


def credit_delta(amount_cents: int, *, monthly: bool = True, network: bool = False) -> Dict[str, int]:
    """Fields a credit moves.

    Direct earnings (subscriptions, services, tips) land in ``direct_earnings``;
    referral commissions land in ``network_earnings``. Tips do not count
    towards ``monthly_revenue``.
    """
    delta = {
        "available_balance": amount_cents,
        "total_earnings": amount_cents,
        "network_earnings" if network else "direct_earnings": amount_cents,
    }
    if monthly and not network:
        delta["monthly_revenue"] = amount_cents
    return delta


def credit_creator(
    creator_id: str,
    amount_cents: int,
    *,
    monthly: bool = True,
    network: bool = False,
) -> None:
    if amount_cents <= 0:
        return
    apply_financials_delta(creator_id, credit_delta(amount_cents, monthly=monthly, network=network))
    logger.debug("Credited %s cents to %s", amount_cents, creator_id)


def summarize(creator_id: str, item: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {k: int(item.get(k, 0) or 0) for k in FINANCIAL_FIELDS}
    out["creator_id"] = creator_id
    out["updated_at"] = item.get("updated_at")
    return out


def append_and_credit(item: Dict[str, Any], *, monthly: bool = True, network: bool = False) -> bool:
    """Append a ledger entry and credit its amount to the same creator atomically.

    Returns False when the entry was already recorded; the balance is then
    left alone because it moved together with that earlier write.
    """
    amount_cents = int(item["amount_cents"])
    updates = []
    if amount_cents > 0:
        updates.append(
            increment_update(
                T.finance,
                creator_pk(item["creator_id"]),
                "FINANCIALS",
                credit_delta(amount_cents, monthly=monthly, network=network),
            )
        )
    if not append_entry(item, updates):
        return False
    logger.debug("Credited %s cents to %s", amount_cents, item["creator_id"])
    return True
