from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, List, Optional, Tuple

from deluxe.core.tables import T
from deluxe.core.time import now_ts
from deluxe.metrics import record_ledger_entry
from deluxe.services.ddb import ddb_put_new_with, ddb_query_pk

logger = logging.getLogger(__name__)

PLATFORM_CREATOR_ID = "PLATFORM"


def creator_pk(creator_id: str) -> str:
    return f"CREATOR#{creator_id}"


def ulidish() -> str:
    return f"{int(now_ts() * 1000)}_{secrets.token_hex(8)}"


def ledger_sk(entry_id: str) -> str:
    return f"LEDGER#{entry_id}"


def commission_type(level: int) -> str:
    return f"commission_level_{level}"


def new_ledger_entry(
    creator_id: str,
    entry_type: str,
    amount_cents: int,
    description: str,
    from_user_id: Optional[str] = None,
    *,
    source_id: Optional[str] = None,
    source_ts: Optional[int] = None,
    entry_key: Optional[str] = None,
    status: str = "completed",
    meta: Optional[Dict[str, Any]] = None,
) -> Tuple[str, Dict[str, Any]]:
    """Build an immutable ledger item.

    When ``source_id`` is given the key is derived from the paying object
    (payment intent, invoice, checkout session) and ``entry_key`` only, so a
    second delivery of the same payment produces the same key and the
    conditional append rejects it.
    """
    if source_id:
        ts = int(source_ts or now_ts())
        entry_id = f"{source_id}#{entry_key or entry_type}"
    else:
        ts = now_ts()
        entry_id = ulidish()
    sk = ledger_sk(entry_id)
    item: Dict[str, Any] = {
        "pk": creator_pk(creator_id),
        "sk": sk,
        "entry_id": entry_id,
        "creator_id": creator_id,
        "type": entry_type,
        "amount_cents": int(amount_cents),
        "description": description,
        "status": status,
        "ts": ts,
        "created_at": now_ts(),
    }
    if from_user_id:
        item["from_user_id"] = from_user_id
    if source_id:
        item["source_id"] = source_id
    if meta:
        item["meta"] = meta
    return sk, item


def append_entry(item: Dict[str, Any], updates: Optional[List[Dict[str, Any]]] = None) -> bool:
    """Write ``item`` once. ``updates`` are committed with it or not at all."""
    if not ddb_put_new_with(T.finance, item, updates or []):
        logger.info("Ledger entry %s for %s already recorded", item["entry_id"], item["creator_id"])
        return False
    record_ledger_entry(item["type"], int(item["amount_cents"]))
    return True


def record_transaction(
    creator_id: str,
    entry_type: str,
    amount_cents: int,
    description: str,
    from_user_id: Optional[str] = None,
    **kwargs: Any,
) -> bool:
    _, item = new_ledger_entry(creator_id, entry_type, amount_cents, description, from_user_id, **kwargs)
    return append_entry(item)


def list_transactions(creator_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    limit = max(1, min(int(limit), 200))
    items = ddb_query_pk(T.finance, creator_pk(creator_id), prefix="LEDGER#")
    items.sort(key=lambda it: (int(it.get("ts", 0) or 0), it["sk"]), reverse=True)
    return items[:limit]
