from __future__ import annotations

import logging
import re
import secrets
import string
from typing import Any, Dict, List, Optional

from deluxe.core.errors import ReferralCodeError
from deluxe.core.tables import T
from deluxe.core.time import now_ts
from deluxe.services.ddb import ddb_get, ddb_put, ddb_put_new, ddb_query_pk, ddb_set_fields
from deluxe.services.ledger import creator_pk

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits


def refcode_pk(code: str) -> str:
    return f"REFCODE#{code.upper()}"


def generate_referral_code(creator_username: str) -> str:
    base = re.sub(r"[^A-Z0-9]", "", creator_username.upper())[:8]
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(4))
    return f"{base}{suffix}"


def create_referral_code(creator_id: str, creator_username: str) -> str:
    for _ in range(5):
        code = generate_referral_code(creator_username)
        item = {
            "pk": refcode_pk(code),
            "sk": "CODE",
            "code": code,
            "creator_id": creator_id,
            "creator_username": creator_username,
            "is_active": True,
            "created_at": now_ts(),
        }
        if ddb_put_new(T.finance, item):
            ddb_set_fields(T.finance, creator_pk(creator_id), "REFCODE", {"code": code})
            return code
    raise RuntimeError("could not allocate a unique referral code")


def get_creator_referral_code(creator_id: str) -> Optional[str]:
    pointer = ddb_get(T.finance, creator_pk(creator_id), "REFCODE")
    if not pointer:
        return None
    code = validate_referral_code(pointer["code"])
    return code["code"] if code else None


def validate_referral_code(code: str) -> Optional[Dict[str, Any]]:
    """Return the referral code record, or None if it is unknown or inactive."""
    if not code:
        return None
    item = ddb_get(T.finance, refcode_pk(code.strip()), "CODE")
    if not item or not item.get("is_active"):
        return None
    return item


def deactivate_referral_code(code: str) -> None:
    if not ddb_get(T.finance, refcode_pk(code), "CODE"):
        raise ReferralCodeError("Código de indicação não encontrado")
    ddb_set_fields(T.finance, refcode_pk(code), "CODE", {"is_active": False})


def get_creator_network_record(creator_id: str) -> Optional[Dict[str, Any]]:
    return ddb_get(T.finance, creator_pk(creator_id), "NETWORK")


def add_creator_to_network_with_code(creator_id: str, creator_username: str, referral_code: str) -> Dict[str, Any]:
    code = validate_referral_code(referral_code)
    if not code:
        raise ReferralCodeError("Código de indicação inválido ou inativo")
    referrer_id = code["creator_id"]
    if referrer_id == creator_id:
        raise ReferralCodeError("Não é possível usar o próprio código de indicação")
    if get_creator_network_record(creator_id):
        raise ReferralCodeError("Criadora já faz parte de uma rede")

    referrer = get_creator_network_record(referrer_id)
    level = int(referrer.get("level", 0) or 0) + 1 if referrer else 1

    ts = now_ts()
    item = {
        "pk": creator_pk(creator_id),
        "sk": "NETWORK",
        "creator_id": creator_id,
        "creator_username": creator_username,
        "referred_by": code["creator_username"],
        "referred_by_id": referrer_id,
        "referral_code": code["code"],
        "level": level,
        "joined_at": ts,
        "is_active": True,
    }
    ddb_put(T.finance, item)
    ddb_put(T.finance, {
        "pk": creator_pk(referrer_id),
        "sk": f"DOWNLINE#{creator_id}",
        "creator_id": creator_id,
        "creator_username": creator_username,
        "level": level,
        "joined_at": ts,
    })
    logger.info("Creator %s joined the network of %s at level %s", creator_id, referrer_id, level)
    return item


def get_creator_downline(creator_id: str) -> List[Dict[str, Any]]:
    return ddb_query_pk(T.finance, creator_pk(creator_id), prefix="DOWNLINE#")


def get_creator_network_tree(creator_id: str, max_depth: int = 3) -> List[Dict[str, Any]]:
    def walk(parent_id: str, depth: int) -> List[Dict[str, Any]]:
        if depth > max_depth:
            return []
        nodes = []
        for child in get_creator_downline(parent_id):
            nodes.append({
                "creator_id": child["creator_id"],
                "creator_username": child.get("creator_username"),
                "joined_at": child.get("joined_at"),
                "depth": depth,
                "children": walk(child["creator_id"], depth + 1),
            })
        return nodes

    return walk(creator_id, 1)
