from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from deluxe.auth.deps import require_user
from deluxe.core.errors import http_errors
from deluxe.models import JoinNetworkReq
from deluxe.services.financials import get_creator_financials, summarize
from deluxe.services.ledger import list_transactions
from deluxe.services.referrals import (
    add_creator_to_network_with_code,
    create_referral_code,
    get_creator_downline,
    get_creator_network_record,
    get_creator_network_tree,
    get_creator_referral_code,
    validate_referral_code,
)
from deluxe.services.users import get_user_profile

router = APIRouter(tags=["creator"])


def require_creator(ctx=Depends(require_user)) -> Dict[str, Any]:
    profile = get_user_profile(ctx["user_id"])
    if not profile or not profile.get("is_creator"):
        raise HTTPException(403, "Creator account required")
    return {**ctx, "profile": profile}


@router.get("/api/creator/financials")
async def creator_financials(ctx=Depends(require_creator)) -> Dict[str, Any]:
    creator_id = ctx["user_id"]
    return summarize(creator_id, get_creator_financials(creator_id))


@router.get("/api/creator/transactions")
async def creator_transactions(limit: int = Query(50, ge=1, le=200), ctx=Depends(require_creator)) -> Dict[str, Any]:
    items = list_transactions(ctx["user_id"], limit=limit)
    return {
        "transactions": [
            {
                "id": it["entry_id"],
                "type": it["type"],
                "amountCents": int(it["amount_cents"]),
                "description": it.get("description", ""),
                "fromUserId": it.get("from_user_id"),
                "status": it.get("status"),
                "createdAt": it.get("ts"),
            }
            for it in items
        ]
    }


@router.get("/api/creator/network")
async def creator_network(ctx=Depends(require_creator)) -> Dict[str, Any]:
    creator_id = ctx["user_id"]
    record = get_creator_network_record(creator_id)
    return {
        "referralCode": get_creator_referral_code(creator_id),
        "referredBy": record.get("referred_by") if record else None,
        "level": int(record.get("level", 0) or 0) if record else 0,
        "directReferrals": len(get_creator_downline(creator_id)),
        "tree": get_creator_network_tree(creator_id),
    }


@router.post("/api/creator/referral-code")
async def creator_referral_code(ctx=Depends(require_creator)) -> Dict[str, Any]:
    creator_id = ctx["user_id"]
    code = get_creator_referral_code(creator_id)
    if not code:
        code = create_referral_code(creator_id, ctx["profile"].get("username", ""))
    return {"referralCode": code}


@router.get("/api/referrals/{code}")
async def referral_code_info(code: str) -> Dict[str, Any]:
    found = validate_referral_code(code)
    if not found:
        raise HTTPException(404, "Código de indicação inválido")
    return {"valid": True, "code": found["code"], "referrerUsername": found.get("creator_username")}


@router.post("/api/referrals/join")
async def join_network(body: JoinNetworkReq, ctx=Depends(require_creator)) -> Dict[str, Any]:
    with http_errors():
        record = add_creator_to_network_with_code(ctx["user_id"], ctx["profile"].get("username", ""), body.referral_code)
    return {"joined": True, "referredBy": record["referred_by"], "level": record["level"]}


@router.get("/convite/{code}")
async def invite_redirect(code: str) -> RedirectResponse:
    found = validate_referral_code(code)
    if not found:
        return RedirectResponse("/creator-signup", status_code=307)
    return RedirectResponse(f"/creator-signup?referralCode={found['code']}", status_code=307)
