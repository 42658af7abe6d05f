from __future__ import annotations

import pytest
from fastapi import HTTPException

from deluxe.models import JoinNetworkReq, NotificationRef
from deluxe.routers import creator as creator_routes
from deluxe.routers import feed as feed_routes
from deluxe.routers import me as me_routes
from deluxe.services.financials import credit_creator
from deluxe.services.ledger import record_transaction
from deluxe.services.notifications import create_notification_with_expiry
from deluxe.services.posts import create_post, increment_post_tips
from deluxe.services.referrals import create_referral_code
from deluxe.services.subscriptions import add_creator_subscription
from deluxe.services.users import create_user_profile, get_user_profile


@pytest.fixture
def creator_ctx(tables):
    create_user_profile("c1", "ana", is_creator=True)
    return {"user_id": "c1", "profile": get_user_profile("c1")}


def test_creator_guard_rejects_fans(tables):
    create_user_profile("u1", "fan")
    with pytest.raises(HTTPException) as exc:
        creator_routes.require_creator({"user_id": "u1"})
    assert exc.value.status_code == 403


def test_financials_and_transactions(creator_ctx, run):
    credit_creator("c1", 1393)
    record_transaction("c1", "subscription", 1393, "Assinatura gold", "u1", source_id="in_1", source_ts=10)

    fin = run(creator_routes.creator_financials(ctx=creator_ctx))
    assert fin["available_balance"] == 1393
    assert fin["creator_id"] == "c1"

    txs = run(creator_routes.creator_transactions(limit=10, ctx=creator_ctx))["transactions"]
    assert txs == [{
        "id": "in_1#subscription",
        "type": "subscription",
        "amountCents": 1393,
        "description": "Assinatura gold",
        "fromUserId": "u1",
        "status": "completed",
        "createdAt": 10,
    }]


def test_referral_code_is_created_once(creator_ctx, run):
    first = run(creator_routes.creator_referral_code(ctx=creator_ctx))["referralCode"]
    second = run(creator_routes.creator_referral_code(ctx=creator_ctx))["referralCode"]
    assert first == second
    assert first.startswith("ANA")


def test_join_network_and_view_it(creator_ctx, run):
    create_user_profile("c2", "bia", is_creator=True)
    code = create_referral_code("c2", "bia")

    joined = run(creator_routes.join_network(JoinNetworkReq(referralCode=code), ctx=creator_ctx))
    assert joined == {"joined": True, "referredBy": "bia", "level": 1}

    with pytest.raises(HTTPException) as exc:
        run(creator_routes.join_network(JoinNetworkReq(referralCode=code), ctx=creator_ctx))
    assert exc.value.status_code == 400

    network = run(creator_routes.creator_network(ctx={"user_id": "c2"}))
    assert network["directReferrals"] == 1
    assert network["tree"][0]["creator_username"] == "ana"


def test_referral_lookup(creator_ctx, run):
    code = create_referral_code("c1", "ana")
    assert run(creator_routes.referral_code_info(code))["referrerUsername"] == "ana"
    with pytest.raises(HTTPException) as exc:
        run(creator_routes.referral_code_info("NOPE"))
    assert exc.value.status_code == 404


def test_locked_posts_for_low_level_viewer(creator_ctx, run):
    create_user_profile("u1", "fan")
    create_post("c1", "free", required_level="bronze")
    create_post("c1", "vip", required_level="diamante", media_keys=["x.jpg"])

    out = run(feed_routes.creator_posts("ana", limit=20, ctx={"user_id": "u1"}))
    by_level = {p["required_level"]: p for p in out["posts"]}
    assert out["viewerLevel"] == "Bronze"
    assert by_level["bronze"]["locked"] is False
    assert by_level["diamante"]["locked"] is True
    assert "media_keys" not in by_level["diamante"]

    add_creator_subscription("u1", creator_id="c1", tier="diamante", status="active")
    out = run(feed_routes.creator_posts("ana", limit=20, ctx={"user_id": "u1"}))
    assert all(not p["locked"] for p in out["posts"])


def test_post_tip_counters(creator_ctx):
    post = create_post("c1", "hi")
    increment_post_tips(post["post_id"], 500)
    increment_post_tips(post["post_id"], 1000)
    from deluxe.services.posts import get_post

    stored = get_post(post["post_id"])
    assert (stored["tips"], stored["tips_amount_cents"]) == (2, 1500)


def test_me_subscriptions_and_notifications(tables, run):
    create_user_profile("u1", "fan")
    add_creator_subscription("u1", creator_id="c1", tier="prata", status="active", creator_username="ana")
    subs = run(me_routes.my_subscriptions(ctx={"user_id": "u1"}))
    assert subs["level"] == "Prata"
    assert subs["subscriptions"][0]["creatorUsername"] == "ana"

    sk = create_notification_with_expiry("u1", "system", "Oi", "Mensagem")
    listed = run(me_routes.my_notifications(limit=10, ctx={"user_id": "u1"}))
    assert listed["unread"] == 1
    assert listed["notifications"][0]["id"] == sk

    run(me_routes.read_notification(NotificationRef(notificationId=sk), ctx={"user_id": "u1"}))
    assert run(me_routes.my_notifications(limit=10, ctx={"user_id": "u1"}))["unread"] == 0

    run(me_routes.remove_notification(NotificationRef(notificationId=sk), ctx={"user_id": "u1"}))
    with pytest.raises(HTTPException) as exc:
        run(me_routes.remove_notification(NotificationRef(notificationId=sk), ctx={"user_id": "u1"}))
    assert exc.value.status_code == 404
