from __future__ import annotations

from deluxe.services.commissions import distribute_commissions
from deluxe.services.financials import get_creator_financials
from deluxe.services.ledger import list_transactions
from deluxe.services.referrals import add_creator_to_network_with_code, create_referral_code


def build_chain(length):
    """c0 <- c1 <- ... <- c{length}; returns the ids, root first."""
    ids = [f"c{i}" for i in range(length + 1)]
    for parent, child in zip(ids, ids[1:]):
        code = create_referral_code(parent, parent)
        add_creator_to_network_with_code(child, child, code)
    return ids


def test_depth_five_chain_pays_only_four_levels(tables):
    ids = build_chain(5)
    seller = ids[-1]

    total = distribute_commissions(seller, 10_000, "fan", source_id="in_1", source_ts=10)

    assert total == 1000 + 500 + 300 + 200
    paid = {cid: get_creator_financials(cid)["network_earnings"] for cid in ids[1:5]}
    assert paid == {"c4": 1000, "c3": 500, "c2": 300, "c1": 200}
    assert get_creator_financials("c0")["network_earnings"] == 0
    assert list_transactions("c0") == []
    assert list_transactions("c4")[0]["type"] == "commission_level_1"
    assert list_transactions("c1")[0]["type"] == "commission_level_4"


def test_creator_without_referrer_pays_nothing(tables):
    assert distribute_commissions("loner", 10_000, "fan", source_id="in_1") == 0


def test_chain_stops_at_first_missing_link(tables):
    build_chain(2)
    assert distribute_commissions("c2", 10_000, "fan", source_id="in_1") == 1000 + 500


def test_retry_does_not_pay_twice(tables):
    build_chain(2)
    first = distribute_commissions("c2", 10_000, "fan", source_id="in_1")
    second = distribute_commissions("c2", 10_000, "fan", source_id="in_1")
    assert first == second == 1500
    assert get_creator_financials("c1")["network_earnings"] == 1000
    assert get_creator_financials("c0")["network_earnings"] == 500
    assert len(list_transactions("c1")) == 1


def test_commission_entry_names_the_selling_creator(tables):
    build_chain(1)
    distribute_commissions("c1", 5000, "fan", source_id="in_9")
    entry = list_transactions("c0")[0]
    assert entry["amount_cents"] == 500
    assert entry["meta"]["related_creator_id"] == "c1"
    assert entry["from_user_id"] == "fan"
