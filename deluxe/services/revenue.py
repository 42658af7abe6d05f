"""Fixed-percentage revenue splits.

Every share is floored independently, so a split can leave up to one cent per
share uncredited. ``Split.remainder_cents`` exposes that drift instead of
silently assigning it to either party.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from deluxe.core.settings import S

BPS = 10_000

# referral commission per upline level, in basis points of the gross amount
COMMISSION_RATES_BPS: Tuple[int, ...] = (1000, 500, 300, 200)
MAX_COMMISSION_LEVELS = len(COMMISSION_RATES_BPS)


@dataclass(frozen=True)
class Split:
    gross_cents: int
    creator_cents: int
    platform_cents: int

    @property
    def remainder_cents(self) -> int:
        return self.gross_cents - self.creator_cents - self.platform_cents


def share_of(gross_cents: int, bps: int) -> int:
    if gross_cents < 0:
        raise ValueError("gross amount must not be negative")
    return (int(gross_cents) * int(bps)) // BPS


def split_amount(gross_cents: int, creator_bps: int) -> Split:
    if not 0 <= creator_bps <= BPS:
        raise ValueError("creator share must be between 0 and 100%")
    return Split(
        gross_cents=int(gross_cents),
        creator_cents=share_of(gross_cents, creator_bps),
        platform_cents=share_of(gross_cents, BPS - creator_bps),
    )


def subscription_split(gross_cents: int) -> Split:
    return split_amount(gross_cents, S.subscription_creator_bps)


def service_split(gross_cents: int) -> Split:
    return split_amount(gross_cents, S.service_creator_bps)


def tip_split(gross_cents: int) -> Split:
    return split_amount(gross_cents, S.tip_creator_bps)


def commission_cents(gross_cents: int, level: int) -> int:
    """Commission owed to the ancestor ``level`` hops up (1-based)."""
    if not 1 <= level <= MAX_COMMISSION_LEVELS:
        return 0
    return share_of(gross_cents, COMMISSION_RATES_BPS[level - 1])


def brl(amount_cents: int) -> str:
    return f"R${amount_cents / 100:.2f}"
