"""
Event payout — what a completed event pays and to whom.

Split
-----
  payout     = floor(bank * rate[event_type])   (whole currency units)
  commission = bank - payout

  DONATION     0.96  -> recipient
  FUNDRAISING  0.98  -> recipient
  JACKPOT      0.90  -> winner of a weighted lottery over participations

Jackpot tickets per participation
---------------------------------
  base    = max(MIN_BASE_TICKETS, floor(bank * RANDOMNESS_COEFFICIENT))
  deposit = max(1, floor(deposit))

The base share keeps small depositors in the draw; the deposit share
weights it by stake. The random source is injected.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.event import Event, EventType
from app.models.participation import Participation
from app.models.transaction import TransactionType
from app.services import condition_store
from app.services.users import apply_transaction

logger = logging.getLogger(__name__)


@dataclass
class PayoutResult:
    event_id: int
    bank: Decimal
    rate: Decimal
    payout: Decimal
    commission: Decimal
    recipient_id: Optional[int]
    transaction_id: Optional[int] = None


def payout_rate(event_type) -> Decimal:
    rates = {
        EventType.DONATION: settings.PAYOUT_DONATION,
        EventType.FUNDRAISING: settings.PAYOUT_FUNDRAISING,
        EventType.JACKPOT: settings.PAYOUT_JACKPOT,
    }
    return rates[EventType(event_type)]


def _floor(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_FLOOR)


def compute_split(bank: Decimal, rate: Decimal) -> tuple[Decimal, Decimal]:
    """Return (payout, commission)."""
    if bank <= 0:
        return Decimal("0"), Decimal("0")
    payout = _floor(bank * rate)
    return payout, bank - payout


def jackpot_tickets(
    deposits: Sequence[tuple[int, Decimal]],
    bank: Decimal,
) -> list[tuple[int, int]]:
    """(user_id, tickets) per participation, in input order."""
    base = max(
        settings.JACKPOT_MINIMUM_BASE_TICKETS,
        int(_floor(bank * settings.JACKPOT_RANDOMNESS_COEFFICIENT)),
    )
    return [(user_id, base + max(1, int(_floor(deposit)))) for user_id, deposit in deposits]


def draw_winner(tickets: Sequence[tuple[int, int]], rng: random.Random) -> Optional[int]:
    total = sum(count for _, count in tickets)
    if total <= 0:
        return None
    pick = rng.randrange(total)
    for user_id, count in tickets:
        if pick < count:
            return user_id
        pick -= count
    return None


def settle_event_payout(
    db: Session,
    event: Event,
    rng: Optional[random.Random] = None,
) -> PayoutResult:
    """Pay out a completed event. The caller commits."""
    bank = condition_store.bank_total(db, event.id)
    rate = payout_rate(event.event_type)
    payout, commission = compute_split(bank, rate)

    if EventType(event.event_type) is EventType.JACKPOT:
        deposits = [
            (user_id, Decimal(str(deposit)))
            for user_id, deposit in (
                db.query(Participation.user_id, Participation.deposit)
                .filter(Participation.event_id == event.id)
                .order_by(Participation.id)
                .all()
            )
        ]
        winner_id = draw_winner(jackpot_tickets(deposits, bank), rng or random.Random())
        if winner_id is not None:
            event.winner_id = winner_id
            event.recipient_id = winner_id
            logger.info("Event %s jackpot won by user %s", event.id, winner_id)

    result = PayoutResult(
        event_id=event.id,
        bank=bank,
        rate=rate,
        payout=payout,
        commission=commission,
        recipient_id=event.recipient_id,
    )
    if payout <= 0 or event.recipient_id is None:
        logger.info("Event %s settled without payout (bank %s)", event.id, bank)
        result.payout = Decimal("0")
        return result

    tx = apply_transaction(
        db,
        event.recipient_id,
        payout,
        TransactionType.EVENT_INCOME,
        event_id=event.id,
        description=f"Payout for event {event.id}",
    )
    result.transaction_id = tx.id
    logger.info(
        "Event %s paid %s to user %s (commission %s)",
        event.id, payout, event.recipient_id, commission,
    )
    return result
