"""
Tests for payout arithmetic and the jackpot draw.
"""
from decimal import Decimal

import pytest

from app.models.transaction import Transaction, TransactionType
from app.services.payouts import (
    compute_split,
    draw_winner,
    jackpot_tickets,
    payout_rate,
    settle_event_payout,
)


class StubRng:
    def __init__(self, value):
        self.value = value
        self.calls = []

    def randrange(self, n):
        self.calls.append(n)
        return self.value


class TestSplit:
    @pytest.mark.parametrize("bank,rate,payout,commission", [
        ("1000", "0.96", "960", "40"),
        ("999.99", "0.98", "979", "20.99"),
        ("10", "0.90", "9", "1"),
        ("0.50", "0.96", "0", "0.50"),
    ])
    def test_floor_to_whole_units(self, bank, rate, payout, commission):
        assert compute_split(Decimal(bank), Decimal(rate)) == (Decimal(payout), Decimal(commission))

    def test_empty_bank(self):
        assert compute_split(Decimal("0"), Decimal("0.96")) == (Decimal("0"), Decimal("0"))

    def test_rates(self):
        assert payout_rate("DONATION") == Decimal("0.96")
        assert payout_rate("FUNDRAISING") == Decimal("0.98")
        assert payout_rate("JACKPOT") == Decimal("0.90")


class TestJackpot:
    def test_tickets_are_base_plus_deposit(self):
        tickets = jackpot_tickets([(1, Decimal("10")), (2, Decimal("0.5"))], Decimal("100"))
        assert tickets == [(1, 30), (2, 21)]

    def test_minimum_base(self):
        assert jackpot_tickets([(7, Decimal("3"))], Decimal("10")) == [(7, 8)]

    def test_draw_walks_ticket_ranges(self):
        tickets = [(1, 30), (2, 21)]
        assert draw_winner(tickets, StubRng(0)) == 1
        assert draw_winner(tickets, StubRng(29)) == 1
        assert draw_winner(tickets, StubRng(30)) == 2
        rng = StubRng(50)
        assert draw_winner(tickets, rng) == 2
        assert rng.calls == [51]

    def test_no_tickets(self):
        assert draw_winner([], StubRng(0)) is None


class TestSettle:
    def test_empty_event_pays_nothing(self, db, make_user, make_event):
        creator = make_user()
        event = make_event(creator)

        result = settle_event_payout(db, event)
        db.commit()

        assert result.payout == Decimal("0")
        assert result.transaction_id is None
        assert db.query(Transaction).filter_by(event_id=event.id, tx_type=TransactionType.EVENT_INCOME).count() == 0

    def test_fundraising_pays_explicit_recipient(self, db, make_user, make_event, deposit):
        creator, recipient, donor = make_user(), make_user(), make_user(balance=500)
        event = make_event(creator, event_type="FUNDRAISING", recipient_id=recipient.id)
        deposit(event, donor, 500)

        result = settle_event_payout(db, event)
        db.commit()

        assert (result.payout, result.commission) == (Decimal("490"), Decimal("10"))
        assert result.recipient_id == recipient.id
        db.refresh(recipient)
        assert recipient.balance == Decimal("490")
