"""
Integration tests for API endpoints using a SQLite file DB.
"""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from app.models.condition import Condition
from app.services import condition_store


def _user(client, balance=None):
    tag = uuid.uuid4().hex[:10]
    r = client.post("/users", json={"username": f"api_{tag}", "email": f"api_{tag}@example.com"})
    assert r.status_code == 201
    user_id = r.json()["id"]
    if balance:
        r = client.post(f"/users/{user_id}/balance", json={"amount": str(balance)})
        assert r.status_code == 201
    return user_id


def _event(client, creator_id, groups=(), **extra):
    body = {
        "name": f"api_event_{uuid.uuid4().hex[:8]}",
        "event_type": "DONATION",
        "creator_id": creator_id,
        "groups": list(groups),
    }
    body.update(extra)
    return client.post("/events", json=body)


def _join(client, event_id, user_id, amount):
    return client.post(f"/events/{event_id}/participations", json={"user_id": user_id, "deposit": str(amount)})


def _balance(client, user_id):
    return Decimal(client.get(f"/users/{user_id}").json()["balance"])


BANK_1000 = [[{"parameter_name": "bank", "operator": "GREATER_EQUALS", "value": "1000"}]]


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


# ---------------------------------------------------------------------------
# Users and balance
# ---------------------------------------------------------------------------

class TestUsers:
    def test_create_and_get(self, client):
        user_id = _user(client)
        r = client.get(f"/users/{user_id}")
        assert r.status_code == 200
        assert Decimal(r.json()["balance"]) == 0

    def test_duplicate_username(self, client):
        tag = uuid.uuid4().hex[:10]
        body = {"username": f"dup_{tag}", "email": f"dup_{tag}@example.com"}
        assert client.post("/users", json=body).status_code == 201
        r = client.post("/users", json=body)
        assert r.status_code == 409
        assert r.json()["code"] == "DUPLICATE_USER"

    def test_unknown_user(self, client):
        r = client.get("/users/999999")
        assert r.status_code == 404
        assert r.json()["code"] == "USER_NOT_FOUND"

    def test_deposit_and_withdraw(self, client):
        user_id = _user(client, balance=100)
        r = client.post(f"/users/{user_id}/balance", json={"amount": "30", "operation": "withdraw"})
        assert r.status_code == 201
        assert r.json()["tx_type"] == "BALANCE_OUTCOME"
        assert _balance(client, user_id) == Decimal("70")

        r = client.get(f"/users/{user_id}/transactions")
        assert r.json()["total"] == 2

    def test_overdraw_is_rejected(self, client):
        user_id = _user(client, balance=10)
        r = client.post(f"/users/{user_id}/balance", json={"amount": "11", "operation": "withdraw"})
        assert r.status_code == 409
        assert r.json()["code"] == "INSUFFICIENT_BALANCE"
        assert _balance(client, user_id) == Decimal("10")

    def test_non_positive_amount(self, client):
        user_id = _user(client)
        r = client.post(f"/users/{user_id}/balance", json={"amount": "0"})
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"

    def test_sub_cent_amount_is_rejected(self, client):
        user_id = _user(client, balance=10)
        r = client.post(f"/users/{user_id}/balance", json={"amount": "1.005"})
        assert r.status_code == 422
        assert r.json()["code"] == "MALFORMED_VALUE"
        assert _balance(client, user_id) == Decimal("10")

    def test_activity_streak(self, client):
        user_id = _user(client)
        assert client.post(f"/users/{user_id}/activity").json()["streak"] == 0
        _event(client, user_id)
        assert client.post(f"/users/{user_id}/activity").json()["streak"] == 1


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class TestEvents:
    def test_donation_completes_and_pays_creator(self, client):
        creator = _user(client)
        a, b = _user(client, balance=500), _user(client, balance=500)
        r = _event(client, creator, BANK_1000)
        assert r.status_code == 201
        event_id = r.json()["event"]["id"]
        assert r.json()["event"]["status"] == "IN_PROGRESS"

        r = _join(client, event_id, a, 500)
        assert r.status_code == 201
        assert r.json()["event_status"] == "IN_PROGRESS"

        r = _join(client, event_id, b, 500)
        assert r.json()["event_status"] == "COMPLETED"
        assert all(check["ok"] for check in r.json()["checks"])

        assert _balance(client, creator) == Decimal("960")
        assert _balance(client, a) == Decimal("0")
        event = client.get(f"/events/{event_id}").json()
        assert Decimal(event["bank_amount"]) == Decimal("1000")
        assert event["groups"][0]["is_completed"] is True
        assert event["completed_at"] is not None

        r = client.get("/notifications", params={"kind": "event_completed", "user_id": creator})
        assert r.json()["total"] == 1
        assert r.json()["items"][0]["subject_id"] == event_id

    def test_condition_values_are_sanitised(self, client):
        creator = _user(client)
        groups = [[{"parameter_name": "bank", "operator": ">=", "value": "1,000$"}]]
        r = _event(client, creator, groups)
        assert r.status_code == 201
        condition = r.json()["event"]["groups"][0]["conditions"][0]
        assert condition["value"] == "1000"
        assert condition["operator"] == "GREATER_EQUALS"

    def test_past_time_completes_on_create(self, client):
        creator = _user(client)
        past = (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat()
        r = _event(client, creator, [[{"parameter_name": "time", "operator": ">=", "value": past}]])
        assert r.status_code == 201
        assert client.get(f"/events/{r.json()['event']['id']}").json()["status"] == "COMPLETED"

    def test_conditions_status(self, client):
        creator = _user(client, balance=300)
        groups = [[
            {"parameter_name": "bank", "operator": ">=", "value": "300"},
            {"parameter_name": "people", "operator": ">=", "value": "5"},
        ]]
        event_id = _event(client, creator, groups).json()["event"]["id"]
        _join(client, event_id, creator, 300)

        r = client.get(f"/events/{event_id}/conditions")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "IN_PROGRESS"
        assert Decimal(body["bank"]) == Decimal("300")
        assert body["people"] == 1
        [group] = body["groups"]
        assert group["completion_percentage"] == 50
        values = {c["parameter_name"]: Decimal(c["current_value"]) for c in group["conditions"]}
        assert values == {"bank": Decimal("300"), "people": Decimal("1")}

    def test_start_pending_event(self, client):
        creator = _user(client)
        event_id = _event(client, creator, start=False).json()["event"]["id"]
        assert client.get(f"/events/{event_id}").json()["status"] == "PENDING"

        r = client.post(f"/events/{event_id}/start")
        assert r.status_code == 200
        assert r.json()["event"]["status"] == "IN_PROGRESS"

        r = client.post(f"/events/{event_id}/start")
        assert r.status_code == 409
        assert r.json()["code"] == "INVALID_STATUS_TRANSITION"

    def test_cancel(self, client):
        creator = _user(client, balance=10)
        event_id = _event(client, creator).json()["event"]["id"]

        assert client.post(f"/events/{event_id}/cancel").json()["status"] == "CANCELLED"
        assert client.post(f"/events/{event_id}/cancel").status_code == 409

        r = _join(client, event_id, creator, 5)
        assert r.status_code == 409
        assert r.json()["code"] == "EVENT_NOT_ACTIVE"

    def test_deposit_above_balance(self, client):
        creator = _user(client, balance=10)
        event_id = _event(client, creator).json()["event"]["id"]
        r = _join(client, event_id, creator, 50)
        assert r.status_code == 409
        assert r.json()["code"] == "INSUFFICIENT_BALANCE"
        assert client.get(f"/events/{event_id}/participations").json()["total"] == 0

    def test_failing_check_keeps_the_deposit(self, client, db):
        creator, user = _user(client), _user(client, balance=20)
        event_id = _event(client, creator, BANK_1000).json()["event"]["id"]
        group_ids = [g.id for g in condition_store.event_groups(db, event_id)]
        db.query(Condition).filter(Condition.group_id.in_(group_ids)).update(
            {Condition.value: "lots"}, synchronize_session=False,
        )
        db.commit()

        r = _join(client, event_id, user, 5)
        assert r.status_code == 201
        bank = next(check for check in r.json()["checks"] if check["check"] == "bank")
        assert bank["ok"] is False
        assert r.json()["event_status"] == "IN_PROGRESS"
        assert client.get(f"/events/{event_id}/participations").json()["total"] == 1
        assert _balance(client, user) == Decimal("15")
        client.post(f"/events/{event_id}/cancel")

    def test_sub_cent_deposit_is_rejected(self, client):
        creator = _user(client, balance=10)
        event_id = _event(client, creator).json()["event"]["id"]
        r = _join(client, event_id, creator, "2.125")
        assert r.status_code == 422
        assert r.json()["code"] == "MALFORMED_VALUE"
        assert client.get(f"/events/{event_id}/participations").json()["total"] == 0

    def test_unknown_operator(self, client):
        creator = _user(client)
        r = _event(client, creator, [[{"parameter_name": "bank", "operator": "BETWEEN", "value": "1"}]])
        assert r.status_code == 422
        assert r.json()["code"] == "UNKNOWN_OPERATOR"

    def test_unknown_parameter(self, client):
        creator = _user(client)
        r = _event(client, creator, [[{"parameter_name": "weather", "operator": ">=", "value": "1"}]])
        assert r.status_code == 422
        assert r.json()["code"] == "UNKNOWN_PARAMETER"

    def test_unknown_event(self, client):
        r = client.get("/events/999999")
        assert r.status_code == 404
        assert r.json()["code"] == "EVENT_NOT_FOUND"

    def test_list_by_creator(self, client):
        creator = _user(client)
        _event(client, creator)
        _event(client, creator, start=False)
        r = client.get("/events", params={"creator_id": creator})
        assert r.json()["total"] == 2
        r = client.get("/events", params={"creator_id": creator, "status": "PENDING"})
        assert r.json()["total"] == 1


class TestTimeSweepEndpoint:
    def test_check_time(self, client):
        r = client.post("/conditions/check-time")
        assert r.status_code == 200
        body = r.json()
        assert body["check"] == "time"
        assert isinstance(body["transitions"], dict)


# ---------------------------------------------------------------------------
# Achievements and notifications
# ---------------------------------------------------------------------------

class TestAchievements:
    def test_catalogue(self, client):
        r = client.get("/achievements")
        assert r.status_code == 200
        names = {a["name"] for a in r.json()}
        assert {"FIRST_STEPS_1", "BANKER_1", "STREAK_7"} <= names

    def test_new_user_has_locked_progress(self, client):
        user_id = _user(client)
        body = client.get(f"/users/{user_id}/achievements").json()
        first = next(a for a in body["items"] if a["name"] == "FIRST_STEPS_1")
        assert first["unlocked"] is False
        assert first["user_achievement_id"] is not None
        assert all(Decimal(c["current_value"]) == 0 for c in first["criteria"])

    def test_first_steps_unlocks(self, client):
        user_id = _user(client, balance=10)
        _event(client, user_id)

        body = client.get(f"/users/{user_id}/achievements").json()
        by_name = {a["name"]: a for a in body["items"]}
        assert by_name["FIRST_STEPS_1"]["unlocked"] is True
        assert by_name["FIRST_STEPS_1"]["unlocked_at"] is not None
        assert by_name["BANKER_1"]["unlocked"] is False

        r = client.get("/notifications", params={"kind": "achievement_unlocked", "user_id": user_id})
        assert r.json()["total"] >= 1

    def test_initialize_is_idempotent(self, client):
        user_id = _user(client)
        first = client.post(f"/users/{user_id}/achievements/initialize").json()
        second = client.post(f"/users/{user_id}/achievements/initialize").json()
        assert first["total"] == second["total"]
        assert [a["user_achievement_id"] for a in first["items"]] == [
            a["user_achievement_id"] for a in second["items"]
        ]

    def test_initialize_unknown_user(self, client):
        r = client.post("/users/999999/achievements/initialize")
        assert r.status_code == 404


class TestNotifications:
    def test_balance_updates_are_queued(self, client):
        user_id = _user(client, balance=25)
        r = client.get("/notifications", params={"kind": "balance_updated", "user_id": user_id})
        assert r.status_code == 200
        assert r.json()["total"] == 1
        assert r.json()["items"][0]["subject_id"] == user_id

    def test_unknown_kind(self, client):
        r = client.get("/notifications", params={"kind": "carrier_pigeon"})
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"
