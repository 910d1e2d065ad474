# tests/test_users_api.py
from http import HTTPStatus
from uuid import uuid4

from app.services.serializers import availability_from_url_param


def _user_id() -> str:
    return f"user-{uuid4().hex[:8]}"


def _slot(start: str, end: str, recur: str | None = None) -> dict:
    data = {"from": start, "to": end}
    if recur:
        data["recur"] = recur
    return data


def test_put_availability_creates_user_and_merges_overlaps(client):
    user_id = _user_id()
    payload = {
        "name": "Tutor",
        "email": "tutor@example.com",
        "availability": [
            _slot("2024-01-02T09:00:00Z", "2024-01-02T11:00:00Z"),
            _slot("2024-01-02T10:00:00Z", "2024-01-02T12:00:00Z"),
            _slot("2024-01-01T14:00:00Z", "2024-01-01T18:00:00Z", "RRULE:FREQ=WEEKLY"),
        ],
    }

    response = client.put(f"/users/{user_id}/availability", json=payload)
    assert response.status_code == HTTPStatus.OK

    data = response.json()
    assert data["id"] == user_id
    assert data["name"] == "Tutor"
    assert len(data["availability"]) == 2
    first, second = data["availability"]
    assert first["from"] == "2024-01-01T14:00:00Z"
    assert first["recur"] == "RRULE:FREQ=WEEKLY"
    assert (second["from"], second["to"]) == ("2024-01-02T09:00:00Z", "2024-01-02T12:00:00Z")

    decoded = availability_from_url_param(data["url_param"])
    assert len(decoded) == 2


def test_put_availability_replaces_previous_slots(client):
    user_id = _user_id()
    client.put(
        f"/users/{user_id}/availability",
        json={"availability": [_slot("2024-01-02T09:00:00Z", "2024-01-02T11:00:00Z")]},
    )
    response = client.put(
        f"/users/{user_id}/availability",
        json={"availability": [_slot("2024-01-05T09:00:00Z", "2024-01-05T10:00:00Z")]},
    )
    assert response.status_code == HTTPStatus.OK

    data = client.get(f"/users/{user_id}/availability").json()
    assert [slot["from"] for slot in data["availability"]] == ["2024-01-05T09:00:00Z"]


def test_get_availability_of_unknown_user_is_404(client):
    response = client.get(f"/users/{_user_id()}/availability")
    assert response.status_code == HTTPStatus.NOT_FOUND


def test_put_malformed_timeslot_is_400(client):
    user_id = _user_id()
    backwards = client.put(
        f"/users/{user_id}/availability",
        json={"availability": [_slot("2024-01-02T11:00:00Z", "2024-01-02T09:00:00Z")]},
    )
    assert backwards.status_code == HTTPStatus.BAD_REQUEST

    bad_rule = client.put(
        f"/users/{user_id}/availability",
        json={
            "availability": [
                _slot("2024-01-02T09:00:00Z", "2024-01-02T11:00:00Z", "RRULE:FREQ=SOMETIMES")
            ]
        },
    )
    assert bad_rule.status_code == HTTPStatus.BAD_REQUEST


def test_check_availability(client):
    user_id = _user_id()
    client.put(
        f"/users/{user_id}/availability",
        json={
            "availability": [
                _slot("2024-01-02T14:00:00Z", "2024-01-02T18:00:00Z", "RRULE:FREQ=WEEKLY")
            ]
        },
    )

    inside = client.post(
        f"/users/{user_id}/availability/check",
        json={"timeslot": _slot("2024-01-09T15:00:00Z", "2024-01-09T16:00:00Z")},
    )
    assert inside.status_code == HTTPStatus.OK
    assert inside.json() == {"available": True}

    weekly = client.post(
        f"/users/{user_id}/availability/check",
        json={
            "timeslot": _slot("2024-01-02T15:00:00Z", "2024-01-02T16:00:00Z", "RRULE:FREQ=WEEKLY")
        },
    )
    assert weekly.json() == {"available": True}

    outside = client.post(
        f"/users/{user_id}/availability/check",
        json={
            "timeslot": _slot("2024-01-02T15:00:00Z", "2024-01-02T16:00:00Z", "RRULE:FREQ=DAILY")
        },
    )
    assert outside.json() == {"available": False}


def test_check_availability_of_unknown_user_is_404(client):
    response = client.post(
        f"/users/{_user_id()}/availability/check",
        json={"timeslot": _slot("2024-01-09T15:00:00Z", "2024-01-09T16:00:00Z")},
    )
    assert response.status_code == HTTPStatus.NOT_FOUND


def test_put_availability_recomputes_last_for_every_series(client):
    user_id = _user_id()
    claimed = dict(
        _slot("2024-01-03T15:00:00Z", "2024-01-03T16:00:00Z", "RRULE:FREQ=WEEKLY"),
        last="2030-01-01T00:00:00Z",
    )
    response = client.put(
        f"/users/{user_id}/availability",
        json={
            "availability": [
                _slot("2024-01-02T15:00:00Z", "2024-01-02T16:00:00Z", "RRULE:FREQ=WEEKLY;COUNT=3"),
                claimed,
            ]
        },
    )
    assert response.status_code == HTTPStatus.OK

    bounded, unbounded = client.get(f"/users/{user_id}/availability").json()["availability"]
    assert bounded["last"] == "2024-01-16T16:00:00Z"
    assert unbounded["last"] is None
