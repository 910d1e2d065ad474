# tests/test_meetings_api.py
from http import HTTPStatus
from uuid import uuid4

import pytest

WEEKLY_TUESDAY_AFTERNOONS = {
    "from": "2024-01-02T14:00:00Z",
    "to": "2024-01-02T18:00:00Z",
    "recur": "RRULE:FREQ=WEEKLY",
}


def _create_user(client, availability=None) -> dict:
    user_id = f"user-{uuid4().hex[:8]}"
    payload = {
        "name": user_id.title(),
        "email": "",
        "availability": [WEEKLY_TUESDAY_AFTERNOONS] if availability is None else availability,
    }
    response = client.put(f"/users/{user_id}/availability", json=payload)
    assert response.status_code == HTTPStatus.OK
    return {"id": user_id, "name": payload["name"], "email": ""}


def _meeting_payload(
    tutor: dict,
    tutee: dict,
    start: str = "2024-01-02T15:00:00Z",
    end: str = "2024-01-02T16:00:00Z",
    recur: str | None = "RRULE:FREQ=WEEKLY",
) -> dict:
    time = {"from": start, "to": end}
    if recur:
        time["recur"] = recur
    return {
        "creator": tutor,
        "match": {
            "org": "default",
            "subjects": ["Algebra"],
            "people": [tutor, tutee],
            "creator": tutor,
        },
        "venue": {"url": "https://meet.example.com/algebra"},
        "time": time,
        "notes": "Weekly algebra",
    }


@pytest.fixture
def weekly_meeting(client) -> dict:
    tutor = _create_user(client)
    tutee = _create_user(client)
    response = client.post("/meetings", json=_meeting_payload(tutor, tutee))
    assert response.status_code == HTTPStatus.CREATED
    return response.json()


def _occurrence_starts(client, meeting_id: str) -> list[str]:
    response = client.get(
        f"/meetings/{meeting_id}/occurrences",
        params={"start": "2024-01-01T00:00:00Z", "end": "2024-02-01T00:00:00Z"},
    )
    assert response.status_code == HTTPStatus.OK
    return [slot["from"] for slot in response.json()]


def test_create_meeting_success(client, weekly_meeting):
    data = weekly_meeting
    assert data["id"]
    assert data["version"] == 1
    assert data["time"]["recur"] == "RRULE:FREQ=WEEKLY"
    assert data["time"]["last"] is None
    assert data["venue"]["id"]

    fetched = client.get(f"/meetings/{data['id']}")
    assert fetched.status_code == HTTPStatus.OK
    assert fetched.json()["time"]["from"] == "2024-01-02T15:00:00Z"


def test_create_bounded_meeting_computes_last(client):
    tutor = _create_user(client)
    tutee = _create_user(client)
    payload = _meeting_payload(tutor, tutee, recur="RRULE:FREQ=WEEKLY;COUNT=3")

    response = client.post("/meetings", json=payload)
    assert response.status_code == HTTPStatus.CREATED
    assert response.json()["time"]["last"] == "2024-01-16T16:00:00Z"


def test_create_meeting_rejects_unavailable_participant(client):
    tutor = _create_user(client)
    tutee = _create_user(
        client,
        availability=[{"from": "2024-01-03T14:00:00Z", "to": "2024-01-03T18:00:00Z"}],
    )
    response = client.post("/meetings", json=_meeting_payload(tutor, tutee))
    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert "not available" in response.json()["detail"]


def test_create_meeting_allows_unavailable_creator(client):
    tutor = _create_user(client, availability=[])
    tutee = _create_user(client)
    response = client.post("/meetings", json=_meeting_payload(tutor, tutee))
    assert response.status_code == HTTPStatus.CREATED


def test_create_meeting_with_unknown_participant_is_400(client):
    tutor = _create_user(client)
    ghost = {"id": f"ghost-{uuid4().hex[:8]}", "name": "Ghost", "email": ""}
    response = client.post("/meetings", json=_meeting_payload(tutor, ghost))
    assert response.status_code == HTTPStatus.BAD_REQUEST


def test_create_meeting_with_backwards_time_is_400(client):
    tutor = _create_user(client)
    tutee = _create_user(client)
    payload = _meeting_payload(tutor, tutee, start="2024-01-02T16:00:00Z", end="2024-01-02T15:00:00Z")
    response = client.post("/meetings", json=payload)
    assert response.status_code == HTTPStatus.BAD_REQUEST


def test_get_unknown_meeting_is_404(client):
    response = client.get(f"/meetings/{uuid4().hex}")
    assert response.status_code == HTTPStatus.NOT_FOUND


def test_list_occurrences(client, weekly_meeting):
    assert _occurrence_starts(client, weekly_meeting["id"]) == [
        "2024-01-02T15:00:00Z",
        "2024-01-09T15:00:00Z",
        "2024-01-16T15:00:00Z",
        "2024-01-23T15:00:00Z",
        "2024-01-30T15:00:00Z",
    ]

    empty_window = client.get(
        f"/meetings/{weekly_meeting['id']}/occurrences",
        params={"start": "2024-02-01T00:00:00Z", "end": "2024-01-01T00:00:00Z"},
    )
    assert empty_window.status_code == HTTPStatus.BAD_REQUEST


def test_edit_this_occurrence(client, weekly_meeting):
    meeting_id = weekly_meeting["id"]
    updating = dict(weekly_meeting)
    updating["time"] = {"from": "2024-01-16T16:00:00Z", "to": "2024-01-16T17:00:00Z"}

    response = client.put(
        f"/meetings/{meeting_id}",
        json={"updating": updating, "original_start": "2024-01-16T15:00:00Z", "action": "this"},
    )
    assert response.status_code == HTTPStatus.OK

    data = response.json()
    assert data["action"] == "this"
    (parent,) = data["updated"]
    (child,) = data["created"]
    assert parent["version"] == 2
    assert parent["time"]["exdates"] == ["2024-01-16T15:00:00Z"]
    assert child["parentId"] == meeting_id
    assert child["time"]["from"] == "2024-01-16T16:00:00Z"
    assert child["time"]["to"] == "2024-01-16T17:00:00Z"
    assert child["time"]["recur"] is None

    assert "2024-01-16T15:00:00Z" not in _occurrence_starts(client, meeting_id)

    export = client.get(f"/meetings/{meeting_id}/export")
    assert export.status_code == HTTPStatus.OK
    assert export.headers["content-type"].startswith("text/csv")
    lines = export.text.strip().splitlines()
    assert lines[0].startswith("Meeting ID,")
    assert len(lines) == 3


def test_edit_rejects_occurrence_not_generated_by_rule(client, weekly_meeting):
    updating = dict(weekly_meeting)
    updating["time"] = {"from": "2024-01-17T16:00:00Z", "to": "2024-01-17T17:00:00Z"}

    response = client.put(
        f"/meetings/{weekly_meeting['id']}",
        json={"updating": updating, "original_start": "2024-01-17T15:00:00Z", "action": "this"},
    )
    assert response.status_code == HTTPStatus.BAD_REQUEST

    unchanged = client.get(f"/meetings/{weekly_meeting['id']}").json()
    assert unchanged["version"] == 1


def test_edit_all_moves_series(client, weekly_meeting):
    updating = dict(weekly_meeting)
    updating["time"] = {
        "from": "2024-01-09T16:00:00Z",
        "to": "2024-01-09T17:00:00Z",
        "recur": "RRULE:FREQ=WEEKLY",
    }
    updating["notes"] = "Moved an hour later"

    response = client.put(
        f"/meetings/{weekly_meeting['id']}",
        json={"updating": updating, "original_start": "2024-01-09T15:00:00Z", "action": "all"},
    )
    assert response.status_code == HTTPStatus.OK
    (meeting,) = response.json()["updated"]
    assert meeting["id"] == weekly_meeting["id"]
    assert meeting["time"]["from"] == "2024-01-02T16:00:00Z"
    assert meeting["notes"] == "Moved an hour later"


def test_delete_future_truncates_series(client, weekly_meeting):
    meeting_id = weekly_meeting["id"]
    deleting = dict(weekly_meeting)
    deleting["time"] = {"from": "2024-01-16T15:00:00Z", "to": "2024-01-16T16:00:00Z"}

    response = client.request(
        "DELETE",
        f"/meetings/{meeting_id}",
        json={"deleting": deleting, "action": "future"},
    )
    assert response.status_code == HTTPStatus.OK

    data = response.json()
    assert data["action"] == "future"
    assert data["created"] == []
    (parent,) = data["updated"]
    assert parent["time"]["recur"] == "RRULE:FREQ=WEEKLY;UNTIL=20240116T000000Z"
    assert parent["time"]["last"] == "2024-01-09T16:00:00Z"

    assert _occurrence_starts(client, meeting_id) == [
        "2024-01-02T15:00:00Z",
        "2024-01-09T15:00:00Z",
    ]


def test_delete_without_body_removes_meeting(client, weekly_meeting):
    meeting_id = weekly_meeting["id"]

    response = client.delete(f"/meetings/{meeting_id}")
    assert response.status_code == HTTPStatus.OK
    data = response.json()
    assert data["action"] == "all"
    assert data["requested_action"] == "future"
    assert data["deleted"] == [meeting_id]

    assert client.get(f"/meetings/{meeting_id}").status_code == HTTPStatus.NOT_FOUND
    assert client.delete(f"/meetings/{meeting_id}").status_code == HTTPStatus.NOT_FOUND


def test_update_notifies_participants(monkeypatch, client, weekly_meeting):
    from app.api.routes import meetings as meetings_module

    sent = []

    def fake_send_meeting_change_email(notification):
        sent.append(notification)
        return True

    monkeypatch.setattr(
        meetings_module, "send_meeting_change_email", fake_send_meeting_change_email
    )

    deleting = dict(weekly_meeting)
    deleting["time"] = {"from": "2024-01-09T15:00:00Z", "to": "2024-01-09T16:00:00Z"}
    response = client.request(
        "DELETE",
        f"/meetings/{weekly_meeting['id']}",
        json={"deleting": deleting, "action": "this"},
    )
    assert response.status_code == HTTPStatus.OK
    assert response.json()["notified"] == 1

    (notification,) = sent
    assert notification.kind.value == "cancelled"
    assert notification.scope.value == "this"
    assert {p.id for p in notification.people} == {
        p["id"] for p in weekly_meeting["match"]["people"]
    }
