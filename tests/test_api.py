"""API tests for the event board routes."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from eventboard.main import (
    announcements,
    app,
    dm_repo,
    event_store,
    job_queue,
    messenger,
)

_ORGANIZER = {"X-User-Id": "organizer-1"}


def _clear() -> None:
    event_store._store.clear()
    dm_repo._records.clear()
    job_queue._jobs.clear()
    job_queue._delayed.clear()
    job_queue._active.clear()
    messenger.inbox.clear()
    announcements.posts.clear()


@pytest.fixture(autouse=True)
def _clear_repos():
    _clear()
    yield
    _clear()


@pytest.fixture()
def client():
    return TestClient(app)


def _when(days: int = 2) -> datetime:
    return (datetime.now(timezone.utc) + timedelta(days=days)).replace(second=0, microsecond=0)


def _create(client: TestClient, **overrides) -> dict:
    when = _when()
    body = {
        "type": "savage_raids",
        "date": when.strftime("%Y-%m-%d"),
        "time": when.strftime("%H:%M"),
        "timezone": "UTC",
        "group_type": "standard",
        "description": "Weekly clear",
    }
    body.update(overrides)
    resp = client.post("/events", json=body, headers=_ORGANIZER)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _join(client: TestClient, event_id: str, user_id: str, role: str, class_name: str | None = None):
    body = {"role": role}
    if class_name:
        body["class"] = class_name
    return client.post(f"/events/{event_id}/participation", json=body, headers={"X-User-Id": user_id})


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


def test_create_event_returns_stored_event(client: TestClient):
    data = _create(client)

    assert data["id"].startswith("event_")
    assert data["organizer"] == "organizer-1"
    assert data["participants"] == []
    assert data["message_id"] in announcements.posts

    resp = client.get(f"/events/{data['id']}")
    assert resp.status_code == 200
    assert resp.json()["type"] == "savage_raids"


def test_create_requires_user_header(client: TestClient):
    when = _when()
    resp = client.post(
        "/events",
        json={"type": "maps", "date": when.strftime("%Y-%m-%d"), "time": "20:00", "timezone": "UTC"},
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"
    assert resp.json()["detail"].startswith("header.x-user-id:")


def test_create_forbidden_for_unlisted_user(client: TestClient):
    when = _when()
    resp = client.post(
        "/events",
        json={"type": "maps", "date": when.strftime("%Y-%m-%d"), "time": "20:00", "timezone": "UTC"},
        headers={"X-User-Id": "random-user"},
    )
    assert resp.status_code == 403
    assert resp.json()["code"] == "forbidden"


def test_create_allowed_with_officer_role(client: TestClient):
    when = _when()
    resp = client.post(
        "/events",
        json={"type": "maps", "date": when.strftime("%Y-%m-%d"), "time": "20:00", "timezone": "UTC"},
        headers={"X-User-Id": "random-user", "X-Role-Ids": "member, officer"},
    )
    assert resp.status_code == 201


def test_create_rejects_bad_time_format(client: TestClient):
    resp = client.post(
        "/events",
        json={"type": "maps", "date": _when().strftime("%Y-%m-%d"), "time": "8pm", "timezone": "UTC"},
        headers=_ORGANIZER,
    )
    assert resp.status_code == 422
    assert resp.json()["detail"] == "Invalid time format. Use: HH:MM"


def test_unknown_event_type_uses_error_shape(client: TestClient):
    resp = client.post(
        "/events",
        json={"type": "karaoke", "date": _when().strftime("%Y-%m-%d"), "time": "20:00", "timezone": "UTC"},
        headers=_ORGANIZER,
    )
    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == "validation_error"
    assert body["detail"].startswith("type: ")


def test_missing_event_404(client: TestClient):
    resp = client.get("/events/event_missing")
    assert resp.status_code == 404
    assert resp.json() == {"detail": "Event not found.", "code": "not_found"}


# ---------------------------------------------------------------------------
# Participation
# ---------------------------------------------------------------------------


def test_join_role_full_returns_409(client: TestClient):
    event_id = _create(client)["id"]
    assert _join(client, event_id, "a", "tank", "Paladin").status_code == 200
    assert _join(client, event_id, "b", "tank").status_code == 200

    resp = _join(client, event_id, "c", "tank")
    assert resp.status_code == 409
    assert resp.json() == {"detail": "All Tank slots are filled.", "code": "role_full"}


def test_join_returns_class_under_short_name(client: TestClient):
    event_id = _create(client)["id"]
    resp = _join(client, event_id, "a", "healer", "astrologian")
    assert resp.json()["participants"] == [{"id": "a", "role": "healer", "class": "Astrologian"}]


def test_change_role_and_withdraw(client: TestClient):
    event_id = _create(client)["id"]
    _join(client, event_id, "a", "dps")

    resp = client.patch(
        f"/events/{event_id}/participation",
        json={"role": "healer", "class": "Sage"},
        headers={"X-User-Id": "a"},
    )
    assert resp.status_code == 200
    assert resp.json()["participants"][0]["role"] == "healer"

    resp = client.delete(f"/events/{event_id}/participation", headers={"X-User-Id": "a"})
    assert resp.status_code == 200
    assert resp.json()["participants"] == []

    resp = client.delete(f"/events/{event_id}/participation", headers={"X-User-Id": "a"})
    assert resp.status_code == 409
    assert resp.json()["code"] == "not_participating"


def test_jobs_and_notifications_listed(client: TestClient):
    event_id = _create(client)["id"]
    _join(client, event_id, "a", "dps")

    jobs = client.get(f"/events/{event_id}/jobs").json()
    assert sorted(job["payload"]["kind"] for job in jobs) == [
        "cleanup",
        "reminder@12h",
        "reminder@1h",
        "reminder@24h",
    ]
    notifications = client.get(f"/events/{event_id}/notifications").json()
    assert [n["purpose"] for n in notifications] == ["registration"]


# ---------------------------------------------------------------------------
# Organizer operations
# ---------------------------------------------------------------------------


def test_change_time_forbidden_for_participant(client: TestClient):
    event_id = _create(client)["id"]
    when = _when(days=3)
    resp = client.put(
        f"/events/{event_id}/time",
        json={"date": when.strftime("%Y-%m-%d"), "time": "20:00", "timezone": "UTC"},
        headers={"X-User-Id": "a"},
    )
    assert resp.status_code == 403


def test_change_time_moves_jobs(client: TestClient):
    event_id = _create(client)["id"]
    _join(client, event_id, "a", "dps")
    when = _when(days=3)

    resp = client.put(
        f"/events/{event_id}/time",
        json={"date": when.strftime("%Y-%m-%d"), "time": when.strftime("%H:%M"), "timezone": "UTC"},
        headers=_ORGANIZER,
    )

    assert resp.status_code == 200
    jobs = client.get(f"/events/{event_id}/jobs").json()
    assert len(jobs) == 4
    assert {datetime.fromisoformat(j["payload"]["event_date"].replace("Z", "+00:00")) for j in jobs} == {when}
    assert messenger.messages_for("a")[-1].title == "Event Time Changed"


def test_delete_event(client: TestClient):
    event_id = _create(client)["id"]
    _join(client, event_id, "a", "dps")

    resp = client.delete(f"/events/{event_id}", headers=_ORGANIZER)
    assert resp.status_code == 200
    assert resp.json() == {"event_id": event_id, "jobs_cancelled": 4, "jobs_failed": 0}

    assert client.get(f"/events/{event_id}").status_code == 404
    assert client.get(f"/events/{event_id}/jobs").json() == []
    assert messenger.messages_for("a")[-1].title == "Event Cancelled"


def test_tick_after_event_cleans_up(client: TestClient):
    event = _create(client)
    _join(client, event["id"], "a", "dps")
    event_date = datetime.fromisoformat(event["date"].replace("Z", "+00:00"))

    resp = client.post("/tick", params={"now": (event_date + timedelta(minutes=10)).isoformat()})

    assert resp.status_code == 200
    assert len(resp.json()["jobs_fired"]) == 4
    assert client.get(f"/events/{event['id']}").status_code == 404
    assert messenger.messages_for("a") == []
    assert client.get("/events").json() == []


def test_purge_requires_authorized_role(client: TestClient):
    _create(client)
    resp = client.delete("/events", headers=_ORGANIZER)
    assert resp.status_code == 403
    assert len(client.get("/events").json()) == 1


def test_purge_removes_all_events(client: TestClient):
    first = _create(client)
    _create(client)
    _join(client, first["id"], "a", "dps")

    resp = client.delete("/events", headers={"X-User-Id": "someone", "X-Role-Ids": "officer"})

    assert resp.status_code == 200
    assert resp.json() == {"events_purged": 2, "jobs_cancelled": 5, "jobs_failed": 0}
    assert client.get("/events").json() == []
    assert announcements.posts == {}
    assert [n.title for n in messenger.messages_for("a")] == ["Event Registration Confirmed"]
