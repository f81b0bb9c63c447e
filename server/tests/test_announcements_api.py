from __future__ import annotations

from datetime import date, timedelta

import pytest

from app.models.notification_settings import DeviceSettings


@pytest.fixture()
def staffed(make_user, make_masjid, add_membership, add_subscription, db_session):
    masjid = make_masjid()
    admin = make_user("Admin")
    add_membership(admin, masjid, "admin")
    add_subscription(masjid, device_id="wants-all", token="token-all")
    add_subscription(masjid, device_id="no-events", token="token-no-events")
    db_session.add(DeviceSettings(device_id="no-events", events_notifications=False))
    db_session.commit()
    return masjid, admin


def test_announcement_fans_out_by_category(client, authorize, gateway, staffed):
    masjid, admin = staffed

    authorize(admin)
    resp = client.post(
        "/notifications",
        json={"masjid_id": masjid.id, "title": "Eid Bazaar", "description": "Stalls open after Asr", "category": "Events"},
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["source"] == "manual"
    assert body["created_by_id"] == admin.id

    assert gateway.sent_tokens == ["token-all"]
    assert gateway.calls[0]["data"] == {
        "category": "Events",
        "masjidId": str(masjid.id),
        "masjidName": masjid.name,
        "notificationId": str(body["id"]),
        "type": "announcement",
    }

    gateway.calls.clear()
    client.post(
        "/notifications",
        json={"masjid_id": masjid.id, "title": "Fundraiser", "description": "Roof repairs", "category": "Donations"},
    )
    assert sorted(gateway.sent_tokens) == ["token-all", "token-no-events"]


def test_announcement_requires_capability(client, authorize, gateway, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    imam = make_user("Imam")
    add_membership(imam, masjid, "imam", can_create_notifications=False)

    authorize(imam)
    resp = client.post(
        "/notifications",
        json={"masjid_id": masjid.id, "title": "Notice", "description": "Body", "category": "General"},
    )
    assert resp.status_code == 403
    assert gateway.calls == []


def test_unknown_category_is_rejected(client, authorize, staffed):
    masjid, admin = staffed
    authorize(admin)
    resp = client.post(
        "/notifications",
        json={"masjid_id": masjid.id, "title": "Notice", "description": "Body", "category": "Sports"},
    )
    assert resp.status_code == 422


def test_announcement_listing_update_and_delete(client, authorize, staffed):
    masjid, admin = staffed
    authorize(admin)
    for category in ("General", "Donations", "General"):
        client.post(
            "/notifications",
            json={"masjid_id": masjid.id, "title": f"{category} notice", "description": "Body", "category": category},
        )

    authorize(None)
    listing = client.get(f"/notifications/masjid/{masjid.id}", params={"category": "General"})
    assert listing.status_code == 200
    assert listing.json()["total"] == 2
    target = listing.json()["items"][0]

    authorize(admin)
    updated = client.put(f"/notifications/{target['id']}", json={"title": "Updated notice"})
    assert updated.status_code == 200
    assert updated.json()["title"] == "Updated notice"
    assert updated.json()["category"] == "General"

    assert client.delete(f"/notifications/{target['id']}").status_code == 204
    assert client.get(f"/notifications/{target['id']}").status_code == 404


def _event_payload(masjid_id: int, **overrides) -> dict:
    return {
        "masjid_id": masjid_id,
        "name": "Community Iftar",
        "description": "Bring a dish to share",
        "event_date": (date.today() + timedelta(days=5)).isoformat(),
        "event_time": "19:30:00",
        "location": "Main hall",
        **overrides,
    }


def test_event_creation_notifies_events_subscribers(client, authorize, gateway, staffed):
    masjid, admin = staffed

    authorize(admin)
    resp = client.post("/events", json=_event_payload(masjid.id))
    assert resp.status_code == 201, resp.text
    event = resp.json()
    assert event["status"] == "active"

    assert gateway.sent_tokens == ["token-all"]
    call = gateway.calls[0]
    assert call["title"] == f"New Event - {masjid.name}"
    assert call["body"] == "Community Iftar"
    assert call["data"]["category"] == "Events"
    assert call["data"]["eventId"] == str(event["id"])


def test_event_creation_requires_capability(client, authorize, make_user, make_masjid, add_membership):
    masjid = make_masjid()
    imam = make_user("Imam")
    add_membership(imam, masjid, "imam", can_create_events=False)

    authorize(imam)
    assert client.post("/events", json=_event_payload(masjid.id)).status_code == 403


def test_event_soft_delete_is_one_way(client, authorize, staffed):
    masjid, admin = staffed
    authorize(admin)
    event = client.post("/events", json=_event_payload(masjid.id)).json()

    deleted = client.delete(f"/events/{event['id']}")
    assert deleted.status_code == 200
    assert deleted.json()["status"] == "deleted"

    again = client.delete(f"/events/{event['id']}")
    assert again.status_code == 400
    assert again.json()["detail"] == "Event is already deleted"

    assert client.put(f"/events/{event['id']}", json={"name": "Revived"}).status_code == 400
    assert client.get(f"/events/{event['id']}").status_code == 404


def test_event_listing_filters(client, authorize, staffed):
    masjid, admin = staffed
    authorize(admin)
    client.post("/events", json=_event_payload(masjid.id, name="Upcoming Halaqa"))
    client.post(
        "/events",
        json=_event_payload(masjid.id, name="Past Lecture", event_date=(date.today() - timedelta(days=3)).isoformat()),
    )
    removed = client.post("/events", json=_event_payload(masjid.id, name="Cancelled Picnic")).json()
    client.delete(f"/events/{removed['id']}")

    everything = client.get(f"/events/masjid/{masjid.id}")
    assert everything.json()["total"] == 2

    upcoming = client.get(f"/events/masjid/{masjid.id}", params={"when": "upcoming"})
    assert [item["name"] for item in upcoming.json()["items"]] == ["Upcoming Halaqa"]

    searched = client.get(f"/events/masjid/{masjid.id}", params={"search": "lecture"})
    assert [item["name"] for item in searched.json()["items"]] == ["Past Lecture"]

    assert client.get(f"/events/masjid/{masjid.id}", params={"when": "soon"}).status_code == 422


def test_event_update(client, authorize, staffed):
    masjid, admin = staffed
    authorize(admin)
    event = client.post("/events", json=_event_payload(masjid.id)).json()

    resp = client.put(f"/events/{event['id']}", json={"location": "Courtyard", "event_time": "20:00:00"})
    assert resp.status_code == 200
    assert resp.json()["location"] == "Courtyard"
    assert resp.json()["event_time"] == "20:00:00"
    assert resp.json()["name"] == "Community Iftar"


def test_announcement_description_is_capped(client, authorize, gateway, staffed):
    masjid, admin = staffed
    authorize(admin)
    resp = client.post(
        "/notifications",
        json={"masjid_id": masjid.id, "title": "Notice", "description": "x" * 1001, "category": "General"},
    )
    assert resp.status_code == 422
    assert gateway.calls == []
