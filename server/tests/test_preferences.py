from __future__ import annotations

import hashlib

import pytest

from app.core.errors import ValidationFailedError
from app.models.notification_settings import DeviceSettings, UserSettings
from app.services import preferences
from app.services.device_identity import Recipient, derive_device_id, resolve_recipient


def test_device_id_is_deterministic_and_input_sensitive():
    first = derive_device_id("abc123", "android", "2.0")
    second = derive_device_id("abc123", "android", "2.0")

    assert first == second
    assert len(first) == 32
    assert first == hashlib.sha256(b"abc123:android:2.0").hexdigest()[:32]
    assert derive_device_id("abc124", "android", "2.0") != first
    assert derive_device_id("abc123", "ios", "2.0") != first
    assert derive_device_id("abc123", "android", "2.1") != first


def test_device_id_requires_known_platform():
    with pytest.raises(ValidationFailedError):
        derive_device_id("abc123", "symbian", "1.0")
    with pytest.raises(ValidationFailedError):
        derive_device_id("", "android", "1.0")


def test_missing_app_version_hashes_as_empty():
    assert derive_device_id("abc123", "web", None) == hashlib.sha256(b"abc123:web:").hexdigest()[:32]


def test_recipient_is_user_or_device_never_both(make_user):
    user = make_user()
    assert resolve_recipient(user, "abc", "android").user_id == user.id
    assert resolve_recipient(None, "abc", "android").device_id == derive_device_id("abc", "android", None)
    with pytest.raises(ValidationFailedError):
        resolve_recipient(None, None, None)
    with pytest.raises(ValueError):
        Recipient(user_id=1, device_id="abc")


def test_missing_row_is_enabled_for_every_category():
    for preference in preferences.PREFERENCE_FIELDS:
        assert preferences.is_enabled(None, preference)


def test_explicit_false_only_disables_that_category(db_session, make_user):
    user = make_user()
    row = preferences.update_settings(db_session, Recipient(user_id=user.id), {"general": False})

    assert not preferences.is_enabled(row, "general")
    assert preferences.is_enabled(row, "prayer_times")
    assert preferences.is_enabled(row, "questions")


def test_category_mapping_rejects_unknown_category():
    assert preferences.preference_for_category("Prayer Times") == "prayer_times"
    with pytest.raises(ValidationFailedError):
        preferences.preference_for_category("Sports")


def test_settings_created_lazily_once(db_session, make_user):
    user = make_user()
    recipient = Recipient(user_id=user.id)

    first = preferences.get_or_create_settings(db_session, recipient)
    second = preferences.get_or_create_settings(db_session, recipient)

    assert first.id == second.id
    assert db_session.query(UserSettings).filter_by(user_id=user.id).count() == 1
    assert preferences.as_dict(first) == {
        "prayer_times": True,
        "events": True,
        "donations": True,
        "general": True,
        "questions": True,
    }


def test_user_settings_endpoints(client, authorize, make_user):
    user = make_user()
    authorize(user)

    resp = client.get("/users/me/settings")
    assert resp.status_code == 200
    assert all(resp.json().values())

    update = client.put("/users/me/settings", json={"events": False})
    assert update.status_code == 200
    assert update.json()["events"] is False
    assert update.json()["general"] is True


def test_device_settings_endpoints(client, db_session):
    params = {"device_id": "raw-device", "platform": "ios", "app_version": "3.1"}
    expected_id = derive_device_id("raw-device", "ios", "3.1")

    resp = client.get("/device-settings", params=params)
    assert resp.status_code == 200, resp.text
    assert resp.json()["device_id"] == expected_id

    update = client.put("/device-settings", json={**params, "donations": False})
    assert update.status_code == 200
    assert update.json()["donations"] is False

    db_session.expire_all()
    row = db_session.query(DeviceSettings).filter_by(device_id=expected_id).one()
    assert row.donations_notifications is False


def test_device_settings_requires_identity(client):
    resp = client.get("/device-settings")
    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_failed"


def test_device_settings_rejects_bad_platform(client):
    resp = client.get("/device-settings", params={"device_id": "raw", "platform": "symbian"})
    assert resp.status_code == 422
