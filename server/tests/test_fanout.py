from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from app.core.errors import DeliveryFailure
from app.models.notification_settings import DeviceSettings, UserSettings
from app.models.question import Question
from app.models.subscription import MasjidSubscription
from app.services import subscriptions
from app.services.fanout import Candidate, FanoutEngine, collect_tokens


@pytest.fixture()
def engine(db_session, gateway) -> FanoutEngine:
    return FanoutEngine(db_session, gateway, candidate_limit=1000, batch_size=500, query_timeout=5.0)


def _question(db_session, masjid, *, user=None, device_id=None) -> Question:
    question = Question(
        masjid_id=masjid.id,
        user_id=user.id if user else None,
        device_id=device_id,
        user_name="Asker",
        title="When is Eid prayer?",
        question="Please share the Eid schedule.",
        status="replied",
        reply="8:00 AM",
    )
    db_session.add(question)
    db_session.commit()
    db_session.refresh(question)
    return question


def test_general_notification_reaches_only_default_enabled_device(
    engine, gateway, db_session, make_user, make_masjid, add_subscription
):
    masjid = make_masjid("Masjid X")
    user_a = make_user("User A")
    add_subscription(masjid, user=user_a, token="token-a")
    add_subscription(masjid, device_id="device-d1", token="token-d1")
    add_subscription(masjid, device_id="device-d2", token="token-d2")
    db_session.add(UserSettings(user_id=user_a.id, general_notifications=False))
    db_session.add(DeviceSettings(device_id="device-d2", general_notifications=False))
    db_session.commit()

    result = engine.broadcast(masjid.id, "General", "Jumuah khutbah", "Topic: patience", {"masjidId": masjid.id})

    assert gateway.sent_tokens == ["token-d1"]
    assert (result.total, result.sent, result.failed) == (1, 1, 0)
    assert gateway.calls[0]["data"] == {"category": "General", "masjidId": str(masjid.id)}

    gateway.calls.clear()
    engine.broadcast(masjid.id, "Prayer Times", "Fajr moved", "Fajr is now 05:10")
    assert sorted(gateway.sent_tokens) == ["token-a", "token-d1", "token-d2"]


def test_inactive_and_tokenless_subscriptions_are_skipped(engine, gateway, make_masjid, add_subscription):
    masjid = make_masjid()
    add_subscription(masjid, device_id="live", token="token-live")
    add_subscription(masjid, device_id="gone", token="token-gone", is_active=False)
    add_subscription(masjid, device_id="silent", token=None)
    add_subscription(masjid, device_id="blank", token="   ")

    result = engine.broadcast(masjid.id, "Events", "Iftar", "Community iftar on Friday")

    assert gateway.sent_tokens == ["token-live"]
    # The blank token survives the query and is dropped during token collection.
    assert result.candidates == 2
    assert result.total == 1


def test_tokens_are_trimmed_and_deduplicated():
    candidates = [
        Candidate(1, None, "a", " shared "),
        Candidate(2, None, "b", "shared"),
        Candidate(3, 7, None, ""),
        Candidate(4, 8, None, "other"),
    ]
    assert collect_tokens(candidates) == ["shared", "other"]


def test_delivery_is_batched_at_gateway_ceiling(db_session, gateway, make_masjid):
    masjid = make_masjid()
    db_session.add_all(
        MasjidSubscription(masjid_id=masjid.id, device_id=f"device-{n}", fcm_token=f"token-{n}", is_active=True)
        for n in range(1201)
    )
    db_session.commit()
    engine = FanoutEngine(db_session, gateway, candidate_limit=2000, batch_size=500, query_timeout=5.0)

    result = engine.broadcast(masjid.id, "General", "Reminder", "Zakat deadline")

    assert [len(call["tokens"]) for call in gateway.calls] == [500, 500, 201]
    assert result.sent == 1201


def test_candidate_set_is_capped(db_session, gateway, make_masjid):
    masjid = make_masjid()
    db_session.add_all(
        MasjidSubscription(masjid_id=masjid.id, device_id=f"device-{n}", fcm_token=f"token-{n}", is_active=True)
        for n in range(30)
    )
    db_session.commit()
    engine = FanoutEngine(db_session, gateway, candidate_limit=25, batch_size=10, query_timeout=5.0)

    result = engine.broadcast(masjid.id, "General", "Reminder", "Body")

    assert result.candidates == 25
    assert len(gateway.sent_tokens) == 25


def test_invalid_tokens_are_deactivated(engine, gateway, db_session, make_masjid, add_subscription):
    masjid = make_masjid()
    other = make_masjid("Other Masjid")
    stale = add_subscription(masjid, device_id="stale", token="token-stale")
    flaky = add_subscription(masjid, device_id="flaky", token="token-flaky")
    elsewhere = add_subscription(other, device_id="stale", token="token-stale")
    gateway.invalid = {"token-stale"}
    gateway.transient = {"token-flaky"}

    result = engine.broadcast(masjid.id, "General", "Title", "Body")

    assert result.failed == 2
    assert result.deactivated == 1
    db_session.expire_all()
    assert db_session.get(MasjidSubscription, stale.id).is_active is False
    # Transient failures change nothing; other masjids are reconciled by their own fan-outs.
    assert db_session.get(MasjidSubscription, flaky.id).is_active is True
    assert db_session.get(MasjidSubscription, elsewhere.id).is_active is True


def test_reconciliation_is_idempotent(db_session, make_masjid, add_subscription):
    masjid = make_masjid()
    stale = add_subscription(masjid, device_id="stale", token="token-stale")
    already_off = add_subscription(masjid, device_id="old", token="token-old", is_active=False)

    first = subscriptions.deactivate_invalid_tokens(db_session, masjid.id, ["token-stale", "token-old"])
    second = subscriptions.deactivate_invalid_tokens(db_session, masjid.id, ["token-stale", "token-old"])

    assert first == 1
    assert second == 0
    db_session.expire_all()
    assert db_session.get(MasjidSubscription, stale.id).is_active is False
    assert db_session.get(MasjidSubscription, already_off.id).is_active is False


@pytest.mark.parametrize(
    "failure",
    [RuntimeError("gateway exploded"), DeliveryFailure("quota", error_code="quota-exceeded")],
)
def test_gateway_errors_are_contained(engine, gateway, make_masjid, add_subscription, failure):
    masjid = make_masjid()
    add_subscription(masjid, device_id="d1", token="token-1")
    gateway.raise_on_send = failure

    result = engine.broadcast(masjid.id, "General", "Title", "Body")

    assert result.sent == 0
    assert result.failed == 1
    assert result.deactivated == 0


def test_dispatcher_swallows_fanout_errors(dispatcher, gateway, make_masjid, add_subscription):
    masjid = make_masjid()
    add_subscription(masjid, device_id="d1", token="token-1")

    assert dispatcher.broadcast(masjid.id, "Not A Category", "Title", "Body") is None
    assert gateway.calls == []


def test_excluded_users_are_left_out(engine, gateway, make_user, make_masjid, add_subscription):
    masjid = make_masjid()
    actor = make_user("Actor")
    follower = make_user("Follower")
    add_subscription(masjid, user=actor, token="token-actor")
    add_subscription(masjid, user=follower, token="token-follower")
    add_subscription(masjid, device_id="anon", token="token-anon")

    engine.broadcast(masjid.id, "Prayer Times", "Title", "Body", exclude_user_ids=[actor.id])

    assert sorted(gateway.sent_tokens) == ["token-anon", "token-follower"]


def test_reply_goes_to_asking_user(engine, gateway, db_session, make_user, make_masjid, add_subscription):
    masjid = make_masjid()
    asker = make_user("Asker")
    add_subscription(masjid, user=asker, token="token-asker")
    add_subscription(masjid, device_id="anon", token="token-anon")
    question = _question(db_session, masjid, user=asker)

    engine.notify_question_reply(question, masjid.name)

    assert gateway.sent_tokens == ["token-asker"]
    assert gateway.calls[0]["data"]["type"] == "question_reply"


def test_reply_prefers_exact_device_match(engine, gateway, db_session, make_masjid, add_subscription):
    masjid = make_masjid()
    add_subscription(masjid, device_id="device-asker", token="token-asker")
    add_subscription(masjid, device_id="device-other", token="token-other")
    question = _question(db_session, masjid, device_id="device-asker")

    engine.notify_question_reply(question, masjid.name)

    assert gateway.sent_tokens == ["token-asker"]


def test_reply_falls_back_to_all_anonymous_subscribers(
    engine, gateway, db_session, make_user, make_masjid, add_subscription
):
    masjid = make_masjid()
    member = make_user("Member")
    add_subscription(masjid, device_id="device-one", token="token-one")
    add_subscription(masjid, device_id="device-two", token="token-two")
    add_subscription(masjid, user=member, token="token-member")
    question = _question(db_session, masjid, device_id="drifted-device-id")

    engine.notify_question_reply(question, masjid.name)

    assert sorted(gateway.sent_tokens) == ["token-one", "token-two"]


def test_reply_respects_questions_preference(engine, gateway, db_session, make_masjid, add_subscription):
    masjid = make_masjid()
    add_subscription(masjid, device_id="device-asker", token="token-asker")
    db_session.add(DeviceSettings(device_id="device-asker", questions_notifications=False))
    db_session.commit()
    question = _question(db_session, masjid, device_id="device-asker")

    result = engine.notify_question_reply(question, masjid.name)

    assert gateway.calls == []
    assert result.eligible == 0


def test_new_question_notifies_staff_who_view_questions(
    engine, gateway, db_session, make_user, make_masjid, add_membership, add_subscription
):
    masjid = make_masjid()
    other_masjid = make_masjid("Other")
    handler = make_user("Handler")
    blind_imam = make_user("No Questions")
    muted = make_user("Muted")
    add_membership(handler, masjid, "imam")
    add_membership(blind_imam, masjid, "imam", can_view_questions=False)
    add_membership(muted, masjid, "admin")
    add_subscription(other_masjid, user=handler, token="token-handler")
    add_subscription(masjid, user=blind_imam, token="token-blind")
    add_subscription(masjid, user=muted, token="token-muted")
    add_subscription(masjid, device_id="anon", token="token-anon")
    db_session.add(UserSettings(user_id=muted.id, questions_notifications=False))
    db_session.commit()
    question = _question(db_session, masjid, device_id="anon")

    engine.notify_staff_of_question(question, masjid.name)

    assert gateway.sent_tokens == ["token-handler"]


def test_imam_broadcast_targets_imam_memberships(
    engine, gateway, make_user, make_masjid, add_membership, add_subscription
):
    first = make_masjid("First")
    second = make_masjid("Second")
    imam_one = make_user("Imam One")
    imam_two = make_user("Imam Two")
    admin = make_user("Admin")
    add_membership(imam_one, first, "imam")
    add_membership(imam_two, second, "imam")
    add_membership(admin, first, "admin")
    add_subscription(first, user=imam_one, token="token-imam-one")
    add_subscription(second, user=imam_two, token="token-imam-two")
    add_subscription(first, user=admin, token="token-admin")

    engine.notify_imams("Platform update", "New features are live")
    assert sorted(gateway.sent_tokens) == ["token-imam-one", "token-imam-two"]

    gateway.calls.clear()
    engine.notify_imams("Scoped", "Only the first masjid", masjid_id=first.id)
    assert gateway.sent_tokens == ["token-imam-one"]


class _QueryCanceled(Exception):
    pgcode = "57014"


@pytest.mark.parametrize(
    "orig, error_code",
    [(_QueryCanceled("canceling statement due to statement timeout"), "timeout"), (Exception("boom"), "query-failed")],
)
def test_candidate_query_failure_aborts_run(engine, gateway, monkeypatch, caplog, make_masjid, add_subscription, orig, error_code):
    masjid = make_masjid()
    add_subscription(masjid, device_id="d1", token="token-1")

    def fail(query):
        raise OperationalError("SELECT ...", {}, orig)

    monkeypatch.setattr(engine, "_fetch", fail)

    result = engine.broadcast(masjid.id, "General", "Title", "Body")

    assert result.aborted is True
    assert result.total == 0
    assert gateway.calls == []
    failure = next(record for record in caplog.records if record.getMessage() == "fanout_candidates_failed")
    assert failure.error_code == error_code
