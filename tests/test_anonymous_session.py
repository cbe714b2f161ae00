from datetime import timedelta

from trailverse.core.utils import ensure_utc, utc_now
from trailverse.crud.crud_anonymous_session import crud_anonymous_session
from trailverse.models.anonymous_session import AnonymousSession, AnonymousSessionMessage

SEED = {
    "ip_address": "198.51.100.7",
    "user_agent": "Mozilla/5.0",
    "browser_fingerprint": "f" * 32,
    "park_name": "Zion",
    "park_code": "zion",
    "form_data": {"days": 3},
}


def test_find_or_create_is_idempotent(db):
    first = crud_anonymous_session.find_or_create(db, "anon_a", seed=SEED)
    second = crud_anonymous_session.find_or_create(db, "anon_a", seed={
        "ip_address": "203.0.113.1", "park_name": "Acadia",
    })
    assert first.id == second.id
    assert second.ip_address == "198.51.100.7"
    assert second.park_name == "Zion"
    assert second.form_data == {"days": 3}
    assert db.query(AnonymousSession).count() == 1


def test_default_park_name(db):
    session = crud_anonymous_session.find_or_create(db, "anon_b", seed={"ip_address": "1.2.3.4"})
    assert session.park_name == "General Planning"


def test_gate_allows_three_user_messages(db):
    session = crud_anonymous_session.find_or_create(db, "anon_gate", seed=SEED)
    results = [crud_anonymous_session.can_send_message(db, session)]
    for n in range(3):
        session = crud_anonymous_session.add_message(db, session, role="user", content=f"question {n}")
        session = crud_anonymous_session.add_message(db, session, role="assistant", content="answer")
        results.append(crud_anonymous_session.can_send_message(db, session))

    assert results == [True, True, True, False]
    # Re-checking without new messages changes nothing
    assert crud_anonymous_session.can_send_message(db, session) is False
    assert crud_anonymous_session.count_user_messages(db, session) == 3


def test_add_message_updates_count_and_activity(db):
    start = utc_now() - timedelta(hours=5)
    session = crud_anonymous_session.find_or_create(db, "anon_c", seed=SEED, now=start)
    later = start + timedelta(hours=2)
    session = crud_anonymous_session.add_message(db, session, role="user", content="hi", now=later)
    session = crud_anonymous_session.add_message(
        db, session, role="assistant", content="hello", provider="claude", model="m", response_time_ms=120, now=later
    )

    assert session.message_count == 2
    assert ensure_utc(session.last_activity) == later
    assert ensure_utc(session.expires_at) == later + timedelta(hours=48)
    stored = db.query(AnonymousSessionMessage).order_by(AnonymousSessionMessage.id).all()
    assert [m.role for m in stored] == ["user", "assistant"]
    assert stored[1].response_time_ms == 120


def test_session_expires_after_inactivity(db):
    created = utc_now() - timedelta(hours=48, seconds=1)
    crud_anonymous_session.find_or_create(db, "anon_old", seed=SEED, now=created)
    assert crud_anonymous_session.get_active(db, "anon_old") is None


def test_activity_extends_expiry(db):
    created = utc_now() - timedelta(hours=47)
    session = crud_anonymous_session.find_or_create(db, "anon_rolling", seed=SEED, now=created)
    crud_anonymous_session.add_message(db, session, role="user", content="still here",
                                       now=created + timedelta(hours=46))
    assert crud_anonymous_session.get_active(db, "anon_rolling", now=utc_now() + timedelta(hours=40)) is not None


def test_expired_session_is_replaced_on_find_or_create(db):
    created = utc_now() - timedelta(hours=60)
    old = crud_anonymous_session.find_or_create(db, "anon_again", seed=SEED, now=created)
    for n in range(3):
        crud_anonymous_session.add_message(db, old, role="user", content=str(n), now=created)

    fresh = crud_anonymous_session.find_or_create(db, "anon_again", seed=SEED)
    assert crud_anonymous_session.count_user_messages(db, fresh) == 0
    assert crud_anonymous_session.can_send_message(db, fresh) is True
    assert db.query(AnonymousSessionMessage).count() == 0


def test_mark_converted_is_set_once(db, make_user):
    first_user = make_user()
    second_user = make_user()
    session = crud_anonymous_session.find_or_create(db, "anon_conv", seed=SEED)

    session = crud_anonymous_session.mark_converted(db, session, first_user.id)
    converted_at = session.converted_at
    session = crud_anonymous_session.mark_converted(db, session, second_user.id)

    assert session.is_converted is True
    assert session.converted_user_id == first_user.id
    assert session.converted_at == converted_at


def test_conversation_summary(db):
    session = crud_anonymous_session.find_or_create(db, "anon_sum", seed=SEED)
    crud_anonymous_session.add_message(db, session, role="user", content="Best hikes?")
    crud_anonymous_session.add_message(db, session, role="assistant", content="Angels Landing")
    crud_anonymous_session.add_message(db, session, role="user", content="Permits?")

    summary = crud_anonymous_session.get_conversation_summary(db, session)
    assert summary["totalMessages"] == 3
    assert summary["userMessageCount"] == 2
    assert summary["assistantMessageCount"] == 1
    assert summary["lastUserMessage"] == "Permits?"
    assert summary["lastAssistantMessage"] == "Angels Landing"
    assert summary["parkName"] == "Zion"
    assert [m["role"] for m in summary["messages"]] == ["user", "assistant", "user"]


def test_purge_expired_removes_only_expired(db):
    old = crud_anonymous_session.find_or_create(db, "anon_stale", seed=SEED, now=utc_now() - timedelta(days=3))
    crud_anonymous_session.add_message(db, old, role="user", content="x", now=utc_now() - timedelta(days=3))
    crud_anonymous_session.find_or_create(db, "anon_live", seed=SEED)

    assert crud_anonymous_session.purge_expired(db) == 1
    remaining = [s.anonymous_id for s in db.query(AnonymousSession).all()]
    assert remaining == ["anon_live"]
    assert db.query(AnonymousSessionMessage).count() == 0


def test_summary_of_empty_session(db):
    session = crud_anonymous_session.find_or_create(db, "anon_empty", seed=SEED)
    summary = crud_anonymous_session.get_conversation_summary(db, session)
    assert summary["totalMessages"] == 0
    assert summary["userMessageCount"] == 0
    assert summary["assistantMessageCount"] == 0
    assert summary["lastUserMessage"] == ""
    assert summary["lastAssistantMessage"] == ""
    assert summary["messages"] == []
