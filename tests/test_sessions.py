from datetime import timedelta

import pytest
from sqlalchemy import update
from sqlmodel import Session

from conftest import register
from hubble_auth.core.sessions import ServerSession, SessionConflict, SessionStore
from hubble_auth.core.time import utcnow
from hubble_auth.models import SessionRecord
from hubble_auth.services import workflows
from hubble_auth.services.errors import AuthError
from hubble_auth.services.state import StateTokenManager


@pytest.fixture
def store(engine):
    return SessionStore(engine, ttl_seconds=3600)


def test_save_and_load_round_trip(store):
    assert store.save("abc", {"uid": "1"}, 0) == 1
    assert store.load("abc") == ({"uid": "1"}, 1)
    assert store.save("abc", {"uid": "2"}, 1) == 2
    assert store.load("abc") == ({"uid": "2"}, 2)


def test_stale_revision_is_a_conflict(store):
    store.save("abc", {"n": 1}, 0)
    store.save("abc", {"n": 2}, 1)

    with pytest.raises(SessionConflict):
        store.save("abc", {"n": 3}, 1)
    assert store.load("abc") == ({"n": 2}, 2)


def test_double_insert_is_a_conflict(store):
    store.save("abc", {"n": 1}, 0)
    with pytest.raises(SessionConflict):
        store.save("abc", {"n": 1}, 0)


def test_expired_sessions_read_as_missing(engine, store):
    store.save("old", {"uid": "1"}, 0)
    with Session(engine) as db:
        record = db.get(SessionRecord, "old")
        record.expires_at = utcnow() - timedelta(seconds=1)
        db.add(record)
        db.commit()

    assert store.load("old") is None
    with Session(engine) as db:
        assert db.get(SessionRecord, "old") is None


def test_purge_expired(engine, store):
    store.save("live", {"a": 1}, 0)
    store.save("dead", {"a": 1}, 0)
    with Session(engine) as db:
        record = db.get(SessionRecord, "dead")
        record.expires_at = utcnow() - timedelta(minutes=5)
        db.add(record)
        db.commit()

    assert store.purge_expired() == 1
    assert store.load("live") is not None


def test_server_session_tracks_changes_and_rotation(store):
    session = ServerSession(store)
    assert not session.dirty
    session["uid"] = "u1"
    assert session.dirty
    session.persist_sync()
    assert session.stored and not session.dirty
    old_id = session.session_id

    session.rotate()
    assert session.dirty
    session.persist_sync()
    assert session.session_id != old_id
    assert store.load(old_id) is None
    assert store.load(session.session_id) == ({"uid": "u1"}, 1)


def test_cleared_session_deletes_its_record(store):
    session = ServerSession(store)
    session["uid"] = "u1"
    session.persist_sync()
    session_id = session.session_id

    session.clear()
    session.persist_sync()
    assert store.load(session_id) is None
    assert not session.stored


@pytest.mark.asyncio
async def test_concurrent_callbacks_consume_state_once(store):
    manager = StateTokenManager(ttl_seconds=600)
    origin = ServerSession(store)
    origin["theme"] = "dark"
    issued = manager.issue(
        origin, provider="github", mode="login", redirect_uri="http://testserver/cb"
    )
    origin.persist_sync()

    data, revision = store.load(origin.session_id)
    first = ServerSession(store, origin.session_id, data, revision)
    second = ServerSession(store, origin.session_id, dict(data), revision)

    won = await manager.consume(first)
    lost = await manager.consume(second)

    assert manager.verify(won, "github", issued.state) == won
    assert lost is None
    with pytest.raises(AuthError):
        manager.verify(lost, "github", issued.state)
    stored, _ = store.load(origin.session_id)
    assert "oauth_state" not in (stored.get(workflows.SESSION_KEY) or {})


def test_link_state_requires_a_signed_in_user(store):
    manager = StateTokenManager(ttl_seconds=600)
    with pytest.raises(AuthError) as excinfo:
        manager.issue(
            ServerSession(store), provider="github", mode="link", redirect_uri="http://x/cb"
        )
    assert excinfo.value.status_code == 401
    assert excinfo.value.reason.value == "missing_session_user"


@pytest.mark.asyncio
async def test_state_only_session_is_consumed_once(store):
    manager = StateTokenManager(ttl_seconds=600)
    origin = ServerSession(store)
    manager.issue(origin, provider="github", mode="login", redirect_uri="http://testserver/cb")
    origin.persist_sync()

    data, revision = store.load(origin.session_id)
    first = ServerSession(store, origin.session_id, data, revision)
    second = ServerSession(store, origin.session_id, dict(data), revision)

    assert await manager.consume(first) is not None
    assert await manager.consume(second) is None
    assert store.load(origin.session_id) is None


def test_delete_with_stale_revision_is_a_conflict(store):
    store.save("abc", {"n": 1}, 0)
    store.save("abc", {"n": 2}, 1)
    with pytest.raises(SessionConflict):
        store.delete("abc", revision=1)
    store.delete("abc", revision=2)
    assert store.load("abc") is None


def test_session_write_race_on_oauth_start_is_a_json_conflict(app, client, monkeypatch):
    register(client)
    resolve = app.state.callback_urls.resolve

    def resolve_while_another_tab_writes(provider, request):
        with Session(app.state.engine) as db:
            db.execute(update(SessionRecord).values(revision=SessionRecord.revision + 1))
            db.commit()
        return resolve(provider, request)

    monkeypatch.setattr(app.state.callback_urls, "resolve", resolve_while_another_tab_writes)

    response = client.get("/auth/github", follow_redirects=False)

    assert response.status_code == 409
    assert response.json()["reason"] == "session_conflict"


def test_remembered_sessions_get_the_longer_lifetime(engine):
    store = SessionStore(engine, ttl_seconds=3600, remember_ttl_seconds=86400)
    assert store.ttl_for({"uid": "1"}) == 3600
    assert store.ttl_for({"uid": "1", "remember": True}) == 86400
    assert SessionStore(engine, ttl_seconds=3600).ttl_for({"remember": True}) == 3600
