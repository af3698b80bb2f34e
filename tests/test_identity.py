import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from hubble_auth.models import OAuthAccount, User
from hubble_auth.providers import NormalizedIdentity
from hubble_auth.services.errors import AuthError
from hubble_auth.services.identity import IdentityResolver, Outcome
from hubble_auth.services.linking import AccountLinkingGuard
from hubble_auth.services.passwords import PasswordHasher
from hubble_auth.services.usernames import canonical


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
def db(engine):
    with Session(engine) as session:
        yield session


def identity(account_id="1", username="octocat", email="octocat@example.com", verified=True, provider="github"):
    return NormalizedIdentity(
        provider=provider,
        provider_account_id=account_id,
        username=username,
        display_name="Octo",
        email=email,
        email_verified=verified,
        access_token="tok",
    )


def make_user(db, hasher, username, email=None, has_password=True):
    user = User(
        username=username,
        username_lower=canonical(username),
        email=email,
        password_hash=hasher.hash("hunter22"),
        has_set_password=has_password,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def test_login_creates_user_with_unusable_password(db, hasher):
    resolution = IdentityResolver(db, hasher).resolve(identity(), mode="login")

    assert resolution.outcome is Outcome.CREATED
    assert resolution.auth_status == "success"
    user = resolution.user
    assert user.username == "octocat"
    assert user.has_set_password is False
    assert not hasher.verify("", user.password_hash)
    assert len(db.exec(select(OAuthAccount)).all()) == 1


def test_conflict_is_deferred_without_writes(db, hasher):
    make_user(db, hasher, "Octocat", "someone@example.com")

    resolution = IdentityResolver(db, hasher).resolve(identity(), mode="login")

    assert resolution.outcome is Outcome.CONFLICT_DEFERRED
    assert resolution.base_username == "octocat"
    assert resolution.user is None
    assert len(db.exec(select(User)).all()) == 1
    assert db.exec(select(OAuthAccount)).all() == []


def test_base_username_is_sanitized(db, hasher):
    resolution = IdentityResolver(db, hasher).resolve(
        identity(username="Octo-Cat_99"), mode="login"
    )
    assert resolution.user.username == "octocat99"


def test_email_match_is_case_insensitive(db, hasher):
    local = make_user(db, hasher, "octo", "OctoCat@Example.com")

    resolution = IdentityResolver(db, hasher).resolve(identity(), mode="login")

    assert resolution.outcome is Outcome.LOGGED_IN
    assert resolution.user.id == local.id


def test_link_requires_initiating_user(db, hasher):
    resolver = IdentityResolver(db, hasher)
    with pytest.raises(AuthError) as excinfo:
        resolver.resolve(identity(), mode="link", initiating_user_id=None)
    assert excinfo.value.reason.value == "missing_session_user"
    with pytest.raises(AuthError):
        resolver.resolve(identity(), mode="link", initiating_user_id="not-a-uuid")


def test_relinking_own_identity_refreshes_it(db, hasher):
    user = make_user(db, hasher, "alice", "alice@example.com")
    resolver = IdentityResolver(db, hasher)
    resolver.resolve(identity(), mode="link", initiating_user_id=str(user.id))

    resolution = resolver.resolve(
        identity(username="renamed"), mode="link", initiating_user_id=str(user.id)
    )

    assert resolution.outcome is Outcome.LINKED
    [account] = db.exec(select(OAuthAccount)).all()
    assert account.username == "renamed"


def test_link_owned_elsewhere_writes_nothing(db, hasher):
    owner = make_user(db, hasher, "owner", "owner@example.com")
    other = make_user(db, hasher, "other", "other@example.com")
    resolver = IdentityResolver(db, hasher)
    resolver.resolve(identity(), mode="link", initiating_user_id=str(owner.id))

    with pytest.raises(AuthError) as excinfo:
        resolver.resolve(identity(username="hijack"), mode="link", initiating_user_id=str(other.id))

    assert excinfo.value.status_code == 409
    [account] = db.exec(select(OAuthAccount)).all()
    assert account.user_id == owner.id
    assert account.username == "octocat"


def test_lost_insert_race_resolves_to_the_winner(engine, hasher, monkeypatch):
    # Another callback creates the same identity between our lookup and insert.
    with Session(engine) as winner_db:
        winner = IdentityResolver(winner_db, hasher).resolve(identity(), mode="login").user
        winner_id = winner.id

    with Session(engine) as db:
        resolver = IdentityResolver(db, hasher)
        real_find = resolver.find_account
        calls = {"n": 0}

        def stale_find(provider, provider_account_id):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return real_find(provider, provider_account_id)

        monkeypatch.setattr(resolver, "find_account", stale_find)
        monkeypatch.setattr(resolver, "find_user_by_email", lambda email: None)
        monkeypatch.setattr(
            "hubble_auth.services.identity.is_username_taken", lambda session, name: False
        )

        resolution = resolver.resolve(identity(), mode="login")

        assert resolution.outcome is Outcome.LOGGED_IN
        assert resolution.user.id == winner_id
        assert len(db.exec(select(OAuthAccount)).all()) == 1
        assert len(db.exec(select(User)).all()) == 1


def test_identity_cannot_map_to_two_accounts(db, hasher):
    first = make_user(db, hasher, "first")
    second = make_user(db, hasher, "second")
    db.add(OAuthAccount(provider="github", provider_account_id="1", user_id=first.id))
    db.commit()

    db.add(OAuthAccount(provider="github", provider_account_id="1", user_id=second.id))
    with pytest.raises(IntegrityError):
        db.commit()


def test_guard_counts_password_and_other_providers(db, hasher):
    user = make_user(db, hasher, "alice", has_password=False)
    resolver = IdentityResolver(db, hasher)
    resolver.resolve(identity(), mode="link", initiating_user_id=str(user.id))
    resolver.resolve(
        identity(account_id="g1", provider="google"), mode="link", initiating_user_id=str(user.id)
    )
    guard = AccountLinkingGuard(db)

    guard.unlink(user, "google")
    with pytest.raises(AuthError) as excinfo:
        guard.unlink(user, "github")
    assert excinfo.value.reason.value == "cannot_unlink_only_method"
    with pytest.raises(AuthError) as excinfo:
        guard.unlink(user, "google")
    assert excinfo.value.status_code == 404


def test_concurrent_unlinks_keep_one_sign_in_method(engine, db, hasher, monkeypatch):
    user = make_user(db, hasher, "alice", has_password=False)
    user_id = user.id
    db.add(OAuthAccount(provider="github", provider_account_id="1", user_id=user_id))
    db.add(OAuthAccount(provider="google", provider_account_id="g1", user_id=user_id))
    db.commit()

    with Session(engine) as first_db:
        first = AccountLinkingGuard(first_db)
        counted = first.remaining_methods

        def count_then_lose_race(owner, without):
            remaining = counted(owner, without)
            # The other tab unlinks Google after our count and before our delete.
            with Session(engine) as second_db:
                AccountLinkingGuard(second_db).unlink(second_db.get(User, user_id), "google")
            return remaining

        monkeypatch.setattr(first, "remaining_methods", count_then_lose_race)

        with pytest.raises(AuthError) as excinfo:
            first.unlink(first_db.get(User, user_id), "github")
        assert excinfo.value.reason.value == "cannot_unlink_only_method"

    with Session(engine) as check_db:
        remaining = check_db.exec(select(OAuthAccount).where(OAuthAccount.user_id == user_id)).all()
        assert [account.provider for account in remaining] == ["github"]
