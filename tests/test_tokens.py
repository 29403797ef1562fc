"""Tests for refresh-token rotation, theft detection and revocation."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from auth.service import ClientContext
from auth.tokens import TokenService
from core.errors import NotFound, Unauthorized
from core.identity import LocalTokenVerifier
from database import Base
from models.refresh_token import RefreshToken
from models.user import User
from conftest import PASSWORD

CLIENT = ClientContext(ip_address="198.51.100.4", user_agent="pytest")


@pytest.fixture
def user(make_user):
    return make_user("tokens@example.com")


def _login(auth_service):
    return auth_service.login("tokens@example.com", PASSWORD, client=CLIENT).tokens


def _live_tokens(db, user_id):
    db.expire_all()
    return (
        db.query(RefreshToken)
        .filter(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
        .count()
    )


class TestAccessToken:
    def test_access_token_carries_identity(self, auth_service, user, settings):
        tokens = _login(auth_service)
        principal = LocalTokenVerifier(settings.secret_key).verify(tokens.access_token)
        assert principal.user_id == user.id
        assert principal.email == "tokens@example.com"
        assert tokens.expires_in == 15 * 60

    def test_refresh_token_is_not_an_access_token(self, auth_service, user, settings):
        tokens = _login(auth_service)
        with pytest.raises(Unauthorized):
            LocalTokenVerifier(settings.secret_key).verify(tokens.refresh_token)


class TestRotation:
    def test_refresh_rotates(self, auth_service, user, db):
        first = _login(auth_service)
        second = auth_service.refresh(first.refresh_token, CLIENT)
        assert second.refresh_token != first.refresh_token
        assert _live_tokens(db, user.id) == 1

    def test_reuse_revokes_every_session(self, auth_service, user, db):
        stolen = _login(auth_service)
        other_device = _login(auth_service)

        rotated = auth_service.refresh(stolen.refresh_token, CLIENT)

        with pytest.raises(Unauthorized) as exc:
            auth_service.refresh(stolen.refresh_token, CLIENT)
        assert "revoked" in exc.value.message
        assert _live_tokens(db, user.id) == 0

        # tokens that were valid before the reuse are dead too
        with pytest.raises(Unauthorized):
            auth_service.refresh(other_device.refresh_token, CLIENT)
        with pytest.raises(Unauthorized):
            auth_service.refresh(rotated.refresh_token, CLIENT)

    def test_parallel_rotation_has_one_winner(self, tmp_path, settings, clock):
        engine = create_engine(
            f"sqlite:///{tmp_path}/tokens.db",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(engine)
        factory = sessionmaker(bind=engine, autoflush=False)

        with factory() as setup:
            owner = User(email="racer@example.com", password_hash="x", role="USER", status="ACTIVE")
            setup.add(owner)
            setup.commit()
            pair = TokenService(setup, settings, clock).issue_pair(owner, "198.51.100.4", "pytest")
            setup.commit()

        start = threading.Barrier(8)

        def _rotate(_):
            with factory() as session:
                tokens = TokenService(session, settings, clock)
                start.wait()
                try:
                    tokens.rotate(pair.refresh_token, "198.51.100.4", "pytest")
                except Unauthorized as exc:
                    return exc.message
                return "ok"

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(_rotate, range(8)))

        assert results.count("ok") == 1
        assert sorted(set(results) - {"ok"}) == ["Refresh token has been revoked. Please sign in again."]
        engine.dispose()

    def test_expired_refresh_token_is_rejected(self, auth_service, user, db):
        tokens = _login(auth_service)
        db.query(RefreshToken).update(
            {RefreshToken.expires_at: auth_service.clock() - timedelta(seconds=1)}
        )
        db.commit()
        with pytest.raises(Unauthorized) as exc:
            auth_service.refresh(tokens.refresh_token, CLIENT)
        assert "expired" in exc.value.message

    def test_garbage_refresh_token_is_rejected(self, auth_service, user):
        with pytest.raises(Unauthorized):
            auth_service.refresh("not-a-jwt", CLIENT)

    def test_refresh_fails_for_deactivated_user(self, auth_service, user, db):
        tokens = _login(auth_service)
        user.is_active = False
        db.commit()
        with pytest.raises(Unauthorized):
            auth_service.refresh(tokens.refresh_token, CLIENT)


class TestRevocation:
    def test_logout_revokes_only_presented_token(self, auth_service, user, db):
        first = _login(auth_service)
        _login(auth_service)
        assert auth_service.logout(user.id, first.refresh_token) == 1
        assert _live_tokens(db, user.id) == 1

    def test_logout_with_invalid_token_is_noop(self, auth_service, user, db):
        _login(auth_service)
        assert auth_service.logout(user.id, "garbage") == 0
        assert auth_service.logout(user.id, None) == 0
        assert _live_tokens(db, user.id) == 1

    def test_logout_all_is_idempotent(self, auth_service, user):
        _login(auth_service)
        _login(auth_service)
        assert auth_service.logout_all(user.id) == 2
        assert auth_service.logout_all(user.id) == 0

    def test_change_password_revokes_all_tokens(self, auth_service, user, db):
        tokens = _login(auth_service)
        auth_service.change_password(user.id, PASSWORD, "NewSecret456")
        assert _live_tokens(db, user.id) == 0
        with pytest.raises(Unauthorized):
            auth_service.refresh(tokens.refresh_token, CLIENT)
        assert auth_service.login("tokens@example.com", "NewSecret456").tokens is not None

    def test_change_password_requires_old_password(self, auth_service, user, db):
        _login(auth_service)
        with pytest.raises(Unauthorized):
            auth_service.change_password(user.id, "WrongPass1", "NewSecret456")
        assert _live_tokens(db, user.id) == 1

    def test_sessions_list_and_revoke(self, auth_service, user):
        _login(auth_service)
        _login(auth_service)
        sessions = auth_service.list_sessions(user.id)
        assert len(sessions) == 2
        assert sessions[0].ip_address == "198.51.100.4"

        auth_service.revoke_session(user.id, sessions[0].id)
        assert len(auth_service.list_sessions(user.id)) == 1
        with pytest.raises(NotFound):
            auth_service.revoke_session(user.id, sessions[0].id)

    def test_cleanup_deletes_revoked_and_expired(self, auth_service, user, db):
        kept = _login(auth_service)
        revoked = _login(auth_service)
        auth_service.logout(user.id, revoked.refresh_token)
        _login(auth_service)
        latest = db.query(RefreshToken).order_by(RefreshToken.id.desc()).first()
        latest.expires_at = auth_service.clock() - timedelta(days=1)
        db.commit()

        assert auth_service.cleanup_expired_tokens() == 2
        db.expire_all()
        assert db.query(RefreshToken).count() == 1
        assert auth_service.refresh(kept.refresh_token, CLIENT).access_token
