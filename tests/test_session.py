"""
Tests for the session context.
"""

import stat
from datetime import datetime, timedelta, timezone

import pytest

from conftest import EMAIL, PASSWORD
from finance_tracker.auth import SessionContext
from finance_tracker.models.audit import AuditEventType
from finance_tracker.models.auth import AuthChangeEvent, AuthSession, Identity
from finance_tracker.services.backend import (
    AuthError,
    BackendConnectionError,
    InMemoryAuth,
)


class Recorder:
    """Collects (event, identity) notifications."""

    def __init__(self):
        self.events: list[tuple[AuthChangeEvent, object]] = []

    def __call__(self, event, identity):
        self.events.append((event, identity))

    @property
    def kinds(self) -> list[AuthChangeEvent]:
        return [event for event, _ in self.events]


class TestListeners:
    """Tests for identity change notifications."""

    @pytest.mark.asyncio
    async def test_sign_in_and_out_notify(self, session):
        """Test that listeners see sign-in and sign-out."""
        recorder = Recorder()
        session.subscribe(recorder)

        identity = await session.sign_in_with_password(EMAIL, PASSWORD)
        await session.sign_out()

        assert recorder.kinds == [AuthChangeEvent.SIGNED_IN, AuthChangeEvent.SIGNED_OUT]
        assert recorder.events[0][1].id == identity.id
        assert recorder.events[1][1] is None
        assert not session.is_authenticated

    @pytest.mark.asyncio
    async def test_async_listener_is_awaited(self, session):
        """Test that coroutine listeners finish before the call returns."""
        seen = []

        async def listener(event, identity):
            seen.append(event)

        session.subscribe(listener)
        await session.sign_in_with_password(EMAIL, PASSWORD)
        assert seen == [AuthChangeEvent.SIGNED_IN]

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self, session):
        """Test that one broken listener is logged and skipped."""
        def broken(event, identity):
            raise RuntimeError("boom")

        recorder = Recorder()
        session.subscribe(broken)
        session.subscribe(recorder)

        await session.sign_in_with_password(EMAIL, PASSWORD)
        assert recorder.kinds == [AuthChangeEvent.SIGNED_IN]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, session):
        """Test removing a listener."""
        recorder = Recorder()
        unsubscribe = session.subscribe(recorder)
        unsubscribe()
        unsubscribe()

        await session.sign_in_with_password(EMAIL, PASSWORD)
        assert recorder.events == []


class TestPasswordSignIn:
    """Tests for email and password sign-in."""

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, session):
        """Test that a wrong password raises and leaves the user signed out."""
        with pytest.raises(AuthError, match="Invalid login credentials"):
            await session.sign_in_with_password(EMAIL, "wrong")
        assert session.identity is None

    @pytest.mark.asyncio
    async def test_email_is_trimmed(self, session):
        """Test that stray whitespace around the email is ignored."""
        identity = await session.sign_in_with_password(f"  {EMAIL} ", PASSWORD)
        assert identity.email == EMAIL
        assert session.access_token

    @pytest.mark.asyncio
    async def test_sign_in_is_audited(self, session, audit_logger):
        """Test that sign-ins land in the audit trail."""
        await session.sign_in_with_password(EMAIL, PASSWORD)
        event = audit_logger.recent_events(1)[0]
        assert event.event_type == AuditEventType.SIGNED_IN
        assert event.details["method"] == "password"


class TestSignUp:
    """Tests for registration."""

    @pytest.mark.asyncio
    async def test_sign_up_signs_in(self, session):
        """Test a sign-up that returns a session straight away."""
        recorder = Recorder()
        session.subscribe(recorder)

        identity = await session.sign_up("new@example.com", "secret-pw", full_name="New User")
        assert identity.full_name == "New User"
        assert recorder.kinds == [AuthChangeEvent.SIGNED_IN]

    @pytest.mark.asyncio
    async def test_sign_up_pending_confirmation(self):
        """Test that no session exists until the email is confirmed."""
        session = SessionContext(InMemoryAuth(require_email_confirmation=True))
        recorder = Recorder()
        session.subscribe(recorder)

        assert await session.sign_up("new@example.com", "secret-pw") is None
        assert not session.is_authenticated
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_existing_email(self, session):
        """Test registering an email twice."""
        with pytest.raises(AuthError, match="already registered"):
            await session.sign_up(EMAIL, "another-pw")


class TestOAuth:
    """Tests for the redirect sign-in flow."""

    @pytest.mark.asyncio
    async def test_full_flow(self, session, auth):
        """Test starting and completing a Google sign-in."""
        url = session.sign_in_with_google()
        assert "provider=google" in url
        assert session.oauth_in_progress

        identity = Identity(id="google-user", email="g@example.com")
        auth.register_oauth_code("code-123", identity)

        recorder = Recorder()
        session.subscribe(recorder)
        signed_in = await session.complete_oauth_sign_in("code-123")

        assert signed_in.id == "google-user"
        assert not session.oauth_in_progress
        assert recorder.kinds == [AuthChangeEvent.SIGNED_IN]

    @pytest.mark.asyncio
    async def test_complete_without_start(self, session):
        """Test that a code without a pending sign-in is refused."""
        with pytest.raises(AuthError, match="No OAuth sign-in"):
            await session.complete_oauth_sign_in("code-123")

    @pytest.mark.asyncio
    async def test_bad_code(self, session):
        """Test that an unknown code is refused and keeps the flow pending."""
        session.sign_in_with_google()
        with pytest.raises(AuthError):
            await session.complete_oauth_sign_in("not-a-code")
        assert session.identity is None
        assert session.oauth_in_progress


class TestMaintenance:
    """Tests for refresh, restore and sign-out."""

    @pytest.mark.asyncio
    async def test_refresh_notifies(self, session):
        """Test that a token refresh keeps the identity and emits TOKEN_REFRESHED."""
        identity = await session.sign_in_with_password(EMAIL, PASSWORD)
        old_token = session.access_token

        recorder = Recorder()
        session.subscribe(recorder)
        refreshed = await session.refresh()

        assert refreshed.id == identity.id
        assert session.access_token != old_token
        assert recorder.kinds == [AuthChangeEvent.TOKEN_REFRESHED]

    @pytest.mark.asyncio
    async def test_refresh_signed_out(self, session):
        """Test refreshing with no session."""
        with pytest.raises(AuthError):
            await session.refresh()

    @pytest.mark.asyncio
    async def test_ensure_fresh_refreshes_expired_token(self, session):
        """Test that an expired token is replaced before use."""
        await session.sign_in_with_password(EMAIL, PASSWORD)
        expired = session.session.model_copy(
            update={"expires_at": datetime.now(timezone.utc) - timedelta(minutes=5)}
        )
        session._session = expired

        await session.ensure_fresh()
        assert session.access_token != expired.access_token
        assert not session.session.is_expired()

    @pytest.mark.asyncio
    async def test_sign_out_failure_keeps_session(self, session, auth):
        """Test that a rejected sign-out raises and leaves the user signed in."""
        await session.sign_in_with_password(EMAIL, PASSWORD)
        auth.fail_next("sign_out")

        recorder = Recorder()
        session.subscribe(recorder)

        with pytest.raises(AuthError):
            await session.sign_out()
        assert session.is_authenticated
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_restore_with_nothing(self, session):
        """Test startup with no saved session."""
        recorder = Recorder()
        session.subscribe(recorder)

        assert await session.restore_session() is None
        assert recorder.events == [(AuthChangeEvent.INITIAL_SESSION, None)]


class TestPersistence:
    """Tests for the session file."""

    @pytest.mark.asyncio
    async def test_session_survives_restart(self, auth, tmp_path):
        """Test that a second context picks up the saved session."""
        path = tmp_path / "session.json"
        first = SessionContext(auth, session_file=path)
        identity = await first.sign_in_with_password(EMAIL, PASSWORD)

        assert path.exists()
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

        second = SessionContext(auth, session_file=path)
        recorder = Recorder()
        second.subscribe(recorder)

        restored = await second.restore_session()
        assert restored.id == identity.id
        assert recorder.kinds == [AuthChangeEvent.INITIAL_SESSION]

    @pytest.mark.asyncio
    async def test_restore_refreshes_revoked_token(self, auth, tmp_path):
        """Test that a token rejected by the service is refreshed."""
        path = tmp_path / "session.json"
        first = SessionContext(auth, session_file=path)
        await first.sign_in_with_password(EMAIL, PASSWORD)
        old_token = first.access_token

        auth.expire_access_tokens()

        second = SessionContext(auth, session_file=path)
        restored = await second.restore_session()
        assert restored is not None
        assert second.access_token != old_token
        assert AuthSession.model_validate_json(path.read_text()).access_token == second.access_token

    @pytest.mark.asyncio
    async def test_restore_refreshes_expired_token(self, auth, tmp_path, audit_logger):
        """Test that a locally expired token is refreshed without a user lookup."""
        path = tmp_path / "session.json"
        first = SessionContext(auth, session_file=path)
        await first.sign_in_with_password(EMAIL, PASSWORD)
        expired = first.session.model_copy(
            update={"expires_at": datetime.now(timezone.utc) - timedelta(hours=1)}
        )
        path.write_text(expired.model_dump_json())

        second = SessionContext(auth, session_file=path, audit_logger=audit_logger)
        assert await second.restore_session() is not None

        event = audit_logger.recent_events(1)[0]
        assert event.event_type == AuditEventType.SESSION_RESTORED
        assert event.details["token_refreshed"] is True

    @pytest.mark.asyncio
    async def test_garbage_file(self, auth, tmp_path):
        """Test that an unreadable session file is discarded."""
        path = tmp_path / "session.json"
        path.write_text("{not json")

        session = SessionContext(auth, session_file=path)
        assert await session.restore_session() is None
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_restore_never_raises(self, auth, tmp_path, audit_logger):
        """Test that a backend outage during restore falls back to signed out."""
        path = tmp_path / "session.json"
        first = SessionContext(auth, session_file=path)
        await first.sign_in_with_password(EMAIL, PASSWORD)

        auth.fail_next("get_user", BackendConnectionError("unreachable"))
        second = SessionContext(auth, session_file=path, audit_logger=audit_logger)

        recorder = Recorder()
        second.subscribe(recorder)
        assert await second.restore_session() is None
        assert recorder.events == [(AuthChangeEvent.INITIAL_SESSION, None)]
        assert audit_logger.recent_events(1)[0].event_type == AuditEventType.SESSION_RESTORE_FAILED
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_sign_out_removes_file(self, auth, tmp_path):
        """Test that the saved session is deleted on sign-out."""
        path = tmp_path / "nested" / "session.json"
        session = SessionContext(auth, session_file=path)
        await session.sign_in_with_password(EMAIL, PASSWORD)
        assert path.exists()

        await session.sign_out()
        assert not path.exists()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
