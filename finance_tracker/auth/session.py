"""
Session Context

Holds the authenticated identity that scopes every data request, and
tells subscribers whenever it changes.

DESIGN DECISION: The identity lives in exactly one place. The store never
caches its own copy of "who is signed in"; it reacts to change events.

Session lifecycle:
1. restore_session() at startup (never raises; falls back to signed out)
2. sign-in by OAuth redirect, or by email and password
3. refresh() as the access token nears expiry
4. sign_out() (raises if the auth service rejects it)

A session file, when configured, lets a restarted app pick the session up
again. It holds tokens, so it is written owner-readable only.
"""

import inspect
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

import structlog
from pydantic import ValidationError

from finance_tracker.audit import AuditLogger
from finance_tracker.models.audit import AuditEventBuilder
from finance_tracker.models.auth import AuthChangeEvent, AuthSession, Identity, OAuthRequest
from finance_tracker.services.backend.interface import AuthBackend, AuthError


logger = structlog.get_logger(__name__)

AuthListener = Callable[
    [AuthChangeEvent, Optional[Identity]],
    Union[None, Awaitable[None]],
]


class SessionContext:
    """
    The current user's session.

    Usage:
        session = SessionContext(SupabaseAuth(client))
        session.subscribe(store.handle_auth_change)
        await session.restore_session()
    """

    def __init__(
        self,
        auth_backend: AuthBackend,
        session_file: Optional[Path] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._auth = auth_backend
        self._session_file = session_file
        self._audit = audit_logger or AuditLogger()
        self._session: Optional[AuthSession] = None
        self._pending_oauth: Optional[OAuthRequest] = None
        self._listeners: list[AuthListener] = []

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    @property
    def identity(self) -> Optional[Identity]:
        return self._session.user if self._session else None

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    @property
    def oauth_in_progress(self) -> bool:
        return self._pending_oauth is not None

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """
        Register a listener for identity changes.

        Listeners are called with (event, identity) and may be coroutines.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, event: AuthChangeEvent) -> None:
        identity = self.identity
        for listener in list(self._listeners):
            try:
                result = listener(event, identity)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                # One failing listener must not block the others
                logger.error(
                    "auth_listener_failed",
                    auth_event=event.value,
                    error=str(e),
                    exc_info=True,
                )

    async def _set_session(self, session: AuthSession, event: AuthChangeEvent) -> None:
        self._session = session
        self._persist()
        await self._notify(event)

    # -------------------------------------------------------------------------
    # Sign-in
    # -------------------------------------------------------------------------

    def sign_in_with_google(self, redirect_to: Optional[str] = None) -> str:
        """
        Start an OAuth sign-in with Google.

        The identity arrives later, through complete_oauth_sign_in() and
        the SIGNED_IN notification.

        Returns:
            The provider URL to send the browser to
        """
        self._pending_oauth = self._auth.authorization_request("google", redirect_to)
        logger.info("oauth_sign_in_started", provider="google")
        return self._pending_oauth.url

    async def complete_oauth_sign_in(
        self,
        auth_code: str,
        code_verifier: Optional[str] = None,
    ) -> Identity:
        """
        Finish an OAuth sign-in with the code from the redirect.

        Raises:
            AuthError: If no sign-in is pending or the code is rejected
        """
        if code_verifier is None:
            if self._pending_oauth is None:
                raise AuthError("No OAuth sign-in is in progress")
            code_verifier = self._pending_oauth.code_verifier
            provider = self._pending_oauth.provider
        else:
            provider = "oauth"

        session = await self._auth.exchange_code(auth_code, code_verifier)
        self._pending_oauth = None

        self._audit.log(AuditEventBuilder.signed_in(session.user.id, provider))
        await self._set_session(session, AuthChangeEvent.SIGNED_IN)
        return session.user

    async def sign_in_with_password(self, email: str, password: str) -> Identity:
        """
        Raises:
            AuthError: If the credentials are rejected
        """
        session = await self._auth.sign_in_with_password(email.strip(), password)
        self._audit.log(AuditEventBuilder.signed_in(session.user.id, "password"))
        await self._set_session(session, AuthChangeEvent.SIGNED_IN)
        return session.user

    async def sign_up(
        self,
        email: str,
        password: str,
        full_name: Optional[str] = None,
    ) -> Optional[Identity]:
        """
        Register a new account.

        Returns:
            The new identity if the service signed the user straight in,
            or None when email confirmation is required first
        """
        metadata = {"full_name": full_name} if full_name else {}
        session = await self._auth.sign_up(email.strip(), password, metadata)
        if session is None:
            logger.info("sign_up_pending_confirmation")
            return None

        self._audit.log(AuditEventBuilder.signed_in(session.user.id, "sign_up"))
        await self._set_session(session, AuthChangeEvent.SIGNED_IN)
        return session.user

    # -------------------------------------------------------------------------
    # Session maintenance
    # -------------------------------------------------------------------------

    async def restore_session(self) -> Optional[Identity]:
        """
        Look for an existing session at startup.

        An expired token is refreshed. Any failure is logged and resolves
        to signed out. Never raises.

        Returns:
            The restored identity, or None
        """
        try:
            session = self._session or self._read_persisted()
            if session is not None:
                session, refreshed = await self._revalidate(session)
                self._session = session
                self._persist()
                self._audit.log(AuditEventBuilder.session_restored(session.user.id, refreshed))
        except Exception as e:
            logger.warning("session_restore_failed", error=str(e))
            self._audit.log(AuditEventBuilder.session_restore_failed(str(e)))
            self._session = None
            self._clear_persisted()

        await self._notify(AuthChangeEvent.INITIAL_SESSION)
        return self.identity

    async def _revalidate(self, session: AuthSession) -> tuple[AuthSession, bool]:
        if session.is_expired():
            return await self._auth.refresh_session(session.refresh_token), True
        try:
            user = await self._auth.get_user(session.access_token)
        except AuthError:
            # Revoked or expired server-side before its stated expiry
            return await self._auth.refresh_session(session.refresh_token), True
        return session.model_copy(update={"user": user}), False

    async def refresh(self) -> Identity:
        """
        Exchange the refresh token for a new access token.

        Raises:
            AuthError: If not signed in or the refresh token is rejected
        """
        if self._session is None:
            raise AuthError("Not signed in")
        session = await self._auth.refresh_session(self._session.refresh_token)
        await self._set_session(session, AuthChangeEvent.TOKEN_REFRESHED)
        return session.user

    async def ensure_fresh(self) -> None:
        """Refresh the access token if it has expired or is about to."""
        if self._session is not None and self._session.is_expired():
            await self.refresh()

    async def sign_out(self) -> None:
        """
        End the session.

        Raises:
            AuthError: If the auth service rejects the sign-out; the
                session is kept in that case
        """
        if self._session is not None:
            await self._auth.sign_out(self._session.access_token)

        user_id = self._session.user.id if self._session else None
        self._session = None
        self._pending_oauth = None
        self._clear_persisted()

        self._audit.log(AuditEventBuilder.signed_out(user_id))
        await self._notify(AuthChangeEvent.SIGNED_OUT)

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _read_persisted(self) -> Optional[AuthSession]:
        if self._session_file is None or not self._session_file.exists():
            return None
        try:
            return AuthSession.model_validate_json(self._session_file.read_text(encoding="utf-8"))
        except ValidationError as e:
            logger.warning("session_file_invalid", path=str(self._session_file), error=str(e))
            self._clear_persisted()
            return None

    def _persist(self) -> None:
        if self._session_file is None or self._session is None:
            return
        try:
            self._session_file.parent.mkdir(parents=True, exist_ok=True)
            self._session_file.write_text(self._session.model_dump_json(), encoding="utf-8")
            self._session_file.chmod(0o600)
        except OSError as e:
            logger.warning("session_persist_failed", path=str(self._session_file), error=str(e))

    def _clear_persisted(self) -> None:
        if self._session_file is None:
            return
        try:
            self._session_file.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("session_clear_failed", path=str(self._session_file), error=str(e))
