# alchemist/services/auth_context.py
"""
Per-tab authentication state.

AuthContext mirrors the identity provider's session for one client tab. The
provider stays the source of truth: transitions come from its session-change
callback or from re-reading its current session after another tab announces a
sign-in/sign-out. The context never decides on its own that the user is
signed out.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol
from urllib.parse import quote

from ..errors import AuthError
from .broadcast import SIGNED_IN, SIGNED_OUT, CrossTabAuthBroadcaster, CrossTabAuthEvent
from .notifications import Notifier

logger = logging.getLogger(__name__)

TOKEN_REFRESHED = "TOKEN_REFRESHED"
USER_UPDATED = "USER_UPDATED"


def provider_field(obj: Any, name: str, default=None):
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class Session:
    access_token: str
    user: AuthUser
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None

    @classmethod
    def from_provider(cls, raw: Any) -> Optional["Session"]:
        """Accepts a supabase-auth Session model or a plain dict."""
        if raw is None or isinstance(raw, Session):
            return raw
        token = provider_field(raw, "access_token")
        user = provider_field(raw, "user")
        uid = provider_field(user, "id")
        if not token or not uid:
            return None
        return cls(
            access_token=token,
            user=AuthUser(id=str(uid), email=provider_field(user, "email")),
            refresh_token=provider_field(raw, "refresh_token"),
            expires_at=provider_field(raw, "expires_at"),
        )


SessionCallback = Callable[[str, Optional[Session]], None]


class SessionStore(Protocol):
    def get_current_session(self) -> Optional[Session]: ...
    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]: ...
    def sign_out(self) -> None: ...
    def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str: ...


class SupabaseSessionStore:
    """SessionStore over a supabase-py client's `auth` namespace."""

    def __init__(self, client):
        self.auth = client.auth

    def get_current_session(self) -> Optional[Session]:
        try:
            return Session.from_provider(self.auth.get_session())
        except Exception as e:
            raise AuthError("Could not read the current session.", cause=e) from e

    def on_session_change(self, callback: SessionCallback) -> Callable[[], None]:
        def relay(event, raw_session):
            callback(str(event), Session.from_provider(raw_session))

        subscription = self.auth.on_auth_state_change(relay)
        return subscription.unsubscribe

    def sign_out(self) -> None:
        try:
            self.auth.sign_out()
        except Exception as e:
            raise AuthError("Sign out failed. Please try again.", cause=e) from e

    def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        try:
            resp = self.auth.sign_in_with_oauth({
                "provider": provider,
                "options": {"redirect_to": redirect_to, "query_params": {"prompt": "consent"}},
            })
        except Exception as e:
            raise AuthError(f"Could not start {provider} sign-in.", cause=e) from e
        return provider_field(resp, "url")


class AuthState(str, Enum):
    INITIALIZING = "initializing"
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


class AuthContext:
    """
    Lifecycle: init() once per tab, dispose() when the tab goes away.
    Consumers subscribe(listener) and receive (state, session) on every change.
    """

    def __init__(self, store: SessionStore, broadcaster: CrossTabAuthBroadcaster, notifier: Optional[Notifier] = None):
        self.store = store
        self.broadcaster = broadcaster
        self.notifier = notifier or Notifier()
        self.state = AuthState.INITIALIZING
        self.session: Optional[Session] = None
        self._last_remote_ts = 0
        self._listeners: list[Callable[[AuthState, Optional[Session]], None]] = []
        self._unsubscribers: list[Callable[[], None]] = []

    # ---------- derived state ----------
    @property
    def user(self) -> Optional[AuthUser]:
        return self.session.user if self.session else None

    @property
    def is_loading(self) -> bool:
        return self.state is AuthState.INITIALIZING

    @property
    def is_authenticated(self) -> bool:
        return self.state is AuthState.AUTHENTICATED

    # ---------- lifecycle ----------
    def init(self) -> "AuthContext":
        if not self._unsubscribers:
            self._unsubscribers.append(self.store.on_session_change(self._on_store_event))
            self._unsubscribers.append(self.broadcaster.subscribe(self._on_remote_event))
        if self.state is not AuthState.INITIALIZING:
            return self
        try:
            session = self.store.get_current_session()
        except AuthError:
            logger.exception("initial session check failed; staying in %s", self.state.value)
            raise
        if self.state is AuthState.INITIALIZING:
            self._apply(session)
        return self

    def dispose(self) -> None:
        while self._unsubscribers:
            unsubscribe = self._unsubscribers.pop()
            try:
                unsubscribe()
            except Exception:
                logger.exception("auth unsubscribe failed")
        self._listeners.clear()

    def subscribe(self, listener: Callable[[AuthState, Optional[Session]], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    # ---------- actions ----------
    def sign_out(self) -> None:
        try:
            self.store.sign_out()
        except AuthError as e:
            self.notifier.error("Sign out failed", e.message)
            raise

    def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        return self.store.sign_in_with_oauth(provider, redirect_to)

    def guard(self, path: str, login_path: str = "/login") -> Optional[str]:
        """None = render; 'loading' = wait; otherwise the login path to redirect to."""
        if self.is_loading:
            return "loading"
        if self.session is None:
            return f"{login_path}?next={quote(path, safe='/')}"
        return None

    # ---------- event handling ----------
    def _on_store_event(self, event: str, session: Optional[Session]) -> None:
        previous = self.state
        self._apply(session)
        if event in (TOKEN_REFRESHED, USER_UPDATED):
            return
        if event in (SIGNED_IN, SIGNED_OUT) and previous is not self.state:
            self.broadcaster.publish(event)

    def _on_remote_event(self, event: CrossTabAuthEvent) -> None:
        if event.timestamp <= self._last_remote_ts:
            logger.debug("ignoring stale auth broadcast %s@%s", event.type, event.timestamp)
            return
        self._last_remote_ts = event.timestamp
        logger.info("another tab reported %s; re-checking session", event.type)
        try:
            session = self.store.get_current_session()
        except AuthError:
            logger.exception("session re-check after broadcast failed")
            return
        self._apply(session)

    def _apply(self, session: Optional[Session]) -> None:
        previous = self.state
        self.session = session
        self.state = AuthState.AUTHENTICATED if session else AuthState.ANONYMOUS
        if previous is not self.state:
            logger.info("auth state %s -> %s", previous.value, self.state.value)
        for listener in list(self._listeners):
            listener(self.state, self.session)
