"""
Session Context - bearer token, user snapshot and derived role view.

Owns the token issued at login, decodes its claim set defensively and derives
a normalized role set from it. Role and session-expiry changes are pushed to
subscribers through small reactive cells, so consumers never have to poll.

Persistence is pluggable through SessionStore (in-memory or JSON file).
"""

import base64
import binascii
import json
import math
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Generic, TypeVar

import structlog

from lab_catalog.core.errors import (
    SESSION_EXPIRED_MESSAGE,
    DecodeError,
    InactiveUserError,
    MissingSessionError,
)
from lab_catalog.core.roles import roles_from_claims
from lab_catalog.models.entities import LoginResponse, User

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TOKEN_KEY = "token"
USER_KEY = "user"
FIRST_LOGIN_TOKEN_KEY = "first_login_token"

# Claim names the identity provider has used for the numeric role hierarchy
HIERARCHY_CLAIMS: tuple[str, ...] = ("roles_hierarchy", "rolesHierarchy", "roles_h", "role_hierarchy")

# Field names accepted when the stored token is a JSON envelope
TOKEN_ENVELOPE_KEYS: tuple[str, ...] = ("token", "accessToken", "authToken")


class ReactiveCell(Generic[T]):
    """Holds a value and pushes every change to its subscribers."""

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        if value == self._value:
            return
        self._value = value
        for callback in list(self._subscribers):
            callback(value)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """
        Register a callback for future changes.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe


class SessionStore(ABC):
    """Persistence backend for the session (token, user, first-login token)."""

    @abstractmethod
    def load(self) -> dict[str, Any]:
        """Return the stored session fields (empty dict when nothing is stored)."""

    @abstractmethod
    def save(self, data: dict[str, Any]) -> None:
        """Replace the stored session fields."""


class MemorySessionStore(SessionStore):
    """Process-local store; the default."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def load(self) -> dict[str, Any]:
        return dict(self._data)

    def save(self, data: dict[str, Any]) -> None:
        self._data = dict(data)


class FileSessionStore(SessionStore):
    """
    JSON-file store, so a session survives process restarts.

    Corrupt files are treated as an empty session.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError, ValueError):
            logger.warning("session_file_unreadable", path=str(self.path))
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)


def clean_token(raw: str | None) -> str | None:
    """
    Strip the decorations a stored token may carry.

    Handles surrounding double quotes, a JSON envelope
    ({"token"|"accessToken"|"authToken"|"data": {"token"}}) and a Bearer prefix.
    """
    if not raw:
        return None
    token = raw.strip()
    if token.startswith('"') and token.endswith('"') and len(token) >= 2:
        token = token[1:-1].strip()

    if token.startswith("{"):
        try:
            envelope = json.loads(token)
        except ValueError:
            envelope = None
        if isinstance(envelope, dict):
            candidate = next((envelope[key] for key in TOKEN_ENVELOPE_KEYS if envelope.get(key)), None)
            if candidate is None and isinstance(envelope.get("data"), dict):
                candidate = envelope["data"].get("token")
            if isinstance(candidate, str):
                token = candidate.strip()

    if token.startswith("Bearer "):
        token = token[len("Bearer ") :].strip()
    return token or None


def decode_token_claims(token: str) -> dict[str, Any]:
    """
    Decode the claim set (middle segment) of a JWT-shaped token.

    The segment is base64url: converted to standard base64 and re-padded to a
    multiple of 4 before decoding. The signature is not verified; the server
    does that on every call.

    Raises:
        DecodeError: Malformed segment, bad padding, invalid JSON or non-object payload
    """
    parts = token.split(".")
    if len(parts) < 2:
        raise DecodeError("Token has no claim segment")

    segment = parts[1].replace("-", "+").replace("_", "/")
    segment += "=" * (-len(segment) % 4)
    try:
        payload = base64.b64decode(segment, validate=True)
        claims = json.loads(payload.decode("utf-8"))
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Token claim segment is not valid base64 JSON: {e}") from e

    if not isinstance(claims, dict):
        raise DecodeError("Token claim set is not an object")
    return claims


def _parse_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


class SessionContext:
    """
    Session state for one authenticated user.

    Attributes:
        roles: Cell holding the last computed role tuple
        session_expired: Cell holding the last session-expired message (None when none)
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize session context.

        Args:
            store: Persistence backend (default: in-memory)
            clock: Returns the current aware datetime (default: datetime.now(UTC))
        """
        self._store = store or MemorySessionStore()
        self._clock = clock or (lambda: datetime.now(UTC))
        self.roles: ReactiveCell[tuple[str, ...]] = ReactiveCell(())
        self.session_expired: ReactiveCell[str | None] = ReactiveCell(None)
        self.roles.set(self.current_roles())

    # ------------------------------------------------------------------
    # Token and user
    # ------------------------------------------------------------------

    @property
    def token(self) -> str | None:
        return clean_token(self._store.load().get(TOKEN_KEY))

    @property
    def user(self) -> User | None:
        raw = self._store.load().get(USER_KEY)
        if not isinstance(raw, dict):
            return None
        return User.model_validate(raw)

    @property
    def first_login_token(self) -> str | None:
        return self._store.load().get(FIRST_LOGIN_TOKEN_KEY)

    def require_user_id(self) -> int:
        """Return the authenticated user's id or raise MissingSessionError."""
        user = self.user
        if user is None or not user.id:
            raise MissingSessionError()
        return user.id

    def set_session(self, token: str, user: User) -> None:
        """Persist a token and user snapshot and recompute roles."""
        data = self._store.load()
        data[TOKEN_KEY] = token
        data[USER_KEY] = user.model_dump(mode="json")
        self._store.save(data)
        self.session_expired.set(None)
        self._recompute_roles()

    def complete_login(self, response: LoginResponse) -> None:
        """
        Apply a successful login response.

        Raises:
            InactiveUserError: The response describes a deactivated user
        """
        if response.user is not None and response.user.is_active is False:
            raise InactiveUserError()

        data = self._store.load()
        if response.token:
            data[TOKEN_KEY] = response.token
        if response.user is not None:
            data[USER_KEY] = response.user.model_dump(mode="json")
            if response.user.is_first_login and response.first_login_token:
                data[FIRST_LOGIN_TOKEN_KEY] = response.first_login_token
        self._store.save(data)
        self.session_expired.set(None)
        self._recompute_roles()
        logger.info("login_completed", user_id=response.user.id if response.user else None, roles=self.roles.value)

    def mark_first_login_completed(self) -> None:
        data = self._store.load()
        user = data.get(USER_KEY)
        if isinstance(user, dict):
            data[USER_KEY] = {**user, "is_first_login": False}
        data.pop(FIRST_LOGIN_TOKEN_KEY, None)
        self._store.save(data)
        self._recompute_roles()

    def logout(self) -> None:
        self._store.save({})
        self.roles.set(())
        logger.info("logout_completed")

    def notify_session_expired(self, message: str = SESSION_EXPIRED_MESSAGE) -> None:
        """Publish a session-expired message to subscribers."""
        self.session_expired.set(message)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def claims(self) -> dict[str, Any] | None:
        """Decoded claim set of the current token, or None when absent or undecodable."""
        token = self.token
        if not token:
            return None
        try:
            return decode_token_claims(token)
        except DecodeError as e:
            logger.debug("token_decode_failed", error=str(e))
            return None

    def current_roles(self) -> tuple[str, ...]:
        """
        Roles from the current token.

        An undecodable token and a token without roles both yield ().
        """
        return roles_from_claims(self.claims())

    def roles_hierarchy(self) -> int | None:
        claims = self.claims()
        if not claims:
            return None
        raw = next((claims[key] for key in HIERARCHY_CLAIMS if claims.get(key) is not None), None)
        value = _parse_number(raw)
        return int(value) if value is not None else None

    def expiry(self) -> datetime | None:
        """Expiry instant from the `exp` claim; None when missing or unparseable."""
        claims = self.claims()
        if not claims:
            return None
        seconds = _parse_number(claims.get("exp"))
        if seconds is None:
            return None
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None

    def is_expired(self) -> bool:
        """Fail-closed: a token without a readable `exp` counts as expired."""
        expires_at = self.expiry()
        if expires_at is None:
            return True
        return self._clock() >= expires_at

    def is_logged_in(self) -> bool:
        return self.token is not None and not self.is_expired()

    def _recompute_roles(self) -> None:
        self.roles.set(self.current_roles())
