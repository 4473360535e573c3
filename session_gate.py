"""Request-scoped authentication state and login throttling.

The gate never stores anything itself. All state lives in the session mapping
handed in through :class:`SessionContext` (in the web app that mapping is the
signed session cookie), so two callers never share counters.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, MutableMapping, Optional

from auth import CredentialStore
from models import User

logger = logging.getLogger(__name__)


class AuthRequired(Exception):
    """Raised by the guards when the caller may not proceed."""


class LoginOutcome(str, Enum):
    success = "success"
    invalid = "invalid"
    locked_out = "locked_out"


@dataclass(frozen=True)
class ThrottlePolicy:
    name: str
    max_attempts: int
    cooldown_seconds: int
    locked_message: str
    invalid_message: str

    @property
    def attempts_key(self) -> str:
        return f"{self.name}_attempts"

    @property
    def last_attempt_key(self) -> str:
        return f"{self.name}_last_attempt_time"


USER_LOGIN_POLICY = ThrottlePolicy(
    name="login",
    max_attempts=5,
    cooldown_seconds=30,
    locked_message=(
        "För många misslyckade försök. Vänta ett par sekunder innan du försöker igen."
    ),
    invalid_message="Felaktigt användarnamn eller lösenord",
)

ADMIN_LOGIN_POLICY = ThrottlePolicy(
    name="admin_login",
    max_attempts=5,
    cooldown_seconds=300,
    locked_message=(
        "För många misslyckade försök. Vänta några minuter innan du försöker igen."
    ),
    invalid_message="Felaktiga administratörsuppgifter",
)


@dataclass(frozen=True)
class LoginResult:
    outcome: LoginOutcome
    user: Optional[User] = None
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome == LoginOutcome.success


class SessionContext:
    """Typed view over one caller's session mapping."""

    def __init__(self, data: MutableMapping[str, object]) -> None:
        self.data = data

    @property
    def user_id(self) -> Optional[int]:
        value = self.data.get("user_id")
        return int(value) if value is not None else None

    @property
    def username(self) -> Optional[str]:
        return self.data.get("username")

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.data.get("is_admin") is True

    def set_identity(self, user: User, *, admin: bool = False) -> None:
        self.data["user_id"] = user.id
        self.data["username"] = user.username
        self.data["is_admin"] = admin

    def attempts(self, policy: ThrottlePolicy) -> int:
        return int(self.data.get(policy.attempts_key) or 0)

    def last_attempt(self, policy: ThrottlePolicy) -> Optional[float]:
        value = self.data.get(policy.last_attempt_key)
        return float(value) if value is not None else None

    def record_failure(self, policy: ThrottlePolicy, now: float) -> int:
        attempts = self.attempts(policy) + 1
        self.data[policy.attempts_key] = attempts
        self.data[policy.last_attempt_key] = int(now)
        return attempts

    def reset_attempts(self, policy: ThrottlePolicy) -> None:
        self.data[policy.attempts_key] = 0
        self.data[policy.last_attempt_key] = None

    def flash(self, key: str, message: str) -> None:
        self.data[key] = message

    def pop_flash(self, key: str) -> Optional[str]:
        return self.data.pop(key, None)

    def clear(self) -> None:
        self.data.clear()


class SessionGate:
    def __init__(
        self,
        credentials: CredentialStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credentials = credentials
        self.clock = clock

    def is_locked_out(self, ctx: SessionContext, policy: ThrottlePolicy) -> bool:
        last = ctx.last_attempt(policy)
        if ctx.attempts(policy) < policy.max_attempts or last is None:
            return False
        return self.clock() - last < policy.cooldown_seconds

    def login(self, ctx: SessionContext, username: str, password: str) -> LoginResult:
        return self._attempt(
            ctx, USER_LOGIN_POLICY, self.credentials.verify, username, password
        )

    def admin_login(
        self, ctx: SessionContext, username: str, password: str
    ) -> LoginResult:
        return self._attempt(
            ctx, ADMIN_LOGIN_POLICY, self.credentials.verify_admin, username, password
        )

    def _attempt(
        self,
        ctx: SessionContext,
        policy: ThrottlePolicy,
        verify: Callable[[str, str], Optional[User]],
        username: str,
        password: str,
    ) -> LoginResult:
        if self.is_locked_out(ctx, policy):
            logger.info(f"{policy.name}_locked_out: username={username!r}")
            return LoginResult(LoginOutcome.locked_out, message=policy.locked_message)

        user = verify(username, password)
        if user is None:
            attempts = ctx.record_failure(policy, self.clock())
            logger.info(
                f"{policy.name}_failed: username={username!r} attempts={attempts}"
            )
            return LoginResult(LoginOutcome.invalid, message=policy.invalid_message)

        ctx.set_identity(user, admin=policy is ADMIN_LOGIN_POLICY)
        ctx.reset_attempts(policy)
        logger.info(f"{policy.name}_succeeded: user_id={user.id}")
        return LoginResult(LoginOutcome.success, user=user)

    def logout(self, ctx: SessionContext) -> None:
        ctx.clear()

    def require_authenticated(self, ctx: SessionContext) -> int:
        if not ctx.is_authenticated:
            raise AuthRequired()
        return ctx.user_id

    def require_admin(self, ctx: SessionContext) -> int:
        if not (ctx.is_authenticated and ctx.is_admin):
            raise AuthRequired()
        return ctx.user_id
