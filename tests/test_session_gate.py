import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from auth import CredentialStore
from database import Base
from session_gate import (
    ADMIN_LOGIN_POLICY,
    USER_LOGIN_POLICY,
    AuthRequired,
    LoginOutcome,
    SessionContext,
    SessionGate,
)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _gate(session: Session, clock: FakeClock) -> SessionGate:
    store = CredentialStore(session)
    store.register("alice", "Secret1")
    store.register_admin("root", "Admin123")
    return SessionGate(store, clock=clock)


def test_login_success_sets_identity_without_admin_flag() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        gate = _gate(session, FakeClock())
        ctx = SessionContext({})

        result = gate.login(ctx, "alice", "Secret1")

        assert result.outcome == LoginOutcome.success
        assert ctx.username == "alice"
        assert ctx.user_id == result.user.id
        assert ctx.is_admin is False
        assert gate.require_authenticated(ctx) == result.user.id
        with pytest.raises(AuthRequired):
            gate.require_admin(ctx)


def test_sixth_attempt_is_locked_out_even_with_correct_password() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        clock = FakeClock()
        gate = _gate(session, clock)
        ctx = SessionContext({})

        for _ in range(5):
            result = gate.login(ctx, "alice", "wrong")
            assert result.outcome == LoginOutcome.invalid
            assert result.message == USER_LOGIN_POLICY.invalid_message
            clock.advance(1)

        result = gate.login(ctx, "alice", "Secret1")

        assert result.outcome == LoginOutcome.locked_out
        assert result.message == USER_LOGIN_POLICY.locked_message
        assert result.message != USER_LOGIN_POLICY.invalid_message
        assert not ctx.is_authenticated


def test_lockout_does_not_consult_credential_store() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        gate = _gate(session, FakeClock())
        ctx = SessionContext({})
        for _ in range(5):
            gate.login(ctx, "alice", "wrong")

        def _fail(*_args):
            raise AssertionError("credential store consulted during lockout")

        gate.credentials.verify = _fail
        assert gate.login(ctx, "alice", "Secret1").outcome == LoginOutcome.locked_out


def test_lockout_expires_and_success_resets_counter() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        clock = FakeClock()
        gate = _gate(session, clock)
        ctx = SessionContext({})
        for _ in range(5):
            gate.login(ctx, "alice", "wrong")

        clock.advance(29)
        assert gate.login(ctx, "alice", "Secret1").outcome == LoginOutcome.locked_out

        clock.advance(2)
        assert gate.login(ctx, "alice", "Secret1").outcome == LoginOutcome.success
        assert ctx.attempts(USER_LOGIN_POLICY) == 0
        assert ctx.last_attempt(USER_LOGIN_POLICY) is None


def test_admin_login_sets_both_identity_and_admin_flag() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        gate = _gate(session, FakeClock())
        ctx = SessionContext({})

        assert gate.admin_login(ctx, "alice", "Secret1").outcome == LoginOutcome.invalid
        result = gate.admin_login(ctx, "root", "Admin123")

        assert result.success
        assert ctx.is_admin is True
        assert gate.require_admin(ctx) == result.user.id


def test_user_login_after_admin_login_drops_admin_flag() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        gate = _gate(session, FakeClock())
        ctx = SessionContext({})
        assert gate.admin_login(ctx, "root", "Admin123").success

        result = gate.login(ctx, "alice", "Secret1")

        assert result.success
        assert ctx.username == "alice"
        assert ctx.is_admin is False
        with pytest.raises(AuthRequired):
            gate.require_admin(ctx)


def test_admin_lockout_window_is_five_minutes_and_separate() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        clock = FakeClock()
        gate = _gate(session, clock)
        ctx = SessionContext({})
        for _ in range(5):
            gate.admin_login(ctx, "root", "wrong")

        clock.advance(120)
        locked = gate.admin_login(ctx, "root", "Admin123")
        assert locked.outcome == LoginOutcome.locked_out
        assert locked.message == ADMIN_LOGIN_POLICY.locked_message

        # The regular login path keeps its own counter.
        assert gate.login(ctx, "alice", "Secret1").success

        clock.advance(181)
        assert gate.admin_login(ctx, "root", "Admin123").success


def test_logout_clears_everything() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        gate = _gate(session, FakeClock())
        ctx = SessionContext({})
        gate.admin_login(ctx, "root", "Admin123")
        gate.login(ctx, "alice", "wrong")

        gate.logout(ctx)

        assert ctx.data == {}
        with pytest.raises(AuthRequired):
            gate.require_authenticated(ctx)
        with pytest.raises(AuthRequired):
            gate.require_admin(ctx)


def test_failed_attempts_are_tracked_per_session() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        gate = _gate(session, FakeClock())
        attacker = SessionContext({})
        other = SessionContext({})
        for _ in range(5):
            gate.login(attacker, "alice", "wrong")

        assert gate.login(attacker, "alice", "Secret1").outcome == LoginOutcome.locked_out
        assert gate.login(other, "alice", "Secret1").success
