from __future__ import annotations

import logging
from typing import Optional

from passlib.hash import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from database import atomic
from errors import (
    BudgetAppError,
    DuplicateUsername,
    Result,
    StorageError,
    ValidationError,
)
from models import User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    return bcrypt.hash(password)


def check_password(password_hash: str, password: str) -> bool:
    try:
        return bcrypt.verify(password, password_hash)
    except ValueError:
        # Not a bcrypt hash; treat as a mismatch rather than an outage.
        logger.warning("password_hash_unreadable")
        return False


def validate_credentials(username: str, password: str) -> None:
    if not username or not password:
        raise ValidationError("Alla fält måste fyllas i")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Lösenordet måste vara minst {MIN_PASSWORD_LENGTH} tecken"
        )


class CredentialStore:
    """User records and credential checks."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_username(self, username: str) -> Optional[User]:
        return self.session.scalar(select(User).where(User.username == username))

    def verify(self, username: str, password: str) -> Optional[User]:
        user = self.find_by_username(username)
        if user and check_password(user.password_hash, password):
            return user
        return None

    def verify_admin(self, username: str, password: str) -> Optional[User]:
        user = self.session.scalar(
            select(User).where(User.username == username, User.is_admin.is_(True))
        )
        if user and check_password(user.password_hash, password):
            return user
        return None

    def register(self, username: str, password: str) -> Result[int]:
        return self._create(username, password, is_admin=False)

    def register_admin(self, username: str, password: str) -> Result[int]:
        return self._create(username, password, is_admin=True)

    def _create(self, username: str, password: str, *, is_admin: bool) -> Result[int]:
        try:
            validate_credentials(username, password)
            if self.find_by_username(username) is not None:
                raise DuplicateUsername()
            user = User(
                username=username,
                password_hash=hash_password(password),
                is_admin=is_admin,
            )
            with atomic(self.session):
                self.session.add(user)
                self.session.flush()
        except BudgetAppError as exc:
            return Result.fail(exc)
        except IntegrityError:
            # Lost a race with a concurrent registration of the same name.
            logger.info(f"register_conflict: username={username!r}")
            return Result.fail(DuplicateUsername())
        except SQLAlchemyError:
            logger.exception(f"register_failed: username={username!r}")
            return Result.fail(StorageError())
        logger.info(f"user_registered: id={user.id} admin={is_admin}")
        return Result.ok(user.id)
