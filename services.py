from __future__ import annotations

import logging
from datetime import date
from functools import wraps
from typing import Callable, Optional, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from database import atomic
from errors import (
    BudgetAppError,
    Forbidden,
    NotFound,
    Result,
    SelfDeletion,
    StorageError,
    ValidationError,
)
from ledger import BudgetLedger, BudgetRow
from models import Category, User
from schemas import MAX_AMOUNT_CENTS, BudgetIn
from visibility import VisibilityLedger

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CATEGORIES = ["Boende", "Mat", "Nöje", "Sparande", "Transport", "Övrigt"]

INVALID_CATEGORY = "Du måste välja en giltig kategori."
INVALID_AMOUNT = "Beloppet måste vara större än 0."
AMOUNT_TOO_LARGE = "Beloppet är för stort."
INVALID_DATE = "Du måste ange ett giltigt datum."

FORBIDDEN_CREATE = "Du har inte behörighet att skapa budgetposter"
FORBIDDEN_UPDATE = "Du har inte behörighet att uppdatera denna budgetpost"
FORBIDDEN_DELETE = "Du har inte behörighet att ta bort denna budgetpost"
FORBIDDEN_TOGGLE = "Du har inte behörighet att ändra denna budgetpost"
FORBIDDEN_VIEW = "Du har inte behörighet att redigera denna budgetpost"


def service_result(action: str) -> Callable[[Callable[..., T]], Callable[..., Result[T]]]:
    """Turn a service method that raises into one that returns a Result.

    Typed application errors become failed results as they are. Storage
    errors are logged, the session is rolled back and the caller only gets
    the generic message.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., Result[T]]:
        @wraps(func)
        def wrapper(self, *args, **kwargs) -> Result[T]:
            try:
                return Result.ok(func(self, *args, **kwargs))
            except BudgetAppError as exc:
                logger.info(f"{action}_rejected: code={exc.code} args={args!r}")
                return Result.fail(exc)
            except SQLAlchemyError:
                self.session.rollback()
                logger.exception(f"{action}_failed: args={args!r}")
                return Result.fail(StorageError())

        return wrapper

    return decorator


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        return self.session.scalars(select(Category).order_by(Category.name)).all()

    def exists(self, category_id: Optional[int]) -> bool:
        if not category_id:
            return False
        return self.session.get(Category, category_id) is not None

    def ensure_defaults(self) -> int:
        existing = set(self.session.scalars(select(Category.name)).all())
        missing = [name for name in DEFAULT_CATEGORIES if name not in existing]
        with atomic(self.session):
            for name in missing:
                self.session.add(Category(name=name))
        if missing:
            logger.info(f"categories_seeded: count={len(missing)}")
        return len(missing)


class BudgetService:
    """Owner-checked budget operations.

    Every method takes the caller's own user id and re-derives ownership from
    storage. Writes that touch both a budget row and its visibility grant run
    in a single transaction.
    """

    def __init__(
        self,
        session: Session,
        ledger: Optional[BudgetLedger] = None,
        visibility: Optional[VisibilityLedger] = None,
    ) -> None:
        self.session = session
        self.ledger = ledger or BudgetLedger(session)
        self.visibility = visibility or VisibilityLedger(session)
        self.categories = CategoryService(session)

    def _validate(self, data: BudgetIn) -> None:
        if not self.categories.exists(data.category_id):
            raise ValidationError(INVALID_CATEGORY)
        if not isinstance(data.amount_cents, int) or data.amount_cents <= 0:
            raise ValidationError(INVALID_AMOUNT)
        if data.amount_cents > MAX_AMOUNT_CENTS:
            raise ValidationError(AMOUNT_TOO_LARGE)
        if not isinstance(data.date, date):
            raise ValidationError(INVALID_DATE)

    def _require_owner(self, budget_id: int, caller_id: int, message: str) -> None:
        owner_id = self.ledger.owner_of(budget_id)
        if owner_id is None:
            logger.debug(f"budget_missing: budget_id={budget_id}")
            raise Forbidden(message)
        if owner_id != caller_id:
            logger.warning(
                f"budget_ownership_denied: budget_id={budget_id} caller={caller_id}"
            )
            raise Forbidden(message)

    @service_result("budget_create")
    def create(self, owner_id: int, data: BudgetIn) -> int:
        if self.session.get(User, owner_id) is None:
            raise Forbidden(FORBIDDEN_CREATE)
        self._validate(data)
        with atomic(self.session):
            budget = self.ledger.insert(
                owner_id, data.category_id, data.amount_cents, data.date
            )
            budget_id = budget.id
            if data.is_public:
                self.visibility.grant(budget_id)
        logger.info(
            f"budget_created: id={budget_id} owner={owner_id} public={data.is_public}"
        )
        return budget_id

    @service_result("budget_update")
    def update(self, budget_id: int, caller_id: int, data: BudgetIn) -> None:
        self._require_owner(budget_id, caller_id, FORBIDDEN_UPDATE)
        self._validate(data)
        with atomic(self.session):
            updated = self.ledger.update_fields(
                budget_id, caller_id, data.category_id, data.amount_cents, data.date
            )
            if updated == 0:
                raise Forbidden(FORBIDDEN_UPDATE)
            if data.is_public:
                self.visibility.grant(budget_id)
            else:
                self.visibility.revoke(budget_id)
        logger.info(f"budget_updated: id={budget_id} public={data.is_public}")

    @service_result("budget_delete")
    def delete(self, budget_id: int, caller_id: int) -> None:
        self._require_owner(budget_id, caller_id, FORBIDDEN_DELETE)
        with atomic(self.session):
            self.visibility.revoke(budget_id)
            if self.ledger.delete_by_id(budget_id, caller_id) == 0:
                raise Forbidden(FORBIDDEN_DELETE)
        logger.info(f"budget_deleted: id={budget_id}")

    @service_result("budget_toggle")
    def toggle_visibility(self, budget_id: int, caller_id: int) -> bool:
        if self.ledger.find_owned(budget_id, caller_id) is None:
            raise Forbidden(FORBIDDEN_TOGGLE)
        try:
            with atomic(self.session):
                if self.visibility.is_public(budget_id):
                    self.visibility.revoke(budget_id)
                    now_public = False
                else:
                    self.visibility.grant(budget_id)
                    now_public = True
        except IntegrityError:
            # Another request granted the same entry first.
            logger.info(f"budget_toggle_conflict: id={budget_id}")
            return self.visibility.is_public(budget_id)
        logger.info(f"budget_toggled: id={budget_id} public={now_public}")
        return now_public

    @service_result("budget_get")
    def get(self, budget_id: int, caller_id: int) -> tuple[BudgetRow, bool]:
        row = self.ledger.find_owned(budget_id, caller_id)
        if row is None:
            raise Forbidden(FORBIDDEN_VIEW)
        return row, row.is_public

    @service_result("budget_list")
    def list_for_owner(self, owner_id: int) -> list[BudgetRow]:
        return self.ledger.list_by_owner(owner_id)

    @service_result("budget_list_public")
    def list_all_public(self) -> list[BudgetRow]:
        return self.ledger.list_all_public()


class AdminService:
    def __init__(
        self,
        session: Session,
        ledger: Optional[BudgetLedger] = None,
        visibility: Optional[VisibilityLedger] = None,
    ) -> None:
        self.session = session
        self.ledger = ledger or BudgetLedger(session)
        self.visibility = visibility or VisibilityLedger(session)

    @service_result("user_list")
    def list_users(self) -> list[User]:
        return self.session.scalars(select(User).order_by(User.username)).all()

    @service_result("user_delete")
    def delete_user(self, target_id: int, caller_id: int) -> None:
        if target_id == caller_id:
            raise SelfDeletion()
        caller = self.session.get(User, caller_id)
        if caller is None or not caller.is_admin:
            raise Forbidden()
        if self.session.get(User, target_id) is None:
            raise NotFound("Användaren hittades inte")
        with atomic(self.session):
            grants = self.visibility.revoke_for_user(target_id)
            budgets = self.ledger.delete_for_user(target_id)
            self.session.execute(delete(User).where(User.id == target_id))
        logger.info(
            f"user_deleted: id={target_id} by={caller_id} "
            f"budgets={budgets} grants={grants}"
        )
