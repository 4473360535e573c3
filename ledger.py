from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import and_, delete, select, update
from sqlalchemy.orm import Session

from models import EVERYONE, Budget, Category, Permission, User


@dataclass(frozen=True)
class BudgetRow:
    id: int
    user_id: int
    category_id: Optional[int]
    category_name: Optional[str]
    amount_cents: int
    date: date
    is_public: bool
    username: Optional[str] = None


class BudgetLedger:
    """Data access for budget rows. No authorization, no commits."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _projection(self):
        public_flag = Permission.id.is_not(None).label("is_public")
        return (
            select(
                Budget.id,
                Budget.user_id,
                Budget.category_id,
                Category.name.label("category_name"),
                Budget.amount_cents,
                Budget.date,
                public_flag,
            )
            .outerjoin(Category, Budget.category_id == Category.id)
            .outerjoin(
                Permission,
                and_(Permission.budget_id == Budget.id, Permission.user_id == EVERYONE),
            )
        )

    @staticmethod
    def _to_row(row, username: Optional[str] = None) -> BudgetRow:
        return BudgetRow(
            id=row.id,
            user_id=row.user_id,
            category_id=row.category_id,
            category_name=row.category_name,
            amount_cents=row.amount_cents,
            date=row.date,
            is_public=bool(row.is_public),
            username=username,
        )

    def insert(
        self, owner_id: int, category_id: int, amount_cents: int, entry_date: date
    ) -> Budget:
        budget = Budget(
            user_id=owner_id,
            category_id=category_id,
            amount_cents=amount_cents,
            date=entry_date,
        )
        self.session.add(budget)
        self.session.flush()
        return budget

    def update_fields(
        self,
        budget_id: int,
        owner_id: int,
        category_id: int,
        amount_cents: int,
        entry_date: date,
    ) -> int:
        result = self.session.execute(
            update(Budget)
            .where(Budget.id == budget_id, Budget.user_id == owner_id)
            .values(
                category_id=category_id,
                amount_cents=amount_cents,
                date=entry_date,
            )
        )
        return result.rowcount

    def delete_by_id(self, budget_id: int, owner_id: int) -> int:
        result = self.session.execute(
            delete(Budget).where(Budget.id == budget_id, Budget.user_id == owner_id)
        )
        return result.rowcount

    def delete_for_user(self, user_id: int) -> int:
        result = self.session.execute(delete(Budget).where(Budget.user_id == user_id))
        return result.rowcount

    def find_by_id(self, budget_id: int) -> Optional[BudgetRow]:
        row = self.session.execute(
            self._projection().where(Budget.id == budget_id)
        ).first()
        return self._to_row(row) if row else None

    def find_owned(self, budget_id: int, owner_id: int) -> Optional[BudgetRow]:
        row = self.session.execute(
            self._projection().where(
                Budget.id == budget_id, Budget.user_id == owner_id
            )
        ).first()
        return self._to_row(row) if row else None

    def owner_of(self, budget_id: int) -> Optional[int]:
        return self.session.scalar(select(Budget.user_id).where(Budget.id == budget_id))

    def list_by_owner(self, owner_id: int) -> list[BudgetRow]:
        stmt = (
            self._projection()
            .where(Budget.user_id == owner_id)
            .order_by(Budget.date.desc(), Budget.id.desc())
        )
        return [self._to_row(row) for row in self.session.execute(stmt)]

    def list_all_public(self) -> list[BudgetRow]:
        stmt = (
            select(
                Budget.id,
                Budget.user_id,
                Budget.category_id,
                Category.name.label("category_name"),
                Budget.amount_cents,
                Budget.date,
                User.username,
            )
            .join(
                Permission,
                and_(Permission.budget_id == Budget.id, Permission.user_id == EVERYONE),
            )
            .join(User, Budget.user_id == User.id)
            .outerjoin(Category, Budget.category_id == Category.id)
            .order_by(Budget.date.desc(), Budget.id.desc())
        )
        return [
            BudgetRow(
                id=row.id,
                user_id=row.user_id,
                category_id=row.category_id,
                category_name=row.category_name,
                amount_cents=row.amount_cents,
                date=row.date,
                is_public=True,
                username=row.username,
            )
            for row in self.session.execute(stmt)
        ]
