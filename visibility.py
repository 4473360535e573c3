from __future__ import annotations

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from models import EVERYONE, Budget, Permission, PermissionType


class VisibilityLedger:
    """Public/private overlay for budget entries.

    A budget entry is public iff it has a permission row for EVERYONE.
    Mutations flush but never commit; callers own the transaction.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def is_public(self, budget_id: int) -> bool:
        stmt = select(Permission.id).where(
            Permission.budget_id == budget_id, Permission.user_id == EVERYONE
        )
        return self.session.scalar(stmt) is not None

    def grant(self, budget_id: int) -> bool:
        if self.is_public(budget_id):
            return False
        self.session.add(
            Permission(
                budget_id=budget_id,
                user_id=EVERYONE,
                permission_type=PermissionType.view,
            )
        )
        self.session.flush()
        return True

    def revoke(self, budget_id: int) -> bool:
        result = self.session.execute(
            delete(Permission).where(
                Permission.budget_id == budget_id, Permission.user_id == EVERYONE
            )
        )
        return result.rowcount > 0

    def revoke_for_user(self, user_id: int) -> int:
        owned = select(Budget.id).where(Budget.user_id == user_id)
        result = self.session.execute(
            delete(Permission).where(
                or_(Permission.budget_id.in_(owned), Permission.user_id == user_id)
            )
        )
        return result.rowcount
