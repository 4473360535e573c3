from datetime import date

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from auth import CredentialStore
from database import Base
from errors import Forbidden, NotFound, SelfDeletion, StorageError
from models import Budget, Category, Permission, User
from schemas import BudgetIn
from services import AdminService, BudgetService, CategoryService


def _count(session: Session, model) -> int:
    return session.scalar(select(func.count()).select_from(model))


def _seed(session: Session) -> dict[str, int]:
    CategoryService(session).ensure_defaults()
    category_id = session.scalar(select(Category.id).order_by(Category.id))
    store = CredentialStore(session)
    ids = {
        "root": store.register_admin("root", "Admin123").value,
        "alice": store.register("alice", "Secret1").value,
        "bob": store.register("bob", "Secret2").value,
    }
    budgets = BudgetService(session)
    for owner in ("alice", "alice", "bob"):
        budgets.create(
            ids[owner],
            BudgetIn(
                category_id=category_id,
                amount_cents=5_000,
                date=date(2025, 4, 1),
                is_public=True,
            ),
        )
    return ids


def test_list_users_is_ordered_by_username() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _seed(session)

        users = AdminService(session).list_users().value

        assert [u.username for u in users] == ["alice", "bob", "root"]
        assert [u.is_admin for u in users] == [False, False, True]


def test_admin_cannot_delete_own_account() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ids = _seed(session)
        before = (_count(session, User), _count(session, Budget), _count(session, Permission))

        result = AdminService(session).delete_user(ids["root"], ids["root"])

        assert isinstance(result.error, SelfDeletion)
        after = (_count(session, User), _count(session, Budget), _count(session, Permission))
        assert after == before


def test_delete_user_cascades_entries_and_grants() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ids = _seed(session)
        # A grant recorded with alice as grantee must go as well.
        bob_budget = session.scalar(select(Budget.id).where(Budget.user_id == ids["bob"]))
        session.add(Permission(budget_id=bob_budget, user_id=ids["alice"]))
        session.commit()

        result = AdminService(session).delete_user(ids["alice"], ids["root"])

        assert result.success
        assert session.get(User, ids["alice"]) is None
        assert session.scalars(
            select(Budget).where(Budget.user_id == ids["alice"])
        ).all() == []
        orphaned = session.scalars(
            select(Permission).where(Permission.budget_id.not_in(select(Budget.id)))
        ).all()
        assert orphaned == []
        assert session.scalars(
            select(Permission).where(Permission.user_id == ids["alice"])
        ).all() == []
        # Bob's data is untouched.
        assert [row.username for row in BudgetService(session).list_all_public().value] == [
            "bob"
        ]


def test_delete_user_requires_admin_caller_and_existing_target() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        ids = _seed(session)
        service = AdminService(session)

        assert isinstance(service.delete_user(ids["bob"], ids["alice"]).error, Forbidden)
        assert isinstance(service.delete_user(9_999, ids["root"]).error, NotFound)
        assert _count(session, User) == 3


def test_list_users_reports_storage_failure_as_result(monkeypatch) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        _seed(session)

        def _broken_scalars(*_args, **_kwargs):
            raise OperationalError("SELECT users", {}, Exception("database is locked"))

        monkeypatch.setattr(session, "scalars", _broken_scalars)
        result = AdminService(session).list_users()

        assert not result.success
        assert isinstance(result.error, StorageError)
