from datetime import date

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import Base, atomic, build_engine
from models import Budget


def test_sqlite_engine_enforces_foreign_keys() -> None:
    engine = build_engine("sqlite://")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        assert session.execute(text("PRAGMA foreign_keys")).scalar() == 1
        with pytest.raises(IntegrityError):
            with atomic(session):
                session.add(Budget(user_id=42, amount_cents=100, date=date(2025, 1, 1)))
        assert session.query(Budget).count() == 0
