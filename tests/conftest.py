from __future__ import annotations

import os
import tempfile
from datetime import date
from typing import Generator, Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from financer.core.database import Base, get_db, install_sqlite_hooks
from financer.main import app
from financer import models


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    # Temp-file SQLite so the developer's database is never touched
    fd, path = tempfile.mkstemp(prefix="financer_test_", suffix=".sqlite3")
    os.close(fd)
    url = f"sqlite:///{path}"
    yield url
    for suffix in ("", "-wal", "-shm"):
        try:
            os.remove(path + suffix)
        except OSError:
            pass


@pytest.fixture(scope="session")
def engine(test_db_url: str):
    eng = create_engine(test_db_url, connect_args={"check_same_thread": False})
    install_sqlite_hooks(eng)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Any, Any, Any]:
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        # Children first so FK enforcement stays on during cleanup
        with engine.begin() as conn:
            for tbl in reversed(Base.metadata.sorted_tables):
                conn.execute(tbl.delete())


@pytest.fixture(autouse=True)
def override_dependency(db_session):
    def _get_db_override():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db_override
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(db_session):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def bank_account(db_session) -> models.Account:
    acc = models.Account(name="Checking", type=models.AccountType.BANK)
    db_session.add(acc)
    db_session.commit()
    return acc


@pytest.fixture()
def expense_category(db_session) -> models.Category:
    cat = models.Category(name="Housing", type=models.CategoryType.EXPENSE, color="#ff8800")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture()
def credit_card(db_session, bank_account) -> models.Account:
    card = models.Account(
        name="Visa",
        type=models.AccountType.CREDIT,
        billing_day=20,
        payment_day=5,
        linked_account_id=bank_account.id,
    )
    db_session.add(card)
    db_session.commit()
    return card


@pytest.fixture()
def add_expense(db_session):
    def _add(account: models.Account, amount: float, on: date) -> models.Transaction:
        txn = models.Transaction(account_id=account.id, amount=amount, type=models.TxnType.EXPENSE, date=on)
        db_session.add(txn)
        db_session.commit()
        return txn

    return _add
