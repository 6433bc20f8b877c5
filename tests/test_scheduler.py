from contextlib import contextmanager
from datetime import date, timedelta

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session

from config import Settings
from database import Base
from models import RecurringTransaction, TransactionType
from scheduler import SchedulerManager
from schemas import AccountIn, TransactionIn
from services import AccountService, TransactionService


def _settings(flags: frozenset[str]) -> Settings:
    return Settings(
        database_url="sqlite:///:memory:",
        timezone="UTC",
        lookback_months=36,
        min_confidence=0.0,
        history_months=12,
        feature_flags=flags,
        detection_hour=3,
        detection_minute=15,
    )


def _factory(engine):
    @contextmanager
    def session_factory():
        with Session(engine) as session:
            yield session
            session.commit()

    return session_factory


def _seed(engine) -> None:
    start = date.today() - timedelta(days=200)
    with Session(engine) as session:
        account = AccountService(session).create(AccountIn(name="Main", is_default=True))
        transactions = TransactionService(session, account.id)
        for i in range(6):
            transactions.create(
                TransactionIn(
                    date=start + timedelta(days=30 * i),
                    description="Energie Direct",
                    transaction_type=TransactionType.debit,
                    amount_cents=8900,
                )
            )


def test_run_job_detects_for_every_account():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    _seed(engine)

    manager = SchedulerManager(
        settings=_settings(frozenset({"recurring_detection"})),
        session_factory=_factory(engine),
    )
    assert manager._run_job("test") == 1

    with Session(engine) as session:
        rows = session.scalars(select(RecurringTransaction)).all()
        assert [row.merchant_pattern for row in rows] == ["energie direct"]


def test_run_job_is_skipped_when_flag_is_off():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    _seed(engine)

    manager = SchedulerManager(settings=_settings(frozenset()), session_factory=_factory(engine))
    assert manager._run_job("test") == 0

    with Session(engine) as session:
        assert session.scalars(select(RecurringTransaction)).all() == []
