"""
Pytest fixtures for the event finance test suite.

Provides:
- Structured logging setup and captured JSON log records
- A file-backed SQLite database per test (shared by worker threads)
- Session factory, deterministic clock and default engine config
- Record builders for pure engine tests
- A ledger seeder that writes events and ledger rows through the ORM
"""

import json
import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from io import StringIO
from typing import Callable
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from eventfin_config.schema import EngineConfig
from eventfin_engines.tax import TaxNormalizer
from eventfin_kernel.db.engine import build_engine, create_tables
from eventfin_kernel.db.listeners import register_ledger_listeners
from eventfin_kernel.domain.clock import DeterministicClock
from eventfin_kernel.domain.ledger import (
    BusinessEvent,
    LedgerRecord,
    RecordKind,
)
from eventfin_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from eventfin_kernel.models.event import EventModel
from eventfin_kernel.models.ledger import ExpenseModel, IncomeModel, ProvisionModel

TAX = TaxNormalizer()

# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture eventfin logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, recalculation_service):
            recalculation_service.recalculate(event_id)
            logs = captured_logs()
            assert any(r["message"] == "recalculation_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("eventfin")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite engine (in-memory SQLite is per-thread)."""
    register_ledger_listeners()
    db_engine = build_engine(f"sqlite:///{tmp_path / 'eventfin.db'}")
    create_tables(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Session:
    db_session = session_factory()
    yield db_session
    db_session.close()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC))


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


# =============================================================================
# Pure record builders
# =============================================================================


@pytest.fixture
def event_id() -> UUID:
    return uuid4()


@pytest.fixture
def make_event(event_id) -> Callable[..., BusinessEvent]:
    def _make(
        estimated_income: Decimal = Decimal("0"),
        code: str = "EV-001",
        **kwargs,
    ) -> BusinessEvent:
        return BusinessEvent(
            event_id=kwargs.pop("event_id", event_id),
            code=code,
            estimated_income=Decimal(estimated_income),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_record(event_id) -> Callable[..., LedgerRecord]:
    """Build a consistent record from a tax-inclusive total."""

    def _make(
        kind: RecordKind,
        total: str | Decimal,
        **kwargs,
    ) -> LedgerRecord:
        split = TAX.split(Decimal(total))
        kwargs.setdefault("occurs_on", date(2024, 1, 15))
        return LedgerRecord(
            record_id=kwargs.pop("record_id", uuid4()),
            event_id=kwargs.pop("event_id", event_id),
            kind=kind,
            amount_subtotal=split.subtotal,
            tax_amount=split.tax,
            amount_total=split.total,
            **kwargs,
        )

    return _make


# =============================================================================
# Ledger seeder (persistent rows)
# =============================================================================


class LedgerSeeder:
    """Writes events and ledger rows, one committed transaction per call."""

    _MODELS = {
        RecordKind.INCOME: IncomeModel,
        RecordKind.EXPENSE: ExpenseModel,
        RecordKind.PROVISION: ProvisionModel,
    }

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory
        self._counter = 0

    def event(
        self,
        estimated_income: str | Decimal = "0",
        lifecycle_state: str = "closed",
        code: str | None = None,
        **kwargs,
    ) -> UUID:
        self._counter += 1
        event_id = uuid4()
        with self._session_factory() as session, session.begin():
            session.add(EventModel(
                id=event_id,
                code=code or f"EV-{self._counter:04d}",
                estimated_income=Decimal(estimated_income),
                lifecycle_state=lifecycle_state,
                **kwargs,
            ))
        return event_id

    def record(
        self,
        kind: RecordKind,
        event_id: UUID,
        total: str | Decimal,
        **kwargs,
    ) -> UUID:
        split = TAX.split(Decimal(total))
        record_id = uuid4()
        kwargs.setdefault("occurs_on", date(2024, 1, 15))
        kwargs.setdefault("amount_subtotal", split.subtotal)
        kwargs.setdefault("tax_amount", split.tax)
        with self._session_factory() as session, session.begin():
            session.add(self._MODELS[kind](
                id=record_id,
                event_id=event_id,
                amount_total=split.total,
                **kwargs,
            ))
        return record_id

    def income(self, event_id: UUID, total, **kwargs) -> UUID:
        return self.record(RecordKind.INCOME, event_id, total, **kwargs)

    def expense(self, event_id: UUID, total, **kwargs) -> UUID:
        return self.record(RecordKind.EXPENSE, event_id, total, **kwargs)

    def provision(self, event_id: UUID, total, **kwargs) -> UUID:
        return self.record(RecordKind.PROVISION, event_id, total, **kwargs)

    def update(self, kind: RecordKind, record_id: UUID, **values) -> None:
        model = self._MODELS[kind]
        with self._session_factory() as session, session.begin():
            row = session.execute(
                select(model).where(model.id == record_id)
            ).scalar_one()
            for key, value in values.items():
                setattr(row, key, value)

    def soft_delete(self, kind: RecordKind, record_id: UUID) -> None:
        self.update(
            kind, record_id,
            soft_deleted=True, deleted_at=datetime(2024, 2, 1, tzinfo=UTC),
        )

    def event_row(self, event_id: UUID) -> EventModel:
        with self._session_factory() as session:
            return session.execute(
                select(EventModel).where(EventModel.id == event_id)
            ).scalar_one()


@pytest.fixture
def seeder(session_factory) -> LedgerSeeder:
    return LedgerSeeder(session_factory)
