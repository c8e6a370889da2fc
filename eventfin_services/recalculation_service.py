"""
RecalculationService -- rebuild financial snapshots from the ledger.

Contract:
    - ``aggregate()`` reads one event's ledger and returns its aggregates.
    - ``recalculate()`` rebuilds, labels and persists one event's snapshot
      and re-derives its accounting state.  A point-in-time recalculation
      (``as_of`` before today) is returned and cached but never persisted,
      and leaves the accounting state alone.
    - ``get_snapshot()`` serves a cached snapshot while the event's
      ``ledger_version`` is unchanged, recalculating otherwise.
    - ``portfolio_summary()`` consolidates the snapshots of a selection of
      events into one ``PortfolioSummary``.
    - ``recalculate_all()`` recalculates a bounded batch of events with
      per-event failure isolation and cooperative cancellation.

Architecture: eventfin_services.  Owns its sessions through the injected
    ``sessionmaker``: every unit of work (one event) runs in its own
    session and transaction, so batch units share no session or mutable
    ORM state.

Failure handling:
    - ``MissingEventError`` is surfaced unchanged.
    - ``ConcurrentMutationError`` (torn read) is retried once with a fresh
      session, then surfaced.
    - Any failure after an event was found marks its stored snapshot stale
      and re-raises.
    - In a batch, failures are captured per event and reported; the batch
      itself never raises (see ``BatchRecalculationReport.raise_for_failures``).
"""

from __future__ import annotations

import contextvars
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from eventfin_config.schema import EngineConfig
from eventfin_engines.accounting_workflow import AccountingFacts, StateEvaluation
from eventfin_engines.aggregation import LedgerAggregates
from eventfin_engines.portfolio import PortfolioSummary
from eventfin_engines.reconciliation import FinancialSnapshot
from eventfin_kernel.domain.clock import Clock, SystemClock
from eventfin_kernel.domain.ledger import EventLedger
from eventfin_kernel.exceptions import (
    ConcurrentMutationError,
    EventFinanceError,
    MissingEventError,
)
from eventfin_kernel.logging_config import LogContext, get_logger
from eventfin_kernel.models.event import EventModel
from eventfin_kernel.selectors.ledger_selector import LedgerSelector
from eventfin_services._recalc_types import (
    BatchRecalculationReport,
    CancellationToken,
    RecalculationFilter,
    RecalculationResult,
)
from eventfin_services.snapshot_store import SnapshotCache, SnapshotStore

logger = get_logger("services.recalculation")


class RecalculationService:
    """Orchestrates aggregation, reconciliation and state derivation."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        cache: SnapshotCache | None = None,
    ):
        self._session_factory = session_factory
        self._config = config or EngineConfig()
        self._clock = clock or SystemClock()
        self._cache = cache if cache is not None else SnapshotCache()

        self._aggregator = self._config.aggregator()
        self._reconciler = self._config.reconciliation_engine()
        self._status = self._config.status_classifier()
        self._overdue = self._config.overdue_monitor()
        self._workflow = self._config.accounting_workflow()
        self._portfolio = self._config.portfolio_reconciler()

    @property
    def cache(self) -> SnapshotCache:
        return self._cache

    # -------------------------------------------------------------------------
    # Single event
    # -------------------------------------------------------------------------

    def aggregate(self, event_id: UUID, as_of: date | None = None) -> LedgerAggregates:
        """Aggregates of one event's live ledger rows.

        Raises:
            MissingEventError: If the event does not exist.
            ConcurrentMutationError: If the ledger changed during the read.
        """
        with self._session_factory() as session:
            ledger = LedgerSelector(session).read_event_ledger(event_id)
        return self._aggregator.aggregate(event_id, ledger.records, as_of)

    def recalculate(
        self,
        event_id: UUID,
        as_of: date | None = None,
        include_tax: bool = False,
    ) -> FinancialSnapshot:
        """Rebuild and persist the snapshot of one event.

        Raises:
            MissingEventError: If the event does not exist.
            ConcurrentMutationError: If the ledger kept changing during the
                read (after one retry).
        """
        with LogContext.bind(event_id=str(event_id)):
            try:
                try:
                    snapshot = self._recalculate_once(event_id, as_of, include_tax)
                except ConcurrentMutationError as exc:
                    logger.warning(
                        "recalculation_retry_after_concurrent_mutation",
                        extra={
                            "version_before": exc.version_before,
                            "version_after": exc.version_after,
                        },
                    )
                    snapshot = self._recalculate_once(event_id, as_of, include_tax)
            except MissingEventError:
                raise
            except Exception as exc:
                if self._is_current(as_of):
                    self._mark_stale(event_id, exc)
                raise

            self._cache.put(snapshot)
            logger.info(
                "recalculation_completed",
                extra={
                    "ledger_version": snapshot.ledger_version,
                    "include_tax": include_tax,
                    "persisted": self._is_current(as_of),
                    "utility": snapshot.utility,
                    "margin_pct": snapshot.margin_pct,
                    "health_tier": snapshot.labels.health_tier if snapshot.labels else None,
                    "rejected_count": len(snapshot.rejected_record_ids),
                },
            )
            return snapshot

    def get_snapshot(
        self,
        event_id: UUID,
        include_tax: bool = False,
        as_of: date | None = None,
    ) -> FinancialSnapshot:
        """Cached snapshot if the ledger is unchanged, else a fresh one."""
        with self._session_factory() as session:
            version = LedgerSelector(session).current_ledger_version(event_id)

        cached = self._cache.get(event_id, include_tax, as_of, version)
        if cached is not None:
            logger.debug(
                "snapshot_cache_hit",
                extra={"event_id": str(event_id), "ledger_version": version},
            )
            return cached
        return self.recalculate(event_id, as_of=as_of, include_tax=include_tax)

    def _recalculate_once(
        self,
        event_id: UUID,
        as_of: date | None,
        include_tax: bool,
    ) -> FinancialSnapshot:
        with self._session_factory() as session, session.begin():
            ledger = LedgerSelector(session).read_event_ledger(event_id)
            snapshot = self._compute(ledger, as_of, include_tax)
            if not self._is_current(as_of):
                # Point-in-time views never touch the stored state or snapshot.
                return snapshot
            evaluation = self._evaluate_state(ledger, snapshot)
            if evaluation.changed:
                self._persist_state(session, event_id, evaluation)
            SnapshotStore(session).save(snapshot, computed_at=self._clock.now())
        return snapshot

    def _is_current(self, as_of: date | None) -> bool:
        return as_of is None or as_of >= self._clock.today()

    def _compute(
        self,
        ledger: EventLedger,
        as_of: date | None,
        include_tax: bool,
    ) -> FinancialSnapshot:
        aggregates = self._aggregator.aggregate(
            ledger.event.event_id, ledger.records, as_of,
        )
        snapshot = self._reconciler.reconcile(
            ledger.event, aggregates, include_tax=include_tax, as_of=as_of,
        )
        return snapshot.with_labels(self._status.classify(snapshot))

    def _evaluate_state(
        self,
        ledger: EventLedger,
        snapshot: FinancialSnapshot,
    ) -> StateEvaluation:
        overdue = self._overdue.find_overdue(ledger.records, self._clock.today())
        facts = AccountingFacts(
            closing_signalled=ledger.event.closing_signalled,
            income_count=snapshot.income_count,
            uninvoiced_income_count=snapshot.uninvoiced_income_count,
            collection_status=snapshot.labels.collection_status,
            has_overdue=bool(overdue),
        )
        return self._workflow.evaluate(ledger.event.accounting_state, facts)

    def _persist_state(
        self,
        session: Session,
        event_id: UUID,
        evaluation: StateEvaluation,
    ) -> None:
        model = session.execute(
            select(EventModel)
            .where(EventModel.id == event_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()
        if model.accounting_state != evaluation.previous.value:
            # Another transaction moved the state after the ledger read.
            logger.warning(
                "accounting_state_superseded",
                extra={
                    "previous_state": evaluation.previous,
                    "stored_state": model.accounting_state,
                    "accounting_state": evaluation.state,
                },
            )
            return
        model.accounting_state = evaluation.state.value
        session.flush()
        logger.info(
            "accounting_state_changed",
            extra={
                "previous_state": evaluation.previous,
                "accounting_state": evaluation.state,
                "path": [t.action for t in evaluation.path],
            },
        )

    def _mark_stale(self, event_id: UUID, exc: Exception) -> None:
        reason = f"{getattr(exc, 'code', type(exc).__name__)}: {exc}"
        try:
            with self._session_factory() as session, session.begin():
                SnapshotStore(session).mark_stale(event_id, reason)
        except SQLAlchemyError:
            logger.exception(
                "snapshot_stale_mark_failed", extra={"event_id": str(event_id)},
            )
        self._cache.invalidate(event_id)

    # -------------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------------

    def select_events(self, request: RecalculationFilter) -> tuple[UUID, ...]:
        """Event ids a batch would recalculate, in stable order."""
        batch = self._config.batch
        states = (
            request.event_states
            if request.event_states is not None
            else batch.eligible_states
        )
        limit = min(request.limit or batch.batch_limit, batch.batch_limit)
        with self._session_factory() as session:
            events = LedgerSelector(session).list_events(
                lifecycle_states=states,
                event_ids=request.event_ids,
                limit=limit,
            )
        return tuple(e.event_id for e in events)

    def _run_unit(self, event_id: UUID, request: RecalculationFilter) -> RecalculationResult:
        try:
            snapshot = self.recalculate(
                event_id, as_of=request.as_of, include_tax=request.include_tax,
            )
        except EventFinanceError as exc:
            error_code, error_message = exc.code, str(exc)
        except Exception as exc:
            error_code, error_message = "UNHANDLED_EXCEPTION", str(exc)
        else:
            return RecalculationResult(event_id=event_id, success=True, snapshot=snapshot)

        logger.warning(
            "batch_unit_failed",
            extra={
                "event_id": str(event_id),
                "error_code": error_code,
                "error_message": error_message,
            },
        )
        return RecalculationResult(
            event_id=event_id,
            success=False,
            error_code=error_code,
            error_message=error_message,
        )

    def recalculate_all(
        self,
        request: RecalculationFilter | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> BatchRecalculationReport:
        """Recalculate every selected event.

        Units run sequentially when ``batch.max_workers == 1``, otherwise on
        a thread pool with at most ``max_workers`` units in flight.  Once
        ``cancel_token`` is cancelled no new unit starts; running units
        finish; units never started are reported as cancelled.
        """
        request = request or RecalculationFilter()
        token = cancel_token or CancellationToken()
        batch_id = str(uuid4())
        event_ids = self.select_events(request)
        max_workers = self._config.batch.max_workers

        with LogContext.bind(batch_id=batch_id):
            logger.info(
                "batch_recalculation_started",
                extra={"event_count": len(event_ids), "max_workers": max_workers},
            )
            if max_workers == 1:
                results = self._run_sequential(event_ids, request, token)
            else:
                results = self._run_parallel(event_ids, request, token, max_workers)

            ordered = tuple(
                results.get(event_id) or RecalculationResult(
                    event_id=event_id,
                    success=False,
                    error_code="CANCELLED",
                    error_message="Batch cancelled before this event started",
                    cancelled=True,
                )
                for event_id in event_ids
            )
            report = BatchRecalculationReport(
                batch_id=batch_id,
                status=BatchRecalculationReport.derive_status(ordered),
                results=ordered,
            )
            logger.info(
                "batch_recalculation_finished",
                extra={
                    "status": report.status,
                    "succeeded": report.succeeded,
                    "failed": report.failed,
                    "cancelled": report.cancelled,
                },
            )
        return report

    def _run_sequential(
        self,
        event_ids: tuple[UUID, ...],
        request: RecalculationFilter,
        token: CancellationToken,
    ) -> dict[UUID, RecalculationResult]:
        results: dict[UUID, RecalculationResult] = {}
        for event_id in event_ids:
            if token.is_cancelled:
                break
            results[event_id] = self._run_unit(event_id, request)
        return results

    def _run_parallel(
        self,
        event_ids: tuple[UUID, ...],
        request: RecalculationFilter,
        token: CancellationToken,
        max_workers: int,
    ) -> dict[UUID, RecalculationResult]:
        results: dict[UUID, RecalculationResult] = {}
        in_flight: dict[Future[RecalculationResult], UUID] = {}

        def collect(done: set[Future[RecalculationResult]]) -> None:
            for future in done:
                results[in_flight.pop(future)] = future.result()

        with ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="eventfin-recalc",
        ) as pool:
            for event_id in event_ids:
                while len(in_flight) >= max_workers:
                    done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                    collect(done)
                if token.is_cancelled:
                    break
                # Units inherit the batch's LogContext
                ctx = contextvars.copy_context()
                future = pool.submit(ctx.run, self._run_unit, event_id, request)
                in_flight[future] = event_id
            while in_flight:
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                collect(done)
        return results

    # -------------------------------------------------------------------------
    # Portfolio
    # -------------------------------------------------------------------------

    def portfolio_summary(self, request: RecalculationFilter | None = None) -> PortfolioSummary:
        """Consolidated figures of the events a batch with ``request`` would select.

        Snapshots come from ``get_snapshot``, so unchanged events are served
        from the cache.

        Raises:
            ConcurrentMutationError: If an event's ledger kept changing
                during its read.
        """
        request = request or RecalculationFilter()
        snapshots = [
            self.get_snapshot(event_id, include_tax=request.include_tax, as_of=request.as_of)
            for event_id in self.select_events(request)
        ]
        summary = self._portfolio.summarize(snapshots, include_tax=request.include_tax)
        logger.info(
            "portfolio_summary_built",
            extra={
                "event_count": summary.event_count,
                "include_tax": request.include_tax,
                "utility": summary.utility,
                "margin_pct": summary.margin_pct,
                "health_tier": summary.health_tier,
            },
        )
        return summary
