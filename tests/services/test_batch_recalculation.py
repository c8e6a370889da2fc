"""
Tests for batch recalculation (RecalculationService.recalculate_all).

Covers selection, per-event failure isolation, cancellation, the threaded
path and the batch report.
"""

from datetime import date

import pytest

from eventfin_kernel.exceptions import BatchPartialFailure
from eventfin_services import BatchStatus, CancellationToken, RecalculationFilter


@pytest.fixture
def closed_events(seeder):
    ids = []
    for i in range(5):
        event_id = seeder.event(estimated_income="1160", code=f"EV-{i:02d}")
        seeder.income(event_id, "1160", settled=True)
        seeder.expense(event_id, "580")
        ids.append(event_id)
    return ids


def _fail_for(service, monkeypatch, failing_ids):
    original = service._compute

    def compute(ledger, as_of, include_tax):
        if ledger.event.event_id in failing_ids:
            raise RuntimeError(f"cannot compute {ledger.event.code}")
        return original(ledger, as_of, include_tax)

    monkeypatch.setattr(service, "_compute", compute)


class TestSelection:

    def test_defaults_to_closed_events(self, make_recalculation_service, seeder, closed_events):
        seeder.event(lifecycle_state="open", code="EV-OPEN")
        service = make_recalculation_service(max_workers=1)

        assert service.select_events(RecalculationFilter()) == tuple(closed_events)

    def test_explicit_states_and_ids(self, make_recalculation_service, seeder, closed_events):
        open_id = seeder.event(lifecycle_state="open", code="EV-OPEN")
        service = make_recalculation_service(max_workers=1)

        selected = service.select_events(RecalculationFilter(
            event_states=("open", "closed"),
            event_ids=(open_id, closed_events[0]),
        ))

        assert set(selected) == {open_id, closed_events[0]}

    def test_limit_capped_by_config(self, make_recalculation_service, closed_events):
        service = make_recalculation_service(max_workers=1, batch_limit=2)

        assert len(service.select_events(RecalculationFilter(limit=10))) == 2
        assert len(service.select_events(RecalculationFilter(limit=1))) == 1

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            RecalculationFilter(limit=0)


class TestSequentialBatch:

    def test_all_succeed(self, make_recalculation_service, closed_events):
        service = make_recalculation_service(max_workers=1)

        report = service.recalculate_all()

        assert report.status == BatchStatus.COMPLETED
        assert report.total == report.succeeded == 5
        assert [r.event_id for r in report.results] == closed_events
        assert all(r.snapshot is not None for r in report.results)
        report.raise_for_failures()

    def test_failure_isolated(self, make_recalculation_service, closed_events, monkeypatch):
        service = make_recalculation_service(max_workers=1)
        _fail_for(service, monkeypatch, {closed_events[2]})

        report = service.recalculate_all()

        assert report.status == BatchStatus.PARTIALLY_COMPLETED
        assert report.succeeded == 4
        assert report.failed == 1
        failure = report.failures()[0]
        assert failure.event_id == closed_events[2]
        assert failure.error_code == "UNHANDLED_EXCEPTION"
        assert "EV-02" in failure.error_message

    def test_raise_for_failures(self, make_recalculation_service, closed_events, monkeypatch):
        service = make_recalculation_service(max_workers=1)
        _fail_for(service, monkeypatch, {closed_events[0], closed_events[1]})

        report = service.recalculate_all()

        with pytest.raises(BatchPartialFailure) as exc_info:
            report.raise_for_failures()
        assert exc_info.value.succeeded == 3
        assert {f["event_id"] for f in exc_info.value.failures} == {
            str(closed_events[0]), str(closed_events[1]),
        }

    def test_all_fail(self, make_recalculation_service, closed_events, monkeypatch):
        service = make_recalculation_service(max_workers=1)
        _fail_for(service, monkeypatch, set(closed_events))

        assert service.recalculate_all().status == BatchStatus.FAILED

    def test_cancellation_stops_new_units(
        self, make_recalculation_service, closed_events, monkeypatch,
    ):
        service = make_recalculation_service(max_workers=1)
        token = CancellationToken()
        original = service._run_unit

        def run_then_cancel(event_id, request):
            result = original(event_id, request)
            token.cancel()
            return result

        monkeypatch.setattr(service, "_run_unit", run_then_cancel)

        report = service.recalculate_all(cancel_token=token)

        assert report.status == BatchStatus.CANCELLED
        assert report.succeeded == 1
        assert report.cancelled == 4
        assert report.failed == 0
        assert all(r.error_code == "CANCELLED" for r in report.results[1:])
        report.raise_for_failures()

    def test_request_options_forwarded(self, make_recalculation_service, closed_events):
        service = make_recalculation_service(max_workers=1)

        report = service.recalculate_all(RecalculationFilter(
            include_tax=True, as_of=date(2024, 2, 1),
        ))

        snapshot = report.results[0].snapshot
        assert snapshot.include_tax
        assert snapshot.as_of == date(2024, 2, 1)

    def test_report_to_dict(self, make_recalculation_service, closed_events):
        data = make_recalculation_service(max_workers=1).recalculate_all().to_dict()

        assert data["status"] == "completed"
        assert data["total"] == 5
        assert len(data["results"]) == 5


@pytest.mark.slow
class TestThreadedBatch:

    def test_all_succeed(self, make_recalculation_service, closed_events):
        service = make_recalculation_service(max_workers=3)

        report = service.recalculate_all()

        assert report.status == BatchStatus.COMPLETED
        assert [r.event_id for r in report.results] == closed_events
        assert report.succeeded == 5

    def test_failure_isolated(self, make_recalculation_service, closed_events, monkeypatch):
        service = make_recalculation_service(max_workers=3)
        _fail_for(service, monkeypatch, {closed_events[4]})

        report = service.recalculate_all()

        assert report.succeeded == 4
        assert [r.event_id for r in report.failures()] == [closed_events[4]]

    def test_units_inherit_batch_log_context(
        self, make_recalculation_service, closed_events, captured_logs,
    ):
        service = make_recalculation_service(max_workers=3)

        report = service.recalculate_all()

        completed = [
            r for r in captured_logs() if r["message"] == "recalculation_completed"
        ]
        assert len(completed) == 5
        assert {r["batch_id"] for r in completed} == {report.batch_id}
        assert {r["event_id"] for r in completed} == {str(e) for e in closed_events}

    def test_cancelled_before_start(self, make_recalculation_service, closed_events):
        service = make_recalculation_service(max_workers=3)
        token = CancellationToken()
        token.cancel()

        report = service.recalculate_all(cancel_token=token)

        assert report.status == BatchStatus.CANCELLED
        assert report.cancelled == 5
