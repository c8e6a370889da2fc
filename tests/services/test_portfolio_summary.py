"""Tests for RecalculationService.portfolio_summary."""

from decimal import Decimal

from eventfin_engines.status import HealthTier
from eventfin_services import RecalculationFilter


class TestPortfolioSummary:

    def test_closed_events_consolidated(self, recalculation_service, seeder):
        first = seeder.event(estimated_income="100000")
        seeder.income(first, "100000", settled=True)
        seeder.expense(first, "40000", category_ref="MAT", settled=True)
        second = seeder.event()
        seeder.income(second, "11600")
        seeder.expense(second, "23200", category_ref="RH", settled=True)
        seeder.income(seeder.event(lifecycle_state="open"), "1160000")

        summary = recalculation_service.portfolio_summary()

        assert set(summary.event_ids) == {first, second}
        assert summary.exclusive.utility == Decimal("41724.14")
        assert summary.margin_pct == Decimal("43.37")
        assert summary.health_tier == HealthTier.EXCELLENT
        assert summary.exclusive.expense_by_category["materials"] == Decimal("34482.76")
        assert summary.exclusive.expense_by_category["human_resources"] == Decimal("20000.00")

    def test_filter_narrows_selection(self, recalculation_service, seeder):
        kept = seeder.event()
        seeder.income(kept, "116")
        seeder.income(seeder.event(), "232")

        summary = recalculation_service.portfolio_summary(
            RecalculationFilter(event_ids=(kept,), include_tax=True),
        )

        assert summary.event_ids == (kept,)
        assert summary.utility == Decimal("116.00")

    def test_unchanged_events_served_from_cache(
        self, recalculation_service, seeder, captured_logs,
    ):
        event_id = seeder.event()
        seeder.income(event_id, "116")
        recalculation_service.recalculate(event_id)

        recalculation_service.portfolio_summary()

        messages = [r["message"] for r in captured_logs()]
        assert "snapshot_cache_hit" in messages
        assert messages.count("recalculation_completed") == 1
        assert "portfolio_summary_built" in messages

    def test_no_events(self, recalculation_service):
        summary = recalculation_service.portfolio_summary()

        assert summary.event_count == 0
        assert summary.health_tier == HealthTier.NONE
