"""
Tests for the Ledger Aggregator.

Covers:
- Grouping by kind, settlement and category
- Soft-deleted, converted-provision and foreign-event exclusion
- as_of cut-off
- Inconsistent record rejection and its warning log
- Order independence and merge associativity
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from eventfin_engines.aggregation import Amounts, LedgerAggregator
from eventfin_kernel.domain.ledger import Category, LedgerRecord, RecordKind
from eventfin_kernel.exceptions import InconsistentRecordError

INCOME = RecordKind.INCOME
EXPENSE = RecordKind.EXPENSE
PROVISION = RecordKind.PROVISION


@pytest.fixture
def aggregator():
    return LedgerAggregator()


class TestGrouping:

    def test_income_split_by_settlement(self, aggregator, event_id, make_record):
        records = [
            make_record(INCOME, "100000", settled=True),
            make_record(INCOME, "11600", settled=False),
        ]
        result = aggregator.aggregate(event_id, records)

        assert result.income.settled.total == Decimal("100000")
        assert result.income.pending.total == Decimal("11600")
        assert result.income.total.subtotal == Decimal("96206.90")
        assert result.income_count == 2

    def test_expense_by_category(self, aggregator, event_id, make_record):
        records = [
            make_record(EXPENSE, "1160", category_ref="MAT", settled=True),
            make_record(EXPENSE, "2320", category_ref="Materiales"),
            make_record(EXPENSE, "580", category_ref="RRHH"),
            make_record(EXPENSE, "116", category_ref="Catering"),
        ]
        result = aggregator.aggregate(event_id, records)

        assert result.expense_by_category.get(Category.MATERIALS).total == Decimal("3480")
        assert result.expense_by_category.get(Category.HUMAN_RESOURCES).total == Decimal("580")
        assert result.expense_by_category.get(Category.UNCATEGORIZED).total == Decimal("116")
        assert result.expense_by_category.get(Category.FUEL_TOLLS) == Amounts()

    def test_category_sum_equals_total(self, aggregator, event_id, make_record):
        records = [
            make_record(EXPENSE, "1000.01", category_ref="9"),
            make_record(EXPENSE, "333.33", category_ref="7"),
            make_record(EXPENSE, "77.77"),
            make_record(PROVISION, "500", category_ref="COMB"),
        ]
        result = aggregator.aggregate(event_id, records)

        assert result.expense_by_category.sum() == result.expense.total
        assert result.provision_by_category.sum() == result.provision

    def test_counts_uninvoiced_incomes(self, aggregator, event_id, make_record):
        records = [
            make_record(INCOME, "100", invoice_reference="F-001"),
            make_record(INCOME, "100"),
        ]
        result = aggregator.aggregate(event_id, records)

        assert result.uninvoiced_income_count == 1


class TestExclusion:

    def test_soft_deleted_excluded(self, aggregator, event_id, make_record):
        records = [
            make_record(EXPENSE, "1160"),
            make_record(EXPENSE, "5000", soft_deleted=True),
        ]
        result = aggregator.aggregate(event_id, records)

        assert result.expense.total.total == Decimal("1160")
        assert result.expense_count == 1

    def test_converted_provision_excluded(self, aggregator, event_id, make_record):
        """The realised expense counts; the provision contributes zero."""
        expense = make_record(EXPENSE, "20000", category_ref="COMB")
        provision = make_record(
            PROVISION, "20000", category_ref="COMB",
            converted_to_expense_id=expense.record_id,
        )
        result = aggregator.aggregate(event_id, [expense, provision])

        assert result.provision == Amounts()
        assert result.provision_count == 0
        assert result.expense.total.total == Decimal("20000")

    def test_other_event_ignored(self, aggregator, event_id, make_record):
        records = [
            make_record(INCOME, "100"),
            make_record(INCOME, "900", event_id=uuid4()),
        ]
        result = aggregator.aggregate(event_id, records)

        assert result.income.total.total == Decimal("100")

    def test_as_of_cut_off_inclusive(self, aggregator, event_id, make_record):
        records = [
            make_record(EXPENSE, "100", occurs_on=date(2024, 1, 31)),
            make_record(EXPENSE, "200", occurs_on=date(2024, 2, 1)),
        ]
        result = aggregator.aggregate(event_id, records, as_of=date(2024, 1, 31))

        assert result.expense.total.total == Decimal("100")

    def test_inconsistent_record_rejected(
        self, aggregator, event_id, make_record, captured_logs,
    ):
        bad = LedgerRecord(
            record_id=uuid4(),
            event_id=event_id,
            kind=EXPENSE,
            amount_subtotal=Decimal("100.00"),
            tax_amount=Decimal("16.00"),
            amount_total=Decimal("120.00"),
            occurs_on=date(2024, 1, 15),
        )
        result = aggregator.aggregate(event_id, [make_record(EXPENSE, "116"), bad])

        assert result.expense.total.total == Decimal("116")
        assert len(result.rejected) == 1
        error = result.rejected[0]
        assert isinstance(error, InconsistentRecordError)
        assert error.code == "INCONSISTENT_RECORD"
        assert error.difference == Decimal("4.00")
        assert result.rejected_record_ids == (str(bad.record_id),)

        warnings = [
            r for r in captured_logs()
            if r["message"] == "inconsistent_record_excluded"
        ]
        assert warnings and warnings[0]["record_id"] == str(bad.record_id)

    def test_one_cent_difference_tolerated(self, aggregator, event_id):
        record = LedgerRecord(
            record_id=uuid4(),
            event_id=event_id,
            kind=EXPENSE,
            amount_subtotal=Decimal("100.00"),
            tax_amount=Decimal("16.00"),
            amount_total=Decimal("116.01"),
            occurs_on=date(2024, 1, 15),
        )
        result = aggregator.aggregate(event_id, [record])

        assert result.rejected == ()
        assert result.expense_count == 1


class TestCombination:

    def test_order_independent(self, aggregator, event_id, make_record):
        records = [
            make_record(INCOME, "1000", settled=True),
            make_record(EXPENSE, "333.33", category_ref="MAT"),
            make_record(EXPENSE, "0.01", category_ref="RH"),
            make_record(PROVISION, "77.70", category_ref="SP"),
        ]
        forward = aggregator.aggregate(event_id, records)
        backward = aggregator.aggregate(event_id, list(reversed(records)))

        assert forward == backward

    def test_merge_equals_whole(self, aggregator, event_id, make_record):
        records = [
            make_record(INCOME, "1000", settled=True),
            make_record(EXPENSE, "333.33", category_ref="MAT"),
            make_record(PROVISION, "77.70", category_ref="SP"),
            make_record(EXPENSE, "12.50", settled=True),
        ]
        whole = aggregator.aggregate(event_id, records)
        merged = aggregator.aggregate(event_id, records[:2]).merge(
            aggregator.aggregate(event_id, records[2:]),
        )

        assert merged == whole

    def test_merge_is_associative(self, aggregator, event_id, make_record):
        a = aggregator.aggregate(event_id, [make_record(INCOME, "10")])
        b = aggregator.aggregate(event_id, [make_record(EXPENSE, "20", category_ref="7")])
        c = aggregator.aggregate(event_id, [make_record(PROVISION, "30")])

        assert a.merge(b).merge(c) == a.merge(b.merge(c))

    def test_merge_rejects_other_event(self, aggregator, event_id):
        with pytest.raises(ValueError, match="different events"):
            aggregator.aggregate(event_id, []).merge(aggregator.aggregate(uuid4(), []))
