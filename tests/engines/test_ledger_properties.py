"""
Hypothesis property tests for tax and ledger invariants.

Properties:
1. split(total).subtotal + split(total).tax == total for every amount
2. Per-category totals sum to the aggregate total
3. Aggregation does not depend on record order
4. Merging partial aggregates equals aggregating the whole
5. utility == income - expense - provision on both tax bases
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from eventfin_engines.aggregation import LedgerAggregator
from eventfin_engines.reconciliation import ReconciliationEngine
from eventfin_engines.tax import TaxNormalizer
from eventfin_kernel.domain.ledger import BusinessEvent, LedgerRecord, RecordKind

EVENT_ID = uuid4()
TAX = TaxNormalizer()
AGGREGATOR = LedgerAggregator()
ENGINE = ReconciliationEngine(TAX)

CATEGORY_REFS = [None, "6", "7", "8", "9", "SP", "RRHH", "Materiales", "Peaje", "Catering"]


# =============================================================================
# Strategies
# =============================================================================


def amounts(min_value="-1000", max_value="1000000"):
    return st.decimals(
        min_value=Decimal(min_value),
        max_value=Decimal(max_value),
        places=2,
        allow_nan=False,
        allow_infinity=False,
    )


@composite
def ledger_records(draw):
    split = TAX.split(draw(amounts()))
    kind = draw(st.sampled_from(list(RecordKind)))
    return LedgerRecord(
        record_id=uuid4(),
        event_id=EVENT_ID,
        kind=kind,
        amount_subtotal=split.subtotal,
        tax_amount=split.tax,
        amount_total=split.total,
        occurs_on=date(2024, 1, 1),
        category_ref=draw(st.sampled_from(CATEGORY_REFS)),
        settled=draw(st.booleans()),
        soft_deleted=draw(st.booleans()),
    )


record_lists = st.lists(ledger_records(), max_size=25)


# =============================================================================
# Properties
# =============================================================================


@given(total=amounts())
def test_split_is_exact(total):
    split = TAX.split(total)
    assert split.subtotal + split.tax == total


@given(subtotal=amounts(min_value="0.01"))
def test_split_of_inclusive_within_a_cent(subtotal):
    total = TAX.to_inclusive(subtotal)
    assert abs(TAX.to_exclusive(total) - subtotal) <= Decimal("0.01")


@given(records=record_lists)
def test_category_totals_sum_to_aggregate(records):
    result = AGGREGATOR.aggregate(EVENT_ID, records)

    assert result.income_by_category.sum() == result.income.total
    assert result.expense_by_category.sum() == result.expense.total
    assert result.provision_by_category.sum() == result.provision


@given(records=record_lists, seed=st.randoms(use_true_random=False))
def test_aggregation_order_independent(records, seed):
    shuffled = list(records)
    seed.shuffle(shuffled)

    assert AGGREGATOR.aggregate(EVENT_ID, records) == AGGREGATOR.aggregate(EVENT_ID, shuffled)


@given(records=record_lists, cut=st.integers(min_value=0, max_value=25))
def test_merge_matches_whole(records, cut):
    left = AGGREGATOR.aggregate(EVENT_ID, records[:cut])
    right = AGGREGATOR.aggregate(EVENT_ID, records[cut:])

    assert left.merge(right) == AGGREGATOR.aggregate(EVENT_ID, records)


@settings(max_examples=50)
@given(records=record_lists, estimate=amounts(min_value="0"))
def test_utility_formula_on_both_bases(records, estimate):
    event = BusinessEvent(event_id=EVENT_ID, code="EV-P", estimated_income=estimate)
    snapshot = ENGINE.reconcile(event, AGGREGATOR.aggregate(EVENT_ID, records))

    for figures in (snapshot.inclusive, snapshot.exclusive):
        assert figures.utility == (
            figures.income_total - figures.expense_total - figures.provision_total
        )
