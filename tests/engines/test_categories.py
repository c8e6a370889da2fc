"""
Tests for the Category Classifier.

Covers:
- Catalog ids, short codes and name spellings
- Key normalization (case, accents, whitespace)
- Unmapped and missing references
- Extending the alias table without code changes
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from eventfin_engines.categories import (
    DEFAULT_ALIASES,
    CategoryClassifier,
    normalize_key,
)
from eventfin_kernel.domain.ledger import Category, LedgerRecord, RecordKind


class TestDefaultAliases:
    """Default alias table."""

    def setup_method(self):
        self.classifier = CategoryClassifier()

    @pytest.mark.parametrize("ref,expected", [
        ("6", Category.PAYMENT_REQUESTS),
        ("7", Category.HUMAN_RESOURCES),
        ("8", Category.MATERIALS),
        ("9", Category.FUEL_TOLLS),
        (9, Category.FUEL_TOLLS),
        ("SP", Category.PAYMENT_REQUESTS),
        ("RH", Category.HUMAN_RESOURCES),
        ("MAT", Category.MATERIALS),
        ("COMB", Category.FUEL_TOLLS),
    ])
    def test_ids_and_short_codes(self, ref, expected):
        assert self.classifier.classify(ref) == expected

    @pytest.mark.parametrize("ref", [
        "Recursos Humanos", "RRHH", "Human Resources", "rrhh", "  RECURSOS   humanos ",
    ])
    def test_human_resources_spellings(self, ref):
        assert self.classifier.classify(ref) == Category.HUMAN_RESOURCES

    @pytest.mark.parametrize("ref", [
        "Solicitudes de Pago", "Solicitud de Pago", "SPs", "solicitud de pago",
    ])
    def test_payment_request_spellings(self, ref):
        assert self.classifier.classify(ref) == Category.PAYMENT_REQUESTS

    def test_every_category_has_two_spellings(self):
        for category in Category:
            if category is Category.UNCATEGORIZED:
                continue
            spellings = [k for k, v in DEFAULT_ALIASES.items() if v == category]
            assert len(spellings) >= 2, category

    def test_accents_are_ignored(self):
        assert self.classifier.classify("Materiálés") == Category.MATERIALS

    def test_unmapped_is_uncategorized(self):
        assert self.classifier.classify("Catering") == Category.UNCATEGORIZED

    def test_missing_is_uncategorized(self):
        assert self.classifier.classify(None) == Category.UNCATEGORIZED
        assert self.classifier.classify("   ") == Category.UNCATEGORIZED

    def test_classify_record(self):
        record = LedgerRecord(
            record_id=uuid4(),
            event_id=uuid4(),
            kind=RecordKind.EXPENSE,
            amount_subtotal=Decimal("100"),
            tax_amount=Decimal("16"),
            amount_total=Decimal("116"),
            occurs_on=None,
            category_ref="Combustible/Peaje",
        )
        assert self.classifier.classify(record) == Category.FUEL_TOLLS


class TestNormalizeKey:

    def test_casefold_and_trim(self):
        assert normalize_key("  Fuel  &  Tolls ") == "fuel & tolls"

    def test_strip_accents(self):
        assert normalize_key("Nómina") == "nomina"


class TestExtension:
    """Aliases are data, not code."""

    def test_with_aliases_adds_mapping(self):
        base = CategoryClassifier()
        extended = base.with_aliases({"Nómina": "human_resources"})

        assert extended.classify("nomina") == Category.HUMAN_RESOURCES
        assert base.classify("nomina") == Category.UNCATEGORIZED

    def test_with_aliases_keeps_defaults(self):
        extended = CategoryClassifier().with_aliases({"Renta": Category.MATERIALS})
        assert extended.classify("RRHH") == Category.HUMAN_RESOURCES

    def test_custom_table_only(self):
        classifier = CategoryClassifier({"X1": Category.MATERIALS})
        assert classifier.classify("x1") == Category.MATERIALS
        assert classifier.classify("MAT") == Category.UNCATEGORIZED

    def test_unknown_category_rejected(self):
        with pytest.raises(ValueError, match="Unknown category"):
            CategoryClassifier({"X1": "catering"})
