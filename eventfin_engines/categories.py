"""
Category Classifier - map raw upstream catalog references to categories.

The upstream catalog identifies expense categories inconsistently: by
numeric id ("9"), by short code ("COMB"), or by one of several name
spellings ("Combustible/Peaje", "Combustible y Peaje", "Fuel & Tolls").
Classification is a lookup in a data-driven alias table; adding a
spelling means adding an alias (in code or in the YAML config), never
new branching logic.

Keys are normalized before lookup: trimmed, case-folded, accents
stripped and internal whitespace collapsed.  Unmapped or missing
references classify as ``Category.UNCATEGORIZED``.

Usage:
    classifier = CategoryClassifier()
    classifier.classify("Recursos Humanos")   # Category.HUMAN_RESOURCES
    classifier.classify(" rrhh ")             # Category.HUMAN_RESOURCES
    classifier.classify(None)                 # Category.UNCATEGORIZED

    extended = classifier.with_aliases({"Nómina": "human_resources"})
"""

from __future__ import annotations

import unicodedata
from collections.abc import Mapping
from types import MappingProxyType

from eventfin_kernel.domain.ledger import Category, LedgerRecord
from eventfin_kernel.logging_config import get_logger

logger = get_logger("engines.categories")


DEFAULT_ALIASES: Mapping[str, Category] = MappingProxyType({
    # Upstream catalog ids
    "6": Category.PAYMENT_REQUESTS,
    "7": Category.HUMAN_RESOURCES,
    "8": Category.MATERIALS,
    "9": Category.FUEL_TOLLS,
    # Short codes
    "SP": Category.PAYMENT_REQUESTS,
    "RH": Category.HUMAN_RESOURCES,
    "MAT": Category.MATERIALS,
    "COMB": Category.FUEL_TOLLS,
    # Fuel & tolls
    "Combustible": Category.FUEL_TOLLS,
    "Combustible/Peaje": Category.FUEL_TOLLS,
    "Combustible y Peaje": Category.FUEL_TOLLS,
    "Combustibles": Category.FUEL_TOLLS,
    "Peaje": Category.FUEL_TOLLS,
    "Peajes": Category.FUEL_TOLLS,
    "Fuel": Category.FUEL_TOLLS,
    "Fuel & Tolls": Category.FUEL_TOLLS,
    "Fuel and Tolls": Category.FUEL_TOLLS,
    "fuel_tolls": Category.FUEL_TOLLS,
    # Materials
    "Material": Category.MATERIALS,
    "Materiales": Category.MATERIALS,
    "Materials": Category.MATERIALS,
    "materials": Category.MATERIALS,
    # Human resources
    "Recursos Humanos": Category.HUMAN_RESOURCES,
    "Recurso Humano": Category.HUMAN_RESOURCES,
    "RRHH": Category.HUMAN_RESOURCES,
    "Human Resources": Category.HUMAN_RESOURCES,
    "HR": Category.HUMAN_RESOURCES,
    "human_resources": Category.HUMAN_RESOURCES,
    # Payment requests
    "Solicitudes de Pago": Category.PAYMENT_REQUESTS,
    "Solicitud de Pago": Category.PAYMENT_REQUESTS,
    "SPs": Category.PAYMENT_REQUESTS,
    "Payment Requests": Category.PAYMENT_REQUESTS,
    "Payment Request": Category.PAYMENT_REQUESTS,
    "payment_requests": Category.PAYMENT_REQUESTS,
})


def normalize_key(ref: object) -> str:
    """Normalize a raw reference: trim, case-fold, strip accents, collapse spaces."""
    text = unicodedata.normalize("NFKD", str(ref))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return " ".join(text.casefold().split())


def _coerce_category(value: Category | str) -> Category:
    if isinstance(value, Category):
        return value
    try:
        return Category(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"Unknown category in alias table: {value!r}") from None


class CategoryClassifier:
    """Lookup-table classifier for ledger categories."""

    def __init__(self, aliases: Mapping[str, Category | str] | None = None):
        source = DEFAULT_ALIASES if aliases is None else aliases
        table: dict[str, Category] = {}
        for raw, value in source.items():
            key = normalize_key(raw)
            if not key:
                raise ValueError("Category alias cannot be blank")
            table[key] = _coerce_category(value)
        self._table: Mapping[str, Category] = MappingProxyType(table)

    @property
    def aliases(self) -> Mapping[str, Category]:
        """Normalized alias table (read-only)."""
        return self._table

    def classify(self, ref: LedgerRecord | str | int | None) -> Category:
        """Map a record (or its raw ``category_ref``) to a canonical category."""
        if isinstance(ref, LedgerRecord):
            ref = ref.category_ref
        if ref is None:
            return Category.UNCATEGORIZED
        key = normalize_key(ref)
        if not key:
            return Category.UNCATEGORIZED
        category = self._table.get(key)
        if category is None:
            logger.debug("category_unmapped", extra={"category_ref": str(ref)})
            return Category.UNCATEGORIZED
        return category

    def with_aliases(
        self,
        extra: Mapping[str, Category | str],
    ) -> CategoryClassifier:
        """New classifier with ``extra`` aliases added (overriding on conflict)."""
        merged: dict[str, Category | str] = dict(self._table)
        merged.update(extra)
        return CategoryClassifier(merged)
