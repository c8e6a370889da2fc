"""
Configuration Loader (``eventfin_config.loader``).

Responsibility
--------------
Loads the engine YAML file and parses it into ``eventfin_config.schema``
dataclasses.  Runtime callers use ``eventfin_config.get_engine_config()``
instead of calling this module directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; sections that are absent fall back to the schema defaults.
* Amounts and thresholds are parsed as ``Decimal`` from their string form,
  never through ``float``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from eventfin_config.schema import BatchSettings, EngineConfig, TaxSettings
from eventfin_engines.overdue import OverdueBucket
from eventfin_engines.status import HealthTier, HealthTierRule
from eventfin_kernel.domain.ledger import Category


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a Decimal from a YAML string or int."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field_name}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{field_name}: invalid decimal {value!r}") from None


def parse_tax(data: dict[str, Any]) -> TaxSettings:
    defaults = TaxSettings()
    return TaxSettings(
        rate=parse_decimal(data.get("rate", defaults.rate), "tax.rate"),
        decimal_places=int(data.get("decimal_places", defaults.decimal_places)),
    )


def parse_health_tiers(items: list[dict[str, Any]]) -> tuple[HealthTierRule, ...]:
    rules = []
    for item in items:
        try:
            tier = HealthTier(item["tier"])
        except ValueError:
            raise ValueError(f"health_tiers: unknown tier {item['tier']!r}") from None
        rules.append(HealthTierRule(
            tier=tier,
            min_margin=parse_decimal(item["min_margin"], f"health_tiers.{tier.value}"),
        ))
    return tuple(rules)


def parse_overdue_buckets(items: list[dict[str, Any]]) -> tuple[OverdueBucket, ...]:
    return tuple(
        OverdueBucket(
            name=str(item["name"]),
            min_days=int(item["min_days"]),
            max_days=int(item["max_days"]) if item.get("max_days") is not None else None,
            severity=str(item.get("severity", "info")),
        )
        for item in items
    )


def parse_category_aliases(data: dict[str, list[Any]]) -> dict[str, Category]:
    """
    Invert ``{category: [alias, ...]}`` into ``{alias: category}``.

    The canonical category value is always an alias of itself.
    """
    aliases: dict[str, Category] = {}
    for category_name, raw_aliases in data.items():
        try:
            category = Category(category_name)
        except ValueError:
            raise ValueError(
                f"category_aliases: unknown category {category_name!r}"
            ) from None
        aliases[category.value] = category
        for alias in raw_aliases or ():
            alias_key = str(alias)
            previous = aliases.get(alias_key)
            if previous is not None and previous != category:
                raise ValueError(
                    f"category_aliases: {alias_key!r} maps to both "
                    f"{previous.value} and {category.value}"
                )
            aliases[alias_key] = category
    return aliases


def parse_batch(data: dict[str, Any]) -> BatchSettings:
    defaults = BatchSettings()
    return BatchSettings(
        max_workers=int(data.get("max_workers", defaults.max_workers)),
        batch_limit=int(data.get("batch_limit", defaults.batch_limit)),
        eligible_states=tuple(data.get("eligible_states", defaults.eligible_states)),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization (deterministic)."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_engine_config(
    data: dict[str, Any],
    source: str | None = None,
) -> EngineConfig:
    """Build an ``EngineConfig`` from parsed YAML."""
    kwargs: dict[str, Any] = {
        "checksum": compute_checksum(data),
        "source": source,
    }
    if "tax" in data:
        kwargs["tax"] = parse_tax(data["tax"] or {})
    if "tolerance" in data:
        kwargs["tolerance"] = parse_decimal(data["tolerance"], "tolerance")
    if "health_tiers" in data:
        kwargs["health_rules"] = parse_health_tiers(data["health_tiers"] or [])
    if "overdue_buckets" in data:
        kwargs["overdue_buckets"] = parse_overdue_buckets(data["overdue_buckets"] or [])
    if "category_aliases" in data:
        kwargs["category_aliases"] = parse_category_aliases(
            data["category_aliases"] or {},
        )
    if "batch" in data:
        kwargs["batch"] = parse_batch(data["batch"] or {})

    unknown = set(data) - {
        "tax", "tolerance", "health_tiers", "overdue_buckets",
        "category_aliases", "batch",
    }
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")

    return replace(EngineConfig(), **kwargs)


def load_engine_config(path: Path) -> EngineConfig:
    """Load and parse an engine configuration file."""
    return parse_engine_config(load_yaml_file(path), source=str(path))
