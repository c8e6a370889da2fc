"""
eventfin_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way services obtain configuration at runtime,
    through ``get_engine_config()``.  Returns a frozen ``EngineConfig``
    that also builds the configured engines.

Architecture position:
    Configuration -- sits above ``eventfin_engines`` and below
    ``eventfin_services``.  The kernel and engines MUST NEVER import from
    ``eventfin_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- invalid values or unknown sections.

Every successful call emits an ``EVENTFIN_CONFIG_TRACE`` log record with
the source path and checksum, tying computed snapshots back to the exact
configuration that produced them.
"""

from __future__ import annotations

from pathlib import Path

from eventfin_config.loader import load_engine_config
from eventfin_config.schema import BatchSettings, EngineConfig, TaxSettings
from eventfin_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_engine_config(config_path: Path | str | None = None) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to the shipped
            ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_engine_config(path)

    _logger.info(
        "EVENTFIN_CONFIG_TRACE",
        extra={
            "trace_type": "EVENTFIN_CONFIG_TRACE",
            "config_source": config.source,
            "checksum": config.checksum,
            "tax_rate": config.tax.rate,
            "batch_max_workers": config.batch.max_workers,
            "category_alias_count": len(config.category_aliases),
        },
    )
    return config


__all__ = [
    "BatchSettings",
    "DEFAULT_CONFIG_PATH",
    "EngineConfig",
    "TaxSettings",
    "get_engine_config",
]
