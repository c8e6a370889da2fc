"""Service fixtures: services wired to the per-test SQLite database."""

from dataclasses import replace

import pytest

from eventfin_config.schema import BatchSettings
from eventfin_services import (
    AccountingStateService,
    OverdueService,
    ProvisionConversionService,
    RecalculationService,
)


@pytest.fixture
def recalculation_service(session_factory, config, clock) -> RecalculationService:
    return RecalculationService(session_factory, config, clock)


@pytest.fixture
def make_recalculation_service(session_factory, config, clock):
    """Build a RecalculationService with custom batch settings."""

    def _make(**batch_settings) -> RecalculationService:
        batch = replace(BatchSettings(), **batch_settings)
        return RecalculationService(session_factory, replace(config, batch=batch), clock)

    return _make


@pytest.fixture
def overdue_service(session_factory, config, clock) -> OverdueService:
    return OverdueService(session_factory, config, clock)


@pytest.fixture
def accounting_state_service(session_factory, recalculation_service) -> AccountingStateService:
    return AccountingStateService(session_factory, recalculation_service)


@pytest.fixture
def provision_conversion_service(session_factory) -> ProvisionConversionService:
    return ProvisionConversionService(session_factory)
