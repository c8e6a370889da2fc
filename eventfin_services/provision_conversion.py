"""
ProvisionConversionService -- realise a provision as an expense.

The expense is created and the provision's ``converted_to_expense_id`` is
set in ONE transaction, so no committed ledger version counts both the
provision and its expense, or neither.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from eventfin_kernel.domain.ledger import LedgerRecord
from eventfin_kernel.exceptions import (
    ProvisionAlreadyConvertedError,
    RecordNotFoundError,
)
from eventfin_kernel.logging_config import get_logger
from eventfin_kernel.models.ledger import ExpenseModel, ProvisionModel

logger = get_logger("services.provision_conversion")


class ProvisionConversionService:
    """Converts provisions into expenses."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def convert(
        self,
        provision_id: UUID,
        settled: bool = False,
        occurs_on: date | None = None,
    ) -> LedgerRecord:
        """Create the realised expense and link the provision to it.

        Args:
            provision_id: Provision to convert.
            settled: Whether the expense is already paid.
            occurs_on: Expense date; defaults to the provision's date.

        Returns:
            The new expense record.

        Raises:
            RecordNotFoundError: If the provision does not exist or is deleted.
            ProvisionAlreadyConvertedError: If it was already converted.
        """
        with self._session_factory() as session, session.begin():
            provision = session.execute(
                select(ProvisionModel).where(ProvisionModel.id == provision_id)
            ).scalar_one_or_none()
            if provision is None or provision.soft_deleted:
                raise RecordNotFoundError("provision", str(provision_id))
            if provision.converted_to_expense_id is not None:
                raise ProvisionAlreadyConvertedError(
                    str(provision_id), str(provision.converted_to_expense_id),
                )

            expense = ExpenseModel(
                id=uuid4(),
                event_id=provision.event_id,
                description=provision.description,
                amount_subtotal=provision.amount_subtotal,
                tax_amount=provision.tax_amount,
                amount_total=provision.amount_total,
                category_ref=provision.category_ref,
                occurs_on=occurs_on or provision.occurs_on,
                settled=settled,
            )
            session.add(expense)
            # expense row must exist before the provision references it
            session.flush()
            provision.converted_to_expense_id = expense.id
            session.flush()
            record = expense.to_record()

        logger.info(
            "provision_converted",
            extra={
                "provision_id": str(provision_id),
                "expense_id": str(record.record_id),
                "event_id": str(record.event_id),
                "amount_total": record.amount_total,
            },
        )
        return record
