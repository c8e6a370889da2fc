"""Read-only selectors returning domain DTOs."""

from eventfin_kernel.selectors.base import BaseSelector
from eventfin_kernel.selectors.ledger_selector import LedgerSelector

__all__ = ["BaseSelector", "LedgerSelector"]
