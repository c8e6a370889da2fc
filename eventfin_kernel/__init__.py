"""
Event Finance Kernel

Shared foundation for the event financial reconciliation engine:
- Structured JSON logging
- Typed exception hierarchy
- Injectable clock
- Ledger domain DTOs
- SQLAlchemy storage for events, ledger rows and computed snapshots
"""

__version__ = "0.1.0"
