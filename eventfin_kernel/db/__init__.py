"""Database layer - engine, base classes and ledger listeners."""

from eventfin_kernel.db.base import Base, TrackedBase, UUIDString
from eventfin_kernel.db.engine import (
    build_engine,
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from eventfin_kernel.db.listeners import (
    register_ledger_listeners,
    unregister_ledger_listeners,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "build_engine",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
    "register_ledger_listeners",
    "unregister_ledger_listeners",
]
