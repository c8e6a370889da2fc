"""
ORM model for the latest computed financial snapshot of each event.

A snapshot row is derived data, never a source of truth: it is rewritten
on every successful recalculation and flagged ``is_stale`` when a
recalculation for the event fails, so readers keep seeing the previous
figures with an explicit stale marker.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from eventfin_kernel.db.base import TrackedBase, UUIDString


class SnapshotModel(TrackedBase):
    """Persisted snapshot (one row per event)."""

    __tablename__ = "financial_snapshots"

    event_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    include_tax: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    as_of: Mapped[date | None] = mapped_column(nullable=True)
    ledger_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    health_tier: Mapped[str | None] = mapped_column(String(50), nullable=True)
    collection_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    is_stale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stale_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
