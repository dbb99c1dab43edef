"""
IdempotencyRecordRow: reservations and results for keyed operations.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.core.database.base import Base, JsonDocument, UtcDateTime, utc_now


class IdempotencyRecordRow(Base):
    """
    A key maps to at most one resulting transaction.

    `status` is "pending" between reservation and the ledger write, and
    "completed" once `result_payload` holds the DTO returned to the caller.
    """

    __tablename__ = "idempotency_records"
    __table_args__ = (
        Index("ix_idempotency_records_user", "user_id"),
        Index("ix_idempotency_records_status_created", "status", "created_at"),
    )

    key: Mapped[str] = mapped_column(String(255), primary_key=True)

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)

    operation: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False)

    resulting_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        nullable=True,
    )

    result_payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JsonDocument,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime,
        nullable=False,
        default=utc_now,
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        UtcDateTime,
        nullable=True,
    )
