"""
CreditTransactionRow: the append-only credit ledger.
Pure schema only. Rows are inserted once and never updated or deleted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from credit_ledger.core.database.base import Base, JsonDocument, UtcDateTime, utc_now


class CreditTransactionRow(Base):
    """
    One signed credit movement for one user.

    Schema-only:
    - id (UUID string assigned by the caller)
    - user_id
    - type (TransactionType value)
    - amount (signed; positive in, negative out)
    - description
    - metadata (JSON audit bag)
    - idempotency_key (unique when present)
    - created_at
    """

    __tablename__ = "credit_transactions"
    __table_args__ = (
        Index("ix_credit_transactions_user_created", "user_id", "created_at"),
        Index("ix_credit_transactions_user_type", "user_id", "type"),
        Index("ix_credit_transactions_created", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)

    type: Mapped[str] = mapped_column(String(32), nullable=False)

    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # "metadata" is reserved on declarative classes.
    metadata_: Mapped[Dict[str, Any]] = mapped_column(
        "metadata",
        JsonDocument,
        nullable=False,
        default=dict,
    )

    idempotency_key: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime,
        nullable=False,
        default=utc_now,
    )
