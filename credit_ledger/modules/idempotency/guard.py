"""
Idempotency Guard

Purpose
-------
Make purchase, daily-bonus and referral operations take effect at most once
per idempotency key, and let replays return the originally returned result.

Lifecycle of a key
------------------
    absent --reserve--> pending --complete--> completed
                           |
                           +--release--> absent        (domain failure)
                           +--reserve after timeout--> pending (taken over)

- `reserve` runs in its own short unit of work so concurrent callers see the
  pending record before the slow part of the operation starts.
- `complete` runs inside the caller's unit of work, so the record flips to
  completed in the same commit as the ledger append.
- A pending record older than the reservation timeout belongs to a caller
  that died between reserve and append; the next caller takes it over.
- The ledger's unique `idempotency_key` column backs all of this: even a
  taken-over reservation cannot append twice.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from credit_ledger.core.config.config import Config
from credit_ledger.core.database.base import utc_now
from credit_ledger.core.exceptions import IdempotencyConflictError
from credit_ledger.core.logging.logger import get_logger
from credit_ledger.database.models.enums import IdempotencyStatus
from credit_ledger.modules.ledger.records import IdempotencyRecord
from credit_ledger.modules.ledger.store import LedgerStore, LedgerUnitOfWork
from credit_ledger.modules.shared.exceptions import (
    IdempotencyKeyOwnedError,
    OperationInProgressError,
)

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Reservation:
    """
    Outcome of `IdempotencyGuard.reserve`.

    `is_new` means the caller owns the key and must run the operation;
    otherwise `existing_result` holds the stored result payload.
    """

    key: str
    is_new: bool
    record: IdempotencyRecord
    existing_result: Optional[Dict[str, Any]] = None


class IdempotencyGuard:
    def __init__(
        self,
        store: LedgerStore,
        reservation_timeout_seconds: float = 30,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._timeout = timedelta(seconds=reservation_timeout_seconds)
        self._clock = clock

    @classmethod
    def from_config(
        cls, store: LedgerStore, clock: Callable[[], datetime] = utc_now
    ) -> "IdempotencyGuard":
        return cls(
            store,
            reservation_timeout_seconds=Config.IDEMPOTENCY_RESERVATION_TIMEOUT_SECONDS,
            clock=clock,
        )

    @property
    def reservation_timeout(self) -> timedelta:
        return self._timeout

    async def reserve(self, key: str, user_id: str, operation: str) -> Reservation:
        """
        Claim `key` for `user_id`, or report what already happened under it.

        Raises:
            OperationInProgressError: A fresh reservation is held elsewhere
            IdempotencyKeyOwnedError: The key belongs to another user
        """
        now = self._clock()
        try:
            async with self._store.unit_of_work() as uow:
                existing = await uow.get_idempotency_record(key, for_update=True)
                if existing is None:
                    record = IdempotencyRecord(
                        key=key,
                        user_id=user_id,
                        operation=operation,
                        status=IdempotencyStatus.PENDING,
                        created_at=now,
                    )
                    await uow.insert_idempotency_record(record)
                    logger.debug(
                        "Idempotency key reserved",
                        extra={"key": key, "user_id": user_id, "operation": operation},
                    )
                    return Reservation(key=key, is_new=True, record=record)

                reservation = self._resolve_existing(existing, user_id, now)
                if reservation.is_new:
                    await uow.save_idempotency_record(reservation.record)
                return reservation

        except IdempotencyConflictError:
            # Lost the insert race: whoever won now holds a fresh reservation
            # or has already completed.
            existing = await self._store.get_idempotency_record(key)
            if existing is None:
                raise OperationInProgressError(key, self._timeout.total_seconds())
            return self._resolve_existing(existing, user_id, now, allow_takeover=False)

    def _resolve_existing(
        self,
        existing: IdempotencyRecord,
        user_id: str,
        now: datetime,
        allow_takeover: bool = True,
    ) -> Reservation:
        if existing.user_id != user_id:
            logger.warning(
                "Idempotency key presented by a different user",
                extra={
                    "key": existing.key,
                    "owner_user_id": existing.user_id,
                    "user_id": user_id,
                },
            )
            raise IdempotencyKeyOwnedError(existing.key, user_id)

        if existing.is_completed:
            logger.info(
                "Idempotent replay served from stored result",
                extra={"key": existing.key, "user_id": user_id},
            )
            return Reservation(
                key=existing.key,
                is_new=False,
                record=existing,
                existing_result=existing.result_payload,
            )

        age = now - existing.created_at
        if age < self._timeout or not allow_takeover:
            retry_after = max((self._timeout - age).total_seconds(), 0.0)
            raise OperationInProgressError(existing.key, retry_after)

        logger.warning(
            "Taking over stale idempotency reservation",
            extra={
                "key": existing.key,
                "user_id": user_id,
                "age_seconds": round(age.total_seconds(), 3),
            },
        )
        taken = replace(existing, created_at=now)
        return Reservation(key=existing.key, is_new=True, record=taken)

    async def complete(
        self,
        uow: LedgerUnitOfWork,
        key: str,
        transaction_id: str,
        payload: Dict[str, Any],
        *,
        user_id: Optional[str] = None,
        operation: Optional[str] = None,
    ) -> IdempotencyRecord:
        """
        Mark `key` completed inside the caller's unit of work.

        A key that was never reserved (the second leg of a referral) is
        inserted directly as completed; that needs `user_id` and `operation`.
        """
        now = self._clock()
        record = await uow.get_idempotency_record(key, for_update=True)

        if record is None:
            if user_id is None or operation is None:
                raise IdempotencyConflictError(key)
            completed = IdempotencyRecord(
                key=key,
                user_id=user_id,
                operation=operation,
                status=IdempotencyStatus.COMPLETED,
                created_at=now,
                resulting_transaction_id=transaction_id,
                result_payload=payload,
                completed_at=now,
            )
            await uow.insert_idempotency_record(completed)
            return completed

        if record.is_completed and record.resulting_transaction_id != transaction_id:
            raise IdempotencyConflictError(key)

        completed = replace(
            record,
            status=IdempotencyStatus.COMPLETED,
            resulting_transaction_id=transaction_id,
            result_payload=payload,
            completed_at=now,
        )
        await uow.save_idempotency_record(completed)
        return completed

    async def release(self, key: str) -> None:
        """Drop a pending reservation so a corrected retry can run."""
        async with self._store.unit_of_work() as uow:
            record = await uow.get_idempotency_record(key, for_update=True)
            if record is None or record.is_completed:
                return
            await uow.delete_idempotency_record(key)

        logger.debug("Idempotency reservation released", extra={"key": key})
