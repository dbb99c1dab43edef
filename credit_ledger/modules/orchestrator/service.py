"""
Credit Orchestrator

Purpose
-------
Single entry point for every credit operation. Coordinates the ledger store,
idempotency guard, balance projector, streak tracker, product catalog and
analytics aggregator, and returns `Ok`/`Err` results instead of raising.

Write skeleton
--------------
1. Validate input (`InputValidator`)
2. Acquire the per-user lock(s)
3. Resolve idempotency (keyed operations only)
4. Open one unit of work
5. Append ledger transaction(s)
6. Update balance cache / streak state
7. Complete the idempotency record
8. Commit and return the DTO

Steps 4-8 form the write phase. It runs shielded from caller cancellation
and bounded by `storage_timeout_seconds`; a timeout rolls the unit back and
surfaces as `StorageTimeoutError`.

Retries
-------
Only idempotency-keyed operations (purchase, daily bonus, referral) are
retried automatically on retryable storage errors. Plain add/deduct and
admin adjustments surface those errors to the caller.

Dependencies
------------
All collaborators are injected through the constructor; see
`credit_ledger.container.build_orchestrator` for the standard wiring.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from credit_ledger.core.config.settings import LedgerSettings
from credit_ledger.core.database.base import utc_now
from credit_ledger.core.database.retry_policy import DatabaseRetryPolicy
from credit_ledger.core.exceptions import (
    ErrorSeverity,
    LedgerError,
    StorageTimeoutError,
    TransactionFailedError,
)
from credit_ledger.core.logging.logger import LogContext, get_logger
from credit_ledger.core.validation.input_validator import InputValidator
from credit_ledger.database.models.enums import (
    Platform,
    ReferralStatus,
    ReferralType,
    TransactionType,
)
from credit_ledger.modules.analytics.aggregator import (
    AnalyticsAggregator,
    AnalyticsSnapshot,
)
from credit_ledger.modules.balance.projector import (
    BalanceProjector,
    BalanceReadMode,
    ReconciliationReport,
)
from credit_ledger.modules.catalog.products import CreditProduct, ProductCatalog
from credit_ledger.modules.catalog.receipts import ReceiptVerifier
from credit_ledger.modules.idempotency.guard import IdempotencyGuard
from credit_ledger.modules.ledger.records import (
    CreditBalance,
    CreditTransaction,
    DateRange,
    PageRequest,
    Referral,
    SortDirection,
    SystemCreditStats,
    TransactionFilter,
    new_id,
)
from credit_ledger.modules.ledger.store import LedgerStore
from credit_ledger.modules.orchestrator.dto import (
    DailyBonusClaim,
    PurchaseResult,
    ReferralResult,
    TransactionHistory,
)
from credit_ledger.modules.orchestrator.locks import UserLockRegistry
from credit_ledger.modules.shared.base_service import BaseService
from credit_ledger.modules.shared.constants import (
    MAX_DESCRIPTION_LENGTH,
    OPERATION_DAILY_BONUS,
    OPERATION_PURCHASE,
    OPERATION_REFERRAL,
    REFERRAL_ROLE_REFEREE,
    REFERRAL_ROLE_REFERRER,
    daily_bonus_key,
    purchase_key,
    referral_key,
)
from credit_ledger.modules.shared.exceptions import (
    DailyBonusAlreadyClaimedError,
    IdempotencyKeyOwnedError,
    InvalidPurchaseError,
    ReferralNotValidError,
)
from credit_ledger.modules.shared.formulas import calculate_purchase_bonus
from credit_ledger.modules.shared.result import Err, Ok, Result
from credit_ledger.modules.streak.tracker import DailyBonusStatus, StreakTracker

T = TypeVar("T")

_SEVERITY_LEVELS = {
    ErrorSeverity.DEBUG: logging.DEBUG,
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


class CreditOrchestrator(BaseService):
    """
    Façade over the credit ledger.

    Every public coroutine returns `Result[T]`: `Ok(value)` on success or
    `Err(error)` where `error` is a `LedgerError`.
    """

    def __init__(
        self,
        *,
        store: LedgerStore,
        guard: IdempotencyGuard,
        projector: BalanceProjector,
        streaks: StreakTracker,
        catalog: ProductCatalog,
        verifier: ReceiptVerifier,
        analytics: AnalyticsAggregator,
        retry_policy: DatabaseRetryPolicy,
        settings: LedgerSettings,
        clock: Callable[[], datetime] = utc_now,
        locks: Optional[UserLockRegistry] = None,
        storage_timeout_seconds: float = 5.0,
        history_max_page_size: int = 100,
    ) -> None:
        super().__init__(settings, get_logger(__name__))
        self._store = store
        self._guard = guard
        self._projector = projector
        self._streaks = streaks
        self._catalog = catalog
        self._verifier = verifier
        self._analytics = analytics
        self._retry = retry_policy
        self._clock = clock
        self._locks = locks or UserLockRegistry()
        self._storage_timeout = storage_timeout_seconds
        self._history_max_page_size = history_max_page_size

    @property
    def locks(self) -> UserLockRegistry:
        return self._locks

    # =========================================================================
    # Plumbing
    # =========================================================================

    async def _run(
        self,
        operation: str,
        user_id: Optional[str],
        body: Callable[[], Awaitable[T]],
    ) -> Result[T]:
        """Run `body`, converting every ledger failure into `Err`."""
        async with LogContext(
            user_id=user_id if isinstance(user_id, str) else None,
            component="orchestrator",
            operation=operation,
        ):
            try:
                return Ok(await body())
            except LedgerError as exc:
                self._log_failure(operation, exc)
                return Err(exc)
            except (OperationalError, DBAPIError) as exc:
                error = TransactionFailedError(operation, exc)
                self._log_failure(operation, error)
                return Err(error)
            except Exception as exc:
                self.log.error(
                    f"Unexpected error during {operation}",
                    extra={"error_type": type(exc).__name__, "error": str(exc)},
                    exc_info=True,
                )
                return Err(
                    LedgerError(
                        f"Unexpected error during {operation}",
                        details={"operation": operation, "error_type": type(exc).__name__},
                        error_code="INTERNAL_ERROR",
                    )
                )

    def _log_failure(self, operation: str, error: LedgerError) -> None:
        self.log.log(
            _SEVERITY_LEVELS[error.severity],
            f"{operation} failed: {error.message}",
            extra={
                "error_code": error.error_code,
                "is_retryable": error.is_retryable,
                "details": error.details,
            },
        )

    async def _write(self, operation: str, body: Callable[[], Awaitable[T]]) -> T:
        """
        Run the write phase: shielded from cancellation, bounded in time.

        A caller cancelled mid-write still sees `CancelledError`, but only
        after the unit of work has committed or rolled back.
        """
        task = asyncio.ensure_future(
            asyncio.wait_for(body(), timeout=self._storage_timeout)
        )
        try:
            return await asyncio.shield(task)
        except asyncio.TimeoutError as exc:
            raise StorageTimeoutError(operation, self._storage_timeout) from exc
        except asyncio.CancelledError:
            if not task.done():
                self.log.warning(
                    "Caller cancelled during write phase; letting the write settle",
                    extra={"operation": operation},
                )
                await asyncio.wait([task])
            if not task.cancelled() and task.exception() is not None:
                self.log.warning(
                    "Write phase failed after caller cancelled",
                    extra={"operation": operation, "error": str(task.exception())},
                )
            raise

    async def _with_retry(
        self,
        operation: str,
        attempt: Callable[[], Awaitable[T]],
        **context: Any,
    ) -> T:
        return await self._retry.execute(
            attempt,
            operation_name=f"orchestrator.{operation}",
            context=context,
        )

    async def _release(self, key: str) -> None:
        try:
            await self._guard.release(key)
        except (LedgerError, OperationalError, DBAPIError) as exc:
            self.log.warning(
                "Could not release idempotency reservation; it will expire",
                extra={"key": key, "error": str(exc)},
            )

    def _new_transaction(
        self,
        user_id: str,
        type: TransactionType,
        amount: int,
        description: str,
        metadata: Optional[dict] = None,
        idempotency_key: Optional[str] = None,
    ) -> CreditTransaction:
        return CreditTransaction.create(
            user_id=user_id,
            type=type,
            amount=amount,
            description=description,
            metadata=metadata,
            idempotency_key=idempotency_key,
            created_at=self._clock(),
        )

    async def _append_and_apply(
        self,
        user_id: str,
        type: TransactionType,
        amount: int,
        description: str,
        metadata: Optional[dict] = None,
        require_existing: bool = False,
    ) -> tuple[CreditTransaction, CreditBalance]:
        async with self._store.unit_of_work() as uow:
            balance = await self._projector.apply(
                uow, user_id, amount, require_existing=require_existing
            )
            transaction = self._new_transaction(
                user_id, type, amount, description, metadata
            )
            await uow.append(transaction)
        return transaction, balance

    # =========================================================================
    # Balance
    # =========================================================================

    async def get_balance(self, user_id: str, consistent: bool = False) -> Result[CreditBalance]:
        async def body() -> CreditBalance:
            uid = InputValidator.validate_user_id(user_id)
            mode = BalanceReadMode.FOLD if consistent else BalanceReadMode.CACHED
            return await self._projector.get_balance(uid, mode)

        return await self._run("get_balance", user_id, body)

    async def add_credits(
        self, user_id: str, amount: int, description: str = ""
    ) -> Result[CreditBalance]:
        async def body() -> CreditBalance:
            uid = InputValidator.validate_user_id(user_id)
            value = InputValidator.validate_credit_amount(amount)
            text = InputValidator.validate_description(description)

            async with self._locks.hold(uid):
                _, balance = await self._write(
                    "add_credits",
                    lambda: self._append_and_apply(
                        uid, TransactionType.GRANT, value, text or "Credits added"
                    ),
                )

            self.log_operation("add_credits", user_id=uid, amount=value)
            return balance

        return await self._run("add_credits", user_id, body)

    async def deduct_credits(
        self, user_id: str, amount: int, description: str = ""
    ) -> Result[CreditBalance]:
        async def body() -> CreditBalance:
            uid = InputValidator.validate_user_id(user_id)
            value = InputValidator.validate_credit_amount(amount)
            text = InputValidator.validate_description(description)

            async with self._locks.hold(uid):
                _, balance = await self._write(
                    "deduct_credits",
                    lambda: self._append_and_apply(
                        uid,
                        TransactionType.SPEND,
                        -value,
                        text or "Credits spent",
                        require_existing=True,
                    ),
                )

            self.log_operation("deduct_credits", user_id=uid, amount=value)
            return balance

        return await self._run("deduct_credits", user_id, body)

    # =========================================================================
    # Purchases
    # =========================================================================

    async def process_purchase(
        self,
        user_id: str,
        product_id: str,
        purchase_token: str,
        platform: str,
        transaction_id: str,
        receipt_data: Optional[str] = None,
    ) -> Result[PurchaseResult]:
        async def body() -> PurchaseResult:
            uid = InputValidator.validate_user_id(user_id)
            pid = InputValidator.validate_token(product_id, "product_id")
            token = InputValidator.validate_token(purchase_token, "purchase_token")
            txn_id = InputValidator.validate_token(transaction_id, "transaction_id")
            plat = Platform(
                InputValidator.validate_choice(
                    platform, "platform", [p.value for p in Platform]
                )
            )
            key = purchase_key(txn_id)

            async def attempt() -> PurchaseResult:
                return await self._purchase_once(uid, pid, token, plat, txn_id, key, receipt_data)

            async with self._locks.hold(uid):
                return await self._with_retry(
                    "process_purchase", attempt, user_id=uid, key=key
                )

        return await self._run("process_purchase", user_id, body)

    async def _purchase_once(
        self,
        user_id: str,
        product_id: str,
        purchase_token: str,
        platform: Platform,
        transaction_id: str,
        key: str,
        receipt_data: Optional[str],
    ) -> PurchaseResult:
        try:
            reservation = await self._guard.reserve(key, user_id, OPERATION_PURCHASE)
        except IdempotencyKeyOwnedError as exc:
            raise InvalidPurchaseError(
                "transaction already redeemed by another user",
                transaction_id=transaction_id,
            ) from exc

        if not reservation.is_new:
            return PurchaseResult.from_dict(reservation.existing_result or {})

        try:
            product = await self._validate_purchase(
                user_id, product_id, purchase_token, platform, transaction_id, receipt_data
            )
            result = await self._write(
                "process_purchase",
                lambda: self._apply_purchase(
                    user_id, product, purchase_token, platform, transaction_id, key
                ),
            )
        except Exception:
            await self._release(key)
            raise

        self.log_operation(
            "process_purchase",
            user_id=user_id,
            product_id=product.product_id,
            transaction_id=transaction_id,
            credits=result.total_credits,
        )
        return result

    async def _validate_purchase(
        self,
        user_id: str,
        product_id: str,
        purchase_token: str,
        platform: Platform,
        transaction_id: str,
        receipt_data: Optional[str],
    ) -> CreditProduct:
        product = self._catalog.get(product_id)
        if product is None or not product.is_active:
            raise InvalidPurchaseError("unknown or inactive product", product_id=product_id)
        if platform not in product.platforms:
            raise InvalidPurchaseError(
                "product not available on platform",
                product_id=product_id,
                platform=platform.value,
            )

        verification = await self._verifier.verify(
            user_id=user_id,
            product=product,
            platform=platform,
            purchase_token=purchase_token,
            transaction_id=transaction_id,
            receipt_data=receipt_data,
        )
        if not verification.valid:
            raise InvalidPurchaseError(
                "receipt verification failed",
                product_id=product_id,
                verification_reason=verification.reason,
            )
        return product

    async def _apply_purchase(
        self,
        user_id: str,
        product: CreditProduct,
        purchase_token: str,
        platform: Platform,
        transaction_id: str,
        key: str,
    ) -> PurchaseResult:
        bonus = calculate_purchase_bonus(
            product.credits, product.bonus_credits, self.settings.purchase_bonus_percent
        )
        async with self._store.unit_of_work() as uow:
            transaction = self._new_transaction(
                user_id,
                TransactionType.PURCHASE,
                product.credits + bonus,
                f"Purchase: {product.name}",
                metadata={
                    "product_id": product.product_id,
                    "platform": platform.value,
                    "purchase_token": purchase_token,
                    "transaction_id": transaction_id,
                    "credits": product.credits,
                    "bonus_credits": bonus,
                },
                idempotency_key=key,
            )
            await uow.append(transaction)
            await self._projector.apply(uow, user_id, transaction.amount)

            result = PurchaseResult(
                credits_granted=product.credits,
                bonus_credits=bonus,
                transaction=transaction,
            )
            await self._guard.complete(uow, key, transaction.id, result.to_dict())
        return result

    def list_products(self, platform: Optional[str] = None) -> Result[List[CreditProduct]]:
        try:
            plat = None
            if platform is not None:
                plat = Platform(
                    InputValidator.validate_choice(
                        platform, "platform", [p.value for p in Platform]
                    )
                )
        except LedgerError as exc:
            self._log_failure("list_products", exc)
            return Err(exc)
        return Ok(self._catalog.list(plat))

    # =========================================================================
    # Daily bonus
    # =========================================================================

    async def get_daily_bonus_status(self, user_id: str) -> Result[DailyBonusStatus]:
        async def body() -> DailyBonusStatus:
            uid = InputValidator.validate_user_id(user_id)
            return await self._streaks.get_status(uid)

        return await self._run("get_daily_bonus_status", user_id, body)

    async def claim_daily_bonus(self, user_id: str) -> Result[DailyBonusClaim]:
        async def body() -> DailyBonusClaim:
            uid = InputValidator.validate_user_id(user_id)

            async with self._locks.hold(uid):
                today = self._streaks.today()
                key = daily_bonus_key(uid, today.isoformat())

                async def attempt() -> DailyBonusClaim:
                    return await self._claim_once(uid, today, key)

                return await self._with_retry(
                    "claim_daily_bonus", attempt, user_id=uid, key=key
                )

        return await self._run("claim_daily_bonus", user_id, body)

    async def _claim_once(self, user_id: str, today: date, key: str) -> DailyBonusClaim:
        reservation = await self._guard.reserve(key, user_id, OPERATION_DAILY_BONUS)
        if not reservation.is_new:
            raise DailyBonusAlreadyClaimedError(
                user_id,
                today,
                next_eligible_date=today + timedelta(days=1),
                transaction_id=reservation.record.resulting_transaction_id,
            )

        async def apply() -> DailyBonusClaim:
            async with self._store.unit_of_work() as uow:
                claim = await self._streaks.claim(uow, user_id, today)
                transaction = self._new_transaction(
                    user_id,
                    TransactionType.DAILY_BONUS,
                    claim.granted_amount,
                    f"Daily bonus (day {claim.new_streak})",
                    metadata={
                        "claim_date": today.isoformat(),
                        "streak": claim.new_streak,
                        "previous_streak": claim.previous_streak,
                    },
                    idempotency_key=key,
                )
                await uow.append(transaction)
                balance = await self._projector.apply(uow, user_id, transaction.amount)

                result = DailyBonusClaim(
                    transaction=transaction,
                    granted=claim.granted_amount,
                    new_streak=claim.new_streak,
                    balance=balance,
                )
                await self._guard.complete(uow, key, transaction.id, result.to_dict())
            return result

        try:
            result = await self._write("claim_daily_bonus", apply)
        except Exception:
            await self._release(key)
            raise

        self.log_operation(
            "claim_daily_bonus",
            user_id=user_id,
            granted=result.granted,
            streak=result.new_streak,
        )
        return result

    # =========================================================================
    # Referrals
    # =========================================================================

    async def process_referral(
        self,
        referrer_user_id: str,
        referee_user_id: str,
        referral_code: str,
        referral_type: str = ReferralType.SIGNUP.value,
    ) -> Result[ReferralResult]:
        async def body() -> ReferralResult:
            referrer = InputValidator.validate_user_id(referrer_user_id, "referrer_user_id")
            referee = InputValidator.validate_user_id(referee_user_id, "referee_user_id")
            code = InputValidator.validate_token(referral_code, "referral_code")
            configured = set(self.settings.referral_types)
            rtype = ReferralType(
                InputValidator.validate_choice(
                    referral_type,
                    "referral_type",
                    [t.value for t in ReferralType if t.value in configured],
                )
            )

            if referrer == referee:
                raise ReferralNotValidError("self-referral", user_id=referrer)

            key = referral_key(referee, REFERRAL_ROLE_REFEREE)

            async def attempt() -> ReferralResult:
                return await self._referral_once(referrer, referee, code, rtype, key)

            async with self._locks.hold(referrer, referee):
                return await self._with_retry(
                    "process_referral",
                    attempt,
                    referrer_user_id=referrer,
                    referee_user_id=referee,
                )

        return await self._run("process_referral", referee_user_id, body)

    async def _referral_once(
        self,
        referrer: str,
        referee: str,
        code: str,
        referral_type: ReferralType,
        key: str,
    ) -> ReferralResult:
        reservation = await self._guard.reserve(key, referee, OPERATION_REFERRAL)
        if not reservation.is_new:
            stored = ReferralResult.from_dict(reservation.existing_result or {})
            same_referral = (
                stored.referrer_transaction.user_id == referrer
                and stored.referee_transaction.metadata.get("referral_code") == code
                and stored.referee_transaction.metadata.get("referral_type")
                == referral_type.value
            )
            if not same_referral:
                raise ReferralNotValidError(
                    "referee already redeemed a referral", referee_user_id=referee
                )
            return stored

        try:
            result = await self._write(
                "process_referral",
                lambda: self._apply_referral(referrer, referee, code, referral_type, key),
            )
        except Exception:
            await self._release(key)
            raise

        self.log_operation(
            "process_referral",
            referrer_user_id=referrer,
            referee_user_id=referee,
            referral_type=referral_type.value,
        )
        return result

    async def _apply_referral(
        self,
        referrer: str,
        referee: str,
        code: str,
        referral_type: ReferralType,
        referee_key: str,
    ) -> ReferralResult:
        referee_amount, referrer_amount = self.settings.referral_amounts(referral_type.value)
        referrer_key = referral_key(referee, REFERRAL_ROLE_REFERRER)
        referral_id = new_id()
        now = self._clock()

        def leg(user_id: str, amount: int, role: str, counterparty: str, key: str):
            return self._new_transaction(
                user_id,
                TransactionType.REFERRAL,
                amount,
                f"Referral bonus ({referral_type.value}, {role})",
                metadata={
                    "referral_id": referral_id,
                    "referral_code": code,
                    "referral_type": referral_type.value,
                    "role": role,
                    "counterparty_user_id": counterparty,
                },
                idempotency_key=key,
            )

        async with self._store.unit_of_work() as uow:
            existing = await uow.get_referral_by_referee(referee, for_update=True)
            if existing is not None:
                raise ReferralNotValidError(
                    "referee already redeemed a referral",
                    referee_user_id=referee,
                    referral_id=existing.id,
                )

            referee_tx = leg(referee, referee_amount, REFERRAL_ROLE_REFEREE, referrer, referee_key)
            referrer_tx = leg(referrer, referrer_amount, REFERRAL_ROLE_REFERRER, referee, referrer_key)

            await uow.append(referee_tx)
            await self._projector.apply(uow, referee, referee_tx.amount)
            await uow.append(referrer_tx)
            await self._projector.apply(uow, referrer, referrer_tx.amount)

            await uow.save_referral(
                Referral(
                    id=referral_id,
                    referrer_user_id=referrer,
                    referee_user_id=referee,
                    referral_code=code,
                    type=referral_type,
                    referrer_credits=referrer_amount,
                    referee_credits=referee_amount,
                    status=ReferralStatus.COMPLETED,
                    created_at=now,
                    referrer_transaction_id=referrer_tx.id,
                    referee_transaction_id=referee_tx.id,
                    completed_at=now,
                )
            )

            result = ReferralResult(
                referrer_credits=referrer_amount,
                referee_credits=referee_amount,
                referrer_transaction=referrer_tx,
                referee_transaction=referee_tx,
            )
            payload = result.to_dict()
            await self._guard.complete(uow, referee_key, referee_tx.id, payload)
            await self._guard.complete(
                uow,
                referrer_key,
                referrer_tx.id,
                payload,
                user_id=referrer,
                operation=OPERATION_REFERRAL,
            )
        return result

    async def find_pending_referrals(self) -> Result[List[Referral]]:
        """
        List referral rows still in PENDING status, oldest first.

        `process_referral` writes its row as COMPLETED in the same unit of
        work as both legs, so it never leaves one pending. Rows found here
        were written outside the orchestrator (imports, manual fixes) and
        need their legs checked by hand.
        """
        return await self._run("find_pending_referrals", None, self._store.list_pending_referrals)

    # =========================================================================
    # History & analytics
    # =========================================================================

    async def get_user_transactions(
        self,
        user_id: str,
        filter: Optional[TransactionFilter] = None,
        page: int = 1,
        limit: int = 20,
        sort: str = SortDirection.DESC.value,
    ) -> Result[TransactionHistory]:
        async def body() -> TransactionHistory:
            uid = InputValidator.validate_user_id(user_id)
            page_no, page_size = InputValidator.validate_pagination(
                page, limit, self._history_max_page_size
            )
            direction = SortDirection(
                InputValidator.validate_choice(sort, "sort", [d.value for d in SortDirection])
            )
            criteria = filter or TransactionFilter()
            start, end = InputValidator.validate_date_range(criteria.start, criteria.end)
            criteria = TransactionFilter(
                types=criteria.types,
                exclude_types=criteria.exclude_types,
                start=start,
                end=end,
            )

            result = await self._store.list_for_user(
                uid, criteria, PageRequest(page=page_no, limit=page_size, sort=direction)
            )
            return TransactionHistory.from_page(result)

        return await self._run("get_user_transactions", user_id, body)

    async def get_credit_analytics(
        self,
        user_id: str,
        date_range: Optional[DateRange] = None,
        include_admin: bool = False,
        limit: Optional[int] = None,
    ) -> Result[AnalyticsSnapshot]:
        async def body() -> AnalyticsSnapshot:
            uid = InputValidator.validate_user_id(user_id)
            window = date_range or DateRange()
            start, end = InputValidator.validate_date_range(window.start, window.end)
            cap = None
            if limit is not None:
                cap = InputValidator.validate_positive_integer(
                    limit, "limit", max_value=self._analytics.max_transactions
                )
            return await self._analytics.summarize(
                uid, DateRange(start, end), include_admin=include_admin, limit=cap
            )

        return await self._run("get_credit_analytics", user_id, body)

    # =========================================================================
    # Administration
    # =========================================================================

    async def admin_add_credits(
        self, user_id: str, amount: int, reason: str, admin_id: str
    ) -> Result[CreditTransaction]:
        return await self._admin_adjust(
            "admin_add_credits", TransactionType.ADMIN_ADD, user_id, amount, reason, admin_id
        )

    async def admin_deduct_credits(
        self, user_id: str, amount: int, reason: str, admin_id: str
    ) -> Result[CreditTransaction]:
        return await self._admin_adjust(
            "admin_deduct_credits", TransactionType.ADMIN_DEDUCT, user_id, amount, reason, admin_id
        )

    async def _admin_adjust(
        self,
        operation: str,
        type: TransactionType,
        user_id: str,
        amount: int,
        reason: str,
        admin_id: str,
    ) -> Result[CreditTransaction]:
        async def body() -> CreditTransaction:
            uid = InputValidator.validate_user_id(user_id)
            value = InputValidator.validate_credit_amount(amount)
            why = InputValidator.validate_string(
                reason, "reason", min_length=1, max_length=MAX_DESCRIPTION_LENGTH
            )
            admin = InputValidator.validate_user_id(admin_id, "admin_id")
            signed = -value if type.is_debit else value

            async with self._locks.hold(uid):
                transaction, balance = await self._write(
                    operation,
                    lambda: self._append_and_apply(
                        uid,
                        type,
                        signed,
                        f"Admin adjustment: {why}",
                        metadata={"admin_id": admin, "reason": why},
                        require_existing=type.is_debit,
                    ),
                )

            self.log.warning(
                "Admin credit adjustment applied",
                extra={
                    "user_id": uid,
                    "admin_id": admin,
                    "amount": signed,
                    "balance": balance.total_credits,
                    "reason": why,
                },
            )
            return transaction

        return await self._run(operation, user_id, body)

    async def admin_get_analytics(self) -> Result[SystemCreditStats]:
        return await self._run("admin_get_analytics", None, self._analytics.system_stats)

    async def reconcile_balance(
        self, user_id: str, repair: bool = False
    ) -> Result[ReconciliationReport]:
        async def body() -> ReconciliationReport:
            uid = InputValidator.validate_user_id(user_id)
            async with self._locks.hold(uid):
                return await self._projector.reconcile(uid, repair=repair)

        return await self._run("reconcile_balance", user_id, body)

    async def reconcile_all(self, repair: bool = False) -> Result[List[ReconciliationReport]]:
        async def body() -> List[ReconciliationReport]:
            return await self._projector.reconcile_all(repair=repair, hold=self._locks.hold)

        return await self._run("reconcile_all", None, body)
