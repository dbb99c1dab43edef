from credit_ledger.database.models.ledger.credit_balance import CreditBalanceRow
from credit_ledger.database.models.ledger.credit_transaction import CreditTransactionRow
from credit_ledger.database.models.ledger.daily_bonus_state import DailyBonusStateRow
from credit_ledger.database.models.ledger.idempotency_record import IdempotencyRecordRow
from credit_ledger.database.models.ledger.referral import ReferralRow

__all__ = [
    "CreditBalanceRow",
    "CreditTransactionRow",
    "DailyBonusStateRow",
    "IdempotencyRecordRow",
    "ReferralRow",
]
