"""
Credit Ledger Formulas

Purpose
-------
Pure calculation functions for credit rewards: the daily bonus curve, the
streak transition, and the purchase bonus.

Design Notes
------------
- Pure functions only (no side effects)
- No config access (all parameters passed in)
- Deterministic and testable

Usage
-----
    from credit_ledger.modules.shared.formulas import calculate_daily_bonus

    bonus = calculate_daily_bonus(streak=7, base=10, step=2, cap=14)  # 24
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Optional


def calculate_daily_bonus(streak: int, base: int, step: int, cap: int) -> int:
    """
    Calculate the daily bonus for the streak held before the claim.

    Formula: base + min(streak * step, cap)

    Args:
        streak: Effective streak before the claim (0 when it lapsed)
        base: Credits granted on every claim
        step: Extra credits per streak day
        cap: Maximum extra credits

    Returns:
        Credits to grant

    Example:
        >>> calculate_daily_bonus(0, 10, 2, 14)
        10
        >>> calculate_daily_bonus(1, 10, 2, 14)
        12
        >>> calculate_daily_bonus(100, 10, 2, 14)
        24
    """
    return base + min(max(streak, 0) * step, cap)


def effective_streak(
    last_claim_date: Optional[date], current_streak: int, today: date
) -> int:
    """
    Streak still alive on `today`.

    The stored streak survives only if the last claim was yesterday or today.

    Example:
        >>> effective_streak(date(2024, 1, 1), 3, date(2024, 1, 2))
        3
        >>> effective_streak(date(2024, 1, 1), 3, date(2024, 1, 3))
        0
    """
    if last_claim_date is None:
        return 0
    if last_claim_date in (today, today - timedelta(days=1)):
        return current_streak
    return 0


def next_streak(last_claim_date: Optional[date], current_streak: int, today: date) -> int:
    """
    Streak after a claim on `today`.

    Consecutive day increments; any gap (or no prior claim) resets to 1.
    Callers reject same-day claims before calling this.
    """
    if last_claim_date is not None and last_claim_date == today - timedelta(days=1):
        return current_streak + 1
    return 1


def calculate_purchase_bonus(credits: int, bonus_credits: int, bonus_percent: int) -> int:
    """
    Bonus credits for a purchase.

    A product's explicit `bonus_credits` wins; otherwise the bonus is
    floor(credits * bonus_percent / 100).

    Example:
        >>> calculate_purchase_bonus(35, 5, 10)
        5
        >>> calculate_purchase_bonus(12, 0, 10)
        1
    """
    if bonus_credits > 0:
        return bonus_credits
    return (credits * bonus_percent) // 100
