"""
Streak Module
=============

Domain: Daily bonus claims with consecutive-day streaks

Exports:
- StreakTracker: status reads and claims
- DailyBonusStatus, StreakClaim
"""

from .tracker import DailyBonusStatus, StreakClaim, StreakTracker

__all__ = ["DailyBonusStatus", "StreakClaim", "StreakTracker"]
