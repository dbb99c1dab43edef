"""
Credit Ledger Cache Package

Exports:
- AnalyticsCache: Redis TTL memo for analytics snapshots
"""

from credit_ledger.core.cache.analytics_cache import AnalyticsCache

__all__ = ["AnalyticsCache"]
