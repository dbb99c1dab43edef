"""
Analytics Module
================

Exports:
- AnalyticsAggregator: time- and type-bucketed credit summaries
- AnalyticsSnapshot, MonthlyCredits
"""

from .aggregator import AnalyticsAggregator, AnalyticsSnapshot, MonthlyCredits

__all__ = ["AnalyticsAggregator", "AnalyticsSnapshot", "MonthlyCredits"]
