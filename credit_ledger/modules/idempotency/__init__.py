"""
Idempotency Module
==================

Exports:
- IdempotencyGuard: reserve / complete / release of idempotency keys
- Reservation: outcome of a reserve call
"""

from .guard import IdempotencyGuard, Reservation

__all__ = ["IdempotencyGuard", "Reservation"]
