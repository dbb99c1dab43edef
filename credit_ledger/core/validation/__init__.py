"""
Credit Ledger Validation Package

Expose the input validation primitives used by the orchestrator.

Non-Responsibilities
--------------------
- Business rule enforcement (handled by services)
- Persistence or transaction management
"""

from credit_ledger.core.validation.input_validator import InputValidator

__all__ = [
    "InputValidator",
]
