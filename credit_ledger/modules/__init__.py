"""Ledger domain modules: ledger store, idempotency, balance, streak, catalog, analytics, orchestrator."""
