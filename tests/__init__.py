"""
Credit Ledger Test Suite
========================

Test Organization
-----------------
- tests/unit/          : Fast unit tests over the in-memory store and mocks
- tests/integration/   : SQL store on SQLite, Postgres/Redis via testcontainers

Testing Philosophy
------------------
- Unit tests: fast, isolated, exercise ledger rules end to end in memory
- Integration tests: real databases; Docker-backed ones are marked
  ``integration`` and deselected by default
- Follow AAA pattern: Arrange, Act, Assert
"""
