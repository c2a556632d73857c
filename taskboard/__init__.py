# Task board backend: ordered task columns per user, SQLite persistence, JSON API
#
# Components:
#   schema.py  - Data model (TaskItem, Column)
#   errors.py  - Error taxonomy and LedgerResult
#   ledger.py  - PositionLedger: contiguous 1..N ordering per (owner, column)
#   store.py   - SQLite persistence with owner-scoped write transactions
#   service.py - TaskService: one read-modify-write per operation
#   config.py  - YAML/env configuration
#   server.py  - Flask JSON API
