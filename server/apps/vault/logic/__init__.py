"""Business logic layer for vault app.

This package contains the storage engine operations:
- Content ledger (deduplication and reference counting)
- Quota enforcement
- Upload, download, delete and reference copy orchestration
- Reconciliation of deferred cleanup

Business logic lives here, separate from models (data layer) and
infrastructure (hashing, metadata, storage backends).
"""
