"""Infrastructure layer for vault app.

This package contains integrations with external systems:
- Storage backends for blobs (local filesystem, S3/MinIO/R2)
- Content hashing and metadata extraction (MIME type, storage paths)

Keep infrastructure concerns separate from business logic.
"""
