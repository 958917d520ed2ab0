"""Vault engine settings."""

from server.settings.components import config

# Default quota for owners without an explicit limit: 10 GB in bytes
VAULT_DEFAULT_QUOTA_BYTES = config(
    'VAULT_DEFAULT_QUOTA_BYTES',
    cast=int,
    default=10 * 1024 * 1024 * 1024,
)

# Path scope used for owners outside any tenant
VAULT_PERSONAL_SCOPE = config('VAULT_PERSONAL_SCOPE', default='personal')

# Lifetime of presigned download URLs in seconds
VAULT_PRESIGNED_URL_TTL = config(
    'VAULT_PRESIGNED_URL_TTL',
    cast=int,
    default=15 * 60,
)

# Blobs younger than this are never treated as orphans by the sweep,
# an upload may still be committing its ledger row.
VAULT_ORPHAN_GRACE_MINUTES = config(
    'VAULT_ORPHAN_GRACE_MINUTES',
    cast=int,
    default=60,
)

# Attempts to resolve a primary key collision between racing creators
VAULT_ACQUIRE_ATTEMPTS = config('VAULT_ACQUIRE_ATTEMPTS', cast=int, default=5)
