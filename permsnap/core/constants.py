"""Core constants: cache key structure and snapshot defaults.

Single source of truth for the snapshot key shape read by the
authorization middleware: perm:{tenant_id}:{user_id}:{scope_type}:{scope_id|tenant}.
"""

# Cache key prefixes
CACHE_PREFIX_PERMISSION = "perm"

# Delimiter for composite keys
CACHE_KEY_SEP = ":"

# Placeholder used in the key (scope_id position) for tenant-scoped snapshots
TENANT_SCOPE_KEY = "tenant"

# Pub/sub channel prefix for run progress
PROGRESS_CHANNEL_PREFIX = "permission_progress"

# Snapshot hash field names (camelCase: shared with non-Python readers)
SNAPSHOT_FIELD_USER_ID = "userId"
SNAPSHOT_FIELD_SCOPE_TYPE = "scopeType"
SNAPSHOT_FIELD_SCOPE_ID = "scopeId"
SNAPSHOT_FIELD_PERMISSIONS = "permissions"
SNAPSHOT_FIELD_COMPUTED_AT = "computedAt"

# Action that implies every other action on a resource, and the wildcard resource
ADMIN_ACTION = "admin"
WILDCARD_RESOURCE = "*"

DEFAULT_SNAPSHOT_SLA_SECONDS = 60.0
DEFAULT_SNAPSHOT_BATCH_SIZE = 500
DEFAULT_SNAPSHOT_MAX_CONCURRENCY = 10
DEFAULT_SNAPSHOT_TTL_SECONDS = 86_400

# Cap on per-user errors kept in a run result (the count is always exact)
MAX_RECORDED_USER_ERRORS = 50
