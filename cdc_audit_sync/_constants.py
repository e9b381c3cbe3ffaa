"""Shared constants for the cdc_audit_sync package."""

DEFAULT_OUTPUT_DIR = "./cdc_audit_sync"
DISABLED_OUTPUT_DIR = "=NONE="
DEFAULT_SUFFIX = "_audit"

# audit_pk is always the trailing column of an audit table
AUDIT_PK_COLUMN = "audit_pk"
NO_PRIOR_EXPORT = -1
MIN_DATA_FIELDS = 6

DEFAULT_FETCH_SIZE = 10_000
DEFAULT_TRIM_BATCH_SIZE = 100
DEFAULT_TRIM_PAUSE_SECONDS = 1.0

DEFAULT_VERBOSITY = 4
