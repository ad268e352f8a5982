"""Configuration constants.

This module contains truly constant values that should NOT be user-configurable.
These are on-disk format versions and implementation details.

For configurable values, see models.py.
"""

# =============================================================================
# Schema Versions
# =============================================================================
# Recorded in the `db_versions` table when a database is created. Tables are
# never migrated destructively; bumping VIEWS_SCHEMA_VERSION drops and
# recreates every view on the next open.

ENGINE_VERSION = 1
"""Version of the indexing engine that created the database."""

TABLES_SCHEMA_VERSION = 1
"""Version of the table definitions in index/models.py."""

VIEWS_SCHEMA_VERSION = 2
"""Version of the view definitions in index/_internal/db/schema.py."""

ENGINE_VERSION_NAME = "pkgdb"
TABLES_SCHEMA_VERSION_NAME = "pkgdb_tables_schema"
VIEWS_SCHEMA_VERSION_NAME = "pkgdb_views_schema"

# =============================================================================
# Internal Implementation Constants
# =============================================================================

FINGERPRINT_HEX_LENGTH = 32
"""A fingerprint is a 128-bit content hash rendered as lowercase hex."""

RESTART_EXIT_CODE = 75
"""CLI exit status asking the caller to rerun in a fresh process (EX_TEMPFAIL)."""
