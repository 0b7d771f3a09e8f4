"""pg_catalog queries used by the catalog client."""
from __future__ import annotations

TYPE_INFO = """
    SELECT
        t.oid,
        t.typname AS name,
        n.nspname AS schema,
        t.typtype::text AS typtype,
        t.typcategory::text AS category,
        t.typelem AS elem_oid,
        t.typbasetype AS base_oid
    FROM pg_catalog.pg_type t
    JOIN pg_catalog.pg_namespace n ON n.oid = t.typnamespace
    WHERE t.oid = $1
"""

ENUM_LABELS = """
    SELECT enumlabel
    FROM pg_catalog.pg_enum
    WHERE enumtypid = $1
    ORDER BY enumsortorder
"""

COMPOSITE_FIELDS = """
    SELECT a.attname AS name, a.atttypid AS type_oid
    FROM pg_catalog.pg_type t
    JOIN pg_catalog.pg_attribute a ON a.attrelid = t.typrelid
    WHERE t.oid = $1
    AND a.attnum > 0
    AND NOT a.attisdropped
    ORDER BY a.attnum
"""

# to_regclass returns NULL instead of raising for unknown relations
NOT_NULL_COLUMNS = """
    SELECT a.attname
    FROM pg_catalog.pg_attribute a
    WHERE a.attrelid = to_regclass($1)
    AND a.attnum > 0
    AND NOT a.attisdropped
    AND a.attnotnull
"""
