"""Shared pytest fixtures for all tests."""
import asyncio
import os
from pathlib import Path

import pytest

from querygen.catalog.types import (
    Description,
    Nullability,
    OutputDescriptor,
    ParamDescriptor,
    PgTypeInfo,
    PgTypeKind,
)
from querygen.errors import CatalogError

FIXTURES = Path(__file__).parent / "fixtures"

# OIDs for user-defined types in the fake schema; built-in OIDs are real.
USER_STATUS = 50001
USER_STATUS_ARRAY = 50002
ADDRESS = 50003
ADDRESS_ARRAY = 50004
CUSTOMER = 50005
EMAIL = 50006
POINT = 600


class FakeCatalog:
    """In-memory CatalogClient.

    Statements are matched on their prepared SQL text. Calls are recorded so
    tests can assert on memoization and worker distribution.
    """

    def __init__(self, delay: float = 0.0, hang_on: str | None = None):
        self.types: dict[int, PgTypeInfo] = {}
        self.enums: dict[int, list[str]] = {}
        self.composites: dict[int, list[tuple[str, int]]] = {}
        self.descriptions: dict[str, Description] = {}
        self.delay = delay
        self.hang_on = hang_on
        self.calls: list[tuple[str, object]] = []

    def add_type(self, oid, name, kind, schema="public", elem_oid=0, base_oid=0):
        self.types[oid] = PgTypeInfo(oid=oid, name=name, schema=schema, kind=kind,
                                     elem_oid=elem_oid, base_oid=base_oid)

    def add_statement(self, sql, params=(), columns=()):
        """Register a statement; columns are (name, oid, Nullability) triples."""
        self.descriptions[sql] = Description(
            params=[ParamDescriptor(position=i + 1, type_id=oid) for i, oid in enumerate(params)],
            columns=[
                OutputDescriptor(position=i, name=name, type_id=oid, nullability=null)
                for i, (name, oid, null) in enumerate(columns)
            ],
        )

    async def _tick(self, key):
        if self.hang_on is not None and self.hang_on in str(key):
            await asyncio.sleep(3600)
        if self.delay:
            await asyncio.sleep(self.delay)

    async def describe(self, sql):
        self.calls.append(("describe", sql))
        await self._tick(sql)
        if sql not in self.descriptions:
            raise CatalogError(f"describe statement: syntax error in {sql!r}")
        return self.descriptions[sql]

    async def lookup_type(self, oid):
        self.calls.append(("lookup_type", oid))
        await self._tick(oid)
        if oid not in self.types:
            raise CatalogError(f"lookup type oid {oid}: no such type")
        return self.types[oid]

    async def lookup_enum_labels(self, oid):
        self.calls.append(("lookup_enum_labels", oid))
        await self._tick(oid)
        return list(self.enums[oid])

    async def lookup_composite_fields(self, oid):
        self.calls.append(("lookup_composite_fields", oid))
        await self._tick(oid)
        return list(self.composites[oid])

    def count(self, op, arg=None):
        return sum(1 for name, a in self.calls if name == op and (arg is None or a == arg))


def build_schema(catalog: FakeCatalog) -> FakeCatalog:
    """Populate a catalog with the schema of tests/fixtures/schema.sql."""
    catalog.add_type(USER_STATUS, "user_status", PgTypeKind.ENUM)
    catalog.enums[USER_STATUS] = ["active", "suspended", "deleted"]
    catalog.add_type(USER_STATUS_ARRAY, "_user_status", PgTypeKind.ARRAY, elem_oid=USER_STATUS)

    catalog.add_type(ADDRESS, "address", PgTypeKind.COMPOSITE)
    catalog.composites[ADDRESS] = [("street", 25), ("zip_code", 1043), ("status", USER_STATUS)]
    catalog.add_type(ADDRESS_ARRAY, "_address", PgTypeKind.ARRAY, elem_oid=ADDRESS)

    catalog.add_type(CUSTOMER, "customer", PgTypeKind.COMPOSITE)
    catalog.composites[CUSTOMER] = [("customer_id", 23), ("addresses", ADDRESS_ARRAY)]

    catalog.add_type(EMAIL, "email", PgTypeKind.DOMAIN, base_oid=25)
    catalog.add_type(POINT, "point", PgTypeKind.BASE, schema="pg_catalog")
    return catalog


NOT_NULL, NULLABLE, UNKNOWN = Nullability.NOT_NULL, Nullability.NULLABLE, Nullability.UNKNOWN

# Describe results for the queries under fixtures/queries: (param OIDs, columns)
STATEMENTS = {
    "FindUserByID": ([23], [("id", 23, NOT_NULL), ("status", USER_STATUS, NOT_NULL)]),
    "ListUsersByStatus": (
        [USER_STATUS, 20],
        [("id", 23, NOT_NULL), ("name", 25, NOT_NULL), ("status", USER_STATUS, NOT_NULL),
         ("addresses", ADDRESS_ARRAY, NULLABLE)],
    ),
    "FindUserEmail": ([23], [("email", EMAIL, NULLABLE)]),
    "SuspendUser": ([23], []),
    "DeleteUsersNamed": ([25], []),
    "InsertUser": (
        [23, 25, ADDRESS_ARRAY],
        [("id", 23, NOT_NULL), ("name", 25, NOT_NULL), ("addresses", ADDRESS_ARRAY, NULLABLE)],
    ),
    "CountUsers": ([], [("user_count", 20, UNKNOWN)]),
}


def register(catalog, *query_files, skip=()):
    """Register the describe result of every query in query_files."""
    for qf in query_files:
        for q in qf.queries:
            if q.name in skip:
                continue
            params, columns = STATEMENTS[q.name]
            catalog.add_statement(q.prepared_sql, params, columns)
    return catalog


@pytest.fixture
def catalog():
    """Fake catalog with the test schema and no statements."""
    return build_schema(FakeCatalog())


@pytest.fixture
def fixtures_dir():
    return FIXTURES


@pytest.fixture(scope="session")
def database_url():
    """Live database for integration tests; tests are skipped without one."""
    url = os.getenv("TEST_DB_URL")
    if not url:
        pytest.skip("TEST_DB_URL not set")
    return url
