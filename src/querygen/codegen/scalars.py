"""Built-in Postgres scalar types and their Python mapping.

Keyed by OID; built-in OIDs are fixed across Postgres versions. The Python
types are the ones asyncpg decodes to.
"""
from __future__ import annotations

from querygen.catalog.types import TypeID
from .types import ScalarType


def _scalar(pg_name: str, py_type: str, *imports: str) -> ScalarType:
    return ScalarType(pg_name=pg_name, py_type=py_type, imports=tuple(imports))


def array_of(elem: ScalarType, pg_name: str | None = None) -> ScalarType:
    """Array of a scalar: a list whose elements may be NULL."""
    return ScalarType(
        pg_name=pg_name or f"_{elem.pg_name}",
        py_type=f"list[{elem.py_type} | None]",
        imports=elem.imports,
    )


BOOL = _scalar("bool", "bool")
BYTEA = _scalar("bytea", "bytes")
CHAR = _scalar("char", "str")
NAME = _scalar("name", "str")
INT8 = _scalar("int8", "int")
INT2 = _scalar("int2", "int")
INT4 = _scalar("int4", "int")
TEXT = _scalar("text", "str")
OID = _scalar("oid", "int")
JSON = _scalar("json", "str")
XML = _scalar("xml", "str")
CIDR = _scalar("cidr", "ipaddress.IPv4Network | ipaddress.IPv6Network", "ipaddress")
FLOAT4 = _scalar("float4", "float")
FLOAT8 = _scalar("float8", "float")
MONEY = _scalar("money", "str")
MACADDR = _scalar("macaddr", "str")
INET = _scalar("inet", "ipaddress.IPv4Interface | ipaddress.IPv6Interface", "ipaddress")
BPCHAR = _scalar("bpchar", "str")
VARCHAR = _scalar("varchar", "str")
DATE = _scalar("date", "datetime.date", "datetime")
TIME = _scalar("time", "datetime.time", "datetime")
TIMESTAMP = _scalar("timestamp", "datetime.datetime", "datetime")
TIMESTAMPTZ = _scalar("timestamptz", "datetime.datetime", "datetime")
INTERVAL = _scalar("interval", "datetime.timedelta", "datetime")
TIMETZ = _scalar("timetz", "datetime.time", "datetime")
BIT = _scalar("bit", "asyncpg.BitString", "asyncpg")
VARBIT = _scalar("varbit", "asyncpg.BitString", "asyncpg")
NUMERIC = _scalar("numeric", "decimal.Decimal", "decimal")
UUID = _scalar("uuid", "uuid.UUID", "uuid")
TSVECTOR = _scalar("tsvector", "str")
JSONB = _scalar("jsonb", "str")
VOID = _scalar("void", "None")

BUILTIN_SCALARS: dict[TypeID, ScalarType] = {
    16: BOOL,
    17: BYTEA,
    18: CHAR,
    19: NAME,
    20: INT8,
    21: INT2,
    23: INT4,
    25: TEXT,
    26: OID,
    114: JSON,
    142: XML,
    650: CIDR,
    700: FLOAT4,
    701: FLOAT8,
    790: MONEY,
    829: MACADDR,
    869: INET,
    1042: BPCHAR,
    1043: VARCHAR,
    1082: DATE,
    1083: TIME,
    1114: TIMESTAMP,
    1184: TIMESTAMPTZ,
    1186: INTERVAL,
    1266: TIMETZ,
    1560: BIT,
    1562: VARBIT,
    1700: NUMERIC,
    2278: VOID,
    2950: UUID,
    3614: TSVECTOR,
    3802: JSONB,
}

# array OID -> element OID
_BUILTIN_ARRAYS: dict[TypeID, TypeID] = {
    1000: 16,
    1001: 17,
    1002: 18,
    1003: 19,
    1005: 21,
    1007: 23,
    1009: 25,
    1014: 1042,
    1015: 1043,
    1016: 20,
    1021: 700,
    1022: 701,
    1028: 26,
    1041: 869,
    1115: 1114,
    1182: 1082,
    1183: 1083,
    1185: 1184,
    1187: 1186,
    1231: 1700,
    1270: 1266,
    143: 142,
    199: 114,
    651: 650,
    791: 790,
    1040: 829,
    1561: 1560,
    1563: 1562,
    2951: 2950,
    3643: 3614,
    3807: 3802,
}

for _array_oid, _elem_oid in _BUILTIN_ARRAYS.items():
    BUILTIN_SCALARS[_array_oid] = array_of(BUILTIN_SCALARS[_elem_oid])


def builtin_scalar(oid: TypeID) -> ScalarType | None:
    return BUILTIN_SCALARS.get(oid)
