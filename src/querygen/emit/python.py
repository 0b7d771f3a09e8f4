"""Render generated Python modules from a GenerationResult.

Output layout for one run:

    <output_dir>/models.py       every declared enum, composite and array
    <output_dir>/<file>_sql.py   one async function per query of <file>.sql

All text is rendered in memory before anything is written.
"""
from __future__ import annotations

import ast
import logging
import os
import re
from pathlib import Path
from typing import Sequence

from querygen.casing import Caser
from querygen.codegen.declarations import DeclarationNode
from querygen.codegen.query_typing import QueryInput, QueryOutput, TypedQuery
from querygen.codegen.types import (
    ArrayType,
    CompositeType,
    EnumType,
    ResolvedType,
    ScalarType,
    unhandled,
)
from querygen.errors import ResolutionError
from querygen.generate import GenerationResult, TypedQueryFile
from querygen.parser.ast import ResultKind

logger = logging.getLogger(__name__)

MODELS_MODULE = "models"
HEADER = "# Code generated by querygen. DO NOT EDIT."


# ============================================================================
# Type expressions
# ============================================================================

def annotation(typ: ResolvedType, nullable: bool = False, prefix: str = "") -> str:
    """Python annotation for a resolved type."""
    if isinstance(typ, ScalarType):
        text = typ.py_type
        if nullable and text != "None":
            text += " | None"
        return text
    if isinstance(typ, (EnumType, CompositeType, ArrayType)):
        text = prefix + typ.name
        return text + " | None" if nullable else text
    unhandled(typ)


def decode_expr(typ: ResolvedType, expr: str, caser: Caser, prefix: str = "") -> str:
    """Expression converting an asyncpg value into the declared Python type."""
    if isinstance(typ, ScalarType):
        return expr
    if isinstance(typ, (EnumType, CompositeType, ArrayType)):
        return f"{prefix}decode_{caser.to_snake(typ.name)}({expr})"
    unhandled(typ)


def encode_expr(typ: ResolvedType, expr: str, caser: Caser, prefix: str = "") -> str:
    """Expression converting a declared Python value into what asyncpg accepts."""
    if isinstance(typ, ScalarType):
        return expr
    if isinstance(typ, (EnumType, CompositeType, ArrayType)):
        return f"{prefix}encode_{caser.to_snake(typ.name)}({expr})"
    unhandled(typ)


def _imports(types: Sequence[ResolvedType]) -> set[str]:
    modules: set[str] = set()
    for typ in types:
        if isinstance(typ, ScalarType):
            modules.update(typ.imports)
        elif isinstance(typ, CompositeType):
            modules.update(_imports([f.type for f in typ.fields]))
        elif isinstance(typ, ArrayType):
            modules.update(_imports([typ.elem]))
        elif not isinstance(typ, EnumType):
            unhandled(typ)
    return modules


def _string_literal(text: str) -> str:
    if '"""' in text or "\\" in text or text.endswith('"'):
        return repr(text)
    return f'"""{text}"""'


def _python_default(sql_literal: str) -> str:
    """Convert a pggen.arg default (SQL literal) into Python source."""
    if sql_literal.startswith("'"):
        return repr(sql_literal[1:-1].replace("''", "'"))
    lowered = sql_literal.lower()
    if lowered == "true":
        return "True"
    if lowered == "false":
        return "False"
    if lowered == "null":
        return "None"
    return sql_literal


# ============================================================================
# models.py
# ============================================================================

def render_models(declarations: Sequence[DeclarationNode], caser: Caser) -> str:
    """Render every declaration, in the given (dependency) order.

    Raises:
        ResolutionError: If two types generate the same decode/encode helpers
    """
    helpers: dict[str, str] = {}
    for node in declarations:
        snake = caser.to_snake(node.type.name)
        if snake in helpers:
            raise ResolutionError(
                f"types {helpers[snake]} and {node.type.pg_name} both generate the helpers "
                f"decode_{snake} and encode_{snake}"
            )
        helpers[snake] = node.type.pg_name

    blocks: list[str] = []
    for node in declarations:
        typ = node.type
        if isinstance(typ, EnumType):
            blocks.append(_render_enum(typ, caser))
        elif isinstance(typ, CompositeType):
            blocks.append(_render_composite(typ, caser))
        elif isinstance(typ, ArrayType):
            blocks.append(_render_array(typ, caser))
        else:
            unhandled(typ)

    modules = {"dataclasses", "enum"} | _imports([n.type for n in declarations])
    lines = [
        HEADER,
        '"""Types declared by the Postgres schema."""',
        "from __future__ import annotations",
        "",
        *[f"import {m}" for m in sorted(modules)],
    ]
    return "\n".join(lines) + "\n\n\n" + "\n\n\n".join(blocks) + "\n"


def _render_enum(typ: EnumType, caser: Caser) -> str:
    snake = caser.to_snake(typ.name)
    lines = [
        f"class {typ.name}(str, enum.Enum):",
        f'    """Represents the Postgres enum {typ.pg_name!r}."""',
        "",
    ]
    seen: set[str] = set()
    for i, label in enumerate(typ.labels):
        member = caser.to_upper_snake(label)
        n = i
        while not member or member in seen or member.startswith("_"):
            member = f"UNNAMED_LABEL_{n}"
            n += 1
        seen.add(member)
        lines.append(f"    {member} = {label!r}")
    if not typ.labels:
        lines.append("    pass")
    lines += [
        "",
        "",
        f"def decode_{snake}(value: str | None) -> {typ.name} | None:",
        f"    return None if value is None else {typ.name}(value)",
        "",
        "",
        f"def encode_{snake}(value: {typ.name} | None) -> str | None:",
        "    return None if value is None else value.value",
    ]
    return "\n".join(lines)


def _render_composite(typ: CompositeType, caser: Caser) -> str:
    snake = caser.to_snake(typ.name)
    lines = [
        "@dataclasses.dataclass(frozen=True)",
        f"class {typ.name}:",
        f'    """Represents the Postgres composite type {typ.pg_name!r}."""',
    ]
    if typ.fields:
        lines.append("")
        lines += [f"    {f.name}: {annotation(f.type, nullable=True)}" for f in typ.fields]
    lines += [
        "",
        "",
        f"def decode_{snake}(value) -> {typ.name} | None:",
        "    if value is None:",
        "        return None",
        f"    return {typ.name}(",
        *[f"        {f.name}={decode_expr(f.type, f'value[{i}]', caser)}," for i, f in enumerate(typ.fields)],
        "    )",
        "",
        "",
        f"def encode_{snake}(value: {typ.name} | None) -> tuple | None:",
        "    if value is None:",
        "        return None",
        "    return (",
        *[f"        {encode_expr(f.type, f'value.{f.name}', caser)}," for f in typ.fields],
        "    )",
    ]
    return "\n".join(lines)


def _render_array(typ: ArrayType, caser: Caser) -> str:
    snake = caser.to_snake(typ.name)
    elem = typ.elem
    return "\n".join([
        f"{typ.name} = list[{annotation(elem, nullable=True)}]",
        f'"""Represents the Postgres array type {typ.pg_name!r}."""',
        "",
        "",
        f"def decode_{snake}(value) -> {typ.name} | None:",
        "    if value is None:",
        "        return None",
        f"    return [{decode_expr(elem, 'v', caser)} for v in value]",
        "",
        "",
        f"def encode_{snake}(value: {typ.name} | None) -> list | None:",
        "    if value is None:",
        "        return None",
        f"    return [{encode_expr(elem, 'v', caser)} for v in value]",
    ])


# ============================================================================
# Query modules
# ============================================================================

def render_query_module(file: TypedQueryFile, caser: Caser) -> str:
    """Render one module with a function per query of file."""
    prefix = f"{MODELS_MODULE}."
    types = [t for typed in file.typed_queries for t in typed.types()]
    # Module-level names the generated code refers to.
    reserved = {MODELS_MODULE, "asyncpg", "dataclasses"} | _imports(types)
    functions: set[str] = set()
    blocks: list[str] = []
    uses_dataclasses = False

    for typed in file.typed_queries:
        func = caser.to_snake(typed.name)
        if func in reserved:
            func += "_"
        if func in functions:
            raise ResolutionError(f"{file.src}: more than one query generates the function {func}")
        functions.add(func)
        block, has_row = _render_query(typed, func, caser, prefix, reserved)
        uses_dataclasses = uses_dataclasses or has_row
        blocks.append(block)

    modules = _imports(types) | {"asyncpg"}
    if uses_dataclasses:
        modules.add("dataclasses")
    lines = [
        HEADER,
        f'"""Queries from {Path(file.src).name}."""',
        "from __future__ import annotations",
        "",
        *[f"import {m}" for m in sorted(modules)],
    ]
    if any(not isinstance(t, ScalarType) for t in types):
        lines += ["", f"from . import {MODELS_MODULE}"]
    return "\n".join(lines) + "\n\n\n" + "\n\n\n".join(blocks) + "\n"


def _param_names(typed: TypedQuery, caser: Caser, reserved: set[str]) -> list[str]:
    names: dict[str, str] = {}
    for inp in typed.inputs:
        name = caser.to_snake(inp.name) or f"arg_{inp.position}"
        if name in reserved or name in ("conn", "int"):
            name += "_"
        if name in names:
            raise ResolutionError(
                f"query {typed.name}: parameters {names[name]} and {inp.name} both generate the Python name {name}"
            )
        names[name] = inp.name
    return list(names)


def _field_names(outputs: Sequence[QueryOutput], caser: Caser) -> list[str]:
    names: list[str] = []
    for out in outputs:
        base = caser.to_snake(out.name) or f"column_{out.position}"
        name, n = base, out.position
        while name in names:
            name = f"{base}_{n}"
            n += 1
        names.append(name)
    return names


def _default_expr(typed: TypedQuery, inp: QueryInput, prefix: str) -> str:
    """Python source for a parameter default, typed like the parameter.

    Raises:
        ResolutionError: If the default cannot be expressed as the parameter's type
    """
    default = _python_default(inp.default)
    if default == "None":
        return default
    typ = inp.type
    if isinstance(typ, EnumType):
        if not inp.default.startswith("'") or ast.literal_eval(default) not in typ.labels:
            raise ResolutionError(
                f"query {typed.name}: default {inp.default} of parameter {inp.name} "
                f"is not a label of enum {typ.pg_name}"
            )
        return f"{prefix}{typ.name}({default})"
    if isinstance(typ, (CompositeType, ArrayType)) or (isinstance(typ, ScalarType) and typ.py_type.startswith("list[")):
        raise ResolutionError(
            f"query {typed.name}: default {inp.default} of parameter {inp.name} "
            f"is not supported for type {typ.pg_name}, only null"
        )
    return default


def _signature_arg(typed: TypedQuery, name: str, inp: QueryInput, prefix: str) -> str:
    if inp.default is None:
        return f"{name}: {annotation(inp.type, prefix=prefix)}"
    default = _default_expr(typed, inp, prefix)
    return f"{name}: {annotation(inp.type, nullable=default == 'None', prefix=prefix)} = {default}"


def _render_query(
    typed: TypedQuery, func: str, caser: Caser, prefix: str, reserved: set[str]
) -> tuple[str, bool]:
    const = f"{func.rstrip('_').upper()}_SQL"
    params = _param_names(typed, caser, reserved)
    args = ", ".join(encode_expr(i.type, n, caser, prefix) for n, i in zip(params, typed.inputs))
    call_args = f"{const}, {args}" if args else const

    outputs = typed.outputs
    kind = typed.result_kind
    if kind.returns_rows and not outputs:
        kind = ResultKind.EXEC

    lines = [f"{const} = {_string_literal(typed.prepared_sql)}"]

    has_row = kind.returns_rows and len(outputs) > 1
    if has_row:
        row_class = f"{typed.name}Row"
        fields = _field_names(outputs, caser)
        lines += [
            "",
            "",
            "@dataclasses.dataclass(frozen=True)",
            f"class {row_class}:",
            *[f"    {n}: {annotation(o.type, o.nullable, prefix)}" for n, o in zip(fields, outputs)],
        ]
        result_type = row_class
        convert = (
            f"{row_class}("
            + ", ".join(f"{n}={decode_expr(o.type, f'row[{i}]', caser, prefix)}" for i, (n, o) in enumerate(zip(fields, outputs)))
            + ")"
        )
    elif kind.returns_rows:
        result_type = annotation(outputs[0].type, outputs[0].nullable, prefix)
        convert = decode_expr(outputs[0].type, "row[0]", caser, prefix)
    else:
        result_type = "int" if kind == ResultKind.EXEC_ROWS else "None"
        convert = ""

    returns = {
        ResultKind.ONE: result_type,
        ResultKind.OPT: result_type if result_type.endswith(" | None") else f"{result_type} | None",
        ResultKind.MANY: f"list[{result_type}]",
        ResultKind.EXEC: "None",
        ResultKind.EXEC_ROWS: "int",
    }[kind]

    signature = ["conn: asyncpg.Connection"]
    if params:
        signature.append("*")
        signature += [_signature_arg(typed, n, i, prefix) for n, i in zip(params, typed.inputs)]
    doc = list(typed.query.doc) or [f"{typed.name} returns {typed.result_kind.cardinality}."]

    lines += [
        "",
        "",
        f"async def {func}({', '.join(signature)}) -> {returns}:",
        *_docstring(doc),
    ]
    if kind == ResultKind.ONE:
        lines += [
            f"    row = await conn.fetchrow({call_args})",
            "    if row is None:",
            f"        raise LookupError({typed.name + ': no rows'!r})",
            f"    return {convert}",
        ]
    elif kind == ResultKind.OPT:
        lines += [
            f"    row = await conn.fetchrow({call_args})",
            "    if row is None:",
            "        return None",
            f"    return {convert}",
        ]
    elif kind == ResultKind.MANY:
        lines += [
            f"    rows = await conn.fetch({call_args})",
            f"    return [{convert} for row in rows]",
        ]
    elif kind == ResultKind.EXEC:
        lines.append(f"    await conn.execute({call_args})")
    else:
        lines += [
            f"    status = await conn.execute({call_args})",
            "    return int(status.split()[-1])",
        ]
    return "\n".join(lines), has_row


def _docstring(doc: list[str]) -> list[str]:
    doc = [d.replace("\\", "\\\\").replace('"""', "'''") for d in doc]
    if doc[-1].endswith('"'):
        doc[-1] += " "
    if len(doc) == 1:
        return [f'    """{doc[0]}"""']
    return [f'    """{doc[0]}', *[f"    {d}" if d else "" for d in doc[1:]], '    """']


# ============================================================================
# Writing
# ============================================================================

def module_name(src: str) -> str:
    """query.sql -> query_sql"""
    name = re.sub(r"\W", "_", Path(src).name)
    if name[:1].isdigit():
        name = "_" + name
    return name


def render_all(result: GenerationResult, output_dir: str | Path, caser: Caser | None = None) -> dict[Path, str]:
    """Render every generated file of a run, without writing anything."""
    caser = caser or Caser()
    output_dir = Path(output_dir)
    rendered: dict[Path, str] = {}
    sources: dict[Path, str] = {}

    if result.declarations:
        rendered[output_dir / f"{MODELS_MODULE}.py"] = render_models(result.declarations, caser)
    for file in result.files:
        path = output_dir / f"{module_name(file.src)}.py"
        if path in sources or path.stem == MODELS_MODULE:
            other = sources.get(path, MODELS_MODULE)
            raise ResolutionError(f"query files {other} and {file.src} both generate module {path.name}")
        sources[path] = file.src
        rendered[path] = render_query_module(file, caser)
    return rendered


def emit_all(result: GenerationResult, output_dir: str | Path, caser: Caser | None = None) -> list[Path]:
    """Render and then write every generated file.

    Rendering finishes before the first write, and each file is replaced
    atomically, so a failure never leaves half-written modules.

    Returns:
        Paths written
    """
    rendered = render_all(result, output_dir, caser)
    Path(output_dir).mkdir(parents=True, exist_ok=True)

    written = []
    for path, text in rendered.items():
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
        written.append(path)
        logger.info(f"Wrote {path}")
    return written
