"""Generation run: parse query files, infer types, order declarations.

Nothing is written until every query of every file has been typed and the
declarations ordered; a failure anywhere leaves the output directory as it
was.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence

import asyncpg

from querygen.casing import Caser
from querygen.catalog.client import DB_ERRORS, AsyncpgCatalog, CatalogClient
from querygen.codegen.declarations import DeclarationGraph, DeclarationNode
from querygen.codegen.query_typing import TypedQuery, type_query
from querygen.codegen.resolver import TypeResolver
from querygen.config.generate import GenerateConfig, redact_conn_string
from querygen.errors import CatalogError
from querygen.parser.ast import QueryFile, TemplateQuery
from querygen.parser.parser import parse_query_file
from querygen.run import GenerationRun

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TypedQueryFile:
    """All typed queries of one source file, ready for emission."""
    package: str
    src: str
    template_queries: tuple[TemplateQuery, ...]
    typed_queries: tuple[TypedQuery, ...]


@dataclass(frozen=True)
class GenerationResult:
    """Everything the emission stage needs from one run."""
    files: tuple[TypedQueryFile, ...] = ()
    declarations: tuple[DeclarationNode, ...] = field(default_factory=tuple)


def new_run(config: GenerateConfig) -> GenerationRun:
    return GenerationRun(
        caser=Caser(config.acronyms),
        type_overrides=config.scalar_overrides(),
        timeout=config.timeout_seconds,
    )


async def type_query_file(
    run: GenerationRun,
    catalog: CatalogClient,
    query_file: QueryFile,
    package: str,
) -> TypedQueryFile:
    """Describe and type every query of one file, in order, on one catalog."""
    resolver = TypeResolver(run, catalog)
    typed = []
    for query in query_file.queries:
        typed.append(await _type_one(run, catalog, resolver, query))
    logger.info(f"Typed {len(typed)} queries from {query_file.path}")
    return TypedQueryFile(
        package=package,
        src=query_file.path,
        template_queries=query_file.queries,
        typed_queries=tuple(typed),
    )


async def _type_one(
    run: GenerationRun,
    catalog: CatalogClient,
    resolver: TypeResolver,
    query: TemplateQuery,
) -> TypedQuery:
    try:
        description = await run.call(catalog.describe(query.prepared_sql), f"describe {query.name}")
        param_types = await resolver.resolve_all(description.param_types)
        column_types = await resolver.resolve_all(c.type_id for c in description.columns)
    except CatalogError as e:
        raise e.for_query(query.name) from e.__cause__
    except asyncio.CancelledError as e:
        logger.error(f"Cancelled while typing query {query.name}")
        raise CatalogError("cancelled", query_name=query.name) from e
    return type_query(query, description, param_types, column_types)


def build_declarations(files: Sequence[TypedQueryFile]) -> list[DeclarationNode]:
    """Order the declarations of every type referenced in the run.

    Types are registered in source order (file, query, inputs then outputs)
    regardless of which worker resolved them, so the order is stable.
    """
    graph = DeclarationGraph()
    for f in files:
        for typed in f.typed_queries:
            graph.add_all(typed.types())
    return graph.ordered()


async def generate_with_catalogs(
    config: GenerateConfig,
    query_files: Sequence[QueryFile],
    catalogs: Sequence[CatalogClient],
    run: GenerationRun | None = None,
) -> GenerationResult:
    """Type query files using the given catalogs, one worker per catalog.

    Each file is handled by a single catalog; files are spread across
    catalogs. All workers share one run-scoped type cache.
    """
    if not catalogs:
        raise ValueError("at least one catalog is required")
    run = run or new_run(config)
    package = config.package_name
    pending: asyncio.Queue[int] = asyncio.Queue()
    for i in range(len(query_files)):
        pending.put_nowait(i)
    results: dict[int, TypedQueryFile] = {}

    async def worker(catalog: CatalogClient) -> None:
        while not pending.empty():
            i = pending.get_nowait()
            results[i] = await type_query_file(run, catalog, query_files[i], package)

    tasks = [asyncio.ensure_future(worker(c)) for c in catalogs]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    files = tuple(results[i] for i in range(len(query_files)))
    declarations = build_declarations(files)
    logger.info(f"Resolved {len(declarations)} declarations across {len(files)} files")
    return GenerationResult(files=files, declarations=tuple(declarations))


async def generate(config: GenerateConfig) -> GenerationResult:
    """Run type inference for every configured query file.

    Args:
        config: Validated configuration; conn_string and query_files required

    Returns:
        GenerationResult for the emission stage

    Raises:
        ParseError, CatalogError, ResolutionError, TypingMismatchError
    """
    if not config.conn_string:
        raise ValueError("no connection string: set conn_string or DATABASE_URL")
    if not config.query_files:
        raise ValueError("no query files given")

    # Parse everything first; parse errors need no database.
    query_files = [parse_query_file(path) for path in config.query_files]

    workers = min(config.concurrency, len(query_files))
    logger.info(f"Connecting to {redact_conn_string(config.conn_string)} with {workers} connection(s)")
    try:
        pool = await asyncio.wait_for(
            asyncpg.create_pool(dsn=config.conn_string, min_size=workers, max_size=workers),
            timeout=config.timeout_seconds,
        )
    except asyncio.TimeoutError as e:
        raise CatalogError(f"connect to postgres: timed out after {config.timeout_seconds}s") from e
    except DB_ERRORS as e:
        raise CatalogError(f"connect to postgres: {e}") from e

    conns = []
    try:
        try:
            for _ in range(workers):
                conns.append(await pool.acquire(timeout=config.timeout_seconds))
        except asyncio.TimeoutError as e:
            raise CatalogError(f"acquire connection: timed out after {config.timeout_seconds}s") from e
        catalogs = [AsyncpgCatalog(conn) for conn in conns]
        return await generate_with_catalogs(config, query_files, catalogs)
    finally:
        try:
            for conn in conns:
                await pool.release(conn)
        finally:
            await pool.close()

