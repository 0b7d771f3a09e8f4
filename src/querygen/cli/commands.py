from __future__ import annotations
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from dotenv import load_dotenv

from querygen.casing import Caser
from querygen.config import GenerateConfig, load_config
from querygen.emit import emit_all
from querygen.errors import QueryGenError
from querygen.generate import generate

logger = logging.getLogger(__name__)


def run() -> None:
    """Main CLI entry point."""
    # Load environment variables first
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="querygen",
        description="querygen - typed async Python accessors from annotated SQL"
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    gen = sub.add_parser("gen", help="Generate Python modules from query files")
    gen.add_argument("--conn-string", help="Postgres URL or DSN (default: $DATABASE_URL)")
    gen.add_argument("--query-file", action="append", dest="query_files",
                     help="Query file to generate code for (repeatable)")
    gen.add_argument("--output-dir", help="Directory for generated modules")
    gen.add_argument("--package", help="Package name (default: output directory name)")
    gen.add_argument("--config", action="append", dest="configs", default=[],
                     help="YAML config file, merged in order (repeatable)")
    gen.add_argument("--acronym", action="append", default=[], metavar="WORD=REPLACEMENT",
                     help="Extra acronym, e.g. ios=IOS (repeatable)")
    gen.add_argument("--type-override", action="append", default=[], metavar="PG_TYPE=PY_TYPE",
                     help="Python type for a Postgres type, e.g. citext=str (repeatable)")
    gen.add_argument("--timeout", type=float, help="Seconds allowed per catalog call (default: 30)")
    gen.add_argument("--concurrency", type=int, help="Database connections used in parallel (default: 1)")
    gen.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                     help="Log level (default: INFO)")

    args = parser.parse_args()

    try:
        if args.cmd == "gen":
            config = load_config(
                args.configs,
                conn_string=args.conn_string,
                query_files=args.query_files,
                output_dir=args.output_dir,
                package=args.package,
                acronyms=_pairs(args.acronym, "--acronym") or None,
                type_overrides=_pairs(args.type_override, "--type-override") or None,
                timeout_seconds=args.timeout,
                concurrency=args.concurrency,
                log_level=args.log_level,
            )
            logging.basicConfig(
                level=config.log_level,
                format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                stream=sys.stderr,
            )
            written = asyncio.run(gen_modules(config))
            print(f"Generated {len(written)} file(s) in {config.output_dir}")
    except (QueryGenError, ValueError, FileNotFoundError) as e:
        print(f"querygen: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("querygen: interrupted", file=sys.stderr)
        sys.exit(130)


def _pairs(values: list[str], flag: str) -> dict[str, str]:
    """Parse repeated KEY=VALUE flags."""
    pairs = {}
    for value in values:
        key, sep, val = value.partition("=")
        if not sep or not key or not val:
            raise ValueError(f"{flag} expects KEY=VALUE, got {value!r}")
        pairs[key] = val
    return pairs


async def gen_modules(config: GenerateConfig) -> list[Path]:
    """Type every query file against the database, then write the modules.

    Args:
        config: Merged configuration

    Returns:
        Paths of the files written

    Raises:
        QueryGenError: On any parse, catalog, resolution or typing failure
        ValueError: If required options are missing
    """
    if config.output_dir is None:
        raise ValueError("no output directory: set output_dir or --output-dir")
    logger.debug(f"Configuration: {config.log_redacted()}")

    result = await generate(config)
    return emit_all(result, config.output_dir, Caser(config.acronyms))
