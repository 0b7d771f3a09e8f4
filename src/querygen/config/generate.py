"""Generation configuration loading and validation.

Options come from YAML config files (merged in order, last write wins),
then command line flags. The connection string may also come from the
DATABASE_URL environment variable (a .env file is honored).
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from querygen.codegen.types import ScalarType

CONN_STRING_ENV = "DATABASE_URL"


class TypeOverride(BaseModel):
    """Python type to use for a Postgres type, e.g. citext -> str."""
    py_type: str = Field(..., description="Python annotation, e.g. 'str' or 'decimal.Decimal'")
    imports: list[str] = Field(default_factory=list, description="Modules the annotation needs")

    def to_scalar(self, pg_name: str) -> ScalarType:
        return ScalarType(pg_name=pg_name, py_type=self.py_type, imports=tuple(self.imports))


class GenerateConfig(BaseModel):
    """Complete configuration for one generation run."""
    conn_string: str | None = Field(None, description="Postgres URL or key=value DSN")
    query_files: list[Path] = Field(default_factory=list, description="Query files to generate code for")
    output_dir: Path | None = Field(None, description="Directory for generated modules")
    package: str | None = Field(None, description="Package name; defaults to the output directory name")
    acronyms: dict[str, str] = Field(default_factory=dict, description="Extra acronyms, e.g. ios: IOS")
    type_overrides: dict[str, TypeOverride] = Field(
        default_factory=dict,
        description="Postgres type name -> Python type"
    )
    timeout_seconds: float = Field(30.0, gt=0, description="Bound on every catalog call")
    concurrency: int = Field(1, ge=1, le=16, description="Database connections used in parallel")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field("INFO", description="Log level")

    @field_validator("conn_string")
    @classmethod
    def validate_conn_string(cls, v: str | None) -> str | None:
        """Accept a postgres URL or a key=value DSN."""
        if v is None:
            return v
        if v.startswith(("postgresql://", "postgres://")) or "=" in v:
            return v
        raise ValueError("conn_string must be a postgresql:// URL or a key=value DSN")

    @field_validator("type_overrides", mode="before")
    @classmethod
    def expand_type_overrides(cls, v: Any) -> Any:
        """Allow the shorthand 'citext: str' for overrides without imports."""
        if isinstance(v, dict):
            return {k: {"py_type": o} if isinstance(o, str) else o for k, o in v.items()}
        return v

    @classmethod
    def from_yaml(cls, path: str | Path) -> GenerateConfig:
        """Load configuration from a YAML file.

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If configuration is invalid
        """
        config_path = Path(path)

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r") as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Invalid configuration in {config_path}: expected a mapping")

        try:
            return cls.model_validate(data)
        except Exception as e:
            raise ValueError(f"Invalid configuration in {config_path}: {e}") from e

    def merge(self, other: GenerateConfig) -> GenerateConfig:
        """Return this config overlaid with the fields other sets explicitly.

        Scalars and lists are replaced; acronyms and type_overrides are
        merged key by key with other winning.
        """
        update = other.model_dump(exclude_unset=True)
        for key in ("acronyms", "type_overrides"):
            if key in update:
                update[key] = {**getattr(self, key), **getattr(other, key)}
        return self.model_copy(update=update)

    def scalar_overrides(self) -> dict[str, ScalarType]:
        return {name: o.to_scalar(name) for name, o in self.type_overrides.items()}

    @property
    def package_name(self) -> str:
        """Package name, defaulting to the output directory's base name."""
        if self.package:
            return self.package
        if self.output_dir is None:
            return ""
        return self.output_dir.resolve().name

    def log_redacted(self) -> dict:
        """Get configuration dict with the connection password redacted."""
        config_dict = self.model_dump(mode="json")
        config_dict["conn_string"] = redact_conn_string(self.conn_string)
        return config_dict


def redact_conn_string(conn_string: str | None) -> str | None:
    if not conn_string:
        return conn_string
    if "://" in conn_string and "@" in conn_string:
        scheme, rest = conn_string.split("://", 1)
        creds, host = rest.rsplit("@", 1)
        if ":" in creds:
            creds = creds.split(":", 1)[0] + ":***"
        return f"{scheme}://{creds}@{host}"
    parts = []
    for part in conn_string.split():
        if part.startswith("password="):
            part = "password=***"
        parts.append(part)
    return " ".join(parts)


def merge_configs(paths: list[str | Path]) -> GenerateConfig:
    """Load and merge config files; later files win."""
    conf = GenerateConfig()
    for path in paths:
        conf = conf.merge(GenerateConfig.from_yaml(path))
    return conf


def load_config(config_paths: list[str | Path] | None = None, **overrides: Any) -> GenerateConfig:
    """Load configuration from files, flags and the environment.

    Args:
        config_paths: YAML files, merged in order
        **overrides: Values from command line flags; None values are ignored

    Returns:
        Validated GenerateConfig

    Raises:
        ValueError: If the merged configuration is invalid
    """
    load_dotenv()

    conf = merge_configs(list(config_paths or []))
    flags = {k: v for k, v in overrides.items() if v is not None}
    if flags:
        try:
            conf = conf.merge(GenerateConfig.model_validate(flags))
        except Exception as e:
            raise ValueError(f"Invalid options: {e}") from e

    if conf.conn_string is None and os.getenv(CONN_STRING_ENV):
        conf = conf.merge(GenerateConfig(conn_string=os.getenv(CONN_STRING_ENV)))
    return conf
