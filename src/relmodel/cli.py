"""Command-line interface for relmodel."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from relmodel.config import Config
from relmodel.exceptions import ConfigError, RelmodelError, SchemaValidationError
from relmodel.schema.exporter import export_schema_to_directory, export_schema_yaml
from relmodel.schema.loader import load_schema
from relmodel.schema.models import Column, Schema, Table

logger = logging.getLogger(__name__)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="relmodel",
        description="Relational schema model validator",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "--schema-path",
            type=Path,
            help="Schema YAML file or directory (default: RELMODEL_SCHEMA_PATH or ./schema)",
        )
        sub.add_argument(
            "--dialect",
            choices=["postgresql", "mysql"],
            help="Dialect when schema files do not declare one",
        )
        sub.add_argument(
            "--strict",
            action="store_true",
            default=None,
            help="Treat warnings (e.g. redundant unique constraints) as errors",
        )

    validate_parser = subparsers.add_parser("validate", help="Validate schema files")
    add_common(validate_parser)

    show_parser = subparsers.add_parser("show", help="Show tables and relationships")
    add_common(show_parser)
    show_parser.add_argument("--namespace", help="Only show this namespace")
    show_parser.add_argument("--table", help="Only show this table")

    export_parser = subparsers.add_parser("export", help="Export normalized YAML")
    add_common(export_parser)
    export_parser.add_argument(
        "--output",
        type=Path,
        help="Output directory, one file per namespace (default: stdout)",
    )

    args = parser.parse_args(argv)

    try:
        config = _config_from_args(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    level = logging.DEBUG if args.verbose else config.logging_level
    logging.basicConfig(level=level, format="%(message)s")

    if args.command == "validate":
        return cmd_validate(args)
    elif args.command == "show":
        return cmd_show(args)
    elif args.command == "export":
        return cmd_export(args)
    else:
        print(f"Command '{args.command}' not yet implemented", file=sys.stderr)
        return 1


def _config_from_args(args: argparse.Namespace) -> Config:
    schema_path = getattr(args, "schema_path", None)
    return Config.from_env(
        dialect=getattr(args, "dialect", None),
        schema_path=str(schema_path) if schema_path is not None else None,
        strict=getattr(args, "strict", None),
    )


def _load(config: Config) -> Schema:
    return load_schema(
        Path(config.schema_path),
        dialect=config.dialect,
        default_namespace=config.default_namespace,
        strict=config.strict,
    )


def _report_validation_error(error: SchemaValidationError) -> None:
    print(
        f"Validation failed: {len(error.errors)} error(s), "
        f"{len(error.warnings)} warning(s)",
        file=sys.stderr,
    )
    for issue in error.issues:
        print(f"  - {issue}", file=sys.stderr)


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate schema files."""
    try:
        config = _config_from_args(args)
        schema = _load(config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except SchemaValidationError as e:
        _report_validation_error(e)
        return 1
    except RelmodelError as e:
        print(f"Validation error: {e}", file=sys.stderr)
        return 1

    tables = schema.tables()
    print(
        f"Validated {len(tables)} tables in {len(schema.namespaces)} namespaces "
        f"({schema.dialect.value}):"
    )
    for ns_name in schema.namespace_names():
        ns_tables = sorted(schema.tables(ns_name), key=lambda t: t.name)
        print(f"  {ns_name}:")
        for table in ns_tables:
            print(f"    - {table.name} ({len(table.columns)} columns)")
    print(f"Relationships: {len(schema.relationships)}")
    if schema.warnings:
        print(f"Warnings ({len(schema.warnings)}):")
        for issue in schema.warnings:
            print(f"  - {issue}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Print tables, keys, constraints and relationships of a schema."""
    try:
        config = _config_from_args(args)
        schema = _load(config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except SchemaValidationError as e:
        _report_validation_error(e)
        return 1
    except RelmodelError as e:
        print(f"Load error: {e}", file=sys.stderr)
        return 1

    namespace = getattr(args, "namespace", None)
    table_name = getattr(args, "table", None)

    tables = schema.tables(namespace)
    if table_name is not None:
        tables = [t for t in tables if t.name == table_name]
    if not tables:
        print("No matching tables", file=sys.stderr)
        return 1

    for table in tables:
        for line in _describe_table(schema, table):
            print(line)
    return 0


def _describe_column(table: Table, col: Column) -> str:
    parts = [col.name, col.type.sql]
    if not table.is_nullable(col.name):
        parts.append("NOT NULL")
    if col.unique:
        parts.append("UNIQUE")
    if col.default is not None:
        if col.default.value is None:
            parts.append(f"DEFAULT {col.default.kind.value}")
        else:
            parts.append(f"DEFAULT {col.default.value!r}")
    if col.on_update is not None:
        parts.append(f"ON UPDATE {col.on_update.kind.value}")
    return " ".join(parts)


def _describe_table(schema: Schema, table: Table) -> list[str]:
    lines = [f"{table.ref} ({len(table.columns)} columns)"]
    for col in table.columns:
        lines.append(f"  {_describe_column(table, col)}")
    if table.primary_key is not None:
        lines.append(f"  primary key ({', '.join(table.primary_key.columns)})")
    for uc in table.unique_constraints:
        lines.append(f"  unique {uc.name} ({', '.join(uc.columns)})")
    for cc in table.check_constraints:
        lines.append(f"  check {cc.name}: {cc.expression}")
    for idx in table.indexes:
        kind = "unique index" if idx.unique else "index"
        where = f" where {idx.where}" if idx.where else ""
        lines.append(f"  {kind} {idx.name} ({', '.join(idx.columns)}){where}")
    for fk in table.foreign_keys:
        lines.append(
            f"  foreign key ({', '.join(fk.columns)}) -> "
            f"{fk.target}({', '.join(fk.target_columns)}) "
            f"on delete {fk.on_delete.value} on update {fk.on_update.value}"
        )
    for rel in schema.relationships_for(table.ref):
        tag = f" [{rel.relation_name}]" if rel.relation_name else ""
        lines.append(
            f"  relationship {rel.name}: {rel.cardinality.value} -> {rel.target}{tag}"
        )
    return lines


def cmd_export(args: argparse.Namespace) -> int:
    """Export a validated schema as normalized YAML."""
    try:
        config = _config_from_args(args)
        schema = _load(config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except SchemaValidationError as e:
        _report_validation_error(e)
        return 1
    except RelmodelError as e:
        print(f"Export error: {e}", file=sys.stderr)
        return 1

    output = getattr(args, "output", None)
    if output is None:
        print(export_schema_yaml(schema), end="")
        return 0

    created = export_schema_to_directory(schema, output)
    logger.info(f"Exported {len(created)} namespace file(s) to {output}")
    for path in created:
        print(f"  {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
