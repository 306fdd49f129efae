"""Export finalized schemas back to declarative YAML."""

from pathlib import Path
from typing import Any

import yaml

from relmodel.schema.loader import CURRENT_TIMESTAMP_ALIASES
from relmodel.schema.models import (
    Column,
    ColumnDefault,
    ForeignKey,
    Relationship,
    Schema,
    Table,
)
from relmodel.types import DefaultKind, ReferentialAction


def schema_to_dict(schema: Schema) -> dict[str, Any]:
    """Convert a Schema to the document shape accepted by load_schema_dict."""
    return {
        "dialect": schema.dialect.value,
        "namespaces": [
            {
                "name": name,
                "tables": [table_to_dict(t) for t in schema.tables(name)],
            }
            for name in schema.namespace_names()
        ],
        "relationships": [_relationship_to_dict(r) for r in schema.relationships],
    }


def table_to_dict(table: Table) -> dict[str, Any]:
    """Convert a Table model to a dictionary suitable for YAML export."""
    data: dict[str, Any] = {"table": table.name}

    if table.comment:
        data["comment"] = table.comment

    if table.allow_reserved:
        data["allow_reserved"] = True

    data["columns"] = [_column_to_dict(col) for col in table.columns]

    if table.primary_key:
        columns = list(table.primary_key.columns)
        if table.primary_key.name:
            data["primary_key"] = {"name": table.primary_key.name, "columns": columns}
        else:
            data["primary_key"] = columns

    if table.unique_constraints:
        data["unique_constraints"] = [
            {"name": uc.name, "columns": list(uc.columns)}
            for uc in table.unique_constraints
        ]

    if table.check_constraints:
        checks = []
        for cc in table.check_constraints:
            cc_data: dict[str, Any] = {"name": cc.name, "expression": cc.expression}
            if cc.columns:
                cc_data["columns"] = list(cc.columns)
            checks.append(cc_data)
        data["check_constraints"] = checks

    if table.indexes:
        indexes = []
        for idx in table.indexes:
            idx_data: dict[str, Any] = {"name": idx.name, "columns": list(idx.columns)}
            if idx.unique:
                idx_data["unique"] = True
            if idx.where is not None:
                idx_data["where"] = idx.where
            indexes.append(idx_data)
        data["indexes"] = indexes

    if table.foreign_keys:
        data["foreign_keys"] = [_foreign_key_to_dict(fk) for fk in table.foreign_keys]

    return data


def _column_to_dict(col: Column) -> dict[str, Any]:
    """Convert a Column model to a dictionary."""
    data: dict[str, Any] = {"name": col.name, "type": col.type.sql}

    if not col.nullable:
        data["nullable"] = False

    if col.default is not None:
        data["default"] = _default_to_yaml(col.default)

    if col.on_update is not None:
        data["on_update"] = _default_to_yaml(col.on_update)

    if col.unique:
        data["unique"] = True

    if col.allow_reserved:
        data["allow_reserved"] = True

    if col.comment is not None:
        data["comment"] = col.comment

    return data


def _default_to_yaml(default: ColumnDefault) -> Any:
    if default.kind is DefaultKind.CURRENT_TIMESTAMP:
        return "now"
    if default.kind is DefaultKind.RANDOM_UUID:
        return {"random_uuid": True}
    if default.kind is DefaultKind.SQL:
        return {"sql": default.value}
    # keep literal strings that would otherwise read back as "now"
    if (
        isinstance(default.value, str)
        and default.value.strip().lower() in CURRENT_TIMESTAMP_ALIASES
    ) or isinstance(default.value, (dict, list)):
        return {"literal": default.value}
    return default.value


def _foreign_key_to_dict(fk: ForeignKey) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if fk.name:
        data["name"] = fk.name
    data["columns"] = list(fk.columns)
    data["references"] = {
        "namespace": fk.target.namespace,
        "table": fk.target.name,
        "columns": list(fk.target_columns),
    }
    if fk.on_delete is not ReferentialAction.NO_ACTION:
        data["on_delete"] = fk.on_delete.value
    if fk.on_update is not ReferentialAction.NO_ACTION:
        data["on_update"] = fk.on_update.value
    return data


def _relationship_to_dict(rel: Relationship) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": rel.name,
        "from": str(rel.source),
        "to": str(rel.target),
        "cardinality": rel.cardinality.value,
    }
    if rel.relation_name:
        data["relation_name"] = rel.relation_name
    if rel.fields:
        data["fields"] = list(rel.fields)
        data["references"] = list(rel.references)
    return data


def _dump(data: dict[str, Any]) -> str:
    return yaml.dump(
        data, default_flow_style=False, sort_keys=False, allow_unicode=True
    )


def export_table_yaml(table: Table) -> str:
    """Export a single table to YAML string."""
    return _dump(table_to_dict(table))


def export_schema_yaml(schema: Schema) -> str:
    """Export a whole schema to a single YAML document."""
    return _dump(schema_to_dict(schema))


def export_schema_to_directory(schema: Schema, output_dir: Path) -> list[Path]:
    """Export each namespace to its own YAML file.

    A namespace file also holds the relationships declared on its tables, so
    loading the directory back yields an equal schema.

    Returns list of created file paths.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    created_files = []

    for name in sorted(schema.namespace_names()):
        data = {
            "dialect": schema.dialect.value,
            "namespaces": [
                {"name": name, "tables": [table_to_dict(t) for t in schema.tables(name)]}
            ],
            "relationships": [
                _relationship_to_dict(r)
                for r in schema.relationships
                if r.source.namespace == name
            ],
        }
        file_path = output_dir / f"{name}.yaml"
        file_path.write_text(_dump(data))
        created_files.append(file_path)

    return created_files
