"""Load schema definitions from YAML files."""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from relmodel.exceptions import SchemaLoadError
from relmodel.schema.builder import SchemaBuilder
from relmodel.schema.models import (
    CheckConstraint,
    Column,
    ColumnDefault,
    Index,
    PrimaryKey,
    Schema,
    TableRef,
    TypeRules,
    UniqueConstraint,
)
from relmodel.types import Cardinality, Dialect, ReferentialAction

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "public"

VALID_DOCUMENT_FIELDS = {"dialect", "default_namespace", "namespaces", "relationships"}

VALID_NAMESPACE_FIELDS = {"name", "tables"}

VALID_TABLE_FIELDS = {
    "table",
    "columns",
    "primary_key",
    "unique_constraints",
    "check_constraints",
    "indexes",
    "foreign_keys",
    "allow_reserved",
    "comment",
}

VALID_COLUMN_FIELDS = {
    "name",
    "type",
    "nullable",
    "default",
    "on_update",
    "unique",
    "allow_reserved",
    "comment",
}

VALID_UNIQUE_CONSTRAINT_FIELDS = {"name", "columns"}

VALID_CHECK_CONSTRAINT_FIELDS = {"name", "expression", "columns"}

VALID_INDEX_FIELDS = {"name", "columns", "unique", "where"}

VALID_FOREIGN_KEY_FIELDS = {"name", "columns", "references", "on_delete", "on_update"}

VALID_REFERENCE_FIELDS = {"namespace", "table", "columns"}

VALID_RELATIONSHIP_FIELDS = {
    "name",
    "from",
    "to",
    "cardinality",
    "relation_name",
    "fields",
    "references",
}

CURRENT_TIMESTAMP_ALIASES = {"now", "now()", "current_timestamp"}


def load_schema(
    schema_path: Path,
    dialect: Optional[Dialect] = None,
    default_namespace: str = DEFAULT_NAMESPACE,
    strict: bool = False,
) -> Schema:
    """Load and finalize a schema from a directory of YAML files or a single file.

    Args:
        schema_path: A .yaml file, or a directory whose *.yaml files are merged
        dialect: Dialect used when no document declares one
        default_namespace: Namespace for bare table names in references
        strict: Treat validation warnings as errors

    Raises:
        SchemaLoadError: If files are missing, malformed or inconsistent
        RelmodelError: Any definition or validation error from the builder
    """
    if schema_path.is_file():
        documents = [_read_yaml(schema_path)]
    elif schema_path.is_dir():
        documents = [_read_yaml(p) for p in sorted(schema_path.glob("*.yaml"))]
    else:
        raise SchemaLoadError(f"Schema path does not exist: {schema_path}")
    return _load_documents(documents, dialect, default_namespace, strict)


def load_schema_dict(
    data: dict[str, Any],
    dialect: Optional[Dialect] = None,
    default_namespace: str = DEFAULT_NAMESPACE,
    strict: bool = False,
) -> Schema:
    """Load and finalize a schema from an already-parsed document."""
    return _load_documents([data], dialect, default_namespace, strict)


def _read_yaml(file_path: Path) -> dict[str, Any]:
    try:
        with open(file_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise SchemaLoadError(f"Invalid YAML in {file_path}: {e}") from e
    if data is None:
        raise SchemaLoadError(f"Empty YAML file: {file_path}")
    if not isinstance(data, dict):
        raise SchemaLoadError(f"Expected a mapping at top level of {file_path}")
    return data


def _check_fields(data: Any, valid: set[str], what: str) -> None:
    if not isinstance(data, dict):
        raise SchemaLoadError(f"Expected a mapping for {what}, got {type(data).__name__}")
    unknown_fields = set(data.keys()) - valid
    if unknown_fields:
        raise SchemaLoadError(
            f"Unknown field(s) in {what}: {', '.join(sorted(unknown_fields))}"
        )


def _resolve_dialect(
    documents: list[dict[str, Any]], fallback: Optional[Dialect]
) -> Dialect:
    declared = {doc["dialect"] for doc in documents if doc.get("dialect")}
    if len(declared) > 1:
        raise SchemaLoadError(
            f"Conflicting dialects across schema files: {', '.join(sorted(declared))}"
        )
    if not declared:
        return fallback or Dialect.POSTGRESQL
    value = declared.pop()
    try:
        return Dialect(value)
    except ValueError:
        raise SchemaLoadError(f"Unknown dialect: {value}") from None


def _load_documents(
    documents: list[dict[str, Any]],
    dialect: Optional[Dialect],
    default_namespace: str,
    strict: bool,
) -> Schema:
    """Define all tables first, then foreign keys, then relationships.

    Running the phases across every document lets any file reference a table
    from any other file, in either direction.
    """
    for doc in documents:
        _check_fields(doc, VALID_DOCUMENT_FIELDS, "schema document")

    builder = SchemaBuilder(_resolve_dialect(documents, dialect))
    pending_fks: list[tuple[TableRef, dict[str, Any]]] = []
    pending_rels: list[tuple[str, dict[str, Any]]] = []

    for doc in documents:
        doc_default = doc.get("default_namespace", default_namespace)
        for ns_data in doc.get("namespaces") or []:
            _check_fields(ns_data, VALID_NAMESPACE_FIELDS, "namespace definition")
            ns_name = ns_data.get("name")
            if not ns_name:
                raise SchemaLoadError("Namespace definition missing 'name' field")
            if not builder.has_namespace(ns_name):
                builder.define_namespace(ns_name)
            for table_data in ns_data.get("tables") or []:
                ref, fk_list = _define_table(builder, ns_name, table_data)
                pending_fks.extend((ref, fk) for fk in fk_list)
        pending_rels.extend(
            (doc_default, rel) for rel in doc.get("relationships") or []
        )

    for ref, fk_data in pending_fks:
        _define_foreign_key(builder, ref, fk_data)

    for doc_default, rel_data in pending_rels:
        _define_relationship(builder, doc_default, rel_data)

    logger.debug(
        f"Loaded {len(documents)} document(s), {len(pending_fks)} foreign key(s), "
        f"{len(pending_rels)} relationship(s)"
    )
    return builder.finalize(strict=strict)


def _define_table(
    builder: SchemaBuilder, namespace: str, data: dict[str, Any]
) -> tuple[TableRef, list[dict[str, Any]]]:
    _check_fields(data, VALID_TABLE_FIELDS, "table definition")

    name = data.get("table")
    if not name:
        raise SchemaLoadError("Table definition missing 'table' field")

    columns = [_parse_column(col) for col in data.get("columns") or []]
    if not columns:
        raise SchemaLoadError(f"Table '{namespace}.{name}' has no columns")

    owner = f"table '{namespace}.{name}'"
    uc_list = data.get("unique_constraints") or []
    cc_list = data.get("check_constraints") or []
    idx_list = data.get("indexes") or []
    for uc in uc_list:
        _check_fields(uc, VALID_UNIQUE_CONSTRAINT_FIELDS, f"unique constraint on {owner}")
    for cc in cc_list:
        _check_fields(cc, VALID_CHECK_CONSTRAINT_FIELDS, f"check constraint on {owner}")
    for idx in idx_list:
        _check_fields(idx, VALID_INDEX_FIELDS, f"index on {owner}")

    try:
        primary_key = _parse_primary_key(data.get("primary_key"))
        unique_constraints = [
            UniqueConstraint(name=uc["name"], columns=uc["columns"]) for uc in uc_list
        ]
        check_constraints = [
            CheckConstraint(
                name=cc["name"],
                expression=cc["expression"],
                columns=cc.get("columns", ()),
            )
            for cc in cc_list
        ]
        indexes = [
            Index(
                name=idx["name"],
                columns=idx["columns"],
                unique=idx.get("unique", False),
                where=idx.get("where"),
            )
            for idx in idx_list
        ]
    except KeyError as e:
        raise SchemaLoadError(
            f"Table '{namespace}.{name}': constraint or index missing {e} field"
        ) from e
    except ValueError as e:
        raise SchemaLoadError(f"Table '{namespace}.{name}': {e}") from e

    try:
        ref = builder.define_table(
            namespace,
            name,
            columns,
            primary_key=primary_key,
            unique_constraints=unique_constraints,
            check_constraints=check_constraints,
            indexes=indexes,
            allow_reserved=data.get("allow_reserved", False),
            comment=data.get("comment"),
        )
    except ValueError as e:
        raise SchemaLoadError(f"Table '{namespace}.{name}': {e}") from e
    return ref, list(data.get("foreign_keys") or [])


def _parse_primary_key(data: Any) -> Optional[PrimaryKey]:
    """Accept [col, ...] or {name: ..., columns: [...]}."""
    if data is None:
        return None
    if isinstance(data, list):
        return PrimaryKey(columns=tuple(data))
    if isinstance(data, dict):
        _check_fields(data, {"name", "columns"}, "primary key")
        return PrimaryKey(columns=tuple(data.get("columns") or []), name=data.get("name"))
    raise SchemaLoadError(f"Primary key must be a list or mapping, got {data!r}")


def _parse_column(data: dict[str, Any]) -> Column:
    """Parse a column definition from a dictionary."""
    _check_fields(data, VALID_COLUMN_FIELDS, "column definition")

    name = data.get("name")
    if not name:
        raise SchemaLoadError("Column definition missing 'name' field")

    col_type = data.get("type")
    if not col_type:
        raise SchemaLoadError(f"Column '{name}' missing 'type' field")

    try:
        return Column(
            name=name,
            type=TypeRules.parse(str(col_type)),
            nullable=data.get("nullable", True),
            default=_parse_default(data.get("default")),
            on_update=_parse_default(data.get("on_update")),
            unique=data.get("unique", False),
            allow_reserved=data.get("allow_reserved", False),
            comment=data.get("comment"),
        )
    except ValueError as e:
        raise SchemaLoadError(f"Column '{name}': {e}") from e


def _parse_default(value: Any) -> Optional[ColumnDefault]:
    """Parse a default specifier.

    Scalars are literals, except 'now' / 'current_timestamp'. Mappings select
    the other kinds: {random_uuid: true}, {sql: "..."}, {literal: ...}.
    """
    if value is None:
        return None
    if isinstance(value, dict):
        if len(value) != 1:
            raise ValueError(f"Default mapping must have exactly one key: {value!r}")
        ((key, inner),) = value.items()
        if key == "literal":
            return ColumnDefault.literal(inner)
        if key == "sql":
            return ColumnDefault.sql(inner)
        if key == "random_uuid" and inner is True:
            return ColumnDefault.random_uuid()
        if key == "now" and inner is True:
            return ColumnDefault.now()
        raise ValueError(f"Unknown default specifier: {value!r}")
    if isinstance(value, str) and value.strip().lower() in CURRENT_TIMESTAMP_ALIASES:
        return ColumnDefault.now()
    return ColumnDefault.literal(value)


def _define_foreign_key(
    builder: SchemaBuilder, source: TableRef, data: dict[str, Any]
) -> None:
    _check_fields(data, VALID_FOREIGN_KEY_FIELDS, f"foreign key on '{source}'")
    ref_data = data.get("references")
    _check_fields(ref_data, VALID_REFERENCE_FIELDS, f"foreign key reference on '{source}'")

    target_name = ref_data.get("table")
    if not target_name:
        raise SchemaLoadError(f"Foreign key on '{source}' missing references.table")
    if ref_data.get("namespace"):
        target = TableRef(ref_data["namespace"], target_name)
    else:
        target = TableRef.parse(target_name, source.namespace)

    try:
        on_delete = ReferentialAction.parse(data.get("on_delete", "no action"))
        on_update = ReferentialAction.parse(data.get("on_update", "no action"))
    except ValueError as e:
        raise SchemaLoadError(f"Foreign key on '{source}': {e}") from e

    builder.define_foreign_key(
        source,
        data.get("columns") or [],
        target,
        ref_data.get("columns") or [],
        on_delete=on_delete,
        on_update=on_update,
        name=data.get("name"),
    )


def _define_relationship(
    builder: SchemaBuilder, default_namespace: str, data: dict[str, Any]
) -> None:
    _check_fields(data, VALID_RELATIONSHIP_FIELDS, "relationship definition")
    for key in ("name", "from", "to", "cardinality"):
        if not data.get(key):
            raise SchemaLoadError(f"Relationship definition missing '{key}' field")

    try:
        cardinality = Cardinality.parse(data["cardinality"])
    except ValueError as e:
        raise SchemaLoadError(f"Relationship '{data['name']}': {e}") from e

    builder.define_relationship(
        TableRef.parse(data["from"], default_namespace),
        TableRef.parse(data["to"], default_namespace),
        cardinality,
        data["name"],
        relation_name=data.get("relation_name"),
        fields=data.get("fields") or [],
        references=data.get("references") or [],
    )
