"""Assemble a validated, immutable Schema from declarative definitions."""

import dataclasses
import logging
from collections import Counter
from typing import Optional, Sequence, Union

from relmodel.exceptions import (
    AmbiguousRelationshipError,
    DuplicateColumnNameError,
    DuplicateNamespaceError,
    DuplicateRelationshipNameError,
    DuplicateTableNameError,
    ForeignKeyLengthMismatchError,
    ForeignKeySetNullOnNonNullableError,
    ForeignKeyTargetNotUniqueError,
    SchemaValidationError,
    UnknownColumnReferenceError,
    UnknownTableReferenceError,
)
from relmodel.schema.models import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Namespace,
    PrimaryKey,
    Relationship,
    Schema,
    Table,
    TableRef,
    UniqueConstraint,
)
from relmodel.schema.validator import SchemaValidator
from relmodel.types import (
    Cardinality,
    ColumnName,
    Dialect,
    NamespaceName,
    ReferentialAction,
    Severity,
    TableName,
)

logger = logging.getLogger(__name__)

ActionLike = Union[ReferentialAction, str]


def _action(value: ActionLike) -> ReferentialAction:
    if isinstance(value, ReferentialAction):
        return value
    return ReferentialAction.parse(value)


class SchemaBuilder:
    """Build a Schema one namespace, table, key and relationship at a time.

    Structural problems local to a single definition (duplicate names, unknown
    columns, mismatched key lengths) raise immediately. Problems that need the
    whole graph (relation-name pairing, self-reference tagging, redundant
    unique scopes, foreign keys to tables defined later) are collected by
    finalize() and reported together.

    Tables are addressed by TableRef, so a foreign key may point at a table
    that has not been defined yet; its target is checked at finalize().
    """

    def __init__(self, dialect: Dialect = Dialect.POSTGRESQL):
        self.dialect = dialect
        self._namespaces: dict[NamespaceName, dict[TableName, Table]] = {}
        self._relationships: list[Relationship] = []

    @classmethod
    def from_schema(cls, schema: Schema) -> "SchemaBuilder":
        """Start a new builder from a finalized schema.

        The schema itself is never modified; finalize() on the new builder
        produces a separate snapshot.
        """
        builder = cls(schema.dialect)
        for name, ns in schema.namespaces.items():
            builder._namespaces[name] = dict(ns.tables)
        builder._relationships = list(schema.relationships)
        return builder

    def define_namespace(self, name: NamespaceName) -> NamespaceName:
        """Register a namespace and return its name as a handle."""
        if name in self._namespaces:
            raise DuplicateNamespaceError(
                f"Namespace '{name}' already defined", namespace=name
            )
        self._namespaces[name] = {}
        logger.debug(f"Defined namespace {name}")
        return name

    def has_namespace(self, name: NamespaceName) -> bool:
        return name in self._namespaces

    def get_table(self, ref: TableRef) -> Optional[Table]:
        """Get a table defined so far."""
        return self._namespaces.get(ref.namespace, {}).get(ref.name)

    def define_table(
        self,
        namespace: NamespaceName,
        name: TableName,
        columns: Sequence[Column],
        primary_key: Union[PrimaryKey, Sequence[ColumnName], None] = None,
        unique_constraints: Sequence[UniqueConstraint] = (),
        check_constraints: Sequence[CheckConstraint] = (),
        indexes: Sequence[Index] = (),
        allow_reserved: bool = False,
        comment: Optional[str] = None,
    ) -> TableRef:
        """Define a table in a namespace.

        Raises:
            UnknownTableReferenceError: If the namespace is not defined
            DuplicateTableNameError: If the namespace already has this table
            DuplicateColumnNameError: If a column name repeats in the table,
                the primary key, or a unique constraint
            UnknownColumnReferenceError: If a key, constraint or index names a
                column not in columns
            ValueError: If a check or partial-index predicate is not valid SQL
                in the builder's dialect
        """
        tables = self._namespaces.get(namespace)
        if tables is None:
            raise UnknownTableReferenceError(
                f"Namespace '{namespace}' is not defined", namespace=namespace
            )
        ref = TableRef(namespace, name)
        if name in tables:
            raise DuplicateTableNameError(
                f"Table '{ref}' already defined", namespace=namespace, table=name
            )

        if primary_key is not None and not isinstance(primary_key, PrimaryKey):
            primary_key = PrimaryKey(columns=tuple(primary_key))

        table = Table(
            name=name,
            namespace=namespace,
            columns=tuple(columns),
            primary_key=primary_key,
            unique_constraints=tuple(unique_constraints),
            check_constraints=tuple(check_constraints),
            indexes=tuple(indexes),
            allow_reserved=allow_reserved,
            comment=comment,
        )
        self._check_table_structure(table)

        tables[name] = table
        logger.debug(f"Defined table {ref} ({len(table.columns)} columns)")
        return ref

    def _check_table_structure(self, table: Table) -> None:
        groups: list[tuple[str, Sequence[ColumnName]]] = [
            (f"table '{table.ref}'", table.column_names())
        ]
        if table.primary_key is not None:
            groups.append((f"primary key of '{table.ref}'", table.primary_key.columns))
        for uc in table.unique_constraints:
            groups.append((f"unique constraint '{uc.name}'", uc.columns))

        for where, names in groups:
            for column, count in Counter(names).items():
                if count > 1:
                    raise DuplicateColumnNameError(
                        f"Column '{column}' repeated in {where}",
                        namespace=table.namespace,
                        table=table.name,
                        column=column,
                    )

        known = set(table.column_names())
        for construct, column in table.column_references(self.dialect):
            if column not in known:
                raise UnknownColumnReferenceError(
                    f"{construct.capitalize()} on '{table.ref}' references "
                    f"unknown column '{column}'",
                    namespace=table.namespace,
                    table=table.name,
                    column=column,
                )

    def _require_table(self, ref: TableRef) -> Table:
        table = self.get_table(ref)
        if table is None:
            raise UnknownTableReferenceError(
                f"Table '{ref}' is not defined",
                namespace=ref.namespace,
                table=ref.name,
            )
        return table

    def define_foreign_key(
        self,
        source: TableRef,
        columns: Sequence[ColumnName],
        target: TableRef,
        target_columns: Sequence[ColumnName],
        on_delete: ActionLike = ReferentialAction.NO_ACTION,
        on_update: ActionLike = ReferentialAction.NO_ACTION,
        name: Optional[str] = None,
    ) -> ForeignKey:
        """Attach a foreign key to the source table.

        Target columns are paired with source columns in order. The target
        column set must equal a primary key or unique constraint on target,
        regardless of order. If target is not defined yet the target checks
        run at finalize().

        Raises:
            UnknownTableReferenceError: If source is not defined
            ForeignKeyLengthMismatchError: If column lists differ in length
            UnknownColumnReferenceError: If a source (or known target) column
                does not exist
            ForeignKeySetNullOnNonNullableError: If SET NULL is declared on a
                non-nullable source column
            ForeignKeyTargetNotUniqueError: If target columns are not a unique key
        """
        table = self._require_table(source)
        fk = ForeignKey(
            columns=tuple(columns),
            target=target,
            target_columns=tuple(target_columns),
            on_delete=_action(on_delete),
            on_update=_action(on_update),
            name=name,
        )
        label = f"Foreign key {source}({', '.join(fk.columns)}) -> {target}"
        context = {"namespace": source.namespace, "table": source.name}

        if not fk.columns or len(fk.columns) != len(fk.target_columns):
            raise ForeignKeyLengthMismatchError(
                f"{label}: {len(fk.columns)} source column(s) but "
                f"{len(fk.target_columns)} target column(s)",
                **context,
            )

        for column in fk.columns:
            if table.get_column(column) is None:
                raise UnknownColumnReferenceError(
                    f"{label}: source column '{column}' not found",
                    column=column,
                    **context,
                )

        if ReferentialAction.SET_NULL in (fk.on_delete, fk.on_update):
            for column in fk.columns:
                if not table.is_nullable(column):
                    raise ForeignKeySetNullOnNonNullableError(
                        f"{label}: SET NULL on non-nullable column '{column}'",
                        column=column,
                        **context,
                    )

        # self-references see the table as it is before this key is attached
        target_table = self.get_table(target)
        if target_table is None:
            logger.debug(f"{label}: target not defined yet, checking at finalize")
        else:
            for column in fk.target_columns:
                if target_table.get_column(column) is None:
                    raise UnknownColumnReferenceError(
                        f"{label}: target column '{column}' not found",
                        column=column,
                        **context,
                    )
            if not target_table.is_unique_key(fk.target_columns):
                raise ForeignKeyTargetNotUniqueError(
                    f"{label}: ({', '.join(fk.target_columns)}) is not a primary "
                    f"key or unique constraint on '{target}'",
                    **context,
                )

        self._namespaces[source.namespace][source.name] = dataclasses.replace(
            table, foreign_keys=table.foreign_keys + (fk,)
        )
        logger.debug(f"Defined {label}")
        return fk

    def define_relationship(
        self,
        source: TableRef,
        target: TableRef,
        cardinality: Union[Cardinality, str],
        name: str,
        relation_name: Optional[str] = None,
        fields: Sequence[ColumnName] = (),
        references: Sequence[ColumnName] = (),
    ) -> Relationship:
        """Declare an ORM-level relationship from source to target.

        Relation-name pairing is checked at finalize(), once both sides exist.

        Raises:
            UnknownTableReferenceError: If either table is not defined
            ForeignKeyLengthMismatchError: If fields and references differ in length
            DuplicateRelationshipNameError: If source already has a
                relationship with this name
            AmbiguousRelationshipError: If an untagged relationship from
                source to target already exists and this one is untagged too
        """
        if not isinstance(cardinality, Cardinality):
            cardinality = Cardinality.parse(cardinality)
        self._require_table(source)
        self._require_table(target)

        rel = Relationship(
            name=name,
            source=source,
            target=target,
            cardinality=cardinality,
            relation_name=relation_name,
            fields=tuple(fields),
            references=tuple(references),
        )
        context = {"namespace": source.namespace, "table": source.name}

        if len(rel.fields) != len(rel.references):
            raise ForeignKeyLengthMismatchError(
                f"Relationship {rel}: {len(rel.fields)} field(s) but "
                f"{len(rel.references)} reference(s)",
                **context,
            )

        for existing in self._relationships:
            if existing.source != source:
                continue
            if existing.name == name:
                raise DuplicateRelationshipNameError(
                    f"Relationship '{name}' already defined on '{source}'", **context
                )
            if (
                relation_name is None
                and existing.relation_name is None
                and existing.target == target
            ):
                raise AmbiguousRelationshipError(
                    f"Relationship {rel} is ambiguous with {existing}; "
                    "tag both with relation names",
                    **context,
                )

        self._relationships.append(rel)
        logger.debug(f"Defined relationship {rel}")
        return rel

    def finalize(self, strict: bool = False) -> Schema:
        """Validate the whole schema and return an immutable snapshot.

        Args:
            strict: Treat warnings as errors

        Returns:
            The validated Schema; its warnings field holds warning-level issues

        Raises:
            SchemaValidationError: Listing every issue found, if any is an error
        """
        draft = Schema(
            dialect=self.dialect,
            namespaces={
                name: Namespace(name=name, tables=tables)
                for name, tables in self._namespaces.items()
            },
            relationships=tuple(self._relationships),
        )

        result = SchemaValidator(self.dialect).validate(draft)
        issues = result.issues
        if strict:
            issues = [dataclasses.replace(i, severity=Severity.ERROR) for i in issues]

        if any(i.severity is Severity.ERROR for i in issues):
            logger.debug(f"Schema validation found {len(issues)} issue(s)")
            raise SchemaValidationError(issues)

        for issue in issues:
            logger.warning(str(issue))

        schema = dataclasses.replace(draft, warnings=tuple(issues))
        logger.info(
            f"Finalized schema: {len(schema.namespaces)} namespace(s), "
            f"{len(schema.tables())} table(s), "
            f"{len(schema.relationships)} relationship(s)"
        )
        return schema
