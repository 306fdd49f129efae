"""Schema validation: whole-schema consistency checks run by finalize()."""

from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Iterator, Optional

from relmodel.schema.models import ForeignKey, Relationship, Schema, Table, TableRef
from relmodel.schema.reserved import is_reserved, max_identifier_length
from relmodel.types import Dialect, IssueKind, ReferentialAction, Severity


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found while validating a schema."""

    kind: IssueKind
    message: str
    severity: Severity = Severity.ERROR
    namespace: Optional[str] = None
    table: Optional[str] = None
    column: Optional[str] = None

    def __str__(self) -> str:
        prefix = "warning: " if self.severity is Severity.WARNING else ""
        return f"{prefix}[{self.kind.value}] {self.message}"


@dataclass
class ValidationResult:
    """Result of schema validation.

    ok is True iff no issue has error severity. Warnings alone do not fail
    validation.
    """

    ok: bool
    issues: list[ValidationIssue]

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is Severity.WARNING]


def _issue(
    kind: IssueKind,
    message: str,
    table: Optional[Table] = None,
    column: Optional[str] = None,
    severity: Severity = Severity.ERROR,
) -> ValidationIssue:
    return ValidationIssue(
        kind=kind,
        message=message,
        severity=severity,
        namespace=table.namespace if table is not None else None,
        table=table.name if table is not None else None,
        column=column,
    )


class SchemaValidator:
    """Check global consistency of a schema that cannot be verified incrementally.

    Every check runs and every issue is collected; nothing stops at the first
    problem. Tables are resolved by (namespace, name), so identically named
    tables in different namespaces never collide.
    """

    def __init__(self, dialect: Dialect = Dialect.POSTGRESQL):
        self.dialect = dialect

    def validate(self, schema: Schema) -> ValidationResult:
        """Validate a draft schema and return every issue found.

        Args:
            schema: Schema assembled by the builder, not yet handed to callers

        Returns:
            ValidationResult with ok=False if any error-severity issue exists
        """
        issues: list[ValidationIssue] = []

        for ns in schema.namespaces.values():
            issues.extend(self._check_length(ns.name, f"namespace '{ns.name}'"))

        for table in schema.tables():
            issues.extend(self._check_identifiers(table))
            issues.extend(self._check_columns(table))
            issues.extend(self._check_redundant_unique(table))
            for fk in table.foreign_keys:
                issues.extend(self._check_foreign_key(schema, table, fk))

        issues.extend(self._check_relationships(schema))

        ok = not any(i.severity is Severity.ERROR for i in issues)
        return ValidationResult(ok=ok, issues=issues)

    def _check_length(
        self, name: str, what: str, table: Optional[Table] = None
    ) -> Iterator[ValidationIssue]:
        limit = max_identifier_length(self.dialect)
        if len(name) > limit:
            yield _issue(
                IssueKind.IDENTIFIER_TOO_LONG,
                f"{what.capitalize()} is {len(name)} characters; "
                f"{self.dialect.value} allows {limit}",
                table,
            )

    def _check_identifiers(self, table: Table) -> Iterator[ValidationIssue]:
        if is_reserved(table.name, self.dialect) and not table.allow_reserved:
            yield _issue(
                IssueKind.RESERVED_IDENTIFIER,
                f"Table name '{table.name}' is a reserved word in "
                f"{self.dialect.value}; mark it allow_reserved if intended",
                table,
            )
        yield from self._check_length(table.name, f"table '{table.ref}'", table)

        for col in table.columns:
            if is_reserved(col.name, self.dialect) and not col.allow_reserved:
                yield _issue(
                    IssueKind.RESERVED_IDENTIFIER,
                    f"Column '{table.ref}.{col.name}' is a reserved word in "
                    f"{self.dialect.value}; mark it allow_reserved if intended",
                    table,
                    col.name,
                )
            yield from self._check_length(
                col.name, f"column '{table.ref}.{col.name}'", table
            )

        names = [uc.name for uc in table.unique_constraints]
        names += [cc.name for cc in table.check_constraints]
        names += [idx.name for idx in table.indexes]
        if table.primary_key is not None and table.primary_key.name:
            names.append(table.primary_key.name)
        for name in names:
            yield from self._check_length(name, f"constraint '{name}'", table)

    def _check_columns(self, table: Table) -> Iterator[ValidationIssue]:
        counts = Counter(table.column_names())
        for name, count in counts.items():
            if count > 1:
                yield _issue(
                    IssueKind.DUPLICATE_COLUMN_NAME,
                    f"Column '{name}' defined {count} times in table '{table.ref}'",
                    table,
                    name,
                )

        if table.primary_key is not None:
            for name, count in Counter(table.primary_key.columns).items():
                if count > 1:
                    yield _issue(
                        IssueKind.DUPLICATE_COLUMN_NAME,
                        f"Column '{name}' repeated in primary key of '{table.ref}'",
                        table,
                        name,
                    )

        for construct, name in table.column_references(self.dialect):
            if name not in counts:
                yield _issue(
                    IssueKind.UNKNOWN_COLUMN_REFERENCE,
                    f"{construct.capitalize()} on '{table.ref}' references "
                    f"unknown column '{name}'",
                    table,
                    name,
                )

    def _check_redundant_unique(self, table: Table) -> Iterator[ValidationIssue]:
        by_scope: dict[frozenset[str], list[str]] = defaultdict(list)
        for label, scope in table.unique_keys():
            by_scope[scope].append(label)
        for scope, labels in by_scope.items():
            if len(labels) > 1:
                yield _issue(
                    IssueKind.REDUNDANT_UNIQUE_CONSTRAINT,
                    f"Table '{table.ref}' has {len(labels)} unique scopes on "
                    f"({', '.join(sorted(scope))}): {', '.join(labels)}",
                    table,
                    severity=Severity.WARNING,
                )

    def _check_foreign_key(
        self, schema: Schema, table: Table, fk: ForeignKey
    ) -> Iterator[ValidationIssue]:
        label = f"Foreign key {table.ref}({', '.join(fk.columns)}) -> {fk.target}"
        if len(fk.columns) != len(fk.target_columns):
            yield _issue(
                IssueKind.FOREIGN_KEY_LENGTH_MISMATCH,
                f"{label}: {len(fk.columns)} source column(s) but "
                f"{len(fk.target_columns)} target column(s)",
                table,
            )
            return

        for action in (fk.on_delete, fk.on_update):
            if action is not ReferentialAction.SET_NULL:
                continue
            not_null = [
                name
                for name in fk.columns
                if table.get_column(name) is not None and not table.is_nullable(name)
            ]
            if not_null:
                yield _issue(
                    IssueKind.FOREIGN_KEY_SET_NULL_ON_NON_NULLABLE,
                    f"{label}: SET NULL on non-nullable column(s) "
                    f"{', '.join(not_null)}",
                    table,
                    not_null[0],
                )
                break

        target = schema.get_table_ref(fk.target)
        if target is None:
            yield _issue(
                IssueKind.UNKNOWN_TABLE_REFERENCE,
                f"{label}: target table '{fk.target}' does not exist",
                table,
            )
            return

        missing = [c for c in fk.target_columns if target.get_column(c) is None]
        if missing:
            yield _issue(
                IssueKind.UNKNOWN_COLUMN_REFERENCE,
                f"{label}: target column(s) {', '.join(missing)} not found",
                table,
                missing[0],
            )
            return

        if not target.is_unique_key(fk.target_columns):
            yield _issue(
                IssueKind.FOREIGN_KEY_TARGET_NOT_UNIQUE,
                f"{label}: ({', '.join(fk.target_columns)}) is not a primary key "
                f"or unique constraint on '{fk.target}'",
                table,
            )

    def _check_relationship_refs(
        self, schema: Schema, rel: Relationship
    ) -> Iterator[ValidationIssue]:
        source = schema.get_table_ref(rel.source)
        target = schema.get_table_ref(rel.target)
        for ref, found in ((rel.source, source), (rel.target, target)):
            if found is None:
                yield _issue(
                    IssueKind.UNKNOWN_TABLE_REFERENCE,
                    f"Relationship {rel}: table '{ref}' does not exist",
                )
        if source is None or target is None:
            return

        if len(rel.fields) != len(rel.references):
            yield _issue(
                IssueKind.FOREIGN_KEY_LENGTH_MISMATCH,
                f"Relationship {rel}: {len(rel.fields)} field(s) but "
                f"{len(rel.references)} reference(s)",
                source,
            )
            return

        missing = [c for c in rel.fields if source.get_column(c) is None]
        missing += [c for c in rel.references if target.get_column(c) is None]
        for name in missing:
            yield _issue(
                IssueKind.UNKNOWN_COLUMN_REFERENCE,
                f"Relationship {rel} references unknown column '{name}'",
                source,
                name,
            )
        if missing or not rel.references:
            return

        if rel.cardinality.owns_columns and not target.is_unique_key(rel.references):
            yield _issue(
                IssueKind.FOREIGN_KEY_TARGET_NOT_UNIQUE,
                f"Relationship {rel}: ({', '.join(rel.references)}) is not a "
                f"unique key on '{rel.target}'",
                source,
            )

    def _check_relationships(self, schema: Schema) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        untagged: dict[tuple[TableRef, TableRef], list[Relationship]] = defaultdict(
            list
        )
        tagged: dict[tuple[frozenset[TableRef], str], list[Relationship]] = (
            defaultdict(list)
        )

        for rel in schema.relationships:
            issues.extend(self._check_relationship_refs(schema, rel))
            if rel.relation_name is None:
                if rel.is_self_referential:
                    issues.append(
                        _issue(
                            IssueKind.SELF_REFERENCE_REQUIRES_RELATION_NAME,
                            f"Self-referential relationship {rel} needs a relation name",
                            schema.get_table_ref(rel.source),
                        )
                    )
                    continue
                untagged[(rel.source, rel.target)].append(rel)
            else:
                pair = frozenset((rel.source, rel.target))
                tagged[(pair, rel.relation_name)].append(rel)

        for (source, target), rels in untagged.items():
            if len(rels) > 1:
                names = ", ".join(r.name for r in rels)
                issues.append(
                    _issue(
                        IssueKind.AMBIGUOUS_RELATIONSHIP,
                        f"{len(rels)} untagged relationships from '{source}' to "
                        f"'{target}' ({names}); add relation names",
                        schema.get_table_ref(source),
                    )
                )

        paired: set[tuple[frozenset[TableRef], str]] = set()
        for key, rels in tagged.items():
            pair, tag = key
            if len(pair) == 1:
                # one side holds the columns, the other is its inverse
                ok = (
                    len(rels) == 2
                    and rels[0].cardinality.inverse is rels[1].cardinality
                )
            else:
                directions = Counter(r.source for r in rels)
                ok = len(directions) == 2 and set(directions.values()) == {1}
            if ok:
                paired.add(key)
                continue
            names = ", ".join(str(r) for r in rels)
            issues.append(
                _issue(
                    IssueKind.UNPAIRED_RELATION_NAME,
                    f"Relation name '{tag}' needs exactly one relationship on each "
                    f"side; found {len(rels)}: {names}",
                    schema.get_table_ref(rels[0].source),
                )
            )

        for table in schema.tables():
            for fk in self._untagged_self_references(table, tagged, paired):
                issues.append(
                    _issue(
                        IssueKind.SELF_REFERENCE_REQUIRES_RELATION_NAME,
                        f"Self-referencing foreign key on '{table.ref}' "
                        f"({', '.join(fk.columns)}) needs a tagged pair of "
                        "relationships for both directions",
                        table,
                    )
                )

        return issues

    @staticmethod
    def _untagged_self_references(
        table: Table,
        tagged: dict[tuple[frozenset[TableRef], str], list[Relationship]],
        paired: set[tuple[frozenset[TableRef], str]],
    ) -> list[ForeignKey]:
        """Self-referencing foreign keys with no paired relation name of their own.

        A tag whose relationships declare fields claims the foreign key on
        those columns. A tag without fields covers one foreign key not
        claimed otherwise.
        """
        self_pair = frozenset((table.ref,))
        claimed: set[frozenset[str]] = set()
        spare = 0
        for key, rels in tagged.items():
            if key[0] != self_pair or key not in paired:
                continue
            fields = [frozenset(r.fields) for r in rels if r.fields]
            if fields:
                claimed.update(fields)
            else:
                spare += 1

        missing: list[ForeignKey] = []
        for fk in table.foreign_keys:
            if fk.target != table.ref or frozenset(fk.columns) in claimed:
                continue
            if spare:
                spare -= 1
                continue
            missing.append(fk)
        return missing
