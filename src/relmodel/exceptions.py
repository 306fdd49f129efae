"""Exception classes for relmodel."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar, Optional

from relmodel.types import IssueKind, Severity

if TYPE_CHECKING:
    from relmodel.schema.validator import ValidationIssue

__all__ = [
    "RelmodelError",
    "SchemaDefinitionError",
    "DuplicateNamespaceError",
    "DuplicateTableNameError",
    "DuplicateColumnNameError",
    "DuplicateRelationshipNameError",
    "UnknownTableReferenceError",
    "UnknownColumnReferenceError",
    "ForeignKeyLengthMismatchError",
    "ForeignKeyTargetNotUniqueError",
    "ForeignKeySetNullOnNonNullableError",
    "AmbiguousRelationshipError",
    "SchemaValidationError",
    "SchemaLoadError",
    "ConfigError",
]


class RelmodelError(Exception):
    """Base exception for relmodel."""


class SchemaDefinitionError(RelmodelError):
    """A structural problem detected while a single piece of the schema is defined.

    Subclasses carry the issue kind they report so callers can branch on
    ``error.kind`` the same way they branch on ``ValidationIssue.kind``.
    """

    kind: ClassVar[IssueKind]

    def __init__(
        self,
        message: str,
        *,
        namespace: Optional[str] = None,
        table: Optional[str] = None,
        column: Optional[str] = None,
    ):
        self.namespace = namespace
        self.table = table
        self.column = column
        super().__init__(message)


class DuplicateNamespaceError(SchemaDefinitionError):
    """Namespace name already defined in the schema."""

    kind = IssueKind.DUPLICATE_NAMESPACE


class DuplicateTableNameError(SchemaDefinitionError):
    """Table name already defined in the namespace."""

    kind = IssueKind.DUPLICATE_TABLE_NAME


class DuplicateColumnNameError(SchemaDefinitionError):
    """Column name repeated within a table, key or constraint."""

    kind = IssueKind.DUPLICATE_COLUMN_NAME


class DuplicateRelationshipNameError(SchemaDefinitionError):
    """Relationship property name already used on the source table."""

    kind = IssueKind.DUPLICATE_RELATIONSHIP_NAME


class UnknownTableReferenceError(SchemaDefinitionError):
    """Reference to a namespace or table that is not defined."""

    kind = IssueKind.UNKNOWN_TABLE_REFERENCE


class UnknownColumnReferenceError(SchemaDefinitionError):
    """Key, constraint, index or foreign key names a column the table lacks."""

    kind = IssueKind.UNKNOWN_COLUMN_REFERENCE


class ForeignKeyLengthMismatchError(SchemaDefinitionError):
    """Source and target column lists have different lengths."""

    kind = IssueKind.FOREIGN_KEY_LENGTH_MISMATCH


class ForeignKeyTargetNotUniqueError(SchemaDefinitionError):
    """Foreign key target columns are not a primary key or unique constraint."""

    kind = IssueKind.FOREIGN_KEY_TARGET_NOT_UNIQUE


class ForeignKeySetNullOnNonNullableError(SchemaDefinitionError):
    """SET NULL action declared on a foreign key with a NOT NULL column."""

    kind = IssueKind.FOREIGN_KEY_SET_NULL_ON_NON_NULLABLE


class AmbiguousRelationshipError(SchemaDefinitionError):
    """A second untagged relationship was declared between the same tables."""

    kind = IssueKind.AMBIGUOUS_RELATIONSHIP


class SchemaValidationError(RelmodelError):
    """Aggregate of every issue found while finalizing a schema."""

    def __init__(self, issues: list["ValidationIssue"]):
        self.issues = list(issues)
        lines = [f"Schema validation failed with {len(self.errors)} error(s):"]
        for issue in self.issues:
            lines.append(f"  - {issue}")
        super().__init__("\n".join(lines))

    @property
    def errors(self) -> list["ValidationIssue"]:
        return [i for i in self.issues if i.severity is Severity.ERROR]

    @property
    def warnings(self) -> list["ValidationIssue"]:
        return [i for i in self.issues if i.severity is Severity.WARNING]

    def kinds(self) -> set[IssueKind]:
        """Set of issue kinds present in this error."""
        return {i.kind for i in self.issues}


class SchemaLoadError(RelmodelError):
    """Error loading schema definition files."""


class ConfigError(RelmodelError):
    """Error in configuration."""
