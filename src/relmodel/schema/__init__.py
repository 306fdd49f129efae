"""Schema definition, validation and YAML round-trip modules."""

from relmodel.schema.builder import SchemaBuilder
from relmodel.schema.models import (
    CheckConstraint,
    Column,
    ColumnDefault,
    ColumnType,
    ForeignKey,
    Index,
    Namespace,
    PrimaryKey,
    Relationship,
    Schema,
    Table,
    TableRef,
    TypeRules,
    UniqueConstraint,
)
from relmodel.schema.validator import (
    SchemaValidator,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    "CheckConstraint",
    "Column",
    "ColumnDefault",
    "ColumnType",
    "ForeignKey",
    "Index",
    "Namespace",
    "PrimaryKey",
    "Relationship",
    "Schema",
    "SchemaBuilder",
    "SchemaValidator",
    "Table",
    "TableRef",
    "TypeRules",
    "UniqueConstraint",
    "ValidationIssue",
    "ValidationResult",
]
