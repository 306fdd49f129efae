"""Core type definitions for relmodel."""

from enum import Enum
from typing import TypeAlias

NamespaceName: TypeAlias = str
TableName: TypeAlias = str
ColumnName: TypeAlias = str
RelationName: TypeAlias = str

__all__ = [
    "NamespaceName",
    "TableName",
    "ColumnName",
    "RelationName",
    "Dialect",
    "TypeKind",
    "DefaultKind",
    "ReferentialAction",
    "Cardinality",
    "Severity",
    "IssueKind",
]


class Dialect(Enum):
    """SQL dialects whose naming rules the model checks against."""

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"


class TypeKind(Enum):
    """Logical column types."""

    SMALLINT = "smallint"
    INTEGER = "integer"
    BIGINT = "bigint"
    SERIAL = "serial"
    BIGSERIAL = "bigserial"
    DECIMAL = "decimal"
    TEXT = "text"
    VARCHAR = "varchar"
    CHAR = "char"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    DATE = "date"
    TIME = "time"
    INTERVAL = "interval"
    JSON = "json"
    JSONB = "jsonb"
    UUID = "uuid"
    INET = "inet"
    ARRAY = "array"


class DefaultKind(Enum):
    """How a column default value is produced."""

    LITERAL = "literal"
    CURRENT_TIMESTAMP = "current_timestamp"
    RANDOM_UUID = "random_uuid"
    SQL = "sql"


class ReferentialAction(Enum):
    """Foreign key ON DELETE / ON UPDATE actions."""

    CASCADE = "cascade"
    RESTRICT = "restrict"
    SET_NULL = "set null"
    SET_DEFAULT = "set default"
    NO_ACTION = "no action"

    @classmethod
    def parse(cls, value: str) -> "ReferentialAction":
        """Parse 'set null', 'set-null', 'SET_NULL' and similar spellings."""
        normalized = value.strip().lower().replace("_", " ").replace("-", " ")
        return cls(" ".join(normalized.split()))


class Cardinality(Enum):
    """Cardinality of a relationship, seen from its source table."""

    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_ONE = "many-to-one"

    @classmethod
    def parse(cls, value: str) -> "Cardinality":
        """Parse 'many-to-one', 'many_to_one', 'MANY_TO_ONE' and similar spellings."""
        return cls(value.strip().lower().replace("_", "-"))

    @property
    def owns_columns(self) -> bool:
        """True for the side of a relationship that holds the referencing columns."""
        return self is not Cardinality.ONE_TO_MANY

    @property
    def inverse(self) -> "Cardinality":
        """Cardinality of the same relationship seen from its target table."""
        if self is Cardinality.ONE_TO_MANY:
            return Cardinality.MANY_TO_ONE
        if self is Cardinality.MANY_TO_ONE:
            return Cardinality.ONE_TO_MANY
        return self


class Severity(Enum):
    """Severity of a validation issue."""

    ERROR = "error"
    WARNING = "warning"


class IssueKind(Enum):
    """Kinds of schema definition problems."""

    DUPLICATE_NAMESPACE = "DuplicateNamespace"
    DUPLICATE_TABLE_NAME = "DuplicateTableName"
    DUPLICATE_COLUMN_NAME = "DuplicateColumnName"
    DUPLICATE_RELATIONSHIP_NAME = "DuplicateRelationshipName"
    UNKNOWN_TABLE_REFERENCE = "UnknownTableReference"
    UNKNOWN_COLUMN_REFERENCE = "UnknownColumnReference"
    FOREIGN_KEY_LENGTH_MISMATCH = "ForeignKeyLengthMismatch"
    FOREIGN_KEY_TARGET_NOT_UNIQUE = "ForeignKeyTargetNotUnique"
    FOREIGN_KEY_SET_NULL_ON_NON_NULLABLE = "ForeignKeySetNullOnNonNullable"
    UNPAIRED_RELATION_NAME = "UnpairedRelationName"
    AMBIGUOUS_RELATIONSHIP = "AmbiguousRelationship"
    SELF_REFERENCE_REQUIRES_RELATION_NAME = "SelfReferenceRequiresRelationName"
    RESERVED_IDENTIFIER = "ReservedIdentifier"
    IDENTIFIER_TOO_LONG = "IdentifierTooLong"
    REDUNDANT_UNIQUE_CONSTRAINT = "RedundantUniqueConstraint"
