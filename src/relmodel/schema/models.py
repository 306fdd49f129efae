"""Schema representation classes.

Every class here is a frozen dataclass. Sequences are normalized to tuples and
mappings to read-only proxies in ``__post_init__`` so a finalized ``Schema`` can
be shared freely without copying.
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Sequence, cast

import sqlglot
from sqlglot import exp
from sqlglot.errors import ParseError, TokenError

from relmodel.types import (
    Cardinality,
    ColumnName,
    DefaultKind,
    Dialect,
    NamespaceName,
    ReferentialAction,
    RelationName,
    TableName,
    TypeKind,
)


def _freeze(obj: Any, attr: str) -> None:
    """Replace a list attribute on a frozen dataclass with a tuple."""
    value = getattr(obj, attr)
    if not isinstance(value, tuple):
        object.__setattr__(obj, attr, tuple(value))


INTEGER_KINDS = frozenset(
    {
        TypeKind.SMALLINT,
        TypeKind.INTEGER,
        TypeKind.BIGINT,
        TypeKind.SERIAL,
        TypeKind.BIGSERIAL,
    }
)
SERIAL_KINDS = frozenset({TypeKind.SERIAL, TypeKind.BIGSERIAL})
LENGTH_KINDS = frozenset({TypeKind.VARCHAR, TypeKind.CHAR})
TIMEZONE_KINDS = frozenset({TypeKind.TIMESTAMP, TypeKind.TIME})


@dataclass(frozen=True)
class ColumnType:
    """Logical column type with its parameters."""

    kind: TypeKind
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    with_timezone: bool = False
    element: Optional["ColumnType"] = None

    def __post_init__(self) -> None:
        kind = self.kind
        if kind is TypeKind.DECIMAL:
            if self.precision is None or self.scale is None:
                raise ValueError("decimal requires both precision and scale")
            if self.precision <= 0 or not 0 <= self.scale <= self.precision:
                raise ValueError(
                    f"invalid decimal precision/scale: ({self.precision}, {self.scale})"
                )
        elif self.precision is not None or self.scale is not None:
            raise ValueError(f"{kind.value} does not take precision or scale")

        if self.length is not None:
            if kind not in LENGTH_KINDS:
                raise ValueError(f"{kind.value} does not take a length")
            if self.length <= 0:
                raise ValueError(f"length must be positive, got {self.length}")

        if self.with_timezone and kind not in TIMEZONE_KINDS:
            raise ValueError(f"{kind.value} does not take a time zone")

        if kind is TypeKind.ARRAY:
            if self.element is None:
                raise ValueError("array requires an element type")
            if self.element.kind is TypeKind.ARRAY:
                raise ValueError("nested arrays are not supported")
        elif self.element is not None:
            raise ValueError(f"{kind.value} does not take an element type")

    @property
    def is_integer(self) -> bool:
        return self.kind in INTEGER_KINDS

    @property
    def is_serial(self) -> bool:
        return self.kind in SERIAL_KINDS

    @property
    def sql(self) -> str:
        """Canonical type string, accepted back by TypeRules.parse."""
        kind = self.kind
        if kind is TypeKind.ARRAY:
            element = cast(ColumnType, self.element)
            return f"{element.sql}[]"
        if kind is TypeKind.DECIMAL:
            return f"decimal({self.precision},{self.scale})"
        if kind in LENGTH_KINDS and self.length is not None:
            return f"{kind.value}({self.length})"
        if self.with_timezone:
            return f"{kind.value} with time zone"
        return kind.value

    def __str__(self) -> str:
        return self.sql


class TypeRules:
    """Parse type strings used in declarative schema files."""

    ALIASES: dict[str, tuple[TypeKind, bool]] = {
        "smallint": (TypeKind.SMALLINT, False),
        "int2": (TypeKind.SMALLINT, False),
        "int": (TypeKind.INTEGER, False),
        "int4": (TypeKind.INTEGER, False),
        "integer": (TypeKind.INTEGER, False),
        "bigint": (TypeKind.BIGINT, False),
        "int8": (TypeKind.BIGINT, False),
        "serial": (TypeKind.SERIAL, False),
        "serial4": (TypeKind.SERIAL, False),
        "bigserial": (TypeKind.BIGSERIAL, False),
        "serial8": (TypeKind.BIGSERIAL, False),
        "decimal": (TypeKind.DECIMAL, False),
        "numeric": (TypeKind.DECIMAL, False),
        "text": (TypeKind.TEXT, False),
        "varchar": (TypeKind.VARCHAR, False),
        "character varying": (TypeKind.VARCHAR, False),
        "char": (TypeKind.CHAR, False),
        "character": (TypeKind.CHAR, False),
        "bool": (TypeKind.BOOLEAN, False),
        "boolean": (TypeKind.BOOLEAN, False),
        "timestamp": (TypeKind.TIMESTAMP, False),
        "datetime": (TypeKind.TIMESTAMP, False),
        "timestamptz": (TypeKind.TIMESTAMP, True),
        "date": (TypeKind.DATE, False),
        "time": (TypeKind.TIME, False),
        "timetz": (TypeKind.TIME, True),
        "interval": (TypeKind.INTERVAL, False),
        "json": (TypeKind.JSON, False),
        "jsonb": (TypeKind.JSONB, False),
        "uuid": (TypeKind.UUID, False),
        "inet": (TypeKind.INET, False),
    }

    TYPE_PATTERN = re.compile(
        r"^(?P<base>[a-z][a-z0-9]*(?: varying)?)"
        r"\s*(?:\(\s*(?P<args>[^)]*)\))?"
        r"(?:\s+(?P<tz>with|without)\s+time\s+zone)?$"
    )

    @classmethod
    def parse(cls, text: str) -> ColumnType:
        """Parse a type string like 'varchar(255)', 'decimal(10, 2)' or 'text[]'.

        Raises:
            ValueError: If the type is unknown or its parameters are invalid.
        """
        normalized = " ".join(text.strip().lower().split())
        if normalized.endswith("[]"):
            return ColumnType(TypeKind.ARRAY, element=cls.parse(normalized[:-2]))

        match = cls.TYPE_PATTERN.match(normalized)
        if not match or match.group("base") not in cls.ALIASES:
            raise ValueError(f"Unknown column type: {text!r}")

        kind, with_timezone = cls.ALIASES[match.group("base")]
        if match.group("tz") == "with":
            with_timezone = True

        args = cls._parse_args(text, match.group("args"))
        if kind is TypeKind.DECIMAL:
            if not args:
                raise ValueError(f"decimal requires precision and scale: {text!r}")
            precision = args[0]
            scale = args[1] if len(args) > 1 else 0
            if len(args) > 2:
                raise ValueError(f"Too many decimal parameters: {text!r}")
            return ColumnType(kind, precision=precision, scale=scale)

        if kind in LENGTH_KINDS:
            if len(args) > 1:
                raise ValueError(f"Too many length parameters: {text!r}")
            return ColumnType(kind, length=args[0] if args else None)

        if args:
            raise ValueError(f"{kind.value} does not take parameters: {text!r}")
        return ColumnType(kind, with_timezone=with_timezone)

    @staticmethod
    def _parse_args(text: str, raw: Optional[str]) -> list[int]:
        if raw is None:
            return []
        try:
            return [int(part) for part in raw.split(",")]
        except ValueError:
            raise ValueError(f"Type parameters must be integers: {text!r}") from None


@dataclass(frozen=True)
class ColumnDefault:
    """Default-value specifier: a literal, current timestamp, random UUID, or opaque SQL."""

    kind: DefaultKind
    value: Any = None

    def __post_init__(self) -> None:
        if self.kind is DefaultKind.LITERAL and self.value is None:
            raise ValueError("literal default requires a value")
        if self.kind is DefaultKind.SQL and not isinstance(self.value, str):
            raise ValueError("sql default requires an expression string")
        if (
            self.kind in (DefaultKind.CURRENT_TIMESTAMP, DefaultKind.RANDOM_UUID)
            and self.value is not None
        ):
            raise ValueError(f"{self.kind.value} default does not take a value")

    @classmethod
    def literal(cls, value: Any) -> "ColumnDefault":
        return cls(DefaultKind.LITERAL, value)

    @classmethod
    def now(cls) -> "ColumnDefault":
        return cls(DefaultKind.CURRENT_TIMESTAMP)

    @classmethod
    def random_uuid(cls) -> "ColumnDefault":
        return cls(DefaultKind.RANDOM_UUID)

    @classmethod
    def sql(cls, expression: str) -> "ColumnDefault":
        return cls(DefaultKind.SQL, expression)


@dataclass(frozen=True)
class Column:
    """Column definition."""

    name: ColumnName
    type: ColumnType
    nullable: bool = True
    default: Optional[ColumnDefault] = None
    on_update: Optional[ColumnDefault] = None
    unique: bool = False
    allow_reserved: bool = False
    comment: Optional[str] = None

    def __post_init__(self) -> None:
        """Accept type strings for convenience; stored as ColumnType."""
        if isinstance(self.type, str):
            object.__setattr__(self, "type", TypeRules.parse(self.type))


@dataclass(frozen=True)
class PrimaryKey:
    """
    Primary key definition.

    Column order is significant: (device_id, timestamp) and
    (timestamp, device_id) are different keys for composite lookups.
    """

    columns: tuple[ColumnName, ...]
    name: Optional[str] = None

    def __post_init__(self) -> None:
        _freeze(self, "columns")
        if not self.columns:
            raise ValueError("Primary key requires at least one column")


@dataclass(frozen=True)
class UniqueConstraint:
    """UNIQUE constraint; column order is kept only for deterministic naming."""

    name: str
    columns: tuple[ColumnName, ...]

    def __post_init__(self) -> None:
        _freeze(self, "columns")
        if not self.columns:
            raise ValueError(f"Unique constraint '{self.name}' requires columns")


@dataclass(frozen=True)
class CheckConstraint:
    """
    CHECK constraint.

    The expression is opaque and only ever evaluated by the database engine.
    Referenced columns are either given explicitly or derived from the
    expression's identifiers.
    """

    name: str
    expression: str
    columns: tuple[ColumnName, ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "columns")

    def referenced_columns(
        self, dialect: Dialect = Dialect.POSTGRESQL
    ) -> tuple[ColumnName, ...]:
        return self.columns or expression_columns(self.expression, dialect)


@dataclass(frozen=True)
class Index:
    """Index definition, optionally unique and/or partial."""

    name: str
    columns: tuple[ColumnName, ...]
    unique: bool = False
    where: Optional[str] = None

    def __post_init__(self) -> None:
        _freeze(self, "columns")
        if not self.columns:
            raise ValueError(f"Index '{self.name}' requires columns")

    def predicate_columns(
        self, dialect: Dialect = Dialect.POSTGRESQL
    ) -> tuple[ColumnName, ...]:
        if self.where is None:
            return ()
        return expression_columns(self.where, dialect)


@dataclass(frozen=True)
class TableRef:
    """Identity of a table: the (namespace, name) pair."""

    namespace: NamespaceName
    name: TableName

    def __str__(self) -> str:
        return f"{self.namespace}.{self.name}"

    @classmethod
    def parse(cls, text: str, default_namespace: NamespaceName) -> "TableRef":
        """Parse 'namespace.table' or a bare 'table' in the default namespace."""
        namespace, sep, name = text.strip().rpartition(".")
        if not sep:
            return cls(default_namespace, name)
        return cls(namespace, name)


@dataclass(frozen=True)
class ForeignKey:
    """Foreign key from columns of the owning table to a unique key of target."""

    columns: tuple[ColumnName, ...]
    target: TableRef
    target_columns: tuple[ColumnName, ...]
    on_delete: ReferentialAction = ReferentialAction.NO_ACTION
    on_update: ReferentialAction = ReferentialAction.NO_ACTION
    name: Optional[str] = None

    def __post_init__(self) -> None:
        _freeze(self, "columns")
        _freeze(self, "target_columns")

    @property
    def is_composite(self) -> bool:
        return len(self.columns) > 1

    def pairs(self) -> list[tuple[ColumnName, ColumnName]]:
        """Source/target column pairs in declaration order."""
        return list(zip(self.columns, self.target_columns))


@dataclass(frozen=True)
class Table:
    """Table definition."""

    name: TableName
    namespace: NamespaceName
    columns: tuple[Column, ...]
    primary_key: Optional[PrimaryKey] = None
    unique_constraints: tuple[UniqueConstraint, ...] = ()
    check_constraints: tuple[CheckConstraint, ...] = ()
    indexes: tuple[Index, ...] = ()
    foreign_keys: tuple[ForeignKey, ...] = ()
    allow_reserved: bool = False
    comment: Optional[str] = None

    def __post_init__(self) -> None:
        for attr in (
            "columns",
            "unique_constraints",
            "check_constraints",
            "indexes",
            "foreign_keys",
        ):
            _freeze(self, attr)

    def __eq__(self, other: object) -> bool:
        """Compare tables - column, constraint and index order not significant.

        Primary key column order is significant.
        """
        if not isinstance(other, Table):
            return NotImplemented
        if (self.namespace, self.name) != (other.namespace, other.name):
            return False
        if self.primary_key != other.primary_key:
            return False
        if self.allow_reserved != other.allow_reserved:
            return False
        if self.comment != other.comment:
            return False
        if _by_name(self.unique_constraints) != _by_name(other.unique_constraints):
            return False
        if _by_name(self.check_constraints) != _by_name(other.check_constraints):
            return False
        if _by_name(self.indexes) != _by_name(other.indexes):
            return False
        if set(self.foreign_keys) != set(other.foreign_keys):
            return False
        return _by_name(self.columns) == _by_name(other.columns)

    def __hash__(self) -> int:
        """Hash based on identity only for dict/set usage."""
        return hash((self.namespace, self.name))

    @property
    def ref(self) -> TableRef:
        return TableRef(self.namespace, self.name)

    def get_column(self, name: ColumnName) -> Optional[Column]:
        """Get a column by name."""
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def column_names(self) -> list[ColumnName]:
        return [col.name for col in self.columns]

    def is_nullable(self, name: ColumnName) -> bool:
        """Effective nullability: primary key and serial columns are never NULL."""
        col = self.get_column(name)
        if col is None:
            raise KeyError(f"Column '{name}' not found in table '{self.ref}'")
        if self.primary_key is not None and name in self.primary_key.columns:
            return False
        if col.type.is_serial:
            return False
        return col.nullable

    def unique_keys(self) -> list[tuple[str, frozenset[ColumnName]]]:
        """Every unique scope on the table, labelled for error messages."""
        keys: list[tuple[str, frozenset[ColumnName]]] = []
        if self.primary_key is not None:
            label = self.primary_key.name or "primary key"
            keys.append((label, frozenset(self.primary_key.columns)))
        for uc in self.unique_constraints:
            keys.append((uc.name, frozenset(uc.columns)))
        for col in self.columns:
            if col.unique:
                keys.append((f"{col.name} (unique column)", frozenset([col.name])))
        return keys

    def is_unique_key(self, columns: Sequence[ColumnName]) -> bool:
        """Check if columns exactly match a unique scope (order-insensitive)."""
        wanted = frozenset(columns)
        return any(scope == wanted for _, scope in self.unique_keys())

    def column_references(
        self, dialect: Dialect = Dialect.POSTGRESQL
    ) -> Iterator[tuple[str, ColumnName]]:
        """Yield (construct, column) for every column name used by a key or constraint.

        Check and partial-index predicates are parsed in the given dialect.
        """
        if self.primary_key is not None:
            for name in self.primary_key.columns:
                yield "primary key", name
        for uc in self.unique_constraints:
            for name in uc.columns:
                yield f"unique constraint '{uc.name}'", name
        for cc in self.check_constraints:
            for name in cc.referenced_columns(dialect):
                yield f"check constraint '{cc.name}'", name
        for idx in self.indexes:
            for name in idx.columns:
                yield f"index '{idx.name}'", name
            for name in idx.predicate_columns(dialect):
                yield f"index '{idx.name}' predicate", name
        for fk in self.foreign_keys:
            for name in fk.columns:
                yield f"foreign key to '{fk.target}'", name


def _by_name(items: Sequence[Any]) -> dict[str, Any]:
    return {item.name: item for item in items}


@dataclass(frozen=True)
class Relationship:
    """
    ORM-level association between two tables.

    Args:
        name: Property name on the source table (e.g. "owner", "children")
        source: Table the relationship is declared on
        target: Table the relationship points to
        cardinality: Cardinality seen from source
        relation_name: Tag pairing this side with its inverse
        fields: Source columns, only on the side that holds them
        references: Target columns matched by fields
    """

    name: str
    source: TableRef
    target: TableRef
    cardinality: Cardinality
    relation_name: Optional[RelationName] = None
    fields: tuple[ColumnName, ...] = ()
    references: tuple[ColumnName, ...] = ()

    def __post_init__(self) -> None:
        _freeze(self, "fields")
        _freeze(self, "references")

    @property
    def is_self_referential(self) -> bool:
        return self.source == self.target

    @property
    def is_tagged(self) -> bool:
        return self.relation_name is not None

    def __str__(self) -> str:
        tag = f" [{self.relation_name}]" if self.relation_name else ""
        return f"{self.source}.{self.name} -> {self.target}{tag}"


@dataclass(frozen=True)
class Namespace:
    """Named grouping of tables (a database schema such as 'auth')."""

    name: NamespaceName
    tables: Mapping[TableName, Table] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tables", MappingProxyType(dict(self.tables)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Namespace):
            return NotImplemented
        return self.name == other.name and dict(self.tables) == dict(other.tables)

    def __hash__(self) -> int:
        return hash(self.name)

    def get_table(self, name: TableName) -> Optional[Table]:
        """Get a table by name."""
        return self.tables.get(name)

    def table_names(self) -> set[TableName]:
        """Get all table names."""
        return set(self.tables.keys())


@dataclass(frozen=True)
class Schema:
    """Complete, validated schema. Produced by SchemaBuilder.finalize()."""

    dialect: Dialect
    namespaces: Mapping[NamespaceName, Namespace]
    relationships: tuple[Relationship, ...] = ()
    warnings: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "namespaces", MappingProxyType(dict(self.namespaces))
        )
        _freeze(self, "relationships")
        _freeze(self, "warnings")

    def __eq__(self, other: object) -> bool:
        """Structural equality; relationship order and warnings not significant."""
        if not isinstance(other, Schema):
            return NotImplemented
        return (
            self.dialect == other.dialect
            and dict(self.namespaces) == dict(other.namespaces)
            and set(self.relationships) == set(other.relationships)
        )

    def __hash__(self) -> int:
        return hash((self.dialect, tuple(self.namespaces)))

    def namespace_names(self) -> list[NamespaceName]:
        """Namespace names in definition order."""
        return list(self.namespaces.keys())

    def get_namespace(self, name: NamespaceName) -> Optional[Namespace]:
        return self.namespaces.get(name)

    def tables(self, namespace: Optional[NamespaceName] = None) -> list[Table]:
        """List tables, optionally restricted to one namespace."""
        if namespace is not None:
            ns = self.namespaces.get(namespace)
            return list(ns.tables.values()) if ns is not None else []
        return [t for ns in self.namespaces.values() for t in ns.tables.values()]

    def table_refs(self) -> list[TableRef]:
        return [table.ref for table in self.tables()]

    def get_table(self, namespace: NamespaceName, name: TableName) -> Optional[Table]:
        """Get a table by (namespace, name)."""
        ns = self.namespaces.get(namespace)
        if ns is None:
            return None
        return ns.get_table(name)

    def get_table_ref(self, ref: TableRef) -> Optional[Table]:
        return self.get_table(ref.namespace, ref.name)

    def foreign_keys(
        self, ref: Optional[TableRef] = None
    ) -> list[tuple[TableRef, ForeignKey]]:
        """List (source table, foreign key) pairs, optionally for one source table."""
        tables = self.tables()
        if ref is not None:
            tables = [t for t in tables if t.ref == ref]
        return [(t.ref, fk) for t in tables for fk in t.foreign_keys]

    def relationships_for(
        self,
        ref: TableRef,
        relation_name: Optional[RelationName] = None,
        target: Optional[TableRef] = None,
    ) -> list[Relationship]:
        """Relationships declared on a table, optionally filtered by tag or target."""
        return [
            rel
            for rel in self.relationships
            if rel.source == ref
            and (relation_name is None or rel.relation_name == relation_name)
            and (target is None or rel.target == target)
        ]

    def get_relationship(self, ref: TableRef, name: str) -> Optional[Relationship]:
        """Get a relationship by its property name on the source table."""
        for rel in self.relationships:
            if rel.source == ref and rel.name == name:
                return rel
        return None

    def inverse_of(self, rel: Relationship) -> Optional[Relationship]:
        """The relationship on the other side of rel, if one is declared."""
        for other in self.relationships:
            if other is rel or other == rel:
                continue
            if other.relation_name != rel.relation_name:
                continue
            if other.source == rel.target and other.target == rel.source:
                return other
        return None


SQLGLOT_DIALECTS: dict[Dialect, str] = {
    Dialect.POSTGRESQL: "postgres",
    Dialect.MYSQL: "mysql",
}


def expression_columns(
    expression: str, dialect: Dialect = Dialect.POSTGRESQL
) -> tuple[ColumnName, ...]:
    """Column names referenced by an opaque SQL boolean expression.

    The expression is parsed with sqlglot in the given dialect, so keywords,
    function names, date parts and cast targets are never mistaken for
    columns. A qualified name like ``t.col`` yields ``col``. Order of first
    appearance is kept.

    Raises:
        ValueError: If the expression is not valid SQL in the dialect.
    """
    try:
        tree = sqlglot.parse_one(expression, read=SQLGLOT_DIALECTS[dialect])
    except (ParseError, TokenError) as e:
        raise ValueError(
            f"Cannot parse {dialect.value} expression {expression!r}: {e}"
        ) from None

    found: list[ColumnName] = []
    for column in tree.find_all(exp.Column, bfs=False):
        name = column.name
        if name and name not in found:
            found.append(name)
    return tuple(found)
