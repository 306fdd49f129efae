"""Shared test helpers for relmodel tests."""

from pathlib import Path

from relmodel.config import Config
from relmodel.schema.builder import SchemaBuilder
from relmodel.schema.models import Column, TableRef
from relmodel.types import Dialect

FIXTURES_PATH = Path(__file__).parent / "fixtures" / "schema"


def make_test_config(
    schema_path: str = "schema",
    dialect: Dialect = Dialect.POSTGRESQL,
) -> Config:
    """Create a Config for tests with sensible defaults."""
    return Config(dialect=dialect, schema_path=schema_path)


def make_column(
    name: str,
    col_type: str = "integer",
    nullable: bool = True,
    unique: bool = False,
    allow_reserved: bool = False,
) -> Column:
    """Helper to create a Column with defaults."""
    return Column(
        name=name,
        type=col_type,
        nullable=nullable,
        unique=unique,
        allow_reserved=allow_reserved,
    )


def make_users_builder(namespace: str = "auth") -> tuple[SchemaBuilder, TableRef]:
    """Builder with one namespace holding a users(id, email, name) table."""
    builder = SchemaBuilder()
    builder.define_namespace(namespace)
    users = builder.define_table(
        namespace,
        "users",
        [
            make_column("id", "uuid", nullable=False),
            make_column("email", "varchar(255)", nullable=False),
            make_column("name", "text"),
        ],
        primary_key=["id"],
    )
    return builder, users


def make_projects_table(builder: SchemaBuilder, namespace: str = "public") -> TableRef:
    """Define projects(id, owner_id, manager_id) in namespace, creating it if needed."""
    if not builder.has_namespace(namespace):
        builder.define_namespace(namespace)
    return builder.define_table(
        namespace,
        "projects",
        [
            make_column("id", "serial", nullable=False),
            make_column("owner_id", "uuid", nullable=False),
            make_column("manager_id", "uuid"),
        ],
        primary_key=["id"],
    )
