"""Tests for SchemaValidator whole-schema checks."""

import dataclasses

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
from relmodel.schema.validator import SchemaValidator, ValidationIssue
from relmodel.types import Cardinality, Dialect, IssueKind, ReferentialAction, Severity


def make_table(
    name: str,
    columns: list[Column] | None = None,
    namespace: str = "public",
    primary_key: PrimaryKey | None = None,
    foreign_keys: list[ForeignKey] | None = None,
    **kwargs,
) -> Table:
    """Helper to create a Table with defaults."""
    return Table(
        name=name,
        namespace=namespace,
        columns=columns or [Column(name="id", type="integer", nullable=False)],
        primary_key=primary_key,
        foreign_keys=foreign_keys or [],
        **kwargs,
    )


def make_schema(
    *tables: Table,
    relationships: list[Relationship] | None = None,
    dialect: Dialect = Dialect.POSTGRESQL,
) -> Schema:
    """Group tables into namespaces and wrap them in a Schema."""
    grouped: dict[str, dict[str, Table]] = {}
    for table in tables:
        grouped.setdefault(table.namespace, {})[table.name] = table
    return Schema(
        dialect=dialect,
        namespaces={name: Namespace(name=name, tables=t) for name, t in grouped.items()},
        relationships=relationships or [],
    )


def kinds(issues: list[ValidationIssue]) -> list[IssueKind]:
    return [i.kind for i in issues]


def validate(schema: Schema) -> list[ValidationIssue]:
    return SchemaValidator(schema.dialect).validate(schema).issues


class TestValidResult:
    """Test a consistent schema produces no issues."""

    def test_valid_schema_passes(self):
        users = make_table("users", primary_key=PrimaryKey(columns=["id"]))
        result = SchemaValidator().validate(make_schema(users))
        assert result.ok is True
        assert result.issues == []

    def test_warnings_do_not_fail(self):
        users = make_table(
            "users",
            primary_key=PrimaryKey(columns=["id"]),
            unique_constraints=[UniqueConstraint(name="users_id_uq", columns=["id"])],
        )
        result = SchemaValidator().validate(make_schema(users))
        assert result.ok is True
        assert kinds(result.warnings) == [IssueKind.REDUNDANT_UNIQUE_CONSTRAINT]
        assert result.errors == []


class TestForeignKeyChecks:
    """Foreign key target and action checks."""

    def test_missing_target_table(self):
        orders = make_table(
            "orders",
            foreign_keys=[
                ForeignKey(
                    columns=["id"],
                    target=TableRef("public", "customers"),
                    target_columns=["id"],
                )
            ],
        )
        issues = validate(make_schema(orders))
        assert kinds(issues) == [IssueKind.UNKNOWN_TABLE_REFERENCE]
        assert issues[0].table == "orders"

    def test_target_resolved_by_namespace_and_name(self):
        """A same-named table in a different namespace does not satisfy the key."""
        public_users = make_table("users", primary_key=PrimaryKey(columns=["id"]))
        orders = make_table(
            "orders",
            foreign_keys=[
                ForeignKey(
                    columns=["id"],
                    target=TableRef("auth", "users"),
                    target_columns=["id"],
                )
            ],
        )
        issues = validate(make_schema(public_users, orders))
        assert kinds(issues) == [IssueKind.UNKNOWN_TABLE_REFERENCE]

    def test_target_not_unique(self):
        customers = make_table(
            "customers",
            columns=[
                Column(name="id", type="integer"),
                Column(name="email", type="text"),
            ],
            primary_key=PrimaryKey(columns=["id"]),
        )
        orders = make_table(
            "orders",
            columns=[Column(name="email", type="text")],
            foreign_keys=[
                ForeignKey(
                    columns=["email"],
                    target=customers.ref,
                    target_columns=["email"],
                )
            ],
        )
        issues = validate(make_schema(customers, orders))
        assert kinds(issues) == [IssueKind.FOREIGN_KEY_TARGET_NOT_UNIQUE]

    def test_length_mismatch(self):
        devices = make_table("devices", primary_key=PrimaryKey(columns=["id"]))
        readings = make_table(
            "readings",
            columns=[
                Column(name="device_id", type="integer"),
                Column(name="taken_at", type="timestamp"),
            ],
            foreign_keys=[
                ForeignKey(
                    columns=["device_id", "taken_at"],
                    target=devices.ref,
                    target_columns=["id"],
                )
            ],
        )
        issues = validate(make_schema(devices, readings))
        assert kinds(issues) == [IssueKind.FOREIGN_KEY_LENGTH_MISMATCH]

    def test_set_null_on_non_nullable(self):
        users = make_table("users", primary_key=PrimaryKey(columns=["id"]))
        posts = make_table(
            "posts",
            columns=[Column(name="author_id", type="integer", nullable=False)],
            foreign_keys=[
                ForeignKey(
                    columns=["author_id"],
                    target=users.ref,
                    target_columns=["id"],
                    on_delete=ReferentialAction.SET_NULL,
                    on_update=ReferentialAction.SET_NULL,
                )
            ],
        )
        issues = validate(make_schema(users, posts))
        assert kinds(issues) == [IssueKind.FOREIGN_KEY_SET_NULL_ON_NON_NULLABLE]
        assert issues[0].column == "author_id"

    def test_unknown_target_column(self):
        users = make_table("users", primary_key=PrimaryKey(columns=["id"]))
        posts = make_table(
            "posts",
            columns=[Column(name="author_id", type="integer")],
            foreign_keys=[
                ForeignKey(
                    columns=["author_id"],
                    target=users.ref,
                    target_columns=["uuid"],
                )
            ],
        )
        issues = validate(make_schema(users, posts))
        assert kinds(issues) == [IssueKind.UNKNOWN_COLUMN_REFERENCE]
        assert issues[0].column == "uuid"


class TestColumnReferences:
    """Every construct naming a column is checked."""

    def test_all_unknown_references_reported(self):
        table = make_table(
            "events",
            primary_key=PrimaryKey(columns=["id", "ghost_pk"]),
            unique_constraints=[UniqueConstraint(name="uq", columns=["ghost_uq"])],
            check_constraints=[
                CheckConstraint(name="ck", expression="ghost_check > 0")
            ],
            indexes=[
                Index(name="idx", columns=["ghost_idx"], where="ghost_where IS NULL")
            ],
        )
        issues = validate(make_schema(table))
        unknown = [i.column for i in issues if i.kind is IssueKind.UNKNOWN_COLUMN_REFERENCE]
        assert unknown == [
            "ghost_pk",
            "ghost_uq",
            "ghost_check",
            "ghost_idx",
            "ghost_where",
        ]

    def test_duplicate_columns_reported(self):
        table = make_table(
            "events",
            columns=[
                Column(name="id", type="integer"),
                Column(name="id", type="text"),
            ],
        )
        assert kinds(validate(make_schema(table))) == [IssueKind.DUPLICATE_COLUMN_NAME]


class TestIdentifiers:
    """Reserved word and identifier length checks."""

    def test_reserved_table_and_column_names(self):
        table = make_table(
            "user",
            columns=[Column(name="select", type="text")],
        )
        issues = validate(make_schema(table))
        assert kinds(issues) == [IssueKind.RESERVED_IDENTIFIER] * 2

    def test_reserved_names_allowed_when_marked(self):
        table = make_table(
            "user",
            columns=[Column(name="select", type="text", allow_reserved=True)],
            allow_reserved=True,
        )
        assert validate(make_schema(table)) == []

    def test_reserved_words_depend_on_dialect(self):
        """'key' is reserved in MySQL only."""
        table = make_table("settings", columns=[Column(name="key", type="text")])
        assert validate(make_schema(table)) == []
        mysql_issues = validate(make_schema(table, dialect=Dialect.MYSQL))
        assert kinds(mysql_issues) == [IssueKind.RESERVED_IDENTIFIER]

    def test_identifier_too_long(self):
        long_name = "t" * 64
        table = make_table(long_name)
        issues = validate(make_schema(table))
        assert kinds(issues) == [IssueKind.IDENTIFIER_TOO_LONG]
        assert validate(make_schema(table, dialect=Dialect.MYSQL)) == []


class TestRelationships:
    """Relation-name pairing and self-reference checks."""

    def make_hierarchy(self, *relationships: Relationship) -> Schema:
        employees = make_table(
            "employees",
            columns=[
                Column(name="id", type="uuid", nullable=False),
                Column(name="manager_id", type="uuid"),
            ],
            primary_key=PrimaryKey(columns=["id"]),
            foreign_keys=[
                ForeignKey(
                    columns=["manager_id"],
                    target=TableRef("public", "employees"),
                    target_columns=["id"],
                    on_delete=ReferentialAction.SET_NULL,
                )
            ],
        )
        return make_schema(employees, relationships=list(relationships))

    def manager(self, relation_name: str | None = "EmployeeHierarchy") -> Relationship:
        ref = TableRef("public", "employees")
        return Relationship(
            name="manager",
            source=ref,
            target=ref,
            cardinality=Cardinality.MANY_TO_ONE,
            relation_name=relation_name,
            fields=["manager_id"],
            references=["id"],
        )

    def subordinates(self, relation_name: str | None = "EmployeeHierarchy") -> Relationship:
        ref = TableRef("public", "employees")
        return Relationship(
            name="subordinates",
            source=ref,
            target=ref,
            cardinality=Cardinality.ONE_TO_MANY,
            relation_name=relation_name,
        )

    def test_tagged_hierarchy_passes(self):
        assert validate(self.make_hierarchy(self.manager(), self.subordinates())) == []

    def test_self_reference_without_relationships(self):
        issues = validate(self.make_hierarchy())
        assert kinds(issues) == [IssueKind.SELF_REFERENCE_REQUIRES_RELATION_NAME]

    def test_untagged_self_relationships(self):
        issues = validate(
            self.make_hierarchy(self.manager(None), self.subordinates(None))
        )
        assert kinds(issues).count(IssueKind.SELF_REFERENCE_REQUIRES_RELATION_NAME) == 3

    def test_tagged_pair_for_other_columns_does_not_count(self):
        """The tagged pair must cover the foreign key's own columns."""
        manager = self.manager()
        mentor = Relationship(
            name="mentor",
            source=manager.source,
            target=manager.target,
            cardinality=Cardinality.MANY_TO_ONE,
            relation_name="EmployeeHierarchy",
            fields=["id"],
            references=["id"],
        )
        issues = validate(self.make_hierarchy(mentor, self.subordinates()))
        assert kinds(issues) == [IssueKind.SELF_REFERENCE_REQUIRES_RELATION_NAME]

    def test_tagged_pair_without_fields_passes(self):
        manager = dataclasses.replace(self.manager(), fields=(), references=())
        assert validate(self.make_hierarchy(manager, self.subordinates())) == []

    def test_fieldless_tag_covers_a_single_foreign_key(self):
        ref = TableRef("public", "employees")
        employees = make_table(
            "employees",
            columns=[
                Column(name="id", type="uuid", nullable=False),
                Column(name="manager_id", type="uuid"),
                Column(name="mentor_id", type="uuid"),
            ],
            primary_key=PrimaryKey(columns=["id"]),
            foreign_keys=[
                ForeignKey(columns=["manager_id"], target=ref, target_columns=["id"]),
                ForeignKey(columns=["mentor_id"], target=ref, target_columns=["id"]),
            ],
        )
        manager = dataclasses.replace(self.manager(), fields=(), references=())
        issues = validate(
            make_schema(employees, relationships=[manager, self.subordinates()])
        )
        assert kinds(issues) == [IssueKind.SELF_REFERENCE_REQUIRES_RELATION_NAME]
        assert "mentor_id" in issues[0].message

    def test_same_direction_self_tag_unpaired(self):
        """Two many-to-one relationships cannot pair with each other."""
        supervisor = dataclasses.replace(self.manager(), name="supervisor")
        issues = validate(self.make_hierarchy(self.manager(), supervisor))
        assert IssueKind.UNPAIRED_RELATION_NAME in kinds(issues)

    def test_one_to_one_self_pair_passes(self):
        ref = TableRef("public", "employees")
        successor = dataclasses.replace(
            self.manager("Succession"),
            name="successor",
            cardinality=Cardinality.ONE_TO_ONE,
        )
        predecessor = Relationship(
            name="predecessor",
            source=ref,
            target=ref,
            cardinality=Cardinality.ONE_TO_ONE,
            relation_name="Succession",
        )
        assert validate(self.make_hierarchy(successor, predecessor)) == []

    def test_three_with_same_self_tag_unpaired(self):
        extra = Relationship(
            name="reports",
            source=TableRef("public", "employees"),
            target=TableRef("public", "employees"),
            cardinality=Cardinality.ONE_TO_MANY,
            relation_name="EmployeeHierarchy",
        )
        issues = validate(
            self.make_hierarchy(self.manager(), self.subordinates(), extra)
        )
        assert IssueKind.UNPAIRED_RELATION_NAME in kinds(issues)

    def test_ambiguous_untagged_relationships(self):
        users = make_table("users", primary_key=PrimaryKey(columns=["id"]))
        projects = make_table(
            "projects",
            columns=[
                Column(name="owner_id", type="integer"),
                Column(name="manager_id", type="integer"),
            ],
        )
        rels = [
            Relationship(
                name=name,
                source=projects.ref,
                target=users.ref,
                cardinality=Cardinality.MANY_TO_ONE,
                fields=[column],
                references=["id"],
            )
            for name, column in (("owner", "owner_id"), ("manager", "manager_id"))
        ]
        issues = validate(make_schema(users, projects, relationships=rels))
        assert kinds(issues) == [IssueKind.AMBIGUOUS_RELATIONSHIP]

    def test_same_tag_twice_on_one_side_unpaired(self):
        users = make_table("users", primary_key=PrimaryKey(columns=["id"]))
        projects = make_table("projects")
        rels = [
            Relationship(
                name=name,
                source=projects.ref,
                target=users.ref,
                cardinality=Cardinality.MANY_TO_ONE,
                relation_name="Shared",
            )
            for name in ("owner", "manager")
        ]
        issues = validate(make_schema(users, projects, relationships=rels))
        assert kinds(issues) == [IssueKind.UNPAIRED_RELATION_NAME]

    def test_relationship_unknown_columns_and_tables(self):
        users = make_table("users", primary_key=PrimaryKey(columns=["id"]))
        rels = [
            Relationship(
                name="owner",
                source=users.ref,
                target=TableRef("public", "missing"),
                cardinality=Cardinality.MANY_TO_ONE,
            ),
            Relationship(
                name="me",
                source=users.ref,
                target=TableRef("public", "users"),
                cardinality=Cardinality.ONE_TO_ONE,
                relation_name="Self",
                fields=["nope"],
                references=["id"],
            ),
            Relationship(
                name="also_me",
                source=users.ref,
                target=TableRef("public", "users"),
                cardinality=Cardinality.ONE_TO_ONE,
                relation_name="Self",
            ),
        ]
        issues = validate(make_schema(users, relationships=rels))
        assert kinds(issues) == [
            IssueKind.UNKNOWN_TABLE_REFERENCE,
            IssueKind.UNKNOWN_COLUMN_REFERENCE,
        ]

    def test_relationship_reference_must_be_unique(self):
        users = make_table(
            "users",
            columns=[
                Column(name="id", type="integer"),
                Column(name="email", type="text"),
            ],
            primary_key=PrimaryKey(columns=["id"]),
        )
        posts = make_table("posts", columns=[Column(name="author_email", type="text")])
        rel = Relationship(
            name="author",
            source=posts.ref,
            target=users.ref,
            cardinality=Cardinality.MANY_TO_ONE,
            fields=["author_email"],
            references=["email"],
        )
        issues = validate(make_schema(users, posts, relationships=[rel]))
        assert kinds(issues) == [IssueKind.FOREIGN_KEY_TARGET_NOT_UNIQUE]


def test_issue_str_marks_warnings():
    issue = ValidationIssue(
        kind=IssueKind.REDUNDANT_UNIQUE_CONSTRAINT,
        message="dup",
        severity=Severity.WARNING,
    )
    assert str(issue) == "warning: [RedundantUniqueConstraint] dup"
