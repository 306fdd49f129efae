"""Tests for relmodel.exceptions module."""

import pytest

from relmodel.exceptions import (
    AmbiguousRelationshipError,
    ConfigError,
    DuplicateColumnNameError,
    DuplicateNamespaceError,
    DuplicateTableNameError,
    ForeignKeyLengthMismatchError,
    ForeignKeySetNullOnNonNullableError,
    ForeignKeyTargetNotUniqueError,
    RelmodelError,
    SchemaDefinitionError,
    SchemaLoadError,
    SchemaValidationError,
    UnknownColumnReferenceError,
)
from relmodel.schema.validator import ValidationIssue
from relmodel.types import IssueKind, Severity


class TestExceptionHierarchy:
    """Tests for exception hierarchy."""

    def test_exception_hierarchy(self):
        """All exceptions inherit from RelmodelError."""
        assert issubclass(SchemaDefinitionError, RelmodelError)
        assert issubclass(SchemaValidationError, RelmodelError)
        assert issubclass(SchemaLoadError, RelmodelError)
        assert issubclass(ConfigError, RelmodelError)
        for cls in (
            DuplicateNamespaceError,
            DuplicateTableNameError,
            DuplicateColumnNameError,
            UnknownColumnReferenceError,
            ForeignKeyLengthMismatchError,
            ForeignKeyTargetNotUniqueError,
            ForeignKeySetNullOnNonNullableError,
            AmbiguousRelationshipError,
        ):
            assert issubclass(cls, SchemaDefinitionError)

    def test_relmodel_error_is_exception(self):
        assert issubclass(RelmodelError, Exception)

    def test_definition_errors_carry_kind(self):
        assert DuplicateNamespaceError.kind is IssueKind.DUPLICATE_NAMESPACE
        assert ForeignKeyTargetNotUniqueError.kind is (
            IssueKind.FOREIGN_KEY_TARGET_NOT_UNIQUE
        )

    def test_definition_error_context(self):
        error = UnknownColumnReferenceError(
            "bad column", namespace="auth", table="users", column="nope"
        )
        assert str(error) == "bad column"
        assert error.namespace == "auth"
        assert error.table == "users"
        assert error.column == "nope"


class TestSchemaValidationError:
    """Tests for the aggregate validation error."""

    def make_issues(self):
        return [
            ValidationIssue(
                kind=IssueKind.UNPAIRED_RELATION_NAME, message="tag ProjectOwner unpaired"
            ),
            ValidationIssue(
                kind=IssueKind.REDUNDANT_UNIQUE_CONSTRAINT,
                message="two scopes on (id)",
                severity=Severity.WARNING,
            ),
        ]

    def test_splits_errors_and_warnings(self):
        error = SchemaValidationError(self.make_issues())
        assert len(error.issues) == 2
        assert [i.kind for i in error.errors] == [IssueKind.UNPAIRED_RELATION_NAME]
        assert [i.kind for i in error.warnings] == [
            IssueKind.REDUNDANT_UNIQUE_CONSTRAINT
        ]

    def test_message_lists_every_issue(self):
        message = str(SchemaValidationError(self.make_issues()))
        assert "1 error(s)" in message
        assert "[UnpairedRelationName] tag ProjectOwner unpaired" in message
        assert "warning: [RedundantUniqueConstraint]" in message

    def test_kinds(self):
        error = SchemaValidationError(self.make_issues())
        assert error.kinds() == {
            IssueKind.UNPAIRED_RELATION_NAME,
            IssueKind.REDUNDANT_UNIQUE_CONSTRAINT,
        }

    def test_can_be_caught_as_relmodel_error(self):
        with pytest.raises(RelmodelError):
            raise SchemaValidationError(self.make_issues())
