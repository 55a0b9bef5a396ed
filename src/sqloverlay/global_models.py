"""Shared models and enums used across sqloverlay modules."""

from enum import Enum


class ExecutionContext(str, Enum):
    """Execution context a template is compiled for."""

    RUNTIME = "runtime"
    WORKSPACE = "workspace"


class SchemaRole(str, Enum):
    """Logical schema role named by a `$CM:<ROLE>$` tag."""

    BASE = "BASE"
    WRITE = "WRITE"
    READ = "READ"


class TagKind(str, Enum):
    """Kind of placeholder occurring in a template body."""

    PARAMETER = "parameter"
    CONTROL = "control"
    COLUMN_SET = "column_set"
    SCHEMA_ROLE = "schema_role"


class BindStyle(str, Enum):
    """How Parameter values reach the emitted SQL."""

    INLINE = "inline"
    QMARK = "qmark"
