"""Exception hierarchy for template loading and statement compilation.

Every error raised by the compiler derives from `CompilationError`, so callers
that only need to distinguish "compiled" from "did not compile" can catch the
base class. The subclasses carry enough structure for a caller to decide
whether a failure is the end caller's fault or an operational fault.
"""

from enum import Enum
from typing import Optional


class BindingOrigin(str, Enum):
    """Who is responsible for supplying a binding."""

    CALLER = "caller"
    CONFIGURATION = "configuration"


class CompilationError(Exception):
    """Base class for all template loading and compilation errors."""

    pass


class MalformedTemplateError(CompilationError):
    """Raised when a template block cannot be parsed.

    Attributes:
        template_name: Name of the offending template, if it was read
            before the error.
        line: 1-based line number within the document, if known.
    """

    def __init__(
        self,
        message: str,
        template_name: Optional[str] = None,
        line: Optional[int] = None,
    ):
        self.template_name = template_name
        self.line = line
        location = []
        if template_name:
            location.append(f"template '{template_name}'")
        if line is not None:
            location.append(f"line {line}")
        if location:
            message = f"{message} ({', '.join(location)})"
        super().__init__(message)


class TemplateNotFoundError(CompilationError):
    """Raised when a template name is not present in the registry."""

    pass


class MissingBindingError(CompilationError):
    """Raised when a tag has no value in the binding context.

    `origin` tells the caller whether to reject the request
    (`BindingOrigin.CALLER`) or escalate an operational fault
    (`BindingOrigin.CONFIGURATION`).
    """

    def __init__(self, message: str, tag_name: str, origin: BindingOrigin):
        self.tag_name = tag_name
        self.origin = origin
        super().__init__(message)

    @property
    def is_caller_error(self) -> bool:
        """True when the end caller failed to supply the value."""
        return self.origin == BindingOrigin.CALLER


class SchemaBindingError(MissingBindingError):
    """Raised when a schema role has no physical schema for a context.

    This is always a configuration fault.
    """

    def __init__(self, message: str, role: str):
        super().__init__(message, tag_name=role, origin=BindingOrigin.CONFIGURATION)


class InvalidBindingError(CompilationError):
    """Raised when a bound value cannot be rendered at the tag's position."""

    pass


class UnknownColumnSetError(CompilationError):
    """Raised when a Column-Set cannot be resolved against the catalog."""

    pass


class SchemaMismatchError(CompilationError):
    """Raised when base and write schemas disagree on a table's columns."""

    def __init__(self, message: str, table: str):
        self.table = table
        super().__init__(message)


class UnresolvedTagError(CompilationError):
    """Raised when a tag reaches SQL synthesis unresolved.

    This signals an internal contract violation, never a user error.
    """

    pass


class UnsupportedStatementError(CompilationError):
    """Raised when a template body is not a query."""

    pass
