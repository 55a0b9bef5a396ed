"""Mapping from logical schema roles to physical schema names."""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sqloverlay.errors import SchemaBindingError
from sqloverlay.global_models import ExecutionContext, SchemaRole

_SCHEMA_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_$#]*$")


class SchemaBindingTable(BaseModel):
    """Physical schema names per execution context.

    In the runtime context every role resolves to `runtime`. In the
    workspace context BASE, WRITE and READ resolve to their own schemas.

    Example:
        >>> bindings = SchemaBindingTable(runtime="DB2INST1", base="DB2INST1",
        ...                               write="WCW101", read="WCR101")
        >>> bindings.binding_for(SchemaRole.WRITE, ExecutionContext.WORKSPACE)
        'WCW101'
    """

    model_config = ConfigDict(frozen=True)

    runtime: str = Field(..., description="Schema used by the runtime context")
    base: Optional[str] = Field(None, description="Read-only published schema")
    write: Optional[str] = Field(None, description="Mutable overlay schema")
    read: Optional[str] = Field(None, description="Merged read schema")

    @field_validator("runtime", "base", "write", "read")
    @classmethod
    def _check_identifier(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _SCHEMA_NAME_RE.match(value):
            raise ValueError(f"Invalid schema name {value!r}")
        return value

    @property
    def workspace_enabled(self) -> bool:
        """True when the workspace context can resolve BASE and WRITE."""
        return bool(self.base and self.write)

    def binding_for(self, role: SchemaRole, context: ExecutionContext) -> str:
        """Resolve a role to a physical schema name.

        Raises:
            SchemaBindingError: If the workspace context has no schema
                configured for the role.
        """
        if context == ExecutionContext.RUNTIME:
            return self.runtime

        schema = {
            SchemaRole.BASE: self.base,
            SchemaRole.WRITE: self.write,
            SchemaRole.READ: self.read,
        }[role]
        if not schema:
            raise SchemaBindingError(
                f"No {role.value} schema configured for the workspace context",
                role=role.value,
            )
        return schema
