"""Models for overlay planning."""

from typing import FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlglot import exp

from sqloverlay.global_models import ExecutionContext


class OverlaySettings(BaseModel):
    """How the write schema marks its rows.

    Example:
        >>> settings = OverlaySettings(bookkeeping_columns=["OPTCOUNTER"])
        >>> sorted(settings.bookkeeping)
        ['CONTENT_STATUS', 'OPTCOUNTER']
    """

    model_config = ConfigDict(frozen=True)

    status_column: str = Field("CONTENT_STATUS", description="Write-row status flag")
    deleted_value: str = Field("D", description="Status value marking a deletion")
    bookkeeping_columns: List[str] = Field(
        default_factory=list,
        description="Extra write-schema columns that are not entity data",
    )

    @property
    def bookkeeping(self) -> FrozenSet[str]:
        """Upper-cased bookkeeping column names, status column included."""
        names = {column.upper() for column in self.bookkeeping_columns}
        names.add(self.status_column.upper())
        return frozenset(names)


class EntityOverlay(BaseModel):
    """The relation standing in for one table reference.

    For the runtime context this is the identity relation (the table in the
    runtime schema). For the workspace context `relation` is the union of
    the anti-join branch over the base schema and the survivor branch over
    the write schema.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    table: str
    alias: str
    context: ExecutionContext
    relation: exp.Expression
    columns: List[str] = Field(default_factory=list)
    key_columns: List[str] = Field(default_factory=list)
    base_schema: Optional[str] = None
    write_schema: Optional[str] = None
    pushed: List[exp.Expression] = Field(
        default_factory=list, description="Filters injected into both branches"
    )

    @property
    def is_identity(self) -> bool:
        return self.context == ExecutionContext.RUNTIME

    def definition_sql(self, dialect: Optional[str] = None) -> str:
        """SQL of the relation, used to compare and share overlay definitions."""
        return self.relation.sql(dialect=dialect)
