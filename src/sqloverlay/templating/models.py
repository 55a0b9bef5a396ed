"""Pydantic models for parsed query templates."""

from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from sqloverlay.global_models import ExecutionContext, SchemaRole, TagKind


class Tag(BaseModel):
    """A placeholder occurrence inside a template body."""

    model_config = ConfigDict(frozen=True)

    kind: TagKind = Field(..., description="Kind of tag")
    name: str = Field(..., description="Lookup name (parameter, control, symbol or role)")
    qualifier: Optional[str] = Field(
        None, description="Table qualifier written before a Column-Set tag"
    )
    raw: str = Field(..., description="Tag text exactly as written in the template")

    @property
    def role(self) -> SchemaRole:
        """The schema role of a Schema-Role tag."""
        if self.kind != TagKind.SCHEMA_ROLE:
            raise ValueError(f"Tag {self.raw} is not a schema role tag")
        return SchemaRole(self.name)


class Fragment(BaseModel):
    """SQL text interleaved with tags, in authored order."""

    model_config = ConfigDict(frozen=True)

    parts: Tuple[Union[Tag, str], ...] = Field(default_factory=tuple)

    @property
    def tags(self) -> List[Tag]:
        """Tags in order of occurrence (repeats included)."""
        return [part for part in self.parts if isinstance(part, Tag)]

    def text(self) -> str:
        """Reconstruct the authored body."""
        pieces = []
        for part in self.parts:
            if isinstance(part, Tag):
                if part.qualifier:
                    pieces.append(f"{part.qualifier}.")
                pieces.append(part.raw)
            else:
                pieces.append(part)
        return "".join(pieces)


class Variant(BaseModel):
    """One SQL body of a template, scoped to an execution context."""

    model_config = ConfigDict(frozen=True)

    context: ExecutionContext
    fragment: Fragment
    line: int = Field(..., description="Line of the sql= directive")


class ColumnSetSymbol(BaseModel):
    """A `COLS:<name>=<table>:<columns>` declaration.

    `columns` is None for the `*` form, meaning every catalog column.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    table: str
    columns: Optional[Tuple[str, ...]] = None

    @property
    def is_wildcard(self) -> bool:
        return self.columns is None


class Template(BaseModel):
    """A named query template with its runtime and optional workspace bodies."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Logical template name")
    base_table: str = Field(..., description="Table whose rows the query returns")
    variants: Dict[ExecutionContext, Variant] = Field(default_factory=dict)
    line: int = Field(1, description="Line where the template block starts")

    def variant_for(self, context: ExecutionContext) -> Variant:
        """Select the body that applies to an execution context.

        A workspace request without a workspace body uses the runtime body.
        """
        variant = self.variants.get(context)
        if variant is None:
            variant = self.variants[ExecutionContext.RUNTIME]
        return variant

    @property
    def has_workspace_variant(self) -> bool:
        return ExecutionContext.WORKSPACE in self.variants


class SkippedTemplate(BaseModel):
    """A template block that failed to load."""

    name: Optional[str] = Field(None, description="Template name, if it was read")
    line: Optional[int] = Field(None, description="1-based line of the failure")
    reason: str = Field(..., description="Why the block was skipped")


class ParseResult(BaseModel):
    """Outcome of parsing one template document."""

    templates: List[Template] = Field(default_factory=list)
    symbols: List[ColumnSetSymbol] = Field(default_factory=list)
    skipped: List[SkippedTemplate] = Field(default_factory=list)


class BindingContext(BaseModel):
    """Values for Parameter and Control tags of one compile request.

    Values are scalars (int, float, str, bool, None) or lists of scalars.
    Parameters come from the end caller, controls from the calling
    environment.
    """

    model_config = ConfigDict(frozen=True)

    parameters: Dict[str, Any] = Field(default_factory=dict)
    controls: Dict[str, Any] = Field(default_factory=dict)


class BindSlot(BaseModel):
    """A positional `?` left in a compiled statement."""

    model_config = ConfigDict(frozen=True)

    position: int = Field(..., description="0-based position among the ? markers")
    name: str = Field(..., description="Parameter tag the value came from")
    value: Any = Field(None, description="Value to bind at this position")
