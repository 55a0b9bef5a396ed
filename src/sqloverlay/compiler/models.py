"""Result models for statement compilation."""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from sqloverlay.global_models import ExecutionContext
from sqloverlay.pushdown.models import PredicateKind, PushdownDestination
from sqloverlay.templating.models import BindSlot


class PredicatePlacement(BaseModel):
    """Where one WHERE conjunct (or a derived duplicate) was placed."""

    model_config = ConfigDict(frozen=True)

    scope: int = Field(..., description="Index of the SELECT scope, outermost first")
    predicate: str = Field(..., description="Predicate SQL as authored or derived")
    kind: PredicateKind
    destination: PushdownDestination
    tables: List[str] = Field(default_factory=list)
    join_index: Optional[int] = Field(None, description="Target join for ON placement")
    overlay: Optional[str] = Field(None, description="Overlay the predicate was copied into")
    duplicated: bool = False


class CompiledStatement(BaseModel):
    """Final SQL for one compile request.

    `parameter_order` is empty for inline binding. With positional binding
    it lists one slot per `?` in textual order.
    """

    model_config = ConfigDict(frozen=True)

    template_name: str
    base_table: str
    context: ExecutionContext
    dialect: str
    sql: str
    parameter_order: List[BindSlot] = Field(default_factory=list)
    overlaid_tables: List[str] = Field(default_factory=list)
    pushed_predicates: List[PredicatePlacement] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    @property
    def parameters(self) -> List[Any]:
        """Bind values in slot order, ready for a DB-API `execute`."""
        return [slot.value for slot in self.parameter_order]
