"""Models for predicate pushdown planning."""

from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from sqlglot import exp


class PredicateKind(str, Enum):
    """Shape of a WHERE conjunct, as far as pushdown is concerned."""

    EQUALITY_CONSTANT = "equality_constant"
    EQUALITY_JOIN = "equality_join"
    IN_LIST = "in_list"
    RANGE = "range"
    PATTERN = "pattern"
    UNCLASSIFIED = "unclassified"


#: Kinds that may be copied into an overlay definition.
OVERLAY_PUSHABLE_KINDS = frozenset(
    {PredicateKind.EQUALITY_CONSTANT, PredicateKind.IN_LIST, PredicateKind.RANGE}
)

#: Kinds that may be duplicated across an equality join.
DUPLICABLE_KINDS = frozenset({PredicateKind.EQUALITY_CONSTANT, PredicateKind.IN_LIST})


class PushdownDestination(str, Enum):
    """Where a predicate ends up."""

    WHERE = "where"
    ON_CLAUSE = "on_clause"
    OVERLAY = "overlay"


class JoinKind(str, Enum):
    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    FULL = "FULL"
    CROSS = "CROSS"


class SourceRef(BaseModel):
    """A relation in the FROM clause of a scope, keyed by its alias."""

    model_config = ConfigDict(frozen=True)

    alias: str
    table: Optional[str] = Field(None, description="Table name, None for subqueries")
    schema_name: Optional[str] = Field(None, description="Explicit schema qualifier")
    overlayable: bool = Field(
        False, description="Unqualified base table reference eligible for an overlay"
    )


class JoinStep(BaseModel):
    """The n-th JOIN of a scope."""

    model_config = ConfigDict(frozen=True)

    index: int
    alias: str = Field(..., description="Alias of the joined (right-hand) source")
    kind: JoinKind
    left_aliases: Tuple[str, ...] = Field(
        default_factory=tuple, description="Sources to the left of this join"
    )

    @property
    def null_supplying(self) -> Tuple[str, ...]:
        """Sources whose rows this join may replace with NULLs."""
        if self.kind == JoinKind.LEFT:
            return (self.alias,)
        if self.kind == JoinKind.RIGHT:
            return self.left_aliases
        if self.kind == JoinKind.FULL:
            return self.left_aliases + (self.alias,)
        return ()


class EqualityEdge(BaseModel):
    """`left_alias.left_column = right_alias.right_column` from a join condition.

    `join_index` is None for equalities written in WHERE. `directional`
    edges only carry constants from left to right (the right side is
    null-supplied by an outer join).
    """

    model_config = ConfigDict(frozen=True)

    left_alias: str
    left_column: str
    right_alias: str
    right_column: str
    join_index: Optional[int] = None
    directional: bool = False


class JoinGraph(BaseModel):
    """Sources, joins and column equalities of one SELECT scope."""

    sources: Dict[str, SourceRef] = Field(default_factory=dict)
    joins: List[JoinStep] = Field(default_factory=list)
    edges: List[EqualityEdge] = Field(default_factory=list)

    def null_supplying_joins(self, alias: str) -> List[JoinStep]:
        return [join for join in self.joins if alias in join.null_supplying]

    def single_outer_join(self, alias: str) -> Optional[JoinStep]:
        """The one LEFT/RIGHT join null-supplying `alias`, None otherwise."""
        joins = self.null_supplying_joins(alias)
        if len(joins) == 1 and joins[0].kind in (JoinKind.LEFT, JoinKind.RIGHT):
            return joins[0]
        return None

    def overlayable_aliases(self) -> FrozenSet[str]:
        return frozenset(a for a, source in self.sources.items() if source.overlayable)


class PushablePredicate(BaseModel):
    """A WHERE conjunct with its classification and planned placement.

    `anchor` is where the predicate lives in the outer query (WHERE or the
    ON clause of `join_index`). `overlay_alias` is set when the predicate is
    additionally copied into that source's overlay definition.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    expression: exp.Expression
    kind: PredicateKind
    tables: Tuple[str, ...] = Field(default_factory=tuple)
    columns: Tuple[str, ...] = Field(
        default_factory=tuple, description="Referenced columns as alias.column"
    )
    anchor: PushdownDestination = PushdownDestination.WHERE
    join_index: Optional[int] = None
    overlay_alias: Optional[str] = None
    duplicate_of: Optional[int] = Field(
        None, description="Position of the predicate this one was derived from"
    )

    @property
    def destination(self) -> PushdownDestination:
        if self.overlay_alias is not None:
            return PushdownDestination.OVERLAY
        return self.anchor

    @property
    def is_single_table(self) -> bool:
        return len(self.tables) == 1

    @property
    def column_names(self) -> Tuple[str, ...]:
        """Referenced column names without their alias."""
        return tuple(column.split(".", 1)[-1] for column in self.columns)

    def references_any(self, columns: FrozenSet[str]) -> bool:
        """True if any referenced column is in `columns` (upper-cased names)."""
        return any(name.upper() in columns for name in self.column_names)

    def constant_values(self) -> List[exp.Expression]:
        """Constant operands of an equality or IN-list predicate."""
        node = self.expression
        if isinstance(node, exp.EQ):
            return [
                side
                for side in (node.this, node.expression)
                if not isinstance(side, exp.Column)
            ]
        if isinstance(node, exp.In):
            return list(node.expressions)
        return []

    def value_signature(self) -> FrozenSet[str]:
        return frozenset(value.sql() for value in self.constant_values())

    def sql(self, dialect: Optional[str] = None) -> str:
        return self.expression.sql(dialect=dialect)
