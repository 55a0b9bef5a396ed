"""Predicate and join-graph extraction for a single SELECT scope."""

from typing import Iterable, List, Optional, Set, Tuple

from sqlglot import exp

from sqloverlay.pushdown.models import (
    EqualityEdge,
    JoinGraph,
    JoinKind,
    JoinStep,
    PredicateKind,
    PushablePredicate,
    SourceRef,
)

_RANGE_TYPES = (exp.GT, exp.GTE, exp.LT, exp.LTE)
_PATTERN_TYPES = (exp.Like, exp.ILike)


def conjuncts(expression: Optional[exp.Expression]) -> List[exp.Expression]:
    """Split an expression into its top-level AND operands.

    Parenthesized conjunctions are flattened; anything else is one conjunct.
    """
    if expression is None:
        return []
    if isinstance(expression, exp.And):
        return conjuncts(expression.this) + conjuncts(expression.expression)
    if isinstance(expression, exp.Paren) and isinstance(expression.this, exp.And):
        return conjuncts(expression.this)
    return [expression]


def join_conjuncts(parts: Iterable[exp.Expression]) -> Optional[exp.Expression]:
    """AND together a sequence of conditions, None when empty."""
    result: Optional[exp.Expression] = None
    for part in parts:
        if isinstance(part, exp.Or):
            part = exp.Paren(this=part)
        result = part if result is None else exp.And(this=result, expression=part)
    return result


def is_constant(node: exp.Expression) -> bool:
    """True for literals, signed numeric literals, booleans and NULL."""
    if isinstance(node, (exp.Literal, exp.Boolean, exp.Null)):
        return True
    if isinstance(node, exp.Neg):
        return isinstance(node.this, exp.Literal)
    if isinstance(node, exp.Paren):
        return is_constant(node.this)
    return False


def source_key(name: str) -> str:
    """Case-insensitive key for a source alias."""
    return name.upper()


def _column_side(node: exp.Expression) -> Optional[exp.Column]:
    return node if isinstance(node, exp.Column) else None


def classify(predicate: exp.Expression) -> PredicateKind:
    """Classify a conjunct by shape only.

    Anything containing a subquery is UNCLASSIFIED: its columns may belong
    to another scope.
    """
    if predicate.find(exp.Select) is not None:
        return PredicateKind.UNCLASSIFIED

    if isinstance(predicate, exp.EQ):
        left = _column_side(predicate.this)
        right = _column_side(predicate.expression)
        if left is not None and right is not None:
            return PredicateKind.EQUALITY_JOIN
        if (left is not None and is_constant(predicate.expression)) or (
            right is not None and is_constant(predicate.this)
        ):
            return PredicateKind.EQUALITY_CONSTANT
        return PredicateKind.UNCLASSIFIED

    if isinstance(predicate, exp.In):
        values = predicate.expressions
        if (
            isinstance(predicate.this, exp.Column)
            and values
            and all(is_constant(value) for value in values)
        ):
            return PredicateKind.IN_LIST
        return PredicateKind.UNCLASSIFIED

    if isinstance(predicate, _RANGE_TYPES):
        left, right = predicate.this, predicate.expression
        if (isinstance(left, exp.Column) and is_constant(right)) or (
            isinstance(right, exp.Column) and is_constant(left)
        ):
            return PredicateKind.RANGE
        return PredicateKind.UNCLASSIFIED

    if isinstance(predicate, exp.Between):
        if (
            isinstance(predicate.this, exp.Column)
            and is_constant(predicate.args.get("low"))
            and is_constant(predicate.args.get("high"))
        ):
            return PredicateKind.RANGE
        return PredicateKind.UNCLASSIFIED

    if isinstance(predicate, _PATTERN_TYPES):
        if isinstance(predicate.this, exp.Column):
            return PredicateKind.PATTERN
        return PredicateKind.UNCLASSIFIED

    return PredicateKind.UNCLASSIFIED


class ScopeExtractor:
    """Reads the sources, joins and WHERE conjuncts of one SELECT.

    Args:
        cte_names: Upper-cased names of CTEs visible to the statement. Table
            references matching one of them are never overlaid.
    """

    def __init__(self, cte_names: Optional[Set[str]] = None):
        self.cte_names = {name.upper() for name in (cte_names or set())}

    def extract(self, select: exp.Select) -> Tuple[List[PushablePredicate], JoinGraph]:
        graph = self.join_graph(select)

        where = select.args.get("where")
        predicates = []
        for conjunct in conjuncts(where.this if where is not None else None):
            predicate = self.predicate(conjunct, graph)
            predicates.append(predicate)
            edge = self._edge(predicate.expression, graph, join_index=None)
            if predicate.kind == PredicateKind.EQUALITY_JOIN and edge is not None:
                graph.edges.append(edge)

        return predicates, graph

    def join_graph(self, select: exp.Select) -> JoinGraph:
        graph = JoinGraph()

        from_clause = select.args.get("from")
        if isinstance(from_clause, exp.From):
            self._add_source(graph, from_clause.this)

        for index, join in enumerate(select.args.get("joins") or []):
            left_aliases = tuple(graph.sources)
            alias = self._add_source(graph, join.this)
            if alias is None:
                continue

            step = JoinStep(
                index=index,
                alias=alias,
                kind=self._join_kind(join),
                left_aliases=left_aliases,
            )
            graph.joins.append(step)

            if step.kind in (JoinKind.FULL, JoinKind.CROSS):
                continue
            for conjunct in conjuncts(join.args.get("on")):
                edge = self._edge(conjunct, graph, join_index=index)
                if edge is not None:
                    edge = self._orient(edge, step)
                if edge is not None:
                    graph.edges.append(edge)

        return graph

    def predicate(self, conjunct: exp.Expression, graph: JoinGraph) -> PushablePredicate:
        kind = classify(conjunct)
        tables: List[str] = []
        columns: List[str] = []

        if kind != PredicateKind.UNCLASSIFIED:
            for column in conjunct.find_all(exp.Column):
                alias = self._owner(column, graph)
                if alias is None:
                    # unknown or outer-scope qualifier
                    kind = PredicateKind.UNCLASSIFIED
                    tables, columns = [], []
                    break
                if alias not in tables:
                    tables.append(alias)
                columns.append(f"{alias}.{column.name}")

        return PushablePredicate(
            expression=conjunct,
            kind=kind,
            tables=tuple(tables),
            columns=tuple(columns),
        )

    def _add_source(self, graph: JoinGraph, node: exp.Expression) -> Optional[str]:
        if isinstance(node, exp.Table):
            name = node.alias_or_name
            overlayable = (
                not node.db
                and not node.catalog
                and node.name.upper() not in self.cte_names
            )
            ref = SourceRef(
                alias=name,
                table=node.name,
                schema_name=node.db or None,
                overlayable=overlayable,
            )
        elif isinstance(node, (exp.Subquery, exp.Lateral, exp.Unnest)) and node.alias:
            ref = SourceRef(alias=node.alias)
        else:
            return None

        key = source_key(ref.alias)
        graph.sources[key] = ref
        return key

    @staticmethod
    def _join_kind(join: exp.Join) -> JoinKind:
        side = (join.side or "").upper()
        if side in ("LEFT", "RIGHT", "FULL"):
            return JoinKind(side)
        if (join.kind or "").upper() == "CROSS":
            return JoinKind.CROSS
        if join.args.get("on") is None and not join.args.get("using"):
            return JoinKind.CROSS
        return JoinKind.INNER

    def _owner(self, column: exp.Column, graph: JoinGraph) -> Optional[str]:
        if column.table:
            key = source_key(column.table)
            return key if key in graph.sources else None
        if len(graph.sources) == 1:
            return next(iter(graph.sources))
        return None

    def _edge(
        self, conjunct: exp.Expression, graph: JoinGraph, join_index: Optional[int]
    ) -> Optional[EqualityEdge]:
        if not isinstance(conjunct, exp.EQ):
            return None
        left, right = conjunct.this, conjunct.expression
        if not (isinstance(left, exp.Column) and isinstance(right, exp.Column)):
            return None
        left_alias = self._owner(left, graph)
        right_alias = self._owner(right, graph)
        if left_alias is None or right_alias is None or left_alias == right_alias:
            return None
        return EqualityEdge(
            left_alias=left_alias,
            left_column=left.name,
            right_alias=right_alias,
            right_column=right.name,
            join_index=join_index,
        )

    @staticmethod
    def _orient(edge: EqualityEdge, step: JoinStep) -> Optional[EqualityEdge]:
        """Point outer-join edges from the preserved side to the null-supplying side.

        An outer ON-clause equality between two sources on the same side of
        the join does not hold in the result and yields no edge.
        """
        if step.kind not in (JoinKind.LEFT, JoinKind.RIGHT):
            return edge

        null_side = set(step.null_supplying)
        left_null = edge.left_alias in null_side
        right_null = edge.right_alias in null_side
        if left_null == right_null:
            return None
        if left_null:
            edge = EqualityEdge(
                left_alias=edge.right_alias,
                left_column=edge.right_column,
                right_alias=edge.left_alias,
                right_column=edge.left_column,
                join_index=edge.join_index,
            )
        return edge.model_copy(update={"directional": True})
