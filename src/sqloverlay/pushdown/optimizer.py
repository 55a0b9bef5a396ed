"""Pushdown planning over the predicates and join graph of one scope.

The optimizer never rewrites the statement itself. It returns a placement
for every predicate (plus derived duplicates); the synthesizer applies it.
Anything it cannot reason about stays in WHERE.
"""

from collections import deque
from typing import Callable, Deque, Iterable, List, Optional, Set, Tuple

from sqlglot import exp

from sqloverlay.pushdown.models import (
    DUPLICABLE_KINDS,
    OVERLAY_PUSHABLE_KINDS,
    JoinGraph,
    PredicateKind,
    PushablePredicate,
    PushdownDestination,
)

WarningCallback = Callable[[str], None]


def _ignore(message: str) -> None:
    pass


class PredicateOptimizer:
    """Places WHERE conjuncts and derives duplicates.

    Args:
        bookkeeping_columns: Overlay bookkeeping columns; predicates over them
            are never copied into an overlay.
        workspace: Whether overlays are being built (enables overlay routing).
        outer_join_on_clause: Move single-table predicates on the
            null-supplying side of an outer join into its ON clause.
        on_warning: Receives non-fatal diagnostics.
    """

    def __init__(
        self,
        bookkeeping_columns: Iterable[str] = (),
        workspace: bool = False,
        outer_join_on_clause: bool = True,
        on_warning: Optional[WarningCallback] = None,
    ):
        self.bookkeeping_columns = frozenset(c.upper() for c in bookkeeping_columns)
        self.workspace = workspace
        self.outer_join_on_clause = outer_join_on_clause
        self.on_warning = on_warning or _ignore

    def plan(
        self, predicates: List[PushablePredicate], join_graph: JoinGraph
    ) -> List[PushablePredicate]:
        placed = [p.model_copy() for p in predicates]

        if self.outer_join_on_clause:
            for index, predicate in enumerate(placed):
                placed[index] = self._move_to_on_clause(predicate, join_graph)

        placed.extend(self._duplicates(placed, join_graph))

        if self.workspace:
            overlayable = join_graph.overlayable_aliases()
            for index, predicate in enumerate(placed):
                if self._routes_to_overlay(predicate, overlayable):
                    placed[index] = predicate.model_copy(
                        update={"overlay_alias": predicate.tables[0]}
                    )

        return placed

    def _move_to_on_clause(
        self, predicate: PushablePredicate, graph: JoinGraph
    ) -> PushablePredicate:
        if predicate.kind == PredicateKind.UNCLASSIFIED or not predicate.is_single_table:
            return predicate
        join = graph.single_outer_join(predicate.tables[0])
        if join is None:
            return predicate
        return predicate.model_copy(
            update={"anchor": PushdownDestination.ON_CLAUSE, "join_index": join.index}
        )

    def _duplicates(
        self, placed: List[PushablePredicate], graph: JoinGraph
    ) -> List[PushablePredicate]:
        derived: List[PushablePredicate] = []

        for origin, source in enumerate(placed):
            if (
                source.anchor != PushdownDestination.WHERE
                or source.kind not in DUPLICABLE_KINDS
                or not source.is_single_table
                or len(source.columns) != 1
            ):
                continue

            values = source.constant_values()
            signature = source.value_signature()
            start = (source.tables[0], source.column_names[0].upper())
            visited: Set[Tuple[str, str]] = {start}
            queue: Deque[Tuple[str, str]] = deque([start])

            while queue:
                alias, column = queue.popleft()
                for target_alias, target_column in self._neighbours(alias, column, graph):
                    target = (target_alias, target_column.upper())
                    if target in visited:
                        continue
                    visited.add(target)

                    placement = self._placement(target_alias, graph)
                    if placement is None:
                        continue

                    existing = self._constants_on(target, placed + derived)
                    if any(p.value_signature() == signature for p in existing):
                        queue.append(target)
                        continue

                    duplicate = self._duplicate(
                        origin, target_alias, target_column, values, placement, graph
                    )
                    for other in existing:
                        self.on_warning(
                            f"Duplicated predicate {duplicate.sql()} conflicts with "
                            f"existing predicate {other.sql()}; both are kept"
                        )
                    derived.append(duplicate)
                    queue.append(target)

        return derived

    @staticmethod
    def _neighbours(alias: str, column: str, graph: JoinGraph) -> List[Tuple[str, str]]:
        found = []
        for edge in graph.edges:
            if edge.left_alias == alias and edge.left_column.upper() == column:
                found.append((edge.right_alias, edge.right_column))
            elif (
                not edge.directional
                and edge.right_alias == alias
                and edge.right_column.upper() == column
            ):
                found.append((edge.left_alias, edge.left_column))
        return found

    def _placement(
        self, alias: str, graph: JoinGraph
    ) -> Optional[Tuple[PushdownDestination, Optional[int]]]:
        """Where a duplicate on `alias` may live, None if nowhere is safe."""
        joins = graph.null_supplying_joins(alias)
        if not joins:
            return PushdownDestination.WHERE, None
        join = graph.single_outer_join(alias)
        if join is None:
            return None
        return PushdownDestination.ON_CLAUSE, join.index

    @staticmethod
    def _constants_on(
        target: Tuple[str, str], predicates: List[PushablePredicate]
    ) -> List[PushablePredicate]:
        alias, column = target
        return [
            p
            for p in predicates
            if p.kind in DUPLICABLE_KINDS
            and p.tables == (alias,)
            and len(p.columns) == 1
            and p.column_names[0].upper() == column
        ]

    @staticmethod
    def _duplicate(
        origin: int,
        alias: str,
        column: str,
        values: List[exp.Expression],
        placement: Tuple[PushdownDestination, Optional[int]],
        graph: JoinGraph,
    ) -> PushablePredicate:
        qualifier = graph.sources[alias].alias
        target = exp.column(column, table=qualifier)
        if len(values) == 1:
            expression: exp.Expression = exp.EQ(this=target, expression=values[0].copy())
            kind = PredicateKind.EQUALITY_CONSTANT
        else:
            expression = exp.In(this=target, expressions=[v.copy() for v in values])
            kind = PredicateKind.IN_LIST

        anchor, join_index = placement
        return PushablePredicate(
            expression=expression,
            kind=kind,
            tables=(alias,),
            columns=(f"{alias}.{column}",),
            anchor=anchor,
            join_index=join_index,
            duplicate_of=origin,
        )

    def _routes_to_overlay(self, predicate: PushablePredicate, overlayable) -> bool:
        return (
            predicate.kind in OVERLAY_PUSHABLE_KINDS
            and predicate.is_single_table
            and predicate.tables[0] in overlayable
            and not predicate.references_any(self.bookkeeping_columns)
        )
