"""Statement synthesis: applies pushdown plans and overlays, then renders."""

from typing import Dict, List, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field
from sqlglot import exp

from sqloverlay.compiler.dialect import DialectDescriptor
from sqloverlay.overlay.models import EntityOverlay
from sqloverlay.pushdown.extractor import conjuncts, join_conjuncts
from sqloverlay.pushdown.models import PushablePredicate, PushdownDestination

CTE_SUFFIX = "_OVERLAY"


class ScopePlan(BaseModel):
    """Everything decided for one SELECT scope."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    select: exp.Select
    predicates: List[PushablePredicate] = Field(default_factory=list)
    overlays: List[Tuple[exp.Table, EntityOverlay]] = Field(default_factory=list)


def scope_tables(select: exp.Select) -> List[exp.Table]:
    """Table references appearing directly in a SELECT's FROM and JOINs."""
    tables = []
    from_clause = select.args.get("from")
    if isinstance(from_clause, exp.From) and isinstance(from_clause.this, exp.Table):
        tables.append(from_clause.this)
    for join in select.args.get("joins") or []:
        if isinstance(join.this, exp.Table):
            tables.append(join.this)
    return tables


def _table_alias(name: str) -> exp.TableAlias:
    return exp.TableAlias(this=exp.to_identifier(name))


class SqlSynthesizer:
    """Rewrites a parsed, bound statement for one dialect.

    Overlays are inlined as aliased subqueries, or hoisted into a WITH
    preamble when the dialect prefers and supports CTEs. Identical overlay
    definitions share one CTE.
    """

    def __init__(self, dialect: DialectDescriptor):
        self.dialect = dialect

    def synthesize(self, tree: exp.Expression, plans: List[ScopePlan]) -> str:
        for plan in plans:
            self.apply_pushdown(plan.select, plan.predicates)
        overlays = [pair for plan in plans for pair in plan.overlays]
        tree = self.substitute(tree, overlays)
        return self.render(tree)

    def apply_pushdown(self, select: exp.Select, predicates: List[PushablePredicate]) -> None:
        """Rebuild WHERE and ON clauses from planned placements.

        The statement is left untouched when every predicate stays in WHERE
        and nothing was derived.
        """
        moved = any(
            p.anchor != PushdownDestination.WHERE or p.duplicate_of is not None
            for p in predicates
        )
        if not moved:
            return

        joins = select.args.get("joins") or []
        on_additions: Dict[int, List[exp.Expression]] = {}
        where_parts: List[exp.Expression] = []

        for predicate in predicates:
            if predicate.anchor == PushdownDestination.ON_CLAUSE and predicate.join_index is not None:
                on_additions.setdefault(predicate.join_index, []).append(predicate.expression)
            else:
                where_parts.append(predicate.expression)

        for index, additions in on_additions.items():
            join = joins[index]
            existing = conjuncts(join.args.get("on"))
            seen = {part.sql() for part in existing}
            parts = list(existing)
            for addition in additions:
                if addition.sql() not in seen:
                    seen.add(addition.sql())
                    parts.append(addition)
            join.set("on", join_conjuncts(parts))

        condition = join_conjuncts(where_parts)
        select.set("where", exp.Where(this=condition) if condition is not None else None)

    def substitute(
        self, tree: exp.Expression, overlays: List[Tuple[exp.Table, EntityOverlay]]
    ) -> exp.Expression:
        """Replace each table reference with its overlay."""
        hoisted: List[exp.CTE] = []
        names_by_definition: Dict[str, str] = {}
        taken = self._taken_names(tree)

        for node, overlay in overlays:
            if overlay.is_identity:
                relation = overlay.relation.copy()
                relation.set("alias", _table_alias(overlay.alias))
                node.replace(relation)
                continue

            if not self.dialect.use_cte:
                node.replace(
                    exp.Subquery(this=overlay.relation.copy(), alias=_table_alias(overlay.alias))
                )
                continue

            definition = overlay.definition_sql(self.dialect.sqlglot_dialect)
            name = names_by_definition.get(definition)
            if name is None:
                name = self._cte_name(overlay.table, taken)
                names_by_definition[definition] = name
                hoisted.append(exp.CTE(this=overlay.relation.copy(), alias=_table_alias(name)))
            node.replace(exp.table_(name, alias=overlay.alias))

        if hoisted:
            with_ = tree.args.get("with")
            if with_ is not None:
                with_.set("expressions", hoisted + list(with_.expressions))
            else:
                tree.set("with", exp.With(expressions=hoisted))

        return tree

    def render(self, tree: exp.Expression) -> str:
        return tree.sql(**self.dialect.generator_options())

    @staticmethod
    def _taken_names(tree: exp.Expression) -> Set[str]:
        names = {table.name.upper() for table in tree.find_all(exp.Table)}
        names.update(cte.alias_or_name.upper() for cte in tree.find_all(exp.CTE))
        return names

    @staticmethod
    def _cte_name(table: str, taken: Set[str]) -> str:
        base = f"{table.upper()}{CTE_SUFFIX}"
        name = base
        counter = 2
        while name in taken:
            name = f"{base}_{counter}"
            counter += 1
        taken.add(name)
        return name
