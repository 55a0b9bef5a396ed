"""The `compile` entry point tying the pipeline together."""

from typing import List, Optional, Tuple, Union

from sqlglot import exp, parse
from sqlglot.errors import ParseError

from sqloverlay.catalog.base import ColumnCatalog
from sqloverlay.compiler.dialect import DialectDescriptor, get_dialect
from sqloverlay.compiler.models import CompiledStatement, PredicatePlacement
from sqloverlay.compiler.synthesizer import ScopePlan, SqlSynthesizer, scope_tables
from sqloverlay.errors import MalformedTemplateError, UnsupportedStatementError
from sqloverlay.global_models import BindStyle, ExecutionContext
from sqloverlay.overlay.models import OverlaySettings
from sqloverlay.overlay.planner import OverlayPlanner
from sqloverlay.pushdown.extractor import ScopeExtractor, source_key
from sqloverlay.pushdown.models import JoinGraph, PushablePredicate
from sqloverlay.pushdown.optimizer import PredicateOptimizer, WarningCallback
from sqloverlay.schema.binding import SchemaBindingTable
from sqloverlay.templating.models import BindingContext, Template
from sqloverlay.templating.registry import TemplateRegistry
from sqloverlay.templating.resolver import (
    SLOT_MARKER_RE,
    PlaceholderResolver,
    assemble_text,
    bind_values,
    finalize_slots,
)


class OverlayCompiler:
    """Compiles registered templates into executable SQL.

    The compiler only holds load-time state (registry, schema bindings,
    catalog, settings) and never mutates it, so one instance can serve
    concurrent `compile` calls.

    Args:
        registry: Loaded templates and Column-Set symbols.
        schema_bindings: Physical schema names per role and context.
        catalog: Column and primary key metadata.
        dialect: Target dialect descriptor or preset name.
        overlay_settings: Write-schema status and bookkeeping columns.
        outer_join_on_clause: Move outer-join filters into ON clauses.
        bind_style: Inline literals or positional `?` slots.
        on_warning: Also receives every compile warning as it is raised.

    Example:
        >>> compiler = OverlayCompiler(registry, bindings, catalog, dialect="db2")
        >>> statement = compiler.compile(
        ...     "T1", BindingContext(parameters={"Id": [10683]}),
        ...     ExecutionContext.RUNTIME)
        >>> statement.sql
        'SELECT CATENTRY.CATENTRY_ID FROM DB2INST1.CATENTRY AS CATENTRY WHERE ...'
    """

    def __init__(
        self,
        registry: TemplateRegistry,
        schema_bindings: SchemaBindingTable,
        catalog: ColumnCatalog,
        dialect: Union[DialectDescriptor, str] = "db2",
        overlay_settings: Optional[OverlaySettings] = None,
        outer_join_on_clause: bool = True,
        bind_style: BindStyle = BindStyle.INLINE,
        on_warning: Optional[WarningCallback] = None,
    ):
        self.registry = registry
        self.schema_bindings = schema_bindings
        self.catalog = catalog
        self.dialect = get_dialect(dialect) if isinstance(dialect, str) else dialect
        self.overlay_settings = overlay_settings or OverlaySettings()
        self.outer_join_on_clause = outer_join_on_clause
        self.bind_style = BindStyle(bind_style)
        self.on_warning = on_warning

        self._planner = OverlayPlanner(
            schema_bindings,
            catalog,
            self.overlay_settings,
            union_all=self.dialect.supports_union_all,
        )
        self._resolvers = {
            context: PlaceholderResolver(schema_bindings, catalog, context, registry.symbol)
            for context in ExecutionContext
        }

    def compile(
        self,
        template_name: str,
        binding_context: Optional[BindingContext] = None,
        context: ExecutionContext = ExecutionContext.RUNTIME,
    ) -> CompiledStatement:
        """Compile one template for one execution context.

        Raises:
            TemplateNotFoundError: Unknown template name.
            MissingBindingError: A Parameter, Control or Schema-Role value is
                absent (see `origin`).
            InvalidBindingError: A bound value cannot be rendered in place.
            UnknownColumnSetError: A Column-Set or overlaid table is unknown
                to the catalog.
            SchemaMismatchError: Base and write columns differ.
            CatalogError: An overlaid table has no primary key.
            MalformedTemplateError: The resolved body is not valid SQL.
            UnsupportedStatementError: The body is not a query.
            UnresolvedTagError: Internal contract violation.
        """
        binding_context = binding_context or BindingContext()
        context = ExecutionContext(context)
        template = self.registry.get(template_name)
        warnings: List[str] = []

        def warn(message: str) -> None:
            warnings.append(message)
            if self.on_warning is not None:
                self.on_warning(message)

        tree = self._parse(template, context, binding_context)
        slots = bind_values(tree, binding_context, self.bind_style)

        optimizer = PredicateOptimizer(
            bookkeeping_columns=self.overlay_settings.bookkeeping,
            workspace=context == ExecutionContext.WORKSPACE,
            outer_join_on_clause=self.outer_join_on_clause,
            on_warning=warn,
        )
        extractor = ScopeExtractor(
            {cte.alias_or_name for cte in tree.find_all(exp.CTE)}
        )

        plans: List[ScopePlan] = []
        placements: List[PredicatePlacement] = []
        overlaid: List[str] = []

        for scope, select in enumerate(list(tree.find_all(exp.Select))):
            predicates, graph = extractor.extract(select)
            planned = optimizer.plan(predicates, graph)
            plan = ScopePlan(select=select, predicates=planned)

            for node in scope_tables(select):
                key = source_key(node.alias_or_name)
                source = graph.sources.get(key)
                if source is None or not source.overlayable:
                    continue
                pushed = [p for p in planned if p.overlay_alias == key]
                overlay = self._planner.plan_overlay(
                    node.name, context, pushed, alias=node.alias_or_name
                )
                plan.overlays.append((node, overlay))
                if node.name not in overlaid:
                    overlaid.append(node.name)

            placements.extend(self._placements(scope, planned, graph))
            plans.append(plan)

        sql = SqlSynthesizer(self.dialect).synthesize(tree, plans)
        sql, parameter_order = finalize_slots(sql, slots)

        return CompiledStatement(
            template_name=template.name,
            base_table=template.base_table,
            context=context,
            dialect=self.dialect.name,
            sql=sql,
            parameter_order=parameter_order,
            overlaid_tables=overlaid,
            pushed_predicates=placements,
            warnings=warnings,
        )

    def _parse(
        self,
        template: Template,
        context: ExecutionContext,
        binding_context: BindingContext,
    ) -> exp.Expression:
        variant = template.variant_for(context)
        resolver = self._resolvers[context]
        resolved = resolver.resolve_fragment(variant.fragment, binding_context)
        text = assemble_text(variant.fragment, resolved)

        try:
            statements = [s for s in parse(text, dialect=self.dialect.sqlglot_dialect) if s is not None]
        except ParseError as e:
            raise MalformedTemplateError(
                f"Resolved SQL does not parse: {e}",
                template_name=template.name,
                line=variant.line,
            ) from e

        if len(statements) != 1:
            raise MalformedTemplateError(
                f"Expected exactly one statement, found {len(statements)}",
                template_name=template.name,
                line=variant.line,
            )

        tree = statements[0]
        if not isinstance(tree, exp.Query):
            raise UnsupportedStatementError(
                f"Template '{template.name}' is a {tree.key.upper()} statement; "
                "only queries can be compiled"
            )
        return tree

    def _placements(
        self, scope: int, planned: List[PushablePredicate], graph: JoinGraph
    ) -> List[PredicatePlacement]:
        placements = []
        for predicate in planned:
            text = SLOT_MARKER_RE.sub("?", predicate.sql(self.dialect.sqlglot_dialect))
            placements.append(
                PredicatePlacement(
                    scope=scope,
                    predicate=text,
                    kind=predicate.kind,
                    destination=predicate.destination,
                    tables=[self._display(t, graph) for t in predicate.tables],
                    join_index=predicate.join_index,
                    overlay=(
                        self._display(predicate.overlay_alias, graph)
                        if predicate.overlay_alias
                        else None
                    ),
                    duplicated=predicate.duplicate_of is not None,
                )
            )
        return placements

    @staticmethod
    def _display(key: str, graph: JoinGraph) -> str:
        source = graph.sources.get(key)
        return source.alias if source is not None else key


def compile_template(
    compiler: OverlayCompiler,
    template_name: str,
    parameters: Optional[dict] = None,
    controls: Optional[dict] = None,
    context: ExecutionContext = ExecutionContext.RUNTIME,
) -> Tuple[str, list]:
    """Shorthand returning `(sql, parameters)` for a DB-API cursor."""
    statement = compiler.compile(
        template_name,
        BindingContext(parameters=parameters or {}, controls=controls or {}),
        context,
    )
    return statement.sql, statement.parameters
