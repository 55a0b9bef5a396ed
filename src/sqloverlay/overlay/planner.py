"""Overlay merge planning.

A workspace overlay for table T reads

    SELECT B.<cols> FROM <BASE>.T B
     WHERE NOT EXISTS (SELECT 1 FROM <WRITE>.T W WHERE W.<pk> = B.<pk>)
       [AND <pushed filters on B>]
    UNION ALL
    SELECT W.<cols> FROM <WRITE>.T W
     WHERE W.<status> <> '<deleted>'
       [AND <pushed filters on W>]

so a write row always shadows its base row, and a deleted write row removes
the key altogether.
"""

from typing import Iterable, List, Optional

from sqlglot import exp

from sqloverlay.catalog.base import CatalogError, ColumnCatalog
from sqloverlay.errors import SchemaMismatchError, UnknownColumnSetError
from sqloverlay.global_models import ExecutionContext, SchemaRole
from sqloverlay.overlay.models import EntityOverlay, OverlaySettings
from sqloverlay.pushdown.extractor import join_conjuncts
from sqloverlay.pushdown.models import PushablePredicate
from sqloverlay.schema.binding import SchemaBindingTable

BASE_ALIAS = "B"
WRITE_ALIAS = "W"


class OverlayPlanner:
    """Builds `EntityOverlay`s from the catalog and schema bindings.

    Args:
        schema_bindings: Role to schema mapping.
        catalog: Column and primary key lookup.
        settings: Status column and bookkeeping columns of the write schema.
        union_all: Combine branches with UNION ALL (plain UNION otherwise).
    """

    def __init__(
        self,
        schema_bindings: SchemaBindingTable,
        catalog: ColumnCatalog,
        settings: Optional[OverlaySettings] = None,
        union_all: bool = True,
    ):
        self.schema_bindings = schema_bindings
        self.catalog = catalog
        self.settings = settings or OverlaySettings()
        self.union_all = union_all

    def plan_overlay(
        self,
        table: str,
        context: ExecutionContext,
        pushed: Iterable[PushablePredicate] = (),
        alias: Optional[str] = None,
    ) -> EntityOverlay:
        """Plan the relation replacing a reference to `table`.

        Args:
            table: Unqualified table name as written in the template.
            context: Execution context of the request.
            pushed: Predicates routed to this overlay. Predicates over
                bookkeeping columns are not injected.
            alias: Alias of the reference; defaults to the table name.

        Raises:
            UnknownColumnSetError: The base table is not in the catalog.
            SchemaMismatchError: Base and write columns differ.
            CatalogError: The table has no primary key.
            SchemaBindingError: Workspace schemas are not configured.
        """
        alias = alias or table

        if context == ExecutionContext.RUNTIME:
            schema = self.schema_bindings.binding_for(SchemaRole.BASE, context)
            return EntityOverlay(
                table=table,
                alias=alias,
                context=context,
                relation=exp.table_(table, db=schema),
                base_schema=schema,
            )

        base_schema = self.schema_bindings.binding_for(SchemaRole.BASE, context)
        write_schema = self.schema_bindings.binding_for(SchemaRole.WRITE, context)
        columns = self._columns(table, base_schema, write_schema)

        key_columns = self.catalog.primary_key(table, base_schema)
        if not key_columns:
            raise CatalogError(
                f"Table {base_schema}.{table} has no primary key declared and "
                "cannot be overlaid"
            )

        filters = [
            predicate.expression
            for predicate in pushed
            if not predicate.references_any(self.settings.bookkeeping)
        ]

        relation = exp.Union(
            this=self._base_branch(table, base_schema, write_schema, columns, key_columns, filters),
            expression=self._survivor_branch(table, write_schema, columns, filters),
            distinct=not self.union_all,
        )

        return EntityOverlay(
            table=table,
            alias=alias,
            context=context,
            relation=relation,
            columns=columns,
            key_columns=key_columns,
            base_schema=base_schema,
            write_schema=write_schema,
            pushed=[f.copy() for f in filters],
        )

    def _columns(self, table: str, base_schema: str, write_schema: str) -> List[str]:
        base_columns = self.catalog.columns_for(table, base_schema)
        if not base_columns:
            raise UnknownColumnSetError(
                f"No catalog entry for {base_schema}.{table}"
            )

        write_columns = self.catalog.columns_for(table, write_schema)
        if not write_columns:
            raise SchemaMismatchError(
                f"No catalog entry for {write_schema}.{table} to match "
                f"{base_schema}.{table}",
                table=table,
            )

        bookkeeping = self.settings.bookkeeping
        base_set = {c.upper() for c in base_columns} - bookkeeping
        write_set = {c.upper() for c in write_columns} - bookkeeping
        if base_set != write_set:
            details = []
            if base_set - write_set:
                details.append(f"only in {base_schema}: {', '.join(sorted(base_set - write_set))}")
            if write_set - base_set:
                details.append(f"only in {write_schema}: {', '.join(sorted(write_set - base_set))}")
            raise SchemaMismatchError(
                f"Column sets of {base_schema}.{table} and {write_schema}.{table} "
                f"differ ({'; '.join(details)})",
                table=table,
            )

        shared = {c.upper() for c in write_columns}
        return [c for c in base_columns if c.upper() in shared]

    def _base_branch(
        self,
        table: str,
        base_schema: str,
        write_schema: str,
        columns: List[str],
        key_columns: List[str],
        filters: List[exp.Expression],
    ) -> exp.Select:
        key_match = join_conjuncts(
            exp.EQ(
                this=exp.column(key, table=WRITE_ALIAS),
                expression=exp.column(key, table=BASE_ALIAS),
            )
            for key in key_columns
        )
        probe = (
            exp.select(exp.Literal.number(1))
            .from_(exp.table_(table, db=write_schema, alias=WRITE_ALIAS))
            .where(key_match)
        )
        conditions = [exp.Not(this=exp.Exists(this=probe))]
        conditions.extend(_requalify(f, BASE_ALIAS) for f in filters)

        return (
            exp.select(*[exp.column(c, table=BASE_ALIAS) for c in columns])
            .from_(exp.table_(table, db=base_schema, alias=BASE_ALIAS))
            .where(join_conjuncts(conditions))
        )

    def _survivor_branch(
        self,
        table: str,
        write_schema: str,
        columns: List[str],
        filters: List[exp.Expression],
    ) -> exp.Select:
        conditions: List[exp.Expression] = [
            exp.NEQ(
                this=exp.column(self.settings.status_column, table=WRITE_ALIAS),
                expression=exp.Literal.string(self.settings.deleted_value),
            )
        ]
        conditions.extend(_requalify(f, WRITE_ALIAS) for f in filters)

        return (
            exp.select(*[exp.column(c, table=WRITE_ALIAS) for c in columns])
            .from_(exp.table_(table, db=write_schema, alias=WRITE_ALIAS))
            .where(join_conjuncts(conditions))
        )


def _requalify(predicate: exp.Expression, alias: str) -> exp.Expression:
    """Copy of a single-table predicate with its columns pointed at `alias`."""
    rewritten = predicate.copy()
    for column in rewritten.find_all(exp.Column):
        column.set("table", exp.to_identifier(alias))
        column.set("db", None)
        column.set("catalog", None)
    return rewritten
