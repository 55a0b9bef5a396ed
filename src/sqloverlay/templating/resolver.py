"""Resolution of template tags against a binding context.

Schema-Role and Column-Set tags resolve to SQL text directly. Parameter and
Control tags resolve to a typed value marker (a string literal that cannot
collide with authored SQL); once the body is parsed, `bind_values` swaps each
marker for the dialect literals of the bound values, or for positional slot
markers when parameters are bound by the driver. Keeping values out of the
text until the AST exists means lists can be spliced into IN-lists and a list
landing in a scalar position is caught instead of producing broken SQL.
"""

import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlglot import exp

from sqloverlay.catalog.base import ColumnCatalog
from sqloverlay.errors import (
    BindingOrigin,
    InvalidBindingError,
    MissingBindingError,
    UnknownColumnSetError,
    UnresolvedTagError,
)
from sqloverlay.global_models import BindStyle, ExecutionContext, SchemaRole, TagKind
from sqloverlay.schema.binding import SchemaBindingTable
from sqloverlay.templating.models import (
    BindingContext,
    BindSlot,
    ColumnSetSymbol,
    Fragment,
    Tag,
)

MARKER_PREFIX = "@@sqloverlay:"
SLOT_MARKER_RE = re.compile(r"'@@sqloverlay:slot:(\d+)'")
_VALUE_MARKER_RE = re.compile(r"^@@sqloverlay:(parameter|control):(.+)$")

SymbolLookup = Callable[[str], Optional[ColumnSetSymbol]]


def value_marker(kind: TagKind, name: str) -> str:
    """SQL text standing in for a Parameter or Control tag."""
    return f"'{MARKER_PREFIX}{kind.value}:{name}'"


def slot_marker(position: int) -> exp.Literal:
    return exp.Literal.string(f"{MARKER_PREFIX}slot:{position}")


def is_marker(node: exp.Expression) -> bool:
    """True for any value or slot marker literal."""
    return (
        isinstance(node, exp.Literal)
        and node.is_string
        and node.this.startswith(MARKER_PREFIX)
    )


def literal_for(value: Any) -> exp.Expression:
    """Build the SQL literal for a Python scalar.

    Raises:
        InvalidBindingError: Unsupported type, or a string that contains the
            reserved marker prefix.
    """
    if value is None:
        return exp.Null()
    if isinstance(value, bool):
        return exp.Boolean(this=value)
    if isinstance(value, (int, float)):
        return exp.Literal.number(value)
    if isinstance(value, str):
        if MARKER_PREFIX in value:
            raise InvalidBindingError(
                f"Binding value {value!r} contains the reserved prefix {MARKER_PREFIX!r}"
            )
        return exp.Literal.string(value)
    raise InvalidBindingError(
        f"Unsupported binding value {value!r} of type {type(value).__name__}"
    )


class PlaceholderResolver:
    """Resolves tags for one execution context.

    The resolver holds only load-time, read-only collaborators, so a single
    instance per context can serve concurrent requests.
    """

    def __init__(
        self,
        schema_bindings: SchemaBindingTable,
        catalog: ColumnCatalog,
        context: ExecutionContext,
        symbols: Optional[SymbolLookup] = None,
    ):
        self.schema_bindings = schema_bindings
        self.catalog = catalog
        self.context = context
        self._symbols = symbols or (lambda name: None)

    def resolve(self, tag: Tag, binding_context: BindingContext) -> str:
        """Resolve one tag to SQL text.

        Raises:
            MissingBindingError: Parameter or Control value absent.
            SchemaBindingError: Schema role not configured for the context.
            UnknownColumnSetError: Column-Set cannot be resolved.
        """
        if tag.kind == TagKind.PARAMETER:
            self._require(tag, binding_context.parameters, BindingOrigin.CALLER)
            return value_marker(tag.kind, tag.name)

        if tag.kind == TagKind.CONTROL:
            self._require(tag, binding_context.controls, BindingOrigin.CONFIGURATION)
            return value_marker(tag.kind, tag.name)

        if tag.kind == TagKind.SCHEMA_ROLE:
            return self.schema_bindings.binding_for(tag.role, self.context)

        columns = self.column_set(tag.name)
        if tag.qualifier:
            return ", ".join(f"{tag.qualifier}.{column}" for column in columns)
        return ", ".join(columns)

    def resolve_fragment(
        self, fragment: Fragment, binding_context: BindingContext
    ) -> Dict[Tag, str]:
        """Resolve every distinct tag of a fragment."""
        resolved: Dict[Tag, str] = {}
        for tag in fragment.tags:
            if tag not in resolved:
                resolved[tag] = self.resolve(tag, binding_context)
        return resolved

    def column_set(self, name: str) -> List[str]:
        """Physical columns of a Column-Set symbol.

        Wildcard symbols, and names with no symbol at all, take every catalog
        column of the table in the schema the context reads from.

        Raises:
            UnknownColumnSetError: No symbol and no catalog entry, an empty
                catalog entry, or a symbol naming columns the catalog lacks.
        """
        symbol = self._symbols(name)
        table = symbol.table if symbol is not None else name
        schema = self.schema_bindings.binding_for(SchemaRole.BASE, self.context)
        catalog_columns = self.catalog.columns_for(table, schema)

        if symbol is None or symbol.is_wildcard:
            if not catalog_columns:
                raise UnknownColumnSetError(
                    f"Column set '{name}' has no catalog entry for table "
                    f"'{table}' in schema '{schema}'"
                )
            return catalog_columns

        if catalog_columns:
            known = {column.upper() for column in catalog_columns}
            missing = [c for c in symbol.columns if c.upper() not in known]
            if missing:
                raise UnknownColumnSetError(
                    f"Column set '{name}' names columns missing from "
                    f"{schema}.{table}: {', '.join(missing)}"
                )
        return list(symbol.columns)

    @staticmethod
    def _require(tag: Tag, values: Dict[str, Any], origin: BindingOrigin) -> None:
        if tag.name not in values:
            source = "caller" if origin == BindingOrigin.CALLER else "environment"
            raise MissingBindingError(
                f"No {tag.kind.value} value bound for {tag.raw} ({source} binding)",
                tag_name=tag.name,
                origin=origin,
            )


def assemble_text(fragment: Fragment, resolved: Dict[Tag, str]) -> str:
    """Join fragment text with resolved tag text.

    Raises:
        UnresolvedTagError: If a tag has no resolution.
    """
    pieces = []
    for part in fragment.parts:
        if isinstance(part, Tag):
            if part not in resolved:
                raise UnresolvedTagError(f"Tag {part.raw} reached assembly unresolved")
            pieces.append(resolved[part])
        else:
            pieces.append(part)
    return "".join(pieces)


def bind_values(
    expression: exp.Expression,
    binding_context: BindingContext,
    bind_style: BindStyle = BindStyle.INLINE,
) -> List[Tuple[str, Any]]:
    """Replace value markers in a parsed statement.

    Lists are spliced into the enclosing expression list (an IN-list, a
    tuple, function arguments). Control values are always inlined; with
    `BindStyle.QMARK` each Parameter value becomes a slot marker that
    `finalize_slots` turns into `?`.

    Args:
        expression: Parsed statement, modified in place.
        binding_context: Values for the markers.
        bind_style: Inline literals or positional slots.

    Returns:
        Slot table: (parameter name, value) indexed by slot number.

    Raises:
        MissingBindingError: A bound list is empty.
        InvalidBindingError: A multi-value list sits in a scalar position, or
            a value has an unsupported type.
    """
    slots: List[Tuple[str, Any]] = []

    markers = [node for node in expression.find_all(exp.Literal) if is_marker(node)]
    for node in markers:
        match = _VALUE_MARKER_RE.match(node.this)
        if not match:
            continue
        kind = TagKind(match.group(1))
        name = match.group(2)

        if kind == TagKind.PARAMETER:
            raw = binding_context.parameters[name]
            origin = BindingOrigin.CALLER
        else:
            raw = binding_context.controls[name]
            origin = BindingOrigin.CONFIGURATION

        values = list(raw) if isinstance(raw, (list, tuple)) else [raw]
        if not values:
            raise MissingBindingError(
                f"Empty value list bound for {kind.value} '{name}'",
                tag_name=name,
                origin=origin,
            )

        replacements: List[exp.Expression] = []
        for value in values:
            if kind == TagKind.PARAMETER and bind_style == BindStyle.QMARK:
                literal_for(value)  # rejects unsupported types early
                replacements.append(slot_marker(len(slots)))
                slots.append((name, value))
            else:
                replacements.append(literal_for(value))

        _splice(node, replacements, name)

    return slots


def _splice(node: exp.Expression, replacements: List[exp.Expression], name: str) -> None:
    if len(replacements) == 1:
        node.replace(replacements[0])
        return

    parent = node.parent
    key = node.arg_key
    siblings = parent.args.get(key) if parent is not None else None
    if not isinstance(siblings, list):
        raise InvalidBindingError(
            f"'{name}' is bound to {len(replacements)} values but is used "
            "where a single value is expected"
        )

    index = next(i for i, item in enumerate(siblings) if item is node)
    parent.set(key, siblings[:index] + replacements + siblings[index + 1 :])


def finalize_slots(sql: str, slots: List[Tuple[str, Any]]) -> Tuple[str, List[BindSlot]]:
    """Turn slot markers in rendered SQL into `?` in textual order.

    A slot that was duplicated by pushdown appears once per occurrence.

    Raises:
        UnresolvedTagError: If a value marker, or a slot marker that was never
            issued, survived to this point.
    """
    order: List[BindSlot] = []

    def replace(match: "re.Match[str]") -> str:
        position = int(match.group(1))
        if position >= len(slots):
            return match.group(0)
        name, value = slots[position]
        order.append(BindSlot(position=len(order), name=name, value=value))
        return "?"

    final_sql = SLOT_MARKER_RE.sub(replace, sql)
    if MARKER_PREFIX in final_sql:
        raise UnresolvedTagError("A value marker survived SQL synthesis")
    return final_sql, order
