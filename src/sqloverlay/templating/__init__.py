"""Template documents: parsing, registry, tag resolution and bindings.

Example:
    >>> from sqloverlay.templating import TemplateRegistry
    >>> registry = TemplateRegistry.from_texts([document_text])
    >>> registry.get("CatalogEntryById").base_table
    'CATENTRY'
"""

from sqloverlay.templating.bindings import (
    load_binding_context,
    load_bindings_file,
    load_env_controls,
    merge_bindings,
    parse_cli_bindings,
)
from sqloverlay.templating.models import (
    BindingContext,
    BindSlot,
    ColumnSetSymbol,
    Fragment,
    SkippedTemplate,
    Tag,
    Template,
    Variant,
)
from sqloverlay.templating.parser import parse_document, parse_fragment
from sqloverlay.templating.registry import TemplateRegistry
from sqloverlay.templating.resolver import PlaceholderResolver

__all__ = [
    # Models
    "BindingContext",
    "BindSlot",
    "ColumnSetSymbol",
    "Fragment",
    "SkippedTemplate",
    "Tag",
    "Template",
    "Variant",
    # Parsing and lookup
    "parse_document",
    "parse_fragment",
    "TemplateRegistry",
    "PlaceholderResolver",
    # Binding loading
    "load_binding_context",
    "load_bindings_file",
    "parse_cli_bindings",
    "load_env_controls",
    "merge_bindings",
]
