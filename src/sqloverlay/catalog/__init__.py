"""Column catalog for resolving Column-Sets and overlay column lists.

This module provides a plugin system for column catalog providers. Two
providers are built in: `ddl` reads CREATE TABLE statements, `memory` takes
a mapping (typically from sqloverlay.toml).

Example:
    >>> from sqloverlay.catalog import get_catalog, list_catalogs
    >>> print(list_catalogs())
    ['ddl', 'memory']
    >>> catalog = get_catalog("ddl")
    >>> catalog.configure({"ddl_folder": "schema/"})
    >>> catalog.columns_for("CATENTRY", "DB2INST1")
"""

from sqloverlay.catalog.base import CatalogError, ColumnCatalog, TableEntry
from sqloverlay.catalog.ddl import DdlCatalog, parse_ddl_to_catalog
from sqloverlay.catalog.memory import MemoryCatalog
from sqloverlay.catalog.registry import (
    clear_registry,
    get_catalog,
    list_catalogs,
    register_catalog,
)

__all__ = [
    "CatalogError",
    "ColumnCatalog",
    "TableEntry",
    "DdlCatalog",
    "MemoryCatalog",
    "parse_ddl_to_catalog",
    "get_catalog",
    "list_catalogs",
    "register_catalog",
    "clear_registry",
]
