"""Catalog registry with plugin discovery via entry points.

This module handles discovering and instantiating column catalog providers
from Python entry points, allowing third-party packages to register custom
catalogs (e.g. one backed by a live database's system tables).
"""

from importlib.metadata import entry_points
from typing import Dict, List, Type

from sqloverlay.catalog.base import CatalogError, ColumnCatalog
from sqloverlay.catalog.ddl import DdlCatalog
from sqloverlay.catalog.memory import MemoryCatalog

ENTRY_POINT_GROUP = "sqloverlay.catalogs"

_BUILTIN_CATALOGS: Dict[str, Type[ColumnCatalog]] = {
    "ddl": DdlCatalog,
    "memory": MemoryCatalog,
}

# Cache for discovered catalogs
_catalog_cache: Dict[str, Type[ColumnCatalog]] = {}
_discovery_done: bool = False


def _discover_catalogs() -> None:
    """Discover catalogs from entry points.

    Built-in providers are always available; entry points in the
    'sqloverlay.catalogs' group are added on top.
    """
    global _discovery_done

    if _discovery_done:
        return

    for name, catalog_class in _BUILTIN_CATALOGS.items():
        _catalog_cache.setdefault(name, catalog_class)

    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            catalog_class = ep.load()
        except Exception:
            # Skip catalogs that fail to load
            # This allows graceful handling of missing optional dependencies
            continue
        if isinstance(catalog_class, type) and issubclass(catalog_class, ColumnCatalog):
            _catalog_cache.setdefault(ep.name, catalog_class)

    _discovery_done = True


def get_catalog(name: str) -> ColumnCatalog:
    """Get a catalog instance by name.

    Args:
        name: The name of the catalog (e.g., "ddl", "memory").

    Returns:
        A new, unconfigured instance of the requested catalog.

    Raises:
        CatalogError: If the catalog is not found.
    """
    _discover_catalogs()

    if name not in _catalog_cache:
        available = ", ".join(sorted(_catalog_cache.keys()))
        raise CatalogError(
            f"Unknown catalog '{name}'. Available catalogs: {available or 'none'}"
        )

    return _catalog_cache[name]()


def list_catalogs() -> List[str]:
    """List all available catalog names.

    Returns:
        A sorted list of available catalog names.
    """
    _discover_catalogs()
    return sorted(_catalog_cache.keys())


def register_catalog(name: str, catalog_class: Type[ColumnCatalog]) -> None:
    """Register a catalog programmatically.

    This is primarily useful for testing or for registering catalogs
    that aren't installed via entry points.

    Args:
        name: The name to register the catalog under.
        catalog_class: The catalog class to register.

    Raises:
        ValueError: If catalog_class is not a subclass of ColumnCatalog.
    """
    if not isinstance(catalog_class, type) or not issubclass(
        catalog_class, ColumnCatalog
    ):
        raise ValueError(f"{catalog_class} must be a subclass of ColumnCatalog")

    _discover_catalogs()
    _catalog_cache[name] = catalog_class


def clear_registry() -> None:
    """Clear the catalog registry.

    This is primarily useful for testing. Built-in providers come back on
    the next lookup.
    """
    global _discovery_done
    _catalog_cache.clear()
    _discovery_done = False
