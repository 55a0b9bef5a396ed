"""Column catalog populated from an in-memory mapping."""

from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError

from sqloverlay.catalog.base import CatalogError, ColumnCatalog, TableEntry, catalog_key


class MemoryCatalog(ColumnCatalog):
    """Catalog built from `{"SCHEMA.TABLE": {"columns": [...], "primary_key": [...]}}`.

    Keys may omit the schema, in which case the entry applies to every
    schema without a more specific entry.

    Example:
        >>> catalog = MemoryCatalog({"CATENTRY": {"columns": ["CATENTRY_ID"],
        ...                                       "primary_key": ["CATENTRY_ID"]}})
        >>> catalog.columns_for("catentry", "DB2INST1")
        ['CATENTRY_ID']
    """

    def __init__(self, tables: Optional[Mapping[str, Any]] = None) -> None:
        self._entries: Dict[str, TableEntry] = {}
        if tables:
            self._load(tables)

    @property
    def name(self) -> str:
        """Return the catalog provider name."""
        return "memory"

    def configure(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Load tables from a `tables` mapping in the provider config.

        Raises:
            CatalogError: If an entry is not a valid table declaration.
        """
        config = config or {}
        self._load(config.get("tables") or {})

    def _load(self, tables: Mapping[str, Any]) -> None:
        for key, value in tables.items():
            try:
                entry = (
                    value if isinstance(value, TableEntry) else TableEntry(**value)
                )
            except (TypeError, ValidationError) as e:
                raise CatalogError(f"Invalid catalog entry for '{key}': {e}") from e
            self._entries[catalog_key(key)] = entry

    def get_entry(self, key: str) -> Optional[TableEntry]:
        return self._entries.get(key)
