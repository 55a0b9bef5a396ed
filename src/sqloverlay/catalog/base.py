"""Base classes for the column catalog.

The catalog answers two questions for the compiler: which physical columns a
table has in a given schema, and which of them form its primary key. Column
names keep their declared spelling and order; lookups are case-insensitive.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CatalogError(Exception):
    """Exception raised when catalog operations fail."""

    pass


class TableEntry(BaseModel):
    """Declared columns and primary key of one table."""

    columns: List[str] = Field(default_factory=list)
    primary_key: List[str] = Field(default_factory=list)


class ColumnCatalog(ABC):
    """Abstract base class for column catalog providers.

    Subclasses only implement `name` and `get_entry`; lookups by table and
    schema go through `columns_for` and `primary_key`, which try the
    schema-qualified entry first and fall back to the unqualified one.

    Example:
        >>> class MyCatalog(ColumnCatalog):
        ...     @property
        ...     def name(self) -> str:
        ...         return "my-catalog"
        ...
        ...     def get_entry(self, key):
        ...         return TableEntry(columns=["ID"], primary_key=["ID"])
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the catalog provider name.

        Returns:
            The unique name of this catalog provider.
        """
        pass

    @abstractmethod
    def get_entry(self, key: str) -> Optional[TableEntry]:
        """Fetch the entry for a normalized key.

        Args:
            key: Upper-cased "SCHEMA.TABLE" or "TABLE".

        Returns:
            The TableEntry, or None when the key is not declared.
        """
        pass

    def configure(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Configure the catalog with provider-specific settings.

        Args:
            config: Provider-specific configuration dictionary.

        Raises:
            CatalogError: If required configuration is missing or invalid.
        """
        pass

    def lookup(self, table: str, schema: Optional[str] = None) -> Optional[TableEntry]:
        """Find the entry for a table, preferring the schema-qualified one."""
        if schema:
            entry = self.get_entry(catalog_key(table, schema))
            if entry is not None:
                return entry
        return self.get_entry(catalog_key(table))

    def columns_for(self, table: str, schema: Optional[str] = None) -> Optional[List[str]]:
        """Declared columns of a table, or None if the table is unknown."""
        entry = self.lookup(table, schema)
        if entry is None or not entry.columns:
            return None
        return list(entry.columns)

    def primary_key(self, table: str, schema: Optional[str] = None) -> Optional[List[str]]:
        """Primary key columns of a table, or None if none are declared."""
        entry = self.lookup(table, schema)
        if entry is None or not entry.primary_key:
            return None
        return list(entry.primary_key)


def catalog_key(table: str, schema: Optional[str] = None) -> str:
    """Normalize a table reference into a catalog key."""
    if schema:
        return f"{schema}.{table}".upper()
    return table.upper()
