"""Column catalog populated from CREATE TABLE statements."""

from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlglot import exp, parse
from sqlglot.errors import ParseError

from sqloverlay.catalog.base import CatalogError, ColumnCatalog, TableEntry, catalog_key
from sqloverlay.utils.file_utils import expand_paths, read_template_file


def parse_ddl_to_catalog(ddl: str, dialect: Optional[str] = None) -> Dict[str, TableEntry]:
    """Extract table entries from DDL statements.

    Parses CREATE TABLE statements and extracts column names in declaration
    order along with column-level and table-level PRIMARY KEY constraints.
    Statements other than CREATE TABLE are ignored.

    Args:
        ddl: SQL string containing one or more CREATE TABLE statements
        dialect: SQL dialect for parsing

    Returns:
        Mapping of catalog keys ("SCHEMA.TABLE" or "TABLE") to entries,
        e.g. {"DB2INST1.CATENTRY": TableEntry(columns=[...], primary_key=[...])}
    """
    entries: Dict[str, TableEntry] = {}
    expressions = parse(ddl, dialect=dialect)

    for expr in expressions:
        if expr is None:
            continue
        if not isinstance(expr, exp.Create):
            continue

        # Schema node wraps the table and column definitions
        target = expr.this
        if not isinstance(target, exp.Schema):
            continue

        columns: List[str] = []
        primary_key: List[str] = []
        for item in target.expressions:
            if isinstance(item, exp.ColumnDef):
                columns.append(item.name)
                if item.find(exp.PrimaryKeyColumnConstraint) is not None:
                    primary_key.append(item.name)
            else:
                for constraint in item.find_all(exp.PrimaryKey):
                    primary_key.extend(
                        ident.name for ident in constraint.find_all(exp.Identifier)
                    )

        table = target.this
        if not isinstance(table, exp.Table) or not columns:
            continue

        entries[catalog_key(table.name, table.db or None)] = TableEntry(
            columns=columns, primary_key=primary_key
        )

    return entries


class DdlCatalog(ColumnCatalog):
    """Catalog read from DDL files.

    Configuration:
        - ddl_files: list of DDL file paths
        - ddl_folder: directory whose *.sql files are read in name order
        - dialect: sqlglot dialect used to parse the DDL

    Example:
        >>> catalog = DdlCatalog()
        >>> catalog.load_ddl("CREATE TABLE CATENTRY (CATENTRY_ID BIGINT PRIMARY KEY)")
        >>> catalog.primary_key("CATENTRY")
        ['CATENTRY_ID']
    """

    def __init__(self) -> None:
        self._entries: Dict[str, TableEntry] = {}

    @property
    def name(self) -> str:
        """Return the catalog provider name."""
        return "ddl"

    def configure(self, config: Optional[Dict[str, Any]] = None) -> None:
        """Load the configured DDL files.

        Raises:
            CatalogError: If a file is missing or its DDL cannot be parsed.
        """
        config = config or {}
        dialect = config.get("dialect")

        paths = [Path(p) for p in config.get("ddl_files") or []]
        if config.get("ddl_folder"):
            paths.append(Path(config["ddl_folder"]))

        try:
            files = expand_paths(paths, "*.sql")
        except FileNotFoundError as e:
            raise CatalogError(str(e)) from e

        for file_path in files:
            try:
                self.load_ddl(read_template_file(file_path), dialect=dialect)
            except CatalogError as e:
                raise CatalogError(f"{file_path}: {e}") from e

    def load_ddl(self, ddl: str, dialect: Optional[str] = None) -> None:
        """Add the tables declared in a DDL string.

        Raises:
            CatalogError: If the DDL cannot be parsed.
        """
        try:
            self._entries.update(parse_ddl_to_catalog(ddl, dialect=dialect))
        except ParseError as e:
            raise CatalogError(f"Failed to parse DDL: {e}") from e

    def get_entry(self, key: str) -> Optional[TableEntry]:
        return self._entries.get(key)
