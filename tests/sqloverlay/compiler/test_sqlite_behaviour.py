"""Behavioural tests running compiled statements against SQLite.

The base and write schemas are attached in-memory databases named like the
production schemas, so the compiled SQL runs unchanged.
"""

import sqlite3

import pytest

from sqloverlay.catalog.ddl import DdlCatalog
from sqloverlay.compiler import OverlayCompiler
from sqloverlay.global_models import BindStyle, ExecutionContext
from sqloverlay.pushdown.models import PushdownDestination
from sqloverlay.schema.binding import SchemaBindingTable
from sqloverlay.templating.models import BindingContext
from sqloverlay.templating.registry import TemplateRegistry

BASE_DDL = """
CREATE TABLE DB2INST1.CATENTRY (
    CATENTRY_ID INTEGER PRIMARY KEY,
    PARTNUMBER VARCHAR(64),
    MARKFORDELETE INTEGER
);
CREATE TABLE DB2INST1.CATENTDESC (
    CATENTRY_ID INTEGER,
    LANGUAGE_ID INTEGER,
    NAME VARCHAR(128),
    PRIMARY KEY (CATENTRY_ID, LANGUAGE_ID)
);
"""

WRITE_DDL = """
CREATE TABLE WCW101.CATENTRY (
    CATENTRY_ID INTEGER PRIMARY KEY,
    PARTNUMBER VARCHAR(64),
    MARKFORDELETE INTEGER,
    CONTENT_STATUS CHAR(1)
);
CREATE TABLE WCW101.CATENTDESC (
    CATENTRY_ID INTEGER,
    LANGUAGE_ID INTEGER,
    NAME VARCHAR(128),
    CONTENT_STATUS CHAR(1),
    PRIMARY KEY (CATENTRY_ID, LANGUAGE_ID)
);
"""

DOCUMENT = """
BEGIN_SQL_STATEMENT
  name=Entries
  base_table=CATENTRY
  sql=
    SELECT CATENTRY.CATENTRY_ID, CATENTRY.PARTNUMBER
    FROM CATENTRY
    WHERE CATENTRY.CATENTRY_ID IN (?UniqueID?)
END_SQL_STATEMENT

BEGIN_SQL_STATEMENT
  name=EntryNames
  base_table=CATENTRY
  sql=
    SELECT CE.CATENTRY_ID, CD.NAME
    FROM CATENTRY CE
    JOIN CATENTDESC CD ON CD.CATENTRY_ID = CE.CATENTRY_ID
    WHERE CE.CATENTRY_ID IN (?UniqueID?) AND CD.LANGUAGE_ID IN ($CONTROL:LANGUAGES$)
END_SQL_STATEMENT

BEGIN_SQL_STATEMENT
  name=EntryNamesOptional
  base_table=CATENTRY
  sql=
    SELECT CE.CATENTRY_ID, CD.NAME
    FROM CATENTRY CE
    LEFT JOIN CATENTDESC CD ON CD.CATENTRY_ID = CE.CATENTRY_ID AND CD.LANGUAGE_ID = -1
    WHERE CE.CATENTRY_ID IN (?UniqueID?)
END_SQL_STATEMENT
"""


@pytest.fixture
def connection():
    conn = sqlite3.connect(":memory:")
    conn.execute("ATTACH DATABASE ':memory:' AS DB2INST1")
    conn.execute("ATTACH DATABASE ':memory:' AS WCW101")
    conn.executescript(BASE_DDL + WRITE_DDL)

    conn.executemany(
        "INSERT INTO DB2INST1.CATENTRY VALUES (?, ?, ?)",
        [(1, "P1", 0), (2, "P2", 0), (3, "P3", 0), (5, "P5", 0)],
    )
    conn.executemany(
        "INSERT INTO WCW101.CATENTRY VALUES (?, ?, ?, ?)",
        [(2, "P2-new", 0, "U"), (3, "P3", 0, "D"), (4, "P4", 0, "N")],
    )
    conn.executemany(
        "INSERT INTO DB2INST1.CATENTDESC VALUES (?, ?, ?)",
        [(1, -1, "One"), (1, -2, "Un"), (2, -1, "Two"), (3, -1, "Three")],
    )
    conn.executemany(
        "INSERT INTO WCW101.CATENTDESC VALUES (?, ?, ?, ?)",
        [(2, -1, "Two (draft)", "U"), (4, -1, "Four", "N"), (1, -2, "Un", "D")],
    )
    yield conn
    conn.close()


@pytest.fixture
def compiler():
    catalog = DdlCatalog()
    catalog.load_ddl(BASE_DDL + WRITE_DDL, dialect="sqlite")
    return OverlayCompiler(
        TemplateRegistry.from_texts([DOCUMENT]),
        SchemaBindingTable(runtime="DB2INST1", base="DB2INST1", write="WCW101"),
        catalog,
        dialect="sqlite",
        bind_style=BindStyle.QMARK,
    )


def _run(connection, statement):
    return sorted(connection.execute(statement.sql, statement.parameters).fetchall())


ALL_IDS = BindingContext(parameters={"UniqueID": [1, 2, 3, 4, 5]})


class TestOverlayBehaviour:
    """The workspace view is base rows not superseded plus surviving write rows."""

    def test_runtime_reads_base_only(self, connection, compiler):
        """Test the runtime statement ignores the write schema."""
        statement = compiler.compile("Entries", ALL_IDS, ExecutionContext.RUNTIME)
        assert _run(connection, statement) == [(1, "P1"), (2, "P2"), (3, "P3"), (5, "P5")]

    def test_workspace_logical_view(self, connection, compiler):
        """Test shadowing, deletion, write-only and base-only rows together."""
        statement = compiler.compile("Entries", ALL_IDS, ExecutionContext.WORKSPACE)
        assert _run(connection, statement) == [
            (1, "P1"),
            (2, "P2-new"),
            (4, "P4"),
            (5, "P5"),
        ]

    def test_write_row_shadows_base_row(self, connection, compiler):
        """Test a key present in both schemas yields the write row only."""
        context = BindingContext(parameters={"UniqueID": [2]})
        statement = compiler.compile("Entries", context, ExecutionContext.WORKSPACE)
        assert _run(connection, statement) == [(2, "P2-new")]

    def test_deleted_write_row_removes_entity(self, connection, compiler):
        """Test a deleted write row hides its base row."""
        context = BindingContext(parameters={"UniqueID": [3]})
        statement = compiler.compile("Entries", context, ExecutionContext.WORKSPACE)
        assert _run(connection, statement) == []

    def test_pushed_filters_do_not_change_results(self, connection, compiler):
        """Test filtering the overlay matches filtering the unfiltered view."""
        everything = compiler.compile("Entries", ALL_IDS, ExecutionContext.WORKSPACE)
        some = compiler.compile(
            "Entries",
            BindingContext(parameters={"UniqueID": [2, 3, 4]}),
            ExecutionContext.WORKSPACE,
        )
        expected = [row for row in _run(connection, everything) if row[0] in (2, 3, 4)]
        assert _run(connection, some) == expected


class TestDuplicationBehaviour:
    """Duplicated join predicates never change the result."""

    CONTEXT = BindingContext(
        parameters={"UniqueID": [1, 2, 3]}, controls={"LANGUAGES": [-1]}
    )

    def test_runtime_join(self, connection, compiler):
        """Test the rewritten join matches the hand-written query."""
        statement = compiler.compile("EntryNames", self.CONTEXT, ExecutionContext.RUNTIME)
        assert "CD.CATENTRY_ID IN (?, ?, ?)" in statement.sql

        expected = sorted(
            connection.execute(
                "SELECT CE.CATENTRY_ID, CD.NAME FROM DB2INST1.CATENTRY CE "
                "JOIN DB2INST1.CATENTDESC CD ON CD.CATENTRY_ID = CE.CATENTRY_ID "
                "WHERE CE.CATENTRY_ID IN (1, 2, 3) AND CD.LANGUAGE_ID IN (-1)"
            ).fetchall()
        )
        assert _run(connection, statement) == expected

    def test_left_join_duplicate_in_on_clause(self, connection, compiler):
        """Test a duplicate on the optional side goes to ON and keeps every row."""
        context = BindingContext(parameters={"UniqueID": [1, 2, 3, 5]})
        statement = compiler.compile(
            "EntryNamesOptional", context, ExecutionContext.RUNTIME
        )
        from_part = statement.sql.split(" WHERE ")[0]
        assert "CD.CATENTRY_ID IN (?, ?, ?, ?)" in from_part
        assert any(
            p.duplicated and p.destination == PushdownDestination.ON_CLAUSE
            for p in statement.pushed_predicates
        )

        expected = sorted(
            connection.execute(
                "SELECT CE.CATENTRY_ID, CD.NAME FROM DB2INST1.CATENTRY CE "
                "LEFT JOIN DB2INST1.CATENTDESC CD "
                "ON CD.CATENTRY_ID = CE.CATENTRY_ID AND CD.LANGUAGE_ID = -1 "
                "WHERE CE.CATENTRY_ID IN (1, 2, 3, 5)"
            ).fetchall()
        )
        assert expected == [(1, "One"), (2, "Two"), (3, "Three"), (5, None)]
        assert _run(connection, statement) == expected

    def test_workspace_join(self, connection, compiler):
        """Test the workspace join reads the merged view of both tables."""
        context = BindingContext(
            parameters={"UniqueID": [1, 2, 3, 4]}, controls={"LANGUAGES": [-1, -2]}
        )
        statement = compiler.compile("EntryNames", context, ExecutionContext.WORKSPACE)
        assert _run(connection, statement) == [
            (1, "One"),
            (2, "Two (draft)"),
            (4, "Four"),
        ]
