"""Tests for CLI commands."""

import json
import os

import pytest
from typer.testing import CliRunner

from sqloverlay.cli import app

runner = CliRunner()

TEMPLATES = """
BEGIN_SYMBOL_DEFINITIONS
  COLS:CATENTRY=CATENTRY:*
END_SYMBOL_DEFINITIONS

BEGIN_SQL_STATEMENT
  name=CatalogEntryById
  base_table=CATENTRY
  sql=
    SELECT CATENTRY.$COLS:CATENTRY$
    FROM CATENTRY
    WHERE CATENTRY.CATENTRY_ID IN (?UniqueID?)
END_SQL_STATEMENT

BEGIN_SQL_STATEMENT
  name=EntryWithDescription
  base_table=CATENTRY
  sql=
    SELECT CE.CATENTRY_ID, CD.NAME
    FROM CATENTRY CE
    LEFT OUTER JOIN CATENTDESC CD ON CD.CATENTRY_ID = CE.CATENTRY_ID
    WHERE CE.CATENTRY_ID IN (?UniqueID?) AND CD.LANGUAGE_ID IN ($CONTROL:LANGUAGES$)
END_SQL_STATEMENT
"""

BROKEN = """
BEGIN_SQL_STATEMENT
  name=Broken
  base_table=CATENTRY
  sql=SELECT * FROM CATENTRY WHERE CATENTRY_ID = ?UniqueID
END_SQL_STATEMENT
"""

DDL = """
CREATE TABLE DB2INST1.CATENTRY (
    CATENTRY_ID BIGINT NOT NULL PRIMARY KEY,
    PARTNUMBER VARCHAR(64) NOT NULL
);
CREATE TABLE WCW101.CATENTRY (
    CATENTRY_ID BIGINT NOT NULL PRIMARY KEY,
    PARTNUMBER VARCHAR(64) NOT NULL,
    CONTENT_STATUS CHAR(1)
);
CREATE TABLE CATENTDESC (
    CATENTRY_ID BIGINT NOT NULL,
    LANGUAGE_ID INTEGER NOT NULL,
    NAME VARCHAR(128),
    PRIMARY KEY (CATENTRY_ID, LANGUAGE_ID)
);
"""


def _flat(text):
    """Collapse console line wrapping."""
    return " ".join(text.split())


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """A working directory with templates and DDL, and no config file."""
    (tmp_path / "templates").mkdir()
    (tmp_path / "templates" / "catalog.tpl").write_text(TEMPLATES, encoding="utf-8")
    (tmp_path / "ddl").mkdir()
    (tmp_path / "ddl" / "schema.sql").write_text(DDL, encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    for name in [n for n in os.environ if n.startswith("SQLOVERLAY_")]:
        monkeypatch.delenv(name)
    return tmp_path


BASE_ARGS = ["-T", "templates", "--ddl-folder", "ddl", "--runtime-schema", "DB2INST1"]


class TestCompileCommand:
    """Tests for the compile command."""

    def test_compile_json(self, workspace):
        """Test runtime compilation with JSON output."""
        result = runner.invoke(
            app,
            ["compile", "CatalogEntryById", *BASE_ARGS, "-p", "UniqueID=10683", "-f", "json"],
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["template"] == "CatalogEntryById"
        assert data["context"] == "runtime"
        assert data["dialect"] == "db2"
        assert "FROM DB2INST1.CATENTRY AS CATENTRY" in data["sql"]
        assert "IN (10683)" in data["sql"]
        assert data["parameters"] == []

    def test_compile_text(self, workspace):
        """Test the default text output."""
        result = runner.invoke(
            app, ["compile", "CatalogEntryById", *BASE_ARGS, "-p", "UniqueID=1"]
        )
        assert result.exit_code == 0, result.output
        assert "CatalogEntryById" in result.stdout
        assert "DB2INST1.CATENTRY" in _flat(result.stdout)

    def test_compile_workspace(self, workspace):
        """Test workspace compilation merges base and write schemas."""
        result = runner.invoke(
            app,
            [
                "compile",
                "CatalogEntryById",
                *BASE_ARGS,
                "-c",
                "workspace",
                "--base-schema",
                "DB2INST1",
                "--write-schema",
                "WCW101",
                "-p",
                "UniqueID=1,2",
                "-f",
                "json",
            ],
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert "NOT EXISTS" in data["sql"]
        assert "W.CONTENT_STATUS <> 'D'" in data["sql"]
        assert data["overlaid_tables"] == ["CATENTRY"]

    def test_compile_qmark(self, workspace):
        """Test positional parameters are listed in slot order."""
        result = runner.invoke(
            app,
            [
                "compile",
                "CatalogEntryById",
                *BASE_ARGS,
                "--bind-style",
                "qmark",
                "-p",
                "UniqueID=10,20",
                "-f",
                "json",
            ],
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert "IN (?, ?)" in data["sql"]
        assert [p["value"] for p in data["parameters"]] == [10, 20]

    def test_compile_output_file(self, workspace):
        """Test writing JSON output to a file."""
        output = workspace / "out.json"
        result = runner.invoke(
            app,
            [
                "compile",
                "CatalogEntryById",
                *BASE_ARGS,
                "-p",
                "UniqueID=1",
                "-f",
                "json",
                "-o",
                str(output),
            ],
        )
        assert result.exit_code == 0, result.output
        assert json.loads(output.read_text())["template"] == "CatalogEntryById"

    def test_config_file(self, workspace):
        """Test settings are read from sqloverlay.toml."""
        (workspace / "sqloverlay.toml").write_text(
            '[sqloverlay]\ntemplates = ["templates"]\noutput_format = "json"\n'
            "[sqloverlay.schemas]\nbase = \"DB2INST1\"\n"
            "[sqloverlay.catalog]\nddl_folder = \"ddl\"\n"
            "[sqloverlay.controls]\nLANGUAGES = [-1]\n"
        )
        result = runner.invoke(
            app, ["compile", "EntryWithDescription", "-p", "UniqueID=1"]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert "CD.LANGUAGE_ID IN (-1)" in data["sql"]

    def test_missing_parameter(self, workspace):
        """Test a missing parameter is reported as a caller error."""
        result = runner.invoke(app, ["compile", "CatalogEntryById", *BASE_ARGS])
        assert result.exit_code == 1
        assert "(caller error)" in _flat(result.output)

    def test_missing_control(self, workspace):
        """Test a missing control is reported as a configuration error."""
        result = runner.invoke(
            app, ["compile", "EntryWithDescription", *BASE_ARGS, "-p", "UniqueID=1"]
        )
        assert result.exit_code == 1
        assert "(configuration error)" in _flat(result.output)

    def test_unknown_template(self, workspace):
        """Test an unknown template name fails."""
        result = runner.invoke(app, ["compile", "Nope", *BASE_ARGS])
        assert result.exit_code == 1
        assert "Unknown template" in _flat(result.output)

    def test_error_text_with_brackets_is_kept(self, workspace):
        """Test square brackets in an error message are printed literally."""
        result = runner.invoke(app, ["compile", "Nope[draft]", *BASE_ARGS])
        assert result.exit_code == 1
        assert "Nope[draft]" in _flat(result.output)

    def test_no_templates(self, workspace):
        """Test compiling without any template location fails."""
        result = runner.invoke(app, ["compile", "CatalogEntryById"])
        assert result.exit_code == 1
        assert "No templates given" in _flat(result.output)

    def test_workspace_without_write_schema(self, workspace):
        """Test the workspace context needs a write schema."""
        result = runner.invoke(
            app,
            ["compile", "CatalogEntryById", *BASE_ARGS, "-c", "workspace", "-p", "UniqueID=1"],
        )
        assert result.exit_code == 1

    def test_invalid_output_format(self, workspace):
        """Test an invalid output format fails."""
        result = runner.invoke(
            app, ["compile", "CatalogEntryById", *BASE_ARGS, "-f", "xml"]
        )
        assert result.exit_code == 1
        assert "Invalid output format" in _flat(result.output)

    def test_invalid_context(self, workspace):
        """Test an invalid context value fails."""
        result = runner.invoke(
            app, ["compile", "CatalogEntryById", *BASE_ARGS, "-c", "staging", "-p", "UniqueID=1"]
        )
        assert result.exit_code == 1


class TestPlanCommand:
    """Tests for the plan command."""

    def test_plan(self, workspace):
        """Test the plan table lists every predicate."""
        result = runner.invoke(
            app,
            [
                "plan",
                "EntryWithDescription",
                *BASE_ARGS,
                "-p",
                "UniqueID=1",
                "--control",
                "LANGUAGES=-1,-2",
            ],
        )
        assert result.exit_code == 0, result.output
        output = _flat(result.stdout)
        assert "Pushdown plan" in output
        assert "Total: 3 predicate(s)" in output


class TestTemplatesCommand:
    """Tests for the templates command."""

    def test_lists_templates(self, workspace):
        """Test loaded templates are listed."""
        result = runner.invoke(app, ["templates", "-T", "templates"])
        assert result.exit_code == 0, result.output
        output = _flat(result.stdout)
        assert "CatalogEntryById" in output
        assert "Total: 2 template(s)" in output

    def test_reports_skipped(self, workspace):
        """Test malformed blocks are reported."""
        (workspace / "templates" / "broken.tpl").write_text(BROKEN, encoding="utf-8")
        result = runner.invoke(app, ["templates", "-T", "templates"])
        assert result.exit_code == 0, result.output
        assert "Skipped Broken" in _flat(result.stdout)

    def test_missing_path(self, workspace):
        """Test a missing template path fails."""
        result = runner.invoke(app, ["templates", "-T", "nowhere"])
        assert result.exit_code == 1
