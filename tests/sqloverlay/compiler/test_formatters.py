"""Tests for output formatters."""

import json
from io import StringIO

from rich.console import Console

from sqloverlay.compiler.formatters import (
    JsonFormatter,
    OutputWriter,
    PlanTextFormatter,
    TemplateListFormatter,
    TextFormatter,
)
from sqloverlay.compiler.models import CompiledStatement, PredicatePlacement
from sqloverlay.global_models import ExecutionContext
from sqloverlay.pushdown.models import PredicateKind, PushdownDestination
from sqloverlay.templating.models import BindSlot, SkippedTemplate
from sqloverlay.templating.parser import parse_statement_block


def _statement(**overrides):
    values = dict(
        template_name="CatalogEntryById",
        base_table="CATENTRY",
        context=ExecutionContext.WORKSPACE,
        dialect="db2",
        sql="SELECT 1 FROM T WHERE ID IN (?, ?)",
        parameter_order=[
            BindSlot(position=0, name="UniqueID", value=1),
            BindSlot(position=1, name="UniqueID", value=2),
        ],
        overlaid_tables=["CATENTRY"],
        pushed_predicates=[
            PredicatePlacement(
                scope=0,
                predicate="CD.CATENTRY_ID = 1",
                kind=PredicateKind.EQUALITY_CONSTANT,
                destination=PushdownDestination.ON_CLAUSE,
                tables=["CD"],
                join_index=0,
                duplicated=True,
            )
        ],
        warnings=["something odd"],
    )
    values.update(overrides)
    return CompiledStatement(**values)


def _console():
    buffer = StringIO()
    return Console(file=buffer, force_terminal=False, width=200), buffer


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_format(self):
        """Test every field is serialized."""
        data = json.loads(JsonFormatter.format(_statement()))
        assert data["template"] == "CatalogEntryById"
        assert data["context"] == "workspace"
        assert data["parameters"] == [
            {"position": 0, "name": "UniqueID", "value": 1},
            {"position": 1, "name": "UniqueID", "value": 2},
        ]
        placement = data["pushed_predicates"][0]
        assert placement["destination"] == "on_clause"
        assert placement["kind"] == "equality_constant"
        assert placement["duplicated"] is True
        assert data["warnings"] == ["something odd"]


class TestTextFormatter:
    """Tests for TextFormatter."""

    def test_format(self):
        """Test SQL, bind slots and overlaid tables are printed."""
        console, buffer = _console()
        TextFormatter.format(_statement(), console)
        output = buffer.getvalue()
        assert "CatalogEntryById" in output
        assert "Bind Parameters" in output
        assert "Overlaid: CATENTRY" in output

    def test_inline_has_no_parameter_table(self):
        """Test inline statements print no bind table."""
        console, buffer = _console()
        TextFormatter.format(_statement(parameter_order=[]), console)
        assert "Bind Parameters" not in buffer.getvalue()


class TestPlanTextFormatter:
    """Tests for PlanTextFormatter."""

    def test_format(self):
        """Test placements, targets and warnings are printed."""
        console, buffer = _console()
        PlanTextFormatter.format(_statement(), console)
        output = buffer.getvalue()
        assert "CD.CATENTRY_ID = 1 (derived)" in output
        assert "join #0" in output
        assert "Total: 1 predicate(s)" in output
        assert "Warning: something odd" in output

    def test_empty(self):
        """Test a statement without predicates."""
        console, buffer = _console()
        PlanTextFormatter.format(_statement(pushed_predicates=[]), console)
        assert "No predicates found." in buffer.getvalue()


class TestTemplateListFormatter:
    """Tests for TemplateListFormatter."""

    def test_format(self):
        """Test templates and skipped blocks are listed."""
        template = parse_statement_block(
            ["name=T1", "base_table=CATENTRY", "sql=SELECT 1"]
        )
        console, buffer = _console()
        TemplateListFormatter.format(
            [template], [SkippedTemplate(name="Bad", line=3, reason="oops")], console
        )
        output = buffer.getvalue()
        assert "runtime fallback" in output
        assert "Total: 1 template(s)" in output
        assert "Skipped Bad at line 3: oops" in output

    def test_empty(self):
        """Test an empty registry."""
        console, buffer = _console()
        TemplateListFormatter.format([], [], console)
        assert "No templates loaded." in buffer.getvalue()


class TestOutputWriter:
    """Tests for OutputWriter."""

    def test_write_to_file(self, tmp_path):
        """Test writing to a file."""
        target = tmp_path / "out.sql"
        OutputWriter.write("SELECT 1", target)
        assert target.read_text() == "SELECT 1"

    def test_write_to_stdout(self, capsys):
        """Test writing to stdout."""
        OutputWriter.write("SELECT 1")
        assert capsys.readouterr().out == "SELECT 1\n"
