"""Parser for query template documents.

A document is a sequence of blocks. `BEGIN_SYMBOL_DEFINITIONS` blocks declare
Column-Set symbols, `BEGIN_SQL_STATEMENT` blocks declare templates:

    BEGIN_SYMBOL_DEFINITIONS
      COLS:CATENTRY=CATENTRY:*
    END_SYMBOL_DEFINITIONS

    BEGIN_SQL_STATEMENT
      name=CatalogEntryById
      base_table=CATENTRY
      sql=
        SELECT CATENTRY.$COLS:CATENTRY$ FROM CATENTRY
        WHERE CATENTRY.CATENTRY_ID IN (?UniqueID?)
      cm
      sql=
        ...
    END_SQL_STATEMENT

Inside a sql= body only the tight forms `name=`, `base_table=` and `sql=` end
the body, so a SQL line such as `name = 'x'` stays part of the statement.
Outside a body the directives may put spaces around `=`.

Errors are isolated per block: a malformed block is reported as a
`SkippedTemplate` and parsing continues with the next block.
"""

import re
from typing import Dict, List, Optional, Tuple, Union

from sqloverlay.errors import MalformedTemplateError
from sqloverlay.global_models import ExecutionContext, SchemaRole, TagKind
from sqloverlay.templating.models import (
    ColumnSetSymbol,
    Fragment,
    ParseResult,
    SkippedTemplate,
    Tag,
    Template,
    Variant,
)

SQL_STATEMENT_SECTION = "SQL_STATEMENT"
SYMBOL_DEFINITIONS_SECTION = "SYMBOL_DEFINITIONS"
WORKSPACE_MARKER = "cm"

_SECTION_RE = re.compile(r"^(BEGIN|END)_([A-Z_]+)$")
_DIRECTIVE_RE = re.compile(r"^(name|base_table|sql)\s*=(.*)$")
_BODY_DIRECTIVE_RE = re.compile(r"^(name|base_table|sql)=(.*)$")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_$#]*$")
_SYMBOL_RE = re.compile(
    r"^COLS:(?P<name>[A-Za-z_][A-Za-z0-9_.]*)\s*=\s*"
    r"(?P<table>[A-Za-z_][A-Za-z0-9_$#]*)\s*:\s*"
    r"(?P<columns>\*|[A-Za-z_][A-Za-z0-9_$#]*(?:\s*,\s*[A-Za-z_][A-Za-z0-9_$#]*)*)$"
)

_PARAMETER_RE = re.compile(r"\?([A-Za-z_][A-Za-z0-9_.]*)\?")
_TAG_START_RE = re.compile(r"\$([A-Za-z]+):")
_TAG_RE = re.compile(r"\$([A-Za-z]+):([A-Za-z_][A-Za-z0-9_.]*)\$")
_QUALIFIER_RE = re.compile(r"([A-Za-z_][A-Za-z0-9_$#]*)\.$")

_TAG_PREFIXES = {
    "CONTROL": TagKind.CONTROL,
    "COLS": TagKind.COLUMN_SET,
    "CM": TagKind.SCHEMA_ROLE,
}


def parse_document(text: str) -> ParseResult:
    """Parse a template document.

    Args:
        text: Full document text.

    Returns:
        ParseResult with the templates and symbols that parsed cleanly and a
        SkippedTemplate entry for every block that did not.
    """
    lines = text.splitlines()
    result = ParseResult()
    index = 0

    while index < len(lines):
        stripped = lines[index].strip()
        if not stripped or stripped.startswith("#"):
            index += 1
            continue

        match = _SECTION_RE.match(stripped)
        if not match or match.group(1) != "BEGIN":
            result.skipped.append(
                SkippedTemplate(
                    line=index + 1,
                    reason=f"Unknown section marker or stray content: {stripped!r}",
                )
            )
            index += 1
            continue

        section = match.group(2)
        end = _find_block_end(lines, index, section)
        if end is None:
            result.skipped.append(
                SkippedTemplate(
                    name=_peek_name(lines[index + 1 :]),
                    line=index + 1,
                    reason=f"Unterminated block BEGIN_{section}",
                )
            )
            index = _next_block_start(lines, index + 1)
            continue

        body = lines[index + 1 : end]
        first_line = index + 2

        if section == SQL_STATEMENT_SECTION:
            try:
                result.templates.append(parse_statement_block(body, first_line))
            except MalformedTemplateError as e:
                result.skipped.append(
                    SkippedTemplate(
                        name=e.template_name or _peek_name(body),
                        line=e.line,
                        reason=str(e),
                    )
                )
        elif section == SYMBOL_DEFINITIONS_SECTION:
            symbols, issues = parse_symbol_block(body, first_line)
            result.symbols.extend(symbols)
            result.skipped.extend(issues)
        else:
            result.skipped.append(
                SkippedTemplate(
                    line=index + 1, reason=f"Unknown section marker BEGIN_{section}"
                )
            )

        index = end + 1

    return result


def _find_block_end(lines: List[str], start: int, section: str) -> Optional[int]:
    """Find the END line of a block, stopping at the next BEGIN line."""
    for index in range(start + 1, len(lines)):
        stripped = lines[index].strip()
        if stripped == f"END_{section}":
            return index
        match = _SECTION_RE.match(stripped)
        if match and match.group(1) == "BEGIN":
            return None
    return None


def _next_block_start(lines: List[str], start: int) -> int:
    for index in range(start, len(lines)):
        match = _SECTION_RE.match(lines[index].strip())
        if match and match.group(1) == "BEGIN":
            return index
    return len(lines)


def _peek_name(lines: List[str]) -> Optional[str]:
    for line in lines:
        match = _DIRECTIVE_RE.match(line.strip())
        if match and match.group(1) == "name":
            return match.group(2).strip() or None
    return None


def parse_symbol_block(
    lines: List[str], first_line: int
) -> Tuple[List[ColumnSetSymbol], List[SkippedTemplate]]:
    """Parse the body of a symbol definitions block.

    Args:
        lines: Lines between BEGIN and END markers.
        first_line: Document line number of the first body line.

    Returns:
        Tuple of (parsed symbols, one SkippedTemplate per invalid line).
    """
    symbols: List[ColumnSetSymbol] = []
    issues: List[SkippedTemplate] = []

    for offset, raw in enumerate(lines):
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _SYMBOL_RE.match(stripped)
        if not match:
            issues.append(
                SkippedTemplate(
                    line=first_line + offset,
                    reason=f"Invalid symbol definition: {stripped!r}",
                )
            )
            continue

        columns_text = match.group("columns")
        columns = (
            None
            if columns_text == "*"
            else tuple(col.strip() for col in columns_text.split(","))
        )
        symbols.append(
            ColumnSetSymbol(
                name=match.group("name"),
                table=match.group("table"),
                columns=columns,
            )
        )

    return symbols, issues


def parse_statement_block(lines: List[str], first_line: int = 1) -> Template:
    """Parse the body of a single `BEGIN_SQL_STATEMENT` block.

    Args:
        lines: Lines between BEGIN and END markers.
        first_line: Document line number of the first body line.

    Returns:
        The parsed Template.

    Raises:
        MalformedTemplateError: On any structural problem in the block.
    """
    name: Optional[str] = None
    base_table: Optional[str] = None
    variants: Dict[ExecutionContext, Variant] = {}
    context = ExecutionContext.RUNTIME
    workspace_marker_line: Optional[int] = None

    sql_lines: Optional[List[str]] = None
    sql_line = first_line

    def close_sql() -> None:
        nonlocal sql_lines
        if sql_lines is None:
            return
        body = "\n".join(sql_lines).strip()
        if not body:
            raise MalformedTemplateError(
                "Empty sql= body", template_name=name, line=sql_line
            )
        fragment = parse_fragment(body, template_name=name, line=sql_line)
        variants[context] = Variant(context=context, fragment=fragment, line=sql_line)
        sql_lines = None

    for offset, raw in enumerate(lines):
        line_no = first_line + offset
        stripped = raw.strip()
        directive_re = _DIRECTIVE_RE if sql_lines is None else _BODY_DIRECTIVE_RE
        directive = directive_re.match(stripped)
        is_marker = stripped == WORKSPACE_MARKER

        if sql_lines is not None and not directive and not is_marker:
            sql_lines.append(raw)
            continue

        close_sql()

        if not stripped or stripped.startswith("#"):
            continue

        if is_marker:
            if workspace_marker_line is not None:
                raise MalformedTemplateError(
                    "Duplicate cm marker", template_name=name, line=line_no
                )
            workspace_marker_line = line_no
            context = ExecutionContext.WORKSPACE
            continue

        if directive is None:
            raise MalformedTemplateError(
                f"Unknown directive {stripped!r}", template_name=name, line=line_no
            )

        key, value = directive.group(1), directive.group(2).strip()
        if key == "name":
            if name is not None:
                raise MalformedTemplateError(
                    "Duplicate name directive", template_name=name, line=line_no
                )
            if not value:
                raise MalformedTemplateError("Empty template name", line=line_no)
            name = value
        elif key == "base_table":
            if base_table is not None:
                raise MalformedTemplateError(
                    "Duplicate base_table directive", template_name=name, line=line_no
                )
            if not _IDENTIFIER_RE.match(value):
                raise MalformedTemplateError(
                    f"Invalid base_table {value!r}", template_name=name, line=line_no
                )
            base_table = value
        else:
            if context in variants:
                raise MalformedTemplateError(
                    f"Duplicate {context.value} variant",
                    template_name=name,
                    line=line_no,
                )
            sql_lines = [value] if value else []
            sql_line = line_no

    close_sql()

    if name is None:
        raise MalformedTemplateError("Missing required name directive", line=first_line)
    if base_table is None:
        raise MalformedTemplateError(
            "Missing required base_table directive", template_name=name, line=first_line
        )
    if ExecutionContext.RUNTIME not in variants:
        raise MalformedTemplateError(
            "Missing required runtime sql= section", template_name=name, line=first_line
        )
    if workspace_marker_line is not None and ExecutionContext.WORKSPACE not in variants:
        raise MalformedTemplateError(
            "cm marker without a sql= section",
            template_name=name,
            line=workspace_marker_line,
        )

    return Template(
        name=name,
        base_table=base_table,
        variants=variants,
        line=max(first_line - 1, 1),
    )


def parse_fragment(
    body: str, template_name: Optional[str] = None, line: Optional[int] = None
) -> Fragment:
    """Split a SQL body into text and tags.

    Args:
        body: SQL body text.
        template_name: Template name for error messages.
        line: Line of the sql= directive for error messages.

    Returns:
        Fragment preserving the authored order.

    Raises:
        MalformedTemplateError: On unterminated or unknown tags.
    """
    parts: List[Union[Tag, str]] = []
    buffer: List[str] = []
    index = 0
    length = len(body)

    def flush() -> None:
        if buffer:
            parts.append("".join(buffer))
            buffer.clear()

    while index < length:
        char = body[index]

        if char == "'":
            end = _skip_string_literal(body, index)
            buffer.append(body[index:end])
            index = end
            continue

        if body.startswith("--", index) or body.startswith("/*", index):
            end = _skip_comment(body, index)
            buffer.append(body[index:end])
            index = end
            continue

        if char == "?":
            match = _PARAMETER_RE.match(body, index)
            if not match:
                raise MalformedTemplateError(
                    f"Unterminated parameter tag near {body[index:index + 20]!r}",
                    template_name=template_name,
                    line=line,
                )
            flush()
            parts.append(
                Tag(kind=TagKind.PARAMETER, name=match.group(1), raw=match.group(0))
            )
            index = match.end()
            continue

        if char == "$" and _starts_tag(body, index):
            match = _TAG_RE.match(body, index)
            if not match:
                raise MalformedTemplateError(
                    f"Unterminated tag near {body[index:index + 20]!r}",
                    template_name=template_name,
                    line=line,
                )
            tag = _build_dollar_tag(match, buffer, template_name, line)
            flush()
            parts.append(tag)
            index = match.end()
            continue

        buffer.append(char)
        index += 1

    flush()
    return Fragment(parts=tuple(parts))


def _starts_tag(body: str, index: int) -> bool:
    """A `$` opens a tag unless it continues an identifier such as V$SESSION."""
    if index > 0 and (body[index - 1].isalnum() or body[index - 1] == "_"):
        return False
    return _TAG_START_RE.match(body, index) is not None


def _build_dollar_tag(
    match: "re.Match[str]",
    buffer: List[str],
    template_name: Optional[str],
    line: Optional[int],
) -> Tag:
    prefix, name = match.group(1).upper(), match.group(2)
    kind = _TAG_PREFIXES.get(prefix)
    if kind is None:
        raise MalformedTemplateError(
            f"Unknown tag {match.group(0)!r}", template_name=template_name, line=line
        )

    qualifier = None
    if kind == TagKind.SCHEMA_ROLE:
        name = name.upper()
        if name not in SchemaRole.__members__:
            raise MalformedTemplateError(
                f"Unknown schema role in {match.group(0)!r}",
                template_name=template_name,
                line=line,
            )
    elif kind == TagKind.COLUMN_SET:
        # CE.$COLS:X$ qualifies every expanded column with CE
        pending = "".join(buffer)
        qualified = _QUALIFIER_RE.search(pending)
        if qualified:
            qualifier = qualified.group(1)
            buffer[:] = [pending[: qualified.start()]]

    return Tag(kind=kind, name=name, qualifier=qualifier, raw=match.group(0))


def _skip_string_literal(body: str, start: int) -> int:
    """Return the index just past a single-quoted literal ('' escapes a quote)."""
    index = start + 1
    while index < len(body):
        if body[index] == "'":
            if index + 1 < len(body) and body[index + 1] == "'":
                index += 2
                continue
            return index + 1
        index += 1
    return len(body)


def _skip_comment(body: str, start: int) -> int:
    """Return the index just past a `--` line comment or `/* */` block comment."""
    if body.startswith("--", start):
        end = body.find("\n", start)
        return len(body) if end == -1 else end
    end = body.find("*/", start + 2)
    return len(body) if end == -1 else end + 2
