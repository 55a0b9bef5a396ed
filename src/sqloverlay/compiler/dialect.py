"""Target dialect capability descriptors."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlglot.dialects.dialect import Dialect

IdentifierQuoting = Literal["none", "safe", "always"]


class DialectDescriptor(BaseModel):
    """Capabilities of a target database that shape the emitted SQL.

    Example:
        >>> get_dialect("mysql5").supports_cte
        False
    """

    model_config = ConfigDict(frozen=True)

    name: str
    sqlglot_dialect: Optional[str] = Field(
        None, description="sqlglot dialect used for parsing and generation"
    )
    supports_cte: bool = True
    supports_union_all: bool = True
    prefer_cte: bool = False
    identifier_quoting: IdentifierQuoting = "none"
    pretty: bool = False

    @property
    def use_cte(self) -> bool:
        """Hoist overlays into a WITH preamble."""
        return self.prefer_cte and self.supports_cte

    def generator_options(self) -> Dict[str, Any]:
        """Keyword arguments for `Expression.sql`."""
        identify: Any = {"none": False, "safe": "safe", "always": True}[
            self.identifier_quoting
        ]
        return {"dialect": self.sqlglot_dialect, "pretty": self.pretty, "identify": identify}


_PRESETS: Dict[str, DialectDescriptor] = {
    "db2": DialectDescriptor(name="db2", sqlglot_dialect=None),
    "oracle": DialectDescriptor(name="oracle", sqlglot_dialect="oracle"),
    "postgres": DialectDescriptor(name="postgres", sqlglot_dialect="postgres"),
    "sqlite": DialectDescriptor(name="sqlite", sqlglot_dialect="sqlite"),
    "mysql": DialectDescriptor(name="mysql", sqlglot_dialect="mysql"),
    "mysql5": DialectDescriptor(name="mysql5", sqlglot_dialect="mysql", supports_cte=False),
}


def get_dialect(name: str, **overrides: Any) -> DialectDescriptor:
    """Look up a preset, optionally overriding capability flags.

    Other names are taken as a sqlglot dialect with default capabilities.

    Raises:
        ValueError: If the name is neither a preset nor a sqlglot dialect.
    """
    preset = _PRESETS.get(name.lower())
    if preset is None:
        Dialect.get_or_raise(name)
        preset = DialectDescriptor(name=name, sqlglot_dialect=name)
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        preset = preset.model_copy(update=overrides)
    return preset


def list_dialects() -> List[str]:
    return sorted(_PRESETS)
