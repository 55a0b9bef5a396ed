"""Load-once registry of query templates and Column-Set symbols.

The registry is built at startup from one or more template documents and is
never mutated afterwards, so a single instance can be shared by any number of
concurrent compile calls.
"""

from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from sqloverlay.errors import TemplateNotFoundError
from sqloverlay.templating.models import ColumnSetSymbol, SkippedTemplate, Template
from sqloverlay.templating.parser import parse_document
from sqloverlay.utils.file_utils import read_template_file


class TemplateRegistry:
    """Immutable lookup of templates by name.

    Example:
        >>> registry = TemplateRegistry.from_texts([document_text])
        >>> template = registry.get("CatalogEntryById")
    """

    def __init__(
        self,
        templates: Mapping[str, Template],
        symbols: Optional[Mapping[str, ColumnSetSymbol]] = None,
        skipped: Optional[Iterable[SkippedTemplate]] = None,
    ):
        self._templates: Dict[str, Template] = dict(templates)
        self._symbols: Dict[str, ColumnSetSymbol] = dict(symbols or {})
        self._skipped: List[SkippedTemplate] = list(skipped or [])

    @classmethod
    def from_texts(cls, texts: Iterable[str]) -> "TemplateRegistry":
        """Build a registry from document texts.

        Later duplicates of a template or symbol name are skipped and
        reported, the first definition wins.
        """
        templates: Dict[str, Template] = {}
        symbols: Dict[str, ColumnSetSymbol] = {}
        skipped: List[SkippedTemplate] = []

        for text in texts:
            result = parse_document(text)
            skipped.extend(result.skipped)

            for template in result.templates:
                if template.name in templates:
                    skipped.append(
                        SkippedTemplate(
                            name=template.name,
                            line=template.line,
                            reason=f"Duplicate template name '{template.name}'",
                        )
                    )
                    continue
                templates[template.name] = template

            for symbol in result.symbols:
                existing = symbols.get(symbol.name)
                if existing is not None and existing != symbol:
                    skipped.append(
                        SkippedTemplate(
                            reason=f"Conflicting definition for symbol COLS:{symbol.name}"
                        )
                    )
                    continue
                symbols[symbol.name] = symbol

        return cls(templates, symbols, skipped)

    @classmethod
    def from_paths(cls, paths: Iterable[Path]) -> "TemplateRegistry":
        """Build a registry from template files.

        Raises:
            FileNotFoundError: If a path does not exist.
        """
        return cls.from_texts(read_template_file(path) for path in paths)

    def get(self, name: str) -> Template:
        """Get a template by name.

        Raises:
            TemplateNotFoundError: If no template has this name.
        """
        template = self._templates.get(name)
        if template is None:
            available = ", ".join(sorted(self._templates)) or "none"
            raise TemplateNotFoundError(
                f"Unknown template '{name}'. Available templates: {available}"
            )
        return template

    def symbol(self, name: str) -> Optional[ColumnSetSymbol]:
        """Get a Column-Set symbol by name, or None."""
        return self._symbols.get(name)

    def list_templates(self) -> List[str]:
        """Sorted template names."""
        return sorted(self._templates)

    @property
    def templates(self) -> List[Template]:
        return [self._templates[name] for name in self.list_templates()]

    @property
    def skipped(self) -> List[SkippedTemplate]:
        """Blocks that failed to load, in document order."""
        return self._skipped.copy()

    def __contains__(self, name: object) -> bool:
        return name in self._templates

    def __len__(self) -> int:
        return len(self._templates)
