"""File utility functions for sqloverlay."""

from pathlib import Path
from typing import Iterable, List


def read_template_file(file_path: Path) -> str:
    """
    Read a template or DDL file and return its contents as a string.

    Args:
        file_path: Path to the file to read

    Returns:
        The contents of the file as a string

    Raises:
        FileNotFoundError: If the file does not exist
        PermissionError: If the file cannot be read
        UnicodeDecodeError: If the file encoding is not UTF-8
    """
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    if not file_path.is_file():
        raise ValueError(f"Path is not a file: {file_path}")

    try:
        return file_path.read_text(encoding="utf-8")
    except PermissionError as e:
        raise PermissionError(f"Cannot read file {file_path}: {e}") from e
    except UnicodeDecodeError as e:
        raise UnicodeDecodeError(
            e.encoding,
            e.object,
            e.start,
            e.end,
            f"File {file_path} is not valid UTF-8: {e.reason}",
        ) from e


def expand_paths(paths: Iterable[Path], pattern: str) -> List[Path]:
    """
    Expand directories into the files they contain.

    Files are kept as given; directories contribute every file matching
    `pattern`, sorted by name so load order is stable.

    Args:
        paths: Files and/or directories
        pattern: Glob pattern applied inside directories (e.g. "*.tpl")

    Returns:
        Ordered list of file paths with duplicates removed

    Raises:
        FileNotFoundError: If a path does not exist
    """
    files: List[Path] = []
    for path in paths:
        if not path.exists():
            raise FileNotFoundError(f"Path not found: {path}")
        if path.is_dir():
            files.extend(sorted(p for p in path.glob(pattern) if p.is_file()))
        else:
            files.append(path)

    seen = set()
    unique = []
    for path in files:
        key = path.resolve()
        if key not in seen:
            seen.add(key)
            unique.append(path)
    return unique
