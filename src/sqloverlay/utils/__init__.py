"""Utility functions for sql-overlay."""

from sqloverlay.utils.config import ConfigSettings, find_config_file, load_config
from sqloverlay.utils.file_utils import expand_paths, read_template_file

__all__ = [
    "ConfigSettings",
    "find_config_file",
    "load_config",
    "expand_paths",
    "read_template_file",
]
