"""sql-overlay: overlay-aware SQL template compiler."""

__version__ = "0.1.0"
