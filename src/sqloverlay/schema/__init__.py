"""Schema role bindings."""

from sqloverlay.schema.binding import SchemaBindingTable

__all__ = ["SchemaBindingTable"]
