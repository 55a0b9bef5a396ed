"""Overlay merge planning for the workspace context."""

from sqloverlay.overlay.models import EntityOverlay, OverlaySettings
from sqloverlay.overlay.planner import OverlayPlanner

__all__ = ["EntityOverlay", "OverlayPlanner", "OverlaySettings"]
