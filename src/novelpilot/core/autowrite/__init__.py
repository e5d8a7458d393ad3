"""Auto-write control loop."""

from novelpilot.core.autowrite.loop import AutoWriter, AutoWriteReport

__all__ = ["AutoWriteReport", "AutoWriter"]
