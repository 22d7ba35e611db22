"""GearFlow: equipment checkout tracking and usage reporting."""

__version__ = "1.0.0"
