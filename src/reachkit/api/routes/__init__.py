"""Route group exports."""

from . import analyses, health, points

__all__ = ["analyses", "health", "points"]
