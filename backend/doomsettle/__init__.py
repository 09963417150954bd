"""Doomsettle: settlement engine for DOOM/LIFE prediction events."""

__version__ = "0.1.0"
__author__ = "Doomsettle Team"

__all__ = ["__version__", "__author__"]
