"""Outcome resolution and pari-mutuel settlement for weather farming cycles."""

__version__ = "0.1.0"
