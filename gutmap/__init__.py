"""Gutmap: food trigger inference and milestone progression engine."""

__version__ = "0.1.0"
