"""Dependency graph engine for multi-account, multi-ecosystem repository portfolios."""

__version__ = "0.1.0"
