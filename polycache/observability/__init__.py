"""
polycache - Observability Module

Structured JSON logging for the polycache logger hierarchy.

Usage:
    from polycache.observability import setup_logging

    setup_logging("DEBUG")
"""

from .logging import JSONFormatter, setup_logging

__all__ = [
    "JSONFormatter",
    "setup_logging",
]
