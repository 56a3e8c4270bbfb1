"""Recurring trip series engine for dispatch applications."""

__version__ = "1.0.0"
