"""
Value objects for the domain layer.
"""

from .money import Money

__all__ = ["Money"]
