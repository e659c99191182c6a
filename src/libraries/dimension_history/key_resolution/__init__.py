"""
Dimensional key resolution modules.
"""

from .key_resolver import DimensionalKeyResolver

__all__ = [
    "DimensionalKeyResolver"
]
