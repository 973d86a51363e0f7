"""
Adapters layer - Persistence of providers and bookings.
"""

from .json_store import JsonStore

__all__ = ["JsonStore"]
