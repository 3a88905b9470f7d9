"""
Collector Server - API Routers Package
"""

from . import collectors

__all__ = ["collectors"]
