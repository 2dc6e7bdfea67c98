# Common utilities and shared modules
"""
Shared components used across the harvester:
- Data models (Pydantic schemas)
- Logging configuration
"""

from .logging import setup_logging

__all__ = [
    "setup_logging",
]
