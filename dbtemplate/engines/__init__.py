"""
Engines: SQL execution template.
"""

from dbtemplate.engines.sql import SqlTemplate

__all__ = ["SqlTemplate"]
