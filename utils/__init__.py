"""
Utilities Module

This module provides shared helpers for serverless_mysql:
- Client-side SQL placeholder formatting
- Value escaping and identifier quoting
"""

from .sql_format import DEFAULT_CHARSET, escape, escape_id, format_sql

__all__ = [
    'DEFAULT_CHARSET',
    'escape',
    'escape_id',
    'format_sql',
]
