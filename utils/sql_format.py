"""
SQL Formatting Helpers

Client-side placeholder substitution for MySQL statements:
- ``?`` is replaced by an escaped value
- ``??`` is replaced by an escaped identifier

Scalar values are escaped with PyMySQL's converters. Lists expand to
comma separated values (nested lists become grouped tuples, which suits
bulk ``VALUES ?`` inserts) and mappings expand to ``SET``-style
``column = value`` pairs.
"""

import re
from typing import Any, Mapping, Optional

from pymysql import converters

DEFAULT_CHARSET = "utf8mb4"

_PLACEHOLDER = re.compile(r"\?\??")


def escape(value: Any, charset: str = DEFAULT_CHARSET) -> str:
    """
    Escape a value for inclusion in a SQL statement.

    Example:
        >>> escape(True)
        'true'
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Mapping):
        return ", ".join(f"{escape_id(key)} = {escape(item, charset)}" for key, item in value.items())
    if isinstance(value, (list, tuple)):
        return ", ".join(
            f"({escape(item, charset)})" if isinstance(item, (list, tuple)) else escape(item, charset)
            for item in value
        )
    return converters.escape_item(value, charset)


def escape_id(identifier: Any, forbid_qualified: bool = False) -> str:
    """
    Quote an identifier with backticks.

    Dotted names are quoted part by part unless ``forbid_qualified`` is set.

    Example:
        >>> escape_id("db.table")
        '`db`.`table`'
    """
    if isinstance(identifier, (list, tuple)):
        return ", ".join(escape_id(item, forbid_qualified) for item in identifier)
    text = str(identifier)
    if forbid_qualified:
        return "`" + text.replace("`", "``") + "`"
    return ".".join("`" + part.replace("`", "``") + "`" for part in text.split("."))


def format_sql(sql: str, values: Optional[Any] = None, charset: str = DEFAULT_CHARSET) -> str:
    """
    Substitute placeholders in ``sql`` with escaped ``values``.

    A single non-sequence value is treated as a one element list. Surplus
    placeholders are left untouched.

    Example:
        >>> format_sql("SELECT * FROM ?? WHERE id = ?", ["users", 42])
        'SELECT * FROM `users` WHERE id = 42'
    """
    if values is None:
        return sql
    if not isinstance(values, (list, tuple)):
        values = [values]

    remaining = iter(values)

    def _substitute(match):
        try:
            value = next(remaining)
        except StopIteration:
            return match.group(0)
        if match.group(0) == "??":
            return escape_id(value)
        return escape(value, charset)

    return _PLACEHOLDER.sub(_substitute, sql)
