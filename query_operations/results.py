"""
Query Results

Result containers returned by the query executor. Both are plain built-in
containers underneath, so existing code that indexes rows or reads
``affected_rows`` keeps working.
"""

from typing import Any, Dict, Iterable, Optional


class ResultSet(list):
    """
    Rows returned by a statement.

    When SQL echo is enabled the executor sets ``sql`` to the final statement.
    The attribute is not part of the list contents.
    """

    def __init__(self, rows: Iterable[Any] = (), sql: Optional[str] = None):
        super().__init__(rows)
        if sql is not None:
            self.sql = sql


class ResultHeader(dict):
    """
    Outcome of a statement that returns no rows (INSERT, UPDATE, DDL...).

    Keys: ``affected_rows``, ``insert_id``, ``warning_count``,
    ``changed_rows``, plus ``sql`` when SQL echo is enabled.
    """

    def __init__(self, values: Optional[Dict[str, Any]] = None, sql: Optional[str] = None):
        super().__init__(affected_rows=0, insert_id=0, warning_count=0, changed_rows=0)
        if values:
            self.update(values)
        if sql is not None:
            self["sql"] = sql

    @property
    def affected_rows(self) -> int:
        return self["affected_rows"]

    @property
    def insert_id(self) -> Any:
        return self["insert_id"]
