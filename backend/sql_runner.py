"""Run SQL problems against a throwaway in-memory SQLite database."""
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

import aiosqlite

from exceptions import SqlExecutionError

logger = logging.getLogger(__name__)


@dataclass
class SqlResult:
    columns: List[str] = field(default_factory=list)
    rows: List[tuple] = field(default_factory=list)


def split_statements(script: str) -> List[str]:
    """Split a script into complete statements (semicolons inside literals are kept)"""
    statements = []
    buffer = ""
    for piece in script.split(";"):
        buffer += piece + ";"
        if sqlite3.complete_statement(buffer):
            if buffer.strip(" \t\r\n;"):
                statements.append(buffer.strip())
            buffer = ""
    # unterminated leftovers go to sqlite as-is so it reports the error
    if buffer.strip(" \t\r\n;"):
        statements.append(buffer.strip().rstrip(";"))
    return statements


def _format_value(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def format_rows(rows: Sequence[Sequence[Any]]) -> str:
    return "\n".join(" ".join(_format_value(v) for v in row) for row in rows)


async def _run_script(db: aiosqlite.Connection, script: Optional[str], stage: str):
    if not script or not script.strip():
        return
    try:
        await db.executescript(script)
    except sqlite3.Error as e:
        raise SqlExecutionError(stage, str(e)) from e


async def run_sql(query: str, global_setup: Optional[str] = None,
                  per_test_setup: Optional[str] = None) -> SqlResult:
    """
    Execute `global_setup`, `per_test_setup` and then `query` on a brand new
    database. Returns the result set of the last statement that produced one.
    """
    result = SqlResult()
    async with aiosqlite.connect(":memory:") as db:
        await _run_script(db, global_setup, "setup")
        await _run_script(db, per_test_setup, "setup")
        try:
            for statement in split_statements(query or ""):
                cursor = await db.execute(statement)
                if cursor.description:
                    result = SqlResult(
                        columns=[d[0] for d in cursor.description],
                        rows=list(await cursor.fetchall()),
                    )
                await cursor.close()
        except sqlite3.Error as e:
            raise SqlExecutionError("query", str(e)) from e
    logger.debug(f"SQL query returned {len(result.rows)} rows")
    return result
