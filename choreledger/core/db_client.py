"""SQLite database client wrapper with CRUD operations and transactional scopes."""

import asyncio
import json
import logging
import re
import threading
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

import aiosqlite

from choreledger.core.config import constants, settings


logger = logging.getLogger(__name__)


def _validate_collection_name(collection: str) -> None:
    """Reject table names that are not plain identifiers."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def _convert_record_ids(record: dict[str, Any]) -> dict[str, Any]:
    """Render integer primary and foreign keys as strings, the form every domain model expects."""
    converted = record.copy()
    for key, value in converted.items():
        if isinstance(value, int) and not isinstance(value, bool) and (key == "id" or key.endswith("_id")):
            converted[key] = str(value)
    return converted


def _to_db_value(value: Any) -> Any:
    """Convert a Python value to something sqlite3 can bind."""
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return value


def _parse_record_id(collection: str, record_id: str) -> int:
    """Parse a record id, treating anything non-numeric as a missing record."""
    if not str(record_id).isdigit():
        msg = f"Record not found in {collection}: {record_id}"
        raise KeyError(msg)
    return int(record_id)


def get_db_path(db_path: str | None = None) -> Path:
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(value: str, *, is_like: bool = False) -> str | int | float | bool | None:
    """Turn a quoted filter literal into the value bound for its column (ids become ints)."""
    if is_like:
        return value.replace("%", "\\%").replace("_", "\\_")

    if value.isdigit():
        return int(value)
    if value.replace(".", "", 1).isdigit():
        return float(value)

    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    return value


_SQL_OPERATORS = {"=": "=", "!=": "!=", ">": ">", "<": "<", ">=": ">=", "<=": "<=", "~": "LIKE"}

# Double-quoted values carry sanitize_param (JSON) escapes; single-quoted values are taken literally
_COMPARISON = re.compile(r"""(\w+)\s*(>=|<=|!=|=|>|<|~)\s*(?:"((?:[^"\\]|\\.)*)"|'([^']*)')""")


def _parse_single_comparison(comparison: str) -> tuple[str, str | int | float | None]:
    """Translate one `field op "value"` comparison."""
    match = _COMPARISON.fullmatch(comparison.strip())
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field, op, escaped, literal = match.groups()
    raw_value = json.loads(f'"{escaped}"') if escaped is not None else literal

    sql_op = _SQL_OPERATORS[op]
    if sql_op == "LIKE":
        return f"{field} LIKE ? ESCAPE '\\'", _parse_value(raw_value, is_like=True)
    return f"{field} {sql_op} ?", _parse_value(raw_value)


def _split_top_level(text: str, separator: str) -> list[str]:
    """Split on ``separator`` where it appears outside quotes and parentheses."""
    parts = []
    start = 0
    depth = 0
    quote = ""
    i = 0
    while i < len(text):
        char = text[i]
        if quote:
            if char == "\\" and quote == '"':
                i += 1
            elif char == quote:
                quote = ""
        elif char in "\"'":
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif depth == 0 and text.startswith(separator, i):
            parts.append(text[start:i].strip())
            i += len(separator)
            start = i
            continue
        i += 1

    if text[start:].strip():
        parts.append(text[start:].strip())
    return parts


def _parse_or_group(or_group: str) -> tuple[str, list[str | int | float | None]]:
    """Translate a `( a || b )` group into an OR condition."""
    or_conditions = []
    or_params = []

    for part in _split_top_level(or_group[1:-1], "||"):
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def parse_filter(filter_query: str) -> tuple[str, list[str | int | float | None]]:
    """Compile a filter expression into a WHERE clause and its bound parameters.

    Supports `=`, `!=`, `<`, `<=`, `>`, `>=` and `~` (LIKE), conditions joined by
    `&&`, and parenthesized `||` groups. Values are double-quoted with
    ``sanitize_param`` escapes, or single-quoted verbatim. Raises ValueError on
    anything else.
    """
    if not filter_query:
        return "", []

    conditions = []
    params = []

    for part in _split_top_level(filter_query, "&&"):
        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


_SORT_TERM = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\s+(ASC|DESC))?$", re.IGNORECASE)


def _parse_sort(sort: str) -> str:
    """Validate an ORDER BY clause of comma-separated ``column [ASC|DESC]`` terms."""
    if not sort:
        return "id ASC"
    terms = [term.strip() for term in sort.split(",")]
    if all(_SORT_TERM.match(term) for term in terms):
        return ", ".join(terms)
    logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
    return "id ASC"


def _build_where(filter_query: str) -> tuple[str, list[Any]]:
    if not filter_query:
        return "", []
    where_clause, params = parse_filter(filter_query)
    return f"WHERE {where_clause}", params


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_db_locks: dict[int, asyncio.Lock] = {}
_scope_locks: dict[tuple[int, int, str], asyncio.Lock] = {}

# Connection owned by the current task while it holds the connection scope
_scope_connection: ContextVar[aiosqlite.Connection | None] = ContextVar("_scope_connection", default=None)
_in_transaction: ContextVar[bool] = ContextVar("_in_transaction", default=False)


def _cache_key(db_path: str | None = None) -> tuple[int, int, str]:
    loop = asyncio.get_running_loop()
    return (threading.get_ident(), id(loop), str(get_db_path(db_path)))


def _loop_lock() -> asyncio.Lock:
    loop_id = id(asyncio.get_running_loop())
    return _db_locks.setdefault(loop_id, asyncio.Lock())


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Return the shared connection for this event loop, opening it on first use."""
    cache_key = _cache_key(db_path)
    thread_id, loop_id, path_str = cache_key

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    async with _loop_lock():
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path = Path(path_str)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Autocommit mode: transactions are opened explicitly by transaction()
        conn = await aiosqlite.connect(str(path), isolation_level=None)
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": path_str, "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the shared connection if one is open."""
    cache_key = _cache_key(db_path)
    thread_id, loop_id, _ = cache_key

    if cache_key not in _db_connections:
        return

    try:
        async with _loop_lock():
            if cache_key in _db_connections:
                conn = _db_connections.pop(cache_key)
                _scope_locks.pop(cache_key, None)
                await conn.close()
                logger.info(
                    "Closed SQLite connection",
                    extra={"thread_id": thread_id, "loop_id": loop_id, "db_path": cache_key[2]},
                )
    except Exception as e:
        logger.warning(
            "Error closing SQLite connection",
            extra={"error": str(e), "thread_id": thread_id, "loop_id": loop_id},
        )


@asynccontextmanager
async def _connection_scope() -> AsyncIterator[aiosqlite.Connection]:
    """Hold the shared connection exclusively for the duration of one operation.

    Nested calls from the same task reuse the scope already held.
    """
    current = _scope_connection.get()
    if current is not None:
        yield current
        return

    conn = await get_connection()
    lock = _scope_locks.setdefault(_cache_key(), asyncio.Lock())
    async with lock:
        token = _scope_connection.set(conn)
        try:
            yield conn
        finally:
            _scope_connection.reset(token)


@asynccontextmanager
async def transaction() -> AsyncIterator[None]:
    """Run the enclosed reads and writes as one atomic unit.

    Commits when the block exits normally and rolls back on any exception, so a
    failure part-way through leaves no partial writes behind. Nested calls join
    the outer transaction.

    Usage:
        async with db_client.transaction():
            await db_client.create_record(...)
            await db_client.create_record(...)
    """
    if _in_transaction.get():
        yield
        return

    async with _connection_scope() as conn:
        await conn.execute("BEGIN IMMEDIATE")
        token = _in_transaction.set(True)
        try:
            yield
        except BaseException:
            await conn.execute("ROLLBACK")
            logger.warning("Transaction rolled back")
            raise
        else:
            await conn.execute("COMMIT")
        finally:
            _in_transaction.reset(token)


async def init_db(*, db_path: str | None = None) -> None:
    """Create the ledger tables and indexes."""
    from choreledger.core import schema

    await schema.init_db(db_path=db_path)


async def execute_script(statements: list[str], *, db_path: str | None = None) -> None:
    """Execute DDL statements against the database."""
    conn = await get_connection(db_path=db_path)
    for statement in statements:
        await conn.execute(statement)


async def _fetch_by_id(conn: aiosqlite.Connection, collection: str, record_id: int) -> dict[str, Any] | None:
    query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
    cursor = await conn.execute(query, (record_id,))
    row = await cursor.fetchone()
    if row is None:
        return None
    columns = [description[0] for description in cursor.description]
    return _convert_record_ids(dict(zip(columns, row, strict=True)))


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a row into a collection and return it as stored."""
    try:
        _validate_collection_name(collection)
        async with _connection_scope() as conn:
            columns = list(data.keys())
            columns_str = ", ".join(columns)
            placeholders_str = ", ".join("?" for _ in columns)
            values = [_to_db_value(data[key]) for key in columns]

            query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, values)
            record_id = cursor.lastrowid
            result = await _fetch_by_id(conn, collection, record_id)

        logger.info("Created record", extra={"collection": collection, "record_id": record_id})
        return result or {}
    except Exception as e:
        if isinstance(e, aiosqlite.OperationalError) and "no such table" in str(e):
            msg = f"Table '{collection}' does not exist. Call init_db() first."
            logger.error("Table not found", extra={"collection": collection})
            raise RuntimeError(msg) from e
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to create record in {collection}: {e}"
        raise RuntimeError(msg) from e


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Load one row by id. Raises KeyError when it does not exist."""
    try:
        _validate_collection_name(collection)
        parsed_id = _parse_record_id(collection, record_id)
        async with _connection_scope() as conn:
            record = await _fetch_by_id(conn, collection, parsed_id)

        if record is None:
            msg = f"Record not found in {collection}: {record_id}"
            raise KeyError(msg)

        logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
        return record
    except KeyError:
        raise
    except Exception as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to get record from {collection}: {e}"
        raise RuntimeError(msg) from e


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Apply a partial update and return the row as it now reads."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    try:
        _validate_collection_name(collection)
        parsed_id = _parse_record_id(collection, record_id)
        async with _connection_scope() as conn:
            set_clause = ", ".join(f"{key} = ?" for key in data)
            values = [_to_db_value(val) for val in data.values()]
            values.append(parsed_id)

            query = f"UPDATE {collection} SET {set_clause}, updated = datetime('now') WHERE id = ?"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, values)
            if cursor.rowcount == 0:
                msg = f"Record not found in {collection}: {record_id}"
                raise KeyError(msg)
            record = await _fetch_by_id(conn, collection, parsed_id)

        logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
        return record or {}
    except KeyError:
        raise
    except Exception as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to update record in {collection}: {e}"
        raise RuntimeError(msg) from e


async def delete_record(*, collection: str, record_id: str) -> None:
    try:
        _validate_collection_name(collection)
        parsed_id = _parse_record_id(collection, record_id)
        async with _connection_scope() as conn:
            query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, (parsed_id,))

        if cursor.rowcount == 0:
            msg = f"Record not found in {collection}: {record_id}"
            raise KeyError(msg)

        logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})
    except KeyError:
        raise
    except Exception as e:
        logger.error("delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to delete record from {collection}: {e}"
        raise RuntimeError(msg) from e


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """Return one page of rows matching the filter."""
    try:
        _validate_collection_name(collection)
        where_clause, params = _build_where(filter_query)
        safe_sort = _parse_sort(sort)
        offset = (page - 1) * per_page

        query = f"SELECT * FROM {collection} {where_clause} ORDER BY {safe_sort} LIMIT ? OFFSET ?"  # noqa: S608 - collection is validated
        params.extend([per_page, offset])

        async with _connection_scope() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()

        columns = [description[0] for description in cursor.description]
        records = [_convert_record_ids(dict(zip(columns, row, strict=True))) for row in rows]

        logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
        return records
    except Exception as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to list records from {collection}: {e}"
        raise RuntimeError(msg) from e


async def list_all_records(*, collection: str, filter_query: str = "", sort: str = "") -> list[dict[str, Any]]:
    """List every record matching the filter, following pages until exhausted."""
    per_page = constants.DEFAULT_PER_PAGE_LIMIT
    records: list[dict[str, Any]] = []
    page = 1
    while True:
        batch = await list_records(
            collection=collection,
            page=page,
            per_page=per_page,
            filter_query=filter_query,
            sort=sort,
        )
        records.extend(batch)
        if len(batch) < per_page:
            return records
        page += 1


async def count_records(*, collection: str, filter_query: str = "") -> int:
    """Count records matching the filter."""
    try:
        _validate_collection_name(collection)
        where_clause, params = _build_where(filter_query)
        query = f"SELECT COUNT(*) FROM {collection} {where_clause}"  # noqa: S608 - collection is validated

        async with _connection_scope() as conn:
            cursor = await conn.execute(query, params)
            row = await cursor.fetchone()

        return int(row[0]) if row else 0
    except Exception as e:
        logger.error("count_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to count records in {collection}: {e}"
        raise RuntimeError(msg) from e


async def get_first_record(*, collection: str, filter_query: str, sort: str = "") -> dict[str, Any] | None:
    """First matching row in sort order, or None."""
    records = await list_records(collection=collection, per_page=1, filter_query=filter_query, sort=sort)
    return records[0] if records else None
