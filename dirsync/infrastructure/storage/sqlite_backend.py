"""
Backend SQLite (sqlite+aiosqlite).

Todos los valores se guardan como TEXT/INTEGER/REAL; SQLite usa tipado
dinamico, asi que los timestamps quedan como texto ISO 8601 en UTC.
"""
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from dirsync.application.interfaces.storage_observer import StorageObserver
from dirsync.application.services.schema_inference import (
    CREATED_AT_COLUMN,
    FINGERPRINT_COLUMN,
    HASH_COLUMN,
    ID_COLUMN,
    LAST_SYNC_COLUMN,
    UPDATED_AT_COLUMN,
)
from dirsync.domain.entities.storage import ColumnType
from dirsync.infrastructure.storage.base import SqlBackend


MEMORY_PATH = ":memory:"


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SqliteBackend(SqlBackend):
    """Backend SQLite sobre un archivo local (se crea el directorio si falta)."""

    name = "SQLite"
    case_sensitive_columns = False
    column_types = {
        ColumnType.BOOLEAN: "INTEGER",
        ColumnType.INTEGER: "INTEGER",
        ColumnType.FLOAT: "REAL",
        ColumnType.TEXT: "TEXT",
        ColumnType.TIMESTAMP: "TEXT",
        ColumnType.JSON: "TEXT",
    }

    def __init__(self, database_path: str, observer: Optional[StorageObserver] = None):
        self.database_path = database_path
        if database_path == MEMORY_PATH:
            url = "sqlite+aiosqlite://"
        else:
            url = f"sqlite+aiosqlite:///{database_path}"
        super().__init__(url, observer=observer)

    def _create_engine(self, url: Any) -> AsyncEngine:
        if self.database_path == MEMORY_PATH:
            # Una sola conexion compartida: cada conexion nueva seria otra base vacia
            engine = create_async_engine(
                url,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)
            engine = create_async_engine(url)
            event.listen(engine.sync_engine, "connect", _set_sqlite_pragmas)
        return engine

    def quote(self, identifier: str) -> str:
        # ":" se escapa para que text() no lo tome como parametro
        escaped = identifier.replace('"', '""').replace(":", "\\:")
        return f'"{escaped}"'

    def create_table_sql(self, table_name: str) -> str:
        q = self.quote
        return (
            f"CREATE TABLE IF NOT EXISTS {q(table_name)} ("
            f"{q(ID_COLUMN)} TEXT PRIMARY KEY, "
            f"{q(LAST_SYNC_COLUMN)} TEXT, "
            f"{q(HASH_COLUMN)} TEXT, "
            f"{q(FINGERPRINT_COLUMN)} TEXT, "
            f"{q(CREATED_AT_COLUMN)} TEXT DEFAULT CURRENT_TIMESTAMP, "
            f"{q(UPDATED_AT_COLUMN)} TEXT DEFAULT CURRENT_TIMESTAMP)"
        )

    def add_column_sql(self, table_name: str, column: str, column_type: ColumnType) -> str:
        return f"ALTER TABLE {self.quote(table_name)} ADD COLUMN {self.quote(column)} {self.column_types[column_type]}"

    def upsert_sql(self, table_name: str, columns: Sequence[str]) -> str:
        q = self.quote
        names = ", ".join(q(c) for c in columns)
        values = ", ".join(self.bind_expression(f"p{i}", None) for i in range(len(columns)))
        updates = ", ".join(f"{q(c)} = excluded.{q(c)}" for c in columns if c != ID_COLUMN)
        return (
            f"INSERT INTO {q(table_name)} ({names}) VALUES ({values}) "
            f"ON CONFLICT({q(ID_COLUMN)}) DO UPDATE SET {updates}, "
            f"{q(UPDATED_AT_COLUMN)} = CURRENT_TIMESTAMP"
        )

    async def _fetch_columns(self, conn: AsyncConnection, table_name: str) -> Dict[str, str]:
        result = await conn.execute(text(f"PRAGMA table_info({self.quote(table_name)})"))
        # (cid, name, type, notnull, dflt_value, pk)
        return {row[1]: (row[2] or "").lower() for row in result.fetchall()}
