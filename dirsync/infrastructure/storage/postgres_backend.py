"""
Backend PostgreSQL (postgresql+asyncpg).

Columnas tipadas (BOOLEAN, BIGINT, DOUBLE PRECISION, TIMESTAMPTZ). Los valores
viajan como texto y se castean al tipo de la columna viva en el servidor.
Si la base de datos no existe se crea desde la base `postgres`.
"""
from typing import Any, Dict, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

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


class PostgresBackend(SqlBackend):
    """Backend PostgreSQL con upsert nativo ON CONFLICT."""

    name = "PostgreSQL"
    case_sensitive_columns = True
    admin_database = "postgres"
    column_types = {
        ColumnType.BOOLEAN: "BOOLEAN",
        ColumnType.INTEGER: "BIGINT",
        ColumnType.FLOAT: "DOUBLE PRECISION",
        ColumnType.TEXT: "TEXT",
        ColumnType.TIMESTAMP: "TIMESTAMPTZ",
        ColumnType.JSON: "TEXT",
    }

    def __init__(
        self,
        url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        observer: Optional[StorageObserver] = None,
    ):
        super().__init__(url, observer=observer)
        self.pool_size = pool_size
        self.max_overflow = max_overflow

    def _create_engine(self, url: Any) -> AsyncEngine:
        return create_async_engine(
            url,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
            pool_pre_ping=True,
        )

    def quote(self, identifier: str) -> str:
        escaped = identifier.replace('"', '""').replace(":", "\\:")
        return f'"{escaped}"'

    def _create_database_sql(self, database: str) -> str:
        return f"CREATE DATABASE {self.quote(database)}"

    def bind_expression(self, param: str, native_type: Optional[str]) -> str:
        # El CAST interno fija el parametro como texto para asyncpg
        if native_type is None or native_type in ("text", "character varying"):
            return f"CAST(:{param} AS TEXT)"
        return f"CAST(CAST(:{param} AS TEXT) AS {native_type})"

    def create_table_sql(self, table_name: str) -> str:
        q = self.quote
        return (
            f"CREATE TABLE IF NOT EXISTS {q(table_name)} ("
            f"{q(ID_COLUMN)} TEXT PRIMARY KEY, "
            f"{q(LAST_SYNC_COLUMN)} TIMESTAMPTZ, "
            f"{q(HASH_COLUMN)} TEXT, "
            f"{q(FINGERPRINT_COLUMN)} TEXT, "
            f"{q(CREATED_AT_COLUMN)} TIMESTAMPTZ NOT NULL DEFAULT now(), "
            f"{q(UPDATED_AT_COLUMN)} TIMESTAMPTZ NOT NULL DEFAULT now())"
        )

    def add_column_sql(self, table_name: str, column: str, column_type: ColumnType) -> str:
        return (
            f"ALTER TABLE {self.quote(table_name)} "
            f"ADD COLUMN IF NOT EXISTS {self.quote(column)} {self.column_types[column_type]}"
        )

    def upsert_sql(self, table_name: str, columns: Sequence[str]) -> str:
        q = self.quote
        names = ", ".join(q(c) for c in columns)
        values = ", ".join(
            self.bind_expression(f"p{i}", self._native_type(table_name, c))
            for i, c in enumerate(columns)
        )
        updates = ", ".join(f"{q(c)} = EXCLUDED.{q(c)}" for c in columns if c != ID_COLUMN)
        return (
            f"INSERT INTO {q(table_name)} ({names}) VALUES ({values}) "
            f"ON CONFLICT ({q(ID_COLUMN)}) DO UPDATE SET {updates}, "
            f"{q(UPDATED_AT_COLUMN)} = now()"
        )

    async def _fetch_columns(self, conn: AsyncConnection, table_name: str) -> Dict[str, str]:
        result = await conn.execute(
            text(
                "SELECT column_name, data_type FROM information_schema.columns "
                "WHERE table_schema = current_schema() AND table_name = :table_name "
                "ORDER BY ordinal_position"
            ),
            {"table_name": table_name},
        )
        return {row[0]: row[1].lower() for row in result.fetchall()}
