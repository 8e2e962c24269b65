"""
Backend SQL Server (mssql+aioodbc, driver ODBC).

El upsert se hace con MERGE ... WITH (HOLDLOCK) para que sea atomico por id.
Identificadores entre corchetes; comparacion de columnas sin distinguir
mayusculas (collation por defecto).
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


# Tipos de columna viva a los que se castea el parametro (texto) antes de escribir
CASTABLE_TYPES = {
    "bit": "BIT",
    "int": "INT",
    "bigint": "BIGINT",
    "float": "FLOAT",
    "real": "REAL",
    "datetime2": "DATETIME2",
    "datetimeoffset": "DATETIMEOFFSET",
}


class MssqlBackend(SqlBackend):
    """Backend SQL Server con MERGE."""

    name = "MSSQL"
    case_sensitive_columns = False
    admin_database = "master"
    column_types = {
        ColumnType.BOOLEAN: "BIT",
        ColumnType.INTEGER: "BIGINT",
        ColumnType.FLOAT: "FLOAT",
        ColumnType.TEXT: "NVARCHAR(MAX)",
        ColumnType.TIMESTAMP: "DATETIMEOFFSET",
        ColumnType.JSON: "NVARCHAR(MAX)",
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
        escaped = identifier.replace("]", "]]").replace(":", "\\:")
        return f"[{escaped}]"

    def _create_database_sql(self, database: str) -> str:
        return f"CREATE DATABASE {self.quote(database)}"

    def bind_expression(self, param: str, native_type: Optional[str]) -> str:
        target = CASTABLE_TYPES.get(native_type or "")
        if target is None:
            return f":{param}"
        return f"CAST(:{param} AS {target})"

    def create_table_sql(self, table_name: str) -> str:
        q = self.quote
        return (
            f"CREATE TABLE {q(table_name)} ("
            f"{q(ID_COLUMN)} NVARCHAR(64) NOT NULL PRIMARY KEY, "
            f"{q(LAST_SYNC_COLUMN)} DATETIMEOFFSET NULL, "
            f"{q(HASH_COLUMN)} NVARCHAR(64) NULL, "
            f"{q(FINGERPRINT_COLUMN)} NVARCHAR(64) NULL, "
            f"{q(CREATED_AT_COLUMN)} DATETIMEOFFSET NOT NULL DEFAULT SYSDATETIMEOFFSET(), "
            f"{q(UPDATED_AT_COLUMN)} DATETIMEOFFSET NOT NULL DEFAULT SYSDATETIMEOFFSET())"
        )

    async def _create_table(self, conn: AsyncConnection, table_name: str) -> None:
        # SQL Server no tiene CREATE TABLE IF NOT EXISTS
        result = await conn.execute(
            text(
                "SELECT 1 FROM INFORMATION_SCHEMA.TABLES "
                "WHERE TABLE_SCHEMA = SCHEMA_NAME() AND TABLE_NAME = :table_name"
            ),
            {"table_name": table_name},
        )
        if result.first() is None:
            await conn.execute(text(self.create_table_sql(table_name)))

    def add_column_sql(self, table_name: str, column: str, column_type: ColumnType) -> str:
        return f"ALTER TABLE {self.quote(table_name)} ADD {self.quote(column)} {self.column_types[column_type]} NULL"

    def upsert_sql(self, table_name: str, columns: Sequence[str]) -> str:
        q = self.quote
        source = ", ".join(
            f"{self.bind_expression(f'p{i}', self._native_type(table_name, c))} AS {q(c)}"
            for i, c in enumerate(columns)
        )
        updates = ", ".join(
            f"target.{q(c)} = source.{q(c)}" for c in columns if c != ID_COLUMN
        )
        names = ", ".join(q(c) for c in columns)
        values = ", ".join(f"source.{q(c)}" for c in columns)
        return (
            f"MERGE INTO {q(table_name)} WITH (HOLDLOCK) AS target "
            f"USING (SELECT {source}) AS source "
            f"ON target.{q(ID_COLUMN)} = source.{q(ID_COLUMN)} "
            f"WHEN MATCHED THEN UPDATE SET {updates}, "
            f"target.{q(UPDATED_AT_COLUMN)} = SYSDATETIMEOFFSET() "
            f"WHEN NOT MATCHED THEN INSERT ({names}) VALUES ({values});"
        )

    async def _fetch_columns(self, conn: AsyncConnection, table_name: str) -> Dict[str, str]:
        result = await conn.execute(
            text(
                "SELECT COLUMN_NAME, DATA_TYPE FROM INFORMATION_SCHEMA.COLUMNS "
                "WHERE TABLE_SCHEMA = SCHEMA_NAME() AND TABLE_NAME = :table_name "
                "ORDER BY ORDINAL_POSITION"
            ),
            {"table_name": table_name},
        )
        return {row[0]: row[1].lower() for row in result.fetchall()}
