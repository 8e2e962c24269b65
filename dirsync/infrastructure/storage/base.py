"""
Adaptador base para backends SQL (SQLAlchemy async).

Cada motor concreto (SQLite, PostgreSQL, SQL Server) define:
- como se crea el engine (y si hace falta, la base de datos)
- el DDL de la tabla y de ALTER ... ADD COLUMN
- como leer las columnas vivas del catalogo
- la sentencia de upsert nativa (ON CONFLICT / MERGE)

El resto del flujo es comun y tiene el mismo comportamiento observable en
todos los motores:

    ensure_table -> ensure_schema(primer registro) -> upsert por registro

Cada registro se escribe en su propia transaccion: un fallo no envenena al
resto del batch y un crash a mitad de batch deja persistido un prefijo.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

from loguru import logger
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    InterfaceError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from dirsync.application.interfaces.storage_observer import NullStorageObserver, StorageObserver
from dirsync.application.services.identity import ResolvedRecord, resolve_record
from dirsync.application.services.schema_inference import (
    CREATED_AT_COLUMN,
    FINGERPRINT_COLUMN,
    HASH_COLUMN,
    ID_COLUMN,
    LAST_SYNC_COLUMN,
    STANDARD_COLUMNS,
    UPDATED_AT_COLUMN,
    diff_columns,
    infer_columns,
    stringify_value,
)
from dirsync.domain.entities.storage import BackendState, BatchResult, ColumnType, StorageResult
from dirsync.shared.exceptions.storage import (
    BackendConnectionError,
    BackendStateError,
    HealthCheckError,
    TableSetupError,
)
from dirsync.shared.utils.datetime_utils import to_canonical, utc_now


AUDIT_COLUMNS = (CREATED_AT_COLUMN, UPDATED_AT_COLUMN)


def is_connectivity_error(exc: BaseException) -> bool:
    """
    True si el error indica perdida de conectividad (no un problema del dato).

    Solo estos errores escalan fuera del adaptador; el resto (valor invalido,
    constraint, lock transitorio, columna faltante) se absorbe por registro.
    """
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    if isinstance(exc, (DisconnectionError, InterfaceError, PoolTimeoutError)):
        return True
    return isinstance(exc, (OSError, ConnectionError, asyncio.TimeoutError))


class SqlBackend(ABC):
    """
    Contrato comun de los backends de almacenamiento.

    Ciclo de vida: UNINITIALIZED -> INITIALIZED (initialize) ->
    OPERATIONAL (ensure_table) -> CLOSED (cleanup).
    """

    name: str = "SQL"
    # SQLite y SQL Server no distinguen mayusculas en nombres de columna
    case_sensitive_columns: bool = True
    # Base de datos a la que conectarse para crear la base objetivo (None = no aplica)
    admin_database: Optional[str] = None
    column_types: Mapping[ColumnType, str] = {}

    def __init__(self, url: str, observer: Optional[StorageObserver] = None):
        self._url = url
        self._engine: Optional[AsyncEngine] = None
        self._state = BackendState.UNINITIALIZED
        self._live_columns: Dict[str, Dict[str, str]] = {}
        self.observer: StorageObserver = observer or NullStorageObserver()

    # ------------------------------------------------------------------
    # Hooks por motor
    # ------------------------------------------------------------------

    @abstractmethod
    def _create_engine(self, url: Any) -> AsyncEngine:
        """Construye el AsyncEngine para la URL dada."""

    @abstractmethod
    def quote(self, identifier: str) -> str:
        """Quoting de identificadores del motor."""

    @abstractmethod
    def create_table_sql(self, table_name: str) -> str:
        ...

    @abstractmethod
    def add_column_sql(self, table_name: str, column: str, column_type: ColumnType) -> str:
        ...

    @abstractmethod
    def upsert_sql(self, table_name: str, columns: Sequence[str]) -> str:
        """
        Sentencia "insert o merge por id". Los valores se pasan como :p0..:pN
        en el mismo orden que `columns`.
        """

    @abstractmethod
    async def _fetch_columns(self, conn: AsyncConnection, table_name: str) -> Dict[str, str]:
        """Columnas vivas de la tabla: nombre -> tipo nativo (minusculas)."""

    def _create_database_sql(self, database: str) -> str:
        raise NotImplementedError

    def bind_expression(self, param: str, native_type: Optional[str]) -> str:
        """Expresion SQL para un parametro segun el tipo de la columna destino."""
        return f":{param}"

    async def _on_initialized(self) -> None:
        """Hook post-conexion (pragmas, etc)."""

    # ------------------------------------------------------------------
    # Estado
    # ------------------------------------------------------------------

    @property
    def state(self) -> BackendState:
        return self._state

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise BackendStateError(self.name, self._state.value, "engine")
        return self._engine

    def _require(self, operation: str, *allowed: BackendState) -> None:
        if self._state not in allowed:
            raise BackendStateError(self.name, self._state.value, operation)

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Abre el engine y verifica conectividad.

        Si la base de datos no existe y el motor lo soporta, se crea y se
        reintenta la conexion una vez.
        """
        if self._state in (BackendState.INITIALIZED, BackendState.OPERATIONAL):
            return
        self._require("initialize", BackendState.UNINITIALIZED)

        url = make_url(self._url)
        engine = self._create_engine(url)
        try:
            await self._ping(engine)
        except SQLAlchemyError as e:
            await engine.dispose()
            if self.admin_database and url.database and self._is_missing_database(e):
                logger.warning(f"Base de datos {url.database} no existe en {self.name}, intentando crearla")
                await self._create_database(url)
                engine = self._create_engine(url)
                try:
                    await self._ping(engine)
                except (SQLAlchemyError, OSError) as retry_err:
                    await engine.dispose()
                    raise BackendConnectionError(self.name, str(retry_err)) from retry_err
            else:
                raise BackendConnectionError(self.name, str(e)) from e
        except OSError as e:
            await engine.dispose()
            raise BackendConnectionError(self.name, str(e)) from e

        self._engine = engine
        await self._on_initialized()
        self._state = BackendState.INITIALIZED
        logger.info(f"Backend {self.name} inicializado")

    async def cleanup(self) -> None:
        """Libera el engine. Idempotente."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
        self._live_columns.clear()
        self._state = BackendState.CLOSED
        logger.info(f"Backend {self.name} cerrado")

    async def health_check(self) -> None:
        """Round-trip trivial (SELECT 1)."""
        self._require("health_check", BackendState.INITIALIZED, BackendState.OPERATIONAL)
        try:
            await self._ping(self.engine)
        except (SQLAlchemyError, OSError) as e:
            raise HealthCheckError(self.name, str(e)) from e

    async def _ping(self, engine: AsyncEngine) -> None:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    @staticmethod
    def _is_missing_database(exc: SQLAlchemyError) -> bool:
        message = str(getattr(exc, "orig", exc)).lower()
        return "database" in message and ("does not exist" in message or "cannot open database" in message)

    async def _create_database(self, url: Any) -> None:
        admin_engine = self._create_engine(url.set(database=self.admin_database))
        try:
            async with admin_engine.connect() as conn:
                conn = await conn.execution_options(isolation_level="AUTOCOMMIT")
                await conn.execute(text(self._create_database_sql(url.database)))
            logger.info(f"Base de datos {url.database} creada en {self.name}")
        except SQLAlchemyError as e:
            # Puede existir ya (carrera con otro proceso); el reintento de conexion decide
            logger.debug(f"Resultado de crear base de datos {url.database}: {e}")
        finally:
            await admin_engine.dispose()

    # ------------------------------------------------------------------
    # Tablas y esquema
    # ------------------------------------------------------------------

    async def ensure_table(self, table_name: str) -> None:
        """Crea la tabla si no existe (con las columnas estandar)."""
        self._require("ensure_table", BackendState.INITIALIZED, BackendState.OPERATIONAL)
        try:
            async with self.engine.begin() as conn:
                await self._create_table(conn, table_name)
                self._live_columns[table_name] = await self._fetch_columns(conn, table_name)
        except SQLAlchemyError as e:
            if is_connectivity_error(e):
                raise BackendConnectionError(self.name, str(e)) from e
            raise TableSetupError(self.name, table_name, str(e)) from e

        self._state = BackendState.OPERATIONAL
        logger.info(f"Tabla {table_name} creada/verificada en {self.name}")

    async def _create_table(self, conn: AsyncConnection, table_name: str) -> None:
        await conn.execute(text(self.create_table_sql(table_name)))

    async def get_columns(self, table_name: str) -> Dict[str, str]:
        """Columnas vivas leidas del catalogo del motor."""
        self._require("get_columns", BackendState.INITIALIZED, BackendState.OPERATIONAL)
        async with self.engine.connect() as conn:
            return await self._fetch_columns(conn, table_name)

    async def ensure_schema(self, table_name: str, sample: Mapping[str, Any]) -> List[str]:
        """
        Agrega las columnas que el registro de muestra necesita y la tabla no tiene.

        Un ALTER fallido se registra como warning y NO aborta: las escrituras
        posteriores que usen esa columna se intentan igual.

        Returns:
            Columnas agregadas en esta llamada
        """
        self._require("ensure_schema", BackendState.INITIALIZED, BackendState.OPERATIONAL)

        required = infer_columns(sample)
        try:
            existing = await self.get_columns(table_name)
        except SQLAlchemyError as e:
            if is_connectivity_error(e):
                raise BackendConnectionError(self.name, str(e)) from e
            raise
        missing = diff_columns(existing, required, case_sensitive=self.case_sensitive_columns)

        added: List[str] = []
        for column, column_type in missing.items():
            sql = self.add_column_sql(table_name, column, column_type)
            try:
                async with self.engine.begin() as conn:
                    await conn.execute(text(sql))
                added.append(column)
                logger.info(f"Columna {column} ({column_type.value}) agregada a {table_name} en {self.name}")
            except SQLAlchemyError as e:
                if is_connectivity_error(e):
                    raise BackendConnectionError(self.name, str(e)) from e
                logger.warning(f"No se pudo agregar la columna {column} a {table_name} en {self.name}: {e}")

        if added:
            existing = await self.get_columns(table_name)
        self._live_columns[table_name] = existing
        return added

    # ------------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------------

    def build_row(self, table_name: str, resolved: ResolvedRecord, synced_at: str) -> Dict[str, Optional[str]]:
        """
        Fila lista para escribir: campos del registro como texto + columnas estandar.

        Las columnas estandar y de auditoria las controla el backend; si el
        registro trae campos con esos nombres, se ignoran. Las columnas conocidas
        que el registro ya no trae se escriben como NULL, asi la fila refleja la
        misma version del registro que describe su sync_hash.
        """
        types = infer_columns(resolved.data)
        row: Dict[str, Optional[str]] = {ID_COLUMN: resolved.identity_str}
        for name, value in resolved.data.items():
            if name in STANDARD_COLUMNS or name in AUDIT_COLUMNS:
                continue
            row[name] = stringify_value(value, types[name])

        present = set(row) if self.case_sensitive_columns else {c.lower() for c in row}
        for column in self._live_columns.get(table_name, {}):
            if column in STANDARD_COLUMNS or column in AUDIT_COLUMNS:
                continue
            key = column if self.case_sensitive_columns else column.lower()
            if key not in present:
                row[column] = None

        row[LAST_SYNC_COLUMN] = synced_at
        row[HASH_COLUMN] = resolved.change_hash
        row[FINGERPRINT_COLUMN] = resolved.fingerprint
        return row

    def _native_type(self, table_name: str, column: str) -> Optional[str]:
        live = self._live_columns.get(table_name, {})
        if column in live:
            return live[column]
        if not self.case_sensitive_columns:
            lowered = column.lower()
            for name, native in live.items():
                if name.lower() == lowered:
                    return native
        return None

    async def _stored_hash(self, conn: AsyncConnection, table_name: str, identity: str) -> tuple:
        result = await conn.execute(
            text(
                f"SELECT {self.quote(HASH_COLUMN)} FROM {self.quote(table_name)} "
                f"WHERE {self.quote(ID_COLUMN)} = :id"
            ),
            {"id": identity},
        )
        row = result.first()
        return (row is not None, row[0] if row is not None else None)

    async def _write_record(self, table_name: str, resolved: ResolvedRecord, synced_at: str) -> StorageResult:
        """Escribe un registro en su propia transaccion."""
        async with self.engine.begin() as conn:
            exists, stored_hash = await self._stored_hash(conn, table_name, resolved.identity_str)
            if exists and stored_hash == resolved.change_hash:
                return StorageResult.SKIPPED

            row = self.build_row(table_name, resolved, synced_at)
            columns = list(row.keys())
            params = {f"p{i}": row[c] for i, c in enumerate(columns)}
            await conn.execute(text(self.upsert_sql(table_name, columns)), params)
            return StorageResult.UPDATED if exists else StorageResult.INSERTED

    async def upsert_record(self, table_name: str, record: Dict[str, Any]) -> StorageResult:
        """
        Upsert idempotente de un registro, keyed por identidad.

        Si el change-hash coincide con el almacenado no se escribe nada (SKIPPED).

        Raises:
            BackendConnectionError: si se pierde la conectividad
            SQLAlchemyError: cualquier otro fallo de escritura del registro
        """
        self._require("upsert_record", BackendState.OPERATIONAL)
        resolved = resolve_record(record)
        try:
            return await self._write_record(table_name, resolved, to_canonical(utc_now()))
        except SQLAlchemyError as e:
            if is_connectivity_error(e):
                raise BackendConnectionError(self.name, str(e)) from e
            raise

    async def upsert_batch(self, table_name: str, records: Sequence[Dict[str, Any]]) -> BatchResult:
        """
        Upsert de un batch, en el orden de entrada.

        - El esquema se asegura a partir del primer registro.
        - Un registro que falla se reintenta una vez tras ensure_schema con ese
          registro; si vuelve a fallar se cuenta como failed y el batch sigue.
        - Solo la perdida de conectividad aborta el batch.
        """
        self._require("upsert_batch", BackendState.OPERATIONAL)
        result = BatchResult(backend=self.name, table_name=table_name)
        if not records:
            return result

        await self.ensure_schema(table_name, records[0])
        synced_at = to_canonical(utc_now())

        for record in records:
            resolved = resolve_record(record)
            try:
                outcome = await self._write_with_retry(table_name, resolved, synced_at)
            except SQLAlchemyError as e:
                result.failed += 1
                self.observer.on_error(self.name, table_name, e)
                logger.error(f"No se pudo guardar {resolved.identity_str} en {table_name} ({self.name}): {e}")
                continue

            result.record(outcome)
            self.observer.on_result(self.name, table_name, outcome)
            logger.debug(f"{resolved.identity_str} -> {outcome.value} en {table_name} ({self.name})")

        logger.debug(
            f"Batch en {table_name} ({self.name}): insertados={result.inserted}, "
            f"actualizados={result.updated}, sin cambios={result.skipped}, fallidos={result.failed}"
        )
        return result

    async def _write_with_retry(self, table_name: str, resolved: ResolvedRecord, synced_at: str) -> StorageResult:
        try:
            return await self._write_record(table_name, resolved, synced_at)
        except SQLAlchemyError as e:
            if is_connectivity_error(e):
                raise BackendConnectionError(self.name, str(e)) from e
            logger.warning(
                f"Fallo al guardar {resolved.identity_str} en {table_name} ({self.name}), "
                f"reintentando tras actualizar esquema: {e}"
            )

        await self.ensure_schema(table_name, resolved.data)
        try:
            return await self._write_record(table_name, resolved, synced_at)
        except SQLAlchemyError as e:
            if is_connectivity_error(e):
                raise BackendConnectionError(self.name, str(e)) from e
            raise

    # ------------------------------------------------------------------
    # Lectura puntual
    # ------------------------------------------------------------------

    async def get_record(self, table_name: str, identity: str) -> Optional[Dict[str, Any]]:
        """Lookup por identidad (unico camino de lectura soportado)."""
        self._require("get_record", BackendState.INITIALIZED, BackendState.OPERATIONAL)
        async with self.engine.connect() as conn:
            result = await conn.execute(
                text(f"SELECT * FROM {self.quote(table_name)} WHERE {self.quote(ID_COLUMN)} = :id"),
                {"id": identity},
            )
            row = result.mappings().first()
            return dict(row) if row is not None else None

    async def count_rows(self, table_name: str) -> int:
        self._require("count_rows", BackendState.INITIALIZED, BackendState.OPERATIONAL)
        async with self.engine.connect() as conn:
            result = await conn.execute(text(f"SELECT COUNT(*) FROM {self.quote(table_name)}"))
            return int(result.scalar_one())
