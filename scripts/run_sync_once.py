"""
CLI: una pasada de sincronizacion (directorio -> backends SQL).

Uso recomendado:
  - Ejecutar como job (cron/systemd timer) cuando no se quiere el servicio HTTP.

Variables de entorno (o .env):
  - GRAPH_ACCESS_TOKEN
  - SQLITE_ENABLED / SQLITE_DATABASE_PATH
  - POSTGRES_ENABLED / POSTGRES_URL
  - MSSQL_ENABLED / MSSQL_URL
  - ENDPOINTS (opcional, lista JSON)

Ejecucion:
  python scripts/run_sync_once.py
  python scripts/run_sync_once.py --check
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

# Permite ejecutar este script desde cualquier cwd sin configurar PYTHONPATH.
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

# Cargar variables desde .env antes de leer settings
load_dotenv(_REPO_ROOT / ".env", override=False)

from dirsync.core.bootstrap import build_from_settings
from dirsync.core.config import Settings
from dirsync.shared.exceptions.base import AppException


async def _run(check_only: bool) -> int:
    service, storage = build_from_settings(Settings())
    try:
        await storage.initialize()
        if check_only:
            await storage.health_check()
            logger.info(f"Backends OK: {', '.join(storage.backend_names())}")
            return 0

        report = await service.run_pass()
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
        return 0 if report.endpoint_errors == 0 else 1
    finally:
        await storage.cleanup()


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--check",
        action="store_true",
        help="Solo inicializa los backends y ejecuta el health check (no sincroniza).",
    )
    args = parser.parse_args()

    try:
        return asyncio.run(_run(args.check))
    except AppException as e:
        logger.error(f"Sync fallido [{e.error_code}]: {e.message}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
