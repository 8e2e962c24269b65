"""
Cliente minimo de la API de directorio (Microsoft Graph, via requests).

Requisitos cubiertos:
- paginacion por @odata.nextLink
- rate-limit/backoff (429, 5xx) respetando Retry-After
- errores 4xx no recuperables -> UpstreamApiError
- red caida / timeout -> UpstreamConnectionError (la pasada se reintenta)

El token se obtiene fuera de este servicio: se pasa un string fijo o un
callable que devuelve el token vigente en cada request.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import requests
from loguru import logger

from dirsync.core.config import EndpointConfig
from dirsync.shared.exceptions.sync import UpstreamApiError, UpstreamConnectionError


TokenProvider = Union[str, Callable[[], str]]


class GraphClient:
    """
    Cliente HTTP de la API de directorio. Implementa RecordSource.

    No transforma los registros: el sync los guarda tal como llegan.
    """

    def __init__(
        self,
        token: TokenProvider,
        *,
        session: Optional[requests.Session] = None,
        timeout_s: int = 30,
        max_retries: int = 6,
        min_backoff_s: float = 0.8,
        max_backoff_s: float = 20.0,
    ) -> None:
        self._token = token
        self._timeout_s = timeout_s
        self._max_retries = max_retries
        self._min_backoff_s = min_backoff_s
        self._max_backoff_s = max_backoff_s
        self._session = session or requests.Session()

    def _current_token(self) -> str:
        return self._token() if callable(self._token) else self._token

    def iter_pages(self, url: str) -> Iterable[List[Dict[str, Any]]]:
        """Itera las paginas de una coleccion siguiendo @odata.nextLink."""
        next_url: Optional[str] = url
        while next_url:
            payload = self._request_json("GET", next_url)
            yield payload.get("value") or []
            next_url = payload.get("@odata.nextLink")

    def fetch_all(self, endpoint: EndpointConfig) -> List[Dict[str, Any]]:
        """Todos los registros del endpoint (paginacion resuelta)."""
        records: List[Dict[str, Any]] = []
        for page in self.iter_pages(endpoint.endpoint_url):
            records.extend(page)
        logger.info(f"Obtenidos {len(records)} registros de {endpoint.name}")
        return records

    def _retry_delay(self, resp: requests.Response, attempt: int) -> float:
        retry_after = resp.headers.get("Retry-After")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                return self._min_backoff_s
        # Exponencial simple + jitter proporcional
        base = min(self._max_backoff_s, self._min_backoff_s * (2 ** attempt))
        return base + (0.15 * base)

    def _request_json(self, method: str, url: str) -> Dict[str, Any]:
        """
        Request HTTP con backoff para 429/5xx.

        - 429: respeta Retry-After si existe, si no exponencial.
        - 5xx: exponencial.
        - 4xx (no 429): error inmediato (config/auth mal).
        """
        for attempt in range(self._max_retries + 1):
            headers = {
                "Authorization": f"Bearer {self._current_token()}",
                "Accept": "application/json",
            }
            try:
                resp = self._session.request(
                    method=method,
                    url=url,
                    headers=headers,
                    timeout=self._timeout_s,
                )
            except (requests.ConnectionError, requests.Timeout) as e:
                raise UpstreamConnectionError(str(e)) from e

            if 200 <= resp.status_code < 300:
                return resp.json()

            # Errores recuperables
            if resp.status_code == 429 or 500 <= resp.status_code < 600:
                if attempt >= self._max_retries:
                    raise UpstreamApiError(
                        f"API de directorio error {resp.status_code} tras {attempt} reintentos: {resp.text}",
                        status_code_upstream=resp.status_code,
                    )
                sleep_s = self._retry_delay(resp, attempt)
                logger.warning(f"API de directorio respondio {resp.status_code}, reintentando en {sleep_s:.1f}s")
                time.sleep(sleep_s)
                continue

            # Errores no recuperables
            raise UpstreamApiError(
                f"Request a la API de directorio fallo {resp.status_code}: {resp.text}",
                status_code_upstream=resp.status_code,
            )

        raise UpstreamApiError(f"Sin respuesta valida de {url}")
