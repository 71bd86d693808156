"""
Destinos remotos para los registros de visitas.
Todos exponen un único `insert(record)` asíncrono de solo escritura y
levantan VisitSinkError cuando el registro no pudo guardarse.
"""
import asyncio
from typing import Protocol

import httpx

from ..database import SessionLocal
from ..models.visit_log import VisitLog
from ..schemas.visit_schema import VisitEvent


class VisitSinkError(Exception):
    """El destino rechazó o no pudo guardar el registro de visita."""


class LogSink(Protocol):
    async def insert(self, record: dict) -> None:
        ...


async def _post_json(
    client: httpx.AsyncClient | None,
    url: str,
    payload: dict,
    headers: dict | None = None,
) -> httpx.Response:
    try:
        if client is not None:
            response = await client.post(url, json=payload, headers=headers)
        else:
            async with httpx.AsyncClient() as own_client:
                response = await own_client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as e:
        raise VisitSinkError(f"Error de red al enviar visita: {e}") from e

    if response.status_code >= 400:
        raise VisitSinkError(
            f"El destino respondió {response.status_code}: {response.text[:200]}"
        )
    return response


class SupabaseLogSink:
    """Inserta directo en la tabla vía PostgREST (RLS permite inserts anónimos)."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        table: str = "visit_logs",
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.table = table
        self.client = client

    @property
    def endpoint(self) -> str:
        return f"{self.url}/rest/v1/{self.table}"

    async def insert(self, record: dict) -> None:
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.anon_key}",
            "Prefer": "return=minimal",
        }
        await _post_json(self.client, self.endpoint, record, headers)


class ApiLogSink:
    """Envía la visita al endpoint POST /api/visits de este backend."""

    def __init__(self, url: str, client: httpx.AsyncClient | None = None):
        self.url = url
        self.client = client

    async def insert(self, record: dict) -> None:
        response = await _post_json(self.client, self.url, record)
        # El endpoint responde 200 también cuando falla el guardado
        try:
            data = response.json()
        except ValueError:
            return
        if isinstance(data, dict) and data.get("status") == "error":
            raise VisitSinkError(data.get("message") or "Error al guardar la visita")


class DatabaseLogSink:
    """Guarda la visita con SQLAlchemy en la tabla visit_logs."""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or SessionLocal

    def _insert_sync(self, record: dict) -> None:
        event = VisitEvent(**record)
        db = self.session_factory()
        try:
            db.add(VisitLog(**event.model_dump()))
            db.commit()
        except Exception as e:
            db.rollback()
            raise VisitSinkError(f"No se pudo guardar la visita: {e}") from e
        finally:
            db.close()

    async def insert(self, record: dict) -> None:
        await asyncio.to_thread(self._insert_sync, record)
