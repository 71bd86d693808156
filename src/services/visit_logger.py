"""
Registro de visitas del sitio público.

Cada pestaña del navegador tiene un session_id estable guardado en el
almacenamiento de la sesión, y cada navegación genera un registro en
visit_logs con IP, dispositivo, navegador y sistema operativo.
Todo es best-effort: sin reintentos, y un fallo nunca llega al usuario.
"""
import logging
import re
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

import httpx

from ..config import Settings, get_settings
from .background import spawn_detached
from .log_sink import ApiLogSink, DatabaseLogSink, LogSink, SupabaseLogSink

logger = logging.getLogger(__name__)

SESSION_STORAGE_KEY = "aune_session_id"
FALLBACK_IP = "0.0.0.0"

_SESSION_SUFFIX_CHARS = string.digits + string.ascii_lowercase

_MOBILE_PATTERN = re.compile(r"Mobile|Android|iPhone|iPad|iPod", re.IGNORECASE)
_TABLET_PATTERN = re.compile(r"iPad|Tablet", re.IGNORECASE)

# El orden importa: el UA de Chrome también contiene "Safari",
# y el de Edge contiene "Chrome"
_BROWSER_PATTERNS = [
    ("Firefox", re.compile(r"Firefox", re.IGNORECASE)),
    ("Edge", re.compile(r"Edg", re.IGNORECASE)),
    ("Chrome", re.compile(r"Chrome", re.IGNORECASE)),
    ("Safari", re.compile(r"Safari", re.IGNORECASE)),
    ("Opera", re.compile(r"Opera|OPR", re.IGNORECASE)),
]

_OS_PATTERNS = [
    ("Windows", re.compile(r"Windows", re.IGNORECASE)),
    ("macOS", re.compile(r"Mac OS", re.IGNORECASE)),
    ("Linux", re.compile(r"Linux", re.IGNORECASE)),
    ("Android", re.compile(r"Android", re.IGNORECASE)),
    ("iOS", re.compile(r"iOS|iPhone|iPad", re.IGNORECASE)),
]


def parse_user_agent(ua: str | None) -> dict:
    """
    Extrae tipo de dispositivo, navegador y sistema operativo del User-Agent.
    Gana la primera coincidencia de cada lista.

    Ejemplo:
    - "Mozilla/5.0 (iPhone; CPU iPhone OS 15_0)" -> mobile / Unknown / iOS
    """
    result = {
        "device_type": "desktop",
        "browser": "Unknown",
        "os": "Unknown",
    }

    if not ua:
        return result

    if _MOBILE_PATTERN.search(ua):
        result["device_type"] = "tablet" if _TABLET_PATTERN.search(ua) else "mobile"

    for label, pattern in _BROWSER_PATTERNS:
        if pattern.search(ua):
            result["browser"] = label
            break

    for label, pattern in _OS_PATTERNS:
        if pattern.search(ua):
            result["os"] = label
            break

    return result


def generate_session_id() -> str:
    """Genera un id del tipo '{epoch_ms}-{sufijo base36}'."""
    suffix = "".join(secrets.choice(_SESSION_SUFFIX_CHARS) for _ in range(11))
    return f"{int(time.time() * 1000)}-{suffix}"


class SessionStorage(Protocol):
    def get_item(self, key: str) -> str | None:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...


class MemorySessionStorage:
    """Almacenamiento con alcance de pestaña: se pierde al descartar el objeto."""

    def __init__(self, initial: dict | None = None):
        self._items = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def clear(self) -> None:
        self._items.clear()


class VisitSession:
    """
    Sesión de visitas de una pestaña.
    El host la crea una sola vez al arrancar y la pasa a quien necesite
    registrar visitas.
    """

    def __init__(
        self,
        sink: LogSink,
        storage: SessionStorage | None = None,
        user_agent: str = "",
        referrer: str | None = None,
        ip_lookup_url: str = "https://api.ipify.org?format=json",
        http_client: httpx.AsyncClient | None = None,
        storage_key: str = SESSION_STORAGE_KEY,
    ):
        self.sink = sink
        self.storage = storage if storage is not None else MemorySessionStorage()
        self.user_agent = user_agent
        self.referrer = referrer
        self.ip_lookup_url = ip_lookup_url
        self.http_client = http_client
        self.storage_key = storage_key
        self._session_id: str | None = None

    def get_session_id(self) -> str:
        if self._session_id:
            return self._session_id

        try:
            stored = self.storage.get_item(self.storage_key)
        except Exception as e:
            logger.warning(f"[VisitLogger] No se pudo leer el session_id guardado: {e}")
            stored = None

        if stored:
            self._session_id = stored
            return self._session_id

        self._session_id = generate_session_id()
        try:
            self.storage.set_item(self.storage_key, self._session_id)
        except Exception as e:
            logger.warning(f"[VisitLogger] No se pudo guardar el session_id: {e}")

        return self._session_id

    async def _fetch_json(self, url: str) -> dict:
        if self.http_client is not None:
            response = await self.http_client.get(url)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(url)
        response.raise_for_status()
        return response.json()

    async def get_client_ip(self) -> str:
        """IP pública vía servicio externo; '0.0.0.0' si falla."""
        try:
            data = await self._fetch_json(self.ip_lookup_url)
            ip = data.get("ip") if isinstance(data, dict) else None
            return ip or FALLBACK_IP
        except Exception as e:
            logger.warning(f"[VisitLogger] No se pudo obtener la IP del cliente: {e}")
            return FALLBACK_IP

    def build_visit(self, page_url: str, ip_address: str) -> dict:
        device_info = parse_user_agent(self.user_agent)
        return {
            "ip_address": ip_address,
            "page_url": page_url,
            "referer": self.referrer or None,
            "user_agent": self.user_agent,
            "device_type": device_info["device_type"],
            "browser": device_info["browser"],
            "os": device_info["os"],
            "session_id": self.get_session_id(),
            "visited_at": datetime.now(timezone.utc).isoformat(),
        }

    async def log_visit(self, page_url: str) -> None:
        """Registra una visita. Nunca levanta excepciones."""
        try:
            ip = await self.get_client_ip()
            await self.sink.insert(self.build_visit(page_url, ip))
        except Exception as e:
            logger.warning(f"[VisitLogger] Error al registrar visita de {page_url}: {e}")

    def track(self, page_url: str):
        """Dispara log_visit en segundo plano sin esperar el resultado."""
        return spawn_detached(self.log_visit(page_url), name=f"visit:{page_url}")


@dataclass
class Route:
    path: str
    full_path: str = ""

    def __post_init__(self):
        if not self.full_path:
            self.full_path = self.path


class VisitLoggerMiddleware:
    """Hook post-navegación que registra cada página pública visitada."""

    def __init__(self, session: VisitSession, admin_prefix: str = "/admin"):
        self.session = session
        self.admin_prefix = admin_prefix
        # Páginas vistas en esta sesión; no se usa para filtrar repetidas
        self.visited: set[str] = set()

    def __call__(self, to: Route, from_: Route | None = None):
        if to.path.startswith(self.admin_prefix):
            return None

        page_key = to.full_path
        task = self.session.track(to.full_path)
        self.visited.add(page_key)
        return task


def create_visit_logger_middleware(
    router,
    session: VisitSession,
    admin_prefix: str | None = None,
) -> VisitLoggerMiddleware:
    """Registra el logger de visitas en `router.after_each`."""
    if admin_prefix is None:
        admin_prefix = get_settings().admin_route_prefix
    middleware = VisitLoggerMiddleware(session, admin_prefix=admin_prefix)
    router.after_each(middleware)
    return middleware


def build_log_sink(settings: Settings | None = None) -> LogSink:
    """Elige el destino según la configuración: API propia, Supabase o DB local."""
    settings = settings or get_settings()

    if settings.visit_sink_url:
        return ApiLogSink(settings.visit_sink_url)

    if settings.supabase_url and settings.supabase_anon_key:
        return SupabaseLogSink(
            settings.supabase_url,
            settings.supabase_anon_key,
            table=settings.visit_log_table,
        )

    logger.warning(
        "Supabase credentials not configured. Please set SUPABASE_URL and "
        "SUPABASE_ANON_KEY; visits will be stored in the local database."
    )
    return DatabaseLogSink()


def build_visit_session(
    user_agent: str = "",
    referrer: str | None = None,
    storage: SessionStorage | None = None,
    settings: Settings | None = None,
) -> VisitSession:
    """Arma la VisitSession que el host crea una vez por pestaña."""
    settings = settings or get_settings()
    return VisitSession(
        sink=build_log_sink(settings),
        storage=storage,
        user_agent=user_agent,
        referrer=referrer,
        ip_lookup_url=settings.ip_lookup_url,
        storage_key=settings.session_storage_key,
    )
