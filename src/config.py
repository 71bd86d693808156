import os

class Settings:
    """Configuración de la aplicación que lee variables de entorno dinámicamente."""

    @property
    def app_name(self) -> str:
        return "Aune Web Backend"

    @property
    def environment(self) -> str:
        # Producción si ENV=production o si la plataforma expone PORT
        env = os.getenv("ENV", "").lower()
        if env == "production" or os.getenv("PORT"):
            return "production"
        return "development"

    @property
    def cors_origin(self) -> str:
        return os.getenv("CORS_ORIGIN", "http://localhost:3000")

    @property
    def supabase_url(self) -> str:
        return os.getenv("SUPABASE_URL", "").strip()

    @property
    def supabase_anon_key(self) -> str:
        return os.getenv("SUPABASE_ANON_KEY", "").strip()

    @property
    def visit_log_table(self) -> str:
        return os.getenv("VISIT_LOG_TABLE", "visit_logs")

    @property
    def visit_sink_url(self) -> str:
        # Endpoint propio (/api/visits) cuando no se escribe directo a Supabase
        return os.getenv("VISIT_SINK_URL", "").strip()

    @property
    def ip_lookup_url(self) -> str:
        return os.getenv("IP_LOOKUP_URL", "https://api.ipify.org?format=json")

    @property
    def session_storage_key(self) -> str:
        return "aune_session_id"

    @property
    def admin_route_prefix(self) -> str:
        return os.getenv("ADMIN_ROUTE_PREFIX", "/admin")

    @property
    def preview_duration(self) -> float:
        raw = os.getenv("VIDEO_PREVIEW_SECONDS", "5")
        try:
            value = float(raw)
        except ValueError:
            return 5.0
        return value if value > 0 else 5.0

# Instancia singleton de Settings (sin cache, lee valores dinámicamente)
_settings_instance = None

def get_settings() -> Settings:
    """Retorna la instancia de Settings. Lee variables de entorno dinámicamente."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance

def clear_settings_cache():
    """Limpia la instancia de settings (aunque no es necesario con propiedades dinámicas)."""
    global _settings_instance
    _settings_instance = None
