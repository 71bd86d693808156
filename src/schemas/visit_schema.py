from datetime import datetime, timezone
from typing import Literal, List, Dict
from pydantic import BaseModel, Field, field_validator


DeviceType = Literal["desktop", "mobile", "tablet"]


class VisitEvent(BaseModel):
    """Registro que el frontend envía por cada navegación."""
    ip_address: str = "0.0.0.0"
    page_url: str
    referer: str | None = None
    user_agent: str = ""
    device_type: DeviceType = "desktop"
    browser: str = "Unknown"
    os: str = "Unknown"
    session_id: str = Field(min_length=1, max_length=100)
    visited_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("visited_at")
    @classmethod
    def normalize_to_utc(cls, value: datetime) -> datetime:
        # Se guarda siempre en UTC; sin zona se asume UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class VisitLogOut(BaseModel):
    id: int
    page_url: str
    device_type: str | None = None
    browser: str | None = None
    os: str | None = None
    ip_address: str | None = None
    visited_at: datetime | None = None

    class Config:
        from_attributes = True


class VisitDashboardResponse(BaseModel):
    today_pv: int
    today_uv: int
    device_breakdown: Dict[str, int]
    recent_visits: List[VisitLogOut]
