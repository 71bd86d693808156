from datetime import datetime
from typing import Literal
from pydantic import BaseModel


class HomeVideoBase(BaseModel):
    title: str
    description: str | None = None
    source_type: Literal["local", "external"] = "external"
    video_url: str
    external_platform: str | None = None
    external_embed_code: str | None = None
    poster_url: str | None = None
    autoplay: bool = True
    muted: bool = True
    loop: bool = True
    show_controls: bool = False
    is_primary: bool = False
    is_active: bool = True
    sort_order: int = 0


class HomeVideoCreate(HomeVideoBase):
    pass


class HomeVideoUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    source_type: Literal["local", "external"] | None = None
    video_url: str | None = None
    external_platform: str | None = None
    external_embed_code: str | None = None
    poster_url: str | None = None
    autoplay: bool | None = None
    muted: bool | None = None
    loop: bool | None = None
    show_controls: bool | None = None
    is_primary: bool | None = None
    is_active: bool | None = None
    sort_order: int | None = None


class HomeVideoOut(HomeVideoBase):
    id: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class PrimaryVideoOut(HomeVideoOut):
    preview_duration: float = 5.0  # Ventana del loop de preview en segundos
