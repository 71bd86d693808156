from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..database import get_db
from ..models.home_video import HomeVideo
from ..schemas.home_video_schema import (
    HomeVideoCreate,
    HomeVideoOut,
    HomeVideoUpdate,
    PrimaryVideoOut,
)
from ..services.media_preview import PreviewOptions


router = APIRouter(prefix="/home-videos", tags=["home-videos"])


def player_options_for(video: HomeVideo, settings: Settings | None = None) -> PreviewOptions:
    """
    Opciones del MediaPreviewPlayer para un video del home.
    El preview siempre arranca mudo: `video.muted` solo aplica a la
    reproducción completa del widget.
    """
    settings = settings or get_settings()
    return PreviewOptions(
        preview_duration=settings.preview_duration,
        autoplay=bool(video.autoplay),
    )


def _clear_other_primaries(db: Session, keep_id: int | None) -> None:
    """Quita la marca de principal a todos los videos salvo `keep_id` (sin commit)."""
    query = db.query(HomeVideo).filter(HomeVideo.is_primary.is_(True))
    if keep_id is not None:
        query = query.filter(HomeVideo.id != keep_id)
    query.update({HomeVideo.is_primary: False}, synchronize_session="fetch")


def _get_video_or_404(db: Session, video_id: int) -> HomeVideo:
    video = db.query(HomeVideo).filter(HomeVideo.id == video_id).first()
    if not video:
        raise HTTPException(status_code=404, detail="Video no encontrado")
    return video


def _find_primary_video(db: Session) -> HomeVideo | None:
    """
    Video principal activo; si no hay, el primer activo por sort_order.
    """
    primary = (
        db.query(HomeVideo)
        .filter(HomeVideo.is_active.is_(True), HomeVideo.is_primary.is_(True))
        .first()
    )
    if primary:
        return primary

    return (
        db.query(HomeVideo)
        .filter(HomeVideo.is_active.is_(True))
        .order_by(HomeVideo.sort_order.asc(), HomeVideo.id.asc())
        .first()
    )


@router.get("/primary", response_model=PrimaryVideoOut)
def get_primary_video(db: Session = Depends(get_db)):
    """
    Endpoint público: video del home con la ventana de preview configurada.
    """
    video = _find_primary_video(db)
    if not video:
        raise HTTPException(status_code=404, detail="No hay videos activos")

    options = player_options_for(video)
    data = HomeVideoOut.model_validate(video).model_dump()
    data["preview_duration"] = options.preview_duration
    return PrimaryVideoOut(**data)


@router.get("/admin", response_model=List[HomeVideoOut])
def list_home_videos_admin(db: Session = Depends(get_db)):
    """
    Endpoint de administración para listar todos los videos,
    activos e inactivos.
    """
    return (
        db.query(HomeVideo)
        .order_by(HomeVideo.sort_order.asc(), HomeVideo.id.asc())
        .all()
    )


@router.post("/admin", response_model=HomeVideoOut, status_code=201)
def create_home_video(payload: HomeVideoCreate, db: Session = Depends(get_db)):
    if not payload.title.strip():
        raise HTTPException(status_code=400, detail="El título es requerido")
    if not payload.video_url:
        raise HTTPException(status_code=400, detail="video_url es requerido")

    data = payload.model_dump()
    data["title"] = payload.title.strip()
    video = HomeVideo(**data)
    db.add(video)
    db.flush()

    if video.is_primary:
        # Asegurar un único video principal
        _clear_other_primaries(db, keep_id=video.id)

    db.commit()
    db.refresh(video)
    return video


@router.put("/admin/{video_id}", response_model=HomeVideoOut)
def update_home_video(
    video_id: int, payload: HomeVideoUpdate, db: Session = Depends(get_db)
):
    video = _get_video_or_404(db, video_id)

    data = payload.model_dump(exclude_unset=True)
    # Campos que se pueden vaciar explícitamente
    nullable_fields = {"description", "external_platform", "external_embed_code", "poster_url"}

    for key, value in data.items():
        if key in nullable_fields:
            setattr(video, key, value)
        elif value is not None:
            setattr(video, key, value)

    if data.get("is_primary"):
        _clear_other_primaries(db, keep_id=video.id)

    db.add(video)
    db.commit()
    db.refresh(video)
    return video


@router.delete("/admin/{video_id}", status_code=204)
def delete_home_video(video_id: int, db: Session = Depends(get_db)):
    video = _get_video_or_404(db, video_id)

    db.delete(video)
    db.commit()
    return None


@router.post("/admin/{video_id}/primary", response_model=HomeVideoOut)
def set_primary_video(video_id: int, db: Session = Depends(get_db)):
    video = _get_video_or_404(db, video_id)

    _clear_other_primaries(db, keep_id=video.id)
    video.is_primary = True
    db.commit()
    db.refresh(video)
    return video


@router.post("/admin/{video_id}/toggle-active", response_model=HomeVideoOut)
def toggle_video_active(video_id: int, db: Session = Depends(get_db)):
    video = _get_video_or_404(db, video_id)

    video.is_active = not video.is_active
    db.commit()
    db.refresh(video)
    return video
