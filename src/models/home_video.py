from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, func

from ..database import Base


class HomeVideo(Base):
    __tablename__ = "home_videos"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    # "local" (subido al storage) o "external" (YouTube, Bilibili, etc.)
    source_type = Column(String(20), default="external", nullable=False)
    video_url = Column(String(2000), nullable=False)
    external_platform = Column(String(50), nullable=True)
    external_embed_code = Column(Text, nullable=True)
    poster_url = Column(String(1000), nullable=True)
    autoplay = Column(Boolean, default=True)
    muted = Column(Boolean, default=True)
    loop = Column(Boolean, default=True)
    show_controls = Column(Boolean, default=False)
    # Solo un video puede ser el principal del home
    is_primary = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
