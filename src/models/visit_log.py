from sqlalchemy import Column, Integer, String, DateTime, Text, func

from ..database import Base


class VisitLog(Base):
    """
    Una fila por navegación registrada por el frontend.
    Se inserta de forma anónima y nunca se deduplica: el mismo session_id
    puede aparecer tantas veces como páginas visitó la pestaña.
    """
    __tablename__ = "visit_logs"

    id = Column(Integer, primary_key=True, index=True)
    ip_address = Column(String(64), nullable=False, default="0.0.0.0")
    page_url = Column(String(2000), nullable=False)
    referer = Column(String(2000), nullable=True)
    user_agent = Column(Text, nullable=True)
    device_type = Column(String(20), nullable=False, default="desktop")
    browser = Column(String(50), nullable=False, default="Unknown")
    os = Column(String(50), nullable=False, default="Unknown")
    session_id = Column(String(100), index=True, nullable=False)
    visited_at = Column(
        DateTime(timezone=True), server_default=func.now(), index=True, nullable=False
    )
