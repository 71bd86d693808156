# Importar todos los modelos para que SQLAlchemy los registre antes de create_all()
from .visit_log import VisitLog
from .home_video import HomeVideo

__all__ = [
    "VisitLog",
    "HomeVideo",
]
