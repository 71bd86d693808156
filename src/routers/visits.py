import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.visit_log import VisitLog
from ..schemas.visit_schema import VisitEvent

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/visits", tags=["visits"])


@router.post("")
def log_visit(event: VisitEvent, db: Session = Depends(get_db)):
    """
    Registra una visita enviada por el frontend.
    Inserción anónima, sin deduplicar: cada navegación es una fila.
    Si falla el guardado se responde igual con 200 para no romper la página.
    """
    try:
        visit = VisitLog(**event.model_dump())
        db.add(visit)
        db.commit()
        logger.info(f"Visita registrada: {event.page_url} ({event.session_id[:8]}...)")
        return {"status": "ok"}

    except Exception as e:
        logger.error(f"Error al registrar visita: {e}")
        db.rollback()
        return {"status": "error", "message": str(e)}
