from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from sqlalchemy import func, desc
from datetime import datetime, timezone
from typing import List
import logging

from ..database import get_db
from ..models.visit_log import VisitLog
from ..schemas.visit_schema import VisitDashboardResponse, VisitLogOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stats", tags=["stats"])

DEVICE_TYPES = ["desktop", "mobile", "tablet"]


def start_of_today() -> datetime:
    """Medianoche de hoy (UTC)."""
    return datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


@router.get("/visits", response_model=List[VisitLogOut])
def list_recent_visits(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Visitas más recientes primero, paginadas."""
    return (
        db.query(VisitLog)
        .order_by(desc(VisitLog.visited_at), desc(VisitLog.id))
        .offset(offset)
        .limit(limit)
        .all()
    )


@router.get("/visits/dashboard", response_model=VisitDashboardResponse)
def get_visit_dashboard(db: Session = Depends(get_db)):
    """
    Resumen de visitas para el panel de administración.
    - today_pv: páginas vistas desde la medianoche
    - today_uv: IPs distintas entre esas visitas
    - device_breakdown: visitas de hoy por tipo de dispositivo
    - recent_visits: últimas 20 visitas
    """
    today = start_of_today()

    try:
        today_pv = db.query(func.count(VisitLog.id)).filter(
            VisitLog.visited_at >= today
        ).scalar() or 0

        today_uv = db.query(func.count(func.distinct(VisitLog.ip_address))).filter(
            VisitLog.visited_at >= today
        ).scalar() or 0

        device_breakdown = {device: 0 for device in DEVICE_TYPES}
        try:
            rows = (
                db.query(VisitLog.device_type, func.count(VisitLog.id))
                .filter(VisitLog.visited_at >= today)
                .group_by(VisitLog.device_type)
                .all()
            )
            for device_type, count in rows:
                # Cualquier valor desconocido cuenta como desktop
                key = device_type if device_type in device_breakdown else "desktop"
                device_breakdown[key] += count or 0
        except Exception as e:
            logger.warning(f"Error al calcular visitas por dispositivo: {e}")

        recent_visits = (
            db.query(VisitLog)
            .order_by(desc(VisitLog.visited_at), desc(VisitLog.id))
            .limit(20)
            .all()
        )

        return VisitDashboardResponse(
            today_pv=today_pv,
            today_uv=today_uv,
            device_breakdown=device_breakdown,
            recent_visits=[VisitLogOut.model_validate(v) for v in recent_visits],
        )

    except Exception as e:
        logger.error(f"Error crítico en dashboard de visitas: {e}", exc_info=True)
        return VisitDashboardResponse(
            today_pv=0,
            today_uv=0,
            device_breakdown={device: 0 for device in DEVICE_TYPES},
            recent_visits=[],
        )
