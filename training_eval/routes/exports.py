import logging
from datetime import date
from io import BytesIO
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from ..analytics import collect_recommendations
from ..auth import AdminUser
from ..deps import get_evaluation_service, get_session_service, require_admin
from ..export import XLSX_MEDIA_TYPE, build_recommendations_excel, recommendations_filename
from ..services import EvaluationService, SessionService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/sessions/{session_id}/export/recommendations.xlsx")
async def export_recommendations(
    session_id: str,
    sessions_svc: SessionService = Depends(get_session_service),
    evaluations_svc: EvaluationService = Depends(get_evaluation_service),
    admin: AdminUser = Depends(require_admin),
):
    session = await sessions_svc.get_by_id(session_id)
    session_name = session.training_name if session else "Training"

    rows = collect_recommendations(await evaluations_svc.list_by_session(session_id))
    if not rows:
        raise HTTPException(status_code=404, detail="No recommendations to export")

    today = date.today()
    xlsx_bytes = build_recommendations_excel(session_name, rows, today)
    filename = recommendations_filename(session_name, today)
    logger.info("exported %d recommendations for session %s", len(rows), session_id)

    return StreamingResponse(
        BytesIO(xlsx_bytes),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )
