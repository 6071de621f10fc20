"""
Routes Journal d'activité
"""

from typing import Optional

from fastapi import APIRouter, Depends

from models.activity import ActivityFilter, NoteCreate, ReportFilter
from models.user import RequesterContext
from routes.auth import get_requester
from services import activity_log, reporting

router = APIRouter(prefix="/activity", tags=["Activity"])


@router.post("")
async def list_activities(f: ActivityFilter, ctx: RequesterContext = Depends(get_requester)):
    """Un `lead` donné renvoie tout son historique, les autres filtres sont ignorés."""
    return await activity_log.list_activities(f, ctx)


@router.post("/note")
async def create_note(data: NoteCreate, ctx: RequesterContext = Depends(get_requester)):
    activity = await activity_log.add_note(data, ctx)
    return {"success": True, "activity": activity}


@router.get("/statics")
async def staff_report(
    manager: Optional[str] = None,
    staff: Optional[str] = None,
    start_date: Optional[int] = None,
    end_date: Optional[int] = None,
    ctx: RequesterContext = Depends(get_requester)
):
    f = ReportFilter(manager=manager, staff=staff, start_date=start_date, end_date=end_date)
    return await reporting.staff_report(f, ctx)
