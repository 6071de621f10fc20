"""
Routes Analytics (statistiques leads)
"""

from typing import Optional

from fastapi import APIRouter, Depends

from models.activity import ReportFilter
from models.user import RequesterContext
from routes.auth import get_requester
from services import reporting

router = APIRouter(tags=["Analytics"])


@router.get("/analytics")
async def lead_analytics(
    manager: Optional[str] = None,
    staff: Optional[str] = None,
    start_date: Optional[int] = None,
    end_date: Optional[int] = None,
    ctx: RequesterContext = Depends(get_requester)
):
    f = ReportFilter(manager=manager, staff=staff, start_date=start_date, end_date=end_date)
    return await reporting.lead_statistics(f, ctx)
