"""
Routes Congés
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from models.leave import LeaveApply, LeaveFilter, LeaveStatusUpdate
from models.user import RequesterContext
from routes.auth import get_requester
from services import leaves

router = APIRouter(prefix="/leave", tags=["Leaves"])


@router.post("")
async def apply_leave(data: LeaveApply, ctx: RequesterContext = Depends(get_requester)):
    leave = await leaves.apply_leave(data, ctx)
    return {"success": True, "leave": leave, "message": "Leave applied successfully"}


@router.get("")
async def list_leaves(
    user_id: Optional[str] = None,
    start_date: Optional[int] = None,
    end_date: Optional[int] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=500),
    ctx: RequesterContext = Depends(get_requester)
):
    f = LeaveFilter(user_id=user_id, start_date=start_date, end_date=end_date, skip=skip, limit=limit)
    return {"leaves": await leaves.list_leaves(f, ctx)}


@router.put("")
async def update_leave_status(data: LeaveStatusUpdate, ctx: RequesterContext = Depends(get_requester)):
    """Super admin uniquement."""
    return await leaves.update_leave_status(data, ctx)
