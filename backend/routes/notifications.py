"""
Routes Notifications
"""

from fastapi import APIRouter, Depends, Query

from models.user import RequesterContext
from routes.auth import get_requester
from services import notifications

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("")
async def list_notifications(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=500),
    ctx: RequesterContext = Depends(get_requester)
):
    return {"notifications": await notifications.list_notifications(ctx, skip, limit)}
