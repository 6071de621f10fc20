"""
Routes Objectifs mensuels
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from models.target import TargetFilter, TargetSet
from models.user import RequesterContext
from routes.auth import get_requester
from services import target_ledger

router = APIRouter(prefix="/target", tags=["Targets"])


@router.post("")
async def set_target(data: TargetSet, ctx: RequesterContext = Depends(get_requester)):
    target = await target_ledger.set_target(data, ctx)
    return {"success": True, "target": target}


@router.get("")
async def list_targets(
    assigned: Optional[str] = None,
    month: Optional[int] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=500),
    ctx: RequesterContext = Depends(get_requester)
):
    f = TargetFilter(assigned=assigned, month=month, skip=skip, limit=limit)
    return {"targets": await target_ledger.list_targets(f, ctx)}


@router.get("/stats")
async def target_stats(month: Optional[int] = None, ctx: RequesterContext = Depends(get_requester)):
    """month: ms IST anywhere inside the month (default: current month)."""
    return await target_ledger.get_stats(ctx, month)
