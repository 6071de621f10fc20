"""
Routes Utilisateurs (hiérarchie admin / manager / staff)
"""

from typing import Optional

from fastapi import APIRouter, Depends

from models.user import RequesterContext, UserCreate
from routes.auth import get_requester
from services import users

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("")
async def create_user(data: UserCreate, ctx: RequesterContext = Depends(get_requester)):
    user = await users.create_user(data, ctx)
    return {"success": True, "user": user}


@router.get("/staffs")
async def list_staffs(manager: Optional[str] = None, ctx: RequesterContext = Depends(get_requester)):
    return {"users": await users.list_staff(ctx, manager)}


@router.get("/managers")
async def list_managers(ctx: RequesterContext = Depends(get_requester)):
    return {"users": await users.list_managers(ctx)}


@router.put("/{user_id}/deactivate")
async def deactivate_user(user_id: str, ctx: RequesterContext = Depends(get_requester)):
    user = await users.deactivate_user(user_id, ctx)
    return {"success": True, "user": user}
