"""
LeadFlow CRM - Routes Auth
Session lookup (tokens are issued by the external auth service) and the
RequesterContext every other router passes into the services.
"""

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, Field

from config import db, now_iso
from models.user import RequesterContext

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)


class FcmTokenUpdate(BaseModel):
    token: str = Field(min_length=1)


# ==================== HELPERS ====================

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """Récupère l'utilisateur connecté depuis le token."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    session = await db.sessions.find_one({
        "token": credentials.credentials,
        "expires_at": {"$gt": now_iso()}
    })

    if not session:
        raise HTTPException(status_code=401, detail="Session expired")

    user = await db.users.find_one(
        {"id": session["user_id"]},
        {"_id": 0, "password": 0}
    )

    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if user.get("is_active", True) is False:
        raise HTTPException(status_code=403, detail="Account deactivated")

    return user


async def get_requester(user: dict = Depends(get_current_user)) -> RequesterContext:
    return RequesterContext.from_user(user)


# ==================== ME ====================

@router.get("/me")
async def me(user: dict = Depends(get_current_user)):
    user.pop("fcm_token", None)
    return user


@router.put("/fcm-token")
async def update_fcm_token(data: FcmTokenUpdate, user: dict = Depends(get_current_user)):
    """Registers the device token used for push notifications."""
    await db.users.update_one({"id": user["id"]}, {"$set": {"fcm_token": data.token}})
    return {"success": True}
