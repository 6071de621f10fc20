"""
LeadFlow CRM - User management

Hierarchy rules:
- admin creates managers, staff (with a manager) and call-center agents
- manager creates staff in its own branch only
- staff creates nobody
- a manager never has a manager; users are deactivated, never deleted
"""

import logging
import uuid
from typing import Dict, List, Optional

from config import db, hash_password, ist_millis_to_utc_iso, now_iso
from models.user import Privilege, RequesterContext, SecondPrivilege, UserCreate
from services import hierarchy
from services.errors import Conflict, Forbidden, NotFound, ValidationError

logger = logging.getLogger("users")


def _public_user(user: Dict) -> Dict:
    return {k: v for k, v in user.items() if k not in ("_id", "password", "fcm_token")}


async def create_user(data: UserCreate, ctx: RequesterContext) -> Dict:
    if ctx.is_staff:
        raise Forbidden("Staff cannot create users")

    privilege = data.privilege
    second_privilege = data.second_privilege
    manager_id = data.manager

    if ctx.is_manager:
        if privilege != Privilege.STAFF:
            raise Forbidden("Managers can only create staff")
        if second_privilege == SecondPrivilege.SUPER:
            raise Forbidden("Managers cannot grant the super privilege")
        manager_id = ctx.user_id

    if privilege == Privilege.STAFF:
        if not manager_id and second_privilege != SecondPrivilege.CALL_CENTER:
            raise Forbidden("Staff must be created with a manager (branch)")
        if manager_id:
            manager = await hierarchy.find_user_by_id(manager_id)
            if not hierarchy.is_manager(manager):
                raise NotFound("Manager not found")
    else:
        manager_id = None

    if second_privilege == SecondPrivilege.SUPER and privilege != Privilege.ADMIN:
        raise ValidationError("second_privilege", "super is reserved to admins")

    if await hierarchy.find_user_by_username(data.username):
        raise Conflict("User already exists")

    user = {
        "id": str(uuid.uuid4()),
        "username": data.username,
        "name": data.name,
        "phone": data.phone,
        "email": data.email,
        "dob": ist_millis_to_utc_iso(data.dob),
        "privilege": privilege.value,
        "second_privilege": second_privilege.value,
        "manager": manager_id,
        "password": hash_password(data.password),
        "is_active": True,
        "fcm_token": None,
        "created_by": ctx.user_id,
        "created_at": now_iso(),
    }
    await db.users.insert_one(user)
    logger.info(f"[USER] created {user['username']} privilege={privilege.value} manager={manager_id} by={ctx.user_id}")
    return _public_user(user)


async def deactivate_user(user_id: str, ctx: RequesterContext) -> Dict:
    """Admins: any non-admin user. Managers: their own staff."""
    if ctx.is_staff:
        raise Forbidden("Staff cannot deactivate users")
    user = await hierarchy.get_user_or_raise(user_id)
    if user.get("privilege") == Privilege.ADMIN.value:
        raise Forbidden("Admins cannot be deactivated")
    if ctx.is_manager and user.get("manager") != ctx.user_id:
        raise Forbidden("Managers can only deactivate their own staff")

    await db.users.update_one({"id": user_id}, {"$set": {"is_active": False, "updated_at": now_iso()}})
    user["is_active"] = False
    logger.info(f"[USER] deactivated {user_id} by={ctx.user_id}")
    return user


async def list_staff(ctx: RequesterContext, manager: Optional[str] = None) -> List[Dict]:
    if ctx.is_staff:
        raise Forbidden("Not allowed")
    query = {"privilege": Privilege.STAFF.value}
    if ctx.is_manager:
        query["manager"] = ctx.user_id
    elif manager:
        query["manager"] = manager
    return await db.users.find(query, hierarchy.PUBLIC_PROJECTION).sort("username", 1).to_list(1000)


async def list_managers(ctx: RequesterContext) -> List[Dict]:
    if not ctx.is_admin:
        raise Forbidden("Not allowed")
    return await hierarchy.find_managers(active_only=False)
