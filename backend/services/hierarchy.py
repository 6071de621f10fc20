"""
LeadFlow CRM - Identity & Hierarchy Resolver

Lookups on the users collection: who a requester is, who their manager is,
which staff belong to a branch. Everything else asks this module.
"""

from typing import Dict, Iterable, List, Optional

from config import db
from models.user import Privilege, SecondPrivilege
from services.errors import NotFound

PUBLIC_PROJECTION = {"_id": 0, "password": 0, "fcm_token": 0}


async def find_user_by_id(user_id: Optional[str]) -> Optional[Dict]:
    if not user_id:
        return None
    return await db.users.find_one({"id": user_id}, PUBLIC_PROJECTION)


async def find_user_by_username(username: str) -> Optional[Dict]:
    if not username:
        return None
    return await db.users.find_one(
        {"username": username.strip().lower()}, PUBLIC_PROJECTION
    )


async def get_user_or_raise(user_id: str, label: str = "User") -> Dict:
    user = await find_user_by_id(user_id)
    if not user:
        raise NotFound(f"{label} not found")
    return user


async def find_users_by_manager(manager_id: str, active_only: bool = True) -> List[Dict]:
    query = {"manager": manager_id, "privilege": Privilege.STAFF.value}
    if active_only:
        query["is_active"] = {"$ne": False}
    return await db.users.find(query, PUBLIC_PROJECTION).to_list(1000)


async def branch_staff_ids(manager_id: Optional[str]) -> List[str]:
    """Ids of every staff member (active or not) under a manager."""
    if not manager_id:
        return []
    staff = await db.users.find(
        {"manager": manager_id, "privilege": Privilege.STAFF.value},
        {"_id": 0, "id": 1}
    ).to_list(1000)
    return [s["id"] for s in staff]


async def find_managers(active_only: bool = True) -> List[Dict]:
    query = {"privilege": Privilege.MANAGER.value}
    if active_only:
        query["is_active"] = {"$ne": False}
    return await db.users.find(query, PUBLIC_PROJECTION).sort("username", 1).to_list(1000)


async def find_call_center_agents() -> List[Dict]:
    return await db.users.find(
        {
            "privilege": Privilege.STAFF.value,
            "second_privilege": SecondPrivilege.CALL_CENTER.value,
        },
        PUBLIC_PROJECTION
    ).to_list(1000)


async def usernames_for(user_ids: Iterable[Optional[str]]) -> Dict[str, str]:
    """id -> username map, used by the read-side joins."""
    ids = sorted({uid for uid in user_ids if uid})
    if not ids:
        return {}
    users = await db.users.find(
        {"id": {"$in": ids}}, {"_id": 0, "id": 1, "username": 1}
    ).to_list(len(ids))
    return {u["id"]: u.get("username", "") for u in users}


async def users_by_id(user_ids: Iterable[Optional[str]]) -> Dict[str, Dict]:
    ids = sorted({uid for uid in user_ids if uid})
    if not ids:
        return {}
    users = await db.users.find({"id": {"$in": ids}}, PUBLIC_PROJECTION).to_list(len(ids))
    return {u["id"]: u for u in users}


def is_manager(user: Optional[Dict]) -> bool:
    return bool(user) and user.get("privilege") == Privilege.MANAGER.value


def is_call_center(user: Optional[Dict]) -> bool:
    return bool(user) and user.get("second_privilege") == SecondPrivilege.CALL_CENTER.value


def is_active(user: Optional[Dict]) -> bool:
    return bool(user) and user.get("is_active", True) is not False
