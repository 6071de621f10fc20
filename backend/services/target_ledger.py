"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LeadFlow CRM - Attribution / Target Ledger                                  ║
║                                                                              ║
║  Un document target par (utilisateur, mois).                                 ║
║                                                                              ║
║  INVARIANTS:                                                                 ║
║  - achieved n'est incrémenté que par find_one_and_update($inc, upsert)       ║
║  - aucun gain perdu: target absent => créé avec total=0, achieved=1          ║
║  - mois = 1er jour du mois UTC, calculé au moment du crédit                  ║
║  - double crédit: créateur call-center != updater => crédité aussi           ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from typing import Dict, List, Optional

from pymongo import ReturnDocument

from config import db, month_key, month_key_from_ist_millis, now_iso
from models.target import TargetFilter, TargetSet
from models.user import Privilege, RequesterContext
from services import hierarchy
from services.errors import Forbidden, NotFound

logger = logging.getLogger("target_ledger")


# ════════════════════════════════════════════════════════════════════════════
# SHARED ATTRIBUTION RULE
# ════════════════════════════════════════════════════════════════════════════

def credit_recipients(updater_id: str, creator: Optional[Dict]) -> List[str]:
    """
    Who is credited when `updater_id` closes a lead created by `creator`.

    The updater always; the creator too when it is someone else and a
    call-center agent. Used by the ledger and by the reporting rollups.
    """
    recipients = [updater_id]
    if creator and creator.get("id") != updater_id and hierarchy.is_call_center(creator):
        recipients.append(creator["id"])
    return recipients


# ════════════════════════════════════════════════════════════════════════════
# CREDIT
# ════════════════════════════════════════════════════════════════════════════

async def credit_user(user_id: str, month: Optional[str] = None) -> Dict:
    """Atomic increment-or-create of (user, month).achieved."""
    month = month or month_key()
    now = now_iso()
    target = await db.targets.find_one_and_update(
        {"assigned": user_id, "month": month},
        {
            "$inc": {"achieved": 1},
            "$set": {"updated_at": now},
            "$setOnInsert": {"id": str(uuid.uuid4()), "total": 0, "set_by": None, "created_at": now},
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
        projection={"_id": 0},
    )
    logger.info(f"[TARGET] credited user={user_id} month={month} achieved={target.get('achieved')}")
    return target


async def credit(updater_id: str, lead: Dict) -> List[str]:
    """Credit the updater (and a call-center creator) for a won lead."""
    month = month_key()
    creator = None
    if lead.get("created_by") and lead.get("created_by") != updater_id:
        creator = await hierarchy.find_user_by_id(lead["created_by"])

    recipients = credit_recipients(updater_id, creator)
    for user_id in recipients:
        await credit_user(user_id, month)
    return recipients


# ════════════════════════════════════════════════════════════════════════════
# GOALS
# ════════════════════════════════════════════════════════════════════════════

async def set_target(data: TargetSet, ctx: RequesterContext) -> Dict:
    """
    Fixe le total d'un mois. Existant => total remplacé, achieved conservé.
    Admin: tout utilisateur non admin. Manager: son staff uniquement.
    """
    if ctx.is_staff:
        raise Forbidden("Require admin or manager privilege to set a target")

    assigned = await hierarchy.find_user_by_id(data.assigned)
    if not assigned or assigned.get("privilege") == Privilege.ADMIN.value:
        raise NotFound("User not found")
    if ctx.is_manager and assigned.get("manager") != ctx.user_id:
        raise Forbidden("Managers can only set targets for their own staff")

    month = month_key_from_ist_millis(data.month)
    now = now_iso()
    target = await db.targets.find_one_and_update(
        {"assigned": data.assigned, "month": month},
        {
            "$set": {"total": data.total, "set_by": ctx.user_id, "updated_at": now},
            "$setOnInsert": {"id": str(uuid.uuid4()), "achieved": 0, "created_at": now},
        },
        upsert=True,
        return_document=ReturnDocument.AFTER,
        projection={"_id": 0},
    )
    logger.info(f"[TARGET] set user={data.assigned} month={month} total={data.total} by={ctx.user_id}")
    return target


async def list_targets(f: TargetFilter, ctx: RequesterContext) -> List[Dict]:
    query = {}
    if ctx.is_staff:
        query["assigned"] = ctx.user_id
    elif ctx.is_manager:
        staff_ids = await hierarchy.branch_staff_ids(ctx.user_id)
        if f.assigned and f.assigned not in staff_ids:
            raise Forbidden("Not your staff")
        query["assigned"] = f.assigned or {"$in": staff_ids}
    else:
        if f.assigned:
            query["assigned"] = f.assigned
        if not ctx.is_super:
            query["set_by"] = ctx.user_id

    if f.month is not None:
        query["month"] = month_key_from_ist_millis(f.month)

    rows = await db.targets.find(
        query, {"_id": 0, "id": 1, "total": 1, "achieved": 1, "month": 1, "assigned": 1}
    ).sort("month", -1).skip(f.skip).limit(f.limit).to_list(f.limit)

    names = await hierarchy.usernames_for(r["assigned"] for r in rows)
    for row in rows:
        row["assigned_name"] = names.get(row["assigned"], "")
    return rows


# ════════════════════════════════════════════════════════════════════════════
# STATS
# ════════════════════════════════════════════════════════════════════════════

def _row(user: Dict, target: Optional[Dict]) -> Dict:
    return {
        "user_id": user["id"],
        "username": user.get("username", ""),
        "total": (target or {}).get("total", 0) or 0,
        "achieved": (target or {}).get("achieved", 0) or 0,
    }


async def _targets_for(user_ids: List[str], month: str, set_by: Optional[str] = None) -> Dict[str, Dict]:
    if not user_ids:
        return {}
    query = {"assigned": {"$in": user_ids}, "month": month}
    if set_by:
        query["set_by"] = set_by
    rows = await db.targets.find(query, {"_id": 0}).to_list(len(user_ids))
    return {r["assigned"]: r for r in rows}


async def _branch_stats(manager: Dict, month: str, set_by: Optional[str] = None) -> Dict:
    """Manager's own goal; achieved = own + every staff member's."""
    staff = await hierarchy.find_users_by_manager(manager["id"], active_only=False)
    targets = await _targets_for([manager["id"]] + [s["id"] for s in staff], month, set_by)

    staff_rows = [_row(s, targets.get(s["id"])) for s in staff]
    own = _row(manager, targets.get(manager["id"]))
    return {
        **own,
        "own_achieved": own["achieved"],
        "achieved": own["achieved"] + sum(r["achieved"] for r in staff_rows),
        "staff_total": sum(r["total"] for r in staff_rows),
        "staff": staff_rows,
    }


async def get_stats(ctx: RequesterContext, month_ms: Optional[int] = None) -> Dict:
    """
    staff: own target only.
    manager: own branch, one row per staff member.
    admin: one row per manager (zero-filled), plus call-center agents.
    regular admin: only branches and agents holding a goal they set.
    """
    month = month_key_from_ist_millis(month_ms)

    if ctx.is_staff:
        target = await db.targets.find_one({"assigned": ctx.user_id, "month": month}, {"_id": 0})
        overall = {"total": (target or {}).get("total", 0), "achieved": (target or {}).get("achieved", 0)}
        return {"month": month, "overall": overall, "breakdown": []}

    if ctx.is_manager:
        manager = await hierarchy.get_user_or_raise(ctx.user_id)
        branch = await _branch_stats(manager, month)
        return {
            "month": month,
            "overall": {"total": branch["total"], "achieved": branch["achieved"]},
            "breakdown": branch["staff"],
        }

    # regular admins only see rows holding a goal they set
    set_by = None if ctx.is_super else ctx.user_id

    managers = await hierarchy.find_managers(active_only=False)
    breakdown = [await _branch_stats(m, month, set_by) for m in managers]

    agents = [a for a in await hierarchy.find_call_center_agents() if not a.get("manager")]
    agent_targets = await _targets_for([a["id"] for a in agents], month, set_by)
    call_center = [_row(a, agent_targets.get(a["id"])) for a in agents]

    if set_by:
        owned = set(await db.targets.distinct("assigned", {"month": month, "set_by": set_by}))
        breakdown = [
            b for b in breakdown
            if b["user_id"] in owned or any(s["user_id"] in owned for s in b["staff"])
        ]
        call_center = [c for c in call_center if c["user_id"] in owned]

    return {
        "month": month,
        "overall": {
            "total": sum(b["total"] for b in breakdown) + sum(c["total"] for c in call_center),
            "achieved": sum(b["achieved"] for b in breakdown) + sum(c["achieved"] for c in call_center),
        },
        "breakdown": breakdown,
        "call_center": call_center,
    }
