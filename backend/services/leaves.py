"""
LeadFlow CRM - Leave requests
"""

import logging
import uuid
from typing import Dict, List

from config import db, ist_millis_to_utc_iso, now_iso, utc_to_ist_millis
from models.leave import LeaveApply, LeaveFilter, LeaveStatus, LeaveStatusUpdate
from models.user import RequesterContext
from services import hierarchy, visibility
from services.errors import Forbidden, NotFound
from services.queries import combine, date_range

logger = logging.getLogger("leaves")


def _public_leave(leave: Dict, username: str = "") -> Dict:
    return {
        "id": leave["id"],
        "user_id": leave["requester"],
        "username": username,
        "reason": leave["reason"],
        "date": utc_to_ist_millis(leave["date"]),
        "status": leave["status"],
        "reviewed_by": leave.get("reviewed_by"),
    }


async def apply_leave(data: LeaveApply, ctx: RequesterContext) -> Dict:
    leave = {
        "id": str(uuid.uuid4()),
        "requester": ctx.user_id,
        "reason": data.reason,
        "date": ist_millis_to_utc_iso(data.date),
        "status": LeaveStatus.PENDING.value,
        "reviewed_by": None,
        "created_at": now_iso(),
    }
    await db.leaves.insert_one(leave)
    leave.pop("_id", None)
    logger.info(f"[LEAVE] applied {leave['id']} by={ctx.user_id}")
    return _public_leave(leave, ctx.username)


async def list_leaves(f: LeaveFilter, ctx: RequesterContext) -> List[Dict]:
    """Super admin: all (or one user). Everyone else: their own."""
    query = combine(
        visibility.owner_scope(ctx, "requester", f.user_id),
        date_range("date", f.start_date, f.end_date),
    )
    leaves = await db.leaves.find(query, {"_id": 0}) \
        .sort("created_at", -1) \
        .skip(f.skip) \
        .limit(f.limit) \
        .to_list(f.limit)

    names = await hierarchy.usernames_for(l["requester"] for l in leaves)
    return [_public_leave(l, names.get(l["requester"], "")) for l in leaves]


async def update_leave_status(data: LeaveStatusUpdate, ctx: RequesterContext) -> Dict:
    if not ctx.is_super:
        raise Forbidden("Only a super admin can review leave requests")

    leave = await db.leaves.find_one({"id": data.id}, {"_id": 0})
    if not leave:
        raise NotFound("Leave not found")

    await db.leaves.update_one(
        {"id": data.id},
        {"$set": {"status": data.status.value, "reviewed_by": ctx.user_id, "updated_at": now_iso()}}
    )
    leave.update({"status": data.status.value, "reviewed_by": ctx.user_id})
    logger.info(f"[LEAVE] {data.id} -> {data.status.value} by={ctx.user_id}")

    names = await hierarchy.usernames_for([leave["requester"]])
    return _public_leave(leave, names.get(leave["requester"], ""))
