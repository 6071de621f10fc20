"""
LeadFlow CRM - Activity Audit Log

Append-only journal of every mutation on a lead. The `action` text is
computed once, at write time, from the type and the old/new values the
caller passes in; it is never recomputed or edited afterwards.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from config import db, now_iso, utc_to_ist_millis
from models.activity import ActivityFilter, ActivityType, NoteCreate
from models.user import RequesterContext
from services import hierarchy, visibility
from services.errors import Forbidden
from services.queries import activity_filter_query, combine

logger = logging.getLogger("activity_log")

FIELD_LABELS = {
    "enquire_status": "status",
    "source": "source",
    "purpose": "purpose",
    "call_status": "call status",
}

FIELD_ACTIVITY = {
    "enquire_status": ActivityType.STATUS_UPDATED,
    "source": ActivityType.LEAD_UPDATED,
    "purpose": ActivityType.PURPOSE_UPDATED,
    "call_status": ActivityType.CALL_STATUS_UPDATED,
}


def build_action(
    activity_type: ActivityType,
    actor: str,
    old: Any = None,
    new: Any = None,
    field: Optional[str] = None,
) -> str:
    """Human readable narration of one mutation."""
    actor = actor or "system"
    if activity_type == ActivityType.LEAD_ADDED:
        return f"{actor} added the lead"
    if activity_type in (
        ActivityType.STATUS_UPDATED,
        ActivityType.LEAD_UPDATED,
        ActivityType.PURPOSE_UPDATED,
        ActivityType.CALL_STATUS_UPDATED,
    ):
        label = FIELD_LABELS.get(field, field or "lead")
        return f"{actor} changed {label} from {old or 'none'} to {new}"
    if activity_type == ActivityType.LEAD_TRANSFER:
        return f"{actor} transferred the lead from {old or 'unassigned'} to {new}"
    if activity_type == ActivityType.TASK_ADDED:
        return f"{actor} assigned a {new} task to {old}"
    if activity_type == ActivityType.FOLLOWUP_ADDED:
        return f"{actor} scheduled a {new} follow-up for {old}"
    if activity_type == ActivityType.NOTE_ADDED:
        return f"{actor} added a note"
    if activity_type == ActivityType.COMPLETED:
        return f"{actor} completed the task"
    return f"{actor}: {activity_type.value}"


async def record_activity(
    activity_type: ActivityType,
    activator: str,
    lead_id: str,
    task_id: Optional[str] = None,
    old: Any = None,
    new: Any = None,
    field: Optional[str] = None,
    optional_message: Optional[str] = None,
    activator_name: Optional[str] = None,
) -> Dict:
    """
    Enregistre une activité dans le journal

    activator_name: skip the user lookup when the caller already knows it.
    """
    if activator_name is None:
        user = await hierarchy.find_user_by_id(activator)
        activator_name = user.get("username", "") if user else ""

    entry = {
        "id": str(uuid.uuid4()),
        "activator": activator,
        "lead": lead_id,
        "task": task_id,
        "type": activity_type.value,
        "action": build_action(activity_type, activator_name, old, new, field),
        "optional_message": optional_message,
        "details": {"field": field, "old": old, "new": new},
        "created_at": now_iso(),
    }

    await db.activities.insert_one(entry)
    entry.pop("_id", None)

    logger.info(f"[ACTIVITY] {entry['type']} lead={lead_id} by={activator}")
    return entry


async def add_note(data: NoteCreate, ctx: RequesterContext) -> Dict:
    """Standalone note on a lead the requester can see."""
    from services.lead_state_machine import get_visible_lead

    await get_visible_lead(data.lead_id, ctx)
    entry = await record_activity(
        ActivityType.NOTE_ADDED,
        ctx.user_id,
        data.lead_id,
        optional_message=data.note,
        activator_name=ctx.username,
    )
    entry["created_at"] = utc_to_ist_millis(entry["created_at"])
    return entry


async def list_activities(f: ActivityFilter, ctx: RequesterContext) -> Dict:
    """
    Journal filtré. Un lead donné => tout son historique, autres filtres ignorés.
    """
    if f.lead:
        from services.lead_state_machine import get_visible_lead

        await get_visible_lead(f.lead, ctx)
        query = {"lead": f.lead}
    else:
        staff_ids = await hierarchy.branch_staff_ids(ctx.user_id) if ctx.is_manager else []
        explicit_ids = None
        if ctx.is_admin and f.manager:
            explicit_ids = await hierarchy.branch_staff_ids(f.manager)
        if ctx.is_staff and (f.manager or f.staff):
            raise Forbidden("Staff cannot filter by manager or staff")
        scope = visibility.activity_scope(ctx, staff_ids, f.manager, f.staff, explicit_ids)
        query = combine(scope, activity_filter_query(f))

    activities = await db.activities.find(query, {"_id": 0}) \
        .sort("created_at", -1) \
        .skip(f.skip) \
        .limit(f.limit) \
        .to_list(f.limit)
    total = await db.activities.count_documents(query)

    return {
        "activities": await _join_activities(activities),
        "total": total,
        "skip": f.skip,
        "limit": f.limit,
    }


async def _join_activities(activities: List[Dict]) -> List[Dict]:
    """Read-side join: activator usernames and task summaries."""
    task_ids = [a["task"] for a in activities if a.get("task")]
    tasks = {}
    if task_ids:
        rows = await db.tasks.find(
            {"id": {"$in": task_ids}},
            {"_id": 0, "id": 1, "is_completed": 1, "due": 1, "title": 1,
             "description": 1, "assigned": 1, "category": 1, "created_at": 1, "lead": 1}
        ).to_list(len(task_ids))
        tasks = {t["id"]: t for t in rows}

    names = await hierarchy.usernames_for(
        [a.get("activator") for a in activities] + [t.get("assigned") for t in tasks.values()]
    )

    joined = []
    for a in activities:
        row = dict(a)
        row["activator"] = names.get(a.get("activator"), "")
        row["activator_id"] = a.get("activator")
        row["created_at"] = utc_to_ist_millis(a.get("created_at"))
        task = tasks.get(a.get("task"))
        if task:
            row["task"] = {
                **task,
                "due": utc_to_ist_millis(task.get("due")),
                "created_at": utc_to_ist_millis(task.get("created_at")),
                "assigned": names.get(task.get("assigned"), ""),
            }
        else:
            row["task"] = None
        joined.append(row)
    return joined
