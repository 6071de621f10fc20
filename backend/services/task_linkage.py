"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LeadFlow CRM - Task / Lead Linkage                                          ║
║                                                                              ║
║  INVARIANT: au plus UNE tâche incomplète par lead, à tout instant.           ║
║  - create_task refuse (Conflict) si une tâche ouverte existe                 ║
║  - complete_task ne crée un suivi que si aucune tâche n'est ouverte          ║
║  - force_complete clôture tout quand le lead devient won / lost              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from datetime import timedelta
from typing import Dict, List, Optional

from pymongo.errors import DuplicateKeyError

from config import (
    db, ist_day_start_utc, ist_millis_to_utc_iso, now_iso, now_utc, to_iso, utc_to_ist_millis
)
from models.activity import ActivityType
from models.lead import TERMINAL_STATUSES, LeadStatusUpdate
from models.task import TaskComplete, TaskCreate, TaskFilter
from models.user import Privilege, RequesterContext
from services import customers, hierarchy, visibility
from services.activity_log import record_activity
from services.errors import Conflict, Forbidden, NotFound, ValidationError
from services.notifications import notify_user_safely
from services.queries import combine, task_filter_query

logger = logging.getLogger("task_linkage")


def public_task(task: Dict) -> Dict:
    row = dict(task)
    for key in ("due", "created_at", "completed_at"):
        if row.get(key):
            row[key] = utc_to_ist_millis(row[key])
    return row


def default_title(category: str, customer_name: str) -> str:
    verbs = {"call": "Call", "sales": "Sales visit with", "meeting": "Meeting with"}
    return f"{verbs.get(category, category.title())} {customer_name}".strip()


def default_description(category: str, customer_name: str) -> str:
    return f"{category.title()} follow-up for {customer_name or 'customer'}"


async def find_open_task(lead_id: str) -> Optional[Dict]:
    return await db.tasks.find_one({"lead": lead_id, "is_completed": False}, {"_id": 0})


async def _insert_task(
    lead: Dict,
    assigned: str,
    category: str,
    due_iso: str,
    created_by: str,
    title: Optional[str],
    description: Optional[str],
) -> Dict:
    customer = await customers.find_customer(lead.get("customer"))
    customer_name = (customer or {}).get("name", "")
    task = {
        "id": str(uuid.uuid4()),
        "lead": lead["id"],
        "assigned": assigned,
        "category": category,
        "due": due_iso,
        "title": title or default_title(category, customer_name),
        "description": description or default_description(category, customer_name),
        "is_completed": False,
        "completed_at": None,
        "completed_by": None,
        "call_status": None,
        "note": None,
        "followup_task": None,
        "force_completed": False,
        "created_by": created_by,
        "created_at": now_iso(),
    }
    await db.tasks.insert_one(task)
    task.pop("_id", None)
    return task


async def _resolve_assignee(data: TaskCreate, ctx: RequesterContext) -> Dict:
    if ctx.is_staff:
        return await hierarchy.get_user_or_raise(ctx.user_id)

    if not data.assigned:
        raise ValidationError("assigned", "Assignee is required")
    assignee = await hierarchy.find_user_by_id(data.assigned)
    if not assignee or not hierarchy.is_active(assignee) or assignee.get("privilege") == Privilege.ADMIN.value:
        raise NotFound("Assignee not found")

    if ctx.is_manager and assignee["id"] != ctx.user_id and assignee.get("manager") != ctx.user_id:
        raise Forbidden("Managers can only assign tasks inside their branch")
    return assignee


# ════════════════════════════════════════════════════════════════════════════
# OPERATIONS
# ════════════════════════════════════════════════════════════════════════════

async def create_task(data: TaskCreate, ctx: RequesterContext) -> Dict:
    """Nouvelle tâche. Conflict si le lead a déjà une tâche ouverte."""
    from services.lead_state_machine import get_visible_lead

    lead = await get_visible_lead(data.lead, ctx)
    assignee = await _resolve_assignee(data, ctx)

    if await find_open_task(lead["id"]):
        raise Conflict("An incomplete task already exists for this lead")

    try:
        task = await _insert_task(
            lead,
            assignee["id"],
            data.category.value,
            ist_millis_to_utc_iso(data.due),
            ctx.user_id,
            data.title,
            data.description,
        )
    except DuplicateKeyError:
        raise Conflict("An incomplete task already exists for this lead")

    await record_activity(
        ActivityType.TASK_ADDED,
        ctx.user_id,
        lead["id"],
        task_id=task["id"],
        old=assignee.get("username", ""),
        new=task["category"],
        activator_name=ctx.username,
    )

    if assignee["id"] != ctx.user_id:
        await notify_user_safely(assignee["id"], task["title"], task["description"], lead["id"])

    logger.info(f"[TASK] created {task['id']} lead={lead['id']} assigned={assignee['id']}")
    return public_task(task)


async def force_complete(task_id: Optional[str] = None, lead_id: Optional[str] = None) -> bool:
    """
    Clôture sans activité: une tâche, ou toutes les tâches ouvertes d'un lead.
    Returns True when at least one task changed.
    """
    if not task_id and not lead_id:
        raise ValidationError("task_id", "task_id or lead_id is required")

    query = {"is_completed": False}
    if task_id:
        query["id"] = task_id
    else:
        query["lead"] = lead_id

    result = await db.tasks.update_many(
        query,
        {"$set": {"is_completed": True, "completed_at": now_iso(), "force_completed": True}}
    )
    if result.modified_count:
        logger.info(f"[TASK] force-completed {result.modified_count} task(s) task={task_id} lead={lead_id}")
    return result.modified_count > 0


async def complete_task(data: TaskComplete, ctx: RequesterContext) -> Dict:
    """
    Complete a task, apply the outcome to its lead, optionally schedule
    exactly one follow-up.

    Returns {"task", "lead", "followup_task", "warning"}; "lead" is None
    when no status field was given.
    """
    from services import lead_state_machine

    task = await db.tasks.find_one({"id": data.task_id}, {"_id": 0})
    if not task:
        raise NotFound("Task not found")

    staff_ids = await hierarchy.branch_staff_ids(ctx.user_id) if ctx.is_manager else []
    if ctx.is_staff and task.get("assigned") != ctx.user_id:
        raise Forbidden("Staff can only complete their own tasks")
    if not visibility.can_view_task(ctx, task, staff_ids):
        raise Forbidden("Not authorized to complete this task")
    if task.get("is_completed"):
        raise Conflict("Task already completed")

    now = now_iso()
    status_fields = data.status_fields()
    result = await db.tasks.update_one(
        {"id": task["id"], "is_completed": False},
        {"$set": {
            "is_completed": True,
            "completed_at": now,
            "completed_by": ctx.user_id,
            "call_status": status_fields.get("call_status"),
            "note": data.note,
        }}
    )
    if result.modified_count == 0:
        raise Conflict("Task already completed")

    lead_id = task["lead"]
    lead = None
    if status_fields:
        lead = await lead_state_machine.update_status(
            lead_id,
            LeadStatusUpdate(**status_fields),
            ctx,
            task_id=task["id"],
            check_access=False,
        )

    if data.note:
        await record_activity(
            ActivityType.NOTE_ADDED, ctx.user_id, lead_id,
            task_id=task["id"], optional_message=data.note, activator_name=ctx.username,
        )

    await record_activity(
        ActivityType.COMPLETED, ctx.user_id, lead_id,
        task_id=task["id"], activator_name=ctx.username,
    )

    followup_task = None
    warning = None
    if data.followup_date is not None:
        followup_task, warning = await _schedule_followup(task, data.followup_date, ctx)

    completed = await db.tasks.find_one({"id": task["id"]}, {"_id": 0})
    return {
        "task": public_task(completed),
        "lead": lead,
        "followup_task": public_task(followup_task) if followup_task else None,
        "warning": warning,
    }


async def _schedule_followup(task: Dict, followup_ms: int, ctx: RequesterContext):
    lead_id = task["lead"]
    lead = await db.leads.find_one({"id": lead_id}, {"_id": 0})
    if not lead:
        raise NotFound("Lead not found")

    if lead.get("enquire_status") in TERMINAL_STATUSES:
        logger.warning(f"[TASK] follow-up skipped, lead {lead_id} is {lead.get('enquire_status')}")
        return None, "Lead is closed, follow-up not created"

    if await find_open_task(lead_id):
        logger.warning(f"[TASK] follow-up skipped, lead {lead_id} already has an open task")
        return None, "An incomplete task already exists for this lead, follow-up not created"

    try:
        followup = await _insert_task(
            lead,
            task["assigned"],
            task["category"],
            ist_millis_to_utc_iso(followup_ms),
            ctx.user_id,
            None,
            None,
        )
    except DuplicateKeyError:
        return None, "An incomplete task already exists for this lead, follow-up not created"

    await db.tasks.update_one({"id": task["id"]}, {"$set": {"followup_task": followup["id"]}})

    assignee = await hierarchy.find_user_by_id(task["assigned"])
    await record_activity(
        ActivityType.FOLLOWUP_ADDED, ctx.user_id, lead_id,
        task_id=followup["id"],
        old=(assignee or {}).get("username", ""),
        new=followup["category"],
        activator_name=ctx.username,
    )
    return followup, None


# ════════════════════════════════════════════════════════════════════════════
# READ
# ════════════════════════════════════════════════════════════════════════════

async def _task_scope(ctx: RequesterContext, manager: Optional[str] = None, staff: Optional[str] = None) -> Dict:
    staff_ids = await hierarchy.branch_staff_ids(ctx.user_id) if ctx.is_manager else []
    explicit_ids = await hierarchy.branch_staff_ids(manager) if ctx.is_admin and manager else None
    return visibility.task_scope(ctx, staff_ids, manager, staff, explicit_ids)


async def list_tasks(f: TaskFilter, ctx: RequesterContext) -> Dict:
    if ctx.is_staff and (f.manager or (f.assigned and f.assigned not in {ctx.user_id, ctx.manager_id})):
        raise Forbidden("Staff can only see their own tasks")

    query = combine(await _task_scope(ctx, f.manager, f.assigned), task_filter_query(f))
    tasks = await db.tasks.find(query, {"_id": 0}) \
        .sort("due", 1) \
        .skip(f.skip) \
        .limit(f.limit) \
        .to_list(f.limit)
    total = await db.tasks.count_documents(query)

    return {"tasks": await _join_tasks(tasks), "count": len(tasks), "total": total}


async def _join_tasks(tasks: List[Dict]) -> List[Dict]:
    lead_ids = list({t["lead"] for t in tasks})
    leads = {}
    if lead_ids:
        rows = await db.leads.find({"id": {"$in": lead_ids}}, {"_id": 0, "id": 1, "customer": 1}).to_list(len(lead_ids))
        leads = {r["id"]: r for r in rows}
    customer_ids = list({l.get("customer") for l in leads.values() if l.get("customer")})
    people = {}
    if customer_ids:
        rows = await db.customers.find(
            {"id": {"$in": customer_ids}}, {"_id": 0, "id": 1, "name": 1, "phone": 1}
        ).to_list(len(customer_ids))
        people = {r["id"]: r for r in rows}
    names = await hierarchy.usernames_for(t.get("assigned") for t in tasks)

    joined = []
    for t in tasks:
        row = public_task(t)
        customer = people.get(leads.get(t["lead"], {}).get("customer"), {})
        row["lead_name"] = customer.get("name", "")
        row["lead_phone"] = customer.get("phone", "")
        row["assigned_name"] = names.get(t.get("assigned"), "")
        joined.append(row)
    return joined


async def today_task_stats(ctx: RequesterContext) -> Dict:
    """Tâches dues aujourd'hui (jour IST): total / completed / pending / overdue."""
    now = now_utc()
    start = ist_day_start_utc(now)
    end = start + timedelta(days=1)

    query = combine(
        await _task_scope(ctx),
        {"due": {"$gte": to_iso(start), "$lt": to_iso(end)}},
    )
    tasks = await db.tasks.find(query, {"_id": 0, "is_completed": 1, "due": 1}).to_list(5000)

    now_s = to_iso(now)
    completed = sum(1 for t in tasks if t.get("is_completed"))
    overdue = sum(1 for t in tasks if not t.get("is_completed") and t.get("due", "") < now_s)
    return {
        "total": len(tasks),
        "completed": completed,
        "pending": len(tasks) - completed,
        "overdue": overdue,
    }
