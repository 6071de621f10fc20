"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LeadFlow CRM - Lead State Machine                                           ║
║                                                                              ║
║  Seul module qui écrit dans db.leads.                                        ║
║                                                                              ║
║  RÈGLES:                                                                     ║
║  1. Transfert appliqué AVANT les changements de statut                       ║
║  2. Une activité par champ modifié, aucune si valeur identique               ║
║  3. Toutes les modifications: un seul update_one                             ║
║  4. -> won: crédit du ledger + clôture forcée des tâches ouvertes            ║
║     -> lost: clôture forcée uniquement                                       ║
║  5. created_by ne change jamais                                              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from config import db, ist_day_start_utc, ist_wall_clock, IST_OFFSET, now_iso, now_utc, to_iso, utc_to_ist_millis
from models.activity import ActivityType
from models.lead import EnquireStatus, LeadCreate, LeadFilter, LeadStatusUpdate
from models.user import Privilege, RequesterContext
from services import customers, hierarchy, target_ledger, task_linkage, visibility
from services.activity_log import FIELD_ACTIVITY, record_activity
from services.errors import Forbidden, NotFound
from services.notifications import notify_user_safely
from services.queries import combine, lead_filter_query, text_search

logger = logging.getLogger("lead_state_machine")


# ════════════════════════════════════════════════════════════════════════════
# ACCESS
# ════════════════════════════════════════════════════════════════════════════

async def _get_lead_or_raise(lead_id: str) -> Dict:
    lead = await db.leads.find_one({"id": lead_id}, {"_id": 0})
    if not lead:
        raise NotFound("Lead not found")
    return lead


async def get_visible_lead(lead_id: str, ctx: RequesterContext) -> Dict:
    """Raw lead document, NotFound / Forbidden otherwise."""
    lead = await _get_lead_or_raise(lead_id)
    staff_ids = await hierarchy.branch_staff_ids(ctx.user_id) if ctx.is_manager else []
    if not visibility.can_view_lead(ctx, lead, staff_ids):
        raise Forbidden("Not authorized to access this lead")
    return lead


async def _transfer_branch(ctx: RequesterContext) -> List[str]:
    if ctx.is_manager:
        return await hierarchy.branch_staff_ids(ctx.user_id)
    if ctx.is_staff:
        return await hierarchy.branch_staff_ids(ctx.manager_id)
    return []


# ════════════════════════════════════════════════════════════════════════════
# READ JOIN
# ════════════════════════════════════════════════════════════════════════════

def _public_customer(customer: Optional[Dict]) -> Optional[Dict]:
    if not customer:
        return None
    row = dict(customer)
    row["dob"] = utc_to_ist_millis(row.get("dob"))
    row["created_at"] = utc_to_ist_millis(row.get("created_at"))
    return row


async def _populate_leads(leads: List[Dict]) -> List[Dict]:
    customer_ids = list({l.get("customer") for l in leads if l.get("customer")})
    people = {}
    if customer_ids:
        rows = await db.customers.find({"id": {"$in": customer_ids}}, {"_id": 0}).to_list(len(customer_ids))
        people = {r["id"]: r for r in rows}

    names = await hierarchy.usernames_for(
        [l.get(key) for l in leads for key in ("handled_by", "created_by", "manager")]
    )

    populated = []
    for lead in leads:
        row = dict(lead)
        row["customer"] = _public_customer(people.get(lead.get("customer")))
        row["handled_by_name"] = names.get(lead.get("handled_by"), "")
        row["created_by_name"] = names.get(lead.get("created_by"), "")
        row["manager_name"] = names.get(lead.get("manager"), "")
        row["created_at"] = utc_to_ist_millis(lead.get("created_at"))
        row["updated_at"] = utc_to_ist_millis(lead.get("updated_at"))
        populated.append(row)
    return populated


# ════════════════════════════════════════════════════════════════════════════
# CREATE
# ════════════════════════════════════════════════════════════════════════════

async def _resolve_manager(data: LeadCreate, ctx: RequesterContext) -> str:
    if ctx.is_admin:
        if not data.manager:
            raise Forbidden("Admins must choose a manager for the lead")
        manager_id = data.manager
    elif ctx.is_manager:
        manager_id = ctx.user_id
    elif ctx.manager_id:
        manager_id = ctx.manager_id
    else:
        # call-center agents outside any branch
        if not data.manager:
            raise Forbidden("Choose a manager for the lead")
        manager_id = data.manager

    manager = await hierarchy.find_user_by_id(manager_id)
    if not hierarchy.is_manager(manager):
        raise NotFound("Manager not found")
    if ctx.is_admin and not hierarchy.is_active(manager):
        raise Forbidden("Leads cannot be assigned to an inactive manager")
    return manager_id


async def create_lead(data: LeadCreate, ctx: RequesterContext) -> Dict:
    manager_id = await _resolve_manager(data, ctx)

    customer = await customers.find_or_create_customer(data.phone, {
        "name": data.name,
        "email": data.email,
        "address": data.address,
        "dob": data.dob,
    })

    # admins never handle leads: the chosen manager does
    handler_id = manager_id if ctx.is_admin else ctx.user_id

    now = now_iso()
    lead = {
        "id": str(uuid.uuid4()),
        "customer": customer["id"],
        "source": data.source.value,
        "enquire_status": data.enquire_status.value,
        "purpose": data.purpose.value,
        "call_status": data.call_status.value if data.call_status else None,
        "type": data.type.value,
        "product": data.product,
        "created_by": ctx.user_id,
        "handled_by": handler_id,
        "manager": manager_id,
        "created_at": now,
        "updated_at": now,
    }
    await db.leads.insert_one(lead)
    lead.pop("_id", None)

    await record_activity(ActivityType.LEAD_ADDED, ctx.user_id, lead["id"], activator_name=ctx.username)
    logger.info(f"[LEAD] created {lead['id']} by={ctx.user_id} handler={handler_id} manager={manager_id}")

    return (await _populate_leads([lead]))[0]


# ════════════════════════════════════════════════════════════════════════════
# TRANSITIONS
# ════════════════════════════════════════════════════════════════════════════

async def _apply_transfer(lead: Dict, username: str, ctx: RequesterContext,
                          task_id: Optional[str] = None) -> Optional[Dict]:
    """
    Mutates `lead` in memory and records lead_transfer.
    Returns the new handler, or None when it already handles the lead.
    """
    target = await hierarchy.find_user_by_username(username)
    if not target:
        raise NotFound("Transfer user not found")
    if target.get("privilege") == Privilege.ADMIN.value:
        raise Forbidden("Leads cannot be transferred to an admin")
    if not hierarchy.is_active(target):
        raise Forbidden("Leads cannot be transferred to an inactive user")
    if not visibility.can_transfer_to(ctx, target, await _transfer_branch(ctx)):
        raise Forbidden("Not allowed to transfer a lead to this user")

    if target["id"] == lead.get("handled_by"):
        return None

    previous = await hierarchy.find_user_by_id(lead.get("handled_by"))
    lead["handled_by"] = target["id"]
    if hierarchy.is_manager(target):
        lead["manager"] = target["id"]

    await record_activity(
        ActivityType.LEAD_TRANSFER,
        ctx.user_id,
        lead["id"],
        task_id=task_id,
        old=(previous or {}).get("username"),
        new=target["username"],
        field="handled_by",
        activator_name=ctx.username,
    )
    return target


async def _notify_new_handler(lead: Dict, target: Dict, ctx: RequesterContext):
    customer = await customers.find_customer(lead.get("customer"))
    await notify_user_safely(
        target["id"],
        f"Lead transferred by {ctx.username}",
        f"{(customer or {}).get('name', 'A lead')} is now assigned to you",
        lead["id"],
    )


async def update_status(
    lead_id: str,
    update: LeadStatusUpdate,
    ctx: RequesterContext,
    task_id: Optional[str] = None,
    check_access: bool = True,
) -> Dict:
    """
    Applique transfert + changements de statut, puis une seule sauvegarde.

    task_id: the task whose completion triggered the update, carried on
    the activities. check_access=False when the caller already authorized
    the requester (task completion).
    """
    if check_access:
        lead = await get_visible_lead(lead_id, ctx)
    else:
        lead = await _get_lead_or_raise(lead_id)

    previous_status = lead.get("enquire_status")
    changes = {}

    target = None
    if update.transfer_to:
        target = await _apply_transfer(lead, update.transfer_to, ctx, task_id)
        if target:
            changes["handled_by"] = lead["handled_by"]
            changes["manager"] = lead.get("manager")

    for field, value in update.status_fields().items():
        old = lead.get(field)
        if old == value:
            continue
        lead[field] = value
        changes[field] = value
        await record_activity(
            FIELD_ACTIVITY[field],
            ctx.user_id,
            lead_id,
            task_id=task_id,
            old=old,
            new=value,
            field=field,
            activator_name=ctx.username,
        )

    if changes:
        lead["updated_at"] = changes["updated_at"] = now_iso()
        await db.leads.update_one({"id": lead_id}, {"$set": changes})
        logger.info(f"[LEAD] updated {lead_id} fields={sorted(changes)} by={ctx.user_id}")

    status = lead.get("enquire_status")
    if status != previous_status:
        if status == EnquireStatus.WON.value:
            credited = await target_ledger.credit(ctx.user_id, lead)
            await task_linkage.force_complete(lead_id=lead_id)
            logger.info(f"[LEAD] {lead_id} won, credited={credited}")
        elif status == EnquireStatus.LOST.value:
            await task_linkage.force_complete(lead_id=lead_id)
            logger.info(f"[LEAD] {lead_id} lost")

    if target:
        await _notify_new_handler(lead, target, ctx)

    return (await _populate_leads([lead]))[0]


async def transfer_lead(lead_id: str, username: str, ctx: RequesterContext) -> Dict:
    lead = await get_visible_lead(lead_id, ctx)
    target = await _apply_transfer(lead, username, ctx)

    if target:
        lead["updated_at"] = now_iso()
        await db.leads.update_one(
            {"id": lead_id},
            {"$set": {"handled_by": lead["handled_by"], "manager": lead.get("manager"), "updated_at": lead["updated_at"]}}
        )
        logger.info(f"[LEAD] transferred {lead_id} to={target['id']} by={ctx.user_id}")
        await _notify_new_handler(lead, target, ctx)

    return (await _populate_leads([lead]))[0]


# ════════════════════════════════════════════════════════════════════════════
# QUERY
# ════════════════════════════════════════════════════════════════════════════

def _period_starts(now: datetime) -> Dict[str, datetime]:
    """UTC instants starting the current IST day, week (Monday) and month."""
    today = ist_day_start_utc(now)
    wall = ist_wall_clock(now)
    week = today - timedelta(days=wall.weekday())
    month = datetime(wall.year, wall.month, 1, tzinfo=timezone.utc) - IST_OFFSET
    return {"today": today, "week": week, "month": month}


async def _creation_counts(query: Dict) -> Dict[str, int]:
    counts = {}
    for name, start in _period_starts(now_utc()).items():
        counts[name] = await db.leads.count_documents(
            combine(query, {"created_at": {"$gte": to_iso(start)}})
        )
    return counts


async def list_leads(f: LeadFilter, ctx: RequesterContext) -> Dict:
    if ctx.is_staff and (f.manager or f.staff):
        raise Forbidden("Staff cannot filter by manager or staff")

    staff_ids = await hierarchy.branch_staff_ids(ctx.user_id) if ctx.is_manager else []
    explicit_ids = await hierarchy.branch_staff_ids(f.manager) if ctx.is_admin and f.manager else None
    scope = visibility.lead_scope(ctx, staff_ids, f.manager, f.staff, explicit_ids)

    customer_ids = None
    if f.search and f.search.strip():
        matches = await db.customers.find(
            text_search(["name", "phone"], f.search), {"_id": 0, "id": 1}
        ).to_list(5000)
        customer_ids = [c["id"] for c in matches]

    tasked = await db.tasks.distinct("lead") if f.spotlight else None

    query = combine(scope, lead_filter_query(f, customer_ids, tasked))
    leads = await db.leads.find(query, {"_id": 0}) \
        .sort("created_at", -1) \
        .skip(f.skip) \
        .limit(f.limit) \
        .to_list(f.limit)
    total = await db.leads.count_documents(query)

    return {
        "leads": await _populate_leads(leads),
        "total": total,
        "counts": await _creation_counts(query),
    }


async def get_lead(lead_id: str, ctx: RequesterContext) -> Dict:
    lead = await get_visible_lead(lead_id, ctx)
    return (await _populate_leads([lead]))[0]


async def list_transfer_targets(ctx: RequesterContext) -> List[Dict]:
    query = visibility.transfer_target_query(ctx, await _transfer_branch(ctx))
    query = combine(query, {"id": {"$ne": ctx.user_id}})
    return await db.users.find(
        query, {"_id": 0, "id": 1, "username": 1, "name": 1, "privilege": 1, "manager": 1}
    ).sort("username", 1).to_list(1000)
