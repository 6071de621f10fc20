"""
LeadFlow CRM - Reporting Aggregator

Read-only rollups over activities, leads and tasks:
- staff_report: activity counts per user, then per manager, with won /
  visited credit following target_ledger.credit_recipients()
- lead_statistics: status / source / purpose counts plus a zero-filled
  creation progress series
- call_report: outcome breakdown of call tasks
"""

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional

from config import EPOCH, db, ist_wall_clock, parse_iso
from models.activity import ActivityType, ReportFilter
from models.lead import CallStatus, EnquireSource, EnquireStatus, Purpose
from models.task import TaskCategory
from models.user import RequesterContext
from services import hierarchy, visibility
from services.errors import Forbidden
from services.queries import combine, date_range
from services.target_ledger import credit_recipients

logger = logging.getLogger("reporting")

CREDITED_STATUSES = {
    EnquireStatus.WON.value: "won",
    EnquireStatus.VISIT_STORE.value: "visited",
}


def _key(value: str) -> str:
    return value.replace(" ", "_")


def _zero_counts(enum_cls) -> Dict[str, int]:
    return {_key(v.value): 0 for v in enum_cls}


def _check_report_access(ctx: RequesterContext):
    if ctx.is_staff:
        raise Forbidden("Staff are not allowed to access reports")


async def _scope(ctx: RequesterContext, f: ReportFilter, field: str) -> Dict:
    """activities / tasks scope on a people field (activator, assigned)."""
    staff_ids = await hierarchy.branch_staff_ids(ctx.user_id) if ctx.is_manager else []
    explicit_ids = await hierarchy.branch_staff_ids(f.manager) if ctx.is_admin and f.manager else None
    if field == "activator":
        return visibility.activity_scope(ctx, staff_ids, f.manager, f.staff, explicit_ids)
    return visibility.task_scope(ctx, staff_ids, f.manager, f.staff, explicit_ids)


# ════════════════════════════════════════════════════════════════════════════
# STAFF REPORT
# ════════════════════════════════════════════════════════════════════════════

async def _credit_entries(activities: List[Dict]) -> List[Dict]:
    """
    One entry per won / visit store transition, plus one for a call-center
    creator of the lead (credit_recipients).
    """
    transitions = [
        a for a in activities
        if a.get("type") == ActivityType.STATUS_UPDATED.value
        and (a.get("details") or {}).get("new") in CREDITED_STATUSES
    ]
    if not transitions:
        return []

    lead_ids = list({a["lead"] for a in transitions})
    leads = await db.leads.find(
        {"id": {"$in": lead_ids}}, {"_id": 0, "id": 1, "created_by": 1}
    ).to_list(len(lead_ids))
    creators = await hierarchy.users_by_id(l.get("created_by") for l in leads)
    creator_of = {l["id"]: creators.get(l.get("created_by")) for l in leads}

    entries = []
    for a in transitions:
        kind = CREDITED_STATUSES[a["details"]["new"]]
        for user_id in credit_recipients(a["activator"], creator_of.get(a["lead"])):
            entries.append({"user_id": user_id, "kind": kind})
    return entries


async def staff_report(f: ReportFilter, ctx: RequesterContext) -> Dict:
    """
    {"users": [...], "managers": [...]}: per-type activity counts and
    won / visited credits for each user, then summed per branch.
    """
    _check_report_access(ctx)

    query = combine(await _scope(ctx, f, "activator"), date_range("created_at", f.start_date, f.end_date))
    activities = await db.activities.find(
        query, {"_id": 0, "activator": 1, "lead": 1, "type": 1, "details": 1}
    ).to_list(100000)

    rows: Dict[str, Dict] = {}

    def row_for(user_id: str) -> Dict:
        if user_id not in rows:
            rows[user_id] = {
                "user_id": user_id,
                "counts": {t.value: 0 for t in ActivityType},
                "won": 0,
                "visited": 0,
            }
        return rows[user_id]

    for a in activities:
        row_for(a["activator"])["counts"][a["type"]] += 1
    for entry in await _credit_entries(activities):
        row_for(entry["user_id"])[entry["kind"]] += 1

    users = await hierarchy.users_by_id(rows.keys())
    managers: Dict[Optional[str], Dict] = {}
    for user_id, row in rows.items():
        user = users.get(user_id, {})
        row["username"] = user.get("username", "")
        row["privilege"] = user.get("privilege")
        # a manager heads its own branch
        branch = user_id if hierarchy.is_manager(user) else user.get("manager")
        row["manager_id"] = branch

        group = managers.setdefault(branch, {
            "manager_id": branch,
            "counts": {t.value: 0 for t in ActivityType},
            "won": 0,
            "visited": 0,
            "users": [],
        })
        for type_name, count in row["counts"].items():
            group["counts"][type_name] += count
        group["won"] += row["won"]
        group["visited"] += row["visited"]
        group["users"].append(user_id)

    names = await hierarchy.usernames_for(managers.keys())
    for branch, group in managers.items():
        group["manager_name"] = names.get(branch, "") if branch else ""

    logger.info(f"[REPORT] staff report by={ctx.user_id} activities={len(activities)}")
    return {
        "users": sorted(rows.values(), key=lambda r: r["username"]),
        "managers": sorted(managers.values(), key=lambda g: g["manager_name"]),
    }


# ════════════════════════════════════════════════════════════════════════════
# LEAD STATISTICS
# ════════════════════════════════════════════════════════════════════════════

def _ist_date_of_millis(value: int) -> date:
    return (EPOCH + timedelta(milliseconds=value)).date()


def _date_millis(day: date) -> int:
    """IST-shifted millis of an IST calendar day's midnight."""
    return (day - EPOCH.date()).days * 86400000


def bucket_granularity(start: date, end: date) -> str:
    days = (end - start).days + 1
    if days <= 30:
        return "daily"
    if days <= 90:
        return "weekly"
    return "monthly"


def _bucket_starts(start: date, end: date, granularity: str) -> List[date]:
    starts = []
    if granularity == "monthly":
        current = date(start.year, start.month, 1)
        while current <= end:
            starts.append(current)
            current = date(current.year + current.month // 12, current.month % 12 + 1, 1)
        return starts

    step = timedelta(days=1 if granularity == "daily" else 7)
    current = start
    while current <= end:
        starts.append(current)
        current += step
    return starts


def build_progress(created_days: List[date], start: Optional[date], end: Optional[date]) -> Dict:
    """
    Zero-filled creation series between start and end (IST days).
    Missing bounds fall back to the first / last creation day.
    """
    if not created_days and (start is None or end is None):
        return {"granularity": "daily", "series": []}

    start = start or min(created_days)
    end = end or max(created_days)
    granularity = bucket_granularity(start, end)
    starts = _bucket_starts(start, end, granularity)

    counts = {s: 0 for s in starts}
    for day in created_days:
        if day < start or day > end:
            continue
        if granularity == "monthly":
            bucket = date(day.year, day.month, 1)
        elif granularity == "weekly":
            bucket = start + timedelta(days=((day - start).days // 7) * 7)
        else:
            bucket = day
        counts[bucket] += 1

    return {
        "granularity": granularity,
        "series": [{"date": _date_millis(s), "count": counts[s]} for s in starts],
    }


async def lead_statistics(f: ReportFilter, ctx: RequesterContext) -> Dict:
    _check_report_access(ctx)

    if ctx.is_manager:
        scope = {"manager": ctx.user_id}
        if f.staff:
            scope = combine(scope, {"handled_by": f.staff})
    elif f.staff:
        scope = {"handled_by": f.staff}
    elif f.manager:
        scope = {"manager": f.manager}
    else:
        scope = {}

    query = combine(scope, date_range("created_at", f.start_date, f.end_date))
    leads = await db.leads.find(
        query, {"_id": 0, "enquire_status": 1, "source": 1, "purpose": 1, "created_at": 1}
    ).to_list(100000)

    status = _zero_counts(EnquireStatus)
    source = _zero_counts(EnquireSource)
    purpose = _zero_counts(Purpose)
    created_days = []
    for lead in leads:
        for counts, field in ((status, "enquire_status"), (source, "source"), (purpose, "purpose")):
            key = _key(lead.get(field) or "")
            if key in counts:
                counts[key] += 1
        if lead.get("created_at"):
            created_days.append(ist_wall_clock(parse_iso(lead["created_at"])).date())

    start = _ist_date_of_millis(f.start_date) if f.start_date is not None else None
    end = _ist_date_of_millis(f.end_date) if f.end_date is not None else None

    return {
        "total": len(leads),
        "enquire_status": status,
        "source": source,
        "purpose": purpose,
        "progress": build_progress(created_days, start, end),
    }


# ════════════════════════════════════════════════════════════════════════════
# CALL REPORT
# ════════════════════════════════════════════════════════════════════════════

CALL_OUTCOMES = ("connected", "not_connected", "call_back_requested", "follow_up_scheduled", "not_updated")


def classify_call(task: Dict) -> str:
    if not task.get("is_completed"):
        return "not_updated"
    if task.get("followup_task"):
        return "follow_up_scheduled"
    call_status = task.get("call_status")
    if call_status == CallStatus.CONNECTED.value:
        return "connected"
    if call_status == CallStatus.NOT_CONNECTED.value:
        return "not_connected"
    if call_status == CallStatus.CALL_BACK_REQUESTED.value:
        return "call_back_requested"
    return "not_updated"


async def call_report(f: ReportFilter, ctx: RequesterContext) -> Dict:
    """Call tasks due in range, by outcome: overall and per assignee."""
    if ctx.is_staff and (f.manager or (f.staff and f.staff != ctx.user_id)):
        raise Forbidden("Staff can only see their own call report")

    query = combine(
        await _scope(ctx, f, "assigned"),
        {"category": TaskCategory.CALL.value},
        date_range("due", f.start_date, f.end_date),
    )
    tasks = await db.tasks.find(
        query, {"_id": 0, "assigned": 1, "is_completed": 1, "call_status": 1, "followup_task": 1}
    ).to_list(100000)

    overall = {k: 0 for k in CALL_OUTCOMES}
    per_user: Dict[str, Dict] = {}
    for task in tasks:
        outcome = classify_call(task)
        overall[outcome] += 1
        row = per_user.setdefault(task["assigned"], {k: 0 for k in CALL_OUTCOMES})
        row[outcome] += 1

    names = await hierarchy.usernames_for(per_user.keys())
    by_assignee = [
        {"user_id": user_id, "username": names.get(user_id, ""), **counts, "total": sum(counts.values())}
        for user_id, counts in per_user.items()
    ]
    by_assignee.sort(key=lambda r: r["username"])

    return {"overall": {**overall, "total": len(tasks)}, "by_assignee": by_assignee}
