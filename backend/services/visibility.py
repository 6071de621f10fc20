"""
LeadFlow CRM - Hierarchical Visibility Resolver

Pure functions: RequesterContext + pre-resolved branch staff ids + explicit
filters -> MongoDB predicate. No I/O here; callers resolve staff ids with
services.hierarchy.branch_staff_ids() first.

Roles:
- admin: unrestricted unless an explicit manager/staff filter is given
- manager: own branch (manager == self OR handler in staff + self)
- staff: handled_by == self (leads); self + own manager (tasks, activities)
- call-center: staff rules, plus transfer to any manager
- super admin: only role seeing every leave/target row
"""

from typing import Dict, List, Optional

from models.user import Privilege, RequesterContext


def _and(*clauses: Dict) -> Dict:
    parts = [c for c in clauses if c]
    if not parts:
        return {}
    if len(parts) == 1:
        return parts[0]
    return {"$and": parts}


def lead_scope(
    ctx: RequesterContext,
    staff_ids: List[str],
    manager: Optional[str] = None,
    staff: Optional[str] = None,
    explicit_manager_staff_ids: Optional[List[str]] = None,
) -> Dict:
    """
    Predicate on the leads collection.

    staff_ids: the requester's own branch when requester is a manager.
    explicit_manager_staff_ids: branch of the explicit `manager` filter (admin).
    """
    if ctx.privilege == Privilege.ADMIN:
        if staff:
            return {"handled_by": staff}
        if manager:
            return {"$or": [
                {"manager": manager},
                {"handled_by": {"$in": list(explicit_manager_staff_ids or []) + [manager]}},
            ]}
        return {}

    if ctx.privilege == Privilege.MANAGER:
        branch = {"$or": [
            {"manager": ctx.user_id},
            {"handled_by": {"$in": list(staff_ids) + [ctx.user_id]}},
        ]}
        if staff:
            return _and(branch, {"handled_by": staff})
        return branch

    return {"handled_by": ctx.user_id}


def _people_scope(
    field: str,
    ctx: RequesterContext,
    staff_ids: List[str],
    manager: Optional[str],
    staff: Optional[str],
    explicit_manager_staff_ids: Optional[List[str]],
) -> Dict:
    if ctx.privilege == Privilege.ADMIN:
        if staff:
            return {field: staff}
        if manager:
            return {field: {"$in": list(explicit_manager_staff_ids or []) + [manager]}}
        return {}

    if ctx.privilege == Privilege.MANAGER:
        members = list(staff_ids) + [ctx.user_id]
        if staff:
            if staff in members:
                return {field: staff}
            # outside the branch: matches nothing
            return {field: {"$in": []}}
        return {field: {"$in": members}}

    visible = [ctx.user_id]
    if ctx.manager_id:
        visible.append(ctx.manager_id)
    if staff:
        return {field: staff} if staff in visible else {field: {"$in": []}}
    return {field: {"$in": visible}}


def task_scope(
    ctx: RequesterContext,
    staff_ids: List[str],
    manager: Optional[str] = None,
    staff: Optional[str] = None,
    explicit_manager_staff_ids: Optional[List[str]] = None,
) -> Dict:
    return _people_scope("assigned", ctx, staff_ids, manager, staff, explicit_manager_staff_ids)


def activity_scope(
    ctx: RequesterContext,
    staff_ids: List[str],
    manager: Optional[str] = None,
    staff: Optional[str] = None,
    explicit_manager_staff_ids: Optional[List[str]] = None,
) -> Dict:
    return _people_scope("activator", ctx, staff_ids, manager, staff, explicit_manager_staff_ids)


def can_view_lead(ctx: RequesterContext, lead: Dict, staff_ids: List[str]) -> bool:
    """In-memory twin of lead_scope() for a single document."""
    if ctx.privilege == Privilege.ADMIN:
        return True
    handler = lead.get("handled_by")
    if ctx.privilege == Privilege.MANAGER:
        return lead.get("manager") == ctx.user_id or handler in set(staff_ids) | {ctx.user_id}
    return handler == ctx.user_id


def can_view_task(ctx: RequesterContext, task: Dict, staff_ids: List[str]) -> bool:
    if ctx.privilege == Privilege.ADMIN:
        return True
    assigned = task.get("assigned")
    if ctx.privilege == Privilege.MANAGER:
        return assigned in set(staff_ids) | {ctx.user_id}
    return assigned in {ctx.user_id, ctx.manager_id} - {None}


def can_transfer_to(ctx: RequesterContext, target: Dict, staff_ids: List[str]) -> bool:
    """
    Whether ctx may hand a lead to `target` (an active, non-admin user).

    staff_ids: branch of the requester (manager) or of the requester's
    manager (staff).
    """
    target_privilege = target.get("privilege")
    if target_privilege == Privilege.ADMIN.value:
        return False
    if ctx.privilege == Privilege.ADMIN:
        return True
    if ctx.privilege == Privilege.MANAGER:
        return target_privilege == Privilege.MANAGER.value or target.get("id") in staff_ids
    if ctx.is_call_center and target_privilege == Privilege.MANAGER.value:
        return True
    # staff: stays inside the branch
    return target.get("id") == ctx.manager_id or target.get("id") in staff_ids


def transfer_target_query(ctx: RequesterContext, staff_ids: List[str]) -> Dict:
    """users-collection predicate listing who ctx may transfer a lead to."""
    base = {"is_active": {"$ne": False}, "privilege": {"$ne": Privilege.ADMIN.value}}
    if ctx.privilege == Privilege.ADMIN:
        return base
    if ctx.privilege == Privilege.MANAGER:
        return _and(base, {"$or": [
            {"privilege": Privilege.MANAGER.value},
            {"id": {"$in": list(staff_ids)}},
        ]})
    members = list(staff_ids)
    if ctx.manager_id:
        members.append(ctx.manager_id)
    if ctx.is_call_center:
        return _and(base, {"$or": [
            {"privilege": Privilege.MANAGER.value},
            {"id": {"$in": members}},
        ]})
    return _and(base, {"id": {"$in": members}})


def owner_scope(ctx: RequesterContext, field: str, explicit_user: Optional[str] = None) -> Dict:
    """
    Leave rows: super admin sees everything (or one explicit user);
    everyone else only their own.
    """
    if ctx.is_super:
        return {field: explicit_user} if explicit_user else {}
    return {field: ctx.user_id}
