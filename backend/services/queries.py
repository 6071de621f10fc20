"""
LeadFlow CRM - Typed query builders

Each builder turns one validated filter model into a MongoDB predicate.
Visibility is combined separately (services.visibility).
"""

import re
from typing import Dict, List, Optional

from config import ist_millis_to_utc_iso
from models.activity import ActivityFilter
from models.lead import LeadFilter
from models.task import TaskFilter


def combine(*clauses: Optional[Dict]) -> Dict:
    parts = [c for c in clauses if c]
    if not parts:
        return {}
    if len(parts) == 1:
        return parts[0]
    return {"$and": parts}


def date_range(field: str, start_ms: Optional[int], end_ms: Optional[int]) -> Dict:
    """IST millisecond bounds -> ISO UTC range on `field`."""
    bounds = {}
    if start_ms is not None:
        bounds["$gte"] = ist_millis_to_utc_iso(start_ms)
    if end_ms is not None:
        bounds["$lte"] = ist_millis_to_utc_iso(end_ms)
    if not bounds:
        return {}
    return {field: bounds}


def in_values(field: str, values: Optional[List]) -> Dict:
    if not values:
        return {}
    plain = [v.value if hasattr(v, "value") else v for v in values]
    return {field: {"$in": plain}}


def text_search(fields: List[str], term: Optional[str]) -> Dict:
    if not term or not term.strip():
        return {}
    pattern = re.escape(term.strip())
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in fields]}


def lead_filter_query(f: LeadFilter, customer_ids: Optional[List[str]] = None,
                      tasked_lead_ids: Optional[List[str]] = None) -> Dict:
    """
    customer_ids: customers matching f.search (None = no search).
    tasked_lead_ids: leads that ever had a task (spotlight mode only).
    """
    clauses = [
        in_values("enquire_status", f.enquire_status),
        in_values("source", f.source),
        in_values("purpose", f.purpose),
        in_values("type", f.type),
        date_range("created_at", f.start_date, f.end_date),
    ]
    if customer_ids is not None:
        clauses.append({"customer": {"$in": customer_ids}})
    if f.spotlight:
        clauses.append({"id": {"$nin": tasked_lead_ids or []}})
    return combine(*clauses)


def task_filter_query(f: TaskFilter) -> Dict:
    clauses = [date_range("due", f.start_date, f.end_date)]
    if f.lead:
        clauses.append({"lead": f.lead})
    if f.category:
        clauses.append({"category": f.category.value})
    if f.is_completed is not None:
        clauses.append({"is_completed": f.is_completed})
    return combine(*clauses)


def activity_filter_query(f: ActivityFilter) -> Dict:
    return combine(
        in_values("type", f.activity_type),
        date_range("created_at", f.start_date, f.end_date),
    )
