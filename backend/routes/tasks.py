"""
Routes pour les Tâches
"""

from typing import Optional

from fastapi import APIRouter, Depends

from models.activity import ReportFilter
from models.task import TaskComplete, TaskCreate, TaskFilter
from models.user import RequesterContext
from routes.auth import get_requester
from services import reporting, task_linkage

router = APIRouter(prefix="/tasks", tags=["Tasks"])


@router.post("")
async def create_task(data: TaskCreate, ctx: RequesterContext = Depends(get_requester)):
    task = await task_linkage.create_task(data, ctx)
    return {"success": True, "task": task}


@router.post("/filter")
async def filter_tasks(f: TaskFilter, ctx: RequesterContext = Depends(get_requester)):
    return await task_linkage.list_tasks(f, ctx)


@router.post("/complete")
async def complete_task(data: TaskComplete, ctx: RequesterContext = Depends(get_requester)):
    result = await task_linkage.complete_task(data, ctx)
    return {"success": True, **result}


@router.get("/call-reports")
async def call_reports(
    manager: Optional[str] = None,
    staff: Optional[str] = None,
    start_date: Optional[int] = None,
    end_date: Optional[int] = None,
    ctx: RequesterContext = Depends(get_requester)
):
    f = ReportFilter(manager=manager, staff=staff, start_date=start_date, end_date=end_date)
    return await reporting.call_report(f, ctx)


@router.get("/today-stat")
async def today_stat(ctx: RequesterContext = Depends(get_requester)):
    return await task_linkage.today_task_stats(ctx)
