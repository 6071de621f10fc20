"""
Routes pour les Leads
"""

from fastapi import APIRouter, Depends

from models.lead import LeadCreate, LeadFilter, LeadStatusUpdate, LeadTransfer
from models.user import RequesterContext
from routes.auth import get_requester
from services import lead_state_machine

router = APIRouter(prefix="/leads", tags=["Leads"])


@router.post("")
async def create_lead(data: LeadCreate, ctx: RequesterContext = Depends(get_requester)):
    lead = await lead_state_machine.create_lead(data, ctx)
    return {"success": True, "lead": lead}


@router.post("/filter")
async def filter_leads(f: LeadFilter, ctx: RequesterContext = Depends(get_requester)):
    """
    Liste paginée + compteurs today / week / month.

    Body: search, enquire_status[], source[], purpose[], type[],
    manager | staff, spotlight, start_date / end_date (ms IST), skip, limit.
    """
    return await lead_state_machine.list_leads(f, ctx)


@router.post("/transfer")
async def transfer_lead(data: LeadTransfer, ctx: RequesterContext = Depends(get_requester)):
    lead = await lead_state_machine.transfer_lead(data.lead_id, data.transfer_to, ctx)
    return {"success": True, "lead": lead}


@router.get("/transfer-targets")
async def transfer_targets(ctx: RequesterContext = Depends(get_requester)):
    return {"users": await lead_state_machine.list_transfer_targets(ctx)}


@router.put("/status/{lead_id}")
async def update_lead_status(lead_id: str, data: LeadStatusUpdate, ctx: RequesterContext = Depends(get_requester)):
    lead = await lead_state_machine.update_status(lead_id, data, ctx)
    return {"success": True, "lead": lead}


@router.get("/{lead_id}")
async def get_lead(lead_id: str, ctx: RequesterContext = Depends(get_requester)):
    return await lead_state_machine.get_lead(lead_id, ctx)
