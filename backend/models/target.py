"""
LeadFlow CRM - Objectifs mensuels
Un document par (utilisateur, mois). month = 1er du mois 00:00 UTC.
"""

from typing import Optional
from pydantic import BaseModel, Field


class TargetSet(BaseModel):
    assigned: str
    month: Optional[int] = None  # ms IST, any instant inside the month
    total: int = Field(ge=0)


class TargetFilter(BaseModel):
    assigned: Optional[str] = None
    month: Optional[int] = None
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=20, ge=1, le=500)
