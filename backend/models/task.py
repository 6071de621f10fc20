"""
LeadFlow CRM - Modèle Tâche (suivi d'un lead)
Une seule tâche ouverte par lead.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field

from .lead import CallStatus, EnquireStatus, Purpose


class TaskCategory(str, Enum):
    CALL = "call"
    SALES = "sales"
    MEETING = "meeting"


class TaskCreate(BaseModel):
    lead: str
    assigned: Optional[str] = None
    category: TaskCategory
    due: int  # ms IST
    title: Optional[str] = None
    description: Optional[str] = None


class TaskComplete(BaseModel):
    task_id: str
    enquire_status: Optional[EnquireStatus] = None
    call_status: Optional[CallStatus] = None
    purpose: Optional[Purpose] = None
    note: Optional[str] = None
    followup_date: Optional[int] = None  # ms IST

    def status_fields(self) -> dict:
        fields = {}
        for name in ("enquire_status", "call_status", "purpose"):
            value = getattr(self, name)
            if value is not None:
                fields[name] = value.value
        return fields


class TaskFilter(BaseModel):
    lead: Optional[str] = None
    assigned: Optional[str] = None
    manager: Optional[str] = None
    category: Optional[TaskCategory] = None
    is_completed: Optional[bool] = None
    start_date: Optional[int] = None
    end_date: Optional[int] = None
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=20, ge=1, le=500)
