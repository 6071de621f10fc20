"""
LeadFlow CRM - Journal d'activité (append-only)
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator


class ActivityType(str, Enum):
    LEAD_ADDED = "lead_added"
    LEAD_UPDATED = "lead_updated"
    STATUS_UPDATED = "status_updated"
    PURPOSE_UPDATED = "purpose_updated"
    CALL_STATUS_UPDATED = "call_status_updated"
    LEAD_TRANSFER = "lead_transfer"
    TASK_ADDED = "task_added"
    NOTE_ADDED = "note_added"
    COMPLETED = "completed"
    FOLLOWUP_ADDED = "followup_added"


class NoteCreate(BaseModel):
    lead_id: str
    note: str = Field(min_length=1)


class ActivityFilter(BaseModel):
    lead: Optional[str] = None
    manager: Optional[str] = None
    staff: Optional[str] = None
    activity_type: Optional[List[ActivityType]] = None
    start_date: Optional[int] = None
    end_date: Optional[int] = None
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=20, ge=1, le=500)

    @model_validator(mode="after")
    def manager_or_staff(self):
        if self.manager and self.staff:
            raise ValueError("pass either manager or staff")
        return self


class ReportFilter(BaseModel):
    manager: Optional[str] = None
    staff: Optional[str] = None
    start_date: Optional[int] = None
    end_date: Optional[int] = None
