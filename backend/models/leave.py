from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class LeaveStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LeaveApply(BaseModel):
    reason: str = Field(min_length=4)
    date: int  # ms IST


class LeaveStatusUpdate(BaseModel):
    id: str
    status: LeaveStatus


class LeaveFilter(BaseModel):
    user_id: Optional[str] = None
    start_date: Optional[int] = None
    end_date: Optional[int] = None
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=20, ge=1, le=500)
