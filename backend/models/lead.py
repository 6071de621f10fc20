"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  LeadFlow CRM - Modèle Lead                                                  ║
║                                                                              ║
║  RÈGLES FONDAMENTALES:                                                       ║
║  1. Un lead référence un Customer unique par téléphone                       ║
║  2. created_by ne change jamais, handled_by change au transfert              ║
║  3. Statuts terminaux: won, lost (clôturent les tâches ouvertes)             ║
║  4. Un lead n'est jamais supprimé                                            ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


class EnquireSource(str, Enum):
    CALL = "call"
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    PREVIOUS_CUSTOMER = "previous customer"
    WABIS = "wabis"
    WALKIN = "walkin"
    WHATSAPP = "whatsapp"


class EnquireStatus(str, Enum):
    EMPTY = "empty"
    CONTACTED = "contacted"
    INTERESTED = "interested"
    LOST = "lost"
    NEW = "new"
    NONE = "none"
    PENDING = "pending"
    QUOTATION_SHARED = "quotation shared"
    VISIT_STORE = "visit store"
    WON = "won"


class Purpose(str, Enum):
    INQUIRE = "inquire"
    PURCHASE = "purchase"
    SALES = "sales"
    SERVICE_REQUEST = "service request"


class LeadType(str, Enum):
    FRESH = "fresh"
    USED = "used"


class CallStatus(str, Enum):
    CONNECTED = "connected"
    NOT_CONNECTED = "not connected"
    CALL_BACK_REQUESTED = "call back requested"


TERMINAL_STATUSES = {EnquireStatus.WON.value, EnquireStatus.LOST.value}


class LeadCreate(BaseModel):
    """
    Lead soumis par un utilisateur authentifié.
    Le customer est retrouvé ou créé à partir du téléphone.
    """
    phone: str = Field(min_length=1)
    name: str = Field(min_length=1)
    email: Optional[str] = None
    address: str = Field(min_length=1)
    dob: Optional[int] = None
    product: str = Field(min_length=1)
    type: LeadType
    source: EnquireSource
    enquire_status: EnquireStatus
    purpose: Purpose
    call_status: Optional[CallStatus] = None
    manager: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def strip_phone(cls, v):
        return v.strip()


class LeadStatusUpdate(BaseModel):
    enquire_status: Optional[EnquireStatus] = None
    source: Optional[EnquireSource] = None
    purpose: Optional[Purpose] = None
    call_status: Optional[CallStatus] = None
    transfer_to: Optional[str] = None

    @model_validator(mode="after")
    def at_least_one(self):
        if not self.model_fields_set:
            raise ValueError(
                "At least one field (enquire_status, source, purpose, call_status or transfer_to) must be provided."
            )
        return self

    def status_fields(self) -> dict:
        """Changed status fields only, as plain values."""
        fields = {}
        for name in ("enquire_status", "source", "purpose", "call_status"):
            value = getattr(self, name)
            if value is not None:
                fields[name] = value.value
        return fields


class LeadTransfer(BaseModel):
    lead_id: str
    transfer_to: str = Field(min_length=1)


class LeadFilter(BaseModel):
    search: Optional[str] = None
    enquire_status: Optional[List[EnquireStatus]] = None
    source: Optional[List[EnquireSource]] = None
    purpose: Optional[List[Purpose]] = None
    type: Optional[List[LeadType]] = None
    manager: Optional[str] = None
    staff: Optional[str] = None
    spotlight: bool = False
    start_date: Optional[int] = None
    end_date: Optional[int] = None
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=20, ge=1, le=500)

    @model_validator(mode="after")
    def manager_or_staff(self):
        if self.manager and self.staff:
            raise ValueError("pass either manager or staff")
        return self
