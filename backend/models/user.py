"""
LeadFlow CRM - Modeles Utilisateurs & contexte du demandeur
Privilege (admin / manager / staff) + second privilege (super / call-center / regular).
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator


class Privilege(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"


class SecondPrivilege(str, Enum):
    SUPER = "super"
    CALL_CENTER = "call-center"
    REGULAR = "regular"


class RequesterContext(BaseModel):
    """
    Identity of the caller, passed explicitly into every core operation.
    Built once per request from the user document.
    """
    model_config = ConfigDict(frozen=True)

    user_id: str
    privilege: Privilege
    second_privilege: SecondPrivilege = SecondPrivilege.REGULAR
    manager_id: Optional[str] = None
    username: str = ""

    @classmethod
    def from_user(cls, user: dict) -> "RequesterContext":
        return cls(
            user_id=user["id"],
            privilege=user.get("privilege", "staff"),
            second_privilege=user.get("second_privilege") or "regular",
            manager_id=user.get("manager"),
            username=user.get("username", ""),
        )

    @property
    def is_admin(self) -> bool:
        return self.privilege == Privilege.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.privilege == Privilege.MANAGER

    @property
    def is_staff(self) -> bool:
        return self.privilege == Privilege.STAFF

    @property
    def is_super(self) -> bool:
        return self.is_admin and self.second_privilege == SecondPrivilege.SUPER

    @property
    def is_call_center(self) -> bool:
        return self.second_privilege == SecondPrivilege.CALL_CENTER


class UserCreate(BaseModel):
    username: str = Field(min_length=3)
    password: str = Field(min_length=8)
    phone: str = Field(min_length=10)
    name: str = ""
    email: Optional[str] = None
    privilege: Privilege = Privilege.STAFF
    second_privilege: SecondPrivilege = SecondPrivilege.REGULAR
    manager: Optional[str] = None
    dob: Optional[int] = None

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v):
        return v.strip().lower()

