"""Pydantic schemas for the employee directory, roles and lookups."""
from typing import Optional
from pydantic import BaseModel

from swiftleave.models.request import UserRole


class EmployeeRecord(BaseModel):
    email: str
    name: str = ""
    employee_id: str = ""
    role: str = "employee"


class UserProfile(BaseModel):
    email: str
    name: Optional[str] = None
    role: str = "employee"

    @property
    def is_manager(self) -> bool:
        return self.role in (UserRole.manager.value, UserRole.admin.value)


class AuthenticatedUser(BaseModel):
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


class LookupOptions(BaseModel):
    permission_types: list[str] = []
    leave_types: list[str] = []


class SessionIn(BaseModel):
    credential: str


class SessionOut(BaseModel):
    user: AuthenticatedUser
    profile: UserProfile
    message: str
