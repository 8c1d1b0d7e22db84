"""Pydantic schemas for leave requests and decisions."""
from typing import Optional
from pydantic import BaseModel

from swiftleave.models.log_row import LogRow


class RequestDraft(BaseModel):
    """Form state as submitted; validation happens in the lifecycle engine."""

    name: str = ""
    email: str = ""
    emp_id: str = ""
    permission_type: str = ""
    leave_type: str = ""
    requested_in_time: str = ""
    requested_out_time: str = ""
    start_date: str = ""
    end_date: str = ""
    alternate_staff: str = ""
    reason: str = ""


class FormState(BaseModel):
    draft: RequestDraft
    leave_type_options: list[str] = []
    show_in_time: bool = False
    show_out_time: bool = False


class FormStateIn(BaseModel):
    draft: RequestDraft
    leave_type_options: Optional[list[str]] = None


class LeaveRequest(BaseModel):
    request_id: str
    employee_name: str
    employee_email: str
    employee_id: str
    permission_type: str
    leave_type: str
    requested_in_time: str = ""
    requested_out_time: str = ""
    start_date: str
    end_date: str
    reason: str
    alternate_staff: str = ""
    status: str
    manager_comment: str = ""
    timestamp: str


class SubmitResult(BaseModel):
    request: LeaveRequest
    notified: str


class DecisionIn(BaseModel):
    status: str  # APPROVED or REJECTED
    manager_comment: str = ""


class LogRecordOut(BaseModel):
    timestamp: str
    request_id: str
    type: str
    status: str
    employee_name: str
    employee_email: str
    employee_id: str
    dates: str
    reason: str
    manager_comment: str
    manager_action: str
    permission_type: str
    leave_type: str
    requested_in_time: str
    requested_out_time: str
    alternate_staff: str

    @classmethod
    def from_row(cls, row: LogRow) -> "LogRecordOut":
        return cls(**row._asdict())


class DecisionOut(BaseModel):
    record: LogRecordOut
    notified: str
