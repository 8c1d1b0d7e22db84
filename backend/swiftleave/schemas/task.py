"""Pydantic schemas for the task ledger."""
from pydantic import BaseModel


class TaskLookups(BaseModel):
    companies: list[str] = []
    platforms: list[str] = []
    fulfillments: list[str] = []
    tasks: list[str] = []


class TaskDraft(BaseModel):
    company: str = ""
    platform: str = ""
    fulfillment: str = ""
    task: str = ""
    quantity: int = 0
    claimed_quantity: int = 0


class TaskEntry(BaseModel):
    task_id: str
    employee_email: str
    employee_name: str
    company: str
    platform: str
    fulfillment: str = ""
    task: str
    quantity: int
    claimed_quantity: int = 0
    timestamp: str


class TaskSubmitOut(BaseModel):
    entry: TaskEntry
    notified: str
