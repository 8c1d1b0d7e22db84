"""Fixed-width rows of the Logs and TaskLogs sheets.

Columns are bound by position once, here. Everything downstream reads named
attributes; nothing else indexes a sheet row by number.
"""
from typing import NamedTuple


class LogRow(NamedTuple):
    timestamp: str = ""
    request_id: str = ""
    type: str = ""
    status: str = ""
    employee_name: str = ""
    employee_email: str = ""
    employee_id: str = ""
    dates: str = ""
    reason: str = ""
    manager_comment: str = ""
    manager_action: str = ""
    permission_type: str = ""
    leave_type: str = ""
    requested_in_time: str = ""
    requested_out_time: str = ""
    alternate_staff: str = ""


class TaskLogRow(NamedTuple):
    timestamp: str = ""
    task_id: str = ""
    employee_email: str = ""
    employee_name: str = ""
    company: str = ""
    platform: str = ""
    fulfillment: str = ""
    task: str = ""
    quantity: str = ""
    claimed_quantity: str = ""


LOG_COLUMN_COUNT = len(LogRow._fields)
TASK_LOG_COLUMN_COUNT = len(TaskLogRow._fields)

# 1-based sheet columns touched by a decision
STATUS_COLUMN = LogRow._fields.index("status") + 1
MANAGER_COMMENT_COLUMN = LogRow._fields.index("manager_comment") + 1
MANAGER_ACTION_COLUMN = LogRow._fields.index("manager_action") + 1
REQUEST_ID_COLUMN = LogRow._fields.index("request_id") + 1
