"""Notification dispatcher — best-effort posts to the mail relay webhook.

The relay receives one JSON document per notification and decides on its own
whether to send mail. Its response is never read: a notification counts as
sent once the network write itself did not raise. Nothing here raises; callers
get a NotifyResult and decide what to do with it.
"""
import enum
import json
import logging
from functools import lru_cache
from typing import Any, Optional
from urllib.parse import urlencode

import requests

from swiftleave.config import settings
from swiftleave.models.log_row import LogRow
from swiftleave.schemas.request import LeaveRequest

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    new_request = "new-request"
    decision = "decision"
    task = "task"


class NotifyResult(str, enum.Enum):
    sent = "SENT"
    config_missing = "CONFIG_MISSING"
    transport_error = "TRANSPORT_ERROR"


# Discriminant the relay switches on
PAYLOAD_TYPES = {
    NotificationKind.new_request: "request",
    NotificationKind.decision: "decision",
    NotificationKind.task: "task",
}


def new_request_payload(req: LeaveRequest) -> dict[str, Any]:
    return {
        "requestId": req.request_id,
        "status": req.status,
        "employeeName": req.employee_name,
        "employeeEmail": req.employee_email,
        "employeeId": req.employee_id,
        "permissionType": req.permission_type,
        "leaveType": req.leave_type,
        "requestedInTime": req.requested_in_time,
        "requestedOutTime": req.requested_out_time,
        "startDate": req.start_date,
        "endDate": req.end_date,
        "alternateStaff": req.alternate_staff,
        "reason": req.reason,
        "timestamp": req.timestamp,
    }


def decision_payload(row: LogRow) -> dict[str, Any]:
    """Decision notices always address an existing row by its request id."""
    return {
        "requestId": row.request_id,
        "status": row.status,
        "managerComment": row.manager_comment,
        "managerAction": row.manager_action,
        "employeeName": row.employee_name,
        "employeeEmail": row.employee_email,
        "employeeId": row.employee_id,
        "permissionType": row.permission_type,
        "leaveType": row.leave_type,
        "requestedInTime": row.requested_in_time,
        "requestedOutTime": row.requested_out_time,
        "dates": row.dates,
        "reason": row.reason,
    }


def _or_dash(value: Any) -> str:
    return str(value) if value not in (None, "") else "-"


class NotificationDispatcher:
    def __init__(
        self,
        webhook_url: str,
        manager_email: str = "",
        public_base_url: str = "",
        dashboard_url: str = "",
        timeout: float = 10.0,
        http: Optional[requests.Session] = None,
    ):
        self.webhook_url = webhook_url
        self.manager_email = manager_email
        self.public_base_url = public_base_url.rstrip("/")
        self.dashboard_url = dashboard_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()

    @classmethod
    def from_settings(cls) -> "NotificationDispatcher":
        return cls(
            webhook_url=settings.SHEET_LOG_WEBHOOK,
            manager_email=settings.MANAGER_EMAIL,
            public_base_url=settings.PUBLIC_BASE_URL,
            dashboard_url=settings.DASHBOARD_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    def approval_links(self, request_id: str) -> dict[str, str]:
        """One-click approve/deny links plus a dashboard link focused on the request."""
        return {
            "approveUrl": f"{self.public_base_url}/approval?{urlencode({'action': 'APPROVE', 'rid': request_id})}",
            "denyUrl": f"{self.public_base_url}/approval?{urlencode({'action': 'DENY', 'rid': request_id})}",
            "dashboardUrl": f"{self.dashboard_url}/?{urlencode({'view': 'manager', 'rid': request_id})}",
        }

    def build_message(self, kind: NotificationKind, payload: dict[str, Any]) -> tuple[str, str]:
        """Subject and plain-text body carrying every human-relevant field."""
        if kind == NotificationKind.new_request:
            subject = f"New Leave Request from {payload.get('employeeName')} ({payload.get('requestId')})"
            lines = [
                "Leave Request Created",
                "---------------------",
                f"Request ID      : {_or_dash(payload.get('requestId'))}",
                f"Employee        : {_or_dash(payload.get('employeeName'))} "
                f"(id={_or_dash(payload.get('employeeId'))}, email={_or_dash(payload.get('employeeEmail'))})",
                f"Permission Type : {_or_dash(payload.get('permissionType'))}",
                f"Leave Type      : {_or_dash(payload.get('leaveType'))}",
                f"Dates           : {_or_dash(payload.get('startDate'))} - {_or_dash(payload.get('endDate'))}",
            ]
            if payload.get("requestedInTime") or payload.get("requestedOutTime"):
                lines.append(
                    f"Times           : {_or_dash(payload.get('requestedInTime'))} - "
                    f"{_or_dash(payload.get('requestedOutTime'))}"
                )
            lines += [
                f"Alternate Staff : {_or_dash(payload.get('alternateStaff'))}",
                f"Reason          : {_or_dash(payload.get('reason'))}",
                f"Status          : {_or_dash(payload.get('status'))}",
            ]
            if payload.get("approveUrl"):
                lines += [
                    "",
                    f"Approve : {payload['approveUrl']}",
                    f"Deny    : {payload['denyUrl']}",
                    f"Review  : {payload['dashboardUrl']}",
                ]
            return subject, "\n".join(lines)

        if kind == NotificationKind.decision:
            status = _or_dash(payload.get("status"))
            subject = f"Your Leave Request {payload.get('requestId')} was {status}"
            body = (
                f"Hi {_or_dash(payload.get('employeeName'))},\n\n"
                f"Your {_or_dash(payload.get('leaveType'))} request ({_or_dash(payload.get('permissionType'))}) "
                f"for {_or_dash(payload.get('dates'))} has been {status}."
            )
            if payload.get("requestedInTime") or payload.get("requestedOutTime"):
                body += (
                    f"\nRequested time: {_or_dash(payload.get('requestedInTime'))} - "
                    f"{_or_dash(payload.get('requestedOutTime'))}"
                )
            body += f"\nReason: {_or_dash(payload.get('reason'))}"
            if payload.get("managerComment"):
                body += f"\n\nManager comment: {payload['managerComment']}"
            body += "\n\nRegards,\nSwiftLeave"
            return subject, body

        subject = f"Task logged by {payload.get('employeeName')}"
        body = (
            f"{_or_dash(payload.get('employeeName'))} ({_or_dash(payload.get('employeeEmail'))}) logged "
            f"{_or_dash(payload.get('quantity'))} x {_or_dash(payload.get('task'))} for "
            f"{_or_dash(payload.get('company'))} on {_or_dash(payload.get('platform'))}"
        )
        if payload.get("fulfillment"):
            body += f" ({payload['fulfillment']})"
        return subject, body

    def _recipient(self, kind: NotificationKind, payload: dict[str, Any]) -> str:
        if kind == NotificationKind.new_request:
            return self.manager_email
        if kind == NotificationKind.decision:
            return payload.get("employeeEmail", "")
        return ""

    def notify(self, kind: NotificationKind, payload: dict[str, Any]) -> NotifyResult:
        if not self.webhook_url:
            logger.warning("No relay webhook configured; skipping %s notification", kind.value)
            return NotifyResult.config_missing

        subject, message = self.build_message(kind, payload)
        body = {
            "type": PAYLOAD_TYPES[kind],
            **payload,
            "to": self._recipient(kind, payload),
            "subject": subject,
            "message": message,
        }
        try:
            # text/plain keeps the relay call a "simple" request; the reply is opaque
            self.http.post(
                self.webhook_url,
                data=json.dumps(body),
                headers={"Content-Type": "text/plain"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Relay post for %s notification failed: %s", kind.value, exc)
            return NotifyResult.transport_error

        logger.info("Posted %s notification for %s", kind.value, payload.get("requestId") or payload.get("taskId"))
        return NotifyResult.sent


@lru_cache
def _default_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher.from_settings()


def get_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency — the configured relay dispatcher."""
    return _default_dispatcher()
