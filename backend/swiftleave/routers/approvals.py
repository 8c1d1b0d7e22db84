"""One-click approval links sent in the approver's email.

The link itself is the capability: whoever holds it can record the decision,
so this route does not require a signed-in user. Responses are HTML pages
meant for a browser tab. Only the preflight answer carries CORS headers, and
it is permissive for any origin, so ``answer_preflight`` runs ahead of the
app-wide CORS middleware.
"""
import html
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import HTMLResponse

from swiftleave.models.request import RequestStatus
from swiftleave.services import request_service
from swiftleave.services.notification_service import NotificationDispatcher, get_dispatcher
from swiftleave.services.sheet_client import TabularStore, get_store

logger = logging.getLogger(__name__)
router = APIRouter()

APPROVAL_PATH = "/approval"

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def render_page(title: str, message: str, status_code: int = 200) -> HTMLResponse:
    body = f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
  <body style="font-family: sans-serif; margin: 3rem;">
    <h2>{html.escape(title)}</h2>
    <p>{html.escape(message)}</p>
  </body>
</html>"""
    return HTMLResponse(content=body, status_code=status_code)


def preflight_response() -> Response:
    return Response(status_code=204, headers=PREFLIGHT_HEADERS)


async def answer_preflight(request: Request, call_next):
    """HTTP middleware: OPTIONS on the approval link gets the open preflight."""
    if request.method == "OPTIONS" and request.url.path.rstrip("/") == APPROVAL_PATH:
        return preflight_response()
    return await call_next(request)


@router.get("", response_class=HTMLResponse)
def approval_link(
    action: Optional[str] = Query(None),
    rid: Optional[str] = Query(None),
    method: Optional[str] = Query(None),
    store: TabularStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Record APPROVE/DENY for ``rid`` and show a confirmation page."""
    if (method or "").upper() == "OPTIONS":
        return preflight_response()

    if not rid or not rid.strip():
        return render_page("Invalid link", "This approval link has no request id.", 400)
    try:
        decision = request_service.parse_decision(action or "")
    except HTTPException:
        return render_page("Invalid link", "This approval link has no valid action (APPROVE or DENY).", 400)

    try:
        row, _ = request_service.decide_and_notify(store, dispatcher, rid, decision)
    except HTTPException as exc:
        logger.warning("Approval link for %s failed: %s", rid, exc.detail)
        return render_page("Could not record decision", str(exc.detail), exc.status_code)

    verb = "approved" if decision == RequestStatus.approved else "rejected"
    who = row.employee_name or row.employee_email or "the requester"
    return render_page(
        f"Request {verb}",
        f"Request {row.request_id} from {who} has been {verb}. The employee has been notified.",
    )
