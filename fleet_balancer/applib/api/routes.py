"""
Administrative HTTP surface.

Thin pass-throughs to the session store plus a read-only view of the control
loop. Collaborator failures are logged and turned into safe defaults; callers
never get a 500 because Redis is down.
"""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from fleet_balancer import __version__
from fleet_balancer.applib.errors import CollaboratorUnavailable
from fleet_balancer.applib.models import CommandResult, FleetStatus, Session
from fleet_balancer.fleet.interfaces import call_with_timeout

logger = logging.getLogger(__name__)

SERVICE_NAME = "Fleet Balancer"


async def require_api_key(request: Request) -> None:
    """When AUTH_API_KEY is set, require a matching X-API-KEY header."""
    auth_key = request.app.state.settings.AUTH_API_KEY
    if not auth_key:
        return
    provided = (request.headers.get("X-API-KEY") or "").strip()
    if not provided or provided != auth_key:
        raise HTTPException(status_code=401, detail="Missing or invalid API key. Use X-API-KEY header.")


router = APIRouter()
admin_router = APIRouter(dependencies=[Depends(require_api_key)])


@router.get("/health")
async def health(request: Request) -> dict:
    """Liveness check"""
    loop = request.app.state.control_loop
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": __version__,
        "loop_running": bool(loop and loop.running),
    }


@admin_router.get("/ws-session/all", response_model=List[Session], response_model_by_alias=True)
async def get_all_sessions(request: Request) -> List[Session]:
    state = request.app.state
    try:
        return await call_with_timeout(
            state.session_store.list_sessions(),
            state.settings.COLLABORATOR_TIMEOUT_SECONDS,
            "session-store",
        )
    except CollaboratorUnavailable:
        logger.exception("Listing sessions for admin request failed")
        return []


@admin_router.post("/ws-session/{host_id}/admin/command", response_model=CommandResult)
async def drop_sessions(request: Request, host_id: str, count: int = Query(1, ge=1)) -> CommandResult:
    state = request.app.state
    try:
        await call_with_timeout(
            state.session_store.drop_sessions({host_id: count}),
            state.settings.COLLABORATOR_TIMEOUT_SECONDS,
            "session-store",
        )
    except CollaboratorUnavailable as exc:
        logger.exception("Admin drop of %d sessions on %s failed", count, host_id)
        return CommandResult(accepted=False, host_id=host_id, count=count, error=str(exc))
    return CommandResult(accepted=True, host_id=host_id, count=count)


@admin_router.get("/fleet/status", response_model=FleetStatus)
async def fleet_status(request: Request) -> FleetStatus:
    loop = request.app.state.control_loop
    if loop is None:
        return FleetStatus(loop_running=False)
    return FleetStatus(
        loop_running=loop.running,
        last_cycles={kind.value: report for kind, report in loop.last_reports.items()},
    )
