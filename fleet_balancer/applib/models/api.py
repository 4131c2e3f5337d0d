from typing import Dict, Optional

from pydantic import BaseModel

from .decisions import CycleReport


class CommandResult(BaseModel):
    """Response body for POST /ws-session/{host_id}/admin/command"""
    accepted: bool
    host_id: str
    count: int
    error: Optional[str] = None


class FleetStatus(BaseModel):
    loop_running: bool
    last_cycles: Dict[str, CycleReport] = {}
