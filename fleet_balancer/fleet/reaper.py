"""
Idle reaper: picks Cordoned members that have drained to zero sessions.

Only runs on cycles whose scaling decision is None, so termination never races
a cordon/reactivate/provision step of the same cycle.
"""

from __future__ import annotations

import logging
from typing import List

from fleet_balancer.applib.models import FleetMember, ScalingDecision

from .snapshot import FleetSnapshot

logger = logging.getLogger(__name__)


class IdleReaper:
    def select(self, snapshot: FleetSnapshot, decision: ScalingDecision) -> List[FleetMember]:
        if not decision.is_none:
            return []

        idle: List[FleetMember] = []
        for member in sorted(snapshot.cordoned, key=lambda m: m.address):
            attributed = snapshot.sessions_at(member.address)
            if attributed:
                logger.debug("Cordoned member %s still draining (%d sessions)", member.address, attributed)
                continue
            idle.append(member)

        if idle:
            logger.info("Idle cordoned members to terminate: %s", [m.address for m in idle])
        return idle
