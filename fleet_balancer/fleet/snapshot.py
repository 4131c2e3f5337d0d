"""
Point-in-time view of the fleet.

Every decision within one cycle is computed from a single FleetSnapshot, so the
Active/Cordoned partition and the session counts always belong together.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from fleet_balancer.applib.helpers import get_utc_now
from fleet_balancer.applib.models import FleetMember, HostUtilization, Session

from .interfaces import ServiceRegistry, SessionStore, call_with_timeout
from .utilization import collect_utilization, total_active_sessions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FleetSnapshot:
    members: Tuple[FleetMember, ...]
    sessions: Tuple[Session, ...]
    capacity: int
    taken_at: str = field(default_factory=get_utc_now)

    @property
    def active(self) -> List[FleetMember]:
        return [m for m in self.members if m.is_active]

    @property
    def cordoned(self) -> List[FleetMember]:
        return [m for m in self.members if m.is_cordoned]

    @property
    def utilization(self) -> Dict[str, HostUtilization]:
        return collect_utilization(self.sessions, self.capacity)

    @property
    def total_active(self) -> int:
        return total_active_sessions(self.utilization)

    def sessions_at(self, address: str) -> int:
        return sum(1 for s in self.sessions if s.host_id == address)


async def take_snapshot(
    session_store: SessionStore,
    registry: ServiceRegistry,
    *,
    service_name: str,
    capacity: int,
    timeout: float,
) -> FleetSnapshot:
    """Read the session listing and the registry once each."""

    sessions = await call_with_timeout(session_store.list_sessions(), timeout, "session-store")
    members = await call_with_timeout(registry.list_service_instances(service_name), timeout, "registry")
    snapshot = FleetSnapshot(members=tuple(members), sessions=tuple(sessions), capacity=capacity)
    logger.debug(
        "Snapshot: %d sessions, %d members (%d active, %d cordoned)",
        len(snapshot.sessions),
        len(snapshot.members),
        len(snapshot.active),
        len(snapshot.cordoned),
    )
    return snapshot
