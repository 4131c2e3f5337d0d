"""In-memory collaborators for exercising the control loop without Redis, Consul or Docker."""

from __future__ import annotations

import asyncio
from typing import Dict, List, Mapping, Optional, Tuple

from fleet_balancer.applib.errors import CollaboratorUnavailable, InconsistentSnapshot
from fleet_balancer.applib.models import FleetMember, Session


def member(address: str, *, maintenance: bool = False, health_passing: bool = True, member_id: Optional[str] = None) -> FleetMember:
    return FleetMember(
        id=member_id or f"ws-app-{address}",
        address=address,
        port=8080,
        health_passing=health_passing and not maintenance,
        maintenance=maintenance,
    )


def sessions_for(counts: Mapping[str, int]) -> List[Session]:
    sessions = []
    for host_id, count in counts.items():
        for i in range(count):
            sessions.append(Session(id=f"{host_id}-{i}", owner_id=f"user-{host_id}-{i}", host_id=host_id))
    return sessions


class FakeSessionStore:
    def __init__(self, sessions: Optional[List[Session]] = None):
        self.sessions: List[Session] = list(sessions or [])
        self.drops: List[Dict[str, int]] = []
        self.fail: Optional[Exception] = None
        self.delay: float = 0.0

    async def list_sessions(self) -> List[Session]:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise self.fail
        return list(self.sessions)

    async def drop_sessions(self, counts: Mapping[str, int]) -> None:
        if self.fail:
            raise self.fail
        self.drops.append(dict(counts))


class FakeRegistry:
    def __init__(self, members: Optional[List[FleetMember]] = None):
        self.members: Dict[str, FleetMember] = {m.id: m for m in members or []}
        self.calls: List[Tuple[str, bool, str]] = []
        self.fail: Optional[Exception] = None

    async def list_service_instances(self, service_name: str) -> List[FleetMember]:
        if self.fail:
            raise self.fail
        return list(self.members.values())

    async def set_maintenance(self, member_id: str, enabled: bool, reason: str) -> None:
        self.calls.append((member_id, enabled, reason))
        current = self.members.get(member_id)
        if current is None:
            raise InconsistentSnapshot(member_id)
        self.members[member_id] = current.model_copy(
            update={"maintenance": enabled, "health_passing": not enabled}
        )

    def by_address(self, address: str) -> FleetMember:
        return next(m for m in self.members.values() if m.address == address)


class FakeProvisioner:
    def __init__(self, running: Optional[List[str]] = None):
        self.running: List[str] = list(running or [])
        self.scale_requests: List[int] = []
        self.stopped: List[str] = []
        self.fail: Optional[Exception] = None

    async def scale_to_count(self, target_count: int) -> int:
        if self.fail:
            raise self.fail
        self.scale_requests.append(target_count)
        created = max(0, target_count - len(self.running))
        self.running.extend(f"new-{i}" for i in range(created))
        return created

    async def stop_instance(self, address: str) -> bool:
        if self.fail:
            raise self.fail
        self.stopped.append(address)
        if address not in self.running:
            return False
        self.running.remove(address)
        return True


def unavailable(name: str = "session-store") -> CollaboratorUnavailable:
    return CollaboratorUnavailable(name, "connection refused")
