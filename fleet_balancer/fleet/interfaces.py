"""
Capability interfaces for the external collaborators of the control loop.

The core never talks to Redis, Consul or Docker directly; it is handed objects
satisfying these protocols. Adapters raise CollaboratorUnavailable on transport
failures and InconsistentSnapshot when a referenced member/instance is gone.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, List, Mapping, Protocol, TypeVar

from fleet_balancer.applib.errors import CollaboratorUnavailable
from fleet_balancer.applib.models import FleetMember, Session

T = TypeVar("T")


class SessionStore(Protocol):
    async def list_sessions(self) -> List[Session]: ...

    async def drop_sessions(self, counts: Mapping[str, int]) -> None:
        """Fire-and-forget request to drop `count` sessions from each host."""
        ...


class ServiceRegistry(Protocol):
    async def list_service_instances(self, service_name: str) -> List[FleetMember]: ...

    async def set_maintenance(self, member_id: str, enabled: bool, reason: str) -> None: ...


class Provisioner(Protocol):
    async def scale_to_count(self, target_count: int) -> int:
        """Reach `target_count` running instances. Returns how many were created."""
        ...

    async def stop_instance(self, address: str) -> bool:
        """Stop and remove the instance at `address`. False if it was already gone."""
        ...


async def call_with_timeout(awaitable: Awaitable[T], timeout: float, collaborator: str) -> T:
    """
    Await a collaborator call with a bounded timeout.

    A stalled call surfaces as CollaboratorUnavailable; there is no in-cycle retry.
    """

    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise CollaboratorUnavailable(collaborator, f"no response within {timeout:g}s", cause=exc) from exc
