"""
Fleet controller: executes decisions against the registry, provisioner and session store.

Member lifecycle:

    Active --ScaleIn--> Cordoned --(drained, decision None)--> Terminated
    Cordoned --ScaleOut--> Active
    (provisioned) --ScaleOut beyond cordoned capacity--> Active

Cordoning never disconnects anyone; it only stops new sessions from being routed
to the member. Registry state is authoritative: a member that vanished since the
snapshot was read is skipped, not treated as a failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping

from fleet_balancer.applib.config import FleetConfig
from fleet_balancer.applib.errors import InconsistentSnapshot
from fleet_balancer.applib.models import FleetMember, ScalingDecision
from fleet_balancer.applib.types import ScalingAction

from .interfaces import Provisioner, ServiceRegistry, SessionStore, call_with_timeout
from .snapshot import FleetSnapshot

logger = logging.getLogger(__name__)

CORDON_REASON = "Scaling in due to low utilization"
REACTIVATE_REASON = "Activating service due to scale out request"


@dataclass
class ScalingOutcome:
    reactivated: List[str] = field(default_factory=list)
    cordoned: List[str] = field(default_factory=list)
    provisioned: int = 0


class FleetController:
    def __init__(
        self,
        config: FleetConfig,
        *,
        registry: ServiceRegistry,
        provisioner: Provisioner,
        session_store: SessionStore,
    ):
        self.config = config
        self.registry = registry
        self.provisioner = provisioner
        self.session_store = session_store

    @property
    def _timeout(self) -> float:
        return self.config.collaborator_timeout_seconds

    # -- selection -----------------------------------------------------------

    @staticmethod
    def select_for_cordon(snapshot: FleetSnapshot, count: int) -> List[FleetMember]:
        """The `count` least-utilized Active members, ties broken by address."""
        utilization = snapshot.utilization

        def load(member: FleetMember) -> int:
            host = utilization.get(member.address)
            return host.active_sessions if host else 0

        return sorted(snapshot.active, key=lambda m: (load(m), m.address))[:count]

    @staticmethod
    def select_for_reactivation(snapshot: FleetSnapshot, count: int) -> List[FleetMember]:
        return sorted(snapshot.cordoned, key=lambda m: m.address)[:count]

    # -- registry transitions ------------------------------------------------

    async def _set_maintenance(self, member: FleetMember, enabled: bool, reason: str) -> bool:
        try:
            await call_with_timeout(
                self.registry.set_maintenance(member.id, enabled, reason),
                self._timeout,
                "registry",
            )
        except InconsistentSnapshot:
            logger.info("Member %s (%s) no longer registered; skipping", member.id, member.address)
            return False
        return True

    async def cordon(self, members: Iterable[FleetMember]) -> List[str]:
        cordoned = []
        for member in members:
            logger.info("Cordoning service %s at %s", member.id, member.address)
            if await self._set_maintenance(member, True, CORDON_REASON):
                cordoned.append(member.address)
        return cordoned

    async def reactivate(self, members: Iterable[FleetMember]) -> List[str]:
        reactivated = []
        for member in members:
            logger.info("Activating inactive service %s at %s", member.id, member.address)
            if await self._set_maintenance(member, False, REACTIVATE_REASON):
                reactivated.append(member.address)
        return reactivated

    # -- scaling -------------------------------------------------------------

    async def scale_out(self, snapshot: FleetSnapshot, count: int) -> ScalingOutcome:
        """Reuse cordoned members first, provision the remainder."""
        outcome = ScalingOutcome()
        outcome.reactivated = await self.reactivate(self.select_for_reactivation(snapshot, count))

        remaining = count - len(outcome.reactivated)
        if remaining <= 0:
            logger.info("No need to provision, cordoned members covered the scale out")
            return outcome

        target = len(snapshot.members) + remaining
        logger.info("Provisioning %d new instances (target instance count %d)", remaining, target)
        outcome.provisioned = await call_with_timeout(
            self.provisioner.scale_to_count(target),
            self._timeout,
            "provisioner",
        )
        return outcome

    async def scale_in(self, snapshot: FleetSnapshot, count: int) -> ScalingOutcome:
        outcome = ScalingOutcome()
        outcome.cordoned = await self.cordon(self.select_for_cordon(snapshot, count))
        return outcome

    async def apply(self, decision: ScalingDecision, snapshot: FleetSnapshot) -> ScalingOutcome:
        if decision.action is ScalingAction.SCALE_OUT:
            return await self.scale_out(snapshot, decision.count)
        if decision.action is ScalingAction.SCALE_IN:
            return await self.scale_in(snapshot, decision.count)
        return ScalingOutcome()

    # -- termination ---------------------------------------------------------

    async def terminate(self, members: Iterable[FleetMember]) -> List[str]:
        terminated = []
        for member in members:
            logger.info("Stopping idle cordoned instance %s", member.address)
            stopped = await call_with_timeout(
                self.provisioner.stop_instance(member.address),
                self._timeout,
                "provisioner",
            )
            if stopped:
                terminated.append(member.address)
            else:
                logger.info("Instance %s already gone", member.address)
        return terminated

    # -- rebalancing ---------------------------------------------------------

    async def offload(self, offloads: Mapping[str, int]) -> Dict[str, int]:
        """Send one drop command for all hosts. Negative or zero amounts are never sent."""
        counts = {host_id: max(0, amount) for host_id, amount in offloads.items()}
        counts = {host_id: amount for host_id, amount in counts.items() if amount > 0}
        if not counts:
            return {}
        for host_id, amount in counts.items():
            logger.info("Offloading %d sessions from server %s", amount, host_id)
        await call_with_timeout(self.session_store.drop_sessions(counts), self._timeout, "session-store")
        return counts
