"""
Rebalancing engine.

Shifts load among existing Active members without changing fleet size. A host
is overutilized when its percent exceeds the fleet average plus tolerance, and
underutilized when it is below the average (no tolerance on the low side).
Overutilized hosts are asked to offload down to the average occupancy; where
those sessions reconnect is left to the load balancer.
"""

from __future__ import annotations

import logging
import math
from fractions import Fraction
from typing import Dict, Iterable, List, Mapping, Tuple

from fleet_balancer.applib.config import FleetConfig
from fleet_balancer.applib.models import FleetMember, HostUtilization, RebalancePlan
from fleet_balancer.applib.types import HostClassification

from .utilization import as_fraction, overall_percent, total_active_sessions

logger = logging.getLogger(__name__)


class RebalancingEngine:
    def __init__(self, config: FleetConfig):
        self.config = config

    def classify(self, percent: int, overall: Fraction) -> HostClassification:
        if percent > overall + as_fraction(self.config.overutilized_tolerance_percent):
            return HostClassification.OVERUTILIZED
        if percent < overall:
            return HostClassification.UNDERUTILIZED
        return HostClassification.BALANCED

    def plan(
        self,
        utilization: Mapping[str, HostUtilization],
        active_members: Iterable[FleetMember],
    ) -> RebalancePlan:
        active_members = list(active_members)
        capacity = self.config.per_server_capacity
        total_active = total_active_sessions(utilization)

        if total_active == 0:
            logger.info("No sessions to rebalance")
            return RebalancePlan()
        if len(active_members) * capacity == 0:
            logger.info("No capacity configured, cannot analyze balance")
            return RebalancePlan()

        percent_map: Dict[str, int] = {host_id: u.percent for host_id, u in utilization.items()}
        # Silent active members are idle, not unknown.
        for member in active_members:
            percent_map.setdefault(member.address, 0)

        overall = overall_percent(total_active, len(active_members), capacity)

        overutilized: List[Tuple[str, int]] = []
        underutilized: List[Tuple[str, int]] = []
        for host_id, percent in percent_map.items():
            classification = self.classify(percent, overall)
            if classification is HostClassification.OVERUTILIZED:
                overutilized.append((host_id, percent))
            elif classification is HostClassification.UNDERUTILIZED:
                underutilized.append((host_id, percent))

        overutilized.sort(key=lambda item: (-item[1], item[0]))
        underutilized.sort(key=lambda item: (item[1], item[0]))

        active_addresses = {member.address for member in active_members}
        offloads: Dict[str, int] = {}
        for host_id, _ in overutilized:
            # Cordoned and unregistered hosts drain on their own; no forced drops.
            if host_id not in active_addresses:
                continue
            host = utilization[host_id]
            target = math.ceil(host.capacity * overall / 100)
            amount = host.active_sessions - target
            if amount > 0:
                offloads[host_id] = amount

        logger.info(
            "Rebalancing Summary: overutilized=%s, underutilized=%s, overall utilization=%.2f%%, active sessions=%d",
            overutilized,
            underutilized,
            float(overall),
            total_active,
        )
        logger.info("Utilization Percent Map: %s", percent_map)

        return RebalancePlan(
            overall_percent=float(overall),
            offloads=offloads,
            overutilized=overutilized,
            underutilized=underutilized,
        )
