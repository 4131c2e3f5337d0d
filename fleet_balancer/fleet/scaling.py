"""
Scaling decision engine.

Scale-out and scale-in are both derived from one overall utilization percent:

- above MAX: grow to the smallest fleet that would run at MAX
- below MIN: shrink to that same MAX-based size (conservative), or to a single
  server when there are no sessions at all

MIN < MAX keeps the two rules mutually exclusive.
"""

from __future__ import annotations

import logging
import math
from typing import Mapping

from fleet_balancer.applib.config import FleetConfig
from fleet_balancer.applib.models import HostUtilization, ScalingDecision

from .utilization import as_fraction, overall_percent, total_active_sessions

logger = logging.getLogger(__name__)


class ScalingDecisionEngine:
    def __init__(self, config: FleetConfig):
        self.config = config

    def target_fleet_size(self, total_active: int) -> int:
        """Smallest fleet that absorbs `total_active` sessions at MAX utilization."""
        capacity = self.config.per_server_capacity
        max_fraction = as_fraction(self.config.max_utilization_percent) / 100
        return math.ceil(total_active / (capacity * max_fraction))

    def decide(self, utilization: Mapping[str, HostUtilization], active_member_count: int) -> ScalingDecision:
        capacity = self.config.per_server_capacity
        total_active = total_active_sessions(utilization)

        if active_member_count * capacity == 0:
            logger.info("No capacity to analyze (active members=%d, capacity=%d)", active_member_count, capacity)
            return ScalingDecision.none()
        if total_active == 0 and active_member_count <= 1:
            logger.info("No sessions to analyze")
            return ScalingDecision.none()

        overall = overall_percent(total_active, active_member_count, capacity)
        decision = ScalingDecision.none()

        if overall > as_fraction(self.config.max_utilization_percent):
            scale_out = self.target_fleet_size(total_active) - active_member_count
            if scale_out > 0:
                decision = ScalingDecision.scale_out(scale_out)
        elif overall < as_fraction(self.config.min_utilization_percent):
            if total_active == 0:
                # active_member_count > 1 here, the guard above handled the rest
                decision = ScalingDecision.scale_in(active_member_count - 1)
            else:
                scale_in = active_member_count - self.target_fleet_size(total_active)
                if scale_in > 0:
                    decision = ScalingDecision.scale_in(scale_in)

        logger.info(
            "Summary: active sessions=%d, max sessions=%d, overall utilization=%.2f%%, decision=%s(%d)",
            total_active,
            active_member_count * capacity,
            float(overall),
            decision.action.value,
            decision.count,
        )
        return decision
