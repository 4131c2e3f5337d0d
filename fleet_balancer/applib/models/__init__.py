from .session import Session
from .fleet import FleetMember, HealthCheck
from .decisions import CycleReport, HostUtilization, RebalancePlan, ScalingDecision
from .api import CommandResult, FleetStatus

__all__ = [
    "Session",
    "FleetMember",
    "HealthCheck",
    "CycleReport",
    "HostUtilization",
    "RebalancePlan",
    "ScalingDecision",
    "CommandResult",
    "FleetStatus",
]
