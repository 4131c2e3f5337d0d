"""
Transient values produced and consumed inside a single control cycle.

None of these are persisted or shared across cycles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from fleet_balancer.applib.errors import ConfigurationGap
from fleet_balancer.applib.types import CycleKind, ScalingAction


@dataclass(frozen=True)
class HostUtilization:
    host_id: str
    active_sessions: int
    capacity: int

    @property
    def percent(self) -> int:
        if self.capacity <= 0:
            raise ConfigurationGap("per-server capacity is zero")
        return (100 * self.active_sessions) // self.capacity


@dataclass(frozen=True)
class ScalingDecision:
    action: ScalingAction = ScalingAction.NONE
    count: int = 0

    def __post_init__(self) -> None:
        if self.action is ScalingAction.NONE:
            if self.count != 0:
                raise ValueError("a no-op decision carries no count")
        elif self.count < 1:
            raise ValueError(f"{self.action.value} requires a count >= 1, got {self.count}")

    @classmethod
    def none(cls) -> "ScalingDecision":
        return cls()

    @classmethod
    def scale_out(cls, count: int) -> "ScalingDecision":
        return cls(ScalingAction.SCALE_OUT, count)

    @classmethod
    def scale_in(cls, count: int) -> "ScalingDecision":
        return cls(ScalingAction.SCALE_IN, count)

    @property
    def is_none(self) -> bool:
        return self.action is ScalingAction.NONE


@dataclass(frozen=True)
class RebalancePlan:
    """
    Sessions to offload per overutilized host.

    `offloads` only holds positive amounts. The ordered classification lists are
    kept for logging; offload destinations are left to the session servers.
    """

    overall_percent: float = 0.0
    offloads: Dict[str, int] = field(default_factory=dict)
    overutilized: List[Tuple[str, int]] = field(default_factory=list)
    underutilized: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.offloads


class CycleReport(BaseModel):
    """Outcome of one scale/reap or rebalance cycle, kept for the status endpoint."""

    kind: CycleKind
    started_at: str
    finished_at: Optional[str] = None
    skipped: Optional[str] = None
    decision: Optional[str] = None
    decision_count: int = 0
    overall_percent: Optional[float] = None
    offloads: Dict[str, int] = {}
    reactivated: List[str] = []
    cordoned: List[str] = []
    provisioned: int = 0
    terminated: List[str] = []
    error: Optional[str] = None
