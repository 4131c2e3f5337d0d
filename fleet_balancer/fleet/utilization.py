"""Per-host session counts derived from a raw session listing."""

from __future__ import annotations

import logging
from collections import Counter
from fractions import Fraction
from typing import Dict, Iterable, Mapping, Union

from fleet_balancer.applib.errors import ConfigurationGap
from fleet_balancer.applib.models import HostUtilization, Session

logger = logging.getLogger(__name__)


def collect_utilization(sessions: Iterable[Session], capacity: int) -> Dict[str, HostUtilization]:
    """
    Map hostId -> HostUtilization for every host holding at least one session.

    Hosts with no sessions do not appear here; unknown hosts are included as-is.
    """

    counts = Counter(session.host_id for session in sessions)
    utilization = {
        host_id: HostUtilization(host_id=host_id, active_sessions=count, capacity=capacity)
        for host_id, count in counts.items()
    }
    logger.debug("Sessions per host: %s", dict(counts))
    return utilization


def total_active_sessions(utilization: Mapping[str, HostUtilization]) -> int:
    return sum(u.active_sessions for u in utilization.values())


def as_fraction(value: Union[int, float]) -> Fraction:
    """Exact value of a configured percent as written, e.g. 33.3 -> 333/10."""
    return Fraction(str(value))


def overall_percent(total_active: int, active_member_count: int, capacity: int) -> Fraction:
    """
    Fleet-wide utilization, 100 * totalActive / (activeMembers * capacity).

    Kept exact so threshold comparisons and per-host targets never drift.
    """

    max_sessions = active_member_count * capacity
    if max_sessions <= 0:
        raise ConfigurationGap("no capacity: zero active members or zero per-server capacity")
    return Fraction(100 * total_active, max_sessions)
