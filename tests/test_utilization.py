from fractions import Fraction

import pytest

from fleet_balancer.applib.errors import ConfigurationGap
from fleet_balancer.applib.models import HostUtilization
from fleet_balancer.fleet.utilization import collect_utilization, overall_percent, total_active_sessions

from .fakes import sessions_for


def test_counts_sessions_per_host():
    utilization = collect_utilization(sessions_for({"10.0.0.1": 3, "10.0.0.2": 7}), capacity=10)

    assert utilization == {
        "10.0.0.1": HostUtilization("10.0.0.1", 3, 10),
        "10.0.0.2": HostUtilization("10.0.0.2", 7, 10),
    }
    assert total_active_sessions(utilization) == 10


def test_hosts_without_sessions_are_absent():
    assert collect_utilization([], capacity=10) == {}


def test_percent_is_floored():
    assert HostUtilization("h", 1, 3).percent == 33
    assert HostUtilization("h", 2, 3).percent == 66
    assert HostUtilization("h", 15, 10).percent == 150


def test_percent_requires_capacity():
    with pytest.raises(ConfigurationGap):
        HostUtilization("h", 1, 0).percent


@pytest.mark.parametrize("members, capacity", [(0, 10), (3, 0), (0, 0)])
def test_overall_percent_never_divides_by_zero(members, capacity):
    with pytest.raises(ConfigurationGap):
        overall_percent(5, members, capacity)


def test_overall_percent_is_exact():
    assert overall_percent(1, 3, 1) == Fraction(100, 3)
    assert overall_percent(10, 2, 10) == 50
