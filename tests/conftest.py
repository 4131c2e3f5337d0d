from __future__ import annotations

import pytest

from fleet_balancer.applib.config import FleetConfig


@pytest.fixture
def config() -> FleetConfig:
    return FleetConfig(
        per_server_capacity=10,
        max_utilization_percent=70,
        min_utilization_percent=20,
        overutilized_tolerance_percent=10,
        service_name="ws-app",
        collaborator_timeout_seconds=1,
    )
