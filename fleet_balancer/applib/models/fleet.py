from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class HealthCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    check_id: str
    status: str
    name: Optional[str] = None
    node: Optional[str] = None


class FleetMember(BaseModel):
    """A registry entry for one session server."""

    model_config = ConfigDict(frozen=True)

    id: str
    address: str
    port: Optional[int] = None
    health_passing: bool
    maintenance: bool
    checks: List[HealthCheck] = []

    @property
    def is_active(self) -> bool:
        """Health-passing and not in maintenance: eligible for new sessions."""
        return self.health_passing and not self.maintenance

    @property
    def is_cordoned(self) -> bool:
        return self.maintenance
