"""
Consul-backed service registry.

- GET /v1/health/service/<name> lists every instance with its checks.
- PUT /v1/agent/service/maintenance/<id>?enable=...&reason=... toggles maintenance.

Consul puts a service in maintenance by adding a critical check whose id is
`_service_maintenance:<service id>`, which is how cordoned members are recognized.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import httpx

from fleet_balancer.applib.errors import CollaboratorUnavailable, InconsistentSnapshot
from fleet_balancer.applib.models import FleetMember, HealthCheck

logger = logging.getLogger(__name__)

COLLABORATOR = "registry"
MAINTENANCE_CHECK_MARKER = "_service_maintenance"


def member_from_entry(entry: Dict[str, Any]) -> FleetMember:
    service = entry.get("Service") or {}
    checks = [
        HealthCheck(
            check_id=c.get("CheckID", ""),
            status=c.get("Status", ""),
            name=c.get("Name"),
            node=c.get("Node"),
        )
        for c in entry.get("Checks") or []
    ]
    address = service.get("Address") or (entry.get("Node") or {}).get("Address", "")
    return FleetMember(
        id=service.get("ID", ""),
        address=address,
        port=service.get("Port"),
        health_passing=all(c.status == "passing" for c in checks),
        maintenance=any(MAINTENANCE_CHECK_MARKER in c.check_id for c in checks),
        checks=checks,
    )


class ConsulRegistry:
    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    @classmethod
    def from_url(cls, base_url: str, *, timeout: float) -> "ConsulRegistry":
        return cls(httpx.AsyncClient(base_url=base_url, timeout=timeout))

    async def list_service_instances(self, service_name: str) -> List[FleetMember]:
        try:
            response = await self._client.get(f"/v1/health/service/{service_name}")
            response.raise_for_status()
            entries = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise CollaboratorUnavailable(COLLABORATOR, f"listing {service_name} failed: {exc}", cause=exc) from exc
        return [member_from_entry(entry) for entry in entries or []]

    async def set_maintenance(self, member_id: str, enabled: bool, reason: str) -> None:
        params = {"enable": "true" if enabled else "false", "reason": reason}
        try:
            response = await self._client.put(f"/v1/agent/service/maintenance/{member_id}", params=params)
        except httpx.HTTPError as exc:
            raise CollaboratorUnavailable(COLLABORATOR, f"maintenance toggle for {member_id} failed: {exc}", cause=exc) from exc

        if response.status_code == 404:
            raise InconsistentSnapshot(member_id)
        if response.is_error:
            raise CollaboratorUnavailable(
                COLLABORATOR,
                f"maintenance toggle for {member_id} returned {response.status_code}: {response.text}",
            )
        logger.debug("Maintenance %s for %s (%s)", params["enable"], member_id, reason)

    async def close(self) -> None:
        await self._client.aclose()
