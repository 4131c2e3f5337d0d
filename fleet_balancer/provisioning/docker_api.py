"""
Docker Engine API provisioner.

Fleet containers are the running containers carrying the service label
(by default the compose service label `com.docker.compose.service=ws-app`).

- Scale out: clone a live fleet container (image, env, labels, binds/mounts,
  network mode and network aliases) and start the copies. Creating a container
  with the right networks/volumes from scratch is impractical, so a live
  instance is always the template.
- Scale in: stop the one container bound to a given IP, then remove it
  (best effort). We never pick "any" container; the idle one is targeted.

Talks to the API over TCP (e.g. a docker socket proxy on :2375) or a unix socket.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Dict, List, Optional

import httpx

from fleet_balancer.applib.errors import CollaboratorUnavailable

logger = logging.getLogger(__name__)

COLLABORATOR = "provisioner"


def container_ips(container: Dict[str, Any]) -> List[str]:
    networks = ((container.get("NetworkSettings") or {}).get("Networks")) or {}
    return [n.get("IPAddress") for n in networks.values() if n.get("IPAddress")]


def build_create_body(template: Dict[str, Any]) -> Dict[str, Any]:
    """Container create payload cloned from an inspected live container."""
    config = template.get("Config") or {}
    host_config = template.get("HostConfig") or {}
    networks = ((template.get("NetworkSettings") or {}).get("Networks")) or {}
    short_id = (template.get("Id") or "")[:12]

    endpoints: Dict[str, Any] = {}
    for name, endpoint in networks.items():
        # Drop the template's own container-id alias; keep service aliases.
        aliases = [a for a in (endpoint.get("Aliases") or []) if a != short_id]
        endpoints[name] = {"Aliases": aliases} if aliases else {}

    body: Dict[str, Any] = {
        "Image": config.get("Image"),
        "Env": config.get("Env") or [],
        "Labels": config.get("Labels") or {},
        "HostConfig": {
            key: host_config[key]
            for key in ("Binds", "Mounts", "NetworkMode", "RestartPolicy", "ExtraHosts")
            if host_config.get(key)
        },
    }
    if config.get("Cmd"):
        body["Cmd"] = config["Cmd"]
    if config.get("ExposedPorts"):
        body["ExposedPorts"] = config["ExposedPorts"]
    if endpoints:
        body["NetworkingConfig"] = {"EndpointsConfig": endpoints}
    return body


class DockerProvisioner:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        service_label: str,
        name_prefix: Optional[str] = None,
        stop_grace_seconds: int = 3,
    ):
        self._client = client
        self.service_label = service_label
        self.name_prefix = name_prefix or service_label.rsplit("=", 1)[-1]
        self.stop_grace_seconds = stop_grace_seconds
        # address -> id of a container whose stop did not complete in time
        self._pending_removal: Dict[str, str] = {}

    @classmethod
    def from_settings(
        cls,
        *,
        base_url: str,
        socket_path: Optional[str],
        service_label: str,
        timeout: float,
    ) -> "DockerProvisioner":
        if socket_path:
            client = httpx.AsyncClient(
                transport=httpx.AsyncHTTPTransport(uds=socket_path),
                base_url="http://docker",
                timeout=timeout,
            )
        else:
            client = httpx.AsyncClient(base_url=base_url, timeout=timeout)
        # The stop call returns only after the grace period, so it must fit in the timeout.
        return cls(client, service_label=service_label, stop_grace_seconds=max(0, int(timeout) - 2))

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise CollaboratorUnavailable(COLLABORATOR, f"{method} {url} failed: {exc}", cause=exc) from exc

    @staticmethod
    def _fail(response: httpx.Response, what: str) -> CollaboratorUnavailable:
        return CollaboratorUnavailable(COLLABORATOR, f"{what} returned {response.status_code}: {response.text}")

    async def _list(self, statuses: List[str]) -> List[Dict[str, Any]]:
        filters = {"label": [self.service_label], "status": statuses}
        params = {"filters": json.dumps(filters), "all": "true"}
        response = await self._request("GET", "/containers/json", params=params)
        if response.status_code != 200:
            raise self._fail(response, "listing containers")
        return response.json()

    async def list_running(self) -> List[Dict[str, Any]]:
        return await self._list(["running"])

    async def list_stopped(self) -> List[Dict[str, Any]]:
        return await self._list(["created", "exited", "dead"])

    async def find_by_ip(self, address: str) -> Optional[Dict[str, Any]]:
        for container in await self.list_running():
            if address in container_ips(container):
                return container
        return None

    # -- scale out -----------------------------------------------------------

    async def scale_to_count(self, target_count: int) -> int:
        running = await self.list_running()
        missing = target_count - len(running)
        if missing <= 0:
            logger.info("Already %d running instances (target %d)", len(running), target_count)
            return 0
        if not running:
            raise CollaboratorUnavailable(COLLABORATOR, "no live instance to use as a template")

        response = await self._request("GET", f"/containers/{running[0]['Id']}/json")
        if response.status_code != 200:
            raise self._fail(response, "inspecting template container")
        body = build_create_body(response.json())

        created = 0
        for _ in range(missing):
            await self._create_and_start(body)
            created += 1
        logger.info("Scale out complete: %d instances created (target %d)", created, target_count)
        return created

    async def _create_and_start(self, body: Dict[str, Any]) -> str:
        name = f"{self.name_prefix}-{uuid.uuid4().hex[:8]}"
        response = await self._request("POST", "/containers/create", params={"name": name}, json=body)
        if response.status_code != 201:
            raise self._fail(response, f"creating {name}")
        container_id = response.json()["Id"]

        response = await self._request("POST", f"/containers/{container_id}/start")
        if response.status_code not in (204, 304):
            raise self._fail(response, f"starting {name}")
        logger.info("Started instance %s (%s)", name, container_id[:12])
        return container_id

    # -- scale in ------------------------------------------------------------

    async def stop_instance(self, address: str) -> bool:
        container = await self.find_by_ip(address)
        if container is None:
            logger.warning("No container found with IP: %s", address)
            await self._remove_leftover(address)
            return False

        container_id = container["Id"]
        self._pending_removal[address] = container_id
        response = await self._request(
            "POST",
            f"/containers/{container_id}/stop",
            params={"t": self.stop_grace_seconds},
        )
        if response.status_code == 404:
            self._pending_removal.pop(address, None)
            return False
        if response.status_code not in (204, 304):
            raise self._fail(response, f"stopping {container_id[:12]}")
        logger.info("Container %s at %s stopped", container_id[:12], address)

        await self._remove(container_id)
        self._pending_removal.pop(address, None)
        return True

    async def _remove_leftover(self, address: str) -> None:
        """Remove a non-running container left at `address` by an earlier stop that timed out."""
        container_id = self._pending_removal.pop(address, None)
        if container_id is None:
            for container in await self.list_stopped():
                if address in container_ips(container):
                    container_id = container["Id"]
                    break
        if container_id is not None:
            logger.info("Removing leftover container %s at %s", container_id[:12], address)
            await self._remove(container_id)

    async def _remove(self, container_id: str) -> None:
        try:
            response = await self._client.delete(f"/containers/{container_id}")
        except httpx.HTTPError as exc:
            logger.warning("Removing stopped container %s failed: %s", container_id[:12], exc)
            return
        if response.status_code not in (204, 404):
            logger.warning("Removing stopped container %s returned %d", container_id[:12], response.status_code)

    async def close(self) -> None:
        await self._client.aclose()
