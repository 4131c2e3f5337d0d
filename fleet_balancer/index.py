"""
FastAPI application for the fleet balancer.

The lifespan wires the collaborators (Redis session store, Consul registry,
Docker provisioner), starts the control loop and tears everything down on
shutdown. Collaborators can be injected for tests or alternative backends.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from fleet_balancer import __version__
from fleet_balancer.applib.api.routes import SERVICE_NAME, admin_router, router
from fleet_balancer.applib.config import Settings, get_settings
from fleet_balancer.applib.logging_config import configure_logging
from fleet_balancer.fleet.control_loop import FleetControlLoop
from fleet_balancer.fleet.interfaces import Provisioner, ServiceRegistry, SessionStore
from fleet_balancer.provisioning.docker_api import DockerProvisioner
from fleet_balancer.realtime.redis_sessions import RedisSessionStore, create_redis
from fleet_balancer.registry.consul import ConsulRegistry

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    session_store: Optional[SessionStore] = None,
    registry: Optional[ServiceRegistry] = None,
    provisioner: Optional[Provisioner] = None,
    start_loop: bool = True,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        cfg = settings or get_settings()
        timeout = cfg.COLLABORATOR_TIMEOUT_SECONDS
        owned = []

        store = session_store
        if store is None:
            store = RedisSessionStore(
                create_redis(cfg.REDIS_URL, timeout=timeout),
                key_prefix=cfg.SESSION_KEY_PREFIX,
                drop_channel=cfg.DROP_SESSIONS_CHANNEL,
            )
            owned.append(store)
        reg = registry
        if reg is None:
            reg = ConsulRegistry.from_url(cfg.CONSUL_URL, timeout=timeout)
            owned.append(reg)
        prov = provisioner
        if prov is None:
            prov = DockerProvisioner.from_settings(
                base_url=cfg.DOCKER_URL,
                socket_path=cfg.DOCKER_SOCKET_PATH,
                service_label=cfg.DOCKER_SERVICE_LABEL,
                timeout=timeout,
            )
            owned.append(prov)

        loop = FleetControlLoop(
            cfg.fleet_config(),
            session_store=store,
            registry=reg,
            provisioner=prov,
            scale_interval=cfg.SCALE_INTERVAL_SECONDS,
            rebalance_interval=cfg.REBALANCE_INTERVAL_SECONDS,
        )
        app.state.settings = cfg
        app.state.session_store = store
        app.state.control_loop = loop

        if start_loop:
            loop.start()
        yield

        # Shutdown: let an in-flight cycle finish, then release clients.
        await loop.stop()
        for collaborator in owned:
            try:
                await collaborator.close()
            except Exception:
                logger.warning("Closing %s failed", type(collaborator).__name__, exc_info=True)

    app = FastAPI(title=SERVICE_NAME, version=__version__, lifespan=lifespan)
    app.state.control_loop = None
    app.include_router(router)
    app.include_router(admin_router)

    return app


def run() -> None:
    import uvicorn

    from fleet_balancer.env_bootstrap import load_secrets_from_aws

    load_secrets_from_aws()
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT, log_config=None)
