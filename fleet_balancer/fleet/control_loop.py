"""
Serialized control loop.

Two timers drive the fleet:
- scale/reap cycle (SCALE_INTERVAL_SECONDS): scaling decision, then either
  cordon/reactivate/provision or idle termination
- rebalance cycle (REBALANCE_INTERVAL_SECONDS): offload plan for hot hosts

Both mutate the same external fleet, so every cycle runs under one asyncio.Lock
and works from its own snapshot. A failing collaborator abandons the current
cycle only; the timers keep ticking.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from fleet_balancer.applib.config import FleetConfig
from fleet_balancer.applib.errors import CollaboratorUnavailable, ConfigurationGap
from fleet_balancer.applib.helpers import get_utc_now
from fleet_balancer.applib.models import CycleReport
from fleet_balancer.applib.types import CycleKind

from .controller import FleetController
from .interfaces import Provisioner, ServiceRegistry, SessionStore
from .reaper import IdleReaper
from .rebalance import RebalancingEngine
from .scaling import ScalingDecisionEngine
from .snapshot import FleetSnapshot, take_snapshot
from .utilization import overall_percent

logger = logging.getLogger(__name__)


class FleetControlLoop:
    def __init__(
        self,
        config: FleetConfig,
        *,
        session_store: SessionStore,
        registry: ServiceRegistry,
        provisioner: Provisioner,
        scale_interval: float = 10.0,
        rebalance_interval: float = 30.0,
    ):
        self.config = config
        self.session_store = session_store
        self.registry = registry
        self.scale_interval = scale_interval
        self.rebalance_interval = rebalance_interval

        self.scaling = ScalingDecisionEngine(config)
        self.rebalancing = RebalancingEngine(config)
        self.reaper = IdleReaper()
        self.controller = FleetController(
            config,
            registry=registry,
            provisioner=provisioner,
            session_store=session_store,
        )

        self.last_reports: Dict[CycleKind, CycleReport] = {}
        self._lock = asyncio.Lock()
        self._stopping: Optional[asyncio.Event] = None
        self._timers: List[asyncio.Task] = []

    # -- lifecycle -----------------------------------------------------------

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._timers)

    def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._timers = [
            asyncio.create_task(self._every(self.scale_interval, self.run_scaling_cycle), name="fleet-scale"),
            asyncio.create_task(self._every(self.rebalance_interval, self.run_rebalance_cycle), name="fleet-rebalance"),
        ]
        logger.info(
            "Fleet control loop started (scale every %gs, rebalance every %gs)",
            self.scale_interval,
            self.rebalance_interval,
        )

    async def stop(self) -> None:
        """Stop both timers; a cycle already running is allowed to finish."""
        if self._stopping is None:
            return
        self._stopping.set()
        await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers = []
        logger.info("Fleet control loop stopped")

    async def _every(self, interval: float, cycle: Callable[[], Awaitable[CycleReport]]) -> None:
        stopping = self._stopping
        while not stopping.is_set():
            try:
                await asyncio.wait_for(stopping.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await cycle()
            except Exception:
                # The loop must outlive any single failure.
                logger.exception("Unhandled error in fleet cycle %s", getattr(cycle, "__name__", cycle))

    # -- cycles --------------------------------------------------------------

    async def _snapshot(self) -> FleetSnapshot:
        return await take_snapshot(
            self.session_store,
            self.registry,
            service_name=self.config.service_name,
            capacity=self.config.per_server_capacity,
            timeout=self.config.collaborator_timeout_seconds,
        )

    def _check_capacity(self, snapshot: FleetSnapshot) -> None:
        if self.config.per_server_capacity <= 0:
            raise ConfigurationGap("per-server capacity is zero")
        if not snapshot.active:
            raise ConfigurationGap("no active members")

    async def run_scaling_cycle(self) -> CycleReport:
        report = CycleReport(kind=CycleKind.SCALE, started_at=get_utc_now())
        async with self._lock:
            try:
                snapshot = await self._snapshot()
                self._check_capacity(snapshot)

                utilization = snapshot.utilization
                active_count = len(snapshot.active)
                report.overall_percent = float(overall_percent(snapshot.total_active, active_count, snapshot.capacity))
                logger.info(
                    "Utilization Percent Map: %s",
                    {host_id: u.percent for host_id, u in utilization.items()},
                )

                decision = self.scaling.decide(utilization, active_count)
                report.decision = decision.action.value
                report.decision_count = decision.count

                if decision.is_none:
                    report.terminated = await self.controller.terminate(self.reaper.select(snapshot, decision))
                else:
                    outcome = await self.controller.apply(decision, snapshot)
                    report.reactivated = outcome.reactivated
                    report.cordoned = outcome.cordoned
                    report.provisioned = outcome.provisioned
            except ConfigurationGap as exc:
                logger.info("Skipping scale cycle: %s", exc)
                report.skipped = str(exc)
            except CollaboratorUnavailable as exc:
                logger.error("Scale cycle abandoned: %s", exc, exc_info=exc.cause is not None)
                report.error = str(exc)
        return self._finish(report)

    async def run_rebalance_cycle(self) -> CycleReport:
        report = CycleReport(kind=CycleKind.REBALANCE, started_at=get_utc_now())
        async with self._lock:
            try:
                snapshot = await self._snapshot()
                self._check_capacity(snapshot)

                plan = self.rebalancing.plan(snapshot.utilization, snapshot.active)
                report.overall_percent = plan.overall_percent
                report.offloads = await self.controller.offload(plan.offloads)
            except ConfigurationGap as exc:
                logger.info("Skipping rebalance cycle: %s", exc)
                report.skipped = str(exc)
            except CollaboratorUnavailable as exc:
                logger.error("Rebalance cycle abandoned: %s", exc, exc_info=exc.cause is not None)
                report.error = str(exc)
        return self._finish(report)

    def _finish(self, report: CycleReport) -> CycleReport:
        report.finished_at = get_utc_now()
        self.last_reports[report.kind] = report
        return report
