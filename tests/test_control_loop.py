import asyncio

import pytest

from fleet_balancer.applib.types import CycleKind
from fleet_balancer.fleet.control_loop import FleetControlLoop

from .fakes import FakeProvisioner, FakeRegistry, FakeSessionStore, member, sessions_for, unavailable


class ProbingSessionStore(FakeSessionStore):
    """Records how many listings were in flight at once."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.in_flight = 0
        self.max_in_flight = 0

    async def list_sessions(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.02)
            return await super().list_sessions()
        finally:
            self.in_flight -= 1


@pytest.fixture
def store():
    return FakeSessionStore()


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def provisioner():
    return FakeProvisioner()


@pytest.fixture
def loop(config, store, registry, provisioner):
    return FleetControlLoop(config, session_store=store, registry=registry, provisioner=provisioner)


class TestScalingCycle:
    @pytest.mark.asyncio
    async def test_drained_cordoned_member_is_terminated_once(self, loop, store, registry, provisioner):
        registry.members = {"a": member("A", member_id="a"), "x": member("X", member_id="x", maintenance=True)}
        store.sessions = sessions_for({"A": 5})
        provisioner.running = ["A", "X"]

        report = await loop.run_scaling_cycle()

        assert report.decision == "none"
        assert report.terminated == ["X"]
        assert provisioner.stopped == ["X"]

    @pytest.mark.asyncio
    async def test_scaling_action_suppresses_termination(self, loop, store, registry, provisioner):
        registry.members = {"a": member("A", member_id="a"), "x": member("X", member_id="x", maintenance=True)}
        store.sessions = sessions_for({"A": 9})
        provisioner.running = ["A", "X"]

        report = await loop.run_scaling_cycle()

        assert (report.decision, report.decision_count) == ("scale_out", 1)
        assert report.reactivated == ["X"]
        assert report.terminated == []
        assert provisioner.stopped == []
        assert registry.members["x"].is_active

    @pytest.mark.asyncio
    async def test_scale_in_cordons_idle_members(self, loop, store, registry):
        registry.members = {m.id: m for m in (member("A", member_id="a"), member("B", member_id="b"), member("C", member_id="c"))}
        store.sessions = sessions_for({"A": 2})

        report = await loop.run_scaling_cycle()

        # 2 sessions on 3 servers is ~6.7%: target size 1 -> cordon two
        assert report.decision == "scale_in"
        assert report.cordoned == ["B", "C"]
        assert registry.members["a"].is_active

    @pytest.mark.asyncio
    async def test_no_active_members_skips_cycle(self, loop, registry):
        registry.members = {"x": member("X", member_id="x", maintenance=True)}

        report = await loop.run_scaling_cycle()

        assert report.skipped == "no active members"
        assert report.decision is None
        assert registry.calls == []

    @pytest.mark.asyncio
    async def test_unavailable_store_abandons_cycle(self, loop, store, registry, provisioner):
        registry.members = {"a": member("A", member_id="a")}
        store.fail = unavailable()

        report = await loop.run_scaling_cycle()

        assert report.error == "session-store: connection refused"
        assert registry.calls == []
        assert provisioner.scale_requests == []
        assert loop.last_reports[CycleKind.SCALE] is report

    @pytest.mark.asyncio
    async def test_stalled_store_times_out(self, config, store, registry, provisioner):
        fast = config.model_copy(update={"collaborator_timeout_seconds": 0.05})
        loop = FleetControlLoop(fast, session_store=store, registry=registry, provisioner=provisioner)
        registry.members = {"a": member("A", member_id="a")}
        store.delay = 1.0

        report = await loop.run_scaling_cycle()

        assert report.error is not None
        assert report.error.startswith("session-store: no response within")


class TestRebalanceCycle:
    @pytest.mark.asyncio
    async def test_offloads_hot_host(self, loop, store, registry):
        registry.members = {"a": member("A", member_id="a"), "b": member("B", member_id="b")}
        store.sessions = sessions_for({"A": 3, "B": 7})

        report = await loop.run_rebalance_cycle()

        assert report.overall_percent == 50
        assert report.offloads == {"B": 2}
        assert store.drops == [{"B": 2}]

    @pytest.mark.asyncio
    async def test_balanced_fleet_sends_nothing(self, loop, store, registry):
        registry.members = {"a": member("A", member_id="a"), "b": member("B", member_id="b")}
        store.sessions = sessions_for({"A": 5, "B": 5})

        report = await loop.run_rebalance_cycle()

        assert report.offloads == {}
        assert store.drops == []


@pytest.mark.asyncio
async def test_cycles_never_overlap(config, registry, provisioner):
    store = ProbingSessionStore(sessions_for({"A": 5}))
    registry.members = {"a": member("A", member_id="a")}
    loop = FleetControlLoop(config, session_store=store, registry=registry, provisioner=provisioner)

    await asyncio.gather(loop.run_scaling_cycle(), loop.run_rebalance_cycle(), loop.run_scaling_cycle())

    assert store.max_in_flight == 1


@pytest.mark.asyncio
async def test_start_and_stop(config, store, registry, provisioner):
    registry.members = {"a": member("A", member_id="a")}
    store.sessions = sessions_for({"A": 5})
    loop = FleetControlLoop(
        config,
        session_store=store,
        registry=registry,
        provisioner=provisioner,
        scale_interval=0.01,
        rebalance_interval=0.01,
    )

    loop.start()
    assert loop.running
    await asyncio.sleep(0.1)
    await loop.stop()

    assert not loop.running
    assert set(loop.last_reports) == {CycleKind.SCALE, CycleKind.REBALANCE}


@pytest.mark.asyncio
async def test_loop_survives_unexpected_errors(config, store, registry, provisioner):
    registry.fail = RuntimeError("boom")
    loop = FleetControlLoop(
        config,
        session_store=store,
        registry=registry,
        provisioner=provisioner,
        scale_interval=0.01,
        rebalance_interval=0.01,
    )

    loop.start()
    await asyncio.sleep(0.05)
    assert loop.running
    await loop.stop()
