"""Live-state reconciliation: transitions, ordering, retraction and tenant isolation."""
from __future__ import annotations

import asyncio

from core.context import RosterEntry
from core.presence import PresenceRotator
from core.reconciler import LiveStateReconciler
from core.registry import TenantRegistry
from shared.config.tenants import parse_tenant_groups
from shared.errors import TenantFault
from tests.fakes import FakeProber, make_snapshot


def _build(prober, transport, presence, config="srv1:chan1:alice,bob"):
    registry = TenantRegistry(parse_tenant_groups(config))
    rotator = PresenceRotator(registry, presence)
    reconciler = LiveStateReconciler(
        prober=prober,
        transport=transport,
        rotator=rotator,
        clock_ms=lambda: 1700000000000,
    )
    return registry, reconciler


# ── transitions ───────────────────────────────────────────────


def test_end_to_end_live_then_offline(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence)
    tenant = registry.get("srv1_chan1")

    prober.set_live("alice", "Chess")
    prober.set_offline("bob")
    asyncio.run(reconciler.reconcile_cycle(tenant))

    posts = transport.calls_of("post")
    assert len(posts) == 1
    assert posts[0].broadcaster_id == "alice"
    assert set(tenant.live_state) == {"alice"}
    assert tenant.live_state["alice"].category == "Chess"
    assert tenant.roster == [RosterEntry("alice", "Chess")]

    prober.set_offline("alice")
    asyncio.run(reconciler.reconcile_cycle(tenant))

    deletes = transport.calls_of("delete")
    assert len(deletes) == 1
    assert deletes[0].payload.broadcaster_id == "alice"
    assert tenant.live_state == {}
    assert tenant.roster == []


def test_steady_state_issues_no_notification_calls(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence)
    tenant = registry.get("srv1_chan1")
    prober.set_live("alice", "Chess")

    asyncio.run(reconciler.reconcile_cycle(tenant))
    calls_after_first = list(transport.calls)

    asyncio.run(reconciler.reconcile_cycle(tenant))

    assert transport.calls == calls_after_first
    assert tenant.roster == [RosterEntry("alice", "Chess")]


def test_no_duplicate_posts_across_many_cycles(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence)
    tenant = registry.get("srv1_chan1")
    prober.set_live("alice")

    for _ in range(5):
        asyncio.run(reconciler.reconcile_cycle(tenant))

    assert len(transport.calls_of("post")) == 1


def test_offline_and_absent_is_noop(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence)
    tenant = registry.get("srv1_chan1")

    asyncio.run(reconciler.reconcile_cycle(tenant))

    assert transport.calls == []
    assert tenant.live_state == {}


def test_posts_follow_configured_order(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence, "srv1:chan1:x,y,z")
    tenant = registry.get("srv1_chan1")
    for login in ("z", "y", "x"):
        prober.set_live(login)

    asyncio.run(reconciler.reconcile_cycle(tenant))

    assert [p.broadcaster_id for p in transport.calls_of("post")] == ["x", "y", "z"]
    assert [r.broadcaster_id for r in tenant.roster] == ["x", "y", "z"]


def test_post_payload_renders_thumbnail(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence)
    tenant = registry.get("srv1_chan1")
    prober.set_live("alice", "Chess")

    asyncio.run(reconciler.reconcile_cycle(tenant))

    payload = transport.calls_of("post")[0]
    assert payload.image_url == "https://cdn.example/alice-400x225.jpg?time=1700000000000"
    assert payload.url == "https://twitch.tv/alice"
    assert "**Game**: Chess" in payload.description


# ── failure handling ──────────────────────────────────────────


def test_retraction_clears_state_even_when_delete_fails(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence)
    tenant = registry.get("srv1_chan1")
    prober.set_live("alice")
    asyncio.run(reconciler.reconcile_cycle(tenant))

    transport.fail_delete = True
    prober.set_offline("alice")
    asyncio.run(reconciler.reconcile_cycle(tenant))
    asyncio.run(reconciler.reconcile_cycle(tenant))

    assert len(transport.calls_of("delete")) == 1
    assert tenant.live_state == {}


def test_failed_post_leaves_state_untouched_and_retries_next_cycle(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence)
    tenant = registry.get("srv1_chan1")
    prober.set_live("alice")
    transport.fail_post.add("alice")

    asyncio.run(reconciler.reconcile_cycle(tenant))

    assert tenant.live_state == {}
    assert tenant.roster == []

    transport.fail_post.clear()
    asyncio.run(reconciler.reconcile_cycle(tenant))

    assert len(transport.calls_of("post")) == 2
    assert set(tenant.live_state) == {"alice"}


def test_probe_error_never_retracts(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence)
    tenant = registry.get("srv1_chan1")
    prober.set_live("alice")
    asyncio.run(reconciler.reconcile_cycle(tenant))

    prober.set_error("alice")
    asyncio.run(reconciler.reconcile_cycle(tenant))

    assert transport.calls_of("delete") == []
    assert set(tenant.live_state) == {"alice"}
    assert tenant.roster == []


def test_probe_error_for_new_broadcaster_posts_nothing(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence)
    tenant = registry.get("srv1_chan1")
    prober.set_error("alice")
    prober.set_live("bob")

    asyncio.run(reconciler.reconcile_cycle(tenant))

    assert [p.broadcaster_id for p in transport.calls_of("post")] == ["bob"]
    assert set(tenant.live_state) == {"bob"}


def test_tenant_fault_is_isolated(prober, transport, presence):
    registry, reconciler = _build(
        prober, transport, presence, "srvA:chanA:alice|srvB:chanB:bob"
    )
    prober.set_live("alice")
    prober.set_live("bob")
    prober.status["alice"] = RuntimeError("unexpected")

    faults = asyncio.run(reconciler.reconcile_all(registry))

    assert len(faults) == 1
    assert isinstance(faults[0], TenantFault)
    assert faults[0].tenant_key == "srvA_chanA"
    assert isinstance(faults[0].error, RuntimeError)

    tenant_b = registry.get("srvB_chanB")
    assert set(tenant_b.live_state) == {"bob"}
    assert [p.broadcaster_id for p in transport.calls_of("post")] == ["bob"]
    assert registry.get("srvA_chanA").live_state == {}


def test_same_broadcaster_in_two_tenants_is_tracked_independently(prober, transport, presence):
    registry, reconciler = _build(
        prober, transport, presence, "srvA:chanA:alice|srvB:chanB:alice"
    )
    prober.set_live("alice")

    asyncio.run(reconciler.reconcile_all(registry))

    posts = transport.calls_of("post")
    assert len(posts) == 2
    a = registry.get("srvA_chanA").live_state["alice"].handle
    b = registry.get("srvB_chanB").live_state["alice"].handle
    assert a.channel_id == "chanA"
    assert b.channel_id == "chanB"


# ── metadata refresh ──────────────────────────────────────────


def test_refresh_edits_in_place(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence)
    tenant = registry.get("srv1_chan1")
    prober.set_live("alice", "Chess")
    asyncio.run(reconciler.reconcile_cycle(tenant))
    handle = tenant.live_state["alice"].handle

    prober.set_live("alice", "Art", viewer_count=1000)
    asyncio.run(reconciler.refresh_cycle(tenant))

    edits = transport.calls_of("edit")
    assert len(edits) == 1
    edited_handle, payload = edits[0]
    assert edited_handle is handle
    assert "**Viewers**: 1000" in payload.description
    assert tenant.live_state["alice"].category == "Art"
    assert len(transport.calls_of("post")) == 1


def test_refresh_never_retracts(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence)
    tenant = registry.get("srv1_chan1")
    prober.set_live("alice")
    asyncio.run(reconciler.reconcile_cycle(tenant))

    prober.set_offline("alice")
    asyncio.run(reconciler.refresh_cycle(tenant))

    assert transport.calls_of("delete") == []
    assert transport.calls_of("edit") == []
    assert set(tenant.live_state) == {"alice"}


def test_refresh_only_probes_live_entries(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence)
    tenant = registry.get("srv1_chan1")
    prober.set_live("alice")
    asyncio.run(reconciler.reconcile_cycle(tenant))
    prober.calls.clear()

    asyncio.run(reconciler.refresh_cycle(tenant))

    assert prober.calls == ["alice"]


def test_refresh_edit_failure_keeps_entry(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence)
    tenant = registry.get("srv1_chan1")
    prober.set_live("alice", "Chess")
    asyncio.run(reconciler.reconcile_cycle(tenant))

    transport.fail_edit = True
    prober.set_live("alice", "Art")
    faults = asyncio.run(reconciler.refresh_all(registry))

    assert faults == []
    assert tenant.live_state["alice"].category == "Chess"


def test_live_state_is_keyed_by_configured_login(prober, transport, presence):
    registry, reconciler = _build(prober, transport, presence, "srv1:chan1:alice")
    tenant = registry.get("srv1_chan1")
    prober.status["alice"] = make_snapshot("Alice", "Chess")

    asyncio.run(reconciler.reconcile_cycle(tenant))
    asyncio.run(reconciler.reconcile_cycle(tenant))

    assert set(tenant.live_state) == {"alice"}
    assert tenant.roster == [RosterEntry("alice", "Chess")]
    assert len(transport.calls_of("post")) == 1


# ── per-tenant mutual exclusion ───────────────────────────────


class _GatedStatusSource(FakeProber):
    """Holds every status check open until `gate` is set."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.entered = asyncio.Event()
        self.in_flight = 0
        self.max_in_flight = 0

    async def probe(self, broadcaster_id):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.entered.set()
        try:
            await self.gate.wait()
            return await super().probe(broadcaster_id)
        finally:
            self.in_flight -= 1


async def _overlap(transport, presence, first: str):
    prober = _GatedStatusSource()
    registry, reconciler = _build(prober, transport, presence, "srv1:chan1:alice")
    tenant = registry.get("srv1_chan1")

    prober.set_live("alice", "Chess")
    prober.gate.set()
    await reconciler.reconcile_cycle(tenant)
    handle = tenant.live_state["alice"].handle

    prober.gate.clear()
    prober.entered.clear()
    prober.max_in_flight = 0
    prober.set_offline("alice")

    cycles = {"reconcile": reconciler.reconcile_cycle, "refresh": reconciler.refresh_cycle}
    second = "refresh" if first == "reconcile" else "reconcile"

    first_task = asyncio.create_task(cycles[first](tenant))
    await prober.entered.wait()
    second_task = asyncio.create_task(cycles[second](tenant))
    for _ in range(5):
        await asyncio.sleep(0)

    # the second cycle is parked on the tenant lock, not inside a status check
    assert prober.in_flight == 1
    assert not second_task.done()

    prober.gate.set()
    await asyncio.gather(first_task, second_task)
    return tenant, prober, handle


def test_refresh_waits_for_reconcile_and_skips_retracted_handle(transport, presence):
    tenant, prober, handle = asyncio.run(_overlap(transport, presence, "reconcile"))

    assert prober.max_in_flight == 1
    assert transport.calls_of("delete") == [handle]
    assert transport.calls_of("edit") == []
    assert tenant.live_state == {}


def test_reconcile_waits_for_refresh_to_finish(transport, presence):
    tenant, prober, handle = asyncio.run(_overlap(transport, presence, "refresh"))

    assert prober.max_in_flight == 1
    assert prober.calls[-2:] == ["alice", "alice"]
    assert transport.calls_of("edit") == []
    assert transport.calls_of("delete") == [handle]
    assert tenant.live_state == {}
