"""Tests for proxy network membership reconciliation."""
from __future__ import annotations

import random

import pytest

from falcon.errors import ContainerNotFoundError, RuntimeSyncError
from falcon.runtime import NetworkDescriptor
from falcon.sync.reconciler import MembershipReconciler, SyncDiff, is_eligible

PROXY = "falcon-proxy"


def _net(driver="bridge", count=0, proxy=False, default=False, net_id="n"):
    return NetworkDescriptor(
        id=net_id,
        name=net_id,
        driver=driver,
        is_default_bridge=default,
        attached_container_count=count,
        proxy_is_attached=proxy,
    )


class TestEligibility:
    def test_default_bridge_always_eligible(self):
        assert is_eligible(_net(default=True, count=0)) is True

    def test_empty_bridge_not_eligible(self):
        assert is_eligible(_net(count=0)) is False

    def test_bridge_with_only_proxy_not_eligible(self):
        assert is_eligible(_net(count=1, proxy=True)) is False

    def test_bridge_with_one_other_container_eligible(self):
        assert is_eligible(_net(count=1, proxy=False)) is True

    def test_bridge_with_proxy_and_peer_eligible(self):
        assert is_eligible(_net(count=2, proxy=True)) is True

    @pytest.mark.parametrize("driver", ["overlay", "host", "macvlan", "null"])
    def test_non_bridge_never_eligible(self, driver):
        assert is_eligible(_net(driver=driver, count=5, default=True)) is False


class TestSyncDiff:
    def test_compute_is_disjoint(self):
        diff = SyncDiff.compute(frozenset({"a", "b"}), frozenset({"b", "c"}))
        assert diff.to_join == {"a"}
        assert diff.to_leave == {"c"}
        assert not diff.to_join & diff.to_leave

    def test_empty(self):
        assert SyncDiff.compute(frozenset({"a"}), frozenset({"a"})).empty


class TestReconcile:
    def test_scenario_joins_bridges_and_skips_overlay(self, runtime):
        runtime.add_network("A", containers={"c1", "c2"})
        runtime.add_network("B", containers={"c3"})
        runtime.add_network("C", driver="overlay", containers={f"c{i}" for i in range(5)})

        diff = MembershipReconciler(runtime, PROXY).reconcile()

        assert diff.to_join == {"A", "B"}
        assert diff.to_leave == frozenset()
        assert runtime.membership() == {"A", "B"}

    def test_leaves_networks_that_lost_their_peers(self, runtime):
        runtime.add_network("solo", proxy=True)
        runtime.add_network("busy", containers={"c1"}, proxy=True)

        diff = MembershipReconciler(runtime, PROXY).reconcile()

        assert diff.to_leave == {"solo"}
        assert runtime.membership() == {"busy"}

    def test_joins_are_issued_before_leaves(self, runtime):
        runtime.add_network("old", proxy=True)
        runtime.add_network("new", containers={"c1", "c2"})

        MembershipReconciler(runtime, PROXY).reconcile()

        assert runtime.calls == [("connect", "new"), ("disconnect", "old")]

    def test_second_reconcile_is_a_noop(self, runtime):
        runtime.add_network("A", containers={"c1", "c2"})
        runtime.add_network("bridge", default=True)
        reconciler = MembershipReconciler(runtime, PROXY)

        reconciler.reconcile()
        runtime.calls.clear()
        diff = reconciler.reconcile()

        assert diff.empty
        assert runtime.calls == []

    def test_result_independent_of_network_order(self, runtime):
        specs = [
            ("bridge", dict(default=True)),
            ("a", dict(containers={"c1", "c2"})),
            ("b", dict(containers={"c3"})),
            ("c", dict(proxy=True)),
            ("d", dict(driver="overlay", containers={"c4", "c5"})),
            ("e", dict(containers={"c6"}, proxy=True)),
        ]
        rng = random.Random(7)
        for _ in range(5):
            runtime.networks.clear()
            rng.shuffle(specs)
            for net_id, kwargs in specs:
                runtime.add_network(net_id, **kwargs)

            MembershipReconciler(runtime, PROXY).reconcile()

            assert runtime.membership() == {"bridge", "a", "b", "e"}

    def test_list_failure_applies_nothing(self, runtime):
        runtime.add_network("A", containers={"c1", "c2"})
        runtime.fail_list = True

        with pytest.raises(RuntimeSyncError):
            MembershipReconciler(runtime, PROXY).reconcile()

        assert runtime.calls == []

    def test_missing_proxy_container_raises(self, runtime):
        runtime.proxy_exists = False

        with pytest.raises(ContainerNotFoundError):
            MembershipReconciler(runtime, PROXY).reconcile()

    def test_plan_does_not_mutate(self, runtime):
        runtime.add_network("A", containers={"c1", "c2"})

        diff = MembershipReconciler(runtime, PROXY).plan()

        assert diff.to_join == {"A"}
        assert runtime.calls == []
        assert runtime.membership() == set()
