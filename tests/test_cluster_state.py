"""
tests/test_cluster_state.py
────────────────────────────
Test suite for admission/control_plane/cluster_state.py and
admission/shared/parallel.py

Test groups
────────────
Group 1: run_first_err            — ordering, join, first-error semantics
Group 2: ClusterStateFetcher      — concurrency, partial failure, wrapping
Group 3: extract_published_routes — virtual-service projection
Group 4: capacity_from_nodes      — per-class minimum
Group 5: InMemoryClusterReader    — gateway filter, end-to-end fetch
"""

from __future__ import annotations

import logging
import threading
import time
from typing import List, Optional

import pytest
from pydantic import ValidationError

from admission.control_plane.cluster_state import (
    ClusterStateFetcher,
    InMemoryClusterReader,
    capacity_from_nodes,
    extract_published_routes,
)
from admission.shared.errors import ClusterStateUnavailableError
from admission.shared.models import ClusterCapacity, NodeAllocatable, PublishedRoute
from admission.shared.parallel import run_first_err
from admission.shared.quantity import Quantity


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

Q = Quantity.parse


def _virtual_service(
    api_name: Optional[str],
    *paths: str,
    gateways: tuple = ("apis-gateway",),
    kind: str = "exact",
) -> dict:
    labels = {"apiName": api_name} if api_name is not None else {}
    return {
        "metadata": {"name": f"vs-{api_name}", "labels": labels},
        "spec": {
            "gateways": list(gateways),
            "http": [{"match": [{"uri": {kind: p}} for p in paths]}],
        },
    }


def _node(name: str, instance_type: str = "m5.large", cpu: str = "4", mem: str = "8Gi", gpu: int = 0) -> NodeAllocatable:
    return NodeAllocatable(node_name=name, instance_type=instance_type, cpu=cpu, mem=mem, gpu=gpu)


class _ScriptedReader:
    """Reader whose two reads can block, fail, or record that they ran."""

    def __init__(self, routes_error: Optional[Exception] = None,
                 capacity_error: Optional[Exception] = None,
                 capacity_delay_s: float = 0.0) -> None:
        self.routes_error = routes_error
        self.capacity_error = capacity_error
        self.capacity_delay_s = capacity_delay_s
        self.capacity_started = threading.Event()
        self.routes_saw_capacity_start = False
        self.capacity_finished = False
        self.gateways_requested: List[Optional[str]] = []

    def list_published_routes(self, gateway=None):
        self.gateways_requested.append(gateway)
        # Only returns promptly if the capacity read is running at the same time.
        self.routes_saw_capacity_start = self.capacity_started.wait(timeout=2.0)
        if self.routes_error is not None:
            raise self.routes_error
        return [PublishedRoute(owner_name="a", path="/a", gateways=frozenset({"apis-gateway"}))]

    def read_instance_capacity(self, instance_type):
        self.capacity_started.set()
        time.sleep(self.capacity_delay_s)
        self.capacity_finished = True
        if self.capacity_error is not None:
            raise self.capacity_error
        return ClusterCapacity(cpu="4", mem="8Gi", gpu=0)


# ─────────────────────────────────────────────────────────────────────────────
# Group 1 — run_first_err
# ─────────────────────────────────────────────────────────────────────────────

class TestRunFirstErr:
    def test_no_callables(self) -> None:
        assert run_first_err() == []

    def test_results_in_declaration_order(self) -> None:
        def slow():
            time.sleep(0.05)
            return "slow"

        assert run_first_err(slow, lambda: "fast") == ["slow", "fast"]

    def test_waits_for_all_even_after_failure(self) -> None:
        finished = threading.Event()

        def fail():
            raise RuntimeError("boom")

        def slow():
            time.sleep(0.05)
            finished.set()

        with pytest.raises(RuntimeError, match="boom"):
            run_first_err(fail, slow)
        assert finished.is_set()

    def test_first_error_by_completion_time(self) -> None:
        def late():
            time.sleep(0.2)
            raise KeyError("late")

        def early():
            raise ValueError("early")

        with pytest.raises(ValueError, match="early"):
            run_first_err(late, early)

    def test_two_failures_surface_one_of_them(self) -> None:
        def a():
            raise KeyError("a")

        def b():
            raise ValueError("b")

        with pytest.raises((KeyError, ValueError)):
            run_first_err(a, b)


# ─────────────────────────────────────────────────────────────────────────────
# Group 2 — ClusterStateFetcher
# ─────────────────────────────────────────────────────────────────────────────

class TestFetcher:
    def test_reads_run_concurrently(self) -> None:
        reader = _ScriptedReader()
        state = ClusterStateFetcher(reader).fetch("m5.large")
        assert reader.routes_saw_capacity_start, "routes read should overlap the capacity read"
        assert state.capacity.cpu == 4
        assert [r.owner_name for r in state.published_routes] == ["a"]

    def test_passes_gateway_to_route_read(self) -> None:
        reader = _ScriptedReader()
        ClusterStateFetcher(reader, gateway="internal").fetch("m5.large")
        assert reader.gateways_requested == ["internal"]

    def test_route_failure_wrapped(self) -> None:
        cause = ConnectionError("api server unreachable")
        reader = _ScriptedReader(routes_error=cause)
        with pytest.raises(ClusterStateUnavailableError) as exc_info:
            ClusterStateFetcher(reader).fetch("m5.large")
        assert exc_info.value.cause is cause
        assert exc_info.value.__cause__ is cause
        assert "api server unreachable" in str(exc_info.value)

    def test_other_read_completes_when_one_fails(self) -> None:
        reader = _ScriptedReader(routes_error=RuntimeError("nope"), capacity_delay_s=0.1)
        with pytest.raises(ClusterStateUnavailableError):
            ClusterStateFetcher(reader).fetch("m5.large")
        assert reader.capacity_finished

    def test_capacity_failure_wrapped(self) -> None:
        reader = _ScriptedReader(capacity_error=TimeoutError("slow"))
        with pytest.raises(ClusterStateUnavailableError) as exc_info:
            ClusterStateFetcher(reader).fetch("m5.large")
        assert isinstance(exc_info.value.cause, TimeoutError)

    def test_malformed_reader_output_wrapped(self, caplog: pytest.LogCaptureFixture) -> None:
        class LooseReader:
            def list_published_routes(self, gateway=None):
                return [{"path": "/x"}]

            def read_instance_capacity(self, instance_type):
                return ClusterCapacity(cpu="4", mem="8Gi", gpu=0)

        with caplog.at_level(logging.WARNING, logger="admission.control_plane.cluster_state"):
            with pytest.raises(ClusterStateUnavailableError) as exc_info:
                ClusterStateFetcher(LooseReader()).fetch("m5.large")
        assert isinstance(exc_info.value.cause, ValidationError)
        assert exc_info.value.__cause__ is exc_info.value.cause
        assert "Cluster state unavailable" in caplog.text

    def test_malformed_capacity_wrapped(self) -> None:
        class LooseReader:
            def list_published_routes(self, gateway=None):
                return []

            def read_instance_capacity(self, instance_type):
                return {"cpu": "lots", "mem": "8Gi", "gpu": 0}

        with pytest.raises(ClusterStateUnavailableError, match="unable to read cluster state"):
            ClusterStateFetcher(LooseReader()).fetch("m5.large")

    def test_cluster_state_error_passes_through_unwrapped(self) -> None:
        reader = InMemoryClusterReader(nodes=[_node("n1", instance_type="p3.2xlarge")])
        with pytest.raises(ClusterStateUnavailableError, match="m5.large"):
            ClusterStateFetcher(reader).fetch("m5.large")


# ─────────────────────────────────────────────────────────────────────────────
# Group 3 — extract_published_routes
# ─────────────────────────────────────────────────────────────────────────────

class TestExtractPublishedRoutes:
    def test_one_route_per_path(self) -> None:
        routes = extract_published_routes([_virtual_service("iris", "/iris", "/iris/v2")])
        assert [(r.owner_name, r.path) for r in routes] == [("iris", "/iris"), ("iris", "/iris/v2")]
        assert routes[0].gateways == frozenset({"apis-gateway"})

    def test_prefix_matches_are_routes_too(self) -> None:
        routes = extract_published_routes([_virtual_service("iris", "/iris", kind="prefix")])
        assert [r.path for r in routes] == ["/iris"]

    def test_unlabelled_service_has_empty_owner(self) -> None:
        routes = extract_published_routes([_virtual_service(None, "/x")])
        assert routes[0].owner_name == ""

    def test_null_owner_label_is_empty_owner(self) -> None:
        vs = _virtual_service("iris", "/x")
        vs["metadata"]["labels"]["apiName"] = None
        routes = extract_published_routes([vs])
        assert routes[0].owner_name == ""

    def test_service_without_http_has_no_routes(self) -> None:
        assert extract_published_routes([{"metadata": {"name": "bare"}, "spec": {}}]) == []

    def test_malformed_gateways(self) -> None:
        vs = _virtual_service("iris", "/iris")
        vs["spec"]["gateways"] = "apis-gateway"
        with pytest.raises(ClusterStateUnavailableError, match="vs-iris"):
            extract_published_routes([vs])

    def test_malformed_uri(self) -> None:
        vs = _virtual_service("iris", "/iris")
        vs["spec"]["http"][0]["match"][0]["uri"]["exact"] = 42
        with pytest.raises(ClusterStateUnavailableError):
            extract_published_routes([vs])


# ─────────────────────────────────────────────────────────────────────────────
# Group 4 — capacity_from_nodes
# ─────────────────────────────────────────────────────────────────────────────

class TestCapacityFromNodes:
    def test_minimum_per_resource(self) -> None:
        nodes = [
            _node("n1", cpu="3920m", mem="15Gi", gpu=1),
            _node("n2", cpu="3900m", mem="15.5Gi", gpu=1),
            _node("n3", instance_type="t3.small", cpu="1", mem="1Gi"),
        ]
        capacity = capacity_from_nodes(nodes, "m5.large")
        assert capacity.cpu == Q("3.9")
        assert str(capacity.mem) == "15Gi"
        assert capacity.gpu == 1

    def test_no_matching_nodes(self) -> None:
        with pytest.raises(ClusterStateUnavailableError, match="no nodes of instance type"):
            capacity_from_nodes([_node("n1")], "g4dn.xlarge")


# ─────────────────────────────────────────────────────────────────────────────
# Group 5 — InMemoryClusterReader
# ─────────────────────────────────────────────────────────────────────────────

class TestInMemoryReader:
    def test_gateway_filter(self) -> None:
        reader = InMemoryClusterReader(
            virtual_services=[
                _virtual_service("iris", "/iris"),
                _virtual_service("operator", "/operator", gateways=("operator-gateway",)),
            ]
        )
        assert [r.owner_name for r in reader.list_published_routes("apis-gateway")] == ["iris"]
        assert len(reader.list_published_routes()) == 2

    def test_end_to_end_fetch(self) -> None:
        reader = InMemoryClusterReader(
            virtual_services=[_virtual_service("iris", "/iris")],
            nodes=[_node("n1"), _node("n2", cpu="3")],
        )
        state = ClusterStateFetcher(reader).fetch("m5.large")
        assert state.capacity == ClusterCapacity(cpu="3", mem="8Gi", gpu=0)
        assert state.published_routes[0].path == "/iris"
