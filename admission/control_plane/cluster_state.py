"""
admission/control_plane/cluster_state.py
─────────────────────────────────────────
ClusterStateFetcher: the only place admission reads the outside world.

What it fetches
────────────────
Admission needs exactly two pieces of cluster state, and they have no data
dependency on each other:

  1. Published routes — every routing rule currently live on the API
     gateway, projected to PublishedRoute (owner, path, gateways).
  2. Raw capacity     — allocatable CPU / memory / GPU of the instance
     class the batch targets.

Both are read in parallel with run_first_err(); the call blocks until both
reads have finished.

Partial failure
────────────────
If one read fails the other still runs to completion (no cancellation;
both reads are cheap and side-effect-free). The fetch then raises
ClusterStateUnavailableError wrapping the first error by COMPLETION time.
If both reads fail, which error is reported is not deterministic.

Conversion boundary
────────────────────
Virtual-service objects arrive as untyped mappings. extract_published_routes()
is the single place their layout is interpreted; everything downstream
works on PublishedRoute. Readers that talk to a real cluster should return
PublishedRoutes built by it.

    reader  = InMemoryClusterReader(virtual_services=[...], nodes=[...])
    fetcher = ClusterStateFetcher(reader)
    state   = fetcher.fetch("m5.large")
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from admission.shared.errors import ClusterStateUnavailableError
from admission.shared.models import (
    ClusterCapacity,
    ClusterState,
    NodeAllocatable,
    PublishedRoute,
)
from admission.shared.parallel import run_first_err
from admission.shared.settings import DEFAULT_GATEWAY

logger = logging.getLogger(__name__)

API_NAME_LABEL: str = "apiName"
"""Virtual-service label holding the name of the API that owns the route."""


# ── Reader protocol ───────────────────────────────────────────────────────────

class ClusterReader(Protocol):
    """The two reads admission depends on. Implementations must be thread-safe."""

    def list_published_routes(self, gateway: Optional[str] = None) -> Sequence[PublishedRoute]:
        ...

    def read_instance_capacity(self, instance_type: str) -> ClusterCapacity:
        ...


# ── Fetcher ───────────────────────────────────────────────────────────────────

class ClusterStateFetcher:
    """
    Reads routes and capacity concurrently and joins them into a ClusterState.

    Stateless between calls: every fetch() goes back to the reader.
    """

    def __init__(self, reader: ClusterReader, gateway: str = DEFAULT_GATEWAY) -> None:
        self._reader = reader
        self.gateway = gateway

    def fetch(self, instance_type: str) -> ClusterState:
        """
        Fetch published routes and raw capacity for `instance_type`.

        Raises:
            ClusterStateUnavailableError: if either read fails.
        """
        start = time.perf_counter()
        try:
            routes, capacity = run_first_err(
                lambda: self._reader.list_published_routes(self.gateway),
                lambda: self._reader.read_instance_capacity(instance_type),
            )
            # Validates whatever the reader returned
            state = ClusterState(published_routes=tuple(routes), capacity=capacity)
        except ClusterStateUnavailableError as err:
            logger.warning("Cluster state unavailable: %s", err)
            raise
        except Exception as err:
            logger.warning(
                "Cluster state unavailable for instance type %r: %s: %s",
                instance_type, err.__class__.__name__, err,
            )
            raise ClusterStateUnavailableError(
                f"unable to read cluster state: {err}", cause=err
            ) from err

        logger.debug(
            "Fetched cluster state for %r in %.1fms (%d routes, cpu=%s mem=%s gpu=%d)",
            instance_type,
            (time.perf_counter() - start) * 1000,
            len(state.published_routes),
            state.capacity.cpu, state.capacity.mem, state.capacity.gpu,
        )
        return state


# ── Projections from raw cluster objects ──────────────────────────────────────

def extract_published_routes(virtual_services: Iterable[Mapping[str, Any]]) -> List[PublishedRoute]:
    """
    Project virtual-service objects into PublishedRoutes.

    Reads, per object:
        metadata.labels.apiName           → owner_name ("" if unlabelled)
        spec.gateways                     → gateways
        spec.http[].match[].uri.exact     → one route per path
        spec.http[].match[].uri.prefix    → one route per path

    Raises:
        ClusterStateUnavailableError: if an object does not have that layout.
    """
    routes: List[PublishedRoute] = []
    for vs in virtual_services:
        name = _get_path(vs, "metadata", "name", default="<unnamed>")
        try:
            labels = _get_path(vs, "metadata", "labels", default={}) or {}
            owner = labels.get(API_NAME_LABEL) or ""
            gateways = frozenset(_as_list(_get_path(vs, "spec", "gateways", default=[]), "spec.gateways"))
            for path in _virtual_service_paths(vs):
                routes.append(PublishedRoute(owner_name=owner, path=path, gateways=gateways))
        except (AttributeError, TypeError, ValueError) as err:
            raise ClusterStateUnavailableError(
                f"virtual service {name!r} is malformed: {err}", cause=err
            ) from err
    return routes


def capacity_from_nodes(nodes: Iterable[NodeAllocatable], instance_type: str) -> ClusterCapacity:
    """
    Allocatable capacity of an instance class: the minimum across its nodes.

    A batch is only admitted if it fits on ANY node of the class, so the
    smallest node is the one that matters.

    Raises:
        ClusterStateUnavailableError: if no node of `instance_type` exists.
    """
    matching = [n for n in nodes if n.instance_type == instance_type]
    if not matching:
        raise ClusterStateUnavailableError(
            f"no nodes of instance type {instance_type!r} are registered in the cluster"
        )
    return ClusterCapacity(
        cpu=min((n.cpu for n in matching), key=lambda q: q.value),
        mem=min((n.mem for n in matching), key=lambda q: q.value),
        gpu=min(n.gpu for n in matching),
    )


class InMemoryClusterReader:
    """
    ClusterReader over in-memory virtual services and node records.

    Used by tests and by callers that snapshot cluster objects themselves.
    Holds no mutable state after construction, so it is safe to share
    across threads.
    """

    def __init__(
        self,
        virtual_services: Iterable[Mapping[str, Any]] = (),
        nodes: Iterable[NodeAllocatable] = (),
    ) -> None:
        self._virtual_services = tuple(virtual_services)
        self._nodes = tuple(nodes)

    def list_published_routes(self, gateway: Optional[str] = None) -> List[PublishedRoute]:
        routes = extract_published_routes(self._virtual_services)
        if gateway is None:
            return routes
        return [r for r in routes if gateway in r.gateways]

    def read_instance_capacity(self, instance_type: str) -> ClusterCapacity:
        return capacity_from_nodes(self._nodes, instance_type)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _get_path(obj: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    cur: Any = obj
    for key in keys:
        if not isinstance(cur, Mapping) or key not in cur:
            return default
        cur = cur[key]
    return cur


def _as_list(value: Any, where: str) -> List[Any]:
    if not isinstance(value, (list, tuple)):
        raise TypeError(f"{where} must be a list, got {type(value).__name__}")
    return list(value)


def _virtual_service_paths(vs: Mapping[str, Any]) -> List[str]:
    paths: List[str] = []
    for http in _as_list(_get_path(vs, "spec", "http", default=[]), "spec.http"):
        for match in _as_list(_get_path(http, "match", default=[]), "spec.http[].match"):
            uri: Dict[str, Any] = _get_path(match, "uri", default={}) or {}
            for kind in ("exact", "prefix"):
                path = uri.get(kind)
                if path is None:
                    continue
                if not isinstance(path, str):
                    raise TypeError(f"uri.{kind} must be a string")
                paths.append(path)
    return paths
