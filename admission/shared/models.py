"""
admission/shared/models.py
──────────────────────────
The single source of truth for every data structure the admission engine
reads or produces.

Design philosophy
-----------------
Every model answers one question: "What does admission *need to know*
about this thing to decide whether a batch is representable in the
cluster right now?"

Nothing here is persisted. Requests, cluster capacity and published routes
are built fresh at the start of one validation call and dropped at its end.
The only long-lived value is ReservationConfig, and even that is passed in
rather than read from a global.

Reading guide
-------------
Read top-to-bottom. Each model builds on the ones above it.
"""

from __future__ import annotations

from typing import FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from admission.shared.quantity import Quantity


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 1: REQUEST MODELS
# What a user submits in one deployment.
# ─────────────────────────────────────────────────────────────────────────────

class ComputeSpec(BaseModel):
    """
    The compute resources one API's replicas require.

    Fields:
        cpu → CPU cores per replica. Fractional ok ("500m", 0.5).
        mem → Memory per replica ("2Gi"). None means the API asks for no
              memory constraint at all, which is NOT the same as "0":
              a None request is never checked against memory capacity.
        gpu → Whole GPUs per replica.
    """
    model_config = ConfigDict(frozen=True)

    cpu: Quantity = Field(..., description="CPU cores requested per replica")
    mem: Optional[Quantity] = Field(
        None,
        description="Memory requested per replica. None = no memory constraint."
    )
    gpu: int = Field(0, ge=0, description="GPUs requested per replica")


class DeploymentRequest(BaseModel):
    """
    One API in a deployment batch.

    `name` is the API's identity. It must be unique within a batch; that is
    checked by the duplicate finder over the whole batch, not here, so a
    single model can always be constructed and reported on.

    Fields:
        name     → API name. Every error about this request is attributed to it.
        endpoint → Route the API is published on, e.g. "/predict".
                   None when the API is not exposed.
        compute  → Resources each replica needs.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="API name (identity within a batch)")
    endpoint: Optional[str] = Field(None, description="Published route, e.g. '/predict'")
    compute: ComputeSpec


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 2: CLUSTER MODELS
# What the cluster reports about itself. Read-only to admission.
# ─────────────────────────────────────────────────────────────────────────────

class ClusterCapacity(BaseModel):
    """
    Raw allocatable capacity of the instance class a batch targets.

    "Raw" means before platform reservations are taken out. Admission
    derives the usable figure from this exactly once per call
    (see control_plane/feasibility.py).
    """
    model_config = ConfigDict(frozen=True)

    cpu: Quantity
    mem: Quantity
    gpu: int = Field(0, ge=0)


class NodeAllocatable(BaseModel):
    """
    Allocatable resources reported by a single node.

    Instances of one class are meant to be identical, but kubelet and
    system reservations make their allocatable figures drift slightly.
    capacity_from_nodes() takes the minimum across a class.
    """
    model_config = ConfigDict(frozen=True)

    node_name: str
    instance_type: str
    cpu: Quantity
    mem: Quantity
    gpu: int = Field(0, ge=0)


class PublishedRoute(BaseModel):
    """
    A routing rule that is already live in the cluster.

    Built from an untyped virtual-service object by
    extract_published_routes(); nothing downstream touches the raw object.

    Fields:
        owner_name → Name of the API that published the route.
        path       → Published path, as found (not normalised).
        gateways   → Gateways the rule is attached to.
    """
    model_config = ConfigDict(frozen=True)

    owner_name: str
    path: str
    gateways: FrozenSet[str] = Field(default_factory=frozenset)


class ClusterState(BaseModel):
    """The joined result of one concurrent fetch."""
    model_config = ConfigDict(frozen=True)

    published_routes: Tuple[PublishedRoute, ...] = ()
    capacity: ClusterCapacity


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 3: RESERVATIONS AND DERIVED CAPACITY
# What platform daemons hold back, and what is left for user workloads.
# ─────────────────────────────────────────────────────────────────────────────

class ReservationConfig(BaseModel):
    """
    Resources permanently withheld from user workloads on every instance.

    platform_*   → Always subtracted. Covers the platform's own per-node
                   daemons (log shipper, metrics agent, networking).
    gpu_plugin_* → Subtracted only when the instance class has GPUs.
                   Covers the GPU device plugin daemonset.

    GPU count itself is never reserved.
    """
    model_config = ConfigDict(frozen=True)

    platform_cpu: Quantity = Field(default_factory=lambda: Quantity.parse("800m"))
    platform_mem: Quantity = Field(default_factory=lambda: Quantity.parse("1500Mi"))
    gpu_plugin_cpu: Quantity = Field(default_factory=lambda: Quantity.parse("100m"))
    gpu_plugin_mem: Quantity = Field(default_factory=lambda: Quantity.parse("100Mi"))


class AvailableCapacity(BaseModel):
    """
    Capacity left for user workloads after reservations.

    Frozen: derived once per validation call and shared, unchanged, by
    every per-request feasibility check in the batch. Values may be
    negative when reservations exceed raw capacity.
    """
    model_config = ConfigDict(frozen=True)

    cpu: Quantity
    mem: Quantity
    gpu: int


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 4: RESULT MODEL
# ─────────────────────────────────────────────────────────────────────────────

class ValidationReport(BaseModel):
    """
    Returned when a whole batch is admitted.

    Fields:
        api_names         → Names of the admitted APIs, in declaration order.
        instance_type     → Instance class the batch was validated against.
        available         → Capacity every request was checked against.
        published_routes  → Number of live routes the batch was checked against.
    """
    model_config = ConfigDict(frozen=True)

    api_names: List[str]
    instance_type: str
    available: AvailableCapacity
    published_routes: int = 0
