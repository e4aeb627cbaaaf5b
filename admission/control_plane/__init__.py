"""
admission/control_plane — the admission gate in front of deployments.

Public API:

    Orchestration:
        validate_batch()            — one-shot batch admission check
        AdmissionController         — reusable controller (fetcher + config)
        basic_structural_validator  — default per-request structural check

    Cluster state:
        ClusterStateFetcher         — concurrent route + capacity reads
        InMemoryClusterReader       — reader over in-memory cluster objects
        extract_published_routes()  — virtual-service → PublishedRoute
        capacity_from_nodes()       — node allocatables → ClusterCapacity

    Checks:
        derive_available_capacity() — raw capacity − reservations (once per call)
        check_feasible()            — per-request compute check
        check_collision()           — per-request endpoint ownership check
        find_duplicate_names()      — within-batch name groups
        find_duplicate_endpoints()  — within-batch endpoint groups
"""

from admission.control_plane.admission_controller import (
    AdmissionController,
    basic_structural_validator,
    validate_batch,
)
from admission.control_plane.cluster_state import (
    ClusterReader,
    ClusterStateFetcher,
    InMemoryClusterReader,
    capacity_from_nodes,
    extract_published_routes,
)
from admission.control_plane.duplicates import (
    find_duplicate_endpoints,
    find_duplicate_names,
)
from admission.control_plane.endpoint_collisions import check_collision
from admission.control_plane.feasibility import (
    check_feasible,
    derive_available_capacity,
)

__all__ = [
    "AdmissionController",
    "basic_structural_validator",
    "validate_batch",
    "ClusterReader",
    "ClusterStateFetcher",
    "InMemoryClusterReader",
    "capacity_from_nodes",
    "extract_published_routes",
    "find_duplicate_endpoints",
    "find_duplicate_names",
    "check_collision",
    "check_feasible",
    "derive_available_capacity",
]
