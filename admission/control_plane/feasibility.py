"""
admission/control_plane/feasibility.py
───────────────────────────────────────
Compute feasibility: can one replica of this API fit on an instance at all?

Two steps, deliberately separate
─────────────────────────────────
1. derive_available_capacity(capacity, reservations) → AvailableCapacity

     available.cpu = capacity.cpu − platform_cpu
     available.mem = capacity.mem − platform_mem
     if capacity.gpu > 0:
         available.cpu −= gpu_plugin_cpu
         available.mem −= gpu_plugin_mem
     available.gpu = capacity.gpu                  (GPUs are never reserved)

   Called ONCE per validation call, from the raw capacity. The result is a
   frozen model; it is handed unchanged to every per-request check.

2. check_feasible(compute, available) → None, or raise InsufficientCapacityError

   Checks CPU, then memory (only if the request sets one), then GPU.
   The first violated resource is reported; later ones are not evaluated.
   The boundary is inclusive: a request exactly equal to what is available
   fits.

Why not subtract inside the per-request loop?
──────────────────────────────────────────────
Subtracting reservations from a shared capacity value on every request
would shrink availability with every API in the batch: five small APIs
that each fit would start failing purely because of their position in
the list. Reservations are per instance, not per API, so they are taken
out exactly once.

Note that this is a per-replica check. Whether N replicas of M APIs fit in
the cluster together is the scheduler's concern, not admission's.
"""

from __future__ import annotations

import logging

from admission.shared.errors import InsufficientCapacityError
from admission.shared.models import (
    AvailableCapacity,
    ClusterCapacity,
    ComputeSpec,
    ReservationConfig,
)
from admission.shared.quantity import subtract, to_display_string

logger = logging.getLogger(__name__)


def derive_available_capacity(
    capacity: ClusterCapacity,
    reservations: ReservationConfig,
) -> AvailableCapacity:
    """
    Take platform (and, on GPU instances, device plugin) reservations out of
    raw capacity.

    Pure: neither argument is modified. Results can be negative when
    reservations exceed capacity; every positive request then fails.
    """
    cpu = subtract(capacity.cpu, reservations.platform_cpu)
    mem = subtract(capacity.mem, reservations.platform_mem)

    if capacity.gpu > 0:
        cpu = subtract(cpu, reservations.gpu_plugin_cpu)
        mem = subtract(mem, reservations.gpu_plugin_mem)

    available = AvailableCapacity(cpu=cpu, mem=mem, gpu=capacity.gpu)
    logger.debug(
        "Available capacity: cpu=%s mem=%s gpu=%d (raw cpu=%s mem=%s gpu=%d)",
        available.cpu, available.mem, available.gpu,
        capacity.cpu, capacity.mem, capacity.gpu,
    )
    return available


def check_feasible(compute: ComputeSpec, available: AvailableCapacity) -> None:
    """
    Raise if a single replica of `compute` cannot fit in `available`.

    Raises:
        InsufficientCapacityError: for the first resource (CPU, Memory, GPU)
                                   the request exceeds.
    """
    if compute.cpu > available.cpu:
        raise InsufficientCapacityError(
            "CPU", to_display_string(compute.cpu), to_display_string(available.cpu)
        )

    if compute.mem is not None and compute.mem > available.mem:
        raise InsufficientCapacityError(
            "Memory", to_display_string(compute.mem), to_display_string(available.mem)
        )

    if compute.gpu > available.gpu:
        raise InsufficientCapacityError("GPU", str(compute.gpu), str(available.gpu))
