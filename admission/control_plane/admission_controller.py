"""
admission/control_plane/admission_controller.py
────────────────────────────────────────────────
Admission control: is this batch of APIs representable in the cluster?

The admission controller is the last gate before a deployment is committed.
It runs AFTER the config has been parsed into DeploymentRequests and BEFORE
anything in the cluster is created, updated or deleted. It never mutates
cluster state itself, so a rejected batch leaves nothing behind.

Pipeline
─────────
  1. Empty batch          → EmptyBatchError.
  2. Fetch cluster state  → published routes + raw capacity, concurrently,
                            once per call (ClusterStateFetcher).
  3. Derive availability  → raw capacity − reservations, once per call.
  4. Per request, in declaration order:
       a. structural validator (pluggable; owned by the spec layer)
       b. compute feasibility  → InsufficientCapacityError  @ <name>: compute
       c. endpoint collisions  → RouteOwnedByOtherError     @ <name>: endpoint
     The first failing request stops the pipeline.
  5. Whole batch:
       a. duplicate names      → DuplicateNameError
       b. duplicate endpoints  → DuplicateEndpointError
     These only run once every request is individually valid, so a batch
     with a malformed API reports the malformed API first.

Every error names one request (or one group of requests) and one violated
constraint.

What it does NOT check
───────────────────────
  • Whether the replicas of all APIs fit in the cluster together. That is
    the scheduler's job; admission checks that one replica fits on one
    instance.
  • The schema of a single API config. That is the structural validator's
    job; basic_structural_validator below is a minimal default.

Concurrency
────────────
AdmissionController holds only configuration. Each validate_batch() call
fetches its own cluster state, so concurrent calls from different threads
are safe.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from admission.control_plane.cluster_state import ClusterReader, ClusterStateFetcher
from admission.control_plane.duplicates import (
    find_duplicate_endpoints,
    find_duplicate_names,
)
from admission.control_plane.endpoint_collisions import check_collision
from admission.control_plane.feasibility import check_feasible, derive_available_capacity
from admission.shared.errors import (
    AdmissionError,
    DuplicateEndpointError,
    DuplicateNameError,
    EmptyBatchError,
    StructuralError,
)
from admission.shared.models import DeploymentRequest, ReservationConfig, ValidationReport
from admission.shared.settings import DEFAULT_GATEWAY, AdmissionSettings, get_settings

logger = logging.getLogger(__name__)

COMPUTE_KEY: str = "compute"
ENDPOINT_KEY: str = "endpoint"

StructuralValidator = Callable[[DeploymentRequest], None]
"""Raises on an invalid request; returns None otherwise."""


def basic_structural_validator(request: DeploymentRequest) -> None:
    """
    Minimal structural checks for callers without a spec validator.

    Raises:
        StructuralError: empty name, or an endpoint not starting with "/".
    """
    if not request.name.strip():
        raise StructuralError("name must not be empty")
    if request.endpoint is not None and not request.endpoint.startswith("/"):
        raise StructuralError(
            f"endpoint {request.endpoint!r} must start with '/'", field=(ENDPOINT_KEY,)
        )


class AdmissionController:
    """
    Validates deployment batches against live cluster state.

    Usage:
        controller = AdmissionController(
            ClusterStateFetcher(reader),
            instance_type="m5.large",
        )
        report = controller.validate_batch(requests)   # raises AdmissionError
    """

    def __init__(
        self,
        fetcher: ClusterStateFetcher,
        instance_type: str,
        reservations: Optional[ReservationConfig] = None,
        structural_validator: Optional[StructuralValidator] = None,
    ) -> None:
        self._fetcher = fetcher
        self.instance_type = instance_type
        self.reservations = reservations or ReservationConfig()
        self._validate_structure = structural_validator or basic_structural_validator

    @classmethod
    def from_settings(
        cls,
        reader: ClusterReader,
        settings: Optional[AdmissionSettings] = None,
        structural_validator: Optional[StructuralValidator] = None,
    ) -> "AdmissionController":
        """Build a controller from AdmissionSettings (environment by default)."""
        settings = settings or get_settings()
        return cls(
            ClusterStateFetcher(reader, gateway=settings.gateway),
            instance_type=settings.instance_type,
            reservations=settings.reservations(),
            structural_validator=structural_validator,
        )

    def validate_batch(self, requests: Sequence[DeploymentRequest]) -> ValidationReport:
        """
        Run the full admission pipeline on a batch.

        Returns:
            ValidationReport if every check passes.

        Raises:
            AdmissionError: the first failure, attributed to its request.
        """
        try:
            report = self._validate(requests)
        except AdmissionError as err:
            logger.info("Batch rejected: %s", err)
            raise
        logger.info(
            "Batch admitted: %d API(s) on instance type %r",
            len(report.api_names), self.instance_type,
        )
        return report

    # ── Pipeline ──────────────────────────────────────────────────────────────

    def _validate(self, requests: Sequence[DeploymentRequest]) -> ValidationReport:
        if len(requests) == 0:
            raise EmptyBatchError()

        state = self._fetcher.fetch(self.instance_type)
        available = derive_available_capacity(state.capacity, self.reservations)

        for request in requests:
            self._check_structure(request)

            try:
                check_feasible(request.compute, available)
            except AdmissionError as err:
                raise err.attribute(request.name, COMPUTE_KEY)

            check_collision(request, state.published_routes, self._fetcher.gateway)

        dups = find_duplicate_names(requests)
        if dups:
            raise DuplicateNameError(dups)

        dups = find_duplicate_endpoints(requests)
        if dups:
            raise DuplicateEndpointError(dups)

        return ValidationReport(
            api_names=[r.name for r in requests],
            instance_type=self.instance_type,
            available=available,
            published_routes=len(state.published_routes),
        )

    def _check_structure(self, request: DeploymentRequest) -> None:
        """
        Run the structural validator and attribute its failure to `request`.

        AdmissionErrors pass through; ValueErrors (including pydantic
        validation errors) become StructuralErrors. Anything else is a bug
        in the validator and propagates as-is.
        """
        try:
            self._validate_structure(request)
        except AdmissionError as err:
            raise err.attribute(request.name)
        except ValueError as err:
            raise StructuralError(str(err)).attribute(request.name) from err


def validate_batch(
    requests: Sequence[DeploymentRequest],
    reader: ClusterReader,
    instance_type: str,
    reservations: Optional[ReservationConfig] = None,
    structural_validator: Optional[StructuralValidator] = None,
    gateway: str = DEFAULT_GATEWAY,
) -> ValidationReport:
    """
    One-shot admission check. See AdmissionController.validate_batch().

    Raises:
        AdmissionError: the first failure, attributed to its request.
    """
    controller = AdmissionController(
        ClusterStateFetcher(reader, gateway=gateway),
        instance_type=instance_type,
        reservations=reservations,
        structural_validator=structural_validator,
    )
    return controller.validate_batch(requests)
