"""
admission/shared/errors.py
───────────────────────────
Every way a batch can be refused.

All errors derive from AdmissionError so a submission handler can catch one
type and surface `str(err)` to the user. Each error carries an attribution
path: the offending API's name plus the config keys that led to the
violated constraint. The message reads like the path a user would follow
in their config file:

    my-api: compute: no instances can satisfy the requested CPU quantity ...
    my-api: endpoint: /predict: endpoint is already being used by other-api

None of these are retried by the engine. Retrying after capacity frees up
or after the request is fixed is the caller's decision.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from admission.shared.models import DeploymentRequest


class AdmissionError(Exception):
    """
    Base class for batch rejections.

    Attributes:
        reason:   What is wrong, without attribution.
        api_name: The request the error is attributed to, when there is one.
        field:    Config keys under the request that hold the violation,
                  e.g. ("compute",) or ("endpoint", "/predict").
    """

    def __init__(
        self,
        reason: str,
        api_name: Optional[str] = None,
        field: Sequence[str] = (),
    ) -> None:
        self.reason = reason
        self.api_name = api_name
        self.field: Tuple[str, ...] = tuple(field)
        super().__init__(reason)

    def attribute(self, api_name: str, *field: str) -> "AdmissionError":
        """Attach the offending request's name (and keys) and return self."""
        self.api_name = api_name
        if field:
            self.field = tuple(field) + self.field
        return self

    @property
    def path(self) -> Tuple[str, ...]:
        head = (self.api_name,) if self.api_name else ()
        return head + self.field

    def __str__(self) -> str:
        return ": ".join(self.path + (self.reason,))


class EmptyBatchError(AdmissionError):
    """Raised when a batch contains no requests."""

    def __init__(self) -> None:
        super().__init__("at least one API must be configured")


class StructuralError(AdmissionError):
    """A single request failed the external structural validator."""


class ClusterStateUnavailableError(AdmissionError):
    """
    Raised when route or capacity state cannot be read.

    Attributes:
        cause: The first read error observed, by completion time.
    """

    def __init__(self, reason: str, cause: Optional[BaseException] = None) -> None:
        self.cause = cause
        super().__init__(reason)


class InsufficientCapacityError(AdmissionError):
    """
    A request asks for more of one resource than any instance can offer.

    Attributes:
        resource:  "CPU", "Memory" or "GPU".
        requested: Display string of the requested amount.
        available: Display string of the available amount after reservations.
    """

    def __init__(self, resource: str, requested: str, available: str) -> None:
        self.resource = resource
        self.requested = requested
        self.available = available
        super().__init__(
            f"no instances can satisfy the requested {resource} quantity - "
            f"requested {requested} {resource} but instances only have "
            f"{available} {resource} available"
        )


class RouteOwnedByOtherError(AdmissionError):
    """
    The request's endpoint is already published by a different API.

    Attributes:
        owner_name: Name of the API that currently owns the route.
        route:      The published path that collided.
    """

    def __init__(self, owner_name: str, route: str) -> None:
        self.owner_name = owner_name
        self.route = route
        super().__init__(f"endpoint is already being used by {owner_name}")


class DuplicateNameError(AdmissionError):
    """
    Two or more requests in one batch share a name.

    Attributes:
        group: The conflicting requests, in declaration order.
    """

    def __init__(self, group: List["DeploymentRequest"]) -> None:
        self.group = list(group)
        name = self.group[0].name if self.group else ""
        super().__init__(
            f"{len(self.group)} APIs are named {name!r}; "
            f"API names must be unique within a deployment",
            api_name=name or None,
        )


class DuplicateEndpointError(AdmissionError):
    """
    Two or more requests in one batch share an endpoint.

    Attributes:
        group: The conflicting requests, in declaration order.
    """

    def __init__(self, group: List["DeploymentRequest"]) -> None:
        self.group = list(group)
        names = ", ".join(repr(r.name) for r in self.group)
        endpoint = self.group[0].endpoint if self.group else ""
        super().__init__(
            f"APIs {names} share the endpoint {endpoint!r}; "
            f"an endpoint can only be used by one API per deployment",
            field=("endpoint",),
        )
