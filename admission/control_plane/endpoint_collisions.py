"""
admission/control_plane/endpoint_collisions.py
───────────────────────────────────────────────
Does a requested endpoint already belong to a different, running API?

Only routes attached to the API gateway are considered; routes on other
gateways (operator, dashboards) live in a different namespace of paths.

Paths are compared in trailing-slash form, so "/predict" and "/predict/"
are the same route. A match owned by the SAME API name is not a collision:
that is the API being updated in place and re-publishing its own route.
"""

from __future__ import annotations

from typing import Iterable

from admission.shared.errors import RouteOwnedByOtherError
from admission.shared.models import DeploymentRequest, PublishedRoute
from admission.shared.settings import DEFAULT_GATEWAY


def ensure_trailing_slash(path: str) -> str:
    return path if path.endswith("/") else path + "/"


def check_collision(
    request: DeploymentRequest,
    published_routes: Iterable[PublishedRoute],
    gateway: str = DEFAULT_GATEWAY,
) -> None:
    """
    Raise if `request.endpoint` is published on `gateway` by another API.

    Requests without an endpoint never collide.

    Raises:
        RouteOwnedByOtherError: attributed to the request's name and the
                                "endpoint" key.
    """
    if request.endpoint is None:
        return

    wanted = ensure_trailing_slash(request.endpoint)
    for route in published_routes:
        if gateway not in route.gateways:
            continue
        if ensure_trailing_slash(route.path) != wanted:
            continue
        if route.owner_name == request.name:
            continue
        raise RouteOwnedByOtherError(route.owner_name, route.path).attribute(
            request.name, "endpoint", route.path
        )
