"""
admission/control_plane/duplicates.py
──────────────────────────────────────
Duplicate detection WITHIN one batch.

Two independent passes:

  find_duplicate_names      — requests grouped by name
  find_duplicate_endpoints  — requests grouped by endpoint (trailing-slash form;
                              requests without an endpoint are skipped)

Each returns ONE offending group, the first in declaration order, or an
empty list. Reporting one group is enough for the user to act on; they
will see the next one on resubmission.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Dict, Hashable, List, Optional, Sequence

from admission.control_plane.endpoint_collisions import ensure_trailing_slash
from admission.shared.models import DeploymentRequest


def find_duplicate_names(requests: Sequence[DeploymentRequest]) -> List[DeploymentRequest]:
    return _first_duplicate_group(requests, lambda r: r.name)


def find_duplicate_endpoints(requests: Sequence[DeploymentRequest]) -> List[DeploymentRequest]:
    return _first_duplicate_group(
        requests,
        lambda r: ensure_trailing_slash(r.endpoint) if r.endpoint is not None else None,
    )


def _first_duplicate_group(
    requests: Sequence[DeploymentRequest],
    key: Callable[[DeploymentRequest], Optional[Hashable]],
) -> List[DeploymentRequest]:
    # dicts keep insertion order, so "first group" is the group whose first
    # member appears earliest in the batch
    groups: Dict[Hashable, List[DeploymentRequest]] = defaultdict(list)
    for request in requests:
        k = key(request)
        if k is None:
            continue
        groups[k].append(request)

    for group in groups.values():
        if len(group) > 1:
            return group
    return []
