"""
admission/shared/parallel.py
─────────────────────────────
run_first_err(): launch independent callables on worker threads, wait for
all of them, surface the first error.

Contract
─────────
  • Every callable runs to completion. Nothing is cancelled, even after
    one has failed; the callables used here are cheap, side-effect-free
    reads, so letting them finish is simpler than cancelling them.
  • Results come back in declaration order.
  • "First error" means first by COMPLETION time, not declaration order.
    When more than one callable fails, which error is surfaced depends on
    thread timing and is not deterministic. Callers that need a stable
    error under multiple failures must not rely on which one wins.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List, Optional


def run_first_err(*fns: Callable[[], Any], max_workers: Optional[int] = None) -> List[Any]:
    """
    Run `fns` in parallel and join.

    Args:
        *fns:        Zero-argument callables.
        max_workers: Thread pool size. Defaults to one thread per callable.

    Returns:
        The callables' return values, in the order they were passed.

    Raises:
        The first exception raised by any callable, by completion time,
        after all callables have finished.
    """
    if not fns:
        return []

    first_error: Optional[BaseException] = None
    results: Dict[int, Any] = {}

    # Leaving the `with` block waits for every submitted callable.
    with ThreadPoolExecutor(max_workers=max_workers or len(fns)) as pool:
        futures: Dict[Future, int] = {pool.submit(fn): i for i, fn in enumerate(fns)}
        for future in as_completed(futures):
            err = future.exception()
            if err is not None:
                if first_error is None:
                    first_error = err
                continue
            results[futures[future]] = future.result()

    if first_error is not None:
        raise first_error
    return [results[i] for i in range(len(fns))]
