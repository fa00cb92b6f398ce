# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/deckhand/utils/parallel.py
from __future__ import annotations

import concurrent.futures
from typing import Callable, List, Sequence, TypeVar

from ..errors import MultiError

T = TypeVar("T")
R = TypeVar("R")


def parallel_map(
    fn: Callable[[T], R],
    items: Sequence[T],
    parallelism: int,
    header: str = "",
) -> List[R]:
    """
    Run fn over items with at most `parallelism` workers.

    Results come back in input order. Every item runs even when some fail;
    all failures are raised together as a MultiError.
    """
    items = list(items)
    if not items:
        return []

    if len(items) == 1 or parallelism <= 1:
        results: List[R] = []
        errors: List[BaseException] = []
        for item in items:
            try:
                results.append(fn(item))
            except Exception as e:
                errors.append(e)
        if errors:
            raise MultiError(errors, header)
        return results

    out: List[R] = [None] * len(items)  # type: ignore[list-item]
    errors = []
    with concurrent.futures.ThreadPoolExecutor(max_workers=min(parallelism, len(items))) as pool:
        futures = {pool.submit(fn, item): i for i, item in enumerate(items)}
        for fut in concurrent.futures.as_completed(futures):
            try:
                out[futures[fut]] = fut.result()
            except Exception as e:
                errors.append(e)
    if errors:
        raise MultiError(errors, header)
    return out
