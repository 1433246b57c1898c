"""Iteration policies for multi-container operations.

Write operations stop at the first failure; read operations skip failures and
return what resolved. The two policies are kept as separate functions so each
call site names the policy it relies on.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TypeVar

from deploykeeper.core.errors import DeployKeeperError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def for_each_stop_on_first_error(
    names: Iterable[str],
    action: Callable[[str], object],
    label: str,
) -> None:
    """Run ``action`` for each name in order, aborting on the first failure.

    Names after the failing one are never invoked. The original exception is
    re-raised unchanged.
    """
    for name in names:
        try:
            action(name)
        except Exception as e:
            logger.error(f"Failed to {label} container '{name}': {e}")
            raise


def for_each_collect_successes(
    names: Iterable[str],
    action: Callable[[str], T],
    label: str,
) -> list[T]:
    """Run ``action`` for each name, skipping names whose call fails.

    Only supervisor errors are tolerated; programming errors still propagate.
    """
    results: list[T] = []
    for name in names:
        try:
            results.append(action(name))
        except DeployKeeperError as e:
            logger.warning(f"Failed to {label} for container '{name}': {e}")
    return results
