"""
Concurrent fan-out across the three profile partitions.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from shared.metrics import MetricsCollector
from .models import ROLE_PRECEDENCE, Role


async def gather_partitions(
    partitions: Mapping[Role, Any],
    call: Callable[[Any], Awaitable[Any]],
    logger,
    metrics: Optional[MetricsCollector] = None,
    operation: str = "lookup",
) -> Tuple[Dict[Role, Any], List[Role]]:
    """Run ``call`` against every partition at once.

    Returns the per-role results of the calls that succeeded and the roles
    whose call raised. A failure is logged and counted but never propagated;
    deciding what "all failed" means is up to the caller. Cancellation is
    re-raised.
    """
    roles = [role for role in ROLE_PRECEDENCE if role in partitions]
    outcomes = await asyncio.gather(
        *(call(partitions[role]) for role in roles),
        return_exceptions=True
    )

    results: Dict[Role, Any] = {}
    failed: List[Role] = []
    for role, outcome in zip(roles, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.warning(
                "Partition call failed",
                operation=operation,
                partition=role.partition,
                error=str(outcome)
            )
            if metrics:
                metrics.increment_counter("partition_read_failures_total", partition=role.partition)
            failed.append(role)
        else:
            results[role] = outcome

    return results, failed
