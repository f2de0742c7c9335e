"""
Fire-and-forget helper for side channels (event logging, re-triggers).

The wrapped call is attempted once; a failure is logged with its traceback
and reported as ``None`` to the caller, never raised.
"""
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")

logger = logging.getLogger("tenderflow.best_effort")


def attempt(label: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T | None:
    try:
        return fn(*args, **kwargs)
    except Exception:
        logger.warning("Best-effort call failed: %s", label, exc_info=True)
        return None
