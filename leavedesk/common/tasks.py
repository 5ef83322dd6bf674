"""Fire-and-forget dispatch of side effects (email, mailbox) after a transition.

Side effects are queued on the request's ``BackgroundTasks`` and run after
the response is sent, so a slow or failing collaborator cannot change the
outcome of the transition that triggered it.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from fastapi import BackgroundTasks

logger = logging.getLogger(__name__)


async def run_safely(func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> None:
    """Await *func* and log any failure instead of raising it."""
    name = getattr(func, "__qualname__", repr(func))
    try:
        await func(*args, **kwargs)
    except Exception:
        logger.exception("Background task %s failed", name)


def dispatch(
    background: Optional[BackgroundTasks],
    func: Callable[..., Awaitable[Any]],
    *args: Any,
    **kwargs: Any,
) -> None:
    """Queue *func* on *background*; without a runner the side effect is skipped."""
    if background is None:
        logger.debug(
            "No background runner; skipping %s",
            getattr(func, "__qualname__", repr(func)),
        )
        return
    background.add_task(run_safely, func, *args, **kwargs)
