"""Manual request approval for Patchwork proxy."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .errors import ApprovalRejected

logger = logging.getLogger(__name__)


def prompt_terminal() -> bool:
    answer = input("Accept incoming request? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


async def await_approval(approver: Optional[Callable[[], Awaitable[bool]]] = None) -> None:
    """
    Block until the operator accepts the request.

    The default approver asks on the proxy's terminal, off the event loop.
    Raises ApprovalRejected when the request is refused.
    """
    if approver is None:
        accepted = await asyncio.to_thread(prompt_terminal)
    else:
        accepted = await approver()

    if not accepted:
        logger.warning("Request rejected by operator")
        raise ApprovalRejected("Request rejected")
