"""Correlation-id request channel for round-trips to the in-page scene bridge."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable

from core.config import cfg
from core.errors import BridgeTimeout

logger = logging.getLogger("scene-pilot")


class RequestChannel:
    """Pairs each outgoing request with the reply carrying the same id.

    ``request`` registers a future, hands the id to ``send`` and waits for
    ``resolve``/``reject`` to be called with that id. Replies for unknown or
    already finished ids are dropped.
    """

    def __init__(self, timeout: float | None = None):
        self._timeout = timeout
        self._pending: dict[str, asyncio.Future] = {}

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def request(
        self,
        send: Callable[[str], Awaitable[None]],
        timeout: float | None = None,
        *,
        op: str = "request",
    ) -> Any:
        timeout = timeout if timeout is not None else (self._timeout or cfg.bridge_timeout)
        cid = uuid.uuid4().hex
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[cid] = future
        try:
            await send(cid)
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError as exc:
            raise BridgeTimeout(f"{op} timed out after {timeout:g}s", op=op, correlation_id=cid) from exc
        finally:
            self._pending.pop(cid, None)

    def resolve(self, cid: str, payload: Any) -> bool:
        future = self._pending.get(cid)
        if future is None or future.done():
            logger.debug("Dropping reply for unknown correlation id %s", cid)
            return False
        future.set_result(payload)
        return True

    def reject(self, cid: str, exc: BaseException) -> bool:
        future = self._pending.get(cid)
        if future is None or future.done():
            return False
        future.set_exception(exc)
        return True

    def fail_all(self, exc: BaseException) -> int:
        """Fail every outstanding request, e.g. when the page goes away."""
        failed = 0
        for future in list(self._pending.values()):
            if not future.done():
                future.set_exception(exc)
                failed += 1
        self._pending.clear()
        return failed
