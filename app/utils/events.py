"""Best-effort delivery of progress events to sync or async callbacks."""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

EventSink = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


async def emit(sink: Optional[EventSink], payload: Dict[str, Any]) -> None:
    """Deliver an event; a failing or disconnected sink never stalls the caller"""
    if sink is None:
        return
    try:
        result = sink(payload)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.warning(
            f"Progress sink rejected event {payload.get('type') or payload.get('step')}: {e}"
        )
