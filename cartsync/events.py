"""
State-changed and notice events for UI subscribers.

The engine never talks to a renderer directly: it emits StateChanged after
every change to an EngineState and Notice for user-facing soft messages.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional

from cartsync.logging import get_logger
from cartsync.models import EngineState, SessionContext

logger = get_logger(__name__)

NOTICE_INFO = "info"
NOTICE_SUCCESS = "success"
NOTICE_WARNING = "warning"
NOTICE_ERROR = "error"


@dataclass(frozen=True)
class StateChanged:
    context: SessionContext
    state: EngineState
    reason: str = ""


@dataclass(frozen=True)
class Notice:
    level: str
    message: str
    code: Optional[str] = None


StateListener = Callable[[StateChanged], None]
NoticeListener = Callable[[Notice], None]


class EventHub:
    """Fan-out of engine events to subscribers."""

    def __init__(self):
        self._state_listeners: List[StateListener] = []
        self._notice_listeners: List[NoticeListener] = []

    def subscribe_state(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; returns an unsubscribe callable."""
        self._state_listeners.append(listener)
        return lambda: self._discard(self._state_listeners, listener)

    def subscribe_notices(self, listener: NoticeListener) -> Callable[[], None]:
        """Register a notice listener; returns an unsubscribe callable."""
        self._notice_listeners.append(listener)
        return lambda: self._discard(self._notice_listeners, listener)

    @staticmethod
    def _discard(listeners: list, listener) -> None:
        if listener in listeners:
            listeners.remove(listener)

    def state_changed(self, state: EngineState, reason: str = "") -> None:
        event = StateChanged(context=state.context, state=state, reason=reason)
        for listener in list(self._state_listeners):
            try:
                listener(event)
            except Exception:
                # A broken renderer must not break the engine
                logger.exception("State listener failed for %s", reason or "change")

    def notify(self, level: str, message: str, code: Optional[str] = None) -> None:
        notice = Notice(level=level, message=message, code=code)
        for listener in list(self._notice_listeners):
            try:
                listener(notice)
            except Exception:
                logger.exception("Notice listener failed")
