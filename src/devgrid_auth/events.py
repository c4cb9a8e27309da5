"""Session-change notifications.

:class:`SessionChangeEmitter` is a minimal observer: listeners subscribe with
a callable and receive every
:class:`~devgrid_auth.models.SessionChangeEvent` synchronously, in
subscription order. The orchestrator fires only after the mutation has been
persisted.
"""

from __future__ import annotations

import logging
from typing import Callable

from devgrid_auth.models import SessionChangeEvent

logger = logging.getLogger(__name__)

SessionListener = Callable[[SessionChangeEvent], None]


class SessionChangeEmitter:
    """Broadcast :class:`SessionChangeEvent` to subscribed listeners."""

    def __init__(self) -> None:
        self._listeners: list[SessionListener] = []

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register *listener* and return a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def fire(self, event: SessionChangeEvent) -> None:
        """Deliver *event* to every listener.

        A listener that raises is logged and skipped so the remaining
        listeners still see the event; the mutation it reports has already
        been persisted.
        """
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.warning("Session change listener %r failed: %s", listener, exc)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
