"""
Best-effort event bus for sync progress and results.

Event names are prefixed by the transport:

    ssh-sync-progress    SyncProgress
    ssh-sync-completed   SyncResult
    ssh-sync-warning     str
    wsl-skills-changed   list[str]

Delivery is synchronous and fire-and-forget: a failing listener is logged
and never affects the sync run.
"""

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

SYNC_PROGRESS = "sync-progress"
SYNC_COMPLETED = "sync-completed"
SYNC_WARNING = "sync-warning"
SKILLS_CHANGED = "skills-changed"


def event_name(prefix: str, kind: str) -> str:
    """``event_name("ssh", SYNC_PROGRESS) -> "ssh-sync-progress"``."""
    return f"{prefix}-{kind}" if prefix else kind


@dataclass
class Event:
    """A published event."""

    name: str
    payload: Any
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


Listener = Callable[[Event], None]


class EventBus:
    """Registry of listeners keyed by event name ("*" receives everything)."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._lock = threading.Lock()

    def subscribe(self, name: str, listener: Listener) -> None:
        with self._lock:
            self._listeners.setdefault(name, []).append(listener)

    def unsubscribe(self, name: str, listener: Listener) -> bool:
        with self._lock:
            listeners = self._listeners.get(name, [])
            if listener in listeners:
                listeners.remove(listener)
                return True
        return False

    def emit(self, name: str, payload: Any = None) -> None:
        with self._lock:
            listeners = [*self._listeners.get(name, []), *self._listeners.get("*", [])]
        if not listeners:
            return

        event = Event(name=name, payload=payload)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Event listener failed for {name}: {e}")
