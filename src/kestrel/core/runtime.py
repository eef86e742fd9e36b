from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from kestrel.config import get_settings
from kestrel.core.events import EventBus

if TYPE_CHECKING:
    from kestrel.core.controller import AutomationController

_EVENT_BUS: EventBus | None = None
_CONTROLLERS: dict[str, AutomationController] = {}
_START_LOCKS: dict[str, asyncio.Lock] = {}


def get_event_bus() -> EventBus:
    global _EVENT_BUS
    if _EVENT_BUS is None:
        _EVENT_BUS = EventBus(history_size=get_settings().event_history_size)
    return _EVENT_BUS


def get_controller(owner_id: str) -> AutomationController | None:
    return _CONTROLLERS.get(owner_id)


def register_controller(controller: AutomationController) -> None:
    _CONTROLLERS[controller.owner_id] = controller


def start_lock(owner_id: str) -> asyncio.Lock:
    """Serializes start requests for one owner so only one run can be launched at a time."""
    lock = _START_LOCKS.get(owner_id)
    if lock is None:
        lock = _START_LOCKS[owner_id] = asyncio.Lock()
    return lock
