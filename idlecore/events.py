"""Synchronous publish/subscribe between engine components.

Every engine instance owns its own :class:`EventBus`; nothing is global.
``emit`` runs all handlers to completion before returning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], None]

# Event names used by the engine
GAME_TICK = "game:tick"
GAME_START = "game:start"
GAME_PAUSE = "game:pause"
GAME_RESUME = "game:resume"
GAME_SAVE = "game:save"
GAME_LOAD = "game:load"
GAME_RESET = "game:reset"
GAME_ERROR = "game:error"

RESOURCE_CHANGED = "resource:changed"
RESOURCE_GAINED = "resource:gained"
RESOURCE_SPENT = "resource:spent"
RESOURCE_MAXED = "resource:maxed"
RESOURCE_UNLOCKED = "resource:unlocked"

BUILDING_PURCHASED = "building:purchased"
BUILDING_UNLOCKED = "building:unlocked"
BUILDING_MAXED = "building:maxed"
BUILDING_REMOVED = "building:removed"
BUILDING_HEALTH_CHANGED = "building:health:changed"
BUILDING_HEALTH_REGEN = "building:health:regen"
BUILDING_DIED = "building:died"
BUILDING_DISABLED = "building:disabled"
BUILDING_BATCH_COMPLETE = "building:batch:complete"

CONSUMPTION_SHORTAGE = "consumption:shortage"

UPGRADE_PURCHASED = "upgrade:purchased"
UPGRADE_UNLOCKED = "upgrade:unlocked"

CLICK_HARVEST = "click:harvest"
ERA_UNLOCKED = "era:unlocked"
FEATURE_UNLOCKED = "feature:unlocked"
STATE_LOADED = "state:loaded"

MULTIPLIER_ADDED = "multiplier:added"
MULTIPLIER_REMOVED = "multiplier:removed"
MULTIPLIER_CHANGED = "multiplier:changed"

CLOUD_SYNC_START = "cloud:sync:start"
CLOUD_SYNC_SUCCESS = "cloud:sync:success"
CLOUD_SYNC_ERROR = "cloud:sync:error"
CLOUD_SYNC_CONFLICT = "cloud:sync:conflict"
CLOUD_LOAD_START = "cloud:load:start"
CLOUD_LOAD_SUCCESS = "cloud:load:success"
CLOUD_LOAD_ERROR = "cloud:load:error"
CLOUD_LOAD_EMPTY = "cloud:load:empty"
CLOUD_OFFLINE_PROGRESS = "cloud:offline:progress"
CLOUD_CONFLICT_RESOLVED = "cloud:conflict:resolved"

UI_NOTIFICATION = "ui:notification"


@dataclass
class _Subscription:
    id: int
    handler: Handler
    once: bool


class EventBus:
    """Per-instance event dispatcher."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[_Subscription]] = {}
        self._next_id = 1

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        """Subscribe *handler* to *event*. Returns an unsubscribe function."""
        return self._add(event, handler, once=False)

    def once(self, event: str, handler: Handler) -> Callable[[], None]:
        return self._add(event, handler, once=True)

    def emit(self, event: str, payload: dict[str, Any] | None = None) -> None:
        subs = self._subscriptions.get(event)
        if not subs:
            return
        payload = payload if payload is not None else {}
        fired_once: list[int] = []
        for sub in list(subs):
            if sub.once:
                fired_once.append(sub.id)
            try:
                sub.handler(payload)
            except Exception:
                logger.exception("Error in handler for %s", event)
        if fired_once:
            self._subscriptions[event] = [
                s for s in self._subscriptions.get(event, []) if s.id not in fired_once
            ]

    def handler_count(self, event: str) -> int:
        return len(self._subscriptions.get(event, []))

    def clear(self, event: str | None = None) -> None:
        if event is None:
            self._subscriptions.clear()
        else:
            self._subscriptions.pop(event, None)

    def _add(self, event: str, handler: Handler, once: bool) -> Callable[[], None]:
        sub_id = self._next_id
        self._next_id += 1
        self._subscriptions.setdefault(event, []).append(
            _Subscription(id=sub_id, handler=handler, once=once)
        )

        def unsubscribe() -> None:
            subs = self._subscriptions.get(event)
            if subs:
                self._subscriptions[event] = [s for s in subs if s.id != sub_id]

        return unsubscribe
