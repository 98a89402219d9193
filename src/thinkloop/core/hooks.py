"""
Hook Manager - typed publish/subscribe for lifecycle events.

Handlers are registered per HookEvent and invoked sequentially in
registration order; each handler is awaited before the next one runs, so
emission is synchronous relative to the emitting code. A failing handler is
logged and skipped.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any, Union

import structlog

from thinkloop.core.domain.events import PAYLOAD_TYPES, HookEvent

HookHandler = Callable[[Any], Union[Awaitable[None], None]]
Unregister = Callable[[], None]


class HookManager:
    """
    Registry and dispatcher for lifecycle hooks.

    Example:
        >>> hooks = HookManager()
        >>> unregister = hooks.on(HookEvent.TOOL_AFTER, lambda p: print(p.result))
        >>> unregister()  # detach deterministically
    """

    def __init__(self, logger: Any = None):
        self._registry: dict[HookEvent, list[HookHandler]] = {}
        self.logger = logger or structlog.get_logger().bind(component="hooks")

    def on(self, event: HookEvent | str, handler: HookHandler) -> Unregister:
        """
        Register a handler.

        Args:
            event: Event tag (enum member or its string value)
            handler: Sync or async callable receiving the event payload

        Returns:
            Callable that removes this registration (idempotent)
        """
        tag = HookEvent(event)
        self._registry.setdefault(tag, []).append(handler)

        def unregister() -> None:
            self.off(tag, handler)

        return unregister

    def once(self, event: HookEvent | str, handler: HookHandler) -> Unregister:
        """Register a handler that detaches itself after its first invocation."""
        tag = HookEvent(event)

        async def disposable(payload: Any) -> None:
            self.off(tag, disposable)
            result = handler(payload)
            if inspect.isawaitable(result):
                await result

        return self.on(tag, disposable)

    def off(self, event: HookEvent | str, handler: HookHandler) -> None:
        tag = HookEvent(event)
        listeners = self._registry.get(tag)
        if not listeners:
            return
        if handler in listeners:
            listeners.remove(handler)
        if not listeners:
            del self._registry[tag]

    def clear(self) -> None:
        self._registry.clear()

    def listener_count(self, event: HookEvent | str | None = None) -> int:
        if event is not None:
            return len(self._registry.get(HookEvent(event), []))
        return sum(len(listeners) for listeners in self._registry.values())

    def register_many(
        self, registrations: list[tuple[HookEvent | str, HookHandler]]
    ) -> Unregister:
        """Register several handlers at once; the returned callable removes all of them."""
        cleanups = [self.on(event, handler) for event, handler in registrations]

        def unregister_all() -> None:
            for cleanup in cleanups:
                cleanup()

        return unregister_all

    async def emit(self, event: HookEvent, payload: Any) -> None:
        """
        Dispatch a payload to every handler of an event.

        Args:
            event: Event tag
            payload: Payload instance of the type declared for the tag

        Raises:
            TypeError: If the payload type does not match the event tag
        """
        expected = PAYLOAD_TYPES[event]
        if not isinstance(payload, expected):
            raise TypeError(
                f"Event {event.value} expects {expected.__name__}, "
                f"got {type(payload).__name__}"
            )

        # Snapshot so handlers may (un)register during dispatch
        listeners = list(self._registry.get(event, []))
        for index, listener in enumerate(listeners):
            try:
                result = listener(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.logger.warning(
                    "hook_handler_failed",
                    hook_event=event.value,
                    handler_index=index,
                    error=str(e),
                    error_type=type(e).__name__,
                )
