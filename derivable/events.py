"""
Derivable Events - Per-Instance Publish/Subscribe
=================================================

Every model and collection owns an ``EventBus``. Listeners are plain callables
registered per event name; the special ``"all"`` event receives every event
name followed by the original arguments, which is how collections re-emit the
events of their members.

Events used by the model layer:

- ``change`` / ``change:<attr>`` after a calculation pass settles
- ``commit`` / ``commit:<attr>`` when values are committed
- ``calculate`` when a model starts a new calculation pass
- ``add`` / ``remove`` / ``reset`` for collection membership
- ``destruct`` when a model or collection is torn down

Example:
    ```python
    bus = EventBus()

    @bus.on("change")
    def on_change(model):
        print("changed", model)

    bus.trigger("change", model)
    ```
"""

from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

ALL_EVENTS = "all"


class EventBus:
    """Ordered listener registry with snapshot dispatch."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Callable]] = defaultdict(list)

    def on(self, event: str, callback: Optional[Callable] = None):
        """Register ``callback`` for ``event``. Works as a decorator without ``callback``."""
        if callback is None:

            def decorator(func: Callable) -> Callable:
                self._listeners[event].append(func)
                return func

            return decorator

        self._listeners[event].append(callback)
        return callback

    def once(self, event: str, callback: Callable) -> Callable:
        """Register a listener that removes itself after the first call."""

        def wrapper(*args: Any) -> Any:
            self.off(event, wrapper)
            return callback(*args)

        wrapper.__wrapped__ = callback
        self._listeners[event].append(wrapper)
        return wrapper

    def off(self, event: Optional[str] = None, callback: Optional[Callable] = None) -> None:
        """
        Remove listeners.

        With no arguments every listener goes; with only ``event`` every listener of
        that event goes; otherwise the first registration of ``callback`` is removed.
        """
        if event is None:
            self._listeners.clear()
            return

        if callback is None:
            self._listeners.pop(event, None)
            return

        listeners = self._listeners.get(event)
        if not listeners:
            return
        for index, listener in enumerate(listeners):
            if listener == callback or getattr(listener, "__wrapped__", None) == callback:
                del listeners[index]
                break
        if not listeners:
            del self._listeners[event]

    def has_listeners(self, event: Optional[str] = None) -> bool:
        if event is None:
            return any(self._listeners.values())
        return bool(self._listeners.get(event))

    def trigger(self, event: str, *args: Any) -> None:
        """Call the listeners of ``event``, then the ``"all"`` listeners."""
        # Snapshot so listeners can unsubscribe while we dispatch
        for listener in tuple(self._listeners.get(event, ())):
            listener(*args)

        if event != ALL_EVENTS:
            for listener in tuple(self._listeners.get(ALL_EVENTS, ())):
                listener(event, *args)


class EventsMixin:
    """Gives a class ``on``/``off``/``once``/``trigger`` backed by its own bus."""

    _events: EventBus

    def on(self, event: str, callback: Optional[Callable] = None):
        return self._events.on(event, callback)

    def once(self, event: str, callback: Callable) -> Callable:
        return self._events.once(event, callback)

    def off(self, event: Optional[str] = None, callback: Optional[Callable] = None) -> None:
        self._events.off(event, callback)

    def trigger(self, event: str, *args: Any) -> None:
        self._events.trigger(event, *args)
