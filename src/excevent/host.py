"""Event host mixin.

Any class becomes an event host by inheriting from ``EventHost`` (or from the
base returned by ``event_host(excevent)`` when cross-host ``until`` support is
needed). Instances get an ``event`` attribute holding their ``EventEmitter``.

```python
class Player(EventHost):
    health = Emit("health_changed", default=100)

    @handles("health_changed")
    def on_health(self, api, value, name):
        return f"{name} is now {value}"

player = Player()
player.health = 50  # emits "health_changed" with (50, "health")
```
"""

from collections.abc import Callable, Hashable
from typing import Any

from .declarations import declare, record_own_handler
from .emitter import EventEmitter, EventList, event_list
from .excevent import Excevent
from .priority_map import Priority


def event_host(excevent: Excevent | None = None) -> type:
    """Return a base class attaching an ``EventEmitter`` to every instance.

    Args:
        excevent: Registry the emitters use for cross-host ``until``

    Returns:
        A new base class
    """

    class EventHost:
        def __init__(self, *args: Any, **kwargs: Any) -> None:
            self.event = EventEmitter(self, excevent)
            super().__init__(*args, **kwargs)

    return EventHost


EventHost = event_host()


def handles(events: EventList, priority: Priority = 0):
    """Decorator subscribing a host method to the host's own ``events``.

    The binding is made for every instance when its emitter is created.
    """

    def decorator(func: Any) -> Any:
        def record(owner: type, name: str) -> None:
            for event in event_list(events):
                record_own_handler(owner, event, name, priority)

        return declare(func, record)

    return decorator


class Emit:
    """Property emitting events whenever it is assigned.

    Each assignment stores the value, then emits every configured event on the
    instance's emitter with ``(value, property_name)``.

    ``default`` is returned as-is to every instance that has not assigned a
    value, so mutable defaults are shared. Use ``default_factory`` to give each
    instance its own default; it is created on first read without emitting.
    """

    def __init__(
        self,
        *events: Hashable,
        default: Any = None,
        default_factory: Callable[[], Any] | None = None,
    ) -> None:
        if default is not None and default_factory is not None:
            raise TypeError("Emit accepts either default or default_factory, not both")
        self.events = list(events)
        self.default = default
        self.default_factory = default_factory
        self.name: str | None = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            return self
        if self.name in instance.__dict__:
            return instance.__dict__[self.name]
        if self.default_factory is not None:
            return instance.__dict__.setdefault(self.name, self.default_factory())
        return self.default

    def __set__(self, instance: Any, value: Any) -> None:
        instance.__dict__[self.name] = value
        emitter = getattr(instance, "event", None)
        if isinstance(emitter, EventEmitter):
            for event in self.events:
                emitter.emit(event, value, self.name)


__all__ = ["Emit", "EventHost", "event_host", "handles"]
