"""Cross-object subscription registry.

``Excevent`` lets classes declare which of their methods handle which events
before any instance exists. A declaration names an event *source*:

- a **bus key** (a string, number or enum member) for an event bus; hosts
  assigned to the bus with ``register_bus`` or the ``bus`` decorator merge the
  bus handlers into their own dispatch
- a **host class**, to receive the event from every instance of that class
- a **host instance**, to receive the event from that instance only

Declarations are templates. They become live handler references when an
instance is passed to ``subscribe``, and are removed again by ``unsubscribe``.

```python
excevent = Excevent()

@excevent.bus("world")
class World(EventHost):
    pass

@excevent.auto_subscribe
class Logger:
    @excevent.handler("world", "tick", priority=10)
    def on_tick(self, api, tick):
        return tick

world = World()
logger_ = Logger()
world.event.emit("tick", 1)  # [1]
```

For bindings created at runtime, use ``create_subscriber``.
"""

import functools
from collections.abc import Callable, Hashable
from typing import Any

from loguru import logger

from .declarations import declare
from .emitter import EventList, event_list, split_priority, validate_handlers
from .priority_map import Priority
from .registry import EventRegistry, IdentityMap, get_host_record, is_bus_key


class SubscriberRecord:
    """Registrations declared by one subscriber class or ``GlobalEventSubscriber``."""

    def __init__(self) -> None:
        # method name -> source -> event -> priorities
        self.properties: dict[str, IdentityMap[Any, dict[Hashable, dict[Priority, None]]]] = {}
        # source -> plain handlers by event and priority
        self.handlers: IdentityMap[Any, EventRegistry] = IdentityMap()
        self.instances: IdentityMap[Any, None] = IdentityMap()

    def add_property(self, name: str, source: Any, event: Hashable, priority: Priority) -> None:
        by_source = self.properties.setdefault(name, IdentityMap())
        by_source.setdefault(source, dict).setdefault(event, {})[priority] = None

    def add_instance(self, instance: Any) -> bool:
        if instance in self.instances:
            return False
        self.instances.set(instance, None)
        return True

    def remove_instance(self, instance: Any) -> bool:
        if instance not in self.instances:
            return False
        self.instances.pop(instance)
        return True


_subscribers: IdentityMap[Any, SubscriberRecord] = IdentityMap()


def get_subscriber_record(subscriber: Any, create: bool = True) -> SubscriberRecord | None:
    if create:
        return _subscribers.setdefault(subscriber, SubscriberRecord)
    return _subscribers.get(subscriber)


class _Bus:
    def __init__(self) -> None:
        self.registry = EventRegistry()
        self.host: Any = None


class GlobalEventSubscriber:
    """A batch of imperatively registered handlers.

    Handlers added with ``register`` are inactive until ``subscribe`` is
    called, and ``unsubscribe`` removes the whole batch again.

    Example:
        ```python
        subscriber = excevent.create_subscriber()
        subscriber.register(World, "tick", on_tick).register("world", "stop", 5, on_stop)
        subscriber.subscribe()
        ```
    """

    def __init__(self, excevent: "Excevent") -> None:
        self.excevent = excevent

    def has_registrations(self) -> bool:
        record = get_subscriber_record(self, create=False)
        return record is not None and len(record.handlers) > 0

    def register(self, host: Any, events: EventList, *handlers: Any, priority: Priority = 0) -> "GlobalEventSubscriber":
        """Register handlers for ``events`` on ``host`` (a bus key, host class or host).

        Args:
            host: The event source
            events: An event or a list of events
            *handlers: The handlers; a leading number is taken as the priority
            priority: Priority of the handlers

        Returns:
            This subscriber, for chaining
        """
        priority, handlers = split_priority(handlers, priority)
        validate_handlers(handlers)

        registry = get_subscriber_record(self).handlers.setdefault(host, EventRegistry)
        for event in event_list(events):
            for handler in handlers:
                registry.add_handler(event, priority, handler)

        return self

    def subscribe(self) -> "GlobalEventSubscriber":
        self.excevent.subscribe(self)
        return self

    def unsubscribe(self) -> "GlobalEventSubscriber":
        self.excevent.unsubscribe(self)
        return self


class Excevent:
    """Registry resolving declared handlers against buses, host classes and hosts."""

    def __init__(self) -> None:
        self._buses: dict[Hashable, _Bus] = {}

    def create_subscriber(self) -> GlobalEventSubscriber:
        return GlobalEventSubscriber(self)

    def is_subscribed(self, instance: Any) -> bool:
        record = get_subscriber_record(self._subscriber_key(instance), create=False)
        return record is not None and instance in record.instances

    def subscribe(self, instance: Any) -> None:
        """Activate every handler declared for ``instance``.

        Declarations of the instance's class and all of its bases are bound to
        the instance and inserted into their target registries. Subscribing an
        instance twice, or None, does nothing.
        """
        if instance is None:
            return

        if not get_subscriber_record(self._subscriber_key(instance)).add_instance(instance):
            return

        count = 0
        for record in self._records(instance):
            for name, by_source in record.properties.items():
                bound = getattr(instance, name)
                for source, events in by_source.items():
                    registry = self._resolve(source)
                    for event, priorities in events.items():
                        for priority in priorities:
                            registry.add_reference(event, priority, name, instance, bound)
                            count += 1

            for source, handlers in record.handlers.items():
                registry = self._resolve(source)
                for event, priority, handler in self._handlers_of(handlers):
                    registry.add_handler(event, priority, handler)
                    count += 1

        logger.debug(f"Subscribed {type(instance).__name__} with {count} binding(s)")

    def unsubscribe(self, instance: Any) -> None:
        """Deactivate every handler previously activated by ``subscribe(instance)``.

        Emptied priorities and events are pruned from their registries.
        Unsubscribing an instance that is not subscribed does nothing.
        """
        if instance is None:
            return

        record = get_subscriber_record(self._subscriber_key(instance), create=False)
        if record is None or not record.remove_instance(instance):
            return

        for record in self._records(instance):
            for name, by_source in record.properties.items():
                for source, events in by_source.items():
                    registry = self._resolve(source, create=False)
                    if registry is None:
                        continue
                    for event, priorities in events.items():
                        for priority in priorities:
                            registry.remove_reference(event, priority, name, instance)

            for source, handlers in record.handlers.items():
                registry = self._resolve(source, create=False)
                if registry is None:
                    continue
                for event, priority, handler in self._handlers_of(handlers):
                    registry.remove_handler(event, priority, handler)

        logger.debug(f"Unsubscribed {type(instance).__name__}")

    def register_bus(self, bus: Hashable, host: Any) -> None:
        """Assign ``bus`` to a host class or host instance.

        Emitters of that host (or of instances of that class) merge the bus
        handlers into their dispatch. A bus is assigned to one host at a time.
        """
        self.deregister_bus(bus)

        registered = self._get_bus(bus)
        registered.host = host
        get_host_record(host).buses[bus] = registered.registry
        logger.debug(f"Registered bus {bus!r} on {getattr(host, '__name__', type(host).__name__)}")

    def deregister_bus(self, bus: Hashable) -> None:
        registered = self._buses.get(bus)
        if registered is None or registered.host is None:
            return

        record = get_host_record(registered.host, create=False)
        if record is not None:
            record.buses.pop(bus, None)
        registered.host = None

    def handler(self, source: Any, events: EventList, priority: Priority = 0) -> Callable[[Any], Any]:
        """Decorator declaring a method as handler of ``events`` from ``source``.

        Decorators can be stacked to bind one method to several sources.

        Args:
            source: A bus key, host class or host instance
            events: An event or a list of events
            priority: Priority of the handler
        """

        def decorator(func: Any) -> Any:
            def record(owner: type, name: str) -> None:
                subscriber = get_subscriber_record(owner)
                for event in event_list(events):
                    subscriber.add_property(name, source, event, priority)

            return declare(func, record)

        return decorator

    def bus(self, bus: Hashable) -> Callable[[type], type]:
        """Class decorator assigning ``bus`` to the decorated host class."""

        def decorator(cls: type) -> type:
            self.register_bus(bus, cls)
            return cls

        return decorator

    def auto_subscribe(self, cls: type) -> type:
        """Class decorator subscribing every new instance once constructed."""
        original_init = cls.__init__

        @functools.wraps(original_init)
        def __init__(instance: Any, *args: Any, **kwargs: Any) -> None:
            original_init(instance, *args, **kwargs)
            self.subscribe(instance)

        cls.__init__ = __init__
        return cls

    def _get_bus(self, bus: Hashable) -> _Bus:
        registered = self._buses.get(bus)
        if registered is None:
            registered = self._buses[bus] = _Bus()
        return registered

    def _resolve(self, source: Any, create: bool = True) -> EventRegistry | None:
        if is_bus_key(source):
            if create:
                return self._get_bus(source).registry
            registered = self._buses.get(source)
            return registered.registry if registered is not None else None

        record = get_host_record(source, create)
        return record.subscriptions if record is not None else None

    @staticmethod
    def _subscriber_key(instance: Any) -> Any:
        return instance if isinstance(instance, GlobalEventSubscriber) else type(instance)

    @staticmethod
    def _records(instance: Any) -> list[SubscriberRecord]:
        if isinstance(instance, GlobalEventSubscriber):
            record = get_subscriber_record(instance, create=False)
            return [record] if record is not None else []

        records = []
        for cls in type(instance).__mro__:
            record = get_subscriber_record(cls, create=False)
            if record is not None:
                records.append(record)
        return records

    @staticmethod
    def _handlers_of(registry: EventRegistry) -> list[tuple[Hashable, Priority, Callable[..., Any]]]:
        handlers = []
        for event in registry.events():
            buckets = registry.get(event)
            for priority in buckets.get_priorities():
                handlers.extend((event, priority, handler) for handler in buckets.get(priority).handlers)
        return handlers
