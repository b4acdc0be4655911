"""Handler storage.

This module holds the data structures every emitter and subscriber shares:

- **HandlerBucket**: the handlers registered at one priority for one event.
  Plain callables added with ``subscribe`` live in ``handlers``; methods bound
  through ``Excevent`` declarations live in ``references``, grouped by method
  name, so each subscribing instance can remove exactly its own entry.
- **EventRegistry**: event name -> ``PriorityMap[HandlerBucket]``. Empty
  buckets and empty events are pruned eagerly, so presence of an event entry
  means "this event has subscribers".
- **IdentityMap**: an identity-keyed side table used instead of storing
  hidden attributes on user classes and instances.
- **HostRecord**: the registries attached to a host class or host instance
  from the outside (``Excevent`` bindings and event buses).
"""

import weakref
from collections.abc import Callable, Hashable, Iterator
from enum import Enum
from functools import partial
from typing import Any

from .priority_map import Priority, PriorityMap

BUS_KEY_TYPES = (str, bytes, int, float, Enum)


def is_bus_key(source: Any) -> bool:
    """Whether ``source`` names an event bus rather than a host class or instance."""
    return isinstance(source, BUS_KEY_TYPES)


def identity_key(obj: Any) -> tuple[bool, Hashable]:
    """Key ``obj`` by value if it is a bus key, otherwise by identity."""
    if is_bus_key(obj):
        return (True, obj)
    return (False, id(obj))


class _StrongRef:
    """Stand-in for ``weakref.ref`` for objects that cannot be weakly referenced."""

    def __init__(self, obj: Any) -> None:
        self._obj = obj

    def __call__(self) -> Any:
        return self._obj


class IdentityMap[K, V]:
    """Mapping keyed by object identity.

    Bus keys (strings, numbers, enum members) are compared by value. Entries
    whose key can be weakly referenced are dropped when the key is collected;
    other keys are held strongly.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[bool, Hashable], tuple[Callable[[], K | None], V]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return identity_key(key) in self._entries

    def get(self, key: K, default: V | None = None) -> V | None:
        entry = self._entries.get(identity_key(key))
        return default if entry is None else entry[1]

    def set(self, key: K, value: V) -> None:
        ident = identity_key(key)
        self._entries[ident] = (self._reference(ident, key), value)

    def setdefault(self, key: K, factory: Callable[[], V]) -> V:
        ident = identity_key(key)
        entry = self._entries.get(ident)
        if entry is None:
            entry = self._entries[ident] = (self._reference(ident, key), factory())
        return entry[1]

    def pop(self, key: K, default: V | None = None) -> V | None:
        entry = self._entries.pop(identity_key(key), None)
        return default if entry is None else entry[1]

    def items(self) -> Iterator[tuple[K, V]]:
        for ref, value in list(self._entries.values()):
            key = ref()
            if key is not None:
                yield key, value

    def keys(self) -> Iterator[K]:
        for key, _ in self.items():
            yield key

    def values(self) -> Iterator[V]:
        for _, value in self.items():
            yield value

    def _reference(self, ident: tuple[bool, Hashable], key: K) -> Callable[[], K | None]:
        if ident[0]:
            return _StrongRef(key)
        try:
            return weakref.ref(key, partial(self._forget, ident))
        except TypeError:
            return _StrongRef(key)

    def _forget(self, ident: tuple[bool, Hashable], ref: weakref.ref) -> None:
        entry = self._entries.get(ident)
        if entry is not None and entry[0] is ref:
            del self._entries[ident]


class HandlerBucket:
    """Handlers registered at a single priority of a single event."""

    def __init__(self) -> None:
        # dicts double as insertion-ordered sets
        self.handlers: dict[Callable[..., Any], None] = {}
        self.references: dict[str, dict[int, tuple[Any, Callable[..., Any]]]] = {}

    def __repr__(self) -> str:
        return f"HandlerBucket(handlers={len(self.handlers)}, references={list(self.references)})"

    def is_empty(self) -> bool:
        return not self.handlers and not self.references

    def add_handler(self, handler: Callable[..., Any]) -> None:
        self.handlers[handler] = None

    def remove_handler(self, handler: Callable[..., Any]) -> bool:
        return self.handlers.pop(handler, _MISSING) is not _MISSING

    def add_reference(self, name: str, owner: Any, bound: Callable[..., Any]) -> None:
        """Register ``bound`` (the method ``name`` of ``owner``) in this bucket."""
        self.references.setdefault(name, {})[id(owner)] = (owner, bound)

    def remove_reference(self, name: str, owner: Any) -> bool:
        """Remove the reference of ``owner`` under ``name``, dropping empty groups."""
        owners = self.references.get(name)
        if owners is None or owners.pop(id(owner), None) is None:
            return False

        if not owners:
            del self.references[name]
        return True

    def invocations(self) -> Iterator[Callable[..., Any]]:
        """Yield the callables to invoke, in dispatch order.

        Plain handlers come first, then references grouped by method name in
        registration order, each group in subscription order. Iteration runs
        over a snapshot, but an entry removed before its turn is skipped, so
        handlers may unsubscribe their siblings during dispatch.
        """
        for handler in list(self.handlers):
            if handler in self.handlers:
                yield handler

        for name, owners in list(self.references.items()):
            for key, (_, bound) in list(owners.items()):
                current = self.references.get(name, {}).get(key)
                if current is not None and current[1] is bound:
                    yield bound


class EventRegistry:
    """Handlers of one host, host class or bus, keyed by event."""

    def __init__(self) -> None:
        self._events: dict[Hashable, PriorityMap[HandlerBucket]] = {}

    def __repr__(self) -> str:
        return f"EventRegistry(events={list(self._events)})"

    def __contains__(self, event: object) -> bool:
        return event in self._events

    def __len__(self) -> int:
        return len(self._events)

    def events(self) -> list[Hashable]:
        """Events that currently have at least one handler."""
        return list(self._events)

    def has_subscribers(self, event: Hashable) -> bool:
        return event in self._events

    def get(self, event: Hashable, create: bool = False) -> PriorityMap[HandlerBucket] | None:
        """Return the buckets of ``event``, optionally creating the entry."""
        buckets = self._events.get(event)
        if buckets is None and create:
            buckets = self._events[event] = PriorityMap()
        return buckets

    def bucket(self, event: Hashable, priority: Priority, create: bool = True) -> HandlerBucket | None:
        """Return the bucket of ``event`` at ``priority``, optionally creating it."""
        buckets = self.get(event, create)
        if buckets is None:
            return None
        if create:
            return buckets.get_or_default(priority, HandlerBucket, assign=True)
        return buckets.get(priority)

    def prune(self, event: Hashable, priority: Priority) -> None:
        """Drop the bucket at ``priority`` if empty, then the event if it has no buckets."""
        buckets = self._events.get(event)
        if buckets is None:
            return

        bucket = buckets.get(priority)
        if bucket is not None and bucket.is_empty():
            buckets.remove(priority)

        if not buckets.has_any():
            del self._events[event]

    def add_handler(self, event: Hashable, priority: Priority, handler: Callable[..., Any]) -> None:
        self.bucket(event, priority).add_handler(handler)

    def remove_handler(self, event: Hashable, priority: Priority, handler: Callable[..., Any]) -> bool:
        bucket = self.bucket(event, priority, create=False)
        if bucket is None:
            return False

        removed = bucket.remove_handler(handler)
        self.prune(event, priority)
        return removed

    def add_reference(self, event: Hashable, priority: Priority, name: str, owner: Any, bound: Callable[..., Any]) -> None:
        self.bucket(event, priority).add_reference(name, owner, bound)

    def remove_reference(self, event: Hashable, priority: Priority, name: str, owner: Any) -> bool:
        bucket = self.bucket(event, priority, create=False)
        if bucket is None:
            return False

        removed = bucket.remove_reference(name, owner)
        self.prune(event, priority)
        return removed


class HostRecord:
    """Registries attached to a host class or host instance from the outside."""

    def __init__(self) -> None:
        self.subscriptions = EventRegistry()
        self.buses: dict[Hashable, EventRegistry] = {}

    def registries(self) -> list[EventRegistry]:
        """The host's own external registry followed by its bus registries."""
        return [self.subscriptions, *self.buses.values()]


_hosts: IdentityMap[Any, HostRecord] = IdentityMap()


def get_host_record(host: Any, create: bool = True) -> HostRecord | None:
    """Return the ``HostRecord`` of a host class or instance."""
    if create:
        return _hosts.setdefault(host, HostRecord)
    return _hosts.get(host)


def external_registries(host: Any) -> list[EventRegistry]:
    """Registries an emitter on ``host`` merges besides its own.

    Order: the instance's record, then one record per class of the host's MRO.
    """
    registries: list[EventRegistry] = []
    for source in (host, *type(host).__mro__):
        record = _hosts.get(source)
        if record is not None:
            registries.extend(record.registries())
    return registries


_MISSING = object()

__all__ = [
    "EventRegistry",
    "HandlerBucket",
    "HostRecord",
    "IdentityMap",
    "external_registries",
    "get_host_record",
    "identity_key",
    "is_bus_key",
]
