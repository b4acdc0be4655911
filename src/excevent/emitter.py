"""Event emitter implementation.

Every event host owns one ``EventEmitter``. It stores the handlers subscribed
directly on the host and, on dispatch, merges them with the registries
attached to the host from the outside: ``Excevent`` bindings targeting the
host instance or any of its classes, and the event buses those are assigned
to.

## Dispatch order

Handlers run from the highest priority to the lowest across all sources. At
equal priority the host's own handlers run first, then the instance's
external registries, then those of each class in MRO order. Within one
priority of one source, plain handlers run before method references.

Every handler is called as ``handler(api, *args)`` where ``api`` is the
``EventApi`` of the dispatch.

## Usage

```python
class Door(EventHost):
    pass

door = Door()
door.event.subscribe("open", lambda api, who: f"hello {who}", priority=5)
door.event.emit("open", "alice")
# ["hello alice"]

door.event.query("open", "bob").where(lambda greeting: "bob" in greeting).get()
# "hello bob"
```
"""

import asyncio
from collections.abc import Callable, Hashable, Sequence
from typing import TYPE_CHECKING, Any

from loguru import logger

from .api import EventApi
from .core import HandlerRegistrationError, UntilSourceError
from .declarations import own_handlers
from .priority_map import Priority, PriorityMap
from .registry import EventRegistry, HandlerBucket, external_registries
from .settings import get_settings

if TYPE_CHECKING:
    from .excevent import Excevent, GlobalEventSubscriber

EventList = Hashable | Sequence[Hashable]
Handler = Callable[..., Any]
Predicate = Callable[[Any], Any]

LOWEST_PRIORITY = float("-inf")


def event_list(events: EventList) -> list[Hashable]:
    """Normalise a single event or a list/tuple of events to a list."""
    if isinstance(events, (list, tuple)):
        return list(events)
    return [events]


def split_priority(handlers: Sequence[Any], priority: Priority) -> tuple[Priority, tuple[Handler, ...]]:
    """Accept a priority given as the first positional handler argument.

    Allows both ``subscribe("e", 5, handler)`` and
    ``subscribe("e", handler, priority=5)``.
    """
    if handlers and isinstance(handlers[0], (int, float)) and not isinstance(handlers[0], bool):
        return handlers[0], tuple(handlers[1:])
    return priority, tuple(handlers)


def validate_handlers(handlers: Sequence[Any]) -> None:
    for handler in handlers:
        if not callable(handler):
            raise HandlerRegistrationError(f"Handler must be callable: {handler!r}")


def emitter_of(host: Any) -> "EventEmitter | None":
    """Return the ``EventEmitter`` attached to ``host``, if any."""
    emitter = getattr(host, "event", None)
    return emitter if isinstance(emitter, EventEmitter) else None


def _splice(outputs: list[Any]) -> list[Any]:
    flattened: list[Any] = []
    for output in outputs:
        if isinstance(output, list):
            flattened.extend(output)
        else:
            flattened.append(output)
    return flattened


class EventQuery:
    """Deferred first-match query built by ``EventEmitter.query``.

    Predicates are collected with ``where`` and only applied when ``get``
    runs the dispatch.
    """

    def __init__(self, emitter: "EventEmitter", event: Hashable, args: tuple[Any, ...]) -> None:
        self._emitter = emitter
        self._event = event
        self._args = args
        self._predicates: list[Predicate] = []

    def where(self, predicate: Predicate) -> "EventQuery":
        """Only accept results for which ``predicate`` is truthy."""
        self._predicates.append(predicate)
        return self

    def get(self, predicate: Predicate | None = None) -> Any:
        """Run the query.

        Args:
            predicate: An extra predicate for this call only

        Returns:
            The first non-None handler result passing every predicate, or None
        """
        predicates = list(self._predicates)
        if predicate is not None:
            predicates.append(predicate)
        return self._emitter._first(self._event, self._args, predicates)


class UntilSubscriber:
    """Collects subscriptions on the emitter's own host for ``until(source, event, ...)``."""

    def __init__(self) -> None:
        self.subscriptions: list[tuple[EventList, Priority, tuple[Handler, ...]]] = []

    def subscribe(self, events: EventList, *handlers: Any, priority: Priority = 0) -> "UntilSubscriber":
        priority, handlers = split_priority(handlers, priority)
        validate_handlers(handlers)
        self.subscriptions.append((events, priority, handlers))
        return self


class UntilThisSubscriber:
    """Collects subscriptions on other hosts for ``until(event, ...)``.

    Targets with an event emitter are subscribed directly. Anything else (a
    bus key, a host class, a plain object) is registered through an
    ``Excevent`` subscriber when the emitter has one.
    """

    def __init__(self, emitter: "EventEmitter", subscriber: "GlobalEventSubscriber | None") -> None:
        self._emitter = emitter
        self.subscriber = subscriber
        self.subscriptions: list[tuple[EventEmitter, EventList, Priority, tuple[Handler, ...]]] = []

    def subscribe(self, host: Any, events: EventList, *handlers: Any, priority: Priority = 0) -> "UntilThisSubscriber":
        priority, handlers = split_priority(handlers, priority)
        validate_handlers(handlers)

        target = emitter_of(host)
        if target is not None:
            self.subscriptions.append((target, events, priority, handlers))
        elif self.subscriber is not None:
            self.subscriber.register(host, events, *handlers, priority=priority)
        else:
            self._emitter._missing_source(events, host)

        return self


class EventEmitter:
    """Priority-ordered event dispatch for a single host object."""

    def __init__(self, host: Any, excevent: "Excevent | None" = None) -> None:
        """Create the emitter of ``host``.

        Methods of the host class declared with ``handles`` are subscribed
        immediately.

        Args:
            host: The object this emitter dispatches for
            excevent: Registry used for cross-host ``until`` subscriptions
        """
        self.host = host
        self.excevent = excevent
        self.subscriptions = EventRegistry()

        for event, name, priority in own_handlers(type(host)):
            self.subscriptions.add_reference(event, priority, name, host, getattr(host, name))

    def __repr__(self) -> str:
        return f"EventEmitter(host={type(self.host).__name__}, events={self.subscriptions.events()})"

    def emit(self, event: Hashable, *args: Any) -> list[Any]:
        """Dispatch ``event`` to every handler and collect their results.

        A handler returning a list has its items spliced into the result
        instead of being nested. Results of handlers that set
        ``api.disregard`` are left out, and ``api.break_`` ends the dispatch.
        Handler exceptions propagate.

        Args:
            event: The event to emit
            *args: Arguments passed to each handler after the api

        Returns:
            The collected handler results, in dispatch order
        """
        handler_lists = self._handler_lists(event)
        if not handler_lists:
            logger.trace(f"No handlers registered for {event!r} on {type(self.host).__name__}")
            return []

        api = self._create_api(event)

        def visit(api: EventApi, bucket: HandlerBucket) -> list[Any]:
            outputs = []
            for handler in bucket.invocations():
                api.index += 1
                api.disregard = False
                output = handler(api, *args)
                if not api.disregard:
                    outputs.append(output)
                if api.break_:
                    break
            return outputs

        results = [output for outputs in PriorityMap.map_all(handler_lists, visit, api) for output in _splice(outputs)]
        logger.trace(f"Event {event!r} dispatched to {api.index + 1} handlers, {len(results)} results")
        return results

    def query(self, event: Hashable, *args: Any) -> EventQuery:
        """Build a first-match query for ``event``.

        Example:
            ```python
            host.event.query("price", item).where(lambda price: price > 0).get()
            ```
        """
        return EventQuery(self, event, args)

    def subscribe(self, events: EventList, *handlers: Any, priority: Priority = 0) -> Any:
        """Add handlers to one or more events.

        Args:
            events: An event or a list of events
            *handlers: The handlers; a leading number is taken as the priority
            priority: Priority of the handlers, higher runs first

        Returns:
            The host, for chaining

        Raises:
            HandlerRegistrationError: If a handler is not callable
        """
        priority, handlers = split_priority(handlers, priority)
        validate_handlers(handlers)

        for event in event_list(events):
            for handler in handlers:
                self.subscriptions.add_handler(event, priority, handler)
            logger.debug(f"Subscribed {len(handlers)} handler(s) to {event!r} at priority {priority}")

        return self.host

    def unsubscribe(self, events: EventList, *handlers: Any, priority: Priority = 0) -> Any:
        """Remove handlers from one or more events.

        Unknown handlers are ignored. Emptied priorities and events are pruned.

        Returns:
            The host, for chaining
        """
        priority, handlers = split_priority(handlers, priority)

        for event in event_list(events):
            for handler in handlers:
                self.subscriptions.remove_handler(event, priority, handler)

        return self.host

    def has_subscribers(self, *events: Hashable) -> bool:
        """Whether any source has a handler for any of ``events``."""
        return any(self._handler_lists(event) for event in events)

    def wait_for(
        self,
        events: EventList,
        priority: Priority = LOWEST_PRIORITY,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> asyncio.Future:
        """Return a future resolved by the next emission of any of ``events``.

        The future is resolved synchronously inside the ``emit`` call with the
        tuple of emitted arguments. It never resolves if no event fires.

        Args:
            events: An event or a list of events
            priority: Priority of the one-shot handler, lowest by default
            loop: Loop owning the future; defaults to the running loop

        Returns:
            An ``asyncio.Future`` of the argument tuple
        """
        future = (loop or asyncio.get_running_loop()).create_future()

        def resolve(api: EventApi, *args: Any) -> None:
            self.unsubscribe(events, resolve, priority=priority)
            if not future.done():
                future.set_result(args)
            api.disregard = True

        self.subscribe(events, resolve, priority=priority)
        return future

    def until(self, source: Any, event: Any = None, initializer: Callable[[Any], Any] | None = None) -> Any:
        """Keep a batch of subscriptions alive until an event fires.

        Two forms:

        - ``until(event, initializer)``: ``initializer`` receives an
          ``UntilThisSubscriber`` whose ``subscribe(host, events, *handlers)``
          calls may target other hosts, classes or buses. They are removed
          when this host emits ``event``.
        - ``until(source, event, initializer)``: ``initializer`` receives an
          ``UntilSubscriber`` whose ``subscribe(events, *handlers)`` calls
          target this host. They are removed when ``source`` (a host, host
          class or bus) emits ``event``.

        Returns:
            The host, for chaining
        """
        if initializer is None and callable(event):
            return self._until_own_event(source, event)
        return self._until_source_event(source, event, initializer)

    def _until_own_event(self, until_event: EventList, initializer: Callable[[UntilThisSubscriber], Any]) -> Any:
        subscriber = self.excevent.create_subscriber() if self.excevent is not None else None
        until = UntilThisSubscriber(self, subscriber)
        initializer(until)

        has_registrations = subscriber is not None and subscriber.has_registrations()
        if not until.subscriptions and not has_registrations:
            return self.host

        for target, events, priority, handlers in until.subscriptions:
            target.subscribe(events, *handlers, priority=priority)
        if has_registrations:
            subscriber.subscribe()

        done = False

        def cleanup(api: EventApi, *args: Any) -> None:
            nonlocal done
            api.disregard = True
            if done:
                return
            done = True

            for target, events, priority, handlers in until.subscriptions:
                target.unsubscribe(events, *handlers, priority=priority)
            if has_registrations:
                subscriber.unsubscribe()
            self.unsubscribe(until_event, cleanup, priority=LOWEST_PRIORITY)
            logger.debug(f"Released until-subscriptions after {api.event!r}")

        self.subscribe(until_event, cleanup, priority=LOWEST_PRIORITY)
        return self.host

    def _until_source_event(self, source: Any, until_event: EventList, initializer: Callable[[UntilSubscriber], Any]) -> Any:
        until = UntilSubscriber()
        initializer(until)
        if not until.subscriptions:
            return self.host

        source_emitter = emitter_of(source)
        if source_emitter is None and self.excevent is None:
            self._missing_source(until_event, source)
            return self.host

        for events, priority, handlers in until.subscriptions:
            self.subscribe(events, *handlers, priority=priority)

        done = False
        subscriber: GlobalEventSubscriber | None = None

        def cleanup(api: EventApi, *args: Any) -> None:
            nonlocal done
            api.disregard = True
            if done:
                return
            done = True

            for events, priority, handlers in until.subscriptions:
                self.unsubscribe(events, *handlers, priority=priority)
            if subscriber is not None:
                subscriber.unsubscribe()
            else:
                source_emitter.unsubscribe(until_event, cleanup, priority=LOWEST_PRIORITY)
            logger.debug(f"Released until-subscriptions after {api.event!r}")

        if source_emitter is not None:
            source_emitter.subscribe(until_event, cleanup, priority=LOWEST_PRIORITY)
        else:
            subscriber = self.excevent.create_subscriber()
            subscriber.register(source, until_event, cleanup, priority=LOWEST_PRIORITY).subscribe()

        return self.host

    def _missing_source(self, event: Any, source: Any) -> None:
        message = f"{self!r} has no Excevent instance, cannot use 'until' for event {event!r} on {source!r}"
        if get_settings().strict_until:
            raise UntilSourceError(message)
        logger.warning(message)

    def _first(self, event: Hashable, args: tuple[Any, ...], predicates: list[Predicate]) -> Any:
        handler_lists = self._handler_lists(event)
        if not handler_lists:
            return None

        api = self._create_api(event)
        found: list[Any] = []

        def visit(api: EventApi, bucket: HandlerBucket) -> None:
            for handler in bucket.invocations():
                api.index += 1
                api.disregard = False
                output = handler(api, *args)
                if output is not None and not api.disregard and all(predicate(output) for predicate in predicates):
                    found.append(output)
                    api.break_ = True
                if api.break_:
                    return

        PriorityMap.map_all(handler_lists, visit, api)
        return found[0] if found else None

    def _handler_lists(self, event: Hashable) -> list[PriorityMap[HandlerBucket]]:
        handler_lists = []
        for registry in (self.subscriptions, *external_registries(self.host)):
            buckets = registry.get(event)
            if buckets is not None:
                handler_lists.append(buckets)
        return handler_lists

    def _create_api(self, event: Hashable) -> EventApi:
        return EventApi(host=self.host, event=event)
