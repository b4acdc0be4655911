"""Priority-ordered event dispatch for arbitrary host objects.

excevent provides an in-process publish/subscribe system built around
priorities. It supports:

- **Event hosts**: any class gets an ``event`` emitter by inheriting ``EventHost``
- **Priorities**: handlers run from the highest priority to the lowest
- **Queries**: ``query`` returns the first handler result matching predicates
- **Declarative bindings**: ``Excevent`` binds methods to buses, host classes
  or host instances before any subscriber instance exists
- **Scoped subscriptions**: ``until`` removes subscriptions when an event fires
- **Watched properties**: ``Emit`` emits an event on every assignment

## Quick Start

```python
from excevent import EventHost

class Button(EventHost):
    pass

button = Button()
button.event.subscribe("click", lambda api, x, y: (x, y), priority=1)
button.event.emit("click", 3, 4)
# [(3, 4)]
```

## Architecture

- **PriorityMap**: ordered priority -> value map with a k-way merge traversal
- **EventRegistry**: per host/bus storage of handler buckets by event
- **EventEmitter**: dispatch for one host, merging every relevant registry
- **Excevent**: declaration and resolution of cross-object handler bindings

Dispatch is synchronous. Handlers may return awaitables, which are returned
to the caller as-is.
"""

from loguru import logger

from .api import EventApi
from .core import ExceventError, HandlerRegistrationError, UntilSourceError
from .emitter import EventEmitter, EventQuery, UntilSubscriber, UntilThisSubscriber
from .excevent import Excevent, GlobalEventSubscriber
from .host import Emit, EventHost, event_host, handles
from .priority_map import MapApi, PriorityMap
from .registry import EventRegistry, HandlerBucket

# Silent unless the embedding application opts in, e.g. through setup_logging
logger.disable("excevent")

__all__ = [
    "Emit",
    "EventApi",
    "EventEmitter",
    "EventHost",
    "EventQuery",
    "EventRegistry",
    "Excevent",
    "ExceventError",
    "GlobalEventSubscriber",
    "HandlerBucket",
    "HandlerRegistrationError",
    "MapApi",
    "PriorityMap",
    "UntilSourceError",
    "UntilSubscriber",
    "UntilThisSubscriber",
    "event_host",
    "handles",
]
