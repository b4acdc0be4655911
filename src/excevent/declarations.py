"""Class-definition-time handler declarations.

Handler decorators cannot know the class they are applied in, so they wrap
the function in a ``Declaration``. When the class body finishes, Python calls
``__set_name__`` on it; the declaration then puts the plain function back on
the class and runs every recorder collected by the stacked decorators, each
of which writes into an explicit registration table keyed by class.

```python
class Listener:
    @excevent.handler("bus", "ready")
    @handles("ready", priority=5)
    def on_ready(self, api): ...
```
"""

from collections.abc import Callable, Hashable
from typing import Any

from .core import HandlerRegistrationError
from .priority_map import Priority
from .registry import IdentityMap

Recorder = Callable[[type, str], None]


class Declaration:
    """A method awaiting its owning class."""

    def __init__(self, func: Callable[..., Any]) -> None:
        self.func = func
        self.recorders: list[Recorder] = []

    def __set_name__(self, owner: type, name: str) -> None:
        setattr(owner, name, self.func)
        # applied bottom-up, recorded top-down like the decorators read
        for recorder in reversed(self.recorders):
            recorder(owner, name)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self.func(*args, **kwargs)


def declare(target: Callable[..., Any] | Declaration, recorder: Recorder) -> Declaration:
    """Attach ``recorder`` to ``target``, wrapping it in a ``Declaration`` if needed.

    Raises:
        HandlerRegistrationError: If ``target`` is not callable
    """
    if isinstance(target, Declaration):
        declaration = target
    elif callable(target):
        declaration = Declaration(target)
    else:
        raise HandlerRegistrationError(f"Handler decorators only apply to functions, got: {target!r}")

    declaration.recorders.append(recorder)
    return declaration


# class -> [(event, method name, priority)] declared in that class body
_own_handlers: IdentityMap[type, list[tuple[Hashable, str, Priority]]] = IdentityMap()


def record_own_handler(cls: type, event: Hashable, name: str, priority: Priority) -> None:
    _own_handlers.setdefault(cls, list).append((event, name, priority))


def own_handlers(cls: type) -> list[tuple[Hashable, str, Priority]]:
    """Own-event handler declarations of ``cls`` and its bases, bases first."""
    declared: list[tuple[Hashable, str, Priority]] = []
    for klass in reversed(cls.__mro__):
        declared.extend(_own_handlers.get(klass) or ())
    return declared
