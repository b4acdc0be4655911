"""Core exception hierarchy.

Dispatch itself is permissive: emitting with no subscribers, or removing a
subscription that does not exist, is never an error, and exceptions raised by
handlers propagate to the caller untouched. The exceptions below cover misuse
of the registration surface only.

## Hierarchy

- **ExceventError**: Base exception for all excevent errors
- **HandlerRegistrationError**: A handler could not be registered
- **UntilSourceError**: An ``until`` subscription has no event source
"""


class ExceventError(Exception):
    """Base exception for all excevent related errors.

    Use this for catching any error raised by the library:
        ```python
        try:
            host.event.subscribe("ready", handler)
        except ExceventError as e:
            logger.error(f"Event registration failed: {e}")
        ```
    """


class HandlerRegistrationError(ExceventError):
    """Raised when handler registration fails.

    This occurs when:
    - A handler passed to ``subscribe`` or ``register`` is not callable
    - A handler decorator is applied to something that is not a function
    """


class UntilSourceError(ExceventError):
    """Raised by ``until`` in strict mode when no event source is available.

    Outside strict mode the same situation only logs a warning.
    """
