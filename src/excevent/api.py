"""Per-dispatch api object handed to every handler.

Each ``emit`` or ``query`` call builds one ``EventApi`` and passes it as the
first argument to every handler it invokes. Handlers may inspect it, and may
flip its flags to influence the rest of the dispatch:

- ``break_``: stop the dispatch after the current handler
- ``disregard``: leave the current handler's return value out of the results

```python
def first_only(api: EventApi, *args) -> str:
    api.break_ = True
    return "only me"
```
"""

from typing import Any

from pydantic import Field

from .priority_map import MapApi


class EventApi(MapApi):
    """Mutable context shared by all handlers of one dispatch."""

    host: Any = Field(..., description="The object whose emitter is dispatching")
    event: Any = Field(..., description="The event being dispatched")
    index: int = Field(default=-1, description="Position of the current handler in this dispatch")
    disregard: bool = Field(default=False, description="Exclude the current handler's result")
