"""Stage descriptor and the stop-early scan helper used inside stages."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar, Union

from .scheduler import BatchOptions

T = TypeVar("T")
S = TypeVar("S")


@dataclass(frozen=True)
class Stage(Generic[T]):
    """A named transform plus an optional filter.

    Attributes:
        name: Stage name, used in diagnostics and for option overrides.
        transform: Coroutine function ``item -> item'``.  Critical errors
            must propagate out of it unchanged.
        keep: Filter ``(item', criteria) -> bool``; ``None`` keeps everything.
        options: Batching parameters for this stage.
    """

    name: str
    transform: Callable[[T], Awaitable[T]]
    keep: Optional[Callable[[T, Any], bool]] = None
    options: BatchOptions = field(default_factory=BatchOptions)

    def accepts(self, item: T, criteria: Any) -> bool:
        if self.keep is None:
            return True
        return bool(self.keep(item, criteria))


async def accumulate(
    items: Iterable[T],
    step: Callable[[S, T], Union[S, Awaitable[S]]],
    state: S,
    stop_early_when: Optional[Callable[[S], bool]] = None,
) -> S:
    """Fold ``items`` into ``state``, stopping once ``stop_early_when(state)`` holds.

    ``step`` may be a plain function or a coroutine function.  The
    predicate is checked after every step, so the item that satisfies it
    is always included.
    """
    for item in items:
        result = step(state, item)
        if inspect.isawaitable(result):
            result = await result
        state = result
        if stop_early_when is not None and stop_early_when(state):
            break
    return state
