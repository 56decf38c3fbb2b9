import asyncio
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

T = TypeVar('T')
R = TypeVar('R')


async def bounded_map(func: Callable[[T], Awaitable[R]], items: Iterable[T],
                      width: Optional[int] = None) -> list[R]:
    """Await func(item) for every item with at most `width` calls outstanding.

    width=None runs everything at once, width=1 runs one at a time in order.
    Results come back in input order whatever the width.
    """
    items = list(items)
    if width is not None and width < 1:
        raise ValueError(f"width must be positive or None, got {width}")

    if width == 1:
        return [await func(item) for item in items]

    if width is None:
        return list(await asyncio.gather(*(func(item) for item in items)))

    sem = asyncio.Semaphore(width)

    async def _run_one(item: T) -> R:
        async with sem:
            return await func(item)

    return list(await asyncio.gather(*(_run_one(item) for item in items)))
