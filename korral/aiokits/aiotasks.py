"""
Helpers for orchestrating asyncio tasks.

These utilities only support tasks, not more generic futures, coroutines,
or other awaitables. In most case where we use it, we need specifically tasks,
as we not only wait for them, but also cancel them.

The main one is `fan_out`: run the same function for many units of work
with bounded parallelism, tolerate some failures per unit (the unit is
skipped), and abort everything on any other failure.
"""
import asyncio
from typing import Any, Awaitable, Callable, Collection, Generic, Iterable, \
                   List, Optional, Set, Tuple, TypeVar

from korral.helpers import typedefs

_K = TypeVar('_K')
_V = TypeVar('_V')

Task = typedefs.Task


class Outcome(Generic[_K, _V]):
    """ A result of one unit of work: either a value, or a tolerated error. """
    __slots__ = ('unit', 'value', 'error')

    def __init__(self, unit: _K, *, value: Optional[_V] = None,
                 error: Optional[BaseException] = None) -> None:
        super().__init__()
        self.unit = unit
        self.value = value
        self.error = error

    def __repr__(self) -> str:
        result = self.error if self.error is not None else self.value
        return f'<Outcome {self.unit!r}: {result!r}>'

    @property
    def skipped(self) -> bool:
        return self.error is not None


async def wait(
        tasks: Collection[Task],
        *,
        timeout: Optional[float] = None,
        return_when: Any = asyncio.ALL_COMPLETED,
) -> Tuple[Set[Task], Set[Task]]:
    """
    A safer version of :func:`asyncio.wait` -- does not fail on an empty list.
    """
    if not tasks:
        return set(), set()
    done, pending = await asyncio.wait(tasks, timeout=timeout, return_when=return_when)
    return done, pending


async def stop(
        tasks: Collection[Task],
) -> None:
    """
    Cancel the tasks and wait for them to finish, without raising their errors.

    If the stopping routine itself is cancelled while waiting, the cancellation
    propagates to the caller (the tasks are already cancelled by then).
    """
    for task in tasks:
        task.cancel()
    pending = {task for task in tasks if not task.done()}
    while pending:
        _, pending = await wait(pending)


def reraise(
        tasks: Iterable[Task],
) -> None:
    """
    Re-raise the first error from the tasks, if any; ignore the cancelled ones.
    """
    for task in tasks:
        if task.done() and not task.cancelled() and task.exception() is not None:
            raise task.exception()  # type: ignore


async def fan_out(
        units: Iterable[_K],
        fn: Callable[[_K], Awaitable[_V]],
        *,
        tolerate: Callable[[BaseException], bool],
        concurrency: int,
        title: str = 'unit',
        logger: typedefs.Logger,
) -> List[Outcome[_K, _V]]:
    """
    Run the function for every unit concurrently, at most N at a time.

    The outcomes are returned in the order of the units (not of completion).
    If the function fails with a tolerated error, the unit's outcome holds
    the error, and the other units continue unaffected. If it fails with any
    other error, all the other units are cancelled, and the error is raised.

    If the fan-out itself is cancelled, all the units are cancelled too:
    nothing is left running in the background.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def guarded(unit: _K) -> Outcome[_K, _V]:
        async with semaphore:
            try:
                value = await fn(unit)
            except Exception as e:
                if not tolerate(e):
                    raise
                logger.debug(f"Skipping the {title} {unit!r} due to a tolerated error: {e!r}")
                return Outcome(unit, error=e)
            else:
                return Outcome(unit, value=value)

    tasks: List[Task] = [
        asyncio.create_task(guarded(unit), name=f'{title} {unit!r}')
        for unit in units
    ]
    try:
        await wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    finally:
        await stop([task for task in tasks if not task.done()])

    reraise(tasks)
    return [task.result() for task in tasks]
