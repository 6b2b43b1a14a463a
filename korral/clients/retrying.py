"""
Retrying of the operations denied while the permissions propagate.

The role bindings are applied by the store asynchronously: a caller who has just
been granted a role can see a short window when all their requests are rejected
as "forbidden" although the grant already exists. The decorators here make
that window invisible to the upstream code.

Only the "forbidden" errors are retried, and only those which are not
the verdicts of the validating webhooks (see `errors.is_authorization_denial`).
All other errors (and the successes) are returned immediately. Once the attempts
are exhausted, the last "forbidden" error is re-raised as is, so that the callers
can still tell "never authorized" from other failures.

The wrappers keep no state between calls: the backoff policy is taken from
the settings of every call.
"""
import asyncio
import functools
from typing import Any, AsyncIterator, Callable, TypeVar, cast

from korral.clients import errors
from korral.helpers import typedefs
from korral.structs import configuration

_F = TypeVar('_F', bound=Callable[..., Any])


def _describe(fn: Callable[..., Any], kwargs: Any) -> str:
    resource = kwargs.get('resource')
    namespace = kwargs.get('namespace')
    name = kwargs.get('name')
    where = f" in {namespace!r}" if namespace is not None else ""
    what = f" {name!r}" if name is not None else ""
    return f"{fn.__name__}({resource!r}{what}{where})"


async def _backoff_or_escalate(
        exc: errors.APIForbiddenError,
        *,
        attempt: int,
        what: str,
        settings: configuration.AccessSettings,
        logger: typedefs.Logger,
) -> None:
    """ Sleep before the next attempt, or re-raise if there will be none. """
    policy = settings.authorization.backoff
    idx = f"#{attempt}/{policy.max_attempts}"
    if attempt >= policy.max_attempts:
        logger.warning(f"Operation attempt {idx} is forbidden; escalating: {what} -> {exc!r}")
        raise exc
    delay = policy.delay(attempt)
    logger.debug(f"Operation attempt {idx} is forbidden; will retry in {delay:.3f}s: {what}")
    await asyncio.sleep(delay)  # non-awakable! but still cancellable.


def retried(fn: _F) -> _F:
    """
    Retry a coroutine-function's denials according to ``settings=``'s backoff.
    """
    @functools.wraps(fn)
    async def wrapper(
            *args: Any,
            settings: configuration.AccessSettings,
            logger: typedefs.Logger,
            **kwargs: Any,
    ) -> Any:
        what = _describe(fn, kwargs)
        attempt = 0
        while True:
            attempt += 1
            try:
                return await fn(*args, settings=settings, logger=logger, **kwargs)
            except errors.APIForbiddenError as e:
                if not errors.is_authorization_denial(e):
                    raise
                await _backoff_or_escalate(e, attempt=attempt, what=what,
                                           settings=settings, logger=logger)

    return cast(_F, wrapper)


def retried_stream(fn: _F) -> _F:
    """
    Retry an async-generator's denials, but only until the first yielded item.

    Once anything is yielded, it is consumed and cannot be "un-yielded",
    so the later errors are escalated as is.
    """
    @functools.wraps(fn)
    async def wrapper(
            *args: Any,
            settings: configuration.AccessSettings,
            logger: typedefs.Logger,
            **kwargs: Any,
    ) -> AsyncIterator[Any]:
        what = _describe(fn, kwargs)
        attempt = 0
        while True:
            attempt += 1
            yielded = False
            stream = fn(*args, settings=settings, logger=logger, **kwargs)
            try:
                async for item in stream:
                    yielded = True
                    yield item
                return
            except errors.APIForbiddenError as e:
                if yielded or not errors.is_authorization_denial(e):
                    raise
                await _backoff_or_escalate(e, attempt=attempt, what=what,
                                           settings=settings, logger=logger)
            finally:
                await stream.aclose()

    return cast(_F, wrapper)
