"""
Awaiting for the objects to reach a desired state.

The writes are accepted by the store immediately, but the outcome is only
known when the reconcilers update the objects' status. The awaiter watches
the single object and evaluates the predicate on every observed snapshot,
in the order they arrive, until one of the terminal states:

* the predicate is satisfied: the latest body is returned;
* the object is deleted: `ObjectGoneError` is raised;
* the timeout is reached: `ConditionTimeoutError` is raised.

The deletion always wins over the timeout: if the timeout is reached,
the object is checked once more, and if it is gone, the deletion is reported.

If the watching is not possible (e.g. forbidden), the polling can be used
instead (``settings.awaiting.mode = "poll"``): the object is re-read with
a jittered interval, and the predicate is only re-evaluated on changes.

The caller's cancellation stops the awaiting at any moment, along with all
the in-flight requests of it.
"""
import asyncio
import logging
import random
from typing import Optional

from korral import errors
from korral.clients import errors as apierrors
from korral.clients import fetching, watching
from korral.helpers import typedefs
from korral.structs import bodies, conditions, configuration, references


async def await_condition(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        predicate: conditions.ConditionPredicate,
        timeout: Optional[float] = None,
        logger: typedefs.Logger = logging.getLogger(__name__),
) -> bodies.RawBody:
    timeout = timeout if timeout is not None else settings.awaiting.timeout
    what = f"{resource.plural} {name!r}" + (f" in {namespace!r}" if namespace else "")
    observer = _poll_for if settings.awaiting.mode == 'poll' else _watch_for
    logger.debug(f"Awaiting {predicate.__qualname__} for {what} (up to {timeout}s).")
    try:
        return await asyncio.wait_for(
            observer(settings=settings, resource=resource, namespace=namespace, name=name,
                     predicate=predicate, what=what, logger=logger),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        pass

    # Maybe it was deleted during the timeout, but we have not seen it yet.
    try:
        await fetching.get_obj(settings=settings, resource=resource,
                               namespace=namespace, name=name, logger=logger)
    except apierrors.APINotFoundError as e:
        raise errors.ObjectGoneError(f"{what} is deleted before {predicate.__qualname__}") from e
    except apierrors.APIError as e:
        # The object is not known to be gone, so the timeout is what gets reported.
        raise errors.ConditionTimeoutError(f"Timed out waiting for {predicate.__qualname__} "
                                           f"on {what} after {timeout}s") from e
    raise errors.ConditionTimeoutError(f"Timed out waiting for {predicate.__qualname__} "
                                       f"on {what} after {timeout}s")


async def _watch_for(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        predicate: conditions.ConditionPredicate,
        what: str,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    stream = watching.continuous_watch(
        settings=settings,
        resource=resource,
        namespace=namespace,
        fields={'metadata.name': name},
        logger=logger,
    )
    try:
        listed = False
        async for event in stream:

            # The object is absent in the (re-)listing: it was deleted while we did not watch.
            if isinstance(event, watching.Bookmark):
                if not listed:
                    raise errors.ObjectGoneError(f"{what} is absent")
                listed = False
                continue

            if event['type'] == 'DELETED':
                raise errors.ObjectGoneError(f"{what} is deleted before {predicate.__qualname__}")
            if event['type'] is None:
                listed = True

            if predicate(bodies.Body(event['object'])):
                return event['object']
    finally:
        await stream.aclose()

    # The watch-stream never ends on its own.
    raise RuntimeError(f"The watch-stream for {what} has ended unexpectedly.")


async def _poll_for(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        predicate: conditions.ConditionPredicate,
        what: str,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    interval = settings.awaiting.poll_interval
    jitter = settings.awaiting.poll_jitter
    seen_version: Optional[str] = None
    while True:
        try:
            raw_body = await fetching.get_obj(settings=settings, resource=resource,
                                              namespace=namespace, name=name, logger=logger)
        except apierrors.APINotFoundError as e:
            raise errors.ObjectGoneError(f"{what} is deleted before {predicate.__qualname__}") from e

        # Re-evaluate only the new snapshots; the unversioned ones are always new.
        body = bodies.Body(raw_body)
        version = body.meta.resource_version
        if version is None or version != seen_version:
            seen_version = version
            if predicate(body):
                return raw_body

        await asyncio.sleep(max(0.0, interval * (1 + random.uniform(-jitter, jitter))))
