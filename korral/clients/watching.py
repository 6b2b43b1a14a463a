"""
Watching and streaming watch-events.

The store's watch-requests are plain long-living GET requests with one JSON
object per line. They are disconnected by the server from time to time,
so a continuous watch is a sequence of such requests, each continuing from
the latest seen resource version.

If the resource version is too old (the store has "forgotten" it), the store
sends an error event with HTTP 410 "Gone". In that case, the objects are
re-listed, and the watching starts again from the list's resource version.
"""
import asyncio
import enum
from typing import AsyncIterator, Collection, Dict, Mapping, Optional, Union, cast

import aiohttp

from korral.clients import api, fetching, retrying
from korral.helpers import typedefs
from korral.structs import bodies, configuration, references, selectors


class WatchingError(Exception):
    """
    Raised when an unexpected error happens in the watch-stream API.
    """


class Bookmark(enum.Enum):
    """ Special marks sent in the stream among raw events. """
    LISTED = enum.auto()  # the listing is over, now streaming.


async def continuous_watch(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        selector: Collection[selectors.Requirement] = (),
        fields: Optional[Mapping[str, str]] = None,
        logger: typedefs.Logger,
) -> AsyncIterator[Union[Bookmark, bodies.RawEvent]]:
    """
    Stream the objects' events infinitely: list first, then watch.

    The listed objects are yielded as events of type ``None``, followed by
    `Bookmark.LISTED` (even if nothing was listed). On "410 Gone",
    the objects are re-listed, so the listing can be repeated in the stream.

    This routine never ends gracefully. It only exits with unrecoverable
    exceptions, or when closed by the consumer (e.g. with ``aclose()``).
    """
    where = f'in {namespace!r}' if namespace is not None else 'cluster-wide'
    logger.debug(f"Starting the watch-stream for {resource} {where}.")
    try:
        while True:

            # First, list the resources regularly, and get the list's resource version.
            objs, resource_version = await fetching.list_objs(
                settings=settings,
                resource=resource,
                namespace=namespace,
                selector=selector,
                fields=fields,
                logger=logger,
            )
            for obj in objs:
                yield {'type': None, 'object': obj}

            # Notify the consumer that the initial listing is over, even if nothing was yielded.
            yield Bookmark.LISTED

            # Repeat through disconnects of the watch as long as the resource version is valid.
            gone = False
            while not gone:
                stream = watch_objs(
                    settings=settings,
                    resource=resource,
                    namespace=namespace,
                    selector=selector,
                    fields=fields,
                    since=resource_version,
                    logger=logger,
                )
                try:
                    async for raw_input in stream:
                        raw_type = raw_input['type']
                        raw_object = raw_input['object']

                        # "410 Gone" is for the "resource version too old" error, we must re-list.
                        if raw_type == 'ERROR' and cast(bodies.RawError, raw_object).get('code') == 410:
                            logger.debug(f"Restarting the watch-stream for {resource} {where}.")
                            gone = True
                            break

                        # Other watch errors are fatal for the stream.
                        if raw_type == 'ERROR':
                            raise WatchingError(f"Error in the watch-stream: {raw_object}")

                        # Ensure that the event is something we understand and can handle.
                        if raw_type not in ['ADDED', 'MODIFIED', 'DELETED']:
                            logger.warning(f"Ignoring an unsupported event type: {raw_input!r}")
                            continue

                        # Keep the latest seen resource version for continuation of the stream.
                        body = cast(bodies.RawBody, raw_object)
                        resource_version = body.get('metadata', {}).get('resourceVersion', resource_version)

                        yield cast(bodies.RawEvent, raw_input)
                finally:
                    await stream.aclose()

                await asyncio.sleep(settings.watching.reconnect_backoff)
    finally:
        logger.debug(f"Stopping the watch-stream for {resource} {where}.")


@retrying.retried_stream
async def watch_objs(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        selector: Collection[selectors.Requirement] = (),
        fields: Optional[Mapping[str, str]] = None,
        since: Optional[str] = None,
        logger: typedefs.Logger,
) -> AsyncIterator[bodies.RawInput]:
    """
    Watch objects of a specific resource type with one watch-request.

    The stream ends when the server closes the connection. The network errors
    are treated as the end of the stream too: the caller decides what to do next.
    """
    if any(requirement.unsatisfiable for requirement in selector):
        return

    params: Dict[str, str] = fetching.build_params(selector=selector, fields=fields)
    params['watch'] = 'true'
    if since is not None:
        params['resourceVersion'] = since
    if settings.watching.server_timeout is not None:
        params['timeoutSeconds'] = str(settings.watching.server_timeout)

    connect_timeout = (
        settings.watching.connect_timeout if settings.watching.connect_timeout is not None else
        settings.networking.connect_timeout if settings.networking.connect_timeout is not None else
        settings.networking.request_timeout
    )

    try:
        async for raw_input in api.stream(
            url=resource.get_url(namespace=namespace, params=params),
            logger=logger,
            settings=settings,
            timeout=aiohttp.ClientTimeout(
                total=settings.watching.client_timeout,
                sock_connect=connect_timeout,
            ),
        ):
            yield raw_input

    except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError):
        pass
