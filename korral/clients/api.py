"""
The raw HTTP exchange with the store: JSON requests and JSON-lines streams.

Everything above this module speaks in objects and resources; everything
here speaks in URLs and payloads. The session (and so the identity) comes
from the current call chain, see `korral.clients.auth`.
"""
import asyncio
import json
from typing import Any, AsyncIterator, Mapping, Optional

import aiohttp

from korral.clients import auth, errors
from korral.helpers import typedefs
from korral.structs import configuration

# The failures of the transport, not of the request: the same request can succeed later.
TRANSIENT_ERRORS = (aiohttp.ClientConnectionError, errors.APIServerError, asyncio.TimeoutError)


@auth.authenticated
async def request(
        method: str,
        url: str,  # relative to the server/api root.
        *,
        settings: configuration.AccessSettings,
        payload: Optional[object] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        context: Optional[auth.APIContext] = None,  # injected by the decorator
        logger: typedefs.Logger,
) -> aiohttp.ClientResponse:
    """
    Send a request to the store, re-sending it on the transport failures.

    The connection errors, the timeouts, and HTTP 5xx are re-sent after
    the delays of ``settings.networking.error_backoffs``; the last failure
    is raised as is. HTTP 4xx are raised immediately: the denials are
    retried one level above, by the operations (`korral.clients.retrying`).
    """
    if context is None:  # for type-checking!
        raise RuntimeError("API instance is not injected by the decorator.")

    if '://' not in url:
        url = f"{context.server.rstrip('/')}/{url.lstrip('/')}"
    if timeout is None:
        timeout = aiohttp.ClientTimeout(
            total=settings.networking.request_timeout,
            sock_connect=settings.networking.connect_timeout,
        )

    what = f"{method.upper()} {url}"
    delays = list(settings.networking.error_backoffs)
    attempts = len(delays) + 1
    for attempt in range(1, attempts + 1):
        try:
            response = await context.session.request(
                method=method,
                url=url,
                json=payload,
                headers=headers,
                timeout=timeout,
            )
            await errors.check_response(response)
        except TRANSIENT_ERRORS as e:
            if attempt == attempts:
                logger.error(f"Request attempt #{attempt}/{attempts} failed; escalating: {what} -> {e!r}")
                raise
            logger.error(f"Request attempt #{attempt}/{attempts} failed; will retry: {what} -> {e!r}")
            await asyncio.sleep(delays[attempt - 1])
        else:
            if attempt > 1:
                logger.debug(f"Request attempt #{attempt}/{attempts} succeeded: {what}")
            return response

    raise RuntimeError("Broken retryable routine.")  # impossible, but needed for type-checking.


async def _exchange(
        method: str,
        url: str,
        *,
        settings: configuration.AccessSettings,
        payload: Optional[object] = None,
        headers: Optional[Mapping[str, str]] = None,
        logger: typedefs.Logger,
) -> Any:
    response = await request(method, url, payload=payload, headers=headers,
                             settings=settings, logger=logger)
    async with response:
        return await response.json()


async def get(url: str, *, settings: configuration.AccessSettings, logger: typedefs.Logger) -> Any:
    return await _exchange('get', url, settings=settings, logger=logger)


async def post(
        url: str,
        *,
        settings: configuration.AccessSettings,
        payload: object,
        logger: typedefs.Logger,
) -> Any:
    return await _exchange('post', url, payload=payload, settings=settings, logger=logger)


async def patch(
        url: str,
        *,
        settings: configuration.AccessSettings,
        payload: object,
        headers: Optional[Mapping[str, str]] = None,
        logger: typedefs.Logger,
) -> Any:
    return await _exchange('patch', url, payload=payload, headers=headers,
                           settings=settings, logger=logger)


async def delete(
        url: str,
        *,
        settings: configuration.AccessSettings,
        payload: Optional[object] = None,
        logger: typedefs.Logger,
) -> Any:
    return await _exchange('delete', url, payload=payload, settings=settings, logger=logger)


async def stream(
        url: str,
        *,
        settings: configuration.AccessSettings,
        timeout: Optional[aiohttp.ClientTimeout] = None,
        logger: typedefs.Logger,
) -> AsyncIterator[Any]:
    """
    Yield the decoded JSON lines of a long-living response (a watch-request).

    Closing the generator closes the response and releases its connection.
    """
    response = await request('get', url, timeout=timeout, settings=settings, logger=logger)
    async with response:
        async for line in iter_jsonlines(response.content):
            yield json.loads(line)


async def iter_jsonlines(
        content: aiohttp.StreamReader,
        chunk_size: int = 1024 * 1024,
) -> AsyncIterator[bytes]:
    """
    Split the streamed content into non-empty lines of any length.

    aiohttp's own ``async for line in response.content`` fails on the lines
    above its buffer's limit (128 KB), while one object with big annotations
    can take megabytes in one line.
    """
    pending = bytearray()
    async for chunk in content.iter_chunked(chunk_size):
        if b'\n' not in chunk:
            pending += chunk
            continue

        head, *middle, tail = chunk.split(b'\n')
        pending += head
        for line in [pending, *middle]:
            if line:
                yield bytes(line)
        pending = bytearray(tail)

    if pending:
        yield bytes(pending)
