import base64
import contextlib
import functools
import ssl
import tempfile
from contextvars import ContextVar
from typing import Any, AsyncIterator, Callable, Dict, Optional, TypeVar, Union, cast

import aiohttp

from korral.structs import credentials

# Per-call-chain storage of the authenticated session: either the caller's or the privileged one.
# Set by `authorized()`, so that every client call in the chain uses the same identity.
context_var: ContextVar["APIContext"] = ContextVar('context_var')

# A typevar to show that we return a function with the same signature as given.
_F = TypeVar('_F', bound=Callable[..., Any])


def authenticated(fn: _F) -> _F:
    """
    A decorator to inject a pre-authenticated session to a requesting routine.

    If a context is passed explicitly, it is used as is. Otherwise, the context
    of the current call chain is taken (see `authorized`). There is no fallback
    to any other credentials: if the chain is not authorized, the call fails.
    """
    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        if kwargs.get('context') is None:
            try:
                kwargs['context'] = context_var.get()
            except LookupError:
                raise RuntimeError("The API call is made outside of an authorized block.") from None
        return await fn(*args, **kwargs)

    return cast(_F, wrapper)


@contextlib.asynccontextmanager
async def authorized(
        info: credentials.ConnectionInfo,
        identity: Optional[credentials.Identity] = None,
) -> AsyncIterator["APIContext"]:
    """
    Perform all API calls in this block on behalf of the identity.

    If the identity is not set, the privileged credentials of the connection
    are used -- this should only be done for the access layer's own lookups.

    Usage::

        async with auth.authorized(info, identity):
            body = await fetching.get_obj(...)
    """
    context = APIContext(info, identity=identity)
    token = context_var.set(context)
    try:
        yield context
    finally:
        context_var.reset(token)
        await context.close()


class APIContext:
    """
    A container for an aiohttp session and the info for the URL building.

    The container is constructed once per call chain (i.e. per identity),
    and is closed at the end of it: the identities are never cached beyond that.
    """

    # The main contained object used by the API methods.
    session: aiohttp.ClientSession

    # Contextual information for URL building.
    server: str
    default_namespace: Optional[str]

    # For logging & diagnostics only.
    identity: Optional[credentials.Identity]

    def __init__(
            self,
            info: credentials.ConnectionInfo,
            identity: Optional[credentials.Identity] = None,
    ) -> None:
        super().__init__()
        self.server = info.server
        self.default_namespace = info.default_namespace
        self.identity = identity
        self.session = self.make_aiohttp_session(info, identity)

    @staticmethod
    def make_aiohttp_session(
            info: credentials.ConnectionInfo,
            identity: Optional[credentials.Identity] = None,
    ) -> aiohttp.ClientSession:

        # The caller's credentials fully replace the privileged ones, never mix with them.
        token: Optional[str]
        cert_path: Optional[str]
        pkey_path: Optional[str]
        cert_data: Optional[bytes]
        pkey_data: Optional[bytes]
        if identity is not None:
            token = identity.token
            cert_path, cert_data = None, identity.certificate_data
            pkey_path, pkey_data = None, identity.private_key_data
        else:
            token = info.token
            cert_path, cert_data = info.certificate_path, info.certificate_data
            pkey_path, pkey_data = info.private_key_path, info.private_key_data

        # Some SSL data are not accepted directly, so we have to use temp files.
        # Do not even create temporary files if there is no need. It can be a readonly filesystem.
        with contextlib.ExitStack() as stack:

            if cert_data and not cert_path:
                cert_file = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
                cert_file.write(decode_to_pem(cert_data).encode('ascii'))
                cert_path = cert_file.name

            if pkey_data and not pkey_path:
                pkey_file = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
                pkey_file.write(decode_to_pem(pkey_data).encode('ascii'))
                pkey_path = pkey_file.name

            # The SSL part (both client certificate auth and CA verification).
            context = ssl.create_default_context(
                purpose=ssl.Purpose.SERVER_AUTH,
                cafile=info.ca_path,
                cadata=decode_to_pem(info.ca_data) if info.ca_data is not None else None,
            )
            if cert_path and pkey_path:
                context.load_cert_chain(certfile=cert_path, keyfile=pkey_path)

        if info.insecure:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        # The token auth part.
        headers: Dict[str, str] = {}
        if token:
            headers['Authorization'] = f'Bearer {token}'

        return aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(
                limit=0,
                ssl=context,
            ),
            headers=headers,
        )

    async def close(self) -> None:
        await self.session.close()


def decode_to_pem(data: Union[str, bytes]) -> str:
    if isinstance(data, str) and data.startswith('-----BEGIN '):
        return data
    elif isinstance(data, bytes) and data.startswith(b'-----BEGIN '):
        return data.decode('ascii')
    else:
        return base64.b64decode(data).decode('ascii')
