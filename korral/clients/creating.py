from typing import Optional, cast

from korral.clients import api, retrying
from korral.helpers import typedefs
from korral.structs import bodies, configuration, references


@retrying.retried
async def create_obj(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        namespace: references.Namespace = None,
        name: Optional[str] = None,
        body: Optional[bodies.RawBody] = None,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Create an object, and return it as stored (with the server-side fields).

    The namespace & name, if given, are only the defaults for the body's metadata.
    """
    body = body if body is not None else {}
    if namespace is not None:
        body.setdefault('metadata', {}).setdefault('namespace', namespace)
    if name is not None:
        body.setdefault('metadata', {}).setdefault('name', name)
    if resource.kind is not None:
        body.setdefault('apiVersion', resource.api_version)
        body.setdefault('kind', resource.kind)

    namespace = cast(references.Namespace, body.get('metadata', {}).get('namespace'))
    created_body: bodies.RawBody = await api.post(
        url=resource.get_url(namespace=namespace if resource.namespaced else None),
        payload=body,
        logger=logger,
        settings=settings,
    )
    return created_body
