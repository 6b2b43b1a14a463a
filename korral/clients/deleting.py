from typing import Any, Collection, Optional

from korral.clients import api, fetching, retrying
from korral.helpers import typedefs
from korral.structs import configuration, references, selectors


@retrying.retried
async def delete_obj(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        propagation: Optional[str] = 'Background',
        logger: typedefs.Logger,
) -> Any:
    """
    Delete one object by its name; fail with `APINotFoundError` if it is absent.

    The deletion is accepted by the store immediately, but the object can remain
    for a while (e.g. with finalizers). Use the awaiter to wait for it to be gone.
    """
    payload = {'propagationPolicy': propagation} if propagation else None
    return await api.delete(
        url=resource.get_url(namespace=namespace, name=name),
        payload=payload,
        settings=settings,
        logger=logger,
    )


@retrying.retried
async def delete_objs(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        selector: Collection[selectors.Requirement] = (),
        logger: typedefs.Logger,
) -> Any:
    """
    Delete all objects in the namespace matching the selector.

    An empty selector deletes all objects of the resource in the namespace.
    A selector that can match nothing deletes nothing and makes no API call.
    """
    if any(requirement.unsatisfiable for requirement in selector):
        return None
    return await api.delete(
        url=resource.get_url(namespace=namespace, params=fetching.build_params(selector=selector)),
        settings=settings,
        logger=logger,
    )
