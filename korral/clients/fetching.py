from typing import Collection, Dict, List, Mapping, Optional, Tuple

from korral.clients import api, retrying
from korral.helpers import typedefs
from korral.structs import bodies, configuration, references, selectors


def build_params(
        *,
        selector: Collection[selectors.Requirement] = (),
        fields: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    params: Dict[str, str] = {}
    label_selector = selectors.render(selector)
    if label_selector:
        params['labelSelector'] = label_selector
    if fields:
        params['fieldSelector'] = ','.join(f'{key}={val}' for key, val in sorted(fields.items()))
    return params


@retrying.retried
async def get_obj(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Read one object by its name; fail with `APINotFoundError` if it is absent.
    """
    body: bodies.RawBody = await api.get(
        url=resource.get_url(namespace=namespace, name=name),
        logger=logger,
        settings=settings,
    )
    return body


@retrying.retried
async def list_objs(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        selector: Collection[selectors.Requirement] = (),
        fields: Optional[Mapping[str, str]] = None,
        logger: typedefs.Logger,
) -> Tuple[List[bodies.RawBody], Optional[str]]:
    """
    List the objects of specific resource type, as selected by labels & fields.

    The namespace-scoped call is used if the namespace is set,
    and the cluster-wide call is used otherwise.

    A selector that can match nothing (e.g. an empty "in"-set) is not sent
    to the store at all: the store's grammar cannot express it, while
    omitting it would select all objects instead of none.
    """
    if any(requirement.unsatisfiable for requirement in selector):
        return [], None

    rsp = await api.get(
        url=resource.get_url(namespace=namespace,
                             params=build_params(selector=selector, fields=fields)),
        logger=logger,
        settings=settings,
    )

    items: List[bodies.RawBody] = []
    resource_version = rsp.get('metadata', {}).get('resourceVersion', None)
    for item in rsp.get('items', []):
        if 'kind' in rsp:
            item.setdefault('kind', rsp['kind'][:-4] if rsp['kind'][-4:] == 'List' else rsp['kind'])
        if 'apiVersion' in rsp:
            item.setdefault('apiVersion', rsp['apiVersion'])
        items.append(item)

    return items, resource_version
