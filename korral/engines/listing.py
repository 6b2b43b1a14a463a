"""
Listing the objects across all namespaces where the caller is authorized.

The pipeline is: resolve the namespaces → list in each of them concurrently
→ skip the namespaces where the access is denied → concatenate → post-filter
→ sort → page. The paging is computed over the union of all namespaces,
so the caller sees one consistent page regardless of the namespaces' number.

The post-filters are only for what the store cannot select on: labels
and sets of labels always go to the store's label selectors; the filters
by the fields inside the objects (or by the names in bulk) are applied here.
"""
import logging
from typing import Collection, List, Mapping, Optional

from korral.aiokits import aiotasks
from korral.clients import auth
from korral.clients import errors as apierrors
from korral.clients import fetching
from korral.engines import permissions
from korral.helpers import typedefs
from korral.structs import bodies, configuration, credentials, queries, references, selectors


async def list_objects(
        *,
        settings: configuration.AccessSettings,
        resolver: permissions.NamespaceResolver,
        info: credentials.ConnectionInfo,
        identity: credentials.Identity,
        resource: references.Resource,
        query: queries.ResourceQuery = queries.ResourceQuery(),
        columns: Mapping[str, queries.SortKey] = queries.DEFAULT_COLUMNS,
        logger: typedefs.Logger = logging.getLogger(__name__),
) -> queries.ListResult[bodies.Body]:
    """
    List the objects of a resource in all the caller's namespaces.

    The query is validated before any request: a malformed query fails
    with `InvalidRequestError` even if the caller has no namespaces at all.
    Having no authorized namespaces is not an error: the result is empty.
    """
    selector = queries.translate(query)
    fields = queries.field_selection(query)
    sort = queries.ordering(query, columns)
    page = queries.paging(query)

    authorized = await resolver.resolve(identity)
    namespaces = sorted(namespace for namespace, allowed in authorized.items() if allowed)
    if not namespaces:
        logger.debug(f"No authorized namespaces for {identity.kind} {identity.name!r}.")
        return queries.arrange([], sort=sort, page=page)

    async with auth.authorized(info, identity):
        items = await list_in_namespaces(
            settings=settings,
            resource=resource,
            namespaces=namespaces,
            selector=selector,
            fields=fields,
            logger=logger,
        )

    filtered = [body for body in items if all(fn(body) for fn in query.post_filters)]
    return queries.arrange(filtered, sort=sort, page=page)


async def list_in_namespaces(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        namespaces: Collection[references.NamespaceName],
        selector: Collection[selectors.Requirement] = (),
        fields: Optional[Mapping[str, str]] = None,
        logger: typedefs.Logger,
) -> List[bodies.Body]:
    """
    List the objects in each namespace with bounded parallelism; concatenate.

    The namespaces where the access is denied are skipped: the grants can be
    revoked (or the namespaces deleted) after the namespaces were resolved.
    Any other error aborts the whole listing.
    """
    if any(requirement.unsatisfiable for requirement in selector):
        return []

    async def list_one(namespace: references.NamespaceName) -> List[bodies.RawBody]:
        objs, _ = await fetching.list_objs(
            settings=settings,
            resource=resource,
            namespace=namespace,
            selector=selector,
            fields=fields,
            logger=logger,
        )
        return objs

    outcomes = await aiotasks.fan_out(
        namespaces, list_one,
        tolerate=apierrors.is_authorization_denial,
        concurrency=settings.listing.concurrency,
        title='namespace',
        logger=logger,
    )
    return [bodies.Body(obj) for outcome in outcomes for obj in outcome.value or []]
