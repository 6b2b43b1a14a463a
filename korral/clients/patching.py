from korral.clients import api, retrying
from korral.helpers import typedefs
from korral.structs import bodies, configuration, patches, references


@retrying.retried
async def patch_obj(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        patch: patches.Patch,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Patch an object with a JSON merge-patch, and return the patched body.

    Unlike a read-modify-write cycle, a merge-patch does not conflict
    with the concurrent changes of other fields, so it is never retried
    on conflicts. If the object is absent, `APINotFoundError` is raised.

    If the resource has a status subresource, the status part of the patch
    is sent separately to it, and merged into the returned body.
    """
    as_subresource = 'status' in resource.subresources
    body_patch = dict(patch)  # shallow: for mutation of the top-level keys below.
    status_patch = body_patch.pop('status', None) if as_subresource else None

    patched_body = bodies.RawBody()
    if body_patch or not status_patch:
        patched_body = await api.patch(
            url=resource.get_url(namespace=namespace, name=name),
            headers={'Content-Type': 'application/merge-patch+json'},
            payload=body_patch,
            settings=settings,
            logger=logger,
        )

    if status_patch:
        response = await api.patch(
            url=resource.get_url(namespace=namespace, name=name, subresource='status'),
            headers={'Content-Type': 'application/merge-patch+json'},
            payload={'status': status_patch},
            settings=settings,
            logger=logger,
        )
        patched_body = response if not body_patch else dict(patched_body, status=response.get('status'))

    return patched_body
