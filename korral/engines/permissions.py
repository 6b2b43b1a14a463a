"""
Resolving the namespaces where the caller is authorized.

The namespaces of interest form a tree under the root namespace: the orgs
are at depth 1, the spaces are at depth 2, as marked by the hierarchy labels
(``<root>.tree.hnc.x-k8s.io/depth``). The caller is authorized in a namespace
if any role binding there names the caller as its subject.

The lookups are made with the privileged credentials of the access layer,
since the callers usually cannot list the role bindings on their own.
The results are never cached: the grants can change between the requests.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, cast

from typing_extensions import Protocol

from korral import errors
from korral.clients import auth, fetching
from korral.clients import errors as apierrors
from korral.helpers import typedefs
from korral.structs import bodies, configuration, credentials, references, selectors

DEPTH_LABEL_SUFFIX = '.tree.hnc.x-k8s.io/depth'
ORG_DEPTH = 1
SPACE_DEPTH = 2


class NamespaceResolver(Protocol):
    async def resolve(
            self,
            identity: credentials.Identity,
    ) -> Mapping[references.NamespaceName, bool]:
        ...


class RoleBindingNamespaceResolver:
    """
    Resolve the namespaces by the role bindings with the caller as a subject.

    If the depth is not set, all namespaces of the tree (orgs & spaces) are
    considered. The namespaces outside of the tree are never reported.
    """

    def __init__(
            self,
            *,
            settings: configuration.AccessSettings,
            info: credentials.ConnectionInfo,
            root_namespace: str,
            depth: Optional[int] = None,
            logger: typedefs.Logger = logging.getLogger(__name__),
    ) -> None:
        super().__init__()
        self.settings = settings
        self.info = info
        self.root_namespace = root_namespace
        self.depth = depth
        self.logger = logger

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} {self.root_namespace!r} depth={self.depth!r}>'

    @property
    def selector(self) -> List[selectors.Requirement]:
        label = f'{self.root_namespace}{DEPTH_LABEL_SUFFIX}'
        if self.depth is None:
            return [selectors.Requirement.exists(label)]
        else:
            return [selectors.Requirement.equals(label, str(self.depth))]

    async def resolve(
            self,
            identity: credentials.Identity,
    ) -> Mapping[references.NamespaceName, bool]:
        async with auth.authorized(self.info):
            try:
                namespaces, _ = await fetching.list_objs(
                    settings=self.settings,
                    resource=references.NAMESPACES,
                    namespace=None,
                    selector=self.selector,
                    logger=self.logger,
                )
            except apierrors.APIError as e:
                raise errors.NamespaceResolutionError(f"failed to list namespaces: {e}") from e

            try:
                bindings, _ = await fetching.list_objs(
                    settings=self.settings,
                    resource=references.ROLE_BINDINGS,
                    namespace=None,
                    logger=self.logger,
                )
            except apierrors.APIError as e:
                raise errors.NamespaceResolutionError(f"failed to list rolebindings: {e}") from e

        candidates = {bodies.Body(namespace).name for namespace in namespaces}
        result: Dict[references.NamespaceName, bool] = {}
        for binding in bindings:
            body = bodies.Body(binding)
            if body.namespace is not None and body.namespace in candidates and is_bound(binding, identity):
                result[body.namespace] = True

        self.logger.debug(f"Resolved {len(result)} of {len(candidates)} namespaces "
                          f"for {identity.kind} {identity.name!r}.")
        return result


def is_bound(binding: Mapping[str, Any], identity: credentials.Identity) -> bool:
    """ Check if the role binding has the identity among its subjects. """
    subjects: Iterable[Mapping[str, Any]] = binding.get('subjects') or []
    service_account = identity.service_account
    for subject in subjects:
        kind = subject.get('kind')
        if service_account is not None:
            if kind == 'ServiceAccount' and f"{subject.get('namespace')}:{subject.get('name')}" == service_account:
                return True
        elif kind == 'User' and subject.get('name') == identity.name:
            return True
    return False


async def authorized_in(
        resolver: NamespaceResolver,
        identity: credentials.Identity,
        namespace: references.NamespaceName,
) -> bool:
    namespaces = await resolver.resolve(identity)
    return bool(namespaces.get(namespace, False))


async def find_namespace(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        name: str,
        logger: typedefs.Logger = logging.getLogger(__name__),
) -> references.NamespaceName:
    """
    Find the namespace of an object by its name, which is unique cluster-wide.

    The objects are usually addressed by their unique names (GUIDs) only,
    with no namespace known to the caller.
    """
    objs, _ = await fetching.list_objs(
        settings=settings,
        resource=resource,
        namespace=None,
        fields={'metadata.name': name},
        logger=logger,
    )
    namespaces: List[str] = sorted({bodies.Body(obj).namespace or '' for obj in objs})
    if not namespaces:
        status = {'kind': 'Status', 'code': 404, 'reason': 'NotFound',
                  'message': f"{resource.plural} {name!r} not found"}
        raise apierrors.APINotFoundError(cast(apierrors.RawStatus, status), status=404)
    if len(namespaces) > 1:
        raise errors.DuplicateObjectError(f"{resource.plural} {name!r} is found in several "
                                          f"namespaces: {', '.join(map(repr, namespaces))}")
    return references.NamespaceName(namespaces[0])
