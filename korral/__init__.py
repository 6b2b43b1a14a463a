"""
The access layer's public interface: all the exported functions & classes.
"""
# isort: skip_file

# Everywhere else, the modules are imported and the functions are referred
# via the modules. Here is the top-level interface as seen by the embedders,
# so the individual names are exported.

from korral.helpers.versions import (
    version as __version__,
)
from korral.helpers.typedefs import (
    Logger,
)
from korral.errors import (
    AccessError,
    InvalidRequestError,
    InvalidMetadataError,
    MetadataProblem,
    ConditionTimeoutError,
    ObjectGoneError,
    NamespaceResolutionError,
    DuplicateObjectError,
)
from korral.clients.errors import (
    APIError,
    APIClientError,
    APIServerError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
    is_authorization_denial,
    is_webhook_rejection,
)
from korral.clients.auth import (
    APIContext,
    authorized,
)
from korral.clients.piggybacking import (
    login,
    login_with_kubeconfig,
    login_with_service_account,
)
from korral.clients.fetching import (
    get_obj,
    list_objs,
)
from korral.clients.creating import (
    create_obj,
)
from korral.clients.patching import (
    patch_obj,
)
from korral.clients.deleting import (
    delete_obj,
    delete_objs,
)
from korral.clients.watching import (
    Bookmark,
    WatchingError,
    continuous_watch,
    watch_objs,
)
from korral.clients.retrying import (
    retried,
    retried_stream,
)
from korral.aiokits.aiotasks import (
    Outcome,
    fan_out,
)
from korral.engines.loggers import (
    LogFormat,
    ObjectLogger,
    configure,
)
from korral.engines.metadata import (
    apply_metadata_patch,
    make_validator,
    update_metadata,
)
from korral.engines.permissions import (
    NamespaceResolver,
    RoleBindingNamespaceResolver,
    ORG_DEPTH,
    SPACE_DEPTH,
    authorized_in,
    find_namespace,
)
from korral.engines.listing import (
    list_objects,
)
from korral.engines.awaiting import (
    await_condition,
)
from korral.structs.bodies import (
    RawBody,
    RawEvent,
    ObjectLike,
    Body,
    Meta,
    Status,
    ObjectReference,
    build_object_reference,
)
from korral.structs.conditions import (
    ConditionPredicate,
    condition_is_true,
    condition_is_false,
    condition_observed,
    generation_observed,
    field_equals,
    all_of,
    any_of,
)
from korral.structs.configuration import (
    AccessSettings,
    BackoffPolicy,
    ExponentialDelay,
)
from korral.structs.credentials import (
    LoginError,
    ConnectionInfo,
    Identity,
)
from korral.structs.patches import (
    Patch,
    MetadataPatch,
)
from korral.structs.queries import (
    ResourceQuery,
    PageInfo,
    ListResult,
    translate,
)
from korral.structs.references import (
    Resource,
    NAMESPACES,
    ROLE_BINDINGS,
)
from korral.structs.selectors import (
    Requirement,
    SelectorSyntaxError,
)

__all__ = [
    'AccessError', 'InvalidRequestError', 'InvalidMetadataError', 'MetadataProblem',
    'ConditionTimeoutError', 'ObjectGoneError',
    'NamespaceResolutionError', 'DuplicateObjectError',
    'APIError', 'APIClientError', 'APIServerError',
    'APIUnauthorizedError', 'APIForbiddenError', 'APINotFoundError', 'APIConflictError',
    'is_authorization_denial', 'is_webhook_rejection',
    'APIContext', 'authorized',
    'login', 'login_with_kubeconfig', 'login_with_service_account',
    'get_obj', 'list_objs', 'create_obj', 'patch_obj', 'delete_obj', 'delete_objs',
    'Bookmark', 'WatchingError', 'continuous_watch', 'watch_objs',
    'retried', 'retried_stream',
    'Outcome', 'fan_out',
    'LogFormat', 'ObjectLogger', 'configure',
    'apply_metadata_patch', 'make_validator', 'update_metadata',
    'NamespaceResolver', 'RoleBindingNamespaceResolver', 'ORG_DEPTH', 'SPACE_DEPTH',
    'authorized_in', 'find_namespace',
    'list_objects',
    'await_condition',
    'RawBody', 'RawEvent', 'ObjectLike', 'Body', 'Meta', 'Status',
    'ObjectReference', 'build_object_reference',
    'ConditionPredicate', 'condition_is_true', 'condition_is_false', 'condition_observed',
    'generation_observed', 'field_equals', 'all_of', 'any_of',
    'AccessSettings', 'BackoffPolicy', 'ExponentialDelay',
    'LoginError', 'ConnectionInfo', 'Identity',
    'Patch', 'MetadataPatch',
    'ResourceQuery', 'PageInfo', 'ListResult', 'translate',
    'Resource', 'NAMESPACES', 'ROLE_BINDINGS',
    'Requirement', 'SelectorSyntaxError',
    'Logger',
]
