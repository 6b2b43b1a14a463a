"""
Partial updates of the objects' labels & annotations.

The callers send the partial updates: the keys to set (with new values)
and the keys to remove (with ``None``). Only the keys that actually change
are validated: re-setting an already equal value, or removing an already
absent key, is a no-op and is never rejected. The removals of the present
keys are validated too, so that the reserved keys cannot be removed.

The whole patch is applied or rejected as a whole: if any changing key
is invalid, neither the labels nor the annotations are modified.
"""
import copy
import logging
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

from typing_extensions import Literal

from korral import errors
from korral.clients import fetching, patching
from korral.engines import loggers
from korral.helpers import typedefs
from korral.structs import bodies, configuration, patches, references, selectors

MetadataField = Literal['labels', 'annotations']


def make_validator(reserved_domain: Optional[str]) -> configuration.KeyValidator:
    """
    Build the default validator: a qualified name outside of the reserved domain.

    The reserved domain covers its subdomains: for ``cloudfoundry.org``, both
    ``cloudfoundry.org/x`` and ``korifi.cloudfoundry.org/x`` are rejected.
    """
    def validate(key: str) -> None:
        selectors.check_qualified_name(key)
        prefix, slash, _ = key.rpartition('/')
        if slash and reserved_domain and (prefix == reserved_domain or
                                          prefix.endswith('.' + reserved_domain)):
            raise ValueError(f"label/annotation keys cannot use the {reserved_domain!r} domain")
    return validate


def get_validator(settings: configuration.AccessSettings) -> configuration.KeyValidator:
    if settings.metadata.validator is not None:
        return settings.metadata.validator
    return make_validator(settings.metadata.reserved_domain)


def effective_changes(
        current: Mapping[str, str],
        changes: Mapping[str, Optional[str]],
) -> Dict[str, Optional[str]]:
    """
    Filter the changes to only those which modify the current values.
    """
    return {
        key: value for key, value in changes.items()
        if ((key in current) if value is None else (key not in current or current[key] != value))
    }


def check_changes(
        field: MetadataField,
        changes: Mapping[str, Optional[str]],
        *,
        validator: configuration.KeyValidator,
) -> None:
    """
    Validate the changing keys (and the label values); report all problems at once.
    """
    problems: List[errors.MetadataProblem] = []
    for key, value in changes.items():
        try:
            validator(key)
        except ValueError as e:
            problems.append(errors.MetadataProblem(key=key, value=value, reason=str(e)))
            continue
        if field == 'labels' and value is not None:
            try:
                selectors.check_label_value(value)
            except ValueError as e:
                problems.append(errors.MetadataProblem(key=key, value=value, reason=str(e)))
    if problems:
        raise errors.InvalidMetadataError(field=field, problems=problems)


def apply_metadata_patch(
        body: MutableMapping[str, Any],
        patch: patches.MetadataPatch,
        *,
        validator: configuration.KeyValidator,
) -> patches.MetadataPatch:
    """
    Apply the patch to the raw body in place; return the effective changes.

    The absent labels & annotations are initialised as empty when changed.
    On validation errors, or without effective changes, the body remains untouched.
    """
    meta: MutableMapping[str, Any] = body.get('metadata') or {}
    labels = effective_changes(meta.get('labels') or {}, patch.labels)
    annotations = effective_changes(meta.get('annotations') or {}, patch.annotations)

    # Validate everything before modifying anything.
    check_changes('labels', labels, validator=validator)
    check_changes('annotations', annotations, validator=validator)

    effective = patches.MetadataPatch(labels=labels, annotations=annotations)
    if not effective:
        return effective

    meta = body.setdefault('metadata', meta)
    for field, changes in [('labels', labels), ('annotations', annotations)]:
        if not changes:
            continue
        target: Optional[MutableMapping[str, str]] = meta.get(field)
        if target is None:
            target = meta[field] = {}
        for key, value in changes.items():
            if value is None:
                del target[key]
            else:
                target[key] = value

    return effective


async def update_metadata(
        *,
        settings: configuration.AccessSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        patch: patches.MetadataPatch,
        logger: typedefs.Logger = logging.getLogger(__name__),
) -> bodies.RawBody:
    """
    Read the object, apply the patch locally, and send only the effective changes.

    The reads and writes are retried while the permissions propagate
    (as all the client operations are). If nothing changes effectively,
    the object is returned as read, and no write is made.
    """
    body = await fetching.get_obj(settings=settings, resource=resource,
                                  namespace=namespace, name=name, logger=logger)
    patched = copy.deepcopy(body)
    effective = apply_metadata_patch(patched, patch, validator=get_validator(settings))
    if not effective:
        return body

    objlogger = loggers.ObjectLogger(body=body)
    objlogger.debug(f"Patching the metadata with {effective.as_patch()!r}")
    return await patching.patch_obj(settings=settings, resource=resource,
                                    namespace=namespace, name=name,
                                    patch=effective.as_patch(), logger=logger)
