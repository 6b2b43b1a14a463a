"""
All the structures needed for patching the store's objects.

The store's patching is a JSON merge-patch (RFC 7386),
i.e. a simple dictionary with field overrides, and ``None`` for field deletions.

The metadata patches are the caller-facing partial updates of the labels
and annotations; they are applied locally first (for validation), and then
sent to the store as a merge-patch of the metadata only.
"""
import dataclasses
from typing import Any, Dict, Mapping, MutableMapping, Optional


class Patch(Dict[str, Any]):
    """ A JSON merge-patch: nested dicts override the fields, ``None`` removes them. """

    def __init__(self, __src: Optional[MutableMapping[str, Any]] = None) -> None:
        super().__init__(__src or {})


@dataclasses.dataclass(frozen=True)
class MetadataPatch:
    """
    A partial update of the labels & annotations.

    A ``None`` value means the removal of the key; other values overwrite.
    The keys not mentioned in the patch are left intact.
    """
    labels: Mapping[str, Optional[str]] = dataclasses.field(default_factory=dict)
    annotations: Mapping[str, Optional[str]] = dataclasses.field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.labels or self.annotations)

    def as_patch(self) -> Patch:
        """ Render it as a merge-patch of the object's metadata. """
        meta: Dict[str, Any] = {}
        if self.labels:
            meta['labels'] = dict(self.labels)
        if self.annotations:
            meta['annotations'] = dict(self.annotations)
        return Patch({'metadata': meta} if meta else {})
