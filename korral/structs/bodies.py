"""
All the structures coming from/to the store's API.

The usage of these classes is spread over the codebase, so they are extracted
into a separate module of such type definitions.

For strict type-checking, they are detailed to the per-field level
(e.g. `TypedDict` instead of just ``Mapping[Any, Any]``) -- as used
by the access layer. The resource adapters can use arbitrary fields at runtime,
which are not declared in the type definitions at type-checking time.

.. note::

    The store-originated objects are dicts. The access layer never converts
    them to concrete resource classes: the adapters do it on their side.
    Everything the core needs from an object is in `ObjectLike`.
"""
from typing import Any, List, Mapping, Optional, Sequence, Union, cast

from typing_extensions import Literal, Protocol, TypedDict

from korral.structs import dicts, references

Labels = Mapping[str, str]
Annotations = Mapping[str, str]

#
# Everything marked "raw" is a plain unwrapped unprocessed data as JSON-decoded
# from the store's API, usually as retrieved in watching or fetching API calls.
# "Input" is a parsed JSON as is, while "event" is an "input" without "errors".
#

# ``None`` is used for the listing, when the pseudo-watch-stream is simulated.
RawInputType = Literal[None, 'ADDED', 'MODIFIED', 'DELETED', 'ERROR']
RawEventType = Literal[None, 'ADDED', 'MODIFIED', 'DELETED']
ConditionStatus = Literal['True', 'False', 'Unknown']


class RawCondition(TypedDict, total=False):
    type: str
    status: ConditionStatus
    reason: str
    message: str
    observedGeneration: int
    lastTransitionTime: str


class RawManagedField(TypedDict, total=False):
    manager: str
    operation: str
    time: str


class RawMeta(TypedDict, total=False):
    uid: str
    name: str
    namespace: str
    labels: Labels
    annotations: Annotations
    generation: int
    resourceVersion: str
    creationTimestamp: str
    deletionTimestamp: str
    managedFields: List[RawManagedField]


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta
    spec: Mapping[str, Any]
    status: Mapping[str, Any]


# A special payload for type==ERROR (this is not a connection or client error).
class RawError(TypedDict, total=False):
    apiVersion: str     # usually: Literal['v1']
    kind: str           # usually: Literal['Status']
    metadata: Mapping[Any, Any]
    code: int
    reason: str
    status: str
    message: str


# As received from the stream before processing the errors and special cases.
class RawInput(TypedDict, total=True):
    type: RawInputType
    object: Union[RawBody, RawError]


# As passed to the consumers after processing the errors and special cases.
class RawEvent(TypedDict, total=True):
    type: RawEventType
    object: RawBody


class ObjectLike(Protocol):
    """
    The minimal capability set of any object the access layer manipulates.

    Concrete resource records of the adapters can implement it on their own;
    the raw store objects get it via the `Body` wrapper.
    """

    @property
    def name(self) -> Optional[str]: ...

    @property
    def namespace(self) -> references.Namespace: ...

    @property
    def labels(self) -> Labels: ...

    @property
    def annotations(self) -> Annotations: ...

    @property
    def conditions(self) -> Sequence[RawCondition]: ...


#
# Enhanced dict-wrappers for easier typed access to well-known typed fields.
#


class Meta(dicts.MappingView[str, Any]):

    def __init__(self, __src: "Body") -> None:
        super().__init__(__src, 'metadata')
        self._labels: dicts.MappingView[str, str] = dicts.MappingView(self, 'labels')
        self._annotations: dicts.MappingView[str, str] = dicts.MappingView(self, 'annotations')

    @property
    def labels(self) -> Labels:
        return self._labels

    @property
    def annotations(self) -> Annotations:
        return self._annotations

    @property
    def uid(self) -> Optional[str]:
        return cast(Optional[str], self.get('uid'))

    @property
    def name(self) -> Optional[str]:
        return cast(Optional[str], self.get('name'))

    @property
    def namespace(self) -> references.Namespace:
        return cast(references.Namespace, self.get('namespace'))

    @property
    def generation(self) -> Optional[int]:
        return cast(Optional[int], self.get('generation'))

    @property
    def resource_version(self) -> Optional[str]:
        return cast(Optional[str], self.get('resourceVersion'))

    @property
    def creation_timestamp(self) -> Optional[str]:
        return cast(Optional[str], self.get('creationTimestamp'))

    @property
    def deletion_timestamp(self) -> Optional[str]:
        return cast(Optional[str], self.get('deletionTimestamp'))


class Status(dicts.MappingView[str, Any]):

    def __init__(self, __src: "Body") -> None:
        super().__init__(__src, 'status')

    @property
    def conditions(self) -> Sequence[RawCondition]:
        conditions = self.get('conditions')
        return list(conditions) if isinstance(conditions, list) else []

    @property
    def observed_generation(self) -> Optional[int]:
        return cast(Optional[int], self.get('observedGeneration'))


class Body(dicts.MappingView[str, Any]):
    """
    A read-only typed view of a raw body, which also satisfies `ObjectLike`.
    """

    def __init__(self, __src: Mapping[str, Any]) -> None:
        super().__init__(__src)
        self._meta = Meta(self)
        self._status = Status(self)

    @property
    def raw(self) -> RawBody:
        return cast(RawBody, self._src)

    @property
    def metadata(self) -> Meta:
        return self._meta

    @property
    def meta(self) -> Meta:
        return self._meta

    @property
    def spec(self) -> Mapping[str, Any]:
        return dicts.MappingView(self, 'spec')

    @property
    def status(self) -> Status:
        return self._status

    @property
    def name(self) -> Optional[str]:
        return self._meta.name

    @property
    def namespace(self) -> references.Namespace:
        return self._meta.namespace

    @property
    def labels(self) -> Labels:
        return self._meta.labels

    @property
    def annotations(self) -> Annotations:
        return self._meta.annotations

    @property
    def conditions(self) -> Sequence[RawCondition]:
        return self._status.conditions


class ObjectReference(TypedDict, total=False):
    apiVersion: str
    kind: str
    namespace: Optional[str]
    name: str
    uid: str


def build_object_reference(
        body: Mapping[str, Any],
) -> ObjectReference:
    """
    Construct an object reference for the logs.

    Keep in mind that some fields can be absent: e.g. ``namespace``
    for cluster resources, or e.g. ``apiVersion`` for ``kind: Node``, etc.
    """
    ref = dict(
        apiVersion=body.get('apiVersion'),
        kind=body.get('kind'),
        name=body.get('metadata', {}).get('name'),
        uid=body.get('metadata', {}).get('uid'),
        namespace=body.get('metadata', {}).get('namespace'),
    )
    return cast(ObjectReference, {key: val for key, val in ref.items() if val})
