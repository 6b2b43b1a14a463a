"""
The errors of the access layer itself, as opposed to the store's API errors.

The store's API errors (`korral.clients.errors`) are propagated as they are:
e.g., the "not found", "forbidden", "conflict" errors keep their classes,
so that the HTTP layer can map them to the status codes without string
matching. The errors here cover what the store cannot know about:
malformed queries, invalid metadata, unmet conditions, vanished objects.
"""
from typing import Collection, NamedTuple, Optional

from typing_extensions import Literal


class AccessError(Exception):
    """ A base for all errors of the access layer (not of the store's API). """


class InvalidRequestError(AccessError):
    """
    A query cannot be translated: e.g. a bad selector syntax or an unknown field.

    Never retried: the same request will always fail the same way.
    """

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class MetadataProblem(NamedTuple):
    key: str
    value: Optional[str]
    reason: str


class InvalidMetadataError(InvalidRequestError):
    """
    Some changing labels or annotations are not acceptable.

    All offending keys of one field (labels or annotations) are reported at once.
    """

    def __init__(
            self,
            *,
            field: Literal['labels', 'annotations'],
            problems: Collection[MetadataProblem],
    ) -> None:
        details = '; '.join(f"{p.key!r}: {p.reason}" for p in problems)
        super().__init__(f"metadata.{field} is invalid: {details}", field=field)
        self.problems = list(problems)


class ConditionTimeoutError(AccessError):
    """ The awaited condition was not met in time; the object still exists. """


class ObjectGoneError(AccessError):
    """ The awaited object was deleted before the condition was met. """


class NamespaceResolutionError(AccessError):
    """ The caller's authorized namespaces cannot be determined. """


class DuplicateObjectError(AccessError):
    """ An object name, which must be unique across namespaces, is found in several ones. """
