"""
Structured queries and their translation into the store's primitives.

A query is what the resource adapters build from the caller's request:
filters by labels, a free-form selector, a sort order, and a page.
The translation is pure: it never touches the store, and either produces
the whole set of clauses or fails with `InvalidRequestError` as a whole.

The store can only select by labels (and by very few fields). Whatever
cannot be expressed with the selectors, goes to the post-filters:
the predicates over the fetched objects, applied by the lister locally.
"""
import dataclasses
import datetime
import math
from typing import Any, Callable, Collection, Generic, List, Mapping, \
                   Optional, Sequence, TypeVar

import iso8601

from korral import errors
from korral.structs import bodies, selectors

_T = TypeVar('_T')

SortKey = Callable[[bodies.Body], Any]
PostFilter = Callable[[bodies.Body], bool]

EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)


@dataclasses.dataclass(frozen=True)
class ResourceQuery:
    """
    One logical request for a list of objects, regardless of the namespaces.
    """

    equality_filters: Mapping[str, str] = dataclasses.field(default_factory=dict)
    """ Labels that must have exactly these values. """

    set_filters: Mapping[str, Collection[str]] = dataclasses.field(default_factory=dict)
    """ Labels that must have one of these values; an empty set matches nothing. """

    exists_filters: Collection[str] = frozenset()
    """ Labels that must be present with any value. """

    raw_selector: Optional[str] = None
    """ A selector string from the caller, in the store's grammar. """

    field_selectors: Mapping[str, str] = dataclasses.field(default_factory=dict)
    """ The store's field selectors, e.g. ``{"metadata.name": "foo"}``. """

    post_filters: Sequence[PostFilter] = ()
    """ Predicates for what the selectors cannot express; applied locally. """

    order_by: str = ''
    """ A column to sort by; ``-`` prefix means descending; empty means unsorted. """

    page: int = 0
    """ A 1-based page number; ``0`` means no paging. """

    per_page: int = 0
    """ The page size; ``0`` means no paging. """


@dataclasses.dataclass(frozen=True)
class SortClause:
    field: str
    key: SortKey
    descending: bool = False


@dataclasses.dataclass(frozen=True)
class PagingClause:
    number: int
    size: int


@dataclasses.dataclass(frozen=True)
class PageInfo:
    total_results: int
    total_pages: int
    page_number: int
    page_size: int


@dataclasses.dataclass(frozen=True)
class ListResult(Generic[_T]):
    records: List[_T]
    page_info: PageInfo


def parse_timestamp(value: Optional[str]) -> datetime.datetime:
    """ Parse the store's timestamps; the absent or broken ones go first. """
    if not value:
        return EPOCH
    try:
        return iso8601.parse_date(value)
    except iso8601.ParseError:
        return EPOCH


def created_at(body: bodies.Body) -> datetime.datetime:
    return parse_timestamp(body.meta.creation_timestamp)


def updated_at(body: bodies.Body) -> datetime.datetime:
    """ The latest time of the managed fields' changes, or the creation time. """
    times = [parse_timestamp(entry.get('time'))
             for entry in body.meta.get('managedFields', []) or []
             if isinstance(entry, Mapping) and entry.get('time')]
    return max(times) if times else created_at(body)


def name(body: bodies.Body) -> str:
    return body.meta.name or ''


DEFAULT_COLUMNS: Mapping[str, SortKey] = {
    'created_at': created_at,
    'updated_at': updated_at,
    'name': name,
}


def translate(query: ResourceQuery) -> List[selectors.Requirement]:
    """
    Convert the query's filters into the label selector's requirements.

    The order of requirements is stable: equality, sets, existence, raw.
    """
    requirements: List[selectors.Requirement] = []
    for key, value in sorted(query.equality_filters.items()):
        requirements.append(selectors.Requirement.equals(
            _checked(key), _checked_value(key, value)))
    for key, values in sorted(query.set_filters.items()):
        requirements.append(selectors.Requirement.is_in(
            _checked(key), [_checked_value(key, value) for value in values]))
    for key in sorted(query.exists_filters):
        requirements.append(selectors.Requirement.exists(_checked(key)))
    if query.raw_selector:
        try:
            requirements.extend(selectors.parse(query.raw_selector))
        except selectors.SelectorSyntaxError as e:
            raise errors.InvalidRequestError(f"invalid label selector: {e}",
                                             field='label_selector') from e
    return requirements


def field_selection(query: ResourceQuery) -> Mapping[str, str]:
    """
    Validate the field selectors: the store's grammar has no quoting or escaping.
    """
    for key, value in query.field_selectors.items():
        if not key or any(char in key for char in ',=!'):
            raise errors.InvalidRequestError(f"invalid field selector: {key!r}", field=key)
        if ',' in value:
            raise errors.InvalidRequestError(f"invalid field selector value: {key!r}: {value!r}",
                                             field=key)
    return query.field_selectors


def ordering(
        query: ResourceQuery,
        columns: Mapping[str, SortKey] = DEFAULT_COLUMNS,
) -> Optional[SortClause]:
    """
    Resolve the sort order of the query against the known columns.
    """
    field = query.order_by.strip()
    descending = field.startswith('-')
    field = field[1:] if descending else field
    if not field and descending:
        raise errors.InvalidRequestError("no field for the descending ordering: '-'",
                                         field='order_by')
    if not field:
        return None
    if field not in columns:
        raise errors.InvalidRequestError(f"unsupported field for ordering: {field!r}",
                                         field='order_by')
    return SortClause(field=field, key=columns[field], descending=descending)


def paging(query: ResourceQuery) -> Optional[PagingClause]:
    """
    Resolve the paging of the query: both the number & the size, or nothing.
    """
    if query.page < 0 or query.per_page < 0:
        raise errors.InvalidRequestError(f"page and per_page must be positive: "
                                         f"{query.page!r}, {query.per_page!r}",
                                         field='page')
    if not query.page or not query.per_page:
        return None
    return PagingClause(number=query.page, size=query.per_page)


def arrange(
        items: Sequence[bodies.Body],
        *,
        sort: Optional[SortClause] = None,
        page: Optional[PagingClause] = None,
) -> ListResult[bodies.Body]:
    """
    Sort & page the already filtered items; compute the page info over all of them.
    """
    ordered = list(items)
    if sort is not None:
        ordered.sort(key=sort.key, reverse=sort.descending)

    total = len(ordered)
    if page is None:
        info = PageInfo(total_results=total, total_pages=1, page_number=1, page_size=total)
        return ListResult(records=ordered, page_info=info)

    start = (page.number - 1) * page.size
    records = ordered[start:start + page.size]
    info = PageInfo(total_results=total,
                    total_pages=math.ceil(total / page.size),
                    page_number=page.number,
                    page_size=page.size)
    return ListResult(records=records, page_info=info)


def _checked(key: str) -> str:
    try:
        selectors.check_qualified_name(key)
    except ValueError as e:
        raise errors.InvalidRequestError(f"invalid label selector: {key!r}: {e}",
                                         field=key) from e
    return key


def _checked_value(key: str, value: str) -> str:
    try:
        selectors.check_label_value(value)
    except ValueError as e:
        raise errors.InvalidRequestError(f"invalid label selector value: {key!r}: {value!r}: {e}",
                                         field=key) from e
    return value
