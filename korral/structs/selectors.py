"""
Label selectors: parsing, rendering, and local matching.

The store's grammar of label selectors is used as is::

    selector    := requirement ( "," requirement )*
    requirement := key ( "=" | "==" | "!=" ) value
                 | key ( "in" | "notin" ) "(" value ( "," value )* ")"
                 | key
                 | "!" key

The selectors are rendered back to the same grammar for the API calls
(``?labelSelector=...``), and can be matched locally against the labels
(e.g. for the post-filtering or for the tests).

A special case is a set-requirement with no values at all (``key in ()``):
the store's grammar does not allow it, but semantically it matches nothing.
Such requirements are never rendered; the callers must check
`Requirement.unsatisfiable` and skip the API calls entirely.
"""
import dataclasses
import enum
import re
from typing import Collection, Iterable, List, Mapping, Optional, Tuple

QUALIFIED_NAME_MAX_LENGTH = 63
DNS_SUBDOMAIN_MAX_LENGTH = 253
LABEL_VALUE_MAX_LENGTH = 63

QUALIFIED_NAME_RE = re.compile(r'^([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]$')
DNS_SUBDOMAIN_RE = re.compile(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$')
LABEL_VALUE_RE = re.compile(r'^(([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9])?$')

_TOKEN_RE = re.compile(r'\s*(?:(?P<op>!=|==|=|!|\(|\)|,)|(?P<word>[^\s!=(),]+))')


class SelectorSyntaxError(ValueError):
    """ Raised when a selector string does not follow the grammar. """


class Operator(str, enum.Enum):
    EQUALS = '='
    NOT_EQUALS = '!='
    IN = 'in'
    NOT_IN = 'notin'
    EXISTS = 'exists'
    DOES_NOT_EXIST = '!'


def check_qualified_name(key: str) -> None:
    """
    Check a label/annotation key: an optional DNS-subdomain prefix and a name.

    Raises `ValueError` with a human-readable reason if the key is malformed.
    """
    prefix, slash, name = key.rpartition('/')
    if slash and not prefix:
        raise ValueError("prefix part must be non-empty")
    if slash:
        if len(prefix) > DNS_SUBDOMAIN_MAX_LENGTH:
            raise ValueError(f"prefix part must be no more than {DNS_SUBDOMAIN_MAX_LENGTH} characters")
        if not DNS_SUBDOMAIN_RE.match(prefix):
            raise ValueError("prefix part must consist of lower case alphanumeric characters, "
                             "'-' or '.', and must start and end with an alphanumeric character")
    if not name:
        raise ValueError("name part must be non-empty")
    if len(name) > QUALIFIED_NAME_MAX_LENGTH:
        raise ValueError(f"name part must be no more than {QUALIFIED_NAME_MAX_LENGTH} characters")
    if not QUALIFIED_NAME_RE.match(name):
        raise ValueError("name part must consist of alphanumeric characters, '-', '_' or '.', "
                         "and must start and end with an alphanumeric character")


def check_label_value(value: str) -> None:
    if len(value) > LABEL_VALUE_MAX_LENGTH:
        raise ValueError(f"must be no more than {LABEL_VALUE_MAX_LENGTH} characters")
    if not LABEL_VALUE_RE.match(value):
        raise ValueError("a valid label must be an empty string or consist of alphanumeric "
                         "characters, '-', '_' or '.', and must start and end with an "
                         "alphanumeric character")


@dataclasses.dataclass(frozen=True)
class Requirement:
    """
    One clause of a label selector; all clauses of a selector are AND'ed.
    """
    key: str
    operator: Operator
    values: Tuple[str, ...] = ()

    @classmethod
    def equals(cls, key: str, value: str) -> "Requirement":
        return cls(key, Operator.EQUALS, (value,))

    @classmethod
    def not_equals(cls, key: str, value: str) -> "Requirement":
        return cls(key, Operator.NOT_EQUALS, (value,))

    @classmethod
    def is_in(cls, key: str, values: Iterable[str]) -> "Requirement":
        return cls(key, Operator.IN, tuple(sorted(set(values))))

    @classmethod
    def not_in(cls, key: str, values: Iterable[str]) -> "Requirement":
        return cls(key, Operator.NOT_IN, tuple(sorted(set(values))))

    @classmethod
    def exists(cls, key: str) -> "Requirement":
        return cls(key, Operator.EXISTS)

    @classmethod
    def does_not_exist(cls, key: str) -> "Requirement":
        return cls(key, Operator.DOES_NOT_EXIST)

    @property
    def unsatisfiable(self) -> bool:
        """ Whether the requirement matches no objects at all, regardless of labels. """
        return self.operator is Operator.IN and not self.values

    def __str__(self) -> str:
        if self.unsatisfiable:
            raise ValueError(f"An empty set-requirement cannot be rendered: {self.key!r}")
        if self.operator is Operator.EXISTS:
            return self.key
        if self.operator is Operator.DOES_NOT_EXIST:
            return f'!{self.key}'
        if self.operator in (Operator.IN, Operator.NOT_IN):
            return f'{self.key} {self.operator.value} ({",".join(self.values)})'
        return f'{self.key}{self.operator.value}{self.values[0]}'

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        value = labels.get(self.key)
        if self.operator is Operator.EXISTS:
            return present
        if self.operator is Operator.DOES_NOT_EXIST:
            return not present
        if self.operator is Operator.EQUALS:
            return present and value == self.values[0]
        if self.operator is Operator.NOT_EQUALS:
            return not present or value != self.values[0]
        if self.operator is Operator.IN:
            return present and value in self.values
        if self.operator is Operator.NOT_IN:
            return not present or value not in self.values
        raise TypeError(f"Unsupported operator: {self.operator!r}")


def render(requirements: Collection[Requirement]) -> Optional[str]:
    """
    Render the requirements into a selector string, or ``None`` if nothing to select.
    """
    return ','.join(str(requirement) for requirement in requirements) or None


def matches(requirements: Iterable[Requirement], labels: Mapping[str, str]) -> bool:
    return all(requirement.matches(labels) for requirement in requirements)


def parse(text: str) -> List[Requirement]:
    """
    Parse a selector string into requirements, validating the keys & values.

    An empty or whitespace-only string produces no requirements (selects all).
    """
    tokens = _tokenize(text)
    requirements: List[Requirement] = []
    pos = 0

    def peek() -> Optional[str]:
        return tokens[pos] if pos < len(tokens) else None

    def take(what: str) -> str:
        nonlocal pos
        token = peek()
        if token is None:
            raise SelectorSyntaxError(f"Unexpected end of selector, expected {what}: {text!r}")
        pos += 1
        return token

    def take_word(what: str) -> str:
        token = take(what)
        if token in ('!=', '==', '=', '!', '(', ')', ','):
            raise SelectorSyntaxError(f"Expected {what}, found {token!r}: {text!r}")
        return token

    while peek() is not None:
        if peek() == '!':
            take('!')
            key = _checked_key(take_word('a key'), text)
            requirements.append(Requirement.does_not_exist(key))
        else:
            key = _checked_key(take_word('a key'), text)
            token = peek()
            if token is None or token == ',':
                requirements.append(Requirement.exists(key))
            elif token in ('=', '==', '!='):
                take('an operator')
                value = ''
                if peek() not in (None, ','):
                    value = _checked_value(take_word('a value'), text)
                if token == '!=':
                    requirements.append(Requirement.not_equals(key, value))
                else:
                    requirements.append(Requirement.equals(key, value))
            elif token in ('in', 'notin'):
                take('an operator')
                if take("'('") != '(':
                    raise SelectorSyntaxError(f"Expected '(' after {token!r}: {text!r}")
                values: List[str] = []
                while True:
                    values.append(_checked_value(take_word('a value'), text))
                    closing = take("',' or ')'")
                    if closing == ')':
                        break
                    if closing != ',':
                        raise SelectorSyntaxError(f"Expected ',' or ')', found {closing!r}: {text!r}")
                if token == 'in':
                    requirements.append(Requirement.is_in(key, values))
                else:
                    requirements.append(Requirement.not_in(key, values))
            else:
                raise SelectorSyntaxError(f"Unexpected {token!r} after the key {key!r}: {text!r}")

        separator = peek()
        if separator is not None:
            if take("','") != ',':
                raise SelectorSyntaxError(f"Expected ',' between requirements: {text!r}")
            if peek() is None:
                raise SelectorSyntaxError(f"A trailing ',' in the selector: {text!r}")

    return requirements


def _tokenize(text: str) -> List[str]:
    tokens: List[str] = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None or m.end() == pos:
            raise SelectorSyntaxError(f"Cannot tokenize the selector at {pos}: {text!r}")
        tokens.append(m.group('op') or m.group('word'))
        pos = m.end()
    return tokens


def _checked_key(key: str, text: str) -> str:
    try:
        check_qualified_name(key)
    except ValueError as e:
        raise SelectorSyntaxError(f"Invalid key {key!r}: {e}: {text!r}") from e
    return key


def _checked_value(value: str, text: str) -> str:
    try:
        check_label_value(value)
    except ValueError as e:
        raise SelectorSyntaxError(f"Invalid value {value!r}: {e}: {text!r}") from e
    return value
