import pytest

from korral.structs.selectors import Operator, Requirement, SelectorSyntaxError, \
                                     check_label_value, check_qualified_name, \
                                     matches, parse, render


@pytest.mark.parametrize('key', [
    'a',
    'app',
    'my-label_1.x',
    'example.com/name',
    'korifi.cloudfoundry.org/app-guid',
    'a' * 63,
    'x' * 253 + '/name',
])
def test_qualified_names_accepted(key):
    check_qualified_name(key)


@pytest.mark.parametrize('key, reason', [
    ('', "name part must be non-empty"),
    ('/name', "prefix part must be non-empty"),
    ('example.com/', "name part must be non-empty"),
    ('-name', "must start and end with an alphanumeric"),
    ('name-', "must start and end with an alphanumeric"),
    ('na me', "must consist of alphanumeric"),
    ('a' * 64, "no more than 63 characters"),
    ('Example.com/name', "prefix part must consist of lower case"),
    ('x' * 254 + '/name', "no more than 253 characters"),
])
def test_qualified_names_rejected(key, reason):
    with pytest.raises(ValueError) as e:
        check_qualified_name(key)
    assert reason in str(e.value)


@pytest.mark.parametrize('value', ['', 'a', 'some-value_1.2', 'x' * 63])
def test_label_values_accepted(value):
    check_label_value(value)


@pytest.mark.parametrize('value', ['-a', 'a-', 'with space', 'x' * 64, 'a/b'])
def test_label_values_rejected(value):
    with pytest.raises(ValueError):
        check_label_value(value)


def test_set_values_are_deduplicated_and_sorted():
    requirement = Requirement.is_in('key', ['b', 'a', 'b'])
    assert requirement.values == ('a', 'b')


def test_empty_in_set_is_unsatisfiable():
    requirement = Requirement.is_in('key', [])
    assert requirement.unsatisfiable
    assert not requirement.matches({'key': ''})
    assert not requirement.matches({})


@pytest.mark.parametrize('requirement', [
    Requirement.not_in('key', []),
    Requirement.is_in('key', ['a']),
    Requirement.equals('key', ''),
    Requirement.exists('key'),
    Requirement.does_not_exist('key'),
])
def test_other_requirements_are_satisfiable(requirement):
    assert not requirement.unsatisfiable


def test_unsatisfiable_requirement_is_never_rendered():
    with pytest.raises(ValueError):
        str(Requirement.is_in('key', []))


@pytest.mark.parametrize('requirement, expected', [
    (Requirement.equals('key', 'val'), 'key=val'),
    (Requirement.not_equals('key', 'val'), 'key!=val'),
    (Requirement.is_in('key', ['b', 'a']), 'key in (a,b)'),
    (Requirement.not_in('key', ['b', 'a']), 'key notin (a,b)'),
    (Requirement.exists('key'), 'key'),
    (Requirement.does_not_exist('key'), '!key'),
])
def test_rendering_of_one_requirement(requirement, expected):
    assert str(requirement) == expected


def test_rendering_of_many_requirements():
    selector = render([Requirement.equals('a', '1'), Requirement.exists('b')])
    assert selector == 'a=1,b'


def test_rendering_of_no_requirements():
    assert render([]) is None


@pytest.mark.parametrize('requirement, labels, expected', [
    (Requirement.equals('key', 'val'), {'key': 'val'}, True),
    (Requirement.equals('key', 'val'), {'key': 'other'}, False),
    (Requirement.equals('key', 'val'), {}, False),
    (Requirement.not_equals('key', 'val'), {'key': 'other'}, True),
    (Requirement.not_equals('key', 'val'), {}, True),
    (Requirement.not_equals('key', 'val'), {'key': 'val'}, False),
    (Requirement.is_in('key', ['a', 'b']), {'key': 'b'}, True),
    (Requirement.is_in('key', ['a', 'b']), {'key': 'c'}, False),
    (Requirement.is_in('key', ['a', 'b']), {}, False),
    (Requirement.not_in('key', ['a', 'b']), {'key': 'c'}, True),
    (Requirement.not_in('key', ['a', 'b']), {}, True),
    (Requirement.not_in('key', ['a', 'b']), {'key': 'a'}, False),
    (Requirement.exists('key'), {'key': ''}, True),
    (Requirement.exists('key'), {}, False),
    (Requirement.does_not_exist('key'), {}, True),
    (Requirement.does_not_exist('key'), {'key': ''}, False),
])
def test_local_matching(requirement, labels, expected):
    assert requirement.matches(labels) is expected


def test_matching_of_many_requirements_is_conjunctive():
    requirements = [Requirement.equals('a', '1'), Requirement.exists('b')]
    assert matches(requirements, {'a': '1', 'b': ''})
    assert not matches(requirements, {'a': '1'})
    assert not matches(requirements, {'b': ''})


@pytest.mark.parametrize('text, expected', [
    ('', []),
    ('   ', []),
    ('key', [Requirement.exists('key')]),
    ('!key', [Requirement.does_not_exist('key')]),
    ('key=val', [Requirement.equals('key', 'val')]),
    ('key==val', [Requirement.equals('key', 'val')]),
    ('key=', [Requirement.equals('key', '')]),
    ('key!=val', [Requirement.not_equals('key', 'val')]),
    ('key in (b, a)', [Requirement.is_in('key', ['a', 'b'])]),
    ('key notin (a)', [Requirement.not_in('key', ['a'])]),
    ('example.com/a = 1 , !b, c', [
        Requirement.equals('example.com/a', '1'),
        Requirement.does_not_exist('b'),
        Requirement.exists('c'),
    ]),
])
def test_parsing_valid_selectors(text, expected):
    assert parse(text) == expected


@pytest.mark.parametrize('text', [
    ',',
    'key,',
    'key=val,',
    '=val',
    'key in ()',
    'key in (a',
    'key in a',
    'key notin (a,)',
    'key val',
    '!',
    'key=-bad-',
    'bad key!=x',
    '-bad=x',
    'key=(a)',
])
def test_parsing_invalid_selectors(text):
    with pytest.raises(SelectorSyntaxError):
        parse(text)


def test_parsing_errors_are_value_errors():
    assert issubclass(SelectorSyntaxError, ValueError)


def test_operators_render_as_the_grammar():
    assert Operator.IN.value == 'in'
    assert Operator.NOT_IN.value == 'notin'
