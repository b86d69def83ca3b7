import gc

import pytest

from transcode.exceptions import ConfigurationError, MissingFieldError
from transcode.meta import AggregateKind
from transcode.properties import Context, Dependency, numeric


def test_context_hierarchy():
    root = Context({'count': 3}, AggregateKind.NAMED)
    child = Context({'header': {'length': 5}}, AggregateKind.NAMED, parent=root)
    grandchild = Context([], AggregateKind.POSITIONAL, parent=child)

    assert grandchild.parent is child
    assert grandchild.parent.parent is root
    assert grandchild.root is root
    assert root.parent is None

    assert child['header'] == {'length': 5}
    assert 'header' in child
    assert child.get('missing', 42) == 42


def test_context_releases_the_parent():
    parent = Context({'a': 1})

    with Context({}, parent=parent) as context:
        assert context.parent is parent

    assert context.parent is None


def test_context_does_not_own_the_parent():
    parent = Context({'a': 1})
    context = Context({}, parent=parent)

    del parent
    gc.collect()

    assert context.parent is None


def test_dependency():
    root = Context({'count': 3}, AggregateKind.NAMED)
    child = Context({'header': {'length': 5}, 'items': [1, 2]}, AggregateKind.NAMED, parent=root)
    grandchild = Context({}, AggregateKind.NAMED, parent=child)

    assert Dependency('.header.length')(child) == 5
    assert Dependency('.items.1')(child) == 2
    assert Dependency('..header.length')(grandchild) == 5
    assert Dependency('...count')(grandchild) == 3
    assert Dependency('count')(grandchild) == 3


def test_dependency_errors():
    context = Context({'a': 1})

    with pytest.raises(MissingFieldError):
        Dependency('.b')(context)

    with pytest.raises(MissingFieldError):
        Dependency('..a')(context)

    with pytest.raises(MissingFieldError):
        Dependency('.a')(None)

    with pytest.raises(ConfigurationError):
        Dependency('..')

    with pytest.raises(ConfigurationError):
        Dependency('.a..b')


def test_numeric():
    context = Context({'length': 7})

    assert numeric(4) == 4
    assert numeric({'bytes': 1, 'bits': 4}) == 1.5
    assert numeric({'bytes': 1, 'bits': 4}, unit='b') == 12
    assert numeric({'bits': 16}) == 2
    assert numeric(Dependency('.length'), context) == 7
    assert numeric(lambda context: context['length'] * 2, context) == 14


def test_numeric_errors():
    with pytest.raises(ConfigurationError):
        numeric(-1)

    with pytest.raises(ConfigurationError):
        numeric('4')

    with pytest.raises(ConfigurationError):
        numeric(0.5, unit='b')
