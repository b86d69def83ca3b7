import logging
import weakref
from collections.abc import Mapping
from typing import List, Optional

from .exceptions import ConfigurationError, MissingFieldError
from .meta import AggregateKind
from .serialization import as_size, bits_to_bytes


class Context(object):
    '''The document an aggregate is building, visible to its children.

    Together with the document it keeps a weak reference to the context of
    the enclosing aggregate, so that a field can look at what has been
    already decoded above it (think about a length field in the parent).

    The upward link is valid only while the aggregate is packing/parsing:
    use it as a context manager, at the exit it's released

        with Context({}, AggregateKind.NAMED, parent=context) as document:
            ...

    The document itself is never touched, what the caller receives back
    is a plain dict or list.
    '''

    def __init__(self, data, kind: Optional[AggregateKind] = None, parent: Optional["Context"] = None):
        self.data = data
        self.kind = kind
        self._parent = weakref.ref(parent) if parent is not None else None

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.data!r})>'

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.release()

    def release(self):
        self._parent = None

    @property
    def parent(self) -> Optional["Context"]:
        if self._parent is None:
            return None

        return self._parent()

    @property
    def root(self) -> "Context":
        '''Obtain the outermost context'''
        context = self
        while context.parent is not None:
            context = context.parent

        return context

    def __getitem__(self, key):
        return self.data[key]

    def __contains__(self, key):
        return key in self.data

    def get(self, key, default=None):
        try:
            return self.data[key]
        except (KeyError, IndexError):
            return default


class Dependency:
    '''This makes the relation between fields possible.

    It's a callable that, given the context of a field, returns the value
    of another field already decoded (or present in the document being
    packed), so that it can be used as a size, a count or a discriminant

        BinaryMap([
            ('length', Uint16),
            ('data', ByteBuffer(Dependency('.length'))),
        ])

    The syntax of the expression is inspired from relative imports:

     - '.name' indicates a field at the same level
     - every other leading '.' climbs one level ('..name' is in the parent)
     - 'name' without dots is resolved starting from the root document

    the remaining dotted components walk into sub-documents, like
    '.header.length'.
    '''
    def __init__(self, expression: str):
        self.expression = expression
        self.logger = logging.getLogger(__name__)

        stripped = expression.lstrip('.')
        self._level = len(expression) - len(stripped)
        self._path: List[str] = stripped.split('.')

        if not stripped or '' in self._path:
            raise ConfigurationError(f"'{expression}' is not a valid dependency")

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.expression})>'

    def resolve_context(self, context: Context) -> Context:
        if context is None:
            raise MissingFieldError(f"cannot resolve '{self.expression}' without a context")

        if self._level == 0:
            return context.root

        for _ in range(self._level - 1):
            context = context.parent
            if context is None:
                raise MissingFieldError(f"'{self.expression}' climbs above the root document")

        return context

    def __call__(self, context: Context):
        value = self.resolve_context(context).data

        for component in self._path:
            key = int(component) if isinstance(value, list) and component.isdigit() else component
            try:
                value = value[key]
            except (KeyError, IndexError, TypeError) as e:
                raise MissingFieldError(f"'{self.expression}' not resolved: no '{component}' in {value!r}") from e

        self.logger.debug(' resolved %s with value %r', self, value)

        return value


def numeric(n, context: Optional[Context] = None, unit: str = 'B'):
    '''Resolve a size specification.

    It can be a number, a mapping like {'bits': 4, 'bytes': 1} or a callable
    receiving the context (a Dependency for example). The result is in bytes
    or in bits depending on the unit ('B' or 'b').'''
    if isinstance(n, Mapping):
        bits, n_bytes = n.get('bits', 0), n.get('bytes', 0)
        n = as_size(bits_to_bytes(bits) + n_bytes) if unit == 'B' else bits + n_bytes * 8
    elif callable(n):
        n = n(context)

    if isinstance(n, bool) or not isinstance(n, (int, float)):
        raise ConfigurationError(f'Invalid numeric input {n!r}')

    if n < 0:
        raise ConfigurationError(f'Invalid size: {n} {"bytes" if unit == "B" else "bits"}')

    if unit == 'b' and n != int(n):
        raise ConfigurationError(f'Invalid size: {n} bits')

    return int(n) if unit == 'b' else as_size(n)
